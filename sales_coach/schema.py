from __future__ import annotations

import json
import math
import re
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Protocol frame types
START_SESSION = "START_SESSION"
AUDIO_CHUNK = "AUDIO_CHUNK"
TRANSCRIPT_UPDATE = "TRANSCRIPT_UPDATE"
INSIGHT_UPDATE = "INSIGHT_UPDATE"


def _none_to_empty(value: Any) -> Any:
    return "" if value is None else value


# -------------------- Inbound protocol --------------------

class InboundMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("payload", mode="before")
    @classmethod
    def payload_or_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class MeetingType(BaseModel):
    """Meeting-type descriptor resolved by the config service. Immutable."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: Optional[Union[int, str]] = None
    code: str = ""
    label: str = ""
    prompt: str = ""

    @field_validator("code", "label", "prompt", mode="before")
    @classmethod
    def text_or_empty(cls, value: Any) -> Any:
        return _none_to_empty(value)


class StartSessionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    access_token: str = Field("", alias="accessToken")
    meeting_type: Optional[MeetingType] = Field(None, alias="meetingType")
    description: str = ""
    sources: Optional[List[str]] = None
    started_at: Optional[float] = Field(None, alias="startedAt")

    @field_validator("access_token", "description", mode="before")
    @classmethod
    def text_or_empty(cls, value: Any) -> Any:
        return _none_to_empty(value)


class AudioChunkPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    source: str = Field(min_length=1)
    chunk: str = Field(min_length=1)


# -------------------- Insight bundle --------------------

class InsightCard(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    title: str = ""
    key_points: List[str] = Field(default_factory=list, alias="keyPoints")


class FrameworkScores(BaseModel):
    model_config = ConfigDict(frozen=True)

    meddic: int = 0
    bant: int = 0
    spiced: int = 0


class InsightBundle(BaseModel):
    """Structured coaching output, produced wholesale by one strategy run."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    suggestions: List[InsightCard] = Field(default_factory=list)
    objections: List[InsightCard] = Field(default_factory=list)
    battle_cards: List[InsightCard] = Field(default_factory=list, alias="battleCards")
    framework_scores: FrameworkScores = Field(default_factory=FrameworkScores, alias="frameworkScores")
    missing_signals: List[str] = Field(default_factory=list, alias="missingSignals")
    next_step_alerts: List[str] = Field(default_factory=list, alias="nextStepAlerts")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


_JSON_OBJ_RE = re.compile(r"\{.*\}", re.DOTALL)


def try_parse_json(text: Optional[str]) -> Any:
    """
    Best-effort JSON extraction (handles occasional extra text around JSON).
    Raises ValueError when no JSON can be decoded at all.
    """
    if text is None:
        raise ValueError("Empty response")
    s = text.strip()
    if not s:
        raise ValueError("Empty response")

    try:
        return json.loads(s)
    except json.JSONDecodeError:
        pass

    # try to extract first {...last}
    m = _JSON_OBJ_RE.search(s)
    if m:
        return json.loads(m.group(0))

    raise ValueError("No JSON object found")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clean_strings(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    out = []
    for item in value:
        if isinstance(item, (str, int, float)) and not isinstance(item, bool):
            s = str(item).strip()
            if s:
                out.append(s)
    return out


def _normalize_cards(value: Any) -> List[InsightCard]:
    if not isinstance(value, list):
        return []
    cards = []
    for item in value:
        if isinstance(item, str):
            if item.strip():
                cards.append(InsightCard(title=item.strip()))
            continue
        if not isinstance(item, dict):
            continue
        title = item.get("title")
        title = str(title).strip() if isinstance(title, (str, int, float)) else ""
        points = _clean_strings(item.get("keyPoints", item.get("key_points")))
        if title or points:
            cards.append(InsightCard(title=title, key_points=points))
    return cards


def _normalize_score(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(score):
        return 0
    return max(0, min(100, round_half_up(score)))


def normalize_insights(obj: Any) -> InsightBundle:
    """
    Validate an LLM response against the insight bundle schema.

    Each field is defaulted independently so a partially valid response is
    still usable. Only a non-object response is rejected (ValueError).
    """
    if not isinstance(obj, dict):
        raise ValueError("Model did not return a JSON object")

    scores = obj.get("frameworkScores")
    if not isinstance(scores, dict):
        scores = {}

    return InsightBundle(
        suggestions=_normalize_cards(obj.get("suggestions")),
        objections=_normalize_cards(obj.get("objections")),
        battle_cards=_normalize_cards(obj.get("battleCards")),
        framework_scores=FrameworkScores(
            meddic=_normalize_score(scores.get("meddic", 0)),
            bant=_normalize_score(scores.get("bant", 0)),
            spiced=_normalize_score(scores.get("spiced", 0)),
        ),
        missing_signals=_clean_strings(obj.get("missingSignals")),
        next_step_alerts=_clean_strings(obj.get("nextStepAlerts")),
    )
