"""Data models for the realtime sales coach."""

from dataclasses import dataclass
from typing import Dict, Literal, Optional, Union


Role = Literal["seller", "buyer"]

SOURCES = ("mic", "tab")

# Fixed policy: the microphone is the seller, the meeting tab is the buyer.
ROLE_BY_SOURCE: Dict[str, str] = {
    "mic": "seller",
    "tab": "buyer",
}


def role_for_source(source: str) -> str:
    return ROLE_BY_SOURCE[source]


@dataclass(frozen=True)
class Utterance:
    """One recognized unit of speech from stream mic (seller) or tab (buyer)."""
    role: Role
    text: str
    is_final: bool  # True for final transcript, False for interim
    ts: float  # Unix timestamp


@dataclass(frozen=True)
class WordCounters:
    seller_words: int = 0
    buyer_words: int = 0

    @property
    def total(self) -> int:
        return self.seller_words + self.buyer_words


@dataclass(frozen=True)
class TalkRatio:
    seller: int = 0
    buyer: int = 0

    def to_dict(self):
        return {"seller": self.seller, "buyer": self.buyer}


# Channel events. Each transcription channel yields these in arrival order.

@dataclass(frozen=True)
class TranscriptReceived:
    source: str
    text: str
    is_final: bool
    ts: float


@dataclass(frozen=True)
class ChannelError:
    source: str
    message: str


@dataclass(frozen=True)
class ChannelClosed:
    source: str
    reason: str = ""


ChannelEvent = Union[TranscriptReceived, ChannelError, ChannelClosed]


@dataclass
class AudioStats:
    """Per-source ingestion counters, logged periodically."""
    chunks: int = 0
    bytes: int = 0
    last_log_at: float = 0.0
    last_ready_state: Optional[str] = None
