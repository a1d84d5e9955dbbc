"""Abstract base class for insight strategies."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from sales_coach.models import TalkRatio, WordCounters
from sales_coach.schema import InsightBundle, MeetingType


@dataclass(frozen=True)
class AnalysisContext:
    """Snapshot of a session handed to a strategy.

    transcript_text is the long window sent to the language model,
    recent_text the short window scanned by the heuristic.
    """
    transcript_text: str
    recent_text: str
    duration_seconds: float
    counters: WordCounters
    talk_ratio: TalkRatio
    meeting_type: Optional[MeetingType] = None
    description: str = ""

    @property
    def duration_minutes(self) -> float:
        return self.duration_seconds / 60.0


class BaseCoach(ABC):
    """Abstract base class for all coach implementations."""

    name = "base"

    @abstractmethod
    async def generate_insights(self, context: AnalysisContext) -> Optional[InsightBundle]:
        """Produce an insight bundle for the current transcript.

        Args:
            context: Session snapshot to analyze

        Returns:
            A complete InsightBundle, or None when no usable result was
            produced (callers keep their previous bundle in that case)
        """
        pass
