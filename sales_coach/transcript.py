"""Per-session transcript store and talk-ratio meter."""

from typing import List, Optional, Tuple

from sales_coach.models import TalkRatio, Utterance, WordCounters
from sales_coach.schema import round_half_up


def count_words(text: str) -> int:
    return len(text.split())


class TranscriptStore:
    """Append-only log of utterances with per-role word counters.

    Counters are bumped on every append, interim results included, so a
    revised interim segment is counted again when its final version arrives.
    """

    def __init__(self):
        self._utterances: List[Utterance] = []
        self._seller_words = 0
        self._buyer_words = 0

    def __len__(self) -> int:
        return len(self._utterances)

    @property
    def utterances(self) -> Tuple[Utterance, ...]:
        return tuple(self._utterances)

    def append(self, utterance: Utterance) -> None:
        self._utterances.append(utterance)
        words = count_words(utterance.text)
        if utterance.role == "seller":
            self._seller_words += words
        elif utterance.role == "buyer":
            self._buyer_words += words

    def word_counters(self) -> WordCounters:
        return WordCounters(seller_words=self._seller_words, buyer_words=self._buyer_words)

    def recent_text(
        self,
        max_utterances: int,
        final_only: bool = True,
        fallback_size: Optional[int] = None,
    ) -> str:
        """Role-prefixed, newline-joined view of the most recent utterances.

        Args:
            max_utterances: How many utterances to keep
            final_only: Prefer final utterances; when none are final yet, fall
                back to the most recent raw (interim) ones
            fallback_size: Window used for that fallback (defaults to
                max_utterances)

        Returns:
            Lines formatted as "seller: ..." / "buyer: ...", or "" when empty
        """
        if max_utterances <= 0:
            return ""

        if final_only:
            selected = [u for u in self._utterances if u.is_final][-max_utterances:]
            if not selected:
                size = max_utterances if fallback_size is None else fallback_size
                selected = self._utterances[-size:] if size > 0 else []
        else:
            selected = self._utterances[-max_utterances:]

        return "\n".join(f"{u.role}: {u.text}" for u in selected)


def compute_talk_ratio(counters: WordCounters) -> TalkRatio:
    """Seller/buyer split in percent; buyer is derived so the sum is exactly 100."""
    total = counters.total
    if not total:
        return TalkRatio(seller=0, buyer=0)
    seller = round_half_up(counters.seller_words / total * 100)
    return TalkRatio(seller=seller, buyer=100 - seller)
