"""Cooldown-gated scheduling of the language-model analysis."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from sales_coach.coaches.base_coach import AnalysisContext, BaseCoach
from sales_coach.schema import InsightBundle

logger = logging.getLogger(__name__)

FRESH = "fresh"
CACHED = "cached"
NONE = "none"


@dataclass(frozen=True)
class AnalysisResult:
    """Fresh(bundle) | Cached(bundle) | NoResult."""
    kind: str
    bundle: Optional[InsightBundle] = None

    @classmethod
    def fresh(cls, bundle: InsightBundle) -> "AnalysisResult":
        return cls(FRESH, bundle)

    @classmethod
    def cached(cls, bundle: InsightBundle) -> "AnalysisResult":
        return cls(CACHED, bundle)

    @classmethod
    def none(cls) -> "AnalysisResult":
        return cls(NONE)


def resolve_bundle(*results: AnalysisResult, fallback: Callable[[], InsightBundle]) -> InsightBundle:
    """Pick the bundle to publish: fresh, then cached, then fallback().

    The fallback is only called when neither is available.
    """
    for kind in (FRESH, CACHED):
        for result in results:
            if result.kind == kind and result.bundle is not None:
                return result.bundle
    return fallback()


class AnalysisScheduler:
    """Runs the LLM coach at most once per cooldown window and caches its output.

    The call is dispatched as a detached task; its completion updates the
    cache and hands the bundle to on_fresh. Nothing waits on it inline.
    """

    def __init__(
        self,
        coach: Optional[BaseCoach],
        *,
        cooldown_seconds: float = None,
        timeout_seconds: float = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        from sales_coach.config import Config

        self.coach = coach
        self.cooldown_seconds = Config.COACH_COOLDOWN_SECONDS if cooldown_seconds is None else cooldown_seconds
        self.timeout_seconds = Config.COACH_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        self._clock = clock

        self.last_run_at: Optional[float] = None
        self.cached_bundle: Optional[InsightBundle] = None
        self.closed = False
        self._inflight: Optional[asyncio.Task] = None

    @property
    def inflight(self) -> Optional[asyncio.Task]:
        return self._inflight

    def should_run(self, now: float) -> bool:
        if self.coach is None or self.closed:
            return False
        if self._inflight is not None and not self._inflight.done():
            return False
        return self.last_run_at is None or now - self.last_run_at >= self.cooldown_seconds

    def on_transcript(
        self,
        context_factory: Callable[[], AnalysisContext],
        on_fresh: Callable[[InsightBundle], Awaitable[None]],
    ) -> AnalysisResult:
        """Called for every transcript event. Never blocks on the model."""
        now = self._clock()
        if self.should_run(now):
            # Gated on the attempt: one call per window whatever its outcome.
            self.last_run_at = now
            self._inflight = asyncio.create_task(self._run(context_factory(), on_fresh))

        if self.cached_bundle is not None:
            return AnalysisResult.cached(self.cached_bundle)
        return AnalysisResult.none()

    async def _run(
        self,
        context: AnalysisContext,
        on_fresh: Callable[[InsightBundle], Awaitable[None]],
    ) -> None:
        try:
            bundle = await asyncio.wait_for(
                self.coach.generate_insights(context),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("[COACH] analysis timed out after %.1fs", self.timeout_seconds)
            return
        except Exception:
            logger.exception("[COACH] analysis failed")
            return

        if bundle is None:
            logger.info("[COACH] no fresh insights, keeping previous bundle")
            return
        if self.closed:
            logger.debug("[COACH] session closed, discarding insights")
            return

        self.cached_bundle = bundle
        try:
            await on_fresh(bundle)
        except Exception:
            logger.exception("[COACH] failed to publish fresh insights")

    def close(self) -> None:
        """Stop scheduling. An in-flight call is left to finish; its result is dropped."""
        self.closed = True
