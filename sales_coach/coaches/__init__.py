"""Coach factory for creating the language-model insight strategy."""

import logging
from typing import Optional

from sales_coach.coaches.base_coach import AnalysisContext, BaseCoach
from sales_coach.coaches.heuristic_coach import HeuristicCoach
from sales_coach.coaches.llm_coach import LLMCoach
from sales_coach.providers import PROVIDERS

logger = logging.getLogger(__name__)


def create_coach(coach_type: Optional[str] = None, *, api_key: Optional[str] = None) -> Optional[BaseCoach]:
    """Factory function to create the LLM coach for a session.

    Args:
        coach_type: Provider to use ("groq", "ollama" or "gemini"),
            defaults to Config.COACH_PROVIDER
        api_key: Provider API key (defaults to the provider's Config key)

    Returns:
        LLMCoach instance, or None when the provider has no credentials
        (sessions then run on the heuristic coach only)

    Raises:
        ValueError: If coach_type is not supported
    """
    from sales_coach.config import Config

    coach_type = (coach_type or Config.COACH_PROVIDER).strip().lower()
    if coach_type not in PROVIDERS:
        raise ValueError(
            f"Unsupported coach type: '{coach_type}'. "
            f"Supported types are: {', '.join(repr(p) for p in PROVIDERS)}"
        )

    options = {}
    if coach_type in ("groq", "gemini"):
        default_key = Config.GROQ_API_KEY if coach_type == "groq" else Config.GEMINI_API_KEY
        key = (api_key or default_key or "").strip()
        if not key:
            logger.warning("[COACH] no API key for %s, using heuristic insights only", coach_type)
            return None
        options["api_key"] = key

    return LLMCoach(coach_type, provider_options=options)


__all__ = ["create_coach", "AnalysisContext", "BaseCoach", "HeuristicCoach", "LLMCoach"]
