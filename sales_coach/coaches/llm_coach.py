"""Language-model coach producing structured JSON insights."""

import logging
from typing import Any, Dict, Optional

import httpx

from sales_coach.coaches.base_coach import AnalysisContext, BaseCoach
from sales_coach.prompt import build_messages
from sales_coach.providers import PROVIDERS, ProviderFn, ProviderNotConfigured
from sales_coach.schema import InsightBundle, normalize_insights, try_parse_json

logger = logging.getLogger(__name__)


class LLMCoach(BaseCoach):
    """Coach backed by a chat-completion provider (groq, ollama or gemini).

    Unreliable by nature: any transport failure, empty content or undecodable
    JSON yields None rather than an empty bundle.
    """

    def __init__(
        self,
        provider: str = None,
        *,
        provider_fn: Optional[ProviderFn] = None,
        provider_options: Optional[Dict[str, Any]] = None,
        temperature: float = None,
        max_tokens: int = None,
        alert_minutes: float = None,
    ):
        """Initialize the LLM coach.

        Args:
            provider: Provider name (defaults to Config.COACH_PROVIDER)
            provider_fn: Override for the provider call, mostly for tests
            provider_options: Extra keyword arguments for the provider
                (api_key, model, base_url, transport)
            temperature: Sampling temperature (defaults to Config.COACH_TEMPERATURE)
            max_tokens: Output cap (defaults to Config.COACH_MAX_TOKENS)
            alert_minutes: Next-step alert threshold quoted in the prompt
        """
        from sales_coach.config import Config

        self.provider = (provider or Config.COACH_PROVIDER).strip().lower()
        if provider_fn is None:
            if self.provider not in PROVIDERS:
                raise ValueError(
                    f"Unsupported coach provider: '{self.provider}'. "
                    f"Supported providers are: {', '.join(PROVIDERS)}"
                )
            provider_fn = PROVIDERS[self.provider]
        self.name = self.provider
        self._provider_fn = provider_fn
        self.provider_options = dict(provider_options or {})
        self.temperature = Config.COACH_TEMPERATURE if temperature is None else temperature
        self.max_tokens = Config.COACH_MAX_TOKENS if max_tokens is None else max_tokens
        self.alert_minutes = Config.NEXT_STEP_ALERT_MINUTES if alert_minutes is None else alert_minutes

    async def generate_insights(self, context: AnalysisContext) -> Optional[InsightBundle]:
        if not context.transcript_text.strip():
            return None

        system_prompt, user_message = build_messages(context, alert_minutes=self.alert_minutes)

        try:
            content = await self._provider_fn(
                system_prompt,
                user_message,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                **self.provider_options,
            )
        except ProviderNotConfigured as e:
            logger.warning("[COACH] %s not configured: %s", self.provider, e)
            return None
        except httpx.HTTPStatusError as e:
            logger.error("[COACH] %s HTTP %s: %s", self.provider, e.response.status_code, e)
            return None
        except httpx.HTTPError as e:
            logger.error("[COACH] %s request failed: %s", self.provider, e)
            return None
        except Exception:
            logger.exception("[COACH] %s unexpected provider error", self.provider)
            return None

        if not content or not content.strip():
            logger.warning("[COACH] %s returned empty content", self.provider)
            return None

        try:
            return normalize_insights(try_parse_json(content))
        except ValueError as e:
            logger.error("[COACH] %s JSON parse error: %s %s", self.provider, e, content[:200])
            return None
