"""LLM provider adapters. Each returns the raw text content of one completion."""

from typing import Awaitable, Callable, Dict

from sales_coach.providers import gemini, groq, ollama
from sales_coach.providers.errors import ProviderNotConfigured

ProviderFn = Callable[..., Awaitable[str]]

# Provider registry
PROVIDERS: Dict[str, ProviderFn] = {
    "groq": groq.generate,
    "ollama": ollama.generate,
    "gemini": gemini.generate,
}

__all__ = ["PROVIDERS", "ProviderFn", "ProviderNotConfigured"]
