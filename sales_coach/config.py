"""Configuration management for API keys and settings."""

import os
from typing import Optional
from pathlib import Path

from dotenv import load_dotenv

# config.py is in sales_coach/, .env is in project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


class Config:
    """Application configuration from environment variables."""

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = _int_env("PORT", 8788)
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Deepgram live transcription (one socket per audio source)
    DEEPGRAM_API_KEY: Optional[str] = os.getenv("DEEPGRAM_API_KEY")
    DEEPGRAM_URL: str = os.getenv("DEEPGRAM_URL", "wss://api.deepgram.com/v1/listen")
    DEEPGRAM_MODEL: str = os.getenv("DEEPGRAM_MODEL", "nova-2")
    DEEPGRAM_LANGUAGE: str = os.getenv("DEEPGRAM_LANGUAGE", "fr")
    AUDIO_SAMPLE_RATE: int = _int_env("AUDIO_SAMPLE_RATE", 16000)

    # Coach settings
    COACH_PROVIDER: str = os.getenv("COACH_PROVIDER", "groq")  # "groq", "ollama" or "gemini"

    # Groq settings (OpenAI-compatible chat completions)
    GROQ_API_KEY: Optional[str] = os.getenv("GROQ_API_KEY")
    GROQ_MODEL: str = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
    GROQ_BASE_URL: str = os.getenv("GROQ_BASE_URL", "https://api.groq.com/openai/v1")

    # Ollama settings (no API key needed, it's local)
    OLLAMA_URL: str = os.getenv("OLLAMA_URL", "http://localhost:11434")
    OLLAMA_MODEL: str = os.getenv("OLLAMA_MODEL", "gemma3:4b")

    # Gemini settings
    GEMINI_API_KEY: Optional[str] = os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
    GEMINI_BASE_URL: str = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com")

    # Analysis scheduling
    COACH_COOLDOWN_SECONDS: float = _float_env("COACH_COOLDOWN_SECONDS", 10.0)
    COACH_TIMEOUT_SECONDS: float = _float_env("COACH_TIMEOUT_SECONDS", 20.0)
    COACH_TEMPERATURE: float = _float_env("COACH_TEMPERATURE", 0.2)
    COACH_MAX_TOKENS: int = _int_env("COACH_MAX_TOKENS", 1024)
    NEXT_STEP_ALERT_MINUTES: float = _float_env("NEXT_STEP_ALERT_MINUTES", 15.0)

    @classmethod
    def validate(cls) -> list[str]:
        """Validate configuration and return list of missing optional settings.

        Nothing here is fatal: without Deepgram the sessions stay silent,
        without an LLM key the coach runs on heuristics only.
        """
        missing = []

        if not cls.DEEPGRAM_API_KEY:
            missing.append("DEEPGRAM_API_KEY (transcription disabled)")

        provider = cls.COACH_PROVIDER.strip().lower()
        if provider == "groq" and not cls.GROQ_API_KEY:
            missing.append("GROQ_API_KEY (required when COACH_PROVIDER=groq)")
        elif provider == "gemini" and not cls.GEMINI_API_KEY:
            missing.append("GEMINI_API_KEY (required when COACH_PROVIDER=gemini)")

        return missing

    @classmethod
    def get_deepgram_key(cls) -> Optional[str]:
        """Get Deepgram API key, or None when transcription is not configured."""
        key = (cls.DEEPGRAM_API_KEY or "").strip()
        return key or None
