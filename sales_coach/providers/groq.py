from __future__ import annotations

from typing import Optional

import httpx

from sales_coach.config import Config
from sales_coach.providers.errors import ProviderNotConfigured


async def generate(
    system_prompt: str,
    user_message: str,
    *,
    temperature: float,
    max_tokens: int,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    Groq chat completions (OpenAI-compatible) in JSON mode.
    Returns the raw message content.
    """
    api_key = (api_key or Config.GROQ_API_KEY or "").strip()
    if not api_key:
        raise ProviderNotConfigured("GROQ_API_KEY is not set.")

    base_url = (base_url or Config.GROQ_BASE_URL).rstrip("/")
    body = {
        "model": model or Config.GROQ_MODEL,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "response_format": {"type": "json_object"},
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ],
    }
    headers = {"Authorization": f"Bearer {api_key}"}

    async with httpx.AsyncClient(timeout=90, transport=transport) as client:
        r = await client.post(f"{base_url}/chat/completions", json=body, headers=headers)
        r.raise_for_status()
        data = r.json()

    choices = data.get("choices") or []
    if not choices:
        return ""
    return ((choices[0].get("message") or {}).get("content") or "")
