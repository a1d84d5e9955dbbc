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
    Uses the Gemini Developer API generateContent endpoint with a JSON response type.
    """
    api_key = (api_key or Config.GEMINI_API_KEY or "").strip()
    if not api_key:
        raise ProviderNotConfigured("GEMINI_API_KEY is not set.")

    base_url = (base_url or Config.GEMINI_BASE_URL).rstrip("/")
    model = (model or Config.GEMINI_MODEL).strip()

    # Gemini REST: POST /v1beta/models/{model}:generateContent
    url = f"{base_url}/v1beta/models/{model}:generateContent"

    body = {
        "systemInstruction": {"parts": [{"text": system_prompt}]},
        "contents": [
            {"role": "user", "parts": [{"text": user_message}]}
        ],
        "generationConfig": {
            "temperature": temperature,
            "maxOutputTokens": max_tokens,
            "responseMimeType": "application/json",
        },
    }

    headers = {
        "Content-Type": "application/json",
        "x-goog-api-key": api_key,
    }

    async with httpx.AsyncClient(timeout=90, transport=transport) as client:
        r = await client.post(url, json=body, headers=headers)
        r.raise_for_status()
        data = r.json()

    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = ((candidates[0].get("content") or {}).get("parts") or [])
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))
