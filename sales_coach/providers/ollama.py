from __future__ import annotations

from typing import Optional

import httpx

from sales_coach.config import Config


async def generate(
    system_prompt: str,
    user_message: str,
    *,
    temperature: float,
    max_tokens: int,
    base_url: Optional[str] = None,
    model: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    base_url = (base_url or Config.OLLAMA_URL).rstrip("/")
    payload = {
        "model": model or Config.OLLAMA_MODEL,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ],
        "stream": False,
        "format": "json",
        # Keep generation conservative for small models
        "options": {
            "temperature": temperature,
            "num_predict": max_tokens,
        },
    }

    async with httpx.AsyncClient(timeout=90, transport=transport) as client:
        r = await client.post(f"{base_url}/api/chat", json=payload)
        r.raise_for_status()
        data = r.json()

    return (data.get("message") or {}).get("content", "") or ""
