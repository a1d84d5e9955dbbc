"""Outbound protocol frames to the connected client."""

import json
import logging
from typing import Any, Awaitable, Callable, Dict

from sales_coach.models import TalkRatio
from sales_coach.schema import INSIGHT_UPDATE, TRANSCRIPT_UPDATE, InsightBundle

logger = logging.getLogger(__name__)

SendFn = Callable[[str], Awaitable[None]]


class Publisher:
    """Serializes updates as tagged JSON frames.

    Delivery failures are swallowed: a failed send means the connection is
    going away and the session is about to be torn down.
    """

    def __init__(self, send: SendFn):
        self._send = send
        self.closed = False

    async def publish(self, msg_type: str, payload: Dict[str, Any]) -> bool:
        if self.closed:
            return False
        frame = json.dumps({"type": msg_type, "payload": payload}, ensure_ascii=False)
        try:
            await self._send(frame)
        except Exception as e:
            logger.debug("[PUBLISH] dropping %s, client gone: %s", msg_type, e)
            self.closed = True
            return False
        return True

    async def transcript_update(self, source: str, text: str, is_final: bool) -> bool:
        return await self.publish(
            TRANSCRIPT_UPDATE,
            {"source": source, "text": text, "isFinal": bool(is_final)},
        )

    async def insight_update(self, bundle: InsightBundle, talk_ratio: TalkRatio) -> bool:
        payload = {"status": "running", "talkRatio": talk_ratio.to_dict()}
        payload.update(bundle.to_payload())
        return await self.publish(INSIGHT_UPDATE, payload)

    def close(self) -> None:
        self.closed = True
