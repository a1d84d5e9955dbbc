"""Transcription channels: one streaming speech-to-text connection per audio source."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional
from urllib.parse import urlencode

import aiohttp

from sales_coach.models import ChannelClosed, ChannelError, ChannelEvent, TranscriptReceived

logger = logging.getLogger(__name__)

CONNECTING = "connecting"
OPEN = "open"
CLOSING = "closing"
CLOSED = "closed"


class TranscriptionChannel(ABC):
    """Abstract interface for a streaming transcription connection.

    Audio goes in through send(); recognized segments, errors and the final
    close come out of events() as typed events, in arrival order.
    """

    def __init__(self, source: str):
        self.source = source
        self._state = CONNECTING
        self._events: asyncio.Queue[ChannelEvent] = asyncio.Queue()
        self._closed_emitted = False

    @property
    def ready_state(self) -> str:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == OPEN

    @abstractmethod
    def start(self) -> None:
        """Begin connecting. Returns immediately; audio sent before the
        channel is open is dropped."""

    @abstractmethod
    async def send(self, chunk: bytes) -> bool:
        """Forward audio if the channel is open. Returns whether it was sent."""

    @abstractmethod
    async def close(self) -> None:
        """Finalize the channel. Safe to call more than once."""

    async def events(self) -> AsyncIterator[ChannelEvent]:
        while True:
            event = await self._events.get()
            yield event
            if isinstance(event, ChannelClosed):
                return

    def _emit(self, event: ChannelEvent) -> None:
        if self._closed_emitted:
            return
        if isinstance(event, ChannelClosed):
            self._closed_emitted = True
        self._events.put_nowait(event)


class NullChannel(TranscriptionChannel):
    """Inert channel used when transcription is not configured.

    Accepts and discards audio; never produces a transcript.
    """

    def start(self) -> None:
        self._state = OPEN

    async def send(self, chunk: bytes) -> bool:
        return False

    async def close(self) -> None:
        if self._state == CLOSED:
            return
        self._state = CLOSED
        self._emit(ChannelClosed(self.source, reason="inert"))


def build_deepgram_url(
    base_url: str,
    *,
    model: str,
    language: str,
    sample_rate: int,
) -> str:
    params = {
        "model": model,
        "language": language,
        "smart_format": "true",
        "punctuate": "true",
        "interim_results": "true",
        "channels": 1,
        "encoding": "linear16",
        "sample_rate": int(sample_rate),
    }
    return f"{base_url}?{urlencode(params)}"


def parse_deepgram_message(source: str, raw: str, ts: Optional[float] = None) -> Optional[ChannelEvent]:
    """Turn one Deepgram text frame into a channel event.

    Returns TranscriptReceived for a non-empty transcript, ChannelError for an
    error frame, None for everything else (metadata, empty results, junk).
    """
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None

    msg_type = str(data.get("type") or "")
    if msg_type.lower() == "error" or "err_code" in data:
        detail = data.get("description") or data.get("message") or data.get("err_msg") or json.dumps(data)
        return ChannelError(source, str(detail)[:800])

    transcript = ""
    chan = data.get("channel")
    if isinstance(chan, dict):
        alts = chan.get("alternatives")
        if isinstance(alts, list) and alts and isinstance(alts[0], dict):
            transcript = str(alts[0].get("transcript") or "").strip()

    if not transcript:
        return None

    return TranscriptReceived(
        source=source,
        text=transcript,
        is_final=bool(data.get("is_final")),
        ts=time.time() if ts is None else ts,
    )


class DeepgramChannel(TranscriptionChannel):
    """Deepgram live transcription over a raw websocket (mono linear16 PCM)."""

    def __init__(
        self,
        source: str,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        language: Optional[str] = None,
        sample_rate: Optional[int] = None,
        keepalive_seconds: float = 8.0,
        close_timeout: float = 5.0,
    ):
        super().__init__(source)
        from sales_coach.config import Config

        self.api_key = api_key
        self.url = build_deepgram_url(
            base_url or Config.DEEPGRAM_URL,
            model=model or Config.DEEPGRAM_MODEL,
            language=language or Config.DEEPGRAM_LANGUAGE,
            sample_rate=sample_rate or Config.AUDIO_SAMPLE_RATE,
        )
        self.keepalive_seconds = keepalive_seconds
        self.close_timeout = close_timeout

        self._http: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._runner: Optional[asyncio.Task] = None
        self._keepalive: Optional[asyncio.Task] = None
        self._last_send = 0.0

    def start(self) -> None:
        if self._runner is not None:
            return
        self._state = CONNECTING
        self._runner = asyncio.create_task(self._run())

    async def _run(self) -> None:
        reason = ""
        self._http = aiohttp.ClientSession(
            headers={"Authorization": f"Token {self.api_key}"},
            timeout=aiohttp.ClientTimeout(total=None),
        )
        try:
            try:
                self._ws = await self._http.ws_connect(self.url, heartbeat=20)
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                logger.error("[DEEPGRAM] connection failed (%s): %s", self.source, e)
                self._emit(ChannelError(self.source, f"connect_error: {e!s}"))
                reason = "connect_failed"
                return

            if self._state == CONNECTING:
                self._state = OPEN
            logger.info("[DEEPGRAM] socket open (%s)", self.source)
            self._last_send = time.monotonic()
            self._keepalive = asyncio.create_task(self._keepalive_loop())

            try:
                async for msg in self._ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        event = parse_deepgram_message(self.source, msg.data)
                        if isinstance(event, ChannelError):
                            logger.warning("[DEEPGRAM] error (%s): %s", self.source, event.message)
                        if event is not None:
                            self._emit(event)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        err = self._ws.exception()
                        logger.error("[DEEPGRAM] websocket error (%s): %s", self.source, err)
                        self._emit(ChannelError(self.source, f"ws_error: {err!r}"))
                        break
            except (aiohttp.ClientError, ConnectionResetError) as e:
                logger.error("[DEEPGRAM] receive failed (%s): %s", self.source, e)
                self._emit(ChannelError(self.source, f"recv_error: {e!s}"))

            reason = f"close_code={self._ws.close_code}"
        finally:
            self._state = CLOSED
            if self._keepalive is not None:
                self._keepalive.cancel()
            if self._ws is not None and not self._ws.closed:
                await self._ws.close()
            await self._http.close()
            logger.info("[DEEPGRAM] socket closed (%s) %s", self.source, reason)
            self._emit(ChannelClosed(self.source, reason=reason))

    async def _keepalive_loop(self) -> None:
        # Deepgram drops a stream after ~10s without audio
        while self.is_open and self._ws is not None:
            idle = time.monotonic() - self._last_send
            if idle < self.keepalive_seconds:
                await asyncio.sleep(self.keepalive_seconds - idle)
                continue
            try:
                await self._ws.send_str(json.dumps({"type": "KeepAlive"}))
            except (aiohttp.ClientError, ConnectionResetError, RuntimeError) as e:
                logger.debug("[DEEPGRAM] keepalive failed (%s): %s", self.source, e)
                return
            self._last_send = time.monotonic()

    async def send(self, chunk: bytes) -> bool:
        if not self.is_open or self._ws is None:
            return False
        try:
            await self._ws.send_bytes(chunk)
        except (aiohttp.ClientError, ConnectionResetError, RuntimeError) as e:
            logger.warning("[DEEPGRAM] send failed (%s): %s", self.source, e)
            self._emit(ChannelError(self.source, f"send_error: {e!s}"))
            self._state = CLOSING
            await self._ws.close()
            return False
        self._last_send = time.monotonic()
        return True

    async def close(self) -> None:
        runner = self._runner
        if runner is None:
            self._state = CLOSED
            self._emit(ChannelClosed(self.source, reason="never_started"))
            return
        if runner.done():
            return

        if self._state == OPEN and self._ws is not None:
            self._state = CLOSING
            try:
                # Ask Deepgram to flush pending results, then close from its side.
                await self._ws.send_str(json.dumps({"type": "CloseStream"}))
            except (aiohttp.ClientError, ConnectionResetError, RuntimeError) as e:
                logger.debug("[DEEPGRAM] CloseStream failed (%s): %s", self.source, e)
            try:
                await asyncio.wait_for(asyncio.shield(runner), timeout=self.close_timeout)
                return
            except asyncio.TimeoutError:
                logger.warning("[DEEPGRAM] finalize timed out (%s)", self.source)

        runner.cancel()
        try:
            await runner
        except asyncio.CancelledError:
            pass
