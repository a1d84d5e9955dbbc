"""Dual-source router: one transcription channel per audio source."""

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional

from sales_coach.models import SOURCES
from sales_coach.transcriber import DeepgramChannel, NullChannel, TranscriptionChannel

logger = logging.getLogger(__name__)

ChannelFactory = Callable[[str, str], TranscriptionChannel]


def _deepgram_factory(source: str, api_key: str) -> TranscriptionChannel:
    return DeepgramChannel(source, api_key)


def resolve_sources(requested: Optional[Iterable[str]]) -> List[str]:
    """Sources to enable for a session. None or empty means both."""
    if not requested:
        return list(SOURCES)
    wanted = set(requested)
    return [s for s in SOURCES if s in wanted]


class DualSourceRouter:
    """Demultiplexes audio chunks by source tag to the matching channel."""

    def __init__(self, channels: Optional[Dict[str, Optional[TranscriptionChannel]]] = None):
        self._channels: Dict[str, Optional[TranscriptionChannel]] = {s: None for s in SOURCES}
        for source, channel in (channels or {}).items():
            if source in self._channels:
                self._channels[source] = channel
        self._closed = False

    @classmethod
    def create(
        cls,
        allowed_sources: Optional[Iterable[str]] = None,
        *,
        api_key: Optional[str] = None,
        factory: Optional[ChannelFactory] = None,
    ) -> "DualSourceRouter":
        """Build a router for the requested sources.

        Without speech-to-text credentials every enabled source gets an inert
        channel, so the session runs silent instead of failing.
        """
        sources = resolve_sources(allowed_sources)
        if not api_key:
            logger.warning("[ROUTER] DEEPGRAM_API_KEY missing, skipping transcription")
            return cls({s: NullChannel(s) for s in sources})

        factory = factory or _deepgram_factory
        return cls({s: factory(s, api_key) for s in sources})

    def channel(self, source: str) -> Optional[TranscriptionChannel]:
        return self._channels.get(source)

    def channels(self) -> List[TranscriptionChannel]:
        return [c for c in self._channels.values() if c is not None]

    def start_all(self) -> None:
        for channel in self.channels():
            channel.start()

    async def route_audio(self, source: str, chunk: bytes) -> bool:
        """Forward a chunk to its source's channel. Unknown or disabled sources are dropped."""
        channel = self._channels.get(source)
        if channel is None:
            return False
        return await channel.send(chunk)

    async def close_all(self) -> None:
        if self._closed:
            return
        self._closed = True
        channels = self.channels()
        # all channels finalize concurrently
        results = await asyncio.gather(*(c.close() for c in channels), return_exceptions=True)
        for channel, result in zip(channels, results):
            if isinstance(result, Exception):
                logger.error("[ROUTER] error closing %s channel: %s", channel.source, result)
