"""Per-connection coaching session."""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import time
from typing import Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from sales_coach.coaches.base_coach import AnalysisContext, BaseCoach
from sales_coach.coaches.heuristic_coach import HeuristicCoach
from sales_coach.models import (
    SOURCES,
    AudioStats,
    ChannelClosed,
    ChannelError,
    ChannelEvent,
    TranscriptReceived,
    Utterance,
    role_for_source,
)
from sales_coach.publisher import Publisher
from sales_coach.router import ChannelFactory, DualSourceRouter
from sales_coach.scheduler import AnalysisResult, AnalysisScheduler, resolve_bundle
from sales_coach.schema import (
    AUDIO_CHUNK,
    START_SESSION,
    AudioChunkPayload,
    InboundMessage,
    InsightBundle,
    MeetingType,
    StartSessionPayload,
)
from sales_coach.transcriber import TranscriptionChannel
from sales_coach.transcript import TranscriptStore, compute_talk_ratio

logger = logging.getLogger(__name__)

AUDIO_LOG_INTERVAL_SECONDS = 5.0


class CoachSession:
    """State and tasks for one client connection.

    Both transcription channels feed a single queue drained by one consumer
    task, so the transcript, counters and scheduler only ever see one event
    at a time.
    """

    def __init__(
        self,
        publisher: Publisher,
        *,
        coach: Optional[BaseCoach] = None,
        heuristic: Optional[HeuristicCoach] = None,
        deepgram_api_key: Optional[str] = None,
        channel_factory: Optional[ChannelFactory] = None,
        cooldown_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
        heuristic_window: int = 40,
        llm_window: int = 200,
        llm_fallback_window: int = 30,
        clock: Callable[[], float] = time.time,
    ):
        from sales_coach.config import Config

        self.publisher = publisher
        self.coach = coach
        self.heuristic = heuristic or HeuristicCoach()
        self.deepgram_api_key = Config.get_deepgram_key() if deepgram_api_key is None else deepgram_api_key
        self.channel_factory = channel_factory
        self.cooldown_seconds = cooldown_seconds
        self.timeout_seconds = timeout_seconds
        self.heuristic_window = heuristic_window
        self.llm_window = llm_window
        self.llm_fallback_window = llm_fallback_window
        self._clock = clock

        self.started_at = 0.0
        self.meeting_type: Optional[MeetingType] = None
        self.description = ""
        self.access_token = ""
        self.transcript = TranscriptStore()
        self.router = DualSourceRouter()
        self.scheduler = self._new_scheduler()
        self.audio_stats: Dict[str, AudioStats] = {s: AudioStats() for s in SOURCES}
        self.closed = False

        self._consumer: Optional[asyncio.Task] = None
        self._pumps: List[asyncio.Task] = []

    def _new_scheduler(self) -> AnalysisScheduler:
        return AnalysisScheduler(
            self.coach,
            cooldown_seconds=self.cooldown_seconds,
            timeout_seconds=self.timeout_seconds,
        )

    # -------------------- Inbound protocol --------------------

    async def handle_message(self, raw: Union[str, bytes]) -> None:
        """Dispatch one inbound frame. Malformed frames are ignored."""
        try:
            message = InboundMessage.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.debug("[SESSION] ignoring malformed frame: %s", e)
            return

        try:
            if message.type == START_SESSION:
                await self.start(StartSessionPayload.model_validate(message.payload))
            elif message.type == AUDIO_CHUNK:
                await self.on_audio(AudioChunkPayload.model_validate(message.payload))
            else:
                logger.debug("[SESSION] ignoring frame type %r", message.type)
        except ValidationError as e:
            logger.debug("[SESSION] ignoring invalid %s payload: %s", message.type, e)

    async def start(self, payload: StartSessionPayload) -> None:
        """(Re)start the session: drop previous channels and state, open new ones."""
        if self.closed:
            return
        await self._teardown()

        self.started_at = self._clock()
        self.meeting_type = payload.meeting_type
        self.description = payload.description
        self.access_token = payload.access_token
        self.transcript = TranscriptStore()
        self.scheduler = self._new_scheduler()
        self.audio_stats = {s: AudioStats() for s in SOURCES}

        self.router = DualSourceRouter.create(
            payload.sources,
            api_key=self.deepgram_api_key,
            factory=self.channel_factory,
        )

        events: asyncio.Queue = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume(events))
        self.router.start_all()
        self._pumps = [asyncio.create_task(self._pump(c, events)) for c in self.router.channels()]

        logger.info(
            "[SESSION] started meeting=%s sources=%s coach=%s",
            self.meeting_type.label if self.meeting_type else "-",
            ",".join(c.source for c in self.router.channels()) or "-",
            self.coach.name if self.coach else "heuristic",
        )

    async def on_audio(self, payload: AudioChunkPayload) -> bool:
        try:
            chunk = base64.b64decode(payload.chunk, validate=True)
        except (binascii.Error, ValueError):
            logger.debug("[AUDIO] ignoring chunk with invalid base64 (%s)", payload.source)
            return False

        sent = await self.router.route_audio(payload.source, chunk)

        stats = self.audio_stats.get(payload.source)
        if stats is not None:
            channel = self.router.channel(payload.source)
            stats.chunks += 1
            stats.bytes += len(chunk)
            stats.last_ready_state = channel.ready_state if channel else None

            now = self._clock()
            if now - stats.last_log_at > AUDIO_LOG_INTERVAL_SECONDS:
                stats.last_log_at = now
                logger.info(
                    "[AUDIO] stats (%s) chunks=%d bytes=%d state=%s",
                    payload.source, stats.chunks, stats.bytes, stats.last_ready_state,
                )
        return sent

    # -------------------- Channel events --------------------

    async def _pump(self, channel: TranscriptionChannel, events: asyncio.Queue) -> None:
        async for event in channel.events():
            events.put_nowait(event)

    async def _consume(self, events: asyncio.Queue) -> None:
        while True:
            event = await events.get()
            try:
                await self._handle_event(event)
            except Exception:
                logger.exception("[SESSION] error handling %s", type(event).__name__)

    async def _handle_event(self, event: ChannelEvent) -> None:
        if isinstance(event, TranscriptReceived):
            await self._on_transcript(event)
        elif isinstance(event, ChannelError):
            logger.warning("[SESSION] channel error (%s): %s", event.source, event.message)
        elif isinstance(event, ChannelClosed):
            logger.info("[SESSION] channel closed (%s) %s", event.source, event.reason)

    async def _on_transcript(self, event: TranscriptReceived) -> None:
        text = event.text.strip()
        if not text:
            return

        self.transcript.append(Utterance(
            role=role_for_source(event.source),
            text=text,
            is_final=event.is_final,
            ts=event.ts,
        ))
        logger.info(
            "[TRANSCRIPT] (%s) %s: %s%s",
            event.source,
            "final" if event.is_final else "partial",
            text[:50],
            "..." if len(text) > 50 else "",
        )

        await self.publisher.transcript_update(event.source, text, event.is_final)
        await self._publish_insights()

    # -------------------- Insights --------------------

    def duration_seconds(self) -> float:
        if not self.started_at:
            return 0.0
        return max(0.0, self._clock() - self.started_at)

    def analysis_context(self) -> AnalysisContext:
        counters = self.transcript.word_counters()
        return AnalysisContext(
            transcript_text=self.transcript.recent_text(
                self.llm_window, final_only=True, fallback_size=self.llm_fallback_window,
            ),
            recent_text=self.transcript.recent_text(self.heuristic_window, final_only=True),
            duration_seconds=self.duration_seconds(),
            counters=counters,
            talk_ratio=compute_talk_ratio(counters),
            meeting_type=self.meeting_type,
            description=self.description,
        )

    def _heuristic_bundle(self) -> InsightBundle:
        return self.heuristic.analyze(self.analysis_context())

    async def _publish_result(self, result: AnalysisResult) -> None:
        bundle = resolve_bundle(result, fallback=self._heuristic_bundle)
        talk_ratio = compute_talk_ratio(self.transcript.word_counters())
        await self.publisher.insight_update(bundle, talk_ratio)

    async def _publish_insights(self) -> None:
        await self._publish_result(self.scheduler.on_transcript(self.analysis_context, self._publish_fresh))

    async def _publish_fresh(self, bundle: InsightBundle) -> None:
        if self.closed:
            return
        await self._publish_result(AnalysisResult.fresh(bundle))

    # -------------------- Lifecycle --------------------

    async def _teardown(self) -> None:
        tasks = list(self._pumps)
        if self._consumer is not None:
            tasks.append(self._consumer)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._pumps = []
        self._consumer = None

        await self.router.close_all()
        self.scheduler.close()

    async def close(self) -> None:
        """Tear down every channel. Idempotent, safe before any start."""
        if self.closed:
            return
        self.closed = True
        self.publisher.close()
        await self._teardown()
        logger.info("[SESSION] closed")
