import asyncio
import base64
import json
import unittest

from sales_coach.coaches.base_coach import BaseCoach
from sales_coach.coaches.heuristic_coach import HeuristicCoach
from sales_coach.models import ChannelClosed, TranscriptReceived
from sales_coach.publisher import Publisher
from sales_coach.schema import INSIGHT_UPDATE, TRANSCRIPT_UPDATE, InsightBundle, InsightCard
from sales_coach.session import CoachSession
from sales_coach.transcriber import CLOSED, OPEN, NullChannel, TranscriptionChannel


class _FakeChannel(TranscriptionChannel):
    """In-memory channel: records audio, emits whatever the test feeds it."""

    def __init__(self, source):
        super().__init__(source)
        self.sent = []
        self.close_calls = 0

    def start(self):
        self._state = OPEN

    async def send(self, chunk):
        if not self.is_open:
            return False
        self.sent.append(chunk)
        return True

    async def close(self):
        self.close_calls += 1
        if self._state == CLOSED:
            return
        self._state = CLOSED
        self._emit(ChannelClosed(self.source, reason="test"))

    def feed(self, text, is_final=True, ts=0.0):
        self._emit(TranscriptReceived(source=self.source, text=text, is_final=is_final, ts=ts))


class _FixedCoach(BaseCoach):
    name = "fixed"

    def __init__(self, bundle):
        self.bundle = bundle
        self.calls = 0

    async def generate_insights(self, context):
        self.calls += 1
        return self.bundle


class _CountingHeuristic(HeuristicCoach):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls = 0

    def analyze(self, context):
        self.calls += 1
        return super().analyze(context)


def _frame(msg_type, payload):
    return json.dumps({"type": msg_type, "payload": payload})


def _audio(source, data=b"\x00\x01" * 160):
    return _frame("AUDIO_CHUNK", {"source": source, "chunk": base64.b64encode(data).decode()})


class TestCoachSession(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.frames = []
        self.channels = []
        self.now = 1000.0

    async def asyncTearDown(self):
        await self.session.close()

    async def _send(self, text):
        self.frames.append(json.loads(text))

    def _factory(self, source, api_key):
        channel = _FakeChannel(source)
        self.channels.append(channel)
        return channel

    def _make_session(self, **kwargs):
        kwargs.setdefault("deepgram_api_key", "dg-test")
        kwargs.setdefault("heuristic", HeuristicCoach(next_step_alert_minutes=15))
        self.session = CoachSession(
            Publisher(self._send),
            channel_factory=self._factory,
            clock=lambda: self.now,
            **kwargs,
        )
        return self.session

    async def _settle(self, predicate, rounds=100):
        for _ in range(rounds):
            if predicate():
                return
            await asyncio.sleep(0)
        self.fail("condition not reached")

    def _of_type(self, msg_type):
        return [f["payload"] for f in self.frames if f["type"] == msg_type]

    def _channel(self, source):
        return next(c for c in self.channels if c.source == source)

    async def test_mic_only_session_drops_tab_audio(self):
        session = self._make_session()
        await session.handle_message(_frame("START_SESSION", {"sources": ["mic"]}))

        await session.handle_message(_audio("tab"))
        await session.handle_message(_audio("mic", b"\x01\x02"))

        self.assertEqual([c.source for c in self.channels], ["mic"])
        self.assertEqual(self._channel("mic").sent, [b"\x01\x02"])
        self.assertEqual(session.audio_stats["tab"].chunks, 1)
        self.assertEqual(session.audio_stats["mic"].bytes, 2)

    async def test_transcript_publishes_transcript_then_insights(self):
        session = self._make_session()
        await session.handle_message(_frame("START_SESSION", {"description": "PME"}))

        self._channel("tab").feed("c'est trop cher pour nous")
        await self._settle(lambda: len(self.frames) >= 2)

        self.assertEqual([f["type"] for f in self.frames], [TRANSCRIPT_UPDATE, INSIGHT_UPDATE])
        self.assertEqual(self.frames[0]["payload"], {
            "source": "tab", "text": "c'est trop cher pour nous", "isFinal": True,
        })
        insight = self.frames[1]["payload"]
        self.assertEqual(insight["status"], "running")
        self.assertEqual(insight["talkRatio"], {"seller": 0, "buyer": 100})
        self.assertEqual(insight["objections"][0]["title"], "Objection prix")
        self.assertEqual(len(session.transcript), 1)
        self.assertEqual(session.transcript.utterances[0].role, "buyer")

    async def test_talk_ratio_across_both_sources(self):
        self._make_session()
        await self.session.handle_message(_frame("START_SESSION", {}))

        self._channel("mic").feed("un deux trois")
        self._channel("tab").feed("quatre")
        await self._settle(lambda: len(self._of_type(INSIGHT_UPDATE)) >= 2)

        self.assertEqual(self._of_type(INSIGHT_UPDATE)[-1]["talkRatio"], {"seller": 75, "buyer": 25})

    async def test_blank_transcript_is_ignored(self):
        self._make_session()
        await self.session.handle_message(_frame("START_SESSION", {}))

        self._channel("mic").feed("   ")
        self._channel("mic").feed("bonjour")
        await self._settle(lambda: len(self.frames) >= 2)

        self.assertEqual(len(self.session.transcript), 1)
        self.assertEqual(self.frames[0]["payload"]["text"], "bonjour")

    async def test_fresh_llm_bundle_is_published(self):
        bundle = InsightBundle(suggestions=[InsightCard(title="Depuis le modèle")])
        coach = _FixedCoach(bundle)
        self._make_session(coach=coach, cooldown_seconds=10, timeout_seconds=5)
        await self.session.handle_message(_frame("START_SESSION", {}))

        self._channel("mic").feed("on peut parler budget")
        await self._settle(lambda: len(self._of_type(INSIGHT_UPDATE)) >= 2)

        first, fresh = self._of_type(INSIGHT_UPDATE)[:2]
        self.assertEqual(first["suggestions"][0]["title"], "Question de qualification")
        self.assertEqual(fresh["suggestions"][0]["title"], "Depuis le modèle")

        # within the cooldown the cached model bundle replaces the heuristic one
        self._channel("tab").feed("d'accord")
        await self._settle(lambda: len(self._of_type(INSIGHT_UPDATE)) >= 3)
        self.assertEqual(self._of_type(INSIGHT_UPDATE)[2]["suggestions"][0]["title"], "Depuis le modèle")
        self.assertEqual(coach.calls, 1)

    async def test_fresh_bundle_skips_heuristic_fallback(self):
        heuristic = _CountingHeuristic(next_step_alert_minutes=15)
        coach = _FixedCoach(InsightBundle(suggestions=[InsightCard(title="Depuis le modèle")]))
        self._make_session(coach=coach, heuristic=heuristic, cooldown_seconds=10, timeout_seconds=5)
        await self.session.handle_message(_frame("START_SESSION", {}))

        self._channel("mic").feed("bonjour")
        await self._settle(lambda: len(self._of_type(INSIGHT_UPDATE)) >= 2)

        # only the first publish, before the model answered, used the heuristic
        self.assertEqual(heuristic.calls, 1)
        fresh = self._of_type(INSIGHT_UPDATE)[1]
        self.assertEqual(fresh["suggestions"][0]["title"], "Depuis le modèle")
        self.assertEqual(fresh["talkRatio"], {"seller": 100, "buyer": 0})

    async def test_malformed_frames_are_ignored(self):
        session = self._make_session()
        await session.handle_message("not json")
        await session.handle_message(json.dumps([1, 2]))
        await session.handle_message(_frame("PING", {}))
        await session.handle_message(_frame("AUDIO_CHUNK", {"source": "mic"}))
        await session.handle_message(_frame("AUDIO_CHUNK", {"source": "mic", "chunk": "%%%"}))
        await session.handle_message(json.dumps({"payload": {}}))

        self.assertEqual(self.frames, [])
        self.assertEqual(self.channels, [])

    async def test_audio_before_start_is_dropped(self):
        session = self._make_session()
        await session.handle_message(_audio("mic"))
        self.assertEqual(self.channels, [])

    async def test_restart_tears_down_previous_channels(self):
        session = self._make_session()
        await session.handle_message(_frame("START_SESSION", {}))
        self._channel("mic").feed("premier appel")
        await self._settle(lambda: len(self.frames) >= 2)
        old = list(self.channels)

        self.now += 60
        await session.handle_message(_frame("START_SESSION", {"sources": ["tab"]}))

        self.assertTrue(all(c.close_calls == 1 for c in old))
        self.assertEqual(len(session.transcript), 0)
        self.assertEqual(session.started_at, self.now)
        self.assertEqual([c.source for c in self.channels[len(old):]], ["tab"])

    async def test_close_is_idempotent_and_safe_before_start(self):
        session = self._make_session()
        await session.close()
        await session.close()
        self.assertTrue(session.closed)

        await session.handle_message(_frame("START_SESSION", {}))
        self.assertEqual(self.channels, [])

    async def test_close_releases_channels(self):
        session = self._make_session()
        await session.handle_message(_frame("START_SESSION", {}))
        await session.close()

        self.assertTrue(all(c.close_calls == 1 for c in self.channels))
        self.assertTrue(session.publisher.closed)

    async def test_without_deepgram_key_session_runs_silent(self):
        session = self._make_session(deepgram_api_key="")
        with self.assertLogs("sales_coach.router", level="WARNING"):
            await session.handle_message(_frame("START_SESSION", {}))

        self.assertEqual(self.channels, [])
        self.assertTrue(all(isinstance(c, NullChannel) for c in session.router.channels()))
        await session.handle_message(_audio("mic"))
        self.assertEqual(session.audio_stats["mic"].chunks, 1)
        self.assertEqual(self.frames, [])

    async def test_duration_uses_server_clock(self):
        session = self._make_session()
        self.assertEqual(session.duration_seconds(), 0.0)
        await session.handle_message(_frame("START_SESSION", {"startedAt": 1}))
        self.now += 90
        self.assertEqual(session.duration_seconds(), 90.0)


if __name__ == "__main__":
    unittest.main()
