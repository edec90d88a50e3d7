"""Tests for speech arbitration, cooldowns and the pending queue."""

from __future__ import annotations

from interaction.speech import SpeechArbiter, SpeechConfig, SpeechStatus
from interaction.speech_hal import FakeSpeechEngine, LoggingSpeechEngine, create_speech_engine


def _arbiter(engine: FakeSpeechEngine | None = None, **config) -> tuple[SpeechArbiter, FakeSpeechEngine]:
    engine = engine or FakeSpeechEngine()
    return SpeechArbiter(engine, SpeechConfig(**config), clock=lambda: 0), engine


def test_second_utterance_waits_for_first() -> None:
    arbiter, engine = _arbiter()

    assert arbiter.speak("A", now_ms=0) is SpeechStatus.SPOKEN
    assert arbiter.speak("B", now_ms=100) is SpeechStatus.QUEUED
    assert engine.spoken == ["A"]

    engine.finish(now_ms=500)
    assert arbiter.is_speaking is False
    assert engine.spoken == ["A"]

    assert arbiter.pump(1600) is SpeechStatus.SPOKEN
    assert engine.spoken == ["A", "B"]
    assert arbiter.pending() == []


def test_completion_dispatches_next_item_only_without_cooldown() -> None:
    arbiter, engine = _arbiter(global_cooldown_ms=0)
    arbiter.speak("A", now_ms=0)
    assert arbiter.speak("B", now_ms=100) is SpeechStatus.QUEUED

    engine.finish(now_ms=500)
    assert engine.spoken == ["A", "B"]

    cooled, cooled_engine = _arbiter()
    cooled.speak("A", now_ms=0)
    cooled.speak("B", now_ms=100)
    cooled_engine.finish(now_ms=500)
    assert cooled_engine.spoken == ["A"]
    assert cooled.pending() == ["B"]


def test_queued_text_is_deduplicated() -> None:
    arbiter, _ = _arbiter()
    arbiter.speak("A", now_ms=0)
    assert arbiter.speak("B", now_ms=10) is SpeechStatus.QUEUED
    assert arbiter.speak("B", now_ms=20) is SpeechStatus.DUPLICATE
    assert arbiter.pending() == ["B"]


def test_identity_cooldown_drops_repeat_announcements() -> None:
    arbiter, engine = _arbiter()

    assert arbiter.speak("chair left", "chair-left", now_ms=0) is SpeechStatus.SPOKEN
    engine.finish(now_ms=100)
    assert arbiter.speak("chair left again", "chair-left", now_ms=500) is SpeechStatus.COOLDOWN
    assert arbiter.speak("chair left later", "chair-left", now_ms=1500) is SpeechStatus.SPOKEN
    assert engine.spoken == ["chair left", "chair left later"]


def test_global_cooldown_queues_instead_of_dropping() -> None:
    arbiter, engine = _arbiter()
    arbiter.speak("A", now_ms=0)
    engine.finish(now_ms=0)

    assert arbiter.speak("B", now_ms=400) is SpeechStatus.QUEUED
    assert arbiter.pump(999) is None
    assert arbiter.pump(1000) is SpeechStatus.SPOKEN


def test_not_ready_engine_queues_until_ready() -> None:
    engine = FakeSpeechEngine()
    arbiter = SpeechArbiter(engine, ready=False, clock=lambda: 0)

    assert arbiter.speak("hello", now_ms=0) is SpeechStatus.QUEUED
    assert engine.spoken == []

    arbiter.set_ready(True, now_ms=0)
    assert engine.spoken == ["hello"]


def test_high_priority_jumps_the_queue() -> None:
    arbiter, _ = _arbiter()
    arbiter.speak("A", now_ms=0)
    arbiter.speak("n1", now_ms=1)
    arbiter.speak("n2", now_ms=2)
    arbiter.speak("warn", now_ms=3, priority="high")
    arbiter.speak("warn2", now_ms=4, priority="high")

    assert arbiter.pending() == ["warn", "warn2", "n1", "n2"]


def test_full_queue_drops_oldest_normal_item() -> None:
    arbiter, _ = _arbiter(max_queue=2)
    arbiter.speak("A", now_ms=0)
    arbiter.speak("b", now_ms=1)
    arbiter.speak("c", now_ms=2)
    arbiter.speak("d", now_ms=3)

    assert arbiter.pending() == ["c", "d"]


def test_full_queue_of_warnings_drops_normal_request() -> None:
    arbiter, _ = _arbiter(max_queue=1)
    arbiter.speak("A", now_ms=0)
    arbiter.speak("warn", now_ms=1, priority="high")

    assert arbiter.speak("chatter", now_ms=2) is SpeechStatus.DROPPED
    assert arbiter.pending() == ["warn"]


def test_engine_failure_releases_channel() -> None:
    arbiter, _ = _arbiter(FakeSpeechEngine(fail_on_speak=True))

    assert arbiter.speak("A", now_ms=0) is SpeechStatus.FAILED
    assert arbiter.is_speaking is False


def test_error_callback_releases_channel() -> None:
    arbiter, engine = _arbiter()
    arbiter.speak("A", now_ms=0)
    assert arbiter.is_speaking is True

    engine.fail(now_ms=200)
    assert arbiter.is_speaking is False


def test_auto_completing_engine_drains_queue_on_done() -> None:
    clock = {"now": 0}
    engine = FakeSpeechEngine()
    arbiter = SpeechArbiter(engine, SpeechConfig(global_cooldown_ms=0), clock=lambda: clock["now"])

    arbiter.speak("A", now_ms=0)
    arbiter.speak("B", now_ms=0)
    engine.finish(now_ms=50)

    assert engine.spoken == ["A", "B"]


def test_shutdown_clears_queue() -> None:
    arbiter, _ = _arbiter()
    arbiter.speak("A", now_ms=0)
    arbiter.speak("B", now_ms=1)
    arbiter.shutdown()

    assert arbiter.pending() == []
    assert arbiter.is_ready is False


def test_logging_backend_completes_immediately() -> None:
    engine = LoggingSpeechEngine()
    arbiter = SpeechArbiter(engine, SpeechConfig(global_cooldown_ms=0), clock=lambda: 0)

    arbiter.speak("A", now_ms=0)
    assert arbiter.is_speaking is False
    assert engine.history == ["A"]


def test_speech_backend_factory() -> None:
    assert isinstance(create_speech_engine("fake"), FakeSpeechEngine)
    assert isinstance(create_speech_engine("logging"), LoggingSpeechEngine)
