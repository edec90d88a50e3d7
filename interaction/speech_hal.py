"""Thin speech-output HAL.

The guidance core only decides *what* to say and *when*. Playback lives behind
:class:`SpeechEngine`; every ``speak`` call must be answered by exactly one
``on_done`` or ``on_error`` on the registered listener.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import importlib
import importlib.util
import queue
import threading
from typing import Any, Protocol

from core.logging import log_utterance, logger


class SpeechListener(Protocol):
    """Progress callbacks for one utterance."""

    def on_start(self, utterance_id: str) -> None:
        """Playback of ``utterance_id`` started."""

    def on_done(self, utterance_id: str, now_ms: int | None = None) -> None:
        """Playback of ``utterance_id`` finished."""

    def on_error(self, utterance_id: str, now_ms: int | None = None) -> None:
        """Playback of ``utterance_id`` failed."""


class SpeechEngine(Protocol):
    """Minimal text-to-speech backend interface."""

    def set_listener(self, listener: SpeechListener | None) -> None:
        """Register the progress listener."""

    def speak(self, text: str, utterance_id: str) -> None:
        """Start speaking ``text`` without blocking the caller."""

    def shutdown(self) -> None:
        """Release backend resources."""


@dataclass
class FakeSpeechEngine:
    """Fake speech backend that completes utterances on demand."""

    fail_on_speak: bool = False
    auto_complete: bool = False
    spoken: list[str] = field(default_factory=list)
    listener: SpeechListener | None = None
    in_flight: str | None = None

    def set_listener(self, listener: SpeechListener | None) -> None:
        self.listener = listener

    def speak(self, text: str, utterance_id: str) -> None:
        if self.fail_on_speak:
            raise RuntimeError("Fake speech engine failure")
        self.spoken.append(text)
        self.in_flight = utterance_id
        if self.listener is not None:
            self.listener.on_start(utterance_id)
        if self.auto_complete:
            self.finish()

    def finish(self, now_ms: int | None = None) -> None:
        """Complete the utterance in flight, if any."""

        utterance_id, self.in_flight = self.in_flight, None
        if utterance_id is not None and self.listener is not None:
            self.listener.on_done(utterance_id, now_ms)

    def fail(self, now_ms: int | None = None) -> None:
        utterance_id, self.in_flight = self.in_flight, None
        if utterance_id is not None and self.listener is not None:
            self.listener.on_error(utterance_id, now_ms)

    def shutdown(self) -> None:
        self.in_flight = None


@dataclass
class LoggingSpeechEngine:
    """Speech backend that writes utterances to the log and completes at once."""

    history: list[str] = field(default_factory=list)
    listener: SpeechListener | None = None

    def set_listener(self, listener: SpeechListener | None) -> None:
        self.listener = listener

    def speak(self, text: str, utterance_id: str) -> None:
        self.history.append(text)
        log_utterance(text, utterance_id)
        if self.listener is not None:
            self.listener.on_start(utterance_id)
            self.listener.on_done(utterance_id)

    def shutdown(self) -> None:
        return None


class Pyttsx3SpeechEngine:
    """Drive pyttsx3 from a dedicated worker thread.

    pyttsx3 engines are bound to the thread that created them, so the engine
    is initialized inside the worker and fed through a queue.
    """

    def __init__(self, rate: int | None = None) -> None:
        if importlib.util.find_spec("pyttsx3") is None:
            raise RuntimeError("pyttsx3 is not installed; install the 'speech' extra")
        self._pyttsx3: Any = importlib.import_module("pyttsx3")
        self._rate = rate
        self._listener: SpeechListener | None = None
        self._queue: queue.Queue[tuple[str, str] | None] = queue.Queue()
        self._thread = threading.Thread(target=self._run, name="pyttsx3-speech", daemon=True)
        self._thread.start()

    def set_listener(self, listener: SpeechListener | None) -> None:
        self._listener = listener

    def speak(self, text: str, utterance_id: str) -> None:
        self._queue.put((text, utterance_id))

    def shutdown(self) -> None:
        self._queue.put(None)
        self._thread.join(timeout=2.0)

    def _run(self) -> None:
        engine = self._pyttsx3.init()
        if self._rate is not None:
            engine.setProperty("rate", self._rate)
        while True:
            item = self._queue.get()
            if item is None:
                break
            text, utterance_id = item
            listener = self._listener
            if listener is not None:
                listener.on_start(utterance_id)
            try:
                engine.say(text, utterance_id)
                engine.runAndWait()
            except Exception:  # noqa: BLE001 - keep the speech thread alive
                logger.exception("[SPEECH] pyttsx3 failed to speak %r", text)
                if listener is not None:
                    listener.on_error(utterance_id)
                continue
            if listener is not None:
                listener.on_done(utterance_id)


SPEECH_BACKENDS = ("fake", "logging", "pyttsx3")


def create_speech_engine(backend: str = "logging") -> SpeechEngine:
    """Build a speech backend by name."""

    name = str(backend).lower()
    if name == "fake":
        return FakeSpeechEngine(auto_complete=True)
    if name == "logging":
        return LoggingSpeechEngine()
    if name == "pyttsx3":
        return Pyttsx3SpeechEngine()
    raise ValueError(f"Unknown speech backend {backend!r}; expected one of {', '.join(SPEECH_BACKENDS)}")
