"""Speech arbitration: one utterance in flight, cooldowns, pending queue."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
import itertools
import threading
from typing import Any, Callable

from config import load_section
from core.logging import log_utterance, logger
from core.timing import millis
from interaction.speech_hal import SpeechEngine


class SpeechStatus(str, Enum):
    """Outcome of a ``speak`` request."""

    SPOKEN = "spoken"
    QUEUED = "queued"
    DUPLICATE = "duplicate"
    COOLDOWN = "cooldown"
    DROPPED = "dropped"
    FAILED = "failed"


@dataclass(frozen=True)
class SpeechConfig:
    """Configuration for speech arbitration."""

    global_cooldown_ms: int = 1000
    identity_cooldown_ms: int = 1000
    max_queue: int = 8
    backend: str = "logging"

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "SpeechConfig":
        cfg = load_section("speech") if config is None else dict(config.get("speech") or {})
        return cls(
            global_cooldown_ms=max(0, int(cfg.get("global_cooldown_ms", 1000))),
            identity_cooldown_ms=max(0, int(cfg.get("identity_cooldown_ms", 1000))),
            max_queue=max(1, int(cfg.get("max_queue", 8))),
            backend=str(cfg.get("backend", "logging")),
        )


@dataclass(frozen=True)
class PendingUtterance:
    text: str
    identity: str | None = None
    priority: str = "normal"

    @property
    def is_high(self) -> bool:
        return self.priority == "high"


class SpeechArbiter:
    """Serialize candidate instructions into a single speech channel.

    All methods may be called from the engine's serialization point; speech
    backends may deliver ``on_done``/``on_error`` from their own thread, so
    state changes are guarded by a lock.
    """

    def __init__(
        self,
        engine: SpeechEngine,
        config: SpeechConfig | None = None,
        *,
        clock: Callable[[], int] = millis,
        ready: bool = True,
    ) -> None:
        self.config = config or SpeechConfig()
        self._engine = engine
        self._clock = clock
        self._lock = threading.RLock()
        self._ready = ready
        self._speaking = False
        self._last_spoken_ms: int | None = None
        self._identity_spoken: dict[str, int] = {}
        self._queue: deque[PendingUtterance] = deque()
        self._ids = itertools.count(1)
        self._current: str | None = None
        engine.set_listener(self)

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def last_spoken_ms(self) -> int | None:
        return self._last_spoken_ms

    def pending(self) -> list[str]:
        with self._lock:
            return [item.text for item in self._queue]

    def speak(
        self,
        text: str,
        identity: str | None = None,
        now_ms: int | None = None,
        priority: str = "normal",
    ) -> SpeechStatus:
        """Speak now, queue for later, or drop ``text``."""

        now = self._clock() if now_ms is None else now_ms
        with self._lock:
            if identity is not None:
                last = self._identity_spoken.get(identity)
                if last is not None and now - last < self.config.identity_cooldown_ms:
                    logger.debug("[SPEECH] Dropped %r: identity %s cooling down", text, identity)
                    return SpeechStatus.COOLDOWN
                self._identity_spoken[identity] = now

            if not self._can_dispatch(now):
                return self._enqueue(PendingUtterance(text, identity, priority))
            return self._dispatch(text, now)

    def pump(self, now_ms: int | None = None) -> SpeechStatus | None:
        """Dispatch the next queued utterance when the channel is free."""

        now = self._clock() if now_ms is None else now_ms
        with self._lock:
            if not self._queue or not self._can_dispatch(now):
                return None
            item = self._queue.popleft()
            return self._dispatch(item.text, now)

    def set_ready(self, ready: bool, now_ms: int | None = None) -> None:
        with self._lock:
            self._ready = ready
        if ready:
            self.pump(now_ms)

    def clear(self) -> None:
        with self._lock:
            self._queue.clear()

    def on_start(self, utterance_id: str) -> None:
        with self._lock:
            self._speaking = True

    def on_done(self, utterance_id: str, now_ms: int | None = None) -> None:
        """Release the channel and start the cooldown.

        The next queued item goes out here only when ``global_cooldown_ms`` is
        zero; otherwise it waits for :meth:`pump`, which the engine's ``tick``
        calls on every speech-replay turn.
        """

        now = self._clock() if now_ms is None else now_ms
        with self._lock:
            self._speaking = False
            self._current = None
            self._last_spoken_ms = now
        self.pump(now)

    def on_error(self, utterance_id: str, now_ms: int | None = None) -> None:
        logger.warning("[SPEECH] Utterance %s failed", utterance_id)
        with self._lock:
            self._speaking = False
            self._current = None

    def _can_dispatch(self, now: int) -> bool:
        if not self._ready or self._speaking:
            return False
        if self._last_spoken_ms is None:
            return True
        return now - self._last_spoken_ms >= self.config.global_cooldown_ms

    def _enqueue(self, item: PendingUtterance) -> SpeechStatus:
        if any(pending.text == item.text for pending in self._queue):
            return SpeechStatus.DUPLICATE

        if len(self._queue) >= self.config.max_queue:
            victim = next((pending for pending in self._queue if not pending.is_high), None)
            if victim is None and not item.is_high:
                logger.warning("[SPEECH] Queue full of warnings; dropped %r", item.text)
                return SpeechStatus.DROPPED
            if victim is None:
                victim = self._queue[0]
            self._queue.remove(victim)
            logger.warning("[SPEECH] Queue full; dropped %r", victim.text)

        if item.is_high:
            index = sum(1 for pending in self._queue if pending.is_high)
            self._queue.insert(index, item)
        else:
            self._queue.append(item)
        log_utterance(item.text, item.identity, queued=True)
        return SpeechStatus.QUEUED

    def _dispatch(self, text: str, now: int) -> SpeechStatus:
        utterance_id = f"utt-{next(self._ids)}"
        self._speaking = True
        self._current = utterance_id
        self._last_spoken_ms = now
        logger.debug("[SPEECH] Dispatch %s: %s", utterance_id, text)
        try:
            self._engine.speak(text, utterance_id)
        except Exception:  # noqa: BLE001 - a broken backend must not stop guidance
            logger.exception("[SPEECH] Speech engine failed for %r", text)
            self._speaking = False
            self._current = None
            return SpeechStatus.FAILED
        return SpeechStatus.SPOKEN

    def shutdown(self) -> None:
        with self._lock:
            self._queue.clear()
            self._ready = False
        self._engine.shutdown()
