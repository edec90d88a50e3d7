"""Round-robin lane scheduling and latest-only background workers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import threading
from typing import Any, Callable, Generic, TypeVar

from config import load_section
from core.logging import logger as LOGGER
from core.timing import millis


T = TypeVar("T")
R = TypeVar("R")


class Lane(str, Enum):
    """Per-frame work lane."""

    DETECTION = "detection"
    DEPTH = "depth"
    SPEECH_REPLAY = "speech_replay"


DEFAULT_LANES = (Lane.DETECTION, Lane.DEPTH, Lane.SPEECH_REPLAY)


@dataclass(frozen=True)
class PipelineConfig:
    """Lane order and depth throttling."""

    lanes: tuple[Lane, ...] = DEFAULT_LANES
    depth_skip_interval: int = 1
    replay_last_guidance: bool = True

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "PipelineConfig":
        cfg = load_section("pipeline") if config is None else dict(config.get("pipeline") or {})
        lanes = DEFAULT_LANES
        raw_lanes = cfg.get("lanes")
        if raw_lanes:
            try:
                lanes = tuple(Lane(str(name)) for name in raw_lanes)
            except ValueError as exc:
                LOGGER.warning("[PIPELINE] Invalid pipeline.lanes=%r (%s); using defaults", raw_lanes, exc)
        return cls(
            lanes=lanes,
            depth_skip_interval=max(1, int(cfg.get("depth_skip_interval", 1))),
            replay_last_guidance=bool(cfg.get("replay_last_guidance", True)),
        )


@dataclass(frozen=True)
class FrameTicket:
    """Scheduling decision for one camera frame."""

    frame_index: int
    lane: Lane
    timestamp_ms: int
    run: bool = True


class PipelineStepper:
    """Explicit scheduler selecting the active lane for each frame."""

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()
        self._frame_step = 0
        self._depth_turns = 0

    @property
    def frame_step(self) -> int:
        return self._frame_step

    def peek(self) -> Lane:
        lanes = self.config.lanes
        return lanes[self._frame_step % len(lanes)]

    def next(self, now_ms: int) -> FrameTicket:
        lane = self.peek()
        run = True
        if lane is Lane.DEPTH:
            run = self._depth_turns % self.config.depth_skip_interval == 0
            self._depth_turns += 1
        elif lane is Lane.SPEECH_REPLAY:
            run = self.config.replay_last_guidance
        ticket = FrameTicket(self._frame_step, lane, now_ms, run)
        self._frame_step += 1
        return ticket

    def reset(self) -> None:
        self._frame_step = 0
        self._depth_turns = 0


@dataclass(frozen=True)
class LaneResult(Generic[T, R]):
    """Output of one lane job; ``value`` is ``None`` when the job failed."""

    lane: str
    payload: T
    value: R | None
    elapsed_ms: int
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class LatestOnlyWorker(Generic[T, R]):
    """Single background thread with one pending slot.

    Submitting while the worker is busy replaces the pending payload; the
    replaced payload is counted as dropped. Results produced after ``stop()``
    are discarded.
    """

    def __init__(
        self,
        name: str,
        work: Callable[[T], R],
        deliver: Callable[[LaneResult[T, R]], None],
    ) -> None:
        self.name = name
        self._work = work
        self._deliver = deliver
        self._cond = threading.Condition()
        self._pending: tuple[T] | None = None
        self._busy = False
        self._stopped = True
        self._thread: threading.Thread | None = None
        self.dropped = 0
        self.completed = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_busy(self) -> bool:
        with self._cond:
            return self._busy or self._pending is not None

    def start(self) -> None:
        with self._cond:
            if self.is_running:
                return
            self._stopped = False
            self._thread = threading.Thread(target=self._run, name=f"{self.name}-lane", daemon=True)
            self._thread.start()

    def stop(self, timeout_s: float = 2.0) -> None:
        with self._cond:
            self._stopped = True
            self._pending = None
            self._cond.notify_all()
        if self._thread is not None:
            self._thread.join(timeout=timeout_s)
            if self._thread.is_alive():
                LOGGER.warning("[PIPELINE] %s lane did not exit within %.2fs", self.name, timeout_s)
            self._thread = None

    def submit(self, payload: T) -> bool:
        """Hand ``payload`` to the worker; returns ``False`` when the worker is stopped."""

        with self._cond:
            if self._stopped:
                return False
            if self._pending is not None:
                self.dropped += 1
                LOGGER.debug("[PIPELINE] %s lane busy; dropped a pending frame", self.name)
            self._pending = (payload,)
            self._cond.notify()
            return True

    def _run(self) -> None:
        while True:
            with self._cond:
                while self._pending is None and not self._stopped:
                    self._cond.wait()
                if self._stopped:
                    return
                (payload,), self._pending = self._pending, None
                self._busy = True

            start = millis()
            value: R | None = None
            error: Exception | None = None
            try:
                value = self._work(payload)
            except Exception as exc:  # noqa: BLE001 - a failed cycle is reported as absent
                LOGGER.exception("[PIPELINE] %s lane failed", self.name)
                error = exc
            result = LaneResult(self.name, payload, value, millis() - start, error)

            with self._cond:
                self._busy = False
                if self._stopped:
                    return
                self.completed += 1
            self._deliver(result)
