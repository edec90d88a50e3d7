"""Runtime wiring perception providers to the guidance engine.

Provider work runs on latest-only lane workers. Their results are posted to an
inbox and applied to the engine by :meth:`GuidanceRuntime.run_pending`, which
the owner calls from a single thread alongside :meth:`submit_frame`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import queue
from typing import Any, Callable, Protocol, Sequence, Union

from core.logging import logger as LOGGER
from core.timing import millis
from navigation.engine import GuidanceEngine
from services.pipeline import FrameTicket, Lane, LaneResult, LatestOnlyWorker, PipelineConfig, PipelineStepper
from vision.depth import DepthMap
from vision.detections import DetectionBox, DetectionResult


class DetectionProvider(Protocol):
    """Object detector returning region-suffixed boxes for a frame."""

    def detect(self, frame: Any) -> Union[DetectionResult, Sequence[DetectionBox]]:
        """Run detection on ``frame``."""


class DepthProvider(Protocol):
    """Depth estimator returning a raw-code depth map for a frame."""

    def estimate_depth(self, frame: Any) -> DepthMap | None:
        """Run depth inference on ``frame``; ``None`` when inference failed."""


@dataclass(frozen=True)
class _FrameJob:
    frame: Any
    ticket: FrameTicket


class GuidanceRuntime:
    """Schedule frames across lanes and feed results into one engine."""

    def __init__(
        self,
        engine: GuidanceEngine,
        detector: DetectionProvider,
        depth_provider: DepthProvider,
        *,
        stepper: PipelineStepper | None = None,
        clock: Callable[[], int] = millis,
    ) -> None:
        self.engine = engine
        self.stepper = stepper or PipelineStepper(PipelineConfig.from_config())
        self._detector = detector
        self._depth_provider = depth_provider
        self._clock = clock
        self._inbox: queue.SimpleQueue[tuple[Lane, LaneResult]] = queue.SimpleQueue()
        self._detection_worker: LatestOnlyWorker[_FrameJob, DetectionResult] = LatestOnlyWorker(
            Lane.DETECTION.value,
            self._run_detection,
            lambda result: self._inbox.put((Lane.DETECTION, result)),
        )
        self._depth_worker: LatestOnlyWorker[_FrameJob, DepthMap | None] = LatestOnlyWorker(
            Lane.DEPTH.value,
            self._run_depth,
            lambda result: self._inbox.put((Lane.DEPTH, result)),
        )
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def dropped_frames(self) -> dict[str, int]:
        return {
            Lane.DETECTION.value: self._detection_worker.dropped,
            Lane.DEPTH.value: self._depth_worker.dropped,
        }

    def start(self) -> None:
        if self._running:
            return
        self._detection_worker.start()
        self._depth_worker.start()
        self._running = True
        LOGGER.info("[PIPELINE] Runtime started with lanes %s", [lane.value for lane in self.stepper.config.lanes])

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._detection_worker.stop()
        self._depth_worker.stop()
        while True:
            try:
                self._inbox.get_nowait()
            except queue.Empty:
                break
        self.engine.shutdown()
        LOGGER.info("[PIPELINE] Runtime stopped (dropped frames: %s)", self.dropped_frames)

    def submit_frame(self, frame: Any, now_ms: int | None = None) -> FrameTicket:
        """Route one camera frame to the lane selected by the stepper."""

        now = self._clock() if now_ms is None else now_ms
        ticket = self.stepper.next(now)
        if not self._running or not ticket.run:
            return ticket

        if ticket.lane is Lane.DETECTION:
            self._detection_worker.submit(_FrameJob(frame, ticket))
            self.engine.on_frame(frame, now)
        elif ticket.lane is Lane.DEPTH:
            self._depth_worker.submit(_FrameJob(frame, ticket))
        elif ticket.lane is Lane.SPEECH_REPLAY:
            self.engine.replay_last_guidance(now)
            self.engine.tick(now)
        return ticket

    def run_pending(self, now_ms: int | None = None) -> int:
        """Apply every finished lane result to the engine; returns how many were applied."""

        now = self._clock() if now_ms is None else now_ms
        applied = 0
        while True:
            try:
                lane, result = self._inbox.get_nowait()
            except queue.Empty:
                break
            if not self._running:
                continue
            if lane is Lane.DETECTION:
                self._apply_detection(result, now)
            else:
                self._apply_depth(result, now)
            applied += 1
        if self._running:
            self.engine.tick(now)
        return applied

    def _apply_detection(self, result: LaneResult[_FrameJob, DetectionResult], now: int) -> None:
        ticket = result.payload.ticket
        detections = result.value
        if detections is None:
            detections = DetectionResult(timestamp_ms=ticket.timestamp_ms, boxes=(), frame_id=ticket.frame_index)
        self.engine.on_detections(detections, ticket.frame_index, now)

    def _apply_depth(self, result: LaneResult[_FrameJob, DepthMap | None], now: int) -> None:
        ticket = result.payload.ticket
        self.engine.on_depth(
            result.value,
            now,
            inference_ms=result.elapsed_ms,
            lag_ms=now - ticket.timestamp_ms,
        )

    def _run_detection(self, job: _FrameJob) -> DetectionResult:
        start = millis()
        output = self._detector.detect(job.frame)
        if isinstance(output, DetectionResult):
            return output
        return DetectionResult(
            timestamp_ms=job.ticket.timestamp_ms,
            boxes=tuple(output),
            inference_ms=millis() - start,
            frame_id=job.ticket.frame_index,
        )

    def _run_depth(self, job: _FrameJob) -> DepthMap | None:
        depth_map = self._depth_provider.estimate_depth(job.frame)
        if depth_map is None:
            return None
        # Stamp the source frame time so staleness is judged against capture, not arrival.
        return replace(depth_map, timestamp_ms=job.ticket.timestamp_ms)
