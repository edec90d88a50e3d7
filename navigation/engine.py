"""Guidance engine: the single owner of all per-session navigation state.

Every mutation happens through the ``on_*`` methods below, which the runtime
calls from one serialization point. Providers and speech backends never touch
tracks, histories or cooldowns directly.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Sequence

from core.logging import logger
from core.ops_models import HealthSnapshot, HealthStatus, HealthWarning
from interaction.speech import SpeechArbiter, SpeechConfig, SpeechStatus
from interaction.speech_hal import SpeechEngine, create_speech_engine
from navigation.display import DisplaySnapshot, HudTimings, format_hud
from navigation.guidance import GuidanceConfig, GuidanceDecision, GuidanceGenerator
from services.health_monitors import DarknessMonitor, HealthConfig, SystemFailureMonitor, health_state
from vision.depth import DepthMap, DepthSampler, DepthSamplerConfig
from vision.detections import DetectionBox, DetectionResult
from vision.regions import RegionOccupancy
from vision.tracking import ObjectTracker, TrackingConfig
from vision.walls import WallConfig, WallDetector, WallState


DisplayListener = Callable[[DisplaySnapshot], None]


@dataclass(frozen=True)
class CycleOutcome:
    """What one detection cycle decided and whether it reached the speaker."""

    decision: GuidanceDecision
    announced: bool = False
    speech: SpeechStatus | None = None


class GuidanceEngine:
    """Fuse detections, depth and brightness into debounced spoken guidance."""

    def __init__(
        self,
        *,
        sampler: DepthSampler | None = None,
        tracker: ObjectTracker | None = None,
        walls: WallDetector | None = None,
        generator: GuidanceGenerator | None = None,
        arbiter: SpeechArbiter | None = None,
        speech_engine: SpeechEngine | None = None,
        speech_config: SpeechConfig | None = None,
        failure_monitor: SystemFailureMonitor | None = None,
        darkness_monitor: DarknessMonitor | None = None,
    ) -> None:
        self._now_ms = 0
        self.sampler = sampler or DepthSampler()
        self.tracker = tracker or ObjectTracker(sampler=self.sampler)
        self.walls = walls or WallDetector(sampler=self.sampler)
        self.generator = generator or GuidanceGenerator(sampler=self.sampler)
        if arbiter is None:
            speech_config = speech_config or SpeechConfig()
            arbiter = SpeechArbiter(
                speech_engine or create_speech_engine(speech_config.backend),
                speech_config,
                clock=self.current_time_ms,
            )
        self.arbiter = arbiter
        self.failure_monitor = failure_monitor or SystemFailureMonitor()
        self.darkness_monitor = darkness_monitor or DarknessMonitor()

        self._depth_map: DepthMap | None = None
        self._depth_timestamp_ms: int | None = None
        self._detections: tuple[DetectionBox, ...] = ()
        self._empty_streak = 0
        self._last_guidance: str | None = None
        self._timings = HudTimings()
        self._display_listeners: list[DisplayListener] = []
        self._shut_down = False

    @classmethod
    def from_config(
        cls,
        config: dict[str, Any] | None = None,
        speech_engine: SpeechEngine | None = None,
    ) -> "GuidanceEngine":
        """Build an engine whose components read their sections of ``config``.

        With ``config=None`` every component loads its section through the
        shared :class:`config.ConfigController`.
        """

        sampler = DepthSampler(DepthSamplerConfig.from_config(config))
        health_config = HealthConfig.from_config(config)
        return cls(
            sampler=sampler,
            tracker=ObjectTracker(TrackingConfig.from_config(config), sampler),
            walls=WallDetector(WallConfig.from_config(config), sampler),
            generator=GuidanceGenerator(GuidanceConfig.from_config(config), sampler),
            speech_engine=speech_engine,
            speech_config=SpeechConfig.from_config(config),
            failure_monitor=SystemFailureMonitor(health_config),
            darkness_monitor=DarknessMonitor(health_config),
        )

    def current_time_ms(self) -> int:
        """Latest timestamp handed to the engine."""

        return self._now_ms

    @property
    def depth_map(self) -> DepthMap | None:
        return self._depth_map

    @property
    def empty_streak(self) -> int:
        return self._empty_streak

    @property
    def last_guidance(self) -> str | None:
        return self._last_guidance

    @property
    def wall_state(self) -> WallState:
        return self.walls.state

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down

    def depth_age_ms(self, now_ms: int) -> int | None:
        """Age of the current depth snapshot, ``None`` when depth is absent."""

        if self._depth_timestamp_ms is None:
            return None
        return now_ms - self._depth_timestamp_ms

    def register_display_listener(self, listener: DisplayListener) -> None:
        self._display_listeners.append(listener)

    def unregister_display_listener(self, listener: DisplayListener) -> None:
        if listener in self._display_listeners:
            self._display_listeners.remove(listener)

    def on_depth(
        self,
        depth_map: DepthMap | None,
        now_ms: int,
        *,
        inference_ms: int | None = None,
        lag_ms: int | None = None,
    ) -> None:
        """Publish a new depth snapshot; ``None`` marks depth as absent."""

        if self._shut_down:
            return
        self._advance(now_ms)
        self._depth_map = depth_map
        if depth_map is None:
            self._depth_timestamp_ms = None
        else:
            self._depth_timestamp_ms = depth_map.timestamp_ms if depth_map.timestamp_ms > 0 else now_ms
        if inference_ms is None and depth_map is not None:
            inference_ms = depth_map.inference_ms
        if inference_ms is not None:
            self._timings = replace(self._timings, depth_ms=inference_ms)
        if lag_ms is not None:
            self._timings = replace(self._timings, lag_ms=lag_ms)
        if depth_map is None:
            logger.debug("[GUIDANCE] Depth absent at %d ms", now_ms)

    def on_detections(
        self,
        result: DetectionResult | Sequence[DetectionBox],
        frame_index: int,
        now_ms: int,
    ) -> CycleOutcome | None:
        """Run one detection cycle."""

        if self._shut_down:
            return None
        self._advance(now_ms)
        if isinstance(result, DetectionResult):
            boxes = tuple(result.boxes)
            self._timings = replace(self._timings, detection_ms=result.inference_ms)
        else:
            boxes = tuple(result)
        self._detections = boxes
        self._refresh_depth_age(now_ms)

        if not boxes:
            outcome = self._empty_cycle(now_ms)
        else:
            outcome = self._detection_cycle(boxes, frame_index, now_ms)
        self._publish_display(now_ms)
        return outcome

    def on_frame(self, frame: Any, now_ms: int) -> SpeechStatus | None:
        """Sample frame brightness for the darkness monitor."""

        if self._shut_down:
            return None
        self._advance(now_ms)
        return self._speak_warning(self.darkness_monitor.observe_frame(frame, now_ms))

    def on_brightness(self, brightness: float, now_ms: int) -> SpeechStatus | None:
        if self._shut_down:
            return None
        self._advance(now_ms)
        return self._speak_warning(self.darkness_monitor.check(brightness, now_ms))

    def replay_last_guidance(self, now_ms: int) -> SpeechStatus | None:
        """Offer the last spoken guidance to the arbiter again."""

        if self._shut_down or self._last_guidance is None:
            return None
        self._advance(now_ms)
        return self.arbiter.speak(self._last_guidance, now_ms=now_ms)

    def tick(self, now_ms: int) -> SpeechStatus | None:
        """Let the arbiter drain its queue once cooldowns allow."""

        if self._shut_down:
            return None
        self._advance(now_ms)
        return self.arbiter.pump(now_ms)

    def shutdown(self) -> None:
        if self._shut_down:
            return
        self._shut_down = True
        self.arbiter.shutdown()
        self._display_listeners.clear()
        logger.info("[GUIDANCE] Engine shut down")

    def health_snapshot(self, now_ms: int) -> HealthSnapshot:
        failure = self.failure_monitor
        darkness = self.darkness_monitor
        depth_age = self.depth_age_ms(now_ms)
        depth_stale = depth_age is None or depth_age > failure.config.depth_stale_ms
        detector_stale = self._empty_streak > failure.config.detector_empty_streak

        if depth_stale and detector_stale:
            status = HealthStatus.FAILING
            summary = "Depth and detections unavailable"
        elif depth_stale or detector_stale or darkness.is_dark:
            status = HealthStatus.DEGRADED
            reasons = [
                name
                for name, flag in (
                    ("depth stale", depth_stale),
                    ("no detections", detector_stale),
                    ("too dark", darkness.is_dark),
                )
                if flag
            ]
            summary = ", ".join(reasons).capitalize()
        else:
            status = HealthStatus.OK
            summary = "Perception healthy"

        state = health_state(failure, darkness)
        details: dict[str, str | float | int] = {
            "empty_streak": self._empty_streak,
            "failure_counter": state.failure_counter,
            "darkness_counter": state.darkness_counter,
            "tracks": len(self.tracker),
        }
        if depth_age is not None:
            details["depth_age_ms"] = depth_age
        if state.last_brightness is not None:
            details["brightness"] = round(state.last_brightness, 1)
        if state.last_failure_warning_ms is not None:
            details["last_failure_warning_ms"] = state.last_failure_warning_ms
        return HealthSnapshot(timestamp_ms=now_ms, status=status, summary=summary, details=details)

    def display_snapshot(self, now_ms: int) -> DisplaySnapshot:
        self._refresh_depth_age(now_ms)
        wall = self.walls.state
        return DisplaySnapshot(
            timestamp_ms=now_ms,
            detections=self._detections,
            wall_region=wall.region,
            wall_debug_text=self.walls.debug_text(),
            hud_text=format_hud(
                self._timings,
                wall,
                self.darkness_monitor.last_brightness,
                self.darkness_monitor.config.darkness_brightness_threshold,
            ),
            status=self._timings.worst_label(),
        )

    def _detection_cycle(
        self,
        boxes: tuple[DetectionBox, ...],
        frame_index: int,
        now_ms: int,
    ) -> CycleOutcome:
        self._empty_streak = 0
        depth_map = self._depth_map
        occupancy = RegionOccupancy.from_boxes(boxes)
        decision = self.generator.evaluate(boxes, depth_map, self.walls.state, occupancy)

        self._update_walls(depth_map, boxes, now_ms)
        announce = self.tracker.announce_any(boxes, frame_index, depth_map)
        self._speak_warning(self.failure_monitor.check(self.depth_age_ms(now_ms), self._empty_streak, now_ms))

        text = decision.text
        if text is None or text == self._last_guidance or not announce:
            return CycleOutcome(decision, announced=False)
        self._last_guidance = text
        status = self.arbiter.speak(text, boxes[0].identity, now_ms)
        return CycleOutcome(decision, announced=True, speech=status)

    def _empty_cycle(self, now_ms: int) -> CycleOutcome:
        self._empty_streak += 1
        depth_map = self._depth_map
        self._speak_warning(self.failure_monitor.check(self.depth_age_ms(now_ms), self._empty_streak, now_ms))

        if self._empty_streak < self.generator.config.required_empty_streak:
            return CycleOutcome(GuidanceDecision("empty_debounce", None))

        self._update_walls(depth_map, (), now_ms)
        text = self.generator.path_clear(depth_map, self.walls.state)
        decision = GuidanceDecision("path_clear", text)
        if text is None or text == self._last_guidance:
            return CycleOutcome(decision, announced=False)
        self._last_guidance = text
        status = self.arbiter.speak(text, "path_clear", now_ms)
        return CycleOutcome(decision, announced=True, speech=status)

    def _update_walls(
        self,
        depth_map: DepthMap | None,
        boxes: Sequence[DetectionBox],
        now_ms: int,
    ) -> None:
        state = self.walls.update(depth_map, boxes)
        if depth_map is None:
            return
        if self.walls.should_warn(now_ms):
            self.arbiter.speak(self.generator.wall_announcement(state), "wall", now_ms)

    def _speak_warning(self, warning: HealthWarning | None) -> SpeechStatus | None:
        if warning is None:
            return None
        return self.arbiter.speak(
            warning.message,
            warning.identity,
            warning.timestamp_ms,
            priority=warning.priority,
        )

    def _refresh_depth_age(self, now_ms: int) -> None:
        self._timings = replace(self._timings, depth_age_ms=self.depth_age_ms(now_ms))

    def _publish_display(self, now_ms: int) -> None:
        if not self._display_listeners:
            return
        snapshot = self.display_snapshot(now_ms)
        for listener in list(self._display_listeners):
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001 - display problems must not stop guidance
                logger.exception("[GUIDANCE] Display listener %r failed", listener)

    def _advance(self, now_ms: int) -> None:
        if now_ms > self._now_ms:
            self._now_ms = now_ms
