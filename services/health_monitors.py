"""Health monitors that turn sustained degradation into spoken warnings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from config import load_section
from core.logging import logger as LOGGER
from core.ops_models import HealthWarning
from core.timing import elapsed_since


SYSTEM_FAILURE_IDENTITY = "system_failure"
DARKNESS_IDENTITY = "darkness"
SYSTEM_FAILURE_MESSAGE = (
    "Warning: Navigation system may not be working properly. "
    "Please be extra careful and consider stopping."
)
DARKNESS_MESSAGE = (
    "Warning: Environment is too dark for safe navigation. "
    "Please stop and find better lighting or assistance."
)

_LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


@dataclass(frozen=True)
class HealthConfig:
    """Thresholds for the system-failure and darkness monitors."""

    depth_stale_ms: int = 5000
    detector_empty_streak: int = 10
    failure_threshold: int = 30
    failure_cooldown_ms: int = 10000
    failure_decay: int = 2
    darkness_brightness_threshold: float = 30.0
    darkness_frames: int = 5
    darkness_cooldown_ms: int = 5000
    brightness_sample_step: int = 4

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "HealthConfig":
        cfg = load_section("health") if config is None else dict(config.get("health") or {})
        return cls(
            depth_stale_ms=int(cfg.get("depth_stale_ms", 5000)),
            detector_empty_streak=int(cfg.get("detector_empty_streak", 10)),
            failure_threshold=max(1, int(cfg.get("failure_threshold", 30))),
            failure_cooldown_ms=int(cfg.get("failure_cooldown_ms", 10000)),
            failure_decay=max(0, int(cfg.get("failure_decay", 2))),
            darkness_brightness_threshold=float(cfg.get("darkness_brightness_threshold", 30.0)),
            darkness_frames=max(1, int(cfg.get("darkness_frames", 5))),
            darkness_cooldown_ms=int(cfg.get("darkness_cooldown_ms", 5000)),
            brightness_sample_step=max(1, int(cfg.get("brightness_sample_step", 4))),
        )


@dataclass(frozen=True)
class HealthState:
    """Point-in-time view of both monitors."""

    failure_counter: int
    last_failure_warning_ms: int | None
    depth_failing: bool
    detector_failing: bool
    darkness_counter: int
    last_brightness: float | None
    last_darkness_warning_ms: int | None


class SystemFailureMonitor:
    """Escalate combined depth and detector staleness into a warning."""

    def __init__(self, config: HealthConfig | None = None) -> None:
        self.config = config or HealthConfig()
        self.counter = 0
        self.last_warning_ms: int | None = None
        self.depth_failing = False
        self.detector_failing = False

    def check(
        self,
        depth_age_ms: int | None,
        empty_streak: int,
        now_ms: int,
    ) -> HealthWarning | None:
        """Evaluate one cycle; ``depth_age_ms`` is ``None`` when no depth map is available."""

        self.depth_failing = depth_age_ms is None or depth_age_ms > self.config.depth_stale_ms
        self.detector_failing = empty_streak > self.config.detector_empty_streak

        if not (self.depth_failing and self.detector_failing):
            if self.counter > 0:
                self.counter = max(0, self.counter - self.config.failure_decay)
            return None

        self.counter += 1
        if self.counter < self.config.failure_threshold:
            return None
        since_last = elapsed_since(now_ms, self.last_warning_ms)
        if since_last is not None and since_last <= self.config.failure_cooldown_ms:
            return None

        self.last_warning_ms = now_ms
        LOGGER.warning(
            "[HEALTH] System failure detected: depth failing=%s, detector failing=%s, counter=%d",
            self.depth_failing,
            self.detector_failing,
            self.counter,
        )
        return HealthWarning(SYSTEM_FAILURE_IDENTITY, SYSTEM_FAILURE_MESSAGE, now_ms)

    def reset(self) -> None:
        self.counter = 0
        self.last_warning_ms = None
        self.depth_failing = False
        self.detector_failing = False


def measure_brightness(frame: Any, step: int = 4) -> float:
    """Average luminance (0-255) over every ``step``-th pixel of ``frame``.

    ``frame`` is an ``HxWx3`` RGB (or ``HxWx4`` RGBA) array, or an ``HxW``
    grayscale array.
    """

    pixels = np.asarray(frame)
    if pixels.size == 0:
        return 0.0
    sampled = pixels[::step, ::step]
    if sampled.ndim == 2:
        luma = sampled.astype(np.float64)
    elif sampled.ndim == 3 and sampled.shape[2] >= 3:
        luma = sampled[..., :3].astype(np.float64) @ _LUMA_WEIGHTS
    else:
        raise ValueError(f"Unsupported frame shape {pixels.shape}")
    # Per-pixel luminance is truncated to an integer before averaging.
    return float(np.floor(luma).mean())


class DarknessMonitor:
    """Warn when the scene stays too dark for a run of frames."""

    def __init__(self, config: HealthConfig | None = None) -> None:
        self.config = config or HealthConfig()
        self.counter = 0
        self.last_brightness: float | None = None
        self.last_warning_ms: int | None = None

    @property
    def is_dark(self) -> bool:
        return (
            self.last_brightness is not None
            and self.last_brightness < self.config.darkness_brightness_threshold
        )

    def observe_frame(self, frame: Any, now_ms: int) -> HealthWarning | None:
        brightness = measure_brightness(frame, self.config.brightness_sample_step)
        return self.check(brightness, now_ms)

    def check(self, brightness: float, now_ms: int) -> HealthWarning | None:
        self.last_brightness = brightness
        if brightness >= self.config.darkness_brightness_threshold:
            self.counter = 0
            return None

        self.counter += 1
        if self.counter < self.config.darkness_frames:
            return None
        since_last = elapsed_since(now_ms, self.last_warning_ms)
        if since_last is not None and since_last <= self.config.darkness_cooldown_ms:
            return None

        self.last_warning_ms = now_ms
        LOGGER.warning(
            "[HEALTH] Dark environment detected: brightness=%.1f, threshold=%.1f",
            brightness,
            self.config.darkness_brightness_threshold,
        )
        return HealthWarning(DARKNESS_IDENTITY, DARKNESS_MESSAGE, now_ms)

    def reset(self) -> None:
        self.counter = 0
        self.last_brightness = None
        self.last_warning_ms = None


def health_state(failure: SystemFailureMonitor, darkness: DarknessMonitor) -> HealthState:
    return HealthState(
        failure_counter=failure.counter,
        last_failure_warning_ms=failure.last_warning_ms,
        depth_failing=failure.depth_failing,
        detector_failing=failure.detector_failing,
        darkness_counter=darkness.counter,
        last_brightness=darkness.last_brightness,
        last_darkness_warning_ms=darkness.last_warning_ms,
    )
