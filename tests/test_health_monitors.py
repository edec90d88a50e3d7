"""Tests for system-failure and darkness monitors."""

from __future__ import annotations

import numpy as np

from services.health_monitors import (
    DARKNESS_IDENTITY,
    SYSTEM_FAILURE_IDENTITY,
    SYSTEM_FAILURE_MESSAGE,
    DarknessMonitor,
    HealthConfig,
    SystemFailureMonitor,
    health_state,
    measure_brightness,
)


def _run_failing_cycles(monitor: SystemFailureMonitor, cycles: int, start_ms: int = 6000) -> list[int]:
    warned_at = []
    for cycle in range(cycles):
        now_ms = start_ms + cycle * 100
        warning = monitor.check(None, 12 + cycle, now_ms)
        if warning is not None:
            warned_at.append(now_ms)
    return warned_at


def test_sustained_failure_warns_exactly_once() -> None:
    monitor = SystemFailureMonitor()
    warned_at = _run_failing_cycles(monitor, 30)

    assert warned_at == [6000 + 29 * 100]
    assert monitor.counter == 30


def test_failure_warning_respects_cooldown() -> None:
    monitor = SystemFailureMonitor()
    # 130 cycles of 100 ms: the first warning lands at 8900 ms and the
    # cooldown keeps the channel quiet through 18900 ms.
    warned_at = _run_failing_cycles(monitor, 130)
    assert warned_at == [8900]

    warned_at = _run_failing_cycles(monitor, 1, start_ms=19000)
    assert warned_at == [19000]


def test_failure_warning_payload() -> None:
    monitor = SystemFailureMonitor(HealthConfig(failure_threshold=1))
    warning = monitor.check(None, 11, 1000)

    assert warning is not None
    assert warning.identity == SYSTEM_FAILURE_IDENTITY
    assert warning.message == SYSTEM_FAILURE_MESSAGE
    assert warning.priority == "high"
    assert warning.timestamp_ms == 1000


def test_either_source_alone_is_not_a_failure() -> None:
    monitor = SystemFailureMonitor(HealthConfig(failure_threshold=1))

    assert monitor.check(None, 3, 1000) is None
    assert monitor.depth_failing and not monitor.detector_failing
    assert monitor.check(100, 50, 1100) is None
    assert monitor.detector_failing and not monitor.depth_failing
    assert monitor.check(6000, 10, 1200) is None


def test_counter_decays_when_healthy() -> None:
    monitor = SystemFailureMonitor()
    _run_failing_cycles(monitor, 5)
    assert monitor.counter == 5

    counters = []
    for cycle in range(4):
        monitor.check(100, 0, 20000 + cycle)
        counters.append(monitor.counter)
    assert counters == [3, 1, 0, 0]


def test_stale_depth_counts_as_failing() -> None:
    monitor = SystemFailureMonitor()
    monitor.check(5001, 11, 1000)
    assert monitor.depth_failing is True
    monitor.check(5000, 11, 1100)
    assert monitor.depth_failing is False


def test_darkness_warns_after_consecutive_dark_frames() -> None:
    monitor = DarknessMonitor()
    warnings = [monitor.check(10.0, 100 * n) for n in range(1, 6)]

    assert warnings[:4] == [None, None, None, None]
    assert warnings[4] is not None
    assert warnings[4].identity == DARKNESS_IDENTITY
    assert monitor.is_dark


def test_bright_frame_resets_darkness_run() -> None:
    monitor = DarknessMonitor()
    for n in range(4):
        monitor.check(10.0, n * 100)
    monitor.check(120.0, 400)
    assert monitor.counter == 0
    assert monitor.check(10.0, 500) is None


def test_darkness_warning_cooldown() -> None:
    monitor = DarknessMonitor()
    warned_at = []
    for n in range(1, 80):
        now_ms = n * 100
        if monitor.check(5.0, now_ms) is not None:
            warned_at.append(now_ms)
    assert warned_at == [500, 5600]


def test_measure_brightness_grayscale_and_rgb() -> None:
    assert measure_brightness(np.full((8, 8), 42, dtype=np.uint8)) == 42.0

    rgb = np.zeros((8, 8, 3), dtype=np.uint8)
    rgb[..., 1] = 100
    # 0.587 * 100 truncates to 58 per pixel.
    assert measure_brightness(rgb) == 58.0
    assert measure_brightness(np.zeros((0, 0, 3))) == 0.0


def test_observe_frame_uses_sampled_luminance() -> None:
    monitor = DarknessMonitor()
    frame = np.full((16, 16, 3), 4, dtype=np.uint8)
    for n in range(5):
        warning = monitor.observe_frame(frame, n * 100)
    assert warning is not None
    assert monitor.last_brightness is not None and monitor.last_brightness < 30.0


def test_health_state_snapshot() -> None:
    failure = SystemFailureMonitor()
    darkness = DarknessMonitor()
    failure.check(None, 20, 100)
    darkness.check(12.0, 100)

    state = health_state(failure, darkness)
    assert state.failure_counter == 1
    assert state.depth_failing and state.detector_failing
    assert state.darkness_counter == 1
    assert state.last_brightness == 12.0
