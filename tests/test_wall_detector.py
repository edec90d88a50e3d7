"""Tests for passive wall detection and temporal smoothing."""

from __future__ import annotations

import numpy as np
import pytest

from vision.depth import DepthMap
from vision.detections import DetectionBox
from vision.walls import WallConfig, WallDetector, WallHistory


def _plane(meters: float) -> DepthMap:
    return DepthMap.from_meters(np.full((48, 64), meters))


def _checkerboard(near: float, far: float) -> DepthMap:
    rows, cols = np.indices((48, 64))
    return DepthMap.from_meters(np.where((rows + cols) % 2 == 0, near, far))


def test_history_majority_vote() -> None:
    history = WallHistory()
    for state in (True, False, True):
        history.record(state, None)
    assert history.smoothed()[0] is True

    history.clear()
    for state in (False, False, True):
        history.record(state, None)
    assert history.smoothed()[0] is False


def test_history_keeps_last_distance_when_undetected() -> None:
    history = WallHistory()
    history.record(True, 2.0)
    detected, distance = history.record(False, None)
    assert detected is False
    assert distance == 2.0


def test_flat_plane_scores_as_wall() -> None:
    best, candidates = WallDetector().scan(_plane(2.0))

    assert best is not None
    assert best.score == pytest.approx(3.0)
    assert best.distance_m == pytest.approx(2.0, rel=1e-4)
    assert len(candidates) == 3 * 3 * 5


def test_noisy_surface_is_rejected_by_variance() -> None:
    best, candidates = WallDetector().scan(_checkerboard(1.0, 3.0))
    assert best is None
    assert candidates == []


def test_surfaces_outside_distance_range_are_rejected() -> None:
    detector = WallDetector()
    assert detector.scan(_plane(0.2)) == (None, [])
    assert detector.scan(_plane(6.0)) == (None, [])


def test_floor_rows_are_excluded() -> None:
    detector = WallDetector(WallConfig(floor_exclude_height=0.5))
    _, candidates = detector.scan(_plane(2.0))

    assert candidates
    assert all(candidate.rect.top <= 0.5 for candidate in candidates)


def test_band_explained_by_detection_is_suppressed() -> None:
    detector = WallDetector()
    _, baseline = detector.scan(_plane(2.0))
    first = baseline[0].rect
    box = DetectionBox(first.left, first.top, first.right, first.bottom, "door-left", 0.8)

    _, candidates = detector.scan(_plane(2.0), [box])
    assert len(candidates) == len(baseline) - 1
    assert all(candidate.rect != first for candidate in candidates)


def test_detection_needs_two_of_three_cycles() -> None:
    detector = WallDetector()

    first = detector.update(_plane(2.0))
    assert first.raw_detected is True
    assert first.detected is False

    second = detector.update(_plane(2.0))
    assert second.detected is True
    assert second.distance_m == pytest.approx(2.0, rel=1e-4)
    region = second.region
    assert region is not None
    assert 0.0 <= region.left <= region.right <= 1.0
    assert 0.0 <= region.top <= region.bottom <= 1.0


def test_merged_region_covers_neighbouring_bands() -> None:
    detector = WallDetector()
    best, candidates = detector.scan(_plane(2.0))
    merged = detector.merge(best, candidates)

    assert merged.left == best.rect.left
    assert merged.right > best.rect.right
    assert merged.bottom > best.rect.bottom


def test_missing_depth_reports_no_wall_but_keeps_history() -> None:
    detector = WallDetector()
    detector.update(_plane(1.0))
    detector.update(_plane(1.0))
    assert detector.should_warn(100) is True

    state = detector.update(None)
    assert state.detected is False
    assert state.distance_m is None
    assert state.region is None
    assert detector.should_warn(1000) is False
    assert detector.history.states == (True, True)

    resumed = detector.update(_plane(1.0))
    assert resumed.detected is True
    assert detector.history.states == (True, True, True)


def test_close_wall_warning_respects_cooldown() -> None:
    detector = WallDetector()
    detector.update(_plane(1.0))
    assert detector.should_warn(500) is False

    detector.update(_plane(1.0))
    assert detector.should_warn(1000) is True
    assert detector.should_warn(1200) is False
    assert detector.should_warn(1400) is True


def test_far_wall_never_warns() -> None:
    detector = WallDetector()
    detector.update(_plane(2.0))
    detector.update(_plane(2.0))
    assert detector.state.is_far(1.5)
    assert detector.should_warn(1000) is False


def test_debug_text() -> None:
    detector = WallDetector()
    assert detector.debug_text() == "WALL no"
    detector.update(_plane(1.0))
    detector.update(_plane(1.0))
    assert detector.debug_text().startswith("WALL WARN s=3.00")

    detector.reset()
    assert detector.debug_text() == "WALL no"
    assert detector.history.states == ()


def test_wall_config_rejects_bad_counts() -> None:
    cfg = WallConfig.from_config({"walls": {"sub_bands": 0, "grid_rows": "x", "min_score": 1.1}})
    assert cfg.sub_bands == 5
    assert cfg.grid_rows == 3
    assert cfg.min_score == 1.1
