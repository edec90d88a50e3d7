"""Tests for depth maps and depth sampling."""

from __future__ import annotations

import numpy as np
import pytest

from vision.depth import DepthMap, DepthSampler, DepthSamplerConfig, RawDepth, dequantize
from vision.detections import DetectionBox
from vision.geometry import NormRect


def _grid_map(values: np.ndarray) -> DepthMap:
    return DepthMap(values.astype(np.float32))


def test_raw_depth_converts_codes_to_meters() -> None:
    assert RawDepth(400.0).to_meters() == pytest.approx(1.0)
    assert RawDepth(200.0).to_meters(0.005) == pytest.approx(1.0)


def test_raw_depth_without_signal_has_no_distance() -> None:
    assert RawDepth(0.0).to_meters() is None
    assert RawDepth(-3.0).to_meters() is None


def test_dequantize_applies_scale_and_zero_point() -> None:
    codes = dequantize([10, 20, 30], scale=0.5, zero_point=10)
    assert codes.tolist() == [0.0, 5.0, 10.0]


def test_depth_map_is_a_read_only_snapshot() -> None:
    source = np.full((4, 4), 100.0)
    depth_map = DepthMap(source)
    source[0, 0] = 1.0

    assert depth_map.codes[0, 0] == 100.0
    with pytest.raises(ValueError):
        depth_map.codes[0, 0] = 5.0


def test_depth_map_rejects_bad_shapes_and_scales() -> None:
    with pytest.raises(ValueError):
        DepthMap(np.zeros(5))
    with pytest.raises(ValueError):
        DepthMap(np.zeros((2, 2)), scale_factor=0.0)


def test_from_meters_round_trips_point_depth() -> None:
    depth_map = DepthMap.from_meters(np.full((48, 64), 2.0))
    assert DepthSampler().point_depth(depth_map, 0.5, 0.5) == pytest.approx(2.0, rel=1e-4)


def test_median_patch_uses_upper_median_of_window() -> None:
    sampler = DepthSampler()
    depth_map = _grid_map(np.arange(1, 26, dtype=np.float32).reshape(5, 5))

    assert sampler.median_patch(depth_map, 2, 2, radius=2) == 13.0
    assert sampler.median_patch(depth_map, 2, 2, radius=0) == 13.0


def test_median_patch_clips_window_at_edges() -> None:
    sampler = DepthSampler()
    depth_map = _grid_map(np.arange(1, 26, dtype=np.float32).reshape(5, 5))

    # Window rows 0-2, cols 0-2: 1 2 3 6 7 8 11 12 13.
    assert sampler.median_patch(depth_map, 0, 0, radius=2) == 7.0


def test_median_patch_outside_map_is_absent() -> None:
    sampler = DepthSampler()
    depth_map = _grid_map(np.ones((5, 5)))

    assert sampler.median_patch(depth_map, 100, 100, radius=2) is None


def test_median_patch_ignores_a_single_outlier() -> None:
    values = np.full((9, 9), 200.0)
    values[4, 4] = 4000.0
    sampler = DepthSampler()

    assert sampler.point_depth(_grid_map(values), 0.5, 0.5) == pytest.approx(2.0, rel=1e-4)


def test_box_depth_without_map_is_absent() -> None:
    box = DetectionBox(0.4, 0.4, 0.6, 0.6, "chair-center", 0.9)
    assert DepthSampler().box_depth(box, None) is None


def test_nearest_in_region_reports_closest_surface() -> None:
    meters = np.full((48, 64), 3.0)
    meters[35:40, 28:34] = 0.9
    depth_map = DepthMap.from_meters(meters)

    nearest = DepthSampler().nearest_in_region(NormRect(0.33, 0.60, 0.66, 0.95), depth_map, samples=32)
    assert nearest == pytest.approx(0.9, rel=1e-3)


def test_nearest_in_region_skips_invalid_codes() -> None:
    meters = np.zeros((48, 64))
    depth_map = DepthMap.from_meters(meters)

    assert DepthSampler().nearest_in_region(NormRect(0.33, 0.60, 0.66, 0.95), depth_map) is None


def test_sampler_config_reads_depth_section() -> None:
    cfg = DepthSamplerConfig.from_config({"depth": {"scale_factor": 0.005, "patch_radius": -1}})
    assert cfg.scale_factor == 0.005
    assert cfg.patch_radius == 0
