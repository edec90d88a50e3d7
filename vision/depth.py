"""Depth map snapshots and robust depth sampling.

Depth providers return a grid of raw sensor codes. Codes map to meters through
``meters = 1 / (raw * scale_factor)``; a code of zero (or below) carries no
distance information and is reported as ``None`` rather than infinity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from config import load_section
from vision.detections import DetectionBox
from vision.geometry import NormRect


DEPTH_SCALE_FACTOR = 0.0025
DEFAULT_PATCH_RADIUS = 2


@dataclass(frozen=True)
class RawDepth:
    """Unconverted depth code for one pixel."""

    value: float

    def to_meters(self, scale_factor: float = DEPTH_SCALE_FACTOR) -> float | None:
        if self.value <= 0.0:
            return None
        return 1.0 / (self.value * scale_factor)


def dequantize(values: Any, scale: float, zero_point: int) -> np.ndarray:
    """Convert quantized model output into raw depth codes."""

    quantized = np.asarray(values, dtype=np.float32)
    return (scale * (quantized - zero_point)).astype(np.float32)


@dataclass(frozen=True, eq=False)
class DepthMap:
    """Immutable snapshot of one depth inference."""

    codes: np.ndarray
    scale_factor: float = DEPTH_SCALE_FACTOR
    timestamp_ms: int = 0
    inference_ms: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        codes = np.array(self.codes, dtype=np.float32, copy=True)
        if codes.ndim != 2 or codes.size == 0:
            raise ValueError(f"Depth map must be a non-empty 2-D grid, got shape {codes.shape}")
        if self.scale_factor <= 0.0:
            raise ValueError("Depth scale factor must be positive")
        codes.setflags(write=False)
        object.__setattr__(self, "codes", codes)

    @classmethod
    def from_meters(
        cls,
        meters: Any,
        *,
        scale_factor: float = DEPTH_SCALE_FACTOR,
        timestamp_ms: int = 0,
    ) -> "DepthMap":
        """Build a map from distances in meters; non-positive distances become code 0."""

        grid = np.atleast_2d(np.asarray(meters, dtype=np.float64))
        codes = np.zeros_like(grid)
        valid = grid > 0.0
        codes[valid] = 1.0 / (grid[valid] * scale_factor)
        return cls(codes, scale_factor=scale_factor, timestamp_ms=timestamp_ms)

    @property
    def height(self) -> int:
        return int(self.codes.shape[0])

    @property
    def width(self) -> int:
        return int(self.codes.shape[1])

    def to_meters(self, raw: float) -> float | None:
        return RawDepth(float(raw)).to_meters(self.scale_factor)

    def pixel_for(self, nx: float, ny: float) -> tuple[int, int]:
        """Map a normalized coordinate to a ``(column, row)`` index."""

        return int(nx * (self.width - 1)), int(ny * (self.height - 1))

    def age_ms(self, now_ms: int) -> int:
        return now_ms - self.timestamp_ms

    def normalized(self) -> np.ndarray:
        """Per-frame min-max normalization of the raw codes to ``[0, 1]``."""

        low = float(self.codes.min())
        high = float(self.codes.max())
        span = max(1e-6, high - low)
        return (self.codes - low) / span


@dataclass(frozen=True)
class DepthSamplerConfig:
    """Configuration for depth sampling."""

    scale_factor: float = DEPTH_SCALE_FACTOR
    patch_radius: int = DEFAULT_PATCH_RADIUS

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "DepthSamplerConfig":
        depth_cfg = load_section("depth") if config is None else dict(config.get("depth") or {})
        return cls(
            scale_factor=float(depth_cfg.get("scale_factor", DEPTH_SCALE_FACTOR)),
            patch_radius=max(0, int(depth_cfg.get("patch_radius", DEFAULT_PATCH_RADIUS))),
        )


class DepthSampler:
    """Point, patch and region queries against a depth snapshot."""

    def __init__(self, config: DepthSamplerConfig | None = None) -> None:
        self.config = config or DepthSamplerConfig()

    def to_meters(self, raw: float) -> float | None:
        return RawDepth(float(raw)).to_meters(self.config.scale_factor)

    def median_patch(
        self,
        depth_map: DepthMap,
        cx: int,
        cy: int,
        radius: int | None = None,
    ) -> float | None:
        """Median raw code of the in-bounds ``(2r+1)^2`` window around ``(cx, cy)``."""

        r = self.config.patch_radius if radius is None else radius
        rows = slice(max(0, cy - r), max(0, cy + r + 1))
        cols = slice(max(0, cx - r), max(0, cx + r + 1))
        window = depth_map.codes[rows, cols]
        if window.size == 0:
            return None
        ordered = np.sort(window, axis=None)
        return float(ordered[ordered.size // 2])

    def point_depth(self, depth_map: DepthMap, nx: float, ny: float) -> float | None:
        """Patch-median distance in meters at a normalized point."""

        cx, cy = depth_map.pixel_for(nx, ny)
        if not (0 <= cx < depth_map.width and 0 <= cy < depth_map.height):
            return None
        raw = self.median_patch(depth_map, cx, cy)
        if raw is None:
            return None
        return RawDepth(raw).to_meters(depth_map.scale_factor)

    def box_depth(self, box: DetectionBox, depth_map: DepthMap | None) -> float | None:
        if depth_map is None:
            return None
        return self.point_depth(depth_map, *box.center)

    def region_depth(self, rect: NormRect, depth_map: DepthMap) -> float | None:
        """Approximate distance of a region from its centre patch."""

        return self.point_depth(depth_map, *rect.center)

    def nearest_in_region(
        self,
        rect: NormRect,
        depth_map: DepthMap,
        samples: int = 8,
    ) -> float | None:
        """Nearest distance over a coarse ``samples x samples`` grid of valid codes."""

        x_start, y_start = depth_map.pixel_for(rect.left, rect.top)
        x_end, y_end = depth_map.pixel_for(rect.right, rect.bottom)
        x_end = max(x_end, x_start + 1)
        y_end = max(y_end, y_start + 1)
        step_x = max(1, (x_end - x_start) // samples)
        step_y = max(1, (y_end - y_start) // samples)

        rows = np.arange(y_start, min(y_end, depth_map.height - 1) + 1, step_y)
        cols = np.arange(x_start, min(x_end, depth_map.width - 1) + 1, step_x)
        if rows.size == 0 or cols.size == 0:
            return None
        grid = depth_map.codes[np.ix_(rows, cols)]
        valid = grid[grid > 0.0]
        if valid.size == 0:
            return None
        # Largest code is the nearest surface.
        return RawDepth(float(valid.max())).to_meters(depth_map.scale_factor)
