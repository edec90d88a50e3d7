"""Passive planar-obstacle detection from depth statistics.

Bounding-box detectors are trained on discrete objects and miss walls. This
module scans the depth map on a coarse grid split into narrow vertical bands,
keeps bands that are flat, upright, inside a plausible distance range and not
already explained by a detection, then smooths the per-cycle verdict with a
majority vote over the last few cycles.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any, Iterable

import numpy as np

from config import load_section
from core.logging import logger
from vision.depth import DepthMap, DepthSampler, RawDepth
from vision.detections import DetectionBox
from vision.geometry import NormRect, bounding_rect


@dataclass(frozen=True)
class WallConfig:
    """Configuration values for the wall detector."""

    grid_rows: int = 3
    grid_cols: int = 3
    sub_bands: int = 5
    floor_exclude_height: float = 0.8
    min_distance_m: float = 0.3
    max_distance_m: float = 4.0
    depth_var_threshold: float = 0.04
    aspect_ratio_min: float = 1.0
    iou_suppress_threshold: float = 0.10
    optimal_distance_min_m: float = 0.5
    optimal_distance_max_m: float = 3.0
    min_score: float = 0.8
    merge_tolerance: float = 0.15
    merge_score_ratio: float = 0.8
    state_history_size: int = 3
    distance_history_size: int = 1
    consensus_votes: int = 2
    warning_distance_m: float = 1.5
    speech_cooldown_ms: int = 300

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "WallConfig":
        cfg = load_section("walls") if config is None else dict(config.get("walls") or {})
        defaults = cls()
        values: dict[str, Any] = {}
        for name in defaults.__dataclass_fields__:
            default = getattr(defaults, name)
            raw = cfg.get(name, default)
            try:
                values[name] = type(default)(raw)
            except (TypeError, ValueError):
                logger.warning("[WALL] Invalid value for walls.%s=%r; using %r", name, raw, default)
                values[name] = default
        for name in ("grid_rows", "grid_cols", "sub_bands", "state_history_size", "distance_history_size"):
            if values[name] < 1:
                logger.warning("[WALL] walls.%s must be >= 1; using %r", name, getattr(defaults, name))
                values[name] = getattr(defaults, name)
        return cls(**values)


@dataclass(frozen=True)
class WallRegion:
    """Scored wall candidate for one depth cycle."""

    rect: NormRect
    score: float
    variance: float
    aspect_ratio: float
    mean_depth: float
    distance_m: float | None = None


@dataclass(frozen=True)
class WallState:
    """Publicly visible, temporally smoothed wall state."""

    detected: bool = False
    distance_m: float | None = None
    region: NormRect | None = None
    raw_detected: bool = False
    consensus: int = 0
    best: WallRegion | None = None

    def is_close(self, threshold_m: float) -> bool:
        return self.detected and self.distance_m is not None and self.distance_m < threshold_m

    def is_far(self, threshold_m: float) -> bool:
        return self.detected and self.distance_m is not None and self.distance_m >= threshold_m


class WallHistory:
    """Bounded boolean and distance histories with majority-vote smoothing."""

    def __init__(self, state_capacity: int = 3, distance_capacity: int = 1, votes: int = 2) -> None:
        self._states: deque[bool] = deque(maxlen=max(1, state_capacity))
        self._distances: deque[float] = deque(maxlen=max(1, distance_capacity))
        self._votes = votes

    @property
    def states(self) -> tuple[bool, ...]:
        return tuple(self._states)

    @property
    def consensus(self) -> int:
        return sum(1 for state in self._states if state)

    def record(self, detected: bool, distance_m: float | None) -> tuple[bool, float | None]:
        self._states.append(detected)
        if distance_m is not None:
            self._distances.append(distance_m)
        return self.smoothed()

    def smoothed(self) -> tuple[bool, float | None]:
        detected = self.consensus >= self._votes
        distance = sum(self._distances) / len(self._distances) if self._distances else None
        return detected, distance

    def clear(self) -> None:
        self._states.clear()
        self._distances.clear()


def _distance_score(config: WallConfig, mean_m: float | None) -> float:
    if mean_m is None:
        return 0.0
    if config.optimal_distance_min_m <= mean_m <= config.optimal_distance_max_m:
        return 1.0
    if mean_m < config.optimal_distance_min_m:
        return 0.7
    return 0.5


def _consistency_score(spread_m: float | None) -> float:
    if spread_m is None:
        return 0.0
    if spread_m < 0.3:
        return 1.0
    if spread_m < 0.6:
        return 0.7
    return 0.2


class WallDetector:
    """Scan depth maps for large flat regions that detections did not explain."""

    def __init__(
        self,
        config: WallConfig | None = None,
        sampler: DepthSampler | None = None,
    ) -> None:
        self.config = config or WallConfig()
        self._sampler = sampler or DepthSampler()
        self._history = WallHistory(
            state_capacity=self.config.state_history_size,
            distance_capacity=self.config.distance_history_size,
            votes=self.config.consensus_votes,
        )
        self._state = WallState()
        self._last_best: WallRegion | None = None
        self._last_spoken_ms: int | None = None

    @property
    def state(self) -> WallState:
        return self._state

    @property
    def history(self) -> WallHistory:
        return self._history

    def update(
        self,
        depth_map: DepthMap | None,
        detections: Iterable[DetectionBox] = (),
    ) -> WallState:
        """Run one detection cycle and fold the verdict into the smoothed state."""

        if depth_map is None:
            # No map, no verdict; the history is kept for when depth resumes.
            self._state = WallState(consensus=self._history.consensus, best=self._last_best)
            return self._state

        best, candidates = self.scan(depth_map, detections)
        region: NormRect | None = None
        if best is not None and best.score >= self.config.min_score:
            region = self.merge(best, candidates)
        if best is not None:
            self._last_best = best

        distance = self._sampler.region_depth(region, depth_map) if region is not None else None
        detected, smoothed_distance = self._history.record(region is not None, distance)
        self._state = WallState(
            detected=detected,
            distance_m=smoothed_distance,
            region=region,
            raw_detected=region is not None,
            consensus=self._history.consensus,
            best=self._last_best,
        )
        logger.debug(
            "[WALL] raw=%s smoothed=%s history=%s consensus=%d/%d score=%s meters=%s",
            region is not None,
            detected,
            list(self._history.states),
            self._history.consensus,
            self.config.state_history_size,
            f"{best.score:.3f}" if best is not None else "n/a",
            f"{smoothed_distance:.2f}" if smoothed_distance is not None else "n/a",
        )
        return self._state

    def scan(
        self,
        depth_map: DepthMap,
        detections: Iterable[DetectionBox] = (),
    ) -> tuple[WallRegion | None, list[WallRegion]]:
        """Return the best-scoring band and every band at or above the minimum score."""

        cfg = self.config
        codes = depth_map.codes
        normalized = depth_map.normalized()
        height, width = depth_map.height, depth_map.width
        detection_rects = [box.rect for box in detections]

        best: WallRegion | None = None
        candidates: list[WallRegion] = []

        for row in range(cfg.grid_rows):
            y_start_n = row / cfg.grid_rows
            y_end_n = (row + 1) / cfg.grid_rows
            if y_start_n > cfg.floor_exclude_height:
                continue
            y_start = int(y_start_n * (height - 1))
            y_end = max(int(y_end_n * (height - 1)), y_start + 1)

            for col in range(cfg.grid_cols):
                x_start_n = col / cfg.grid_cols
                x_end_n = (col + 1) / cfg.grid_cols
                cell_width = x_end_n - x_start_n

                for band in range(cfg.sub_bands):
                    bx_start_n = x_start_n + (band / cfg.sub_bands) * cell_width
                    bx_end_n = x_start_n + ((band + 1) / cfg.sub_bands) * cell_width
                    x_start = int(bx_start_n * (width - 1))
                    x_end = max(int(bx_end_n * (width - 1)), x_start + 1)

                    window = (slice(y_start, y_end + 1), slice(x_start, x_end + 1))
                    band_norm = normalized[window]
                    if band_norm.size == 0:
                        continue
                    mean = float(band_norm.mean(dtype=np.float64))
                    variance = float(np.square(band_norm, dtype=np.float64).mean()) - mean * mean

                    band_raw = codes[window]
                    valid = band_raw[band_raw > 0.0]
                    nearest_m = farthest_m = None
                    if valid.size:
                        nearest_m = RawDepth(float(valid.max())).to_meters(depth_map.scale_factor)
                        farthest_m = RawDepth(float(valid.min())).to_meters(depth_map.scale_factor)

                    if nearest_m is not None and nearest_m < cfg.min_distance_m:
                        continue
                    if farthest_m is not None and farthest_m > cfg.max_distance_m:
                        continue

                    rect = NormRect(bx_start_n, y_start_n, min(1.0, bx_end_n), min(1.0, y_end_n))
                    aspect = rect.aspect_ratio
                    if variance > cfg.depth_var_threshold:
                        continue
                    if aspect < cfg.aspect_ratio_min:
                        continue
                    if any(rect.iou(other) > cfg.iou_suppress_threshold for other in detection_rects):
                        continue

                    mean_m = spread_m = None
                    if nearest_m is not None and farthest_m is not None:
                        mean_m = (nearest_m + farthest_m) / 2.0
                        spread_m = farthest_m - nearest_m
                    flatness = max(0.0, 1.0 - variance * 10.0)
                    score = flatness + _distance_score(cfg, mean_m) + _consistency_score(spread_m)

                    candidate = WallRegion(
                        rect=rect,
                        score=score,
                        variance=variance,
                        aspect_ratio=aspect,
                        mean_depth=mean,
                        distance_m=mean_m,
                    )
                    if best is None or score > best.score:
                        best = candidate
                    if score >= cfg.min_score:
                        candidates.append(candidate)

        return best, candidates

    def merge(self, best: WallRegion, candidates: Iterable[WallRegion]) -> NormRect:
        """Bounding rectangle of the best band and its strong adjacent neighbours."""

        threshold = self.config.min_score * self.config.merge_score_ratio
        mergeable = [best.rect]
        for candidate in candidates:
            if candidate is best:
                continue
            if candidate.score >= threshold and best.rect.is_near(candidate.rect, self.config.merge_tolerance):
                mergeable.append(candidate.rect)
        if len(mergeable) == 1:
            return best.rect
        return bounding_rect(mergeable)

    def should_warn(self, now_ms: int) -> bool:
        """Return whether a close-wall warning is due; stamps the cooldown when it is."""

        if not self._state.is_close(self.config.warning_distance_m):
            return False
        if (
            self._last_spoken_ms is not None
            and now_ms - self._last_spoken_ms <= self.config.speech_cooldown_ms
        ):
            return False
        self._last_spoken_ms = now_ms
        return True

    def debug_text(self) -> str:
        state = self._state
        if not state.detected:
            return "WALL no"
        status = "WARN" if state.is_close(self.config.warning_distance_m) else "FAR"
        meters = f"{state.distance_m:.1f} m" if state.distance_m is not None else "n/a"
        best = state.best
        if best is None:
            return f"WALL {status} d={meters}"
        return (
            f"WALL {status} s={best.score:.2f} v={best.variance:.4f} "
            f"a={best.aspect_ratio:.2f} m={best.mean_depth:.2f} d={meters}"
        )

    def reset(self) -> None:
        self._history.clear()
        self._state = WallState()
        self._last_best = None
        self._last_spoken_ms = None
