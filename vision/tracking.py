"""Object persistence tracking to debounce repeated announcements."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from config import load_section
from core.logging import logger
from vision.depth import DepthMap, DepthSampler
from vision.detections import DetectionBox


@dataclass
class ObjectTrack:
    """Last known state of one (label, region) identity."""

    identity: str
    last_frame: int
    last_x: float
    last_y: float
    last_depth: float | None


@dataclass(frozen=True)
class TrackingConfig:
    """Configuration for object persistence tracking."""

    persistence_frames: int = 10
    movement_threshold: float = 0.04
    depth_threshold_m: float = 0.5
    max_tracks: int = 256

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "TrackingConfig":
        cfg = load_section("tracking") if config is None else dict(config.get("tracking") or {})
        return cls(
            persistence_frames=int(cfg.get("persistence_frames", 10)),
            movement_threshold=float(cfg.get("movement_threshold", 0.04)),
            depth_threshold_m=float(cfg.get("depth_threshold_m", 0.5)),
            max_tracks=max(1, int(cfg.get("max_tracks", 256))),
        )


class ObjectTracker:
    """Per-identity history deciding whether an object is worth announcing again."""

    def __init__(
        self,
        config: TrackingConfig | None = None,
        sampler: DepthSampler | None = None,
    ) -> None:
        self.config = config or TrackingConfig()
        self._sampler = sampler or DepthSampler()
        self._tracks: dict[str, ObjectTrack] = {}

    def __len__(self) -> int:
        return len(self._tracks)

    def get_track(self, identity: str) -> ObjectTrack | None:
        return self._tracks.get(identity)

    def should_announce(
        self,
        box: DetectionBox,
        current_frame: int,
        depth_map: DepthMap | None,
    ) -> bool:
        """Return whether ``box`` is new, moved, or stale; always records the sighting."""

        center_x, center_y = box.center
        depth = self._sampler.box_depth(box, depth_map)
        track = self._tracks.get(box.identity)

        if track is None:
            verdict = True
        else:
            moved = (
                abs(center_x - track.last_x) > self.config.movement_threshold
                or abs(center_y - track.last_y) > self.config.movement_threshold
            )
            depth_changed = (
                depth is not None
                and track.last_depth is not None
                and abs(depth - track.last_depth) > self.config.depth_threshold_m
            )
            stale = (current_frame - track.last_frame) > self.config.persistence_frames
            verdict = moved or depth_changed or stale

        self._tracks[box.identity] = ObjectTrack(
            identity=box.identity,
            last_frame=current_frame,
            last_x=center_x,
            last_y=center_y,
            last_depth=depth,
        )
        return verdict

    def announce_any(
        self,
        boxes: Iterable[DetectionBox],
        current_frame: int,
        depth_map: DepthMap | None,
    ) -> bool:
        """Update every box's track and report whether any of them warrants speech."""

        verdicts = [self.should_announce(box, current_frame, depth_map) for box in boxes]
        self.sweep(current_frame)
        return any(verdicts)

    def sweep(self, current_frame: int) -> int:
        """Drop tracks outside the persistence window and enforce the size cap."""

        window = self.config.persistence_frames
        stale = [
            identity
            for identity, track in self._tracks.items()
            if current_frame - track.last_frame > window
        ]
        for identity in stale:
            del self._tracks[identity]

        overflow = len(self._tracks) - self.config.max_tracks
        if overflow > 0:
            oldest = sorted(self._tracks.values(), key=lambda t: t.last_frame)[:overflow]
            for track in oldest:
                del self._tracks[track.identity]
            stale.extend(track.identity for track in oldest)

        if stale:
            logger.debug("[TRACKER] Evicted %d track(s) at frame %d", len(stale), current_frame)
        return len(stale)

    def reset(self) -> None:
        self._tracks.clear()
