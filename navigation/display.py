"""Read-only display state for overlays and the debug HUD."""

from __future__ import annotations

from dataclasses import dataclass

from vision.detections import DetectionBox
from vision.geometry import NormRect
from vision.walls import WallState


_LABEL_RANK = {"fast": 0, "ok": 1, "slow": 2, "n/a": 0}


def speed_label(ms: int, fast: int, slow: int) -> str:
    if ms <= fast:
        return "fast"
    if ms <= slow:
        return "ok"
    return "slow"


@dataclass(frozen=True)
class HudTimings:
    """Latest timing figures shown on the HUD, in milliseconds."""

    detection_ms: int = 0
    depth_ms: int = 0
    lag_ms: int = 0
    depth_age_ms: int | None = None

    def labels(self) -> dict[str, str]:
        return {
            "detection": speed_label(self.detection_ms, fast=30, slow=60),
            "depth": speed_label(self.depth_ms, fast=40, slow=100),
            "lag": speed_label(self.lag_ms, fast=80, slow=150),
            "depth_age": (
                speed_label(self.depth_age_ms, fast=80, slow=160)
                if self.depth_age_ms is not None and self.depth_age_ms >= 0
                else "n/a"
            ),
        }

    def worst_label(self) -> str:
        return max(self.labels().values(), key=lambda label: _LABEL_RANK.get(label, 0))


def hud_wall_text(wall: WallState) -> str:
    if not wall.detected:
        return "WALL no"
    meters = f"{wall.distance_m:.1f} m" if wall.distance_m is not None else "n/a"
    best = wall.best
    if best is None:
        return f"WALL yes dist={meters}"
    return (
        f"WALL yes score={best.score:.2f} var={best.variance:.4f} "
        f"asp={best.aspect_ratio:.2f} mean={best.mean_depth:.2f} dist={meters}"
    )


def format_hud(
    timings: HudTimings,
    wall: WallState,
    brightness: float | None,
    darkness_threshold: float = 30.0,
) -> str:
    labels = timings.labels()
    lines = [
        f"Det: {timings.detection_ms}ms ({labels['detection']})",
        f"Depth: {timings.depth_ms}ms ({labels['depth']})",
        f"Lag: {timings.lag_ms}ms ({labels['lag']})",
    ]
    if timings.depth_age_ms is not None and timings.depth_age_ms >= 0:
        lines.append(f"DepthAge: {timings.depth_age_ms}ms ({labels['depth_age']})")
    lines.append(hud_wall_text(wall))
    if brightness is not None:
        status = "DARK" if brightness < darkness_threshold else "OK"
        lines.append(f"Brightness: {brightness:.1f} ({status})")
    return "\n".join(lines)


@dataclass(frozen=True)
class DisplaySnapshot:
    """Everything the display collaborator may draw for one cycle."""

    timestamp_ms: int
    detections: tuple[DetectionBox, ...]
    wall_region: NormRect | None
    wall_debug_text: str
    hud_text: str
    status: str = "ok"
