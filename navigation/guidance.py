"""Priority-ordered guidance rules.

Each cycle the generator builds a :class:`Scene` from region occupancy, the
detection list, the current depth snapshot and the smoothed wall state, then
walks :data:`RULES` in order. The first rule whose predicate matches decides
the outcome, which may be a sentence or a deliberate silence.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Sequence

from config import load_section
from core.logging import log_decision, logger
from vision.depth import DepthMap, DepthSampler
from vision.detections import DetectionBox
from vision.geometry import NormRect
from vision.regions import RegionOccupancy
from vision.walls import WallState


PATH_CLEAR_TEXT = "Path clear, proceed forward"
WALL_WARNING_SUFFIX = "be careful, feel what's in front of you and stop"


@dataclass(frozen=True)
class GuidanceConfig:
    """Thresholds for guidance synthesis."""

    person_label: str = "person"
    cluster_threshold_m: float = 2.0
    valid_distance_min_m: float = 0.5
    valid_distance_max_m: float = 5.0
    very_near_m: float = 0.5
    corridor_clear_m: float = 1.2
    corridor_rect: NormRect = field(default_factory=lambda: NormRect(0.33, 0.60, 0.66, 0.95))
    corridor_samples: int = 8
    required_empty_streak: int = 2
    wall_warning_distance_m: float = 1.5

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "GuidanceConfig":
        if config is None:
            guidance_cfg = load_section("guidance")
            walls_cfg = load_section("walls")
        else:
            guidance_cfg = dict(config.get("guidance") or {})
            walls_cfg = dict(config.get("walls") or {})

        defaults = cls()
        corridor = defaults.corridor_rect
        raw_rect = guidance_cfg.get("corridor_rect")
        if raw_rect is not None:
            try:
                corridor = NormRect(*(float(value) for value in raw_rect))
            except (TypeError, ValueError) as exc:
                logger.warning("[GUIDANCE] Invalid guidance.corridor_rect=%r (%s); using default", raw_rect, exc)

        return cls(
            person_label=str(guidance_cfg.get("person_label", defaults.person_label)),
            cluster_threshold_m=float(guidance_cfg.get("cluster_threshold_m", defaults.cluster_threshold_m)),
            valid_distance_min_m=float(guidance_cfg.get("valid_distance_min_m", defaults.valid_distance_min_m)),
            valid_distance_max_m=float(guidance_cfg.get("valid_distance_max_m", defaults.valid_distance_max_m)),
            very_near_m=float(guidance_cfg.get("very_near_m", defaults.very_near_m)),
            corridor_clear_m=float(guidance_cfg.get("corridor_clear_m", defaults.corridor_clear_m)),
            corridor_rect=corridor,
            corridor_samples=max(1, int(guidance_cfg.get("corridor_samples", defaults.corridor_samples))),
            required_empty_streak=max(1, int(guidance_cfg.get("required_empty_streak", defaults.required_empty_streak))),
            wall_warning_distance_m=float(walls_cfg.get("warning_distance_m", defaults.wall_warning_distance_m)),
        )


def distance_phrase(meters: float | None) -> str:
    return f"{meters:.1f} meters" if meters is not None else ""


def wall_warning_text(distance_m: float | None) -> str:
    if distance_m is None:
        return f"Wall ahead, {WALL_WARNING_SUFFIX}"
    return f"Wall ahead {distance_phrase(distance_m)}, {WALL_WARNING_SUFFIX}"


def _located(subject: str, distance_text: str) -> str:
    return " ".join(part for part in (subject, distance_text, "ahead") if part)


def cluster_by_depth(
    items: Iterable[tuple[DetectionBox, float]],
    threshold: float,
) -> list[list[tuple[DetectionBox, float]]]:
    """Single-pass clustering of ``(box, depth)`` pairs sorted by depth.

    A new cluster starts whenever consecutive depths differ by more than
    ``threshold``.
    """

    clusters: list[list[tuple[DetectionBox, float]]] = []
    current: list[tuple[DetectionBox, float]] = []
    last_depth: float | None = None
    for item in sorted(items, key=lambda pair: pair[1]):
        if last_depth is not None and abs(item[1] - last_depth) > threshold:
            clusters.append(current)
            current = []
        current.append(item)
        last_depth = item[1]
    if current:
        clusters.append(current)
    return clusters


@dataclass(frozen=True)
class PeopleGroup:
    region: str
    distance_m: float
    size: int


@dataclass(frozen=True)
class Scene:
    """Fused per-cycle inputs with the derived values every rule needs."""

    occupancy: RegionOccupancy
    boxes: tuple[DetectionBox, ...]
    depths: tuple[float | None, ...]
    depth_map: DepthMap | None
    wall: WallState
    people: PeopleGroup | None
    primary: DetectionBox | None
    primary_distance: float | None
    corridor_clear: Callable[[], bool]

    @property
    def object_name(self) -> str:
        return self.primary.object_name if self.primary is not None else "object"

    @property
    def distance_text(self) -> str:
        return distance_phrase(self.primary_distance)

    def closest(self) -> tuple[DetectionBox, float] | None:
        known = [(box, depth) for box, depth in zip(self.boxes, self.depths) if depth is not None]
        if not known:
            return None
        return min(known, key=lambda pair: pair[1])


@dataclass(frozen=True)
class GuidanceRule:
    """One entry of the ordered rule table."""

    name: str
    applies: Callable[[Scene, GuidanceConfig], bool]
    build: Callable[[Scene, GuidanceConfig], str | None]


@dataclass(frozen=True)
class GuidanceDecision:
    rule: str
    text: str | None


def _wall_close(scene: Scene, cfg: GuidanceConfig) -> bool:
    return scene.wall.is_close(cfg.wall_warning_distance_m)


def _primary_out_of_range(scene: Scene, cfg: GuidanceConfig) -> bool:
    distance = scene.primary_distance
    return distance is not None and not (cfg.valid_distance_min_m <= distance <= cfg.valid_distance_max_m)


def _very_close(scene: Scene, cfg: GuidanceConfig) -> bool:
    closest = scene.closest()
    return closest is not None and 0.0 < closest[1] < cfg.very_near_m


def _very_close_text(scene: Scene, cfg: GuidanceConfig) -> str:
    box, _ = scene.closest()
    return f"{box.object_name} very close, stop!"


def _both_sides_text(scene: Scene, cfg: GuidanceConfig) -> str:
    wall_close = _wall_close(scene, cfg)
    if not wall_close and scene.corridor_clear():
        return f"{_located('Objects on both sides', scene.distance_text)}, center path is clear, proceed forward"
    if wall_close:
        return wall_warning_text(scene.wall.distance_m)
    return f"{_located('Objects on both sides', scene.distance_text)}, proceed carefully forward"


def _fallback_text(scene: Scene, cfg: GuidanceConfig) -> str | None:
    if _wall_close(scene, cfg):
        return wall_warning_text(scene.wall.distance_m)
    return None


RULES: tuple[GuidanceRule, ...] = (
    GuidanceRule(
        "people_group",
        lambda s, c: s.people is not None,
        lambda s, c: f"people {s.people.region} {distance_phrase(s.people.distance_m)} ahead",
    ),
    GuidanceRule("out_of_range", _primary_out_of_range, lambda s, c: None),
    GuidanceRule(
        "below",
        lambda s, c: s.occupancy.below,
        lambda s, c: f"{s.object_name} below, stop immediately",
    ),
    GuidanceRule(
        "above_only",
        lambda s, c: s.occupancy.above and not s.occupancy.any_horizontal,
        lambda s, c: f"{s.object_name} above, lower your head",
    ),
    GuidanceRule("very_close", _very_close, _very_close_text),
    GuidanceRule(
        "left",
        lambda s, c: s.occupancy.left and not s.occupancy.right and not s.occupancy.center,
        lambda s, c: f"{_located(f'{s.object_name} left', s.distance_text)}, move right",
    ),
    GuidanceRule(
        "left_center",
        lambda s, c: s.occupancy.left and not s.occupancy.right and s.occupancy.center,
        lambda s, c: f"{_located(f'{s.object_name} left and center', s.distance_text)}, move further right",
    ),
    GuidanceRule(
        "right",
        lambda s, c: s.occupancy.right and not s.occupancy.left and not s.occupancy.center,
        lambda s, c: f"{_located(f'{s.object_name} right', s.distance_text)}, move left",
    ),
    GuidanceRule(
        "right_center",
        lambda s, c: s.occupancy.right and not s.occupancy.left and s.occupancy.center,
        lambda s, c: f"{_located(f'{s.object_name} right and center', s.distance_text)}, move further left",
    ),
    GuidanceRule(
        "center",
        lambda s, c: s.occupancy.center and not s.occupancy.left and not s.occupancy.right,
        lambda s, c: f"{_located(f'{s.object_name} center', s.distance_text)}, move left or right",
    ),
    GuidanceRule(
        "center_blocked",
        lambda s, c: s.occupancy.center and s.occupancy.left and s.occupancy.right,
        lambda s, c: f"{_located(s.object_name, s.distance_text)} blocking path, stop",
    ),
    GuidanceRule(
        "both_sides",
        lambda s, c: s.occupancy.left and s.occupancy.right and not s.occupancy.center,
        _both_sides_text,
    ),
    GuidanceRule("no_regions", lambda s, c: s.occupancy.is_empty, lambda s, c: None),
    GuidanceRule("fallback", lambda s, c: True, _fallback_text),
)


class GuidanceGenerator:
    """Turn a fused scene into at most one spoken instruction."""

    def __init__(
        self,
        config: GuidanceConfig | None = None,
        sampler: DepthSampler | None = None,
        rules: Sequence[GuidanceRule] = RULES,
    ) -> None:
        self.config = config or GuidanceConfig()
        self._sampler = sampler or DepthSampler()
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[GuidanceRule, ...]:
        return self._rules

    def build_scene(
        self,
        boxes: Sequence[DetectionBox],
        depth_map: DepthMap | None,
        wall: WallState | None = None,
        occupancy: RegionOccupancy | None = None,
    ) -> Scene:
        boxes = tuple(boxes)
        wall = wall or WallState()
        depths = tuple(self._sampler.box_depth(box, depth_map) for box in boxes)
        primary: DetectionBox | None = None
        primary_distance: float | None = None
        if boxes:
            index = max(range(len(boxes)), key=lambda i: boxes[i].salience)
            primary = boxes[index]
            primary_distance = depths[index]
        return Scene(
            occupancy=occupancy if occupancy is not None else RegionOccupancy.from_boxes(boxes),
            boxes=boxes,
            depths=depths,
            depth_map=depth_map,
            wall=wall,
            people=self._people_group(boxes, depths),
            primary=primary,
            primary_distance=primary_distance,
            corridor_clear=lambda: depth_map is not None and self.corridor_clear(depth_map, wall),
        )

    def evaluate(
        self,
        boxes: Sequence[DetectionBox],
        depth_map: DepthMap | None,
        wall: WallState | None = None,
        occupancy: RegionOccupancy | None = None,
    ) -> GuidanceDecision:
        scene = self.build_scene(boxes, depth_map, wall, occupancy)
        for rule in self._rules:
            if rule.applies(scene, self.config):
                text = rule.build(scene, self.config)
                log_decision(rule.name, text)
                return GuidanceDecision(rule.name, text)
        log_decision("none", None)
        return GuidanceDecision("none", None)

    def generate(
        self,
        boxes: Sequence[DetectionBox],
        depth_map: DepthMap | None,
        wall: WallState | None = None,
        occupancy: RegionOccupancy | None = None,
    ) -> str | None:
        return self.evaluate(boxes, depth_map, wall, occupancy).text

    def corridor_clear(self, depth_map: DepthMap, wall: WallState | None = None) -> bool:
        """Whether the lower-centre corridor is free of obstacles nearer than the clear distance."""

        wall = wall or WallState()
        if wall.is_far(self.config.wall_warning_distance_m):
            return True
        if wall.is_close(self.config.wall_warning_distance_m):
            return False
        nearest = self._sampler.nearest_in_region(
            self.config.corridor_rect,
            depth_map,
            samples=self.config.corridor_samples,
        )
        return nearest is not None and nearest >= self.config.corridor_clear_m

    def path_clear(self, depth_map: DepthMap | None, wall: WallState | None = None) -> str | None:
        """Guidance for cycles without detections."""

        if depth_map is None:
            return None
        wall = wall or WallState()
        if wall.is_close(self.config.wall_warning_distance_m):
            return None
        if self.corridor_clear(depth_map, wall):
            return PATH_CLEAR_TEXT
        return None

    def wall_announcement(self, wall: WallState) -> str:
        """Spoken wall warning; distance is only included inside the valid range."""

        distance = wall.distance_m
        if distance is not None and not (
            self.config.valid_distance_min_m <= distance <= self.config.valid_distance_max_m
        ):
            distance = None
        return wall_warning_text(distance)

    def _people_group(
        self,
        boxes: Sequence[DetectionBox],
        depths: Sequence[float | None],
    ) -> PeopleGroup | None:
        people = [
            (box, depth)
            for box, depth in zip(boxes, depths)
            if depth is not None and box.object_name.startswith(self.config.person_label)
        ]
        if len(people) < 2:
            return None
        clusters = cluster_by_depth(people, self.config.cluster_threshold_m)
        largest = max(clusters, key=len)
        if len(largest) < 2:
            return None
        nearest = min(depth for _, depth in largest)
        if not self.config.valid_distance_min_m <= nearest <= self.config.valid_distance_max_m:
            return None
        region, _ = Counter(box.region_name for box, _ in largest).most_common(1)[0]
        return PeopleGroup(region=region, distance_m=nearest, size=len(largest))
