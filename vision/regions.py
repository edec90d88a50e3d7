"""Region occupancy derived from detection label suffixes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from vision.detections import DetectionBox, Region


@dataclass(frozen=True)
class RegionOccupancy:
    """Which coarse regions hold at least one detection."""

    left: bool = False
    center: bool = False
    right: bool = False
    above: bool = False
    below: bool = False

    @classmethod
    def from_box(cls, box: DetectionBox) -> "RegionOccupancy":
        region = box.region
        return cls(
            left=region is Region.LEFT,
            center=region is Region.CENTER,
            right=region is Region.RIGHT,
            above=region is Region.ABOVE,
            below=region is Region.BELOW,
        )

    @classmethod
    def from_boxes(cls, boxes: Iterable[DetectionBox]) -> "RegionOccupancy":
        occupancy = cls()
        for box in boxes:
            occupancy = occupancy | cls.from_box(box)
        return occupancy

    def __or__(self, other: "RegionOccupancy") -> "RegionOccupancy":
        return RegionOccupancy(
            left=self.left or other.left,
            center=self.center or other.center,
            right=self.right or other.right,
            above=self.above or other.above,
            below=self.below or other.below,
        )

    @property
    def any_horizontal(self) -> bool:
        return self.left or self.center or self.right

    @property
    def is_empty(self) -> bool:
        return not (self.any_horizontal or self.above or self.below)

    def occupied(self) -> tuple[Region, ...]:
        flags = (
            (Region.LEFT, self.left),
            (Region.CENTER, self.center),
            (Region.RIGHT, self.right),
            (Region.ABOVE, self.above),
            (Region.BELOW, self.below),
        )
        return tuple(region for region, flag in flags if flag)
