"""Stable detection schemas for the guidance pipeline.

Bounding boxes are normalized to the source frame dimensions and represented as
``(x1, y1, x2, y2)`` corners with each value expected in the inclusive range
``[0.0, 1.0]``. The detector encodes a coarse screen region in the class label
as a suffix, for example ``"chair-left"`` or ``"person-center"``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from vision.geometry import NormRect


REGION_SEPARATOR = "-"


class Region(str, Enum):
    """Coarse screen-space region carried by a detection label."""

    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    ABOVE = "above"
    BELOW = "below"


def parse_region(class_name: str) -> Region | None:
    """Return the region encoded as the label suffix, if any."""

    _, separator, suffix = class_name.rpartition(REGION_SEPARATOR)
    if not separator:
        return None
    try:
        return Region(suffix.lower())
    except ValueError:
        return None


@dataclass(frozen=True)
class DetectionBox:
    """Single object detection with a region-suffixed class label."""

    x1: float
    y1: float
    x2: float
    y2: float
    class_name: str
    confidence: float
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        # Reuses the rectangle invariants: coordinates in [0, 1], ordered corners.
        NormRect(self.x1, self.y1, self.x2, self.y2)

    @classmethod
    def clamped(
        cls,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        class_name: str,
        confidence: float,
    ) -> "DetectionBox":
        """Build a box from raw detector output, clamping and ordering the corners."""

        rect = NormRect.from_corners(x1, y1, x2, y2)
        return cls(rect.left, rect.top, rect.right, rect.bottom, class_name, float(confidence))

    @property
    def identity(self) -> str:
        """Stable tracking identity for a (label, region) pair."""

        return self.class_name

    @property
    def object_name(self) -> str:
        if self.region is None:
            return self.class_name
        return self.class_name.rpartition(REGION_SEPARATOR)[0]

    @property
    def region(self) -> Region | None:
        return parse_region(self.class_name)

    @property
    def region_name(self) -> str:
        region = self.region
        return region.value if region is not None else "ahead"

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def center(self) -> tuple[float, float]:
        return ((self.x1 + self.x2) / 2.0, (self.y1 + self.y2) / 2.0)

    @property
    def salience(self) -> float:
        """Confidence weighted by box area."""

        return self.confidence * self.width * self.height

    @property
    def rect(self) -> NormRect:
        return NormRect(self.x1, self.y1, self.x2, self.y2)


@dataclass(frozen=True)
class DetectionResult:
    """Detection snapshot for one processed frame."""

    timestamp_ms: int
    boxes: tuple[DetectionBox, ...]
    inference_ms: int = 0
    frame_id: int | None = None

    @property
    def is_empty(self) -> bool:
        return not self.boxes
