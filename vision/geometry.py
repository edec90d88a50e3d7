"""Normalized rectangle geometry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from core.timing import clamp01


_EPSILON = 1e-6


@dataclass(frozen=True)
class NormRect:
    """Axis-aligned rectangle in normalized frame coordinates."""

    left: float
    top: float
    right: float
    bottom: float

    def __post_init__(self) -> None:
        for name in ("left", "top", "right", "bottom"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name}={value!r} is outside [0, 1]")
        if self.left > self.right or self.top > self.bottom:
            raise ValueError(
                f"Rectangle corners out of order: ({self.left}, {self.top}, {self.right}, {self.bottom})"
            )

    @classmethod
    def from_corners(cls, x1: float, y1: float, x2: float, y2: float) -> "NormRect":
        """Build a rectangle from any two corners, clamped into the unit square."""

        xs = sorted((clamp01(float(x1)), clamp01(float(x2))))
        ys = sorted((clamp01(float(y1)), clamp01(float(y2))))
        return cls(xs[0], ys[0], xs[1], ys[1])

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> tuple[float, float]:
        return ((self.left + self.right) / 2.0, (self.top + self.bottom) / 2.0)

    @property
    def aspect_ratio(self) -> float:
        """Height over width."""

        return self.height / max(_EPSILON, self.width)

    def intersection_area(self, other: "NormRect") -> float:
        inter_w = max(0.0, min(self.right, other.right) - max(self.left, other.left))
        inter_h = max(0.0, min(self.bottom, other.bottom) - max(self.top, other.top))
        return inter_w * inter_h

    def iou(self, other: "NormRect") -> float:
        return intersection_over_union(self, other)

    def is_near(self, other: "NormRect", tolerance: float) -> bool:
        """Return whether ``other`` overlaps or lies within ``tolerance`` of this rectangle."""

        horizontal = not (
            other.right < self.left - tolerance or other.left > self.right + tolerance
        )
        vertical = not (
            other.bottom < self.top - tolerance or other.top > self.bottom + tolerance
        )
        return horizontal and vertical


def intersection_over_union(a: NormRect, b: NormRect) -> float:
    """Overlap ratio of two rectangles, in ``[0, 1]``."""

    inter = a.intersection_area(b)
    denom = max(_EPSILON, a.area + b.area - inter)
    return min(1.0, inter / denom) if inter > 0.0 else 0.0


def bounding_rect(rects: Iterable[NormRect]) -> NormRect:
    """Smallest rectangle containing every input rectangle."""

    items = list(rects)
    if not items:
        raise ValueError("bounding_rect requires at least one rectangle")
    return NormRect(
        min(r.left for r in items),
        min(r.top for r in items),
        max(r.right for r in items),
        max(r.bottom for r in items),
    )
