"""Vision package exports."""

from vision.depth import DepthMap, DepthSampler, RawDepth
from vision.detections import DetectionBox, DetectionResult, Region
from vision.geometry import NormRect, intersection_over_union
from vision.regions import RegionOccupancy
from vision.tracking import ObjectTracker
from vision.walls import WallDetector, WallState

__all__ = [
    "DepthMap",
    "DepthSampler",
    "RawDepth",
    "DetectionBox",
    "DetectionResult",
    "Region",
    "NormRect",
    "intersection_over_union",
    "RegionOccupancy",
    "ObjectTracker",
    "WallDetector",
    "WallState",
]
