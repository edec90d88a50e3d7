"""Guidance synthesis and the engine that owns navigation state."""

from navigation.engine import CycleOutcome, GuidanceEngine
from navigation.guidance import GuidanceDecision, GuidanceGenerator

__all__ = ["CycleOutcome", "GuidanceDecision", "GuidanceEngine", "GuidanceGenerator"]
