"""Package placeholder for services modules."""

from services.health_monitors import DarknessMonitor, SystemFailureMonitor
from services.pipeline import Lane, PipelineStepper

__all__ = ["DarknessMonitor", "SystemFailureMonitor", "Lane", "PipelineStepper"]
