"""Models for runtime health tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping


class HealthStatus(str, Enum):
    """Overall health classification for the guidance runtime."""

    OK = "ok"
    DEGRADED = "degraded"
    FAILING = "failing"


@dataclass(frozen=True)
class HealthSnapshot:
    """Snapshot of perception and environment health."""

    timestamp_ms: int
    status: HealthStatus
    summary: str
    details: Mapping[str, str | float | int] = field(default_factory=dict)


@dataclass(frozen=True)
class HealthWarning:
    """Spoken safety warning raised by a health monitor."""

    identity: str
    message: str
    timestamp_ms: int
    priority: str = "high"
