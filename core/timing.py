"""Monotonic time helpers shared by the guidance pipeline."""

from __future__ import annotations

import time


def millis() -> int:
    return int(time.monotonic() * 1000)


def clamp01(x: float) -> float:
    return 0.0 if x < 0.0 else 1.0 if x > 1.0 else x


def elapsed_since(now_ms: int, then_ms: int | None) -> int | None:
    """Return ``now_ms - then_ms`` or ``None`` when ``then_ms`` was never set."""

    if then_ms is None:
        return None
    return now_ms - then_ms
