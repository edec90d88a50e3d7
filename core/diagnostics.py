"""Diagnostics routines for the core subsystem."""

from __future__ import annotations

import importlib.util

from diagnostics.models import DiagnosticResult, DiagnosticStatus


def probe() -> DiagnosticResult:
    """Check the guidance logger and the monotonic clock."""

    name = "core"
    from core import logging as core_logging
    from core.timing import millis

    logger = core_logging.logger
    if logger is None or not logger.handlers:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details="Guidance logger failed to initialize",
        )

    first = millis()
    second = millis()
    if second < first:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details="Monotonic clock went backwards",
        )

    rich_available = importlib.util.find_spec("rich") is not None
    return DiagnosticResult(
        name=name,
        status=DiagnosticStatus.PASS if rich_available else DiagnosticStatus.WARN,
        details="Rich logging enabled" if rich_available else "Rich logging not available (plain fallback)",
    )
