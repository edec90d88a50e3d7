"""Tests for core diagnostics, timing and logging."""

from __future__ import annotations

from core.diagnostics import probe
from core.logging import disable_file_logging, enable_file_logging, logger
from core.timing import clamp01, elapsed_since, millis
from diagnostics.models import DiagnosticStatus


def test_core_probe_reports_logging_ready() -> None:
    """Core probe should return a non-fail status."""

    result = probe()
    assert result.status in {DiagnosticStatus.PASS, DiagnosticStatus.WARN}


def test_timing_helpers() -> None:
    assert elapsed_since(1500, 1000) == 500
    assert elapsed_since(1500, None) is None
    assert millis() >= 0
    assert clamp01(-0.5) == 0.0
    assert clamp01(1.5) == 1.0
    assert clamp01(0.25) == 0.25


def test_file_logging_writes_guidance_records(tmp_path) -> None:
    log_path = tmp_path / "log" / "guidance.log"
    enable_file_logging(log_path)
    try:
        logger.warning("[HEALTH] file sink check")
    finally:
        disable_file_logging()

    assert "[HEALTH] file sink check" in log_path.read_text(encoding="utf-8")
