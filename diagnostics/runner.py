"""Diagnostics runner utilities."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from core.logging import logger as LOGGER
from diagnostics.models import DiagnosticResult


Probe = Callable[[], DiagnosticResult]


def default_probes() -> list[Probe]:
    """Probes for every guidance subsystem, in report order."""

    from config.diagnostics import probe as config_probe
    from core.diagnostics import probe as core_probe
    from interaction.diagnostics import probe as speech_probe
    from vision.diagnostics import probe as vision_probe

    return [config_probe, core_probe, vision_probe, speech_probe]


def format_results(results: Iterable[DiagnosticResult]) -> str:
    """Return a human-friendly diagnostics report."""

    lines = ["Guidance diagnostics", "-" * 60]
    for result in results:
        lines.append(f"[{result.status.value}] {result.name}: {result.details}")
    lines.append("-" * 60)
    return "\n".join(lines)


def has_failures(results: Iterable[DiagnosticResult]) -> bool:
    return any(result.failed for result in results)


def run_diagnostics(probes: Iterable[Probe] | None = None) -> list[DiagnosticResult]:
    """Run diagnostics probes and return results."""

    results: list[DiagnosticResult] = []
    for probe in probes if probes is not None else default_probes():
        try:
            result = probe()
        except Exception as exc:  # noqa: BLE001 - diagnostics must keep running
            LOGGER.exception("Probe failed: %s", probe)
            result = DiagnosticResult.from_exception(getattr(probe, "__name__", "unknown_probe"), exc)
        results.append(result)
    return results
