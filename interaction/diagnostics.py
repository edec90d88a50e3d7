"""Diagnostics routines for the speech subsystem."""

from __future__ import annotations

import importlib.util

from config import load_section
from diagnostics.models import DiagnosticResult, DiagnosticStatus
from interaction.speech import SpeechArbiter, SpeechStatus
from interaction.speech_hal import SPEECH_BACKENDS, SpeechEngine


def probe(backend: SpeechEngine | None = None) -> DiagnosticResult:
    """Run a speech probe against the configured backend.

    Args:
        backend: Optional offline speech engine for testing.

    Returns:
        Diagnostic result indicating speech output readiness.
    """

    name = "speech"

    if backend is not None:
        try:
            arbiter = SpeechArbiter(backend, clock=lambda: 0)
            status = arbiter.speak("Speech check", now_ms=0)
        except Exception as exc:  # noqa: BLE001 - probe should not raise
            return DiagnosticResult(
                name=name,
                status=DiagnosticStatus.FAIL,
                details=f"Offline speech probe failed: {exc}",
            )
        if status is not SpeechStatus.SPOKEN:
            return DiagnosticResult(
                name=name,
                status=DiagnosticStatus.FAIL,
                details=f"Offline speech backend did not accept an utterance ({status.value})",
            )
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.PASS,
            details=f"Offline speech backend {type(backend).__name__} ready",
        )

    configured = str(load_section("speech").get("backend", "logging")).lower()
    if configured not in SPEECH_BACKENDS:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details=f"Unknown speech backend {configured!r}",
        )
    if configured == "pyttsx3" and importlib.util.find_spec("pyttsx3") is None:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details="pyttsx3 backend configured but pyttsx3 is not installed",
        )
    if configured != "pyttsx3":
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.WARN,
            details=f"Speech backend {configured!r} does not produce audio",
        )
    return DiagnosticResult(
        name=name,
        status=DiagnosticStatus.PASS,
        details="pyttsx3 speech backend available",
    )
