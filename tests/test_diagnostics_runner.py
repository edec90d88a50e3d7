"""Tests for subsystem probes and the diagnostics runner."""

from __future__ import annotations

from pathlib import Path

from config.controller import ConfigController
from diagnostics.models import DiagnosticResult, DiagnosticStatus
from diagnostics.run import main as diagnostics_main
from diagnostics.runner import format_results, has_failures, run_diagnostics
from interaction.diagnostics import probe as speech_probe
from interaction.speech_hal import FakeSpeechEngine
from vision.diagnostics import probe as vision_probe


def _reset_singletons() -> None:
    ConfigController._instance = None


def test_vision_probe_runs_synthetic_scene() -> None:
    result = vision_probe()
    assert result.status is DiagnosticStatus.PASS
    assert "corridor 2.0 m" in result.details


def test_speech_probe_with_offline_backend() -> None:
    result = speech_probe(backend=FakeSpeechEngine(auto_complete=True))
    assert result.status is DiagnosticStatus.PASS


def test_speech_probe_reports_failing_backend() -> None:
    result = speech_probe(backend=FakeSpeechEngine(fail_on_speak=True))
    assert result.status is DiagnosticStatus.FAIL


def test_speech_probe_flags_unknown_backend(tmp_path: Path, monkeypatch) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "default.yaml").write_text("speech:\n  backend: megaphone\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    _reset_singletons()

    result = speech_probe()
    assert result.status is DiagnosticStatus.FAIL
    assert "megaphone" in result.details


def test_speech_probe_warns_on_silent_backend(tmp_path: Path, monkeypatch) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "default.yaml").write_text("speech:\n  backend: logging\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    _reset_singletons()

    assert speech_probe().status is DiagnosticStatus.WARN


def test_runner_turns_probe_exceptions_into_failures() -> None:
    def broken_probe() -> DiagnosticResult:
        raise RuntimeError("sensor unplugged")

    def good_probe() -> DiagnosticResult:
        return DiagnosticResult("good", DiagnosticStatus.PASS, "ok")

    results = run_diagnostics([broken_probe, good_probe])

    assert [result.name for result in results] == ["broken_probe", "good"]
    assert results[0].status is DiagnosticStatus.FAIL
    assert "sensor unplugged" in results[0].details
    assert has_failures(results)


def test_format_results_lists_each_probe() -> None:
    report = format_results(
        [
            DiagnosticResult("config", DiagnosticStatus.PASS, "fine"),
            DiagnosticResult("speech", DiagnosticStatus.WARN, "silent"),
        ]
    )
    assert report.splitlines()[0] == "Guidance diagnostics"
    assert "[PASS] config: fine" in report
    assert "[WARN] speech: silent" in report


def test_offline_diagnostics_cli_exits_cleanly(capsys) -> None:
    assert diagnostics_main(["--offline"]) == 0
    output = capsys.readouterr().out
    assert "[WARN] config" in output
    assert "[PASS] speech" in output
