"""Command-line entry point for running diagnostics."""

from __future__ import annotations

import argparse
from pathlib import Path
import tempfile

from config.diagnostics import probe as config_probe
from core.diagnostics import probe as core_probe
from diagnostics.runner import format_results, has_failures, run_diagnostics
from interaction.diagnostics import probe as speech_probe
from interaction.speech_hal import FakeSpeechEngine
from vision.diagnostics import probe as vision_probe


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""

    parser = argparse.ArgumentParser(description="Run guidance diagnostics probes.")
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Use a temporary config directory and a fake speech backend.",
    )
    parser.add_argument(
        "--base-dir",
        type=Path,
        default=None,
        help="Optional base directory holding config/default.yaml.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run diagnostics and return an exit code."""

    args = parse_args(argv)

    if args.offline and args.base_dir is None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            tmp_base = Path(tmp_dir)
            config_dir = tmp_base / "config"
            config_dir.mkdir(parents=True, exist_ok=True)
            (config_dir / "default.yaml").write_text("{}", encoding="utf-8")

            results = run_diagnostics(
                [
                    lambda: config_probe(base_dir=tmp_base),
                    core_probe,
                    vision_probe,
                    lambda: speech_probe(backend=FakeSpeechEngine(auto_complete=True)),
                ]
            )
    else:
        results = run_diagnostics(
            [
                lambda: config_probe(base_dir=args.base_dir),
                core_probe,
                vision_probe,
                speech_probe,
            ]
        )

    print(format_results(results))
    return 1 if has_failures(results) else 0


if __name__ == "__main__":
    raise SystemExit(main())
