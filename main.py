"""Command-line entry point for the navigation guidance engine."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys

from config import ConfigController
from core.logging import enable_file_logging, logger, set_level


def configure_logging(level_name: str) -> None:
    """Configure application logging."""

    level = logging.getLevelName(str(level_name).upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    set_level(level_name)


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Raw command-line arguments.

    Returns:
        Parsed arguments namespace.
    """

    parser = argparse.ArgumentParser(
        description="Spoken navigation guidance from detections and depth."
    )
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--diagnostics",
        action="store_true",
        help="Run diagnostics probes and exit.",
    )
    mode.add_argument(
        "--replay",
        type=Path,
        metavar="SCENARIO",
        help="Replay a recorded YAML scenario and print what would be spoken.",
    )
    parser.add_argument("--log-level", type=str, default=None, help="Override logging_level.")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Application entry point.

    Args:
        argv: Optional list of command-line arguments.

    Returns:
        Process exit code.
    """

    if argv is None:
        argv = sys.argv[1:]
    args = parse_args(argv)

    try:
        config = ConfigController.get_instance().get_config()
    except Exception as exc:
        logger.warning("Config unavailable, using built-in defaults: %s", exc)
        config = {}
    configure_logging(args.log_level or config.get("logging_level", "INFO"))

    log_file = args.log_file
    if log_file is None and config.get("file_logging_enabled", False):
        log_file = Path(config.get("log_file", "log/guidance.log"))
    if log_file is not None:
        enable_file_logging(log_file)
        logger.info("Writing logs to %s", log_file)

    if args.diagnostics:
        from diagnostics.runner import format_results, has_failures, run_diagnostics

        results = run_diagnostics()
        print(format_results(results))
        return 1 if has_failures(results) else 0

    from interaction.speech_hal import LoggingSpeechEngine
    from navigation.engine import GuidanceEngine
    from navigation.replay import format_spoken, load_scenario, replay

    try:
        scenario = load_scenario(args.replay)
        speech = LoggingSpeechEngine()
        engine = GuidanceEngine.from_config(config or None, speech_engine=speech)
    except Exception as exc:
        logger.exception("Replay startup failed: %s", exc)
        return 1

    try:
        spoken = replay(scenario, engine, speech)
    except KeyboardInterrupt:
        logger.info("Replay interrupted by user")
        return 1
    finally:
        engine.shutdown()

    print(format_spoken(spoken))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
