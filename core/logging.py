"""Logging for guidance decisions and spoken output.

All guidance modules log through :data:`logger`. Console output goes through
rich when it is installed; :func:`enable_file_logging` adds a background file
sink so slow disks never stall a detection cycle.
"""

from __future__ import annotations

import atexit
from dataclasses import dataclass, field
import importlib
import importlib.util
import logging
import logging.handlers
from pathlib import Path
import queue
from typing import Any


LOGGER_NAME = "guidance"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

if importlib.util.find_spec("rich") is not None:
    RichHandler = importlib.import_module("rich.logging").RichHandler
    Text = importlib.import_module("rich.text").Text
    console = importlib.import_module("rich.console").Console(stderr=True)
else:
    RichHandler = None
    Text = None
    console = None


def _console_handler() -> logging.Handler:
    if RichHandler is not None:
        handler: logging.Handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            log_time_format="[%X]",
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(message)s"))
    handler.set_name("guidance-console")
    return handler


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Return the guidance logger with exactly one console handler attached."""

    guidance_logger = logging.getLogger(LOGGER_NAME)
    guidance_logger.setLevel(level)
    if not any(h.get_name() == "guidance-console" for h in guidance_logger.handlers):
        guidance_logger.addHandler(_console_handler())
    guidance_logger.propagate = False
    return guidance_logger


logger = setup_logging()


def set_level(level_name: str) -> None:
    """Apply a level name such as ``"DEBUG"``; unknown names fall back to INFO."""

    level = logging.getLevelName(str(level_name).upper())
    logger.setLevel(level if isinstance(level, int) else logging.INFO)


@dataclass
class _FileSink:
    path: Path | None = None
    listener: logging.handlers.QueueListener | None = None
    handlers: list[logging.Handler] = field(default_factory=list)
    registered: bool = False


_sink = _FileSink()


def disable_file_logging() -> None:
    """Flush and detach the background file sink, if one is running."""

    if _sink.listener is not None:
        _sink.listener.stop()
        _sink.listener = None
    for handler in _sink.handlers:
        logging.getLogger().removeHandler(handler)
        logger.removeHandler(handler)
    _sink.handlers.clear()
    _sink.path = None


def enable_file_logging(log_path: Path, level: int = logging.INFO) -> None:
    """Mirror guidance and root log records into ``log_path`` from a worker thread."""

    log_path = Path(log_path).expanduser()
    if _sink.path == log_path and _sink.listener is not None:
        return
    disable_file_logging()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))

    records: queue.SimpleQueue[logging.LogRecord] = queue.SimpleQueue()
    queue_handler = logging.handlers.QueueHandler(records)
    queue_handler.setLevel(level)
    # The guidance logger does not propagate, so it needs its own queue handler.
    for target in (logging.getLogger(), logger):
        target.addHandler(queue_handler)

    _sink.listener = logging.handlers.QueueListener(records, file_handler, respect_handler_level=True)
    _sink.listener.start()
    _sink.handlers.append(queue_handler)
    _sink.path = log_path

    if not _sink.registered:
        atexit.register(disable_file_logging)
        _sink.registered = True


def _styled(message: str, style: str) -> Any:
    return message if Text is None else Text(message, style=style)


def log_utterance(text: str, identity: str | None = None, *, queued: bool = False) -> None:
    """Log an utterance as it is spoken or parked in the pending queue."""

    icon = "⏳" if queued else "🔊"
    tag = f" [{identity}]" if identity else ""
    logger.info(_styled(f"{icon} [SPEECH]{tag} {text}", "bold yellow" if queued else "bold cyan"))


def log_decision(rule: str, text: str | None) -> None:
    if text is None:
        logger.debug("[GUIDANCE] rule=%s -> silent", rule)
        return
    logger.debug("[GUIDANCE] rule=%s -> %s", rule, text)
