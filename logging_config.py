"""structlog configuration for the work tracker.

Two output modes:
- Human (default): console renderer, colored when writing to a terminal
- JSON (log_json=True): structured JSON lines

The TUI owns the terminal while it runs, so it logs to a file instead.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import structlog


def _get_log_path() -> Path:
    """Get log file path from environment variable or default location."""
    if env_path := os.environ.get("TRACK_WORK_LOG"):
        return Path(env_path)
    return Path(__file__).parent / "data" / "track_work.log"


def verbose_from_env() -> bool:
    return os.environ.get("TRACK_WORK_VERBOSE", "").lower() in ("1", "true", "yes")


def configure_logging(
    *,
    verbose: bool = False,
    log_json: bool = False,
    log_path: Path | None = None,
) -> None:
    """Configure structlog processors and output routing.

    Args:
        verbose: Enable DEBUG-level output. When False, only INFO+.
        log_json: Use JSON renderer instead of console renderer.
        log_path: Write to this file instead of stderr.
    """
    level = logging.DEBUG if verbose else logging.INFO

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    handler: logging.Handler
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, encoding="utf-8")
        colors = False
    else:
        handler = logging.StreamHandler(sys.stderr)
        colors = sys.stderr.isatty()

    if log_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=colors)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING)

    logging.getLogger("track_work").setLevel(level)


def configure_app_logging() -> None:
    """Logging setup used by the TUI: file output, level from the environment."""
    configure_logging(verbose=verbose_from_env(), log_path=_get_log_path())
