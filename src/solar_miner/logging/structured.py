"""Structured logging setup using structlog.

Modules log through ``logging.getLogger(__name__)``; every record, whether it
comes from our code or from a library, is rendered by the same structlog
processor chain so the controller emits one consistent stream.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

from solar_miner.config.schema import LoggingConfig

# Per-request chatter from the miner API client
QUIET_LOGGERS = ("httpx", "httpcore")

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def select_renderer(fmt: str, stream: TextIO) -> structlog.types.Processor:
    """Pick the final renderer for a validated ``LoggingConfig.format``."""
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    # Colours only when a human is watching the terminal
    return structlog.dev.ConsoleRenderer(colors=stream.isatty())


def setup_logging(config: LoggingConfig | None = None, stream: TextIO | None = None) -> None:
    """Route stdlib logging through structlog.

    Args:
        config: Validated logging section. Defaults apply when omitted, which
            is what ``main()`` relies on to report a configuration error.
        stream: Console destination, stdout by default.
    """
    config = config or LoggingConfig()
    stream = stream or sys.stdout

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console = logging.StreamHandler(stream)
    console.setFormatter(_formatter(select_renderer(config.format, stream)))
    handlers: list[logging.Handler] = [console]

    if config.file:
        file_handler = logging.FileHandler(config.file)
        file_handler.setFormatter(_formatter(select_renderer(config.format, file_handler.stream)))
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(config.level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _formatter(renderer: structlog.types.Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
