"""Structured logging for the alert dispatch engine.

All output goes through one stdlib handler rendered by structlog.  Two
processors matter to the alerting code:

* ``add_logger_name`` tags each event with its logger, so the per-alert
  audit trail written to ``decision_log`` can be split from operational
  noise downstream.
* :func:`redact_event_dict` runs after ``format_exc_info``, so rendered
  tracebacks are scrubbed along with plain string fields.
"""

from __future__ import annotations

import logging
import sys

import structlog

from src.alerts.redactor import redact_event_dict
from src.core.config import get_settings


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Install the redacting structlog pipeline on the root logger.

    Safe to call more than once; the previous handler is replaced.

    Args:
        level: Log level override (e.g. "DEBUG"). Uses config if None.
        fmt: Renderer format override ("json" or "console"). Uses config if None.
    """
    settings = get_settings()
    log_level = getattr(logging, (level or settings.logging.level).upper(), logging.INFO)
    log_format = fmt or settings.logging.format

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_event_dict,
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)
