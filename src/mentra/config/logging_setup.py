"""structlog configuration.

- JSON rendering for production (machine-parseable)
- Console rendering for development
"""

from __future__ import annotations

import logging

import structlog

from mentra.config.app_config import LoggingConfig

_configured = False


def configure_logging(config: LoggingConfig, force: bool = False) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        config: Level and renderer settings
        force: Reconfigure even if already configured
    """
    global _configured
    if _configured and not force:
        return

    level = getattr(logging, config.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s", force=True)

    if config.format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )

    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    _configured = True
