"""structlog setup for the action Lambdas.

CloudWatch gets one JSON object per line; ``LOG_FORMAT=console`` switches
to the coloured dev renderer for local runs.
"""

import logging
import os
import sys

import structlog

_configured = False


def configure_logging(level: str | None = None, fmt: str | None = None, force: bool = False) -> None:
    """Configure structlog and the stdlib root logger once per process."""
    global _configured
    if _configured and not force:
        return

    level_name = (level or os.environ.get('LOG_LEVEL', 'INFO')).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    fmt = (fmt or os.environ.get('LOG_FORMAT', 'json')).lower()

    renderer = (
        structlog.dev.ConsoleRenderer()
        if fmt == 'console'
        else structlog.processors.JSONRenderer()
    )

    logging.basicConfig(format='%(message)s', stream=sys.stderr, level=log_level, force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt='iso'),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True
