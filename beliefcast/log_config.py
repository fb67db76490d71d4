"""
Structured logging setup.

Installs the structlog processor chain used across the engine. JSON
rendering for deployments, console rendering for development. The
application name, version and environment are bound into the context of
every event.
"""

import logging
import sys
from typing import Optional

import structlog

from beliefcast.config import Settings, settings as default_settings


def configure_logging(config: Optional[Settings] = None) -> None:
    """Configure structlog and the stdlib root logger from settings."""
    config = config or default_settings
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if config.log_format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Every event names the build and deployment it came from
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        app=config.app_name,
        version=config.app_version,
        environment=config.environment,
    )
