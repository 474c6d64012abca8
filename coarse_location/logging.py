import logging
import sys
import structlog
from typing import Optional
from coarse_location.core.config import settings

def configure_logging(env: Optional[str] = None, level: Optional[str] = None):
    """
    Configures structlog to intercept standard library logs and setup
    JSON rendering for production or Console rendering for local development.

    Coarsening code never logs coordinates, so the output is safe to ship
    off-device.
    """
    env = env or settings.ENV
    level = level or settings.LOG_LEVEL
    is_local = env.lower() == "development"

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if is_local:
        # Human-readable for local development
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer()
        ]
    else:
        # JSON for production
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer()
        ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, level.upper(), logging.INFO))

    return processors
