"""
Structured logging for the API process and the Celery workers.

Request and job handlers bind their identifiers (``request_id``,
``dataset_id``, ``task_id``) with ``bind_log_context``; every structlog
event emitted afterwards in the same context carries them.
"""

import logging
import sys
from typing import Any, Dict

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars
from structlog.processors import JSONRenderer, TimeStamper, add_log_level

from catalog.core.config import settings


def _renderer():
    if settings.is_production or settings.log_format == "json":
        return JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer()


def setup_logging() -> None:
    """
    Configure structlog and the standard library loggers for the current tier.
    """
    processors = [
        merge_contextvars,
        TimeStamper(fmt="iso"),
        add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        _renderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level.value)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=settings.log_level.value,
    )

    access_level = logging.WARNING if settings.is_production else logging.INFO
    logging.getLogger("uvicorn.access").setLevel(access_level)

    # Suppress noisy libraries
    for noisy in ("httpx", "openai", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def bind_log_context(clear: bool = True, **values: Any) -> Dict[str, Any]:
    """
    Bind values to the logging context, e.g. for one request or one Celery task.

    Args:
        clear: Drop previously bound values first

    Returns:
        The bound values
    """
    if clear:
        clear_contextvars()
    bound = {key: str(value) for key, value in values.items() if value is not None}
    bind_contextvars(**bound)
    return bound


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    """
    Get a structured logger bound to the service identity.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name).bind(
        tier=settings.deployment_tier.value,
        environment=settings.env,
        service=settings.name,
    )


logger = get_logger(__name__)
