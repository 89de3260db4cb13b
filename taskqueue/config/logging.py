import logging
import sys
from typing import Any

import structlog

from .settings import Settings, settings as default_settings


def _shared_processors(settings: Settings) -> list[Any]:
    callsite = [structlog.processors.CallsiteParameter.THREAD_NAME]
    if settings.debug:
        callsite.insert(0, structlog.processors.CallsiteParameter.FUNC_NAME)

    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        # Worker threads are named after their pool
        structlog.processors.CallsiteParameterAdder(parameters=callsite),
    ]


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structured logging with structlog.

    structlog and stdlib loggers share one stdout handler; stdlib records keep
    their ``extra=`` fields. Console output in debug, JSON lines otherwise.
    """
    settings = settings or default_settings
    level = getattr(logging, settings.log_level)
    shared = _shared_processors(settings)

    if settings.debug:
        renderers = [structlog.dev.ConsoleRenderer()]
    else:
        renderers = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[*shared, structlog.stdlib.ExtraAdder()],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *renderers,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def add_request_context(request_id: str, **context: Any) -> None:
    """Replace the log context with this request's id and fields."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **context)
