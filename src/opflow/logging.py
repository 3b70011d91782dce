import logging
from typing import Any

import structlog

from opflow.config import Settings


def configure_logging(level: int | str = logging.INFO, *, json: bool = True) -> None:
    """Configure structlog/standard logging bridge."""

    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)
    renderer: Any = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level, format="%(message)s")


def configure_from_settings(settings: Settings) -> None:
    """Configure logging with the level from application settings."""

    configure_logging(settings.log_level.upper())


def bind_context(**kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Bind contextual fields for downstream logs."""

    logger = structlog.get_logger()
    return logger.bind(**kwargs)


def bind_plan_context(instance_namespace: str, instance_name: str, plan: str) -> structlog.stdlib.BoundLogger:
    """Logger carrying the instance and plan a tick is working on."""

    return bind_context(instance=f"{instance_namespace}/{instance_name}", plan=plan)
