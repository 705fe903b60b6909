"""structlog configuration for the CareerNet API.

Two output modes:
- Human (default): colored console output to stderr
- JSON (LOG_JSON=true): structured JSON lines to stderr

Request context (request_id, method, path) is bound per request by the
middleware in careernet.main and merged in through contextvars.
"""

from __future__ import annotations

import logging
import sys

import structlog


def _stamp(fields: dict[str, str]) -> structlog.types.Processor:
    """Processor adding fixed deployment fields without overriding bound ones."""

    def processor(logger: object, method_name: str, event_dict: structlog.types.EventDict) -> structlog.types.EventDict:
        for key, value in fields.items():
            event_dict.setdefault(key, value)
        return event_dict

    return processor


def configure_logging(
    *,
    level: str = "INFO",
    log_json: bool = False,
    service: str | None = None,
    environment: str | None = None,
) -> None:
    """Configure structlog processors and route stdlib logging through them.

    Args:
        level: Level name applied to the ``careernet`` logger tree.
        log_json: Use JSON renderer instead of console renderer.
        service: Name stamped on every event as ``service``.
        environment: Deployment name stamped on every event as ``environment``.
    """
    app_level = logging.getLevelName(level.upper())
    if not isinstance(app_level, int):
        app_level = logging.INFO

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    static_fields = {
        key: value
        for key, value in (("service", service), ("environment", environment))
        if value
    }
    if static_fields:
        shared_processors.append(_stamp(static_fields))

    if log_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

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

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING)

    logging.getLogger("careernet").setLevel(app_level)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
