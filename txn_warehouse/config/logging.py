"""
Logging Configuration for the Transaction Warehouse

Every event, from structlog or from stdlib loggers (uvicorn, prefect),
goes through one ProcessorFormatter on stderr, so stdout stays free for the
CLI's JSON reports. Events carry the service name and environment; the load
pipeline binds ``run_source`` for the duration of a run.
"""

import logging
import sys
from typing import Any, Dict, List, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import ProcessorFormatter, add_log_level

from txn_warehouse.config.settings import get_settings

LOG_FORMATS = ("json", "text")

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio", "httpx")

# Server loggers that should share the warehouse handler
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "gunicorn.error")


def _service_fields(service: str, environment: str):
    def add_service(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service)
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_service


def _renderer(log_format: str, stream) -> Any:
    if log_format == "json":
        return JSONRenderer()
    if log_format == "text":
        return structlog.dev.ConsoleRenderer(colors=stream.isatty())
    raise ValueError(f"log format must be one of {LOG_FORMATS}, got {log_format!r}")


def configure_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Route structlog and stdlib logging through a single stderr handler.

    Args:
        log_level: Override ``LOG_LEVEL`` (DEBUG, INFO, WARNING, ERROR)
        log_format: Override ``LOG_FORMAT`` (json or text)

    Raises:
        ValueError: unknown log format
    """
    settings = get_settings()
    level_name = (log_level or settings.monitoring.log_level).upper()
    log_format = (log_format or settings.monitoring.log_format).lower()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    stream = sys.stderr
    pre_chain: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        _service_fields(settings.app_name, settings.app_env),
        TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=pre_chain + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        ProcessorFormatter(
            processors=[ProcessorFormatter.remove_processors_meta, _renderer(log_format, stream)],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers = []
        server_logger.propagate = True
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.get_logger(__name__).debug(
        "Logging configured",
        level=level_name,
        format=log_format,
    )
