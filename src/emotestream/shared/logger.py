"""structlog setup shared by the aggregator, relay and producer."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

from .. import __version__

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _log_handler(service_name: str) -> logging.Handler:
    """stdout, or a rotating ``<LOG_DIR>/<service>.log`` when LOG_TO_FILE is true."""
    if os.getenv("LOG_TO_FILE", "false").lower() != "true":
        return logging.StreamHandler(sys.stdout)

    log_dir = os.getenv("LOG_DIR")
    if not log_dir:
        raise ValueError("LOG_DIR environment variable must be set when LOG_TO_FILE is enabled")

    path = Path(log_dir).resolve()
    path.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        path / f"{service_name}.log",
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )


class ServiceMetadata:
    """Processor stamping every entry with the emitting service."""

    def __init__(self, service_name: str, component: str | None = None, version: str = __version__):
        self.fields = {"service": service_name, "version": version}
        if component:
            self.fields["component"] = component

    def __call__(self, _logger: Any, _method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.update(self.fields)
        return event_dict


def configure_json_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
    component: str | None = None,
) -> None:
    """Route structlog through stdlib logging with JSON (or console) rendering.

    Args:
        service_name: 'aggregator', 'relay' or 'producer'
        level: Minimum level name, e.g. 'DEBUG'
        json_output: JSON lines when True, colored console output otherwise
        component: Optional sub-component tag
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = _log_handler(service_name)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.basicConfig(handlers=[handler], level=log_level, force=True)

    # aiokafka logs every rebalance at INFO
    logging.getLogger("aiokafka").setLevel(max(log_level, logging.WARNING))

    renderer = structlog.processors.JSONRenderer(ensure_ascii=False) if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            ServiceMetadata(service_name, component),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging_from_env(service_name: str, component: str | None = None) -> None:
    """Same as ``configure_json_logging`` with LOG_LEVEL and JSON_LOGS read from the environment."""
    json_output = os.getenv("JSON_LOGS", "true").lower() in ("true", "1", "yes", "on")
    configure_json_logging(service_name, os.getenv("LOG_LEVEL", "INFO"), json_output, component)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger; configuration is applied lazily on first use."""
    return structlog.get_logger(name)


def bind_connection_context(connection_id: str | None = None, remote_address: str | None = None) -> None:
    """Attach a viewer's id and address to every log entry from the current task."""
    context = {
        key: value
        for key, value in (("connection_id", connection_id), ("remote_address", remote_address))
        if value
    }
    if context:
        structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    """Drop every context variable bound in the current task."""
    structlog.contextvars.clear_contextvars()
