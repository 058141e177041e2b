"""Structured logging configuration for Agora Commons."""

import json
import logging
import logging.config
import logging.handlers
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, MutableMapping

from .config import DEFAULT_LOG_PATH

# Chatty third-party loggers and the level they are held at.
QUIET_LOGGERS = {
    "aiosqlite": "WARNING",
    "httpx": "WARNING",
    "uvicorn.access": "WARNING",
}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``context`` carries structured fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        context = getattr(record, "context", None)
        if context:
            log_data["context"] = context

        return json.dumps(log_data, default=str)


class ContextLogger(logging.LoggerAdapter):
    """Logger with fields bound once (e.g. a session id) and merged into every record.

    Per-call ``extra={"context": {...}}`` is merged over the bound fields.
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["context"] = {**self.extra, **(extra.get("context") or {})}
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
) -> None:
    """
    Setup structured logging for the application.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
                   Defaults to LOG_LEVEL env var or INFO.
        log_file: Path to log file. Defaults to LOG_FILE env var or
                  04_logs/app.log; "-" logs to stdout only.
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")

    if log_file is None:
        log_file = os.getenv("LOG_FILE") or str(DEFAULT_LOG_PATH)

    handlers: dict[str, dict] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "stream": "ext://sys.stdout",
        },
    }
    if log_file != "-":
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,  # 10 MB
            "backupCount": 5,
            "formatter": "json",
            "encoding": "utf-8",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": "agora.logging_config.JSONFormatter"},
            },
            "handlers": handlers,
            "loggers": {
                # uvicorn installs its own handlers; route its records through ours.
                "uvicorn": {"handlers": [], "propagate": True},
                "uvicorn.error": {"handlers": [], "propagate": True},
                **{
                    name: {"level": level, "propagate": True}
                    for name, level in QUIET_LOGGERS.items()
                },
            },
            "root": {
                "level": log_level.upper(),
                "handlers": list(handlers),
            },
        }
    )


def get_logger(name: str, **context: Any) -> logging.Logger | ContextLogger:
    """
    Get a logger instance.

    Args:
        name: Logger name (typically __name__ of the module)
        **context: Fields attached to every record from this logger

    Returns:
        Plain logger, or a ContextLogger when context is given
    """
    logger = logging.getLogger(name)
    if context:
        return ContextLogger(logger, context)
    return logger
