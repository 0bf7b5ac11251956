"""
Centralized logging configuration with structured logging support.
"""
import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from neuroreport.config.settings import Settings, settings

# Context variable for report run correlation across worker threads and
# async tasks. Set by the pipeline for the duration of one report run.
run_id_context: ContextVar[Optional[str]] = ContextVar("run_id", default=None)

# Structured fields passed through ``extra=`` by the generation client
STRUCTURED_FIELDS = ("domain_key", "model_id", "tier", "attempt", "latency_seconds")


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for production logging.

    Produces structured log entries with consistent fields for log aggregation.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        # Use record.created for accurate timing (epoch timestamp when record was created)
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_entry: Dict[str, Any] = {
            "timestamp": timestamp.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add run_id from context if available
        run_id = run_id_context.get()
        if run_id:
            log_entry["run_id"] = run_id

        # Add extra structured fields from record
        for name in STRUCTURED_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)

        # Add source location for error-level logs
        if record.levelno >= logging.ERROR:
            log_entry["source"] = f"{record.pathname}:{record.lineno}"

        # Add exception info if present
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(config: Optional[Settings] = None) -> None:
    """
    Configure package-wide logging with structured output.

    Configures:
    - Log levels based on settings
    - JSON formatting for production (structured for log aggregators)
    - Human-readable format for development
    - Run ID correlation via context variables

    Args:
        config: Settings to read; defaults to the global settings
    """
    config = config or settings
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    is_production = config.env == "production"

    logging_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "()": JSONFormatter,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "json" if is_production else "default",
                "stream": sys.stdout,
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
        "loggers": {
            "neuroreport": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            # Quiet down the HTTP client libraries
            "httpx": {
                "level": logging.DEBUG if config.debug else logging.WARNING,
                "handlers": ["console"],
                "propagate": False,
            },
            "openai": {
                "level": logging.WARNING,
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }

    logging.config.dictConfig(logging_config)
