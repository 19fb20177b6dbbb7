"""
Structured logging for the workflow coach.

Log records carry coach identifiers (user, workflow, insight) as structured
fields so a workflow can be followed from activity recording through
analysis to stored insights:

    logger.info("Stored insights", extra=log_fields(workflow_id=wid, insight_count=3))

JSON output in production (or LOG_FORMAT=json); text otherwise, with the
identifiers appended as key=value pairs.
"""
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import UUID
from core.config import settings

SERVICE_NAME = "workflow-coach"


def log_fields(**fields: Any) -> Dict[str, Dict[str, Any]]:
    """Build the `extra` mapping for a log call; None values are dropped."""
    return {
        "extra_fields": {
            key: str(value) if isinstance(value, UUID) else value
            for key, value in fields.items()
            if value is not None
        }
    }


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, "extra_fields", None) or {}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, coach identifiers at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "environment": settings.ENVIRONMENT,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        log_data.update(_extra_fields(record))

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Plain text for development; structured fields trail the message."""

    def __init__(self):
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _extra_fields(record)
        if fields:
            line += " " + " ".join(f"{key}={value}" for key, value in fields.items())
        return line


def setup_logging():
    """
    Configure application-wide logging for the API and the worker.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    if settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production":
        formatter = JSONFormatter()
    else:
        formatter = TextFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # LLM SDKs and the ORM are chatty at INFO
    for name in ("sqlalchemy.engine", "httpx", "openai", "anthropic"):
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)

    return root_logger
