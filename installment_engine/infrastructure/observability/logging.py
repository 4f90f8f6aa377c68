"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger.json import JsonFormatter

from installment_engine.config import settings


class CustomJsonFormatter(JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_transition(operation: str, entity_id: str, status: str, **fields: Any) -> None:
    """Log a committed state transition for audit and analysis"""
    logging.info(
        "Transition committed",
        extra={
            "operation": operation,
            "entity_id": entity_id,
            "new_status": status,
            **fields,
        },
    )


def log_rejected_command(operation: str, error: Exception, **fields: Any) -> None:
    """Log a command the engine refused (validation, state guard or policy)"""
    logging.warning(
        f"Command rejected: {error}",
        extra={
            "operation": operation,
            "error_type": type(error).__name__,
            **fields,
        },
    )
