"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from buho_gateway.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
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


def log_aggregation(
    request_id: str,
    user_id: str,
    operation: str,
    status: str,
    item_count: int,
    failed_link_count: int,
    duration_ms: float,
) -> None:
    """Log structured aggregation outcome for analysis"""
    logging.info(
        "Aggregation completed",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "step": f"{operation}_complete",
            "status": status,
            "item_count": item_count,
            "failed_link_count": failed_link_count,
            "duration_ms": duration_ms,
        },
    )
