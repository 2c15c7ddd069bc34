"""Structured JSON logging and Prometheus metrics"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict

from prometheus_client import Counter
from pythonjsonlogger import jsonlogger

from .config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on the root logger"""
    logger = logging.getLogger()
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
    logger.addHandler(handler)


operation_counter = Counter(
    "campus_bank_operation_total",
    "Banking operations handled by the actions facade",
    ["operation", "outcome"],  # outcome: success | <error kind>
)

settled_amount_counter = Counter(
    "campus_bank_settled_amount_total",
    "Money moved between accounts, in currency units",
    ["type"],  # purchase | transfer | deposit | withdrawal
)


def record_operation(operation: str, outcome: str) -> None:
    operation_counter.labels(operation=operation, outcome=outcome).inc()


def record_settlement(transaction_type: str, amount: Decimal) -> None:
    settled_amount_counter.labels(type=transaction_type).inc(float(amount))
