"""Structured logging configuration."""

import logging
import sys
from pythonjsonlogger import jsonlogger
from tenantgate.infra.config import config

SERVICE_NAME = "tenantgate"

# Request and tenant fields passed through `extra=` across the tree
CONTEXT_FIELDS = (
    "request_id",
    "tenant_id",
    "tenant",
    "subdomain",
    "user_id",
    "session_id",
)


class TenantJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that groups request and tenant fields under `context`.

    Context fields that are missing or None are left out, so lines logged
    outside a request carry no empty context.
    """

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["service"] = SERVICE_NAME

        context = {}
        for field in CONTEXT_FIELDS:
            value = log_record.pop(field, None)
            if value is not None:
                context[field] = value
        if context:
            log_record["context"] = context


def setup_logging():
    """Setup structured JSON logging for the tenantgate logger tree."""
    logger = logging.getLogger(SERVICE_NAME)
    logger.setLevel(logging.DEBUG if config.DEBUG else logging.INFO)

    # Remove existing handlers
    logger.handlers = []

    formatter = TenantJsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Set levels for third-party loggers
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("alembic").setLevel(logging.WARNING)

    return logger


app_logger = setup_logging()
