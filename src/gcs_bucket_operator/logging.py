"""Structured logging for the GCS Bucket Operator.

Every resource event is written as one JSON object per line so log
pipelines can index on controller, resource and reason.
"""

import json
import logging
import os
import sys
from typing import Any

REDACTED = "***REDACTED***"
SECRET_FIELDS = frozenset({"credentials", "private_key", "private_key_id", "token", "password"})

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("googleapiclient.discovery", "google.auth.transport.requests", "urllib3")


def setup_structured_logging(level: str | None = None) -> None:
    """Configure line-oriented logging on stdout.

    The level comes from ``LOG_LEVEL`` unless given explicitly.
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_resource_event(
    logger: logging.Logger,
    controller: str,
    resource_kind: str,
    resource_name: str,
    namespace: str,
    uid: str,
    event: str,
    reason: str,
    message: str,
    level: int = logging.INFO,
    **kwargs: Any,
) -> None:
    """Log a structured resource event with secret fields redacted."""
    record = dict(
        controller=controller,
        resource=resource_kind,
        name=resource_name,
        namespace=namespace,
        uid=uid,
        event=event,
        reason=reason,
        message=message,
    )
    record.update(sanitize_secrets(kwargs))
    logger.log(level, json.dumps(record, default=str))


def sanitize_secrets(log_data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of log_data with secret fields masked."""
    return {key: REDACTED if key in SECRET_FIELDS else value for key, value in log_data.items()}
