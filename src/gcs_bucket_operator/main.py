"""Main entry point for the GCS Bucket Operator.

Run with ``kopf run -m gcs_bucket_operator.main``.
"""

from __future__ import annotations

import os
import threading
from typing import Any

import kopf
from werkzeug.serving import make_server

from . import handlers  # noqa: F401
from . import health
from . import logging as structured_logging
from .tracing import initialize_tracing


def serve_health(port: int) -> None:
    """Serve health checks and metrics from a daemon thread."""
    server = make_server("", port, health.create_combined_wsgi_app(), threaded=True)
    threading.Thread(target=server.serve_forever, name="health", daemon=True).start()


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure the operator."""
    structured_logging.setup_structured_logging()
    initialize_tracing()

    # Keep handler progress out of .status, which the handlers own
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage()
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage()

    settings.posting.level = 0
    settings.networking.request_timeout = 30.0
    settings.execution.max_workers = int(os.getenv("MAX_WORKERS", "4"))

    serve_health(int(os.getenv("METRICS_PORT", "8080")))
    health.mark_ready()


@kopf.on.cleanup()
def shutdown(**_: Any) -> None:
    health.mark_not_ready()
