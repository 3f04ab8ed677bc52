"""Liveness, readiness and metrics endpoints served on one port."""

from __future__ import annotations

import json
import threading
from typing import Any

from prometheus_client import make_wsgi_app
from werkzeug.middleware.dispatcher import DispatcherMiddleware
from werkzeug.wrappers import Request, Response

_ready = threading.Event()


def mark_ready() -> None:
    """Report the operator as ready once startup has finished."""
    _ready.set()


def mark_not_ready() -> None:
    _ready.clear()


def _json(payload: dict[str, Any], status: int) -> Response:
    return Response(json.dumps(payload, separators=(",", ":")), mimetype="application/json", status=status)


@Request.application
def health_app(request: Request) -> Response:
    """Answer /healthz always and /readyz once startup completed."""
    if request.path == "/healthz":
        return _json({"status": "ok"}, 200)
    if request.path == "/readyz":
        if _ready.is_set():
            return _json({"status": "ready"}, 200)
        return _json({"status": "starting"}, 503)
    return _json({"error": "not found"}, 404)


def create_combined_wsgi_app() -> Any:
    """Create the WSGI app serving health checks and Prometheus metrics under /metrics."""
    return DispatcherMiddleware(health_app, {"/metrics": make_wsgi_app()})
