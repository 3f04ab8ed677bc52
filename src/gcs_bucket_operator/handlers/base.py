"""Base handler class with common functionality for all CRD handlers."""

from __future__ import annotations

import logging
from typing import Any, Callable, NoReturn

import kopf

from .. import metrics
from ..constants import CONTROLLER_NAME, FINALIZER
from ..logging import log_resource_event
from ..utils.conditions import set_provider_not_ready_condition
from ..utils.errors import sanitize_exception
from ..utils.events import emit_reconcile_failed, emit_reconcile_started, emit_validate_failed

# Delay before re-checking a Provider that was missing or not Ready
PROVIDER_RETRY_SECONDS = 30


class BaseHandler:
    """Logging, finalizer and status bookkeeping shared by the handlers.

    Subclasses pass their resource kind; it labels every log line and
    metric the handler produces.
    """

    def __init__(self, kind: str):
        self.kind = kind
        self.logger = logging.getLogger(__name__)

    def _log(self, level: int, meta: dict[str, Any], message: str, event: str, reason: str, **kwargs: Any) -> None:
        log_resource_event(
            self.logger,
            controller=CONTROLLER_NAME,
            resource_kind=self.kind,
            resource_name=meta.get("name", "unknown"),
            namespace=meta.get("namespace", "default"),
            uid=meta.get("uid", "unknown"),
            event=event,
            reason=reason,
            message=message,
            level=level,
            **kwargs,
        )

    def log_info(
        self, meta: dict[str, Any], message: str, event: str = "info", reason: str = "Info", **kwargs: Any
    ) -> None:
        self._log(logging.INFO, meta, message, event, reason, **kwargs)

    def log_warning(
        self, meta: dict[str, Any], message: str, event: str = "warning", reason: str = "Warning", **kwargs: Any
    ) -> None:
        self._log(logging.WARNING, meta, message, event, reason, **kwargs)

    def log_error(
        self,
        meta: dict[str, Any],
        message: str,
        error: Exception | None = None,
        event: str = "error",
        reason: str = "Error",
        **kwargs: Any,
    ) -> None:
        """Log an error, attaching the sanitized exception when given."""
        if error is not None:
            kwargs.update(error=sanitize_exception(error), error_type=type(error).__name__)
        self._log(logging.ERROR, meta, message, event, reason, **kwargs)

    def _count(self, result: str) -> None:
        metrics.reconcile_total.labels(kind=self.kind, result=result).inc()

    def handle_provider_not_ready(
        self,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        provider_name: str,
        error_msg: str,
    ) -> NoReturn:
        """Record a missing or unready provider and ask kopf to retry later.

        Raises:
            kopf.TemporaryError: Always
        """
        self.log_warning(meta, error_msg, reason="ProviderNotReady", provider=provider_name)
        emit_reconcile_failed(meta, error_msg)
        self._count("failed")
        patch.status.update({
            "conditions": set_provider_not_ready_condition(status.get("conditions", []), error_msg),
            "observedGeneration": meta.get("generation", 0),
        })
        raise kopf.TemporaryError(error_msg, delay=PROVIDER_RETRY_SECONDS)

    def handle_validation_error(self, meta: dict[str, Any], error_msg: str) -> NoReturn:
        """Report an invalid resource. Retrying cannot fix it, so the error is permanent."""
        self.log_error(meta, error_msg, reason="ValidationFailed")
        emit_validate_failed(meta, error_msg)
        metrics.error_total.labels(kind=self.kind, error_type="ValidationError").inc()
        raise kopf.PermanentError(error_msg)

    def ensure_finalizer(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        finalizers = list(meta.get("finalizers", []))
        if FINALIZER not in finalizers:
            patch.metadata["finalizers"] = finalizers + [FINALIZER]

    def remove_finalizer(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        finalizers = list(meta.get("finalizers", []))
        if FINALIZER in finalizers:
            remaining = [f for f in finalizers if f != FINALIZER]
            patch.metadata["finalizers"] = remaining or None

    def reconcile_with_metrics(self, meta: dict[str, Any], reconcile_fn: Callable[[], None]) -> None:
        """Run reconcile_fn, timing it and counting its outcome.

        kopf errors were already reported where they were raised and pass
        straight through; anything else is logged and posted as an event
        before being re-raised.
        """
        emit_reconcile_started(meta)
        self._count("started")

        with metrics.reconcile_duration_seconds.labels(kind=self.kind).time():
            try:
                reconcile_fn()
            except (kopf.PermanentError, kopf.TemporaryError):
                self._count("failed")
                raise
            except Exception as e:
                metrics.error_total.labels(kind=self.kind, error_type=type(e).__name__).inc()
                self.log_error(meta, "Reconciliation failed", error=e, reason="ReconciliationFailed")
                emit_reconcile_failed(meta, f"Reconciliation failed: {sanitize_exception(e)}")
                self._count("error")
                raise
        self._count("success")

    def update_resource_status(
        self,
        patch: kopf.Patch,
        meta: dict[str, Any],
        ready: bool,
        status_data: dict[str, Any] | None = None,
    ) -> None:
        """Patch status with the observed generation plus status_data."""
        metrics.resource_status_total.labels(kind=self.kind, status="ready" if ready else "not_ready").inc()
        patch.status.update({"observedGeneration": meta.get("generation", 0), **(status_data or {})})
