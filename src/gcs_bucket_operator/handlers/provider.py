"""Handler for Provider CRD.

A Provider carries the Google Cloud project, the credentials used to reach
it and the default labels stamped onto every Bucket that references it.
Reconciling it proves the credentials load and the Cloud Storage API
answers; Buckets only proceed once the Provider reports Ready.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import kopf

from .. import metrics
from ..builders.provider import ProviderConfig, create_provider_from_spec
from ..constants import API_GROUP_VERSION, KIND_PROVIDER
from ..tracing import trace_span
from ..utils.conditions import (
    set_auth_valid_condition,
    set_endpoint_reachable_condition,
    set_ready_condition,
)
from ..utils.errors import ValidationError, sanitize_exception
from ..utils.events import emit_validate_succeeded
from .base import BaseHandler
from .shared import invalidate_provider_cache

NOT_READY_RETRY_SECONDS = 60


class ProviderHandler(BaseHandler):
    """Handler for Provider resources."""

    def __init__(self):
        super().__init__(KIND_PROVIDER)

    def load(self, spec: dict[str, Any], meta: dict[str, Any]) -> tuple[ProviderConfig | None, str]:
        """Build the provider configuration.

        Returns:
            The configuration, or None with the reason credentials failed
        """
        with trace_span("load_credentials", kind=KIND_PROVIDER):
            try:
                return create_provider_from_spec(spec, meta), "Credentials loaded"
            except ValidationError as e:
                self.handle_validation_error(meta, str(e))
            except Exception as e:
                message = f"Authentication failed: {sanitize_exception(e)}"
                metrics.error_total.labels(kind=KIND_PROVIDER, error_type=type(e).__name__).inc()
                self.log_error(meta, message, error=e, reason="AuthFailed")
                return None, message

    def check_connectivity(self, provider: ProviderConfig, meta: dict[str, Any]) -> tuple[bool, str]:
        """Check that the Cloud Storage API answers with these credentials."""
        name = meta.get("name", "unknown")
        with trace_span("test_connectivity", kind=KIND_PROVIDER, attributes={"gcp.project": provider.project}):
            try:
                connected = provider.client.test_connectivity()
            except Exception as e:
                message = f"Connectivity test failed: {sanitize_exception(e)}"
                metrics.error_total.labels(kind=KIND_PROVIDER, error_type=type(e).__name__).inc()
                metrics.provider_connectivity_total.labels(provider=name, status="error").inc()
                self.log_error(meta, message, error=e, reason="ConnectivityFailed")
                return False, message

        metrics.provider_connectivity_total.labels(
            provider=name, status="connected" if connected else "disconnected"
        ).inc()
        if connected:
            return True, f"Cloud Storage API is reachable for project {provider.project}"
        return False, f"Cloud Storage API is unreachable for project {provider.project}"

    def reconcile(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Reconcile Provider resource."""
        name = meta.get("name", "unknown")
        namespace = meta.get("namespace", "default")

        with trace_span("reconcile_provider", kind=KIND_PROVIDER, attributes={"provider.name": name}):
            if not spec.get("project"):
                self.handle_validation_error(meta, "project is required")
            emit_validate_succeeded(meta)

            # Buckets must pick up new default labels and credentials
            invalidate_provider_cache(namespace, name)

            provider, auth_message = self.load(spec, meta)
            if provider is None:
                connected, endpoint_message = False, "Cannot test connectivity due to auth failure"
            else:
                connected, endpoint_message = self.check_connectivity(provider, meta)

            ready = provider is not None and connected
            conditions = set_auth_valid_condition(status.get("conditions", []), provider is not None, auth_message)
            conditions = set_endpoint_reachable_condition(conditions, connected, endpoint_message)
            conditions = set_ready_condition(conditions, ready, "Provider is ready" if ready else endpoint_message)

            self.update_resource_status(patch, meta, ready, {
                "connected": connected,
                "lastConnectTime": datetime.now(timezone.utc).isoformat() if connected else None,
                "conditions": conditions,
            })

            if not ready:
                raise kopf.TemporaryError(
                    auth_message if provider is None else endpoint_message, delay=NOT_READY_RETRY_SECONDS
                )
            self.log_info(meta, f"Provider {name} is ready", reason="ProviderReady", project=provider.project)

    def delete(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        """Forget cached configuration and release the Provider."""
        self.log_info(meta, "Provider is being deleted", event="deletion", reason="Deletion")
        invalidate_provider_cache(meta.get("namespace", "default"), meta.get("name", ""))
        self.remove_finalizer(meta, patch)


# Global handler instance
_handler = ProviderHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_PROVIDER)
@kopf.on.update(API_GROUP_VERSION, KIND_PROVIDER)
@kopf.on.resume(API_GROUP_VERSION, KIND_PROVIDER)
def handle_provider(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle Provider resource reconciliation."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(meta, lambda: _handler.reconcile(spec, meta, status, patch))


@kopf.on.delete(API_GROUP_VERSION, KIND_PROVIDER)
def handle_provider_delete(
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle Provider resource deletion."""
    _handler.delete(meta, patch)
