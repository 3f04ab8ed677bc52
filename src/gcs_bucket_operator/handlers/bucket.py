"""Handler for Bucket CRD."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any

import kopf
from googleapiclient.errors import HttpError

from .. import metrics
from ..builders.bucket import build_patch, create_bucket_spec_from_crd, immutable_field_changes
from ..builders.provider import ProviderConfig
from ..constants import (
    ANNOTATION_IMPORT_ID,
    API_GROUP_VERSION,
    COND_DELETION_BLOCKED,
    GCS_CREATE_MAX_ATTEMPTS,
    GCS_DELETE_RETRY_TIMEOUT_SECONDS,
    KIND_BUCKET,
)
from ..services.gcs.base import StorageProvider
from ..services.gcs.client import is_not_found, is_rate_limited, is_transient
from ..services.gcs.models import BucketSpec, ObjectVersion, RemoteBucketState, VersioningConfig
from ..tracing import add_span_attribute, trace_span
from ..utils.conditions import (
    remove_condition,
    set_creation_failed_condition,
    set_deletion_blocked_condition,
    set_ready_condition,
)
from ..utils.errors import BucketNotEmptyError, ValidationError, sanitize_exception
from ..utils.events import (
    emit_bucket_absent,
    emit_bucket_created,
    emit_bucket_deleted,
    emit_bucket_imported,
    emit_bucket_updated,
    emit_validate_succeeded,
)
from ..utils.labels import LabelState, project_labels, reconcile_labels
from ..utils.rate_limit import retry_transient, retry_until_deadline
from .base import BaseHandler
from .shared import ProviderUnavailableError, resolve_provider

logger = logging.getLogger(__name__)

DRIFT_CHECK_INTERVAL_SECONDS = int(os.getenv("DRIFT_CHECK_INTERVAL_SECONDS", "300"))
DELETION_BLOCKED_RECHECK_SECONDS = int(os.getenv("DELETION_BLOCKED_RECHECK_SECONDS", "300"))


def deletion_pool_size() -> int:
    """Number of workers used to delete objects in parallel."""
    return max((os.cpu_count() or 1) - 1, 1)


def delete_object_versions(
    client: StorageProvider,
    bucket_name: str,
    versions: list[ObjectVersion],
    max_workers: int | None = None,
) -> list[tuple[ObjectVersion, Exception]]:
    """Delete the given object versions on a bounded worker pool.

    The pool is created for this call and fully drained before returning.
    Failures are logged and returned, never raised.

    Args:
        client: Storage provider
        bucket_name: Bucket holding the objects
        versions: Distinct (name, generation) pairs to delete
        max_workers: Pool size; defaults to the CPU count minus one

    Returns:
        The versions that could not be deleted with their errors
    """
    def delete_one(version: ObjectVersion) -> Exception | None:
        logger.debug(f"Deleting {bucket_name}/{version.name}#{version.generation}")
        try:
            client.delete_object(bucket_name, version.name, version.generation)
        except Exception as e:
            # The bucket deletion that follows reports leftover objects
            logger.error(
                f"Failed to delete storage object {bucket_name}/{version.name}#{version.generation}: "
                f"{sanitize_exception(e)}"
            )
            metrics.object_deletions_total.labels(result="failed").inc()
            return e
        metrics.object_deletions_total.labels(result="success").inc()
        return None

    with ThreadPoolExecutor(max_workers=max_workers or deletion_pool_size()) as pool:
        results = list(pool.map(delete_one, versions))

    return [(version, error) for version, error in zip(versions, results) if error is not None]


class BucketHandler(BaseHandler):
    """Handler for Bucket resources."""

    def __init__(self):
        """Initialize bucket handler."""
        super().__init__(KIND_BUCKET)

    # Spec parsing and planning

    def parse_spec(self, spec: dict[str, Any], meta: dict[str, Any]) -> BucketSpec:
        """Validate the CRD spec once, before any remote call."""
        try:
            bucket_spec = create_bucket_spec_from_crd(spec)
        except ValidationError as e:
            self.handle_validation_error(meta, str(e))
        emit_validate_succeeded(meta)
        return bucket_spec

    def get_provider(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> ProviderConfig:
        """Resolve the referenced Provider or ask kopf to retry later."""
        try:
            return resolve_provider(spec, meta)
        except ProviderUnavailableError as e:
            if not e.provider_name:
                self.handle_validation_error(meta, str(e))
            self.handle_provider_not_ready(meta, status, patch, e.provider_name, str(e))

    def plan_labels(
        self,
        bucket_spec: BucketSpec,
        provider: ProviderConfig,
        status: dict[str, Any],
    ) -> LabelState:
        """Predict the label views the next apply produces."""
        return reconcile_labels(provider.default_labels, bucket_spec.labels, LabelState.from_status(status))

    # CRUD

    def create(
        self,
        bucket_spec: BucketSpec,
        provider: ProviderConfig,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> RemoteBucketState | None:
        """Create the bucket from its full specification, then read it back."""
        bucket_name = bucket_spec.name
        project = bucket_spec.project or provider.project
        planned = self.plan_labels(bucket_spec, provider, status)
        patch.status.update(planned.to_status())
        body = bucket_spec.to_api(labels=planned.managed)

        with trace_span("create_bucket", kind=KIND_BUCKET, attributes={"bucket.name": bucket_name}):
            try:
                resource = retry_transient(
                    lambda: provider.client.insert_bucket(project, body),
                    operation=f"Create bucket {bucket_name}",
                    is_retryable=is_transient,
                    max_attempts=GCS_CREATE_MAX_ATTEMPTS,
                )
            except HttpError as e:
                error_msg = f"Failed to create bucket: {sanitize_exception(e)}"
                self.log_error(meta, error_msg, error=e, reason="CreationFailed", bucket_name=bucket_name)
                metrics.bucket_operations_total.labels(operation="create", result="failed").inc()
                patch.status.update({
                    "exists": False,
                    "conditions": set_creation_failed_condition(status.get("conditions", []), error_msg),
                    "observedGeneration": meta.get("generation", 0),
                })
                if e.resp.status == 409:
                    raise kopf.PermanentError(
                        f"Bucket name {bucket_name} is already taken; annotate the resource with "
                        f"{ANNOTATION_IMPORT_ID} to adopt an existing bucket"
                    ) from e
                raise

        patch.status["bucketId"] = resource.get("id", bucket_name)
        metrics.bucket_operations_total.labels(operation="create", result="success").inc()
        emit_bucket_created(meta, bucket_name)
        self.log_info(meta, f"Created bucket {bucket_name}", reason="BucketCreated",
                      bucket_name=bucket_name, self_link=resource.get("selfLink"))

        return self.read(bucket_spec, provider, meta, status, patch, planned)

    def read(
        self,
        bucket_spec: BucketSpec,
        provider: ProviderConfig,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        planned: LabelState | None = None,
    ) -> RemoteBucketState | None:
        """Refresh status from the remote bucket.

        Returns:
            The remote snapshot, or None when the bucket no longer exists
        """
        bucket_name = bucket_spec.name
        with trace_span("read_bucket", kind=KIND_BUCKET, attributes={"bucket.name": bucket_name}):
            try:
                resource = provider.client.get_bucket(bucket_name)
            except HttpError as e:
                if not is_not_found(e):
                    raise
                self.log_warning(meta, f"Bucket {bucket_name} not found, marking it absent",
                                 reason="BucketAbsent", bucket_name=bucket_name)
                emit_bucket_absent(meta, bucket_name)
                patch.status.update({
                    "exists": False,
                    "bucketId": None,
                    "selfLink": None,
                    "conditions": set_ready_condition(
                        status.get("conditions", []), False, f"Bucket {bucket_name} does not exist"
                    ),
                })
                return None

            remote = RemoteBucketState.from_api(resource)

            # Only look the project up when neither the spec nor a previous read pinned it
            project = bucket_spec.project or status.get("project")
            if not project:
                project = provider.client.get_project_id(remote.project_number)
                self.log_info(meta, f"Bucket {bucket_name} is in project {project}",
                              reason="ProjectResolved", bucket_name=bucket_name)

            if planned is None:
                planned = self.plan_labels(bucket_spec, provider, status)

            # Keys dropped from the plan stay managed until a patch has removed them remotely
            previous = LabelState.from_status(status)
            labels = LabelState(
                user=project_labels(remote.labels, bucket_spec.labels),
                managed=project_labels(remote.labels, {**previous.managed, **planned.managed}),
                effective=dict(remote.labels),
            )

            status_data = {
                "exists": True,
                "bucketId": remote.id,
                "bucketName": remote.name,
                "selfLink": remote.self_link,
                "url": f"gs://{bucket_name}",
                "project": project,
                "location": remote.location,
                "storageClass": remote.storage_class,
                "encryption": remote.encryption.to_api() if remote.encryption else None,
                "cors": [rule.to_crd() for rule in remote.cors],
                "logging": remote.logging.to_crd() if remote.logging else None,
                "versioning": remote.versioning.to_api() if remote.versioning else None,
                "website": remote.website.to_crd() if remote.website else None,
                "lifecycleRules": [rule.to_crd() for rule in remote.lifecycle_rules],
                "requesterPays": remote.requester_pays,
                "lastSyncTime": datetime.now(timezone.utc).isoformat(),
                "conditions": set_ready_condition(
                    remove_condition(status.get("conditions", []), COND_DELETION_BLOCKED),
                    True,
                    f"Bucket {bucket_name} is ready",
                ),
                **labels.to_status(),
            }
            self.update_resource_status(patch, meta, True, status_data)
            return remote

    def update(
        self,
        old_spec: dict[str, Any],
        bucket_spec: BucketSpec,
        provider: ProviderConfig,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> RemoteBucketState | None:
        """Send a sparse patch for the fields that changed between two specs."""
        bucket_name = bucket_spec.name
        try:
            previous: BucketSpec | None = create_bucket_spec_from_crd(old_spec)
        except ValidationError:
            # The old spec was never applied; send every mutable field
            previous = None

        if previous is not None:
            changed = immutable_field_changes(previous, bucket_spec)
            if changed:
                self.handle_validation_error(meta, f"Fields cannot be changed after creation: {', '.join(changed)}")

        if not status.get("exists"):
            return self.create(bucket_spec, provider, meta, status, patch)

        planned = self.plan_labels(bucket_spec, provider, status)
        patch.status.update(planned.to_status())
        body = build_patch(previous, bucket_spec, LabelState.from_status(status).managed, planned.managed)
        return self._apply_patch(bucket_spec, provider, meta, status, patch, planned, body)

    def _apply_patch(
        self,
        bucket_spec: BucketSpec,
        provider: ProviderConfig,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        planned: LabelState,
        body: dict[str, Any],
    ) -> RemoteBucketState | None:
        bucket_name = bucket_spec.name
        if not body:
            self.log_info(meta, f"Bucket {bucket_name} has no changes to apply", reason="NoChanges")
            return self.read(bucket_spec, provider, meta, status, patch, planned)

        with trace_span("patch_bucket", kind=KIND_BUCKET, attributes={"bucket.name": bucket_name}):
            add_span_attribute("bucket.patch_fields", ",".join(sorted(body)))
            try:
                resource = provider.client.patch_bucket(bucket_name, body)
            except HttpError as e:
                if is_not_found(e):
                    self.log_warning(meta, f"Bucket {bucket_name} disappeared before patching, recreating",
                                     reason="BucketAbsent", bucket_name=bucket_name)
                    return self.create(bucket_spec, provider, meta, status, patch)
                metrics.bucket_operations_total.labels(operation="patch", result="failed").inc()
                raise

        patch.status.update({"selfLink": resource.get("selfLink"), "bucketId": resource.get("id", bucket_name)})
        metrics.bucket_operations_total.labels(operation="patch", result="success").inc()
        emit_bucket_updated(meta, bucket_name)
        self.log_info(meta, f"Patched bucket {bucket_name}", reason="BucketUpdated",
                      bucket_name=bucket_name, fields=sorted(body))
        return self.read(bucket_spec, provider, meta, status, patch, planned)

    def delete_bucket(
        self,
        client: StorageProvider,
        bucket_name: str,
        force_destroy: bool,
        meta: dict[str, Any],
        max_workers: int | None = None,
    ) -> None:
        """Delete a bucket, emptying it first when force-destroy is set.

        Object versions are deleted by a pool of ``max_workers`` threads,
        defaulting to deletion_pool_size().

        Raises:
            BucketNotEmptyError: If the bucket holds objects and force_destroy is False
            HttpError: If the final bucket deletion fails
        """
        while True:
            failures: list[tuple[ObjectVersion, Exception]] = []
            try:
                versions = client.list_object_versions(bucket_name)
            except HttpError as e:
                if is_not_found(e):
                    self.log_info(meta, f"Bucket {bucket_name} does not exist, nothing to delete",
                                  reason="BucketNotExists", bucket_name=bucket_name)
                    return
                raise

            if not versions:
                break

            if not force_destroy:
                error = BucketNotEmptyError(bucket_name, len(versions))
                self.log_error(meta, str(error), reason="BucketNotEmpty", bucket_name=bucket_name)
                raise error

            self.log_info(meta, f"Force-destroying {len(versions)} object version(s) in bucket {bucket_name}",
                          reason="ForceDestroy", bucket_name=bucket_name, object_count=len(versions))
            failures = delete_object_versions(client, bucket_name, versions, max_workers=max_workers)
            if len(failures) == len(versions):
                # No progress; let the bucket deletion report what is left
                break

        try:
            retry_until_deadline(
                lambda: client.delete_bucket(bucket_name),
                operation=f"Delete bucket {bucket_name}",
                is_retryable=is_rate_limited,
                timeout=GCS_DELETE_RETRY_TIMEOUT_SECONDS,
            )
        except HttpError as e:
            if is_not_found(e):
                return
            if failures:
                leftovers = ", ".join(f"{version.name}#{version.generation}" for version, _ in failures[:10])
                self.log_error(meta, f"Objects could not be deleted from bucket {bucket_name}: {leftovers}",
                               error=e, reason="ForceDestroyIncomplete", bucket_name=bucket_name,
                               failed_count=len(failures))
            raise

    def delete(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Handle Bucket resource deletion."""
        bucket_name = spec.get("name")
        self.log_info(meta, f"Bucket {meta.get('name')} is being deleted", event="deletion",
                      reason="Deletion", bucket_name=bucket_name)

        if not bucket_name:
            self.remove_finalizer(meta, patch)
            return

        force_destroy = bool(spec.get("forceDestroy", False))
        provider = self.get_provider(spec, meta, status, patch)

        with trace_span("delete_bucket", kind=KIND_BUCKET, attributes={"bucket.name": bucket_name}):
            try:
                self.delete_bucket(provider.client, bucket_name, force_destroy, meta)
            except BucketNotEmptyError as e:
                metrics.bucket_operations_total.labels(operation="delete", result="blocked").inc()
                patch.status["conditions"] = set_deletion_blocked_condition(status.get("conditions", []), str(e))
                # Re-checked later so that setting forceDestroy unblocks the deletion
                raise kopf.TemporaryError(str(e), delay=DELETION_BLOCKED_RECHECK_SECONDS) from e
            except HttpError:
                metrics.bucket_operations_total.labels(operation="delete", result="failed").inc()
                raise

        metrics.bucket_operations_total.labels(operation="delete", result="success").inc()
        emit_bucket_deleted(meta, bucket_name)
        self.log_info(meta, f"Deleted bucket {bucket_name}", reason="BucketDeleted", bucket_name=bucket_name)
        self.remove_finalizer(meta, patch)

    def import_spec(self, import_id: str, spec: dict[str, Any], meta: dict[str, Any]) -> dict[str, Any]:
        """Seed the configuration of an adopted bucket.

        Only the name and a non-destructive forceDestroy are seeded; every
        other field is filled in by the read that follows.

        Returns:
            Spec fields to patch onto the resource
        """
        name = spec.get("name")
        if name and name != import_id:
            self.handle_validation_error(
                meta, f"spec.name {name!r} does not match {ANNOTATION_IMPORT_ID} {import_id!r}"
            )
        seeded: dict[str, Any] = {}
        if not name:
            seeded["name"] = import_id
        if "forceDestroy" not in spec:
            seeded["forceDestroy"] = False
        return seeded

    # Host entry points

    def on_create(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Create the bucket, or adopt an existing one when annotated."""
        import_id = (meta.get("annotations") or {}).get(ANNOTATION_IMPORT_ID)
        if import_id:
            seeded = self.import_spec(import_id, spec, meta)
            patch.spec.update(seeded)
            bucket_spec = self.parse_spec({**spec, **seeded}, meta)
            provider = self.get_provider(spec, meta, status, patch)
            remote = self.read(bucket_spec, provider, meta, status, patch)
            if remote is None:
                raise kopf.PermanentError(f"Bucket {import_id} to import does not exist")
            emit_bucket_imported(meta, import_id)
            self.log_info(meta, f"Imported bucket {import_id}", reason="BucketImported", bucket_name=import_id)
            return

        bucket_spec = self.parse_spec(spec, meta)
        provider = self.get_provider(spec, meta, status, patch)
        self.create(bucket_spec, provider, meta, status, patch)

    def on_update(
        self,
        old_spec: dict[str, Any],
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Apply a spec change."""
        bucket_spec = self.parse_spec(spec, meta)
        provider = self.get_provider(spec, meta, status, patch)
        self.update(old_spec, bucket_spec, provider, meta, status, patch)

    def on_refresh(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Read remote state, recreate an absent bucket and correct drift."""
        if status.get("exists") is None:
            # Creation has not completed yet
            return

        bucket_spec = self.parse_spec(spec, meta)
        provider = self.get_provider(spec, meta, status, patch)

        remote = self.read(bucket_spec, provider, meta, status, patch)
        if remote is None:
            self.create(bucket_spec, provider, meta, status, patch)
            return

        planned = self.plan_labels(bucket_spec, provider, status)
        previous_managed = LabelState.from_status(status).managed
        drift = detect_drift(bucket_spec, remote, planned.managed, previous_managed)
        if not drift:
            return

        for resource_type in drift:
            metrics.drift_detected_total.labels(kind=KIND_BUCKET, resource_type=resource_type).inc()
        self.log_info(meta, f"Drift detected for bucket {bucket_spec.name}: {', '.join(drift)}",
                      reason="DriftDetected", bucket_name=bucket_spec.name, resource_types=drift)

        current = remote_as_spec(bucket_spec, remote)
        remote_managed = project_labels(remote.labels, {**previous_managed, **planned.managed})
        body = build_patch(current, bucket_spec, remote_managed, planned.managed)
        self._apply_patch(bucket_spec, provider, meta, status, patch, planned, body)


def remote_as_spec(desired: BucketSpec, remote: RemoteBucketState) -> BucketSpec:
    """Express a remote snapshot as a specification comparable with ``desired``.

    Server-side defaults the spec leaves unset are mapped back to unset so
    they are not reported as drift.
    """
    logging_config = remote.logging
    if (
        logging_config is not None
        and desired.logging is not None
        and desired.logging.log_object_prefix is None
        and logging_config.log_bucket == desired.logging.log_bucket
    ):
        logging_config = desired.logging

    versioning = remote.versioning
    if desired.versioning is None and (versioning is None or not versioning.enabled):
        versioning = None
    elif desired.versioning is not None and versioning is None:
        versioning = VersioningConfig(enabled=False)

    requester_pays = remote.requester_pays
    if desired.requester_pays is None and not requester_pays:
        requester_pays = None
    elif desired.requester_pays is not None and requester_pays is None:
        requester_pays = False

    return BucketSpec(
        name=remote.name,
        project=desired.project,
        location=remote.location,
        storage_class=remote.storage_class,
        force_destroy=desired.force_destroy,
        requester_pays=requester_pays,
        labels=project_labels(remote.labels, desired.labels),
        versioning=versioning,
        website=remote.website,
        cors=remote.cors,
        logging=logging_config,
        encryption=remote.encryption,
        lifecycle_rules=remote.lifecycle_rules,
    )


def detect_drift(
    desired: BucketSpec,
    remote: RemoteBucketState,
    managed_labels: dict[str, str],
    previous_managed: dict[str, str] | None = None,
) -> list[str]:
    """Return the names of mutable fields whose remote value differs from the spec.

    Labels drift when a managed key is missing or changed remotely, or when a
    key from ``previous_managed`` is no longer planned but still set remotely.
    """
    current = remote_as_spec(desired, remote)
    drift = [
        field_name
        for field_name in (
            "requester_pays",
            "versioning",
            "website",
            "cors",
            "logging",
            "encryption",
        )
        if getattr(current, field_name) != getattr(desired, field_name)
    ]
    if set(current.lifecycle_rules) != set(desired.lifecycle_rules):
        drift.append("lifecycle_rules")
    stale_labels = set(previous_managed or {}) - set(managed_labels)
    if project_labels(remote.labels, managed_labels) != managed_labels or stale_labels & set(remote.labels):
        drift.append("labels")
    return drift


# Global handler instance
_handler = BucketHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_BUCKET)
def handle_bucket_create(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle Bucket resource creation."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(meta, lambda: _handler.on_create(spec, meta, status, patch))


@kopf.on.update(API_GROUP_VERSION, KIND_BUCKET, field="spec")
def handle_bucket_update(
    old: dict[str, Any] | None,
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle Bucket spec changes."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(
        meta, lambda: _handler.on_update(dict(old or {}), spec, meta, status, patch)
    )


@kopf.on.resume(API_GROUP_VERSION, KIND_BUCKET)
@kopf.timer(API_GROUP_VERSION, KIND_BUCKET, interval=DRIFT_CHECK_INTERVAL_SECONDS, idle=DRIFT_CHECK_INTERVAL_SECONDS)
def handle_bucket_refresh(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Refresh Bucket state and correct drift."""
    _handler.reconcile_with_metrics(meta, lambda: _handler.on_refresh(spec, meta, status, patch))


@kopf.on.delete(API_GROUP_VERSION, KIND_BUCKET)
def handle_bucket_delete(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle Bucket resource deletion."""
    _handler.delete(spec, meta, status, patch)
