"""Tests for the Bucket handler."""

from __future__ import annotations

import threading
from typing import Any
from unittest.mock import MagicMock, patch

import httplib2
import kopf
import pytest
from googleapiclient.errors import HttpError

from gcs_bucket_operator.builders.provider import ProviderConfig
from gcs_bucket_operator.constants import ANNOTATION_IMPORT_ID, FINALIZER
from gcs_bucket_operator.handlers.bucket import (
    BucketHandler,
    delete_object_versions,
    deletion_pool_size,
    detect_drift,
)
from gcs_bucket_operator.services.gcs.models import (
    BucketSpec,
    LoggingConfig,
    ObjectVersion,
    RemoteBucketState,
    VersioningConfig,
)
from gcs_bucket_operator.utils.errors import BucketNotEmptyError


def http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": status}), b"error")


def bucket_resource(name: str = "my-bucket", **overrides: Any) -> dict[str, Any]:
    resource = {
        "id": name,
        "name": name,
        "selfLink": f"https://www.googleapis.com/storage/v1/b/{name}",
        "projectNumber": "123456",
        "location": "US",
        "storageClass": "STANDARD",
        "labels": {"team": "infra", "app": "web"},
    }
    resource.update(overrides)
    return resource


class FakeStorage:
    """Storage client double that records object deletes across threads."""

    def __init__(self, listings: list[list[ObjectVersion]], failing: set[str] | None = None):
        self.listings = list(listings)
        self.failing = failing or set()
        self.deleted: list[ObjectVersion] = []
        self.bucket_deletes = 0
        self.delete_bucket_error: Exception | None = None
        self.events: list[str] = []
        self._lock = threading.Lock()

    def list_object_versions(self, bucket: str) -> list[ObjectVersion]:
        return self.listings.pop(0) if self.listings else []

    def delete_object(self, bucket: str, name: str, generation: str) -> None:
        if name in self.failing:
            raise http_error(403)
        with self._lock:
            self.deleted.append(ObjectVersion(name, generation))
            self.events.append("object")

    def delete_bucket(self, name: str) -> None:
        self.bucket_deletes += 1
        self.events.append("bucket")
        if self.delete_bucket_error is not None:
            raise self.delete_bucket_error


def versions(count: int) -> list[ObjectVersion]:
    return [ObjectVersion(f"obj-{i}", "1") for i in range(count)]


@pytest.fixture
def client():
    mock_client = MagicMock()
    mock_client.insert_bucket.return_value = bucket_resource()
    mock_client.get_bucket.return_value = bucket_resource()
    mock_client.patch_bucket.return_value = bucket_resource()
    return mock_client


@pytest.fixture
def provider(client):
    return ProviderConfig(project="my-project", client=client, default_labels={"team": "infra"})


@pytest.fixture
def resolve(provider):
    with patch("gcs_bucket_operator.handlers.bucket.resolve_provider", return_value=provider) as mock_resolve:
        yield mock_resolve


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("gcs_bucket_operator.utils.rate_limit.time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def handler():
    return BucketHandler()


@pytest.fixture
def meta():
    return {"name": "my-bucket", "namespace": "default", "uid": "uid-1", "generation": 1, "finalizers": [FINALIZER]}


def crd_spec(**overrides: Any) -> dict[str, Any]:
    spec = {
        "name": "my-bucket",
        "project": "my-project",
        "labels": {"app": "web"},
        "providerRef": {"name": "gcp"},
    }
    spec.update(overrides)
    return spec


class TestCreate:
    """Test cases for bucket creation."""

    def test_create_sends_managed_labels_and_reads_back(self, handler, client, resolve, meta):
        """Test that creation sends defaults merged with user labels."""
        patch_obj = kopf.Patch()

        handler.on_create(crd_spec(), meta, {}, patch_obj)

        project, body = client.insert_bucket.call_args.args
        assert project == "my-project"
        assert body["name"] == "my-bucket"
        assert body["labels"] == {"team": "infra", "app": "web"}
        client.get_bucket.assert_called_once_with("my-bucket")
        client.get_project_id.assert_not_called()

        assert patch_obj.status["exists"] is True
        assert patch_obj.status["bucketId"] == "my-bucket"
        assert patch_obj.status["url"] == "gs://my-bucket"
        assert patch_obj.status["project"] == "my-project"
        assert patch_obj.status["labels"] == {"app": "web"}
        assert patch_obj.status["managedLabels"] == {"team": "infra", "app": "web"}
        assert patch_obj.status["effectiveLabels"] == {"team": "infra", "app": "web"}

    def test_create_retries_transient_errors(self, handler, client, resolve, meta, no_sleep):
        """Test that 5xx and 429 responses are retried."""
        client.insert_bucket.side_effect = [http_error(503), http_error(429), bucket_resource()]

        handler.on_create(crd_spec(), meta, {}, kopf.Patch())

        assert client.insert_bucket.call_count == 3
        assert no_sleep.call_count == 2

    def test_create_gives_up_after_max_attempts(self, handler, client, resolve, meta):
        """Test that transient errors surface once attempts are exhausted."""
        client.insert_bucket.side_effect = http_error(503)
        patch_obj = kopf.Patch()

        with pytest.raises(HttpError):
            handler.on_create(crd_spec(), meta, {}, patch_obj)

        assert client.insert_bucket.call_count == 5
        assert patch_obj.status["exists"] is False
        assert any(cond["type"] == "CreationFailed" for cond in patch_obj.status["conditions"])

    def test_create_conflict_is_permanent(self, handler, client, resolve, meta):
        """Test that a taken name points at the import annotation."""
        client.insert_bucket.side_effect = http_error(409)

        with pytest.raises(kopf.PermanentError, match=ANNOTATION_IMPORT_ID):
            handler.on_create(crd_spec(), meta, {}, kopf.Patch())

        assert client.insert_bucket.call_count == 1

    def test_invalid_spec_makes_no_remote_call(self, handler, client, resolve, meta):
        """Test that validation runs before any remote call."""
        spec = crd_spec(website=[{"mainPageSuffix": "index.html"}, {"notFoundPage": "404.html"}])

        with pytest.raises(kopf.PermanentError, match="website"):
            handler.on_create(spec, meta, {}, kopf.Patch())

        resolve.assert_not_called()
        client.insert_bucket.assert_not_called()

    def test_missing_provider_ref_is_permanent(self, handler, meta):
        """Test that a spec without providerRef is rejected."""
        spec = crd_spec()
        del spec["providerRef"]

        with pytest.raises(kopf.PermanentError, match="providerRef"):
            handler.on_create(spec, meta, {}, kopf.Patch())

    def test_provider_not_ready_is_temporary(self, handler, meta):
        """Test that an unready provider is retried later."""
        from gcs_bucket_operator.handlers.shared import ProviderUnavailableError

        with patch(
            "gcs_bucket_operator.handlers.bucket.resolve_provider",
            side_effect=ProviderUnavailableError("gcp", "Provider gcp is not ready"),
        ):
            patch_obj = kopf.Patch()
            with pytest.raises(kopf.TemporaryError):
                handler.on_create(crd_spec(), meta, {}, patch_obj)

        assert patch_obj.status["conditions"][0]["type"] == "ProviderNotReady"


class TestRead:
    """Test cases for reading remote state."""

    def test_read_absent_bucket(self, handler, client, provider, meta):
        """Test that a missing bucket is marked absent."""
        client.get_bucket.side_effect = http_error(404)
        patch_obj = kopf.Patch()

        result = handler.read(BucketSpec(name="my-bucket"), provider, meta, {"exists": True}, patch_obj)

        assert result is None
        assert patch_obj.status["exists"] is False
        assert patch_obj.status["bucketId"] is None

    def test_read_other_errors_propagate(self, handler, client, provider, meta):
        """Test that non-404 errors are raised."""
        client.get_bucket.side_effect = http_error(500)

        with pytest.raises(HttpError):
            handler.read(BucketSpec(name="my-bucket"), provider, meta, {}, kopf.Patch())

    def test_read_resolves_project_from_number(self, handler, client, provider, meta):
        """Test the project lookup when neither spec nor status pin it."""
        client.get_project_id.return_value = "resolved-project"
        patch_obj = kopf.Patch()

        handler.read(BucketSpec(name="my-bucket"), provider, meta, {}, patch_obj)

        client.get_project_id.assert_called_once_with("123456")
        assert patch_obj.status["project"] == "resolved-project"

    def test_read_uses_status_project(self, handler, client, provider, meta):
        """Test that a previously resolved project is reused."""
        patch_obj = kopf.Patch()

        handler.read(BucketSpec(name="my-bucket"), provider, meta, {"project": "known"}, patch_obj)

        client.get_project_id.assert_not_called()
        assert patch_obj.status["project"] == "known"

    def test_read_project_lookup_failure_is_fatal(self, handler, client, provider, meta):
        """Test that a failed project lookup fails the read."""
        client.get_project_id.side_effect = http_error(403)

        with pytest.raises(HttpError):
            handler.read(BucketSpec(name="my-bucket"), provider, meta, {}, kopf.Patch())

    def test_read_renders_blocks(self, handler, client, provider, meta):
        """Test nested blocks are rendered into status."""
        client.get_bucket.return_value = bucket_resource(
            versioning={"enabled": True},
            website={"mainPageSuffix": "index.html"},
            billing={"requesterPays": True},
            lifecycle={"rule": [{"action": {"type": "Delete"}, "condition": {"age": 30}}]},
            labels={"team": "infra", "app": "web", "external": "yes"},
        )
        patch_obj = kopf.Patch()

        handler.read(BucketSpec(name="my-bucket", labels={"app": "web"}), provider, meta, {"project": "p"}, patch_obj)

        assert patch_obj.status["versioning"] == {"enabled": True}
        assert patch_obj.status["website"] == {"mainPageSuffix": "index.html"}
        assert patch_obj.status["requesterPays"] is True
        assert patch_obj.status["lifecycleRules"] == [
            {"action": [{"type": "Delete"}], "condition": [{"age": 30}]}
        ]
        assert patch_obj.status["labels"] == {"app": "web"}
        assert patch_obj.status["managedLabels"] == {"team": "infra", "app": "web"}
        assert patch_obj.status["effectiveLabels"]["external"] == "yes"

    def test_read_keeps_unplanned_label_until_removed(self, handler, client, provider, resolve, meta):
        """Test that a label dropped from the defaults stays managed while it is still set remotely."""
        client.get_bucket.return_value = bucket_resource(labels={"team": "infra", "app": "web", "env": "prod"})
        status = {"project": "p", "managedLabels": {"team": "infra", "app": "web", "env": "prod"}}
        patch_obj = kopf.Patch()

        handler.read(BucketSpec(name="my-bucket", labels={"app": "web"}), provider, meta, status, patch_obj)

        assert patch_obj.status["managedLabels"] == {"team": "infra", "app": "web", "env": "prod"}

        client.get_bucket.return_value = bucket_resource()
        handler.on_update(
            crd_spec(), crd_spec(labels={"app": "api"}), meta, {**status, **patch_obj.status}, kopf.Patch()
        )

        assert client.patch_bucket.call_args.args[1] == {"labels": {"team": "infra", "app": "api", "env": None}}


class TestUpdate:
    """Test cases for spec updates."""

    def status(self) -> dict[str, Any]:
        return {
            "exists": True,
            "project": "my-project",
            "labels": {"app": "web", "tier": "front"},
            "managedLabels": {"team": "infra", "app": "web", "tier": "front"},
            "effectiveLabels": {"team": "infra", "app": "web", "tier": "front"},
        }

    def test_update_removes_label(self, handler, client, resolve, meta):
        """Test that a removed label is nulled in the patch."""
        old = crd_spec(labels={"app": "web", "tier": "front"})
        patch_obj = kopf.Patch()

        handler.on_update(old, crd_spec(), meta, self.status(), patch_obj)

        name, body = client.patch_bucket.call_args.args
        assert name == "my-bucket"
        assert body == {"labels": {"team": "infra", "app": "web", "tier": None}}
        assert patch_obj.status["exists"] is True

    def test_update_sends_only_changes(self, handler, client, resolve, meta):
        """Test that unchanged fields stay out of the patch."""
        old = crd_spec(labels={"app": "web", "tier": "front"})
        new = crd_spec(labels={"app": "web", "tier": "front"}, versioning={"enabled": True})

        handler.on_update(old, new, meta, self.status(), kopf.Patch())

        assert client.patch_bucket.call_args.args[1] == {"versioning": {"enabled": True}}

    def test_update_without_changes_skips_patch(self, handler, client, resolve, meta):
        """Test that an unchanged spec only refreshes status."""
        spec = crd_spec(labels={"app": "web", "tier": "front"})

        handler.on_update(spec, dict(spec), meta, self.status(), kopf.Patch())

        client.patch_bucket.assert_not_called()
        client.get_bucket.assert_called_once()

    def test_update_rejects_location_change(self, handler, client, resolve, meta):
        """Test that creation-only fields cannot change."""
        with pytest.raises(kopf.PermanentError, match="location"):
            handler.on_update(crd_spec(), crd_spec(location="EU"), meta, self.status(), kopf.Patch())

        client.patch_bucket.assert_not_called()

    def test_update_recreates_missing_bucket(self, handler, client, resolve, meta):
        """Test that a 404 on patch falls back to creation."""
        client.patch_bucket.side_effect = http_error(404)

        handler.on_update(crd_spec(), crd_spec(requesterPays=True), meta, self.status(), kopf.Patch())

        client.insert_bucket.assert_called_once()

    def test_update_with_invalid_old_spec_sends_full_patch(self, handler, client, resolve, meta):
        """Test that an unparseable previous spec yields every field."""
        old = crd_spec(website=[{}, {}])

        handler.on_update(old, crd_spec(), meta, self.status(), kopf.Patch())

        body = client.patch_bucket.call_args.args[1]
        assert set(body) == {"lifecycle", "billing", "versioning", "website", "cors", "logging", "encryption", "labels"}


class TestDelete:
    """Test cases for bucket deletion."""

    def test_not_empty_without_force_deletes_nothing(self, handler, meta):
        """Test that a non-empty bucket is refused before any object delete."""
        storage = FakeStorage([versions(3)])

        with pytest.raises(BucketNotEmptyError) as exc_info:
            handler.delete_bucket(storage, "my-bucket", False, meta)

        assert exc_info.value.object_count == 3
        assert "forceDestroy" in str(exc_info.value)
        assert storage.deleted == []
        assert storage.bucket_deletes == 0

    @pytest.mark.parametrize("max_workers", [None, 1, 2, 30])
    def test_force_destroy_deletes_every_version(self, handler, meta, max_workers):
        """Test that every listed version is deleted exactly once whatever the pool size."""
        listed = versions(20) + [ObjectVersion("obj-0", "2"), ObjectVersion("obj-0", "3")]
        storage = FakeStorage([listed, []])

        handler.delete_bucket(storage, "my-bucket", True, meta, max_workers=max_workers)

        deleted = [(v.name, v.generation) for v in storage.deleted]
        assert sorted(deleted) == sorted((v.name, v.generation) for v in listed)
        assert len(set(deleted)) == len(deleted)
        assert storage.events == ["object"] * len(listed) + ["bucket"]

    def test_force_destroy_repeats_until_empty(self, handler, meta):
        """Test that objects written during deletion are also removed."""
        storage = FakeStorage([versions(2), [ObjectVersion("late", "9")], []])

        handler.delete_bucket(storage, "my-bucket", True, meta)

        assert len(storage.deleted) == 3
        assert storage.bucket_deletes == 1

    def test_force_destroy_stops_without_progress(self, handler, meta):
        """Test that undeletable objects end the loop and the bucket error surfaces."""
        stuck = [ObjectVersion("locked", "1")]
        storage = FakeStorage([stuck, stuck, stuck], failing={"locked"})
        storage.delete_bucket_error = http_error(409)

        with pytest.raises(HttpError):
            handler.delete_bucket(storage, "my-bucket", True, meta)

        assert storage.bucket_deletes == 1
        assert len(storage.listings) == 2

    def test_stale_failures_not_reported(self, handler, meta):
        """Test that objects removed on a later pass are not reported as left over."""
        storage = FakeStorage([[ObjectVersion("locked", "1"), ObjectVersion("ok", "1")], []], failing={"locked"})
        storage.delete_bucket_error = http_error(409)

        with patch.object(handler, "log_error") as mock_log_error:
            with pytest.raises(HttpError):
                handler.delete_bucket(storage, "my-bucket", True, meta)

        reasons = [c.kwargs.get("reason") for c in mock_log_error.call_args_list]
        assert "ForceDestroyIncomplete" not in reasons

    def test_leftover_objects_reported(self, handler, meta):
        """Test that objects still failing on the last pass are named in the error log."""
        stuck = [ObjectVersion("locked", "1")]
        storage = FakeStorage([stuck], failing={"locked"})
        storage.delete_bucket_error = http_error(409)

        with patch.object(handler, "log_error") as mock_log_error:
            with pytest.raises(HttpError):
                handler.delete_bucket(storage, "my-bucket", True, meta)

        assert mock_log_error.call_args.kwargs["reason"] == "ForceDestroyIncomplete"
        assert "locked#1" in mock_log_error.call_args.args[1]

    def test_missing_bucket_is_deleted(self, handler, meta):
        """Test that a bucket already gone counts as deleted."""
        storage = MagicMock()
        storage.list_object_versions.side_effect = http_error(404)

        handler.delete_bucket(storage, "my-bucket", False, meta)

        storage.delete_bucket.assert_not_called()

    def test_bucket_delete_retries_rate_limit(self, handler, meta):
        """Test that the final delete is retried on 429 only."""
        storage = MagicMock()
        storage.list_object_versions.return_value = []
        storage.delete_bucket.side_effect = [http_error(429), None]

        handler.delete_bucket(storage, "my-bucket", False, meta)

        assert storage.delete_bucket.call_count == 2

    def test_delete_blocked_keeps_finalizer(self, handler, client, resolve, meta):
        """Test that a refused delete is re-checked later and keeps the finalizer."""
        client.list_object_versions.return_value = versions(1)
        patch_obj = kopf.Patch()

        with pytest.raises(kopf.TemporaryError):
            handler.delete(crd_spec(), meta, {}, patch_obj)

        client.delete_object.assert_not_called()
        assert "metadata" not in patch_obj
        assert patch_obj.status["conditions"][0]["type"] == "DeletionBlocked"

    def test_delete_removes_finalizer(self, handler, client, resolve, meta):
        """Test successful deletion releases the resource."""
        client.list_object_versions.side_effect = [versions(2), []]
        patch_obj = kopf.Patch()

        handler.delete(crd_spec(forceDestroy=True), meta, {}, patch_obj)

        assert client.delete_object.call_count == 2
        client.delete_bucket.assert_called_once_with("my-bucket")
        assert patch_obj.metadata["finalizers"] is None


class TestDeleteObjectVersions:
    """Test cases for the object deletion pool."""

    def test_failures_returned_not_raised(self):
        """Test that per-object failures are collected."""
        storage = FakeStorage([], failing={"obj-1"})

        failures = delete_object_versions(storage, "my-bucket", versions(3), max_workers=2)

        assert [version.name for version, _ in failures] == ["obj-1"]
        assert len(storage.deleted) == 2

    def test_pool_size(self):
        """Test the pool leaves one CPU free but never drops below one."""
        with patch("gcs_bucket_operator.handlers.bucket.os.cpu_count", return_value=8):
            assert deletion_pool_size() == 7
        with patch("gcs_bucket_operator.handlers.bucket.os.cpu_count", return_value=1):
            assert deletion_pool_size() == 1
        with patch("gcs_bucket_operator.handlers.bucket.os.cpu_count", return_value=None):
            assert deletion_pool_size() == 1


class TestImport:
    """Test cases for adopting existing buckets."""

    def test_import_seeds_name_and_force_destroy(self, handler, client, resolve, meta):
        """Test that the import id seeds the spec and the bucket is read."""
        meta["annotations"] = {ANNOTATION_IMPORT_ID: "my-bucket"}
        spec = crd_spec()
        del spec["name"]
        patch_obj = kopf.Patch()

        handler.on_create(spec, meta, {}, patch_obj)

        assert patch_obj.spec["name"] == "my-bucket"
        assert patch_obj.spec["forceDestroy"] is False
        client.insert_bucket.assert_not_called()
        assert patch_obj.status["exists"] is True

    def test_import_mismatched_name_rejected(self, handler, client, resolve, meta):
        """Test that the import id must match a declared name."""
        meta["annotations"] = {ANNOTATION_IMPORT_ID: "other-bucket"}

        with pytest.raises(kopf.PermanentError, match="other-bucket"):
            handler.on_create(crd_spec(), meta, {}, kopf.Patch())

        client.get_bucket.assert_not_called()

    def test_import_missing_bucket_fails(self, handler, client, resolve, meta):
        """Test that importing a bucket that does not exist fails."""
        meta["annotations"] = {ANNOTATION_IMPORT_ID: "my-bucket"}
        client.get_bucket.side_effect = http_error(404)

        with pytest.raises(kopf.PermanentError, match="does not exist"):
            handler.on_create(crd_spec(forceDestroy=True), meta, {}, kopf.Patch())


class TestRefresh:
    """Test cases for drift detection and correction."""

    def status(self) -> dict[str, Any]:
        return {
            "exists": True,
            "project": "my-project",
            "labels": {"app": "web"},
            "managedLabels": {"team": "infra", "app": "web"},
            "effectiveLabels": {"team": "infra", "app": "web"},
        }

    def test_skipped_before_creation(self, handler, client, resolve, meta):
        """Test that refresh waits for the first create."""
        handler.on_refresh(crd_spec(), meta, {}, kopf.Patch())

        client.get_bucket.assert_not_called()

    def test_absent_bucket_is_recreated(self, handler, client, resolve, meta):
        """Test that a bucket deleted out of band is created again."""
        client.get_bucket.side_effect = [http_error(404), bucket_resource()]

        handler.on_refresh(crd_spec(), meta, self.status(), kopf.Patch())

        client.insert_bucket.assert_called_once()

    def test_no_drift_no_patch(self, handler, client, resolve, meta):
        """Test that matching state is left alone."""
        handler.on_refresh(crd_spec(), meta, self.status(), kopf.Patch())

        client.patch_bucket.assert_not_called()

    def test_versioning_drift_corrected(self, handler, client, resolve, meta):
        """Test that a remote versioning change is reverted."""
        client.get_bucket.return_value = bucket_resource(versioning={"enabled": False})

        handler.on_refresh(crd_spec(versioning={"enabled": True}), meta, self.status(), kopf.Patch())

        client.patch_bucket.assert_called_once_with("my-bucket", {"versioning": {"enabled": True}})

    def test_label_drift_corrected(self, handler, client, resolve, meta):
        """Test that a managed label removed remotely is restored."""
        client.get_bucket.return_value = bucket_resource(labels={"team": "infra", "external": "x"})

        handler.on_refresh(crd_spec(), meta, self.status(), kopf.Patch())

        client.patch_bucket.assert_called_once_with("my-bucket", {"labels": {"team": "infra", "app": "web"}})

    def test_removed_default_label_is_nulled(self, handler, client, resolve, meta):
        """Test that a label dropped from the provider defaults is removed from the bucket."""
        client.get_bucket.side_effect = [
            bucket_resource(labels={"team": "infra", "app": "web", "env": "prod"}),
            bucket_resource(),
        ]
        status = {
            **self.status(),
            "managedLabels": {"team": "infra", "app": "web", "env": "prod"},
            "effectiveLabels": {"team": "infra", "app": "web", "env": "prod"},
        }
        patch_obj = kopf.Patch()

        handler.on_refresh(crd_spec(), meta, status, patch_obj)

        body = client.patch_bucket.call_args.args[1]
        assert body["labels"]["env"] is None
        assert patch_obj.status["managedLabels"] == {"team": "infra", "app": "web"}


class TestDetectDrift:
    """Test cases for detect_drift normalization."""

    def remote(self, **overrides: Any) -> RemoteBucketState:
        return RemoteBucketState.from_api(bucket_resource(**overrides))

    def test_server_defaults_are_not_drift(self):
        """Test that unset spec fields match server defaults."""
        remote = self.remote(billing={"requesterPays": False}, versioning={"enabled": False})

        assert detect_drift(BucketSpec(name="my-bucket"), remote, {"team": "infra", "app": "web"}) == []

    def test_requester_pays_drift(self):
        """Test that a declared requester-pays setting is enforced."""
        desired = BucketSpec(name="my-bucket", requester_pays=True)

        assert detect_drift(desired, self.remote(), {}) == ["requester_pays"]

    def test_logging_prefix_ignored_when_undeclared(self):
        """Test that a server-assigned log prefix is not drift."""
        desired = BucketSpec(name="my-bucket", logging=LoggingConfig(log_bucket="logs"))
        remote = self.remote(logging={"logBucket": "logs", "logObjectPrefix": "my-bucket"})

        assert detect_drift(desired, remote, {}) == []

    def test_lifecycle_order_is_not_drift(self):
        """Test that lifecycle rules compare as a set."""
        rules = [
            {"action": {"type": "Delete"}, "condition": {"age": 30}},
            {"action": {"type": "Delete"}, "condition": {"age": 7}},
        ]
        remote = self.remote(lifecycle={"rule": rules})
        desired = BucketSpec(
            name="my-bucket",
            lifecycle_rules=tuple(reversed(RemoteBucketState.from_api(bucket_resource(lifecycle={"rule": rules})).lifecycle_rules)),
        )

        assert detect_drift(desired, remote, {}) == []

    def test_versioning_declared_off(self):
        """Test that versioning declared off matches a bucket without versioning."""
        desired = BucketSpec(name="my-bucket", versioning=VersioningConfig(enabled=False))

        assert detect_drift(desired, self.remote(), {}) == []

    def test_unplanned_label_still_set_is_drift(self):
        """Test that a formerly managed label still present remotely is reported."""
        remote = self.remote(labels={"team": "infra", "app": "web", "env": "prod"})
        managed = {"team": "infra", "app": "web"}

        assert detect_drift(BucketSpec(name="my-bucket"), remote, managed, {**managed, "env": "prod"}) == ["labels"]

    def test_unplanned_label_already_removed_is_not_drift(self):
        """Test that a formerly managed label gone remotely is settled."""
        managed = {"team": "infra", "app": "web"}

        assert detect_drift(BucketSpec(name="my-bucket"), self.remote(), managed, {**managed, "env": "prod"}) == []
