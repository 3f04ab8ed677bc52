"""Google Cloud Storage client implementation."""

from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Any, Callable, TypeVar

import google.auth
import httplib2
from google.auth.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient import discovery
from googleapiclient.errors import HttpError

from ... import metrics
from ...utils.rate_limit import rate_limit_gcs
from .models import ObjectVersion

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]

TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}


def http_status(error: Exception) -> int | None:
    """Return the HTTP status of a Google API error, if it carries one."""
    if isinstance(error, HttpError):
        return int(error.resp.status)
    return None


def is_not_found(error: Exception) -> bool:
    """Check whether a Google API error means the resource does not exist."""
    return http_status(error) == 404


def is_rate_limited(error: Exception) -> bool:
    """Check whether a Google API error is a rate limit rejection."""
    return http_status(error) == 429


def is_transient(error: Exception) -> bool:
    """Check whether an error is worth retrying as-is."""
    status = http_status(error)
    if status is not None:
        return status in TRANSIENT_STATUS_CODES
    return isinstance(error, (ConnectionError, TimeoutError, socket.timeout))


class GCSProvider:
    """Google Cloud Storage provider implementation.

    Wraps the Cloud Storage JSON API v1 and the Cloud Resource Manager API v1.
    Every method issues exactly one logical remote operation; retries are the
    caller's decision.

    One instance is shared by handler threads and the deletion pool.
    httplib2 connections are not thread-safe, so every request runs on an
    authorized http owned by the calling thread.
    """

    def __init__(
        self,
        project: str,
        credentials: Credentials | None = None,
        storage_client: Any | None = None,
        projects_client: Any | None = None,
    ) -> None:
        """Initialize the GCS provider.

        Args:
            project: Default project for bucket creation
            credentials: Google credentials; Application Default Credentials when None
            storage_client: Prebuilt storage API client
            projects_client: Prebuilt resource manager API client
        """
        self.project = project
        self.credentials = credentials
        self._storage = storage_client
        self._projects = projects_client
        self._lock = threading.Lock()
        self._local = threading.local()

    @property
    def storage(self) -> Any:
        if self._storage is None:
            with self._lock:
                if self._storage is None:
                    self._storage = discovery.build(
                        "storage", "v1", credentials=self.credentials, cache_discovery=False
                    )
        return self._storage

    @property
    def projects(self) -> Any:
        if self._projects is None:
            with self._lock:
                if self._projects is None:
                    self._projects = discovery.build(
                        "cloudresourcemanager", "v1", credentials=self.credentials, cache_discovery=False
                    )
        return self._projects

    def _resolved_credentials(self) -> Credentials:
        if self.credentials is None:
            with self._lock:
                if self.credentials is None:
                    self.credentials, _ = google.auth.default(scopes=SCOPES)
        return self.credentials

    def _http(self) -> AuthorizedHttp:
        """Return the authorized http of the calling thread, creating it on first use."""
        http = getattr(self._local, "http", None)
        if http is None:
            http = AuthorizedHttp(self._resolved_credentials(), http=httplib2.Http())
            self._local.http = http
        return http

    def _execute(self, operation: str, request_fn: Callable[[], _T]) -> _T:
        """Run one API request recording call metrics."""
        start_time = time.time()
        try:
            result = rate_limit_gcs(request_fn)()
            metrics.api_call_total.labels(api_type="gcs", operation=operation, result="success").inc()
            return result
        except HttpError as e:
            result_label = "not_found" if is_not_found(e) else "error"
            metrics.api_call_total.labels(api_type="gcs", operation=operation, result=result_label).inc()
            raise
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="gcs", operation=operation).observe(duration)

    def insert_bucket(self, project: str, body: dict[str, Any]) -> dict[str, Any]:
        """Create a bucket in ``project`` and return the created resource."""
        logger.debug(f"Inserting bucket {body.get('name')} in project {project}")
        return self._execute(
            "insert_bucket",
            lambda: self.storage.buckets().insert(project=project, body=body).execute(http=self._http()),
        )

    def get_bucket(self, name: str) -> dict[str, Any]:
        """Fetch the full bucket resource.

        Raises:
            HttpError: 404 when the bucket does not exist
        """
        return self._execute(
            "get_bucket",
            lambda: self.storage.buckets().get(bucket=name, projection="full").execute(http=self._http()),
        )

    def patch_bucket(self, name: str, body: dict[str, Any]) -> dict[str, Any]:
        """Apply a sparse patch. JSON ``null`` values clear the field remotely."""
        return self._execute(
            "patch_bucket",
            lambda: self.storage.buckets()
            .patch(bucket=name, body=body, projection="full")
            .execute(http=self._http()),
        )

    def delete_bucket(self, name: str) -> None:
        """Delete an empty bucket."""
        self._execute(
            "delete_bucket",
            lambda: self.storage.buckets().delete(bucket=name).execute(http=self._http()),
        )

    def list_object_versions(self, bucket: str) -> list[ObjectVersion]:
        """List every object generation in ``bucket``, following all pages."""
        objects = self.storage.objects()
        request = objects.list(bucket=bucket, versions=True, fields="items(name,generation),nextPageToken")
        versions: list[ObjectVersion] = []
        while request is not None:
            response = self._execute("list_objects", lambda: request.execute(http=self._http()))
            for item in response.get("items", []):
                versions.append(ObjectVersion(name=item["name"], generation=str(item["generation"])))
            request = objects.list_next(previous_request=request, previous_response=response)
        return versions

    def delete_object(self, bucket: str, name: str, generation: str) -> None:
        """Delete one object generation."""
        self._execute(
            "delete_object",
            lambda: self.storage.objects()
            .delete(bucket=bucket, object=name, generation=generation)
            .execute(http=self._http()),
        )

    def get_project_id(self, project_number: str) -> str:
        """Resolve a numeric project number to its project id."""
        project = self._execute(
            "get_project",
            lambda: self.projects.projects().get(projectId=str(project_number)).execute(http=self._http()),
        )
        return project["projectId"]

    def test_connectivity(self) -> bool:
        """Test connectivity by listing at most one bucket in the default project."""
        try:
            self._execute(
                "list_buckets",
                lambda: self.storage.buckets()
                .list(project=self.project, maxResults=1)
                .execute(http=self._http()),
            )
            return True
        except HttpError as e:
            logger.error(f"Connectivity test failed: {e}")
            return False
