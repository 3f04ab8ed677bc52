"""Storage provider interface."""

from __future__ import annotations

from typing import Any, Protocol

from .models import ObjectVersion


class StorageProvider(Protocol):
    """Protocol defining the remote operations the bucket handler relies on."""

    project: str

    def insert_bucket(self, project: str, body: dict[str, Any]) -> dict[str, Any]:
        """Create a bucket and return the created resource."""
        ...

    def get_bucket(self, name: str) -> dict[str, Any]:
        """Fetch a bucket resource; raises a not-found error when absent."""
        ...

    def patch_bucket(self, name: str, body: dict[str, Any]) -> dict[str, Any]:
        """Apply a sparse patch and return the updated resource."""
        ...

    def delete_bucket(self, name: str) -> None:
        """Delete an empty bucket."""
        ...

    def list_object_versions(self, bucket: str) -> list[ObjectVersion]:
        """List every object generation in a bucket."""
        ...

    def delete_object(self, bucket: str, name: str, generation: str) -> None:
        """Delete one object generation."""
        ...

    def get_project_id(self, project_number: str) -> str:
        """Resolve a project number to a project id."""
        ...

    def test_connectivity(self) -> bool:
        """Test connectivity to the provider."""
        ...
