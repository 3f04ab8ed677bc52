"""Builder for provider configurations."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import google.auth
from google.oauth2 import service_account
from kubernetes import client

from ..constants import DEFAULT_CREDENTIALS_KEY
from ..services.gcs.base import StorageProvider
from ..services.gcs.client import SCOPES, GCSProvider
from ..utils.errors import ValidationError
from ..utils.kube import load_kube_config
from ..utils.secrets import get_secret_value


@dataclass
class ProviderConfig:
    """Provider-wide settings threaded through every bucket operation."""

    project: str
    client: StorageProvider
    default_labels: dict[str, str] = field(default_factory=dict)


def load_credentials(spec: dict[str, Any], namespace: str) -> Any:
    """Load Google credentials for a Provider.

    Reads a service account JSON key from the referenced secret, or falls
    back to Application Default Credentials when no secret is referenced.
    """
    secret_ref = spec.get("credentialsSecretRef") or {}
    secret_name = secret_ref.get("name")
    if not secret_name:
        credentials, _ = google.auth.default(scopes=SCOPES)
        return credentials

    load_kube_config()

    key = secret_ref.get("key", DEFAULT_CREDENTIALS_KEY)
    raw = get_secret_value(client.CoreV1Api(), namespace, secret_name, key)
    try:
        info = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Secret '{secret_name}' key '{key}' is not a service account JSON key") from e
    return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)


def create_provider_from_spec(
    spec: dict[str, Any],
    meta: dict[str, Any],
) -> ProviderConfig:
    """Create a provider configuration from a Provider CRD spec.

    Args:
        spec: Provider CRD spec
        meta: Resource metadata

    Returns:
        Provider configuration with an authenticated storage client

    Raises:
        ValidationError: If configuration is invalid
    """
    project = spec.get("project")
    if not project:
        raise ValidationError("project is required")

    default_labels = spec.get("defaultLabels") or {}
    if not isinstance(default_labels, dict):
        raise ValidationError("defaultLabels must be a map of strings")

    credentials = load_credentials(spec, meta.get("namespace", "default"))
    return ProviderConfig(
        project=project,
        client=GCSProvider(project=project, credentials=credentials),
        default_labels={str(k): str(v) for k, v in default_labels.items()},
    )
