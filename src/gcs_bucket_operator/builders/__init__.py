"""Builders for typed configuration and provider clients."""

from .bucket import build_patch, create_bucket_spec_from_crd
from .provider import ProviderConfig, create_provider_from_spec

__all__ = [
    "build_patch",
    "create_bucket_spec_from_crd",
    "ProviderConfig",
    "create_provider_from_spec",
]
