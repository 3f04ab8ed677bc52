"""Provider lookup shared by the Bucket handlers.

Buckets reference a Provider by name. Resolving it means reading the
Provider object (cached for a short TTL), checking its Ready condition and
building a ProviderConfig, which is cached per resourceVersion so a
changed Provider is picked up without rebuilding clients on every event.
"""

from __future__ import annotations

from typing import Any

from kubernetes import client

from .. import metrics
from ..builders.provider import ProviderConfig, create_provider_from_spec
from ..constants import API_GROUP, API_VERSION, KIND_PROVIDER, PLURAL_PROVIDERS
from ..utils.cache import (
    delete_cached_object,
    get_cached_object,
    invalidate_cache_prefix,
    make_cache_key,
    set_cached_object,
)
from ..utils.kube import load_kube_config
from ..utils.rate_limit import handle_rate_limit_error, rate_limit_k8s

PROVIDER_CONFIG_CACHE_KIND = "ProviderConfig"


class ProviderUnavailableError(Exception):
    """The referenced Provider is missing or not ready."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(message)


def _count(result: str) -> None:
    metrics.api_call_total.labels(api_type="k8s", operation="get_provider", result=result).inc()


def get_provider_with_cache(api: client.CustomObjectsApi, provider_name: str, provider_ns: str) -> dict[str, Any]:
    """Read a Provider object, serving repeats from the cache.

    Throttled reads are retried; any other API error propagates.
    """
    cache_key = make_cache_key(KIND_PROVIDER, provider_ns, provider_name)
    cached = get_cached_object(cache_key)
    if cached is not None:
        _count("cache_hit")
        return cached

    read = rate_limit_k8s(api.get_namespaced_custom_object)
    attempt = 0
    while True:
        with metrics.api_call_duration_seconds.labels(api_type="k8s", operation="get_provider").time():
            try:
                provider_obj = read(
                    group=API_GROUP,
                    version=API_VERSION,
                    namespace=provider_ns,
                    plural=PLURAL_PROVIDERS,
                    name=provider_name,
                )
            except Exception as e:
                _count("error")
                if not handle_rate_limit_error(e, attempt):
                    raise
                attempt += 1
                continue
        _count("success")
        set_cached_object(cache_key, provider_obj)
        return provider_obj


def is_provider_ready(provider_obj: dict[str, Any]) -> bool:
    conditions = (provider_obj.get("status") or {}).get("conditions", [])
    return any(cond.get("type") == "Ready" and cond.get("status") == "True" for cond in conditions)


def resolve_provider(spec: dict[str, Any], meta: dict[str, Any]) -> ProviderConfig:
    """Resolve the Provider a Bucket references.

    A providerRef without a namespace points into the Bucket's namespace.

    Raises:
        ProviderUnavailableError: If the reference is empty, or the Provider
            is missing or not Ready
    """
    ref = spec.get("providerRef") or {}
    name = ref.get("name")
    if not name:
        raise ProviderUnavailableError("", "providerRef.name is required")
    namespace = ref.get("namespace", meta.get("namespace", "default"))

    try:
        provider_obj = get_provider_with_cache(get_k8s_client(), name, namespace)
    except client.exceptions.ApiException as e:
        if e.status == 404:
            raise ProviderUnavailableError(name, f"Provider {name} not found in namespace {namespace}") from e
        raise

    if not is_provider_ready(provider_obj):
        raise ProviderUnavailableError(name, f"Provider {name} is not ready")

    provider_meta = provider_obj.get("metadata", {})
    config_key = make_cache_key(PROVIDER_CONFIG_CACHE_KIND, namespace, f"{name}@{provider_meta.get('resourceVersion', '')}")
    provider_config = get_cached_object(config_key)
    if provider_config is None:
        provider_config = create_provider_from_spec(provider_obj.get("spec", {}), provider_meta)
        set_cached_object(config_key, provider_config)
    return provider_config


def get_k8s_client() -> client.CustomObjectsApi:
    load_kube_config()
    return client.CustomObjectsApi()


def invalidate_provider_cache(namespace: str, name: str) -> None:
    """Drop the cached Provider object and every ProviderConfig built from it."""
    delete_cached_object(make_cache_key(KIND_PROVIDER, namespace, name))
    invalidate_cache_prefix(make_cache_key(PROVIDER_CONFIG_CACHE_KIND, namespace, f"{name}@"))
