"""Utility functions for the GCS Bucket Operator."""

from .cache import (
    delete_cached_object,
    get_cached_object,
    invalidate_cache,
    invalidate_cache_prefix,
    make_cache_key,
    set_cached_object,
)
from .conditions import (
    set_provider_not_ready_condition,
    set_ready_condition,
    update_condition,
)
from .events import emit_event
from .kube import load_kube_config
from .labels import (
    LabelState,
    merge_default_labels,
    project_labels,
    reconcile_labels,
    removed_label_keys,
)
from .rate_limit import (
    handle_rate_limit_error,
    rate_limit_gcs,
    rate_limit_k8s,
    retry_transient,
    retry_until_deadline,
)
from .secrets import get_secret_value

__all__ = [
    "update_condition",
    "set_ready_condition",
    "set_provider_not_ready_condition",
    "emit_event",
    "get_secret_value",
    "load_kube_config",
    "get_cached_object",
    "set_cached_object",
    "invalidate_cache",
    "invalidate_cache_prefix",
    "delete_cached_object",
    "make_cache_key",
    "rate_limit_k8s",
    "rate_limit_gcs",
    "handle_rate_limit_error",
    "retry_transient",
    "retry_until_deadline",
    "LabelState",
    "merge_default_labels",
    "reconcile_labels",
    "project_labels",
    "removed_label_keys",
]
