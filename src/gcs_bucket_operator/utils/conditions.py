"""Status conditions for Provider and Bucket resources.

Conditions follow the Kubernetes convention: one entry per type, and
``lastTransitionTime`` only moves when the status value changes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..constants import (
    COND_AUTH_VALID,
    COND_CREATION_FAILED,
    COND_DELETION_BLOCKED,
    COND_ENDPOINT_REACHABLE,
    COND_PROVIDER_NOT_READY,
    COND_READY,
)

Conditions = list[dict[str, Any]]


def update_condition(
    conditions: Conditions,
    condition_type: str,
    status: str,
    reason: str,
    message: str,
    observed_generation: int | None = None,
) -> Conditions:
    """Return a copy of conditions with condition_type set.

    Args:
        conditions: Existing conditions, left untouched
        condition_type: Type of condition
        status: "True", "False" or "Unknown"
        reason: Machine-readable reason
        message: Human-readable message
        observed_generation: Generation the condition was computed for

    Returns:
        New list of conditions
    """
    now = datetime.now(timezone.utc).isoformat()
    entry: dict[str, Any] = {
        "type": condition_type,
        "status": status,
        "reason": reason,
        "message": message,
        "lastTransitionTime": now,
    }
    if observed_generation is not None:
        entry["observedGeneration"] = observed_generation

    result: Conditions = []
    replaced = False
    for existing in conditions:
        if existing.get("type") != condition_type:
            result.append(dict(existing))
            continue
        if existing.get("status") == status:
            entry["lastTransitionTime"] = existing.get("lastTransitionTime", now)
        result.append(entry)
        replaced = True

    if not replaced:
        result.append(entry)
    return result


def remove_condition(conditions: Conditions, condition_type: str) -> Conditions:
    """Return conditions without any entry of condition_type."""
    return [dict(cond) for cond in conditions if cond.get("type") != condition_type]


def _set_flag(
    conditions: Conditions,
    condition_type: str,
    value: bool,
    reasons: tuple[str, str],
    message: str,
    observed_generation: int | None,
) -> Conditions:
    true_reason, false_reason = reasons
    return update_condition(
        conditions,
        condition_type,
        "True" if value else "False",
        true_reason if value else false_reason,
        message,
        observed_generation,
    )


def set_ready_condition(
    conditions: Conditions, status: bool, message: str, observed_generation: int | None = None
) -> Conditions:
    return _set_flag(conditions, COND_READY, status, ("Ready", "NotReady"), message, observed_generation)


def set_auth_valid_condition(
    conditions: Conditions, status: bool, message: str, observed_generation: int | None = None
) -> Conditions:
    return _set_flag(conditions, COND_AUTH_VALID, status, ("AuthValid", "AuthInvalid"), message, observed_generation)


def set_endpoint_reachable_condition(
    conditions: Conditions, status: bool, message: str, observed_generation: int | None = None
) -> Conditions:
    return _set_flag(
        conditions,
        COND_ENDPOINT_REACHABLE,
        status,
        ("EndpointReachable", "EndpointUnreachable"),
        message,
        observed_generation,
    )


def set_provider_not_ready_condition(
    conditions: Conditions, message: str, observed_generation: int | None = None
) -> Conditions:
    """Mark a Bucket as waiting on its Provider."""
    return update_condition(
        conditions, COND_PROVIDER_NOT_READY, "True", "ProviderNotReady", message, observed_generation
    )


def set_creation_failed_condition(
    conditions: Conditions, message: str, observed_generation: int | None = None
) -> Conditions:
    return update_condition(conditions, COND_CREATION_FAILED, "True", "CreationFailed", message, observed_generation)


def set_deletion_blocked_condition(
    conditions: Conditions, message: str, observed_generation: int | None = None
) -> Conditions:
    """Mark a Bucket whose deletion waits for its objects to go."""
    return update_condition(
        conditions, COND_DELETION_BLOCKED, "True", "BucketNotEmpty", message, observed_generation
    )
