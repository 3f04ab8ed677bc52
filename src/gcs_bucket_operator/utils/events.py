"""Kubernetes events posted against Provider and Bucket resources."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_BUCKET_ABSENT,
    EVENT_REASON_BUCKET_CREATED,
    EVENT_REASON_BUCKET_DELETED,
    EVENT_REASON_BUCKET_IMPORTED,
    EVENT_REASON_BUCKET_UPDATED,
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_RECONCILE_STARTED,
    EVENT_REASON_VALIDATE_FAILED,
    EVENT_REASON_VALIDATE_SUCCEEDED,
)

NORMAL = "Normal"
WARNING = "Warning"


def emit_event(meta: dict[str, Any], reason: str, message: str, type_: str = NORMAL) -> None:
    """Post an event on the resource described by meta."""
    kopf.event(meta, reason=reason, message=message, type=type_)


def emit_reconcile_started(meta: dict[str, Any]) -> None:
    emit_event(meta, EVENT_REASON_RECONCILE_STARTED, "Reconciliation started")


def emit_reconcile_failed(meta: dict[str, Any], message: str) -> None:
    emit_event(meta, EVENT_REASON_RECONCILE_FAILED, message, type_=WARNING)


def emit_validate_succeeded(meta: dict[str, Any]) -> None:
    emit_event(meta, EVENT_REASON_VALIDATE_SUCCEEDED, "Validation succeeded")


def emit_validate_failed(meta: dict[str, Any], message: str) -> None:
    emit_event(meta, EVENT_REASON_VALIDATE_FAILED, message, type_=WARNING)


def _emit_bucket(meta: dict[str, Any], reason: str, bucket_name: str, outcome: str, type_: str = NORMAL) -> None:
    emit_event(meta, reason, f"Bucket {bucket_name} {outcome}", type_=type_)


def emit_bucket_created(meta: dict[str, Any], bucket_name: str) -> None:
    _emit_bucket(meta, EVENT_REASON_BUCKET_CREATED, bucket_name, "created")


def emit_bucket_updated(meta: dict[str, Any], bucket_name: str) -> None:
    _emit_bucket(meta, EVENT_REASON_BUCKET_UPDATED, bucket_name, "updated")


def emit_bucket_deleted(meta: dict[str, Any], bucket_name: str) -> None:
    _emit_bucket(meta, EVENT_REASON_BUCKET_DELETED, bucket_name, "deleted")


def emit_bucket_imported(meta: dict[str, Any], bucket_name: str) -> None:
    """Report that an existing bucket was adopted rather than created."""
    _emit_bucket(meta, EVENT_REASON_BUCKET_IMPORTED, bucket_name, "imported")


def emit_bucket_absent(meta: dict[str, Any], bucket_name: str) -> None:
    """Report that the remote bucket vanished and will be recreated."""
    _emit_bucket(
        meta, EVENT_REASON_BUCKET_ABSENT, bucket_name, "no longer exists and will be recreated", type_=WARNING
    )
