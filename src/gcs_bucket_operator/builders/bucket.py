"""Builder for bucket configurations."""

from __future__ import annotations

from typing import Any

from ..constants import (
    ACTION_DELETE,
    ACTION_SET_STORAGE_CLASS,
    DEFAULT_LOCATION,
    DEFAULT_STORAGE_CLASS,
    MAX_LIFECYCLE_RULES,
)
from ..services.gcs.models import (
    BucketSpec,
    CorsRule,
    DeleteAction,
    EncryptionConfig,
    LifecycleAction,
    LifecycleCondition,
    LifecycleRule,
    LoggingConfig,
    SetStorageClassAction,
    VersioningConfig,
    WebsiteConfig,
)
from ..utils.errors import ValidationError
from ..utils.labels import removed_label_keys

# Fields that can only be set at creation time
IMMUTABLE_FIELDS = ("name", "project", "location", "storage_class")


def create_bucket_spec_from_crd(spec: dict[str, Any]) -> BucketSpec:
    """Create a typed bucket specification from a Bucket CRD spec.

    Args:
        spec: Bucket CRD spec

    Returns:
        Validated bucket specification

    Raises:
        ValidationError: If the spec is malformed
    """
    name = spec.get("name")
    if not name:
        raise ValidationError("bucket name is required")

    websites = spec.get("website") or []
    if len(websites) > 1:
        raise ValidationError("At most one website block is allowed")

    raw_rules = spec.get("lifecycleRules") or []
    if len(raw_rules) > MAX_LIFECYCLE_RULES:
        raise ValidationError(f"At most {MAX_LIFECYCLE_RULES} lifecycle rules are allowed")

    versioning = spec.get("versioning")
    requester_pays = spec.get("requesterPays")

    return BucketSpec(
        name=name,
        project=spec.get("project") or None,
        location=(spec.get("location") or DEFAULT_LOCATION).upper(),
        storage_class=spec.get("storageClass") or DEFAULT_STORAGE_CLASS,
        force_destroy=bool(spec.get("forceDestroy", False)),
        requester_pays=bool(requester_pays) if requester_pays is not None else None,
        labels={str(k): str(v) for k, v in (spec.get("labels") or {}).items()},
        versioning=VersioningConfig(enabled=bool(versioning.get("enabled", False))) if versioning else None,
        website=_website_from_crd(websites[0]) if websites else None,
        cors=tuple(_cors_rule_from_crd(rule) for rule in spec.get("cors") or []),
        logging=_logging_from_crd(spec.get("logging")),
        encryption=_encryption_from_crd(spec.get("encryption")),
        lifecycle_rules=_dedupe(
            _lifecycle_rule_from_crd(index, rule) for index, rule in enumerate(raw_rules)
        ),
    )


def _website_from_crd(website: dict[str, Any] | None) -> WebsiteConfig:
    website = website or {}
    return WebsiteConfig(
        main_page_suffix=website.get("mainPageSuffix") or None,
        not_found_page=website.get("notFoundPage") or None,
    )


def _cors_rule_from_crd(rule: dict[str, Any]) -> CorsRule:
    return CorsRule(
        origin=tuple(rule.get("origin") or ()),
        method=tuple(rule.get("method") or ()),
        response_header=tuple(rule.get("responseHeader") or ()),
        max_age_seconds=rule.get("maxAgeSeconds"),
    )


def _logging_from_crd(logging_spec: dict[str, Any] | None) -> LoggingConfig | None:
    if not logging_spec:
        return None
    log_bucket = logging_spec.get("logBucket")
    if not log_bucket:
        raise ValidationError("logging.logBucket is required")
    return LoggingConfig(log_bucket=log_bucket, log_object_prefix=logging_spec.get("logObjectPrefix") or None)


def _encryption_from_crd(encryption: dict[str, Any] | None) -> EncryptionConfig | None:
    if not encryption:
        return None
    key_name = encryption.get("defaultKmsKeyName")
    if not key_name:
        raise ValidationError("encryption.defaultKmsKeyName is required")
    return EncryptionConfig(default_kms_key_name=key_name)


def _lifecycle_rule_from_crd(index: int, rule: dict[str, Any]) -> LifecycleRule:
    actions = rule.get("action") or []
    if len(actions) != 1:
        raise ValidationError(f"lifecycleRules[{index}]: exactly one action is required")
    conditions = rule.get("condition") or []
    if len(conditions) != 1:
        raise ValidationError(f"lifecycleRules[{index}]: exactly one condition is required")
    return LifecycleRule(
        action=_lifecycle_action_from_crd(index, actions[0] or {}),
        condition=_lifecycle_condition_from_crd(conditions[0] or {}),
    )


def _lifecycle_action_from_crd(index: int, action: dict[str, Any]) -> LifecycleAction:
    action_type = action.get("type")
    if action_type == ACTION_DELETE:
        return DeleteAction()
    if action_type == ACTION_SET_STORAGE_CLASS:
        storage_class = action.get("storageClass")
        if not storage_class:
            raise ValidationError(f"lifecycleRules[{index}]: SetStorageClass requires storageClass")
        return SetStorageClassAction(storage_class=storage_class)
    raise ValidationError(f"lifecycleRules[{index}]: unsupported action type {action_type!r}")


def _lifecycle_condition_from_crd(condition: dict[str, Any]) -> LifecycleCondition:
    return LifecycleCondition(
        age=condition.get("age"),
        created_before=condition.get("createdBefore") or None,
        is_live=condition.get("isLive"),
        matches_storage_class=tuple(condition.get("matchesStorageClass") or ()),
        num_newer_versions=condition.get("numNewerVersions"),
    )


def _dedupe(rules: Any) -> tuple[LifecycleRule, ...]:
    seen: dict[LifecycleRule, None] = {}
    for rule in rules:
        seen.setdefault(rule, None)
    return tuple(seen)


def immutable_field_changes(old: BucketSpec, new: BucketSpec) -> list[str]:
    """Return the names of creation-only fields that differ."""
    return [name for name in IMMUTABLE_FIELDS if getattr(old, name) != getattr(new, name)]


def build_patch(
    old: BucketSpec | None,
    new: BucketSpec,
    old_labels: dict[str, str] | None,
    new_labels: dict[str, str],
) -> dict[str, Any]:
    """Build a sparse patch body from two bucket specifications.

    Only changed fields are included. Cleared fields are sent as explicit
    ``None`` (JSON ``null``) since an omitted field leaves the remote value
    untouched. Removed labels are nulled key by key.

    Args:
        old: Previously applied specification, or None to send every field
        new: Desired specification
        old_labels: Labels previously sent to the bucket
        new_labels: Labels to send now

    Returns:
        Patch body for ``buckets.patch``
    """
    patch: dict[str, Any] = {}

    def changed(field_name: str) -> bool:
        return old is None or getattr(old, field_name) != getattr(new, field_name)

    if changed("lifecycle_rules"):
        patch["lifecycle"] = {"rule": [rule.to_api() for rule in new.lifecycle_rules]}

    if changed("requester_pays"):
        patch["billing"] = {"requesterPays": bool(new.requester_pays)}

    if changed("versioning"):
        enabled = new.versioning.enabled if new.versioning is not None else False
        patch["versioning"] = {"enabled": enabled}

    if changed("website"):
        patch["website"] = new.website.to_api() if new.website is not None else None

    if changed("cors"):
        patch["cors"] = [rule.to_api() for rule in new.cors] if new.cors else None

    if changed("logging"):
        patch["logging"] = new.logging.to_api() if new.logging is not None else None

    if changed("encryption"):
        patch["encryption"] = new.encryption.to_api() if new.encryption is not None else None

    old_labels = old_labels or {}
    if old is None or old_labels != new_labels:
        labels: dict[str, Any] = dict(new_labels)
        for key in removed_label_keys(old_labels, new_labels):
            labels[key] = None
        patch["labels"] = labels

    return patch
