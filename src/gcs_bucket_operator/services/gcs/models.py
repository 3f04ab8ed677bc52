"""Models for Google Cloud Storage bucket operations.

Field names on the ``to_api``/``from_api`` side follow the Cloud Storage JSON
API v1 bucket resource.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from ...constants import ACTION_DELETE, ACTION_SET_STORAGE_CLASS


@dataclass(frozen=True)
class DeleteAction:
    """Delete objects matching the rule condition."""

    type: ClassVar[str] = ACTION_DELETE

    def to_api(self) -> dict[str, Any]:
        return {"type": self.type}

    to_crd = to_api


@dataclass(frozen=True)
class SetStorageClassAction:
    """Move objects matching the rule condition to another storage class."""

    storage_class: str
    type: ClassVar[str] = ACTION_SET_STORAGE_CLASS

    def to_api(self) -> dict[str, Any]:
        return {"type": self.type, "storageClass": self.storage_class}

    to_crd = to_api


LifecycleAction = Union[DeleteAction, SetStorageClassAction]


@dataclass(frozen=True)
class LifecycleCondition:
    """Conjunction of predicates an object must satisfy for a rule to fire."""

    age: int | None = None
    created_before: str | None = None
    is_live: bool | None = None
    matches_storage_class: tuple[str, ...] = ()
    num_newer_versions: int | None = None

    def to_api(self) -> dict[str, Any]:
        condition: dict[str, Any] = {}
        if self.age is not None:
            condition["age"] = self.age
        if self.created_before is not None:
            condition["createdBefore"] = self.created_before
        if self.is_live is not None:
            condition["isLive"] = self.is_live
        if self.matches_storage_class:
            condition["matchesStorageClass"] = list(self.matches_storage_class)
        if self.num_newer_versions is not None:
            condition["numNewerVersions"] = self.num_newer_versions
        return condition

    to_crd = to_api

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> LifecycleCondition:
        created_before = data.get("createdBefore")
        return cls(
            age=data.get("age"),
            # The API may echo a full RFC 3339 timestamp for a date condition
            created_before=created_before[:10] if created_before else None,
            is_live=data.get("isLive"),
            matches_storage_class=tuple(data.get("matchesStorageClass") or ()),
            num_newer_versions=data.get("numNewerVersions"),
        )


@dataclass(frozen=True)
class LifecycleRule:
    """One lifecycle rule. Rules are identified by their content."""

    action: LifecycleAction
    condition: LifecycleCondition

    def to_api(self) -> dict[str, Any]:
        return {"action": self.action.to_api(), "condition": self.condition.to_api()}

    def to_crd(self) -> dict[str, Any]:
        return {"action": [self.action.to_crd()], "condition": [self.condition.to_crd()]}

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> LifecycleRule:
        action_data = data.get("action") or {}
        action: LifecycleAction
        if action_data.get("type") == ACTION_SET_STORAGE_CLASS:
            action = SetStorageClassAction(storage_class=action_data.get("storageClass", ""))
        else:
            action = DeleteAction()
        return cls(action=action, condition=LifecycleCondition.from_api(data.get("condition") or {}))


@dataclass(frozen=True)
class VersioningConfig:
    enabled: bool = False

    def to_api(self) -> dict[str, Any]:
        return {"enabled": self.enabled}


@dataclass(frozen=True)
class WebsiteConfig:
    main_page_suffix: str | None = None
    not_found_page: str | None = None

    def to_api(self) -> dict[str, Any]:
        # Both keys are always sent so a PATCH clears the one left unset
        return {"mainPageSuffix": self.main_page_suffix, "notFoundPage": self.not_found_page}

    def to_crd(self) -> dict[str, Any]:
        website: dict[str, Any] = {}
        if self.main_page_suffix:
            website["mainPageSuffix"] = self.main_page_suffix
        if self.not_found_page:
            website["notFoundPage"] = self.not_found_page
        return website


@dataclass(frozen=True)
class CorsRule:
    origin: tuple[str, ...] = ()
    method: tuple[str, ...] = ()
    response_header: tuple[str, ...] = ()
    max_age_seconds: int | None = None

    def to_api(self) -> dict[str, Any]:
        rule: dict[str, Any] = {
            "origin": list(self.origin),
            "method": list(self.method),
            "responseHeader": list(self.response_header),
        }
        if self.max_age_seconds is not None:
            rule["maxAgeSeconds"] = self.max_age_seconds
        return rule

    to_crd = to_api

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> CorsRule:
        return cls(
            origin=tuple(data.get("origin") or ()),
            method=tuple(data.get("method") or ()),
            response_header=tuple(data.get("responseHeader") or ()),
            max_age_seconds=data.get("maxAgeSeconds"),
        )


@dataclass(frozen=True)
class LoggingConfig:
    log_bucket: str
    log_object_prefix: str | None = None

    def to_api(self) -> dict[str, Any]:
        logging_config = {"logBucket": self.log_bucket}
        if self.log_object_prefix:
            logging_config["logObjectPrefix"] = self.log_object_prefix
        return logging_config

    to_crd = to_api


@dataclass(frozen=True)
class EncryptionConfig:
    default_kms_key_name: str

    def to_api(self) -> dict[str, Any]:
        return {"defaultKmsKeyName": self.default_kms_key_name}


@dataclass
class BucketSpec:
    """Declarative description of a bucket."""

    name: str
    project: str | None = None
    location: str = "US"
    storage_class: str = "STANDARD"
    force_destroy: bool = False
    requester_pays: bool | None = None
    labels: dict[str, str] = field(default_factory=dict)
    versioning: VersioningConfig | None = None
    website: WebsiteConfig | None = None
    cors: tuple[CorsRule, ...] = ()
    logging: LoggingConfig | None = None
    encryption: EncryptionConfig | None = None
    lifecycle_rules: tuple[LifecycleRule, ...] = ()

    def to_api(self, labels: dict[str, str] | None = None) -> dict[str, Any]:
        """Build the full insert body.

        Args:
            labels: Labels to send; defaults to the declared labels

        Returns:
            Bucket resource body for ``buckets.insert``
        """
        body: dict[str, Any] = {
            "name": self.name,
            "location": self.location,
            "storageClass": self.storage_class,
            "labels": dict(self.labels if labels is None else labels),
        }
        if self.lifecycle_rules:
            body["lifecycle"] = {"rule": [rule.to_api() for rule in self.lifecycle_rules]}
        if self.versioning is not None:
            body["versioning"] = self.versioning.to_api()
        if self.website is not None:
            body["website"] = self.website.to_api()
        if self.cors:
            body["cors"] = [rule.to_api() for rule in self.cors]
        if self.logging is not None:
            body["logging"] = self.logging.to_api()
        if self.encryption is not None:
            body["encryption"] = self.encryption.to_api()
        if self.requester_pays is not None:
            body["billing"] = {"requesterPays": self.requester_pays}
        return body


@dataclass
class RemoteBucketState:
    """Point-in-time copy of a bucket resource returned by the API."""

    id: str
    name: str
    self_link: str
    project_number: str
    location: str
    storage_class: str
    labels: dict[str, str]
    requester_pays: bool | None
    versioning: VersioningConfig | None
    website: WebsiteConfig | None
    cors: tuple[CorsRule, ...]
    logging: LoggingConfig | None
    encryption: EncryptionConfig | None
    lifecycle_rules: tuple[LifecycleRule, ...]

    @classmethod
    def from_api(cls, resource: dict[str, Any]) -> RemoteBucketState:
        versioning = resource.get("versioning")
        website = resource.get("website")
        logging_data = resource.get("logging")
        encryption = resource.get("encryption")
        billing = resource.get("billing")
        lifecycle = resource.get("lifecycle") or {}
        return cls(
            id=resource.get("id", resource.get("name", "")),
            name=resource.get("name", ""),
            self_link=resource.get("selfLink", ""),
            project_number=str(resource.get("projectNumber", "")),
            location=resource.get("location", ""),
            storage_class=resource.get("storageClass", ""),
            labels=dict(resource.get("labels") or {}),
            requester_pays=billing.get("requesterPays", False) if billing is not None else None,
            versioning=VersioningConfig(enabled=bool(versioning.get("enabled", False))) if versioning else None,
            website=(
                WebsiteConfig(
                    main_page_suffix=website.get("mainPageSuffix"),
                    not_found_page=website.get("notFoundPage"),
                )
                if website
                else None
            ),
            cors=tuple(CorsRule.from_api(rule) for rule in resource.get("cors") or ()),
            logging=(
                LoggingConfig(
                    log_bucket=logging_data.get("logBucket", ""),
                    log_object_prefix=logging_data.get("logObjectPrefix"),
                )
                if logging_data
                else None
            ),
            encryption=(
                EncryptionConfig(default_kms_key_name=encryption["defaultKmsKeyName"])
                if encryption and encryption.get("defaultKmsKeyName")
                else None
            ),
            lifecycle_rules=tuple(LifecycleRule.from_api(rule) for rule in lifecycle.get("rule") or ()),
        )


@dataclass(frozen=True)
class ObjectVersion:
    """One object generation listed from a bucket."""

    name: str
    generation: str
