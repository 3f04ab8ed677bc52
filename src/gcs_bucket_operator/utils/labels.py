"""Label bookkeeping for Bucket resources.

Three label views are tracked for every bucket:

* ``user``: the labels declared on the Bucket resource.
* ``managed``: provider default labels merged with the user labels, user
  labels winning on key collisions. This is what the operator sends.
* ``effective``: every label on the remote bucket, including labels that
  other systems attached outside of the operator's control.

The functions here are pure; ``None`` is accepted anywhere a map is and is
treated as empty.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping


@dataclass(frozen=True)
class LabelState:
    """Snapshot of the three label views for one bucket."""

    user: dict[str, str] = field(default_factory=dict)
    managed: dict[str, str] = field(default_factory=dict)
    effective: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_status(cls, status: Mapping[str, object] | None) -> LabelState:
        """Load the previous label views persisted in a resource status."""
        status = status or {}
        return cls(
            user=dict(status.get("labels") or {}),  # type: ignore[call-overload]
            managed=dict(status.get("managedLabels") or {}),  # type: ignore[call-overload]
            effective=dict(status.get("effectiveLabels") or {}),  # type: ignore[call-overload]
        )

    def to_status(self) -> dict[str, dict[str, str]]:
        """Render the label views as status fields."""
        return {
            "labels": dict(self.user),
            "managedLabels": dict(self.managed),
            "effectiveLabels": dict(self.effective),
        }


def merge_default_labels(
    default_labels: Mapping[str, str] | None,
    user_labels: Mapping[str, str] | None,
) -> dict[str, str]:
    """Merge provider default labels with user labels; user labels win."""
    merged = dict(default_labels or {})
    merged.update(user_labels or {})
    return merged


def reconcile_labels(
    default_labels: Mapping[str, str] | None,
    user_labels: Mapping[str, str] | None,
    previous: LabelState | None = None,
) -> LabelState:
    """Predict the label views the next apply will produce.

    Starts from the previously persisted effective labels, overlays the new
    managed labels and drops any key the previous managed view carried but
    the new one no longer does. A key that is still supplied by the provider
    defaults survives with the default's value.

    Args:
        default_labels: Provider-wide default labels
        user_labels: Labels currently declared on the resource
        previous: Label views from the prior state

    Returns:
        The planned label views
    """
    previous = previous or LabelState()
    managed = merge_default_labels(default_labels, user_labels)

    effective = dict(previous.effective)
    effective.update(managed)
    for key in previous.managed:
        if key not in managed:
            effective.pop(key, None)

    return LabelState(user=dict(user_labels or {}), managed=managed, effective=effective)


def project_labels(
    remote_labels: Mapping[str, str] | None,
    declared: Mapping[str, str] | None,
) -> dict[str, str]:
    """Project labels read from the remote bucket onto the declared keys.

    Keys the remote reports but the configuration does not declare are
    dropped. A declared key missing remotely is omitted as well, so the gap
    shows up as drift.
    """
    remote_labels = remote_labels or {}
    return {key: remote_labels[key] for key in (declared or {}) if key in remote_labels}


def removed_label_keys(
    old: Mapping[str, str] | None,
    new: Mapping[str, str] | None,
) -> list[str]:
    """Return the keys present in ``old`` but not in ``new``, sorted."""
    new = new or {}
    return sorted(key for key in (old or {}) if key not in new)
