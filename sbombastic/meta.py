"""API identity types, object metadata and status conditions."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class GroupKind:
    """A kind qualified by its API group."""

    group: str
    kind: str


@dataclass(frozen=True)
class GroupResource:
    """A resource qualified by its API group."""

    group: str
    resource: str


@dataclass(frozen=True)
class GroupVersionKind:
    """A kind qualified by API group and version."""

    group: str
    version: str
    kind: str

    def group_kind(self) -> GroupKind:
        return GroupKind(self.group, self.kind)


@dataclass(frozen=True)
class GroupVersionResource:
    """A resource qualified by API group and version."""

    group: str
    version: str
    resource: str

    def group_resource(self) -> GroupResource:
        return GroupResource(self.group, self.resource)


@dataclass(frozen=True)
class GroupVersion:
    """An API group together with a version."""

    group: str
    version: str

    def with_kind(self, kind: str) -> GroupVersionKind:
        return GroupVersionKind(self.group, self.version, kind)

    def with_resource(self, resource: str) -> GroupVersionResource:
        return GroupVersionResource(self.group, self.version, resource)

    def __str__(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version


GROUP_VERSION = GroupVersion("sbombastic.rancher.io", "v1alpha1")


def _format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_time(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass
class ObjectMeta:
    """Identity and annotations of a stored object."""

    name: str = ""
    namespace: str = ""
    annotations: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    resource_version: str = ""
    uid: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.name:
            data["name"] = self.name
        if self.namespace:
            data["namespace"] = self.namespace
        if self.uid:
            data["uid"] = self.uid
        if self.resource_version:
            data["resourceVersion"] = self.resource_version
        if self.labels:
            data["labels"] = dict(self.labels)
        if self.annotations:
            data["annotations"] = dict(self.annotations)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ObjectMeta:
        data = data or {}
        return cls(
            name=data.get("name", ""),
            namespace=data.get("namespace", ""),
            annotations=dict(data.get("annotations") or {}),
            labels=dict(data.get("labels") or {}),
            resource_version=data.get("resourceVersion", ""),
            uid=data.get("uid", ""),
        )


class ConditionStatus(str, enum.Enum):
    """Status of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


@dataclass
class Condition:
    """One observation of an aspect of an object's state."""

    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    observed_generation: int = 0
    last_transition_time: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "status": self.status.value}
        if self.observed_generation:
            data["observedGeneration"] = self.observed_generation
        data["lastTransitionTime"] = (
            _format_time(self.last_transition_time) if self.last_transition_time else None
        )
        data["reason"] = self.reason
        data["message"] = self.message
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Condition:
        raw_time = data.get("lastTransitionTime")
        return cls(
            type=data["type"],
            status=ConditionStatus(data["status"]),
            reason=data.get("reason", ""),
            message=data.get("message", ""),
            observed_generation=data.get("observedGeneration", 0),
            last_transition_time=_parse_time(raw_time) if raw_time else None,
        )


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def find_status_condition(
    conditions: list[Condition], condition_type: str
) -> Condition | None:
    """Return the condition of the given type, or None."""
    return next((c for c in conditions if c.type == condition_type), None)


def set_status_condition(conditions: list[Condition], new_condition: Condition) -> bool:
    """Add or update a condition in the list; return whether anything changed.

    The transition time is set when the condition is added or its status
    changes, using the new condition's time if it has one, else the current time.
    """
    existing = find_status_condition(conditions, new_condition.type)
    if existing is None:
        if new_condition.last_transition_time is None:
            new_condition.last_transition_time = _now()
        conditions.append(new_condition)
        return True

    changed = False
    if existing.status != new_condition.status:
        existing.status = new_condition.status
        existing.last_transition_time = new_condition.last_transition_time or _now()
        changed = True
    if existing.reason != new_condition.reason:
        existing.reason = new_condition.reason
        changed = True
    if existing.message != new_condition.message:
        existing.message = new_condition.message
        changed = True
    if existing.observed_generation != new_condition.observed_generation:
        existing.observed_generation = new_condition.observed_generation
        changed = True
    return changed