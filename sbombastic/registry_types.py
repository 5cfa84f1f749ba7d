"""The Registry resource: a container registry to discover and scan."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .meta import GROUP_VERSION, Condition, ObjectMeta

REGISTRY_LAST_DISCOVERED_AT_ANNOTATION = "sbombastic.rancher.io/last-discovered-at"
REGISTRY_LAST_SCANNED_AT_ANNOTATION = "sbombastic.rancher.io/last-scanned-at"

REGISTRY_DISCOVERING_CONDITION = "Discovering"
REGISTRY_DISCOVERED_CONDITION = "Discovered"

REGISTRY_DISCOVERY_REQUESTED_REASON = "DiscoveryRequested"
REGISTRY_FAILED_TO_REQUEST_DISCOVERY_REASON = "FailedToRequestDiscovery"


@dataclass
class RegistrySpec:
    """Desired state of a Registry.

    An empty repository list means every repository found is scanned.
    """

    uri: str = ""
    repositories: list[str] = field(default_factory=list)
    auth_secret: str = ""
    ca_bundle: str = ""
    insecure: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.uri:
            data["uri"] = self.uri
        if self.repositories:
            data["repositories"] = list(self.repositories)
        if self.auth_secret:
            data["authSecret"] = self.auth_secret
        if self.ca_bundle:
            data["caBundle"] = self.ca_bundle
        if self.insecure:
            data["insecure"] = True
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RegistrySpec:
        data = data or {}
        return cls(
            uri=data.get("uri", ""),
            repositories=list(data.get("repositories") or []),
            auth_secret=data.get("authSecret", ""),
            ca_bundle=data.get("caBundle", ""),
            insecure=bool(data.get("insecure", False)),
        )


@dataclass
class RegistryStatus:
    """Observed state of a Registry."""

    conditions: list[Condition] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        if not self.conditions:
            return {}
        return {"conditions": [c.to_dict() for c in self.conditions]}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RegistryStatus:
        data = data or {}
        return cls([Condition.from_dict(c) for c in data.get("conditions") or []])


@dataclass
class Registry:
    """A container registry whose repositories are catalogued and scanned."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: RegistrySpec = field(default_factory=RegistrySpec)
    status: RegistryStatus = field(default_factory=RegistryStatus)

    KIND = "Registry"

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": str(GROUP_VERSION),
            "kind": self.KIND,
            "metadata": self.metadata.to_dict(),
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Registry:
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            spec=RegistrySpec.from_dict(data.get("spec")),
            status=RegistryStatus.from_dict(data.get("status")),
        )


@dataclass
class RegistryList:
    """A list of Registry objects."""

    items: list[Registry] = field(default_factory=list)