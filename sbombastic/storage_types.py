"""Stored resources: images, SBOMs and vulnerability reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .meta import GroupVersion, ObjectMeta

STORAGE_GROUP_VERSION = GroupVersion("storage.sbombastic.rancher.io", "v1alpha1")


@dataclass
class ImageMetadata:
    """Where an image lives and which exact artifact it is."""

    registry: str = ""
    registry_uri: str = ""
    repository: str = ""
    tag: str = ""
    platform: str = ""
    digest: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "registry": self.registry,
            "registryURI": self.registry_uri,
            "repository": self.repository,
            "tag": self.tag,
            "platform": self.platform,
            "digest": self.digest,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ImageMetadata:
        data = data or {}
        return cls(
            registry=data.get("registry", ""),
            registry_uri=data.get("registryURI", ""),
            repository=data.get("repository", ""),
            tag=data.get("tag", ""),
            platform=data.get("platform", ""),
            digest=data.get("digest", ""),
        )


@dataclass
class ImageLayer:
    """One layer of an OCI image; the command is base64 encoded."""

    command: str = ""
    digest: str = ""
    diff_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"command": self.command, "digest": self.digest, "diffID": self.diff_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImageLayer:
        return cls(
            command=data.get("command", ""),
            digest=data.get("digest", ""),
            diff_id=data.get("diffID", ""),
        )


@dataclass
class ImageSpec:
    """Desired state of an Image."""

    image_metadata: ImageMetadata = field(default_factory=ImageMetadata)
    layers: list[ImageLayer] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"imageMetadata": self.image_metadata.to_dict()}
        if self.layers:
            data["layers"] = [layer.to_dict() for layer in self.layers]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ImageSpec:
        data = data or {}
        return cls(
            image_metadata=ImageMetadata.from_dict(data.get("imageMetadata")),
            layers=[ImageLayer.from_dict(layer) for layer in data.get("layers") or []],
        )


def _envelope(kind: str, metadata: ObjectMeta, spec: dict[str, Any]) -> dict[str, Any]:
    return {
        "apiVersion": str(STORAGE_GROUP_VERSION),
        "kind": kind,
        "metadata": metadata.to_dict(),
        "spec": spec,
        "status": {},
    }


@dataclass
class Image:
    """A container image found in a registry."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: ImageSpec = field(default_factory=ImageSpec)

    KIND = "Image"

    def image_metadata(self) -> ImageMetadata:
        return self.spec.image_metadata

    def to_dict(self) -> dict[str, Any]:
        return _envelope(self.KIND, self.metadata, self.spec.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Image:
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            spec=ImageSpec.from_dict(data.get("spec")),
        )


@dataclass
class ImageList:
    """A list of Image objects."""

    items: list[Image] = field(default_factory=list)


@dataclass
class SBOMSpec:
    """Desired state of an SBOM; ``spdx`` holds the SPDX JSON document."""

    image_metadata: ImageMetadata = field(default_factory=ImageMetadata)
    spdx: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"imageMetadata": self.image_metadata.to_dict(), "spdx": self.spdx}


@dataclass
class SBOM:
    """A software bill of materials of an OCI artifact."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: SBOMSpec = field(default_factory=SBOMSpec)

    KIND = "SBOM"

    def image_metadata(self) -> ImageMetadata:
        return self.spec.image_metadata

    def to_dict(self) -> dict[str, Any]:
        return _envelope(self.KIND, self.metadata, self.spec.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SBOM:
        spec = data.get("spec") or {}
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            spec=SBOMSpec(
                image_metadata=ImageMetadata.from_dict(spec.get("imageMetadata")),
                spdx=spec.get("spdx"),
            ),
        )


@dataclass
class SBOMList:
    """A list of SBOM objects."""

    items: list[SBOM] = field(default_factory=list)


@dataclass
class VulnerabilityReportSpec:
    """Desired state of a report; ``sarif`` holds the SARIF JSON document."""

    image_metadata: ImageMetadata = field(default_factory=ImageMetadata)
    sarif: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"imageMetadata": self.image_metadata.to_dict(), "sarif": self.sarif}


@dataclass
class VulnerabilityReport:
    """The result of scanning an SBOM for vulnerabilities."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: VulnerabilityReportSpec = field(default_factory=VulnerabilityReportSpec)

    KIND = "VulnerabilityReport"

    def image_metadata(self) -> ImageMetadata:
        return self.spec.image_metadata

    def to_dict(self) -> dict[str, Any]:
        return _envelope(self.KIND, self.metadata, self.spec.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VulnerabilityReport:
        spec = data.get("spec") or {}
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            spec=VulnerabilityReportSpec(
                image_metadata=ImageMetadata.from_dict(spec.get("imageMetadata")),
                sarif=spec.get("sarif"),
            ),
        )


@dataclass
class VulnerabilityReportList:
    """A list of VulnerabilityReport objects."""

    items: list[VulnerabilityReport] = field(default_factory=list)