"""Registry of known API types and field selector conversions for storage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from .meta import GroupKind, GroupResource, GroupVersion, GroupVersionKind
from .storage_types import (
    SBOM,
    SBOMList,
    STORAGE_GROUP_VERSION,
    Image,
    ImageList,
    VulnerabilityReport,
    VulnerabilityReportList,
)

GROUP_NAME = "storage.sbombastic.rancher.io"
API_VERSION_INTERNAL = "__internal"

SCHEME_GROUP_VERSION = STORAGE_GROUP_VERSION
INTERNAL_GROUP_VERSION = GroupVersion(GROUP_NAME, API_VERSION_INTERNAL)

FieldLabelConversionFunc = Callable[[str, str], "tuple[str, str]"]

_IMAGE_METADATA_FIELDS = frozenset(
    {
        "metadata.name",
        "metadata.namespace",
        "spec.imageMetadata.registry",
        "spec.imageMetadata.registryURI",
        "spec.imageMetadata.repository",
        "spec.imageMetadata.tag",
        "spec.imageMetadata.platform",
        "spec.imageMetadata.digest",
    }
)

_META_FIELDS = frozenset({"metadata.name", "metadata.namespace"})


class FieldSelectorError(ValueError):
    """Raised when a field selector label is not supported for a kind."""


@dataclass
class _GetOptions:
    KIND = "GetOptions"


@dataclass
class _CreateOptions:
    KIND = "CreateOptions"


@dataclass
class _ListOptions:
    KIND = "ListOptions"


def _quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _kind_of(type_: type) -> str:
    return getattr(type_, "KIND", type_.__name__)


class Scheme:
    """Maps group versions to the kinds they serve and their field selectors."""

    def __init__(self) -> None:
        self._types: dict[GroupVersion, dict[str, type]] = {}
        self._field_conversions: dict[GroupVersionKind, FieldLabelConversionFunc] = {}
        self.version_priority: dict[str, list[str]] = {}

    def add_known_types(self, group_version: GroupVersion, *args: type) -> None:
        """Register the given types under ``group_version``, keyed by kind."""
        kinds = self._types.setdefault(group_version, {})
        for type_ in args:
            kinds[_kind_of(type_)] = type_

    def known_types(self, group_version: GroupVersion) -> dict[str, type]:
        """Return a copy of the kind-to-type mapping for ``group_version``."""
        return dict(self._types.get(group_version, {}))

    def add_field_label_conversion_func(
        self, gvk: GroupVersionKind, func: FieldLabelConversionFunc
    ) -> None:
        self._field_conversions[gvk] = func

    def convert_field_label(
        self, gvk: GroupVersionKind, label: str, value: str
    ) -> tuple[str, str]:
        """Convert a field selector for ``gvk``; only metadata fields by default."""
        func = self._field_conversions.get(gvk)
        if func is not None:
            return func(label, value)
        if label in _META_FIELDS:
            return label, value
        raise FieldSelectorError(
            f"{_quote(label)} is not a known field selector: only "
            f"{_quote('metadata.name')}, {_quote('metadata.namespace')}"
        )

    def set_version_priority(self, *args: GroupVersion) -> None:
        """Set the preferred order of versions; all must share one group."""
        if not args:
            raise ValueError("at least one version must be given")
        group = args[0].group
        for gv in args:
            if gv.version == API_VERSION_INTERNAL:
                raise ValueError(f"internal versions cannot be prioritized: {gv}")
            if gv.group != group:
                raise ValueError(
                    f"{_quote(str(gv))} is not the same group as {_quote(str(args[0]))}"
                )
        self.version_priority[group] = [gv.version for gv in args]


def kind(kind_name: str) -> GroupKind:
    """Qualify a kind with the storage group."""
    return SCHEME_GROUP_VERSION.with_kind(kind_name).group_kind()


def resource(resource_name: str) -> GroupResource:
    """Qualify a resource with the storage group."""
    return SCHEME_GROUP_VERSION.with_resource(resource_name).group_resource()


def internal_kind(kind_name: str) -> GroupKind:
    """Qualify a kind with the storage group's internal version."""
    return INTERNAL_GROUP_VERSION.with_kind(kind_name).group_kind()


def internal_resource(resource_name: str) -> GroupResource:
    """Qualify a resource with the storage group's internal version."""
    return INTERNAL_GROUP_VERSION.with_resource(resource_name).group_resource()


def image_metadata_field_selector_conversion(label: str, value: str) -> tuple[str, str]:
    """Accept object name, namespace and image metadata fields unchanged."""
    if label in _IMAGE_METADATA_FIELDS:
        return label, value
    raise FieldSelectorError(
        f"{_quote(label)} is not a known field selector: only "
        f"{_quote('metadata.name')}, {_quote('metadata.namespace')}, "
        f"{_quote('spec.imageMetadata.*')}"
    )


_STORAGE_TYPES = (
    Image,
    ImageList,
    SBOM,
    SBOMList,
    VulnerabilityReport,
    VulnerabilityReportList,
)


def add_known_types(scheme: Scheme) -> None:
    """Register the versioned storage types and their field selectors."""
    scheme.add_known_types(
        SCHEME_GROUP_VERSION,
        *_STORAGE_TYPES,
        _GetOptions,
        _CreateOptions,
        _ListOptions,
    )
    for kind_name in (Image.KIND, SBOM.KIND, VulnerabilityReport.KIND):
        scheme.add_field_label_conversion_func(
            SCHEME_GROUP_VERSION.with_kind(kind_name),
            image_metadata_field_selector_conversion,
        )


def add_internal_known_types(scheme: Scheme) -> None:
    """Register the storage types under the internal version."""
    scheme.add_known_types(INTERNAL_GROUP_VERSION, *_STORAGE_TYPES)


def install(scheme: Scheme) -> None:
    """Register the whole storage API group and prefer its v1alpha1 version."""
    add_internal_known_types(scheme)
    add_known_types(scheme)
    scheme.set_version_priority(SCHEME_GROUP_VERSION)