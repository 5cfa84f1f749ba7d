"""Component versions and the mapping of storage versions onto kube versions."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering

_MAX_INT32 = 2**31 - 1

_VERSION = re.compile(
    r"v?(?P<major>\d+)\.(?P<minor>\d+)(?:\.(?P<patch>\d+))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+(?P<build>[0-9A-Za-z.-]+))?"
)


def _compare_pre_release(left: str, right: str) -> int:
    if left == right:
        return 0
    if not left:
        return 1
    if not right:
        return -1
    left_parts, right_parts = left.split("."), right.split(".")
    for a, b in zip(left_parts, right_parts):
        if a == b:
            continue
        if a.isdigit() and b.isdigit():
            return -1 if int(a) < int(b) else 1
        if a.isdigit():
            return -1
        if b.isdigit():
            return 1
        return -1 if a < b else 1
    return (len(left_parts) > len(right_parts)) - (len(left_parts) < len(right_parts))


@total_ordering
@dataclass(frozen=True)
class Version:
    """A dotted version with an optional patch, pre-release and build part."""

    major: int
    minor: int
    patch: int | None = None
    pre_release: str = ""
    build: str = ""

    @classmethod
    def parse(cls, text: str) -> Version:
        """Parse ``1.2``, ``v1.2.3`` or ``1.2.3-alpha.1+build``; raise ValueError."""
        match = _VERSION.fullmatch(text.strip())
        if match is None:
            raise ValueError(f"could not parse {text!r} as version")
        patch = match.group("patch")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(patch) if patch is not None else None,
            pre_release=match.group("pre") or "",
            build=match.group("build") or "",
        )

    @classmethod
    def major_minor(cls, major: int, minor: int) -> Version:
        return cls(major, minor)

    def offset_minor(self, offset: int) -> Version:
        """Return major.minor shifted by ``offset``; the minor never goes below 0."""
        return Version.major_minor(self.major, max(self.minor + offset, 0))

    def _compare(self, other: Version) -> int:
        mine = (self.major, self.minor, self.patch or 0)
        theirs = (other.major, other.minor, other.patch or 0)
        if mine != theirs:
            return -1 if mine < theirs else 1
        return _compare_pre_release(self.pre_release, other.pre_release)

    def greater_than(self, other: Version) -> bool:
        return self._compare(other) > 0

    def equal_to(self, other: Version | None) -> bool:
        if other is None:
            return False
        return self._compare(other) == 0

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._compare(other) < 0

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}"
        if self.patch is not None:
            text += f".{self.patch}"
        if self.pre_release:
            text += f"-{self.pre_release}"
        if self.build:
            text += f"+{self.build}"
        return text


DEFAULT_KUBE_BINARY_VERSION = Version.major_minor(1, 32)
DEFAULT_WARDLE_VERSION = "1.2"


def wardle_version_to_kube_version(
    ver: Version, kube_version: Version | None = None
) -> Version | None:
    """Map a storage server version onto the kube version it emulates.

    ``1.2`` maps to the kube binary version, lower minors map to lower kube
    minors, and the result never exceeds the binary version. Versions whose
    major is not 1 have no mapping.
    """
    if ver.major != 1:
        return None
    kube = kube_version if kube_version is not None else DEFAULT_KUBE_BINARY_VERSION
    if ver.minor > _MAX_INT32:
        raise OverflowError("minor version is too large")
    mapped = kube.offset_minor(ver.minor - 2)
    if mapped.greater_than(kube):
        return kube
    return mapped