"""Package specifications: `@namespace/name:version`."""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..core.exceptions import InvalidPackageSpec

NAME_PATTERN = re.compile(r"^[a-z][a-z0-9]*(-[a-z0-9]+)*$")
NAMESPACE_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$")
VERSION_PATTERN = re.compile(r"^(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)$")


@dataclass(frozen=True, order=True)
class PackageVersion:
    """A `MAJOR.MINOR.PATCH` package version."""

    major: int
    minor: int
    patch: int

    @classmethod
    def parse(cls, value: str) -> PackageVersion:
        match = VERSION_PATTERN.match(value.strip())
        if not match:
            raise InvalidPackageSpec(f"`{value}` is not a valid version (expected MAJOR.MINOR.PATCH)")
        return cls(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


@dataclass(frozen=True)
class VersionlessPackageSpec:
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"@{self.namespace}/{self.name}"


@dataclass(frozen=True)
class PackageSpec:
    """A fully qualified package reference."""

    namespace: str
    name: str
    version: PackageVersion

    @classmethod
    def parse(cls, value: str) -> PackageSpec:
        """Parse `@namespace/name:version` (the `@` may be omitted)."""
        raw = value.strip()
        body = raw[1:] if raw.startswith("@") else raw

        namespace, slash, rest = body.partition("/")
        if not slash:
            raise InvalidPackageSpec(f"`{value}` is missing a namespace (expected @namespace/name:version)")
        name, colon, version = rest.partition(":")
        if not colon:
            raise InvalidPackageSpec(f"`{value}` is missing a version (expected @namespace/name:version)")
        if not NAMESPACE_PATTERN.match(namespace):
            raise InvalidPackageSpec(f"`{namespace}` is not a valid package namespace")
        if not NAME_PATTERN.match(name):
            raise InvalidPackageSpec(f"`{name}` is not a valid package name")

        return cls(namespace=namespace, name=name, version=PackageVersion.parse(version))

    @property
    def versionless(self) -> VersionlessPackageSpec:
        return VersionlessPackageSpec(self.namespace, self.name)

    def with_version(self, version: PackageVersion) -> PackageSpec:
        return PackageSpec(self.namespace, self.name, version)

    def registry_path(self) -> str:
        """Path of the package inside the registry repository."""
        return f"packages/{self.namespace}/{self.name}/{self.version}"

    def __str__(self) -> str:
        return f"@{self.namespace}/{self.name}:{self.version}"
