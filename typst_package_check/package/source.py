"""In-memory package file sets."""

from __future__ import annotations

import fnmatch
from bisect import bisect_right
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from functools import cached_property
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .manifest import Manifest
    from .spec import PackageSpec

MANIFEST_FILE = "typst.toml"
README_FILE = "README.md"
LICENSE_PREFIXES = ("LICENSE", "LICENCE", "COPYING", "UNLICENSE")


@dataclass(frozen=True)
class SourceFile:
    """A file of the package, identified by its posix path relative to the root."""

    path: str
    content: bytes = field(repr=False)

    @cached_property
    def text(self) -> str | None:
        """UTF-8 decoded content, ``None`` if the file is not valid UTF-8."""
        try:
            return self.content.decode("utf-8")
        except UnicodeDecodeError:
            return None

    @property
    def is_typst(self) -> bool:
        return self.path.endswith(".typ")

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def suffix(self) -> str:
        name = self.path.rsplit("/", 1)[-1]
        _, dot, ext = name.rpartition(".")
        return f".{ext.lower()}" if dot else ""

    @cached_property
    def _line_starts(self) -> list[int]:
        starts = [0]
        for index, char in enumerate(self.text or ""):
            if char == "\n":
                starts.append(index + 1)
        return starts

    def line_col(self, offset: int) -> tuple[int, int]:
        """1-based line and column of a character offset."""
        line = bisect_right(self._line_starts, offset) - 1
        return line + 1, offset - self._line_starts[line] + 1


class FileSet(Mapping[str, SourceFile]):
    """Immutable mapping of package-relative paths to files.

    Iteration is sorted by path so that everything derived from a file set
    is deterministic.
    """

    def __init__(self, files: Mapping[str, bytes] | None = None, escaped_links: tuple[str, ...] = ()):
        self._files = {path: SourceFile(path, content) for path, content in sorted((files or {}).items())}
        self.escaped_links = tuple(sorted(escaped_links))

    def __getitem__(self, path: str) -> SourceFile:
        return self._files[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._files)

    def __len__(self) -> int:
        return len(self._files)

    def __repr__(self) -> str:
        return f"FileSet({len(self._files)} files)"

    def typst_files(self) -> list[SourceFile]:
        return [f for f in self._files.values() if f.is_typst]

    def has_dir(self, path: str) -> bool:
        prefix = path.strip("/") + "/"
        return prefix == "/" or any(p.startswith(prefix) for p in self._files)

    def license_file(self) -> SourceFile | None:
        for path, source in self._files.items():
            if "/" not in path and path.upper().startswith(LICENSE_PREFIXES):
                return source
        return None


@dataclass(frozen=True)
class Package:
    """A loaded package: its files plus the manifest, when it parsed.

    ``spec`` is the identity the package is checked under (from the registry
    layout in registry mode, from the manifest otherwise).
    """

    files: FileSet
    manifest: Manifest | None = None
    spec: PackageSpec | None = None

    @property
    def name(self) -> str | None:
        return self.manifest.package.name if self.manifest else None

    @property
    def version(self) -> str | None:
        return self.manifest.package.version if self.manifest else None

    @property
    def entrypoint(self) -> str | None:
        return self.manifest.package.entrypoint if self.manifest else None

    @property
    def license(self) -> str | None:
        return self.manifest.package.license if self.manifest else None

    @property
    def template_entrypoint(self) -> str | None:
        if self.manifest is None or self.manifest.template is None:
            return None
        return self.manifest.template.entrypoint_path

    @property
    def entrypoints(self) -> list[str]:
        return [e for e in (self.entrypoint, self.template_entrypoint) if e]

    def is_excluded(self, path: str) -> bool:
        """Whether ``path`` matches one of the manifest's ``exclude`` globs."""
        if self.manifest is None:
            return False
        for pattern in self.manifest.package.exclude:
            pattern = pattern.strip("/")
            if fnmatch.fnmatch(path, pattern) or path.startswith(pattern + "/"):
                return True
        return False

    def in_template(self, path: str) -> bool:
        if self.manifest is None or self.manifest.template is None:
            return False
        return path.startswith(self.manifest.template.path.strip("/") + "/")

    @property
    def label(self) -> str:
        if self.spec is not None:
            return str(self.spec)
        if self.name and self.version:
            return f"{self.name}:{self.version}"
        return "<unknown package>"
