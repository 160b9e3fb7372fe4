"""Loading packages from a directory or from a local registry clone.

Nothing here touches the network: registry lookups only consult the
``packages/<namespace>/<name>/<version>`` layout of the local clone.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from ..core.exceptions import InvalidPackageSpec, PackageNotFound
from .source import FileSet
from .spec import PackageSpec, PackageVersion

logger = logging.getLogger(__name__)

PACKAGES_SUBDIR = "packages"
SKIPPED_DIRS = frozenset({".git"})

Overlay = Mapping[str, bytes | None]


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def load_directory(root: str | os.PathLike[str], overlay: Overlay | None = None) -> FileSet:
    """Read every file below ``root`` into memory.

    Symlinks are followed only while their target stays inside ``root``;
    the others are recorded in ``FileSet.escaped_links`` and not read.
    ``overlay`` maps package-relative paths to replacement content, ``None``
    meaning the file is deleted.
    """
    root_path = Path(root)
    files: dict[str, bytes] = {}
    escaped: list[str] = []

    if root_path.is_dir():
        resolved_root = root_path.resolve()
        for dirpath, dirnames, filenames in os.walk(root_path):
            current = Path(dirpath)
            kept_dirs = []
            for dirname in sorted(dirnames):
                if dirname in SKIPPED_DIRS:
                    continue
                candidate = current / dirname
                if candidate.is_symlink():
                    if not _is_within(candidate.resolve(), resolved_root):
                        escaped.append(candidate.relative_to(root_path).as_posix())
                        continue
                    # Linked directories inside the root are reached through their real path.
                    continue
                kept_dirs.append(dirname)
            dirnames[:] = kept_dirs

            for filename in sorted(filenames):
                candidate = current / filename
                relative = candidate.relative_to(root_path).as_posix()
                if candidate.is_symlink() and not _is_within(candidate.resolve(), resolved_root):
                    escaped.append(relative)
                    continue
                try:
                    files[relative] = candidate.read_bytes()
                except OSError as e:
                    logger.warning(f"Could not read {candidate}: {e}")
    elif overlay is None:
        raise FileNotFoundError(f"Package directory {root_path} does not exist")

    for path, content in (overlay or {}).items():
        if content is None:
            files.pop(path, None)
        else:
            files[path] = content

    return FileSet(files, escaped_links=tuple(escaped))


class Registry:
    """Read-only view of a local clone of the package repository."""

    def __init__(self, clone_root: str | os.PathLike[str]):
        self.root = Path(clone_root)

    def __repr__(self) -> str:
        return f"Registry({str(self.root)!r})"

    @property
    def packages_dir(self) -> Path:
        return self.root / PACKAGES_SUBDIR

    def package_dir(self, spec: PackageSpec) -> Path:
        return self.packages_dir / spec.namespace / spec.name / str(spec.version)

    def has_package(self, spec: PackageSpec) -> bool:
        return (self.package_dir(spec) / "typst.toml").is_file()

    def versions(self, namespace: str, name: str) -> list[PackageVersion]:
        """All versions of a package present in the clone, ascending."""
        package_root = self.packages_dir / namespace / name
        if not package_root.is_dir():
            return []

        versions = []
        for entry in package_root.iterdir():
            if not entry.is_dir():
                continue
            try:
                versions.append(PackageVersion.parse(entry.name))
            except InvalidPackageSpec:
                continue
        return sorted(versions)

    def latest_version(self, namespace: str, name: str) -> PackageVersion | None:
        versions = self.versions(namespace, name)
        return versions[-1] if versions else None

    def previous_version(self, spec: PackageSpec) -> PackageSpec | None:
        """The newest other version of the same package, if any."""
        others = [v for v in self.versions(spec.namespace, spec.name) if v != spec.version]
        if not others:
            return None
        return spec.with_version(others[-1])

    def load(self, spec: PackageSpec, overlay: Overlay | None = None) -> FileSet:
        """Load a package's files, optionally patched with pull request content.

        Raises:
            PackageNotFound: Neither the directory nor any overlay content exists.
        """
        directory = self.package_dir(spec)
        if not directory.is_dir() and not overlay:
            raise PackageNotFound(spec)
        logger.debug(f"Loading {spec} from {directory}")
        return load_directory(directory, overlay)

    def read_manifest(self, spec: PackageSpec) -> str | None:
        """Raw ``typst.toml`` of a package version in the clone, if present."""
        path = self.package_dir(spec) / "typst.toml"
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None
