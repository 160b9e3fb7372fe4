"""Parsing and validation of the ``typst.toml`` package manifest."""

from __future__ import annotations

import posixpath
import re
from collections.abc import Mapping
from typing import Any

import toml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..check.models import Span
from ..core.exceptions import ManifestInvalid, ManifestMalformed
from .spec import NAME_PATTERN, VERSION_PATTERN


def _normalize_relative(value: str, what: str) -> str:
    path = value.strip().replace("\\", "/")
    if not path or path.startswith("/"):
        raise ValueError(f"{what} must be a relative path inside the package")
    normalized = posixpath.normpath(path)
    if normalized == ".." or normalized.startswith("../"):
        raise ValueError(f"{what} must not point outside of the package")
    return normalized


class PackageInfo(BaseModel):
    """The ``[package]`` table."""

    name: str
    version: str
    entrypoint: str
    authors: list[str] = Field(default_factory=list)
    license: str | None = None
    description: str | None = None
    homepage: str | None = None
    repository: str | None = None
    keywords: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    disciplines: list[str] = Field(default_factory=list)
    compiler: str | None = None
    exclude: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        if not NAME_PATTERN.match(value):
            raise ValueError(
                f"`{value}` is not a valid package name "
                "(use lowercase letters, digits and single hyphens)"
            )
        return value

    @field_validator("version")
    @classmethod
    def check_version(cls, value: str) -> str:
        if not VERSION_PATTERN.match(value):
            raise ValueError(f"`{value}` is not a valid version (expected MAJOR.MINOR.PATCH)")
        return value

    @field_validator("entrypoint")
    @classmethod
    def check_entrypoint(cls, value: str) -> str:
        return _normalize_relative(value, "The entrypoint")


class TemplateInfo(BaseModel):
    """The optional ``[template]`` table."""

    path: str
    entrypoint: str
    thumbnail: str | None = None

    @field_validator("path")
    @classmethod
    def check_path(cls, value: str) -> str:
        return _normalize_relative(value, "The template path")

    @field_validator("entrypoint")
    @classmethod
    def check_entrypoint(cls, value: str) -> str:
        return _normalize_relative(value, "The template entrypoint")

    @field_validator("thumbnail")
    @classmethod
    def check_thumbnail(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _normalize_relative(value, "The template thumbnail")

    @property
    def entrypoint_path(self) -> str:
        """Template entrypoint relative to the package root."""
        return posixpath.normpath(posixpath.join(self.path, self.entrypoint))


class Manifest(BaseModel):
    package: PackageInfo
    template: TemplateInfo | None = None


def _problems_from_validation(error: ValidationError) -> list[tuple[str, str | None, str]]:
    problems = []
    for item in error.errors():
        loc = [str(part) for part in item["loc"]]
        table = loc[0] if loc else "package"
        key = loc[1] if len(loc) > 1 else None
        dotted = ".".join(loc)

        if item["type"] == "missing":
            message = f"`{dotted}` is required" if key else f"The `[{table}]` table is required"
        else:
            message = str(item["msg"]).removeprefix("Value error, ")
            if item["type"] != "value_error":
                message = f"`{dotted}`: {message}"
        problems.append((table, key, message))
    return problems


def parse_manifest(text: str) -> Manifest:
    """Parse the content of a ``typst.toml`` file.

    Raises:
        ManifestMalformed: The file is not valid TOML.
        ManifestInvalid: Required tables or fields are missing or invalid.
    """
    try:
        data = toml.loads(text)
    except toml.TomlDecodeError as e:
        raise ManifestMalformed(str(e)) from e

    if not isinstance(data.get("package"), Mapping):
        raise ManifestInvalid([("package", None, "The `[package]` table is required")])

    try:
        return Manifest.model_validate(data)
    except ValidationError as e:
        raise ManifestInvalid(_problems_from_validation(e)) from e


def validate_files(manifest: Manifest, files: Mapping[str, Any]) -> None:
    """Check that the files referenced by the manifest exist.

    ``files`` is anything supporting ``in`` on package-relative paths, with an
    optional ``has_dir`` method for directories.

    Raises:
        ManifestInvalid: One or more referenced files are missing.
    """
    problems: list[tuple[str, str | None, str]] = []

    entrypoint = manifest.package.entrypoint
    if entrypoint not in files:
        problems.append(("package", "entrypoint", f"Package entrypoint `{entrypoint}` does not exist"))

    template = manifest.template
    if template is not None:
        has_dir = getattr(files, "has_dir", None)
        if has_dir is not None and not has_dir(template.path):
            problems.append(("template", "path", f"Template directory `{template.path}` does not exist"))
        if template.entrypoint_path not in files:
            problems.append((
                "template",
                "entrypoint",
                f"Template entrypoint `{template.entrypoint_path}` does not exist",
            ))
        if template.thumbnail is not None and template.thumbnail not in files:
            problems.append(("template", "thumbnail", f"Template thumbnail `{template.thumbnail}` does not exist"))

    if problems:
        raise ManifestInvalid(problems)


_TABLE_HEADER = re.compile(r"^\s*\[\s*([A-Za-z0-9_.-]+)\s*\]\s*(#.*)?$")


def key_span(text: str, table: str, key: str | None = None) -> Span | None:
    """Locate a key (or a table header when ``key`` is None) in manifest text."""
    key_pattern = re.compile(rf"^\s*[\"']?{re.escape(key)}[\"']?\s*=") if key else None
    current: str | None = None
    offset = 0
    for line in text.splitlines(keepends=True):
        header = _TABLE_HEADER.match(line)
        if header:
            current = header.group(1)
            if key is None and current == table:
                stripped = line.strip()
                start = offset + line.index(stripped)
                return Span(start=start, end=start + len(stripped))
        elif key_pattern is not None and current == table and key_pattern.match(line):
            stripped = line.strip()
            start = offset + line.index(stripped)
            return Span(start=start, end=start + len(stripped))
        offset += len(line)
    return None
