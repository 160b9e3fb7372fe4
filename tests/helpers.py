"""Builders for package file sets and directory trees."""

from pathlib import Path

from typst_package_check.package.source import FileSet

MANIFEST = """\
[package]
name = "mypkg"
version = "1.0.0"
entrypoint = "lib.typ"
"""

PUBLISHED_MANIFEST = """\
[package]
name = "{name}"
version = "{version}"
entrypoint = "lib.typ"
authors = ["Jane Doe <jane@example.com>"]
license = "MIT"
description = "A test package"
"""


def make_files(files: dict[str, str | bytes], manifest: str | None = MANIFEST) -> FileSet:
    """File set from text or bytes contents, with a default manifest."""
    contents = {path: c.encode() if isinstance(c, str) else c for path, c in files.items()}
    if manifest is not None:
        contents.setdefault("typst.toml", manifest.encode())
    return FileSet(contents)


def write_tree(root: Path, files: dict[str, str | bytes]) -> Path:
    for path, content in files.items():
        target = root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(content, encoding="utf-8")
    return root


def published_package(name: str = "mypkg", version: str = "1.0.0", lib: str = "= Hello\n") -> dict[str, str]:
    return {
        "typst.toml": PUBLISHED_MANIFEST.format(name=name, version=version),
        "lib.typ": lib,
        "README.md": f"# {name}\n",
        "LICENSE": "MIT License\n",
    }
