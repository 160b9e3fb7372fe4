"""Package loading: specifications, manifests and file sets."""

from .loader import Registry, load_directory
from .manifest import Manifest, PackageInfo, TemplateInfo, parse_manifest, validate_files
from .source import FileSet, Package, SourceFile
from .spec import PackageSpec, PackageVersion, VersionlessPackageSpec

__all__ = [
    "FileSet",
    "Manifest",
    "Package",
    "PackageInfo",
    "PackageSpec",
    "PackageVersion",
    "Registry",
    "SourceFile",
    "TemplateInfo",
    "VersionlessPackageSpec",
    "load_directory",
    "parse_manifest",
    "validate_files",
]
