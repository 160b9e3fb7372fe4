"""Built-in rules.

Adding a check means writing a ``Rule`` subclass and listing it in
``default_rules``; the engine needs no other change.
"""

from ..engine import Rule
from .authors import AuthorsChangedRule
from .files import EscapingSymlinkRule, FileEncodingRule, FileSizeRule, FontFilesRule, LicenseFileRule
from .imports import (
    ImportCycleRule,
    OutdatedImportRule,
    PackageNotFoundRule,
    RelativeEntrypointImportRule,
    UnreachableFileRule,
    UnresolvedImportRule,
)
from .manifest import ManifestIdentityRule, ManifestMetadataRule, ManifestProblemsRule
from .naming import KebabCaseRule
from .readme import ReadmeExtensionsRule, ReadmeMissingRule, ReadmeSyntaxRule
from .syntax import SyntaxIssueRule


def default_rules() -> list[Rule]:
    return [
        ManifestProblemsRule(),
        ManifestIdentityRule(),
        ManifestMetadataRule(),
        LicenseFileRule(),
        UnresolvedImportRule(),
        PackageNotFoundRule(),
        ImportCycleRule(),
        RelativeEntrypointImportRule(),
        OutdatedImportRule(),
        UnreachableFileRule(),
        FileEncodingRule(),
        FileSizeRule(),
        FontFilesRule(),
        EscapingSymlinkRule(),
        SyntaxIssueRule(),
        KebabCaseRule(),
        ReadmeMissingRule(),
        ReadmeExtensionsRule(),
        ReadmeSyntaxRule(),
        AuthorsChangedRule(),
    ]


__all__ = [
    "AuthorsChangedRule",
    "EscapingSymlinkRule",
    "FileEncodingRule",
    "FileSizeRule",
    "FontFilesRule",
    "ImportCycleRule",
    "KebabCaseRule",
    "LicenseFileRule",
    "ManifestIdentityRule",
    "ManifestMetadataRule",
    "ManifestProblemsRule",
    "OutdatedImportRule",
    "PackageNotFoundRule",
    "ReadmeExtensionsRule",
    "ReadmeMissingRule",
    "ReadmeSyntaxRule",
    "RelativeEntrypointImportRule",
    "SyntaxIssueRule",
    "UnreachableFileRule",
    "UnresolvedImportRule",
    "default_rules",
]
