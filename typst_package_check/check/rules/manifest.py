"""Manifest rules."""

from collections.abc import Iterator

from ...package.source import MANIFEST_FILE
from ..engine import CheckContext, Rule
from ..models import Diagnostic

MANIFEST_MALFORMED = "manifest/malformed"
MANIFEST_INVALID = "manifest/invalid"

REQUIRED_PUBLICATION_FIELDS = ("authors", "license", "description")


class ManifestProblemsRule(Rule):
    """Reports problems found while loading ``typst.toml``."""

    rule_id = MANIFEST_INVALID
    description = "typst.toml must be valid TOML with the required fields and files"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        for problem in context.manifest_problems:
            file, span = MANIFEST_FILE, None
            if problem.table is not None:
                file, span = context.manifest_location(problem.table, problem.key)
                if span is None and problem.key is not None:
                    # Missing keys point at their table header.
                    _, span = context.manifest_location(problem.table)
            yield Diagnostic.error(problem.rule_id, problem.message, file=file, span=span)


class ManifestIdentityRule(Rule):
    """In a registry clone the manifest must match its directory."""

    rule_id = "manifest/name-mismatch"
    description = "Manifest name and version must match the package directory"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        spec = context.package.spec
        manifest = context.manifest
        if spec is None or manifest is None or not context.registry_mode:
            return

        if manifest.package.name != spec.name:
            file, span = context.manifest_location("package", "name")
            yield Diagnostic.error(
                "manifest/name-mismatch",
                f"Unexpected package name. `{spec.name}` was expected. If you want to publish "
                f"a new package, create a new directory in `packages/{spec.namespace}/`.",
                file=file,
                span=span,
            )

        if manifest.package.version != str(spec.version):
            file, span = context.manifest_location("package", "version")
            yield Diagnostic.error(
                "manifest/version-mismatch",
                f"Unexpected version number. `{spec.version}` was expected. If you want to publish "
                f"a new version, create a new directory in `packages/{spec.namespace}/{spec.name}`.",
                file=file,
                span=span,
            )


class ManifestMetadataRule(Rule):
    """Published packages need authors, a license and a description."""

    rule_id = "manifest/missing-metadata"
    description = "Published packages must declare authors, license and description"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        manifest = context.manifest
        if manifest is None or not context.publication:
            return

        for key in REQUIRED_PUBLICATION_FIELDS:
            value = getattr(manifest.package, key)
            if value:
                continue
            file, span = context.manifest_location("package")
            yield Diagnostic.error(
                self.rule_id,
                f"The `{key}` field is required for published packages",
                file=file,
                span=span,
            )
