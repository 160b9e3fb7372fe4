"""Rules over the import graph."""

from collections.abc import Iterator

from ..engine import CheckContext, Rule
from ..imports import EdgeKind, EdgeStatus, ImportEdge
from ..models import Diagnostic, Span


def _edge_location(context: CheckContext, edge: ImportEdge) -> tuple[str, Span]:
    directive = edge.directive
    return context.graph.path_of(edge.source), directive.target_span or directive.span


class UnresolvedImportRule(Rule):
    rule_id = "imports/unresolved"
    description = "Every import and include must resolve to an existing file"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        for edge in context.graph.edges:
            if edge.status is not EdgeStatus.UNRESOLVED:
                continue
            file, span = _edge_location(context, edge)
            yield Diagnostic.error(
                self.rule_id,
                f"Unresolved {edge.directive.kind}: {edge.problem}",
                file=file,
                span=span,
            )


class PackageNotFoundRule(Rule):
    rule_id = "imports/package-not-found"
    description = "Imported packages must exist in the package repository"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        for edge in context.graph.edges:
            if edge.status is not EdgeStatus.PACKAGE_NOT_FOUND:
                continue
            file, span = _edge_location(context, edge)
            yield Diagnostic.error(
                self.rule_id,
                f"Package {edge.package} was not found in the package repository",
                file=file,
                span=span,
            )


class ImportCycleRule(Rule):
    rule_id = "imports/cycle"
    description = "Files must not import each other cyclically"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        for cycle in context.graph.cycles:
            yield Diagnostic.error(
                self.rule_id,
                cycle.message,
                file=cycle.anchor,
                span=cycle.directive.span,
            )


class RelativeEntrypointImportRule(Rule):
    rule_id = "imports/relative-entrypoint"
    description = "Templates should import their package by its specification"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        entrypoint = context.package.entrypoint
        if entrypoint is None:
            return
        for edge in context.graph.edges:
            if edge.kind is not EdgeKind.RELATIVE or edge.target is None:
                continue
            source = context.graph.path_of(edge.source)
            if not context.package.in_template(source):
                continue
            if context.graph.path_of(edge.target) != entrypoint:
                continue
            file, span = _edge_location(context, edge)
            yield Diagnostic.warning(
                self.rule_id,
                "This import should use the package specification, not a relative path.",
                file=file,
                span=span,
            )


class OutdatedImportRule(Rule):
    rule_id = "imports/outdated"
    description = "Point out imports of packages that have newer versions"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        registry = context.registry
        if registry is None:
            return
        for edge in context.graph.edges:
            if edge.kind is not EdgeKind.EXTERNAL or edge.status is not EdgeStatus.RESOLVED:
                continue
            spec = edge.package
            if spec is None:
                continue
            latest = registry.latest_version(spec.namespace, spec.name)
            if latest is None or latest <= spec.version:
                continue
            file, span = _edge_location(context, edge)
            yield Diagnostic.hint(
                self.rule_id,
                f"A newer version of {spec.versionless} is available: {latest}",
                file=file,
                span=span,
            )


class UnreachableFileRule(Rule):
    rule_id = "files/unreachable"
    description = "Typst files that are never imported are probably unused"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        for path in context.graph.unreachable:
            yield Diagnostic.hint(
                self.rule_id,
                "This file is never imported from the entrypoint or the template",
                file=path,
            )
