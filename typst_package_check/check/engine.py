"""Rule engine.

Every check is a ``Rule`` subclass. Rules only read the ``CheckContext`` and
return diagnostics, so the order in which they run has no effect on the
final report; the aggregator alone decides the ordering.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from ..package.loader import Registry
from ..package.manifest import Manifest, key_span
from ..package.source import MANIFEST_FILE, FileSet, Package
from .imports import ImportGraph, ParseCache
from .models import Diagnostic, Span

logger = logging.getLogger(__name__)

INTERNAL_RULE_FAILURE = "internal/rule-failure"


@dataclass(frozen=True)
class ManifestProblem:
    """A manifest error found while loading the package."""

    rule_id: str
    message: str
    table: str | None = None
    key: str | None = None


@dataclass(frozen=True)
class CheckContext:
    """Read-only inputs shared by all rules of one analysis run.

    Attributes:
        package: The package under analysis.
        graph: Its import graph, empty when the manifest could not be loaded.
        parsed: Lazily parsed Typst sources of the package.
        manifest_problems: Problems found while parsing the manifest.
        registry: Local registry clone, only in registry mode.
        publication: Whether the package is being submitted for publication.
    """

    package: Package
    graph: ImportGraph
    parsed: ParseCache
    manifest_problems: tuple[ManifestProblem, ...] = ()
    registry: Registry | None = None
    publication: bool = False
    manifest_text: str | None = field(default=None, repr=False)

    @property
    def files(self) -> FileSet:
        return self.package.files

    @property
    def manifest(self) -> Manifest | None:
        return self.package.manifest

    @property
    def registry_mode(self) -> bool:
        return self.registry is not None and self.package.spec is not None

    def manifest_location(self, table: str, key: str | None = None) -> tuple[str, Span | None]:
        """File and span of a manifest key for diagnostics."""
        if self.manifest_text is None:
            return MANIFEST_FILE, None
        return MANIFEST_FILE, key_span(self.manifest_text, table, key)


class Rule(ABC):
    """A single, independent check."""

    rule_id: str = ""
    description: str = ""

    @abstractmethod
    def evaluate(self, context: CheckContext) -> Iterable[Diagnostic]:
        """Inspect the context and yield diagnostics."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.rule_id}>"


class RuleEngine:
    """Runs an ordered set of rules with per-rule fault isolation."""

    def __init__(self, rules: Sequence[Rule]):
        self.rules = list(rules)

    def run(self, context: CheckContext) -> list[Diagnostic]:
        diagnostics: list[Diagnostic] = []
        for rule in self.rules:
            try:
                produced = list(rule.evaluate(context))
            except Exception as e:
                logger.exception(f"Rule {rule.rule_id} failed on {context.package.label}")
                produced = [Diagnostic.error(
                    INTERNAL_RULE_FAILURE,
                    f"Rule `{rule.rule_id}` failed internally: {type(e).__name__}: {e}",
                )]
            diagnostics.extend(produced)
        return diagnostics
