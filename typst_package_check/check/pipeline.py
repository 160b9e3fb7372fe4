"""End-to-end analysis of one package.

loader -> manifest -> import graph -> rules -> aggregator. Everything here
is synchronous, in-memory work on an already loaded file set.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass

from ..core.exceptions import ManifestInvalid, ManifestMalformed, PackageNotFound
from ..package.loader import Overlay, Registry, load_directory
from ..package.manifest import Manifest, parse_manifest, validate_files
from ..package.source import MANIFEST_FILE, FileSet, Package
from ..package.spec import PackageSpec
from .aggregator import aggregate
from .engine import CheckContext, ManifestProblem, Rule, RuleEngine
from .imports import ImportGraph, ParseCache, resolve_imports
from .models import Diagnostic, Report
from .rules import default_rules
from .rules.manifest import MANIFEST_INVALID, MANIFEST_MALFORMED, ManifestProblemsRule

logger = logging.getLogger(__name__)

PACKAGE_NOT_FOUND = "package/not-found"


@dataclass(frozen=True)
class CheckResult:
    package: Package
    graph: ImportGraph
    report: Report

    @property
    def passed(self) -> bool:
        return self.report.passed


def load_manifest(files: FileSet) -> tuple[Manifest | None, list[ManifestProblem], str | None]:
    """Parse and validate ``typst.toml``, turning every failure into a problem."""
    source = files.get(MANIFEST_FILE)
    if source is None:
        return None, [ManifestProblem(MANIFEST_INVALID, f"The package has no {MANIFEST_FILE} file")], None
    text = source.text
    if text is None:
        return None, [ManifestProblem(MANIFEST_MALFORMED, f"{MANIFEST_FILE} is not valid UTF-8")], None

    try:
        manifest = parse_manifest(text)
    except ManifestMalformed as e:
        return None, [ManifestProblem(MANIFEST_MALFORMED, str(e))], text
    except ManifestInvalid as e:
        problems = [ManifestProblem(MANIFEST_INVALID, message, table, key) for table, key, message in e.problems]
        return None, problems, text

    try:
        validate_files(manifest, files)
    except ManifestInvalid as e:
        problems = [ManifestProblem(MANIFEST_INVALID, message, table, key) for table, key, message in e.problems]
        return manifest, problems, text
    return manifest, [], text


def check_package(
    files: FileSet,
    spec: PackageSpec | None = None,
    registry: Registry | None = None,
    publication: bool = False,
    short_circuit: bool = False,
    rules: Sequence[Rule] | None = None,
) -> CheckResult:
    """Run every rule on a loaded file set.

    Args:
        files: The package's files.
        spec: Identity of the package in the registry, if checked from one.
        registry: Local registry clone used to resolve other packages.
        publication: Enable the checks only relevant to published packages.
        short_circuit: Stop after manifest problems, reporting only those.
        rules: Rules to run instead of ``default_rules()``.
    """
    manifest, problems, manifest_text = load_manifest(files)
    package = Package(files=files, manifest=manifest, spec=spec)
    parsed = ParseCache(files)

    if short_circuit and problems:
        logger.info(f"Manifest of {package.label} is unusable, skipping remaining checks")
        rules = [ManifestProblemsRule()]
        graph = ImportGraph()
    else:
        graph = resolve_imports(package, registry, parsed) if manifest is not None else ImportGraph()

    context = CheckContext(
        package=package,
        graph=graph,
        parsed=parsed,
        manifest_problems=tuple(problems),
        registry=registry,
        publication=publication,
        manifest_text=manifest_text,
    )
    engine = RuleEngine(default_rules() if rules is None else rules)
    report = aggregate(package.label, engine.run(context))

    logger.info(
        f"Checked {package.label}: {report.verdict} "
        f"({len(report.errors)} errors, {len(report.warnings)} warnings, {len(report.hints)} hints)"
    )
    return CheckResult(package=package, graph=graph, report=report)


def check_directory(path: str | os.PathLike[str], registry: Registry | None = None) -> CheckResult:
    """Check a package directory on its own, as the CLI does."""
    files = load_directory(path)
    return check_package(files, registry=registry, short_circuit=True)


def check_registry_package(
    registry: Registry,
    spec: PackageSpec,
    overlay: Overlay | None = None,
    publication: bool = True,
) -> CheckResult:
    """Check a package version of the registry clone, optionally patched."""
    try:
        files = registry.load(spec, overlay)
    except PackageNotFound as e:
        package = Package(files=FileSet(), spec=spec)
        report = aggregate(str(spec), [Diagnostic.error(PACKAGE_NOT_FOUND, str(e))])
        return CheckResult(package=package, graph=ImportGraph(), report=report)

    return check_package(files, spec=spec, registry=registry, publication=publication)
