"""Merging rule output into a report."""

from collections.abc import Iterable

from .models import Diagnostic, Report


def aggregate(package: str, diagnostics: Iterable[Diagnostic]) -> Report:
    """Deduplicate and order diagnostics.

    Exact repeats of (rule id, file, span, message) are kept once; the
    result is sorted by file, span start, severity, rule id and message so
    that the same input always produces the same report.
    """
    unique: dict[tuple, Diagnostic] = {}
    for diagnostic in diagnostics:
        key = diagnostic.dedup_key()
        existing = unique.get(key)
        if existing is None or diagnostic.severity.rank < existing.severity.rank:
            unique[key] = diagnostic

    ordered = sorted(unique.values(), key=Diagnostic.sort_key)
    return Report(package=package, diagnostics=tuple(ordered))
