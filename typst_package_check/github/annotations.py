"""Turning reports into Check Run outputs."""

from __future__ import annotations

from collections.abc import Mapping

from ..check.models import Diagnostic, Report, Severity
from ..package.source import SourceFile
from ..package.spec import PackageSpec
from .models import Annotation, CheckRunOutput

# GitHub accepts at most 50 annotations per check run request.
ANNOTATIONS_PER_REQUEST = 50
MAX_ANNOTATIONS = 1000

ANNOTATION_LEVELS = {
    Severity.ERROR: "failure",
    Severity.WARNING: "warning",
    Severity.HINT: "notice",
}


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def conclusion_for(report: Report) -> str:
    if report.errors:
        return "failure"
    if report.warnings:
        return "neutral"
    return "success"


def title_for(report: Report) -> str:
    parts = []
    if report.errors:
        parts.append(_plural(len(report.errors), "error"))
    if report.warnings:
        parts.append(_plural(len(report.warnings), "warning"))
    return ", ".join(parts) if parts else "All good!"


def summary_for(report: Report, omitted: int = 0) -> str:
    lines = [
        "Our bots have automatically run some checks on your packages. "
        f"They found {_plural(len(report.errors), 'error')} and {_plural(len(report.warnings), 'warning')}.",
        "",
        "Warnings are suggestions, your package can still be accepted even if you prefer not to fix them.",
        "",
        "A human being will soon review your package, too.",
    ]

    unlocated = [d for d in report.diagnostics if d.file is None]
    if unlocated:
        lines += ["", "Problems that are not tied to a file:", ""]
        lines += [f"- **{d.severity.value}** `{d.rule_id}`: {d.message}" for d in unlocated]

    if omitted:
        lines += [
            "",
            f"This report is truncated: {_plural(omitted, 'annotation')} could not be attached "
            "(hints are dropped first).",
        ]
    return "\n".join(lines)


def to_annotation(spec: PackageSpec, files: Mapping[str, SourceFile], diagnostic: Diagnostic) -> Annotation | None:
    """Annotation for a diagnostic, ``None`` if it has no file."""
    if diagnostic.file is None:
        return None

    start_line = end_line = 1
    start_column = end_column = None
    source = files.get(diagnostic.file)
    if diagnostic.span is not None and source is not None and source.text is not None:
        start_line, start_col = source.line_col(diagnostic.span.start)
        end_line, end_col = source.line_col(max(diagnostic.span.start, diagnostic.span.end))
        if start_line == end_line:
            start_column, end_column = start_col, end_col

    return Annotation(
        path=f"{spec.registry_path()}/{diagnostic.file}",
        start_line=start_line,
        end_line=end_line,
        start_column=start_column,
        end_column=end_column,
        annotation_level=ANNOTATION_LEVELS[diagnostic.severity],
        message=diagnostic.message,
        title=diagnostic.rule_id,
    )


def build_outputs(
    report: Report,
    spec: PackageSpec,
    files: Mapping[str, SourceFile],
    max_annotations: int = MAX_ANNOTATIONS,
) -> list[CheckRunOutput]:
    """Split a report into Check Run outputs of at most 50 annotations each.

    Only the last output should complete the check run. When the report
    has more annotations than ``max_annotations``, the least severe ones
    are dropped and the summary says so.
    """
    located = [d for d in report.diagnostics if d.file is not None]
    kept = located
    if len(located) > max_annotations:
        by_severity = sorted(range(len(located)), key=lambda i: located[i].severity.rank)
        keep = set(by_severity[:max_annotations])
        kept = [d for i, d in enumerate(located) if i in keep]
    omitted = len(located) - len(kept)

    annotations = [a for a in (to_annotation(spec, files, d) for d in kept) if a is not None]
    title = title_for(report)
    summary = summary_for(report, omitted)

    batches = [
        annotations[i:i + ANNOTATIONS_PER_REQUEST]
        for i in range(0, len(annotations), ANNOTATIONS_PER_REQUEST)
    ] or [[]]
    return [CheckRunOutput(title=title, summary=summary, annotations=batch) for batch in batches]
