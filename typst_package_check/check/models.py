"""Pydantic models for check results.

A ``Diagnostic`` is a single reported issue; a ``Report`` is the ordered,
deduplicated set of diagnostics produced for one package.
"""

from __future__ import annotations

import json
from collections import defaultdict
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Severity levels for diagnostics, most severe first."""

    ERROR = "error"
    WARNING = "warning"
    HINT = "hint"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.ERROR: 0, Severity.WARNING: 1, Severity.HINT: 2}


class Span(BaseModel):
    """Half-open character range ``[start, end)`` inside a file."""

    model_config = ConfigDict(frozen=True)

    start: int
    end: int


class Diagnostic(BaseModel):
    """A single issue found in a package.

    Attributes:
        severity: How serious the issue is. Only errors fail a check.
        rule_id: Identifier of the rule that produced it (e.g. "imports/cycle").
        message: Human readable explanation.
        file: Path relative to the package root, if the issue has a location.
        span: Character range inside ``file``, if known.
    """

    model_config = ConfigDict(frozen=True)

    severity: Severity
    rule_id: str
    message: str
    file: str | None = None
    span: Span | None = None

    def dedup_key(self) -> tuple[str, str | None, tuple[int, int] | None, str]:
        span = (self.span.start, self.span.end) if self.span else None
        return (self.rule_id, self.file, span, self.message)

    def sort_key(self) -> tuple[str, int, int, str, str]:
        return (
            self.file or "",
            self.span.start if self.span else -1,
            self.severity.rank,
            self.rule_id,
            self.message,
        )

    @classmethod
    def error(cls, rule_id: str, message: str, file: str | None = None, span: Span | None = None) -> Diagnostic:
        return cls(severity=Severity.ERROR, rule_id=rule_id, message=message, file=file, span=span)

    @classmethod
    def warning(cls, rule_id: str, message: str, file: str | None = None, span: Span | None = None) -> Diagnostic:
        return cls(severity=Severity.WARNING, rule_id=rule_id, message=message, file=file, span=span)

    @classmethod
    def hint(cls, rule_id: str, message: str, file: str | None = None, span: Span | None = None) -> Diagnostic:
        return cls(severity=Severity.HINT, rule_id=rule_id, message=message, file=file, span=span)


class Report(BaseModel):
    """Aggregated, ordered diagnostics for one package."""

    model_config = ConfigDict(frozen=True)

    package: str
    diagnostics: tuple[Diagnostic, ...] = Field(default_factory=tuple)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.WARNING]

    @property
    def hints(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.HINT]

    @property
    def passed(self) -> bool:
        return not self.errors

    @property
    def verdict(self) -> str:
        return "pass" if self.passed else "fail"

    def counts(self) -> dict[str, int]:
        counts = {severity.value: 0 for severity in Severity}
        for diagnostic in self.diagnostics:
            counts[diagnostic.severity.value] += 1
        return counts

    def by_file(self) -> dict[str | None, list[Diagnostic]]:
        """Diagnostics grouped by file, preserving report order."""
        grouped: dict[str | None, list[Diagnostic]] = defaultdict(list)
        for diagnostic in self.diagnostics:
            grouped[diagnostic.file].append(diagnostic)
        return dict(grouped)

    def summary(self) -> str:
        counts = self.counts()
        return ", ".join(
            _plural(counts[severity.value], severity.value) for severity in Severity
        )

    def render(self, files: Mapping[str, Any] | None = None) -> str:
        """Human readable report grouped by file.

        ``files`` maps paths to objects with a ``line_col(offset)`` method;
        when given, spans are shown as ``line:column``.
        """
        lines = []
        for path, diagnostics in self.by_file().items():
            lines.append(path or self.package)
            for diagnostic in diagnostics:
                location = ""
                if diagnostic.span is not None:
                    source = files.get(path) if files is not None and path else None
                    if source is not None:
                        line, column = source.line_col(diagnostic.span.start)
                        location = f" {line}:{column}"
                    else:
                        location = f" @{diagnostic.span.start}"
                lines.append(
                    f"  {diagnostic.severity.value}[{diagnostic.rule_id}]{location}: {diagnostic.message}"
                )
            lines.append("")
        lines.append(f"{self.verdict.upper()}: {self.summary()}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "package": self.package,
            "verdict": self.verdict,
            "counts": self.counts(),
            "diagnostics": [d.model_dump(mode="json") for d in self.diagnostics],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"
