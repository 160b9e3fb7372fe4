"""README checks.

The README is rendered on Typst Universe, which does not support every
GitHub extension, and its Typst examples are expected to be valid.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass

from ...package.source import README_FILE
from ..engine import CheckContext, Rule
from ..models import Diagnostic, Span
from ..syntax import parse_source

TYPST_LANGUAGES = frozenset({"typ", "typst"})

_FENCE = re.compile(r"^( {0,3})(`{3,}|~{3,})\s*([^`\s]*)")
_ALERT = re.compile(r"^ {0,3}>\s*\[!(NOTE|TIP|IMPORTANT|WARNING|CAUTION)\]", re.IGNORECASE)
_TASK_ITEM = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+\[[ xX]\](?:\s|$)")


@dataclass(frozen=True)
class CodeBlock:
    language: str
    body: str
    body_start: int
    fence_span: Span


@dataclass(frozen=True)
class ReadmeLine:
    text: str
    start: int
    in_code: bool


def scan_readme(text: str) -> tuple[list[ReadmeLine], list[CodeBlock]]:
    """Split a README into lines, tracking fenced code blocks."""
    lines: list[ReadmeLine] = []
    blocks: list[CodeBlock] = []
    offset = 0
    fence: str | None = None
    language = ""
    block_start = body_start = 0
    body: list[str] = []

    for raw in text.splitlines(keepends=True):
        line = raw.rstrip("\r\n")
        match = _FENCE.match(line)
        if fence is None:
            if match:
                fence = match.group(2)
                language = match.group(3).lower()
                block_start = offset
                body_start = offset + len(raw)
                body = []
            lines.append(ReadmeLine(line, offset, in_code=fence is not None))
        else:
            closing = line.strip()
            if closing.startswith(fence[0] * len(fence)) and not closing.strip(fence[0]):
                blocks.append(CodeBlock(language, "".join(body), body_start, Span(start=block_start, end=offset + len(line))))
                fence = None
            else:
                body.append(raw)
            lines.append(ReadmeLine(line, offset, in_code=True))
        offset += len(raw)

    if fence is not None:
        blocks.append(CodeBlock(language, "".join(body), body_start, Span(start=block_start, end=offset)))
    return lines, blocks


def _readme_text(context: CheckContext) -> str | None:
    source = context.files.get(README_FILE)
    return source.text if source is not None else None


class ReadmeMissingRule(Rule):
    rule_id = "readme/missing"
    description = "Published packages need a README.md"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        if context.publication and README_FILE not in context.files:
            yield Diagnostic.error(self.rule_id, "Published packages must have a README.md file")


class ReadmeExtensionsRule(Rule):
    rule_id = "readme/unsupported-extension"
    description = "GitHub alerts and task lists are not rendered on Typst Universe"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        text = _readme_text(context)
        if text is None:
            return

        lines, _ = scan_readme(text)
        in_task_list = False
        for line in lines:
            if line.in_code:
                in_task_list = False
                continue
            span = Span(start=line.start, end=line.start + len(line.text))
            if _ALERT.match(line.text):
                yield Diagnostic.warning(
                    self.rule_id,
                    "GFM alert boxes are not supported on Typst Universe.",
                    file=README_FILE,
                    span=span,
                )
            is_task = bool(_TASK_ITEM.match(line.text))
            if is_task and not in_task_list:
                yield Diagnostic.warning(
                    self.rule_id,
                    "GFM task lists are not supported on Typst Universe.",
                    file=README_FILE,
                    span=span,
                )
            if is_task:
                in_task_list = True
            elif not line.text.strip() or not line.text.startswith((" ", "\t")):
                in_task_list = False


class ReadmeSyntaxRule(Rule):
    rule_id = "readme/syntax"
    description = "Typst examples in the README must be free of syntax errors"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        text = _readme_text(context)
        if text is None:
            return

        _, blocks = scan_readme(text)
        for block in blocks:
            if block.language not in TYPST_LANGUAGES:
                continue
            for issue in parse_source(block.body).issues:
                yield Diagnostic.error(
                    self.rule_id,
                    f"Syntax error in README: {issue.message}. If this code block is not supposed "
                    "to be parsed as Typst source, please specify another language.",
                    file=README_FILE,
                    span=Span(start=block.body_start + issue.span.start, end=block.body_start + issue.span.end),
                )
