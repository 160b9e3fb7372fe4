"""Lexical errors in Typst sources."""

from collections.abc import Iterator

from ..engine import CheckContext, Rule
from ..models import Diagnostic


class SyntaxIssueRule(Rule):
    rule_id = "syntax/unterminated"
    description = "Typst sources must not contain unterminated constructs"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        for path, parsed in context.parsed:
            for issue in parsed.issues:
                yield Diagnostic.error(self.rule_id, issue.message, file=path, span=issue.span)
