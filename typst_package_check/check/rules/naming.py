"""Naming conventions for the public API of a package."""

from __future__ import annotations

import re
from collections.abc import Iterator

from ..engine import CheckContext, Rule
from ..imports import EdgeKind
from ..models import Diagnostic

KEBAB_CASE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
SCREAMING_CASE = re.compile(r"^[A-Z0-9]+([_-][A-Z0-9]+)*$")


def is_kebab_case(name: str) -> bool:
    return bool(KEBAB_CASE.match(name))


def is_constant_name(name: str) -> bool:
    """SCREAMING_SNAKE_CASE or SCREAMING-KEBAB-CASE."""
    return bool(SCREAMING_CASE.match(name)) and any(c.isalpha() for c in name)


class KebabCaseRule(Rule):
    """Public bindings and the parameters of public functions use kebab-case.

    The public scope is what the entrypoint defines or imports by name;
    wildcard imports pull in the scope of the imported file.
    """

    rule_id = "naming/kebab-case"
    description = "Public names should use kebab-case"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        entrypoint = context.package.entrypoint
        if entrypoint is None or entrypoint not in context.graph.index:
            return

        public = self._module_scope(context, entrypoint, set())
        for path in self._imported_files(context, entrypoint):
            parsed = context.parsed.get(path)
            if parsed is None:
                continue
            for binding in parsed.bindings:
                name = binding.name
                if name not in public or name.startswith("_"):
                    continue
                if not is_constant_name(name) and not is_kebab_case(name):
                    yield Diagnostic.warning(
                        self.rule_id,
                        f"`{name}` seems to be public. It is recommended to use kebab-case names.",
                        file=path,
                        span=binding.span,
                    )
                for param in binding.params:
                    if not is_kebab_case(param.name):
                        yield Diagnostic.warning(
                            self.rule_id,
                            f"`{param.name}` seems to be an argument of the public function `{name}`. "
                            "It is recommended to use kebab-case names.",
                            file=path,
                            span=param.span,
                        )

    def _module_scope(self, context: CheckContext, path: str, visiting: set[str]) -> set[str]:
        parsed = context.parsed.get(path)
        if parsed is None or path in visiting:
            return set()
        visiting.add(path)

        names = {binding.name for binding in parsed.bindings}
        targets = {
            edge.directive: context.graph.path_of(edge.target)
            for edge in context.graph.edges_from(path)
            if edge.kind is EdgeKind.RELATIVE and edge.target is not None
        }
        for directive in parsed.imports:
            if directive.alias:
                names.add(directive.alias)
            names.update(directive.items)
            if directive.wildcard and directive in targets:
                names |= self._module_scope(context, targets[directive], visiting)
        return names

    def _imported_files(self, context: CheckContext, entrypoint: str) -> list[str]:
        """Entrypoint plus every file it imports, transitively, by relative path."""
        ordered = [entrypoint]
        seen = {entrypoint}
        index = 0
        while index < len(ordered):
            for edge in context.graph.edges_from(ordered[index]):
                if edge.kind is not EdgeKind.RELATIVE or edge.target is None:
                    continue
                if edge.directive.kind != "import":
                    continue
                target = context.graph.path_of(edge.target)
                if target not in seen:
                    seen.add(target)
                    ordered.append(target)
            index += 1
        return ordered
