"""Author continuity between package versions.

The comparison uses the authors declared in `typst.toml`. A pull request
version only exists as an in-memory overlay, so there is no commit history
to read for it.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator

from ...core.exceptions import ManifestError
from ...package.manifest import parse_manifest
from ..engine import CheckContext, Rule
from ..models import Diagnostic

logger = logging.getLogger(__name__)

_CONTACT = re.compile(r"<[^>]*>")


def author_names(authors: Iterable[str]) -> set[str]:
    """Normalized author names, without their ``<contact>`` part."""
    names = set()
    for author in authors:
        name = " ".join(_CONTACT.sub("", author).split()).casefold()
        if name:
            names.add(name)
    return names


class AuthorsChangedRule(Rule):
    rule_id = "authors/changed"
    description = "New versions should declare at least one author of the previous one"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        spec = context.package.spec
        manifest = context.manifest
        registry = context.registry
        if spec is None or manifest is None or registry is None:
            return

        previous = registry.previous_version(spec)
        if previous is None:
            return
        previous_text = registry.read_manifest(previous)
        if previous_text is None:
            return
        try:
            previous_manifest = parse_manifest(previous_text)
        except ManifestError as e:
            logger.debug(f"Ignoring unreadable manifest of {previous}: {e}")
            return

        current = author_names(manifest.package.authors)
        before = author_names(previous_manifest.package.authors)
        if current and before and current.isdisjoint(before):
            file, span = context.manifest_location("package", "authors")
            yield Diagnostic.warning(
                self.rule_id,
                f"The authors declared in typst.toml are not the same as those of the previous version ({previous.version}).",
                file=file,
                span=span,
            )
