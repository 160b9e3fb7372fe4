"""Rules over the package's files."""

from collections.abc import Iterator

from ..engine import CheckContext, Rule
from ..models import Diagnostic

SIZE_THRESHOLD = 1024 * 1024
FONT_EXTENSIONS = frozenset({".otf", ".ttf"})


def _format_size(size: int) -> str:
    return f"{size / (1024 * 1024):.1f} MiB"


class LicenseFileRule(Rule):
    rule_id = "files/license"
    description = "Published packages should ship their license text"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        if not context.publication or context.files.license_file() is not None:
            return
        yield Diagnostic.warning(
            self.rule_id,
            "No LICENSE file found. Most licenses require their text to be distributed with the package.",
        )


class FileEncodingRule(Rule):
    rule_id = "files/encoding"
    description = "Typst sources must be UTF-8"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        for source in context.files.typst_files():
            if source.text is None:
                yield Diagnostic.error(self.rule_id, "This file is not valid UTF-8", file=source.path)


class FileSizeRule(Rule):
    rule_id = "files/size"
    description = "Large files should be excluded from the published package"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        for path, source in context.files.items():
            if source.size <= SIZE_THRESHOLD or context.package.is_excluded(path):
                continue
            yield Diagnostic.warning(
                self.rule_id,
                f"This file is quite large ({_format_size(source.size)}). If it is not required "
                "to use the package (i.e. it is a documentation file or part of an example), "
                "it should be added to `exclude` in your `typst.toml`.",
                file=path,
            )


class FontFilesRule(Rule):
    rule_id = "files/fonts"
    description = "Packages cannot ship font files"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        for path, source in context.files.items():
            if source.suffix not in FONT_EXTENSIONS:
                continue
            yield Diagnostic.error(
                self.rule_id,
                "Font files are not allowed. Delete them and instruct your users to install "
                "them manually, in your README and/or in a documentation comment.",
                file=path,
            )


class EscapingSymlinkRule(Rule):
    rule_id = "files/symlink"
    description = "Symlinks must not point outside of the package"

    def evaluate(self, context: CheckContext) -> Iterator[Diagnostic]:
        for path in context.files.escaped_links:
            yield Diagnostic.warning(
                self.rule_id,
                "This symlink points outside of the package and was ignored",
                file=path,
            )
