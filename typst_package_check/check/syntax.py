"""Lightweight Typst scanner.

This is not a Typst parser. It walks a source file once, keeping track of
the lexical context (markup, math, embedded code after ``#``, code blocks and
content blocks) so that comments, raw text and strings never produce false
matches, and extracts what the checks need:

- ``import`` / ``include`` directives and their path literals,
- top-level ``#let`` bindings with their closure parameters,
- lexical errors (unterminated strings, comments, raw blocks and unclosed
  delimiters).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .models import Span

STATEMENT_KEYWORDS = frozenset({
    "let", "set", "show", "import", "include", "if", "for", "while",
    "return", "context", "break", "continue",
})

_MARKUP = "markup"
_MATH = "math"
_CODE = "code"
_EMBED = "embed"


@dataclass(frozen=True)
class Directive:
    """An ``import`` or ``include`` statement.

    ``target`` is the decoded path literal, or ``None`` when the source is
    an arbitrary expression that cannot be resolved statically.
    """

    kind: str
    target: str | None
    span: Span
    target_span: Span | None = None
    items: tuple[str, ...] = ()
    wildcard: bool = False
    alias: str | None = None

    @property
    def is_package(self) -> bool:
        return self.target is not None and self.target.startswith("@")


@dataclass(frozen=True)
class Param:
    name: str
    span: Span
    named: bool = False


@dataclass(frozen=True)
class Binding:
    """A top-level ``#let`` binding."""

    name: str
    span: Span
    params: tuple[Param, ...] = ()
    is_closure: bool = False


@dataclass(frozen=True)
class SyntaxIssue:
    message: str
    span: Span


@dataclass(frozen=True)
class ParsedSource:
    directives: tuple[Directive, ...] = ()
    bindings: tuple[Binding, ...] = ()
    issues: tuple[SyntaxIssue, ...] = ()

    @property
    def imports(self) -> tuple[Directive, ...]:
        return tuple(d for d in self.directives if d.kind == "import")


@dataclass
class _Frame:
    kind: str
    opener: int
    closer: str | None = None
    start: int = 0
    statement: bool = False
    top_level: bool = False
    parens: list[int] = field(default_factory=list)


def is_ident_start(char: str) -> bool:
    return char.isalpha() or char == "_"


def is_ident_continue(char: str) -> bool:
    return char.isalnum() or char in "_-"


def parse_source(text: str) -> ParsedSource:
    """Scan a Typst source file."""
    return _Scanner(text).run()


class _Scanner:
    def __init__(self, text: str) -> None:
        self.text = text
        self.n = len(text)
        self.pos = 0
        self.frames: list[_Frame] = [_Frame(_MARKUP, opener=0)]
        self.directives: list[Directive] = []
        self.bindings: list[Binding] = []
        self.issues: list[SyntaxIssue] = []

    def run(self) -> ParsedSource:
        while self.pos < self.n:
            if self.frames[-1].kind in (_MARKUP, _MATH):
                self._markup_step()
            else:
                self._code_step()

        for frame in self.frames[1:]:
            for paren in frame.parens:
                self._issue("Unclosed delimiter `(`", paren, paren + 1)
            if frame.closer:
                opener_char = {"]": "[", "}": "{", "$": "$"}[frame.closer]
                self._issue(f"Unclosed delimiter `{opener_char}`", frame.opener, frame.opener + 1)

        return ParsedSource(
            directives=tuple(self.directives),
            bindings=tuple(self.bindings),
            issues=tuple(self.issues),
        )

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _issue(self, message: str, start: int, end: int) -> None:
        self.issues.append(SyntaxIssue(message, Span(start=start, end=end)))

    def _peek(self, offset: int = 0) -> str:
        index = self.pos + offset
        return self.text[index] if index < self.n else ""

    def _char_at(self, index: int) -> str:
        return self.text[index] if 0 <= index < self.n else ""

    def _read_ident(self, index: int) -> tuple[str, int]:
        end = index
        if end < self.n and is_ident_start(self.text[end]):
            end += 1
            while end < self.n and is_ident_continue(self.text[end]):
                end += 1
        return self.text[index:end], end

    def _skip_blanks(self, index: int, newlines: bool = False) -> int:
        blanks = " \t\r\n" if newlines else " \t"
        while index < self.n and self.text[index] in blanks:
            index += 1
        return index

    def _skip_line_comment(self, index: int) -> int:
        end = self.text.find("\n", index)
        return self.n if end == -1 else end

    def _skip_block_comment(self, index: int) -> int:
        depth = 0
        cursor = index
        while cursor < self.n:
            if self.text.startswith("/*", cursor):
                depth += 1
                cursor += 2
            elif self.text.startswith("*/", cursor):
                depth -= 1
                cursor += 2
                if depth == 0:
                    return cursor
            else:
                cursor += 1
        self._issue("Unterminated block comment", index, self.n)
        return self.n

    def _skip_raw(self, index: int) -> int:
        run = index
        while run < self.n and self.text[run] == "`":
            run += 1
        ticks = run - index
        if ticks == 2:
            return run
        fence = "`" * ticks
        end = self.text.find(fence, run)
        if end == -1:
            kind = "raw block" if ticks >= 3 else "raw text"
            self._issue(f"Unterminated {kind}", index, self.n)
            return self.n
        return end + ticks

    def _read_string(self, index: int) -> tuple[str | None, int]:
        """Read a string literal starting at the opening quote."""
        cursor = index + 1
        chars: list[str] = []
        while cursor < self.n:
            char = self.text[cursor]
            if char == "\\" and cursor + 1 < self.n:
                escaped, cursor = self._decode_escape(cursor)
                chars.append(escaped)
                continue
            if char == '"':
                return "".join(chars), cursor + 1
            chars.append(char)
            cursor += 1
        self._issue("Unterminated string", index, self.n)
        return None, self.n

    def _decode_escape(self, index: int) -> tuple[str, int]:
        char = self.text[index + 1]
        simple = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"'}
        if char in simple:
            return simple[char], index + 2
        if char == "u" and self._char_at(index + 2) == "{":
            close = self.text.find("}", index + 3)
            if close != -1:
                try:
                    return chr(int(self.text[index + 3:close], 16)), close + 1
                except ValueError:
                    pass
        return char, index + 2

    # ------------------------------------------------------------------
    # Markup and math
    # ------------------------------------------------------------------

    def _after_url_scheme(self) -> bool:
        return self.text.endswith(("http:", "https:"), 0, self.pos)

    def _markup_step(self) -> None:
        frame = self.frames[-1]
        char = self.text[self.pos]

        if self.text.startswith("//", self.pos) and not self._after_url_scheme():
            self.pos = self._skip_line_comment(self.pos)
        elif self.text.startswith("/*", self.pos):
            self.pos = self._skip_block_comment(self.pos)
        elif char == "`" and frame.kind == _MARKUP:
            self.pos = self._skip_raw(self.pos)
        elif char == "\\":
            self.pos += 2
        elif char == '"' and frame.kind == _MATH:
            _, self.pos = self._read_string(self.pos)
        elif char == "$":
            if frame.kind == _MATH:
                self.frames.pop()
            else:
                self.frames.append(_Frame(_MATH, opener=self.pos, closer="$"))
            self.pos += 1
        elif char == "]" and frame.closer == "]":
            self.frames.pop()
            self.pos += 1
        elif char == "#":
            self._enter_embedded_code()
        else:
            self.pos += 1

    def _enter_embedded_code(self) -> None:
        hash_pos = self.pos
        following = self._peek(1)
        if not (is_ident_start(following) or following in '{(["'):
            self.pos += 1
            return

        statement = False
        if is_ident_start(following):
            word, _ = self._read_ident(hash_pos + 1)
            statement = word in STATEMENT_KEYWORDS

        self.frames.append(_Frame(
            _EMBED,
            opener=hash_pos,
            start=hash_pos + 1,
            statement=statement,
            top_level=len(self.frames) == 1,
        ))
        self.pos = hash_pos + 1

    # ------------------------------------------------------------------
    # Code
    # ------------------------------------------------------------------

    def _code_step(self) -> None:
        frame = self.frames[-1]
        char = self.text[self.pos]
        embedded = frame.kind == _EMBED
        at_depth_zero = not frame.parens

        if self.text.startswith("//", self.pos):
            self.pos = self._skip_line_comment(self.pos)
        elif self.text.startswith("/*", self.pos):
            self.pos = self._skip_block_comment(self.pos)
        elif char == "`":
            self.pos = self._skip_raw(self.pos)
        elif char == '"':
            _, self.pos = self._read_string(self.pos)
        elif char == "(":
            frame.parens.append(self.pos)
            self.pos += 1
        elif char == "[":
            self.frames.append(_Frame(_MARKUP, opener=self.pos, closer="]"))
            self.pos += 1
        elif char == "{":
            self.frames.append(_Frame(_CODE, opener=self.pos, closer="}"))
            self.pos += 1
        elif char == ")":
            if frame.parens:
                frame.parens.pop()
                self.pos += 1
            elif embedded:
                self.frames.pop()
            else:
                self.pos += 1
        elif char == "}" and at_depth_zero:
            if frame.kind == _CODE:
                self.frames.pop()
                self.pos += 1
            else:
                self.frames.pop()
        elif char == "]" and embedded and at_depth_zero:
            self.frames.pop()
        elif char == "\n" and embedded and at_depth_zero:
            self.frames.pop()
        elif char == ";" and embedded and at_depth_zero and frame.statement:
            self.frames.pop()
            self.pos += 1
        elif is_ident_start(char):
            self._code_word(frame)
        elif embedded and at_depth_zero and not frame.statement:
            if char == "." and is_ident_start(self._peek(1)):
                self.pos += 1
            else:
                self.frames.pop()
        else:
            self.pos += 1

    def _at_statement_start(self, frame: _Frame, index: int) -> bool:
        if frame.kind == _EMBED:
            return index == frame.start
        if frame.parens:
            return False
        cursor = index - 1
        while cursor > frame.opener and self.text[cursor] in " \t\r":
            cursor -= 1
        return cursor <= frame.opener or self.text[cursor] in "{;\n"

    def _code_word(self, frame: _Frame) -> None:
        start = self.pos
        word, end = self._read_ident(start)
        statement_start = self._at_statement_start(frame, start)

        if word in ("import", "include") and statement_start:
            directive_start = frame.opener if frame.kind == _EMBED else start
            self.pos = self._parse_directive(word, directive_start, end)
        elif word == "let" and statement_start:
            top_level = frame.kind == _EMBED and frame.top_level
            self.pos = self._parse_let(end, top_level)
        else:
            self.pos = end

    def _parse_directive(self, kind: str, start: int, index: int) -> int:
        cursor = self._skip_blanks(index)
        if self._char_at(cursor) != '"':
            self.directives.append(Directive(kind=kind, target=None, span=Span(start=start, end=index)))
            return index

        target, after_target = self._read_string(cursor)
        if target is None:
            return after_target
        target_span = Span(start=cursor, end=after_target)
        end = after_target
        alias = None
        items: list[str] = []
        wildcard = False

        if kind == "import":
            cursor = self._skip_blanks(after_target)
            word, word_end = self._read_ident(cursor)
            if word == "as":
                alias_start = self._skip_blanks(word_end)
                alias, alias_end = self._read_ident(alias_start)
                alias = alias or None
                end = alias_end if alias else word_end
                cursor = self._skip_blanks(end)

            if self._char_at(cursor) == ":":
                cursor = self._skip_blanks(cursor + 1)
                if self._char_at(cursor) == "*":
                    wildcard = True
                    end = cursor + 1
                else:
                    items, end = self._parse_import_items(cursor)

        self.directives.append(Directive(
            kind=kind,
            target=target,
            span=Span(start=start, end=end),
            target_span=target_span,
            items=tuple(items),
            wildcard=wildcard,
            alias=alias,
        ))
        return end

    def _parse_import_items(self, index: int) -> tuple[list[str], int]:
        if self._char_at(index) == "(":
            close = self._find_closing_paren(index)
            body_end = close if close is not None else self.n
            body = self.text[index + 1:body_end]
            end = body_end + 1 if close is not None else self.n
        else:
            end = index
            while end < self.n and self.text[end] not in "\n;]}":
                if self.text.startswith("//", end) or self.text.startswith("/*", end):
                    break
                end += 1
            body = self.text[index:end]
            end = index + len(body.rstrip())

        items = []
        for raw_item in body.split(","):
            words = raw_item.split()
            if not words:
                continue
            if len(words) >= 3 and words[-2] == "as":
                items.append(words[-1])
            else:
                items.append(words[0].split(".")[-1])
        return items, end

    def _find_closing_paren(self, index: int) -> int | None:
        depth = 0
        cursor = index
        while cursor < self.n:
            char = self.text[cursor]
            if char == '"':
                _, cursor = self._read_string(cursor)
                continue
            if self.text.startswith("//", cursor):
                cursor = self._skip_line_comment(cursor)
                continue
            if self.text.startswith("/*", cursor):
                cursor = self._skip_block_comment(cursor)
                continue
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth == 0:
                    return cursor
            cursor += 1
        self._issue("Unclosed delimiter `(`", index, index + 1)
        return None

    def _parse_let(self, index: int, top_level: bool) -> int:
        name_start = self._skip_blanks(index)
        name, name_end = self._read_ident(name_start)
        if not name:
            return name_start

        params: tuple[Param, ...] = ()
        is_closure = self._char_at(name_end) == "("
        end = name_end
        if is_closure:
            close = self._find_closing_paren(name_end)
            if close is None:
                return self.n
            params = self._split_params(name_end + 1, close)
            end = close + 1

        if top_level:
            self.bindings.append(Binding(
                name=name,
                span=Span(start=name_start, end=name_end),
                params=params,
                is_closure=is_closure,
            ))
        return end

    def _split_params(self, start: int, end: int) -> tuple[Param, ...]:
        segments: list[tuple[int, int]] = []
        depth = 0
        segment_start = start
        cursor = start
        while cursor < end:
            char = self.text[cursor]
            if char == '"':
                _, cursor = self._read_string(cursor)
                continue
            if char in "([{":
                depth += 1
            elif char in ")]}":
                depth -= 1
            elif char == "," and depth == 0:
                segments.append((segment_start, cursor))
                segment_start = cursor + 1
            cursor += 1
        segments.append((segment_start, end))

        params = []
        for seg_start, seg_end in segments:
            first = self._skip_blanks(seg_start, newlines=True)
            if first >= seg_end or self.text.startswith("..", first):
                continue
            name, name_end = self._read_ident(first)
            if not name or name_end > seg_end:
                continue
            after = self._skip_blanks(name_end, newlines=True)
            if after < seg_end and self.text[after] == ":":
                params.append(Param(name=name, span=Span(start=first, end=name_end), named=True))
            elif after >= seg_end:
                params.append(Param(name=name, span=Span(start=first, end=name_end)))
        return tuple(params)
