"""Lexical pre-pass over Snakefile text.

Snakefiles are Python with extra keywords, so a real grammar is not available.
This module only tracks what is needed to cut the file into *logical lines*:

- open string state (single and triple delimiters, with backslash escapes)
- bracket depth and explicit ``\\`` continuations
- comments, trailing whitespace and blank lines, which are removed

Physical lines that belong to one logical line are kept, joined by ``\\n``,
so the text can later be rendered back without reformatting.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Final

from snakemake_unit_tests.errors import SnakefileParseError

TAB_WIDTH: Final[int] = 4

_OPENERS: Final[frozenset[str]] = frozenset("([{")
_CLOSERS: Final[frozenset[str]] = frozenset(")]}")
_STRING_PREFIX_CHARS: Final[frozenset[str]] = frozenset("rRbBuUfF")


class QuoteState(Enum):
    """Which string delimiter, if any, is open at the current scan position."""

    NONE = ""
    SINGLE_TICK = "'"
    SINGLE_QUOTE = '"'
    TRIPLE_TICK = "'''"
    TRIPLE_QUOTE = '"""'

    @property
    def delimiter(self) -> str:
        return self.value

    @property
    def is_open(self) -> bool:
        return self is not QuoteState.NONE

    @property
    def is_triple(self) -> bool:
        return self in (QuoteState.TRIPLE_TICK, QuoteState.TRIPLE_QUOTE)

    @classmethod
    def opening(cls, char: str, *, triple: bool) -> QuoteState:
        if char == "'":
            return cls.TRIPLE_TICK if triple else cls.SINGLE_TICK
        return cls.TRIPLE_QUOTE if triple else cls.SINGLE_QUOTE


@dataclass(frozen=True, slots=True)
class LogicalLine:
    """One complete statement line, possibly spanning several physical lines."""

    line_number: int
    text: str
    string_only: bool = False
    # indices into physical_lines that continue an open triple-quoted literal
    literal_lines: frozenset[int] = frozenset()

    @property
    def physical_lines(self) -> tuple[str, ...]:
        return tuple(self.text.split("\n"))

    @property
    def indent(self) -> int:
        return leading_width(self.text)

    @property
    def head(self) -> str:
        """First physical line without its indentation."""
        return self.text.split("\n", 1)[0].strip()


def lexical_parse(lines: Sequence[str], *, path: Path | str | None = None) -> list[LogicalLine]:
    """Collapse physical lines into logical lines, stripping comments and blanks."""

    logical: list[LogicalLine] = []
    fragments: list[str] = []
    literal_indices: list[int] = []
    state = QuoteState.NONE
    depth = 0
    start_line = 1
    literal_line = 1

    for number, raw in enumerate(lines, start=1):
        physical = raw.rstrip("\r\n")
        began_in_literal = state.is_triple
        if not fragments:
            start_line = number
        if not began_in_literal:
            physical = _expand_leading_tabs(physical)

        previous = state
        kept, state, depth = _scan_physical(physical, state, depth, path=path, line_number=number)
        if began_in_literal:
            literal_indices.append(len(fragments))
        if state.is_triple:
            if not previous.is_triple:
                literal_line = number
            fragments.append(kept)
            continue
        if state.is_open:
            if kept.endswith("\\"):
                fragments.append(kept)
                continue
            raise SnakefileParseError("unterminated string literal", path=path, line=number)

        kept = kept.rstrip()
        if kept or began_in_literal:
            fragments.append(kept)
        if depth > 0 or kept.endswith("\\"):
            continue

        if fragments:
            text = "\n".join(fragments)
            if text.strip():
                logical.append(
                    LogicalLine(
                        start_line, text, is_string_literal(text), frozenset(literal_indices)
                    )
                )
        fragments = []
        literal_indices = []

    if state.is_triple:
        raise SnakefileParseError(
            "unterminated triple-quoted literal", path=path, line=literal_line
        )
    if fragments:
        raise SnakefileParseError(
            "unexpected end of file inside bracketed or continued expression",
            path=path,
            line=start_line,
        )
    return logical


def is_string_literal(text: str) -> bool:
    """Return whether ``text`` is exactly one string literal and nothing else."""

    stripped = text.strip()
    index = 0
    while index < min(2, len(stripped)) and stripped[index] in _STRING_PREFIX_CHARS:
        index += 1
    if index >= len(stripped) or stripped[index] not in "'\"":
        return False

    quote = stripped[index]
    delimiter = quote * 3 if stripped.startswith(quote * 3, index) else quote
    position = index + len(delimiter)
    while position < len(stripped):
        if stripped[position] == "\\":
            position += 2
            continue
        if stripped.startswith(delimiter, position):
            return position + len(delimiter) == len(stripped)
        if len(delimiter) == 1 and stripped[position] == "\n":
            return False
        position += 1
    return False


def leading_width(text: str) -> int:
    first = text.split("\n", 1)[0]
    return len(first) - len(first.lstrip(" \t"))


def dedent_line(line: str, width: int) -> str:
    """Remove up to ``width`` leading whitespace characters."""

    available = len(line) - len(line.lstrip(" \t"))
    return line[min(width, available) :]


def _expand_leading_tabs(line: str) -> str:
    stripped = line.lstrip(" \t")
    leading = line[: len(line) - len(stripped)]
    if "\t" not in leading:
        return line
    return leading.expandtabs(TAB_WIDTH) + stripped


def _scan_physical(
    line: str,
    state: QuoteState,
    depth: int,
    *,
    path: Path | str | None,
    line_number: int,
) -> tuple[str, QuoteState, int]:
    index = 0
    cut = len(line)
    while index < len(line):
        char = line[index]
        if state is QuoteState.NONE:
            if char == "#":
                cut = index
                break
            if char in _OPENERS:
                depth += 1
            elif char in _CLOSERS:
                if depth == 0:
                    raise SnakefileParseError(
                        f"unbalanced closing bracket {char!r}", path=path, line=line_number
                    )
                depth -= 1
            elif char in "'\"":
                triple = line.startswith(char * 3, index)
                state = QuoteState.opening(char, triple=triple)
                index += 3 if triple else 1
                continue
        elif char == "\\":
            index += 2
            continue
        elif state.is_triple:
            if line.startswith(state.delimiter, index):
                state = QuoteState.NONE
                index += 3
                continue
        elif char == state.delimiter:
            state = QuoteState.NONE
        index += 1
    return line[:cut], state, depth


__all__ = [
    "LogicalLine",
    "QuoteState",
    "TAB_WIDTH",
    "dedent_line",
    "is_string_literal",
    "leading_width",
    "lexical_parse",
]
