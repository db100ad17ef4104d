"""In-memory unit of a Snakefile: a rule, an include directive, or opaque code."""

from __future__ import annotations

import ast
import re
from collections.abc import Iterable
from enum import Enum
from pathlib import Path
from typing import Final

from snakemake_unit_tests.errors import SnakefileParseError
from snakemake_unit_tests.parsing.lexer import is_string_literal

BODY_INDENT: Final[int] = 4

# Rendered first, in this order.
LEADING_BLOCKS: Final[tuple[str, ...]] = ("input", "output")
# Rendered last, in this order, after everything not named here.
TRAILING_BLOCKS: Final[tuple[str, ...]] = ("cwl", "run", "script", "shell", "wrapper")

_INCLUDE_RE: Final[re.Pattern[str]] = re.compile(
    r"^\s*include\s*:\s*(?P<expr>\S(?:.*\S)?)\s*$", re.DOTALL
)
_RULE_REFERENCE_RE: Final[re.Pattern[str]] = re.compile(
    r"\b(?P<namespace>rules|checkpoints)\.(?P<name>[A-Za-z_]\w*)"
)


class ResolutionStatus(Enum):
    """Lifecycle of a block; only ``UNRESOLVED`` may move to another state."""

    UNRESOLVED = "unresolved"
    RESOLVED_INCLUDED = "resolved_included"
    RESOLVED_EXCLUDED = "resolved_excluded"
    UNRESOLVABLE = "unresolvable"

    @property
    def is_terminal(self) -> bool:
        return self is not ResolutionStatus.UNRESOLVED


class BlockKind(Enum):
    RULE = "rule"
    INCLUDE = "include"
    CODE = "code"


class RuleBlock:
    """A rule declaration, include directive or chunk of opaque Python.

    Blocks are shared by reference between the source sequence and base-rule
    lookups; :class:`~snakemake_unit_tests.parsing.snakefile.SnakemakeFile`
    is the only component that mutates them after segmentation.
    """

    __slots__ = (
        "rule_name",
        "base_rule_name",
        "is_checkpoint",
        "docstring",
        "docstring_verbatim",
        "code_chunk",
        "code_verbatim",
        "named_blocks",
        "verbatim_lines",
        "local_indentation",
        "global_indentation",
        "_resolution",
        "resolved_included_filename",
        "interpreter_tag",
        "queried",
        "origin",
        "include_chain",
        "line_number",
    )

    def __init__(
        self,
        *,
        rule_name: str = "",
        base_rule_name: str = "",
        is_checkpoint: bool = False,
        local_indentation: int = 0,
        global_indentation: int = 0,
        origin: Path | None = None,
        include_chain: tuple[Path, ...] = (),
        line_number: int = 0,
    ) -> None:
        self.rule_name = rule_name
        self.base_rule_name = base_rule_name
        self.is_checkpoint = is_checkpoint
        self.docstring = ""
        self.docstring_verbatim: frozenset[int] = frozenset()
        self.code_chunk: list[str] = []
        self.code_verbatim: list[frozenset[int]] = []
        self.named_blocks: dict[str, str] = {}
        # line indices inside a sub-block that continue a triple-quoted literal
        self.verbatim_lines: dict[str, frozenset[int]] = {}
        self.local_indentation = local_indentation
        self.global_indentation = global_indentation
        self._resolution = ResolutionStatus.UNRESOLVED
        self.resolved_included_filename: Path | None = None
        self.interpreter_tag = 0
        self.queried = False
        self.origin = origin
        self.include_chain = include_chain
        self.line_number = line_number

    # -- classification ---------------------------------------------------

    @property
    def kind(self) -> BlockKind:
        if self.rule_name:
            return BlockKind.RULE
        if self.contains_include_directive():
            return BlockKind.INCLUDE
        return BlockKind.CODE

    @property
    def is_rule(self) -> bool:
        return bool(self.rule_name)

    @property
    def has_base_rule(self) -> bool:
        return bool(self.base_rule_name)

    @property
    def indentation(self) -> int:
        return self.local_indentation + self.global_indentation

    @property
    def resolution(self) -> ResolutionStatus:
        return self._resolution

    def set_resolution(self, status: ResolutionStatus) -> None:
        """Move the block forward; terminal states never change."""
        if status is self._resolution:
            return
        if self._resolution.is_terminal:
            raise ValueError(
                f"cannot move block {self.describe()} from {self._resolution.value} "
                f"to {status.value}"
            )
        self._resolution = status

    # -- content ----------------------------------------------------------

    def add_code_line(self, line: str, *, verbatim: Iterable[int] = ()) -> None:
        if self.rule_name:
            raise ValueError(f"rule {self.rule_name!r} cannot hold opaque code")
        self.code_chunk.append(line)
        self.code_verbatim.append(frozenset(verbatim))

    def set_docstring(self, text: str, *, verbatim: Iterable[int] = ()) -> None:
        self.docstring = text
        self.docstring_verbatim = frozenset(verbatim)

    def add_named_block(
        self,
        key: str,
        value: str,
        *,
        line: int | None = None,
        verbatim: Iterable[int] = (),
    ) -> None:
        if key in self.named_blocks:
            raise SnakefileParseError(
                f"duplicate block {key!r} in rule {self.rule_name!r}",
                path=self.origin,
                line=line,
            )
        self.named_blocks[key] = value
        kept = frozenset(verbatim)
        if kept:
            self.verbatim_lines[key] = kept

    def contains_include_directive(self) -> bool:
        """Whether the block is exactly one ``include:`` statement."""
        if self.rule_name or len(self.code_chunk) != 1:
            return False
        return _INCLUDE_RE.match(self.code_chunk[0]) is not None

    def filename_expression(self) -> str:
        """Return the raw expression following ``include:``."""
        match = _INCLUDE_RE.match(self.code_chunk[0]) if len(self.code_chunk) == 1 else None
        if self.rule_name or match is None:
            raise SnakefileParseError(
                "block is not a single include directive", path=self.origin, line=self.line_number
            )
        return match.group("expr")

    def include_filename(self) -> str | None:
        """Decoded include target when the expression is a plain string literal."""
        expression = self.filename_expression()
        if not is_string_literal(expression):
            return None
        try:
            value = ast.literal_eval(expression)
        except (SyntaxError, ValueError):
            return None
        return value if isinstance(value, str) and value else None

    def is_expandable_include(self) -> bool:
        return (
            self.contains_include_directive()
            and self._resolution is ResolutionStatus.UNRESOLVED
        )

    def offer_base_rule_contents(self, base: RuleBlock) -> tuple[str, ...]:
        """Copy base sub-blocks that this rule does not define itself."""
        copied: list[str] = []
        for key, value in base.named_blocks.items():
            if key not in self.named_blocks:
                self.named_blocks[key] = value
                if key in base.verbatim_lines:
                    self.verbatim_lines[key] = base.verbatim_lines[key]
                copied.append(key)
        return tuple(copied)

    def referenced_rules(self) -> frozenset[str]:
        """Names used as ``rules.<name>`` or ``checkpoints.<name>`` in sub-blocks."""
        names: set[str] = set()
        for value in self.named_blocks.values():
            for match in _RULE_REFERENCE_RE.finditer(value):
                names.add(match.group("name"))
        names.discard(self.rule_name)
        return frozenset(names)

    # -- rendering --------------------------------------------------------

    def render(self) -> str:
        if self.code_chunk:
            prefix = " " * self.global_indentation
            physical: list[str] = []
            for line, verbatim in zip(self.code_chunk, self.code_verbatim):
                physical.extend(_prefixed(line.split("\n"), prefix, verbatim))
            return "\n".join(physical) + "\n"
        if not self.rule_name:
            return ""
        return self._render_declaration()

    def render_stand_in(self) -> str:
        return " " * self.indentation + "pass\n"

    def ordered_block_names(self) -> tuple[str, ...]:
        leading = [key for key in LEADING_BLOCKS if key in self.named_blocks]
        middle = [
            key
            for key in self.named_blocks
            if key not in LEADING_BLOCKS and key not in TRAILING_BLOCKS
        ]
        trailing = [key for key in TRAILING_BLOCKS if key in self.named_blocks]
        return (*leading, *middle, *trailing)

    def _render_declaration(self) -> str:
        indent = " " * self.indentation
        body = " " * (self.indentation + BODY_INDENT)
        keyword = "checkpoint" if self.is_checkpoint else "rule"
        header = f"{indent}{keyword} {self.rule_name}"
        if self.base_rule_name:
            header += f" from {self.base_rule_name}"
        lines = [header + ":"]
        if self.docstring:
            lines.extend(_prefixed(self.docstring.split("\n"), body, self.docstring_verbatim))
        for key in self.ordered_block_names():
            first, *rest = self.named_blocks[key].split("\n")
            lines.append(f"{body}{key}:" + (f" {first}" if first else ""))
            verbatim = self.verbatim_lines.get(key, frozenset())
            lines.extend(_prefixed(rest, body, verbatim, start=1))
        return "\n".join(lines) + "\n\n\n"

    # -- identity ---------------------------------------------------------

    def describe(self) -> str:
        if self.rule_name:
            return f"rule {self.rule_name!r}"
        if self.code_chunk:
            return f"code starting {self.code_chunk[0].strip()[:40]!r}"
        return "empty block"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RuleBlock):
            return NotImplemented
        return (
            self.rule_name == other.rule_name
            and self.base_rule_name == other.base_rule_name
            and self.is_checkpoint == other.is_checkpoint
            and self.docstring == other.docstring
            and self.docstring_verbatim == other.docstring_verbatim
            and self.code_chunk == other.code_chunk
            and self.code_verbatim == other.code_verbatim
            and self.named_blocks == other.named_blocks
            and self.verbatim_lines == other.verbatim_lines
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"RuleBlock({self.kind.value}, {self.describe()}, "
            f"indentation={self.local_indentation}+{self.global_indentation}, "
            f"resolution={self._resolution.value})"
        )


def _prefixed(
    lines: Iterable[str], prefix: str, verbatim: frozenset[int] = frozenset(), *, start: int = 0
) -> list[str]:
    return [
        line if not line or index in verbatim else prefix + line
        for index, line in enumerate(lines, start=start)
    ]


__all__ = [
    "BODY_INDENT",
    "BlockKind",
    "LEADING_BLOCKS",
    "ResolutionStatus",
    "RuleBlock",
    "TRAILING_BLOCKS",
]
