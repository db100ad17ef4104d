"""Cut logical lines into rule, include and opaque-code blocks."""

from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Final

from snakemake_unit_tests.errors import SnakefileParseError
from snakemake_unit_tests.parsing.lexer import LogicalLine, dedent_line, lexical_parse
from snakemake_unit_tests.parsing.rule_block import ResolutionStatus, RuleBlock

_RULE_TRIGGER_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?:rule|checkpoint)\b(?!\s*(?:[=.,(\[)\]]|[-+*/%&|^<>!]=))"
)
_RULE_HEADER_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<keyword>rule|checkpoint)\s+(?P<name>[A-Za-z_]\w*)"
    r"(?:\s+from\s+(?P<base>[A-Za-z_]\w*))?\s*:$"
)
_SUBBLOCK_RE: Final[re.Pattern[str]] = re.compile(r"^(?P<key>[A-Za-z_]\w*)\s*:(?P<rest>.*)$")
_INCLUDE_LINE_RE: Final[re.Pattern[str]] = re.compile(r"^include\s*:")
_ANNOTATED_ASSIGNMENT_RE: Final[re.Pattern[str]] = re.compile(
    r"^[A-Za-z_]\w*\s*:\s*[A-Za-z_][\w.\[\], |]*\s*(?:=(?!=)|$)"
)

# Keywords that only make sense inside a rule body.
RULE_ONLY_KEYWORDS: Final[frozenset[str]] = frozenset(
    {
        "benchmark",
        "cache",
        "cwl",
        "default_target",
        "envmodules",
        "group",
        "handover",
        "input",
        "log",
        "message",
        "notebook",
        "output",
        "params",
        "priority",
        "resources",
        "retries",
        "run",
        "script",
        "shadow",
        "shell",
        "threads",
        "version",
        "wrapper",
    }
)


def segment_next(
    lines: Sequence[LogicalLine],
    cursor: int,
    *,
    filename: Path | None = None,
    global_indentation: int = 0,
    include_chain: tuple[Path, ...] = (),
) -> tuple[RuleBlock | None, int]:
    """Return the block starting at ``cursor`` and the cursor after it.

    ``(None, len(lines))`` signals end of input. Docstring-only lines at the
    top level are skipped before a block starts.
    """

    while cursor < len(lines) and lines[cursor].string_only and lines[cursor].indent == 0:
        cursor += 1
    if cursor >= len(lines):
        return None, cursor

    line = lines[cursor]
    if _RULE_TRIGGER_RE.match(line.head):
        return _consume_rule(lines, cursor, filename, global_indentation, include_chain)

    block = RuleBlock(
        local_indentation=line.indent,
        global_indentation=global_indentation,
        origin=filename,
        include_chain=include_chain,
        line_number=line.line_number,
    )
    if _INCLUDE_LINE_RE.match(line.head):
        block.add_code_line(line.text)
        if block.include_filename() is None:
            block.set_resolution(ResolutionStatus.UNRESOLVABLE)
        return block, cursor + 1

    while cursor < len(lines):
        line = lines[cursor]
        if _RULE_TRIGGER_RE.match(line.head) or _INCLUDE_LINE_RE.match(line.head):
            break
        _reject_orphan_keyword(line, filename)
        if line.string_only:
            if line.indent > 0:
                block.add_code_line(" " * line.indent + "pass")
        else:
            block.add_code_line(line.text, verbatim=line.literal_lines)
        cursor += 1
    return block, cursor


def segment_lines(
    lines: Sequence[LogicalLine],
    *,
    filename: Path | None = None,
    global_indentation: int = 0,
    include_chain: tuple[Path, ...] = (),
) -> Iterator[RuleBlock]:
    cursor = 0
    while True:
        block, cursor = segment_next(
            lines,
            cursor,
            filename=filename,
            global_indentation=global_indentation,
            include_chain=include_chain,
        )
        if block is None:
            return
        yield block


def parse_source(
    raw_lines: Sequence[str],
    *,
    filename: Path | None = None,
    global_indentation: int = 0,
    include_chain: tuple[Path, ...] = (),
) -> list[RuleBlock]:
    """Lex and segment one file's physical lines."""

    logical = lexical_parse(raw_lines, path=filename)
    return list(
        segment_lines(
            logical,
            filename=filename,
            global_indentation=global_indentation,
            include_chain=include_chain,
        )
    )


def _consume_rule(
    lines: Sequence[LogicalLine],
    cursor: int,
    filename: Path | None,
    global_indentation: int,
    include_chain: tuple[Path, ...],
) -> tuple[RuleBlock, int]:
    header = lines[cursor]
    match = _RULE_HEADER_RE.match(header.text.strip()) if "\n" not in header.text else None
    if match is None:
        raise SnakefileParseError(
            f"malformed rule header {header.head!r}", path=filename, line=header.line_number
        )

    block = RuleBlock(
        rule_name=match.group("name"),
        base_rule_name=match.group("base") or "",
        is_checkpoint=match.group("keyword") == "checkpoint",
        local_indentation=header.indent,
        global_indentation=global_indentation,
        origin=filename,
        include_chain=include_chain,
        line_number=header.line_number,
    )

    cursor += 1
    body_depth: int | None = None
    current_key: str | None = None
    current_line = header.line_number
    values: list[str] = []
    verbatim: set[int] = set()

    while cursor < len(lines) and lines[cursor].indent > header.indent:
        line = lines[cursor]
        if body_depth is None:
            body_depth = line.indent
        if line.indent < body_depth:
            raise SnakefileParseError(
                f"inconsistent indentation in rule {block.rule_name!r}",
                path=filename,
                line=line.line_number,
            )

        physical = line.physical_lines
        if line.indent == body_depth:
            if line.string_only and current_key is None and not block.docstring:
                docstring = [physical[0].strip()]
                doc_verbatim = _extend_body(docstring, line, body_depth, start=1)
                block.set_docstring("\n".join(docstring), verbatim=doc_verbatim)
                cursor += 1
                continue
            subblock = _SUBBLOCK_RE.match(physical[0].strip())
            if subblock is None:
                raise SnakefileParseError(
                    f"expected a 'keyword:' block in rule {block.rule_name!r}, "
                    f"found {line.head!r}",
                    path=filename,
                    line=line.line_number,
                )
            if current_key is not None:
                block.add_named_block(
                    current_key, "\n".join(values), line=current_line, verbatim=verbatim
                )
            current_key = subblock.group("key")
            current_line = line.line_number
            values = [subblock.group("rest").strip()]
            verbatim = _extend_body(values, line, body_depth, start=1)
        else:
            if current_key is None:
                raise SnakefileParseError(
                    f"content before the first block of rule {block.rule_name!r}",
                    path=filename,
                    line=line.line_number,
                )
            verbatim |= _extend_body(values, line, body_depth)
        cursor += 1

    if current_key is not None:
        block.add_named_block(
            current_key, "\n".join(values), line=current_line, verbatim=verbatim
        )
    if body_depth is None or not (block.named_blocks or block.docstring):
        raise SnakefileParseError(
            f"rule {block.rule_name!r} has no body", path=filename, line=header.line_number
        )
    return block, cursor


def _extend_body(
    values: list[str], line: LogicalLine, body_depth: int, *, start: int = 0
) -> set[int]:
    """Append body lines dedented to the body depth; return the indices kept verbatim."""

    verbatim: set[int] = set()
    for index, physical in enumerate(line.physical_lines[start:], start=start):
        if index in line.literal_lines:
            verbatim.add(len(values))
            values.append(physical)
        else:
            values.append(dedent_line(physical, body_depth))
    return verbatim


def _reject_orphan_keyword(line: LogicalLine, filename: Path | None) -> None:
    if line.indent > 0:
        return
    match = _SUBBLOCK_RE.match(line.head)
    if match is None or match.group("key") not in RULE_ONLY_KEYWORDS:
        return
    if _ANNOTATED_ASSIGNMENT_RE.match(line.head):
        return
    raise SnakefileParseError(
        f"rule block keyword {match.group('key')!r} outside of any rule",
        path=filename,
        line=line.line_number,
    )


__all__ = ["RULE_ONLY_KEYWORDS", "parse_source", "segment_lines", "segment_next"]
