"""Parse the job listing of a ``snakemake --dry-run`` log into recipes.

Only the parts of the log needed to rebuild the DAG are read::

    [Mon Jun 13 14:05:00 2022]
    rule align:
        input: reads/a.fq, ref.fa
        output: bam/a.bam
        log: logs/a.log
        jobid: 3

    This was a dry-run (flag -n). The order of jobs does not reflect ...

Banners, job statistics and other lines outside an entry are skipped.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Final

import structlog

from snakemake_unit_tests.errors import SolvedLogParseError
from snakemake_unit_tests.solved.recipe import LogPath, Placeholder, Recipe

DRY_RUN_FOOTER: Final[str] = "This was a dry-run"

_TIMESTAMP_RE: Final[re.Pattern[str]] = re.compile(r"^\[[^\]]*\]\s*$")
_HEADER_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<local>local)?(?P<kind>rule|checkpoint)\b\s*(?P<name>[^\s:]*)\s*:\s*$"
)
_FIELD_RE: Final[re.Pattern[str]] = re.compile(r"^\s+(?P<key>[A-Za-z_]\w*)\s*:\s?(?P<value>.*)$")
_PATH_SEPARATOR_RE: Final[re.Pattern[str]] = re.compile(r"[,\s]+")


class _Entry:
    __slots__ = ("rule_name", "is_checkpoint", "line_number", "inputs", "outputs", "log")

    def __init__(self, rule_name: str, is_checkpoint: bool, line_number: int) -> None:
        self.rule_name = rule_name
        self.is_checkpoint = is_checkpoint
        self.line_number = line_number
        self.inputs: tuple[LogPath, ...] = ()
        self.outputs: tuple[LogPath, ...] = ()
        self.log: LogPath | None = None

    def to_recipe(self) -> Recipe:
        return Recipe(
            rule_name=self.rule_name,
            is_checkpoint=self.is_checkpoint,
            inputs=self.inputs,
            outputs=self.outputs,
            log=self.log,
            line_number=self.line_number,
        )


def parse_log(
    lines: Iterable[str], *, source: str | None = None, logger: Any | None = None
) -> tuple[Recipe, ...]:
    """Return one recipe per job entry, in log order."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    recipes: list[Recipe] = []
    entry: _Entry | None = None
    terminated = False

    for number, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        if line.startswith(DRY_RUN_FOOTER):
            terminated = True
            break
        if not line.strip():
            continue

        if _TIMESTAMP_RE.match(line):
            if entry is not None:
                recipes.append(entry.to_recipe())
            entry = None
            continue

        header = _HEADER_RE.match(line)
        if header is not None:
            if not header.group("name"):
                raise SolvedLogParseError(
                    "entry header without a rule name", line=number, source=source
                )
            if entry is not None:
                recipes.append(entry.to_recipe())
            entry = _Entry(header.group("name"), header.group("kind") == "checkpoint", number)
            continue

        field = _FIELD_RE.match(line)
        if field is not None:
            if entry is None:
                raise SolvedLogParseError(
                    f"field {field.group('key')!r} outside of any rule entry",
                    line=number,
                    source=source,
                )
            _apply_field(entry, field.group("key"), field.group("value"))
            continue

        if not line[0].isspace() and entry is not None:
            recipes.append(entry.to_recipe())
            entry = None

    if entry is not None:
        recipes.append(entry.to_recipe())

    log.debug(
        "solved_log_parsed",
        source=source,
        recipes=len(recipes),
        footer_seen=terminated,
    )
    return tuple(recipes)


def load_log_file(
    path: Path | str, *, encoding: str = "utf-8", logger: Any | None = None
) -> tuple[Recipe, ...]:
    log_path = Path(path)
    try:
        text = log_path.read_text(encoding=encoding)
    except OSError as exc:
        raise SolvedLogParseError(f"cannot read log: {exc}", source=str(log_path)) from exc
    return parse_log(text.splitlines(), source=str(log_path), logger=logger)


def _apply_field(entry: _Entry, key: str, value: str) -> None:
    if key == "input":
        entry.inputs = _split_paths(value)
    elif key == "output":
        entry.outputs = _split_paths(value)
    elif key == "log":
        paths = _split_paths(value)
        entry.log = paths[0] if paths else None


def _split_paths(value: str) -> tuple[LogPath, ...]:
    paths: list[LogPath] = []
    for token in _PATH_SEPARATOR_RE.split(value.strip()):
        if not token:
            continue
        if token == Placeholder.CHECKPOINT_DEFERRED.value:
            paths.append(Placeholder.CHECKPOINT_DEFERRED)
        else:
            paths.append(token)
    return tuple(paths)


__all__ = ["DRY_RUN_FOOTER", "load_log_file", "parse_log"]
