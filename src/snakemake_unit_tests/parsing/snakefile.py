"""
Ordered block sequence for a Snakefile and everything it includes.

`SnakemakeFile` is the single owner and mutator of the block sequence:

- fixpoint include expansion, splicing included files in place
- post-expansion anomaly detection (leftover includes, duplicate rules)
- single-level derived-rule merge
- minimal-source rendering for one target rule plus a retain set

Anomalies that should not block users are recorded as warnings in a
`DiagnosticLog` and logged through `structlog`; malformed input raises.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import structlog

from snakemake_unit_tests.diagnostics import DiagnosticLog
from snakemake_unit_tests.errors import (
    IncludeResolutionError,
    InheritanceChainError,
    MissingBaseRuleError,
    TargetNotFoundError,
)
from snakemake_unit_tests.parsing.rule_block import ResolutionStatus, RuleBlock
from snakemake_unit_tests.parsing.segmenter import parse_source
from snakemake_unit_tests.parsing.sources import FileSystemSourceLoader, SourceLoader

_LEFTOVER_INCLUDE_RE: Final[re.Pattern[str]] = re.compile(r"\binclude\s*:")


@dataclass(frozen=True, slots=True)
class LoadReport:
    """Outcome of :meth:`SnakemakeFile.load_everything`."""

    snakefile: Path
    files_loaded: tuple[Path, ...]
    splices: int
    block_count: int
    rule_count: int
    excluded_rules: frozenset[str]
    leftover_includes: tuple[str, ...]
    divergent_rules: tuple[str, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            "snakefile": str(self.snakefile),
            "files_loaded": [str(path) for path in self.files_loaded],
            "splices": self.splices,
            "block_count": self.block_count,
            "rule_count": self.rule_count,
            "excluded_rules": sorted(self.excluded_rules),
            "leftover_includes": list(self.leftover_includes),
            "divergent_rules": list(self.divergent_rules),
        }


class SnakemakeFile:
    """Snakefile sources loaded into one ordered list of shared blocks."""

    def __init__(
        self,
        loader: SourceLoader | None = None,
        *,
        logger: Any | None = None,
        diagnostics: DiagnosticLog | None = None,
    ) -> None:
        self._loader: SourceLoader = loader if loader is not None else FileSystemSourceLoader()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        self._blocks: list[RuleBlock] = []
        self._files_loaded: list[Path] = []
        self._excluded: frozenset[str] = frozenset()
        self._leftover_includes: tuple[str, ...] = ()
        self._divergent: tuple[str, ...] = ()

    @property
    def blocks(self) -> tuple[RuleBlock, ...]:
        return tuple(self._blocks)

    @property
    def files_loaded(self) -> tuple[Path, ...]:
        return tuple(self._files_loaded)

    @property
    def excluded_rules(self) -> frozenset[str]:
        return self._excluded

    # -- loading ----------------------------------------------------------

    def load_everything(
        self, snakefile: Path | str, *, exclude_rules: Iterable[str] = ()
    ) -> LoadReport:
        """Load ``snakefile`` and every include, then resolve derived rules."""

        snakefile_path = Path(snakefile)
        seed = RuleBlock()
        seed.add_code_line(f"include: {str(snakefile_path)!r}")
        self._blocks = [seed]
        self._files_loaded = []

        splices = self.resolve_includes()
        excluded = self.detect_known_issues(exclude_rules)
        self.resolve_derived_rules()

        report = LoadReport(
            snakefile=snakefile_path,
            files_loaded=tuple(self._files_loaded),
            splices=splices,
            block_count=len(self._blocks),
            rule_count=sum(1 for block in self._blocks if block.is_rule),
            excluded_rules=excluded,
            leftover_includes=self._leftover_includes,
            divergent_rules=self._divergent,
        )
        self._logger.info("snakefile_loaded", **report.to_dict())
        return report

    def resolve_includes(self) -> int:
        """Expand resolvable includes until none remain; return the splice count.

        Each pass rescans the whole sequence and descends one include level.
        The include-chain cycle check is what guarantees convergence: a chain
        never revisits a file, so the pass count stays within the number of
        distinct include directives (including file, expression) plus one.
        The pass bound is kept as a backstop behind that check.
        """

        splices = 0
        passes = 0
        directives: set[tuple[Path | None, str]] = set()
        while True:
            expandable = [block for block in self._blocks if block.is_expandable_include()]
            if not expandable:
                return splices
            pending = len(expandable)
            directives.update((block.origin, block.filename_expression()) for block in expandable)
            passes += 1
            if passes > len(directives) + 1:
                raise IncludeResolutionError(
                    f"include expansion did not converge after {passes - 1} passes"
                )

            rebuilt: list[RuleBlock] = []
            for block in self._blocks:
                if block.is_expandable_include():
                    rebuilt.extend(self._expand_include(block))
                    splices += 1
                else:
                    rebuilt.append(block)
            self._blocks = rebuilt
            self._logger.debug(
                "snakefile_include_pass", pass_number=passes, expanded=pending, splices=splices
            )

    def _expand_include(self, include: RuleBlock) -> list[RuleBlock]:
        filename = include.include_filename()
        if filename is None:
            include.set_resolution(ResolutionStatus.UNRESOLVABLE)
            return [include]

        try:
            source = self._loader(filename, relative_to=include.origin)
        except OSError as exc:
            location = (
                f"{include.origin}:{include.line_number}" if include.origin else "<top level>"
            )
            raise IncludeResolutionError(
                f"{location}: cannot load included file {filename!r}: {exc}"
            ) from exc

        if source.path in include.include_chain:
            cycle = " -> ".join(str(path) for path in (*include.include_chain, source.path))
            raise IncludeResolutionError(f"include cycle detected: {cycle}")

        include.set_resolution(ResolutionStatus.RESOLVED_INCLUDED)
        include.resolved_included_filename = source.path
        self._files_loaded.append(source.path)

        expanded = parse_source(
            source.lines,
            filename=source.path,
            global_indentation=include.indentation,
            include_chain=(*include.include_chain, source.path),
        )
        if not expanded and include.indentation > 0:
            # keep the enclosing Python block non-empty
            stand_in = RuleBlock(
                global_indentation=include.indentation,
                origin=source.path,
                include_chain=(*include.include_chain, source.path),
            )
            stand_in.add_code_line("pass")
            expanded = [stand_in]

        self._logger.debug(
            "snakefile_include_expanded",
            filename=str(source.path),
            included_from=str(include.origin) if include.origin else None,
            blocks=len(expanded),
            indentation=include.indentation,
        )
        return expanded

    # -- anomaly detection ------------------------------------------------

    def detect_known_issues(self, exclude_rules: Iterable[str] = ()) -> frozenset[str]:
        """Report leftover includes and duplicate rules; return the exclusion set.

        Duplicate rules that are structurally equal are accepted. Divergent
        duplicates cannot be disambiguated and are added to the exclusion set.
        """

        leftovers: list[str] = []
        for block in self._blocks:
            if block.is_rule or not block.code_chunk:
                continue
            last_line = block.code_chunk[-1].split("\n")[-1]
            if _LEFTOVER_INCLUDE_RE.search(last_line):
                text = last_line.strip()
                leftovers.append(text)
                self.diagnostics.warn(
                    "leftover-include",
                    f"include directive could not be resolved: {text}",
                    text,
                )
                self._logger.warning(
                    "snakefile_leftover_include",
                    directive=text,
                    origin=str(block.origin) if block.origin else None,
                    line=block.line_number,
                )

        by_name: dict[str, list[RuleBlock]] = {}
        for block in self._blocks:
            if block.is_rule:
                by_name.setdefault(block.rule_name, []).append(block)

        divergent: list[str] = []
        for name, occurrences in by_name.items():
            if len(occurrences) < 2:
                continue
            first = occurrences[0]
            if all(other == first for other in occurrences[1:]):
                self._logger.debug(
                    "snakefile_identical_duplicate_rule", rule=name, occurrences=len(occurrences)
                )
                continue
            divergent.append(name)
            self.diagnostics.warn(
                "divergent-duplicate-rule",
                f'rule "{name}" is defined more than once with different content; '
                "it will be excluded",
                name,
            )
            self._logger.warning(
                "snakefile_divergent_duplicate_rule",
                rule=name,
                origins=[str(block.origin) for block in occurrences],
            )

        self._leftover_includes = tuple(leftovers)
        self._divergent = tuple(divergent)
        self._excluded = frozenset(exclude_rules) | frozenset(divergent)
        return self._excluded

    # -- inheritance ------------------------------------------------------

    def resolve_derived_rules(self) -> int:
        """Merge base-rule sub-blocks into derived rules; return how many merged."""

        index: dict[str, RuleBlock] = {}
        for block in self._blocks:
            if block.is_rule:
                index.setdefault(block.rule_name, block)

        merged = 0
        for block in self._blocks:
            if not block.has_base_rule:
                continue
            base = index.get(block.base_rule_name)
            if base is None:
                raise MissingBaseRuleError(block.rule_name, block.base_rule_name)
            if base.has_base_rule:
                raise InheritanceChainError(
                    (block.rule_name, base.rule_name, base.base_rule_name)
                )
            copied = block.offer_base_rule_contents(base)
            merged += 1
            self._logger.debug(
                "snakefile_derived_rule_merged",
                rule=block.rule_name,
                base_rule=base.rule_name,
                copied_blocks=list(copied),
            )
        return merged

    # -- queries ----------------------------------------------------------

    def find_rules(self, name: str) -> tuple[RuleBlock, ...]:
        return tuple(block for block in self._blocks if block.rule_name == name)

    def rule_names(self) -> tuple[str, ...]:
        """Distinct rule names, in order of first occurrence."""
        return tuple(dict.fromkeys(block.rule_name for block in self._blocks if block.is_rule))

    def has_rule(self, name: str) -> bool:
        return any(block.rule_name == name for block in self._blocks)

    # -- rendering --------------------------------------------------------

    def render_rule(self, target: str, retain: Iterable[str] = ()) -> str:
        """Render every block, keeping only ``target`` and ``retain`` rules verbatim."""

        if not self.has_rule(target):
            raise TargetNotFoundError(target)
        keep = {target, *retain}
        parts: list[str] = []
        for block in self._blocks:
            if not block.is_rule or block.rule_name in keep:
                parts.append(block.render())
            else:
                parts.append(block.render_stand_in())
        return "".join(parts)

    def render_blocks(self) -> str:
        return "".join(block.render() for block in self._blocks)

    # -- interpreter correlation -----------------------------------------

    def assign_interpreter_tags(self) -> dict[int, str]:
        """Number rule blocks in sequence order, starting at 1."""

        tags: dict[int, str] = {}
        for tag, block in enumerate((b for b in self._blocks if b.is_rule), start=1):
            block.interpreter_tag = tag
            tags[tag] = block.rule_name
        return tags

    def apply_interpreter_report(self, missing: Iterable[str]) -> tuple[str, ...]:
        """Mark rules the interpreter reported as missing; return the known ones."""

        reported = set(missing)
        known: list[str] = []
        for block in self._blocks:
            if block.is_rule and block.rule_name in reported:
                block.queried = True
                if block.rule_name not in known:
                    known.append(block.rule_name)
        return tuple(known)


__all__ = ["LoadReport", "SnakemakeFile"]
