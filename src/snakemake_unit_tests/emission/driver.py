"""
Per-rule emission of minimal Snakefile slices.

For every distinct rule in the solved log the driver:

1. picks the first recipe of that rule (log order)
2. computes the set of other rules the slice must keep verbatim
3. renders a phony ``rule all`` plus the targeted minimal source
4. optionally runs an interpreter on the text and re-renders with any rule the
   interpreter reports as missing, until no more are reported

The interpreter is a plain callable; nothing here executes Snakemake.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Protocol, TypeAlias

import structlog

from snakemake_unit_tests.constants import ALWAYS_EXCLUDED_RULE
from snakemake_unit_tests.diagnostics import Diagnostic, DiagnosticLog, Severity
from snakemake_unit_tests.errors import EmissionError, TargetNotFoundError
from snakemake_unit_tests.parsing.rule_block import BODY_INDENT
from snakemake_unit_tests.parsing.snakefile import SnakemakeFile
from snakemake_unit_tests.solved.dag import SolvedRules
from snakemake_unit_tests.solved.recipe import Recipe

Interpreter: TypeAlias = Callable[[str], Sequence[str]]

ALWAYS_EXCLUDED: Final[frozenset[str]] = frozenset({ALWAYS_EXCLUDED_RULE})


@dataclass(frozen=True, slots=True)
class RuleTestSlice:
    """Everything needed to materialize the test workspace of one rule."""

    rule_name: str
    recipe: Recipe
    snakefile_text: str
    inputs: tuple[str, ...]
    outputs: tuple[str, ...]
    log: str | None
    checkpoint_affected: bool
    retained_rules: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class EmissionSummary:
    emitted: tuple[str, ...]
    skipped: tuple[str, ...]
    diagnostics: tuple[Diagnostic, ...]

    @property
    def ok(self) -> bool:
        return not any(entry.severity is Severity.ERROR for entry in self.diagnostics)

    def to_dict(self) -> dict[str, object]:
        return {
            "ok": self.ok,
            "emitted": list(self.emitted),
            "skipped": list(self.skipped),
            "diagnostics": [entry.to_dict() for entry in self.diagnostics],
        }


class SliceWriter(Protocol):
    def write(self, test_slice: RuleTestSlice) -> Path: ...


def render_phony_all(outputs: Iterable[str]) -> str:
    """A ``rule all`` requesting exactly ``outputs``."""

    body = " " * BODY_INDENT
    paths = list(outputs)
    if not paths:
        return f"rule all:\n{body}input: []\n\n\n"
    lines = ["rule all:", f"{body}input:"]
    lines.extend(f"{body}{body}{json.dumps(path)}," for path in paths)
    return "\n".join(lines) + "\n\n\n"


class EmissionDriver:
    """Turn a loaded Snakefile and a solved log into per-rule test slices."""

    def __init__(
        self,
        snakefile: SnakemakeFile,
        solved: SolvedRules,
        *,
        exclude_rules: Iterable[str] = (),
        interpreter: Interpreter | None = None,
        logger: Any | None = None,
        diagnostics: DiagnosticLog | None = None,
    ) -> None:
        self._snakefile = snakefile
        self._solved = solved
        self._interpreter = interpreter
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        self._excluded: frozenset[str] = (
            frozenset(exclude_rules) | snakefile.excluded_rules | ALWAYS_EXCLUDED
        )
        self._solved.update_checkpoint_flags()
        if interpreter is not None:
            self._snakefile.assign_interpreter_tags()

    @property
    def excluded_rules(self) -> frozenset[str]:
        return self._excluded

    def targets(self) -> tuple[Recipe, ...]:
        """First recipe of every rule that is not excluded, in log order."""
        return tuple(
            recipe
            for recipe in self._solved.unique_rule_recipes()
            if recipe.rule_name not in self._excluded
        )

    def build_slice(self, recipe: Recipe) -> RuleTestSlice:
        target = recipe.rule_name
        if not self._snakefile.has_rule(target):
            raise TargetNotFoundError(target)

        retain = self._lexical_retain(target)
        if recipe.checkpoint_affected:
            retain |= {
                dependency.rule_name
                for dependency in self._solved.dependencies_of(recipe)
                if self._snakefile.has_rule(dependency.rule_name)
            }
        dropped = retain & self._excluded
        if dropped:
            self._logger.debug("emission_retain_excluded", rule=target, dropped=sorted(dropped))
        retain -= self._excluded
        retain.discard(target)

        text = self._render(recipe, retain)
        if self._interpreter is not None:
            text = self._settle_with_interpreter(recipe, retain, text)

        return RuleTestSlice(
            rule_name=target,
            recipe=recipe,
            snakefile_text=text,
            inputs=recipe.concrete_inputs,
            outputs=recipe.concrete_outputs,
            log=recipe.concrete_log,
            checkpoint_affected=recipe.checkpoint_affected,
            retained_rules=tuple(sorted(retain)),
        )

    def slices(self) -> Iterator[RuleTestSlice]:
        for recipe in self.targets():
            yield self.build_slice(recipe)

    def emit(self, writer: SliceWriter | None = None) -> EmissionSummary:
        """Build and hand off every slice; per-rule failures become error diagnostics."""

        emitted: list[str] = []
        skipped = tuple(
            recipe.rule_name
            for recipe in self._solved.unique_rule_recipes()
            if recipe.rule_name in self._excluded
        )
        for name in skipped:
            self._logger.info("emission_rule_skipped", rule=name)

        for recipe in self.targets():
            try:
                test_slice = self.build_slice(recipe)
                destination = writer.write(test_slice) if writer is not None else None
            except (TargetNotFoundError, EmissionError) as exc:
                self.diagnostics.error("emission-failed", str(exc), recipe.rule_name)
                self._logger.error("emission_rule_failed", rule=recipe.rule_name, error=str(exc))
                continue
            emitted.append(recipe.rule_name)
            self._logger.info(
                "emission_rule_emitted",
                rule=recipe.rule_name,
                retained_rules=list(test_slice.retained_rules),
                checkpoint_affected=test_slice.checkpoint_affected,
                destination=str(destination) if destination is not None else None,
            )

        summary = EmissionSummary(
            emitted=tuple(emitted),
            skipped=skipped,
            diagnostics=self._collected_diagnostics(),
        )
        self._logger.info(
            "emission_finished",
            ok=summary.ok,
            emitted=len(summary.emitted),
            skipped=len(summary.skipped),
        )
        return summary

    def _lexical_retain(self, target: str) -> set[str]:
        retained: set[str] = set()
        stack = [target]
        while stack:
            name = stack.pop()
            for block in self._snakefile.find_rules(name):
                for reference in block.referenced_rules():
                    if reference == target or reference in retained:
                        continue
                    if self._snakefile.has_rule(reference):
                        retained.add(reference)
                        stack.append(reference)
        return retained

    def _render(self, recipe: Recipe, retain: Iterable[str]) -> str:
        return render_phony_all(recipe.concrete_outputs) + self._snakefile.render_rule(
            recipe.rule_name, retain
        )

    def _settle_with_interpreter(self, recipe: Recipe, retain: set[str], text: str) -> str:
        assert self._interpreter is not None
        known = set(self._snakefile.rule_names())
        for attempt in range(1, len(known) + 2):
            missing: set[str] = set()
            self._solved.find_missing_rules(self._interpreter(text), missing)
            if not missing:
                return text
            for name in sorted(missing):
                if name not in known:
                    raise EmissionError(
                        f'interpreter reported rule "{name}" as missing for "{recipe.rule_name}", '
                        "but no loaded snakefile defines it"
                    )
                if name in self._excluded:
                    raise EmissionError(
                        f'interpreter reported rule "{name}" as missing for "{recipe.rule_name}", '
                        "but it is excluded"
                    )
                if name in retain or name == recipe.rule_name:
                    raise EmissionError(
                        f'interpreter reported rule "{name}" as missing for "{recipe.rule_name}", '
                        "but it is already retained"
                    )
            self._snakefile.apply_interpreter_report(missing)
            retain |= missing
            self._logger.debug(
                "emission_interpreter_retained",
                rule=recipe.rule_name,
                attempt=attempt,
                added=sorted(missing),
            )
            text = self._render(recipe, retain)
        raise EmissionError(
            f'interpreter feedback for "{recipe.rule_name}" did not settle '
            f"after {len(known) + 1} attempts"
        )

    def _collected_diagnostics(self) -> tuple[Diagnostic, ...]:
        logs: list[DiagnosticLog] = []
        for log in (self._snakefile.diagnostics, self._solved.diagnostics, self.diagnostics):
            if not any(log is seen for seen in logs):
                logs.append(log)
        return tuple(entry for log in logs for entry in log)


__all__ = [
    "ALWAYS_EXCLUDED",
    "EmissionDriver",
    "EmissionSummary",
    "Interpreter",
    "RuleTestSlice",
    "SliceWriter",
    "render_phony_all",
]
