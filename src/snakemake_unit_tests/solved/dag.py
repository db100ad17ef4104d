"""
Dependency resolution over solved recipes.

`SolvedRules` owns the recipes of one dry-run log and answers:

- which recipe produces a given output path (last producer wins)
- the transitive dependency closure of a recipe
- whether a recipe is affected by an upstream checkpoint
- which rules an interpreter run reported as missing from its namespace
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, MutableSet
from pathlib import Path
from types import MappingProxyType
from typing import Any, Final

import structlog

from snakemake_unit_tests.diagnostics import DiagnosticLog
from snakemake_unit_tests.errors import ContractViolationError, UnexpectedInterpreterOutputError
from snakemake_unit_tests.solved.log_parser import load_log_file
from snakemake_unit_tests.solved.recipe import Recipe

DUPLICATE_OUTPUT_MESSAGE: Final[str] = "at least one output file appears multiple times"

_MISSING_RULE_RES: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"'Rules' object has no attribute '(?P<name>[^']+)'"),
    re.compile(r"'Checkpoints' object has no attribute '(?P<name>[^']+)'"),
)
_EXCEPTION_PREFIX: Final[str] = "Exception"


class SolvedRules:
    """Recipes from one log plus the output-path index built over them."""

    def __init__(
        self,
        recipes: Iterable[Recipe] = (),
        *,
        logger: Any | None = None,
        diagnostics: DiagnosticLog | None = None,
    ) -> None:
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        self._recipes: tuple[Recipe, ...] = tuple(recipes)
        self._log_order: dict[Recipe, int] = {
            recipe: index for index, recipe in enumerate(self._recipes)
        }
        self._output_lookup: dict[str, Recipe] = self._build_output_lookup()

    @classmethod
    def from_log_file(
        cls,
        path: Path | str,
        *,
        logger: Any | None = None,
        diagnostics: DiagnosticLog | None = None,
    ) -> SolvedRules:
        recipes = load_log_file(path, logger=logger)
        return cls(recipes, logger=logger, diagnostics=diagnostics)

    @property
    def recipes(self) -> tuple[Recipe, ...]:
        return self._recipes

    @property
    def output_lookup(self) -> Mapping[str, Recipe]:
        return MappingProxyType(self._output_lookup)

    def producer_of(self, path: str) -> Recipe | None:
        return self._output_lookup.get(path)

    def _build_output_lookup(self) -> dict[str, Recipe]:
        lookup: dict[str, Recipe] = {}
        reported: set[str] = set()
        for recipe in self._recipes:
            for path in recipe.concrete_outputs:
                previous = lookup.get(path)
                if previous is not None and previous is not recipe and path not in reported:
                    reported.add(path)
                    self.diagnostics.warn(
                        "duplicate-output",
                        f"{DUPLICATE_OUTPUT_MESSAGE}; the last producer wins for {path!r}",
                        path,
                        previous.rule_name,
                        recipe.rule_name,
                    )
                    self._logger.warning(
                        "solved_duplicate_output",
                        path=path,
                        previous_rule=previous.rule_name,
                        winning_rule=recipe.rule_name,
                    )
                lookup[path] = recipe
        return lookup

    # -- closure ----------------------------------------------------------

    def add_dag_from_leaf(
        self,
        target: Recipe,
        *,
        include_self: bool = False,
        visited: MutableSet[Recipe] | None,
        destination: MutableSet[Recipe] | None,
    ) -> None:
        """Add every recipe ``target`` transitively depends on to ``destination``.

        ``visited`` is shared across calls so repeated queries do not walk the
        same subgraph twice; a dependency already in it counts as covered.
        ``target`` itself is added when ``include_self`` is set, whether or not
        it was visited before.
        """

        if visited is None or destination is None:
            raise ContractViolationError(
                "add_dag_from_leaf requires both a visited set and a destination set"
            )

        if include_self:
            destination.add(target)
        visited.add(target)
        stack: list[Recipe] = [target]
        while stack:
            recipe = stack.pop()
            for path in recipe.concrete_inputs:
                producer = self._output_lookup.get(path)
                if producer is None or producer in visited:
                    continue
                visited.add(producer)
                destination.add(producer)
                stack.append(producer)

    def dependencies_of(self, target: Recipe, *, include_self: bool = False) -> tuple[Recipe, ...]:
        """Closure of ``target`` in log order."""

        found: set[Recipe] = set()
        self.add_dag_from_leaf(target, include_self=include_self, visited=set(), destination=found)
        last = len(self._log_order)
        return tuple(sorted(found, key=lambda recipe: self._log_order.get(recipe, last)))

    # -- checkpoints ------------------------------------------------------

    def compute_dependency_checkpoints(self, target: Recipe) -> bool:
        """Whether ``target`` or anything upstream of it is a checkpoint."""

        return any(
            recipe.is_checkpoint for recipe in self.dependencies_of(target, include_self=True)
        )

    def update_checkpoint_flags(self) -> int:
        """Set ``checkpoint_affected`` on every recipe; return how many are affected."""

        affected = 0
        for recipe in self._recipes:
            recipe.checkpoint_affected = self.compute_dependency_checkpoints(recipe)
            affected += int(recipe.checkpoint_affected)
        self._logger.debug(
            "solved_checkpoint_flags_updated", recipes=len(self._recipes), affected=affected
        )
        return affected

    # -- grouping ---------------------------------------------------------

    def recipes_by_rule(self) -> dict[str, tuple[Recipe, ...]]:
        grouped: dict[str, list[Recipe]] = {}
        for recipe in self._recipes:
            grouped.setdefault(recipe.rule_name, []).append(recipe)
        return {name: tuple(recipes) for name, recipes in grouped.items()}

    def unique_rule_recipes(self) -> tuple[Recipe, ...]:
        """First recipe of each rule, in log order."""
        return tuple(recipes[0] for recipes in self.recipes_by_rule().values())

    # -- interpreter output -----------------------------------------------

    def find_missing_rules(
        self, lines: Iterable[str], destination: MutableSet[str] | None
    ) -> None:
        """Collect rule names the interpreter could not find in its namespace.

        Any other line starting with ``Exception`` is an error this module
        cannot classify.
        """

        if destination is None:
            raise ContractViolationError("find_missing_rules requires a destination set")

        for line in lines:
            matched = False
            for pattern in _MISSING_RULE_RES:
                for match in pattern.finditer(line):
                    destination.add(match.group("name"))
                    matched = True
            if matched:
                continue
            if line.lstrip().startswith(_EXCEPTION_PREFIX):
                self._logger.error("solved_unexpected_interpreter_output", text=line)
                raise UnexpectedInterpreterOutputError(line)


__all__ = ["DUPLICATE_OUTPUT_MESSAGE", "SolvedRules"]
