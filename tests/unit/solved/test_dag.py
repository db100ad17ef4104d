"""
snakemake-unit-tests: unit tests for SolvedRules

File: tests/unit/solved/test_dag.py

Purpose
- Validate the output index, dependency closure and checkpoint propagation.

What this test file should cover
- Last-producer-wins output lookup with a single warning per colliding path.
- Transitive closure with and without the target itself, and argument contracts.
- Checkpoint-affected flags flowing downstream.
- Missing-rule extraction from interpreter output.
"""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from snakemake_unit_tests.errors import ContractViolationError, UnexpectedInterpreterOutputError
from snakemake_unit_tests.solved import DUPLICATE_OUTPUT_MESSAGE, Placeholder, Recipe, SolvedRules


def _chain() -> tuple[Recipe, Recipe, Recipe, Recipe]:
    make_a = Recipe("make_a", outputs=("a.txt",))
    make_b = Recipe("make_b", inputs=("a.txt", "raw/b.txt"), outputs=("b.txt",))
    make_c = Recipe("make_c", inputs=("b.txt",), outputs=("c.txt",))
    unrelated = Recipe("unrelated", outputs=("z.txt",))
    return make_a, make_b, make_c, unrelated


@pytest.mark.unit
def test_output_lookup_maps_paths_to_producers() -> None:
    make_a, make_b, make_c, unrelated = _chain()
    solved = SolvedRules([make_a, make_b, make_c, unrelated])

    assert dict(solved.output_lookup) == {
        "a.txt": make_a,
        "b.txt": make_b,
        "c.txt": make_c,
        "z.txt": unrelated,
    }
    assert solved.producer_of("raw/b.txt") is None
    assert not solved.diagnostics.warnings


@pytest.mark.unit
def test_duplicate_outputs_warn_once_and_last_producer_wins() -> None:
    first = Recipe("rulename1", outputs=("output.tsv",))
    second = Recipe("checkpointname", is_checkpoint=True, outputs=("output.tsv", "output.tsv"))

    with capture_logs() as logs:
        solved = SolvedRules([first, second])

    assert solved.producer_of("output.tsv") is second
    (warning,) = solved.diagnostics.with_code("duplicate-output")
    assert DUPLICATE_OUTPUT_MESSAGE in warning.message
    assert warning.subjects == ("output.tsv", "rulename1", "checkpointname")
    assert [entry["event"] for entry in logs if entry["log_level"] == "warning"] == [
        "solved_duplicate_output"
    ]


@pytest.mark.unit
def test_dependencies_of_follows_inputs_transitively() -> None:
    make_a, make_b, make_c, unrelated = _chain()
    solved = SolvedRules([make_c, unrelated, make_b, make_a])

    assert solved.dependencies_of(make_c) == (make_b, make_a)
    assert solved.dependencies_of(make_c, include_self=True) == (make_c, make_b, make_a)
    assert solved.dependencies_of(make_a) == ()


@pytest.mark.unit
def test_add_dag_from_leaf_shares_visited_between_calls() -> None:
    make_a, make_b, make_c, _ = _chain()
    solved = SolvedRules([make_a, make_b, make_c])
    visited: set[Recipe] = set()
    first: set[Recipe] = set()
    second: set[Recipe] = set()

    solved.add_dag_from_leaf(make_b, include_self=True, visited=visited, destination=first)
    solved.add_dag_from_leaf(make_c, include_self=True, visited=visited, destination=second)

    assert first == {make_a, make_b}
    assert second == {make_c}


@pytest.mark.unit
def test_include_self_adds_a_target_that_was_already_visited() -> None:
    make_a, make_b, make_c, _ = _chain()
    solved = SolvedRules([make_a, make_b, make_c])
    visited: set[Recipe] = set()
    first: set[Recipe] = set()
    second: set[Recipe] = set()

    solved.add_dag_from_leaf(make_c, visited=visited, destination=first)
    solved.add_dag_from_leaf(make_b, include_self=True, visited=visited, destination=second)

    assert first == {make_a, make_b}
    assert second == {make_b}


@pytest.mark.unit
def test_closure_terminates_on_cycles() -> None:
    left = Recipe("left", inputs=("r.txt",), outputs=("l.txt",))
    right = Recipe("right", inputs=("l.txt",), outputs=("r.txt",))
    solved = SolvedRules([left, right])

    assert solved.dependencies_of(left) == (right,)
    assert solved.dependencies_of(left, include_self=True) == (left, right)


@pytest.mark.unit
def test_contract_violations() -> None:
    make_a, *_ = _chain()
    solved = SolvedRules([make_a])

    with pytest.raises(ContractViolationError):
        solved.add_dag_from_leaf(make_a, visited=None, destination=set())
    with pytest.raises(ContractViolationError):
        solved.add_dag_from_leaf(make_a, visited=set(), destination=None)
    with pytest.raises(ContractViolationError):
        solved.find_missing_rules([], None)


@pytest.mark.unit
def test_checkpoint_flags_propagate_downstream() -> None:
    make_a, make_b, make_c, unrelated = _chain()
    make_a.is_checkpoint = True
    deferred = Recipe("deferred", inputs=(Placeholder.CHECKPOINT_DEFERRED,), outputs=("d.txt",))
    solved = SolvedRules([make_a, make_b, make_c, unrelated, deferred])

    affected = solved.update_checkpoint_flags()

    assert affected == 3
    assert [recipe.checkpoint_affected for recipe in solved.recipes] == [
        True,
        True,
        True,
        False,
        False,
    ]
    assert solved.compute_dependency_checkpoints(make_c)
    assert not solved.compute_dependency_checkpoints(unrelated)


@pytest.mark.unit
def test_recipes_grouped_by_rule_keep_log_order() -> None:
    first = Recipe("align", outputs=("a.bam",))
    other = Recipe("index", outputs=("a.bai",))
    second = Recipe("align", outputs=("b.bam",))
    solved = SolvedRules([first, other, second])

    assert solved.recipes_by_rule() == {"align": (first, second), "index": (other,)}
    assert solved.unique_rule_recipes() == (first, other)


@pytest.mark.unit
def test_find_missing_rules_reads_rules_and_checkpoints() -> None:
    solved = SolvedRules()
    missing: set[str] = set()

    solved.find_missing_rules(
        [
            "Exception: 'Rules' object has no attribute 'rulename1' so that's a bummer",
            "Other exception: 'Rules' object has no attribute 'rulename2' which makes me sad",
            "'Rules' object has attribute 'rulename3', so let's not just focus on the negative",
            "Exception: 'Checkpoints' object has no attribute 'check1', which again stinks",
            "Other exception: 'Checkpoints' object has no attribute 'check2', I give up",
        ],
        missing,
    )

    assert missing == {"rulename1", "rulename2", "check1", "check2"}


@pytest.mark.unit
def test_find_missing_rules_rejects_unclassified_exceptions() -> None:
    solved = SolvedRules()
    missing: set[str] = set()
    line = "Exception: damnable portal of antediluvian evil"

    with pytest.raises(UnexpectedInterpreterOutputError) as excinfo:
        solved.find_missing_rules(
            ["'Rules' object has attribute 'rulename3', so no complaint", line], missing
        )

    assert excinfo.value.text == line
    assert missing == set()
