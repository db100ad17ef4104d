"""
snakemake-unit-tests: unit tests for the emission driver

File: tests/unit/emission/test_driver.py

Purpose
- Validate per-rule slice assembly from a loaded Snakefile and a solved log.

What this test file should cover
- Phony ``rule all`` generation and stand-ins for unrelated rules.
- Retain sets from rule references and from checkpoint-affected closures.
- Interpreter feedback loop, including its failure modes.
- Emission summary: emitted, skipped and per-rule error diagnostics.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest

from snakemake_unit_tests.emission import (
    EmissionDriver,
    RuleTestSlice,
    render_phony_all,
)
from snakemake_unit_tests.errors import EmissionError, TargetNotFoundError
from snakemake_unit_tests.parsing import MappingSourceLoader, SnakemakeFile
from snakemake_unit_tests.solved import SolvedRules, parse_log

SNAKEFILE = """\
rule all:
    input: "c.txt"

{keyword} make_a:
    output: "a.txt"
    shell: "touch {{output}}"

rule make_b:
    input: rules.make_a.output
    output: "b.txt"
    shell: "cp {{input}} {{output}}"

rule make_c:
    input: "b.txt"
    output: "c.txt"
    shell: "cp {{input}} {{output}}"
"""

LOG = """\
Building DAG of jobs...
[Mon Jun 13 14:05:00 2022]
{keyword} make_a:
    output: a.txt
    jobid: 3
[Mon Jun 13 14:05:01 2022]
rule make_b:
    input: a.txt
    output: b.txt
    jobid: 2
[Mon Jun 13 14:05:02 2022]
rule make_c:
    input: b.txt
    output: c.txt
    jobid: 1
[Mon Jun 13 14:05:03 2022]
localrule all:
    input: c.txt
    jobid: 0
{extra}
This was a dry-run (flag -n).
"""


class _CollectingWriter:
    def __init__(self) -> None:
        self.slices: list[RuleTestSlice] = []

    def write(self, test_slice: RuleTestSlice) -> Path:
        self.slices.append(test_slice)
        return Path("out") / test_slice.rule_name


def _driver(
    *,
    checkpoint: bool = False,
    extra_log: str = "",
    interpreter: object = None,
) -> tuple[EmissionDriver, SnakemakeFile]:
    keyword = "checkpoint" if checkpoint else "rule"
    snakefile = SnakemakeFile(
        MappingSourceLoader({"workflow/Snakefile": SNAKEFILE.format(keyword=keyword)})
    )
    snakefile.load_everything("workflow/Snakefile")
    solved = SolvedRules(parse_log(LOG.format(keyword=keyword, extra=extra_log).splitlines()))
    driver = EmissionDriver(
        snakefile,
        solved,
        interpreter=interpreter,  # type: ignore[arg-type]
        diagnostics=snakefile.diagnostics,
    )
    return driver, snakefile


def _slice(driver: EmissionDriver, rule_name: str) -> RuleTestSlice:
    (recipe,) = [recipe for recipe in driver.targets() if recipe.rule_name == rule_name]
    return driver.build_slice(recipe)


@pytest.mark.unit
def test_render_phony_all() -> None:
    assert render_phony_all(["b.txt", "dir/c.txt"]) == (
        'rule all:\n    input:\n        "b.txt",\n        "dir/c.txt",\n\n\n'
    )
    assert render_phony_all([]) == "rule all:\n    input: []\n\n\n"


@pytest.mark.unit
def test_targets_skip_the_all_rule() -> None:
    driver, _ = _driver()

    assert [recipe.rule_name for recipe in driver.targets()] == ["make_a", "make_b", "make_c"]
    assert "all" in driver.excluded_rules


@pytest.mark.unit
def test_slice_keeps_referenced_rules_and_stands_in_the_rest() -> None:
    driver, _ = _driver()

    test_slice = _slice(driver, "make_b")

    assert test_slice.retained_rules == ("make_a",)
    assert test_slice.inputs == ("a.txt",)
    assert test_slice.outputs == ("b.txt",)
    assert not test_slice.checkpoint_affected
    text = test_slice.snakefile_text
    assert text.startswith('rule all:\n    input:\n        "b.txt",\n\n\n')
    assert text.count("rule all:") == 1
    assert "rule make_a:" in text
    assert "rule make_b:" in text
    assert "rule make_c:" not in text
    assert text.count("\npass\n") == 2


@pytest.mark.unit
def test_checkpoint_affected_rules_retain_their_whole_closure() -> None:
    driver, _ = _driver(checkpoint=True)

    test_slice = _slice(driver, "make_c")

    assert test_slice.checkpoint_affected
    assert test_slice.retained_rules == ("make_a", "make_b")
    assert "checkpoint make_a:" in test_slice.snakefile_text


@pytest.mark.unit
def test_unknown_target_raises() -> None:
    driver, _ = _driver(extra_log="rule phantom:\n    output: p.txt")
    (phantom,) = [recipe for recipe in driver.targets() if recipe.rule_name == "phantom"]

    with pytest.raises(TargetNotFoundError):
        driver.build_slice(phantom)


@pytest.mark.unit
def test_emit_reports_emitted_and_skipped_rules() -> None:
    driver, _ = _driver()
    writer = _CollectingWriter()

    summary = driver.emit(writer)

    assert summary.emitted == ("make_a", "make_b", "make_c")
    assert summary.skipped == ("all",)
    assert summary.ok
    assert [test_slice.rule_name for test_slice in writer.slices] == list(summary.emitted)
    assert summary.to_dict()["ok"] is True


@pytest.mark.unit
def test_emit_records_rules_missing_from_the_snakefile() -> None:
    driver, _ = _driver(extra_log="rule phantom:\n    output: p.txt")

    summary = driver.emit()

    assert summary.emitted == ("make_a", "make_b", "make_c")
    assert not summary.ok
    (failure,) = [entry for entry in summary.diagnostics if entry.code == "emission-failed"]
    assert failure.subjects == ("phantom",)


@pytest.mark.unit
def test_interpreter_feedback_adds_missing_rules() -> None:
    calls: list[str] = []

    def interpreter(text: str) -> Sequence[str]:
        calls.append(text)
        if "rule make_c:" in text and "rule make_b:" not in text:
            return ["Exception: 'Rules' object has no attribute 'make_b'"]
        return []

    driver, snakefile = _driver(interpreter=interpreter)

    test_slice = _slice(driver, "make_c")

    assert test_slice.retained_rules == ("make_b",)
    assert "rule make_b:" in test_slice.snakefile_text
    assert len(calls) == 2
    (make_b,) = snakefile.find_rules("make_b")
    assert make_b.queried
    assert make_b.interpreter_tag == 3


@pytest.mark.unit
def test_interpreter_reporting_unknown_rule_fails_that_rule() -> None:
    def interpreter(text: str) -> Sequence[str]:
        return ["Exception: 'Checkpoints' object has no attribute 'ghost'"]

    driver, _ = _driver(interpreter=interpreter)

    summary = driver.emit()

    assert summary.emitted == ()
    assert not summary.ok
    messages = [entry.message for entry in summary.diagnostics if entry.code == "emission-failed"]
    assert len(messages) == 3
    assert all("no loaded snakefile defines it" in message for message in messages)


@pytest.mark.unit
def test_interpreter_reporting_retained_rule_fails_that_rule() -> None:
    def interpreter(text: str) -> Sequence[str]:
        if "rule make_b:" in text:
            return ["Exception: 'Rules' object has no attribute 'make_a'"]
        return []

    driver, _ = _driver(interpreter=interpreter)

    summary = driver.emit()

    assert summary.emitted == ("make_a", "make_c")
    (failure,) = [entry for entry in summary.diagnostics if entry.code == "emission-failed"]
    assert failure.subjects == ("make_b",)
    assert "already retained" in failure.message


@pytest.mark.unit
def test_interpreter_cannot_pull_in_an_excluded_duplicate_rule() -> None:
    rendered: list[str] = []

    def interpreter(text: str) -> Sequence[str]:
        rendered.append(text)
        return ["Exception: 'Rules' object has no attribute 'dup'"]

    snakefile = SnakemakeFile(
        MappingSourceLoader(
            {
                "workflow/Snakefile": (
                    'rule a:\n    output: "a.txt"\n    shell: "touch {output}"\n\n'
                    'rule dup:\n    shell: "one"\n\n'
                    'rule dup:\n    shell: "two"\n'
                )
            }
        )
    )
    snakefile.load_everything("workflow/Snakefile")
    solved = SolvedRules(
        parse_log(["[Mon Jun 13 14:05:00 2022]", "rule a:", "    output: a.txt"])
    )
    driver = EmissionDriver(snakefile, solved, interpreter=interpreter)

    assert "dup" in driver.excluded_rules
    (recipe,) = driver.targets()
    with pytest.raises(EmissionError, match='"dup" as missing for "a", but it is excluded'):
        driver.build_slice(recipe)
    assert len(rendered) == 1
    assert 'shell: "one"' not in rendered[0]
    assert 'shell: "two"' not in rendered[0]
