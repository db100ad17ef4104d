"""
snakemake-unit-tests: unit tests for WorkspaceWriter

File: tests/unit/emission/test_workspace.py

Purpose
- Validate the on-disk layout of one rule's test workspace.

What this test file should cover
- Snakefile placement, input and output copies, added files and directories.
- Warnings (not failures) for missing inputs, outputs and paths outside the pipeline.
- Rewriting a rule replaces its previous workspace.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from snakemake_unit_tests.emission import RuleTestSlice, WorkspaceWriter
from snakemake_unit_tests.solved import Recipe


def _slice(
    inputs: tuple[str, ...] = ("data/a.txt",),
    outputs: tuple[str, ...] = ("results/b.txt",),
) -> RuleTestSlice:
    recipe = Recipe("make_b", inputs=inputs, outputs=outputs)
    return RuleTestSlice(
        rule_name="make_b",
        recipe=recipe,
        snakefile_text="rule make_b:\n    output: 'results/b.txt'\n\n\n",
        inputs=inputs,
        outputs=outputs,
        log=None,
        checkpoint_affected=False,
        retained_rules=(),
    )


@pytest.fixture
def pipeline(tmp_path: Path) -> Path:
    root = tmp_path / "pipeline"
    (root / "data").mkdir(parents=True)
    (root / "data" / "a.txt").write_text("a\n", encoding="utf-8")
    (root / "results").mkdir()
    (root / "results" / "b.txt").write_text("b\n", encoding="utf-8")
    (root / "config").mkdir()
    (root / "config" / "config.yaml").write_text("samples: []\n", encoding="utf-8")
    (root / "environment.yaml").write_text("name: test\n", encoding="utf-8")
    return root


@pytest.mark.unit
def test_write_creates_workspace_layout(tmp_path: Path, pipeline: Path) -> None:
    writer = WorkspaceWriter(
        tmp_path / "out",
        pipeline,
        added_files=["environment.yaml"],
        added_directories=["config"],
    )

    root = writer.write(_slice())

    assert root == tmp_path / "out" / "unit" / "make_b"
    snakefile = root / "workspace" / "workflow" / "Snakefile"
    assert snakefile.read_text(encoding="utf-8").startswith("rule make_b:")
    assert (root / "workspace" / "data" / "a.txt").read_text(encoding="utf-8") == "a\n"
    assert (root / "expected" / "results" / "b.txt").read_text(encoding="utf-8") == "b\n"
    assert (root / "workspace" / "environment.yaml").is_file()
    assert (root / "workspace" / "config" / "config.yaml").is_file()
    assert not writer.diagnostics.warnings


@pytest.mark.unit
def test_missing_paths_are_warnings(tmp_path: Path, pipeline: Path) -> None:
    writer = WorkspaceWriter(tmp_path / "out", pipeline, added_files=["absent.cfg"])

    root = writer.write(_slice(inputs=("data/missing.txt",), outputs=("results/none.txt",)))

    assert (root / "workspace" / "workflow" / "Snakefile").is_file()
    codes = [entry.code for entry in writer.diagnostics.warnings]
    assert codes == ["missing-input", "missing-output", "missing-added-content"]
    assert writer.diagnostics.warnings[0].subjects == ("make_b", "data/missing.txt")


@pytest.mark.unit
def test_paths_outside_the_pipeline_are_not_copied(tmp_path: Path, pipeline: Path) -> None:
    outside = tmp_path / "elsewhere.txt"
    outside.write_text("x\n", encoding="utf-8")
    writer = WorkspaceWriter(tmp_path / "out", pipeline)

    root = writer.write(_slice(inputs=(str(outside), "../elsewhere.txt")))

    assert [entry.code for entry in writer.diagnostics.warnings] == [
        "path-outside-pipeline",
        "path-outside-pipeline",
    ]
    assert not (root / "workspace" / "elsewhere.txt").exists()


@pytest.mark.unit
def test_rewrite_replaces_previous_workspace(tmp_path: Path, pipeline: Path) -> None:
    writer = WorkspaceWriter(tmp_path / "out", pipeline, snakefile_relative="Snakefile")
    root = writer.write(_slice())
    stale = root / "workspace" / "stale.txt"
    stale.write_text("old\n", encoding="utf-8")

    writer.write(_slice())

    assert not stale.exists()
    assert (root / "workspace" / "Snakefile").is_file()


@pytest.mark.unit
def test_absolute_snakefile_location_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="relative"):
        WorkspaceWriter(tmp_path / "out", tmp_path, snakefile_relative=tmp_path / "Snakefile")
