"""
snakemake-unit-tests: unit tests for the command-line interface

File: tests/unit/ui/test_cli.py

Purpose
- Validate end-to-end CLI runs against a small pipeline on disk.

What this test file should cover
- Workspace emission, dry runs and the JSON summary.
- Exit codes: success, per-rule emission errors, config and input errors.
- Exception routing in the process entrypoint.
"""

from __future__ import annotations

import io
import json
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from snakemake_unit_tests.errors import SnakefileParseError
from snakemake_unit_tests.main import ExitCode, cli_entrypoint
from snakemake_unit_tests.ui.cli import build_parser, run_cli

SNAKEFILE = """\
rule all:
    input: "b.txt"

rule make_a:
    output: "a.txt"
    shell: "echo a > {output}"

rule make_b:
    input: rules.make_a.output
    output: "b.txt"
    shell: "cp {input} {output}"
"""

LOG = """\
Building DAG of jobs...
[Mon Jun 13 14:05:00 2022]
rule make_a:
    output: a.txt
    jobid: 2
[Mon Jun 13 14:05:01 2022]
rule make_b:
    input: a.txt
    output: b.txt
    jobid: 1
[Mon Jun 13 14:05:02 2022]
localrule all:
    input: b.txt
    jobid: 0
{extra}
This was a dry-run (flag -n).
"""


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


@pytest.fixture
def pipeline(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    root = tmp_path / "pipeline"
    (root / "workflow").mkdir(parents=True)
    (root / "workflow" / "Snakefile").write_text(SNAKEFILE, encoding="utf-8")
    (root / "a.txt").write_text("a\n", encoding="utf-8")
    (root / "b.txt").write_text("a\n", encoding="utf-8")
    (tmp_path / "dry-run.log").write_text(LOG.format(extra=""), encoding="utf-8")
    return root


def _args(tmp_path: Path, *extra: str) -> list[str]:
    return [
        "-s",
        str(tmp_path / "pipeline" / "workflow" / "Snakefile"),
        "-l",
        str(tmp_path / "dry-run.log"),
        "-o",
        str(tmp_path / "out"),
        "--log-format",
        "json",
        *extra,
    ]


@pytest.mark.unit
def test_parser_defaults_leave_config_in_charge() -> None:
    namespace = build_parser().parse_args([])

    assert namespace.snakefile is None
    assert namespace.exclude_rules is None
    assert namespace.verbose is None
    assert namespace.dry_run is False


@pytest.mark.unit
def test_run_writes_one_workspace_per_rule(tmp_path: Path, pipeline: Path) -> None:
    stdout = io.StringIO()

    code = run_cli(_args(tmp_path), stdout=stdout, environ={})

    assert code == 0
    assert stdout.getvalue() == "emitted: 2 rule(s)\n  - make_a\n  - make_b\nskipped: all\n"
    make_b = tmp_path / "out" / "unit" / "make_b"
    snakefile_text = (make_b / "workspace" / "workflow" / "Snakefile").read_text(encoding="utf-8")
    assert snakefile_text.startswith('rule all:\n    input:\n        "b.txt",\n')
    assert "rule make_a:" in snakefile_text
    assert (make_b / "workspace" / "a.txt").is_file()
    assert (make_b / "expected" / "b.txt").is_file()
    assert not (tmp_path / "out" / "unit" / "all").exists()


@pytest.mark.unit
def test_dry_run_with_json_summary_writes_nothing(tmp_path: Path, pipeline: Path) -> None:
    stdout = io.StringIO()

    code = run_cli(
        _args(tmp_path, "--dry-run", "--json", "-e", "make_a"), stdout=stdout, environ={}
    )

    assert code == 0
    payload = json.loads(stdout.getvalue())
    assert payload["ok"] is True
    assert payload["emitted"] == ["make_b"]
    assert payload["skipped"] == ["make_a", "all"]
    assert not (tmp_path / "out").exists()


@pytest.mark.unit
def test_verbose_prints_parsed_blocks(tmp_path: Path, pipeline: Path) -> None:
    stdout = io.StringIO()

    code = run_cli(_args(tmp_path, "--dry-run", "-v"), stdout=stdout, environ={})

    assert code == 0
    assert stdout.getvalue().startswith('rule all:\n    input: "b.txt"\n')


@pytest.mark.unit
def test_rules_missing_from_the_snakefile_exit_with_one(tmp_path: Path, pipeline: Path) -> None:
    (tmp_path / "dry-run.log").write_text(
        LOG.format(extra="rule phantom:\n    output: p.txt"), encoding="utf-8"
    )
    stdout = io.StringIO()

    code = run_cli(_args(tmp_path), stdout=stdout, environ={})

    assert code == 1
    assert (
        "error: [emission-failed] unable to locate log requested rule in scanned snakefiles: "
        '"phantom"'
    ) in stdout.getvalue()


@pytest.mark.unit
def test_missing_log_option_is_a_config_error(
    tmp_path: Path, pipeline: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = run_cli(["-s", str(pipeline / "workflow" / "Snakefile")], environ={})

    assert code == 2
    assert "snakemake_log: missing required field" in capsys.readouterr().err


@pytest.mark.unit
def test_malformed_snakefile_is_an_input_error(
    tmp_path: Path, pipeline: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    snakefile = pipeline / "workflow" / "Snakefile"
    snakefile.write_text("rule 1bad:\n    shell: 'x'\n", encoding="utf-8")

    code = run_cli(_args(tmp_path), stdout=io.StringIO(), environ={})

    assert code == 2
    assert "malformed rule header" in capsys.readouterr().err


@pytest.mark.unit
def test_config_file_supplies_options(tmp_path: Path, pipeline: Path) -> None:
    config_file = tmp_path / "sut.yaml"
    config_file.write_text(
        "snakefile: pipeline/workflow/Snakefile\n"
        "snakemake_log: dry-run.log\n"
        "output_test_dir: from-config\n"
        "log_format: json\n",
        encoding="utf-8",
    )

    code = run_cli(["-c", str(config_file)], stdout=io.StringIO(), environ={})

    assert code == 0
    assert (tmp_path / "from-config" / "unit" / "make_a" / "workspace").is_dir()


@pytest.mark.unit
def test_entrypoint_normalizes_exit_codes(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def _raise_parse_error(argv: object = None) -> int:
        raise SnakefileParseError("bad header", path="Snakefile", line=3)

    def _raise_internal(argv: object = None) -> int:
        raise RuntimeError("boom")

    assert cli_entrypoint(["--version"]) == ExitCode.SUCCESS

    monkeypatch.setattr("snakemake_unit_tests.ui.cli.run_cli", _raise_parse_error)
    assert cli_entrypoint([]) == ExitCode.CONFIG_ERROR
    assert "Snakefile:3: bad header" in capsys.readouterr().err

    monkeypatch.setattr("snakemake_unit_tests.ui.cli.run_cli", _raise_internal)
    assert cli_entrypoint([]) == ExitCode.INTERNAL_ERROR
    assert "RuntimeError: boom" in capsys.readouterr().err
