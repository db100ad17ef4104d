"""Command-line interface for snakemake-unit-tests."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TextIO

import structlog

from snakemake_unit_tests import __version__
from snakemake_unit_tests.config import (
    ConfigLoadError,
    ConfigValidationError,
    RunParameters,
    build_run_parameters,
    load_config,
)
from snakemake_unit_tests.constants import LOG_FORMATS, LOG_LEVELS
from snakemake_unit_tests.diagnostics import DiagnosticLog
from snakemake_unit_tests.emission import (
    EmissionDriver,
    EmissionSummary,
    Interpreter,
    WorkspaceWriter,
)
from snakemake_unit_tests.errors import (
    IncludeResolutionError,
    InheritanceChainError,
    MissingBaseRuleError,
    SnakefileParseError,
    SolvedLogParseError,
)
from snakemake_unit_tests.observability import LoggingConfig, setup_logging
from snakemake_unit_tests.parsing import FileSystemSourceLoader, SnakemakeFile
from snakemake_unit_tests.solved import SolvedRules

_INPUT_ERRORS: tuple[type[Exception], ...] = (
    SnakefileParseError,
    IncludeResolutionError,
    MissingBaseRuleError,
    InheritanceChainError,
    SolvedLogParseError,
)


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser; every option defaults to ``None`` so config files apply."""

    parser = argparse.ArgumentParser(
        prog="snakemake-unit-tests",
        description=(
            "Build per-rule unit test workspaces from a Snakemake pipeline.\n\n"
            "Examples:\n"
            "  snakemake-unit-tests -s workflow/Snakefile -l dry-run.log\n"
            "  snakemake-unit-tests -c config.yaml --dry-run\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        "-c",
        dest="config_path",
        default=None,
        help="YAML or TOML config file (default: ./snakemake_unit_tests.yaml if present).",
    )
    parser.add_argument(
        "--snakefile", "-s", default=None, help="Top-level Snakefile (default: workflow/Snakefile)."
    )
    parser.add_argument(
        "--snakemake-log",
        "-l",
        dest="snakemake_log",
        default=None,
        help="Log of a completed 'snakemake -n' run of the pipeline.",
    )
    parser.add_argument(
        "--output-test-dir",
        "-o",
        dest="output_test_dir",
        default=None,
        help="Where test workspaces are written (default: .tests).",
    )
    parser.add_argument(
        "--pipeline-dir",
        "-p",
        dest="pipeline_dir",
        default=None,
        help="Pipeline run directory (default: two levels above the Snakefile).",
    )
    parser.add_argument(
        "--exclude-rules",
        "-e",
        dest="exclude_rules",
        action="append",
        default=None,
        help="Rule to skip; may be repeated. 'all' is always skipped.",
    )
    parser.add_argument(
        "--added-files",
        "-f",
        dest="added_files",
        action="append",
        default=None,
        help="File under the pipeline directory to copy into every workspace; may be repeated.",
    )
    parser.add_argument(
        "--added-directories",
        "-d",
        dest="added_directories",
        action="append",
        default=None,
        help="Directory under the pipeline directory to copy into every workspace; repeatable.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=None,
        help="Print the parsed Snakefile blocks and log at DEBUG level.",
    )
    parser.add_argument(
        "--log-format", dest="log_format", choices=LOG_FORMATS, default=None, help="Log renderer."
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Minimum log level (default: INFO).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Render every slice but write nothing; print a summary.",
    )
    parser.add_argument("--json", action="store_true", help="Emit the summary as JSON")
    return parser


def run_cli(
    argv: Sequence[str] | None = None,
    *,
    interpreter: Interpreter | None = None,
    stdout: TextIO | None = None,
    environ: Mapping[str, str] | None = None,
) -> int:
    """Parse argv, run the emission and return the process exit code."""

    out = stdout if stdout is not None else sys.stdout
    namespace = build_parser().parse_args(list(argv) if argv is not None else None)
    try:
        params = _load_parameters(namespace, environ)
        summary = _run(params, namespace, interpreter=interpreter, out=out)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code

    if namespace.json:
        _emit_json(summary.to_dict(), out)
    else:
        _emit_text(summary, out)
    return 0 if summary.ok else 1


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


def _load_parameters(
    namespace: argparse.Namespace, environ: Mapping[str, str] | None
) -> RunParameters:
    overrides = {
        key: getattr(namespace, key)
        for key in (
            "snakefile",
            "snakemake_log",
            "output_test_dir",
            "pipeline_dir",
            "exclude_rules",
            "added_files",
            "added_directories",
            "verbose",
            "log_format",
            "log_level",
        )
    }
    try:
        config = load_config(namespace.config_path, cli_overrides=overrides, environ=environ)
        return build_run_parameters(config)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _run(
    params: RunParameters,
    namespace: argparse.Namespace,
    *,
    interpreter: Interpreter | None,
    out: TextIO,
) -> EmissionSummary:
    handle = setup_logging(
        LoggingConfig(
            level="DEBUG" if params.verbose else params.log_level,
            log_format=params.log_format,
        )
    )
    logger = structlog.get_logger(__name__)
    logger.info("run_started", dry_run=namespace.dry_run, **params.to_dict())
    try:
        diagnostics = DiagnosticLog()
        snakefile = SnakemakeFile(FileSystemSourceLoader(), diagnostics=diagnostics)
        snakefile.load_everything(params.snakefile, exclude_rules=params.exclude_rules)
        if params.verbose:
            out.write(snakefile.render_blocks())

        solved = SolvedRules.from_log_file(params.snakemake_log, diagnostics=diagnostics)
        driver = EmissionDriver(
            snakefile,
            solved,
            exclude_rules=params.exclude_rules,
            interpreter=interpreter,
            diagnostics=diagnostics,
        )
        writer = None
        if not namespace.dry_run:
            writer = WorkspaceWriter(
                params.output_test_dir,
                params.pipeline_dir,
                snakefile_relative=params.snakefile_relative,
                added_files=params.added_files,
                added_directories=params.added_directories,
                diagnostics=diagnostics,
            )
        return driver.emit(writer)
    except _INPUT_ERRORS as exc:
        logger.error("run_input_error", error=str(exc), error_type=type(exc).__name__)
        raise CLIError(str(exc), exit_code=2) from exc
    finally:
        handle.shutdown()


def _emit_json(payload: Mapping[str, object], out: TextIO) -> None:
    """Emit a JSON payload with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False), file=out)


def _emit_text(summary: EmissionSummary, out: TextIO) -> None:
    print(f"emitted: {len(summary.emitted)} rule(s)", file=out)
    for name in summary.emitted:
        print(f"  - {name}", file=out)
    if summary.skipped:
        print(f"skipped: {', '.join(summary.skipped)}", file=out)
    for entry in sorted(summary.diagnostics, key=lambda item: item.sort_key()):
        print(f"{entry.severity}: [{entry.code}] {entry.message}", file=out)


__all__ = ["CLIError", "build_parser", "main", "run_cli"]
