"""Command-line interface."""

from snakemake_unit_tests.ui.cli import CLIError, build_parser, run_cli

__all__ = ["CLIError", "build_parser", "run_cli"]
