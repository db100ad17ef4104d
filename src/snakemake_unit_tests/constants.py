"""Stable constants shared across the parsing, solving and emission layers."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Default inputs, relative to the working directory unless overridden by config.
DEFAULT_SNAKEFILE: Final[str] = "workflow/Snakefile"
DEFAULT_OUTPUT_TEST_DIR: Final[str] = ".tests"
DEFAULT_CONFIG_FILE: Final[str] = "snakemake_unit_tests.yaml"
ENV_PREFIX: Final[str] = "SUT_"

# Rule that every Snakefile uses as its aggregate target; never emitted.
ALWAYS_EXCLUDED_RULE: Final[str] = "all"

# Workspace layout below the output test directory.
UNIT_TESTS_DIR: Final[PurePosixPath] = PurePosixPath("unit")

# Logging.
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS: Final[tuple[str, ...]] = ("console", "json")

__all__ = [
    "ALWAYS_EXCLUDED_RULE",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_OUTPUT_TEST_DIR",
    "DEFAULT_SNAKEFILE",
    "ENV_PREFIX",
    "LOG_FORMATS",
    "LOG_LEVELS",
    "UNIT_TESTS_DIR",
]
