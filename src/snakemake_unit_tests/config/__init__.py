"""
snakemake-unit-tests config package public API.

- Loading from ``snakemake_unit_tests.yaml`` (or an explicit YAML/TOML file)
  plus ``SUT_`` env overrides and CLI overrides.
- Fail fast with clear structured validation/load errors.
"""

from snakemake_unit_tests.config.loader import (
    ConfigLoadError,
    load_config,
    normalize_paths,
)
from snakemake_unit_tests.config.schema import (
    DEFAULT_CONFIG,
    PATH_FIELDS,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    RunConfig,
    RunParameters,
    assert_valid_config,
    build_run_parameters,
    default_config,
    merge_config,
    validate_config,
)

__all__ = [
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "PATH_FIELDS",
    "RunConfig",
    "RunParameters",
    "assert_valid_config",
    "build_run_parameters",
    "default_config",
    "load_config",
    "merge_config",
    "normalize_paths",
    "validate_config",
]
