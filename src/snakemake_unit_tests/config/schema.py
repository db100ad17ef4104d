"""
snakemake-unit-tests configuration schema and validation.

Purpose
- Define configuration defaults and strict validation rules.
- Turn a validated config mapping into immutable `RunParameters`.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Check that the Snakefile and the log exist, and that added content lives
  under the pipeline directory.
- Always exclude the ``all`` rule.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, TypedDict

from snakemake_unit_tests.constants import (
    ALWAYS_EXCLUDED_RULE,
    DEFAULT_OUTPUT_TEST_DIR,
    DEFAULT_SNAKEFILE,
    LOG_FORMATS,
    LOG_LEVELS,
)
from snakemake_unit_tests.errors import SnakemakeUnitTestsError


class RunConfig(TypedDict):
    snakefile: str
    snakemake_log: str
    output_test_dir: str
    pipeline_dir: str
    exclude_rules: list[str]
    added_files: list[str]
    added_directories: list[str]
    log_level: str
    log_format: str
    verbose: bool


DEFAULT_CONFIG: Final[RunConfig] = {
    "snakefile": DEFAULT_SNAKEFILE,
    "snakemake_log": "",
    "output_test_dir": DEFAULT_OUTPUT_TEST_DIR,
    "pipeline_dir": "",
    "exclude_rules": [],
    "added_files": [],
    "added_directories": [],
    "log_level": "INFO",
    "log_format": "console",
    "verbose": False,
}

# Normalized relative to the config file that sets them.
PATH_FIELDS: Final[tuple[str, ...]] = (
    "snakefile",
    "snakemake_log",
    "output_test_dir",
    "pipeline_dir",
)
LIST_FIELDS: Final[tuple[str, ...]] = ("exclude_rules", "added_files", "added_directories")
BOOL_FIELDS: Final[tuple[str, ...]] = ("verbose",)


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(SnakemakeUnitTestsError, ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


@dataclass(frozen=True, slots=True)
class RunParameters:
    """Validated, fully resolved inputs for one run."""

    snakefile: Path
    snakemake_log: Path
    output_test_dir: Path
    pipeline_dir: Path
    exclude_rules: tuple[str, ...]
    added_files: tuple[Path, ...]
    added_directories: tuple[Path, ...]
    log_level: str = "INFO"
    log_format: str = "console"
    verbose: bool = False

    @property
    def snakefile_relative(self) -> Path:
        """Snakefile path inside the pipeline directory, reused inside each workspace."""
        try:
            return self.snakefile.resolve().relative_to(self.pipeline_dir.resolve())
        except ValueError:
            return Path(self.snakefile.name)

    def to_dict(self) -> dict[str, object]:
        return {
            "snakefile": self.snakefile.as_posix(),
            "snakemake_log": self.snakemake_log.as_posix(),
            "output_test_dir": self.output_test_dir.as_posix(),
            "pipeline_dir": self.pipeline_dir.as_posix(),
            "exclude_rules": list(self.exclude_rules),
            "added_files": [path.as_posix() for path in self.added_files],
            "added_directories": [path.as_posix() for path in self.added_directories],
            "log_level": self.log_level,
            "log_format": self.log_format,
            "verbose": self.verbose,
        }


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> dict[str, Any]:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(dict(DEFAULT_CONFIG))


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Shallow-merge ``overlay`` onto ``base``; ``None`` values in the overlay are ignored."""

    merged = copy.deepcopy(dict(base))
    for key in sorted(overlay):
        value = overlay[key]
        if value is None:
            continue
        merged[key] = copy.deepcopy(value)
    return merged


def validate_config(config: Mapping[str, object]) -> ConfigValidationResult:
    """Type-check every field; unknown fields are rejected."""

    issues = _IssueCollector()
    out: dict[str, Any] = {}
    for key in sorted(config):
        if key not in DEFAULT_CONFIG:
            issues.add(key, "unknown field")

    for key in DEFAULT_CONFIG:
        value = config.get(key, DEFAULT_CONFIG[key])  # type: ignore[literal-required]
        if key in LIST_FIELDS:
            out[key] = _as_str_list(value, key, issues)
        elif key in BOOL_FIELDS:
            out[key] = _as_bool(value, key, issues)
        elif key == "log_level":
            parsed = _as_str(value, key, issues, allow_empty=False)
            out[key] = _as_enum(parsed.upper() if parsed else None, key, issues, LOG_LEVELS)
        elif key == "log_format":
            parsed = _as_str(value, key, issues, allow_empty=False)
            out[key] = _as_enum(parsed.lower() if parsed else None, key, issues, LOG_FORMATS)
        else:
            optional = key in ("snakemake_log", "pipeline_dir")
            out[key] = _as_str(value, key, issues, allow_empty=optional)

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=out, issues=())


def assert_valid_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if not result.is_valid or result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def build_run_parameters(
    config: Mapping[str, object], *, check_paths: bool = True
) -> RunParameters:
    """Resolve derived defaults and check the filesystem.

    ``pipeline_dir`` defaults to two levels above the Snakefile
    (``<pipeline>/workflow/Snakefile``).
    """

    validated = assert_valid_config(config)
    issues = _IssueCollector()

    snakefile = Path(validated["snakefile"])
    snakemake_log = Path(validated["snakemake_log"]) if validated["snakemake_log"] else None
    pipeline_dir = (
        Path(validated["pipeline_dir"])
        if validated["pipeline_dir"]
        else snakefile.parent.parent
    )
    if snakemake_log is None:
        issues.add("snakemake_log", "missing required field")

    exclude_rules = tuple(dict.fromkeys([*validated["exclude_rules"], ALWAYS_EXCLUDED_RULE]))
    added_files = tuple(Path(item) for item in validated["added_files"])
    added_directories = tuple(Path(item) for item in validated["added_directories"])

    if check_paths:
        if not snakefile.is_file():
            issues.add("snakefile", f"not a regular file: {snakefile}")
        if snakemake_log is not None and not snakemake_log.is_file():
            issues.add("snakemake_log", f"not a regular file: {snakemake_log}")
        if not pipeline_dir.is_dir():
            issues.add("pipeline_dir", f"not a directory: {pipeline_dir}")
        for index, path in enumerate(added_files):
            if not (pipeline_dir / path).is_file():
                issues.add(f"added_files[{index}]", f"not a file under {pipeline_dir}: {path}")
        for index, path in enumerate(added_directories):
            if not (pipeline_dir / path).is_dir():
                issues.add(
                    f"added_directories[{index}]", f"not a directory under {pipeline_dir}: {path}"
                )

    if issues.has_issues or snakemake_log is None:
        raise ConfigValidationError(issues.items())

    return RunParameters(
        snakefile=snakefile,
        snakemake_log=snakemake_log,
        output_test_dir=Path(validated["output_test_dir"]),
        pipeline_dir=pipeline_dir,
        exclude_rules=exclude_rules,
        added_files=added_files,
        added_directories=added_directories,
        log_level=validated["log_level"],
        log_format=validated["log_format"],
        verbose=validated["verbose"],
    )


def _as_str(
    value: object, path: str, issues: _IssueCollector, *, allow_empty: bool
) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed and not allow_empty:
        issues.add(path, "must not be empty")
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_str_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if isinstance(value, str) or not isinstance(value, Sequence):
        issues.add(path, f"expected list of strings, got {type(value).__name__}")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        parsed = _as_str(item, f"{path}[{index}]", issues, allow_empty=False)
        if parsed is not None:
            out.append(parsed)
    return out


def _as_enum(
    value: str | None,
    path: str,
    issues: _IssueCollector,
    allowed_values: tuple[str, ...],
) -> str | None:
    if value is None:
        return None
    if value not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {value!r}; expected one of: {expected}")
        return None
    return value


__all__ = [
    "BOOL_FIELDS",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "LIST_FIELDS",
    "PATH_FIELDS",
    "RunConfig",
    "RunParameters",
    "assert_valid_config",
    "build_run_parameters",
    "default_config",
    "merge_config",
    "validate_config",
]
