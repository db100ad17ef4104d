"""
snakemake-unit-tests runtime config loader.

Purpose
- Load effective runtime config from defaults, a YAML or TOML file, env vars,
  and CLI overrides.

Functional requirements
- Precedence: CLI > env (SUT_) > file > defaults.
- YAML via PyYAML ``safe_load``; TOML via ``tomllib``.
- Path fields set in a file are normalized relative to that file.
- List values in the environment are comma-separated.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

import yaml

from snakemake_unit_tests.config.schema import (
    BOOL_FIELDS,
    DEFAULT_CONFIG,
    LIST_FIELDS,
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
)
from snakemake_unit_tests.constants import DEFAULT_CONFIG_FILE, ENV_PREFIX
from snakemake_unit_tests.errors import SnakemakeUnitTestsError

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})
_YAML_SUFFIXES: Final[frozenset[str]] = frozenset({".yaml", ".yml"})
_TOML_SUFFIXES: Final[frozenset[str]] = frozenset({".toml"})


class ConfigLoadError(SnakemakeUnitTestsError, ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with precedence: CLI > env > file > defaults.

    Without ``config_path``, ``snakemake_unit_tests.yaml`` in the working
    directory is used when it exists.
    """

    explicit_path = config_path is not None
    resolved_path = _resolve_config_path(config_path)
    env_map = dict(os.environ if environ is None else environ)

    file_payload = _load_config_file(resolved_path, required=explicit_path)
    file_payload = normalize_paths(file_payload, base_dir=resolved_path.parent)

    merged = merge_config(default_config(), file_payload)
    merged = assert_valid_config(merged)
    merged = merge_config(merged, _collect_env_overrides(env_map))
    merged = merge_config(merged, dict(cli_overrides or {}))
    return assert_valid_config(merged)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Normalize configured path fields relative to ``base_dir``."""

    materialized = dict(config)
    for field in PATH_FIELDS:
        value = materialized.get(field)
        if isinstance(value, str) and value.strip():
            materialized[field] = _normalize_one_path(value.strip(), base_dir)
    return materialized


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    suffix = path.suffix.lower()
    try:
        if suffix in _TOML_SUFFIXES:
            with path.open("rb") as handle:
                parsed = tomllib.load(handle)
        elif suffix in _YAML_SUFFIXES:
            with path.open("r", encoding="utf-8") as handle:
                parsed = yaml.safe_load(handle)
        else:
            raise ConfigLoadError(
                f"unsupported config format {suffix or '<none>'!r} for {path}; "
                "expected .yaml, .yml or .toml"
            )
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ConfigLoadError(f"config root must be a mapping: {path}")
    return parsed


def _collect_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for key in sorted(DEFAULT_CONFIG):
        env_name = _env_name_for_key(key)
        raw = environ.get(env_name)
        if raw is None:
            continue
        overrides[key] = _coerce_env(raw, key, env_name)
    return overrides


def _coerce_env(raw: str, key: str, env_name: str) -> object:
    value = raw.strip()
    if key in LIST_FIELDS:
        return [item.strip() for item in value.split(",") if item.strip()]
    if key not in BOOL_FIELDS:
        return value

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(
        f"{env_name} -> {key} must be a boolean (true/false/1/0/yes/no/on/off)"
    )


def _normalize_one_path(raw: str, base_dir: Path) -> str:
    expanded = os.path.expandvars(raw)
    candidate = Path(expanded).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    normalized = Path(os.path.normpath(str(candidate)))
    return normalized.as_posix()


def _env_name_for_key(key: str) -> str:
    return ENV_PREFIX + key.upper()


__all__ = [
    "ConfigLoadError",
    "load_config",
    "normalize_paths",
]
