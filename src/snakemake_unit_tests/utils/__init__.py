"""Shared filesystem helpers."""

from snakemake_unit_tests.utils.fs import atomic_write, copy_path, is_within, safe_delete

__all__ = ["atomic_write", "copy_path", "is_within", "safe_delete"]
