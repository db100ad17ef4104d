"""Structured logging configuration."""

from snakemake_unit_tests.observability.logging import LoggingConfig, LoggingHandle, setup_logging

__all__ = ["LoggingConfig", "LoggingHandle", "setup_logging"]
