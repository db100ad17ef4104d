"""Per-rule slice emission and workspace materialization."""

from snakemake_unit_tests.emission.driver import (
    EmissionDriver,
    EmissionSummary,
    Interpreter,
    RuleTestSlice,
    SliceWriter,
    render_phony_all,
)
from snakemake_unit_tests.emission.workspace import WorkspaceWriter

__all__ = [
    "EmissionDriver",
    "EmissionSummary",
    "Interpreter",
    "RuleTestSlice",
    "SliceWriter",
    "WorkspaceWriter",
    "render_phony_all",
]
