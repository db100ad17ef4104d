"""Write one rule slice to ``<output_test_dir>/unit/<rule>/``.

Layout::

    unit/<rule>/workspace/<snakefile path>   rendered minimal Snakefile
    unit/<rule>/workspace/<input>            copies of the rule's inputs
    unit/<rule>/workspace/<added content>    extra files and directories
    unit/<rule>/expected/<output>            copies of the rule's outputs

Paths from the log are relative to the pipeline directory.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog

from snakemake_unit_tests.constants import UNIT_TESTS_DIR
from snakemake_unit_tests.diagnostics import DiagnosticLog
from snakemake_unit_tests.emission.driver import RuleTestSlice
from snakemake_unit_tests.errors import EmissionError
from snakemake_unit_tests.utils.fs import atomic_write, copy_path, is_within, safe_delete

UNIT_DIRNAME = UNIT_TESTS_DIR.as_posix()
WORKSPACE_DIRNAME = "workspace"
EXPECTED_DIRNAME = "expected"


class WorkspaceWriter:
    def __init__(
        self,
        output_test_dir: Path | str,
        pipeline_dir: Path | str,
        *,
        snakefile_relative: Path | str = Path("workflow/Snakefile"),
        added_files: Iterable[Path | str] = (),
        added_directories: Iterable[Path | str] = (),
        logger: Any | None = None,
        diagnostics: DiagnosticLog | None = None,
    ) -> None:
        self._output_test_dir = Path(output_test_dir)
        self._pipeline_dir = Path(pipeline_dir)
        self._snakefile_relative = Path(snakefile_relative)
        self._added = tuple(Path(p) for p in (*added_files, *added_directories))
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        if self._snakefile_relative.is_absolute():
            raise ValueError("snakefile_relative must be relative to the pipeline directory")

    def rule_dir(self, rule_name: str) -> Path:
        return self._output_test_dir / UNIT_DIRNAME / rule_name

    def write(self, test_slice: RuleTestSlice) -> Path:
        """Replace any previous workspace for the rule; return the rule directory."""

        root = self.rule_dir(test_slice.rule_name)
        workspace = root / WORKSPACE_DIRNAME
        expected = root / EXPECTED_DIRNAME
        try:
            root.parent.mkdir(parents=True, exist_ok=True)
            if root.exists():
                safe_delete(root, self._output_test_dir)
            workspace.mkdir(parents=True)
            expected.mkdir()

            snakefile_target = workspace / self._snakefile_relative
            snakefile_target.parent.mkdir(parents=True, exist_ok=True)
            atomic_write(snakefile_target, test_slice.snakefile_text)

            copied_inputs = sum(
                self._copy_relative(path, workspace, "missing-input", test_slice.rule_name)
                for path in test_slice.inputs
            )
            copied_outputs = sum(
                self._copy_relative(path, expected, "missing-output", test_slice.rule_name)
                for path in test_slice.outputs
            )
            for path in self._added:
                self._copy_relative(path, workspace, "missing-added-content", test_slice.rule_name)
        except OSError as exc:
            raise EmissionError(
                f'cannot write workspace for rule "{test_slice.rule_name}" under {root}: {exc}'
            ) from exc

        self._logger.debug(
            "workspace_written",
            rule=test_slice.rule_name,
            path=str(root),
            inputs=copied_inputs,
            outputs=copied_outputs,
        )
        return root

    def _copy_relative(self, path: str | Path, base: Path, missing_code: str, rule: str) -> bool:
        relative = Path(path)
        if relative.is_absolute():
            if not is_within(relative, self._pipeline_dir):
                self._warn(
                    "path-outside-pipeline", f"{relative} is outside the pipeline", rule, relative
                )
                return False
            relative = relative.resolve().relative_to(self._pipeline_dir.resolve())

        destination = base / relative
        if not is_within(destination, base):
            self._warn("path-outside-pipeline", f"{relative} escapes the workspace", rule, relative)
            return False

        source = self._pipeline_dir / relative
        if not source.exists():
            self._warn(missing_code, f"{source} does not exist", rule, relative)
            return False
        copy_path(source, destination)
        return True

    def _warn(self, code: str, message: str, rule: str, path: Path) -> None:
        self.diagnostics.warn(code, f'rule "{rule}": {message}', rule, str(path))
        self._logger.warning("workspace_" + code.replace("-", "_"), rule=rule, path=str(path))


__all__ = ["EXPECTED_DIRNAME", "UNIT_DIRNAME", "WORKSPACE_DIRNAME", "WorkspaceWriter"]
