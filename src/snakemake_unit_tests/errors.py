"""Exception hierarchy shared by the parsing, solving and emission layers."""

from __future__ import annotations

from pathlib import Path


class SnakemakeUnitTestsError(Exception):
    """Base class for every failure raised by this package."""


class SnakefileParseError(SnakemakeUnitTestsError, ValueError):
    """Malformed Snakefile content, reported with file and line."""

    path: Path | None
    line: int | None
    reason: str

    def __init__(
        self, reason: str, *, path: Path | str | None = None, line: int | None = None
    ) -> None:
        self.path = Path(path) if path is not None else None
        self.line = line
        self.reason = reason
        location = str(self.path) if self.path is not None else "<snakefile>"
        if line is not None:
            location = f"{location}:{line}"
        super().__init__(f"{location}: {reason}")


class IncludeResolutionError(SnakemakeUnitTestsError):
    """An include directive could not be expanded, or expansion did not converge."""


class MissingBaseRuleError(SnakemakeUnitTestsError):
    """A derived rule names a base rule that was not loaded."""

    def __init__(self, rule_name: str, base_rule_name: str) -> None:
        self.rule_name = rule_name
        self.base_rule_name = base_rule_name
        super().__init__(
            f'derived rule "{rule_name}" requested base rule "{base_rule_name}", '
            "which could not be found in available snakefiles"
        )


class InheritanceChainError(SnakemakeUnitTestsError):
    """A derived rule inherits from a rule that is itself derived."""

    def __init__(self, chain: tuple[str, ...]) -> None:
        self.chain = chain
        super().__init__(
            "multi-level rule inheritance is not supported: " + " -> ".join(chain)
        )


class TargetNotFoundError(SnakemakeUnitTestsError, LookupError):
    """A rule requested for rendering does not exist in the loaded sources."""

    def __init__(self, rule_name: str) -> None:
        self.rule_name = rule_name
        super().__init__(
            f'unable to locate log requested rule in scanned snakefiles: "{rule_name}"'
        )


class SolvedLogParseError(SnakemakeUnitTestsError, ValueError):
    """Malformed execution log content."""

    def __init__(self, reason: str, *, line: int | None = None, source: str | None = None) -> None:
        self.reason = reason
        self.line = line
        self.source = source
        location = source or "<log>"
        if line is not None:
            location = f"{location}:{line}"
        super().__init__(f"{location}: {reason}")


class ContractViolationError(SnakemakeUnitTestsError, RuntimeError):
    """An internal caller passed an argument that breaks an API contract."""


class UnexpectedInterpreterOutputError(SnakemakeUnitTestsError):
    """Captured interpreter output contained an error the engine cannot classify."""

    def __init__(self, text: str) -> None:
        self.text = text
        super().__init__(f"unexpected error in interpreter output: {text}")


class EmissionError(SnakemakeUnitTestsError):
    """A rule slice could not be assembled or written."""


__all__ = [
    "ContractViolationError",
    "EmissionError",
    "IncludeResolutionError",
    "InheritanceChainError",
    "MissingBaseRuleError",
    "SnakefileParseError",
    "SnakemakeUnitTestsError",
    "SolvedLogParseError",
    "TargetNotFoundError",
    "UnexpectedInterpreterOutputError",
]
