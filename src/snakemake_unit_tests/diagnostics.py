"""Structured warnings and errors surfaced while loading, solving and emitting."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum


class Severity(StrEnum):
    WARNING = "warning"
    ERROR = "error"


_SEVERITY_ORDER = {Severity.ERROR: 0, Severity.WARNING: 1}


@dataclass(frozen=True, slots=True)
class Diagnostic:
    severity: Severity
    code: str
    message: str
    subjects: tuple[str, ...] = ()

    def sort_key(self) -> tuple[int, str, tuple[str, ...]]:
        return (_SEVERITY_ORDER[self.severity], self.code, self.subjects)

    def to_dict(self) -> dict[str, object]:
        return {
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "subjects": list(self.subjects),
        }


@dataclass(slots=True)
class DiagnosticLog:
    """Append-only collection of diagnostics, in the order they were raised."""

    entries: list[Diagnostic] = field(default_factory=list)

    def warn(self, code: str, message: str, *subjects: str) -> Diagnostic:
        return self._add(Diagnostic(Severity.WARNING, code, message, tuple(subjects)))

    def error(self, code: str, message: str, *subjects: str) -> Diagnostic:
        return self._add(Diagnostic(Severity.ERROR, code, message, tuple(subjects)))

    def _add(self, diagnostic: Diagnostic) -> Diagnostic:
        self.entries.append(diagnostic)
        return diagnostic

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def with_code(self, code: str) -> tuple[Diagnostic, ...]:
        return tuple(entry for entry in self.entries if entry.code == code)

    @property
    def warnings(self) -> tuple[Diagnostic, ...]:
        return tuple(entry for entry in self.entries if entry.severity is Severity.WARNING)

    @property
    def errors(self) -> tuple[Diagnostic, ...]:
        return tuple(entry for entry in self.entries if entry.severity is Severity.ERROR)

    @property
    def has_errors(self) -> bool:
        return any(entry.severity is Severity.ERROR for entry in self.entries)

    def sorted(self) -> tuple[Diagnostic, ...]:
        return tuple(sorted(self.entries, key=Diagnostic.sort_key))


__all__ = ["Diagnostic", "DiagnosticLog", "Severity"]
