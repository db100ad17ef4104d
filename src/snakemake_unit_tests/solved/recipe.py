"""One solved rule invocation, as reported by a dry-run log."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TypeAlias


class Placeholder(Enum):
    """Path markers that stand in for values unknown at dry-run time."""

    CHECKPOINT_DEFERRED = "<TBD>"

    def __str__(self) -> str:
        return self.value


LogPath: TypeAlias = str | Placeholder


@dataclass(eq=False, slots=True)
class Recipe:
    """A rule invocation with its solved inputs and outputs.

    Recipes compare and hash by identity: two jobs of the same rule with the
    same files are still distinct nodes. Only ``checkpoint_affected`` changes
    after loading.
    """

    rule_name: str
    is_checkpoint: bool = False
    inputs: tuple[LogPath, ...] = ()
    outputs: tuple[LogPath, ...] = ()
    log: LogPath | None = None
    checkpoint_affected: bool = False
    line_number: int = 0

    @property
    def concrete_inputs(self) -> tuple[str, ...]:
        return tuple(path for path in self.inputs if isinstance(path, str))

    @property
    def concrete_outputs(self) -> tuple[str, ...]:
        return tuple(path for path in self.outputs if isinstance(path, str))

    @property
    def concrete_log(self) -> str | None:
        return self.log if isinstance(self.log, str) else None

    @property
    def has_deferred_paths(self) -> bool:
        return any(
            isinstance(path, Placeholder) for path in (*self.inputs, *self.outputs, self.log)
        )

    def describe(self) -> str:
        keyword = "checkpoint" if self.is_checkpoint else "rule"
        return f"{keyword} {self.rule_name} (log line {self.line_number})"


__all__ = ["LogPath", "Placeholder", "Recipe"]
