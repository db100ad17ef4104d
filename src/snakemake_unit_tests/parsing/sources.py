"""Turn include targets into already-read line sequences."""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol


@dataclass(frozen=True, slots=True)
class SourceFile:
    path: Path
    lines: tuple[str, ...]


class SourceLoader(Protocol):
    """Resolve ``filename`` (as written in an include) and return its lines.

    ``relative_to`` is the file containing the include, or ``None`` for the
    top-level Snakefile. Implementations raise ``FileNotFoundError`` when the
    target does not exist.
    """

    def __call__(self, filename: str, *, relative_to: Path | None) -> SourceFile: ...


class FileSystemSourceLoader:
    """Read Snakefiles from disk.

    Include paths are resolved against the directory of the including file,
    the top-level Snakefile against ``base_dir``.
    """

    def __init__(self, base_dir: Path | str = ".", *, encoding: str = "utf-8") -> None:
        self._base_dir = Path(base_dir)
        self._encoding = encoding

    def __call__(self, filename: str, *, relative_to: Path | None) -> SourceFile:
        candidate = Path(filename).expanduser()
        if not candidate.is_absolute():
            parent = relative_to.parent if relative_to is not None else self._base_dir
            candidate = parent / candidate
        candidate = Path(os.path.normpath(candidate))
        if not candidate.is_file():
            raise FileNotFoundError(f'cannot open snakemake file "{candidate}"')
        text = candidate.read_text(encoding=self._encoding)
        return SourceFile(path=candidate, lines=tuple(text.splitlines()))


class MappingSourceLoader:
    """Serve pre-read sources keyed by POSIX-style path.

    Useful when the caller has already read every file, and in tests.
    """

    def __init__(self, sources: Mapping[str, str | Sequence[str]]) -> None:
        self._sources: dict[PurePosixPath, tuple[str, ...]] = {}
        for name, content in sources.items():
            lines = content.splitlines() if isinstance(content, str) else list(content)
            self._sources[_normalize(PurePosixPath(name))] = tuple(lines)

    def __call__(self, filename: str, *, relative_to: Path | None) -> SourceFile:
        candidate = PurePosixPath(filename)
        if not candidate.is_absolute() and relative_to is not None:
            candidate = PurePosixPath(relative_to.as_posix()).parent / candidate
        key = _normalize(candidate)
        if key not in self._sources:
            raise FileNotFoundError(f'cannot open snakemake file "{key}"')
        return SourceFile(path=Path(key), lines=self._sources[key])


def _normalize(path: PurePosixPath) -> PurePosixPath:
    parts: list[str] = []
    for part in path.parts:
        if part == ".":
            continue
        if part == ".." and parts and parts[-1] not in ("..", "/"):
            parts.pop()
            continue
        parts.append(part)
    return PurePosixPath(*parts) if parts else PurePosixPath(".")


__all__ = ["FileSystemSourceLoader", "MappingSourceLoader", "SourceFile", "SourceLoader"]
