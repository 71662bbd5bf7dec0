"""Exception hierarchy for coverage decoding and loading."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union


class CoverError(Exception):
    """Base class for every error raised by cover_annotate."""


class DecodeError(CoverError, ValueError):
    """Malformed or truncated binary term data."""

    def __init__(self, message: str, offset: Optional[int] = None) -> None:
        self.offset = offset
        if offset is not None:
            message = f"{message} (at byte {offset})"
        super().__init__(message)


class LoadError(CoverError):
    """A coverage export could not be loaded."""

    def __init__(self, path: Union[str, Path], reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")


class CoverageNotFoundError(LoadError, FileNotFoundError):
    """The export file does not exist. Callers treat this as "no coverage"."""

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__(path, "coverage export not found")


class CorruptCoverageError(LoadError):
    """The export file exists but a record failed to decode."""


class EmptyCoverageError(CoverError):
    """A module has no line-tagged records to compute a percentage from."""

    def __init__(self, module: str) -> None:
        self.module = module
        super().__init__(f"No coverage data for module '{module}'")
