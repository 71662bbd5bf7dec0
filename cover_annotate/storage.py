"""In-memory coverage store built from one coverage export file.

A :class:`CoverageStore` is owned by a single caller.  Every successful
:meth:`CoverageStore.load` replaces the whole index; a failed load leaves the
previous index untouched.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Set, Union

from .errors import CorruptCoverageError, CoverageNotFoundError, DecodeError, EmptyCoverageError, LoadError
from .models import BumpRecord, FileRecord, LineHit, ModuleSummary, as_bump, as_file_record, percentage_of
from .terms import Term, iter_records

logger = logging.getLogger(__name__)


class CoverageStore:
    """Decoded coverage export indexed by module name."""

    def __init__(self) -> None:
        self.loaded_path: Optional[Path] = None
        self._terms: List[Term] = []
        self._bumps: Dict[str, List[BumpRecord]] = {}
        self._files: Dict[str, FileRecord] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_loaded(self) -> bool:
        return self.loaded_path is not None

    @property
    def terms(self) -> List[Term]:
        return list(self._terms)

    def clear(self) -> None:
        self.loaded_path = None
        self._terms = []
        self._bumps = {}
        self._files = {}

    def load(self, path: Union[str, Path]) -> None:
        """Read and decode *path* in full, replacing all prior state.

        Raises:
            CoverageNotFoundError: *path* does not exist.
            CorruptCoverageError: a record failed to decode.
            LoadError: *path* exists but could not be read.
        """
        path = Path(path)
        try:
            data = path.read_bytes()
        except FileNotFoundError as exc:
            raise CoverageNotFoundError(path) from exc
        except OSError as exc:
            raise LoadError(path, exc.strerror or str(exc)) from exc

        try:
            terms = list(iter_records(data))
        except DecodeError as exc:
            raise CorruptCoverageError(path, str(exc)) from exc

        bumps: Dict[str, List[BumpRecord]] = {}
        files: Dict[str, FileRecord] = {}
        skipped = 0
        for term in terms:
            bump = as_bump(term)
            if bump is not None:
                bumps.setdefault(bump.module, []).append(bump)
                continue
            record = as_file_record(term)
            if record is not None:
                files[record.module] = record
                continue
            skipped += 1
            logger.debug("Ignoring non-coverage term %s", term)

        self.loaded_path = path
        self._terms = terms
        self._bumps = bumps
        self._files = files

        if skipped:
            logger.warning("Skipped %d unrecognised term(s) in %s", skipped, path)
        logger.info(
            "Loaded %d record(s) for %d module(s) from %s",
            len(terms), len(self.modules()), path,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def modules(self) -> List[str]:
        return sorted(set(self._files) | set(self._bumps))

    def has_module(self, module: str) -> bool:
        """True if *module* was declared by a file record or has bump records."""
        return module in self._files or module in self._bumps

    def source_path(self, module: str) -> Optional[str]:
        record = self._files.get(module)
        return record.path if record else None

    def bump_records(self, module: str) -> List[BumpRecord]:
        return list(self._bumps.get(module, []))

    def covered_lines(self, module: str) -> List[LineHit]:
        """``(line, hits)`` pairs for *module* in encounter order.

        Records without line information (line <= 0) are excluded.  Duplicate
        line numbers are kept: every clause on a line contributes its own
        entry.  An unknown module yields an empty list.
        """
        return [b.as_line_hit() for b in self._bumps.get(module, []) if b.has_line]

    def line_hits(self, module: str) -> Dict[int, int]:
        """Total hits per line for *module*, duplicates summed."""
        totals: Dict[int, int] = {}
        for line, hits in self.covered_lines(module):
            totals[line] = totals.get(line, 0) + hits
        return totals

    def percentage(self, module: str) -> int:
        """Share of line-tagged records of *module* with at least one hit.

        Raises:
            EmptyCoverageError: *module* has no line-tagged records.
        """
        lines = self.covered_lines(module)
        if not lines:
            raise EmptyCoverageError(module)
        covered = sum(1 for hit in lines if hit.hits > 0)
        return percentage_of(covered, len(lines))

    def summary(self) -> List[ModuleSummary]:
        rows: List[ModuleSummary] = []
        for module in self.modules():
            lines = self.covered_lines(module)
            if not lines:
                continue
            covered = sum(1 for hit in lines if hit.hits > 0)
            rows.append(ModuleSummary(module, covered, len(lines), percentage_of(covered, len(lines))))
        return rows

    def modules_without_data(self) -> Set[str]:
        """Modules declared in the export that have no line-tagged records."""
        return {m for m in self.modules() if not self.covered_lines(m)}
