"""Coverage records interpreted from decoded terms."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Optional

from .terms import Atom, Integer, ListTerm, String, Term, TupleTerm

BUMP_TAG = Atom("bump")
FILE_TAG = Atom("file")


class LineHit(NamedTuple):
    line: int
    hits: int


@dataclass(frozen=True)
class BumpRecord:
    """One ``{{bump, Module, Function, Arity, Clause, Line}, Hits}`` entry."""

    module: str
    function: str
    arity: int
    clause: int
    line: int
    hits: int

    @property
    def has_line(self) -> bool:
        return self.line > 0

    def as_line_hit(self) -> LineHit:
        return LineHit(self.line, self.hits)


@dataclass(frozen=True)
class FileRecord:
    """``{file, Module, Path}`` declaring a module present in the export."""

    module: str
    path: Optional[str] = None


@dataclass
class ModuleSummary:
    module: str
    covered: int
    total: int
    percentage: int


def percentage_of(covered: int, total: int) -> int:
    """Truncating integer percentage, ``covered * 100 // total``."""
    return covered * 100 // total


def _atom_name(term: Optional[Term]) -> Optional[str]:
    return term.name if isinstance(term, Atom) else None


def _int_value(term: Optional[Term]) -> Optional[int]:
    return term.value if isinstance(term, Integer) else None


def _text(term: Optional[Term]) -> Optional[str]:
    if isinstance(term, String):
        return term.as_text()
    if isinstance(term, ListTerm) and term.is_proper:
        codes = [_int_value(e) for e in term]
        if all(c is not None and 0 <= c <= 0x10FFFF for c in codes):
            return "".join(chr(c) for c in codes)  # type: ignore[arg-type]
    if isinstance(term, Atom):
        return term.name
    return None


def as_bump(term: Term) -> Optional[BumpRecord]:
    """Interpret *term* as a bump record, or return ``None`` if it is not one."""
    if not isinstance(term, TupleTerm) or len(term) != 2:
        return None
    key = term.element(0)
    if not isinstance(key, TupleTerm) or len(key) != 6 or key.element(0) != BUMP_TAG:
        return None

    module = _atom_name(key.element(1))
    function = _atom_name(key.element(2))
    arity = _int_value(key.element(3))
    clause = _int_value(key.element(4))
    line = _int_value(key.element(5))
    hits = _int_value(term.element(1))
    if module is None or function is None:
        return None
    if arity is None or clause is None or line is None or hits is None or hits < 0:
        return None
    return BumpRecord(module, function, arity, clause, line, hits)


def as_file_record(term: Term) -> Optional[FileRecord]:
    """Interpret *term* as ``{file, Module}`` or ``{file, Module, Path}``."""
    if not isinstance(term, TupleTerm) or len(term) not in (2, 3):
        return None
    if term.element(0) != FILE_TAG:
        return None
    module = _atom_name(term.element(1))
    if module is None:
        return None
    return FileRecord(module, _text(term.element(2)))
