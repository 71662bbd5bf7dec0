"""Decoder and encoder for length-prefixed binary term records.

A coverage export is a flat sequence of records::

    <n:8> <n bytes of external term format>
    <n:8> <n bytes of external term format>
    ...

Each payload starts with the version byte ``131`` followed by one tagged
term (atoms, integers, tuples, lists, strings, binaries, floats).  A term
whose encoding does not fit in a single length byte is written as two
records: first the marker term ``{'$size', M}``, then ``M`` raw payload
bytes *without* a length prefix.

The decoder never trusts a length field: every read is bounds-checked and
reports a :class:`~cover_annotate.errors.DecodeError` with the absolute byte
offset of the failure.
"""

from __future__ import annotations

import logging
import struct
import zlib
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Optional, Tuple, Union

from .errors import DecodeError

logger = logging.getLogger(__name__)

VERSION = 131

NEW_FLOAT_EXT = 70
COMPRESSED = 80
SMALL_INTEGER_EXT = 97
INTEGER_EXT = 98
FLOAT_EXT = 99
ATOM_EXT = 100
SMALL_TUPLE_EXT = 104
LARGE_TUPLE_EXT = 105
NIL_EXT = 106
STRING_EXT = 107
LIST_EXT = 108
BINARY_EXT = 109
SMALL_BIG_EXT = 110
LARGE_BIG_EXT = 111
SMALL_ATOM_EXT = 115
ATOM_UTF8_EXT = 118
SMALL_ATOM_UTF8_EXT = 119

MAX_RECORD_LEN = 0xFF
MAX_DEPTH = 200
SIZE_TAG = "$size"

_INT32_MIN = -(2 ** 31)
_INT32_MAX = 2 ** 31 - 1


# ===================================================================
# Term variants
# ===================================================================

@dataclass(frozen=True)
class Atom:
    name: str

    def __str__(self) -> str:
        if self.name and self.name[0].islower() and all(c.isalnum() or c in "_@" for c in self.name):
            return self.name
        return "'" + self.name.replace("\\", "\\\\").replace("'", "\\'") + "'"


@dataclass(frozen=True)
class Integer:
    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Float:
    value: float

    def __str__(self) -> str:
        return repr(self.value)


@dataclass(frozen=True)
class Binary:
    data: bytes

    def __str__(self) -> str:
        return "<<" + ",".join(str(b) for b in self.data) + ">>"


@dataclass(frozen=True)
class String:
    """Compact encoding of a list of small integers, usually a charlist."""

    data: bytes

    def as_text(self) -> str:
        return self.data.decode("latin-1")

    def __str__(self) -> str:
        return '"' + self.as_text().replace("\\", "\\\\").replace('"', '\\"') + '"'


@dataclass(frozen=True)
class Nil:
    def __str__(self) -> str:
        return "[]"


@dataclass(frozen=True)
class TupleTerm:
    elements: Tuple["Term", ...] = ()

    def __len__(self) -> int:
        return len(self.elements)

    def __iter__(self) -> Iterator["Term"]:
        return iter(self.elements)

    def element(self, index: int) -> Optional["Term"]:
        """Return the element at 0-based *index*, or ``None`` when out of range."""
        if 0 <= index < len(self.elements):
            return self.elements[index]
        return None

    def __str__(self) -> str:
        return "{" + ", ".join(str(e) for e in self.elements) + "}"


@dataclass(frozen=True)
class ListTerm:
    elements: Tuple["Term", ...] = ()
    tail: "Term" = Nil()

    @property
    def is_proper(self) -> bool:
        return isinstance(self.tail, Nil)

    def __len__(self) -> int:
        return len(self.elements)

    def __iter__(self) -> Iterator["Term"]:
        return iter(self.elements)

    def element(self, index: int) -> Optional["Term"]:
        if 0 <= index < len(self.elements):
            return self.elements[index]
        return None

    def __str__(self) -> str:
        body = ", ".join(str(e) for e in self.elements)
        if self.is_proper:
            return f"[{body}]"
        return f"[{body} | {self.tail}]"


@dataclass(frozen=True)
class SizeMarker:
    """The ``{'$size', M}`` escape announcing an oversized record."""

    size: int

    def as_term(self) -> TupleTerm:
        return TupleTerm((Atom(SIZE_TAG), Integer(self.size)))


Term = Union[Atom, Integer, Float, Binary, String, Nil, TupleTerm, ListTerm]


def size_marker(term: Term) -> Optional[SizeMarker]:
    """Interpret *term* as a ``$size`` escape, if it is one."""
    if not isinstance(term, TupleTerm) or len(term) != 2:
        return None
    tag, size = term.elements
    if tag == Atom(SIZE_TAG) and isinstance(size, Integer) and size.value >= 0:
        return SizeMarker(size.value)
    return None


def from_python(value: Any) -> Term:
    """Convert plain Python values into terms.

    ``str`` becomes an atom, ``bytes`` a binary, ``tuple`` a tuple and
    ``list`` a proper list.  Values that already are terms pass through.
    """
    if isinstance(value, (Atom, Integer, Float, Binary, String, Nil, TupleTerm, ListTerm)):
        return value
    if isinstance(value, SizeMarker):
        return value.as_term()
    if isinstance(value, bool):
        return Atom("true" if value else "false")
    if isinstance(value, int):
        return Integer(value)
    if isinstance(value, float):
        return Float(value)
    if isinstance(value, str):
        return Atom(value)
    if isinstance(value, (bytes, bytearray)):
        return Binary(bytes(value))
    if isinstance(value, tuple):
        return TupleTerm(tuple(from_python(v) for v in value))
    if isinstance(value, list):
        if not value:
            return Nil()
        return ListTerm(tuple(from_python(v) for v in value))
    raise TypeError(f"Cannot convert {type(value).__name__} to a term")


# ===================================================================
# Decoding
# ===================================================================

class _Reader:
    """Bounds-checked cursor over one term payload."""

    def __init__(self, data: bytes, base: int = 0) -> None:
        self.data = data
        self.pos = 0
        self.base = base
        self.depth = 0

    def take(self, count: int) -> bytes:
        end = self.pos + count
        if end > len(self.data):
            raise DecodeError(
                f"truncated term: need {count} byte(s), {len(self.data) - self.pos} left",
                self.base + self.pos,
            )
        chunk = self.data[self.pos:end]
        self.pos = end
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u16(self) -> int:
        return struct.unpack(">H", self.take(2))[0]

    def u32(self) -> int:
        return struct.unpack(">I", self.take(4))[0]

    def i32(self) -> int:
        return struct.unpack(">i", self.take(4))[0]

    def term(self) -> Term:
        if self.depth >= MAX_DEPTH:
            raise DecodeError(f"term nested deeper than {MAX_DEPTH} levels", self.base + self.pos)
        self.depth += 1
        try:
            return self._tagged()
        finally:
            self.depth -= 1

    def _tagged(self) -> Term:
        start = self.pos
        tag = self.u8()

        if tag == SMALL_INTEGER_EXT:
            return Integer(self.u8())
        if tag == INTEGER_EXT:
            return Integer(self.i32())
        if tag in (SMALL_BIG_EXT, LARGE_BIG_EXT):
            n = self.u8() if tag == SMALL_BIG_EXT else self.u32()
            sign = self.u8()
            value = int.from_bytes(self.take(n), "little")
            return Integer(-value if sign else value)
        if tag in (ATOM_EXT, SMALL_ATOM_EXT):
            n = self.u16() if tag == ATOM_EXT else self.u8()
            return Atom(self.take(n).decode("latin-1"))
        if tag in (ATOM_UTF8_EXT, SMALL_ATOM_UTF8_EXT):
            n = self.u16() if tag == ATOM_UTF8_EXT else self.u8()
            raw = self.take(n)
            try:
                return Atom(raw.decode("utf-8"))
            except UnicodeDecodeError as exc:
                raise DecodeError(f"invalid UTF-8 atom: {exc}", self.base + start) from exc
        if tag in (SMALL_TUPLE_EXT, LARGE_TUPLE_EXT):
            arity = self.u8() if tag == SMALL_TUPLE_EXT else self.u32()
            return TupleTerm(tuple(self.term() for _ in range(arity)))
        if tag == NIL_EXT:
            return Nil()
        if tag == STRING_EXT:
            return String(self.take(self.u16()))
        if tag == LIST_EXT:
            length = self.u32()
            elements = tuple(self.term() for _ in range(length))
            tail = self.term()
            if not elements and isinstance(tail, Nil):
                return tail
            return ListTerm(elements, tail)
        if tag == BINARY_EXT:
            return Binary(self.take(self.u32()))
        if tag == NEW_FLOAT_EXT:
            return Float(struct.unpack(">d", self.take(8))[0])
        if tag == FLOAT_EXT:
            text = self.take(31).split(b"\x00", 1)[0]
            try:
                return Float(float(text.decode("ascii")))
            except (UnicodeDecodeError, ValueError) as exc:
                raise DecodeError(f"invalid float text {text!r}", self.base + start) from exc

        raise DecodeError(f"unknown term tag {tag}", self.base + start)


def _inflate(reader: _Reader) -> bytes:
    size = reader.u32()
    start = reader.pos
    inflater = zlib.decompressobj()
    try:
        payload = inflater.decompress(reader.take(len(reader.data) - reader.pos), size + 1)
    except zlib.error as exc:
        raise DecodeError(f"bad compressed term: {exc}", reader.base + start) from exc
    if len(payload) > size:
        raise DecodeError(f"compressed term inflates past its declared {size} bytes", reader.base + start)
    if len(payload) != size or not inflater.eof:
        raise DecodeError(
            f"compressed term inflated to {len(payload)} bytes, expected {size}",
            reader.base + start,
        )
    return payload


def decode_term(data: bytes, base: int = 0) -> Term:
    """Decode one complete external-format term from *data*.

    *base* is the absolute offset of *data* inside a larger buffer and is
    only used to make error offsets meaningful.
    """
    reader = _Reader(bytes(data), base)
    version = reader.u8()
    if version != VERSION:
        raise DecodeError(f"bad version byte {version}, expected {VERSION}", base)
    if reader.data[reader.pos:reader.pos + 1] == bytes([COMPRESSED]):
        reader.pos += 1
        reader = _Reader(_inflate(reader), base)
    term = reader.term()
    if reader.pos != len(reader.data):
        raise DecodeError(
            f"{len(reader.data) - reader.pos} trailing byte(s) after term",
            base + reader.pos,
        )
    return term


def read_record(buf: bytes, pos: int) -> Tuple[Term, int]:
    """Decode the record starting at *pos* and return ``(term, next_pos)``.

    A ``{'$size', M}`` record is an indirection: the real term is the ``M``
    bytes that follow it, and the returned cursor points past them.
    """
    if pos >= len(buf):
        raise DecodeError("no record at end of buffer", pos)
    length = buf[pos]
    start = pos + 1
    end = start + length
    if end > len(buf):
        raise DecodeError(
            f"record declares {length} byte(s) but only {len(buf) - start} remain", pos
        )
    term = decode_term(buf[start:end], start)

    marker = size_marker(term)
    if marker is None:
        return term, end

    logger.debug("Size escape at byte %d: %d byte record follows", pos, marker.size)
    real_end = end + marker.size
    if real_end > len(buf):
        raise DecodeError(
            f"size escape declares {marker.size} byte(s) but only {len(buf) - end} remain",
            end,
        )
    return decode_term(buf[end:real_end], end), real_end


def iter_records(buf: bytes) -> Iterator[Term]:
    """Yield every record of *buf*, starting from offset 0."""
    pos = 0
    while pos < len(buf):
        term, pos = read_record(buf, pos)
        yield term


# ===================================================================
# Encoding
# ===================================================================

def _encode_atom(name: str, out: bytearray) -> None:
    raw = name.encode("utf-8")
    if len(raw) <= 0xFF:
        out += struct.pack(">BB", SMALL_ATOM_UTF8_EXT, len(raw))
    else:
        out += struct.pack(">BH", ATOM_UTF8_EXT, len(raw))
    out += raw


def _encode_integer(value: int, out: bytearray) -> None:
    if 0 <= value <= 0xFF:
        out += struct.pack(">BB", SMALL_INTEGER_EXT, value)
    elif _INT32_MIN <= value <= _INT32_MAX:
        out += struct.pack(">Bi", INTEGER_EXT, value)
    else:
        magnitude = abs(value)
        digits = magnitude.to_bytes((magnitude.bit_length() + 7) // 8, "little")
        if len(digits) <= 0xFF:
            out += struct.pack(">BB", SMALL_BIG_EXT, len(digits))
        else:
            out += struct.pack(">BI", LARGE_BIG_EXT, len(digits))
        out.append(1 if value < 0 else 0)
        out += digits


def _encode(term: Term, out: bytearray) -> None:
    if isinstance(term, Atom):
        _encode_atom(term.name, out)
    elif isinstance(term, Integer):
        _encode_integer(term.value, out)
    elif isinstance(term, Float):
        out += struct.pack(">Bd", NEW_FLOAT_EXT, term.value)
    elif isinstance(term, Binary):
        out += struct.pack(">BI", BINARY_EXT, len(term.data))
        out += term.data
    elif isinstance(term, String):
        if len(term.data) > 0xFFFF:
            _encode(ListTerm(tuple(Integer(b) for b in term.data)), out)
        else:
            out += struct.pack(">BH", STRING_EXT, len(term.data))
            out += term.data
    elif isinstance(term, Nil):
        out.append(NIL_EXT)
    elif isinstance(term, TupleTerm):
        if len(term) <= 0xFF:
            out += struct.pack(">BB", SMALL_TUPLE_EXT, len(term))
        else:
            out += struct.pack(">BI", LARGE_TUPLE_EXT, len(term))
        for element in term:
            _encode(element, out)
    elif isinstance(term, ListTerm):
        if not term.elements:
            _encode(term.tail, out)
            return
        out += struct.pack(">BI", LIST_EXT, len(term))
        for element in term:
            _encode(element, out)
        _encode(term.tail, out)
    else:
        raise TypeError(f"Cannot encode {type(term).__name__}")


def encode_term(term: Any) -> bytes:
    """Encode *term* (or a plain Python value) as an external-format payload."""
    out = bytearray([VERSION])
    _encode(from_python(term), out)
    return bytes(out)


def encode_record(term: Any) -> bytes:
    """Encode *term* as one record, emitting a size escape when it is too long."""
    payload = encode_term(term)
    if len(payload) <= MAX_RECORD_LEN:
        return bytes([len(payload)]) + payload
    marker = encode_term(SizeMarker(len(payload)))
    return bytes([len(marker)]) + marker + payload


def encode_records(terms: Iterable[Any]) -> bytes:
    return b"".join(encode_record(t) for t in terms)
