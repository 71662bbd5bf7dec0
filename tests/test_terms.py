"""Tests for the binary term decoder and encoder."""

import struct
import zlib

import pytest

from cover_annotate.errors import DecodeError
from cover_annotate.terms import (
    Atom,
    Binary,
    Float,
    Integer,
    ListTerm,
    Nil,
    SizeMarker,
    String,
    TupleTerm,
    decode_term,
    encode_record,
    encode_records,
    encode_term,
    from_python,
    iter_records,
    read_record,
    size_marker,
)


class TestDecodeTerm:
    """Tests for decoding single external-format terms."""

    def test_small_integer(self):
        assert decode_term(b"\x83a\x07") == Integer(7)

    def test_signed_integer(self):
        assert decode_term(b"\x83b" + struct.pack(">i", -1234)) == Integer(-1234)

    def test_small_big(self):
        value = 2 ** 70
        digits = value.to_bytes(9, "little")
        assert decode_term(b"\x83n\x09\x00" + digits) == Integer(value)
        assert decode_term(b"\x83n\x09\x01" + digits) == Integer(-value)

    def test_large_big(self):
        digits = (5).to_bytes(1, "little")
        assert decode_term(b"\x83o\x00\x00\x00\x01\x00" + digits) == Integer(5)

    @pytest.mark.parametrize(
        "payload",
        [
            b"d\x00\x04bump",
            b"s\x04bump",
            b"v\x00\x04bump",
            b"w\x04bump",
        ],
    )
    def test_atom_encodings(self, payload):
        assert decode_term(b"\x83" + payload) == Atom("bump")

    def test_utf8_atom(self):
        raw = "héllo".encode("utf-8")
        assert decode_term(b"\x83w" + bytes([len(raw)]) + raw) == Atom("héllo")

    def test_tuples(self):
        small = decode_term(b"\x83h\x02s\x02oka\x01")
        assert small == TupleTerm((Atom("ok"), Integer(1)))

        large = decode_term(b"\x83i\x00\x00\x00\x01a\x02")
        assert large == TupleTerm((Integer(2),))

    def test_lists(self):
        assert decode_term(b"\x83j") == Nil()

        proper = decode_term(b"\x83l\x00\x00\x00\x02a\x01a\x02j")
        assert proper == ListTerm((Integer(1), Integer(2)))
        assert proper.is_proper

        improper = decode_term(b"\x83l\x00\x00\x00\x01a\x01a\x02")
        assert improper == ListTerm((Integer(1),), Integer(2))
        assert not improper.is_proper

    def test_string_and_binary(self):
        string = decode_term(b"\x83k\x00\x0csrc/calc.erl")
        assert string == String(b"src/calc.erl")
        assert string.as_text() == "src/calc.erl"
        assert isinstance(string, String)

        binary = decode_term(b"\x83m\x00\x00\x00\x03abc")
        assert binary == Binary(b"abc")

    def test_floats(self):
        assert decode_term(b"\x83F" + struct.pack(">d", 2.5)) == Float(2.5)

        text = b"1.50000000000000000000e+00".ljust(31, b"\x00")
        assert decode_term(b"\x83c" + text) == Float(1.5)

    def test_compressed_term(self):
        inner = encode_term(("bump", "calc", 1))[1:]
        payload = b"\x83P" + struct.pack(">I", len(inner)) + zlib.compress(inner)
        assert decode_term(payload) == from_python(("bump", "calc", 1))

    def test_compressed_size_mismatch(self):
        inner = encode_term("calc")[1:]
        payload = b"\x83P" + struct.pack(">I", len(inner) + 1) + zlib.compress(inner)
        with pytest.raises(DecodeError):
            decode_term(payload)

    def test_compressed_term_larger_than_declared(self):
        inner = encode_term(Binary(b"\x00" * 1_000_000))[1:]
        payload = b"\x83P" + struct.pack(">I", 10) + zlib.compress(inner)
        with pytest.raises(DecodeError, match="declared 10 bytes"):
            decode_term(payload)

    def test_unknown_tag(self):
        with pytest.raises(DecodeError, match="unknown term tag"):
            decode_term(b"\x83\x01")

    def test_missing_version_byte(self):
        with pytest.raises(DecodeError, match="version"):
            decode_term(b"a\x01")

    def test_truncated_sub_term(self):
        with pytest.raises(DecodeError, match="truncated"):
            decode_term(b"\x83h\x03a\x01a\x02")

    def test_trailing_bytes(self):
        with pytest.raises(DecodeError, match="trailing"):
            decode_term(b"\x83a\x01\x00")

    def test_error_offset_is_absolute(self):
        with pytest.raises(DecodeError) as info:
            decode_term(b"\x83\x01", base=40)
        assert info.value.offset == 41


class TestRecords:
    """Tests for length-prefixed record framing."""

    def test_read_record_advances_cursor(self):
        first = encode_record(("file", "calc"))
        second = encode_record(42)
        buf = first + second

        term, pos = read_record(buf, 0)
        assert term == from_python(("file", "calc"))
        assert pos == len(first)

        term, pos = read_record(buf, pos)
        assert term == Integer(42)
        assert pos == len(buf)

    def test_record_truncated_before_length(self):
        record = encode_record(("file", "calc"))
        with pytest.raises(DecodeError) as info:
            read_record(record[:-2], 0)
        assert info.value.offset == 0

    def test_read_past_end(self):
        with pytest.raises(DecodeError):
            read_record(b"", 0)

    def test_size_escape(self):
        marker = encode_term(("$size", 500))
        payload = encode_term(Binary(b"x" * 494))
        assert len(payload) == 500
        trailer = encode_record(("file", "calc"))
        buf = bytes([len(marker)]) + marker + payload + trailer

        term, pos = read_record(buf, 0)
        assert term == Binary(b"x" * 494)
        assert pos == 1 + len(marker) + 500

        term, pos = read_record(buf, pos)
        assert term == from_python(("file", "calc"))
        assert pos == len(buf)

    def test_size_escape_truncated(self):
        marker = encode_term(("$size", 500))
        buf = bytes([len(marker)]) + marker + b"\x83m"
        with pytest.raises(DecodeError, match="size escape"):
            read_record(buf, 0)

    def test_encode_record_emits_size_escape(self):
        big = ("bump", "calc", "x" * 300)
        record = encode_record(big)

        first = decode_term(record[1:1 + record[0]])
        assert size_marker(first) == SizeMarker(len(encode_term(big)))
        assert list(iter_records(record)) == [from_python(big)]

    def test_iter_records_is_restartable(self):
        terms = [("file", "calc"), (("bump", "calc", "f", 0, 1, 3), 1), [1, 2], 3.25]
        buf = encode_records(terms)

        first = list(iter_records(buf))
        second = list(iter_records(buf))
        assert first == second
        assert first == [from_python(t) for t in terms]

    def test_iter_records_empty_buffer(self):
        assert list(iter_records(b"")) == []

    def test_deeply_nested_record_is_decode_error(self):
        payload = b"\x83" + b"h\x01" * 5000 + b"a\x01"
        marker = encode_term(("$size", len(payload)))
        buf = bytes([len(marker)]) + marker + payload

        with pytest.raises(DecodeError, match="nested deeper"):
            read_record(buf, 0)
        with pytest.raises(DecodeError):
            read_record(buf[:-1], 0)

    def test_nesting_within_limit_decodes(self):
        term = decode_term(b"\x83" + b"h\x01" * 50 + b"a\x01")
        for _ in range(50):
            assert isinstance(term, TupleTerm)
            term = term.element(0)
        assert term == Integer(1)


class TestTermValues:
    """Tests for term helpers."""

    def test_element_is_bounds_checked(self):
        term = from_python(("a", 1))
        assert term.element(0) == Atom("a")
        assert term.element(2) is None
        assert term.element(-1) is None

    def test_size_marker_requires_shape(self):
        assert size_marker(from_python(("$size", 10))) == SizeMarker(10)
        assert size_marker(from_python(("$size", "ten"))) is None
        assert size_marker(from_python(("size", 10))) is None
        assert size_marker(from_python(("$size", 10, 1))) is None

    def test_integer_boundaries_survive_encoding(self):
        for value in (0, 255, 256, -1, 2 ** 31 - 1, -(2 ** 31), 2 ** 31, -(2 ** 64)):
            assert decode_term(encode_term(value)) == Integer(value)

    def test_from_python_rejects_unknown_types(self):
        with pytest.raises(TypeError):
            from_python(object())

    def test_str_rendering(self):
        term = from_python((("bump", "calc", "add", 2, 1, 5), 3))
        assert str(term) == "{{bump, calc, add, 2, 1, 5}, 3}"
        assert str(Atom("$size")) == "'$size'"
        assert str(String(b"src/calc.erl")) == '"src/calc.erl"'
        assert str(from_python([1, 2])) == "[1, 2]"
