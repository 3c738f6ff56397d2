from __future__ import annotations

import math
import zlib

import pytest

from pdfbuilder.filters import Compression
from pdfbuilder.parser import parse_value
from pdfbuilder.primitives import PDFName, PDFReference, PDFStream, PDFString, StringEncoding
from pdfbuilder.serializer import format_number, prepare_stream, serialize, serialize_indirect


@pytest.mark.parametrize(
    "value, expected",
    [
        (0, "0"),
        (-0.0, "0"),
        (42, "42"),
        (3.0, "3"),
        (1.5, "1.5"),
        (0.25, ".25"),
        (-0.5, "-.5"),
        (1e-7, ".0000001"),
        (1e20, "100000000000000000000"),
    ],
)
def test_format_number(value, expected) -> None:
    assert format_number(value) == expected


def test_format_number_rejects_non_finite_and_booleans() -> None:
    with pytest.raises(ValueError):
        format_number(math.nan)
    with pytest.raises(ValueError):
        format_number(math.inf)
    with pytest.raises(TypeError):
        format_number(True)


def test_serialize_scalars() -> None:
    assert serialize(None) == b"null"
    assert serialize(False) == b"false"
    assert serialize(PDFName("A B")) == b"/A#20B"
    assert serialize(PDFReference(7, 2)) == b"7 2 R"
    assert serialize(PDFString(b"a(b)")) == b"(a\\(b\\))"
    assert serialize(PDFString(b"\x00\x01")) == b"<0001>"
    assert serialize(PDFString.from_text("€")) == b"<FEFF20AC>"


def test_serialize_containers() -> None:
    assert serialize([1, PDFName("X"), [2.5]]) == b"[1 /X [2.5]]"
    assert serialize({"Type": PDFName("Catalog")}) == b"<</Type /Catalog\n>>"
    assert serialize({}) == b"<<>>"


def test_serialize_refuses_direct_streams() -> None:
    with pytest.raises(TypeError):
        serialize([PDFStream({}, b"data")])
    with pytest.raises(TypeError):
        serialize(object())


@pytest.mark.parametrize(
    "value",
    [
        None,
        True,
        -17,
        0.125,
        PDFName("Name With Spaces"),
        PDFString(b"line\nbreak (and parens) \\ slash"),
        PDFString(b"\x00\xff binary"),
        PDFString.from_text("Ünïcødé ☃"),
        PDFReference(12, 3),
        [1, [2, [3]], {"Deep": [PDFName("X")]}],
        {"Kids": [PDFReference(1, 0)], "Empty": {}, "Null": None},
    ],
)
def test_parse_reads_back_what_serialize_writes(value) -> None:
    assert parse_value(serialize(value)) == value


def test_indirect_stream_uncompressed() -> None:
    stream = PDFStream({}, b"hello")
    assert serialize_indirect(PDFReference(1, 0), stream, Compression.NONE) == (
        b"1 0 obj\n<</Length 5\n>>\nstream\nhello\nendstream\nendobj\n"
    )
    assert "Length" not in stream.dictionary


def test_indirect_stream_is_compressed_with_exact_length() -> None:
    dictionary, data = prepare_stream(PDFStream({}, b"hello" * 50), Compression.FLATE)
    assert dictionary["Filter"] == PDFName("FlateDecode")
    assert dictionary["Length"] == len(data)
    assert zlib.decompress(data) == b"hello" * 50


def test_prefiltered_stream_is_written_verbatim() -> None:
    payload = zlib.compress(b"already")
    stream = PDFStream({"Filter": PDFName("FlateDecode"), "Length": 999}, payload, filtered=True)
    dictionary, data = prepare_stream(stream, Compression.FLATE)
    assert data == payload
    assert dictionary["Length"] == len(payload)


def test_named_filter_is_applied_to_raw_payload() -> None:
    stream = PDFStream({"Filter": PDFName("ASCIIHexDecode")}, b"AB")
    _, data = prepare_stream(stream, Compression.NONE)
    assert data == b"4142>"


def test_empty_stream_stays_uncompressed() -> None:
    dictionary, data = prepare_stream(PDFStream({}, b""), Compression.FLATE)
    assert data == b""
    assert "Filter" not in dictionary


def test_string_with_byte_order_mark_round_trips() -> None:
    marked = PDFString(b"\xfe\xffAB")
    assert parse_value(serialize(marked)) == marked
    assert marked == PDFString(b"AB", StringEncoding.UTF16)
    assert len({marked, PDFString(b"AB", StringEncoding.UTF16)}) == 1
    assert PDFString(b"AB") != PDFString(b"AB", StringEncoding.UTF16)
