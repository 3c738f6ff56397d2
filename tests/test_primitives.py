from __future__ import annotations

import pytest

from pdfbuilder.primitives import (
    PDFName,
    PDFReference,
    PDFString,
    StringEncoding,
    decode_parms_of,
    filters_of,
)


def test_reference_rejects_out_of_range_numbers() -> None:
    assert PDFReference(12).generation == 0
    with pytest.raises(ValueError):
        PDFReference(-1, 0)
    with pytest.raises(ValueError):
        PDFReference(1, 65536)
    with pytest.raises(ValueError):
        PDFReference(2**32, 0)


def test_references_compare_by_number_and_generation() -> None:
    assert PDFReference(3, 0) == PDFReference(3, 0)
    assert PDFReference(3, 0) != PDFReference(3, 1)
    assert len({PDFReference(3, 0), PDFReference(3, 0)}) == 1


def test_string_from_text_picks_encoding() -> None:
    latin = PDFString.from_text("Grüße")
    assert latin.encoding is StringEncoding.BYTES
    assert latin.text == "Grüße"

    wide = PDFString.from_text("Snowman ☃")
    assert wide.encoding is StringEncoding.UTF16
    assert wide.to_raw().startswith(b"\xfe\xff")
    assert wide.text == "Snowman ☃"


def test_string_from_raw_strips_byte_order_mark() -> None:
    string = PDFString.from_raw(b"\xfe\xff\x00A")
    assert string == PDFString(b"\x00A", StringEncoding.UTF16)
    assert string.text == "A"


def test_filters_of_accepts_name_or_array() -> None:
    assert filters_of({}) == []
    assert filters_of({"Filter": PDFName("FlateDecode")}) == ["FlateDecode"]
    assert filters_of({"Filter": [PDFName("ASCIIHexDecode"), PDFName("FlateDecode")]}) == [
        "ASCIIHexDecode",
        "FlateDecode",
    ]


def test_decode_parms_line_up_with_filters() -> None:
    parms = {"Predictor": 12}
    single = {"Filter": PDFName("FlateDecode"), "DecodeParms": parms}
    assert decode_parms_of(single) == [parms]

    chain = {"Filter": [PDFName("ASCIIHexDecode"), PDFName("FlateDecode")], "DecodeParms": [None, parms]}
    assert decode_parms_of(chain) == [None, parms]

    missing = {"Filter": [PDFName("ASCIIHexDecode"), PDFName("FlateDecode")]}
    assert decode_parms_of(missing) == [None, None]
