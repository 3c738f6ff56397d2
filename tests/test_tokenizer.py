from __future__ import annotations

import pytest

from pdfbuilder.errors import ParseError
from pdfbuilder.parser import parse_value
from pdfbuilder.primitives import PDFName, PDFReference, PDFString
from pdfbuilder.tokenizer import Lexer, tokenize


def test_tokenize_operands_and_keywords() -> None:
    tokens = tokenize(b"/Type /Page 12 -3.5 .5 (hi) <414> [ ] << >> obj % comment\nR")
    assert tokens == [
        PDFName("Type"),
        PDFName("Page"),
        12,
        -3.5,
        0.5,
        PDFString(b"hi"),
        PDFString(b"A@"),
        "[",
        "]",
        "<<",
        ">>",
        "obj",
        "R",
    ]


def test_name_hex_escapes_are_decoded() -> None:
    assert tokenize(b"/A#20B /Lime#23Green") == [PDFName("A B"), PDFName("Lime#Green")]


@pytest.mark.parametrize(
    "source, expected",
    [
        (b"(a\\(b\\)c)", b"a(b)c"),
        (b"(x(y)z)", b"x(y)z"),
        (b"(\\101\\102)", b"AB"),
        (b"(ab\\\ncd)", b"abcd"),
        (b"(tab\\there)", b"tab\there"),
        (b"(line\r\nbreak)", b"line\nbreak"),
    ],
)
def test_literal_strings(source: bytes, expected: bytes) -> None:
    assert tokenize(source) == [PDFString(expected)]


def test_unterminated_string_reports_offset() -> None:
    with pytest.raises(ParseError) as info:
        tokenize(b"  (never closed")
    assert info.value.offset == 2


def test_malformed_number_is_an_error() -> None:
    with pytest.raises(ParseError):
        tokenize(b"1.2.3")
    with pytest.raises(ParseError):
        tokenize(b"--4")


def test_hex_string_pads_odd_digit_count() -> None:
    assert tokenize(b"<4 1 4>") == [PDFString(b"A@")]
    with pytest.raises(ParseError):
        tokenize(b"<4G>")


def test_peek_does_not_consume() -> None:
    lexer = Lexer(b"1 2 R")
    assert lexer.peek_token() == 1
    assert lexer.next_token() == 1
    assert list(lexer) == [2, "R"]
    assert lexer.next_token() is None


def test_parse_value_containers_and_references() -> None:
    value = parse_value(b"<< /Kids [1 0 R 2 0 R] /Count 2 /Flag true /Nothing null /Nums [1 2] >>")
    assert value == {
        "Kids": [PDFReference(1, 0), PDFReference(2, 0)],
        "Count": 2,
        "Flag": True,
        "Nothing": None,
        "Nums": [1, 2],
    }


def test_parse_value_rejects_trailing_data() -> None:
    with pytest.raises(ParseError):
        parse_value(b"1 2")
    with pytest.raises(ParseError):
        parse_value(b"<< /Key >>")
    with pytest.raises(ParseError):
        parse_value(b"[1 2")
