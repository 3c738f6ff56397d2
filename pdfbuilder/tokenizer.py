"""Position-aware PDF lexer.

Tokens are plain Python values: :class:`PDFName`, :class:`PDFString`,
``int`` and ``float`` for operands, and ``str`` for keywords and delimiters
(``obj``, ``R``, ``<<``, ``]`` ...).
"""

from __future__ import annotations

import re
from typing import Iterator, List, Tuple, Union

from .errors import ParseError
from .primitives import PDFName, PDFString

WHITESPACE = b"\x00\t\n\r\f "
DELIMITERS = b"()<>[]{}/%"

_NUMBER_RE = re.compile(rb"^[+-]?(?:\d+\.?\d*|\.\d+)$")
_HEX_DIGITS = frozenset(b"0123456789abcdefABCDEF")
_ESCAPES = {
    ord("n"): b"\n",
    ord("r"): b"\r",
    ord("t"): b"\t",
    ord("b"): b"\b",
    ord("f"): b"\f",
    ord("("): b"(",
    ord(")"): b")",
    ord("\\"): b"\\",
}

Token = Union[str, int, float, PDFName, PDFString]


def _is_regular(byte: int) -> bool:
    return byte not in WHITESPACE and byte not in DELIMITERS


def _parse_name(data: bytes, index: int) -> Tuple[PDFName, int]:
    index += 1  # skip '/'
    raw = bytearray()
    length = len(data)
    while index < length and _is_regular(data[index]):
        byte = data[index]
        if byte == 0x23:  # '#xx' escape
            pair = data[index + 1 : index + 3]
            if len(pair) == 2 and all(c in _HEX_DIGITS for c in pair):
                raw.append(int(pair, 16))
                index += 3
                continue
        raw.append(byte)
        index += 1
    return PDFName(raw.decode("latin-1")), index


def _parse_number_or_keyword(data: bytes, index: int) -> Tuple[Token, int]:
    start = index
    while index < len(data) and _is_regular(data[index]):
        index += 1
    token = data[start:index]
    first = token[:1]
    if first.isdigit() or first in (b"+", b"-", b"."):
        if not _NUMBER_RE.match(token):
            raise ParseError(f"Malformed number {token!r}", start)
        if b"." in token:
            return float(token), index
        return int(token), index
    return token.decode("latin-1"), index


def _parse_literal_string(data: bytes, index: int) -> Tuple[PDFString, int]:
    start = index
    index += 1  # skip opening '('
    depth = 1
    result = bytearray()
    length = len(data)
    while index < length:
        byte = data[index]
        if byte == 0x5C:  # backslash
            index += 1
            if index >= length:
                break
            byte = data[index]
            if byte in _ESCAPES:
                result += _ESCAPES[byte]
                index += 1
            elif 0x30 <= byte <= 0x37:
                digits = bytearray()
                while index < length and len(digits) < 3 and 0x30 <= data[index] <= 0x37:
                    digits.append(data[index])
                    index += 1
                result.append(int(digits, 8) & 0xFF)
            elif byte == 0x0D:
                index += 1
                if index < length and data[index] == 0x0A:
                    index += 1
            elif byte == 0x0A:
                index += 1
            else:
                # unknown escape: the backslash is ignored
                result.append(byte)
                index += 1
            continue
        if byte == 0x28:
            depth += 1
        elif byte == 0x29:
            depth -= 1
            if depth == 0:
                return PDFString.from_raw(bytes(result)), index + 1
        elif byte == 0x0D:
            # end-of-line markers inside strings read as a single newline
            result.append(0x0A)
            index += 1
            if index < length and data[index] == 0x0A:
                index += 1
            continue
        result.append(byte)
        index += 1
    raise ParseError("Unterminated literal string", start)


def _parse_hex_string(data: bytes, index: int) -> Tuple[PDFString, int]:
    end = data.find(b">", index + 1)
    if end == -1:
        raise ParseError("Unterminated hex string", index)
    hex_data = bytes(byte for byte in data[index + 1 : end] if byte not in WHITESPACE)
    if any(byte not in _HEX_DIGITS for byte in hex_data):
        raise ParseError("Invalid character in hex string", index)
    if len(hex_data) % 2:
        hex_data += b"0"
    return PDFString.from_raw(bytes.fromhex(hex_data.decode("ascii"))), end + 1


class Lexer:
    """Reads tokens from ``data`` starting at ``pos``.

    ``pos`` is public so the parser can save and restore it for lookahead
    and jump to stream payloads and cross-reference offsets.
    """

    def __init__(self, data: bytes, pos: int = 0):
        self.data = data
        self.pos = pos

    def skip_whitespace(self) -> None:
        data = self.data
        length = len(data)
        while self.pos < length:
            byte = data[self.pos]
            if byte in WHITESPACE:
                self.pos += 1
            elif byte == 0x25:  # '%' comment runs to end of line
                while self.pos < length and data[self.pos] not in (0x0A, 0x0D):
                    self.pos += 1
            else:
                break

    def next_token(self) -> Token | None:
        """Return the next token, or ``None`` at end of data."""

        self.skip_whitespace()
        data = self.data
        index = self.pos
        if index >= len(data):
            return None
        byte = data[index]
        if byte == 0x2F:
            token, self.pos = _parse_name(data, index)
        elif byte == 0x28:
            token, self.pos = _parse_literal_string(data, index)
        elif byte == 0x3C:
            if data[index + 1 : index + 2] == b"<":
                token, self.pos = "<<", index + 2
            else:
                token, self.pos = _parse_hex_string(data, index)
        elif byte == 0x3E:
            if data[index + 1 : index + 2] != b">":
                raise ParseError("Unexpected '>'", index)
            token, self.pos = ">>", index + 2
        elif byte in b"[]{}":
            token, self.pos = chr(byte), index + 1
        elif byte == 0x29:
            raise ParseError("Unbalanced ')'", index)
        else:
            token, self.pos = _parse_number_or_keyword(data, index)
        return token

    def peek_token(self) -> Token | None:
        saved = self.pos
        try:
            return self.next_token()
        finally:
            self.pos = saved

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self.next_token()
            if token is None:
                return
            yield token


def tokenize(data: bytes) -> List[Token]:
    return list(Lexer(data))


__all__ = ["DELIMITERS", "Lexer", "Token", "WHITESPACE", "tokenize"]
