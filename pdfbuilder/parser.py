"""PDF object and cross-reference table parsing."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import ParseError, StructureError
from .filters import decode_stream
from .primitives import PDFName, PDFReference, PDFStream, PDFString
from .tokenizer import Lexer
from .xref import FreeEntry, InUseEntry, XrefEntry

logger = logging.getLogger(__name__)

_HEADER_RE = re.compile(rb"%PDF-(\d+\.\d+)")
_STARTXREF_RE = re.compile(rb"startxref\s+(\d+)")
_ENDSTREAM = b"endstream"

LengthResolver = Callable[[PDFReference], Any]


def _parse_value(lexer: Lexer):
    start = lexer.pos
    token = lexer.next_token()
    if token is None:
        raise ParseError("Unexpected end of data", start)
    if token == "<<":
        result: Dict[str, Any] = {}
        while True:
            key = lexer.next_token()
            if key == ">>":
                return result
            if not isinstance(key, PDFName):
                raise ParseError("Expected PDF name inside dictionary", lexer.pos)
            if lexer.peek_token() == ">>":
                raise ParseError(f"Dictionary key /{key.value} has no value", lexer.pos)
            result[key.value] = _parse_value(lexer)
    if token == "[":
        items: List[Any] = []
        while lexer.peek_token() != "]":
            items.append(_parse_value(lexer))
        lexer.next_token()  # consume ']'
        return items
    if isinstance(token, (PDFString, PDFName, float)):
        return token
    if isinstance(token, int):
        saved = lexer.pos
        try:
            generation = lexer.next_token()
            keyword = lexer.next_token()
        except ParseError:
            generation = keyword = None
        if isinstance(generation, int) and keyword == "R":
            try:
                return PDFReference(token, generation)
            except ValueError as exc:
                raise ParseError(str(exc), start) from exc
        lexer.pos = saved
        return token
    if token in ("true", "false"):
        return token == "true"
    if token == "null":
        return None
    raise ParseError(f"Unexpected token {token!r}", start)


def parse_value(data: bytes):
    """Parse exactly one PDF value from ``data``."""

    lexer = Lexer(data)
    value = _parse_value(lexer)
    if lexer.next_token() is not None:
        raise ParseError("Trailing data after value", lexer.pos)
    return value


def _expect_int(lexer: Lexer, what: str) -> int:
    start = lexer.pos
    token = lexer.next_token()
    if not isinstance(token, int):
        raise ParseError(f"Expected {what}, found {token!r}", start)
    return token


def _expect_keyword(lexer: Lexer, keyword: str) -> None:
    start = lexer.pos
    token = lexer.next_token()
    if token != keyword:
        raise ParseError(f"Expected {keyword!r}, found {token!r}", start)


class ObjectParser:
    """Parses objects and cross-reference data out of a complete file image.

    ``resolve_length`` is called for streams whose ``Length`` is an indirect
    reference and must return the resolved value (or ``None``).
    """

    def __init__(self, data: bytes, resolve_length: Optional[LengthResolver] = None):
        self.data = data
        self.resolve_length = resolve_length

    def read_header_version(self) -> Optional[str]:
        match = _HEADER_RE.search(self.data, 0, 1024)
        return match.group(1).decode("ascii") if match else None

    def find_startxref(self) -> int:
        tail_start = max(0, len(self.data) - 4096)
        matches = list(_STARTXREF_RE.finditer(self.data, tail_start))
        if not matches:
            matches = list(_STARTXREF_RE.finditer(self.data))
        if not matches:
            raise StructureError("startxref not found")
        offset = int(matches[-1].group(1))
        if offset >= len(self.data):
            raise StructureError(f"startxref {offset} points past end of file")
        return offset

    def parse_value_at(self, offset: int) -> Tuple[Any, int]:
        lexer = Lexer(self.data, offset)
        value = _parse_value(lexer)
        return value, lexer.pos

    def is_xref_table_at(self, offset: int) -> bool:
        return Lexer(self.data, offset).peek_token() == "xref"

    def parse_indirect_object(self, offset: int) -> Tuple[PDFReference, Any]:
        lexer = Lexer(self.data, offset)
        obj_id = _expect_int(lexer, "object number")
        generation = _expect_int(lexer, "generation number")
        _expect_keyword(lexer, "obj")
        try:
            ref = PDFReference(obj_id, generation)
        except ValueError as exc:
            raise ParseError(str(exc), offset) from exc
        value = _parse_value(lexer)
        token = lexer.next_token()
        if token == "stream":
            if not isinstance(value, dict):
                raise ParseError("Stream keyword after a non-dictionary", lexer.pos)
            data, lexer.pos = self._read_stream_payload(ref, value, lexer.pos)
            value = PDFStream(value, data, filtered=True)
            token = lexer.next_token()
        if token != "endobj":
            logger.debug("Object %d %d at %d lacks endobj", obj_id, generation, offset)
        return ref, value

    def _read_stream_payload(self, ref: PDFReference, dictionary: Dict[str, Any], pos: int) -> Tuple[bytes, int]:
        data = self.data
        if data[pos : pos + 2] == b"\r\n":
            pos += 2
        elif data[pos : pos + 1] in (b"\n", b"\r"):
            pos += 1
        length = dictionary.get("Length")
        if isinstance(length, PDFReference):
            length = self.resolve_length(length) if self.resolve_length else None
        if isinstance(length, int) and not isinstance(length, bool) and length >= 0:
            end = pos + length
            after = Lexer(data, end)
            after.skip_whitespace()
            if data.startswith(_ENDSTREAM, after.pos):
                return data[pos:end], after.pos + len(_ENDSTREAM)
        end = data.find(_ENDSTREAM, pos)
        if end == -1:
            raise ParseError(f"Stream of object {ref.obj_id} has no endstream", pos)
        logger.warning(
            "Object %d %d: stream Length %r is wrong, using endstream scan",
            ref.obj_id,
            ref.generation,
            length,
        )
        payload = data[pos:end]
        if payload.endswith(b"\r\n"):
            payload = payload[:-2]
        elif payload.endswith((b"\n", b"\r")):
            payload = payload[:-1]
        return payload, end + len(_ENDSTREAM)

    def parse_xref_table(self, offset: int) -> Tuple[Dict[int, XrefEntry], Dict[str, Any]]:
        lexer = Lexer(self.data, offset)
        _expect_keyword(lexer, "xref")
        entries: Dict[int, XrefEntry] = {}
        while True:
            token = lexer.peek_token()
            if token == "trailer":
                lexer.next_token()
                break
            first = _expect_int(lexer, "xref subsection start")
            count = _expect_int(lexer, "xref subsection count")
            for obj_id in range(first, first + count):
                field_offset = _expect_int(lexer, "xref offset")
                generation = _expect_int(lexer, "xref generation")
                kind_pos = lexer.pos
                kind = lexer.next_token()
                if kind == "n":
                    entry: XrefEntry = InUseEntry(field_offset, generation)
                elif kind == "f":
                    entry = FreeEntry(field_offset, generation)
                else:
                    raise ParseError(f"Invalid xref entry type {kind!r}", kind_pos)
                entries[obj_id] = entry
        trailer = _parse_value(lexer)
        if not isinstance(trailer, dict):
            raise ParseError("Trailer is not a dictionary", lexer.pos)
        return entries, trailer


def parse_object_stream(stream: PDFStream) -> List[Tuple[int, Any]]:
    """Return ``(object number, value)`` pairs stored in a ``/ObjStm``."""

    count = stream.dictionary.get("N")
    first = stream.dictionary.get("First")
    if not isinstance(count, int) or not isinstance(first, int):
        raise ParseError("Object stream lacks /N or /First")
    data = decode_stream(stream)
    lexer = Lexer(data)
    header = [(_expect_int(lexer, "object number"), _expect_int(lexer, "offset")) for _ in range(count)]
    objects = []
    for obj_id, relative in header:
        lexer.pos = first + relative
        objects.append((obj_id, _parse_value(lexer)))
    return objects


__all__ = ["ObjectParser", "parse_object_stream", "parse_value"]
