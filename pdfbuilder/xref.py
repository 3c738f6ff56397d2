"""Cross-reference entries, sections and revision chains."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Tuple, Union

from .errors import ParseError, StructureError, UnsupportedFilter
from .filters import decode_stream
from .primitives import PDFName, PDFStream

if TYPE_CHECKING:  # pragma: no cover
    from .parser import ObjectParser

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InUseEntry:
    offset: int
    generation: int = 0


@dataclass(frozen=True)
class FreeEntry:
    next_free: int = 0
    generation: int = 65535


@dataclass(frozen=True)
class CompressedEntry:
    """Object stored at ``index`` inside object stream ``stream_obj_id``."""

    stream_obj_id: int
    index: int


XrefEntry = Union[InUseEntry, FreeEntry, CompressedEntry]


@dataclass
class XrefSection:
    """One cross-reference section.

    ``hybrid`` marks the xref stream named by a classic trailer's
    ``XRefStm``; it belongs to the section just before it in the chain.
    """

    entries: Dict[int, XrefEntry]
    trailer: Dict[str, Any]
    offset: int
    hybrid: bool = False


@dataclass
class XrefChain:
    """All cross-reference sections of a file, newest first."""

    sections: List[XrefSection] = field(default_factory=list)

    @property
    def trailer(self) -> Dict[str, Any]:
        return self.sections[0].trailer

    @property
    def startxref(self) -> int:
        return self.sections[0].offset

    def merged(self) -> Dict[int, XrefEntry]:
        """Effective entry per object number; newer sections win."""

        result: Dict[int, XrefEntry] = {}
        for index in range(len(self.sections) - 1, -1, -1):
            section = self.sections[index]
            if section.hybrid:
                continue
            entries = dict(section.entries)
            following = self.sections[index + 1] if index + 1 < len(self.sections) else None
            if following is not None and following.hybrid:
                # the table marks objects it leaves to the stream as free
                for obj_id, entry in following.entries.items():
                    if not isinstance(entry, FreeEntry) and isinstance(entries.get(obj_id, FreeEntry()), FreeEntry):
                        entries[obj_id] = entry
            result.update(entries)
        return result


def _read_int(data: bytes) -> int:
    return int.from_bytes(data, "big") if data else 0


def _xref_widths(value: Any) -> Tuple[int, int, int]:
    if (
        not isinstance(value, list)
        or len(value) != 3
        or any(not isinstance(item, int) or isinstance(item, bool) or not 0 <= item <= 10 for item in value)
        or value[1] < 1
    ):
        raise StructureError(f"Bad /W array in xref stream: {value!r}")
    return value[0], value[1], value[2]


def parse_xref_stream(stream: PDFStream) -> Dict[int, XrefEntry]:
    """Read the entries of a ``/Type /XRef`` stream."""

    dictionary = stream.dictionary
    if dictionary.get("Type") != PDFName("XRef"):
        raise StructureError("Expected /Type /XRef for xref stream")
    w0, w1, w2 = _xref_widths(dictionary.get("W"))
    size = dictionary.get("Size")
    index = dictionary.get("Index")
    if index is None:
        if not isinstance(size, int) or size < 0:
            raise StructureError("Bad or missing /Size in xref stream")
        index = [0, size]
    if (
        not isinstance(index, list)
        or len(index) % 2
        or any(not isinstance(item, int) or item < 0 for item in index)
    ):
        raise StructureError(f"Bad /Index array in xref stream: {index!r}")
    try:
        data = decode_stream(stream)
    except (ParseError, UnsupportedFilter) as exc:
        raise StructureError(f"Cannot decode xref stream: {exc}") from exc

    width = w0 + w1 + w2
    expected = sum(index[1::2])
    if len(data) < expected * width:
        raise StructureError(
            f"Xref stream holds {len(data)} bytes, /Index needs {expected * width}"
        )
    entries: Dict[int, XrefEntry] = {}
    pos = 0
    for first, count in zip(index[0::2], index[1::2]):
        for obj_id in range(first, first + count):
            row = data[pos : pos + width]
            pos += width
            kind = _read_int(row[:w0]) if w0 else 1
            field1 = _read_int(row[w0 : w0 + w1])
            field2 = _read_int(row[w0 + w1 :])
            if kind == 0:
                entries[obj_id] = FreeEntry(field1, field2)
            elif kind == 1:
                entries[obj_id] = InUseEntry(field1, field2)
            elif kind == 2:
                entries[obj_id] = CompressedEntry(field1, field2)
            else:
                # unknown entry types are to be read as null references
                logger.debug("Ignoring xref stream entry type %d for object %d", kind, obj_id)
    return entries


def _read_section(parser: "ObjectParser", offset: int) -> XrefSection:
    try:
        if parser.is_xref_table_at(offset):
            entries, trailer = parser.parse_xref_table(offset)
            return XrefSection(entries, trailer, offset)
        _, value = parser.parse_indirect_object(offset)
    except ParseError as exc:
        raise StructureError(f"Corrupt cross-reference section at {offset}: {exc}") from exc
    if not isinstance(value, PDFStream):
        raise StructureError(f"No cross-reference section at offset {offset}")
    return XrefSection(parse_xref_stream(value), value.dictionary, offset)


def read_xref_chain(parser: "ObjectParser", startxref: int) -> XrefChain:
    """Follow ``Prev`` (and hybrid ``XRefStm``) links from ``startxref``."""

    chain = XrefChain()
    seen = set()
    offset: Any = startxref
    while isinstance(offset, int) and not isinstance(offset, bool):
        if offset in seen:
            raise StructureError(f"Loop in cross-reference chain at offset {offset}")
        seen.add(offset)
        section = _read_section(parser, offset)
        chain.sections.append(section)
        hybrid = section.trailer.get("XRefStm")
        if isinstance(hybrid, int) and hybrid not in seen:
            seen.add(hybrid)
            stream_section = _read_section(parser, hybrid)
            stream_section.hybrid = True
            chain.sections.append(stream_section)
        offset = section.trailer.get("Prev")
    logger.debug("Read %d cross-reference section(s)", len(chain.sections))
    return chain


def format_xref_table(entries: Dict[int, XrefEntry]) -> bytes:
    """Classic ``xref`` table; contiguous object numbers share a subsection."""

    lines = [b"xref\n"]
    numbers = sorted(entries)
    start = 0
    while start < len(numbers):
        end = start
        while end + 1 < len(numbers) and numbers[end + 1] == numbers[end] + 1:
            end += 1
        lines.append(f"{numbers[start]} {end - start + 1}\n".encode("ascii"))
        for obj_id in numbers[start : end + 1]:
            entry = entries[obj_id]
            if isinstance(entry, InUseEntry):
                lines.append(f"{entry.offset:010d} {entry.generation:05d} n \n".encode("ascii"))
            elif isinstance(entry, FreeEntry):
                lines.append(f"{entry.next_free:010d} {entry.generation:05d} f \n".encode("ascii"))
            else:
                raise TypeError(f"Cannot write {entry!r} into a classic xref table")
        start = end + 1
    return b"".join(lines)


def _width(value: int) -> int:
    return max(1, (value.bit_length() + 7) // 8)


def _entry_fields(entry: XrefEntry) -> Tuple[int, int, int]:
    if isinstance(entry, InUseEntry):
        return 1, entry.offset, entry.generation
    if isinstance(entry, CompressedEntry):
        return 2, entry.stream_obj_id, entry.index
    return 0, entry.next_free, entry.generation


def build_xref_stream(entries: Dict[int, XrefEntry], trailer: Dict[str, Any]) -> PDFStream:
    """An unfiltered ``/Type /XRef`` stream holding ``entries``.

    ``trailer`` supplies the other dictionary entries (``Size``, ``Root``,
    ``Prev`` ...).  Field widths are the smallest that fit the values.
    """

    rows = [_entry_fields(entries[obj_id]) for obj_id in sorted(entries)]
    w1 = _width(max((row[1] for row in rows), default=0))
    w2 = _width(max((row[2] for row in rows), default=0))

    index: List[int] = []
    numbers = sorted(entries)
    for obj_id in numbers:
        if index and index[-2] + index[-1] == obj_id:
            index[-1] += 1
        else:
            index.extend([obj_id, 1])

    data = b"".join(
        kind.to_bytes(1, "big") + field1.to_bytes(w1, "big") + field2.to_bytes(w2, "big")
        for kind, field1, field2 in rows
    )
    dictionary = dict(trailer)
    dictionary.update({"Type": PDFName("XRef"), "W": [1, w1, w2], "Index": index})
    return PDFStream(dictionary, data)


__all__ = [
    "CompressedEntry",
    "FreeEntry",
    "InUseEntry",
    "XrefChain",
    "XrefEntry",
    "XrefSection",
    "build_xref_stream",
    "format_xref_table",
    "parse_xref_stream",
    "read_xref_chain",
]
