"""Full and incremental PDF writers."""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING, Any, Dict, List

from .errors import InvalidStateError
from .primitives import PDFReference
from .serializer import serialize, serialize_indirect
from .xref import FreeEntry, InUseEntry, XrefEntry, build_xref_stream, format_xref_table

if TYPE_CHECKING:  # pragma: no cover
    from .file import PDFFile

logger = logging.getLogger(__name__)

BINARY_MARKER = b"%\xe2\xe3\xcf\xd3\n"

# Trailer keys copied into a freshly written trailer.
_TRAILER_KEYS = ("Root", "Info", "ID", "Encrypt")


def _write_objects(buffer: io.BytesIO, pdf: "PDFFile", refs: List[PDFReference]) -> Dict[int, XrefEntry]:
    compression = pdf.config.compression
    entries: Dict[int, XrefEntry] = {}
    for ref in refs:
        value = pdf.get(ref)
        entries[ref.obj_id] = InUseEntry(buffer.tell(), ref.generation)
        buffer.write(serialize_indirect(ref, value, compression))
    return entries


def _write_trailer(buffer: io.BytesIO, trailer: Dict[str, Any], xref_offset: int) -> None:
    buffer.write(b"trailer\n")
    buffer.write(serialize(trailer))
    buffer.write(f"\nstartxref\n{xref_offset}\n%%EOF\n".encode("ascii"))


def _link_free_entries(entries: Dict[int, XrefEntry], size: int) -> None:
    free = [obj_id for obj_id in range(1, size) if obj_id not in entries]
    chain = [0] + free
    for index, obj_id in enumerate(chain):
        next_free = chain[index + 1] if index + 1 < len(chain) else 0
        entries[obj_id] = FreeEntry(next_free, 65535 if obj_id == 0 else 0)


def write_full(pdf: "PDFFile") -> bytes:
    """Serialise every live object of ``pdf`` into a standalone file."""

    if pdf.config.prune_unreachable:
        refs = pdf.reachable_refs()
    else:
        refs = pdf.store.live_refs()
    buffer = io.BytesIO()
    buffer.write(f"%PDF-{pdf.version}\n".encode("ascii"))
    buffer.write(BINARY_MARKER)
    entries = _write_objects(buffer, pdf, refs)
    size = max(entries, default=0) + 1
    _link_free_entries(entries, size)

    xref_offset = buffer.tell()
    buffer.write(format_xref_table(entries))
    trailer: Dict[str, Any] = {"Size": size}
    for key in _TRAILER_KEYS:
        if pdf.trailer.get(key) is not None:
            trailer[key] = pdf.trailer[key]
    _write_trailer(buffer, trailer, xref_offset)
    logger.info("Wrote %d objects (%d bytes)", len(refs), buffer.tell())
    return buffer.getvalue()


def _uses_xref_streams(pdf: "PDFFile") -> bool:
    return pdf.xref is not None and bool(pdf.xref.sections) and "W" in pdf.xref.sections[0].trailer


def write_incremental(pdf: "PDFFile") -> bytes:
    """Append the dirty objects of a reopened file as a new revision.

    The original bytes are reproduced unchanged; the new trailer points at
    the previous cross-reference section through ``Prev``.  Files whose
    newest section is an xref stream get an xref stream section, others a
    classic table.
    """

    if pdf.original_bytes is None or pdf.startxref is None:
        raise InvalidStateError("Incremental update needs a file opened from existing bytes")
    refs = pdf.store.dirty_refs()
    original = pdf.original_bytes
    if not refs:
        logger.info("No modified objects, incremental update is a no-op")
        return original

    buffer = io.BytesIO()
    buffer.write(original)
    if not original.endswith((b"\n", b"\r")):
        buffer.write(b"\n")
    entries = _write_objects(buffer, pdf, refs)

    previous_size = pdf.trailer.get("Size")
    size = max(pdf.store.next_object_number, max(entries) + 1)
    if isinstance(previous_size, int):
        size = max(size, previous_size)
    trailer: Dict[str, Any] = {"Size": size}
    for key in _TRAILER_KEYS:
        if pdf.trailer.get(key) is not None:
            trailer[key] = pdf.trailer[key]
    trailer["Prev"] = pdf.startxref

    xref_offset = buffer.tell()
    if _uses_xref_streams(pdf):
        stream_ref = PDFReference(size, 0)
        entries[size] = InUseEntry(xref_offset)
        trailer["Size"] = size + 1
        stream = build_xref_stream(entries, trailer)
        buffer.write(serialize_indirect(stream_ref, stream, pdf.config.compression))
        buffer.write(f"startxref\n{xref_offset}\n%%EOF\n".encode("ascii"))
    else:
        buffer.write(format_xref_table(entries))
        _write_trailer(buffer, trailer, xref_offset)
    logger.info(
        "Appended %d objects to %d original bytes", len(refs), len(original)
    )
    return buffer.getvalue()


__all__ = ["BINARY_MARKER", "write_full", "write_incremental"]
