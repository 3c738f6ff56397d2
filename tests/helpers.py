"""Hand-assembled PDF files for reader tests."""

from __future__ import annotations

from typing import Dict


def make_pdf(bodies: Dict[int, bytes], trailer: bytes = b"/Root 1 0 R", version: bytes = b"1.4") -> bytes:
    """A single-revision file with a classic xref table."""

    out = bytearray(b"%PDF-" + version + b"\n")
    offsets = {}
    for obj_id, body in sorted(bodies.items()):
        offsets[obj_id] = len(out)
        out += b"%d 0 obj\n" % obj_id + body + b"\nendobj\n"
    xref_offset = len(out)
    size = max(bodies) + 1
    out += b"xref\n0 %d\n0000000000 65535 f \n" % size
    for obj_id in range(1, size):
        if obj_id in offsets:
            out += b"%010d 00000 n \n" % offsets[obj_id]
        else:
            out += b"0000000000 00000 f \n"
    out += b"trailer\n<< /Size %d %s >>\nstartxref\n%d\n%%%%EOF\n" % (size, trailer, xref_offset)
    return bytes(out)


def append_revision(data: bytes, bodies: Dict[int, bytes], prev: int, trailer: bytes = b"/Root 1 0 R") -> bytes:
    """Append an incremental update redefining ``bodies``."""

    out = bytearray(data)
    offsets = {}
    for obj_id, body in sorted(bodies.items()):
        offsets[obj_id] = len(out)
        out += b"%d 0 obj\n" % obj_id + body + b"\nendobj\n"
    xref_offset = len(out)
    out += b"xref\n"
    for obj_id, offset in sorted(offsets.items()):
        out += b"%d 1\n%010d 00000 n \n" % (obj_id, offset)
    size = max(bodies) + 1
    out += b"trailer\n<< /Size %d /Prev %d %s >>\nstartxref\n%d\n%%%%EOF\n" % (size, prev, trailer, xref_offset)
    return bytes(out)


def startxref_of(data: bytes) -> int:
    tail = data[data.rindex(b"startxref") :]
    return int(tail.split()[1])
