"""Helpers for serialising PDF values back into PDF syntax."""

from __future__ import annotations

import math
from decimal import Decimal
from typing import Any, Dict, Tuple

from .filters import Compression, encode_chain
from .primitives import PDFName, PDFReference, PDFStream, PDFString, StringEncoding, filters_of

_NAME_SAFE = frozenset(range(0x21, 0x7F)) - frozenset(b"()<>[]{}/%#")
_LITERAL_SAFE = frozenset(range(0x20, 0x7F)) | frozenset(b"\n\r\t\b\f")
_LITERAL_ESCAPES = {
    ord("\\"): b"\\\\",
    ord("("): b"\\(",
    ord(")"): b"\\)",
    ord("\n"): b"\\n",
    ord("\r"): b"\\r",
    ord("\t"): b"\\t",
    ord("\b"): b"\\b",
    ord("\f"): b"\\f",
}


def format_number(value: int | float) -> str:
    """Shortest decimal form that reads back as ``value``; never exponential."""

    if isinstance(value, bool):
        raise TypeError("Booleans are not PDF numbers")
    if isinstance(value, int):
        return str(value)
    if not math.isfinite(value):
        raise ValueError(f"Cannot write non-finite number {value!r}")
    if value == 0:
        return "0"
    if value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    text = repr(value)
    if "e" in text or "E" in text:
        text = format(Decimal(text), "f")
    if text.startswith("0."):
        text = text[1:]
    elif text.startswith("-0."):
        text = "-" + text[2:]
    return text


def _serialize_name(name: PDFName) -> bytes:
    try:
        raw = name.value.encode("latin-1")
    except UnicodeEncodeError:
        raw = name.value.encode("utf-8")
    out = bytearray(b"/")
    for byte in raw:
        if byte in _NAME_SAFE:
            out.append(byte)
        else:
            out += b"#%02X" % byte
    return bytes(out)


def _serialize_string(string: PDFString) -> bytes:
    raw = string.to_raw()
    if string.encoding is StringEncoding.BYTES and all(byte in _LITERAL_SAFE for byte in raw):
        out = bytearray(b"(")
        for byte in raw:
            escaped = _LITERAL_ESCAPES.get(byte)
            if escaped is None:
                out.append(byte)
            else:
                out += escaped
        out += b")"
        return bytes(out)
    return b"<" + raw.hex().upper().encode("ascii") + b">"


def serialize(value: Any) -> bytes:
    if isinstance(value, PDFName):
        return _serialize_name(value)
    if isinstance(value, PDFReference):
        return f"{value.obj_id} {value.generation} R".encode("ascii")
    if isinstance(value, bool):
        return b"true" if value else b"false"
    if value is None:
        return b"null"
    if isinstance(value, (int, float)):
        return format_number(value).encode("ascii")
    if isinstance(value, PDFString):
        return _serialize_string(value)
    if isinstance(value, dict):
        parts = [b"<<"]
        for key, item in value.items():
            if isinstance(key, PDFName):
                key = key.value
            if not isinstance(key, str):
                raise TypeError(f"Unsupported key type: {type(key)!r}")
            parts.append(_serialize_name(PDFName(key)) + b" ")
            parts.append(serialize(item))
            parts.append(b"\n")
        parts.append(b">>")
        return b"".join(parts)
    if isinstance(value, list):
        items = b" ".join(serialize(item) for item in value)
        return b"[" + items + b"]"
    if isinstance(value, PDFStream):
        raise TypeError("Streams can only be written as indirect objects")
    raise TypeError(f"Unsupported value type: {type(value)!r}")


def prepare_stream(stream: PDFStream, compression: Compression) -> Tuple[Dict[str, Any], bytes]:
    """Return the dictionary and payload exactly as they will be written.

    Unfiltered payloads are encoded with the filters their dictionary names,
    or with Flate when none is named and ``compression`` asks for it.
    ``Length`` always matches the returned payload.
    """

    dictionary = dict(stream.dictionary)
    data = stream.data
    if not stream.filtered:
        filters = filters_of(dictionary)
        if filters:
            data = encode_chain(data, filters)
        elif compression is Compression.FLATE and data:
            data = encode_chain(data, ["FlateDecode"])
            dictionary["Filter"] = PDFName("FlateDecode")
    dictionary["Length"] = len(data)
    return dictionary, data


def serialize_indirect(ref: PDFReference, value: Any, compression: Compression = Compression.FLATE) -> bytes:
    header = f"{ref.obj_id} {ref.generation} obj\n".encode("ascii")
    if isinstance(value, PDFStream):
        dictionary, data = prepare_stream(value, compression)
        return header + serialize(dictionary) + b"\nstream\n" + data + b"\nendstream\nendobj\n"
    return header + serialize(value) + b"\nendobj\n"


__all__ = ["format_number", "prepare_stream", "serialize", "serialize_indirect"]
