"""Stream filter engine.

``FlateDecode`` is the filter this package writes.  ``ASCIIHexDecode`` and
``ASCII85Decode`` are read so that streams using them can be converted when
copied between files.  Every other filter raises :class:`UnsupportedFilter`
unless the caller asks for raw passthrough.
"""

from __future__ import annotations

import base64
import binascii
import enum
import logging
import zlib
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .errors import ParseError, UnsupportedFilter
from .primitives import PDFStream, decode_parms_of, filters_of

logger = logging.getLogger(__name__)

FLATE = "FlateDecode"
ASCII_HEX = "ASCIIHexDecode"
ASCII_85 = "ASCII85Decode"

_ALIASES = {
    "Fl": FLATE,
    "AHx": ASCII_HEX,
    "A85": ASCII_85,
}

# Filters whose output the writer can reproduce byte-for-byte.
WRITABLE_FILTERS = frozenset({FLATE})


class Compression(enum.Enum):
    """Compression applied by the writer to unfiltered streams."""

    FLATE = "flate"
    NONE = "none"

    @classmethod
    def coerce(cls, value: Any) -> "Compression":
        """Normalise the historical spellings of the compress setting.

        Accepts a :class:`Compression`, the strings ``'flate'`` and
        ``'none'`` (any case), booleans, and integers where ``0`` means
        no compression and any positive value means Flate.
        """

        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.FLATE if value else cls.NONE
        if isinstance(value, int):
            if value < 0:
                raise ValueError(f"Invalid compression level: {value}")
            return cls.FLATE if value else cls.NONE
        if isinstance(value, str):
            text = value.strip().lower()
            if text.isdigit():
                return cls.coerce(int(text))
            for member in cls:
                if member.value == text:
                    return member
        raise ValueError(f"Invalid compression setting: {value!r}")

    @property
    def filter_name(self) -> Optional[str]:
        return FLATE if self is Compression.FLATE else None


def _canonical(filter_name: Optional[str]) -> Optional[str]:
    if filter_name is None or filter_name.lower() == "none":
        return None
    return _ALIASES.get(filter_name, filter_name)


def _flate_decode(data: bytes) -> bytes:
    try:
        return zlib.decompress(data)
    except zlib.error:
        pass
    # Truncated or checksum-less streams are common; keep what inflates.
    inflater = zlib.decompressobj()
    try:
        result = inflater.decompress(data)
    except zlib.error as exc:
        raise ParseError(f"Corrupt Flate stream: {exc}") from exc
    if not result and data:
        raise ParseError("Flate stream produced no data")
    logger.warning("Flate stream is truncated, recovered %d bytes", len(result))
    return result


def _ascii_hex_decode(data: bytes) -> bytes:
    end = data.find(b">")
    if end != -1:
        data = data[:end]
    digits = bytes(byte for byte in data if not chr(byte).isspace())
    if len(digits) % 2:
        digits += b"0"
    try:
        return binascii.unhexlify(digits)
    except binascii.Error as exc:
        raise ParseError(f"Corrupt ASCIIHex stream: {exc}") from exc


def _ascii_85_decode(data: bytes) -> bytes:
    data = data.strip()
    if data.startswith(b"<~"):
        data = data[2:]
    end = data.find(b"~>")
    if end != -1:
        data = data[:end]
    try:
        return base64.a85decode(data, ignorechars=b" \t\n\r\f\x00")
    except ValueError as exc:
        raise ParseError(f"Corrupt ASCII85 stream: {exc}") from exc


def _paeth(left: int, up: int, up_left: int) -> int:
    estimate = left + up - up_left
    d_left = abs(estimate - left)
    d_up = abs(estimate - up)
    d_up_left = abs(estimate - up_left)
    if d_left <= d_up and d_left <= d_up_left:
        return left
    if d_up <= d_up_left:
        return up
    return up_left


def _parm(parms: Optional[Dict[str, Any]], key: str, default: int) -> int:
    if not parms:
        return default
    value = parms.get(key, default)
    return value if isinstance(value, int) and not isinstance(value, bool) else default


def apply_predictor(data: bytes, parms: Optional[Dict[str, Any]]) -> bytes:
    """Undo the PNG (10-15) or TIFF (2) predictor named in ``parms``."""

    predictor = _parm(parms, "Predictor", 1)
    if predictor == 1:
        return data
    colors = _parm(parms, "Colors", 1)
    bits = _parm(parms, "BitsPerComponent", 8)
    columns = _parm(parms, "Columns", 1)
    bpp = max(1, (colors * bits + 7) // 8)
    row_length = (colors * bits * columns + 7) // 8

    if predictor == 2:
        if bits != 8:
            raise UnsupportedFilter(f"TIFF predictor with {bits} bits per component")
        output = bytearray(data)
        for row_start in range(0, len(output), row_length):
            for i in range(row_start + bpp, min(row_start + row_length, len(output))):
                output[i] = (output[i] + output[i - bpp]) & 0xFF
        return bytes(output)

    if predictor < 10:
        raise UnsupportedFilter(f"Predictor {predictor}")

    output = bytearray()
    previous = bytearray(row_length)
    stride = row_length + 1
    for row_start in range(0, len(data), stride):
        kind = data[row_start]
        row = bytearray(data[row_start + 1 : row_start + stride])
        row.extend(b"\x00" * (row_length - len(row)))
        if kind == 1:
            for i in range(bpp, row_length):
                row[i] = (row[i] + row[i - bpp]) & 0xFF
        elif kind == 2:
            for i in range(row_length):
                row[i] = (row[i] + previous[i]) & 0xFF
        elif kind == 3:
            for i in range(row_length):
                left = row[i - bpp] if i >= bpp else 0
                row[i] = (row[i] + ((left + previous[i]) >> 1)) & 0xFF
        elif kind == 4:
            for i in range(row_length):
                left = row[i - bpp] if i >= bpp else 0
                up_left = previous[i - bpp] if i >= bpp else 0
                row[i] = (row[i] + _paeth(left, previous[i], up_left)) & 0xFF
        elif kind != 0:
            raise ParseError(f"Invalid PNG predictor row type {kind}")
        output.extend(row)
        previous = row
    return bytes(output)


def encode(raw: bytes, filter_name: Optional[str]) -> bytes:
    name = _canonical(filter_name)
    if name is None:
        return raw
    if name == FLATE:
        return zlib.compress(raw)
    if name == ASCII_HEX:
        return binascii.hexlify(raw) + b">"
    raise UnsupportedFilter(name)


def decode(
    encoded: bytes,
    filter_name: Optional[str],
    parms: Optional[Dict[str, Any]] = None,
    passthrough: bool = False,
) -> bytes:
    """Decode ``encoded`` with one filter.

    With ``passthrough`` an unsupported filter returns the input unchanged
    instead of raising :class:`UnsupportedFilter`.
    """

    name = _canonical(filter_name)
    if name is None:
        return encoded
    try:
        if name == FLATE:
            return apply_predictor(_flate_decode(encoded), parms)
        if name == ASCII_HEX:
            return _ascii_hex_decode(encoded)
        if name == ASCII_85:
            return _ascii_85_decode(encoded)
        raise UnsupportedFilter(name)
    except UnsupportedFilter:
        if passthrough:
            logger.debug("Passing %s stream through undecoded", name)
            return encoded
        raise


def decode_chain(
    data: bytes,
    filters: Sequence[str],
    parms_list: Optional[Sequence[Optional[Dict[str, Any]]]] = None,
    passthrough: bool = False,
) -> bytes:
    parms_list = list(parms_list or [])
    for index, name in enumerate(filters):
        parms = parms_list[index] if index < len(parms_list) else None
        decoded = decode(data, name, parms, passthrough=passthrough)
        if decoded is data and _canonical(name) is not None:
            # passthrough stopped here; later filters cannot apply
            return data
        data = decoded
    return data


def encode_chain(data: bytes, filters: Iterable[str]) -> bytes:
    for name in reversed(list(filters)):
        data = encode(data, name)
    return data


def is_writable(filters: List[str]) -> bool:
    """True when every filter in ``filters`` can be produced by :func:`encode`."""

    return all(_canonical(name) in WRITABLE_FILTERS for name in filters)


def decode_stream(stream: PDFStream, passthrough: bool = False) -> bytes:
    """Return the unfiltered payload of ``stream``."""

    if not stream.filtered:
        return stream.data
    return decode_chain(
        stream.data,
        filters_of(stream.dictionary),
        decode_parms_of(stream.dictionary),
        passthrough=passthrough,
    )


__all__ = [
    "ASCII_85",
    "ASCII_HEX",
    "Compression",
    "FLATE",
    "WRITABLE_FILTERS",
    "apply_predictor",
    "decode",
    "decode_chain",
    "decode_stream",
    "encode",
    "encode_chain",
    "is_writable",
]
