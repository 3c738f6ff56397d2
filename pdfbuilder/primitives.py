"""Core PDF value types.

A PDF value is one of a closed set of Python types:

========================  ==========================================
PDF type                  Python representation
========================  ==========================================
null                      ``None``
boolean                   ``bool``
number                    ``int`` or ``float``
string                    :class:`PDFString`
name                      :class:`PDFName`
array                     ``list``
dictionary                ``dict`` keyed by name strings (no slash)
stream                    :class:`PDFStream`
indirect reference        :class:`PDFReference`
========================  ==========================================

Every consumer of the object model dispatches over exactly these types.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

MAX_OBJECT_NUMBER = 2**32 - 1
MAX_GENERATION = 65535

_UTF16_BOM = b"\xfe\xff"


@dataclass(frozen=True)
class PDFName:
    """Represents a PDF name object (e.g. ``/Page``).

    The value is stored without the leading slash to make it easier to work
    with inside Python code.  ``str(name)`` reintroduces the slash.
    """

    value: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"/{self.value}"

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"PDFName({self.value!r})"


class StringEncoding(enum.Enum):
    """How the payload of a :class:`PDFString` is to be interpreted."""

    BYTES = "bytes"
    UTF16 = "utf16"


@dataclass(frozen=True)
class PDFString:
    """A PDF string.

    ``data`` holds the payload without any byte-order mark.  Strings tagged
    :attr:`StringEncoding.UTF16` hold UTF-16BE text and are written with a
    leading ``FE FF``.
    Two strings are equal when they are written as the same bytes, so a
    byte string that happens to start with ``FE FF`` equals the UTF-16
    string it reads back as.
    """

    data: bytes
    encoding: StringEncoding = StringEncoding.BYTES

    @classmethod
    def from_text(cls, text: str) -> "PDFString":
        try:
            return cls(text.encode("latin-1"))
        except UnicodeEncodeError:
            return cls(text.encode("utf-16-be"), StringEncoding.UTF16)

    @classmethod
    def from_raw(cls, raw: bytes) -> "PDFString":
        """Build a string from bytes as they appear in a file."""

        if raw.startswith(_UTF16_BOM):
            return cls(raw[2:], StringEncoding.UTF16)
        return cls(raw)

    @property
    def text(self) -> str:
        if self.encoding is StringEncoding.UTF16:
            return self.data.decode("utf-16-be", errors="replace")
        return self.data.decode("latin-1")

    def to_raw(self) -> bytes:
        """Bytes as they must appear in a file, byte-order mark included."""

        if self.encoding is StringEncoding.UTF16:
            return _UTF16_BOM + self.data
        return self.data

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PDFString):
            return NotImplemented
        return self.to_raw() == other.to_raw()

    def __hash__(self) -> int:
        return hash(self.to_raw())

    def __str__(self) -> str:  # pragma: no cover
        return self.text


@dataclass(frozen=True)
class PDFReference:
    """Object reference (``12 0 R``)."""

    obj_id: int
    generation: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.obj_id, int) or not 0 <= self.obj_id <= MAX_OBJECT_NUMBER:
            raise ValueError(f"Invalid object number: {self.obj_id!r}")
        if not isinstance(self.generation, int) or not 0 <= self.generation <= MAX_GENERATION:
            raise ValueError(f"Invalid generation number: {self.generation!r}")

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"PDFReference({self.obj_id}, {self.generation})"


@dataclass
class PDFStream:
    """A stream dictionary together with its payload.

    ``filtered`` tells whether ``data`` is already encoded with the filters
    named in ``dictionary["Filter"]``.  Parsed streams are always filtered;
    streams built in memory usually are not and get compressed on write.
    """

    dictionary: Dict[str, Any] = field(default_factory=dict)
    data: bytes = b""
    filtered: bool = False


PDFValue = Union[
    None, bool, int, float, PDFString, PDFName, List[Any], Dict[str, Any], PDFStream, PDFReference
]


def filters_of(dictionary: Dict[str, Any]) -> List[str]:
    """Return the filter names of a stream dictionary as a list."""

    value = dictionary.get("Filter")
    if value is None:
        return []
    if isinstance(value, PDFName):
        return [value.value]
    if isinstance(value, list):
        return [item.value for item in value if isinstance(item, PDFName)]
    return []


def decode_parms_of(dictionary: Dict[str, Any]) -> List[Dict[str, Any] | None]:
    """Return one ``DecodeParms`` entry per filter (``None`` when absent)."""

    count = len(filters_of(dictionary))
    value = dictionary.get("DecodeParms", dictionary.get("DP"))
    if isinstance(value, dict):
        return [value] + [None] * (count - 1)
    if isinstance(value, list):
        parms = [item if isinstance(item, dict) else None for item in value]
        return (parms + [None] * count)[:count]
    return [None] * count


__all__ = [
    "MAX_GENERATION",
    "MAX_OBJECT_NUMBER",
    "PDFName",
    "PDFReference",
    "PDFStream",
    "PDFString",
    "PDFValue",
    "StringEncoding",
    "decode_parms_of",
    "filters_of",
]
