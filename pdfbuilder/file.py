"""A PDF file: object registry, trailer and revision history."""

from __future__ import annotations

import enum
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set, Union

from .config import BuilderConfig
from .errors import InvalidStateError, IOFailure, ParseError, StructureError
from .objects import ObjectStore, Unresolved, UnresolvedCompressed
from .parser import ObjectParser, parse_object_stream
from .primitives import PDFReference, PDFStream
from .writer import write_full, write_incremental
from .xref import CompressedEntry, InUseEntry, XrefChain, read_xref_chain

logger = logging.getLogger(__name__)

# Trailer keys kept from a parsed trailer or xref stream dictionary.
TRAILER_KEYS = ("Size", "Root", "Info", "ID", "Encrypt")


class FileState(enum.Enum):
    FRESH = "fresh"
    BUILDING = "building"
    REOPENED = "reopened"
    FLUSHED = "flushed"
    RELEASED = "released"


def child_refs(value: Any, weak_keys: frozenset = frozenset()) -> Iterator[PDFReference]:
    """References held directly by ``value``, skipping ``weak_keys``."""

    if isinstance(value, PDFReference):
        yield value
    elif isinstance(value, PDFStream):
        yield from child_refs(value.dictionary, weak_keys)
    elif isinstance(value, dict):
        for key, item in value.items():
            if key not in weak_keys:
                yield from child_refs(item, weak_keys)
    elif isinstance(value, list):
        for item in value:
            yield from child_refs(item, weak_keys)


class PDFFile:
    """Owns every indirect object of one document and its trailer.

    Files are created empty with :meth:`new` or read with :meth:`open` /
    :meth:`from_bytes`.  A file read from bytes keeps those bytes so that
    :meth:`update` can append a new revision without touching them.
    """

    def __init__(self, config: Optional[BuilderConfig] = None):
        self.config = config or BuilderConfig()
        self.store = ObjectStore(loader=self._load)
        self.trailer: Dict[str, Any] = {}
        self.version = self.config.version
        self.source_version: Optional[str] = None
        self.state = FileState.FRESH
        self.path: Optional[Path] = None
        self.original_bytes: Optional[bytes] = None
        self.startxref: Optional[int] = None
        self.xref: Optional[XrefChain] = None
        self._parser: Optional[ObjectParser] = None
        self._offsets: Dict[int, int] = {}
        self._object_streams: Dict[int, List[Any]] = {}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def new(cls, config: Optional[BuilderConfig] = None) -> "PDFFile":
        return cls(config)

    @classmethod
    def open(cls, path: Union[str, os.PathLike], config: Optional[BuilderConfig] = None) -> "PDFFile":
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            raise IOFailure(f"Cannot read {path}: {exc}") from exc
        pdf = cls.from_bytes(data, config)
        pdf.path = Path(path)
        return pdf

    @classmethod
    def from_bytes(cls, data: bytes, config: Optional[BuilderConfig] = None) -> "PDFFile":
        pdf = cls(config)
        pdf._read_structure(bytes(data))
        return pdf

    def _read_structure(self, data: bytes) -> None:
        parser = ObjectParser(data, resolve_length=self._resolve_length)
        self.source_version = parser.read_header_version()
        if self.source_version is None:
            raise StructureError("Missing %PDF- header")
        chain = read_xref_chain(parser, parser.find_startxref())
        self._parser = parser

        trailer = {key: chain.trailer[key] for key in TRAILER_KEYS if key in chain.trailer}
        if not isinstance(trailer.get("Root"), PDFReference):
            raise StructureError("Trailer has no Root reference")

        # xref streams and object streams are file structure, not content
        structural = {section.offset for section in chain.sections if "W" in section.trailer}
        merged = chain.merged()
        containers = {entry.stream_obj_id for entry in merged.values() if isinstance(entry, CompressedEntry)}
        for obj_id in sorted(merged):
            entry = merged[obj_id]
            if obj_id == 0:
                continue
            if isinstance(entry, InUseEntry):
                self._offsets[obj_id] = entry.offset
                if entry.offset in structural or obj_id in containers:
                    continue
                self.store.register_unresolved(PDFReference(obj_id, entry.generation), Unresolved(entry.offset))
            elif isinstance(entry, CompressedEntry):
                self.store.register_unresolved(
                    PDFReference(obj_id, 0), UnresolvedCompressed(entry.stream_obj_id, entry.index)
                )
        # structural objects and free slots keep their numbers too
        self.store.reserve(max(merged, default=0) + 1)
        self._reserve_size(trailer.get("Size"))

        self.trailer = trailer
        self.xref = chain
        self.startxref = chain.startxref
        self.original_bytes = data
        catalog = self.store.get(trailer["Root"])
        if not isinstance(catalog, dict):
            raise StructureError("Root does not resolve to a dictionary")
        if self.is_encrypted():
            logger.warning("File is encrypted; strings and streams are left as stored")
        self.state = FileState.REOPENED
        logger.info(
            "Opened PDF %s with %d objects in %d revision(s)",
            self.source_version,
            len(self.store),
            len(chain.sections),
        )

    # ------------------------------------------------------------------
    # Realisation
    # ------------------------------------------------------------------
    def _load(self, ref: PDFReference, slot: Union[Unresolved, UnresolvedCompressed]) -> Any:
        if isinstance(slot, Unresolved):
            found, value = self._parser.parse_indirect_object(slot.offset)
            if found.obj_id != ref.obj_id:
                raise ParseError(f"Expected object {ref.obj_id}, found {found.obj_id}", slot.offset)
            return value
        objects = self._object_stream(slot.stream_obj_id)
        if slot.index >= len(objects):
            raise ParseError(f"Object stream {slot.stream_obj_id} has no index {slot.index}")
        found_id, value = objects[slot.index]
        if found_id != ref.obj_id:
            raise ParseError(f"Object stream {slot.stream_obj_id} holds {found_id}, not {ref.obj_id}")
        return value

    def _object_stream(self, obj_id: int) -> List[Any]:
        if obj_id not in self._object_streams:
            offset = self._offsets.get(obj_id)
            if offset is None:
                raise ParseError(f"Object stream {obj_id} is not in the cross-reference table")
            _, stream = self._parser.parse_indirect_object(offset)
            if not isinstance(stream, PDFStream):
                raise ParseError(f"Object {obj_id} is not an object stream")
            self._object_streams[obj_id] = parse_object_stream(stream)
        return self._object_streams[obj_id]

    def _reserve_size(self, size: Any) -> None:
        if isinstance(size, int) and not isinstance(size, bool):
            self.store.reserve(size)

    def _resolve_length(self, ref: PDFReference) -> Any:
        if ref in self.store:
            return self.store.get(ref)
        offset = self._offsets.get(ref.obj_id)
        if offset is None:
            return None
        _, value = self._parser.parse_indirect_object(offset)
        return value

    # ------------------------------------------------------------------
    # Registry access
    # ------------------------------------------------------------------
    def _check_open(self) -> None:
        if self.state is FileState.RELEASED:
            raise InvalidStateError("File has been released")

    def _touch(self) -> None:
        self._check_open()
        if self.state in (FileState.FRESH, FileState.FLUSHED):
            self.state = FileState.REOPENED if self.original_bytes is not None else FileState.BUILDING

    @property
    def warnings(self):
        return self.store.warnings

    def allocate_object(self) -> PDFReference:
        self._touch()
        return self.store.allocate_object()

    def add_object(self, value: Any) -> PDFReference:
        """Register ``value`` as a new indirect object and return its reference."""

        ref = self.allocate_object()
        self.store.put(ref, value)
        return ref

    def put(self, ref: PDFReference, value: Any) -> None:
        self._touch()
        self.store.put(ref, value)

    def get(self, ref: PDFReference) -> Any:
        self._check_open()
        return self.store.get(ref)

    def resolve(self, value: Any) -> Any:
        self._check_open()
        return self.store.resolve(value)

    def is_registered(self, ref: PDFReference) -> bool:
        return self.store.is_registered(ref)

    def mark_dirty(self, ref: PDFReference) -> None:
        self._touch()
        self.store.mark_dirty(ref)

    def ref_of(self, value: Any) -> Optional[PDFReference]:
        return self.store.ref_of(value)

    @property
    def root(self) -> Optional[PDFReference]:
        return self.trailer.get("Root")

    def set_root(self, ref: PDFReference) -> None:
        self._touch()
        self.trailer["Root"] = ref

    @property
    def info_ref(self) -> Optional[PDFReference]:
        info = self.trailer.get("Info")
        return info if isinstance(info, PDFReference) else None

    def set_info(self, ref: PDFReference) -> None:
        self._touch()
        self.trailer["Info"] = ref

    def is_encrypted(self) -> bool:
        return self.trailer.get("Encrypt") is not None

    def catalog(self) -> Dict[str, Any]:
        catalog = self.resolve(self.root)
        if not isinstance(catalog, dict):
            raise StructureError("Root does not resolve to a dictionary")
        return catalog

    def reachable_refs(self) -> List[PDFReference]:
        """Objects reachable from ``Root`` and ``Info``, in discovery order.

        Keys listed in ``config.weak_keys`` (back-references such as a
        page's ``Parent``) are not followed.
        """

        weak = self.config.weak_keys
        seen: Set[PDFReference] = set()
        order: List[PDFReference] = []
        pending = [ref for ref in child_refs([self.trailer.get("Root"), self.trailer.get("Info")])]
        while pending:
            ref = pending.pop(0)
            if ref in seen or not self.store.is_registered(ref):
                continue
            seen.add(ref)
            order.append(ref)
            pending.extend(child_refs(self.get(ref), weak))
        return order

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------
    def to_bytes(self) -> bytes:
        self._check_open()
        return write_full(self)

    def incremental_bytes(self) -> bytes:
        self._check_open()
        return write_incremental(self)

    def save(self, path: Union[str, os.PathLike]) -> Path:
        """Write a complete new file to ``path``."""

        data = self.to_bytes()
        target = _atomic_write(path, data)
        self.store.clear_dirty()
        self.state = FileState.FLUSHED
        return target

    def update(self, path: Union[str, os.PathLike, None] = None) -> Path:
        """Append modified objects to the opened file (or to ``path``)."""

        destination = path or self.path
        if destination is None:
            raise InvalidStateError("No output path specified")
        data = self.incremental_bytes()
        target = _atomic_write(destination, data)
        self._after_incremental(data)
        return target

    def _after_incremental(self, data: bytes) -> None:
        if data is not self.original_bytes:
            self.original_bytes = data
            self._parser = ObjectParser(data, resolve_length=self._resolve_length)
            self.xref = read_xref_chain(self._parser, self._parser.find_startxref())
            self.startxref = self.xref.startxref
            self.trailer["Size"] = self.xref.trailer.get("Size")
            self._reserve_size(self.trailer["Size"])
        self.store.clear_dirty()
        self.state = FileState.FLUSHED

    def release(self) -> None:
        """Drop every object; the file cannot be used afterwards."""

        self.store.release()
        self.trailer = {}
        self.original_bytes = None
        self._parser = None
        self._offsets.clear()
        self._object_streams.clear()
        self.state = FileState.RELEASED


def _atomic_write(path: Union[str, os.PathLike], data: bytes) -> Path:
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        handle = tempfile.NamedTemporaryFile(
            "wb", dir=target.parent, prefix=f".{target.name}.", suffix=".tmp", delete=False
        )
        try:
            with handle:
                handle.write(data)
            os.replace(handle.name, target)
        except BaseException:
            Path(handle.name).unlink(missing_ok=True)
            raise
    except OSError as exc:
        raise IOFailure(f"Cannot write {target}: {exc}") from exc
    return target


__all__ = ["FileState", "PDFFile", "TRAILER_KEYS", "child_refs"]
