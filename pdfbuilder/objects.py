"""The indirect-object registry of one file.

The store is the only owner of indirect objects.  Values inside the graph
point at each other exclusively through :class:`PDFReference`, so parent
and child links never form ownership cycles.  Each slot is either still
unresolved (an offset or an object-stream position) or resolved to a
value; resolution happens at most once per slot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from .errors import DanglingReferenceWarning, ParseError, UnsupportedFilter
from .primitives import PDFReference, PDFStream

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Unresolved:
    offset: int


@dataclass(frozen=True)
class UnresolvedCompressed:
    stream_obj_id: int
    index: int


@dataclass
class Resolved:
    value: Any


Slot = Union[Unresolved, UnresolvedCompressed, Resolved]
Loader = Callable[[PDFReference, Union[Unresolved, UnresolvedCompressed]], Any]


class ObjectStore:
    def __init__(self, loader: Optional[Loader] = None):
        self._slots: Dict[PDFReference, Slot] = {}
        self._dirty: Dict[PDFReference, None] = {}
        self._identity: Dict[int, PDFReference] = {}
        self._loader = loader
        self._next_id = 1
        self.warnings: List[DanglingReferenceWarning] = []

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, ref: object) -> bool:
        return ref in self._slots

    def __iter__(self) -> Iterator[PDFReference]:
        return iter(list(self._slots))

    @property
    def next_object_number(self) -> int:
        return self._next_id

    def _bump(self, ref: PDFReference) -> None:
        if ref.obj_id >= self._next_id:
            self._next_id = ref.obj_id + 1

    def reserve(self, next_id: int) -> None:
        """Never allocate an object number below ``next_id``."""

        if next_id > self._next_id:
            self._next_id = next_id

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(DanglingReferenceWarning(message))

    def register_unresolved(self, ref: PDFReference, slot: Union[Unresolved, UnresolvedCompressed]) -> None:
        """Record an object that exists on disk but has not been parsed yet."""

        self._slots[ref] = slot
        self._bump(ref)

    def allocate_object(self) -> PDFReference:
        ref = PDFReference(self._next_id, 0)
        self._next_id += 1
        self._slots[ref] = Resolved(None)
        self._dirty[ref] = None
        logger.debug("Allocated object %d", ref.obj_id)
        return ref

    def put(self, ref: PDFReference, value: Any) -> None:
        if isinstance(value, PDFReference):
            raise TypeError("An indirect object cannot be a bare reference")
        previous = self._slots.get(ref)
        if isinstance(previous, Resolved) and self._identity.get(id(previous.value)) == ref:
            del self._identity[id(previous.value)]
        self._slots[ref] = Resolved(value)
        if isinstance(value, (dict, list, PDFStream)):
            self._identity[id(value)] = ref
        self._dirty[ref] = None
        self._bump(ref)

    def get(self, ref: PDFReference) -> Any:
        """Return the value of ``ref``, realising it on first access.

        Unknown references and objects that fail to parse yield ``None``
        and are recorded in :attr:`warnings`.
        """

        slot = self._slots.get(ref)
        if slot is None:
            self.warn(f"Reference {ref.obj_id} {ref.generation} R does not resolve")
            return None
        if isinstance(slot, Resolved):
            return slot.value
        if self._loader is None:
            raise RuntimeError("Object store has unresolved slots but no loader")
        try:
            value = self._loader(ref, slot)
        except (ParseError, UnsupportedFilter) as exc:
            self.warn(f"Object {ref.obj_id} {ref.generation} is unreadable: {exc}")
            value = None
        self._slots[ref] = Resolved(value)
        if isinstance(value, (dict, list, PDFStream)):
            self._identity[id(value)] = ref
        return value

    def resolve(self, value: Any) -> Any:
        if isinstance(value, PDFReference):
            return self.get(value)
        return value

    def is_registered(self, ref: PDFReference) -> bool:
        return ref in self._slots

    def is_resolved(self, ref: PDFReference) -> bool:
        return isinstance(self._slots.get(ref), Resolved)

    def ref_of(self, value: Any) -> Optional[PDFReference]:
        """Reference of a realised top-level value, looked up by identity."""

        return self._identity.get(id(value))

    def mark_dirty(self, ref: PDFReference) -> None:
        if ref not in self._slots:
            raise KeyError(f"Object {ref.obj_id} {ref.generation} is not registered")
        self._dirty[ref] = None

    def is_dirty(self, ref: PDFReference) -> bool:
        return ref in self._dirty

    def dirty_refs(self) -> List[PDFReference]:
        return sorted(self._dirty, key=lambda ref: (ref.obj_id, ref.generation))

    def live_refs(self) -> List[PDFReference]:
        return list(self._slots)

    def clear_dirty(self) -> None:
        self._dirty.clear()

    def release(self) -> None:
        self._slots.clear()
        self._dirty.clear()
        self._identity.clear()
        self._loader = None


__all__ = ["ObjectStore", "Resolved", "Slot", "Unresolved", "UnresolvedCompressed"]
