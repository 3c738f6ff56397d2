"""Deep copy of object subgraphs from one file into another.

Every distinct source object produces exactly one target object.  The
target reference is cached before the source object's children are
visited, so cycles (a page and its annotations pointing back at it, for
instance) end at the cached reference instead of recursing forever.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional, Tuple

from .errors import ParseError, UnsupportedFilter
from .filters import decode_chain, is_writable
from .primitives import PDFName, PDFReference, PDFStream, PDFString, decode_parms_of, filters_of

if TYPE_CHECKING:  # pragma: no cover
    from .file import PDFFile

logger = logging.getLogger(__name__)

_SCALARS = (bool, int, float, PDFString, PDFName)

# Stream dictionary keys that describe the payload and are rewritten by the copier.
_PAYLOAD_KEYS = ("Length", "Filter", "DecodeParms", "DP")


@dataclass
class CopyStats:
    copied_objects: int = 0
    refiltered_streams: int = 0
    passthrough_streams: int = 0


class CopyCache:
    """Source identity to target value map for one copy operation.

    Indirect objects are keyed by their source reference.  Direct arrays,
    dictionaries and streams are keyed by ``id()``; the source value is
    kept alive alongside its copy so the id cannot be reused meanwhile.
    """

    def __init__(self) -> None:
        self._refs: Dict[PDFReference, Optional[PDFReference]] = {}
        self._direct: Dict[int, Tuple[Any, Any]] = {}
        self.stats = CopyStats()

    def __len__(self) -> int:
        return len(self._refs)

    def __contains__(self, ref: object) -> bool:
        return ref in self._refs

    def get_ref(self, ref: PDFReference) -> Optional[PDFReference]:
        return self._refs[ref]

    def put_ref(self, source: PDFReference, target: Optional[PDFReference]) -> None:
        self._refs[source] = target

    def get_direct(self, value: Any) -> Any:
        entry = self._direct.get(id(value))
        return entry[1] if entry is not None and entry[0] is value else None

    def put_direct(self, source: Any, target: Any) -> None:
        self._direct[id(source)] = (source, target)


class GraphCopier:
    def __init__(self, source: "PDFFile", target: "PDFFile", cache: Optional[CopyCache] = None):
        self.source = source
        self.target = target
        self.cache = cache if cache is not None else CopyCache()
        self.weak_keys = source.config.weak_keys

    def copy(self, value: Any, keys: Optional[Iterable[str]] = None) -> Any:
        if value is None or isinstance(value, _SCALARS):
            return value
        if isinstance(value, PDFReference):
            return self._copy_reference(value, keys)
        if isinstance(value, (dict, list, PDFStream)):
            cached = self.cache.get_direct(value)
            if cached is not None:
                return cached
            return self._copy_container(value, keys)
        raise TypeError(f"Unsupported value type: {type(value)!r}")

    def _copy_reference(self, ref: PDFReference, keys: Optional[Iterable[str]]) -> Optional[PDFReference]:
        if ref in self.cache:
            return self.cache.get_ref(ref)
        value = self.source.get(ref)
        if value is None:
            # dangling or unreadable in the source; already recorded there
            self.cache.put_ref(ref, None)
            return None
        target_ref = self.target.allocate_object()
        self.cache.put_ref(ref, target_ref)
        self.cache.stats.copied_objects += 1
        logger.debug("Copying object %d %d as %d", ref.obj_id, ref.generation, target_ref.obj_id)
        self.target.put(target_ref, self._copy_container(value, keys) if not isinstance(value, _SCALARS) else value)
        return target_ref

    def _copy_container(self, value: Any, keys: Optional[Iterable[str]]) -> Any:
        if isinstance(value, list):
            result: list = []
            self.cache.put_direct(value, result)
            result.extend(self.copy(item) for item in value)
            return result
        if isinstance(value, dict):
            result_dict: Dict[str, Any] = {}
            self.cache.put_direct(value, result_dict)
            self._copy_entries(value, result_dict, keys, ())
            return result_dict
        if isinstance(value, PDFStream):
            stream = PDFStream({})
            self.cache.put_direct(value, stream)
            self._copy_entries(value.dictionary, stream.dictionary, keys, _PAYLOAD_KEYS)
            self._copy_payload(value, stream)
            return stream
        raise TypeError(f"Unsupported value type: {type(value)!r}")

    def _copy_entries(self, source: Dict[str, Any], target: Dict[str, Any], keys, skip) -> None:
        names = list(source) if keys is None else list(keys)
        for key in names:
            if key in skip or key not in source:
                continue
            if keys is None and key in self.weak_keys:
                # back-references survive only when their target was copied already
                link = source[key]
                if isinstance(link, PDFReference) and link in self.cache and self.cache.get_ref(link):
                    target[key] = self.cache.get_ref(link)
                continue
            target[key] = self.copy(source[key])

    def _copy_payload(self, source: PDFStream, target: PDFStream) -> None:
        filters = filters_of(source.dictionary)
        if not source.filtered:
            target.data = source.data
            target.filtered = False
            self._keep_filter_keys(source, target)
            return
        if not filters:
            # raw payload; the target's writer compresses it as configured
            target.data = source.data
            target.filtered = False
            return
        if is_writable(filters):
            target.data = source.data
            target.filtered = True
            self._keep_filter_keys(source, target)
            return
        try:
            target.data = decode_chain(source.data, filters, decode_parms_of(source.dictionary))
            target.filtered = False
            self.cache.stats.refiltered_streams += 1
            logger.debug("Re-filtering stream from %s", ", ".join(filters))
        except (UnsupportedFilter, ParseError) as exc:
            logger.debug("Copying %s stream undecoded: %s", ", ".join(filters), exc)
            self.cache.stats.passthrough_streams += 1
            target.data = source.data
            target.filtered = True
            self._keep_filter_keys(source, target)

    def _keep_filter_keys(self, source: PDFStream, target: PDFStream) -> None:
        for key in ("Filter", "DecodeParms", "DP"):
            if key in source.dictionary:
                target.dictionary[key] = self.copy(source.dictionary[key])


def copy_subgraph(
    source: "PDFFile",
    target: "PDFFile",
    value: Any,
    cache: Optional[CopyCache] = None,
    keys: Optional[Iterable[str]] = None,
) -> Any:
    """Copy ``value`` and everything it reaches from ``source`` into ``target``.

    ``keys`` limits which entries of a top-level dictionary or stream are
    copied; otherwise every key except the configured back-reference keys
    is followed.  Pass the same ``cache`` to several calls to share copies
    between them.
    """

    copier = GraphCopier(source, target, cache)
    result = copier.copy(value, keys)
    logger.debug("Copy created %d objects", copier.cache.stats.copied_objects)
    return result


__all__ = ["CopyCache", "CopyStats", "GraphCopier", "copy_subgraph"]
