"""Page-level builder API on top of :class:`~pdfbuilder.file.PDFFile`."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from .config import BuilderConfig, normalize_version
from .copier import CopyCache, copy_subgraph
from .errors import StructureError
from .file import PDFFile
from .filters import FLATE, Compression, decode_stream
from .primitives import PDFName, PDFReference, PDFStream, PDFString, filters_of

logger = logging.getLogger(__name__)

PRODUCER = "pdfbuilder"
US_LETTER = [0, 0, 612, 792]

INHERITABLE_KEYS = ("Resources", "MediaBox", "CropBox", "Rotate")
BOX_KEYS = ("MediaBox", "CropBox", "BleedBox", "TrimBox", "ArtBox")

# Interactive form entries carried over with imported widget annotations.
ACROFORM_KEYS = ("NeedAppearances", "SigFlags", "CO", "DR", "DA", "Q")

PathLike = Union[str, os.PathLike]


def _text(value: Any) -> Any:
    if isinstance(value, PDFString):
        return value.text
    if isinstance(value, PDFName):
        return value.value
    return value


class Document:
    """A PDF document seen as a page tree.

    Pages are addressed the way the builder API always has: ``page(0)``
    appends, ``page(n)`` inserts so the new page becomes page ``n``
    (1-based), and ``openpage(0)`` / ``openpage(-1)`` return the last page.
    """

    def __init__(self, pdf: PDFFile):
        self.pdf = pdf
        self._import_caches: Dict["Document", CopyCache] = {}

    @property
    def config(self) -> BuilderConfig:
        return self.pdf.config

    @classmethod
    def new(cls, config: Optional[BuilderConfig] = None) -> "Document":
        pdf = PDFFile.new(config)
        pages_ref = pdf.add_object(
            {
                "Type": PDFName("Pages"),
                "Kids": [],
                "Count": 0,
                "Resources": {},
                "MediaBox": list(US_LETTER),
            }
        )
        pdf.set_root(pdf.add_object({"Type": PDFName("Catalog"), "Pages": pages_ref}))
        pdf.set_info(pdf.add_object({"Producer": PDFString.from_text(PRODUCER)}))
        return cls(pdf)

    @classmethod
    def open(cls, path: PathLike, config: Optional[BuilderConfig] = None) -> "Document":
        return cls(PDFFile.open(path, config))

    @classmethod
    def from_bytes(cls, data: bytes, config: Optional[BuilderConfig] = None) -> "Document":
        return cls(PDFFile.from_bytes(data, config))

    # ------------------------------------------------------------------
    # Page tree
    # ------------------------------------------------------------------
    @property
    def pages_ref(self) -> PDFReference:
        pages = self.pdf.catalog().get("Pages")
        if not isinstance(pages, PDFReference):
            raise StructureError("Catalog has no Pages reference")
        return pages

    @property
    def pages(self) -> List[PDFReference]:
        """Page references in document order."""

        found: List[PDFReference] = []
        self._collect_pages(self.pages_ref, found, set())
        return found

    def _collect_pages(self, node_ref: PDFReference, found: List[PDFReference], seen: Set[PDFReference]) -> None:
        if node_ref in seen:
            logger.warning("Page tree loops back to object %d", node_ref.obj_id)
            return
        seen.add(node_ref)
        node = self.pdf.get(node_ref)
        if not isinstance(node, dict):
            return
        kids = self.pdf.resolve(node.get("Kids"))
        if node.get("Type") == PDFName("Pages") or isinstance(kids, list):
            for kid in kids or []:
                if isinstance(kid, PDFReference):
                    self._collect_pages(kid, found, seen)
        else:
            found.append(node_ref)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def _kids(self, node_ref: PDFReference) -> List[Any]:
        node = self.pdf.get(node_ref)
        kids = node.get("Kids")
        if isinstance(kids, PDFReference):
            self.pdf.mark_dirty(kids)
            return self.pdf.get(kids)
        if not isinstance(kids, list):
            kids = node["Kids"] = []
        self.pdf.mark_dirty(node_ref)
        return kids

    def _bump_count(self, node_ref: Any) -> None:
        seen: Set[PDFReference] = set()
        while isinstance(node_ref, PDFReference) and node_ref not in seen:
            seen.add(node_ref)
            node = self.pdf.get(node_ref)
            if not isinstance(node, dict):
                break
            node["Count"] = int(self.pdf.resolve(node.get("Count")) or 0) + 1
            self.pdf.mark_dirty(node_ref)
            node_ref = node.get("Parent")

    def page(self, index: int = 0) -> PDFReference:
        """Add an empty page and return its reference."""

        pages = self.pages
        parent_ref = self.pages_ref
        before: Optional[PDFReference] = None
        if index > 0 and index <= len(pages):
            before = pages[index - 1]
        elif index < 0 and pages:
            before = pages[max(len(pages) + index, 0)]
        if before is not None:
            parent_ref = self.pdf.get(before).get("Parent", parent_ref)

        page_ref = self.pdf.add_object({"Type": PDFName("Page"), "Parent": parent_ref})
        kids = self._kids(parent_ref)
        if before is not None and before in kids:
            kids.insert(kids.index(before), page_ref)
        else:
            kids.append(page_ref)
        self._bump_count(parent_ref)
        logger.debug("Added page object %d", page_ref.obj_id)
        return page_ref

    def openpage(self, index: int = 0) -> PDFReference:
        pages = self.pages
        if index == 0:
            index = -1
        if index > len(pages) or -index > len(pages):
            raise IndexError(f"Page {index} out of range (document has {len(pages)} pages)")
        return pages[index - 1] if index > 0 else pages[index]

    def _find_raw(self, page_ref: PDFReference, key: str) -> Any:
        node_ref: Any = page_ref
        seen: Set[PDFReference] = set()
        while isinstance(node_ref, PDFReference) and node_ref not in seen:
            seen.add(node_ref)
            node = self.pdf.get(node_ref)
            if not isinstance(node, dict):
                return None
            if key in node:
                return node[key]
            if key not in INHERITABLE_KEYS:
                return None
            node_ref = node.get("Parent")
        return None

    def find_inherited(self, page_ref: PDFReference, key: str) -> Any:
        """Value of ``key`` on the page or, for inheritable keys, its ancestors."""

        return self.pdf.resolve(self._find_raw(page_ref, key))

    def _set_box(self, key: str, box: tuple) -> None:
        if len(box) == 2:
            box = (0, 0) + tuple(box)
        if len(box) != 4:
            raise ValueError(f"{key} needs 2 or 4 numbers")
        pages_ref = self.pages_ref
        self.pdf.get(pages_ref)[key] = list(box)
        self.pdf.mark_dirty(pages_ref)

    def set_mediabox(self, *box: float) -> None:
        """Default page size: ``(width, height)`` or ``(llx, lly, urx, ury)``."""

        self._set_box("MediaBox", box)

    def set_cropbox(self, *box: float) -> None:
        self._set_box("CropBox", box)

    def set_bleedbox(self, *box: float) -> None:
        self._set_box("BleedBox", box)

    def set_trimbox(self, *box: float) -> None:
        self._set_box("TrimBox", box)

    def set_artbox(self, *box: float) -> None:
        self._set_box("ArtBox", box)

    def page_content(self, page_ref: PDFReference) -> bytes:
        """Decoded content of a page, all content streams joined."""

        contents = self.pdf.resolve(self.pdf.get(page_ref).get("Contents"))
        if isinstance(contents, PDFStream):
            contents = [contents]
        chunks = []
        for item in contents or []:
            stream = self.pdf.resolve(item)
            if isinstance(stream, PDFStream):
                chunks.append(decode_stream(stream))
        return b"\n".join(chunks)

    # ------------------------------------------------------------------
    # Importing from another document
    # ------------------------------------------------------------------
    def _import_cache(self, source: "Document") -> CopyCache:
        return self._import_caches.setdefault(source, CopyCache())

    def import_page(self, source: "Document", source_index: int = 0, target_index: int = 0) -> PDFReference:
        """Copy page ``source_index`` of ``source`` into this document.

        Shared resources are copied once per source document, however many
        of its pages are imported.
        """

        source_ref = source.openpage(source_index)
        cache = self._import_cache(source)
        if target_index > self.page_count:
            target_ref = self.page()
        else:
            target_ref = self.page(target_index)
        target = self.pdf.get(target_ref)

        for key in ("Resources", "Rotate") + BOX_KEYS:
            value = source._find_raw(source_ref, key)
            if value is not None:
                target[key] = copy_subgraph(source.pdf, self.pdf, value, cache)
        contents = source.pdf.get(source_ref).get("Contents")
        if contents is not None:
            target["Contents"] = copy_subgraph(source.pdf, self.pdf, contents, cache)

        if self.config.copy_annotations:
            annots = self._copy_annotations(source, source_ref, target_ref, cache)
            if annots:
                target["Annots"] = annots
                self._merge_form(source, annots, cache)
        self.pdf.mark_dirty(target_ref)
        logger.info(
            "Imported page object %d as %d (%d objects copied so far)",
            source_ref.obj_id,
            target_ref.obj_id,
            cache.stats.copied_objects,
        )
        return target_ref

    def _copy_annotations(
        self, source: "Document", source_ref: PDFReference, target_ref: PDFReference, cache: CopyCache
    ) -> List[Any]:
        copied = []
        for annot in source.pdf.resolve(source.pdf.get(source_ref).get("Annots")) or []:
            annot_dict = source.pdf.resolve(annot)
            if not isinstance(annot_dict, dict):
                continue
            keys = [key for key in annot_dict if key != "P"]
            new_annot = copy_subgraph(source.pdf, self.pdf, annot, cache, keys=keys)
            target_dict = self.pdf.resolve(new_annot)
            if isinstance(target_dict, dict):
                target_dict["P"] = target_ref
            if isinstance(new_annot, PDFReference):
                self.pdf.mark_dirty(new_annot)
            copied.append(new_annot)
        return copied

    def _merge_form(self, source: "Document", annots: List[Any], cache: CopyCache) -> None:
        """Register imported widgets as fields of this document's AcroForm.

        When this document has no form yet, the source form's document-wide
        entries (``ACROFORM_KEYS``) are copied to start one.
        """

        source_form = source.pdf.resolve(source.pdf.catalog().get("AcroForm"))
        if not isinstance(source_form, dict):
            return
        widgets = [
            annot
            for annot in annots
            if isinstance(annot, PDFReference) and _is_widget(self.pdf.get(annot))
        ]

        catalog = self.pdf.catalog()
        form_ref = catalog.get("AcroForm")
        if not isinstance(form_ref, PDFReference):
            if isinstance(form_ref, dict):
                form = form_ref
            else:
                form = copy_subgraph(source.pdf, self.pdf, source_form, cache, keys=ACROFORM_KEYS)
            form_ref = self.pdf.add_object(form)
            catalog["AcroForm"] = form_ref
            self.pdf.mark_dirty(self.pdf.root)
        form = self.pdf.get(form_ref)

        fields = form.get("Fields")
        if isinstance(fields, PDFReference):
            self.pdf.mark_dirty(fields)
            fields = self.pdf.get(fields)
        if not isinstance(fields, list):
            fields = form["Fields"] = []
        fields.extend(widget for widget in widgets if widget not in fields)
        self.pdf.mark_dirty(form_ref)
        logger.debug("AcroForm now has %d fields", len(fields))

    def import_page_into_form(self, source: "Document", source_index: int = 0) -> PDFReference:
        """Wrap a page of ``source`` into a Form XObject and return it."""

        source_ref = source.openpage(source_index)
        cache = self._import_cache(source)

        box = source.find_inherited(source_ref, "MediaBox")
        bbox = [source.pdf.resolve(item) for item in box] if isinstance(box, list) else list(US_LETTER)
        form: Dict[str, Any] = {
            "Type": PDFName("XObject"),
            "Subtype": PDFName("Form"),
            "FormType": 1,
            "BBox": bbox,
        }
        resources = source._find_raw(source_ref, "Resources")
        form["Resources"] = copy_subgraph(source.pdf, self.pdf, resources, cache) if resources is not None else {}

        content = source.page_content(source_ref)
        return self.pdf.add_object(PDFStream(form, b"q\n" + content + b"\nQ"))

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------
    def info(self, **entries: Any) -> Dict[str, Any]:
        """Set document info entries and return all of them as text.

        ``None`` removes an entry.  Text that does not fit Latin-1 is
        stored as UTF-16.
        """

        if entries:
            info_ref = self.pdf.info_ref
            if info_ref is None:
                info_ref = self.pdf.add_object({})
                self.pdf.set_info(info_ref)
            info = self.pdf.get(info_ref)
            for key, value in entries.items():
                if value is None:
                    info.pop(key, None)
                elif isinstance(value, str):
                    info[key] = PDFString.from_text(value)
                else:
                    info[key] = value
            self.pdf.mark_dirty(info_ref)
        info = self.pdf.resolve(self.pdf.trailer.get("Info"))
        if not isinstance(info, dict):
            return {}
        return {key: _text(self.pdf.resolve(value)) for key, value in info.items()}

    @property
    def version(self) -> str:
        return self.pdf.version

    @version.setter
    def version(self, value: Any) -> None:
        self.pdf.version = normalize_version(value)

    def is_encrypted(self) -> bool:
        return self.pdf.is_encrypted()

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------
    def save(self, path: PathLike) -> Path:
        return self.pdf.save(path)

    def update(self, path: Optional[PathLike] = None) -> Path:
        return self.pdf.update(path)

    def stringify(self) -> bytes:
        if self.pdf.original_bytes is not None:
            return self.pdf.incremental_bytes()
        return self.pdf.to_bytes()

    def release(self) -> None:
        self._import_caches.clear()
        self.pdf.release()


def _is_widget(annot: Any) -> bool:
    return isinstance(annot, dict) and annot.get("Subtype") == PDFName("Widget")


def _inflate_streams(pdf: PDFFile) -> int:
    count = 0
    for ref in pdf.store.live_refs():
        value = pdf.get(ref)
        if not isinstance(value, PDFStream) or not value.filtered:
            continue
        if filters_of(value.dictionary) != [FLATE] or "DecodeParms" in value.dictionary:
            continue
        value.data = decode_stream(value)
        value.filtered = False
        del value.dictionary["Filter"]
        count += 1
    return count


def deoptimize(source_path: PathLike, target_path: PathLike) -> Path:
    """Rewrite a file with every object uncompressed and renumbered.

    Only what ``Root`` and ``Info`` reach is kept.
    """

    source = PDFFile.open(source_path)
    target = PDFFile.new(BuilderConfig(compression=Compression.NONE))
    cache = CopyCache()
    target.set_root(copy_subgraph(source, target, source.root, cache))
    if source.trailer.get("Info") is not None:
        target.set_info(copy_subgraph(source, target, source.trailer["Info"], cache))
    inflated = _inflate_streams(target)
    logger.info("Deoptimized %d objects, %d streams inflated", cache.stats.copied_objects, inflated)
    try:
        return target.save(target_path)
    finally:
        source.release()


__all__ = ["ACROFORM_KEYS", "BOX_KEYS", "Document", "INHERITABLE_KEYS", "PRODUCER", "deoptimize"]
