from __future__ import annotations

import binascii
import copy
import zlib

from pdfbuilder.config import BuilderConfig
from pdfbuilder.copier import CopyCache, copy_subgraph
from pdfbuilder.file import PDFFile
from pdfbuilder.filters import Compression, decode_stream
from pdfbuilder.primitives import PDFName, PDFReference, PDFStream, PDFString


def test_cycle_copies_each_object_once() -> None:
    source = PDFFile.new()
    a = source.allocate_object()
    b = source.add_object({"Name": PDFString(b"B"), "Next": a})
    source.put(a, {"Name": PDFString(b"A"), "Next": b})

    target = PDFFile.new()
    cache = CopyCache()
    new_a = copy_subgraph(source, target, a, cache)

    assert len(target.store) == 2
    assert cache.stats.copied_objects == 2
    new_b = target.get(new_a)["Next"]
    assert target.get(new_b)["Next"] == new_a
    assert target.get(new_b)["Name"] == PDFString(b"B")


def test_shared_object_is_copied_once() -> None:
    source = PDFFile.new()
    shared = source.add_object({"Shared": True})
    holder = source.add_object({"First": shared, "Second": [shared, {"Third": shared}]})

    target = PDFFile.new()
    new_holder = copy_subgraph(source, target, holder)
    copied = target.get(new_holder)
    assert copied["First"] == copied["Second"][0] == copied["Second"][1]["Third"]
    assert len(target.store) == 2


def test_flate_stream_is_copied_byte_for_byte() -> None:
    source = PDFFile.new()
    for _ in range(4):
        source.allocate_object()
    payload = zlib.compress(b"hello")
    ref = source.add_object(PDFStream({"Filter": PDFName("FlateDecode"), "Length": len(payload)}, payload, True))
    assert ref.obj_id == 5

    target = PDFFile.new()
    new_ref = copy_subgraph(source, target, ref)
    stream = target.get(new_ref)
    assert stream.data == payload
    assert stream.filtered
    assert "Length" not in stream.dictionary
    assert decode_stream(stream) == b"hello"


def test_foreign_filter_is_decoded_for_the_target() -> None:
    source = PDFFile.new()
    hexed = binascii.hexlify(b"hex payload") + b">"
    ref = source.add_object(PDFStream({"Filter": PDFName("ASCIIHexDecode")}, hexed, True))

    target = PDFFile.new(BuilderConfig(compression=Compression.FLATE))
    cache = CopyCache()
    stream = target.get(copy_subgraph(source, target, ref, cache))
    assert stream.data == b"hex payload"
    assert not stream.filtered
    assert "Filter" not in stream.dictionary
    assert cache.stats.refiltered_streams == 1

    target.set_root(target.add_object({"Type": PDFName("Catalog"), "S": target.ref_of(stream)}))
    written = PDFFile.from_bytes(target.to_bytes())
    reread = written.get(target.ref_of(stream))
    assert reread.dictionary["Filter"] == PDFName("FlateDecode")
    assert decode_stream(reread) == b"hex payload"


def test_undecodable_stream_passes_through() -> None:
    source = PDFFile.new()
    jpeg = b"\xff\xd8\xff\xe0 not really a jpeg"
    ref = source.add_object(PDFStream({"Filter": PDFName("DCTDecode"), "Width": 1}, jpeg, True))

    target = PDFFile.new()
    cache = CopyCache()
    stream = target.get(copy_subgraph(source, target, ref, cache))
    assert stream.data == jpeg
    assert stream.filtered
    assert stream.dictionary == {"Width": 1, "Filter": PDFName("DCTDecode")}
    assert cache.stats.passthrough_streams == 1


def test_unfiltered_stream_is_left_to_the_writer() -> None:
    source = PDFFile.new()
    ref = source.add_object(PDFStream({}, b"raw content"))
    target = PDFFile.new()
    stream = target.get(copy_subgraph(source, target, ref))
    assert stream == PDFStream({}, b"raw content", False)


def test_dangling_reference_copies_as_null() -> None:
    source = PDFFile.new()
    ref = source.add_object({"Missing": PDFReference(40, 0)})
    target = PDFFile.new()
    copied = target.get(copy_subgraph(source, target, ref))
    assert copied == {"Missing": None}
    assert len(source.warnings) == 1


def test_keys_restrict_the_top_level() -> None:
    source = PDFFile.new()
    big = source.add_object({"Big": True})
    ref = source.add_object({"Keep": 1, "Skip": big, "Also": PDFName("Yes")})
    target = PDFFile.new()
    copied = target.get(copy_subgraph(source, target, ref, keys=["Keep", "Also", "Absent"]))
    assert copied == {"Keep": 1, "Also": PDFName("Yes")}
    assert len(target.store) == 1


def test_back_references_are_not_followed() -> None:
    source = PDFFile.new()
    pages = source.allocate_object()
    page = source.add_object({"Type": PDFName("Page"), "Parent": pages, "Rotate": 90})
    source.put(pages, {"Type": PDFName("Pages"), "Kids": [page], "Count": 1})

    target = PDFFile.new()
    copied = target.get(copy_subgraph(source, target, page))
    assert copied == {"Type": PDFName("Page"), "Rotate": 90}
    assert len(target.store) == 1


def test_back_references_to_copied_objects_are_rewritten() -> None:
    source = PDFFile.new()
    pages = source.allocate_object()
    page = source.add_object({"Type": PDFName("Page"), "Parent": pages})
    source.put(pages, {"Type": PDFName("Pages"), "Kids": [page], "Count": 1})

    target = PDFFile.new()
    new_pages = copy_subgraph(source, target, pages)
    new_page = target.get(new_pages)["Kids"][0]
    assert target.get(new_page)["Parent"] == new_pages


def test_source_graph_is_left_untouched() -> None:
    source = PDFFile.new()
    child = source.add_object(PDFStream({"Filter": PDFName("ASCIIHexDecode")}, b"4142>", True))
    root = source.add_object({"Child": child, "List": [child, 1.5]})
    before = copy.deepcopy([source.get(root), source.get(child)])

    copy_subgraph(source, PDFFile.new(), root)
    assert [source.get(root), source.get(child)] == before
    assert source.store.dirty_refs() == [child, root]


def test_cache_is_shared_between_calls() -> None:
    source = PDFFile.new()
    font = source.add_object({"Type": PDFName("Font")})
    first = source.add_object({"Font": font})
    second = source.add_object({"Font": font})

    target = PDFFile.new()
    cache = CopyCache()
    one = target.get(copy_subgraph(source, target, first, cache))
    two = target.get(copy_subgraph(source, target, second, cache))
    assert one["Font"] == two["Font"]
    assert len(target.store) == 3
    assert len(cache) == 3


def test_direct_values_are_copied() -> None:
    source = PDFFile.new()
    target = PDFFile.new()
    value = {"Box": [0, 0, 10, 10], "Name": PDFName("N")}
    copied = copy_subgraph(source, target, value)
    assert copied == value
    assert copied is not value
    assert copied["Box"] is not value["Box"]
    assert len(target.store) == 0
