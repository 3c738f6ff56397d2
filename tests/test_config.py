from __future__ import annotations

import logging
from pathlib import Path

import pytest

from pdfbuilder.config import DEFAULT_WEAK_KEYS, BuilderConfig, normalize_version
from pdfbuilder.filters import Compression


def test_defaults() -> None:
    config = BuilderConfig()
    assert config.compression is Compression.FLATE
    assert config.version == "1.4"
    assert config.weak_keys == DEFAULT_WEAK_KEYS == frozenset({"Parent", "P"})
    assert not config.prune_unreachable
    assert not config.copy_annotations


@pytest.mark.parametrize(
    "options, expected",
    [
        ({"compress": "none"}, Compression.NONE),
        ({"compress": "flate"}, Compression.FLATE),
        ({"-compress": 0}, Compression.NONE),
        ({"Compress": 1}, Compression.FLATE),
        ({"compression": Compression.NONE}, Compression.NONE),
    ],
)
def test_from_options_normalises_compression(options, expected) -> None:
    assert BuilderConfig.from_options(**options).compression is expected


def test_from_options_other_keys() -> None:
    config = BuilderConfig.from_options(copyannots=True, version="5")
    assert config.copy_annotations
    assert config.version == "1.5"
    with pytest.raises(TypeError):
        BuilderConfig.from_options(nounrotate=1)


@pytest.mark.parametrize("value, expected", [("1.7", "1.7"), ("3", "1.3"), (4, "1.4"), (" 1.2 ", "1.2")])
def test_normalize_version(value, expected) -> None:
    assert normalize_version(value) == expected


@pytest.mark.parametrize("value", ["2.0", "abc", "", "1.x"])
def test_normalize_version_rejects(value) -> None:
    with pytest.raises(ValueError):
        normalize_version(value)


def test_font_search_path(tmp_path: Path) -> None:
    fonts = tmp_path / "fonts"
    fonts.mkdir()
    (fonts / "Sample.ttf").write_bytes(b"\x00\x01\x00\x00")
    config = BuilderConfig()
    assert config.find_font_file("Sample.ttf") is None
    assert config.add_font_dir(fonts) == [str(fonts)]
    assert config.add_font_dir(fonts) == [str(fonts)]
    assert config.find_font_file("Sample.ttf") == fonts / "Sample.ttf"
    assert BuilderConfig().font_dirs == []


def test_log_level_applies_to_package_logger() -> None:
    logger = logging.getLogger("pdfbuilder")
    previous = logger.level
    try:
        BuilderConfig(log_level="debug")
        assert logger.level == logging.DEBUG
    finally:
        logger.setLevel(previous)
