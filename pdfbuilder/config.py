"""Configuration passed explicitly to files and documents."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, FrozenSet, List, Optional

from .filters import Compression

_VERSION_RE = re.compile(r"^(?:1\.)?(\d+)$")

DEFAULT_WEAK_KEYS: FrozenSet[str] = frozenset({"Parent", "P"})


def normalize_version(version: Any) -> str:
    """Accept ``"1.5"``, ``"5"`` or ``5`` and return ``"1.5"``."""

    match = _VERSION_RE.match(str(version).strip())
    if not match:
        raise ValueError(f"Invalid PDF version {version!r}")
    return f"1.{int(match.group(1))}"


@dataclass
class BuilderConfig:
    """Settings shared by the object model, writer and builder layer."""

    # Writing
    compression: Compression = Compression.FLATE
    version: str = "1.4"
    prune_unreachable: bool = False

    # Traversal: keys holding back-references that reachability and
    # copying must not follow
    weak_keys: FrozenSet[str] = DEFAULT_WEAK_KEYS

    # Page import
    copy_annotations: bool = False

    # Font search path, replaces a process-wide directory list
    font_dirs: List[str] = field(default_factory=list)

    # Logging
    log_level: Optional[str] = None

    def __post_init__(self) -> None:
        self.compression = Compression.coerce(self.compression)
        self.version = normalize_version(self.version)
        self.weak_keys = frozenset(self.weak_keys)
        if self.log_level:
            level = getattr(logging, self.log_level.upper(), logging.INFO)
            logging.getLogger("pdfbuilder").setLevel(level)

    @classmethod
    def from_options(cls, **options: Any) -> "BuilderConfig":
        """Build a config from builder-style options.

        Leading dashes and case are ignored, so ``compress='none'``,
        ``-compress=0`` and ``compression=Compression.NONE`` are equivalent.
        """

        kwargs = {}
        for key, value in options.items():
            name = re.sub(r"[^a-z\d_]", "", key.lower())
            if name == "compress":
                name = "compression"
            elif name == "copyannots":
                name = "copy_annotations"
            if name not in cls.__dataclass_fields__:
                raise TypeError(f"Unknown option {key!r}")
            kwargs[name] = value
        return cls(**kwargs)

    def add_font_dir(self, path: str | os.PathLike) -> List[str]:
        directory = os.fspath(path)
        if directory not in self.font_dirs:
            self.font_dirs.append(directory)
        return list(self.font_dirs)

    def find_font_file(self, name: str) -> Optional[Path]:
        """First ``name`` found as-is or inside one of :attr:`font_dirs`."""

        candidate = Path(name)
        if candidate.is_file():
            return candidate
        for directory in self.font_dirs:
            candidate = Path(directory) / name
            if candidate.is_file():
                return candidate
        return None


__all__ = ["BuilderConfig", "DEFAULT_WEAK_KEYS", "normalize_version"]
