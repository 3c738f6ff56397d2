"""Low-level PDF object model, file reader and writer."""

from .config import BuilderConfig
from .copier import CopyCache, CopyStats, copy_subgraph
from .document import Document, deoptimize
from .errors import (
    DanglingReferenceWarning,
    InvalidStateError,
    IOFailure,
    ParseError,
    PDFBuilderError,
    StructureError,
    UnsupportedFilter,
)
from .file import FileState, PDFFile
from .filters import Compression
from .primitives import PDFName, PDFReference, PDFStream, PDFString, StringEncoding

__all__ = [
    "BuilderConfig",
    "Compression",
    "CopyCache",
    "CopyStats",
    "DanglingReferenceWarning",
    "Document",
    "FileState",
    "IOFailure",
    "InvalidStateError",
    "PDFBuilderError",
    "PDFFile",
    "PDFName",
    "PDFReference",
    "PDFStream",
    "PDFString",
    "ParseError",
    "StringEncoding",
    "StructureError",
    "UnsupportedFilter",
    "copy_subgraph",
    "deoptimize",
]
