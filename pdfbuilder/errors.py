"""Exception types raised by the pdfbuilder package."""

from __future__ import annotations


class PDFBuilderError(RuntimeError):
    """Base class for every error raised by pdfbuilder."""


class ParseError(PDFBuilderError):
    """Raised when a token or an object body is malformed."""

    def __init__(self, message: str, offset: int | None = None):
        if offset is not None:
            message = f"{message} (at byte {offset})"
        super().__init__(message)
        self.offset = offset


class StructureError(PDFBuilderError):
    """Raised when the trailer, root or cross-reference chain is unusable."""


class UnsupportedFilter(PDFBuilderError):
    """Raised when a stream uses a filter that cannot be decoded."""

    def __init__(self, filter_name: str):
        super().__init__(f"Unsupported stream filter: {filter_name}")
        self.filter_name = filter_name


class IOFailure(PDFBuilderError):
    """Wraps an ``OSError`` raised while reading or writing a file."""


class InvalidStateError(PDFBuilderError):
    """Raised when an operation is not allowed in the file's current state."""


class DanglingReferenceWarning(UserWarning):
    """Recorded (not raised) when a reference does not resolve."""


__all__ = [
    "DanglingReferenceWarning",
    "IOFailure",
    "InvalidStateError",
    "PDFBuilderError",
    "ParseError",
    "StructureError",
    "UnsupportedFilter",
]
