"""Contracts for the collaborators around the core.

Document parsing and spreadsheet export live outside this package. The
core only needs these two shapes; any object with the right method fits.
"""

from pathlib import Path
from typing import Protocol, runtime_checkable

from cosmic_extractor.pydantic_models.records import Record

MAX_DOCUMENT_BYTES = 50 * 1024 * 1024
TEXT_FORMATS = ("txt", "text", "md", "markdown")


@runtime_checkable
class DocumentSource(Protocol):
    def parse_document(self, data: bytes, declared_format: str) -> str:
        """Plain text of a document (plain text, Markdown, Office XML text)."""
        ...


@runtime_checkable
class SpreadsheetSink(Protocol):
    def records_to_spreadsheet(self, records: list[Record]) -> bytes:
        """Binary spreadsheet file for ``records``."""
        ...


class PlainTextSource:
    """DocumentSource for plain text and Markdown.

    Decodes UTF-8 (with or without BOM), falling back to GB18030 for
    documents saved by older Chinese editors.
    """

    def __init__(self, max_bytes: int = MAX_DOCUMENT_BYTES):
        self.max_bytes = max_bytes

    def parse_document(self, data: bytes, declared_format: str) -> str:
        if declared_format.lower().lstrip(".") not in TEXT_FORMATS:
            raise ValueError(f"Unsupported document format '{declared_format}', expected one of {TEXT_FORMATS}")
        if len(data) > self.max_bytes:
            raise ValueError(f"Document is {len(data)} bytes, limit is {self.max_bytes}")
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError:
            return data.decode("gb18030")

    def read(self, path: str | Path) -> str:
        path = Path(path)
        return self.parse_document(path.read_bytes(), path.suffix or "txt")
