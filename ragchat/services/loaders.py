# =============================================================================
# Document Loaders — Text, Paginated PDF (Docling), Tabular Records
# =============================================================================
#
# Every loader turns one source into a list of Documents. The caller picks
# the loader that matches the source kind; nothing here inspects a source to
# guess its type.
#
#   DocumentLoader (Protocol)
#   ├── TextLoader      — one Document per text file
#   ├── PagedPdfLoader  — one Document per page (or page group), Docling
#   └── RecordLoader    — one Document per record of a RecordSource
#
# Loads are atomic: a loader either returns every Document of the source or
# raises SourceUnavailable / ParseError. No partial lists are returned.
#
# DESIGN DECISION: Our own Document dataclass rather than Docling types.
# The chunker and stores never see the parsing library; swapping Docling for
# another PDF backend only changes PagedPdfLoader.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError

from ragchat.exceptions import ParseError, SourceUnavailable

logger = logging.getLogger(__name__)

MetadataValue = str | int | float | bool


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Document:
    """
    A raw document produced by a loader.

    Immutable once produced. Use `with_metadata()` to get a copy with
    extra provenance keys (filename, version, ...).
    """

    content: str
    metadata: dict[str, MetadataValue] = field(default_factory=dict)

    def with_metadata(self, **extra: MetadataValue) -> Document:
        """Return a copy whose metadata is extended with `extra`."""
        return Document(content=self.content, metadata={**self.metadata, **extra})


# ---------------------------------------------------------------------------
# Protocol Definitions
# ---------------------------------------------------------------------------


class DocumentLoader(Protocol):
    """Capability shared by every loader variant."""

    def load(self, source: Any) -> list[Document]:
        """
        Load all documents from `source`.

        Raises:
            SourceUnavailable: The source cannot be opened.
            ParseError: The content cannot be decoded.
        """
        ...


class RecordSource(Protocol):
    """Anything that can list its records (e.g. SqlRecordStore)."""

    def find_all(self) -> Sequence[Mapping[str, Any]]:
        ...


# ---------------------------------------------------------------------------
# Variant 1: Plain Text
# ---------------------------------------------------------------------------


class TextLoader:
    """Loads a whole text file as a single Document."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding

    def load(self, source: str | Path) -> list[Document]:
        path = Path(source)
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise SourceUnavailable(f"Cannot open '{path}': {exc}") from exc

        try:
            content = raw.decode(self.encoding)
        except UnicodeDecodeError as exc:
            raise ParseError(
                f"'{path.name}' is not valid {self.encoding}: {exc}"
            ) from exc

        logger.info("Loaded text file '%s' (%d chars)", path.name, len(content))
        return [Document(content=content, metadata={"filename": path.name})]


# ---------------------------------------------------------------------------
# Variant 2: Paginated PDF (Docling)
# ---------------------------------------------------------------------------

_converter = None


def _get_converter():
    """Lazily initialize and cache the Docling DocumentConverter."""
    global _converter
    if _converter is None:
        from docling.datamodel.base_models import InputFormat
        from docling.datamodel.pipeline_options import PdfPipelineOptions
        from docling.document_converter import DocumentConverter, PdfFormatOption

        logger.info(
            "Initializing Docling DocumentConverter "
            "(first use, may take a few seconds)..."
        )
        pipeline_options = PdfPipelineOptions()
        pipeline_options.do_table_structure = True
        pipeline_options.do_ocr = True

        _converter = DocumentConverter(
            format_options={
                InputFormat.PDF: PdfFormatOption(
                    pipeline_options=pipeline_options,
                ),
            }
        )
    return _converter


def trim_lines(text: str, top: int = 0, bottom: int = 0) -> str:
    """
    Drop the first `top` and last `bottom` non-blank lines of a page.

    Used to strip running headers and footer boilerplate (page numbers,
    confidentiality notices) before the page text is chunked.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    end = len(lines) - bottom if bottom > 0 else len(lines)
    return "\n".join(lines[top:end])


class PagedPdfLoader:
    """
    Loads a PDF as one Document per page (or per group of pages).

    Page text is rebuilt from Docling's reading-order items; each item is
    one or more lines. Tables are rendered as markdown.

    Args:
        pages_per_document: Pages merged into one Document. 0 merges the
            whole file into a single Document.
        trim_top_lines: Lines removed from the top of every page.
        trim_bottom_lines: Lines removed from the bottom of every page.
    """

    def __init__(
        self,
        pages_per_document: int = 1,
        trim_top_lines: int = 0,
        trim_bottom_lines: int = 0,
    ) -> None:
        if pages_per_document < 0:
            raise ValueError("pages_per_document must be >= 0")
        if trim_top_lines < 0 or trim_bottom_lines < 0:
            raise ValueError("trim line counts must be >= 0")
        self.pages_per_document = pages_per_document
        self.trim_top_lines = trim_top_lines
        self.trim_bottom_lines = trim_bottom_lines

    def load(self, source: str | Path) -> list[Document]:
        path = Path(source)
        if not path.is_file():
            raise SourceUnavailable(f"PDF not found: {path}")

        logger.info("Parsing PDF: %s", path.name)
        try:
            result = _get_converter().convert(str(path))
        except Exception as exc:
            raise ParseError(
                f"Docling failed to parse '{path.name}': {exc}"
            ) from exc

        pages = self._page_texts(result.document)
        documents = [
            doc for doc in self._group_pages(pages, path.name) if doc.content
        ]

        logger.info(
            "Parsed '%s': %d pages, %d documents (trim top=%d, bottom=%d)",
            path.name, len(pages), len(documents),
            self.trim_top_lines, self.trim_bottom_lines,
        )
        return documents

    def _page_texts(self, document: Any) -> dict[int, str]:
        """Collect the trimmed text of every page, keyed by page number."""
        lines_by_page: dict[int, list[str]] = {
            page_no: [] for page_no in getattr(document, "pages", {}) or {}
        }

        for item, _level in document.iterate_items():
            page_no = item.prov[0].page_no if getattr(item, "prov", None) else 0
            text = _item_text(item, document)
            if text:
                lines_by_page.setdefault(page_no, []).append(text)

        return {
            page_no: trim_lines(
                "\n".join(lines),
                top=self.trim_top_lines,
                bottom=self.trim_bottom_lines,
            )
            for page_no, lines in sorted(lines_by_page.items())
        }

    def _group_pages(self, pages: dict[int, str], filename: str) -> list[Document]:
        page_numbers = sorted(pages)
        size = self.pages_per_document or max(len(page_numbers), 1)

        documents: list[Document] = []
        for start in range(0, len(page_numbers), size):
            group = page_numbers[start:start + size]
            content = "\n".join(pages[n] for n in group if pages[n])
            metadata: dict[str, MetadataValue] = {
                "filename": filename,
                "page_number": group[0],
            }
            if len(group) > 1:
                metadata["end_page_number"] = group[-1]
            documents.append(Document(content=content, metadata=metadata))
        return documents


def _item_text(item: Any, document: Any) -> str:
    """Text of a Docling item; tables are exported as markdown."""
    if hasattr(item, "export_to_dataframe"):
        try:
            return item.export_to_dataframe().to_markdown(index=False).strip()
        except Exception as exc:
            logger.warning("Table export to DataFrame failed: %s", exc)
    text = getattr(item, "text", "") or ""
    return text.strip()


# ---------------------------------------------------------------------------
# Variant 3: Tabular Records
# ---------------------------------------------------------------------------


class RecordLoader:
    """
    Loads one Document per record, formatting selected fields as text.

    Example content for fields ("id", "name", "description"):
        "id: 1, name: Rex, description: A friendly dog"
    """

    def __init__(
        self,
        fields: Sequence[str] = ("id", "name", "description"),
        key_field: str = "id",
    ) -> None:
        if not fields:
            raise ValueError("RecordLoader needs at least one field")
        self.fields = tuple(fields)
        self.key_field = key_field

    def load(self, source: RecordSource) -> list[Document]:
        try:
            records = list(source.find_all())
        except (SQLAlchemyError, OSError) as exc:
            raise SourceUnavailable(f"Cannot read records: {exc}") from exc

        documents = [self._to_document(record) for record in records]
        logger.info("Loaded %d records as documents", len(documents))
        return documents

    def _to_document(self, record: Mapping[str, Any]) -> Document:
        missing = [
            name for name in (*self.fields, self.key_field) if name not in record
        ]
        if missing:
            raise ParseError(f"Record is missing fields {missing}: {dict(record)}")

        content = ", ".join(f"{name}: {record[name]}" for name in self.fields)
        key = record[self.key_field]
        if not isinstance(key, (str, int, float, bool)):
            key = str(key)
        return Document(content=content, metadata={"record_id": key})
