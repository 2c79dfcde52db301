"""Page-indexed PDF text extraction backed by pypdf."""

from __future__ import annotations

import io
import logging
import re
from typing import Any, List

from pypdf import PdfReader

from ..ai.errors import InvalidInput

_LOGGER = logging.getLogger(__name__)
_WHITESPACE_RE = re.compile(r"\s+")


class PdfTextExtractor:
    """Convert PDF bytes into one plain-text string per page."""

    def __init__(self, *, reader_cls: type | None = None) -> None:
        self._reader_cls = reader_cls or PdfReader

    def extract_pages(self, data: bytes) -> List[str]:
        if not data:
            raise InvalidInput(message="The PDF file is empty.")
        try:
            reader: Any = self._reader_cls(io.BytesIO(data))
        except Exception as exc:
            raise InvalidInput(message=f"Unable to open PDF: {exc}") from exc

        pages: List[str] = []
        for index, page in enumerate(getattr(reader, "pages", [])):
            extractor = getattr(page, "extract_text", None)
            if not callable(extractor):
                _LOGGER.debug("PDF page %s missing extract_text; using empty text.", index)
                pages.append("")
                continue
            try:
                pages.append(str(extractor() or ""))
            except Exception as exc:  # pragma: no cover - depends on malformed PDFs
                _LOGGER.debug("Failed to extract page %s: %s", index, exc)
                pages.append("")
        _LOGGER.debug("Extracted text from %s PDF page(s)", len(pages))
        return pages


def normalize_page_text(text: str) -> str:
    """Collapse every whitespace run into a single space."""

    return _WHITESPACE_RE.sub(" ", text)


def format_pages(pages: List[str]) -> str:
    """Render pages as ``"Page {n}: {text}\\n"`` lines, numbered from 1."""

    return "".join(
        f"Page {number}: {normalize_page_text(text)}\n"
        for number, text in enumerate(pages, start=1)
    )


__all__ = ["PdfTextExtractor", "normalize_page_text", "format_pages"]
