"""Tests for PDF text extraction helpers."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from aicommander.ai.errors import InvalidInput
from aicommander.services.pdf_text import PdfTextExtractor, format_pages, normalize_page_text
from tests.helpers import StubPdfReader


def test_extract_pages_returns_one_string_per_page() -> None:
    extractor = PdfTextExtractor(reader_cls=StubPdfReader)

    assert extractor.extract_pages(b"alpha\fbeta\f") == ["alpha", "beta", ""]


def test_pages_without_text_become_empty_strings() -> None:
    class _Reader:
        def __init__(self, _stream) -> None:
            self.pages = [SimpleNamespace(extract_text=lambda: None), SimpleNamespace()]

    assert PdfTextExtractor(reader_cls=_Reader).extract_pages(b"%PDF") == ["", ""]


def test_unreadable_or_empty_pdf_raises_invalid_input() -> None:
    extractor = PdfTextExtractor(reader_cls=StubPdfReader)

    with pytest.raises(InvalidInput):
        extractor.extract_pages(b"")
    with pytest.raises(InvalidInput, match="Unable to open PDF"):
        extractor.extract_pages(b"broken bytes")


def test_format_pages_numbers_pages_and_collapses_whitespace() -> None:
    assert normalize_page_text("a \n\t b") == "a b"
    assert format_pages(["one\n two", "", "three"]) == "Page 1: one two\nPage 2: \nPage 3: three\n"
