"""Build the optional system-context entry that accompanies a chat prompt."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from ..services.pdf_text import PdfTextExtractor, format_pages
from .search import SearchClient, build_search_client

LOGGER = logging.getLogger(__name__)

CONTEXT_DOCUMENT = "document"
CONTEXT_SEARCH = "search"

DOCUMENT_CONTEXT_PREAMBLE = (
    "As an assistant who can learn from text given to you, your task is to "
    "incorporate information from text given to you into your answers when "
    "responding to questions. Your response should include the relevant "
    "information from the text given to you and provide attribution by "
    "mentioning the page number. Everything below is the text, which is "
    "extracted from a PDF file: \n\n"
)

SEARCH_CONTEXT_PREAMBLE = (
    "As an assistant who can learn information from web search results, your "
    "task is to incorporate information from a web search API JSON response "
    "into your answers when responding to questions. Your response should "
    "include the relevant information from the JSON and provide attribution by "
    "mentioning the source of information with its url in the format of "
    "markdown. Please note that you should be able to handle various types of "
    "questions and search queries. Your response should also be clear and "
    "concise while incorporating all relevant information from the web search "
    "results. Here are the web search API response in JSON format: \n\n "
)


@dataclass(slots=True, frozen=True)
class ContextEntry:
    """A single system message placed before the user prompt."""

    kind: str
    content: str

    def to_message(self) -> Dict[str, str]:
        return {"role": "system", "content": self.content}


SearchClientFactory = Callable[[Any], SearchClient]


class ContextAssembler:
    """Choose between document context, search context and none.

    A reference document always wins: search is never queried when one is
    supplied, even if search is enabled.
    """

    def __init__(
        self,
        settings: Any,
        *,
        search_client_factory: SearchClientFactory | None = None,
        pdf_extractor: PdfTextExtractor | None = None,
    ) -> None:
        self._settings = settings
        self._search_client_factory = search_client_factory or build_search_client
        self._pdf_extractor = pdf_extractor or PdfTextExtractor()

    async def build(self, prompt: str, *, reference_document: bytes | None = None) -> ContextEntry | None:
        if reference_document is not None:
            return await self.document_context(reference_document)
        if getattr(self._settings, "use_search_engine", False):
            return await self.search_context(prompt)
        return None

    async def document_context(self, data: bytes) -> ContextEntry:
        pages = await asyncio.to_thread(self._pdf_extractor.extract_pages, data)
        LOGGER.debug("Using %s PDF page(s) as prompt context", len(pages))
        return ContextEntry(CONTEXT_DOCUMENT, DOCUMENT_CONTEXT_PREAMBLE + format_pages(pages))

    async def search_context(self, prompt: str) -> ContextEntry:
        client = self._search_client_factory(self._settings)
        results = await client.search(prompt, count=self._settings.search_result_count)
        body = json.dumps([result.to_dict() for result in results], ensure_ascii=False, indent=2)
        return ContextEntry(CONTEXT_SEARCH, SEARCH_CONTEXT_PREAMBLE + body)


def build_messages(prompt: str, context: ContextEntry | None = None) -> List[Dict[str, str]]:
    """Return the chat messages for ``prompt`` with ``context`` first when present."""

    messages: List[Dict[str, str]] = []
    if context is not None:
        messages.append(context.to_message())
    messages.append({"role": "user", "content": prompt})
    return messages


__all__ = [
    "ContextEntry",
    "ContextAssembler",
    "CONTEXT_DOCUMENT",
    "CONTEXT_SEARCH",
    "DOCUMENT_CONTEXT_PREAMBLE",
    "SEARCH_CONTEXT_PREAMBLE",
    "build_messages",
]
