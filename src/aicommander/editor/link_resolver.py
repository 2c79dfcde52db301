"""Locate the attachment link nearest to the cursor and resolve it in the vault."""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass
from typing import Iterable, List, Sequence
from urllib.parse import unquote

from ..core.media import AUDIO_EXTENSIONS, PDF_EXTENSIONS
from ..ai.errors import FileNotFound, NoActiveDocument, NoLinkFound
from .vault import Vault, join_path, normalize_path, parent_folder

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class LinkMatcher:
    """Named regex whose ``target`` group captures the linked file path."""

    name: str
    pattern: re.Pattern[str]

    def finditer(self, text: str) -> Iterable[re.Match[str]]:
        return self.pattern.finditer(text)


@dataclass(slots=True, frozen=True)
class LinkMatch:
    """A link found in the document text."""

    target: str
    start: int
    end: int
    matcher: str


def _extension_group(extensions: Sequence[str]) -> str:
    return "|".join(re.escape(ext) for ext in extensions)


def wiki_link_matcher(extensions: Sequence[str], *, name: str = "wiki") -> LinkMatcher:
    """Match ``[[file.ext]]``, ``[[folder/file.ext|alias]]`` and ``![[file.ext]]``."""

    pattern = re.compile(
        r"\[\[(?P<target>[^\[\]|#]+?\.(?:" + _extension_group(extensions) + r"))"
        r"(?:[|#][^\[\]]*)?\]\]",
        re.IGNORECASE,
    )
    return LinkMatcher(name=name, pattern=pattern)


def markdown_link_matcher(extensions: Sequence[str], *, name: str = "markdown") -> LinkMatcher:
    """Match ``[label](file.ext)`` and ``![label](<folder/file name.ext>)``."""

    pattern = re.compile(
        r"\[[^\[\]]*\]\(\s*<?(?P<target>[^()<>]+?\.(?:" + _extension_group(extensions) + r"))>?\s*\)",
        re.IGNORECASE,
    )
    return LinkMatcher(name=name, pattern=pattern)


def pdf_link_matchers() -> List[LinkMatcher]:
    return [markdown_link_matcher(PDF_EXTENSIONS), wiki_link_matcher(PDF_EXTENSIONS)]


def audio_link_matchers() -> List[LinkMatcher]:
    return [wiki_link_matcher(AUDIO_EXTENSIONS), markdown_link_matcher(AUDIO_EXTENSIONS)]


def find_links(text: str, matchers: Sequence[LinkMatcher]) -> List[LinkMatch]:
    """Return every match of every matcher, matcher order first, then text order."""

    found: List[LinkMatch] = []
    for matcher in matchers:
        for match in matcher.finditer(text):
            found.append(
                LinkMatch(
                    target=match.group("target"),
                    start=match.start(),
                    end=match.end(),
                    matcher=matcher.name,
                )
            )
    return found


def find_nearest_link(text: str, cursor_offset: int, matchers: Sequence[LinkMatcher]) -> LinkMatch:
    """Return the match whose start is closest to ``cursor_offset``.

    Ties keep the first match found. Raises :class:`NoLinkFound` when nothing
    matches.
    """

    nearest: LinkMatch | None = None
    best_distance = 0
    for match in find_links(text, matchers):
        distance = abs(match.start - cursor_offset)
        if nearest is None or distance < best_distance:
            nearest = match
            best_distance = distance
    if nearest is None:
        raise NoLinkFound()
    return nearest


def clean_link_target(target: str) -> str:
    return normalize_path(unquote(target))


def candidate_paths(link: str, *, attachment_folder: str, document_path: str) -> List[str]:
    """Return the vault paths ``link`` may refer to, most specific first."""

    current_folder = parent_folder(document_path)
    if link.startswith("../"):
        return [join_path(current_folder, link)]
    root = (attachment_folder or "").strip()
    if "/" in link or root in ("", "/"):
        return [link]
    if root.startswith("./") or root == ".":
        return [join_path(current_folder, root[2:], link)]
    named = normalize_path(root)
    candidates = [join_path(current_folder, named, link), join_path(named, link)]
    return list(dict.fromkeys(candidates))


class LinkResolver:
    """Resolve the link nearest to the cursor into an existing vault path."""

    def __init__(self, vault: Vault) -> None:
        self._vault = vault

    async def resolve(
        self,
        text: str,
        cursor_offset: int,
        matchers: Sequence[LinkMatcher],
        *,
        document_path: str | None,
    ) -> str:
        if document_path is None:
            raise NoActiveDocument()
        match = find_nearest_link(text, cursor_offset, matchers)
        link = clean_link_target(match.target)
        candidates = candidate_paths(
            link,
            attachment_folder=self._vault.attachment_folder,
            document_path=document_path,
        )
        LOGGER.debug(
            "Resolving link %r from %s (attachment folder=%r): candidates=%s",
            link,
            document_path,
            self._vault.attachment_folder,
            candidates,
        )
        for candidate in candidates:
            if await self._vault.exists(candidate):
                return candidate

        filename = posixpath.basename(link)
        for path in await self._vault.list_files():
            if posixpath.basename(path) == filename:
                LOGGER.debug("Resolved %r by filename search: %s", link, path)
                return path
        raise FileNotFound(message=f"File not found: {link}", path=link)


async def resolve_link(
    text: str,
    cursor_offset: int,
    matchers: Sequence[LinkMatcher],
    *,
    vault: Vault,
    document_path: str | None,
) -> str:
    """Functional shortcut for :meth:`LinkResolver.resolve`."""

    return await LinkResolver(vault).resolve(
        text, cursor_offset, matchers, document_path=document_path
    )


__all__ = [
    "AUDIO_EXTENSIONS",
    "PDF_EXTENSIONS",
    "LinkMatcher",
    "LinkMatch",
    "LinkResolver",
    "wiki_link_matcher",
    "markdown_link_matcher",
    "pdf_link_matchers",
    "audio_link_matchers",
    "find_links",
    "find_nearest_link",
    "clean_link_target",
    "candidate_paths",
    "resolve_link",
]
