"""Attachment storage abstraction and a directory-backed implementation.

Paths handed to and returned from a :class:`Vault` are vault-relative POSIX
strings (``"notes/paper.pdf"``), never absolute filesystem paths.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
from pathlib import Path
from typing import List, Protocol, runtime_checkable

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class Vault(Protocol):
    """Storage operations consumed by the resolver and attachment writer."""

    @property
    def attachment_folder(self) -> str:
        """Configured attachment root: ``""``/``"/"``, ``"./sub"`` or ``"name"``."""
        ...

    async def read_binary(self, path: str) -> bytes:
        ...

    async def exists(self, path: str) -> bool:
        ...

    async def create_binary(self, path: str, data: bytes) -> None:
        ...

    async def create_folder(self, path: str) -> None:
        ...

    async def list_files(self) -> List[str]:
        ...


def normalize_path(path: str) -> str:
    """Normalize a vault path: forward slashes, no duplicate/leading ``/``."""

    cleaned = path.replace("\\", "/").strip()
    while "//" in cleaned:
        cleaned = cleaned.replace("//", "/")
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    cleaned = cleaned.strip("/")
    if not cleaned or cleaned == ".":
        return ""
    return posixpath.normpath(cleaned)


def parent_folder(path: str) -> str:
    """Return the folder containing ``path`` (``""`` for the vault root)."""

    return posixpath.dirname(normalize_path(path))


def join_path(*parts: str) -> str:
    return normalize_path("/".join(part for part in parts if part))


class DirectoryVault:
    """:class:`Vault` backed by a directory on the local filesystem."""

    def __init__(self, root: Path | str, *, attachment_folder: str = "") -> None:
        self._root = Path(root).expanduser().resolve()
        self._attachment_folder = attachment_folder

    @property
    def root(self) -> Path:
        return self._root

    @property
    def attachment_folder(self) -> str:
        return self._attachment_folder

    async def read_binary(self, path: str) -> bytes:
        target = self._resolve(path)
        return await asyncio.to_thread(target.read_bytes)

    async def exists(self, path: str) -> bool:
        if not normalize_path(path):
            return False
        try:
            target = self._resolve(path)
        except ValueError:
            # Outside the vault: never a match, but reads and writes still refuse it.
            return False
        return await asyncio.to_thread(target.exists)

    async def create_binary(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        if await asyncio.to_thread(target.exists):
            raise FileExistsError(path)
        await asyncio.to_thread(target.write_bytes, data)
        LOGGER.debug("Wrote %s byte(s) to %s", len(data), path)

    async def create_folder(self, path: str) -> None:
        target = self._resolve(path)
        await asyncio.to_thread(target.mkdir, parents=True, exist_ok=True)

    async def list_files(self) -> List[str]:
        return await asyncio.to_thread(self._walk)

    def relative_path(self, path: Path | str) -> str:
        """Return the vault-relative form of a filesystem ``path``."""

        resolved = Path(path).expanduser().resolve()
        return resolved.relative_to(self._root).as_posix()

    def _walk(self) -> List[str]:
        files = [
            item.relative_to(self._root).as_posix()
            for item in self._root.rglob("*")
            if item.is_file()
        ]
        return sorted(files)

    def _resolve(self, path: str) -> Path:
        normalized = normalize_path(path)
        target = (self._root / normalized).resolve()
        if target != self._root and self._root not in target.parents:
            raise ValueError(f"Path escapes the vault: {path}")
        return target


__all__ = ["Vault", "DirectoryVault", "normalize_path", "parent_folder", "join_path"]
