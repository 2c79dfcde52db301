"""Persist generated images and render the markdown that embeds them."""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
import string
from dataclasses import dataclass
from typing import Callable
from urllib.parse import quote

from ..ai.errors import InvalidInput, UnexpectedResponse
from ..core.media import IMAGE_SAVE_MODES
from .vault import Vault, join_path, normalize_path, parent_folder

LOGGER = logging.getLogger(__name__)

_NAME_ALPHABET = string.ascii_letters + string.digits
_NAME_LENGTH = 20
_MAX_NAME_ATTEMPTS = 16


def random_image_name(length: int = _NAME_LENGTH) -> str:
    return "".join(secrets.choice(_NAME_ALPHABET) for _ in range(length))


def attachment_folder_for(document_path: str | None, attachment_folder: str) -> str:
    """Return the vault folder new attachments go to for ``document_path``."""

    root = (attachment_folder or "").strip()
    if root.startswith("./") or root == ".":
        return join_path(parent_folder(document_path or ""), root[2:])
    return normalize_path(root)


def image_markdown(target: str, size: str) -> str:
    """Render ``![<width>](<target>)``; the alt text carries the pixel width."""

    width = size.split("x", 1)[0]
    return f"![{width}]({target})"


@dataclass(slots=True, frozen=True)
class StoredImage:
    """Where an image ended up and the markdown that references it."""

    markdown: str
    path: str | None = None


class AttachmentStore:
    """Save base64 PNG data either as a vault file or as an inline data URI."""

    def __init__(
        self,
        vault: Vault,
        *,
        save_mode: str = "attachment",
        name_factory: Callable[[], str] = random_image_name,
    ) -> None:
        if save_mode not in IMAGE_SAVE_MODES:
            raise ValueError(f"save_mode must be one of {', '.join(IMAGE_SAVE_MODES)}")
        self._vault = vault
        self._save_mode = save_mode
        self._name_factory = name_factory

    @property
    def save_mode(self) -> str:
        return self._save_mode

    async def store(self, b64_data: str, *, size: str, document_path: str | None) -> StoredImage:
        if self._save_mode == "base64":
            return StoredImage(markdown=image_markdown(f"data:image/png;base64,{b64_data}", size))
        data = _decode(b64_data)
        folder = attachment_folder_for(document_path, self._vault.attachment_folder)
        if folder and not await self._vault.exists(folder):
            await self._vault.create_folder(folder)
        path = await self._unused_path(folder)
        await self._vault.create_binary(path, data)
        LOGGER.info("Saved generated image to %s", path)
        return StoredImage(markdown=image_markdown(quote(path, safe="/"), size), path=path)

    async def _unused_path(self, folder: str) -> str:
        for _ in range(_MAX_NAME_ATTEMPTS):
            candidate = join_path(folder, f"{self._name_factory()}.png")
            if not await self._vault.exists(candidate):
                return candidate
        raise InvalidInput(message="Could not find an unused attachment name.")


def _decode(b64_data: str) -> bytes:
    try:
        return base64.b64decode(b64_data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise UnexpectedResponse(message="Image data is not valid base64.") from exc


__all__ = [
    "AttachmentStore",
    "StoredImage",
    "attachment_folder_for",
    "image_markdown",
    "random_image_name",
]
