"""Media types and sizes accepted by the generation endpoints."""

from __future__ import annotations

AUDIO_EXTENSIONS: tuple[str, ...] = (
    "flac",
    "m4a",
    "mp3",
    "mp4",
    "mpeg",
    "mpga",
    "oga",
    "ogg",
    "wav",
    "webm",
    "mov",
)
PDF_EXTENSIONS: tuple[str, ...] = ("pdf",)
IMAGE_SIZES: tuple[str, ...] = ("256x256", "512x512", "1024x1024")
IMAGE_SAVE_MODES: tuple[str, ...] = ("attachment", "base64")


def file_extension(path: str) -> str:
    """Return the lowercase extension of ``path`` without the dot (``""`` if none)."""

    name = path.rsplit("/", 1)[-1]
    if "." not in name.strip("."):
        return ""
    return name.rsplit(".", 1)[-1].strip().lower()


__all__ = [
    "AUDIO_EXTENSIONS",
    "PDF_EXTENSIONS",
    "IMAGE_SIZES",
    "IMAGE_SAVE_MODES",
    "file_extension",
]
