"""Core constants shared by the editor and AI layers."""

from .media import AUDIO_EXTENSIONS, IMAGE_SAVE_MODES, IMAGE_SIZES, PDF_EXTENSIONS, file_extension

__all__ = ["AUDIO_EXTENSIONS", "PDF_EXTENSIONS", "IMAGE_SIZES", "IMAGE_SAVE_MODES", "file_extension"]
