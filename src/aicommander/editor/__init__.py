"""Editor package containing the document buffer, vault and streaming writer."""

from .buffer import DocumentBuffer, LineBuffer, Position, Selection
from .stream_writer import StreamingDocumentWriter
from .vault import DirectoryVault, Vault

__all__ = [
    "DocumentBuffer",
    "LineBuffer",
    "Position",
    "Selection",
    "StreamingDocumentWriter",
    "DirectoryVault",
    "Vault",
]
