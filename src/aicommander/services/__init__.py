"""Service layer helpers (settings, PDF text extraction)."""

from .settings import Settings, SettingsStore

__all__ = ["Settings", "SettingsStore"]
