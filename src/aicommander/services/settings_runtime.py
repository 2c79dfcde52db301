"""Apply settings changes at runtime: persist immediately, then notify."""

from __future__ import annotations

import logging
from dataclasses import fields, replace
from typing import Any, Callable, List

from ..commands import CommandRegistry
from .settings import Settings, SettingsStore, validate_choice

LOGGER = logging.getLogger(__name__)

SettingsListener = Callable[[Settings], None]


class SettingsRuntime:
    """Single mutation path for :class:`Settings` while the app is running.

    Every :meth:`update` persists the whole settings object and re-derives
    the custom commands before listeners run.
    """

    def __init__(
        self,
        store: SettingsStore,
        settings: Settings,
        registry: CommandRegistry | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._registry = registry
        self._listeners: List[SettingsListener] = []

    @property
    def settings(self) -> Settings:
        return self._settings

    def add_listener(self, listener: SettingsListener) -> None:
        self._listeners.append(listener)

    def update(self, **changes: Any) -> Settings:
        allowed = {field.name for field in fields(Settings)}
        unknown = sorted(set(changes) - allowed)
        if unknown:
            raise KeyError(f"Unknown setting(s): {', '.join(unknown)}")
        for name, value in changes.items():
            validate_choice(name, value)

        updated = replace(self._settings, **changes)
        self._store.save(updated)
        self._settings = updated
        LOGGER.info("Settings updated: %s", ", ".join(sorted(changes)) or "(none)")
        if self._registry is not None:
            self._registry.rebuild(updated)
        for listener in list(self._listeners):
            listener(updated)
        return updated


__all__ = ["SettingsRuntime", "SettingsListener"]
