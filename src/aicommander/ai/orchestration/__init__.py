"""Command orchestration: the controller and its single-flight guard."""

from .controller import (
    ActiveDocument,
    CommandController,
    CommandResult,
    LoggingNotifier,
    Notifier,
    PromptDialog,
    StaticPromptDialog,
)
from .session_lock import SessionGuard

__all__ = [
    "ActiveDocument",
    "CommandController",
    "CommandResult",
    "LoggingNotifier",
    "Notifier",
    "PromptDialog",
    "SessionGuard",
    "StaticPromptDialog",
]
