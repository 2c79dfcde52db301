"""AI client, prompt context and command orchestration."""

from .client import AIClient, ClientSettings
from .errors import CommanderError

__all__ = ["AIClient", "ClientSettings", "CommanderError"]
