"""Declarative command descriptors and the registry derived from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List

LOGGER = logging.getLogger(__name__)

SELECTED_TEXT_TEMPLATE = (
    "You are an assistant who can learn from the text I give to you. "
    "Here is the text selected:\n\n{selection}\n\n{command}"
)


class Capability(Enum):
    TEXT = "text"
    IMAGE = "image"
    TRANSCRIPT = "transcript"


class PromptSource(Enum):
    DIALOG = "dialog"
    LINE = "line"
    SELECTION = "selection"
    TEMPLATE = "template"
    NONE = "none"


class ContextMode(Enum):
    NONE = "none"
    PDF = "pdf"
    SELECTED_TEXT = "selected_text"


@dataclass(slots=True, frozen=True)
class CommandDescriptor:
    """Everything the controller needs to know to run one command."""

    id: str
    name: str
    capability: Capability
    prompt_source: PromptSource
    context_mode: ContextMode = ContextMode.NONE
    template: str | None = None

    @property
    def uses_selection(self) -> bool:
        return (
            self.prompt_source is PromptSource.SELECTION
            or self.context_mode is ContextMode.SELECTED_TEXT
        )


BUILTIN_COMMANDS: tuple[CommandDescriptor, ...] = (
    CommandDescriptor("text-prompt", "Generate text from prompt", Capability.TEXT, PromptSource.DIALOG),
    CommandDescriptor("img-prompt", "Generate an image from prompt", Capability.IMAGE, PromptSource.DIALOG),
    CommandDescriptor("text-line", "Generate text from the current line", Capability.TEXT, PromptSource.LINE),
    CommandDescriptor("img-line", "Generate an image from the current line", Capability.IMAGE, PromptSource.LINE),
    CommandDescriptor(
        "text-selected", "Generate text from the selected text", Capability.TEXT, PromptSource.SELECTION
    ),
    CommandDescriptor(
        "img-selected", "Generate an image from the selected text", Capability.IMAGE, PromptSource.SELECTION
    ),
    CommandDescriptor(
        "audio-transcript",
        "Generate a transcript from the above audio",
        Capability.TRANSCRIPT,
        PromptSource.NONE,
    ),
    CommandDescriptor(
        "pdf-prompt",
        "Generate text from prompt in context of the above PDF",
        Capability.TEXT,
        PromptSource.DIALOG,
        ContextMode.PDF,
    ),
    CommandDescriptor(
        "pdf-line",
        "Generate text from the current line in context of the above PDF",
        Capability.TEXT,
        PromptSource.LINE,
        ContextMode.PDF,
    ),
    CommandDescriptor(
        "pdf-selected",
        "Generate text from the selected text in context of the above PDF",
        Capability.TEXT,
        PromptSource.SELECTION,
        ContextMode.PDF,
    ),
)


def command_id_for(line: str) -> str:
    return line.lower().replace(" ", "-")


def _custom_lines(raw: str | None) -> Iterator[str]:
    for line in (raw or "").splitlines():
        stripped = line.strip()
        if stripped:
            yield stripped


def build_custom_commands(
    settings: Any, *, reserved: Iterable[str] = ()
) -> List[CommandDescriptor]:
    """Derive commands from the newline-delimited custom prompt settings.

    Ids already in ``reserved`` or produced earlier in the same pass are
    skipped with a warning.
    """

    seen = set(reserved)
    commands: List[CommandDescriptor] = []

    def _add(descriptor: CommandDescriptor) -> None:
        if descriptor.id in seen:
            LOGGER.warning("Skipping duplicate custom command %r", descriptor.id)
            return
        seen.add(descriptor.id)
        commands.append(descriptor)

    for line in _custom_lines(getattr(settings, "prompts_for_selected", "")):
        _add(
            CommandDescriptor(
                id=command_id_for(line),
                name=line,
                capability=Capability.TEXT,
                prompt_source=PromptSource.SELECTION,
                context_mode=ContextMode.SELECTED_TEXT,
                template=line,
            )
        )
    for line in _custom_lines(getattr(settings, "prompts_for_pdf", "")):
        _add(
            CommandDescriptor(
                id=command_id_for(line),
                name=line,
                capability=Capability.TEXT,
                prompt_source=PromptSource.TEMPLATE,
                context_mode=ContextMode.PDF,
                template=line,
            )
        )
    return commands


class CommandRegistry:
    """Built-in commands plus the custom commands derived from settings."""

    def __init__(self, settings: Any | None = None) -> None:
        self._commands: Dict[str, CommandDescriptor] = {}
        self.rebuild(settings)

    def rebuild(self, settings: Any | None) -> None:
        commands: Dict[str, CommandDescriptor] = {cmd.id: cmd for cmd in BUILTIN_COMMANDS}
        if settings is not None:
            for descriptor in build_custom_commands(settings, reserved=commands):
                commands[descriptor.id] = descriptor
        self._commands = commands
        LOGGER.debug("Command registry rebuilt with %s command(s)", len(commands))

    def get(self, command_id: str) -> CommandDescriptor:
        try:
            return self._commands[command_id]
        except KeyError:
            raise KeyError(f"Unknown command: {command_id}") from None

    def __contains__(self, command_id: object) -> bool:
        return command_id in self._commands

    def __iter__(self) -> Iterator[CommandDescriptor]:
        return iter(self._commands.values())

    def __len__(self) -> int:
        return len(self._commands)

    def ids(self) -> List[str]:
        return list(self._commands)


__all__ = [
    "Capability",
    "PromptSource",
    "ContextMode",
    "CommandDescriptor",
    "CommandRegistry",
    "BUILTIN_COMMANDS",
    "SELECTED_TEXT_TEMPLATE",
    "build_custom_commands",
    "command_id_for",
]
