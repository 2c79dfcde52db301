"""Tests for command descriptors and the command registry."""

from __future__ import annotations

import logging

import pytest

from aicommander.commands import (
    BUILTIN_COMMANDS,
    Capability,
    CommandRegistry,
    ContextMode,
    PromptSource,
    build_custom_commands,
    command_id_for,
)
from tests.helpers import make_settings


def test_builtin_commands_cover_every_capability() -> None:
    ids = [command.id for command in BUILTIN_COMMANDS]

    assert ids == [
        "text-prompt",
        "img-prompt",
        "text-line",
        "img-line",
        "text-selected",
        "img-selected",
        "audio-transcript",
        "pdf-prompt",
        "pdf-line",
        "pdf-selected",
    ]
    registry = CommandRegistry()
    assert registry.get("audio-transcript").capability is Capability.TRANSCRIPT
    assert registry.get("pdf-line").context_mode is ContextMode.PDF


def test_custom_commands_are_derived_from_settings() -> None:
    settings = make_settings(
        prompts_for_selected="Summarize in 3 bullets\n\n   Translate to French  \n",
        prompts_for_pdf="List the key findings",
    )

    commands = build_custom_commands(settings)

    assert [command.id for command in commands] == [
        "summarize-in-3-bullets",
        "translate-to-french",
        "list-the-key-findings",
    ]
    selected, _, pdf = commands
    assert selected.prompt_source is PromptSource.SELECTION
    assert selected.context_mode is ContextMode.SELECTED_TEXT
    assert selected.template == "Summarize in 3 bullets"
    assert pdf.prompt_source is PromptSource.TEMPLATE
    assert pdf.context_mode is ContextMode.PDF
    assert pdf.template == "List the key findings"


def test_duplicate_ids_are_skipped_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    settings = make_settings(prompts_for_selected="Same thing\nsame thing\nText Prompt")

    with caplog.at_level(logging.WARNING, logger="aicommander.commands"):
        registry = CommandRegistry(settings)

    assert "same-thing" in registry
    assert registry.get("text-prompt").prompt_source is PromptSource.DIALOG
    assert len(registry) == len(BUILTIN_COMMANDS) + 1
    assert sum("duplicate" in record.getMessage() for record in caplog.records) == 2


def test_rebuild_replaces_custom_commands() -> None:
    registry = CommandRegistry(make_settings(prompts_for_pdf="Old one"))
    assert "old-one" in registry

    registry.rebuild(make_settings(prompts_for_pdf="New one"))

    assert "old-one" not in registry
    assert "new-one" in registry
    with pytest.raises(KeyError):
        registry.get("old-one")


def test_command_id_for_lowercases_and_hyphenates() -> None:
    assert command_id_for("Explain Like I Am Five") == "explain-like-i-am-five"
