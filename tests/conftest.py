"""Shared pytest fixtures."""

from __future__ import annotations

import os

import pytest

from aicommander.editor.buffer import LineBuffer, Position


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in list(os.environ):
        if name.startswith("AICOMMANDER_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AICOMMANDER_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def sample_buffer() -> LineBuffer:
    buffer = LineBuffer(["# Notes", "Summarize this", "", "Tail paragraph"])
    buffer.set_cursor(Position(1, len("Summarize this")))
    return buffer
