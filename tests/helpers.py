"""Shared test helpers and stub classes.

This module contains reusable test stubs that are used across multiple test files.
Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
import posixpath
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Dict, Iterable, List

from aicommander.services.settings import Settings


@dataclass
class FakeStreamEvent:
    """Simple structure emulating ChatCompletionStreamEvent attributes."""

    type: str
    delta: str | None = None
    refusal: str | None = None
    error: Any | None = None


def content_events(fragments: Iterable[str]) -> List[FakeStreamEvent]:
    return [FakeStreamEvent(type="content.delta", delta=fragment) for fragment in fragments]


class FakeStream:
    def __init__(self, events: Iterable[Any], *, gate: asyncio.Event | None = None):
        self._events = list(events)
        self._gate = gate

    def __aiter__(self) -> "FakeStream":
        return self._iterate()  # type: ignore[return-value]

    async def _iterate(self):
        for event in self._events:
            if self._gate is not None:
                await self._gate.wait()
            if isinstance(event, BaseException):
                raise event
            yield event


class FakeStreamContext:
    def __init__(self, stream: FakeStream):
        self._stream = stream

    async def __aenter__(self) -> FakeStream:
        return self._stream

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakeOpenAI:
    """Stand-in for ``AsyncOpenAI`` recording every request it receives.

    ``events`` may contain exception instances; they are raised when the
    stream reaches them. ``gate`` holds each stream event until it is set.
    """

    def __init__(
        self,
        *,
        events: Iterable[Any] = (),
        image_b64: str = "aGVsbG8=",
        transcript: str = "transcribed words",
        gate: asyncio.Event | None = None,
    ) -> None:
        self.requests: List[Dict[str, Any]] = []
        self.closed = False
        self._events = list(events)
        self._gate = gate
        self._image_b64 = image_b64
        self._transcript = transcript
        self.chat = SimpleNamespace(
            completions=SimpleNamespace(stream=self._stream, create=self._create)
        )
        self.images = SimpleNamespace(generate=self._generate)
        self.audio = SimpleNamespace(transcriptions=SimpleNamespace(create=self._transcribe))

    @property
    def request_count(self) -> int:
        return len(self.requests)

    def _stream(self, **kwargs: Any) -> FakeStreamContext:
        self.requests.append({"endpoint": "chat.stream", **kwargs})
        return FakeStreamContext(FakeStream(self._events, gate=self._gate))

    async def _create(self, **kwargs: Any) -> SimpleNamespace:
        self.requests.append({"endpoint": "chat.create", **kwargs})
        text = "".join(getattr(event, "delta", "") or "" for event in self._events)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])

    async def _generate(self, **kwargs: Any) -> SimpleNamespace:
        self.requests.append({"endpoint": "images.generate", **kwargs})
        return SimpleNamespace(data=[SimpleNamespace(b64_json=self._image_b64)])

    async def _transcribe(self, **kwargs: Any) -> SimpleNamespace:
        self.requests.append({"endpoint": "audio.transcriptions", **kwargs})
        return SimpleNamespace(text=self._transcript)

    async def close(self) -> None:
        self.closed = True


class MemoryVault:
    """In-memory :class:`~aicommander.editor.vault.Vault`."""

    def __init__(self, files: Dict[str, bytes] | None = None, *, attachment_folder: str = "") -> None:
        self.files: Dict[str, bytes] = dict(files or {})
        self.folders: set[str] = set()
        self._attachment_folder = attachment_folder
        self.reads: List[str] = []

    @property
    def attachment_folder(self) -> str:
        return self._attachment_folder

    async def read_binary(self, path: str) -> bytes:
        self.reads.append(path)
        return self.files[path]

    async def exists(self, path: str) -> bool:
        if path in self.files or path in self.folders:
            return True
        prefix = path.rstrip("/") + "/"
        return any(name.startswith(prefix) for name in self.files)

    async def create_binary(self, path: str, data: bytes) -> None:
        if path in self.files:
            raise FileExistsError(path)
        self.files[path] = data

    async def create_folder(self, path: str) -> None:
        self.folders.add(path)
        parent = posixpath.dirname(path)
        while parent:
            self.folders.add(parent)
            parent = posixpath.dirname(parent)

    async def list_files(self) -> List[str]:
        return sorted(self.files)


class StubPdfReader:
    """Mimics ``pypdf.PdfReader`` by splitting the payload on form feeds."""

    def __init__(self, stream: Any) -> None:
        data = stream.read().decode("utf-8")
        if data.startswith("broken"):
            raise ValueError("not a PDF")
        self.pages = [SimpleNamespace(extract_text=lambda text=text: text) for text in data.split("\f")]


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {"api_key": "sk-test"}
    values.update(overrides)
    return Settings(**values)
