"""Tests for the command controller pipeline."""

from __future__ import annotations

import asyncio
import re
from typing import Any, List

import httpx
import pytest
from openai import APIError

from aicommander.ai.client import AIClient, ClientSettings
from aicommander.ai.context import DOCUMENT_CONTEXT_PREAMBLE
from aicommander.ai.errors import AlreadyInProgress, MissingCredential, NoActiveDocument, NoLinkFound
from aicommander.ai.orchestration.controller import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_REJECTED,
    ActiveDocument,
    CommandController,
    LoggingNotifier,
    StaticPromptDialog,
)
from aicommander.ai.prompt_enhancer import TARGET_CHAT, TARGET_IMAGE
from aicommander.editor.buffer import LineBuffer, Position
from aicommander.services.pdf_text import PdfTextExtractor
from tests.helpers import FakeOpenAI, MemoryVault, StubPdfReader, content_events, make_settings


class _Recorder:
    """Search client and prompt enhancer stand-in that records every call."""

    def __init__(self) -> None:
        self.searches: List[str] = []
        self.enhanced: List[tuple[str, str]] = []

    async def search(self, query: str, *, count: int | None = None) -> list:
        self.searches.append(query)
        return []

    async def enhance_or_original(self, prompt: str, target_model: str) -> str:
        self.enhanced.append((prompt, target_model))
        return f"enhanced: {prompt}"


def _controller(
    fake: FakeOpenAI,
    *,
    vault: MemoryVault | None = None,
    prompt: str | None = None,
    recorder: _Recorder | None = None,
    **settings: Any,
) -> tuple[CommandController, LoggingNotifier]:
    notifier = LoggingNotifier()
    recorder = recorder or _Recorder()
    controller = CommandController(
        make_settings(**settings),
        vault=vault or MemoryVault(),
        client_factory=lambda client_settings: AIClient(client_settings, client=fake),  # type: ignore[arg-type]
        notifier=notifier,
        prompt_dialog=StaticPromptDialog(prompt),
        pdf_extractor=PdfTextExtractor(reader_cls=StubPdfReader),
        search_client_factory=lambda _settings: recorder,  # type: ignore[arg-type,return-value]
        enhancer_factory=lambda _settings: recorder,  # type: ignore[arg-type,return-value]
    )
    return controller, notifier


def _document(lines: List[str], cursor: Position, path: str | None = "note.md") -> ActiveDocument:
    buffer = LineBuffer(lines)
    buffer.set_cursor(cursor)
    return ActiveDocument(buffer, path)


@pytest.mark.asyncio
async def test_text_line_streams_into_document() -> None:
    fake = FakeOpenAI(events=content_events(["The", " sky\nis", " blue."]))
    controller, notifier = _controller(fake)
    document = _document(["Summarize this"], Position(0, 3))

    result = await controller.run("text-line", document)

    assert result.status == STATUS_COMPLETED
    assert document.buffer.lines == ("Summarize this", "", "The sky", "is blue.", "")
    assert notifier.messages == ["Generating text...", "Text generated."]
    assert fake.requests[0]["messages"] == [{"role": "user", "content": "Summarize this"}]
    assert fake.closed is True
    assert not controller.guard.is_busy


@pytest.mark.asyncio
async def test_missing_api_key_fails_before_any_network_call() -> None:
    fake = FakeOpenAI(events=content_events(["never"]))
    recorder = _Recorder()
    controller, notifier = _controller(
        fake,
        recorder=recorder,
        api_key="",
        use_search_engine=True,
        search_api_key="k",
        use_prompt_enhancer=True,
        prompt_enhancer_key="p",
    )
    document = _document(["Question?"], Position(0, 0))

    result = await controller.run("text-line", document)

    assert result.status == STATUS_FAILED
    assert isinstance(result.error, MissingCredential)
    assert fake.request_count == 0
    assert recorder.searches == [] and recorder.enhanced == []
    assert document.buffer.lines == ("Question?",)
    assert notifier.history == [("error", "OpenAI API Key is not provided.")]
    assert not controller.guard.is_busy


@pytest.mark.asyncio
async def test_second_invocation_is_rejected_while_busy() -> None:
    gate = asyncio.Event()
    fake = FakeOpenAI(events=content_events(["done"]), gate=gate)
    controller, notifier = _controller(fake)
    first_doc = _document(["first"], Position(0, 0))
    second_doc = _document(["second"], Position(0, 0))

    task = asyncio.create_task(controller.run("text-line", first_doc))
    for _ in range(20):
        if controller.guard.is_busy:
            break
        await asyncio.sleep(0)
    assert controller.guard.is_busy

    rejected = await controller.run("text-line", second_doc)
    gate.set()
    completed = await task

    assert rejected.status == STATUS_REJECTED
    assert isinstance(rejected.error, AlreadyInProgress)
    assert second_doc.buffer.lines == ("second",)
    assert ("warning", "A generation is already in progress.") in notifier.history
    assert completed.status == STATUS_COMPLETED
    assert first_doc.buffer.lines == ("first", "", "done", "")
    assert fake.request_count == 1
    assert not controller.guard.is_busy


@pytest.mark.asyncio
async def test_unexpected_errors_release_the_guard() -> None:
    def _broken_factory(_settings: ClientSettings) -> AIClient:
        raise RuntimeError("kaboom")

    notifier = LoggingNotifier()
    controller = CommandController(
        make_settings(), vault=MemoryVault(), client_factory=_broken_factory, notifier=notifier
    )

    result = await controller.run("text-line", _document(["hi"], Position(0, 0)))

    assert result.status == STATUS_FAILED
    assert notifier.messages == ["Unexpected error: kaboom"]
    assert not controller.guard.is_busy


@pytest.mark.asyncio
async def test_stream_failure_keeps_partial_text_and_notifies() -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    fake = FakeOpenAI(events=[*content_events(["partial\nli"]), APIError("broke", request, body=None)])
    controller, notifier = _controller(fake)
    document = _document(["Prompt"], Position(0, 0))

    result = await controller.run("text-line", document)

    assert result.status == STATUS_FAILED
    assert document.buffer.lines == ("Prompt", "", "partial", "li")
    assert notifier.messages[-1] == "Stream Error: broke"
    assert not controller.guard.is_busy


@pytest.mark.asyncio
async def test_cancelled_dialog_does_nothing() -> None:
    fake = FakeOpenAI()
    controller, notifier = _controller(fake, prompt=None)
    document = _document(["x"], Position(0, 0))

    result = await controller.run("text-prompt", document)

    assert result.status == STATUS_CANCELLED
    assert notifier.messages == []
    assert fake.request_count == 0
    assert document.buffer.lines == ("x",)


@pytest.mark.asyncio
async def test_dialog_prompt_with_search_and_enhancer() -> None:
    fake = FakeOpenAI(events=content_events(["answer"]))
    recorder = _Recorder()
    controller, _ = _controller(
        fake,
        prompt="latest news",
        recorder=recorder,
        use_search_engine=True,
        search_api_key="k",
        use_prompt_enhancer=True,
        prompt_enhancer_key="p",
    )

    result = await controller.run("text-prompt", _document(["# Log"], Position(0, 0)))

    assert result.ok
    assert recorder.searches == ["latest news"]
    assert recorder.enhanced == [("latest news", TARGET_CHAT)]
    messages = fake.requests[0]["messages"]
    assert messages[0]["role"] == "system"
    assert messages[-1] == {"role": "user", "content": "enhanced: latest news"}


@pytest.mark.asyncio
async def test_custom_selected_command_wraps_selection_in_template() -> None:
    fake = FakeOpenAI(events=content_events(["ok"]))
    controller, _ = _controller(fake, prompts_for_selected="Translate to French")
    buffer = LineBuffer(["Hello", "world", "", "after"])
    buffer.set_selection(Position(0, 0), Position(1, 5))

    result = await controller.run("translate-to-french", ActiveDocument(buffer, "note.md"))

    assert result.ok
    assert fake.requests[0]["messages"][-1]["content"] == (
        "You are an assistant who can learn from the text I give to you. "
        "Here is the text selected:\n\nHello\nworld\n\nTranslate to French"
    )
    assert buffer.lines == ("Hello", "world", "", "ok", "", "after")


@pytest.mark.asyncio
async def test_pdf_line_uses_document_context_and_skips_search() -> None:
    fake = FakeOpenAI(events=content_events(["Alpha is first."]))
    recorder = _Recorder()
    vault = MemoryVault({"paper.pdf": "alpha\fbeta".encode()})
    controller, notifier = _controller(
        fake, vault=vault, recorder=recorder, use_search_engine=True, search_api_key="k"
    )
    document = _document(["Read [[paper.pdf]]", "What is alpha?"], Position(1, 14))

    result = await controller.run("pdf-line", document)

    assert result.ok
    assert notifier.messages[0] == "Generating text in context of paper.pdf..."
    assert recorder.searches == []
    messages = fake.requests[0]["messages"]
    assert messages[0] == {"role": "system", "content": DOCUMENT_CONTEXT_PREAMBLE + "Page 1: alpha\nPage 2: beta\n"}
    assert messages[1] == {"role": "user", "content": "What is alpha?"}
    assert document.buffer.lines[-2:] == ("Alpha is first.", "")


@pytest.mark.asyncio
async def test_pdf_command_without_link_reports_no_link() -> None:
    fake = FakeOpenAI()
    controller, notifier = _controller(fake)

    result = await controller.run("pdf-line", _document(["no links", "question"], Position(1, 8)))

    assert isinstance(result.error, NoLinkFound)
    assert notifier.messages == ["No file found in the text."]
    assert fake.request_count == 0


@pytest.mark.asyncio
async def test_image_is_saved_as_attachment() -> None:
    fake = FakeOpenAI(image_b64="aGVsbG8=")
    vault = MemoryVault(attachment_folder="assets")
    controller, notifier = _controller(fake, vault=vault, image_size="512x512")
    document = _document(["a lighthouse at dusk"], Position(0, 0))

    result = await controller.run("img-line", document)

    assert result.ok
    assert notifier.messages == ["Generating image...", "Image generated."]
    lines = document.buffer.lines
    assert lines[:2] == ("a lighthouse at dusk", "")
    match = re.fullmatch(r"!\[512\]\((assets/[A-Za-z0-9]{20}\.png)\)", lines[2])
    assert match is not None
    assert vault.files[match.group(1)] == b"hello"
    assert "assets" in vault.folders
    assert lines[3] == ""


@pytest.mark.asyncio
async def test_image_inline_mode_and_enhancer_target() -> None:
    fake = FakeOpenAI(image_b64="aGVsbG8=")
    recorder = _Recorder()
    vault = MemoryVault()
    controller, _ = _controller(
        fake,
        vault=vault,
        prompt="a cat",
        recorder=recorder,
        image_save_mode="base64",
        use_prompt_enhancer=True,
        prompt_enhancer_key="p",
    )
    document = _document([""], Position(0, 0))

    await controller.run("img-prompt", document)

    assert recorder.enhanced == [("a cat", TARGET_IMAGE)]
    assert fake.requests[0]["prompt"] == "enhanced: a cat"
    assert document.buffer.lines == ("", "![256](data:image/png;base64,aGVsbG8=)", "")
    assert vault.files == {}


@pytest.mark.asyncio
async def test_audio_transcript_is_appended_to_cursor_line() -> None:
    fake = FakeOpenAI(transcript="hello there")
    vault = MemoryVault({"audio/rec.mp3": b"ID3"})
    controller, notifier = _controller(fake, vault=vault)
    document = _document(["Meeting", "![[audio/rec.mp3]]"], Position(1, 18))

    result = await controller.run("audio-transcript", document)

    assert result.ok
    assert document.buffer.lines == ("Meeting", "![[audio/rec.mp3]]hello there", "")
    assert fake.requests[0]["file"] == ("audio.mp3", b"ID3")
    assert notifier.messages == ["Generating transcript...", "Transcript generated."]


@pytest.mark.asyncio
async def test_missing_document_is_reported() -> None:
    controller, notifier = _controller(FakeOpenAI())

    result = await controller.run("text-line", None)

    assert isinstance(result.error, NoActiveDocument)
    assert notifier.messages == ["No active file."]


@pytest.mark.asyncio
async def test_apply_settings_registers_new_custom_commands() -> None:
    controller, _ = _controller(FakeOpenAI())

    controller.apply_settings(make_settings(prompts_for_pdf="Find the methods"))

    assert "find-the-methods" in controller.registry
    with pytest.raises(KeyError):
        await controller.run("does-not-exist", _document(["x"], Position(0, 0)))
