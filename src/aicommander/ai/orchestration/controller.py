"""Command controller: the single entry point behind every user action.

Each invocation acquires the session guard, gathers a prompt, runs the
capability-specific pipeline and reports progress through a notifier.
Pipeline stages raise :class:`~aicommander.ai.errors.CommanderError`; this
module is the only place that turns them into notices.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Protocol, Sequence, Tuple

from ...commands import (
    SELECTED_TEXT_TEMPLATE,
    Capability,
    CommandDescriptor,
    CommandRegistry,
    ContextMode,
    PromptSource,
)
from ...core.media import file_extension
from ...editor.attachments import AttachmentStore
from ...editor.buffer import DocumentBuffer, Position
from ...editor.link_resolver import (
    LinkMatcher,
    LinkResolver,
    audio_link_matchers,
    pdf_link_matchers,
)
from ...editor.stream_writer import StreamingDocumentWriter, WriteSummary
from ...editor.vault import Vault
from ...services.pdf_text import PdfTextExtractor
from ..client import AIClient, ClientSettings
from ..context import ContextAssembler, SearchClientFactory, build_messages
from ..errors import (
    AlreadyInProgress,
    CommanderError,
    ErrorCode,
    InvalidInput,
    NoActiveDocument,
)
from ..prompt_enhancer import TARGET_CHAT, TARGET_IMAGE, PromptEnhancer
from .session_lock import SessionGuard

LOGGER = logging.getLogger(__name__)

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_REJECTED = "rejected"
STATUS_CANCELLED = "cancelled"


# -----------------------------------------------------------------------------
# Host collaborators
# -----------------------------------------------------------------------------


class Notifier(Protocol):
    """Transient, user-visible status messages."""

    def notify(self, message: str, *, level: str = "info") -> None:
        ...


class PromptDialog(Protocol):
    """Modal free-text prompt entry; ``None`` means the user cancelled."""

    async def ask(self, title: str) -> str | None:
        ...


class LoggingNotifier:
    """Notifier that logs every notice and keeps them for inspection."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or LOGGER
        self.history: List[Tuple[str, str]] = []

    def notify(self, message: str, *, level: str = "info") -> None:
        self.history.append((level, message))
        log_level = logging.getLevelName(level.upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO
        self._logger.log(log_level, "%s", message)

    @property
    def messages(self) -> List[str]:
        return [message for _, message in self.history]


class StaticPromptDialog:
    """Dialog stand-in that always answers with a fixed prompt."""

    def __init__(self, prompt: str | None = None) -> None:
        self._prompt = prompt

    async def ask(self, title: str) -> str | None:
        LOGGER.debug("Prompt requested for %r", title)
        return self._prompt


# -----------------------------------------------------------------------------
# Invocation data
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ActiveDocument:
    """The buffer a command runs against and its vault-relative path."""

    buffer: DocumentBuffer
    path: str | None = None


@dataclass(slots=True)
class CommandResult:
    """Outcome of one :meth:`CommandController.run` call."""

    command_id: str
    status: str
    error: CommanderError | None = None
    summary: WriteSummary | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_COMPLETED


ClientFactory = Callable[[ClientSettings], AIClient]
EnhancerFactory = Callable[[Any], PromptEnhancer]


def _default_enhancer(settings: Any) -> PromptEnhancer:
    return PromptEnhancer(settings.prompt_enhancer_key, timeout=settings.request_timeout)


# -----------------------------------------------------------------------------
# Controller
# -----------------------------------------------------------------------------


class CommandController:
    """Run registered commands against an active document, one at a time."""

    def __init__(
        self,
        settings: Any,
        *,
        vault: Vault,
        client_factory: ClientFactory | None = None,
        notifier: Notifier | None = None,
        prompt_dialog: PromptDialog | None = None,
        pdf_extractor: PdfTextExtractor | None = None,
        search_client_factory: SearchClientFactory | None = None,
        enhancer_factory: EnhancerFactory | None = None,
        registry: CommandRegistry | None = None,
        guard: SessionGuard | None = None,
    ) -> None:
        self._settings = settings
        self._vault = vault
        self._client_factory = client_factory or AIClient
        self._notifier: Notifier = notifier or LoggingNotifier()
        self._prompt_dialog: PromptDialog = prompt_dialog or StaticPromptDialog()
        self._pdf_extractor = pdf_extractor or PdfTextExtractor()
        self._search_client_factory = search_client_factory
        self._enhancer_factory = enhancer_factory or _default_enhancer
        self._registry = registry or CommandRegistry(settings)
        self._guard = guard or SessionGuard()
        self._resolver = LinkResolver(vault)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Any:
        return self._settings

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    @property
    def guard(self) -> SessionGuard:
        return self._guard

    def apply_settings(self, settings: Any) -> None:
        """Use ``settings`` for subsequent runs and re-derive custom commands."""

        self._settings = settings
        self._registry.rebuild(settings)

    async def run(
        self, command: str | CommandDescriptor, document: ActiveDocument | None
    ) -> CommandResult:
        descriptor = command if isinstance(command, CommandDescriptor) else self._registry.get(command)
        try:
            with self._guard.hold(descriptor.id):
                return await self._dispatch(descriptor, document)
        except AlreadyInProgress as exc:
            self._notifier.notify(exc.message, level=exc.severity)
            return CommandResult(descriptor.id, STATUS_REJECTED, error=exc)
        except CommanderError as exc:
            LOGGER.warning("Command %s failed: %s", descriptor.id, exc)
            self._notifier.notify(exc.message, level=exc.severity)
            return CommandResult(descriptor.id, STATUS_FAILED, error=exc)
        except Exception as exc:
            LOGGER.exception("Unexpected error while running %s", descriptor.id)
            error = CommanderError(
                error_code=ErrorCode.UNEXPECTED_ERROR,
                message=f"Unexpected error: {exc}",
            )
            self._notifier.notify(error.message, level=error.severity)
            return CommandResult(descriptor.id, STATUS_FAILED, error=error)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _dispatch(
        self, descriptor: CommandDescriptor, document: ActiveDocument | None
    ) -> CommandResult:
        if document is None:
            raise NoActiveDocument()
        buffer = document.buffer
        origin_line = self._origin_line(descriptor, buffer)

        prompt = await self._acquire_prompt(descriptor, buffer)
        if prompt is None:
            LOGGER.debug("Command %s cancelled at the prompt dialog", descriptor.id)
            return CommandResult(descriptor.id, STATUS_CANCELLED)

        client = self._client_factory(ClientSettings.from_settings(self._settings))
        try:
            if descriptor.capability is Capability.IMAGE:
                summary = await self._run_image(client, prompt, document, origin_line)
            elif descriptor.capability is Capability.TRANSCRIPT:
                summary = await self._run_transcript(client, document, origin_line)
            else:
                summary = await self._run_text(client, descriptor, prompt, document, origin_line)
        finally:
            await client.aclose()
        return CommandResult(descriptor.id, STATUS_COMPLETED, summary=summary)

    async def _run_text(
        self,
        client: AIClient,
        descriptor: CommandDescriptor,
        prompt: str,
        document: ActiveDocument,
        origin_line: int,
    ) -> WriteSummary | None:
        client.ensure_ready(prompt)
        reference: bytes | None = None
        if descriptor.context_mode is ContextMode.PDF:
            pdf_path = await self._resolve_above_cursor(document, pdf_link_matchers())
            self._notifier.notify(f"Generating text in context of {pdf_path}...")
            reference = await self._vault.read_binary(pdf_path)
        else:
            self._notifier.notify("Generating text...")

        assembler = ContextAssembler(
            self._settings,
            search_client_factory=self._search_client_factory,
            pdf_extractor=self._pdf_extractor,
        )
        context = await assembler.build(prompt, reference_document=reference)
        prompt = await self._maybe_enhance(prompt, TARGET_CHAT)

        stream = client.stream_text(build_messages(prompt, context))
        writer = StreamingDocumentWriter(document.buffer, origin_line)
        summary = await writer.consume(stream)
        self._notifier.notify("Text generated.")
        return summary

    async def _run_image(
        self,
        client: AIClient,
        prompt: str,
        document: ActiveDocument,
        origin_line: int,
    ) -> WriteSummary | None:
        client.ensure_ready(prompt)
        self._notifier.notify("Generating image...")
        prompt = await self._maybe_enhance(prompt, TARGET_IMAGE)
        size = self._settings.image_size
        b64_data = await client.generate_image(prompt, size=size)
        store = AttachmentStore(self._vault, save_mode=self._settings.image_save_mode)
        stored = await store.store(b64_data, size=size, document_path=document.path)
        summary = StreamingDocumentWriter(document.buffer, origin_line).write_all(stored.markdown)
        self._notifier.notify("Image generated.")
        return summary

    async def _run_transcript(
        self, client: AIClient, document: ActiveDocument, origin_line: int
    ) -> WriteSummary | None:
        client.ensure_ready()
        audio_path = await self._resolve_above_cursor(document, audio_link_matchers())
        self._notifier.notify("Generating transcript...")
        audio = await self._vault.read_binary(audio_path)
        transcript = await client.transcribe(audio, extension=file_extension(audio_path))
        writer = StreamingDocumentWriter.append_to_line(document.buffer, origin_line)
        summary = writer.write_all(transcript)
        self._notifier.notify("Transcript generated.")
        return summary

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _origin_line(self, descriptor: CommandDescriptor, buffer: DocumentBuffer) -> int:
        if descriptor.uses_selection:
            selection = buffer.get_selection_range()
            if not selection.is_empty:
                return selection.end.line
        return buffer.get_cursor().line

    async def _acquire_prompt(
        self, descriptor: CommandDescriptor, buffer: DocumentBuffer
    ) -> str | None:
        source = descriptor.prompt_source
        if source is PromptSource.DIALOG:
            prompt = await self._prompt_dialog.ask(descriptor.name)
            if prompt is None:
                return None
        elif source is PromptSource.LINE:
            prompt = buffer.get_line(buffer.get_cursor().line)
        elif source is PromptSource.SELECTION:
            prompt = buffer.get_selection()
            if descriptor.context_mode is ContextMode.SELECTED_TEXT:
                if not prompt.strip():
                    raise InvalidInput(message="No text selected.")
                prompt = SELECTED_TEXT_TEMPLATE.format(
                    selection=prompt, command=descriptor.template or ""
                )
        elif source is PromptSource.TEMPLATE:
            prompt = descriptor.template or ""
        else:
            return ""
        if not prompt.strip():
            raise InvalidInput()
        return prompt

    async def _resolve_above_cursor(
        self, document: ActiveDocument, matchers: Sequence[LinkMatcher]
    ) -> str:
        buffer = document.buffer
        text = buffer.get_range(Position(0, 0), buffer.get_cursor())
        return await self._resolver.resolve(
            text, len(text), matchers, document_path=document.path
        )

    async def _maybe_enhance(self, prompt: str, target_model: str) -> str:
        if not getattr(self._settings, "use_prompt_enhancer", False):
            return prompt
        enhancer = self._enhancer_factory(self._settings)
        return await enhancer.enhance_or_original(prompt, target_model)


__all__ = [
    "ActiveDocument",
    "CommandController",
    "CommandResult",
    "LoggingNotifier",
    "Notifier",
    "PromptDialog",
    "StaticPromptDialog",
    "STATUS_COMPLETED",
    "STATUS_FAILED",
    "STATUS_REJECTED",
    "STATUS_CANCELLED",
]
