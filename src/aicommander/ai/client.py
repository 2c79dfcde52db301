"""Async generation client built around OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, MutableMapping, NoReturn, cast

import httpx
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    AsyncOpenAI,
    OpenAIError,
)
from openai.lib.streaming.chat import ChatCompletionStreamEvent
from openai.types.chat import ChatCompletionMessageParam

from ..core.media import AUDIO_EXTENSIONS, IMAGE_SIZES
from .errors import (
    InvalidInput,
    MissingCredential,
    NetworkFailure,
    ProviderError,
    UnexpectedResponse,
    UnsupportedMediaType,
)

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the generation client."""

    base_url: str
    api_key: str
    model: str
    image_model: str = "dall-e-2"
    transcription_model: str = "whisper-1"
    request_timeout: float | None = 90.0
    max_prompt_chars: int = 16_000
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, settings: Any) -> "ClientSettings":
        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            image_model=settings.image_model,
            transcription_model=settings.transcription_model,
            request_timeout=settings.request_timeout,
            max_prompt_chars=settings.max_prompt_chars,
            debug_logging=settings.debug_logging,
        )


class AIClient:
    """Async client for streamed chat, image generation and transcription.

    Every public call validates its input and the API key before touching
    the network. The underlying SDK client is created lazily and with retries
    disabled: failures surface to the caller instead of being retried.
    """

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    def ensure_ready(self, prompt: str | None = None) -> None:
        """Raise before any other work when the prompt or the API key is unusable."""

        if prompt is not None:
            self._require_prompt(prompt)
        self._require_api_key()

    # ------------------------------------------------------------------
    # Text generation
    # ------------------------------------------------------------------

    def stream_text(
        self,
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
        **extra_params: Any,
    ) -> AsyncIterator[str]:
        """Return an async iterator over streamed completion fragments.

        Validation happens eagerly so a bad prompt or a missing key raises
        here, before any request is issued.
        """

        payload = self._build_chat_payload(messages, extra_params)
        self._require_api_key()
        return self._stream(payload)

    async def complete_text(
        self,
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
        **extra_params: Any,
    ) -> str:
        """Return a complete, non-streamed chat completion."""

        payload = self._build_chat_payload(messages, extra_params)
        self._require_api_key()
        LOGGER.debug("Requesting chat completion via %s", self._settings.model)
        try:
            completion = await self._get_client().chat.completions.create(**payload)
        except OpenAIError as exc:
            _raise_translated(exc)
        choices = getattr(completion, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        content = getattr(message, "content", None)
        if content is None:
            raise UnexpectedResponse(message="No response from OpenAI API.")
        return str(content)

    async def _stream(self, payload: Dict[str, Any]) -> AsyncIterator[str]:
        LOGGER.debug(
            "Starting streamed chat completion via %s with %s message(s)",
            self._settings.model,
            len(payload["messages"]),
        )
        fragments = 0
        try:
            async with self._get_client().chat.completions.stream(**payload) as stream:
                async for event in stream:
                    fragment = self._fragment_from_event(event)
                    if fragment:
                        fragments += 1
                        yield fragment
        except OpenAIError as exc:
            LOGGER.debug("Stream aborted after %s fragment(s): %s", fragments, exc)
            _raise_translated(exc)
        except httpx.TransportError as exc:
            raise NetworkFailure(message=f"Stream Error: {exc}") from exc
        LOGGER.debug("Stream finished after %s fragment(s)", fragments)

    def _fragment_from_event(self, event: ChatCompletionStreamEvent[Any]) -> str | None:
        event_type = getattr(event, "type", None)
        if event_type == "content.delta":
            delta = getattr(event, "delta", None)
            return str(delta) if delta else None
        if event_type == "refusal.done":
            refusal = getattr(event, "refusal", None) or "The model refused to answer."
            raise ProviderError(message=f"Stream Error: {refusal}")
        if event_type == "error":
            error = getattr(event, "error", None)
            raise ProviderError(message=f"Stream Error: {_error_text(error)}")
        return None

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    async def generate_image(self, prompt: str, *, size: str) -> str:
        """Generate one image and return it as base64-encoded PNG data."""

        self._require_prompt(prompt)
        self._require_api_key()
        if size not in IMAGE_SIZES:
            raise InvalidInput(message=f"Image size must be one of {', '.join(IMAGE_SIZES)}.")
        LOGGER.debug("Requesting %s image via %s", size, self._settings.image_model)
        try:
            response = await self._get_client().images.generate(
                model=self._settings.image_model,
                prompt=prompt,
                n=1,
                size=cast(Any, size),
                response_format="b64_json",
            )
        except OpenAIError as exc:
            _raise_translated(exc)
        data = getattr(response, "data", None) or []
        b64 = getattr(data[0], "b64_json", None) if data else None
        if not b64:
            raise UnexpectedResponse(message="Image response did not contain image data.")
        return str(b64)

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------

    async def transcribe(self, audio: bytes, *, extension: str | None) -> str:
        """Upload ``audio`` and return the transcript text."""

        normalized = (extension or "").strip().lower().lstrip(".")
        if not normalized or normalized not in AUDIO_EXTENSIONS:
            raise UnsupportedMediaType(
                message=f"Unsupported audio type: {extension or 'unknown'}",
                extension=normalized or None,
            )
        if not audio:
            raise InvalidInput(message="The audio file is empty.")
        self._require_api_key()
        LOGGER.debug(
            "Uploading %s byte(s) of %s audio to %s",
            len(audio),
            normalized,
            self._settings.transcription_model,
        )
        try:
            result = await self._get_client().audio.transcriptions.create(
                model=self._settings.transcription_model,
                file=(f"audio.{normalized}", audio),
            )
        except OpenAIError as exc:
            _raise_translated(exc)
        if isinstance(result, str):
            return result
        text = getattr(result, "text", None)
        if text is None:
            raise UnexpectedResponse(message="Transcription response did not contain text.")
        return str(text)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = self._build_client(self._settings)
        return self._client

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            max_retries=0,
        )

    def _require_api_key(self) -> None:
        if not (self._settings.api_key or "").strip():
            raise MissingCredential(
                message="OpenAI API Key is not provided.",
                credential="api_key",
            )

    def _require_prompt(self, prompt: str | None) -> None:
        text = prompt or ""
        if not text.strip():
            raise InvalidInput(message="Cannot find prompt.")
        limit = self._settings.max_prompt_chars
        if limit and len(text) > limit:
            raise InvalidInput(
                message=f"Prompt needs to be between 1 and {limit} characters.",
                details={"length": len(text), "limit": limit},
            )

    def _coerce_messages(
        self, messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam]
    ) -> List[ChatCompletionMessageParam]:
        normalized: List[ChatCompletionMessageParam] = []
        for message in messages:
            if isinstance(message, MutableMapping):
                normalized.append(cast(ChatCompletionMessageParam, dict(message)))
            else:
                try:
                    normalized.append(cast(ChatCompletionMessageParam, dict(message)))
                except TypeError as exc:
                    raise TypeError("Messages must be mapping-like objects") from exc
        if not normalized:
            raise InvalidInput(message="Cannot find prompt.")
        return normalized

    def _build_chat_payload(
        self,
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
        extra_params: Mapping[str, Any],
    ) -> Dict[str, Any]:
        normalized = self._coerce_messages(messages)
        self._require_prompt(cast(Mapping[str, Any], normalized[-1]).get("content"))
        payload: Dict[str, Any] = {
            "model": self._settings.model,
            "messages": normalized,
        }
        if extra_params:
            payload.update(extra_params)
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)
        return payload

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Chat payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Chat payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        if self._client is None:
            return
        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


def _error_text(error: Any) -> str:
    if isinstance(error, Mapping):
        nested = error.get("error")
        if isinstance(nested, Mapping) and nested.get("message"):
            return str(nested["message"])
        if error.get("message"):
            return str(error["message"])
        return json.dumps(error, ensure_ascii=False, default=str)
    message = getattr(error, "message", None)
    return str(message or error)


def _raise_translated(exc: OpenAIError) -> NoReturn:
    """Re-raise an SDK exception as the matching pipeline error."""

    if isinstance(exc, APIConnectionError):
        raise NetworkFailure(message=f"Network request failed: {exc}") from exc
    if isinstance(exc, APIStatusError):
        raise ProviderError(
            message=f"OpenAI API: {_error_text(exc.body) if exc.body else exc.message}",
            status_code=exc.status_code,
        ) from exc
    if isinstance(exc, APIError):
        text = _error_text(exc.body) if exc.body else exc.message
        raise ProviderError(message=f"Stream Error: {text}") from exc
    raise ProviderError(message=str(exc)) from exc


__all__ = ["AIClient", "ClientSettings", "IMAGE_SIZES", "AUDIO_EXTENSIONS"]
