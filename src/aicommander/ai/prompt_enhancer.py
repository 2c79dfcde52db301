"""Optional prompt rewriting through the PromptPerfect ``optimize`` endpoint."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .errors import (
    InvalidInput,
    MissingCredential,
    NetworkFailure,
    ProviderError,
    UnexpectedResponse,
)
from .schemas import PROMPT_ENHANCER_SCHEMA, schema_errors

LOGGER = logging.getLogger(__name__)

PROMPT_ENHANCER_URL = "https://us-central1-prompt-ops.cloudfunctions.net/optimize"
TARGET_CHAT = "chatgpt"
TARGET_IMAGE = "dalle"


class PromptEnhancer:
    """Rewrite a prompt for a target model family before it is sent."""

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float | None = 90.0,
        http_client: httpx.AsyncClient | None = None,
        endpoint: str = PROMPT_ENHANCER_URL,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._http_client = http_client
        self._endpoint = endpoint

    async def enhance(self, prompt: str, target_model: str) -> str:
        """Return the optimized prompt or raise a :class:`CommanderError`."""

        if not (self._api_key or "").strip():
            raise MissingCredential(
                message="PromptPerfect API Key is not provided.",
                credential="prompt_enhancer_key",
            )
        body = {"data": {"prompt": prompt, "targetModel": target_model}}
        headers = {"x-api-key": f"token {self._api_key}"}
        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self._endpoint, json=body, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._endpoint, json=body, headers=headers)
        except UnicodeError as exc:
            raise InvalidInput(
                message="PromptPerfect API Key contains unsupported characters."
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkFailure(message=f"PromptPerfect request failed: {exc}") from exc

        if response.is_error:
            raise ProviderError(
                message=f"PromptPerfect API: {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise UnexpectedResponse(message="PromptPerfect returned invalid JSON.") from exc
        problems = schema_errors(payload, PROMPT_ENHANCER_SCHEMA)
        if problems:
            raise UnexpectedResponse(
                message="PromptPerfect returned an unexpected response.",
                details={"errors": problems},
            )
        optimized = str(payload["result"]["promptOptimized"])
        LOGGER.debug("Prompt optimized for %s (%s -> %s chars)", target_model, len(prompt), len(optimized))
        return optimized

    async def enhance_or_original(self, prompt: str, target_model: str) -> str:
        """Like :meth:`enhance`, but fall back to ``prompt`` on any failure.

        Never raises: enhancement is optional and must not abort a generation.
        """

        try:
            return await self.enhance(prompt, target_model)
        except Exception as exc:
            LOGGER.warning("Prompt enhancement failed, using the original prompt: %s", exc)
            return prompt


__all__ = ["PromptEnhancer", "PROMPT_ENHANCER_URL", "TARGET_CHAT", "TARGET_IMAGE"]
