"""Tests for the PromptPerfect prompt enhancer."""

from __future__ import annotations

import json
from typing import List

import httpx
import pytest

from aicommander.ai.errors import InvalidInput, MissingCredential, ProviderError, UnexpectedResponse
from aicommander.ai.prompt_enhancer import PROMPT_ENHANCER_URL, TARGET_CHAT, TARGET_IMAGE, PromptEnhancer


def _enhancer(response: httpx.Response, seen: List[httpx.Request], *, key: str = "pp-key") -> PromptEnhancer:
    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return response

    http = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    return PromptEnhancer(key, http_client=http)


@pytest.mark.asyncio
async def test_enhance_posts_prompt_and_returns_optimized_text() -> None:
    seen: List[httpx.Request] = []
    enhancer = _enhancer(httpx.Response(200, json={"result": {"promptOptimized": "A vivid cat"}}), seen)

    assert await enhancer.enhance("cat", TARGET_IMAGE) == "A vivid cat"

    request = seen[0]
    assert str(request.url) == PROMPT_ENHANCER_URL
    assert request.headers["x-api-key"] == "token pp-key"
    assert json.loads(request.content) == {"data": {"prompt": "cat", "targetModel": "dalle"}}


@pytest.mark.asyncio
async def test_enhance_validates_response_shape() -> None:
    enhancer = _enhancer(httpx.Response(200, json={"result": {}}), [])

    with pytest.raises(UnexpectedResponse):
        await enhancer.enhance("cat", TARGET_CHAT)


@pytest.mark.asyncio
async def test_enhance_raises_on_error_status_and_missing_key() -> None:
    seen: List[httpx.Request] = []

    with pytest.raises(ProviderError):
        await _enhancer(httpx.Response(500, text="oops"), seen).enhance("cat", TARGET_CHAT)
    with pytest.raises(MissingCredential):
        await _enhancer(httpx.Response(200, json={}), seen, key="").enhance("cat", TARGET_CHAT)

    assert len(seen) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="oops"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"result": {"promptOptimized": ""}}),
    ],
)
async def test_enhance_or_original_never_raises(response: httpx.Response) -> None:
    enhancer = _enhancer(response, [])

    assert await enhancer.enhance_or_original("keep me", TARGET_CHAT) == "keep me"


@pytest.mark.asyncio
async def test_enhance_or_original_falls_back_on_network_failure() -> None:
    def _fail(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(_fail))
    enhancer = PromptEnhancer("key", http_client=http)

    assert await enhancer.enhance_or_original("keep me", TARGET_CHAT) == "keep me"


@pytest.mark.asyncio
async def test_non_ascii_key_is_rejected_without_a_request() -> None:
    seen: List[httpx.Request] = []
    enhancer = _enhancer(httpx.Response(200, json={"result": {"promptOptimized": "x"}}), seen, key="pp-kéy")

    with pytest.raises(InvalidInput):
        await enhancer.enhance("cat", TARGET_CHAT)
    assert await enhancer.enhance_or_original("cat", TARGET_CHAT) == "cat"
    assert seen == []


@pytest.mark.asyncio
async def test_enhance_or_original_swallows_unexpected_errors() -> None:
    def _explode(request: httpx.Request) -> httpx.Response:
        raise RuntimeError("transport bug")

    http = httpx.AsyncClient(transport=httpx.MockTransport(_explode))
    enhancer = PromptEnhancer("key", http_client=http)

    assert await enhancer.enhance_or_original("keep me", TARGET_IMAGE) == "keep me"
