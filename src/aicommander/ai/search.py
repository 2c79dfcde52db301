"""Web search clients used to ground chat prompts in fresh results."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Protocol

import httpx

from .errors import InvalidInput, MissingCredential, NetworkFailure, SearchFailed
from .schemas import BING_SEARCH_SCHEMA, SERPAPI_SEARCH_SCHEMA, schema_errors

LOGGER = logging.getLogger(__name__)

BING_SEARCH_URL = "https://api.bing.microsoft.com/v7.0/search"
SERPAPI_SEARCH_URL = "https://serpapi.com/search"


@dataclass(slots=True, frozen=True)
class SearchResult:
    """One web result, reduced to the fields placed in the prompt context."""

    title: str
    url: str
    snippet: str = ""

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


class SearchClient(Protocol):
    async def search(self, query: str, *, count: int | None = None) -> List[SearchResult]:
        ...


class _HttpSearchClient:
    provider = "search"
    endpoint = ""

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float | None = 90.0,
        count: int = 20,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._count = count
        self._http_client = http_client

    async def search(self, query: str, *, count: int | None = None) -> List[SearchResult]:
        """Run ``query`` and return at most ``count`` results."""

        if not (self._api_key or "").strip():
            raise MissingCredential(
                message=f"{self.provider} API Key is not provided.",
                credential="search_api_key",
            )
        limit = count or self._count
        params, headers = self._build_request(query, limit)
        payload = await self._get(params, headers)
        results = self._parse(payload)[:limit]
        LOGGER.info("%s search %r: %s result(s)", self.provider, query[:50], len(results))
        return results

    async def _get(self, params: Mapping[str, Any], headers: Mapping[str, str]) -> Any:
        try:
            if self._http_client is not None:
                response = await self._http_client.get(
                    self.endpoint, params=params, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(self.endpoint, params=params, headers=headers)
        except UnicodeError as exc:
            raise InvalidInput(message=f"{self.provider} API Key contains unsupported characters.") from exc
        except httpx.HTTPError as exc:
            raise NetworkFailure(message=f"{self.provider} request failed: {exc}") from exc

        if response.is_error:
            raise SearchFailed(
                message=f"{self.provider} API: {response.status_code} {_error_message(response)}".strip(),
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise SearchFailed(message=f"{self.provider} API returned invalid JSON.") from exc

        problems = schema_errors(payload, self._schema())
        if problems:
            raise SearchFailed(
                message=f"{self.provider} API returned an unexpected response.",
                details={"errors": problems},
            )
        return payload

    def _build_request(self, query: str, count: int) -> tuple[Dict[str, Any], Dict[str, str]]:
        raise NotImplementedError

    def _schema(self) -> Mapping[str, Any]:
        raise NotImplementedError

    def _parse(self, payload: Mapping[str, Any]) -> List[SearchResult]:
        raise NotImplementedError


class BingSearchClient(_HttpSearchClient):
    """Bing Web Search v7."""

    provider = "Bing Search"
    endpoint = BING_SEARCH_URL

    def _build_request(self, query: str, count: int) -> tuple[Dict[str, Any], Dict[str, str]]:
        return {"q": query, "count": count}, {"Ocp-Apim-Subscription-Key": self._api_key}

    def _schema(self) -> Mapping[str, Any]:
        return BING_SEARCH_SCHEMA

    def _parse(self, payload: Mapping[str, Any]) -> List[SearchResult]:
        pages = payload.get("webPages") or {}
        return [
            SearchResult(
                title=item.get("name", ""),
                url=item.get("url", ""),
                snippet=item.get("snippet", ""),
            )
            for item in pages.get("value") or []
        ]


class SerpApiSearchClient(_HttpSearchClient):
    """Google results through SerpAPI."""

    provider = "SerpAPI"
    endpoint = SERPAPI_SEARCH_URL

    def _build_request(self, query: str, count: int) -> tuple[Dict[str, Any], Dict[str, str]]:
        params = {"q": query, "num": count, "engine": "google", "api_key": self._api_key}
        return params, {}

    def _schema(self) -> Mapping[str, Any]:
        return SERPAPI_SEARCH_SCHEMA

    def _parse(self, payload: Mapping[str, Any]) -> List[SearchResult]:
        if payload.get("error") and not payload.get("organic_results"):
            # SerpAPI reports "no results" as an error string with a 200 status.
            LOGGER.debug("SerpAPI returned no results: %s", payload["error"])
            return []
        return [
            SearchResult(
                title=item.get("title", ""),
                url=item.get("link", ""),
                snippet=item.get("snippet", ""),
            )
            for item in payload.get("organic_results") or []
        ]


def build_search_client(
    settings: Any, *, http_client: httpx.AsyncClient | None = None
) -> SearchClient:
    """Return the search client selected by ``settings.search_engine``."""

    engine = (getattr(settings, "search_engine", "bing") or "bing").lower()
    client_cls = SerpApiSearchClient if engine == "serpapi" else BingSearchClient
    return client_cls(
        settings.search_api_key,
        timeout=settings.request_timeout,
        count=settings.search_result_count,
        http_client=http_client,
    )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, Mapping):
        error = body.get("error")
        if isinstance(error, Mapping):
            return str(error.get("message") or "")
        if error:
            return str(error)
    return ""


__all__ = [
    "SearchResult",
    "SearchClient",
    "BingSearchClient",
    "SerpApiSearchClient",
    "build_search_client",
    "BING_SEARCH_URL",
    "SERPAPI_SEARCH_URL",
]
