"""JSON schemas for third-party response bodies and a validation helper."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

import jsonschema

MAX_SCHEMA_ERRORS = 5

BING_SEARCH_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "webPages": {
            "type": "object",
            "properties": {
                "value": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["name", "url"],
                        "properties": {
                            "name": {"type": "string"},
                            "url": {"type": "string"},
                            "snippet": {"type": "string"},
                        },
                    },
                },
            },
        },
    },
}

SERPAPI_SEARCH_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "error": {"type": "string"},
        "organic_results": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["link"],
                "properties": {
                    "title": {"type": "string"},
                    "link": {"type": "string"},
                    "snippet": {"type": "string"},
                },
            },
        },
    },
}

PROMPT_ENHANCER_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "required": ["result"],
    "properties": {
        "result": {
            "type": "object",
            "required": ["promptOptimized"],
            "properties": {"promptOptimized": {"type": "string", "minLength": 1}},
        },
    },
}


def schema_errors(payload: Any, schema: Mapping[str, Any]) -> list[str]:
    """Return readable validation messages for ``payload`` (empty when valid)."""

    validator = jsonschema.Draft202012Validator(schema)
    messages: list[str] = []
    for issue in validator.iter_errors(payload):
        path = _format_schema_path(issue.absolute_path)
        messages.append(f"{path}: {issue.message}" if path else issue.message)
        if len(messages) >= MAX_SCHEMA_ERRORS:
            break
    return messages


def _format_schema_path(parts: Iterable[Any]) -> str:
    rendered = ""
    for part in parts:
        if isinstance(part, int):
            rendered += f"[{part}]"
        else:
            rendered += f".{part}" if rendered else str(part)
    return rendered


__all__ = [
    "BING_SEARCH_SCHEMA",
    "SERPAPI_SEARCH_SCHEMA",
    "PROMPT_ENHANCER_SCHEMA",
    "schema_errors",
]
