"""Standardized error types for the generation pipeline.

Every pipeline stage (link resolution, context assembly, network calls and
document writes) reports failure by raising one of these classes. The
command controller is the only place that turns them into user notices.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Constants for machine-readable error codes."""

    # Input errors
    INVALID_INPUT = "invalid_input"
    UNSUPPORTED_MEDIA_TYPE = "unsupported_media_type"

    # Configuration errors
    MISSING_CREDENTIAL = "missing_credential"

    # Session errors
    ALREADY_IN_PROGRESS = "already_in_progress"

    # Remote service errors
    PROVIDER_ERROR = "provider_error"
    SEARCH_FAILED = "search_failed"
    NETWORK_FAILURE = "network_failure"
    UNEXPECTED_RESPONSE = "unexpected_response"

    # Resolution errors
    NO_LINK_FOUND = "no_link_found"
    FILE_NOT_FOUND = "file_not_found"
    NO_ACTIVE_DOCUMENT = "no_active_document"

    # Anything not raised by the pipeline itself
    UNEXPECTED_ERROR = "unexpected_error"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class CommanderError(Exception):
    """Base exception class for all pipeline errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description shown in notices.
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for logging and CLI output."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def __str__(self) -> str:
        return self.message


# -----------------------------------------------------------------------------
# Input Errors
# -----------------------------------------------------------------------------

@dataclass
class InvalidInput(CommanderError):
    """Raised for empty or oversized prompts and empty audio payloads."""

    error_code: str = field(default=ErrorCode.INVALID_INPUT)
    message: str = field(default="Cannot find prompt.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")


@dataclass
class UnsupportedMediaType(InvalidInput):
    """Raised when an audio file extension is missing or not accepted."""

    error_code: str = field(default=ErrorCode.UNSUPPORTED_MEDIA_TYPE)
    message: str = field(default="Unsupported media type.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    extension: str | None = field(default=None)

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.extension is not None:
            self.details.setdefault("extension", self.extension)


@dataclass
class MissingCredential(CommanderError):
    """Raised before any network call when a required API key is empty."""

    error_code: str = field(default=ErrorCode.MISSING_CREDENTIAL)
    message: str = field(default="API key is not provided.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Enter the key in the plugin settings.")

    credential: str | None = field(default=None)

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.credential:
            self.details.setdefault("credential", self.credential)


@dataclass
class AlreadyInProgress(CommanderError):
    """Raised when a generation is requested while another one runs."""

    error_code: str = field(default=ErrorCode.ALREADY_IN_PROGRESS)
    message: str = field(default="A generation is already in progress.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Wait for the current generation to finish.")

    severity: ClassVar[str] = "warning"


# -----------------------------------------------------------------------------
# Remote Service Errors
# -----------------------------------------------------------------------------

@dataclass
class ProviderError(CommanderError):
    """Raised when a remote service returns an error or a non-success status."""

    error_code: str = field(default=ErrorCode.PROVIDER_ERROR)
    message: str = field(default="The AI provider returned an error.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    status_code: int | None = field(default=None)

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.status_code is not None:
            self.details.setdefault("status_code", self.status_code)


@dataclass
class SearchFailed(ProviderError):
    """Raised when the web search call fails or returns no usable results."""

    error_code: str = field(default=ErrorCode.SEARCH_FAILED)
    message: str = field(default="Web search failed.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")


@dataclass
class NetworkFailure(CommanderError):
    """Raised for transport-level failures (DNS, connection, timeout)."""

    error_code: str = field(default=ErrorCode.NETWORK_FAILURE)
    message: str = field(default="Network request failed.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Check the network connection and try again.")


@dataclass
class UnexpectedResponse(CommanderError):
    """Raised when a response lacks the fields the pipeline needs."""

    error_code: str = field(default=ErrorCode.UNEXPECTED_RESPONSE)
    message: str = field(default="Unexpected response from the service.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")


# -----------------------------------------------------------------------------
# Resolution Errors
# -----------------------------------------------------------------------------

@dataclass
class NoLinkFound(CommanderError):
    """Raised when no link matcher produces a hit in the document text."""

    error_code: str = field(default=ErrorCode.NO_LINK_FOUND)
    message: str = field(default="No file found in the text.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Add a link to the file above the cursor.")


@dataclass
class FileNotFound(CommanderError):
    """Raised when a link resolves to nothing in the vault."""

    error_code: str = field(default=ErrorCode.FILE_NOT_FOUND)
    message: str = field(default="File not found.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    path: str | None = field(default=None)

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.path:
            self.details.setdefault("path", self.path)


@dataclass
class NoActiveDocument(CommanderError):
    """Raised when an operation needs the current document's location."""

    error_code: str = field(default=ErrorCode.NO_ACTIVE_DOCUMENT)
    message: str = field(default="No active file.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Open a note before running this command.")


__all__ = [
    "ErrorCode",
    "CommanderError",
    "InvalidInput",
    "UnsupportedMediaType",
    "MissingCredential",
    "AlreadyInProgress",
    "ProviderError",
    "SearchFailed",
    "NetworkFailure",
    "UnexpectedResponse",
    "NoLinkFound",
    "FileNotFound",
    "NoActiveDocument",
]
