"""Typed error kinds raised at the provider boundary.

Provider SDKs raise their own exception hierarchies; adapters translate them
into a ``ProviderError`` carrying an ``ErrorKind`` so that request handlers map
errors to HTTP statuses without inspecting upstream error text.
"""

from __future__ import annotations

import asyncio
import enum

import anthropic
import httpx
import openai


class ErrorKind(enum.Enum):
    RATE_LIMITED = "rate_limited"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    INVALID_REQUEST = "invalid_request"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.UPSTREAM_UNAVAILABLE: 504,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.CONFIGURATION: 503,
    ErrorKind.INTERNAL: 500,
}

_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.RATE_LIMITED: (
        "API quota exceeded. Please wait a minute before trying again, "
        "or upgrade your plan for higher limits."
    ),
    ErrorKind.UPSTREAM_UNAVAILABLE: (
        "The upstream service timed out or could not be reached. "
        "Please try again in a moment."
    ),
    ErrorKind.INVALID_REQUEST: "The request could not be processed.",
    ErrorKind.CONFIGURATION: "This endpoint is not configured on the server.",
    ErrorKind.INTERNAL: "Something went wrong while generating a response.",
}

# Only consulted for exceptions whose type says nothing about the failure.
_RATE_LIMIT_MARKERS = ("quota", "rate limit", "exceeded")
_UNAVAILABLE_MARKERS = (
    "timeout",
    "timed out",
    "connect timeout",
    "cannot connect",
    "failed after",
)

_RATE_LIMIT_TYPES: tuple[type[BaseException], ...] = (
    openai.RateLimitError,
    anthropic.RateLimitError,
)

_UNAVAILABLE_TYPES: tuple[type[BaseException], ...] = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    anthropic.APITimeoutError,
    anthropic.APIConnectionError,
    httpx.TimeoutException,
    httpx.ConnectError,
    asyncio.TimeoutError,
    TimeoutError,
)

_INVALID_TYPES: tuple[type[BaseException], ...] = (
    openai.BadRequestError,
    anthropic.BadRequestError,
)


class ProviderError(Exception):
    """An upstream failure tagged with the kind of error it represents."""

    def __init__(self, kind: ErrorKind, message: str | None = None) -> None:
        super().__init__(message or _USER_MESSAGES[kind])
        self.kind = kind

    @property
    def status_code(self) -> int:
        return status_code(self.kind)


def status_code(kind: ErrorKind) -> int:
    return _STATUS_CODES[kind]


def user_message(kind: ErrorKind) -> str:
    return _USER_MESSAGES[kind]


def classify_text(text: str) -> ErrorKind:
    """Fallback classification from free-form error text."""
    lowered = text.lower()
    if any(marker in lowered for marker in _RATE_LIMIT_MARKERS):
        return ErrorKind.RATE_LIMITED
    if any(marker in lowered for marker in _UNAVAILABLE_MARKERS):
        return ErrorKind.UPSTREAM_UNAVAILABLE
    return ErrorKind.INTERNAL


def classify_exception(exc: BaseException) -> ErrorKind:
    if isinstance(exc, ProviderError):
        return exc.kind
    if isinstance(exc, _RATE_LIMIT_TYPES):
        return ErrorKind.RATE_LIMITED
    if isinstance(exc, _UNAVAILABLE_TYPES):
        return ErrorKind.UPSTREAM_UNAVAILABLE
    if isinstance(exc, _INVALID_TYPES):
        return ErrorKind.INVALID_REQUEST
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        if code == 429:
            return ErrorKind.RATE_LIMITED
        if code in (502, 503, 504):
            return ErrorKind.UPSTREAM_UNAVAILABLE
    return classify_text(str(exc))


def to_provider_error(exc: BaseException) -> ProviderError:
    """Wrap any exception as a ProviderError, keeping existing ones as-is."""
    if isinstance(exc, ProviderError):
        return exc
    return ProviderError(classify_exception(exc), str(exc) or None)
