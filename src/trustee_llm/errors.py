"""Error hierarchy for provider calls.

Every error carries a ``retryable`` flag that the retry executor consults.
"""
from __future__ import annotations

from typing import Any


class LLMError(Exception):
    """Base error for all trustee_llm errors."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        cause: Exception | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.cause = cause
        if retryable is not None:
            self.retryable = retryable


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class TransportError(LLMError):
    """The request never produced a usable HTTP/plugin exchange."""

    retryable = True


class NetworkError(TransportError):
    """A network-level error occurred."""


class RequestTimeoutError(TransportError):
    """A provider call timed out."""


# ---------------------------------------------------------------------------
# Malformed output
# ---------------------------------------------------------------------------


class MalformedResponseError(LLMError):
    """The provider answered, but the answer could not be understood.

    Retryable a bounded number of times (``RetryPolicy.max_malformed_retries``).
    """

    retryable = True


class MalformedToolInputError(MalformedResponseError):
    """Accumulated tool-call input was not a valid JSON object."""

    def __init__(self, message: str, *, tool_call_id: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.tool_call_id = tool_call_id


class StreamStateError(MalformedResponseError):
    """Stream events arrived in an order the accumulator cannot accept."""


# ---------------------------------------------------------------------------
# Provider-reported errors
# ---------------------------------------------------------------------------


class ProviderError(LLMError):
    """Error explicitly reported by the provider."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "",
        status_code: int | None = None,
        error_code: str | None = None,
        retryable: bool | None = None,
        retry_after: float | None = None,
        raw: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause, retryable=retryable)
        self.provider = provider
        self.status_code = status_code
        self.error_code = error_code
        self.retry_after = retry_after
        self.raw = raw


class RateLimitError(ProviderError):
    """Rate limit exceeded."""

    retryable = True


class ServerError(ProviderError):
    """Server-side error from the provider."""

    retryable = True


class ProviderRejectedError(ProviderError):
    """The provider refused the request; retrying will not help."""

    retryable = False


class AuthenticationError(ProviderRejectedError):
    """Authentication failed (e.g. invalid API key)."""


class InvalidRequestError(ProviderRejectedError):
    """The request was malformed or invalid."""


class ContextLengthError(ProviderRejectedError):
    """Input exceeded the model's context window."""


class ContentPolicyError(ProviderRejectedError):
    """Content was blocked by a safety filter."""


# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------


def error_from_status_code(
    status_code: int,
    message: str,
    *,
    provider: str = "",
    error_code: str | None = None,
    raw: dict[str, Any] | None = None,
    retry_after: float | None = None,
) -> ProviderError:
    """Map an HTTP status code to the appropriate error type."""
    common: dict[str, Any] = dict(
        provider=provider,
        status_code=status_code,
        error_code=error_code,
        raw=raw,
        retry_after=retry_after,
    )

    if error_code in ("content_policy_violation", "content_filter"):
        return ContentPolicyError(message, **common)
    if status_code in (400, 422):
        return InvalidRequestError(message, **common)
    if status_code in (401, 403):
        return AuthenticationError(message, **common)
    if status_code == 404:
        return InvalidRequestError(message, **common)
    if status_code == 408:
        return ProviderError(message, retryable=True, **common)
    if status_code == 413:
        return ContextLengthError(message, **common)
    if status_code == 429:
        return RateLimitError(message, **common)
    if 500 <= status_code <= 599:
        return ServerError(message, **common)

    # Unknown status codes are retryable by default
    return ProviderError(message, retryable=True, **common)
