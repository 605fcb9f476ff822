"""Tests for the provider error hierarchy."""
from __future__ import annotations

import pytest

from trustee_llm.errors import (
    AuthenticationError,
    ContentPolicyError,
    ContextLengthError,
    InvalidRequestError,
    LLMError,
    MalformedResponseError,
    MalformedToolInputError,
    NetworkError,
    ProviderError,
    ProviderRejectedError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
    TransportError,
    error_from_status_code,
)


@pytest.mark.parametrize("status, expected", [
    (400, InvalidRequestError),
    (401, AuthenticationError),
    (403, AuthenticationError),
    (404, InvalidRequestError),
    (413, ContextLengthError),
    (422, InvalidRequestError),
    (429, RateLimitError),
    (500, ServerError),
    (529, ServerError),
])
def test_status_mapping(status, expected):
    err = error_from_status_code(status, "msg", provider="anthropic")
    assert type(err) is expected
    assert err.status_code == status
    assert err.provider == "anthropic"


def test_content_filter_code_wins_over_status():
    err = error_from_status_code(400, "blocked", error_code="content_filter")
    assert isinstance(err, ContentPolicyError)
    assert err.retryable is False


def test_unknown_status_is_retryable():
    err = error_from_status_code(418, "teapot")
    assert type(err) is ProviderError
    assert err.retryable is True


def test_request_timeout_status_is_retryable():
    assert error_from_status_code(408, "slow").retryable is True


def test_retry_after_is_carried():
    err = error_from_status_code(429, "slow down", retry_after=12.0)
    assert err.retry_after == 12.0


class TestRetryability:
    @pytest.mark.parametrize("cls", [NetworkError, RequestTimeoutError, MalformedResponseError,
                                     MalformedToolInputError, RateLimitError, ServerError])
    def test_retryable(self, cls):
        assert cls("x").retryable is True

    @pytest.mark.parametrize("cls", [AuthenticationError, InvalidRequestError,
                                     ContextLengthError, ContentPolicyError])
    def test_rejected(self, cls):
        err = cls("x")
        assert err.retryable is False
        assert isinstance(err, ProviderRejectedError)

    def test_override(self):
        assert ServerError("x", retryable=False).retryable is False

    def test_hierarchy(self):
        assert issubclass(RequestTimeoutError, TransportError)
        assert issubclass(MalformedToolInputError, MalformedResponseError)
        assert all(issubclass(c, LLMError) for c in (TransportError, MalformedResponseError, ProviderError))

    def test_cause(self):
        cause = OSError("socket")
        assert NetworkError("reset", cause=cause).cause is cause
