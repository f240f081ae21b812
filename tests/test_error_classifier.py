import asyncio

import aiohttp
import pytest

from speechbatch.core.error_classifier import (
    classify_error,
    classify_http_status,
    is_retryable,
    parse_retry_after,
)
from speechbatch.core.exceptions import (
    InvalidInputError,
    ProviderAuthenticationError,
    ProviderHTTPError,
    ProviderNotImplementedError,
    QuotaExceededError,
    TransientProviderError,
)
from speechbatch.core.interfaces import ErrorClassification


class TestClassifyHttpStatus:

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_statuses(self, status):
        assert classify_http_status(status) is ErrorClassification.AUTHENTICATION

    @pytest.mark.parametrize("status", [408, 500, 502, 503, 504, 599])
    def test_transient_statuses(self, status):
        assert classify_http_status(status) is ErrorClassification.TRANSIENT

    @pytest.mark.parametrize("status", [400, 404, 413, 415, 422])
    def test_invalid_input_statuses(self, status):
        assert classify_http_status(status) is ErrorClassification.INVALID_INPUT

    @pytest.mark.parametrize("status", [302, 405, 409, 410, 414, 425, 451])
    def test_unlisted_statuses_are_fatal(self, status):
        assert classify_http_status(status) is ErrorClassification.FATAL

    def test_429_without_quota_signal_is_transient(self):
        assert classify_http_status(429, "slow down") is ErrorClassification.TRANSIENT

    def test_429_with_retry_after_is_quota(self):
        assert classify_http_status(429, "", retry_after=5) is ErrorClassification.QUOTA_EXCEEDED

    def test_429_with_quota_keyword_is_quota(self):
        body = '{"error": {"code": "insufficient_quota"}}'
        assert classify_http_status(429, body) is ErrorClassification.QUOTA_EXCEEDED

    def test_unknown_status_is_fatal(self):
        assert classify_http_status(418) is ErrorClassification.FATAL


class TestClassifyError:

    def test_declared_classifications(self):
        cases = [
            (TransientProviderError("x"), ErrorClassification.TRANSIENT),
            (ProviderAuthenticationError("x"), ErrorClassification.AUTHENTICATION),
            (QuotaExceededError("x"), ErrorClassification.QUOTA_EXCEEDED),
            (InvalidInputError("x"), ErrorClassification.INVALID_INPUT),
            (ProviderNotImplementedError("amazon_polly"), ErrorClassification.NOT_IMPLEMENTED),
        ]
        for error, expected in cases:
            assert classify_error(error).classification is expected

    def test_quota_error_carries_retry_after(self):
        classified = classify_error(QuotaExceededError("limit", provider="openai", retry_after=7))
        assert classified.retry_after == 7
        assert classified.retryable

    def test_http_error_uses_status_mapping(self):
        error = ProviderHTTPError("azure", 401, "Unauthorized")
        classified = classify_error(error)

        assert classified.classification is ErrorClassification.AUTHENTICATION
        assert classified.error_code == "PROVIDER_HTTP_401"
        assert "AZURE_SPEECH_KEY" in classified.hint

    def test_http_429_retry_after_flows_through(self):
        classified = classify_error(ProviderHTTPError("deepgram", 429, "", retry_after=3.0))
        assert classified.classification is ErrorClassification.QUOTA_EXCEEDED
        assert classified.retry_after == 3.0

    def test_timeouts_and_connection_errors_are_transient(self):
        for error in (asyncio.TimeoutError(), ConnectionResetError("reset"),
                      aiohttp.ClientConnectionError("refused")):
            assert classify_error(error).classification is ErrorClassification.TRANSIENT

    def test_not_implemented_error(self):
        assert classify_error(NotImplementedError()).classification is ErrorClassification.NOT_IMPLEMENTED

    def test_unknown_exception_is_fatal(self):
        classified = classify_error(KeyError("boom"))
        assert classified.classification is ErrorClassification.FATAL
        assert classified.error_type == "KeyError"
        assert not classified.retryable

    def test_hint_is_always_present(self):
        errors = [TransientProviderError("x"), InvalidInputError("x"), ValueError("x"),
                  ProviderAuthenticationError("x", provider="unknown-vendor")]
        for error in errors:
            assert classify_error(error).hint

    def test_is_retryable_only_for_transient_and_quota(self):
        retryable = {c for c in ErrorClassification if is_retryable(c)}
        assert retryable == {ErrorClassification.TRANSIENT, ErrorClassification.QUOTA_EXCEEDED}


class TestParseRetryAfter:

    def test_seconds(self):
        assert parse_retry_after("12") == 12.0
        assert parse_retry_after(3) == 3.0

    def test_missing_or_garbage(self):
        assert parse_retry_after(None) is None
        assert parse_retry_after("") is None
        assert parse_retry_after("soon") is None

    def test_http_date_in_past_is_zero(self):
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0
