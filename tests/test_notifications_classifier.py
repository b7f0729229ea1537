"""Unit tests for failure classification."""

from types import SimpleNamespace

import pytest

from notifier.domain.models import ErrorKind, ProviderResult
from notifier.notifications.classifier import classify
from notifier.notifications.models import (
    ChannelDisabledError,
    ProviderPermanentError,
    ProviderTransientError,
    TemplateNotFoundError,
    UnclassifiedError,
)


class TestClassifyMessages:
    """Tests for classification of error strings."""

    @pytest.mark.parametrize(
        "message",
        [
            "ETIMEDOUT",
            "ETIMEDOUT: Connection timeout",
            "ECONNRESET",
            "socket hang up",
            "Network is unreachable",
            "Read timed out",
            "connection refused by host",
        ],
    )
    def test_network_errors_are_transient(self, message):
        result = classify(message)

        assert result.kind == ErrorKind.TRANSIENT
        assert result.transient is True

    @pytest.mark.parametrize(
        "message", ["Rate limit exceeded", "429", "Too Many Requests", "quota exceeded"]
    )
    def test_rate_limits_are_transient(self, message):
        result = classify(message)

        assert result.kind == ErrorKind.RATE_LIMIT
        assert result.transient is True

    @pytest.mark.parametrize(
        "message",
        [
            "Invalid email address format",
            "Invalid phone number",
            "Validation failed",
            "Malformed recipient",
            "Missing required parameter To",
        ],
    )
    def test_validation_errors_are_permanent(self, message):
        result = classify(message)

        assert result.kind == ErrorKind.VALIDATION
        assert result.transient is False

    def test_unknown_errors_fail_closed(self):
        assert classify("Something odd happened").kind == ErrorKind.PERMANENT

    def test_empty_and_none(self):
        assert classify("").message == "Unknown error"
        assert classify(None).transient is False

    def test_classification_is_deterministic(self):
        assert classify("ETIMEDOUT") == classify("ETIMEDOUT")

    def test_message_is_preserved(self):
        assert classify("ETIMEDOUT: Connection timeout").message == "ETIMEDOUT: Connection timeout"


class TestClassifyStatusCodes:
    """Tests for classification by HTTP status."""

    @pytest.mark.parametrize(
        "status_code,kind",
        [
            (429, ErrorKind.RATE_LIMIT),
            (500, ErrorKind.TRANSIENT),
            (503, ErrorKind.TRANSIENT),
            (400, ErrorKind.VALIDATION),
            (422, ErrorKind.VALIDATION),
            (401, ErrorKind.PERMANENT),
            (404, ErrorKind.PERMANENT),
        ],
    )
    def test_provider_result_status(self, status_code, kind):
        result = classify(ProviderResult(success=False, error="Twilio error", status_code=status_code))

        assert result.kind == kind
        assert result.status_code == status_code
        assert result.message == "Twilio error"

    def test_status_beats_pattern(self):
        result = classify(ProviderResult(success=False, error="Invalid gateway", status_code=502))

        assert result.kind == ErrorKind.TRANSIENT

    def test_response_status_code_is_read(self):
        error = SimpleNamespace(message="upstream", response=SimpleNamespace(status_code=503))

        assert classify(error).kind == ErrorKind.TRANSIENT


class TestClassifyExceptions:
    """Tests for classification of exceptions."""

    def test_provider_transient_error(self):
        assert classify(ProviderTransientError("invalid but retryable")).transient is True

    @pytest.mark.parametrize(
        "error",
        [
            ProviderPermanentError("timeout while authenticating"),
            ChannelDisabledError("disabled"),
            TemplateNotFoundError("missing"),
            UnclassifiedError("network hiccup"),
        ],
    )
    def test_permanent_taxonomy_short_circuits_patterns(self, error):
        assert classify(error).transient is False

    def test_builtin_timeout_and_connection_errors(self):
        assert classify(TimeoutError()).transient is True
        assert classify(ConnectionResetError("reset")).transient is True

    def test_plain_exception_uses_patterns(self):
        assert classify(RuntimeError("Connection reset by peer")).transient is True
        assert classify(RuntimeError("kaboom")).transient is False
