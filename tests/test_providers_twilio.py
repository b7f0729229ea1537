"""Unit tests for the Twilio SMS provider."""

from unittest.mock import Mock

import pytest
import requests

from notifier.domain.models import SMSParams
from notifier.notifications.classifier import classify
from notifier.notifications.models import ProviderPermanentError, ProviderTransientError
from notifier.providers.exceptions import InvalidRecipientError
from notifier.providers.twilio import TwilioSMSProvider, normalize_phone_number


def make_response(status_code, body=None, reason="OK"):
    response = Mock()
    response.status_code = status_code
    response.reason = reason
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session():
    session = Mock()
    session.post.return_value = make_response(201, {"sid": "SM123", "num_segments": "2"})
    return session


@pytest.fixture
def provider(session):
    return TwilioSMSProvider("AC123", "secret", "+16575550000", session=session)


class TestTwilioSend:
    """Tests for sending through the Messages resource."""

    async def test_send_success(self, provider, session):
        result = await provider.send(SMSParams(to="(657) 555-0100", body="Hi from Puppy Day"))

        assert result.success is True
        assert result.message_id == "SM123"
        assert result.segment_count == 2

        session.post.assert_called_once_with(
            "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json",
            data={"To": "+16575550100", "From": "+16575550000", "Body": "Hi from Puppy Day"},
            timeout=15.0,
        )
        assert session.auth == ("AC123", "secret")

    async def test_from_override(self, provider, session):
        await provider.send(SMSParams(to="+16575550100", body="x", from_="+16575559999"))

        assert session.post.call_args.kwargs["data"]["From"] == "+16575559999"

    async def test_error_response_returns_failure(self, provider, session):
        session.post.return_value = make_response(
            400,
            {"code": 21211, "message": "The 'To' number is not a valid phone number."},
            reason="Bad Request",
        )

        result = await provider.send(SMSParams(to="+16575550100", body="x"))

        assert result.success is False
        assert result.status_code == 400
        assert result.error == "Twilio error 21211: The 'To' number is not a valid phone number."

    async def test_error_without_json_uses_reason(self, provider, session):
        session.post.return_value = make_response(500, reason="Internal Server Error")

        result = await provider.send(SMSParams(to="+16575550100", body="x"))

        assert result.success is False
        assert result.status_code == 500
        assert result.error == "Twilio error: Internal Server Error"

    async def test_timeout_is_transient(self, provider, session):
        session.post.side_effect = requests.Timeout("read timed out")

        with pytest.raises(ProviderTransientError):
            await provider.send(SMSParams(to="+16575550100", body="x"))

    async def test_connection_error_is_transient(self, provider, session):
        session.post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(ProviderTransientError):
            await provider.send(SMSParams(to="+16575550100", body="x"))

    async def test_other_request_errors_are_permanent(self, provider, session):
        session.post.side_effect = requests.exceptions.InvalidURL("bad url")

        with pytest.raises(ProviderPermanentError):
            await provider.send(SMSParams(to="+16575550100", body="x"))

    @pytest.mark.parametrize("raw", ["555-0100", "555-4290"])
    async def test_invalid_number_raises_permanent_error(self, provider, session, raw):
        with pytest.raises(InvalidRecipientError, match="Invalid phone number format") as exc_info:
            await provider.send(SMSParams(to=raw, body="x"))

        assert classify(exc_info.value).transient is False
        session.post.assert_not_called()


class TestNormalizePhoneNumber:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("6575550100", "+16575550100"),
            ("(657) 555-0100", "+16575550100"),
            ("1-657-555-0100", "+16575550100"),
            ("+44 20 7946 0958", "+442079460958"),
            (" +16575550100 ", "+16575550100"),
        ],
    )
    def test_valid_numbers(self, raw, expected):
        assert normalize_phone_number(raw) == expected

    @pytest.mark.parametrize("raw", ["", "555-0100", "22575550100", "+123"])
    def test_invalid_numbers(self, raw):
        with pytest.raises(InvalidRecipientError):
            normalize_phone_number(raw)
