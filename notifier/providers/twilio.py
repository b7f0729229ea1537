"""Twilio SMS provider using the Twilio REST API over requests."""

import logging
import re
from typing import Any, Dict, Optional

import requests

from notifier.domain.models import ProviderResult, SMSParams

from .base import BaseSMSProvider
from .exceptions import InvalidRecipientError, ProviderPermanentError, ProviderTransientError

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class TwilioSMSProvider(BaseSMSProvider):
    """Sends SMS through Twilio's Messages resource."""

    name = "twilio"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        session: Optional[requests.Session] = None,
        timeout: float = 15.0,
        api_base: str = TWILIO_API_BASE,
    ):
        self.account_sid = account_sid
        self.from_number = from_number
        self.timeout = timeout
        self.url = f"{api_base}/Accounts/{account_sid}/Messages.json"
        self.session = session or requests.Session()
        self.session.auth = (account_sid, auth_token)

    async def send(self, params: SMSParams) -> ProviderResult:
        """Send one SMS.

        HTTP error responses come back as a failed ProviderResult carrying
        the status code; timeouts and connection failures raise
        ProviderTransientError. A number that cannot be normalized raises
        InvalidRecipientError, which is never retried.
        """
        to_number = normalize_phone_number(params.to)

        payload = {
            "To": to_number,
            "From": params.from_ or self.from_number,
            "Body": params.body,
        }
        return await self.run_blocking(self._post, payload)

    def _post(self, payload: Dict[str, str]) -> ProviderResult:
        try:
            response = self.session.post(self.url, data=payload, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise ProviderTransientError(f"Twilio request failed: {e}") from e
        except requests.RequestException as e:
            raise ProviderPermanentError(f"Twilio request error: {e}") from e

        body = _json_body(response)

        if response.status_code >= 400:
            code = body.get("code")
            message = body.get("message") or response.reason or "Unknown error"
            error = f"Twilio error {code}: {message}" if code else f"Twilio error: {message}"
            logger.warning(
                f"Twilio rejected message with HTTP {response.status_code}: {error}"
            )
            return ProviderResult(
                success=False, error=error, status_code=response.status_code
            )

        return ProviderResult(
            success=True,
            message_id=body.get("sid"),
            segment_count=_to_int(body.get("num_segments")),
            status_code=response.status_code,
        )


def normalize_phone_number(number: str) -> str:
    """Normalize a phone number to E.164.

    Ten-digit numbers are treated as US numbers; eleven digits starting
    with 1 get a leading ``+``; numbers already prefixed with ``+`` keep
    their country code.

    Raises:
        InvalidRecipientError: If the number cannot be normalized
    """
    raw = (number or "").strip()
    digits = re.sub(r"\D", "", raw)

    if raw.startswith("+") and 8 <= len(digits) <= 15:
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"

    raise InvalidRecipientError(f"Invalid phone number format: '{number}'")


def _json_body(response: requests.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
