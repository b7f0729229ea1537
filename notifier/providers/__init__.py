"""Channel providers for email and SMS delivery."""

from .base import BaseEmailProvider, BaseSMSProvider
from .exceptions import InvalidRecipientError
from .factory import build_providers
from .memory import RecordingEmailProvider, RecordingSMSProvider
from .smtp import SMTPEmailProvider, build_sender_address, normalize_email
from .twilio import TwilioSMSProvider, normalize_phone_number

__all__ = [
    "BaseEmailProvider",
    "BaseSMSProvider",
    "SMTPEmailProvider",
    "TwilioSMSProvider",
    "RecordingEmailProvider",
    "RecordingSMSProvider",
    "build_providers",
    "build_sender_address",
    "normalize_email",
    "normalize_phone_number",
    "InvalidRecipientError",
]
