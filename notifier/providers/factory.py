"""Provider selection from environment configuration."""

import logging
from typing import Tuple

from notifier.config.environment import EnvironmentConfig

from .base import BaseEmailProvider, BaseSMSProvider
from .memory import RecordingEmailProvider, RecordingSMSProvider
from .smtp import SMTPEmailProvider
from .twilio import TwilioSMSProvider

logger = logging.getLogger(__name__)


def build_providers(env_config: EnvironmentConfig) -> Tuple[BaseEmailProvider, BaseSMSProvider]:
    """Create the email and SMS providers.

    Real providers are used when their credentials are configured; otherwise
    the channel falls back to a recording provider and nothing leaves the
    process.
    """
    if env_config.smtp_configured:
        email_provider: BaseEmailProvider = SMTPEmailProvider(env_config)
    else:
        logger.warning("SMTP not configured; email will be recorded, not delivered")
        email_provider = RecordingEmailProvider()

    if env_config.twilio_configured:
        sms_provider: BaseSMSProvider = TwilioSMSProvider(
            account_sid=env_config.twilio_account_sid,
            auth_token=env_config.twilio_auth_token,
            from_number=env_config.twilio_phone_number,
        )
    else:
        logger.warning("Twilio not configured; SMS will be recorded, not delivered")
        sms_provider = RecordingSMSProvider()

    logger.info(
        f"Using providers: email={email_provider.name}, sms={sms_provider.name}"
    )
    return email_provider, sms_provider
