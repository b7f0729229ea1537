"""SMTP email provider.

Wraps Python's smtplib with TLS/SSL negotiation, authentication, recipient
validation, and connection lifecycle management. smtplib is blocking, so
each delivery runs in a worker thread.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Callable, Optional

from email_validator import EmailNotValidError, validate_email

from notifier.config.environment import EnvironmentConfig
from notifier.domain.models import EmailParams, ProviderResult

from .base import BaseEmailProvider
from .exceptions import InvalidRecipientError, ProviderPermanentError, ProviderTransientError

logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465


class SMTPEmailProvider(BaseEmailProvider):
    """Sends email through an SMTP relay.

    Designed to be easily mockable: the SMTP and SMTP_SSL constructors are
    injectable.
    """

    name = "smtp"

    def __init__(
        self,
        env_config: EnvironmentConfig,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        """Initialize SMTP provider.

        Args:
            env_config: Environment configuration with SMTP settings
            smtp_factory: Factory for SMTP instances (for mocking)
            smtp_ssl_factory: Factory for SMTP_SSL instances (for mocking)
            use_tls: Upgrade plain connections with STARTTLS
            timeout: Socket timeout in seconds
        """
        self.env_config = env_config
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL
        self.use_tls = use_tls
        self.timeout = timeout

    async def send(self, params: EmailParams) -> ProviderResult:
        """Build and deliver one email.

        An invalid recipient raises InvalidRecipientError, which is never
        retried. Transport failures raise ProviderTransientError or
        ProviderPermanentError.
        """
        recipient = normalize_email(params.to)

        message = self.build_message(params, recipient)
        await self.run_blocking(self._deliver, message)

        return ProviderResult(success=True, message_id=message["Message-ID"])

    def build_message(self, params: EmailParams, recipient: str) -> EmailMessage:
        sender = params.from_ or build_sender_address(self.env_config)

        message = EmailMessage()
        message["Subject"] = params.subject
        message["From"] = sender
        message["To"] = recipient
        if params.reply_to:
            message["Reply-To"] = params.reply_to
        message["Message-ID"] = make_msgid(domain=_sender_domain(self.env_config))

        if params.text:
            message.set_content(params.text)
            message.add_alternative(params.html, subtype="html")
        else:
            message.set_content(params.html, subtype="html")

        return message

    def _deliver(self, message: EmailMessage) -> None:
        env_config = self.env_config
        smtp = None
        try:
            if env_config.smtp_port == IMPLICIT_TLS_PORT:
                logger.debug(
                    f"Connecting to {env_config.smtp_host}:{env_config.smtp_port} with implicit TLS"
                )
                context = ssl.create_default_context()
                smtp = self.smtp_ssl_factory(
                    env_config.smtp_host,
                    env_config.smtp_port,
                    context=context,
                    timeout=self.timeout,
                )
            else:
                logger.debug(f"Connecting to {env_config.smtp_host}:{env_config.smtp_port}")
                smtp = self.smtp_factory(
                    env_config.smtp_host, env_config.smtp_port, timeout=self.timeout
                )
                if self.use_tls:
                    smtp.starttls(context=ssl.create_default_context())

            if env_config.smtp_user and env_config.smtp_pass:
                smtp.login(env_config.smtp_user, env_config.smtp_pass)

            smtp.send_message(message)
            logger.debug(f"Message sent successfully to {message['To']}")

        except smtplib.SMTPAuthenticationError as e:
            raise ProviderPermanentError(f"SMTP authentication failed: {e}") from e
        except smtplib.SMTPRecipientsRefused as e:
            raise ProviderPermanentError(f"SMTP recipient refused: {e}") from e
        except (smtplib.SMTPServerDisconnected, smtplib.SMTPConnectError) as e:
            raise ProviderTransientError(f"SMTP connection error: {e}") from e
        except smtplib.SMTPResponseException as e:
            # 4xx replies are temporary by definition
            if 400 <= e.smtp_code < 500:
                raise ProviderTransientError(f"SMTP temporary failure {e.smtp_code}: {e}") from e
            raise ProviderPermanentError(f"SMTP error {e.smtp_code}: {e}") from e
        except smtplib.SMTPException as e:
            raise ProviderPermanentError(f"SMTP error during message delivery: {e}") from e
        except OSError as e:
            raise ProviderTransientError(f"Network error during SMTP connection: {e}") from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(f"Error closing SMTP connection: {e}")


def normalize_email(address: str) -> str:
    """Validate and normalize a recipient address.

    Raises:
        InvalidRecipientError: If the address is not a valid email
    """
    try:
        return validate_email(address.strip(), check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise InvalidRecipientError(f"Invalid email address '{address}': {e}") from e


def build_sender_address(env_config: EnvironmentConfig) -> str:
    """Build the 'From' address for outgoing emails.

    Uses SMTP_FROM_EMAIL (or SMTP_USER) when set, otherwise a noreply
    address at the SMTP host.
    """
    sender_email = env_config.smtp_from_email or f"noreply@{env_config.smtp_host}"
    return formataddr((env_config.smtp_sender_name, sender_email))


def _sender_domain(env_config: EnvironmentConfig) -> Optional[str]:
    sender_email = env_config.smtp_from_email
    if sender_email and "@" in sender_email:
        return sender_email.rsplit("@", 1)[1]
    return env_config.smtp_host
