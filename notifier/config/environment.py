"""Environment variable loading and validation."""

import os
import re
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./data/notifications.db"
DEFAULT_SMTP_PORT = 587

_E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        smtp_host: Optional[str] = None,
        smtp_port: int = DEFAULT_SMTP_PORT,
        smtp_user: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        smtp_sender_name: Optional[str] = None,
        smtp_from_email: Optional[str] = None,
        twilio_account_sid: Optional[str] = None,
        twilio_auth_token: Optional[str] = None,
        twilio_phone_number: Optional[str] = None,
        log_level: Optional[str] = None,
    ):
        """Initialize environment configuration."""
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.smtp_sender_name = smtp_sender_name or "Puppy Day"
        self.smtp_from_email = smtp_from_email or smtp_user
        self.twilio_account_sid = twilio_account_sid
        self.twilio_auth_token = twilio_auth_token
        self.twilio_phone_number = twilio_phone_number
        self.log_level = log_level

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_from_email)

    @property
    def twilio_configured(self) -> bool:
        return bool(
            self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number
        )


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Nothing is strictly required: a channel whose credentials are absent
    falls back to the in-memory recording provider.

    Optional environment variables:
    - DATABASE_URL: SQLAlchemy async URL (default: sqlite+aiosqlite:///./data/notifications.db)
    - SMTP_HOST / SMTP_PORT: SMTP server (port defaults to 587; 465 uses implicit TLS)
    - SMTP_USER / SMTP_PASS: SMTP authentication (both or neither)
    - SMTP_SENDER_NAME: Display name for the From header
    - SMTP_FROM_EMAIL: From address (defaults to SMTP_USER)
    - TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN / TWILIO_PHONE_NUMBER: SMS credentials (all or none)
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If any variable is present but invalid
    """
    errors = []

    database_url = os.getenv("DATABASE_URL")
    smtp_host = os.getenv("SMTP_HOST")
    smtp_port_str = os.getenv("SMTP_PORT")
    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")
    smtp_sender_name = os.getenv("SMTP_SENDER_NAME")
    smtp_from_email = os.getenv("SMTP_FROM_EMAIL")
    twilio_account_sid = os.getenv("TWILIO_ACCOUNT_SID")
    twilio_auth_token = os.getenv("TWILIO_AUTH_TOKEN")
    twilio_phone_number = os.getenv("TWILIO_PHONE_NUMBER")
    log_level = os.getenv("LOG_LEVEL")

    smtp_port = DEFAULT_SMTP_PORT
    if smtp_port_str:
        try:
            smtp_port = int(smtp_port_str)
            if smtp_port < 1 or smtp_port > 65535:
                errors.append(
                    f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535."
                )
        except ValueError:
            errors.append(
                f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer."
            )

    if smtp_user and not smtp_pass:
        errors.append(
            "SMTP_USER is set but SMTP_PASS is not. Both must be set for authentication."
        )
    elif smtp_pass and not smtp_user:
        errors.append(
            "SMTP_PASS is set but SMTP_USER is not. Both must be set for authentication."
        )

    if smtp_from_email and not _is_valid_email(smtp_from_email):
        errors.append(f"Invalid email address format in SMTP_FROM_EMAIL: '{smtp_from_email}'")

    twilio_values = {
        "TWILIO_ACCOUNT_SID": twilio_account_sid,
        "TWILIO_AUTH_TOKEN": twilio_auth_token,
        "TWILIO_PHONE_NUMBER": twilio_phone_number,
    }
    present = [name for name, value in twilio_values.items() if value]
    if present and len(present) != len(twilio_values):
        missing = [name for name in twilio_values if name not in present]
        errors.append(
            f"Incomplete Twilio credentials: {', '.join(missing)} not set. "
            "Set all three or none."
        )

    if twilio_phone_number and not _E164_PATTERN.match(twilio_phone_number):
        errors.append(
            f"Invalid TWILIO_PHONE_NUMBER: '{twilio_phone_number}'. Use E.164 format (+15551234567)."
        )

    if log_level:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if log_level.upper() not in valid_levels:
            errors.append(
                f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(valid_levels)}"
            )

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Leave a channel's variables unset to use the recording provider",
                "Verify SMTP_PORT is a number between 1 and 65535",
            ],
        )

    return EnvironmentConfig(
        database_url=database_url,
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        smtp_sender_name=smtp_sender_name,
        smtp_from_email=smtp_from_email,
        twilio_account_sid=twilio_account_sid,
        twilio_auth_token=twilio_auth_token,
        twilio_phone_number=twilio_phone_number,
        log_level=log_level.upper() if log_level else None,
    )


def _is_valid_email(email: str) -> bool:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True
