"""
Report delivery.

Supports two email transports:
- SMTP (SSL, STARTTLS or plain)
- SendGrid API
"""

import os
import smtplib
import ssl
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import requests

from .config_loader import Config, ConfigurationError, MailConfig
from .logger import get_logger


SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
SEND_TIMEOUT = 30


class NotificationError(Exception):
    """Raised when a message could not be delivered."""
    pass


class Notifier(ABC):
    """Abstract base class for report senders."""

    @abstractmethod
    def send(self, to: str, subject: str, html_body: str) -> bool:
        """
        Send an HTML email.

        Args:
            to: Recipient address
            subject: Subject line
            html_body: HTML document

        Returns:
            True once the message has been accepted for delivery

        Raises:
            NotificationError: If delivery failed
        """
        pass


class SmtpNotifier(Notifier):
    """Send email through an SMTP server."""

    def __init__(self, config: MailConfig):
        self.config = config
        self.logger = get_logger()

    @property
    def sender(self) -> str:
        return f'"{self.config.from_name}" <{self.config.username}>'

    def _connect(self) -> smtplib.SMTP:
        if self.config.encryption == "ssl":
            context = ssl.create_default_context()
            return smtplib.SMTP_SSL(
                self.config.host, self.config.port, context=context, timeout=SEND_TIMEOUT
            )

        server = smtplib.SMTP(self.config.host, self.config.port, timeout=SEND_TIMEOUT)
        if self.config.encryption == "tls":
            try:
                server.starttls(context=ssl.create_default_context())
            except (smtplib.SMTPException, OSError):
                server.close()
                raise
        return server

    def send(self, to: str, subject: str, html_body: str) -> bool:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.attach(MIMEText(html_body, "html"))

        try:
            server = self._connect()
            try:
                server.login(self.config.username, self.config.password)
                server.sendmail(self.config.username, [to], msg.as_string())
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"SMTP delivery via {self.config.host} failed: {e}") from e

        self.logger.debug(f"Message sent to {to} via {self.config.host}")
        return True


class SendGridNotifier(Notifier):
    """Send email via the SendGrid API."""

    def __init__(self, config: MailConfig, api_key: str):
        self.config = config
        self.api_key = api_key
        self.logger = get_logger()

    def send(self, to: str, subject: str, html_body: str) -> bool:
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.config.username, "name": self.config.from_name},
            "subject": subject,
            "content": [{"type": "text/html", "value": html_body}],
        }

        try:
            response = requests.post(
                SENDGRID_URL,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=SEND_TIMEOUT,
            )
        except requests.RequestException as e:
            raise NotificationError(f"SendGrid request failed: {e}") from e

        if response.status_code not in (200, 202):
            raise NotificationError(
                f"SendGrid API error: {response.status_code} - {response.text}"
            )

        self.logger.debug(f"Message sent to {to} via SendGrid")
        return True


def create_notifier(config: Config) -> Notifier:
    """
    Build the notifier selected by ``mail.provider``.

    Args:
        config: Loaded configuration

    Returns:
        Notifier ready to send

    Raises:
        ConfigurationError: If the transport settings are incomplete
    """
    logger = get_logger()
    mail = config.mail

    if mail.provider == "sendgrid":
        api_key = os.environ.get("SENDGRID_API_KEY", "")
        if not api_key:
            raise ConfigurationError("SENDGRID_API_KEY must be set for the sendgrid mail provider")
        if not mail.username:
            raise ConfigurationError("MAIL_USERNAME (sender address) must be set for SendGrid")
        logger.debug("Using SendGrid for report delivery")
        return SendGridNotifier(mail, api_key)

    missing = [
        env_var
        for key, env_var in (
            ("host", "MAIL_HOST"),
            ("username", "MAIL_USERNAME"),
            ("password", "MAIL_PASSWORD"),
        )
        if not getattr(mail, key)
    ]
    if missing:
        raise ConfigurationError(
            f"Missing required mail settings: {', '.join(missing)}"
        )

    logger.debug(
        f"Using SMTP {mail.host}:{mail.port} ({mail.encryption}) as {mail.username}"
    )
    return SmtpNotifier(mail)
