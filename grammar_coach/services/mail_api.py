"""Sends feedback email through an SMTP relay."""

import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr

from grammar_coach import config
from grammar_coach.config import Settings
from grammar_coach.utils.logger import get_logger
from grammar_coach.utils.error_handler import APIError, AuthenticationError, ConfigError

logger = get_logger()

class MailService:
    """Delivers HTML email with a plain-text fallback.

    Uses STARTTLS on the submission port, or implicit TLS when the relay
    is configured for the secure port.
    """

    SERVICE_NAME = 'smtp'

    def __init__(self, settings: Settings):
        """Initializes the MailService.

        Raises:
            ConfigError: If relay host, user or password is missing.
        """
        if not settings.mail_configured:
            raise ConfigError("SMTP relay is not configured (SMTP_HOST / SMTP_USER / SMTP_PASSWORD).")
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.user = settings.smtp_user
        self._password = settings.smtp_password
        self.implicit_tls = settings.mail_implicit_tls
        self.sender = formataddr((settings.sender_name, settings.smtp_user))

    def _create_message(self, to: str, subject: str, html_body: str, text_body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text_body)
        message.add_alternative(html_body, subtype="html")
        return message

    def send_email(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        """Sends one message to `to_email`.

        Raises:
            ValueError: If the recipient address is invalid.
            AuthenticationError: If the relay rejects the login.
            APIError: On any other SMTP or connection failure.
        """
        if not to_email or '@' not in to_email:
            raise ValueError(f"Invalid recipient email address: {to_email}")

        logger.info(f"Preparing to send email to <{to_email}> with subject: '{subject}'")
        message = self._create_message(to_email, subject, html_body, text_body)
        context = ssl.create_default_context()
        try:
            if self.implicit_tls:
                with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=config.SMTP_TIMEOUT) as server:
                    server.login(self.user, self._password)
                    server.send_message(message)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=config.SMTP_TIMEOUT) as server:
                    server.starttls(context=context)
                    server.login(self.user, self._password)
                    server.send_message(message)
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP login rejected for {self.user}: {e.smtp_code}", exc_info=config.DEBUG)
            raise AuthenticationError(f"SMTP authentication failed ({e.smtp_code}). Check SMTP_USER/SMTP_PASSWORD.") from e
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to <{to_email}>: {e}", exc_info=config.DEBUG)
            raise APIError(f"Failed to send email to <{to_email}>: {e}", service=self.SERVICE_NAME) from e
        logger.info(f"Successfully sent email to <{to_email}>.")
