from __future__ import annotations

import smtplib
from email.mime.text import MIMEText

from loguru import logger

from price_watch.config import get_settings

SEND_TIMEOUT = 10  # seconds


class EmailSender:
    """Send plain text notifications over SMTP."""

    def __init__(self):
        settings = get_settings()
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.username = settings.smtp_username
        self.password = settings.smtp_password
        self.sender = settings.smtp_sender
        self.use_tls = settings.smtp_use_tls

    @classmethod
    def is_configured(cls) -> bool:
        """Check if SMTP host and sender address are set."""
        settings = get_settings()
        return bool(settings.smtp_host and settings.smtp_sender)

    def send(self, recipient: str, subject: str, body: str) -> bool:
        """Send one email.

        Args:
            recipient: Destination address.
            subject: Mail subject line.
            body: Plain text body.

        Returns:
            True if the SMTP server accepted the message, False otherwise.
        """
        message = MIMEText(body, "plain", "utf-8")
        message["From"] = self.sender
        message["To"] = recipient
        message["Subject"] = subject

        try:
            with smtplib.SMTP(self.host, self.port, timeout=SEND_TIMEOUT) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(message)

            logger.info(f"Email sent to {recipient}")
            return True
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error sending email to {recipient}: {e}")
            return False
        except OSError as e:
            logger.error(f"SMTP connection to {self.host}:{self.port} failed: {e}")
            return False
