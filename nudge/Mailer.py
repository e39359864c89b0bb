"""SMTP delivery of generated drafts."""

import logging
import re
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

from nudge.config import Settings
from nudge.errors import SendError, ValidationError

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s<>]+@[^@\s<>]+\.[^@\s<>]+$")


@dataclass(frozen=True)
class EmailSendResult:
    success: bool
    recipient: str


def is_email_address(value: str) -> bool:
    return bool(EMAIL_RE.match((value or "").strip()))


class Mailer:
    """Sends a single message per call over SMTP. No retries."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def build_message(
        self, recipient: str, subject: str, body: str, html: bool = False
    ) -> EmailMessage:
        """Validate the fields and build the message."""
        recipient = (recipient or "").strip()
        if not is_email_address(recipient):
            raise ValidationError(f"not an email address: {recipient!r}")
        if not (subject or "").strip():
            raise ValidationError("subject is required")
        if not (body or "").strip():
            raise ValidationError("body is required")
        sender = self.settings.smtp_from
        if not sender:
            raise ValidationError("sender address not configured (set SMTP_FROM or SMTP_USER)")

        msg = EmailMessage()
        msg["From"] = sender
        msg["To"] = recipient
        msg["Subject"] = subject.strip()
        msg.set_content(body, subtype="html" if html else "plain")
        return msg

    def _connect(self) -> smtplib.SMTP:
        s = self.settings
        if s.smtp_ssl:
            return smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout)
        return smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout)

    def send(
        self, recipient: str, subject: str, body: str, html: bool = False
    ) -> EmailSendResult:
        """
        Send one message.

        Raises:
            ValidationError: on a malformed recipient, empty subject/body or missing sender
            SendError: if the SMTP transport fails
        """
        msg = self.build_message(recipient, subject, body, html)
        s = self.settings
        logger.info(f"Sending email to {msg['To']} via {s.smtp_host}:{s.smtp_port}")
        try:
            with self._connect() as smtp:
                if not s.smtp_ssl:
                    smtp.ehlo()
                    if smtp.has_extn("starttls"):
                        smtp.starttls()
                        smtp.ehlo()
                if s.smtp_user:
                    smtp.login(s.smtp_user, s.smtp_password or "")
                smtp.send_message(msg)
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error: {e}")
            raise SendError(f"failed to send email: {e}") from e
        except OSError as e:
            logger.error(f"Cannot reach SMTP server: {e}")
            raise SendError(f"cannot reach SMTP server {s.smtp_host}:{s.smtp_port}: {e}") from e
        return EmailSendResult(success=True, recipient=msg["To"])
