from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import make_msgid
from html import escape
from typing import Callable

logger = logging.getLogger(__name__)

VERIFICATION_SUBJECT = "Email verification - FastCripto"

SmtpFactory = Callable[[str, int, float], smtplib.SMTP]


def _default_smtp_factory(host: str, port: int, timeout: float) -> smtplib.SMTP:
    if port == 465:
        return smtplib.SMTP_SSL(host, port, timeout=timeout)
    return smtplib.SMTP(host, port, timeout=timeout)


@dataclass(frozen=True)
class EmailResult:
    success: bool
    message: str
    message_id: str | None = None


def render_verification_email(name: str, code: str, expiry_minutes: int) -> str:
    greeting = escape(name) if name else "customer"
    return f"""\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h2>Email verification</h2>
  <p>Hello {greeting},</p>
  <p>Thanks for choosing FastCripto! Use the code below to verify your email address:</p>
  <div style="background-color: #f5f5f5; padding: 15px; text-align: center; font-size: 24px; letter-spacing: 5px;">
    <strong>{escape(code)}</strong>
  </div>
  <p>This code expires in {expiry_minutes} minutes.</p>
  <p>If you did not request this code, ignore this email or contact our support.</p>
  <p style="color: #777; font-size: 12px;">&copy; {datetime.now(timezone.utc).year} FastCripto.</p>
</div>
"""


class EmailService:
    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 30.0,
        code_expiry_minutes: int = 30,
        smtp_factory: SmtpFactory = _default_smtp_factory,
    ) -> None:
        if not sender:
            raise ValueError("sender must be provided")
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.code_expiry_minutes = code_expiry_minutes
        self._smtp_factory = smtp_factory

    def send_verification_email(self, to: str, name: str, code: str) -> EmailResult:
        message = EmailMessage()
        message["From"] = f"FastCripto Compliance <{self.sender}>"
        message["To"] = to
        message["Subject"] = VERIFICATION_SUBJECT
        message["Message-ID"] = make_msgid(domain=self.sender.rpartition("@")[2] or None)
        message.set_content(
            f"Your FastCripto verification code is {code}. It expires in {self.code_expiry_minutes} minutes."
        )
        message.add_alternative(render_verification_email(name, code, self.code_expiry_minutes), subtype="html")
        return self.send(message)

    def send(self, message: EmailMessage) -> EmailResult:
        recipient = message["To"]
        try:
            with self._smtp_factory(self.host, self.port, self.timeout) as smtp:
                if self.use_tls and self.port != 465:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email to %s: %s", recipient, exc)
            return EmailResult(success=False, message=f"Failed to send email: {exc}")

        message_id = message["Message-ID"]
        logger.info("Email sent to %s: %s", recipient, message_id)
        return EmailResult(success=True, message="Email sent", message_id=message_id)


__all__ = ["EmailResult", "EmailService", "VERIFICATION_SUBJECT", "render_verification_email"]
