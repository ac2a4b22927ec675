"""Outbound mail: a log-only sender and an SMTP sender behind one protocol."""

import smtplib
from email.message import EmailMessage
from typing import Protocol

from app.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class Mailer(Protocol):
    def send(self, to_email: str, subject: str, body: str) -> None:
        ...


class LogOnlyMailer:
    """Mailer that logs instead of sending. Used when no SMTP is configured."""

    def send(self, to_email: str, subject: str, body: str) -> None:
        logger.info("Mail requested for %s (subject=%r)", to_email, subject[:80])
        logger.debug("Mail body: %s", body[:500])


class SmtpMailer:
    """Mailer that delivers through an SMTP relay with STARTTLS."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        sender: str = "",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender

    def send(self, to_email: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to_email
        message["Subject"] = subject
        message.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
            smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)
        logger.info("Mail sent to %s (subject=%r)", to_email, subject[:80])


def build_mailer() -> Mailer:
    if settings.MAIL_BACKEND == "smtp":
        return SmtpMailer(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            sender=settings.MAIL_SENDER,
        )
    return LogOnlyMailer()


def send_otp_email(mailer: Mailer, to_email: str, code: str) -> bool:
    """
    Deliver an OTP after the surrounding transaction has committed.

    Delivery failure is logged and swallowed: the user can trigger a new code
    by logging in again.

    Returns:
        True if the mailer accepted the message
    """
    try:
        mailer.send(
            to_email,
            "Hintcore Group Verification Code",
            f"Your OTP is {code}. It expires in {settings.OTP_EXPIRE_MINUTES} minutes.",
        )
        return True
    except Exception:
        logger.warning("OTP email to %s could not be sent", to_email, exc_info=True)
        return False
