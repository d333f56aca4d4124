"""Email delivery of one-time passcodes."""

import asyncio
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Protocol

import structlog

from authgate.config import Settings, settings

logger = structlog.get_logger(__name__)

EMAIL_SUBJECTS = {
    "signup": "Verify your email",
    "login": "Login verification code",
    "password_reset": "Password reset code",
}

PURPOSE_TEXT = {
    "signup": "complete your registration",
    "login": "verify your login",
    "password_reset": "reset your password",
}


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a delivery attempt."""

    success: bool
    error: str | None = None


class NotificationGateway(Protocol):
    """Delivers a passcode to an address. Implementations never raise."""

    async def send(self, destination: str, code: str, purpose: str) -> DeliveryResult: ...


def build_otp_message(
    destination: str,
    code: str,
    purpose: str,
    from_address: str,
    from_name: str,
    expire_minutes: int,
) -> EmailMessage:
    """Build the plain text and HTML email carrying a passcode."""
    action = PURPOSE_TEXT.get(purpose, "continue")

    message = EmailMessage()
    message["Subject"] = EMAIL_SUBJECTS.get(purpose, "Your verification code")
    message["From"] = formataddr((from_name, from_address))
    message["To"] = destination
    message.set_content(
        f"Your code to {action} is: {code}\n\n"
        f"This code will expire in {expire_minutes} minutes. "
        "If you did not request it, you can ignore this email."
    )
    message.add_alternative(
        f"""\
<html>
  <body>
    <p>Use the code below to {action}.</p>
    <p style="font-size: 28px; font-weight: bold; letter-spacing: 6px;">{code}</p>
    <p>This code will expire in {expire_minutes} minutes.</p>
    <p>If you did not request it, you can ignore this email.</p>
  </body>
</html>
""",
        subtype="html",
    )
    return message


class SMTPNotificationGateway:
    """Send passcodes through an SMTP relay."""

    def __init__(self, config: Settings = settings):
        """Initialize gateway with SMTP settings."""
        self.config = config

    def _deliver(self, message: EmailMessage) -> None:
        timeout = self.config.email_send_timeout_seconds
        with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=timeout) as server:
            if self.config.smtp_use_tls:
                server.starttls()
            if self.config.smtp_username:
                server.login(self.config.smtp_username, self.config.smtp_password)
            server.send_message(message)

    async def send(self, destination: str, code: str, purpose: str) -> DeliveryResult:
        """
        Deliver a passcode by email.

        Args:
            destination: Recipient address
            code: Six digit passcode
            purpose: Why the code was issued

        Returns:
            Delivery result; failures are reported, not raised
        """
        message = build_otp_message(
            destination,
            code,
            purpose,
            from_address=self.config.email_from_address,
            from_name=self.config.email_from_name,
            expire_minutes=self.config.otp_expire_minutes,
        )

        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._deliver, message),
                timeout=self.config.email_send_timeout_seconds,
            )
        except TimeoutError:
            logger.error("otp_email_timeout", destination=destination, purpose=purpose)
            return DeliveryResult(success=False, error="Email delivery timed out")
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "otp_email_failed",
                destination=destination,
                purpose=purpose,
                error=str(e),
            )
            return DeliveryResult(success=False, error=str(e))

        logger.info("otp_email_sent", destination=destination, purpose=purpose)
        return DeliveryResult(success=True)


class ConsoleNotificationGateway:
    """Write passcodes to the log instead of sending them. Development only."""

    async def send(self, destination: str, code: str, purpose: str) -> DeliveryResult:
        """Log the passcode and report success."""
        logger.warning(
            "otp_console_delivery",
            destination=destination,
            purpose=purpose,
            code=code,
        )
        return DeliveryResult(success=True)


def get_notification_gateway() -> NotificationGateway:
    """Get the gateway selected by ``EMAIL_BACKEND``."""
    if settings.email_backend == "console":
        return ConsoleNotificationGateway()
    return SMTPNotificationGateway()
