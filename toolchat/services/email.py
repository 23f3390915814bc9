"""Delivery of one-time passcodes by email."""

from datetime import UTC, datetime
from typing import Protocol

import httpx

from toolchat.errors import OTPDeliveryError
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

RESEND_URL = "https://api.resend.com/emails"

OTP_EMAIL_TEMPLATE = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1 style="color: #333; text-align: center;">Verification Code</h1>
  <p style="color: #666; font-size: 16px;">Your verification code is:</p>
  <div style="background: #111; border-radius: 12px; padding: 30px; text-align: center; margin: 20px 0;">
    <span style="font-size: 36px; font-weight: bold; color: #fff; letter-spacing: 8px;">{code}</span>
  </div>
  <p style="color: #666; font-size: 14px;">This code will expire in {ttl_minutes} minutes.</p>
  <p style="color: #666; font-size: 14px;">If you didn't request this code, please ignore this email.</p>
  <p style="color: #999; font-size: 12px; text-align: center;">&copy; {year} Liqueno</p>
</div>
"""


class EmailSender(Protocol):
    """Interface for sending a passcode to a user."""

    async def send_code(self, recipient: str, code: str, ttl_minutes: int) -> None: ...


class LoggingEmailSender:
    """Development sender that only records that a code was issued."""

    def __init__(self):
        self.sent: list[str] = []

    async def send_code(self, recipient: str, code: str, ttl_minutes: int) -> None:
        logger.warning(f"No email provider configured; OTP for {recipient} was not delivered")
        self.sent.append(recipient)


class ResendEmailSender:
    """Sends passcodes through the Resend HTTP API."""

    def __init__(self, client: httpx.AsyncClient, api_key: str, sender: str):
        self.client = client
        self.api_key = api_key
        self.sender = sender

    async def send_code(self, recipient: str, code: str, ttl_minutes: int) -> None:
        html = OTP_EMAIL_TEMPLATE.format(code=code, ttl_minutes=ttl_minutes, year=datetime.now(UTC).year)
        try:
            response = await self.client.post(
                RESEND_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.sender,
                    "to": [recipient],
                    "subject": "Your Liqueno Verification Code",
                    "html": html,
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to email OTP to {recipient}: {e}")
            raise OTPDeliveryError("Failed to send OTP email") from e

        logger.info(f"OTP email sent to {recipient}")
