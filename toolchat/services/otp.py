"""One-time passcode issuing and verification.

A user has at most one active code. Issuing replaces any previous code in a
single store operation, and redeeming a code is a single conditional update,
so a code can be consumed at most once even under concurrent requests.
"""

import asyncio
import re
import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

import httpx

from toolchat.errors import OTPDeliveryError, OTPStorageError, OTPValidationError, OTPVerificationError
from toolchat.models.otp import Identity, OTPRecord
from toolchat.services.email import EmailSender
from toolchat.services.identity import IdentityResolver, authenticate
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

CODE_PATTERN = re.compile(r"[0-9]{6}")


def generate_code() -> str:
    """Generate a uniformly random 6-digit code."""
    return str(100_000 + secrets.randbelow(900_000))


def check_code_format(code: str) -> str:
    """Normalize and validate a submitted code.

    Raises:
        OTPValidationError: If the code is not exactly six digits
    """
    code = (code or "").strip()
    if not CODE_PATTERN.fullmatch(code):
        raise OTPValidationError("Verification code must be exactly 6 digits")
    return code


class OTPStore(Protocol):
    """Interface for passcode storage."""

    async def replace(self, record: OTPRecord) -> None:
        """Atomically delete all codes for the record's user and store this one."""
        ...

    async def consume(self, user_id: str, code: str, now: datetime) -> bool:
        """Mark a matching, unverified, unexpired code as verified.

        Returns:
            True if a record was consumed
        """
        ...


class InMemoryOTPStore:
    """Process-local passcode store."""

    def __init__(self):
        self.records: dict[str, list[OTPRecord]] = {}
        self._lock = asyncio.Lock()

    async def replace(self, record: OTPRecord) -> None:
        async with self._lock:
            self.records[record.user_id] = [record]

    async def consume(self, user_id: str, code: str, now: datetime) -> bool:
        async with self._lock:
            for record in self.records.get(user_id, []):
                if record.is_redeemable(code, now):
                    record.verified = True
                    return True
            return False


class SupabaseOTPStore:
    """Passcode store on the ``otp_verifications`` table via PostgREST.

    The table must have a unique constraint on ``user_id`` so that an upsert
    replaces the previous code in one statement.
    """

    TABLE = "otp_verifications"

    def __init__(self, client: httpx.AsyncClient, base_url: str, service_key: str):
        self.client = client
        self.url = f"{base_url.rstrip('/')}/rest/v1/{self.TABLE}"
        self.headers = {"apikey": service_key, "Authorization": f"Bearer {service_key}"}

    async def replace(self, record: OTPRecord) -> None:
        try:
            response = await self.client.post(
                self.url,
                params={"on_conflict": "user_id"},
                headers={**self.headers, "Prefer": "resolution=merge-duplicates,return=minimal"},
                json={
                    "user_id": record.user_id,
                    "email": record.email,
                    "code": record.code,
                    "expires_at": record.expires_at.isoformat(),
                    "verified": False,
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"Error storing OTP: {e}")
            raise OTPStorageError("Failed to create OTP") from e

        if not response.is_success:
            logger.error(f"Error storing OTP: {response.status_code} {response.text}")
            raise OTPStorageError("Failed to create OTP")

    async def consume(self, user_id: str, code: str, now: datetime) -> bool:
        try:
            response = await self.client.patch(
                self.url,
                params={
                    "user_id": f"eq.{user_id}",
                    "code": f"eq.{code}",
                    "verified": "eq.false",
                    "expires_at": f"gt.{now.isoformat()}",
                },
                headers={**self.headers, "Prefer": "return=representation"},
                json={"verified": True},
            )
            response.raise_for_status()
            consumed = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error verifying OTP: {e}")
            raise OTPStorageError("Failed to verify OTP") from e

        # return=representation lists the updated rows
        return isinstance(consumed, list) and len(consumed) > 0


class OTPService:
    """Issues and verifies one-time passcodes for authenticated users."""

    def __init__(
        self,
        store: OTPStore,
        identity_resolver: IdentityResolver,
        email_sender: EmailSender,
        ttl_minutes: int = 10,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.identity_resolver = identity_resolver
        self.email_sender = email_sender
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock = clock or (lambda: datetime.now(UTC))

    async def send_code(self, authorization: str | None) -> Identity:
        """Issue a fresh code for the caller and email it.

        Raises:
            AuthenticationError: If the credential is missing or invalid
            OTPStorageError: If the code cannot be stored
            OTPDeliveryError: If the code cannot be emailed
        """
        identity = await authenticate(self.identity_resolver, authorization)
        if not identity.email:
            raise OTPDeliveryError("No email address on file for this account")

        record = OTPRecord(
            user_id=identity.user_id,
            email=identity.email,
            code=generate_code(),
            expires_at=self.clock() + self.ttl,
        )
        await self.store.replace(record)
        await self.email_sender.send_code(identity.email, record.code, int(self.ttl.total_seconds() // 60))

        logger.info(f"Issued OTP for user {identity.user_id}, expires at {record.expires_at.isoformat()}")
        return identity

    async def verify_code(self, authorization: str | None, code: str) -> Identity:
        """Consume the caller's code.

        The format check happens before any credential or datastore lookup.

        Raises:
            OTPValidationError: If the code is not six digits
            AuthenticationError: If the credential is missing or invalid
            OTPVerificationError: If the code is wrong, already used, or expired
            OTPStorageError: If the datastore cannot be reached
        """
        code = check_code_format(code)
        identity = await authenticate(self.identity_resolver, authorization)

        if not await self.store.consume(identity.user_id, code, self.clock()):
            logger.info(f"OTP verification failed for user {identity.user_id}")
            raise OTPVerificationError()

        logger.info(f"OTP verified for user {identity.user_id}")
        return identity
