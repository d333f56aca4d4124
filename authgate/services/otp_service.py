"""One-time passcode ledger."""

import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from uuid import UUID

import structlog
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.config import settings
from authgate.database import transaction
from authgate.models.otp_codes import otp_codes

logger = structlog.get_logger(__name__)

OTP_MIN = 100000
OTP_MAX = 999999


class OTPOutcome(str, Enum):
    """Result of a passcode check."""

    VERIFIED = "verified"
    INVALID_OR_EXPIRED = "invalid_or_expired"
    ATTEMPTS_EXCEEDED = "attempts_exceeded"


@dataclass(frozen=True)
class OTPIssued:
    """A freshly issued passcode, handed to the caller for delivery."""

    id: UUID
    code: str
    expires_at: datetime


def generate_otp() -> str:
    """Return a uniformly random six digit code in [100000, 999999]."""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


class OTPService:
    """
    Persisted, time-boxed passcodes keyed by (email, purpose).

    Codes are stored in clear text: they are single-use and short-lived, but the
    table must still be treated as sensitive. A record is consumed at most once,
    and after ``max_attempts`` failed checks it stays unusable even with the
    right code.
    """

    def __init__(
        self,
        expire_minutes: int | None = None,
        max_attempts: int | None = None,
    ):
        """Initialize ledger with validity window and attempt budget."""
        self.expire_minutes = (
            expire_minutes if expire_minutes is not None else settings.otp_expire_minutes
        )
        self.max_attempts = max_attempts if max_attempts is not None else settings.otp_max_attempts

    async def issue(self, db: AsyncSession, email: str, purpose: str) -> OTPIssued:
        """
        Replace any outstanding codes for (email, purpose) with a new one.

        Args:
            db: Database session
            email: Normalized email address
            purpose: signup, login or password_reset

        Returns:
            The new record id, its code and expiry
        """
        now = datetime.now(UTC)
        code = generate_otp()
        expires_at = now + timedelta(minutes=self.expire_minutes)

        async with transaction(db):
            await db.execute(
                delete(otp_codes).where(otp_codes.c.email == email, otp_codes.c.purpose == purpose)
            )
            result = await db.execute(
                otp_codes.insert()
                .values(
                    email=email,
                    code=code,
                    purpose=purpose,
                    attempts=0,
                    used=False,
                    created_at=now,
                    expires_at=expires_at,
                )
                .returning(otp_codes.c.id)
            )
            record_id = result.scalar_one()

        logger.info("otp_issued", email=email, purpose=purpose, otp_id=str(record_id))
        return OTPIssued(id=record_id, code=code, expires_at=expires_at)

    async def verify(self, db: AsyncSession, email: str, code: str, purpose: str) -> OTPOutcome:
        """
        Check a submitted code and consume it on success.

        Wrong code, wrong purpose, expired and already used all report
        ``INVALID_OR_EXPIRED`` so a caller cannot tell which part was wrong.

        Args:
            db: Database session
            email: Normalized email address
            code: Submitted code
            purpose: Purpose the code must have been issued for

        Returns:
            The outcome of the check
        """
        now = datetime.now(UTC)

        query = select(otp_codes.c.id, otp_codes.c.attempts).where(
            otp_codes.c.email == email,
            otp_codes.c.code == code,
            otp_codes.c.purpose == purpose,
            otp_codes.c.used == False,  # noqa: E712
            otp_codes.c.expires_at > now,
        )
        result = await db.execute(query)
        record = result.mappings().first()

        if record is None:
            await self._record_failed_attempt(db, email, purpose)
            logger.info("otp_rejected", email=email, purpose=purpose, reason="invalid_or_expired")
            return OTPOutcome.INVALID_OR_EXPIRED

        if record["attempts"] >= self.max_attempts:
            logger.warning("otp_rejected", email=email, purpose=purpose, reason="attempts_exceeded")
            return OTPOutcome.ATTEMPTS_EXCEEDED

        # Conditional update: of two concurrent correct submissions only one wins
        async with transaction(db):
            consumed = await db.execute(
                update(otp_codes)
                .where(
                    otp_codes.c.id == record["id"],
                    otp_codes.c.used == False,  # noqa: E712
                    otp_codes.c.attempts < self.max_attempts,
                )
                .values(used=True)
            )

        if consumed.rowcount == 0:
            logger.info("otp_rejected", email=email, purpose=purpose, reason="already_consumed")
            return OTPOutcome.INVALID_OR_EXPIRED

        logger.info("otp_verified", email=email, purpose=purpose, otp_id=str(record["id"]))
        return OTPOutcome.VERIFIED

    async def _record_failed_attempt(self, db: AsyncSession, email: str, purpose: str) -> None:
        # Best-effort abuse tracking; the counter is capped at max_attempts
        async with transaction(db):
            await db.execute(
                update(otp_codes)
                .where(
                    otp_codes.c.email == email,
                    otp_codes.c.purpose == purpose,
                    otp_codes.c.used == False,  # noqa: E712
                    otp_codes.c.attempts < self.max_attempts,
                )
                .values(attempts=otp_codes.c.attempts + 1)
            )

    async def discard(self, db: AsyncSession, record_id: UUID) -> None:
        """Delete a single record, e.g. one whose delivery failed."""
        async with transaction(db):
            await db.execute(delete(otp_codes).where(otp_codes.c.id == record_id))
        logger.info("otp_discarded", otp_id=str(record_id))

    async def reap(self, db: AsyncSession) -> int:
        """
        Delete every expired or used record.

        Live records are never touched, so this is safe to run alongside traffic.

        Returns:
            Number of records deleted
        """
        now = datetime.now(UTC)
        async with transaction(db):
            result = await db.execute(
                delete(otp_codes).where(
                    or_(
                        otp_codes.c.expires_at <= now,
                        otp_codes.c.used == True,  # noqa: E712
                    )
                )
            )
        return result.rowcount or 0

