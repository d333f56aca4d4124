"""Periodic cleanup of expired and used passcodes."""

import asyncio
from collections.abc import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.services.otp_service import OTPService

logger = structlog.get_logger(__name__)


async def reap_once(session_factory: Callable[[], AsyncSession]) -> int:
    """Run a single sweep in its own session."""
    async with session_factory() as session:
        deleted = await OTPService().reap(session)
    logger.info("otp_reaped", deleted=deleted)
    return deleted


async def run_otp_reaper(
    session_factory: Callable[[], AsyncSession],
    interval_seconds: float,
) -> None:
    """
    Sweep the OTP ledger every ``interval_seconds`` until cancelled.

    A failed sweep is logged and retried on the next tick.
    """
    while True:
        try:
            await reap_once(session_factory)
        except Exception as e:
            logger.error("otp_reaper_failed", error=str(e))
        await asyncio.sleep(interval_seconds)
