#!/usr/bin/env python3
"""Delete expired and used one-time passcodes once, for use from cron."""

import asyncio
import sys

from authgate.database import AsyncSessionLocal, engine
from authgate.middleware.logging import configure_logging
from authgate.services.otp_reaper import reap_once


async def main() -> int:
    """Run one sweep of the OTP ledger."""
    configure_logging()
    try:
        deleted = await reap_once(AsyncSessionLocal)
    except Exception as e:
        print(f"✗ OTP cleanup failed: {e}", file=sys.stderr)
        return 1
    finally:
        await engine.dispose()

    print(f"✓ Deleted {deleted} expired or used passcodes")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
