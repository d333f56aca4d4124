"""Redis connection and passcode issuance limits."""

import redis
import structlog

from authgate.config import settings

logger = structlog.get_logger(__name__)

OTP_RATE_LIMIT_PREFIX = "ratelimit:otp"

_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """Return the process-wide Redis client, connecting lazily."""
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """Return True if Redis answers PING."""
    try:
        get_redis_client().ping()
    except redis.RedisError as e:
        logger.warning("redis_unreachable", error=str(e))
        return False
    return True


def close_redis_connection() -> None:
    """Close the shared client so the next call reconnects."""
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


class RateLimiter:
    """
    Fixed-window counters in Redis bounding how often passcodes are issued.

    Counting is a single INCR, so concurrent requests never both see the last
    free slot. When Redis is unavailable issuance is allowed: losing the limit
    is preferable to locking every user out of signup.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        limit: int | None = None,
        window_seconds: int | None = None,
    ):
        """Initialize limiter with its Redis client and per-window budget."""
        self.redis = redis_client
        self.limit = limit if limit is not None else settings.otp_rate_limit_requests
        self.window_seconds = (
            window_seconds if window_seconds is not None else settings.otp_rate_limit_window_seconds
        )

    @staticmethod
    def otp_key(email: str, purpose: str) -> str:
        """Counter key for passcodes sent to ``email`` for ``purpose``."""
        return f"{OTP_RATE_LIMIT_PREFIX}:{purpose}:{email}"

    def allow_otp_issuance(self, email: str, purpose: str) -> bool:
        """
        Count one passcode request and report whether it is within the limit.

        Args:
            email: Normalized recipient address
            purpose: signup, login or password_reset

        Returns:
            False once ``limit`` requests were counted in the current window
        """
        key = self.otp_key(email, purpose)
        try:
            count = self.redis.incr(key)
            if count == 1:
                # First request opens the window
                self.redis.expire(key, self.window_seconds)
        except redis.RedisError as e:
            logger.warning("rate_limit_unavailable", key=key, error=str(e))
            return True

        return int(count) <= self.limit
