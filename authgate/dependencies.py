"""FastAPI dependencies."""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.core.exceptions import TokenExpiredError, TokenError
from authgate.core.google import IdentityVerifier, get_identity_verifier
from authgate.core.mailer import NotificationGateway, get_notification_gateway
from authgate.core.redis_client import RateLimiter, get_redis_client
from authgate.core.security import decode_access_token
from authgate.database import get_db
from authgate.services.auth_service import AuthService
from authgate.services.user_service import UserService

logger = structlog.get_logger(__name__)

# Security
security = HTTPBearer()


def get_rate_limiter() -> RateLimiter:
    """Rate limiter backed by the shared Redis client."""
    return RateLimiter(get_redis_client())


def get_auth_service(
    notification_gateway: Annotated[NotificationGateway, Depends(get_notification_gateway)],
    identity_verifier: Annotated[IdentityVerifier, Depends(get_identity_verifier)],
    rate_limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> AuthService:
    """Build the auth service from its collaborators."""
    return AuthService(
        notification_gateway=notification_gateway,
        identity_verifier=identity_verifier,
        rate_limiter=rate_limiter,
    )


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> UUID:
    """
    Extract and validate user ID from the session token.

    Args:
        credentials: Bearer token credentials

    Returns:
        User ID from token

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        payload = decode_access_token(credentials.credentials)
    except TokenError as e:
        # Expired and invalid look the same to the caller
        event = "token_expired" if isinstance(e, TokenExpiredError) else "token_invalid"
        logger.info(event, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return UUID(payload["sub"])
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user ID format",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """
    Get current user from database.

    Raises:
        HTTPException: If the user no longer exists
    """
    user = await UserService().get_user_by_id(db, user_id)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]
CurrentUser = Annotated[dict, Depends(get_current_user)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
