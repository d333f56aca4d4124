"""Security utilities for JWT and password handling."""

from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from authgate.config import settings
from authgate.core.exceptions import InvalidTokenError, TokenExpiredError

logger = structlog.get_logger(__name__)

ACCESS_TOKEN_TYPE = "access"
VERIFICATION_TOKEN_TYPE = "email_verification"

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


def _encode(claims: dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
    now = datetime.now(UTC)
    to_encode = claims.copy()
    to_encode.update(
        {
            "iat": now,
            "exp": now + expires_delta,
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
            "type": token_type,
        }
    )
    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def _decode(token: str, token_type: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
    except ExpiredSignatureError as e:
        raise TokenExpiredError("Token has expired") from e
    except JWTError as e:
        raise InvalidTokenError(f"Invalid token: {e!s}") from e

    if payload.get("type") != token_type:
        raise InvalidTokenError("Unexpected token type")

    if not isinstance(payload.get("sub"), str):
        raise InvalidTokenError("Token subject is missing")

    return payload


def create_access_token(user: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """
    Create a signed session token for a user.

    The token is self-contained: the user id, email and display name travel in
    the claims and nothing is stored server side.

    Args:
        user: User record with ``id``, ``email`` and ``name``
        expires_delta: Optional validity window, defaults to the configured one

    Returns:
        Encoded JWT token
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)

    return _encode(
        {
            "sub": str(user["id"]),
            "email": user["email"],
            "name": user.get("name"),
        },
        ACCESS_TOKEN_TYPE,
        expires_delta,
    )


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and validate a session token.

    Args:
        token: JWT token to decode

    Returns:
        Decoded identity claims

    Raises:
        TokenExpiredError: If the signature is valid but the token expired
        InvalidTokenError: If the token is malformed, tampered or not a session token
    """
    return _decode(token, ACCESS_TOKEN_TYPE)


def create_verification_token(
    email: str,
    purpose: str,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a short-lived proof that an email address passed OTP verification.

    Args:
        email: Verified email address
        purpose: OTP purpose the proof was issued for
        expires_delta: Optional validity window

    Returns:
        Encoded JWT token
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.verification_token_expire_minutes)

    return _encode({"sub": email, "purpose": purpose}, VERIFICATION_TOKEN_TYPE, expires_delta)


def decode_verification_token(token: str) -> dict[str, Any]:
    """
    Decode and validate an email verification token.

    Raises:
        TokenExpiredError: If the token expired
        InvalidTokenError: If the token is malformed or not a verification token
    """
    return _decode(token, VERIFICATION_TOKEN_TYPE)
