"""Google ID token verification."""

import asyncio
from dataclasses import dataclass
from threading import RLock
from typing import Any, Protocol

import cachecontrol
import google.auth.exceptions
import google.auth.transport.requests
import google.oauth2.id_token
import requests
import structlog

from authgate.config import settings
from authgate.core.exceptions import UnauthorizedException

logger = structlog.get_logger(__name__)

# Google's signing certificates are cached according to their HTTP cache headers
_session: requests.Session | None = None
_lock = RLock()


@dataclass(frozen=True)
class FederatedIdentity:
    """Claims extracted from a verified identity assertion."""

    email: str
    name: str | None
    subject_id: str
    email_verified: bool


class IdentityVerifier(Protocol):
    """Validates a third-party identity assertion."""

    async def verify(self, credential: str, audience: str) -> FederatedIdentity: ...


def _get_session() -> requests.Session:
    global _session
    if _session is None:
        _session = cachecontrol.CacheControl(requests.session())
    return _session


class TimeoutRequest(google.auth.transport.requests.Request):
    """google-auth transport whose HTTP calls give up after ``timeout`` seconds."""

    def __init__(self, session: requests.Session, timeout: float):
        super().__init__(session=session)
        self.timeout = timeout

    def __call__(self, url, method="GET", body=None, headers=None, timeout=None, **kwargs):
        return super().__call__(
            url,
            method=method,
            body=body,
            headers=headers,
            timeout=min(timeout, self.timeout) if timeout else self.timeout,
            **kwargs,
        )


def _verify_oauth2_token(credential: str, audience: str, timeout: float) -> dict[str, Any]:
    # The cached session is not thread safe; the request timeout bounds how
    # long a stalled certificate fetch can hold the lock
    with _lock:
        request = TimeoutRequest(_get_session(), timeout)
        return google.oauth2.id_token.verify_oauth2_token(credential, request, audience)


def identity_from_claims(claims: dict[str, Any]) -> FederatedIdentity:
    """
    Build a federated identity from decoded ID token claims.

    Raises:
        UnauthorizedException: If the subject or email claim is missing
    """
    email = claims.get("email")
    subject_id = claims.get("sub")
    if not email or not subject_id:
        raise UnauthorizedException("Google credential is missing required claims")

    email_verified = claims.get("email_verified", False)
    if isinstance(email_verified, str):
        email_verified = email_verified.lower() == "true"

    return FederatedIdentity(
        email=email.strip().lower(),
        name=claims.get("name"),
        subject_id=str(subject_id),
        email_verified=bool(email_verified),
    )


class GoogleIdentityVerifier:
    """Verify Google Sign-In ID tokens with google-auth."""

    def __init__(self, timeout: float | None = None):
        """Initialize verifier with a bound on the verification call."""
        self.timeout = timeout if timeout is not None else settings.google_verify_timeout_seconds

    async def verify(self, credential: str, audience: str) -> FederatedIdentity:
        """
        Verify a Google ID token and extract the identity it asserts.

        Args:
            credential: ID token issued by Google Sign-In
            audience: Expected OAuth client id

        Returns:
            The verified identity

        Raises:
            UnauthorizedException: If the token is invalid, expired, issued for
                another audience, or verification timed out
        """
        try:
            claims = await asyncio.wait_for(
                asyncio.to_thread(_verify_oauth2_token, credential, audience, self.timeout),
                timeout=self.timeout,
            )
        except TimeoutError:
            logger.error("google_token_verification_timeout")
            raise UnauthorizedException("Google token verification timed out")
        except ValueError as e:
            # google-auth reports bad signature, audience, issuer and expiry as ValueError
            logger.warning("google_token_invalid", error=str(e))
            raise UnauthorizedException("Invalid Google credential")
        except google.auth.exceptions.GoogleAuthError as e:
            logger.error("google_token_verification_failed", error=str(e))
            raise UnauthorizedException("Google token verification failed")

        return identity_from_claims(claims)


def get_identity_verifier() -> IdentityVerifier:
    """Get the Google identity verifier."""
    return GoogleIdentityVerifier()
