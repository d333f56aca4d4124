"""Authentication service: password, passcode and Google sign-in flows."""

from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.config import settings
from authgate.core.exceptions import (
    ConflictException,
    DeliveryException,
    InvalidOTPException,
    NotFoundException,
    RateLimitException,
    TokenError,
    UnauthorizedException,
)
from authgate.core.google import FederatedIdentity, IdentityVerifier
from authgate.core.mailer import NotificationGateway
from authgate.core.redis_client import RateLimiter
from authgate.core.security import (
    create_access_token,
    create_verification_token,
    decode_verification_token,
    get_password_hash,
    verify_password,
)
from authgate.schemas.auth import LoginRequest, OTPPurpose, SignupRequest
from authgate.schemas.users import UserCreate
from authgate.services.otp_service import OTPOutcome, OTPService
from authgate.services.user_service import UserService

logger = structlog.get_logger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"

OTP_REJECTIONS = {
    OTPOutcome.INVALID_OR_EXPIRED: "Invalid or expired OTP",
    OTPOutcome.ATTEMPTS_EXCEEDED: "Maximum verification attempts exceeded",
}


@dataclass(frozen=True)
class AuthResult:
    """A session token and the user it was issued for."""

    token: str
    user: dict


@dataclass(frozen=True)
class PendingVerification:
    """A Google signup waiting for the passcode sent to its email."""

    email: str
    purpose: str = OTPPurpose.SIGNUP.value


class AuthService:
    """
    Decides per request whether to issue a session, require a passcode first, or reject.

    Collaborators are injected so they can be replaced in tests: the
    notification gateway delivers passcodes, the identity verifier checks
    Google ID tokens, and the optional rate limiter bounds passcode issuance.
    """

    def __init__(
        self,
        notification_gateway: NotificationGateway,
        identity_verifier: IdentityVerifier,
        rate_limiter: RateLimiter | None = None,
        otp_service: OTPService | None = None,
        user_service: UserService | None = None,
    ):
        """Initialize auth service with its collaborators."""
        self.notifier = notification_gateway
        self.identity_verifier = identity_verifier
        self.rate_limiter = rate_limiter
        self.otp = otp_service or OTPService()
        self.users = user_service or UserService()

    # Password flow

    async def signup(self, db: AsyncSession, request: SignupRequest) -> AuthResult:
        """
        Register an email/password account and start a session.

        When a verification token from :meth:`confirm_otp` is supplied the
        account is created with a verified email. ``SIGNUP_REQUIRES_OTP`` makes
        the token mandatory.

        Raises:
            ConflictException: If the email is already registered
            UnauthorizedException: If a required or supplied verification token is not valid
        """
        email_verified = False
        if request.verification_token is not None:
            self._check_verification_token(request.verification_token, request.email)
            email_verified = True
        elif settings.signup_requires_otp:
            raise UnauthorizedException("Email verification required")

        if await self.users.get_user_by_email(db, request.email):
            raise ConflictException("User already exists with this email")

        user = await self.users.create_user(
            db,
            UserCreate(
                email=request.email,
                password_hash=get_password_hash(request.password),
                name=request.name,
                email_verified=email_verified,
            ),
        )

        logger.info("signup_completed", user_id=str(user["id"]), email_verified=email_verified)
        return AuthResult(token=create_access_token(user), user=user)

    async def login(self, db: AsyncSession, request: LoginRequest) -> AuthResult:
        """
        Authenticate with email and password.

        Unknown email, Google-only account and wrong password all fail the same way.

        Raises:
            UnauthorizedException: If the credentials do not match
        """
        user = await self.users.get_user_by_email(db, request.email)

        if not user or not user["password_hash"]:
            logger.info("login_failed", reason="unknown_account")
            raise UnauthorizedException(INVALID_CREDENTIALS)

        if not verify_password(request.password, user["password_hash"]):
            logger.info("login_failed", reason="wrong_password", user_id=str(user["id"]))
            raise UnauthorizedException(INVALID_CREDENTIALS)

        user = await self.users.update_last_login(db, user["id"]) or user
        logger.info("login_succeeded", user_id=str(user["id"]), method="password")
        return AuthResult(token=create_access_token(user), user=user)

    # Passcode flow

    async def request_otp(self, db: AsyncSession, email: str, purpose: OTPPurpose) -> int:
        """
        Issue a passcode and deliver it by email.

        Returns:
            Seconds until the passcode expires

        Raises:
            ConflictException: If signing up with a registered email
            NotFoundException: If logging in or resetting for an unknown email
            RateLimitException: If too many passcodes were requested
            DeliveryException: If the email could not be sent
        """
        user = await self.users.get_user_by_email(db, email)
        if purpose == OTPPurpose.SIGNUP and user:
            raise ConflictException("User already exists with this email")
        if purpose != OTPPurpose.SIGNUP and not user:
            raise NotFoundException("No account found with this email")

        await self._issue_and_deliver(db, email, purpose)
        return self.otp.expire_minutes * 60

    async def _issue_and_deliver(self, db: AsyncSession, email: str, purpose: OTPPurpose) -> None:
        if self.rate_limiter is not None and not self.rate_limiter.allow_otp_issuance(
            email, purpose.value
        ):
            logger.warning("otp_rate_limited", email=email, purpose=purpose.value)
            raise RateLimitException("Too many verification codes requested, try again later")

        issued = await self.otp.issue(db, email, purpose.value)
        result = await self.notifier.send(email, issued.code, purpose.value)

        if not result.success:
            # Never leave a live code the user did not receive
            await self.otp.discard(db, issued.id)
            logger.error(
                "otp_delivery_failed",
                email=email,
                purpose=purpose.value,
                error=result.error,
            )
            raise DeliveryException("Failed to send verification email")

    async def confirm_otp(
        self, db: AsyncSession, email: str, code: str, purpose: OTPPurpose
    ) -> str:
        """
        Check a passcode and return a short-lived proof of email ownership.

        Raises:
            InvalidOTPException: If the code is wrong, expired, used or locked
        """
        outcome = await self.otp.verify(db, email, code, purpose.value)
        if outcome != OTPOutcome.VERIFIED:
            raise InvalidOTPException(OTP_REJECTIONS[outcome])

        return create_verification_token(email, purpose.value)

    def _check_verification_token(self, token: str, email: str) -> None:
        try:
            claims = decode_verification_token(token)
        except TokenError as e:
            logger.info("verification_token_rejected", error=str(e))
            raise UnauthorizedException("Invalid or expired email verification")

        if claims["sub"] != email or claims.get("purpose") != OTPPurpose.SIGNUP.value:
            logger.info("verification_token_rejected", error="email or purpose mismatch")
            raise UnauthorizedException("Invalid or expired email verification")

    # Google flow

    async def _verify_google_credential(self, credential: str) -> FederatedIdentity:
        identity = await self.identity_verifier.verify(credential, settings.google_client_id)
        if not identity.email_verified:
            raise UnauthorizedException("Email not verified with Google")
        return identity

    async def google_login(
        self, db: AsyncSession, credential: str
    ) -> AuthResult | PendingVerification:
        """
        Sign in with a Google ID token.

        Existing accounts are signed in, linking the Google subject to a
        password account on first use. A new email gets a signup passcode
        instead of an account; the client completes the signup with
        :meth:`complete_google_signup` by replaying the same credential.

        Raises:
            UnauthorizedException: If the credential is invalid, its email is
                unverified, or the email belongs to another Google account
        """
        identity = await self._verify_google_credential(credential)

        user = await self.users.get_user_by_google_id(db, identity.subject_id)
        if user is None:
            user = await self.users.get_user_by_email(db, identity.email)

            if user is None:
                await self._issue_and_deliver(db, identity.email, OTPPurpose.SIGNUP)
                logger.info("google_signup_pending", email=identity.email)
                return PendingVerification(email=identity.email)

            if user["google_id"] is not None:
                logger.warning("google_subject_mismatch", user_id=str(user["id"]))
                raise UnauthorizedException("Email is linked to a different Google account")

            user = await self.users.link_google_account(db, user["id"], identity.subject_id)

        user = await self.users.update_last_login(db, user["id"]) or user
        logger.info("login_succeeded", user_id=str(user["id"]), method="google")
        return AuthResult(token=create_access_token(user), user=user)

    async def complete_google_signup(
        self, db: AsyncSession, credential: str, code: str
    ) -> AuthResult:
        """
        Create a Google account once the emailed passcode is confirmed.

        Raises:
            UnauthorizedException: If the credential is invalid or its email unverified
            ConflictException: If an account was created for the email meanwhile
            InvalidOTPException: If the passcode is rejected
        """
        identity = await self._verify_google_credential(credential)

        if await self.users.get_user_by_email(db, identity.email):
            raise ConflictException("User already exists with this email")

        outcome = await self.otp.verify(db, identity.email, code, OTPPurpose.SIGNUP.value)
        if outcome != OTPOutcome.VERIFIED:
            raise InvalidOTPException(OTP_REJECTIONS[outcome])

        user = await self.users.create_user(
            db,
            UserCreate(
                email=identity.email,
                google_id=identity.subject_id,
                name=identity.name,
                email_verified=True,
            ),
        )
        user = await self.users.update_last_login(db, user["id"]) or user

        logger.info("google_signup_completed", user_id=str(user["id"]))
        return AuthResult(token=create_access_token(user), user=user)
