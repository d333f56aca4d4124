"""Tests for the authentication flows."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.core.exceptions import (
    ConflictException,
    DeliveryException,
    InvalidOTPException,
    NotFoundException,
    RateLimitException,
    UnauthorizedException,
)
from authgate.core.security import create_verification_token, decode_access_token
from authgate.models.otp_codes import otp_codes
from authgate.models.users import users
from authgate.schemas.auth import LoginRequest, OTPPurpose, SignupRequest
from authgate.services.auth_service import AuthResult, AuthService, PendingVerification
from tests.conftest import (
    STRONG_PASSWORD,
    FakeIdentityVerifier,
    FakeNotificationGateway,
    FakeRateLimiter,
)


async def count_otps(db: AsyncSession) -> int:
    result = await db.execute(select(otp_codes.c.id))
    return len(result.scalars().all())


async def signup(
    auth_service: AuthService, db: AsyncSession, email: str = "a@x.com", **kwargs
) -> AuthResult:
    return await auth_service.signup(
        db, SignupRequest(email=email, password=STRONG_PASSWORD, **kwargs)
    )


class TestPasswordFlow:
    @pytest.mark.asyncio
    async def test_signup_once_then_conflict(self, auth_service: AuthService, db_session):
        result = await signup(auth_service, db_session, name="Ada")

        claims = decode_access_token(result.token)
        assert claims["email"] == "a@x.com"
        assert claims["sub"] == str(result.user["id"])
        assert result.user["email_verified"] is False
        assert result.user["password_hash"] != STRONG_PASSWORD

        with pytest.raises(ConflictException):
            await signup(auth_service, db_session)

    @pytest.mark.asyncio
    async def test_signup_email_is_case_insensitive(self, auth_service, db_session):
        await signup(auth_service, db_session, email="Mixed.Case@X.com")

        with pytest.raises(ConflictException):
            await signup(auth_service, db_session, email="  mixed.case@x.com ")

    @pytest.mark.asyncio
    async def test_signup_with_verification_token_marks_email_verified(
        self, auth_service, db_session
    ):
        token = create_verification_token("a@x.com", "signup")

        result = await signup(auth_service, db_session, verification_token=token)

        assert result.user["email_verified"] is True

    @pytest.mark.asyncio
    async def test_signup_rejects_token_for_other_email(self, auth_service, db_session):
        token = create_verification_token("other@x.com", "signup")

        with pytest.raises(UnauthorizedException):
            await signup(auth_service, db_session, verification_token=token)

    @pytest.mark.asyncio
    async def test_signup_rejects_token_for_other_purpose(self, auth_service, db_session):
        token = create_verification_token("a@x.com", "login")

        with pytest.raises(UnauthorizedException):
            await signup(auth_service, db_session, verification_token=token)

    @pytest.mark.asyncio
    @pytest.mark.usefixtures("signup_otp_required")
    async def test_signup_requires_verification_when_enabled(self, auth_service, db_session):
        with pytest.raises(UnauthorizedException):
            await signup(auth_service, db_session)

        token = create_verification_token("a@x.com", "signup")
        result = await signup(auth_service, db_session, verification_token=token)
        assert result.user["email_verified"] is True

    @pytest.mark.asyncio
    async def test_login_success_updates_last_login(self, auth_service, db_session):
        created = await signup(auth_service, db_session)
        assert created.user["last_login_at"] is None

        result = await auth_service.login(
            db_session, LoginRequest(email="a@x.com", password=STRONG_PASSWORD)
        )

        assert result.user["id"] == created.user["id"]
        assert result.user["last_login_at"] is not None
        assert decode_access_token(result.token)["email"] == "a@x.com"

    @pytest.mark.asyncio
    async def test_login_failures_are_indistinguishable(self, auth_service, db_session):
        await signup(auth_service, db_session)

        with pytest.raises(UnauthorizedException) as wrong_password:
            await auth_service.login(
                db_session, LoginRequest(email="a@x.com", password="Wr0ng!pass")
            )
        with pytest.raises(UnauthorizedException) as unknown_user:
            await auth_service.login(
                db_session, LoginRequest(email="nobody@x.com", password=STRONG_PASSWORD)
            )

        assert wrong_password.value.message == unknown_user.value.message == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_signup_losing_unique_email_race_conflicts(self, auth_service, db_session):
        """The existence check passes but the insert hits the unique email index."""
        await signup(auth_service, db_session)

        with patch.object(auth_service.users, "get_user_by_email", AsyncMock(return_value=None)):
            with pytest.raises(ConflictException) as conflict:
                await signup(auth_service, db_session)

        assert conflict.value.message == "User already exists with this email"

        # The failed insert was rolled back and the session is usable again
        result = await auth_service.login(
            db_session, LoginRequest(email="a@x.com", password=STRONG_PASSWORD)
        )
        assert result.user["email"] == "a@x.com"


class TestOTPFlow:
    @pytest.mark.asyncio
    async def test_request_and_confirm_signup_otp(
        self, auth_service, db_session, notifier: FakeNotificationGateway
    ):
        expires_in = await auth_service.request_otp(db_session, "b@x.com", OTPPurpose.SIGNUP)

        assert expires_in == 600
        assert notifier.sent[-1].purpose == "signup"

        token = await auth_service.confirm_otp(
            db_session, "b@x.com", notifier.last_code("b@x.com"), OTPPurpose.SIGNUP
        )

        result = await signup(auth_service, db_session, email="b@x.com", verification_token=token)
        assert result.user["email_verified"] is True

    @pytest.mark.asyncio
    async def test_signup_otp_for_registered_email_conflicts(
        self, auth_service, db_session, notifier
    ):
        await signup(auth_service, db_session)

        with pytest.raises(ConflictException):
            await auth_service.request_otp(db_session, "a@x.com", OTPPurpose.SIGNUP)
        assert notifier.sent == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("purpose", [OTPPurpose.LOGIN, OTPPurpose.PASSWORD_RESET])
    async def test_otp_for_unknown_account_not_found(self, auth_service, db_session, purpose):
        with pytest.raises(NotFoundException):
            await auth_service.request_otp(db_session, "nobody@x.com", purpose)
        assert await count_otps(db_session) == 0

    @pytest.mark.asyncio
    async def test_login_otp_for_existing_account(self, auth_service, db_session, notifier):
        await signup(auth_service, db_session)

        await auth_service.request_otp(db_session, "a@x.com", OTPPurpose.LOGIN)

        assert notifier.sent[-1].destination == "a@x.com"
        assert notifier.sent[-1].purpose == "login"

    @pytest.mark.asyncio
    async def test_delivery_failure_discards_code(self, auth_service, db_session, notifier):
        notifier.fail = True

        with pytest.raises(DeliveryException):
            await auth_service.request_otp(db_session, "b@x.com", OTPPurpose.SIGNUP)

        assert await count_otps(db_session) == 0

    @pytest.mark.asyncio
    async def test_rate_limited(self, db_session, notifier, identity_verifier):
        limiter = FakeRateLimiter(allow=False)
        service = AuthService(notifier, identity_verifier, rate_limiter=limiter)  # type: ignore[arg-type]

        with pytest.raises(RateLimitException):
            await service.request_otp(db_session, "b@x.com", OTPPurpose.SIGNUP)

        assert limiter.keys == ["ratelimit:otp:signup:b@x.com"]
        assert await count_otps(db_session) == 0
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_confirm_rejections(self, auth_service, db_session, notifier):
        await auth_service.request_otp(db_session, "b@x.com", OTPPurpose.SIGNUP)
        code = notifier.last_code("b@x.com")
        wrong = "100000" if code != "100000" else "100001"

        for _ in range(3):
            with pytest.raises(InvalidOTPException) as rejected:
                await auth_service.confirm_otp(db_session, "b@x.com", wrong, OTPPurpose.SIGNUP)
            assert rejected.value.message == "Invalid or expired OTP"

        with pytest.raises(InvalidOTPException) as locked:
            await auth_service.confirm_otp(db_session, "b@x.com", code, OTPPurpose.SIGNUP)
        assert locked.value.message == "Maximum verification attempts exceeded"


class TestGoogleFlow:
    @pytest.mark.asyncio
    async def test_new_google_user_requires_otp(
        self,
        auth_service,
        db_session,
        notifier: FakeNotificationGateway,
        identity_verifier: FakeIdentityVerifier,
    ):
        credential = identity_verifier.register("cred-new", "g@x.com", "google-sub-1", "Grace")

        pending = await auth_service.google_login(db_session, credential)

        assert isinstance(pending, PendingVerification)
        assert pending.email == "g@x.com"
        assert pending.purpose == "signup"
        assert notifier.sent[-1].destination == "g@x.com"
        result = await db_session.execute(select(users.c.id))
        assert result.scalars().all() == []

        created = await auth_service.complete_google_signup(
            db_session, credential, notifier.last_code("g@x.com")
        )

        assert created.user["google_id"] == "google-sub-1"
        assert created.user["email_verified"] is True
        assert created.user["password_hash"] is None
        assert created.user["name"] == "Grace"
        assert decode_access_token(created.token)["email"] == "g@x.com"

        again = await auth_service.google_login(db_session, credential)
        assert isinstance(again, AuthResult)
        assert again.user["id"] == created.user["id"]

    @pytest.mark.asyncio
    async def test_complete_google_signup_rejects_wrong_otp(
        self, auth_service, db_session, notifier, identity_verifier
    ):
        credential = identity_verifier.register("cred-new", "g@x.com", "google-sub-1")
        await auth_service.google_login(db_session, credential)
        code = notifier.last_code("g@x.com")
        wrong = "100000" if code != "100000" else "100001"

        with pytest.raises(InvalidOTPException):
            await auth_service.complete_google_signup(db_session, credential, wrong)

        result = await db_session.execute(select(users.c.id))
        assert result.scalars().all() == []

    @pytest.mark.asyncio
    async def test_complete_google_signup_needs_valid_credential(
        self, auth_service, db_session, notifier, identity_verifier
    ):
        credential = identity_verifier.register("cred-new", "g@x.com", "google-sub-1")
        await auth_service.google_login(db_session, credential)

        with pytest.raises(UnauthorizedException):
            await auth_service.complete_google_signup(
                db_session, "stolen-or-forged", notifier.last_code("g@x.com")
            )

    @pytest.mark.asyncio
    async def test_login_otp_cannot_complete_google_signup(
        self, auth_service, db_session, notifier, identity_verifier
    ):
        await signup(auth_service, db_session)
        await auth_service.request_otp(db_session, "a@x.com", OTPPurpose.LOGIN)
        credential = identity_verifier.register("cred-new", "g@x.com", "google-sub-1")

        with pytest.raises(InvalidOTPException):
            await auth_service.complete_google_signup(
                db_session, credential, notifier.last_code("a@x.com")
            )

    @pytest.mark.asyncio
    async def test_unverified_google_email_rejected(
        self, auth_service, db_session, notifier, identity_verifier
    ):
        credential = identity_verifier.register(
            "cred-unverified", "g@x.com", "google-sub-1", email_verified=False
        )

        with pytest.raises(UnauthorizedException):
            await auth_service.google_login(db_session, credential)
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_google_login_links_password_account(
        self, auth_service, db_session, identity_verifier
    ):
        created = await signup(auth_service, db_session)
        credential = identity_verifier.register("cred-a", "a@x.com", "google-sub-a")

        result = await auth_service.google_login(db_session, credential)

        assert isinstance(result, AuthResult)
        assert result.user["id"] == created.user["id"]
        assert result.user["google_id"] == "google-sub-a"
        assert result.user["email_verified"] is True
        assert result.user["last_login_at"] is not None
        assert identity_verifier.audiences == ["test-client-id.apps.googleusercontent.com"]

        # Password login keeps working after linking
        await auth_service.login(db_session, LoginRequest(email="a@x.com", password=STRONG_PASSWORD))

    @pytest.mark.asyncio
    async def test_email_linked_to_other_google_subject(
        self, auth_service, db_session, identity_verifier
    ):
        await signup(auth_service, db_session)
        await auth_service.google_login(
            db_session, identity_verifier.register("cred-a", "a@x.com", "google-sub-a")
        )

        with pytest.raises(UnauthorizedException):
            await auth_service.google_login(
                db_session, identity_verifier.register("cred-b", "a@x.com", "google-sub-b")
            )

    @pytest.mark.asyncio
    async def test_google_only_account_cannot_password_login(
        self, auth_service, db_session, notifier, identity_verifier
    ):
        credential = identity_verifier.register("cred-new", "g@x.com", "google-sub-1")
        await auth_service.google_login(db_session, credential)
        await auth_service.complete_google_signup(
            db_session, credential, notifier.last_code("g@x.com")
        )

        with pytest.raises(UnauthorizedException):
            await auth_service.login(
                db_session, LoginRequest(email="g@x.com", password=STRONG_PASSWORD)
            )

    @pytest.mark.asyncio
    async def test_complete_google_signup_conflicts_with_new_account(
        self, auth_service, db_session, notifier, identity_verifier
    ):
        credential = identity_verifier.register("cred-new", "a@x.com", "google-sub-1")
        await auth_service.google_login(db_session, credential)
        await signup(auth_service, db_session)

        with pytest.raises(ConflictException):
            await auth_service.complete_google_signup(
                db_session, credential, notifier.last_code("a@x.com")
            )
