"""Authentication endpoints."""

from fastapi import APIRouter, status

from authgate.dependencies import AuthServiceDep, DatabaseSession
from authgate.schemas.auth import (
    AuthResponse,
    CompleteGoogleSignupRequest,
    GoogleLoginRequest,
    LoginRequest,
    OTPSentResponse,
    OTPVerifiedResponse,
    PendingVerificationResponse,
    SendOTPRequest,
    SignupRequest,
    VerifyOTPRequest,
)
from authgate.schemas.users import UserPublic
from authgate.services.auth_service import AuthResult, PendingVerification

router = APIRouter()


def _auth_response(message: str, result: AuthResult) -> AuthResponse:
    return AuthResponse(
        message=message,
        token=result.token,
        user=UserPublic.from_record(result.user),
    )


@router.post(
    "/signup",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register with email and password",
)
async def signup(
    request: SignupRequest,
    db: DatabaseSession,
    auth_service: AuthServiceDep,
) -> AuthResponse:
    """
    Create an email/password account and return a session token.

    Pass the ``verification_token`` from ``/verify-otp`` to register with a
    verified email; it is required when the deployment enables
    ``SIGNUP_REQUIRES_OTP``.
    """
    result = await auth_service.signup(db, request)
    return _auth_response("User created successfully", result)


@router.post(
    "/login",
    response_model=AuthResponse,
    status_code=status.HTTP_200_OK,
    summary="Log in with email and password",
)
async def login(
    request: LoginRequest,
    db: DatabaseSession,
    auth_service: AuthServiceDep,
) -> AuthResponse:
    """Authenticate with email and password and return a session token."""
    result = await auth_service.login(db, request)
    return _auth_response("Login successful", result)


@router.post(
    "/send-otp",
    response_model=OTPSentResponse,
    status_code=status.HTTP_200_OK,
    summary="Email a one-time passcode",
)
async def send_otp(
    request: SendOTPRequest,
    db: DatabaseSession,
    auth_service: AuthServiceDep,
) -> OTPSentResponse:
    """
    Issue a passcode for the given purpose and email it.

    Any earlier passcode for the same email and purpose stops working.
    """
    expires_in = await auth_service.request_otp(db, request.email, request.purpose)
    return OTPSentResponse(message="OTP sent successfully to your email", expires_in=expires_in)


@router.post(
    "/verify-otp",
    response_model=OTPVerifiedResponse,
    status_code=status.HTTP_200_OK,
    summary="Verify a one-time passcode",
)
async def verify_otp(
    request: VerifyOTPRequest,
    db: DatabaseSession,
    auth_service: AuthServiceDep,
) -> OTPVerifiedResponse:
    """Consume a passcode and return a short-lived email verification token."""
    verification_token = await auth_service.confirm_otp(
        db, request.email, request.otp, request.purpose
    )
    return OTPVerifiedResponse(
        message="OTP verified successfully",
        verification_token=verification_token,
    )


@router.post(
    "/google-login",
    response_model=AuthResponse | PendingVerificationResponse,
    status_code=status.HTTP_200_OK,
    summary="Sign in with Google",
)
async def google_login(
    request: GoogleLoginRequest,
    db: DatabaseSession,
    auth_service: AuthServiceDep,
) -> AuthResponse | PendingVerificationResponse:
    """
    Verify a Google ID token.

    Known users get a session token. For a new email a passcode is sent and
    the response asks for it; finish with ``/complete-google-signup``.
    """
    result = await auth_service.google_login(db, request.credential)

    if isinstance(result, PendingVerification):
        return PendingVerificationResponse(
            message="Verification code sent to your email. Please verify to complete signup.",
            email=result.email,
            purpose=result.purpose,
        )

    return _auth_response("Google login successful", result)


@router.post(
    "/complete-google-signup",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Finish a Google signup",
)
async def complete_google_signup(
    request: CompleteGoogleSignupRequest,
    db: DatabaseSession,
    auth_service: AuthServiceDep,
) -> AuthResponse:
    """Create the Google account once the emailed passcode is confirmed."""
    result = await auth_service.complete_google_signup(db, request.credential, request.otp)
    return _auth_response("Google signup completed successfully", result)
