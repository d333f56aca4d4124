"""Authentication schemas."""

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator

from authgate.schemas.users import UserPublic

PASSWORD_SPECIAL_CHARACTERS = "!@#$%^&*"


class OTPPurpose(str, Enum):
    """Why a one-time passcode was issued."""

    SIGNUP = "signup"
    LOGIN = "login"
    PASSWORD_RESET = "password_reset"


def normalize_email(value: Any) -> Any:
    """Trim and lower-case an email address before validation."""
    if isinstance(value, str):
        return value.strip().lower()
    return value


class EmailRequest(BaseModel):
    """Base request carrying an email address."""

    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def lower_email(cls, value: Any) -> Any:
        """Emails are case-insensitive and compared trimmed."""
        return normalize_email(value)


class SignupRequest(EmailRequest):
    """Email/password signup request."""

    password: str = Field(..., min_length=8, max_length=128)
    name: str | None = Field(default=None, min_length=2, max_length=50)
    verification_token: str | None = Field(
        default=None,
        description="Token returned by /verify-otp proving control of the email",
    )

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: Any) -> Any:
        """Trim surrounding whitespace from the display name."""
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("password")
    @classmethod
    def check_password_strength(cls, value: str) -> str:
        """Require lower and upper case letters, a digit and a special character."""
        if not re.search(r"[a-z]", value):
            raise ValueError("Password must contain at least one lowercase letter")
        if not re.search(r"[A-Z]", value):
            raise ValueError("Password must contain at least one uppercase letter")
        if not re.search(r"[0-9]", value):
            raise ValueError("Password must contain at least one number")
        if not any(char in PASSWORD_SPECIAL_CHARACTERS for char in value):
            raise ValueError(
                f"Password must contain at least one special character ({PASSWORD_SPECIAL_CHARACTERS})"
            )
        return value


class LoginRequest(EmailRequest):
    """Email/password login request."""

    password: str = Field(..., min_length=1, max_length=128)


class SendOTPRequest(EmailRequest):
    """Request a one-time passcode."""

    purpose: OTPPurpose = OTPPurpose.SIGNUP


class VerifyOTPRequest(EmailRequest):
    """Submit a one-time passcode."""

    otp: str = Field(..., min_length=6, max_length=6, pattern=r"^[0-9]{6}$")
    purpose: OTPPurpose = OTPPurpose.SIGNUP


class GoogleLoginRequest(BaseModel):
    """Google Sign-In request."""

    credential: str = Field(..., min_length=1, description="Google ID token")


class CompleteGoogleSignupRequest(GoogleLoginRequest):
    """Finish a Google signup with the passcode sent to the Google email."""

    otp: str = Field(..., min_length=6, max_length=6, pattern=r"^[0-9]{6}$")


class AuthResponse(BaseModel):
    """Session token with the authenticated user."""

    message: str
    token: str
    token_type: str = "bearer"
    user: UserPublic


class OTPSentResponse(BaseModel):
    """Passcode delivery acknowledgement."""

    message: str
    expires_in: int = Field(..., description="Seconds until the passcode expires")


class OTPVerifiedResponse(BaseModel):
    """Passcode accepted."""

    message: str
    verified: bool = True
    verification_token: str = Field(
        ..., description="Short-lived proof of email ownership, redeemable at signup"
    )


class PendingVerificationResponse(BaseModel):
    """Google signup is waiting for the emailed passcode."""

    message: str
    requires_otp: bool = True
    email: EmailStr
    purpose: OTPPurpose = OTPPurpose.SIGNUP
