"""User schemas for request/response validation."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class UserCreate(BaseModel):
    """Schema for creating a new user."""

    email: EmailStr
    password_hash: str | None = None
    google_id: str | None = None
    name: str | None = None
    email_verified: bool = False


class UserPublic(BaseModel):
    """User as exposed to clients. Never carries credentials."""

    id: UUID
    email: EmailStr
    name: str | None = None
    email_verified: bool
    has_password: bool = Field(..., description="Account can sign in with a password")
    google_linked: bool = Field(..., description="A Google account is linked")
    created_at: datetime | None = None
    last_login_at: datetime | None = None

    @classmethod
    def from_record(cls, user: dict[str, Any]) -> "UserPublic":
        """Build the public view of a stored user record."""
        return cls(
            id=user["id"],
            email=user["email"],
            name=user.get("name"),
            email_verified=user["email_verified"],
            has_password=user.get("password_hash") is not None,
            google_linked=user.get("google_id") is not None,
            created_at=user.get("created_at"),
            last_login_at=user.get("last_login_at"),
        )
