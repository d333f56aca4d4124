"""User service: persistence of identity records."""

from datetime import UTC, datetime
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.core.exceptions import ConflictException
from authgate.database import transaction
from authgate.models.users import users
from authgate.schemas.users import UserCreate

logger = structlog.get_logger(__name__)


class UserService:
    """Service for user operations."""

    async def create_user(self, db: AsyncSession, user_data: UserCreate) -> dict:
        """
        Create a new user in a single write.

        Args:
            db: Database session
            user_data: New user fields

        Returns:
            The stored user record

        Raises:
            ConflictException: If the email or Google id is already registered
        """
        if user_data.password_hash is None and user_data.google_id is None:
            raise ValueError("A user needs a password or a linked Google account")

        query = (
            users.insert()
            .values(
                email=user_data.email,
                password_hash=user_data.password_hash,
                google_id=user_data.google_id,
                name=user_data.name,
                email_verified=user_data.email_verified,
            )
            .returning(users)
        )

        try:
            async with transaction(db):
                result = await db.execute(query)
                user = result.mappings().first()
        except IntegrityError:
            # Lost a race against a concurrent signup for the same key
            message = await self._conflict_message(db, user_data)
            logger.info("user_create_conflict", email=user_data.email, reason=message)
            raise ConflictException(message)

        if not user:
            raise ValueError("Failed to create user")

        logger.info("user_created", user_id=str(user["id"]))
        return dict(user)

    async def get_user_by_id(self, db: AsyncSession, user_id: UUID) -> dict | None:
        """Get user by internal ID."""
        query = select(users).where(users.c.id == user_id)
        result = await db.execute(query)
        user = result.mappings().first()
        return dict(user) if user else None

    async def get_user_by_email(self, db: AsyncSession, email: str) -> dict | None:
        """Get user by email."""
        query = select(users).where(users.c.email == email.strip().lower())
        result = await db.execute(query)
        user = result.mappings().first()
        return dict(user) if user else None

    async def get_user_by_google_id(self, db: AsyncSession, google_id: str) -> dict | None:
        """Get user by Google subject id."""
        query = select(users).where(users.c.google_id == google_id)
        result = await db.execute(query)
        user = result.mappings().first()
        return dict(user) if user else None

    async def link_google_account(self, db: AsyncSession, user_id: UUID, google_id: str) -> dict:
        """
        Attach a Google subject id to an existing account and mark it verified.

        Raises:
            ConflictException: If the Google id is linked to another account
        """
        query = (
            update(users)
            .where(users.c.id == user_id, users.c.google_id.is_(None))
            .values(google_id=google_id, email_verified=True, updated_at=datetime.now(UTC))
            .returning(users)
        )

        try:
            async with transaction(db):
                result = await db.execute(query)
                user = result.mappings().first()
        except IntegrityError:
            raise ConflictException("Google account is already linked to another user")

        if not user:
            raise ConflictException("Account is already linked to a Google account")

        logger.info("google_account_linked", user_id=str(user_id))
        return dict(user)

    async def update_last_login(self, db: AsyncSession, user_id: UUID) -> dict | None:
        """Record a successful authentication."""
        query = (
            update(users)
            .where(users.c.id == user_id)
            .values(last_login_at=datetime.now(UTC))
            .returning(users)
        )
        async with transaction(db):
            result = await db.execute(query)
            user = result.mappings().first()
        return dict(user) if user else None

    async def _conflict_message(self, db: AsyncSession, user_data: UserCreate) -> str:
        # The insert hit a unique key; report the one that is taken
        query = select(users.c.id).where(users.c.email == user_data.email)
        if (await db.execute(query)).first() is not None:
            return "User already exists with this email"
        return "Google account is already linked to another user"
