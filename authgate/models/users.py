"""User model definition using SQLAlchemy Core."""

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    MetaData,
    Table,
    Text,
    Uuid,
    func,
    text,
)

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4),
    # Stored lower-cased and trimmed
    Column("email", Text, nullable=False, unique=True, index=True),
    # Credentials: at least one of these is set once the row exists
    Column("password_hash", Text),
    Column("google_id", Text, unique=True, index=True),
    # Profile
    Column("name", Text),
    Column("email_verified", Boolean, nullable=False, server_default=text("false")),
    # Audit
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    ),
    Column("last_login_at", DateTime(timezone=True)),
    CheckConstraint(
        "password_hash IS NOT NULL OR google_id IS NOT NULL",
        name="ck_users_has_credential",
    ),
)
