"""One-time passcode model definition using SQLAlchemy Core."""

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    Uuid,
    text,
)

metadata = MetaData()

otp_codes = Table(
    "otp_codes",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4),
    Column("email", Text, nullable=False),
    Column("code", String(6), nullable=False),
    Column("purpose", Text, nullable=False),
    Column("attempts", Integer, nullable=False, server_default=text("0")),
    Column("used", Boolean, nullable=False, server_default=text("false")),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    CheckConstraint(
        "purpose IN ('signup', 'login', 'password_reset')",
        name="ck_otp_codes_purpose",
    ),
    # Lookups always filter on (email, purpose); duplicates under a race are tolerated
    Index("ix_otp_codes_email_purpose", "email", "purpose"),
    Index("ix_otp_codes_expires_at", "expires_at"),
)
