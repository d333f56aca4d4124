"""Database models."""

from sqlalchemy import MetaData

from authgate.models.otp_codes import metadata as otp_codes_metadata
from authgate.models.otp_codes import otp_codes
from authgate.models.users import metadata as users_metadata
from authgate.models.users import users

# Combined metadata for create_all and Alembic autogenerate
metadata = MetaData()
for _source in (users_metadata, otp_codes_metadata):
    for _table in _source.tables.values():
        _table.to_metadata(metadata)

__all__ = [
    "metadata",
    "otp_codes",
    "users",
]
