"""
Base declarative class for all ORM models.

All analytics tables share one metadata object. Tables are declared without a
schema; on PostgreSQL the engine maps them into ``DATABASE_SCHEMA`` (default
``umami``) through ``schema_translate_map``, so the same models run unchanged
against the SQLite test database.

Usage:
    ```python
    from umami_common.database import Base, UTCDateTime
    from sqlalchemy.orm import Mapped, mapped_column
    from sqlalchemy import String, Uuid

    class Website(Base):
        __tablename__ = "website"

        website_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
        name: Mapped[str] = mapped_column(String(100))
        created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    ```

Note:
    - Table names follow the original umami schema and are declared explicitly
    - Timestamps are declared per model; not every table has updated_at
"""

from __future__ import annotations

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Index and constraint names match the migration this schema was created from.
NAMING_CONVENTION = {
    "ix": "%(table_name)s_%(column_0_N_name)s_idx",
    "uq": "%(table_name)s_%(column_0_N_name)s_key",
    "pk": "%(table_name)s_pkey",
    "fk": "%(table_name)s_%(column_0_name)s_fkey",
}


class Base(DeclarativeBase):
    """
    Base declarative class for all SQLAlchemy ORM models.

    Uses SQLAlchemy 2.0 declarative style with ``Mapped`` type hints. Models
    declare their ``__tablename__`` explicitly.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
