"""
Session models - visitor sessions and their typed attributes.

Session attributes (browser, os, device, geography) are captured when the
session is created and never updated afterwards. Each session is keyed by
(website_id, fingerprint, window_bucket) so concurrent creators of the same
session collide on a unique constraint instead of producing duplicates.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
import uuid

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from umami_common.database import Base, FixedDecimal, UTCDateTime
from umami_common.time import now_utc

SESSION_DIMENSIONS = ("browser", "os", "device", "screen", "language", "country", "region", "city")


class Session(Base):
    """
    Model representing a visitor session.

    Attributes:
        session_id (uuid.UUID): Deterministic UUIDv5 of (website, fingerprint,
            window bucket). Primary key.
        website_id (uuid.UUID): Owning tenant.
        browser, os, device (str | None): Client attributes, up to 20 characters.
        screen (str | None): Screen resolution such as "1920x1080".
        language (str | None): Browser language tag.
        country (str | None): ISO 3166-1 alpha-2 code.
        region, city (str | None): Geography below country level.
        distinct_id (str | None): Caller-supplied visitor identifier.
        fingerprint (str): Salted SHA-256 of the client, lowercase hex.
        window_bucket (int): Inactivity-window bucket the session was created in.
        created_at (datetime): Timestamp of the first hit.

    Table:
        session
    """

    __tablename__ = "session"

    session_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    website_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    browser: Mapped[Optional[str]] = mapped_column(String(20))
    os: Mapped[Optional[str]] = mapped_column(String(20))
    device: Mapped[Optional[str]] = mapped_column(String(20))
    screen: Mapped[Optional[str]] = mapped_column(String(11))
    language: Mapped[Optional[str]] = mapped_column(String(35))
    country: Mapped[Optional[str]] = mapped_column(String(2))
    region: Mapped[Optional[str]] = mapped_column(String(20))
    city: Mapped[Optional[str]] = mapped_column(String(50))
    distinct_id: Mapped[Optional[str]] = mapped_column(String(50))
    fingerprint: Mapped[str] = mapped_column(String(64))
    window_bucket: Mapped[int] = mapped_column(BigInteger)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)

    __table_args__ = (
        UniqueConstraint(
            "website_id", "fingerprint", "window_bucket", name="session_website_id_fingerprint_window_key"
        ),
        Index("session_created_at_idx", "created_at"),
        Index("session_website_id_idx", "website_id"),
        Index("session_website_id_created_at_idx", "website_id", "created_at"),
        Index("session_website_id_fingerprint_created_at_idx", "website_id", "fingerprint", "created_at"),
        *(
            Index(f"session_website_id_created_at_{column}_idx", "website_id", "created_at", column)
            for column in SESSION_DIMENSIONS
        ),
    )


class SessionData(Base):
    __tablename__ = "session_data"

    session_data_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    website_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("website.website_id"))
    session_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("session.session_id"))
    data_key: Mapped[str] = mapped_column(String(500))
    string_value: Mapped[Optional[str]] = mapped_column(String(500))
    number_value: Mapped[Optional[Decimal]] = mapped_column(FixedDecimal)
    date_value: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    data_type: Mapped[int] = mapped_column(Integer)
    distinct_id: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)

    __table_args__ = (
        Index("session_data_created_at_idx", "created_at"),
        Index("session_data_website_id_idx", "website_id"),
        Index("session_data_session_id_idx", "session_id"),
        Index("session_data_session_id_created_at_idx", "session_id", "created_at"),
        Index("session_data_website_id_created_at_data_key_idx", "website_id", "created_at", "data_key"),
    )
