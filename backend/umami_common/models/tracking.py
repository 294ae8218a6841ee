"""
Tracked links and pixels.

Both are owned like websites (one user or one team), are addressed publicly by
a slug that is unique across live and deleted rows, and are soft-deleted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
import uuid

from sqlalchemy import ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from umami_common.database import Base, UTCDateTime
from umami_common.time import now_utc


class Link(Base):
    """Short link that redirects to ``url``."""

    __tablename__ = "link"

    link_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100))
    url: Mapped[str] = mapped_column(String(500))
    slug: Mapped[str] = mapped_column(String(100), unique=True)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("user.user_id"))
    team_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("team.team_id"))
    created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    __table_args__ = (
        Index("link_slug_idx", "slug"),
        Index("link_user_id_idx", "user_id"),
        Index("link_team_id_idx", "team_id"),
        Index("link_created_at_idx", "created_at"),
    )

    @property
    def entity_id(self) -> uuid.UUID:
        return self.link_id


class Pixel(Base):
    __tablename__ = "pixel"

    pixel_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100))
    slug: Mapped[str] = mapped_column(String(100), unique=True)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("user.user_id"))
    team_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("team.team_id"))
    created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    __table_args__ = (
        Index("pixel_slug_idx", "slug"),
        Index("pixel_user_id_idx", "user_id"),
        Index("pixel_team_id_idx", "team_id"),
        Index("pixel_created_at_idx", "created_at"),
    )

    @property
    def entity_id(self) -> uuid.UUID:
        return self.pixel_id
