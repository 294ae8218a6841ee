"""
Tenant and ownership models - users, teams and websites.

A website is the tenant: every session, event, attribute, revenue row, report
and segment carries its ``website_id``. A website is owned by at most one user
or one team. Soft-deleted websites keep their rows and are hidden by the
access layer, never by implicit query filtering.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
import uuid

from sqlalchemy import ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from umami_common.database import Base, UTCDateTime
from umami_common.time import now_utc

ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLE_VIEW_ONLY = "view-only"

TEAM_ROLE_OWNER = "team-owner"
TEAM_ROLE_MANAGER = "team-manager"
TEAM_ROLE_MEMBER = "team-member"
TEAM_ROLE_VIEW_ONLY = "team-view-only"


class User(Base):
    __tablename__ = "user"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(255), unique=True)
    password: Mapped[str] = mapped_column(String(60))
    role: Mapped[str] = mapped_column(String(50))
    logo_url: Mapped[Optional[str]] = mapped_column(String(2183))
    display_name: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)


class Team(Base):
    __tablename__ = "team"

    team_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(50))
    access_code: Mapped[Optional[str]] = mapped_column(String(50), unique=True)
    logo_url: Mapped[Optional[str]] = mapped_column(String(2183))
    created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    __table_args__ = (Index("team_access_code_idx", "access_code"),)


class TeamUser(Base):
    __tablename__ = "team_user"

    team_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    team_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("team.team_id"))
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("user.user_id"))
    role: Mapped[str] = mapped_column(String(50))
    created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    __table_args__ = (
        Index("team_user_team_id_idx", "team_id"),
        Index("team_user_user_id_idx", "user_id"),
    )


class Website(Base):
    """
    Model representing a tenant (one tracked website).

    Attributes:
        website_id (uuid.UUID): Tenant identifier. Primary key.
        name (str): Display name, up to 100 characters.
        domain (str | None): Site domain, used to drop self-referrals.
        share_id (str | None): Public share identifier. Unique.
        reset_at (datetime | None): Statistics before this instant are hidden
            from every aggregate query. Rows are kept.
        user_id (uuid.UUID | None): Owning user. Mutually exclusive with team_id.
        team_id (uuid.UUID | None): Owning team.
        created_by (uuid.UUID | None): User that created the website.
        deleted_at (datetime | None): Tombstone. ``None`` means active.

    Table:
        website
    """

    __tablename__ = "website"

    website_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100))
    domain: Mapped[Optional[str]] = mapped_column(String(500))
    share_id: Mapped[Optional[str]] = mapped_column(String(50), unique=True)
    reset_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("user.user_id"))
    team_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("team.team_id"))
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("user.user_id"))
    created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    __table_args__ = (
        Index("website_user_id_idx", "user_id"),
        Index("website_team_id_idx", "team_id"),
        Index("website_created_at_idx", "created_at"),
        Index("website_share_id_idx", "share_id"),
        Index("website_created_by_idx", "created_by"),
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
