"""
Saved report and segment definitions.

Both store their evaluation parameters as JSON. Parameters are validated by
the analytics service before they are saved, so stored rows are always
evaluable.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
import uuid

from sqlalchemy import ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from umami_common.database import Base, JSONType, UTCDateTime
from umami_common.time import now_utc

SEGMENT_TYPE_SEGMENT = "segment"
SEGMENT_TYPE_COHORT = "cohort"


class Report(Base):
    __tablename__ = "report"

    report_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("user.user_id"))
    website_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("website.website_id"))
    type: Mapped[str] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(String(500))
    parameters: Mapped[dict[str, Any]] = mapped_column(JSONType)
    created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    __table_args__ = (
        Index("report_user_id_idx", "user_id"),
        Index("report_website_id_idx", "website_id"),
        Index("report_type_idx", "type"),
        Index("report_name_idx", "name"),
    )


class Segment(Base):
    __tablename__ = "segment"

    segment_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    website_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("website.website_id"))
    type: Mapped[str] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(200))
    parameters: Mapped[dict[str, Any]] = mapped_column(JSONType)
    created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    __table_args__ = (Index("segment_website_id_idx", "website_id"),)
