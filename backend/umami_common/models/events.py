"""
Event models for page views, custom events and revenue.

This module contains the ORM models written by the ingestion path. An event
row, its attribute rows and its optional revenue row are always written in
one transaction.

Event Types:
    - EVENT_TYPE_PAGEVIEW (1): page navigation
    - EVENT_TYPE_CUSTOM (2): named custom event

Attribute Data Types:
    - 1 string, 2 number, 3 boolean, 4 date, 5 array
    Strings, booleans and arrays use ``string_value``; numbers use
    ``number_value``; dates use ``date_value``.

Usage:
    ```python
    from umami_common.models import WebsiteEvent

    event = WebsiteEvent(
        event_id=uuid.uuid4(),
        website_id=scope.website_id,
        session_id=session_id,
        visit_id=visit_id,
        url_path="/pricing",
        event_type=EVENT_TYPE_PAGEVIEW,
    )
    session.add(event)
    ```
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
import uuid

from sqlalchemy import ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from umami_common.database import Base, FixedDecimal, UTCDateTime
from umami_common.time import now_utc

EVENT_TYPE_PAGEVIEW = 1
EVENT_TYPE_CUSTOM = 2

EVENT_DIMENSIONS = (
    "url_path",
    "url_query",
    "referrer_domain",
    "page_title",
    "event_name",
    "tag",
    "hostname",
)


class WebsiteEvent(Base):
    """
    Model representing a single tracked event.

    Attributes:
        event_id (uuid.UUID): Event identifier. Primary key.
        website_id (uuid.UUID): Owning tenant.
        session_id (uuid.UUID): Session the event belongs to.
        visit_id (uuid.UUID): Visit (navigation burst) inside the session.
        created_at (datetime): Event timestamp, UTC.
        url_path (str): Path of the page, up to 500 characters. Required.
        url_query (str | None): Query string without the leading "?".
        utm_source, utm_medium, utm_campaign, utm_content, utm_term (str | None):
            Campaign attribution parsed from the page URL.
        referrer_path, referrer_query, referrer_domain (str | None): Parsed
            external referrer. Self-referrals are not stored.
        page_title (str | None): Document title.
        gclid, fbclid, msclkid, ttclid, li_fat_id, twclid (str | None): Ad
            network click identifiers.
        event_type (int): 1 for page views, 2 for custom events.
        event_name (str | None): Custom event name.
        tag (str | None): Free-form tag set by the tracker.
        hostname (str | None): Host the hit was sent from.

    Table:
        website_event
    """

    __tablename__ = "website_event"

    event_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    website_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    session_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("session.session_id"))
    visit_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    url_path: Mapped[str] = mapped_column(String(500))
    url_query: Mapped[Optional[str]] = mapped_column(String(500))
    utm_source: Mapped[Optional[str]] = mapped_column(String(255))
    utm_medium: Mapped[Optional[str]] = mapped_column(String(255))
    utm_campaign: Mapped[Optional[str]] = mapped_column(String(255))
    utm_content: Mapped[Optional[str]] = mapped_column(String(255))
    utm_term: Mapped[Optional[str]] = mapped_column(String(255))
    referrer_path: Mapped[Optional[str]] = mapped_column(String(500))
    referrer_query: Mapped[Optional[str]] = mapped_column(String(500))
    referrer_domain: Mapped[Optional[str]] = mapped_column(String(500))
    page_title: Mapped[Optional[str]] = mapped_column(String(500))
    gclid: Mapped[Optional[str]] = mapped_column(String(255))
    fbclid: Mapped[Optional[str]] = mapped_column(String(255))
    msclkid: Mapped[Optional[str]] = mapped_column(String(255))
    ttclid: Mapped[Optional[str]] = mapped_column(String(255))
    li_fat_id: Mapped[Optional[str]] = mapped_column(String(255))
    twclid: Mapped[Optional[str]] = mapped_column(String(255))
    event_type: Mapped[int] = mapped_column(Integer, default=EVENT_TYPE_PAGEVIEW)
    event_name: Mapped[Optional[str]] = mapped_column(String(50))
    tag: Mapped[Optional[str]] = mapped_column(String(50))
    hostname: Mapped[Optional[str]] = mapped_column(String(100))

    __table_args__ = (
        Index("website_event_created_at_idx", "created_at"),
        Index("website_event_session_id_idx", "session_id"),
        Index("website_event_visit_id_idx", "visit_id"),
        Index("website_event_website_id_idx", "website_id"),
        Index("website_event_website_id_created_at_idx", "website_id", "created_at"),
        *(
            Index(f"website_event_website_id_created_at_{column}_idx", "website_id", "created_at", column)
            for column in EVENT_DIMENSIONS
        ),
        Index("website_event_website_id_session_id_created_at_idx", "website_id", "session_id", "created_at"),
        Index("website_event_website_id_visit_id_created_at_idx", "website_id", "visit_id", "created_at"),
    )


class EventData(Base):
    """
    Model representing one typed attribute of an event.

    Keys are not unique per event: a multi-valued attribute is stored as
    several rows with the same ``data_key``.

    Table:
        event_data
    """

    __tablename__ = "event_data"

    event_data_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    website_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("website.website_id"))
    website_event_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("website_event.event_id"))
    data_key: Mapped[str] = mapped_column(String(500))
    string_value: Mapped[Optional[str]] = mapped_column(String(500))
    number_value: Mapped[Optional[Decimal]] = mapped_column(FixedDecimal)
    date_value: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    data_type: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)

    __table_args__ = (
        Index("event_data_created_at_idx", "created_at"),
        Index("event_data_website_id_idx", "website_id"),
        Index("event_data_website_event_id_idx", "website_event_id"),
        Index("event_data_website_id_created_at_idx", "website_id", "created_at"),
        Index("event_data_website_id_created_at_data_key_idx", "website_id", "created_at", "data_key"),
    )


class Revenue(Base):
    __tablename__ = "revenue"

    revenue_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    website_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("website.website_id"))
    session_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("session.session_id"))
    event_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    event_name: Mapped[str] = mapped_column(String(50))
    currency: Mapped[str] = mapped_column(String(10))
    revenue: Mapped[Optional[Decimal]] = mapped_column(FixedDecimal)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)

    __table_args__ = (
        Index("revenue_website_id_idx", "website_id"),
        Index("revenue_session_id_idx", "session_id"),
        Index("revenue_website_id_created_at_idx", "website_id", "created_at"),
        Index("revenue_website_id_session_id_created_at_idx", "website_id", "session_id", "created_at"),
    )
