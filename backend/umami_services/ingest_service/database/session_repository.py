"""
Session Repository for the Ingest Service

Lookups and the idempotent insert used by the session resolver. Every method
takes the tenant scope; no query can run without a website filter.

The insert runs inside a SAVEPOINT so a uniqueness conflict only rolls back the
insert itself, leaving the surrounding unit of work intact for the re-read.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
import uuid

from sqlalchemy import func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DbSession

from umami_common.exceptions import ConflictRetryable
from umami_common.models import Session, WebsiteEvent
from umami_common.security import TenantScope
from umami_common.time import ensure_utc


@dataclass(frozen=True)
class SessionActivity:
    session_id: uuid.UUID
    created_at: datetime
    last_activity: datetime


class SessionRepository:
    """Data access for visitor sessions."""

    def __init__(self, session: DbSession) -> None:
        self.session = session

    def find_latest(
        self, scope: TenantScope, fingerprint: str, not_after: datetime
    ) -> SessionActivity | None:
        """
        Latest session of ``fingerprint`` created at or before ``not_after``.

        The last activity is the newest of the session's creation time and its
        events' timestamps.
        """
        last_event = (
            select(func.max(WebsiteEvent.created_at))
            .where(
                WebsiteEvent.website_id == scope.website_id,
                WebsiteEvent.session_id == Session.session_id,
            )
            .correlate(Session)
            .scalar_subquery()
        )
        row = self.session.execute(
            select(Session.session_id, Session.created_at, last_event.label("last_event"))
            .where(
                Session.website_id == scope.website_id,
                Session.fingerprint == fingerprint,
                Session.created_at <= not_after,
            )
            .order_by(Session.created_at.desc())
            .limit(1)
        ).first()
        if row is None:
            return None

        created_at = ensure_utc(row.created_at)
        last_activity = created_at
        if row.last_event is not None:
            last_activity = max(created_at, ensure_utc(row.last_event))
        return SessionActivity(row.session_id, created_at, last_activity)

    def find_by_bucket(self, scope: TenantScope, fingerprint: str, window_bucket: int) -> uuid.UUID | None:
        return self.session.scalar(
            select(Session.session_id).where(
                Session.website_id == scope.website_id,
                Session.fingerprint == fingerprint,
                Session.window_bucket == window_bucket,
            )
        )

    def insert(self, scope: TenantScope, values: dict[str, Any]) -> uuid.UUID:
        """
        Insert a session row keyed by (website, fingerprint, window bucket).

        Raises:
            ConflictRetryable: If another writer created the same session first.
        """
        values = {**values, "website_id": scope.website_id}
        try:
            with self.session.begin_nested():
                self.session.execute(insert(Session).values(**values))
        except IntegrityError as e:
            msg = f"Session {values['session_id']} already exists"
            raise ConflictRetryable(msg, session_id=values["session_id"]) from e
        return values["session_id"]
