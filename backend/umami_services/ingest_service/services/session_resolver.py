"""
Session Resolver - maps inbound hits to sessions and visits.

A hit belongs to the latest session of its (website, fingerprint) when the hit
falls within the inactivity window of that session's activity. Otherwise a new
session is created. Creation is an idempotent insert keyed on
(website, fingerprint, window bucket): concurrent creators collide on a unique
constraint, the loser re-reads the winner's row, and no lock is ever taken.

Identifiers:
    - session_id = UUIDv5(namespace, "{website}:{fingerprint}:{bucket}")
    - visit_id = UUIDv5(session_id, "{visit bucket}")

Both are deterministic, so replaying the same hit yields the same ids.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
import hashlib
import re
from typing import Any
import uuid

from loguru import logger
from sqlalchemy.orm import Session as DbSession

from umami_common.exceptions import ConflictRetryable, InvalidInput, TransientFailure
from umami_common.security import TenantScope
from umami_common.time import bucket_index, ensure_utc
from umami_services.ingest_service.database.session_repository import SessionRepository

from .attribute_store import truncate

FINGERPRINT_PATTERN = re.compile(r"^[0-9a-f]{32,64}$")
COUNTRY_PATTERN = re.compile(r"^[A-Z]{2}$")

SESSION_NAMESPACE = uuid.UUID("6f1c4d52-8a1e-5b7e-9c3d-2f0e4a6b8c1d")

CLIENT_FIELD_LENGTHS = {
    "browser": 20,
    "os": 20,
    "device": 20,
    "screen": 11,
    "language": 35,
    "region": 20,
    "city": 50,
    "distinct_id": 50,
}


def compute_fingerprint(website_id: Any, ip: str | None, user_agent: str | None, salt: str = "") -> str:
    """
    Derive a non-reversible client fingerprint.

    The website id is part of the input, so one client has unrelated
    fingerprints on different websites.
    """
    material = "|".join((str(website_id), ip or "", user_agent or "", salt))
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def validate_fingerprint(fingerprint: Any) -> str:
    if not isinstance(fingerprint, str) or not FINGERPRINT_PATTERN.match(fingerprint):
        msg = "fingerprint must be 32-64 lowercase hexadecimal characters"
        raise InvalidInput(msg, field="fingerprint")
    return fingerprint


def session_id_for(website_id: uuid.UUID, fingerprint: str, window_bucket: int) -> uuid.UUID:
    return uuid.uuid5(SESSION_NAMESPACE, f"{website_id}:{fingerprint}:{window_bucket}")


def visit_id_for(session_id: uuid.UUID, timestamp: datetime, visit_window_seconds: int) -> uuid.UUID:
    return uuid.uuid5(session_id, str(bucket_index(timestamp, visit_window_seconds)))


@dataclass(frozen=True)
class ClientAttributes:
    """Client attributes captured once, when a session is created."""

    browser: str | None = None
    os: str | None = None
    device: str | None = None
    screen: str | None = None
    language: str | None = None
    country: str | None = None
    region: str | None = None
    city: str | None = None
    distinct_id: str | None = None

    def normalized(self) -> ClientAttributes:
        values = {
            name: truncate(getattr(self, name), limit, name)
            for name, limit in CLIENT_FIELD_LENGTHS.items()
        }
        country = self.country.strip().upper() if self.country else None
        if country and not COUNTRY_PATTERN.match(country):
            logger.debug(f"Dropped malformed country code {self.country!r}")
            country = None
        return replace(self, country=country, **values)

    def as_columns(self) -> dict[str, str | None]:
        return {
            "browser": self.browser,
            "os": self.os,
            "device": self.device,
            "screen": self.screen,
            "language": self.language,
            "country": self.country,
            "region": self.region,
            "city": self.city,
            "distinct_id": self.distinct_id,
        }


@dataclass(frozen=True)
class ResolvedSession:
    session_id: uuid.UUID
    visit_id: uuid.UUID
    created: bool


class SessionResolver:
    """
    Resolve (tenant, fingerprint, timestamp) to a session and a visit.

    Args:
        session: Database session of the current unit of work.
        inactivity_window_seconds: Gap after which a returning client starts
            a new session.
        visit_window_seconds: Width of the visit buckets inside a session.
        max_attempts: Conflict-then-reread rounds before giving up.
        repository: Optional repository override.
    """

    def __init__(
        self,
        session: DbSession,
        inactivity_window_seconds: int = 1800,
        visit_window_seconds: int = 3600,
        max_attempts: int = 3,
        repository: SessionRepository | None = None,
    ) -> None:
        self.repository = repository or SessionRepository(session)
        self.window_seconds = inactivity_window_seconds
        self.window = timedelta(seconds=inactivity_window_seconds)
        self.visit_window_seconds = visit_window_seconds
        self.max_attempts = max_attempts

    def _resolved(self, session_id: uuid.UUID, timestamp: datetime, created: bool) -> ResolvedSession:
        return ResolvedSession(
            session_id=session_id,
            visit_id=visit_id_for(session_id, timestamp, self.visit_window_seconds),
            created=created,
        )

    def _find_active(self, scope: TenantScope, fingerprint: str, timestamp: datetime) -> uuid.UUID | None:
        latest = self.repository.find_latest(scope, fingerprint, timestamp + self.window)
        if latest is None:
            return None
        if latest.created_at - self.window <= timestamp <= latest.last_activity + self.window:
            return latest.session_id
        return None

    def resolve(
        self,
        scope: TenantScope,
        fingerprint: str,
        timestamp: datetime,
        client: ClientAttributes | None = None,
    ) -> ResolvedSession:
        """
        Return the session of a hit, creating it when the window has lapsed.

        Raises:
            InvalidInput: If the fingerprint is malformed.
            TransientFailure: If creation conflicts ``max_attempts`` times without
                a winner becoming visible.
        """
        fingerprint = validate_fingerprint(fingerprint)
        timestamp = ensure_utc(timestamp)
        client = (client or ClientAttributes()).normalized()
        window_bucket = bucket_index(timestamp, self.window_seconds)
        session_id = session_id_for(scope.website_id, fingerprint, window_bucket)

        for attempt in range(1, self.max_attempts + 1):
            existing = self._find_active(scope, fingerprint, timestamp)
            if existing is not None:
                return self._resolved(existing, timestamp, created=False)

            try:
                self.repository.insert(
                    scope,
                    {
                        "session_id": session_id,
                        "fingerprint": fingerprint,
                        "window_bucket": window_bucket,
                        "created_at": timestamp,
                        **client.as_columns(),
                    },
                )
            except ConflictRetryable:
                winner = self.repository.find_by_bucket(scope, fingerprint, window_bucket)
                if winner is not None:
                    logger.debug(
                        f"Session creation race on website {scope.website_id}, reusing {winner}"
                    )
                    return self._resolved(winner, timestamp, created=False)
                logger.warning(
                    f"Session conflict without visible winner on website {scope.website_id} "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
                continue

            return self._resolved(session_id, timestamp, created=True)

        msg = f"Could not resolve session after {self.max_attempts} attempts"
        raise TransientFailure(msg)
