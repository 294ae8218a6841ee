"""
Ingest Writer - validates and persists raw tracker hits.

Every hit is its own unit of work: session resolution, the event row, its
attribute rows and its optional revenue row are committed together or not at
all. Transient storage failures retry the whole unit, never a part of it.

Processing Order:
    Hits of a batch are processed in timestamp order (stable for equal
    timestamps), so events of one session are written in the order they happened.

Outcomes:
    Each hit gets an outcome at its original index: ``accepted``, ``rejected``
    (invalid input, unknown tenant; never retried) or ``failed`` (storage
    trouble; safe to retry). Hits are never dropped silently.

Example:
    ```python
    writer = IngestWriter(get_session_maker("ingest-service"), settings)
    result = writer.ingest([RawHit(website_id=website_id, fingerprint=fp, url="/pricing")])
    assert result.accepted == 1
    ```
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
import time
from typing import Any
import uuid

from loguru import logger
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session as DbSession, sessionmaker

from umami_common.config import IngestServiceSettings
from umami_common.database import quantize_decimal, session_scope
from umami_common.exceptions import (
    AnalyticsError,
    InvalidInput,
    StorageUnavailable,
    TenantNotFound,
    TransientFailure,
)
from umami_common.models import EVENT_TYPE_CUSTOM, EVENT_TYPE_PAGEVIEW, Revenue, WebsiteEvent
from umami_common.security import AccessLayer
from umami_common.time import ensure_utc, now_utc

from .attribute_store import build_event_data, build_session_data, flatten, truncate
from .attribution import parse_attribution
from .session_resolver import ClientAttributes, SessionResolver

HIT_TYPE_EVENT = "event"
HIT_TYPE_IDENTIFY = "identify"

STATUS_ACCEPTED = "accepted"
STATUS_REJECTED = "rejected"
STATUS_FAILED = "failed"

EVENT_NAME_LENGTH = 50
TAG_LENGTH = 50
PAGE_TITLE_LENGTH = 500
CURRENCY_LENGTH = 10


@dataclass
class RawHit:
    """One tracker hit, with client attributes already derived."""

    website_id: Any
    fingerprint: str
    url: str | None = None
    type: str = HIT_TYPE_EVENT
    timestamp: datetime | None = None
    hostname: str | None = None
    referrer: str | None = None
    title: str | None = None
    name: str | None = None
    tag: str | None = None
    data: dict[str, Any] | None = None
    distinct_id: str | None = None
    client: ClientAttributes = field(default_factory=ClientAttributes)


@dataclass
class HitOutcome:
    index: int
    status: str
    session_id: uuid.UUID | None = None
    visit_id: uuid.UUID | None = None
    event_id: uuid.UUID | None = None
    error_code: str | None = None
    message: str | None = None
    error: AnalyticsError | None = field(default=None, repr=False, compare=False)

    @property
    def retryable(self) -> bool:
        return self.status == STATUS_FAILED


@dataclass
class IngestResult:
    outcomes: list[HitOutcome]

    @property
    def accepted(self) -> int:
        return sum(1 for o in self.outcomes if o.status == STATUS_ACCEPTED)

    @property
    def rejected(self) -> int:
        return sum(1 for o in self.outcomes if o.status == STATUS_REJECTED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == STATUS_FAILED)


def is_transient(error: SQLAlchemyError) -> bool:
    """True for connection-level failures worth retrying."""
    if isinstance(error, (OperationalError, InterfaceError)):
        return True
    return isinstance(error, DBAPIError) and bool(error.connection_invalidated)


class IngestWriter:
    """
    Persist batches of hits with per-hit atomicity and bounded retries.

    Args:
        session_maker: Factory of database sessions; one session per attempt.
        settings: Ingest settings (windows, attempts, batch size).
        sleep: Backoff sleep function, replaceable in tests.
    """

    def __init__(
        self,
        session_maker: sessionmaker,
        settings: IngestServiceSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session_maker = session_maker
        self.settings = settings or IngestServiceSettings()
        self.sleep = sleep

    def ingest(self, hits: Sequence[RawHit]) -> IngestResult:
        """
        Write a batch of hits.

        Returns:
            IngestResult with one outcome per hit, in input order.

        Raises:
            InvalidInput: If the batch is larger than MAX_BATCH_SIZE.
        """
        if len(hits) > self.settings.MAX_BATCH_SIZE:
            msg = f"Batch of {len(hits)} hits exceeds the limit of {self.settings.MAX_BATCH_SIZE}"
            raise InvalidInput(msg, field="hits")

        received_at = now_utc()
        timestamps = [self._timestamp(hit, received_at) for hit in hits]
        order = sorted(range(len(hits)), key=lambda i: timestamps[i])

        outcomes: list[HitOutcome | None] = [None] * len(hits)
        for index in order:
            try:
                outcome = self._write_with_retry(hits[index], timestamps[index])
                outcome.index = index
            except (InvalidInput, TenantNotFound) as e:
                logger.info(f"Rejected hit {index}: {e.code}: {e.message}")
                outcome = HitOutcome(
                    index, STATUS_REJECTED, error_code=e.code, message=e.message, error=e
                )
            except (StorageUnavailable, TransientFailure) as e:
                outcome = HitOutcome(
                    index, STATUS_FAILED, error_code=e.code, message=e.message, error=e
                )
            outcomes[index] = outcome

        result = IngestResult(outcomes=[o for o in outcomes if o is not None])
        logger.info(
            f"Ingested batch of {len(hits)} hits: accepted={result.accepted} "
            f"rejected={result.rejected} failed={result.failed}"
        )
        return result

    @staticmethod
    def _timestamp(hit: RawHit, received_at: datetime) -> datetime:
        if hit.timestamp is None:
            return received_at
        return ensure_utc(hit.timestamp)

    def _write_with_retry(self, hit: RawHit, timestamp: datetime) -> HitOutcome:
        attempts = self.settings.INGEST_MAX_ATTEMPTS
        for attempt in range(1, attempts + 1):
            try:
                with session_scope(self.session_maker) as session:
                    return self._write_hit(session, hit, timestamp)
            except AnalyticsError:
                raise
            except SQLAlchemyError as e:
                if not is_transient(e):
                    logger.opt(exception=e).error("Non-retryable storage error while ingesting hit")
                    msg = "Storage rejected the write"
                    raise StorageUnavailable(msg) from e
                if attempt == attempts:
                    logger.error(f"Storage unavailable after {attempts} attempts: {e}")
                    msg = f"Storage unavailable after {attempts} attempts"
                    raise StorageUnavailable(msg) from e
                backoff = self.settings.INGEST_RETRY_BACKOFF_SECONDS * attempt
                logger.warning(
                    f"Transient storage error (attempt {attempt}/{attempts}), retrying in {backoff:.2f}s: {e}"
                )
                self.sleep(backoff)
        msg = "No ingest attempt was made"
        raise StorageUnavailable(msg)

    def _write_hit(self, session: DbSession, hit: RawHit, timestamp: datetime) -> HitOutcome:
        scope = AccessLayer(session).ingest_scope(hit.website_id)

        if hit.type not in (HIT_TYPE_EVENT, HIT_TYPE_IDENTIFY):
            msg = f"Unknown hit type {hit.type!r}"
            raise InvalidInput(msg, field="type")

        attribution = None
        if hit.type == HIT_TYPE_EVENT:
            attribution = parse_attribution(hit.url, hit.referrer, hit.hostname, scope.domain)
        # Classify attributes before anything is written
        pairs = flatten(hit.data)
        revenue = self._revenue(hit) if hit.type == HIT_TYPE_EVENT else None

        client = hit.client
        if hit.distinct_id and not client.distinct_id:
            client = ClientAttributes(**{**client.as_columns(), "distinct_id": hit.distinct_id})

        resolver = SessionResolver(
            session,
            inactivity_window_seconds=self.settings.SESSION_INACTIVITY_WINDOW_SECONDS,
            visit_window_seconds=self.settings.VISIT_WINDOW_SECONDS,
            max_attempts=self.settings.SESSION_CREATE_MAX_ATTEMPTS,
        )
        resolved = resolver.resolve(scope, hit.fingerprint, timestamp, client)

        if hit.type == HIT_TYPE_IDENTIFY:
            session.add_all(
                build_session_data(scope, resolved.session_id, timestamp, pairs, hit.distinct_id)
            )
            session.flush()
            return HitOutcome(0, STATUS_ACCEPTED, resolved.session_id, resolved.visit_id)

        event_name = truncate(hit.name, EVENT_NAME_LENGTH, "event_name")
        event = WebsiteEvent(
            event_id=uuid.uuid4(),
            website_id=scope.website_id,
            session_id=resolved.session_id,
            visit_id=resolved.visit_id,
            created_at=timestamp,
            event_type=EVENT_TYPE_CUSTOM if event_name else EVENT_TYPE_PAGEVIEW,
            event_name=event_name,
            tag=truncate(hit.tag, TAG_LENGTH, "tag"),
            page_title=truncate(hit.title, PAGE_TITLE_LENGTH, "page_title"),
            **attribution.as_columns(),
        )
        session.add(event)
        session.add_all(build_event_data(scope, event.event_id, timestamp, pairs))
        if revenue is not None and event_name:
            amount, currency = revenue
            session.add(
                Revenue(
                    revenue_id=uuid.uuid4(),
                    website_id=scope.website_id,
                    session_id=resolved.session_id,
                    event_id=event.event_id,
                    event_name=event_name,
                    currency=currency,
                    revenue=amount,
                    created_at=timestamp,
                )
            )
        session.flush()
        return HitOutcome(0, STATUS_ACCEPTED, resolved.session_id, resolved.visit_id, event.event_id)

    @staticmethod
    def _revenue(hit: RawHit) -> tuple[Any, str] | None:
        data = hit.data or {}
        if data.get("revenue") is None or not data.get("currency"):
            return None
        try:
            amount = quantize_decimal(data["revenue"])
        except (ValueError, ArithmeticError) as e:
            msg = f"revenue is not a storable decimal: {e}"
            raise InvalidInput(msg, field="revenue") from e
        currency = str(data["currency"]).strip().upper()
        return amount, truncate(currency, CURRENCY_LENGTH, "currency")
