"""
Tests for the ingest writer.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from conftest import BASE_TIME, FINGERPRINT_A, FINGERPRINT_B
from umami_common.database import session_scope
from umami_common.exceptions import InvalidInput
from umami_common.models import (
    EVENT_TYPE_CUSTOM,
    EVENT_TYPE_PAGEVIEW,
    EventData,
    Revenue,
    Session,
    SessionData,
    Website,
    WebsiteEvent,
)
from umami_common.security import TenantScope
from umami_services.analytics_service.database.stats_repository import StatsRepository
from umami_services.ingest_service.services.attribute_store import DataType
from umami_services.ingest_service.services.ingest_writer import (
    STATUS_ACCEPTED,
    STATUS_FAILED,
    STATUS_REJECTED,
    IngestWriter,
)


def _count(session_maker, model) -> int:
    with session_scope(session_maker) as session:
        return session.scalar(select(func.count()).select_from(model))


def _events(session_maker) -> list[WebsiteEvent]:
    with session_scope(session_maker) as session:
        return list(session.scalars(select(WebsiteEvent).order_by(WebsiteEvent.created_at)))


class TestPageViews:
    """Tests for page view persistence."""

    def test_pageview_is_persisted_with_attribution(self, writer, make_hit, session_maker):
        result = writer.ingest(
            [
                make_hit(
                    url="https://blog.example.com/pricing?utm_source=news&utm_medium=email&gclid=abc",
                    referrer="https://www.google.com/search?q=umami",
                    title="Pricing",
                )
            ]
        )

        assert result.accepted == 1
        [event] = _events(session_maker)
        assert event.event_type == EVENT_TYPE_PAGEVIEW
        assert event.url_path == "/pricing"
        assert event.hostname == "blog.example.com"
        assert event.utm_source == "news"
        assert event.utm_medium == "email"
        assert event.gclid == "abc"
        assert event.referrer_domain == "google.com"
        assert event.referrer_path == "/search"
        assert event.page_title == "Pricing"
        assert event.created_at == BASE_TIME

    def test_self_referral_is_dropped(self, writer, make_hit, session_maker):
        writer.ingest([make_hit(url="/docs", referrer="https://www.blog.example.com/")])

        [event] = _events(session_maker)
        assert event.referrer_domain is None
        assert event.url_path == "/docs"

    def test_oversized_fields_are_truncated(self, writer, make_hit, session_maker):
        result = writer.ingest(
            [make_hit(url="/" + "p" * 600, name="n" * 80, tag="t" * 60, title="x" * 700)]
        )

        assert result.accepted == 1
        [event] = _events(session_maker)
        assert len(event.url_path) == 500
        assert len(event.event_name) == 50
        assert len(event.tag) == 50
        assert len(event.page_title) == 500

    def test_missing_url_is_rejected(self, writer, make_hit, session_maker):
        result = writer.ingest([make_hit(url=None)])

        assert result.rejected == 1
        assert result.outcomes[0].error_code == "invalid_input"
        assert _count(session_maker, WebsiteEvent) == 0
        assert _count(session_maker, Session) == 0

    def test_activity_extends_the_session(self, writer, make_hit, session_maker):
        result = writer.ingest(
            [make_hit(timestamp=BASE_TIME + timedelta(minutes=m)) for m in (0, 25, 50, 75)]
        )

        assert result.accepted == 4
        assert len({o.session_id for o in result.outcomes}) == 1
        assert _count(session_maker, Session) == 1


class TestCustomEvents:
    """Tests for custom events and their attributes."""

    def test_event_and_attributes_are_written_together(self, writer, make_hit, session_maker):
        result = writer.ingest(
            [
                make_hit(
                    name="signup",
                    data={"plan": "pro", "seats": 3, "trial": True, "meta": {"source": "ad"}},
                )
            ]
        )

        assert result.accepted == 1
        [event] = _events(session_maker)
        assert event.event_type == EVENT_TYPE_CUSTOM
        assert event.event_name == "signup"
        with session_scope(session_maker) as session:
            rows = {
                row.data_key: row
                for row in session.scalars(
                    select(EventData).where(EventData.website_event_id == event.event_id)
                )
            }
        assert set(rows) == {"plan", "seats", "trial", "meta.source"}
        assert rows["seats"].data_type == DataType.NUMBER
        assert rows["seats"].number_value == Decimal("3.0000")
        assert rows["trial"].string_value == "true"

    def test_invalid_attribute_rejects_the_whole_hit(self, writer, make_hit, session_maker):
        result = writer.ingest([make_hit(name="broken", data={"ok": 1, "bad": float("nan")})])

        assert result.rejected == 1
        assert _count(session_maker, WebsiteEvent) == 0
        assert _count(session_maker, EventData) == 0
        assert _count(session_maker, Session) == 0

    def test_identify_writes_session_data(self, writer, make_hit, session_maker):
        result = writer.ingest(
            [make_hit(type="identify", data={"email_domain": "example.com"}, distinct_id="user-42")]
        )

        assert result.accepted == 1
        assert result.outcomes[0].event_id is None
        assert _count(session_maker, WebsiteEvent) == 0
        with session_scope(session_maker) as session:
            row = session.scalars(select(SessionData)).one()
            session_row = session.get(Session, row.session_id)
            assert row.data_key == "email_domain"
            assert row.distinct_id == "user-42"
            assert session_row.distinct_id == "user-42"


class TestRevenue:
    """Tests for revenue facts."""

    def test_revenue_is_summed_exactly(self, writer, make_hit, session_maker, tenants):
        hits = [
            make_hit(
                name="purchase",
                data={"revenue": 10.005, "currency": "usd"},
                timestamp=BASE_TIME + timedelta(minutes=i),
                fingerprint=fingerprint,
            )
            for i, fingerprint in enumerate((FINGERPRINT_A, FINGERPRINT_A, FINGERPRINT_B))
        ]
        result = writer.ingest(hits)

        assert result.accepted == 3
        assert _count(session_maker, Revenue) == 3
        with session_scope(session_maker) as session:
            [row] = StatsRepository(session).get_revenue(
                TenantScope(tenants.website_id), BASE_TIME, BASE_TIME + timedelta(days=1)
            )
        assert row.currency == "USD"
        assert row.total == Decimal("30.0150")
        assert row.count == 3
        assert row.unique_sessions == 2

    def test_page_view_with_revenue_data_has_no_revenue_row(self, writer, make_hit, session_maker):
        writer.ingest([make_hit(data={"revenue": 5, "currency": "EUR"})])

        assert _count(session_maker, Revenue) == 0


class TestBatches:
    """Tests for batch ordering and per-hit outcomes."""

    def test_outcomes_are_reported_per_index(self, writer, make_hit, session_maker):
        result = writer.ingest(
            [
                make_hit(),
                make_hit(website_id="6b2f4f0e-0000-4000-8000-000000000000"),
                make_hit(url=""),
                make_hit(website_id="not-a-uuid"),
            ]
        )

        assert [o.index for o in result.outcomes] == [0, 1, 2, 3]
        assert [o.status for o in result.outcomes] == [
            STATUS_ACCEPTED,
            STATUS_REJECTED,
            STATUS_REJECTED,
            STATUS_REJECTED,
        ]
        assert result.outcomes[1].error_code == "tenant_not_found"
        assert result.outcomes[2].error_code == "invalid_input"
        assert _count(session_maker, WebsiteEvent) == 1

    def test_malformed_referrer_rejects_only_its_hit(self, writer, make_hit, session_maker):
        result = writer.ingest(
            [
                make_hit(url="/ok"),
                make_hit(
                    url="/x", referrer="http://[broken", timestamp=BASE_TIME + timedelta(minutes=1)
                ),
                make_hit(url="/after", timestamp=BASE_TIME + timedelta(minutes=2)),
            ]
        )

        assert result.accepted == 2
        assert result.rejected == 1
        assert result.outcomes[1].status == STATUS_REJECTED
        assert result.outcomes[1].error.context["field"] == "referrer"
        assert [e.url_path for e in _events(session_maker)] == ["/ok", "/after"]

    def test_out_of_order_hits_land_in_one_session(self, writer, make_hit):
        result = writer.ingest(
            [make_hit(timestamp=BASE_TIME + timedelta(minutes=m)) for m in (10, 0, 5)]
        )

        assert result.accepted == 3
        assert len({o.session_id for o in result.outcomes}) == 1

    def test_hits_of_deleted_website_are_rejected(self, writer, make_hit, session_maker, tenants):
        with session_scope(session_maker) as session:
            session.get(Website, tenants.website_id).deleted_at = BASE_TIME

        result = writer.ingest([make_hit()])

        assert result.outcomes[0].error_code == "tenant_not_found"

    def test_oversized_batch_is_refused(self, writer, make_hit, ingest_settings):
        hits = [make_hit() for _ in range(ingest_settings.MAX_BATCH_SIZE + 1)]

        with pytest.raises(InvalidInput):
            writer.ingest(hits)


class TestRetries:
    """Tests for retries on storage failures."""

    def test_transient_failure_is_retried_without_duplicates(self, writer, make_hit, session_maker):
        real_write = IngestWriter._write_hit
        calls = {"count": 0}

        def flaky_write(self, session, hit, timestamp):
            outcome = real_write(self, session, hit, timestamp)
            calls["count"] += 1
            if calls["count"] == 1:
                raise OperationalError("INSERT", {}, Exception("connection reset"))
            return outcome

        with patch.object(IngestWriter, "_write_hit", flaky_write):
            result = writer.ingest([make_hit(name="signup", data={"plan": "pro"})])

        assert result.accepted == 1
        assert calls["count"] == 2
        assert _count(session_maker, WebsiteEvent) == 1
        assert _count(session_maker, EventData) == 1
        assert _count(session_maker, Session) == 1

    def test_exhausted_retries_report_failed_hit(self, writer, make_hit, session_maker, ingest_settings):
        error = OperationalError("INSERT", {}, Exception("database is down"))

        with patch.object(IngestWriter, "_write_hit", side_effect=error) as write:
            result = writer.ingest([make_hit()])

        assert write.call_count == ingest_settings.INGEST_MAX_ATTEMPTS
        outcome = result.outcomes[0]
        assert outcome.status == STATUS_FAILED
        assert outcome.retryable is True
        assert outcome.error_code == "storage_unavailable"
        assert _count(session_maker, WebsiteEvent) == 0

    def test_non_transient_error_is_not_retried(self, writer, make_hit):
        error = IntegrityError("INSERT", {}, Exception("constraint failed"))

        with patch.object(IngestWriter, "_write_hit", side_effect=error) as write:
            result = writer.ingest([make_hit()])

        assert write.call_count == 1
        assert result.outcomes[0].status == STATUS_FAILED
