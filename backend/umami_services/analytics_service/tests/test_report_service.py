"""
Tests for report evaluation, incremental rollups and saved definitions.
"""

from collections import Counter
from datetime import UTC, datetime, timedelta

import pytest

from conftest import BASE_TIME, FINGERPRINT_B
from umami_common.database import session_scope
from umami_common.exceptions import InvalidInput
from umami_common.security import TenantScope
from umami_services.analytics_service.database.report_repository import (
    ReportRepository,
    SegmentRepository,
)
from umami_services.analytics_service.services.report_service import (
    ReportService,
    RollupCache,
    parse_parameters,
)
from umami_services.ingest_service.services.session_resolver import ClientAttributes

RANGE_START = datetime(2024, 3, 4, tzinfo=UTC)
RANGE_END = datetime(2024, 3, 7, tzinfo=UTC)
LATER = datetime(2024, 3, 10, tzinfo=UTC)
DAY = timedelta(days=1)


@pytest.fixture
def scope(tenants) -> TenantScope:
    return TenantScope(tenants.website_id, domain="blog.example.com")


@pytest.fixture
def three_days(writer, make_hit):
    """Page views and events spread over three days."""
    firefox = ClientAttributes(browser="firefox")
    hits = [
        make_hit(url="/", timestamp=BASE_TIME),
        make_hit(url="/pricing", timestamp=BASE_TIME + timedelta(minutes=5)),
        make_hit(url="/", timestamp=BASE_TIME + timedelta(hours=23)),
        make_hit(url="/docs", fingerprint=FINGERPRINT_B, client=firefox, timestamp=BASE_TIME + DAY),
        make_hit(url="/", fingerprint=FINGERPRINT_B, client=firefox, timestamp=BASE_TIME + 2 * DAY),
        make_hit(
            url="/",
            name="signup",
            fingerprint=FINGERPRINT_B,
            timestamp=BASE_TIME + 2 * DAY + timedelta(minutes=1),
        ),
    ]
    assert writer.ingest(hits).accepted == len(hits)


@pytest.fixture
def evaluate(session_maker, analytics_settings):
    """Evaluate raw parameters with a shared cache and a fixed clock."""
    cache = RollupCache()

    def run(scope, raw, incremental=False, clock=LATER):
        with session_scope(session_maker) as session:
            service = ReportService(session, analytics_settings, cache, clock=lambda: clock)
            return service.run(scope, parse_parameters(raw), incremental=incremental)

    run.cache = cache
    return run


def metrics(**overrides):
    raw = {
        "type": "metrics",
        "start": RANGE_START.isoformat(),
        "end": RANGE_END.isoformat(),
        "dimension": "url_path",
    }
    raw.update(overrides)
    return raw


class TestIncrementalEvaluation:
    """Tests for bucketed rollups of additive measures."""

    def test_incremental_equals_from_scratch(self, three_days, evaluate, scope):
        scratch = evaluate(scope, metrics())
        first = evaluate(scope, metrics(), incremental=True)
        second = evaluate(scope, metrics(), incremental=True)

        assert scratch.data == [{"x": "/", "y": 3}, {"x": "/docs", "y": 1}, {"x": "/pricing", "y": 1}]
        assert first.data == scratch.data
        assert second.data == scratch.data
        assert first.incremental is True
        assert scratch.incremental is False
        # one settled partial per day
        assert len(evaluate.cache) == 3

    def test_backdated_hit_invalidates_its_bucket(
        self, three_days, evaluate, scope, writer, make_hit
    ):
        evaluate(scope, metrics(), incremental=True)

        late = writer.ingest([make_hit(url="/late", timestamp=BASE_TIME + timedelta(hours=2))])
        incremental = evaluate(scope, metrics(), incremental=True)

        assert late.accepted == 1
        assert incremental.data == evaluate(scope, metrics()).data
        assert {"x": "/late", "y": 1} in incremental.data
        # the first day was recounted, the other two came from the cache
        assert len(evaluate.cache) == 4

    def test_events_measure_is_incremental(self, three_days, evaluate, scope):
        params = metrics(dimension="event_name", measure="events")

        assert evaluate(scope, params, incremental=True).data == evaluate(scope, params).data == [
            {"x": "signup", "y": 1}
        ]

    def test_unsettled_buckets_are_not_cached(self, three_days, evaluate, scope):
        now = BASE_TIME + timedelta(days=2)

        result = evaluate(scope, metrics(), incremental=True, clock=now)

        assert result.data == evaluate(scope, metrics()).data
        assert len(evaluate.cache) == 2

    def test_visitors_are_evaluated_from_scratch(self, three_days, evaluate, scope):
        result = evaluate(scope, metrics(measure="visitors"), incremental=True)

        assert result.incremental is False
        assert result.data == [{"x": "/", "y": 3}, {"x": "/docs", "y": 1}, {"x": "/pricing", "y": 1}]
        assert len(evaluate.cache) == 0

    def test_reset_and_filters_partition_the_cache(self, three_days, evaluate, tenants, scope):
        filtered = metrics(filters=[{"name": "browser", "operator": "eq", "value": "firefox"}])
        reset_scope = TenantScope(tenants.website_id, reset_at=BASE_TIME + timedelta(days=1, hours=12))

        assert evaluate(scope, filtered, incremental=True).data == [
            {"x": "/", "y": 1},
            {"x": "/docs", "y": 1},
        ]
        assert evaluate(scope, metrics(), incremental=True).data[0] == {"x": "/", "y": 3}
        assert evaluate(reset_scope, metrics(), incremental=True).data == [{"x": "/", "y": 1}]

    def test_report_types_dispatch(self, three_days, evaluate, scope):
        stats = evaluate(scope, metrics(type="stats", dimension=None))
        series = evaluate(scope, metrics(type="series", dimension=None, unit="day"))
        revenue = evaluate(scope, metrics(type="revenue", dimension=None))

        assert stats.data["pageviews"] == 5
        assert [point["pageviews"] for point in series.data["points"]] == [2, 2, 1]
        assert revenue.data == []
        assert stats.to_dict()["plan"] is None


class TestSegments:
    """Tests for saved segments applied to reports."""

    def test_segment_filters_are_applied(self, three_days, evaluate, session_maker, scope):
        with session_scope(session_maker) as session:
            segment = SegmentRepository(session).create(
                scope,
                "segment",
                "Firefox users",
                {"filters": [{"name": "browser", "operator": "eq", "value": "firefox"}]},
            )
            segment_id = str(segment.segment_id)

        result = evaluate(scope, metrics(type="stats", dimension=None, segment_id=segment_id))

        assert result.data["pageviews"] == 2

    def test_unknown_segment_is_invalid(self, evaluate, scope):
        with pytest.raises(InvalidInput):
            evaluate(scope, metrics(segment_id="6b2f4f0e-0000-4000-8000-000000000000"))

    def test_segment_type_is_validated(self, session_maker, scope):
        with session_scope(session_maker) as session:
            with pytest.raises(InvalidInput):
                SegmentRepository(session).create(scope, "audience", "x", {"filters": []})


class TestDefinitions:
    """Tests for saved report definitions."""

    def test_reports_are_scoped_to_their_website(self, session_maker, tenants, scope):
        with session_scope(session_maker) as session:
            repo = ReportRepository(session)
            report = repo.create(scope, tenants.owner_id, "metrics", "Top pages", metrics())
            other = TenantScope(tenants.other_website_id)

            assert repo.get(scope, report.report_id) is report
            assert repo.get(other, report.report_id) is None
            assert repo.list(other) == []
            assert repo.delete(other, report.report_id) is False
            assert repo.update(scope, report.report_id, name="Pages").name == "Pages"
            assert repo.delete(scope, report.report_id) is True
            assert repo.list(scope) == []


class TestParameters:
    """Tests for report parameter validation."""

    @pytest.mark.parametrize(
        "raw",
        [
            metrics(dimension=None),
            metrics(dimension="password"),
            metrics(end=RANGE_START.isoformat()),
            metrics(measure="bounces"),
            metrics(type="funnel"),
            metrics(type="series", timezone="Mars/Olympus"),
            metrics(filters=[{"name": "url_path", "operator": "gt", "value": "1"}]),
            metrics(limit=0),
            {"type": "stats"},
        ],
    )
    def test_invalid_parameters_are_rejected(self, raw):
        with pytest.raises(InvalidInput):
            parse_parameters(raw)

    def test_naive_times_are_utc(self):
        params = parse_parameters(metrics(start="2024-03-04T00:00:00", end="2024-03-05T00:00:00"))

        assert params.start == RANGE_START
        assert params.start.tzinfo is not None


class TestRollupCache:
    """Tests for the LRU of partial counts."""

    def test_least_recently_used_entry_is_evicted(self):
        cache = RollupCache(max_entries=2)
        cache.put("a", Counter(x=1))
        cache.put("b", Counter(x=2))
        cache.get("a")
        cache.put("c", Counter(x=3))

        assert cache.get("b") is None
        assert cache.get("a") == Counter(x=1)
        assert len(cache) == 2

    def test_cached_counts_cannot_be_mutated(self):
        cache = RollupCache()
        cache.put("a", Counter(x=1))
        cache.get("a").update(x=5)

        assert cache.get("a") == Counter(x=1)

        cache.clear()
        assert len(cache) == 0
