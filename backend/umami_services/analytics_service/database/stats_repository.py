"""
Stats Repository for Analytics Service

Aggregate queries over one tenant's events: overview statistics, dimension
breakdowns, zero-filled time series, attribute breakdowns and revenue.

Every query takes a ``TenantScope`` and a ``[start, end)`` range. The tenant
and time predicates are always applied first and ``start`` is clamped to the
tenant's reset time. Long result sets are streamed in chunks of
``QUERY_STREAM_CHUNK_SIZE`` rows and a ``CancellationToken`` is checked between
chunks.

Example:
    ```python
    repo = StatsRepository(session)
    stats = repo.get_stats(scope, start, end)
    browsers = repo.get_metrics(scope, start, end, "browser")
    ```
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any
import uuid
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger
from sqlalchemy import Select, distinct, func, select
from sqlalchemy.orm import Session

from umami_common.config import AnalyticsServiceSettings
from umami_common.exceptions import InvalidInput
from umami_common.models import (
    EVENT_TYPE_CUSTOM,
    EVENT_TYPE_PAGEVIEW,
    EventData,
    Revenue,
    SessionData,
    WebsiteEvent,
)
from umami_common.security import TenantScope
from umami_services.analytics_service.services.cancellation import (
    CancellationToken,
    check_cancelled,
)

from .base import (
    MEASURE_EVENTS,
    MEASURE_VISITORS,
    MEASURES,
    Dimension,
    Filter,
    get_dimension,
    scoped_events,
    validate_range,
)
from .planner import IndexPlanner, QueryPlan

SORT_ORDERS = ("count_desc", "count_asc", "value_asc", "value_desc")
SERIES_UNITS = ("minute", "hour", "day", "month")
MAX_SERIES_BUCKETS = 10000
ATTRIBUTE_KINDS = ("event", "session")


@dataclass
class WebsiteStats:
    pageviews: int = 0
    visitors: int = 0
    visits: int = 0
    bounces: int = 0
    totaltime: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "pageviews": self.pageviews,
            "visitors": self.visitors,
            "visits": self.visits,
            "bounces": self.bounces,
            "totaltime": self.totaltime,
        }


@dataclass
class MetricsResult:
    dimension: str
    measure: str
    rows: list[tuple[str | None, int]]
    plan: QueryPlan

    @property
    def degraded(self) -> bool:
        return self.plan.degraded


@dataclass
class SeriesResult:
    unit: str
    timezone: str
    points: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class AttributeRow:
    key: str
    data_type: int
    value: Any
    count: int


@dataclass(frozen=True)
class RevenueRow:
    currency: str
    event_name: str | None
    total: Decimal
    count: int
    unique_sessions: int


def rank_metrics(
    counts: Mapping[str | None, int],
    sort: str = "count_desc",
    limit: int | None = None,
) -> list[tuple[str | None, int]]:
    """
    Order breakdown counts deterministically.

    Ties are broken by value ascending with the missing value last, so equal
    inputs always produce identical output.
    """
    if sort not in SORT_ORDERS:
        msg = f"Unknown sort {sort!r}; expected one of {', '.join(SORT_ORDERS)}"
        raise InvalidInput(msg, field="sort")

    items = [(value, count) for value, count in counts.items() if count > 0]

    def by_value(item: tuple[str | None, int]) -> tuple[bool, str]:
        return (item[0] is None, "" if item[0] is None else str(item[0]))

    if sort == "count_desc":
        ranked = sorted(items, key=lambda i: (-i[1], *by_value(i)))
    elif sort == "count_asc":
        ranked = sorted(items, key=lambda i: (i[1], *by_value(i)))
    elif sort == "value_asc":
        ranked = sorted(items, key=by_value)
    else:
        present = sorted(
            (i for i in items if i[0] is not None), key=lambda i: str(i[0]), reverse=True
        )
        ranked = present + [i for i in items if i[0] is None]

    return ranked[:limit] if limit is not None else ranked


def load_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        msg = f"Unknown timezone {name!r}"
        raise InvalidInput(msg, field="timezone") from e


def truncate_local(value: datetime, unit: str) -> datetime:
    """Truncate a naive local wall-clock time to the start of its ``unit``."""
    if unit == "minute":
        return value.replace(second=0, microsecond=0)
    if unit == "hour":
        return value.replace(minute=0, second=0, microsecond=0)
    if unit == "day":
        return value.replace(hour=0, minute=0, second=0, microsecond=0)
    return value.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def next_bucket(value: datetime, unit: str) -> datetime:
    if unit == "minute":
        return value + timedelta(minutes=1)
    if unit == "hour":
        return value + timedelta(hours=1)
    if unit == "day":
        return value + timedelta(days=1)
    if value.month == 12:
        return value.replace(year=value.year + 1, month=1)
    return value.replace(month=value.month + 1)


def series_buckets(start: datetime, end: datetime, unit: str, tz: ZoneInfo) -> list[datetime]:
    """Local bucket starts covering ``[start, end)``, as naive wall-clock times."""
    if unit not in SERIES_UNITS:
        msg = f"Unknown unit {unit!r}; expected one of {', '.join(SERIES_UNITS)}"
        raise InvalidInput(msg, field="unit")
    local_end = end.astimezone(tz).replace(tzinfo=None)
    cursor = truncate_local(start.astimezone(tz).replace(tzinfo=None), unit)
    buckets = []
    while cursor < local_end:
        buckets.append(cursor)
        if len(buckets) > MAX_SERIES_BUCKETS:
            msg = f"Range produces more than {MAX_SERIES_BUCKETS} {unit} buckets"
            raise InvalidInput(msg, field="unit")
        cursor = next_bucket(cursor, unit)
    return buckets


def _measure_condition(measure: str) -> Any:
    if measure not in MEASURES:
        msg = f"Unknown measure {measure!r}; expected one of {', '.join(MEASURES)}"
        raise InvalidInput(msg, field="measure")
    if measure == MEASURE_EVENTS:
        return WebsiteEvent.event_type == EVENT_TYPE_CUSTOM
    return WebsiteEvent.event_type == EVENT_TYPE_PAGEVIEW


class StatsRepository:
    """
    Repository for aggregate queries of one tenant.

    Args:
        session: Open database session. The repository never commits.
        settings: Analytics settings (chunk size, default limit).
        planner: Index planner; one is created per repository when omitted.
    """

    def __init__(
        self,
        session: Session,
        settings: AnalyticsServiceSettings | None = None,
        planner: IndexPlanner | None = None,
    ) -> None:
        self.session = session
        self.settings = settings or AnalyticsServiceSettings()
        self.planner = planner or IndexPlanner(session)

    def _stream(self, stmt: Select, cancel: CancellationToken | None) -> Iterator[Any]:
        check_cancelled(cancel)
        result = self.session.execute(
            stmt, execution_options={"yield_per": self.settings.QUERY_STREAM_CHUNK_SIZE}
        )
        try:
            for partition in result.partitions():
                yield from partition
                check_cancelled(cancel)
        finally:
            result.close()

    def get_stats(
        self,
        scope: TenantScope,
        start: datetime,
        end: datetime,
        filters: Sequence[Filter] = (),
        cancel: CancellationToken | None = None,
    ) -> WebsiteStats:
        """
        Overview statistics of page views in ``[start, end)``.

        Returns:
            WebsiteStats where a bounce is a visit with a single page view and
            totaltime sums, per visit, the seconds between its first and last
            page view.
        """
        start, end = validate_range(start, end)
        stmt = (
            scoped_events(
                select(
                    WebsiteEvent.session_id,
                    WebsiteEvent.visit_id,
                    func.count().label("views"),
                    func.min(WebsiteEvent.created_at).label("first_at"),
                    func.max(WebsiteEvent.created_at).label("last_at"),
                ),
                scope,
                start,
                end,
                filters,
            )
            .where(WebsiteEvent.event_type == EVENT_TYPE_PAGEVIEW)
            .group_by(WebsiteEvent.session_id, WebsiteEvent.visit_id)
        )

        stats = WebsiteStats()
        sessions: set[uuid.UUID] = set()
        for row in self._stream(stmt, cancel):
            stats.pageviews += row.views
            stats.visits += 1
            sessions.add(row.session_id)
            if row.views == 1:
                stats.bounces += 1
            stats.totaltime += int((row.last_at - row.first_at).total_seconds())
        stats.visitors = len(sessions)
        return stats

    def count_metrics(
        self,
        scope: TenantScope,
        start: datetime,
        end: datetime,
        dimension: str | Dimension,
        measure: str = "pageviews",
        filters: Sequence[Filter] = (),
        cancel: CancellationToken | None = None,
        plan: QueryPlan | None = None,
    ) -> tuple[Counter, QueryPlan]:
        """
        Unordered counts per dimension value.

        Counts of ``pageviews`` and ``events`` are additive across adjacent
        ranges; ``visitors`` (distinct sessions) is not.
        """
        start, end = validate_range(start, end)
        dim = dimension if isinstance(dimension, Dimension) else get_dimension(dimension)
        condition = _measure_condition(measure)
        plan = plan or self.planner.plan(dim)
        distinct_sessions = measure == MEASURE_VISITORS

        if plan.degraded:
            stmt = scoped_events(
                select(dim.column, WebsiteEvent.session_id),
                scope,
                start,
                end,
                filters,
                join_session=dim.is_session,
            ).where(condition)
            counts: Counter = Counter()
            seen: dict[Any, set[uuid.UUID]] = defaultdict(set)
            for value, session_id in self._stream(stmt, cancel):
                if distinct_sessions:
                    seen[value].add(session_id)
                else:
                    counts[value] += 1
            if distinct_sessions:
                counts = Counter({value: len(ids) for value, ids in seen.items()})
            return counts, plan

        aggregate = func.count(distinct(WebsiteEvent.session_id)) if distinct_sessions else func.count()
        stmt = (
            scoped_events(
                select(dim.column, aggregate.label("y")),
                scope,
                start,
                end,
                filters,
                join_session=dim.is_session,
            )
            .where(condition)
            .group_by(dim.column)
        )
        return Counter({value: count for value, count in self._stream(stmt, cancel)}), plan

    def chunk_watermark(
        self, scope: TenantScope, start: datetime, end: datetime
    ) -> tuple[int, datetime | None]:
        """
        Row count and latest timestamp of the tenant's events in ``[start, end)``.

        Events are append-only, so an unchanged watermark means the range holds
        the same rows. A hit written late with a backdated timestamp changes it.
        """
        stmt = scoped_events(
            select(func.count(), func.max(WebsiteEvent.created_at)), scope, start, end
        )
        count, latest = self.session.execute(stmt).one()
        return count, latest

    def get_metrics(
        self,
        scope: TenantScope,
        start: datetime,
        end: datetime,
        dimension: str,
        measure: str = "pageviews",
        filters: Sequence[Filter] = (),
        sort: str = "count_desc",
        limit: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> MetricsResult:
        """Ordered ``(value, count)`` breakdown of ``measure`` by ``dimension``."""
        counts, plan = self.count_metrics(
            scope, start, end, dimension, measure, filters, cancel
        )
        rows = rank_metrics(counts, sort, limit or self.settings.DEFAULT_METRICS_LIMIT)
        if plan.degraded:
            logger.info(f"Metrics by {dimension} for {scope.website_id} served by a scan")
        return MetricsResult(dimension=dimension, measure=measure, rows=rows, plan=plan)

    def get_series(
        self,
        scope: TenantScope,
        start: datetime,
        end: datetime,
        unit: str = "day",
        timezone: str = "UTC",
        filters: Sequence[Filter] = (),
        cancel: CancellationToken | None = None,
    ) -> SeriesResult:
        """
        Page views and sessions per local time bucket.

        Buckets without activity are returned with zero counts. Sessions are
        counted once per bucket they were active in.
        """
        tz = load_timezone(timezone)
        start, end = validate_range(start, end)
        buckets = series_buckets(scope.clamp_start(start), end, unit, tz)

        stmt = scoped_events(
            select(WebsiteEvent.created_at, WebsiteEvent.session_id),
            scope,
            start,
            end,
            filters,
        ).where(WebsiteEvent.event_type == EVENT_TYPE_PAGEVIEW)

        pageviews: Counter = Counter()
        sessions: dict[datetime, set[uuid.UUID]] = defaultdict(set)
        for created_at, session_id in self._stream(stmt, cancel):
            key = truncate_local(created_at.astimezone(tz).replace(tzinfo=None), unit)
            pageviews[key] += 1
            sessions[key].add(session_id)

        return SeriesResult(
            unit=unit,
            timezone=timezone,
            points=[
                {
                    "x": bucket.isoformat(),
                    "pageviews": pageviews[bucket],
                    "sessions": len(sessions.get(bucket, ())),
                }
                for bucket in buckets
            ],
        )

    def get_attribute_breakdown(
        self,
        scope: TenantScope,
        start: datetime,
        end: datetime,
        kind: str = "event",
        key: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[AttributeRow]:
        """
        Counts per (key, type, value) of event or session attributes.

        Keys are not unique per event or session; every stored row counts.
        """
        if kind not in ATTRIBUTE_KINDS:
            msg = f"Unknown attribute kind {kind!r}"
            raise InvalidInput(msg, field="kind")
        model = EventData if kind == "event" else SessionData
        start, end = validate_range(start, end)

        stmt = select(
            model.data_key,
            model.data_type,
            model.string_value,
            model.number_value,
            model.date_value,
            func.count().label("total"),
        ).where(
            model.website_id == scope.website_id,
            model.created_at >= scope.clamp_start(start),
            model.created_at < end,
        )
        if key:
            stmt = stmt.where(model.data_key == key)
        stmt = stmt.group_by(
            model.data_key, model.data_type, model.string_value, model.number_value, model.date_value
        )

        rows = []
        for row in self._stream(stmt, cancel):
            if row.string_value is not None:
                value: Any = row.string_value
            elif row.number_value is not None:
                value = row.number_value
            else:
                value = row.date_value
            rows.append(AttributeRow(row.data_key, row.data_type, value, row.total))
        return sorted(rows, key=lambda r: (-r.count, r.key, str(r.value)))

    def get_revenue(
        self,
        scope: TenantScope,
        start: datetime,
        end: datetime,
        currency: str | None = None,
        group_by_event: bool = False,
        cancel: CancellationToken | None = None,
    ) -> list[RevenueRow]:
        """
        Exact revenue totals per currency, optionally per event name.

        Amounts are summed as ``Decimal``; no floating point is involved.
        """
        start, end = validate_range(start, end)
        stmt = select(
            Revenue.currency, Revenue.event_name, Revenue.revenue, Revenue.session_id
        ).where(
            Revenue.website_id == scope.website_id,
            Revenue.created_at >= scope.clamp_start(start),
            Revenue.created_at < end,
        )
        if currency:
            stmt = stmt.where(Revenue.currency == currency.strip().upper())

        totals: dict[tuple[str, str | None], Decimal] = defaultdict(Decimal)
        counts: Counter = Counter()
        sessions: dict[tuple[str, str | None], set[uuid.UUID]] = defaultdict(set)
        for row in self._stream(stmt, cancel):
            group = (row.currency, row.event_name if group_by_event else None)
            totals[group] += row.revenue or Decimal(0)
            counts[group] += 1
            sessions[group].add(row.session_id)

        return [
            RevenueRow(
                currency=group[0],
                event_name=group[1],
                total=totals[group],
                count=counts[group],
                unique_sessions=len(sessions[group]),
            )
            for group in sorted(totals, key=lambda g: (g[0], g[1] or ""))
        ]
