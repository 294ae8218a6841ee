"""
Report Service - evaluation of saved and ad-hoc reports.

A report is a ``ReportParameters`` document (type, time range, dimension,
measure, filters, optional segment, ordering). Evaluation is deterministic:
the same parameters over the same stored data always produce the same
result.

Incremental Evaluation:
    Metrics reports over additive measures (``pageviews``, ``events``) can be
    evaluated incrementally. The range is split into epoch-aligned buckets of
    ``ROLLUP_BUCKET_HOURS``; partial counts of settled buckets (ending more than
    ``ROLLUP_SETTLE_SECONDS`` ago) are cached and merged with fresh counts of
    the others. Cache entries are keyed by the bucket's watermark (event count
    and latest timestamp), so a hit ingested late with a backdated timestamp
    invalidates its bucket. The merged result equals the from-scratch
    evaluation.
    Non-additive measures (``visitors``) and the other report types are always
    evaluated from scratch.

Example:
    ```python
    service = ReportService(session, settings, cache)
    params = parse_parameters(report.parameters)
    result = service.run(scope, params, incremental=True)
    ```
"""

from __future__ import annotations

from collections import Counter, OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from datetime import datetime, timedelta
import hashlib
import json
import threading
from typing import Any, Literal
from uuid import UUID

from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from sqlalchemy.orm import Session

from umami_common.config import AnalyticsServiceSettings
from umami_common.exceptions import InvalidInput
from umami_common.security import TenantScope
from umami_common.time import ensure_utc, now_utc, split_range
from umami_services.analytics_service.database.base import (
    DIMENSIONS,
    MEASURE_EVENTS,
    MEASURE_PAGEVIEWS,
    Filter,
    get_dimension,
    validate_range,
)
from umami_services.analytics_service.database.planner import QueryPlan
from umami_services.analytics_service.database.report_repository import SegmentRepository
from umami_services.analytics_service.database.stats_repository import (
    StatsRepository,
    load_timezone,
    rank_metrics,
)

from .cancellation import CancellationToken, check_cancelled

ADDITIVE_MEASURES = frozenset({MEASURE_PAGEVIEWS, MEASURE_EVENTS})


class ReportFilter(BaseModel):
    name: str
    operator: Literal["eq", "neq", "c", "dnc"] = "eq"
    value: str

    @field_validator("name")
    @classmethod
    def known_dimension(cls, v: str) -> str:
        if v not in DIMENSIONS:
            msg = f"unknown dimension {v!r}"
            raise ValueError(msg)
        return v

    def to_filter(self) -> Filter:
        return Filter(self.name, self.operator, self.value)


class ReportParameters(BaseModel):
    """
    Parameters of a report evaluation.

    Attributes:
        type: stats, metrics, series or revenue.
        start / end: Half-open time range ``[start, end)``; naive values are UTC.
        dimension: Breakdown dimension (metrics only).
        measure: pageviews, events or visitors (metrics only).
        unit / timezone: Bucket size and local timezone (series only).
        filters: Filters ANDed together.
        segment_id: Saved segment whose filters are added to ``filters``.
        currency / group_by_event: Revenue options.
        sort / limit: Ordering and size of metrics rows.
    """

    type: Literal["stats", "metrics", "series", "revenue"] = "metrics"
    start: datetime
    end: datetime
    dimension: str | None = None
    measure: Literal["pageviews", "events", "visitors"] = "pageviews"
    unit: Literal["minute", "hour", "day", "month"] = "day"
    timezone: str = "UTC"
    filters: list[ReportFilter] = Field(default_factory=list)
    segment_id: UUID | None = None
    currency: str | None = None
    group_by_event: bool = False
    sort: Literal["count_desc", "count_asc", "value_asc", "value_desc"] = "count_desc"
    limit: int | None = Field(default=None, ge=1, le=10000)

    @field_validator("start", "end")
    @classmethod
    def to_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def check_consistency(self) -> ReportParameters:
        if self.end <= self.start:
            msg = "end must be after start"
            raise ValueError(msg)
        if self.type == "metrics" and self.dimension is None:
            msg = "metrics reports require a dimension"
            raise ValueError(msg)
        if self.dimension is not None and self.dimension not in DIMENSIONS:
            msg = f"unknown dimension {self.dimension!r}"
            raise ValueError(msg)
        if self.type == "series":
            try:
                load_timezone(self.timezone)
            except InvalidInput as e:
                raise ValueError(e.message) from e
        return self


def parse_parameters(raw: dict[str, Any]) -> ReportParameters:
    """Validate stored or submitted parameters, raising ``InvalidInput``."""
    try:
        return ReportParameters.model_validate(raw)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "parameters"
        msg = f"Invalid report parameters: {location}: {first.get('msg')}"
        raise InvalidInput(msg, field="parameters") from e


def parse_segment_filters(parameters: dict[str, Any] | None) -> list[Filter]:
    try:
        items = [ReportFilter.model_validate(item) for item in (parameters or {}).get("filters", [])]
    except (ValidationError, AttributeError, TypeError) as e:
        msg = "Segment parameters must hold a list of filters"
        raise InvalidInput(msg, field="parameters") from e
    return [item.to_filter() for item in items]


@dataclass
class ReportResult:
    type: str
    data: Any
    incremental: bool = False
    plan: QueryPlan | None = None

    @property
    def degraded(self) -> bool:
        return self.plan is not None and self.plan.degraded

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "data": self.data,
            "incremental": self.incremental,
            "degraded": self.degraded,
            "plan": self.plan.to_dict() if self.plan else None,
        }


class RollupCache:
    """Thread-safe LRU of partial metric counts for settled buckets."""

    def __init__(self, max_entries: int = 10000) -> None:
        self.max_entries = max_entries
        self._entries: OrderedDict[Hashable, Counter] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Counter | None:
        with self._lock:
            value = self._entries.get(key)
            if value is None:
                return None
            self._entries.move_to_end(key)
            return Counter(value)

    def put(self, key: Hashable, value: Counter) -> None:
        with self._lock:
            self._entries[key] = Counter(value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _digest(params: ReportParameters, filters: list[Filter]) -> str:
    document = {
        "dimension": params.dimension,
        "measure": params.measure,
        "filters": [[f.name, f.operator, f.value] for f in filters],
    }
    return hashlib.sha256(json.dumps(document, sort_keys=True).encode()).hexdigest()


class ReportService:
    """
    Evaluate report parameters for one tenant.

    Args:
        session: Open database session.
        settings: Analytics settings (bucket width, settle time, limits).
        cache: Shared rollup cache; a private one is created when omitted.
        clock: Current time, replaceable in tests.
    """

    def __init__(
        self,
        session: Session,
        settings: AnalyticsServiceSettings | None = None,
        cache: RollupCache | None = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.settings = settings or AnalyticsServiceSettings()
        self.cache = cache if cache is not None else RollupCache(self.settings.ROLLUP_CACHE_MAX_ENTRIES)
        self.clock = clock
        self.stats = StatsRepository(session, self.settings)
        self.segments = SegmentRepository(session)

    def effective_filters(self, scope: TenantScope, params: ReportParameters) -> list[Filter]:
        filters = [item.to_filter() for item in params.filters]
        if params.segment_id is not None:
            segment = self.segments.get(scope, params.segment_id)
            if segment is None:
                msg = f"Segment {params.segment_id} not found"
                raise InvalidInput(msg, field="segment_id")
            filters.extend(parse_segment_filters(segment.parameters))
        return filters

    def run(
        self,
        scope: TenantScope,
        params: ReportParameters,
        incremental: bool = False,
        cancel: CancellationToken | None = None,
    ) -> ReportResult:
        filters = self.effective_filters(scope, params)

        if params.type == "stats":
            stats = self.stats.get_stats(scope, params.start, params.end, filters, cancel)
            return ReportResult("stats", stats.to_dict())

        if params.type == "series":
            series = self.stats.get_series(
                scope, params.start, params.end, params.unit, params.timezone, filters, cancel
            )
            return ReportResult(
                "series", {"unit": series.unit, "timezone": series.timezone, "points": series.points}
            )

        if params.type == "revenue":
            rows = self.stats.get_revenue(
                scope, params.start, params.end, params.currency, params.group_by_event, cancel
            )
            return ReportResult(
                "revenue",
                [
                    {
                        "currency": row.currency,
                        "event_name": row.event_name,
                        "total": row.total,
                        "count": row.count,
                        "unique_sessions": row.unique_sessions,
                    }
                    for row in rows
                ],
            )

        use_incremental = incremental and params.measure in ADDITIVE_MEASURES
        if incremental and not use_incremental:
            logger.info(f"Measure {params.measure} is not additive; evaluating from scratch")

        if use_incremental:
            counts, plan = self._incremental_counts(scope, params, filters, cancel)
        else:
            counts, plan = self.stats.count_metrics(
                scope, params.start, params.end, params.dimension, params.measure, filters, cancel
            )
        rows = rank_metrics(counts, params.sort, params.limit or self.settings.DEFAULT_METRICS_LIMIT)
        return ReportResult(
            "metrics",
            [{"x": value, "y": count} for value, count in rows],
            incremental=use_incremental,
            plan=plan,
        )

    def _incremental_counts(
        self,
        scope: TenantScope,
        params: ReportParameters,
        filters: list[Filter],
        cancel: CancellationToken | None,
    ) -> tuple[Counter, QueryPlan]:
        dimension = get_dimension(params.dimension)
        plan = self.stats.planner.plan(dimension)
        start, end = validate_range(params.start, params.end)
        chunks = split_range(
            scope.clamp_start(start), end, timedelta(hours=self.settings.ROLLUP_BUCKET_HOURS)
        )
        settled_before = self.clock() - timedelta(seconds=self.settings.ROLLUP_SETTLE_SECONDS)
        digest = _digest(params, filters)

        total: Counter = Counter()
        reused = 0
        for chunk_start, chunk_end in chunks:
            check_cancelled(cancel)
            key = None
            partial = None
            if chunk_end <= settled_before:
                # Late backdated hits change the watermark and so the key
                watermark = self.stats.chunk_watermark(scope, chunk_start, chunk_end)
                key = (scope.website_id, scope.reset_at, digest, chunk_start, chunk_end, watermark)
                partial = self.cache.get(key)
            if partial is None:
                partial, _ = self.stats.count_metrics(
                    scope, chunk_start, chunk_end, dimension, params.measure, filters, cancel, plan
                )
                if key is not None:
                    self.cache.put(key, partial)
            else:
                reused += 1
            total.update(partial)

        logger.debug(
            f"Incremental metrics for {scope.website_id}: {len(chunks)} buckets, {reused} from cache"
        )
        return total, plan
