"""
Base Utilities for Analytics Service Database Layer

Shared constants, the dimension catalogue and filter compilation used by every
repository of the analytics service.

Dimensions:
    Session dimensions live on the session table and are reached through a
    join on session_id; event dimensions live on website_event.

Filters:
    - eq: equal to value
    - neq: not equal to value (rows without a value match)
    - c: contains value
    - dnc: does not contain value (rows without a value match)
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Select, or_
from sqlalchemy.orm import InstrumentedAttribute

from umami_common.exceptions import InvalidInput
from umami_common.models import EVENT_DIMENSIONS, SESSION_DIMENSIONS, Session, WebsiteEvent
from umami_common.security import TenantScope
from umami_common.time import ensure_utc

# Service name constant for database session routing
SERVICE_NAME = "analytics-service"

UTM_DIMENSIONS = ("utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term")

FILTER_OPERATORS = ("eq", "neq", "c", "dnc")

MEASURE_PAGEVIEWS = "pageviews"
MEASURE_EVENTS = "events"
MEASURE_VISITORS = "visitors"
MEASURES = (MEASURE_PAGEVIEWS, MEASURE_EVENTS, MEASURE_VISITORS)


@dataclass(frozen=True)
class Dimension:
    name: str
    column: InstrumentedAttribute
    table: str

    @property
    def is_session(self) -> bool:
        return self.table == Session.__tablename__


_DIMENSIONS: dict[str, Dimension] = {
    **{
        name: Dimension(name, getattr(Session, name), Session.__tablename__)
        for name in SESSION_DIMENSIONS
    },
    **{
        name: Dimension(name, getattr(WebsiteEvent, name), WebsiteEvent.__tablename__)
        for name in EVENT_DIMENSIONS + UTM_DIMENSIONS
    },
}

DIMENSIONS = tuple(_DIMENSIONS)


def get_dimension(name: str | None) -> Dimension:
    """Look up a dimension by name, raising ``InvalidInput`` for unknown names."""
    if not name or name not in _DIMENSIONS:
        msg = f"Unknown dimension {name!r}; expected one of {', '.join(DIMENSIONS)}"
        raise InvalidInput(msg, field="dimension")
    return _DIMENSIONS[name]


@dataclass(frozen=True)
class Filter:
    name: str
    operator: str
    value: str

    def __post_init__(self) -> None:
        get_dimension(self.name)
        if self.operator not in FILTER_OPERATORS:
            msg = f"Unknown filter operator {self.operator!r}"
            raise InvalidInput(msg, field="filters")

    @property
    def dimension(self) -> Dimension:
        return get_dimension(self.name)

    def clause(self) -> Any:
        column = self.dimension.column
        if self.operator == "eq":
            return column == self.value
        if self.operator == "neq":
            return or_(column != self.value, column.is_(None))
        if self.operator == "c":
            return column.contains(self.value, autoescape=True)
        return or_(~column.contains(self.value, autoescape=True), column.is_(None))


def parse_filter(expression: str) -> Filter:
    """
    Parse a ``name:operator:value`` query string filter.

    The value may itself contain colons.
    """
    parts = expression.split(":", 2)
    if len(parts) != 3:
        msg = f"Filter {expression!r} must look like name:operator:value"
        raise InvalidInput(msg, field="filters")
    return Filter(*parts)


def validate_range(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    start = ensure_utc(start)
    end = ensure_utc(end)
    if end <= start:
        msg = "end must be after start"
        raise InvalidInput(msg, field="end")
    return start, end


def scoped_events(
    stmt: Select,
    scope: TenantScope,
    start: datetime,
    end: datetime,
    filters: Sequence[Filter] = (),
    join_session: bool = False,
) -> Select:
    """
    Restrict an event query to one tenant and ``[start, end)``.

    The tenant and time predicates always come first so the planner enters
    through the (website_id, created_at) composite index. ``start`` is
    clamped to the tenant's reset time.
    """
    start = scope.clamp_start(start)
    stmt = stmt.select_from(WebsiteEvent).where(
        WebsiteEvent.website_id == scope.website_id,
        WebsiteEvent.created_at >= start,
        WebsiteEvent.created_at < ensure_utc(end),
    )
    if join_session or needs_session(filters):
        stmt = stmt.join(Session, Session.session_id == WebsiteEvent.session_id)
    for item in filters:
        stmt = stmt.where(item.clause())
    return stmt


def needs_session(filters: Iterable[Filter]) -> bool:
    return any(item.dimension.is_session for item in filters)
