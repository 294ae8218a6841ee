"""
Statistics Response Models for API Endpoints

Models:
    - StatsResponse: Overview statistics
    - MetricsResponse: Ordered dimension breakdown, with its query plan
    - SeriesResponse: Zero-filled time series
    - RevenueResponse: Revenue totals per currency
    - AttributeResponse: Attribute breakdown rows

Example:
    ```python
    {
        "dimension": "browser",
        "measure": "pageviews",
        "data": [{"x": "chrome", "y": 120}, {"x": "firefox", "y": 31}],
        "degraded": false,
        "plan": {"strategy": "index_group_by", ...}
    }
    ```
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel


class StatsResponse(BaseModel):
    pageviews: int
    visitors: int
    visits: int
    bounces: int
    totaltime: int


class MetricRow(BaseModel):
    x: str | None
    y: int


class MetricsResponse(BaseModel):
    """
    Breakdown of a measure by dimension.

    Attributes:
        data: Rows ordered by the requested sort; ``x`` is null for events
            without a value for the dimension.
        degraded: True when the dimension index was missing and the breakdown
            was served by a scan.
        plan: The query plan used.
    """

    dimension: str
    measure: str
    data: list[MetricRow]
    degraded: bool = False
    plan: dict[str, Any] | None = None


class SeriesPoint(BaseModel):
    x: str
    pageviews: int
    sessions: int


class SeriesResponse(BaseModel):
    unit: str
    timezone: str
    points: list[SeriesPoint]


class RevenueRowResponse(BaseModel):
    currency: str
    event_name: str | None = None
    total: Decimal
    count: int
    unique_sessions: int


class RevenueResponse(BaseModel):
    data: list[RevenueRowResponse]


class AttributeRowResponse(BaseModel):
    key: str
    data_type: int
    value: Any
    count: int


class AttributeResponse(BaseModel):
    kind: str
    data: list[AttributeRowResponse]
