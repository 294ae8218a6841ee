"""
Analytics Service API v1 Models Module

Exported Models:
    - Websites: WebsiteCreate, WebsiteResponse, ResetRequest, ResetResponse
    - Statistics: StatsResponse, MetricsResponse, SeriesResponse, RevenueResponse,
      AttributeResponse
    - Reports: ReportCreate, ReportUpdate, ReportResponse, ReportRunResponse
    - Segments: SegmentCreate, SegmentUpdate, SegmentResponse
    - Links and pixels: LinkCreate, LinkResponse, PixelCreate, PixelResponse
"""

from .reports import (
    ReportCreate,
    ReportResponse,
    ReportRunResponse,
    ReportUpdate,
    SegmentCreate,
    SegmentResponse,
    SegmentUpdate,
)
from .stats import (
    AttributeResponse,
    AttributeRowResponse,
    MetricRow,
    MetricsResponse,
    RevenueResponse,
    RevenueRowResponse,
    SeriesPoint,
    SeriesResponse,
    StatsResponse,
)
from .tracking import LinkCreate, LinkResponse, PixelCreate, PixelResponse
from .websites import ResetRequest, ResetResponse, WebsiteCreate, WebsiteResponse

__all__ = [
    "AttributeResponse",
    "AttributeRowResponse",
    "LinkCreate",
    "LinkResponse",
    "MetricRow",
    "MetricsResponse",
    "PixelCreate",
    "PixelResponse",
    "ReportCreate",
    "ReportResponse",
    "ReportRunResponse",
    "ReportUpdate",
    "ResetRequest",
    "ResetResponse",
    "RevenueResponse",
    "RevenueRowResponse",
    "SegmentCreate",
    "SegmentResponse",
    "SegmentUpdate",
    "SeriesPoint",
    "SeriesResponse",
    "StatsResponse",
    "WebsiteCreate",
    "WebsiteResponse",
]
