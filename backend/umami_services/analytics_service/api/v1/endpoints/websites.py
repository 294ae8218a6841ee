"""
Website API Endpoints

Endpoints:
    - GET /websites: Websites visible to the caller
    - POST /websites: Create a website
    - DELETE /websites/{website_id}: Soft-delete a website
    - POST /websites/{website_id}/restore: Restore a soft-deleted website
    - POST /websites/{website_id}/reset: Hide statistics recorded before a point in time
    - GET /websites/{website_id}/stats: Overview statistics
    - GET /websites/{website_id}/metrics: Dimension breakdown
    - GET /websites/{website_id}/pageviews: Page views and sessions over time
    - GET /websites/{website_id}/revenue: Revenue totals
    - GET /websites/{website_id}/event-data: Event attribute breakdown
    - GET /websites/{website_id}/session-data: Session attribute breakdown

Filtering:
    Statistics endpoints accept repeated ``filter`` query parameters of the
    form ``name:operator:value`` (operators eq, neq, c, dnc).

Multi-Tenancy:
    All endpoints require the X-User-Id header. Access to another tenant's
    website answers 403 and is recorded in the security log.

Example:
    ```python
    GET /api/v1/websites/{website_id}/metrics?start=2024-01-01T00:00:00Z&end=2024-02-01T00:00:00Z&dimension=browser&filter=country:eq:DE
    Headers:
        X-User-Id: 41e2b680-648e-4b09-bcd7-3e2b10c06264
    ```
"""

from datetime import datetime

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from umami_common.config import AnalyticsServiceSettings
from umami_common.exceptions import handle_database_error
from umami_common.security import AccessContext, AccessLayer
from umami_services.analytics_service.api.dependencies import (
    get_access_context,
    get_access_layer,
    get_analytics_settings,
    get_cancellation_token,
    get_db,
)
from umami_services.analytics_service.api.v1.models import (
    AttributeResponse,
    AttributeRowResponse,
    MetricRow,
    MetricsResponse,
    ResetRequest,
    ResetResponse,
    RevenueResponse,
    RevenueRowResponse,
    SeriesPoint,
    SeriesResponse,
    StatsResponse,
    WebsiteCreate,
    WebsiteResponse,
)
from umami_services.analytics_service.database.base import Filter, parse_filter
from umami_services.analytics_service.database.stats_repository import StatsRepository
from umami_services.analytics_service.services.cancellation import CancellationToken

router = APIRouter()


def _filters(expressions: list[str]) -> list[Filter]:
    return [parse_filter(expression) for expression in expressions]


# ============================================================
# Website administration
# ============================================================


@router.get("/websites", response_model=list[WebsiteResponse])
def list_websites(
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
):
    """List the active websites the caller may read."""
    return access.list_websites(ctx)


@router.post("/websites", response_model=WebsiteResponse, status_code=201)
def create_website(
    request: WebsiteCreate,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
):
    return access.create_website(
        ctx, request.name, domain=request.domain, team_id=request.team_id, share_id=request.share_id
    )


@router.delete("/websites/{website_id}", response_model=WebsiteResponse)
def delete_website(
    website_id: str,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
):
    """Soft-delete a website. Its data is kept and can be restored within the retention window."""
    return access.soft_delete_website(ctx, website_id)


@router.post("/websites/{website_id}/restore", response_model=WebsiteResponse)
def restore_website(
    website_id: str,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
):
    return access.restore_website(ctx, website_id)


@router.post("/websites/{website_id}/reset", response_model=ResetResponse)
def reset_website(
    website_id: str,
    request: ResetRequest | None = Body(default=None),
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
):
    """Hide statistics recorded before ``at`` (default: now) without deleting them."""
    scope = access.reset_website(ctx, website_id, request.at if request else None)
    return ResetResponse(website_id=scope.website_id, reset_at=scope.reset_at)


# ============================================================
# Statistics
# ============================================================


@router.get("/websites/{website_id}/stats", response_model=StatsResponse)
def get_stats(
    website_id: str,
    start: datetime = Query(description="Range start (inclusive)"),
    end: datetime = Query(description="Range end (exclusive)"),
    filters: list[str] = Query(default=[], alias="filter", description="name:operator:value"),
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
    settings: AnalyticsServiceSettings = Depends(get_analytics_settings),
    cancel: CancellationToken = Depends(get_cancellation_token),
):
    """Page views, visitors, visits, bounces and total time of the range."""
    scope = access.authorize(ctx, website_id)
    try:
        stats = StatsRepository(db, settings).get_stats(scope, start, end, _filters(filters), cancel)
    except SQLAlchemyError as e:
        raise handle_database_error("fetching website stats", e)
    return StatsResponse(**stats.to_dict())


@router.get("/websites/{website_id}/metrics", response_model=MetricsResponse)
def get_metrics(
    website_id: str,
    start: datetime = Query(description="Range start (inclusive)"),
    end: datetime = Query(description="Range end (exclusive)"),
    dimension: str = Query(description="Breakdown dimension, e.g. url_path or browser"),
    measure: str = Query(default="pageviews", description="pageviews, events or visitors"),
    sort: str = Query(default="count_desc"),
    limit: int | None = Query(default=None, ge=1, le=10000),
    filters: list[str] = Query(default=[], alias="filter", description="name:operator:value"),
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
    settings: AnalyticsServiceSettings = Depends(get_analytics_settings),
    cancel: CancellationToken = Depends(get_cancellation_token),
):
    scope = access.authorize(ctx, website_id)
    try:
        result = StatsRepository(db, settings).get_metrics(
            scope, start, end, dimension, measure, _filters(filters), sort, limit, cancel
        )
    except SQLAlchemyError as e:
        raise handle_database_error("fetching website metrics", e)
    return MetricsResponse(
        dimension=result.dimension,
        measure=result.measure,
        data=[MetricRow(x=value, y=count) for value, count in result.rows],
        degraded=result.degraded,
        plan=result.plan.to_dict(),
    )


@router.get("/websites/{website_id}/pageviews", response_model=SeriesResponse)
def get_pageviews(
    website_id: str,
    start: datetime = Query(description="Range start (inclusive)"),
    end: datetime = Query(description="Range end (exclusive)"),
    unit: str = Query(default="day", description="minute, hour, day or month"),
    timezone: str = Query(default="UTC", description="IANA timezone of the buckets"),
    filters: list[str] = Query(default=[], alias="filter", description="name:operator:value"),
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
    settings: AnalyticsServiceSettings = Depends(get_analytics_settings),
    cancel: CancellationToken = Depends(get_cancellation_token),
):
    """Zero-filled page views and sessions per time bucket."""
    scope = access.authorize(ctx, website_id)
    try:
        series = StatsRepository(db, settings).get_series(
            scope, start, end, unit, timezone, _filters(filters), cancel
        )
    except SQLAlchemyError as e:
        raise handle_database_error("fetching page view series", e)
    return SeriesResponse(
        unit=series.unit,
        timezone=series.timezone,
        points=[SeriesPoint(**point) for point in series.points],
    )


@router.get("/websites/{website_id}/revenue", response_model=RevenueResponse)
def get_revenue(
    website_id: str,
    start: datetime = Query(description="Range start (inclusive)"),
    end: datetime = Query(description="Range end (exclusive)"),
    currency: str | None = Query(default=None, description="Restrict to one currency"),
    group_by_event: bool = Query(default=False, description="Split totals by event name"),
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
    settings: AnalyticsServiceSettings = Depends(get_analytics_settings),
    cancel: CancellationToken = Depends(get_cancellation_token),
):
    scope = access.authorize(ctx, website_id)
    try:
        rows = StatsRepository(db, settings).get_revenue(
            scope, start, end, currency, group_by_event, cancel
        )
    except SQLAlchemyError as e:
        raise handle_database_error("fetching revenue", e)
    return RevenueResponse(
        data=[
            RevenueRowResponse(
                currency=row.currency,
                event_name=row.event_name,
                total=row.total,
                count=row.count,
                unique_sessions=row.unique_sessions,
            )
            for row in rows
        ]
    )


def _attribute_breakdown(
    kind: str,
    website_id: str,
    start: datetime,
    end: datetime,
    key: str | None,
    ctx: AccessContext,
    access: AccessLayer,
    db: Session,
    settings: AnalyticsServiceSettings,
    cancel: CancellationToken,
) -> AttributeResponse:
    scope = access.authorize(ctx, website_id)
    try:
        rows = StatsRepository(db, settings).get_attribute_breakdown(
            scope, start, end, kind, key, cancel
        )
    except SQLAlchemyError as e:
        raise handle_database_error(f"fetching {kind} data", e)
    return AttributeResponse(
        kind=kind,
        data=[
            AttributeRowResponse(key=row.key, data_type=row.data_type, value=row.value, count=row.count)
            for row in rows
        ],
    )


@router.get("/websites/{website_id}/event-data", response_model=AttributeResponse)
def get_event_data(
    website_id: str,
    start: datetime = Query(description="Range start (inclusive)"),
    end: datetime = Query(description="Range end (exclusive)"),
    key: str | None = Query(default=None, description="Restrict to one attribute key"),
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
    settings: AnalyticsServiceSettings = Depends(get_analytics_settings),
    cancel: CancellationToken = Depends(get_cancellation_token),
):
    return _attribute_breakdown("event", website_id, start, end, key, ctx, access, db, settings, cancel)


@router.get("/websites/{website_id}/session-data", response_model=AttributeResponse)
def get_session_data(
    website_id: str,
    start: datetime = Query(description="Range start (inclusive)"),
    end: datetime = Query(description="Range end (exclusive)"),
    key: str | None = Query(default=None, description="Restrict to one attribute key"),
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
    settings: AnalyticsServiceSettings = Depends(get_analytics_settings),
    cancel: CancellationToken = Depends(get_cancellation_token),
):
    return _attribute_breakdown("session", website_id, start, end, key, ctx, access, db, settings, cancel)
