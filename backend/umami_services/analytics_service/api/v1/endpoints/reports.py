"""
Report API Endpoints

Endpoints:
    - GET /websites/{website_id}/reports: Saved reports of a website
    - POST /websites/{website_id}/reports: Save a report
    - GET /websites/{website_id}/reports/{report_id}: One saved report
    - PUT /websites/{website_id}/reports/{report_id}: Update a saved report
    - DELETE /websites/{website_id}/reports/{report_id}: Delete a saved report
    - POST /websites/{website_id}/reports/run: Evaluate ad-hoc parameters
    - POST /websites/{website_id}/reports/{report_id}/run: Evaluate a saved report

Evaluation:
    ``incremental=true`` merges cached partials of settled buckets for metrics
    over additive measures; everything else is evaluated from scratch.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from umami_common.config import AnalyticsServiceSettings
from umami_common.exceptions import create_api_error, handle_database_error
from umami_common.security import AccessContext, AccessLayer
from umami_services.analytics_service.api.dependencies import (
    get_access_context,
    get_access_layer,
    get_analytics_settings,
    get_cancellation_token,
    get_db,
    get_rollup_cache,
)
from umami_services.analytics_service.api.v1.models import (
    ReportCreate,
    ReportResponse,
    ReportRunResponse,
    ReportUpdate,
)
from umami_services.analytics_service.database.report_repository import ReportRepository
from umami_services.analytics_service.services.cancellation import CancellationToken
from umami_services.analytics_service.services.report_service import (
    ReportService,
    RollupCache,
    parse_parameters,
)

router = APIRouter()


def _not_found(report_id: str) -> HTTPException:
    return create_api_error(
        f"fetching report {report_id}", status_code=404, user_message="Report not found."
    )


@router.get("/websites/{website_id}/reports", response_model=list[ReportResponse])
def list_reports(
    website_id: str,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
):
    scope = access.authorize(ctx, website_id)
    return ReportRepository(db).list(scope)


@router.post("/websites/{website_id}/reports", response_model=ReportResponse, status_code=201)
def create_report(
    website_id: str,
    request: ReportCreate,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
):
    """Save a report. Parameters are validated before they are stored."""
    scope = access.authorize(ctx, website_id, write=True)
    params = parse_parameters(request.parameters)
    return ReportRepository(db).create(
        scope,
        ctx.user_id,
        params.type,
        request.name,
        params.model_dump(mode="json", exclude_none=True),
        description=request.description,
    )


@router.get("/websites/{website_id}/reports/{report_id}", response_model=ReportResponse)
def get_report(
    website_id: str,
    report_id: str,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
):
    scope = access.authorize(ctx, website_id)
    report = ReportRepository(db).get(scope, report_id)
    if report is None:
        raise _not_found(report_id)
    return report


@router.put("/websites/{website_id}/reports/{report_id}", response_model=ReportResponse)
def update_report(
    website_id: str,
    report_id: str,
    request: ReportUpdate,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
):
    scope = access.authorize(ctx, website_id, write=True)
    fields: dict[str, Any] = {"name": request.name, "description": request.description}
    if request.parameters is not None:
        params = parse_parameters(request.parameters)
        fields["type"] = params.type
        fields["parameters"] = params.model_dump(mode="json", exclude_none=True)
    report = ReportRepository(db).update(scope, report_id, **fields)
    if report is None:
        raise _not_found(report_id)
    return report


@router.delete("/websites/{website_id}/reports/{report_id}", status_code=204)
def delete_report(
    website_id: str,
    report_id: str,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
) -> None:
    scope = access.authorize(ctx, website_id, write=True)
    if not ReportRepository(db).delete(scope, report_id):
        raise _not_found(report_id)


@router.post("/websites/{website_id}/reports/run", response_model=ReportRunResponse)
def run_adhoc_report(
    website_id: str,
    parameters: dict[str, Any],
    incremental: bool = Query(default=False),
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
    settings: AnalyticsServiceSettings = Depends(get_analytics_settings),
    cache: RollupCache = Depends(get_rollup_cache),
    cancel: CancellationToken = Depends(get_cancellation_token),
):
    """Evaluate report parameters without saving them."""
    scope = access.authorize(ctx, website_id)
    params = parse_parameters(parameters)
    try:
        result = ReportService(db, settings, cache).run(scope, params, incremental, cancel)
    except SQLAlchemyError as e:
        raise handle_database_error("running report", e)
    return result.to_dict()


@router.post("/websites/{website_id}/reports/{report_id}/run", response_model=ReportRunResponse)
def run_report(
    website_id: str,
    report_id: str,
    incremental: bool = Query(default=False),
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
    settings: AnalyticsServiceSettings = Depends(get_analytics_settings),
    cache: RollupCache = Depends(get_rollup_cache),
    cancel: CancellationToken = Depends(get_cancellation_token),
):
    scope = access.authorize(ctx, website_id)
    report = ReportRepository(db).get(scope, report_id)
    if report is None:
        raise _not_found(report_id)
    params = parse_parameters(report.parameters)
    try:
        result = ReportService(db, settings, cache).run(scope, params, incremental, cancel)
    except SQLAlchemyError as e:
        raise handle_database_error("running report", e)
    return result.to_dict()
