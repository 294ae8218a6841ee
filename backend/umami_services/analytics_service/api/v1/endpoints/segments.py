"""
Segment API Endpoints

Endpoints:
    - GET /websites/{website_id}/segments: Segments and cohorts of a website
    - POST /websites/{website_id}/segments: Save a segment
    - GET /websites/{website_id}/segments/{segment_id}: One segment
    - PUT /websites/{website_id}/segments/{segment_id}: Update a segment
    - DELETE /websites/{website_id}/segments/{segment_id}: Delete a segment

A segment's parameters hold a ``filters`` list; reports referencing the
segment add those filters to their own.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from umami_common.exceptions import create_api_error
from umami_common.security import AccessContext, AccessLayer
from umami_services.analytics_service.api.dependencies import (
    get_access_context,
    get_access_layer,
    get_db,
)
from umami_services.analytics_service.api.v1.models import (
    SegmentCreate,
    SegmentResponse,
    SegmentUpdate,
)
from umami_services.analytics_service.database.report_repository import SegmentRepository
from umami_services.analytics_service.services.report_service import parse_segment_filters

router = APIRouter()


def _not_found(segment_id: str) -> HTTPException:
    return create_api_error(
        f"fetching segment {segment_id}", status_code=404, user_message="Segment not found."
    )


@router.get("/websites/{website_id}/segments", response_model=list[SegmentResponse])
def list_segments(
    website_id: str,
    type: str | None = Query(default=None, description="segment or cohort"),
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
):
    scope = access.authorize(ctx, website_id)
    return SegmentRepository(db).list(scope, type)


@router.post("/websites/{website_id}/segments", response_model=SegmentResponse, status_code=201)
def create_segment(
    website_id: str,
    request: SegmentCreate,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
):
    scope = access.authorize(ctx, website_id, write=True)
    parse_segment_filters(request.parameters)
    return SegmentRepository(db).create(scope, request.type, request.name, request.parameters)


@router.get("/websites/{website_id}/segments/{segment_id}", response_model=SegmentResponse)
def get_segment(
    website_id: str,
    segment_id: str,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
):
    scope = access.authorize(ctx, website_id)
    segment = SegmentRepository(db).get(scope, segment_id)
    if segment is None:
        raise _not_found(segment_id)
    return segment


@router.put("/websites/{website_id}/segments/{segment_id}", response_model=SegmentResponse)
def update_segment(
    website_id: str,
    segment_id: str,
    request: SegmentUpdate,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
):
    scope = access.authorize(ctx, website_id, write=True)
    if request.parameters is not None:
        parse_segment_filters(request.parameters)
    segment = SegmentRepository(db).update(
        scope, segment_id, type=request.type, name=request.name, parameters=request.parameters
    )
    if segment is None:
        raise _not_found(segment_id)
    return segment


@router.delete("/websites/{website_id}/segments/{segment_id}", status_code=204)
def delete_segment(
    website_id: str,
    segment_id: str,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
    db: Session = Depends(get_db),
) -> None:
    scope = access.authorize(ctx, website_id, write=True)
    if not SegmentRepository(db).delete(scope, segment_id):
        raise _not_found(segment_id)
