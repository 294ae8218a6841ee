"""
Link and Pixel API Endpoints

Endpoints:
    - GET/POST /links, GET/DELETE /links/{link_id}
    - GET/POST /pixels, GET/DELETE /pixels/{pixel_id}

Links and pixels are owned like websites: by the caller or by one of the
caller's teams. Deleted entities answer 404 and keep their slug reserved.
"""

from fastapi import APIRouter, Depends

from umami_common.security import AccessContext, AccessLayer
from umami_services.analytics_service.api.dependencies import get_access_context, get_access_layer
from umami_services.analytics_service.api.v1.models import (
    LinkCreate,
    LinkResponse,
    PixelCreate,
    PixelResponse,
)

router = APIRouter()


@router.get("/links", response_model=list[LinkResponse])
def list_links(
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
):
    return access.list_tracked(ctx, "link")


@router.post("/links", response_model=LinkResponse, status_code=201)
def create_link(
    request: LinkCreate,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
):
    return access.create_tracked(
        ctx, "link", request.name, request.slug, url=request.url, team_id=request.team_id
    )


@router.get("/links/{link_id}", response_model=LinkResponse)
def get_link(
    link_id: str,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
):
    return access.get_tracked(ctx, "link", link_id)


@router.delete("/links/{link_id}", response_model=LinkResponse)
def delete_link(
    link_id: str,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
):
    """Soft-delete a link."""
    return access.soft_delete_tracked(ctx, "link", link_id)


@router.get("/pixels", response_model=list[PixelResponse])
def list_pixels(
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
):
    return access.list_tracked(ctx, "pixel")


@router.post("/pixels", response_model=PixelResponse, status_code=201)
def create_pixel(
    request: PixelCreate,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
):
    return access.create_tracked(ctx, "pixel", request.name, request.slug, team_id=request.team_id)


@router.get("/pixels/{pixel_id}", response_model=PixelResponse)
def get_pixel(
    pixel_id: str,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
):
    return access.get_tracked(ctx, "pixel", pixel_id)


@router.delete("/pixels/{pixel_id}", response_model=PixelResponse)
def delete_pixel(
    pixel_id: str,
    ctx: AccessContext = Depends(get_access_context),
    access: AccessLayer = Depends(get_access_layer),
):
    """Soft-delete a pixel."""
    return access.soft_delete_tracked(ctx, "pixel", pixel_id)
