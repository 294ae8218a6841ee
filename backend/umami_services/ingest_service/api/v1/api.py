"""
Ingest Service API v1 Router Configuration

Router Structure:
    - /send: Single tracker hit
    - /batch: Batch of tracker hits

All endpoints are prefixed with /api/v1 when registered with the main application.
"""

from fastapi import APIRouter

from umami_services.ingest_service.api.v1.endpoints import send

api_router = APIRouter()

api_router.include_router(send.router, tags=["Tracking"])
