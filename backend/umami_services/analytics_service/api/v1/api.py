from fastapi import APIRouter

from umami_services.analytics_service.api.v1.endpoints import reports, segments, tracking, websites

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(websites.router, tags=["Websites"])
api_router.include_router(reports.router, tags=["Reports"])
api_router.include_router(segments.router, tags=["Segments"])
api_router.include_router(tracking.router, tags=["Links and Pixels"])
