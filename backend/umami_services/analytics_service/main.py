"""
Analytics Service - FastAPI Application Entry Point

This module serves as the main entry point for the Analytics Service, the read
side of the analytics store. The service provides RESTful APIs for:
    - Overview statistics, dimension breakdowns and time series
    - Event and session attribute breakdowns and revenue
    - Saved reports and segments, evaluated from scratch or incrementally
    - Website administration (create, soft-delete, restore, reset)

Architecture:
    Every request identifies its caller with the X-User-Id header. The access
    layer turns the caller and the requested website into a TenantScope,
    which every repository requires.

Deployment:
    The service runs on port 8001 and is typically served behind an Nginx reverse
    proxy at the /analytics path.

Example:
    To run the service locally:
        ```bash
        uvicorn umami_services.analytics_service:app --port 8001 --reload
        ```
"""

from umami_common.fastapi import create_fastapi_app
from umami_services.analytics_service.api.v1.api import api_router

# Create FastAPI app with reverse proxy configuration
app = create_fastapi_app(
    service_name="analytics-service",
    description="Aggregation and reporting service of the umami analytics store",
    api_router=api_router,
    root_path="/analytics",  # Nginx serves this at /analytics/
)
