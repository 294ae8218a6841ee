"""
Ingest Service - FastAPI Application Entry Point

The ingest service receives tracker hits and writes them to the analytics
store: hits are resolved to sessions and visits, events and their attributes
are persisted, and revenue facts are recorded.

Deployment:
    The service runs on port 8002 and is typically served behind an Nginx reverse
    proxy at the /ingest path.

Example:
    To run the service locally:
        ```bash
        uvicorn umami_services.ingest_service:app --port 8002 --reload
        ```
"""

from umami_common.fastapi import create_fastapi_app
from umami_services.ingest_service.api.v1.api import api_router

# Create FastAPI app with reverse proxy configuration
app = create_fastapi_app(
    service_name="ingest-service",
    description="Hit ingestion service of the umami analytics store",
    api_router=api_router,
    root_path="/ingest",  # Nginx serves this at /ingest/
    public_cors=True,
)
