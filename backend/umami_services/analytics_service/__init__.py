"""
Analytics Service Package

This package provides the Analytics Service application: aggregate queries,
reports and segments over the events written by the ingest service.

Package Structure:
    - main.py: FastAPI application entry point
    - api/: API endpoint definitions and routing
    - database/: Tenant-scoped repositories and the index planner
    - services/: Report evaluation and scan cancellation

Usage:
    ```python
    from umami_services.analytics_service import app

    # Run with uvicorn
    # uvicorn umami_services.analytics_service:app --port 8001
    ```
"""

from umami_services.analytics_service.main import app

__all__ = ["app"]
