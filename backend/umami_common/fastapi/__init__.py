"""
Common FastAPI utilities and middleware.

Main Components:
    - app_factory: FastAPI application factory with standard configuration

Usage:
    ```python
    from umami_common.fastapi import create_fastapi_app

    app = create_fastapi_app(
        service_name="ingest-service",
        description="Hit ingestion API",
        api_router=api_router,
    )
    ```
"""

from .app_factory import create_fastapi_app

__all__ = ["create_fastapi_app"]
