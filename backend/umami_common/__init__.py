"""
Common utilities and shared code for the umami analytics store backend services.

This package provides shared functionality used across the ingestion and
analytics services. It includes:

Modules:
    - config: Centralized configuration management with environment-based settings
    - database: Engine/session management, portable column types, schema targeting
    - exceptions: Domain error taxonomy and standardized API error responses
    - fastapi: FastAPI application factory with common middleware and configuration
    - logging: Centralized logging configuration using loguru
    - models: SQLAlchemy ORM models for the ``umami`` schema
    - security: Tenant scoping and access control for every read and write

Architecture:
    Both services (ingest-service, analytics-service) share one PostgreSQL
    schema (``umami`` by default). Tenants are websites; isolation is enforced
    in code by the ``TenantScope`` every repository function requires.

Usage:
    ```python
    from umami_common.config import get_settings
    from umami_common.database import get_db_session
    from umami_common.logging import setup_logging
    from umami_common.security import AccessLayer
    ```

Version:
    Current version: 0.1.0
"""

__version__ = "0.1.0"
