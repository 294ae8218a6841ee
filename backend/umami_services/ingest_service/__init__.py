"""
Ingest Service - tracker hit ingestion for the analytics store.

Responsibilities:
- Resolving hits to sessions and visits (rolling inactivity window)
- Persisting events with their typed attributes and revenue facts
- Per-hit atomic writes with bounded retries on transient storage failures

Service Configuration:
    - Port: 8002
    - Base Path: /ingest/api/v1
    - Service Name: ingest-service

Example:
    ```python
    from umami_services.ingest_service import app

    # uvicorn umami_services.ingest_service:app --port 8002
    ```
"""

from umami_services.ingest_service.main import app

__all__ = ["app"]
