"""
Shared API Dependencies for the Ingest Service

Dependencies:
    - get_ingest_settings: Ingest service settings
    - get_ingest_writer: Cached IngestWriter bound to the service's session maker
    - get_client_ip: Client address, honouring X-Forwarded-For from the proxy

Example:
    ```python
    @router.post("/send")
    def send(
        request: SendRequest,
        writer: IngestWriter = Depends(get_ingest_writer),
    ):
        ...
    ```
"""

from functools import lru_cache

from fastapi import Request

from umami_common.config import IngestServiceSettings
from umami_common.database import get_session_maker
from umami_services.ingest_service.services.ingest_writer import IngestWriter

SERVICE_NAME = "ingest-service"


@lru_cache(maxsize=1)
def get_ingest_settings() -> IngestServiceSettings:
    return IngestServiceSettings()


@lru_cache(maxsize=1)
def get_ingest_writer() -> IngestWriter:
    """
    Get a cached singleton IngestWriter.

    The writer is stateless between calls; each hit opens its own session from
    the pooled session maker.
    """
    return IngestWriter(get_session_maker(SERVICE_NAME), get_ingest_settings())


def get_client_ip(request: Request) -> str | None:
    """
    Resolve the client address.

    The first X-Forwarded-For entry wins, since the service runs behind a
    reverse proxy; otherwise the socket peer address is used.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None
