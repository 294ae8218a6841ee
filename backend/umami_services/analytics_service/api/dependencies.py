"""
Shared API Dependencies for Analytics Service

Dependencies:
    - get_user_id: Extracts the calling user from the X-User-Id header
    - get_db: Request-scoped database session (commit on success, rollback on error)
    - get_analytics_settings: Analytics service settings
    - get_rollup_cache: Process-wide cache of settled rollup buckets
    - get_access_layer / get_access_context: Tenant authorization of the caller
    - get_cancellation_token: Deadline for the request's aggregation scans

Multi-Tenancy:
    Every endpoint that touches a website authorizes the caller through the
    access layer first. Repositories only accept the TenantScope it issues.

Example:
    ```python
    @router.get("/websites/{website_id}/stats")
    def get_stats(
        website_id: str,
        ctx: AccessContext = Depends(get_access_context),
        access: AccessLayer = Depends(get_access_layer),
    ):
        scope = access.authorize(ctx, website_id)
        ...
    ```
"""

from collections.abc import Iterator
from functools import lru_cache

from fastapi import Depends, Header, HTTPException
from loguru import logger
from sqlalchemy.orm import Session

from umami_common.config import AnalyticsServiceSettings
from umami_common.database import get_db_session
from umami_common.security import AccessContext, AccessLayer
from umami_services.analytics_service.database.base import SERVICE_NAME
from umami_services.analytics_service.services.cancellation import CancellationToken
from umami_services.analytics_service.services.report_service import RollupCache


def get_user_id(
    user_id_header: str | None = Header(default=None, alias="X-User-Id"),
) -> str:
    """
    Extract and validate the caller from the X-User-Id HTTP header.

    Raises:
        HTTPException: 400 Bad Request if the header is missing or empty.

    Security Note:
        Only presence is checked here. Existence of the user and its access to
        a website are checked by the access layer.
    """
    if user_id_header is None:
        logger.warning("Missing X-User-Id header")
        raise HTTPException(status_code=400, detail="X-User-Id header is required")

    user_id_value = user_id_header.strip()
    if not user_id_value:
        logger.warning("Empty X-User-Id header")
        raise HTTPException(status_code=400, detail="X-User-Id header cannot be empty")

    return user_id_value


def get_db() -> Iterator[Session]:
    with get_db_session(SERVICE_NAME) as session:
        yield session


@lru_cache(maxsize=1)
def get_analytics_settings() -> AnalyticsServiceSettings:
    return AnalyticsServiceSettings()


@lru_cache(maxsize=1)
def get_rollup_cache() -> RollupCache:
    return RollupCache(get_analytics_settings().ROLLUP_CACHE_MAX_ENTRIES)


def get_access_layer(
    db: Session = Depends(get_db),
    settings: AnalyticsServiceSettings = Depends(get_analytics_settings),
) -> AccessLayer:
    return AccessLayer(db, retention_days=settings.SOFT_DELETE_RETENTION_DAYS)


def get_access_context(
    user_id: str = Depends(get_user_id),
    access: AccessLayer = Depends(get_access_layer),
) -> AccessContext:
    return access.load_context(user_id)


def get_cancellation_token(
    settings: AnalyticsServiceSettings = Depends(get_analytics_settings),
) -> CancellationToken:
    return CancellationToken(timeout_seconds=settings.DATABASE_STATEMENT_TIMEOUT_SECONDS)
