"""
Tracker Endpoints

Endpoints:
    - POST /send: Ingest one hit (tracker script)
    - POST /batch: Ingest up to MAX_BATCH_SIZE hits

Hits are anonymous: the website only has to exist and be active. Invalid hits
are never persisted: /send answers with the error of its hit, /batch reports
outcomes per index. When no hit of a request could be written because storage
is unavailable, the request answers 503 so the client retries with backoff.
"""

from fastapi import APIRouter, Depends, Header, Request
from loguru import logger

from umami_common.config import IngestServiceSettings
from umami_services.ingest_service.api.dependencies import (
    get_client_ip,
    get_ingest_settings,
    get_ingest_writer,
)
from umami_services.ingest_service.api.v1.models import (
    BatchSendRequest,
    HitResult,
    SendRequest,
    SendResponse,
)
from umami_services.ingest_service.services.ingest_writer import (
    STATUS_ACCEPTED,
    STATUS_FAILED,
    IngestResult,
    IngestWriter,
    RawHit,
)
from umami_services.ingest_service.services.session_resolver import (
    ClientAttributes,
    compute_fingerprint,
)

router = APIRouter()


def _to_raw_hit(
    request: SendRequest,
    ip: str | None,
    user_agent: str | None,
    settings: IngestServiceSettings,
) -> RawHit:
    payload = request.payload
    fingerprint = payload.fingerprint or compute_fingerprint(
        payload.website, ip, user_agent, settings.FINGERPRINT_SALT
    )
    return RawHit(
        website_id=payload.website,
        fingerprint=fingerprint,
        url=payload.url,
        type=request.type,
        timestamp=payload.timestamp,
        hostname=payload.hostname,
        referrer=payload.referrer,
        title=payload.title,
        name=payload.name,
        tag=payload.tag,
        data=payload.data,
        distinct_id=payload.id,
        client=ClientAttributes(
            browser=payload.browser,
            os=payload.os,
            device=payload.device,
            screen=payload.screen,
            language=payload.language,
            country=payload.country,
            region=payload.region,
            city=payload.city,
        ),
    )


def _to_response(result: IngestResult, single: bool = False) -> SendResponse:
    if single and result.outcomes:
        outcome = result.outcomes[0]
        if outcome.status != STATUS_ACCEPTED and outcome.error is not None:
            raise outcome.error

    failed = [o for o in result.outcomes if o.status == STATUS_FAILED]
    if failed and len(failed) == len(result.outcomes) and failed[0].error is not None:
        raise failed[0].error

    return SendResponse(
        accepted=result.accepted,
        rejected=result.rejected,
        failed=result.failed,
        results=[
            HitResult(
                index=o.index,
                status=o.status,
                session_id=o.session_id,
                visit_id=o.visit_id,
                event_id=o.event_id,
                error=o.error_code,
                message=o.message,
            )
            for o in result.outcomes
        ],
    )


@router.post("/send", response_model=SendResponse)
def send_hit(
    request: SendRequest,
    http_request: Request,
    user_agent: str | None = Header(default=None, alias="User-Agent"),
    writer: IngestWriter = Depends(get_ingest_writer),
    settings: IngestServiceSettings = Depends(get_ingest_settings),
) -> SendResponse:
    """
    Ingest a single tracker hit.

    **Hit types:**
    - `event`: page view, or custom event when `payload.name` is set
    - `identify`: attach session data (and distinct id) to the visitor's session
    """
    hit = _to_raw_hit(request, get_client_ip(http_request), user_agent, settings)
    return _to_response(writer.ingest([hit]), single=True)


@router.post("/batch", response_model=SendResponse)
def send_batch(
    request: BatchSendRequest,
    http_request: Request,
    user_agent: str | None = Header(default=None, alias="User-Agent"),
    writer: IngestWriter = Depends(get_ingest_writer),
    settings: IngestServiceSettings = Depends(get_ingest_settings),
) -> SendResponse:
    """Ingest several hits of one client; each hit is written independently."""
    ip = get_client_ip(http_request)
    hits = [_to_raw_hit(item, ip, user_agent, settings) for item in request.hits]
    logger.debug(f"Received batch of {len(hits)} hits")
    return _to_response(writer.ingest(hits))
