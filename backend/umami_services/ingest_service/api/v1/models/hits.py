"""
Hit API Models.

Request and response schemas of the tracker endpoint. The request mirrors the
tracker payload: a hit type plus a payload carrying the page, the event and
client attributes that were derived upstream (browser, OS, device, geography).

Model Categories:
- **Request Models**: SendRequest, BatchSendRequest, HitPayload
- **Response Models**: HitResult, SendResponse
"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class HitPayload(BaseModel):
    """
    Tracker payload of a single hit.

    Attributes:
        website: Website (tenant) id.
        url: Page URL or path with query string. Required for events.
        hostname: Host the hit was sent from.
        referrer: Document referrer.
        title: Page title.
        name: Custom event name. Absent for page views.
        tag: Free-form tag.
        data: Event data (events) or session data (identify).
        id: Distinct id of the visitor, if known.
        timestamp: Event time; unix seconds or ISO 8601. Defaults to receive time.
        fingerprint: Pre-computed client fingerprint. Computed from IP and user
            agent when absent.
    """

    website: str
    url: str | None = None
    hostname: str | None = None
    referrer: str | None = None
    title: str | None = None
    name: str | None = None
    tag: str | None = None
    data: dict[str, Any] | None = None
    id: str | None = None
    timestamp: datetime | None = None
    fingerprint: str | None = None

    screen: str | None = None
    language: str | None = None
    browser: str | None = None
    os: str | None = None
    device: str | None = None
    country: str | None = None
    region: str | None = None
    city: str | None = None

    @field_validator("url", "referrer", "hostname", "title", "name", "tag", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class SendRequest(BaseModel):
    type: Literal["event", "identify"] = "event"
    payload: HitPayload


class BatchSendRequest(BaseModel):
    hits: list[SendRequest] = Field(min_length=1)


class HitResult(BaseModel):
    index: int
    status: str
    session_id: UUID | None = None
    visit_id: UUID | None = None
    event_id: UUID | None = None
    error: str | None = None
    message: str | None = None


class SendResponse(BaseModel):
    accepted: int
    rejected: int
    failed: int
    results: list[HitResult]
