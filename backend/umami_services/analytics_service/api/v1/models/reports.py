"""
Report and Segment Models for API Endpoints

Report parameters are validated with the report service's ReportParameters
before they are stored; segment parameters must hold a list of filters.
"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ReportCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=500)
    parameters: dict[str, Any]


class ReportUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=500)
    parameters: dict[str, Any] | None = None


class ReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    report_id: UUID
    website_id: UUID
    user_id: UUID
    type: str
    name: str
    description: str
    parameters: dict[str, Any]
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ReportRunResponse(BaseModel):
    """
    Result of a report evaluation.

    Attributes:
        incremental: True when cached bucket partials were merged.
        degraded: True when a dimension index was missing.
    """

    type: str
    data: Any
    incremental: bool = False
    degraded: bool = False
    plan: dict[str, Any] | None = None


class SegmentCreate(BaseModel):
    type: Literal["segment", "cohort"] = "segment"
    name: str = Field(min_length=1, max_length=200)
    parameters: dict[str, Any] = Field(default_factory=dict)


class SegmentUpdate(BaseModel):
    type: Literal["segment", "cohort"] | None = None
    name: str | None = Field(default=None, min_length=1, max_length=200)
    parameters: dict[str, Any] | None = None


class SegmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    segment_id: UUID
    website_id: UUID
    type: str
    name: str
    parameters: dict[str, Any]
    created_at: datetime | None = None
    updated_at: datetime | None = None
