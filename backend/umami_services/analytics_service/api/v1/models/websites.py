"""
Website Models for API Endpoints

Models:
    - WebsiteCreate: Request body to create a website
    - WebsiteResponse: Website (tenant) as returned by the API
    - ResetRequest / ResetResponse: Statistics reset
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class WebsiteCreate(BaseModel):
    """
    Request body to create a website.

    Attributes:
        name: Display name (1-100 characters).
        domain: Site domain; hits referred from it are not counted as referrals.
        team_id: Owning team. The caller owns the website when absent.
        share_id: Optional public share id.
    """

    name: str = Field(min_length=1, max_length=100)
    domain: str | None = Field(default=None, max_length=500)
    team_id: UUID | None = None
    share_id: str | None = Field(default=None, max_length=50)


class WebsiteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    website_id: UUID
    name: str
    domain: str | None = None
    share_id: str | None = None
    user_id: UUID | None = None
    team_id: UUID | None = None
    reset_at: datetime | None = None
    created_at: datetime | None = None
    deleted_at: datetime | None = None


class ResetRequest(BaseModel):
    at: datetime | None = None


class ResetResponse(BaseModel):
    website_id: UUID
    reset_at: datetime
