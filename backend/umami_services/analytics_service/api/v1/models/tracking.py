"""
Link and Pixel Models for API Endpoints

Models:
    - LinkCreate / LinkResponse: short links
    - PixelCreate / PixelResponse: tracking pixels
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class LinkCreate(BaseModel):
    """
    Request body to create a link.

    Attributes:
        name: Display name (1-100 characters).
        url: Redirect target, an http(s) URL.
        slug: Public identifier, unique across all links.
        team_id: Owning team. The caller owns the link when absent.
    """

    name: str = Field(min_length=1, max_length=100)
    url: str = Field(min_length=1, max_length=500)
    slug: str = Field(min_length=1, max_length=100)
    team_id: UUID | None = None


class PixelCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    slug: str = Field(min_length=1, max_length=100)
    team_id: UUID | None = None


class PixelResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    pixel_id: UUID
    name: str
    slug: str
    user_id: UUID | None = None
    team_id: UUID | None = None
    created_at: datetime | None = None
    deleted_at: datetime | None = None


class LinkResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    link_id: UUID
    name: str
    url: str
    slug: str
    user_id: UUID | None = None
    team_id: UUID | None = None
    created_at: datetime | None = None
    deleted_at: datetime | None = None
