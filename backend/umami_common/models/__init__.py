"""
Common ORM models for all backend services.

Models are organized into four groups:

1. Tenant Models: ownership and tenancy
   - User, Team, TeamUser
   - Website: the tenant

2. Session Models: visitor sessions
   - Session
   - SessionData: typed session attributes

3. Event Models: written by the ingestion path
   - WebsiteEvent
   - EventData: typed event attributes
   - Revenue: fixed-point revenue facts

4. Saved Definitions:
   - Report, Segment

5. Tracked Entities: owned like websites, addressed by slug
   - Link, Pixel

All models inherit from umami_common.database.Base and share one metadata,
so importing this package registers every table.

Usage:
    ```python
    from umami_common.models import Website, WebsiteEvent

    website = session.get(Website, website_id)
    ```
"""

# Import all models to make them available
from .events import (
    EVENT_DIMENSIONS,
    EVENT_TYPE_CUSTOM,
    EVENT_TYPE_PAGEVIEW,
    EventData,
    Revenue,
    WebsiteEvent,
)
from .reports import SEGMENT_TYPE_COHORT, SEGMENT_TYPE_SEGMENT, Report, Segment
from .sessions import SESSION_DIMENSIONS, Session, SessionData
from .tenants import (
    ROLE_ADMIN,
    ROLE_USER,
    ROLE_VIEW_ONLY,
    TEAM_ROLE_MANAGER,
    TEAM_ROLE_MEMBER,
    TEAM_ROLE_OWNER,
    TEAM_ROLE_VIEW_ONLY,
    Team,
    TeamUser,
    User,
    Website,
)
from .tracking import Link, Pixel

__all__ = [
    "EVENT_DIMENSIONS",
    "EVENT_TYPE_CUSTOM",
    "EVENT_TYPE_PAGEVIEW",
    "ROLE_ADMIN",
    "ROLE_USER",
    "ROLE_VIEW_ONLY",
    "SEGMENT_TYPE_COHORT",
    "SEGMENT_TYPE_SEGMENT",
    "SESSION_DIMENSIONS",
    "TEAM_ROLE_MANAGER",
    "TEAM_ROLE_MEMBER",
    "TEAM_ROLE_OWNER",
    "TEAM_ROLE_VIEW_ONLY",
    "EventData",
    "Link",
    "Pixel",
    "Report",
    "Revenue",
    "Segment",
    "Session",
    "SessionData",
    "Team",
    "TeamUser",
    "User",
    "Website",
    "WebsiteEvent",
]
