"""
Tenant scoping and authorization.

Every read and write of the analytics store takes a ``TenantScope``. Scopes are
only issued here, after the caller has been checked against the website's
ownership (owning user, owning team, or administrator) and the website's
tombstone. Denied cross-tenant access is logged to the security log and
raised as ``TenantMismatch``; it is never silently turned into an empty result.

Example:
    ```python
    from umami_common.security import AccessLayer

    access = AccessLayer(session)
    ctx = access.load_context(user_id)
    scope = access.authorize(ctx, website_id)
    stats = StatsRepository(session).get_stats(scope, start, end)
    ```
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import re
from typing import Any
from urllib.parse import urlsplit
import uuid

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from umami_common.exceptions import InvalidInput, TenantMismatch, TenantNotFound
from umami_common.logging import security_log
from umami_common.models import (
    ROLE_ADMIN,
    ROLE_VIEW_ONLY,
    TEAM_ROLE_MANAGER,
    TEAM_ROLE_OWNER,
    Link,
    Pixel,
    Team,
    TeamUser,
    User,
    Website,
)
from umami_common.time import ensure_utc, now_utc

TEAM_WRITE_ROLES = frozenset({TEAM_ROLE_OWNER, TEAM_ROLE_MANAGER})

TRACKED_KINDS: dict[str, type[Link] | type[Pixel]] = {"link": Link, "pixel": Pixel}
NAME_LENGTH = 100
SLUG_LENGTH = 100
SLUG_PATTERN = re.compile(r"[A-Za-z0-9_-]+")
LINK_URL_LENGTH = 500

Owned = Website | Link | Pixel


def parse_uuid(value: Any, field_name: str) -> uuid.UUID:
    """Parse ``value`` as a UUID or raise ``InvalidInput``."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError) as e:
        msg = f"{field_name} must be a UUID"
        raise InvalidInput(msg, field=field_name) from e


@dataclass(frozen=True)
class TenantScope:
    """
    Proof that the holder may touch one tenant's data.

    Attributes:
        website_id: The tenant every query is restricted to.
        reset_at: Statistics before this instant are excluded from reads.
        domain: Website domain, used to recognise self-referrals on ingest.
    """

    website_id: uuid.UUID
    reset_at: datetime | None = None
    domain: str | None = None

    def clamp_start(self, start: datetime) -> datetime:
        start = ensure_utc(start)
        if self.reset_at is not None and start < self.reset_at:
            return ensure_utc(self.reset_at)
        return start


@dataclass(frozen=True)
class AccessContext:
    """The calling user with the team memberships loaded from storage."""

    user_id: uuid.UUID
    role: str
    team_roles: Mapping[uuid.UUID, str] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def team_ids(self) -> frozenset[uuid.UUID]:
        return frozenset(self.team_roles)


def _scope_for(website: Website) -> TenantScope:
    return TenantScope(
        website_id=website.website_id,
        reset_at=ensure_utc(website.reset_at) if website.reset_at else None,
        domain=website.domain,
    )


def _check_link_url(url: str | None) -> None:
    try:
        scheme = urlsplit(url).scheme if url else ""
    except ValueError:
        scheme = ""
    if scheme not in ("http", "https") or len(url) > LINK_URL_LENGTH:
        msg = f"url must be an http(s) URL of at most {LINK_URL_LENGTH} characters"
        raise InvalidInput(msg, field="url")


class AccessLayer:
    """Issues tenant scopes and manages the website lifecycle."""

    def __init__(self, session: Session, retention_days: int = 30) -> None:
        self.session = session
        self.retention = timedelta(days=retention_days)

    def load_context(self, user_id: Any) -> AccessContext:
        """
        Load the access context of ``user_id``.

        Raises:
            InvalidInput: If ``user_id`` is not a UUID.
            TenantMismatch: If the user does not exist or is deleted.
        """
        user_uuid = parse_uuid(user_id, "user_id")
        user = self.session.get(User, user_uuid)
        if user is None or user.deleted_at is not None:
            security_log(user_id=user_uuid).warning(f"Rejected unknown user {user_uuid}")
            msg = "Unknown user"
            raise TenantMismatch(msg)

        rows = self.session.execute(
            select(TeamUser.team_id, TeamUser.role)
            .join(Team, Team.team_id == TeamUser.team_id)
            .where(TeamUser.user_id == user_uuid, Team.deleted_at.is_(None))
        ).all()
        return AccessContext(
            user_id=user.user_id,
            role=user.role,
            team_roles={team_id: role for team_id, role in rows},
        )

    def _can_read(self, ctx: AccessContext, website: Owned) -> bool:
        if ctx.is_admin:
            return True
        if website.user_id is not None and website.user_id == ctx.user_id:
            return True
        return website.team_id is not None and website.team_id in ctx.team_roles

    def _can_write(self, ctx: AccessContext, website: Owned) -> bool:
        if ctx.is_admin:
            return True
        if ctx.role == ROLE_VIEW_ONLY:
            return False
        if website.user_id is not None and website.user_id == ctx.user_id:
            return True
        return ctx.team_roles.get(website.team_id) in TEAM_WRITE_ROLES

    def _deny(
        self, ctx: AccessContext, entity_id: uuid.UUID, action: str, kind: str = "website"
    ) -> TenantMismatch:
        security_log(ctx.user_id, entity_id).warning(
            f"Denied {action} on {kind} {entity_id} for user {ctx.user_id} (role={ctx.role})"
        )
        return TenantMismatch(f"Access to {kind} {entity_id} denied")

    def _load_website(self, website_id: Any) -> Website:
        website_uuid = parse_uuid(website_id, "website_id")
        website = self.session.get(Website, website_uuid)
        if website is None:
            msg = f"Website {website_uuid} not found"
            raise TenantNotFound(msg)
        return website

    def authorize(self, ctx: AccessContext, website_id: Any, write: bool = False) -> TenantScope:
        """
        Issue a scope for ``website_id`` if ``ctx`` may access it.

        Args:
            ctx: The calling user.
            website_id: Requested tenant.
            write: Require management rights (owner, team owner/manager, admin).

        Returns:
            TenantScope restricted to the website, carrying its reset_at.

        Raises:
            TenantNotFound: If the website does not exist or is soft-deleted.
            TenantMismatch: If the caller has no access to the website.
        """
        website = self._load_website(website_id)
        allowed = self._can_write(ctx, website) if write else self._can_read(ctx, website)
        if not allowed:
            raise self._deny(ctx, website.website_id, "write" if write else "read")
        if website.is_deleted:
            msg = f"Website {website.website_id} not found"
            raise TenantNotFound(msg)
        return _scope_for(website)

    def ingest_scope(self, website_id: Any) -> TenantScope:
        """
        Issue a scope for the tracker path.

        Tracker hits are anonymous; the website only has to exist and be active.
        """
        website = self._load_website(website_id)
        if website.is_deleted:
            msg = f"Website {website.website_id} not found"
            raise TenantNotFound(msg)
        return _scope_for(website)

    def list_websites(self, ctx: AccessContext) -> list[Website]:
        stmt = select(Website).where(Website.deleted_at.is_(None))
        if not ctx.is_admin:
            ownership = Website.user_id == ctx.user_id
            if ctx.team_ids:
                ownership = ownership | Website.team_id.in_(ctx.team_ids)
            stmt = stmt.where(ownership)
        return list(self.session.scalars(stmt.order_by(Website.name, Website.website_id)))

    def _assign_owner(self, ctx: AccessContext, entity: Owned, team_id: Any, kind: str) -> None:
        if team_id is None:
            entity.user_id = ctx.user_id
            return
        team_uuid = parse_uuid(team_id, "team_id")
        if not ctx.is_admin and ctx.team_roles.get(team_uuid) not in TEAM_WRITE_ROLES:
            security_log(user_id=ctx.user_id).warning(
                f"Denied {kind} creation in team {team_uuid} for user {ctx.user_id}"
            )
            msg = f"Access to team {team_uuid} denied"
            raise TenantMismatch(msg)
        entity.team_id = team_uuid

    def create_website(
        self,
        ctx: AccessContext,
        name: str,
        domain: str | None = None,
        team_id: Any = None,
        share_id: str | None = None,
    ) -> Website:
        """
        Create a website owned by the caller or by one of the caller's teams.

        Raises:
            InvalidInput: If the name is empty or longer than 100 characters.
            TenantMismatch: If the caller may not create websites for the owner.
        """
        if not name or len(name) > NAME_LENGTH:
            msg = f"name must be between 1 and {NAME_LENGTH} characters"
            raise InvalidInput(msg, field="name")
        if ctx.role == ROLE_VIEW_ONLY:
            security_log(user_id=ctx.user_id).warning(
                f"Denied website creation for view-only user {ctx.user_id}"
            )
            msg = "View-only users cannot create websites"
            raise TenantMismatch(msg)

        website = Website(
            website_id=uuid.uuid4(),
            name=name,
            domain=domain[:500] if domain else None,
            share_id=share_id,
            created_by=ctx.user_id,
            created_at=now_utc(),
        )
        self._assign_owner(ctx, website, team_id, "website")

        self.session.add(website)
        self.session.flush()
        logger.info(f"Created website {website.website_id} ({name})")
        return website

    def soft_delete_website(self, ctx: AccessContext, website_id: Any) -> Website:
        """Tombstone a website. Its rows stay in place and become invisible."""
        scope = self.authorize(ctx, website_id, write=True)
        website = self.session.get(Website, scope.website_id)
        website.deleted_at = now_utc()
        website.updated_at = website.deleted_at
        self.session.flush()
        logger.info(f"Soft-deleted website {website.website_id}")
        return website

    def restore_website(self, ctx: AccessContext, website_id: Any) -> Website:
        """
        Clear the tombstone of a website deleted within the retention window.

        Raises:
            TenantNotFound: If the website is unknown, not deleted, or past retention.
            TenantMismatch: If the caller is neither admin nor owner.
        """
        website = self._load_website(website_id)
        if not self._can_write(ctx, website):
            raise self._deny(ctx, website.website_id, "restore")
        if website.deleted_at is None:
            msg = f"Website {website.website_id} is not deleted"
            raise TenantNotFound(msg)
        if ensure_utc(website.deleted_at) < now_utc() - self.retention:
            msg = f"Website {website.website_id} is past its retention window"
            raise TenantNotFound(msg)

        website.deleted_at = None
        website.updated_at = now_utc()
        self.session.flush()
        logger.info(f"Restored website {website.website_id}")
        return website

    def reset_website(self, ctx: AccessContext, website_id: Any, at: datetime | None = None) -> TenantScope:
        """Hide every statistic recorded before ``at`` (default: now). Rows are kept."""
        scope = self.authorize(ctx, website_id, write=True)
        website = self.session.get(Website, scope.website_id)
        website.reset_at = ensure_utc(at) if at else now_utc()
        website.updated_at = now_utc()
        self.session.flush()
        logger.info(f"Reset website {website.website_id} at {website.reset_at.isoformat()}")
        return _scope_for(website)

    # Links and pixels

    @staticmethod
    def _tracked_model(kind: str) -> type[Link] | type[Pixel]:
        try:
            return TRACKED_KINDS[kind]
        except KeyError:
            msg = f"Unknown tracked entity kind {kind!r}"
            raise InvalidInput(msg, field="kind") from None

    def create_tracked(
        self,
        ctx: AccessContext,
        kind: str,
        name: str,
        slug: str,
        url: str | None = None,
        team_id: Any = None,
    ) -> Link | Pixel:
        """
        Create a link or pixel owned by the caller or by one of the caller's teams.

        Raises:
            InvalidInput: On a bad name, slug or link url, or a slug already taken
                (deleted entities keep their slug).
            TenantMismatch: If the caller may not create entities for the owner.
        """
        model = self._tracked_model(kind)
        if not name or len(name) > NAME_LENGTH:
            msg = f"name must be between 1 and {NAME_LENGTH} characters"
            raise InvalidInput(msg, field="name")
        if not slug or len(slug) > SLUG_LENGTH or not SLUG_PATTERN.fullmatch(slug):
            msg = f"slug must be 1 to {SLUG_LENGTH} letters, digits, '-' or '_'"
            raise InvalidInput(msg, field="slug")
        if ctx.role == ROLE_VIEW_ONLY:
            security_log(user_id=ctx.user_id).warning(
                f"Denied {kind} creation for view-only user {ctx.user_id}"
            )
            msg = f"View-only users cannot create a {kind}"
            raise TenantMismatch(msg)
        if self.session.scalar(select(model).where(model.slug == slug)) is not None:
            msg = f"slug {slug!r} is already in use"
            raise InvalidInput(msg, field="slug")

        if model is Link:
            _check_link_url(url)
            entity = Link(link_id=uuid.uuid4(), name=name, slug=slug, url=url, created_at=now_utc())
        else:
            entity = Pixel(pixel_id=uuid.uuid4(), name=name, slug=slug, created_at=now_utc())
        self._assign_owner(ctx, entity, team_id, kind)

        self.session.add(entity)
        self.session.flush()
        logger.info(f"Created {kind} {entity.entity_id} ({slug})")
        return entity

    def get_tracked(
        self, ctx: AccessContext, kind: str, entity_id: Any, write: bool = False
    ) -> Link | Pixel:
        """
        Load a link or pixel the caller may access.

        Raises:
            TenantNotFound: If it does not exist or is soft-deleted.
            TenantMismatch: If the caller has no access to it.
        """
        model = self._tracked_model(kind)
        entity_uuid = parse_uuid(entity_id, f"{kind}_id")
        entity = self.session.get(model, entity_uuid)
        if entity is None:
            msg = f"{kind.capitalize()} {entity_uuid} not found"
            raise TenantNotFound(msg)
        allowed = self._can_write(ctx, entity) if write else self._can_read(ctx, entity)
        if not allowed:
            raise self._deny(ctx, entity_uuid, "write" if write else "read", kind)
        if entity.deleted_at is not None:
            msg = f"{kind.capitalize()} {entity_uuid} not found"
            raise TenantNotFound(msg)
        return entity

    def list_tracked(self, ctx: AccessContext, kind: str) -> list[Link] | list[Pixel]:
        model = self._tracked_model(kind)
        stmt = select(model).where(model.deleted_at.is_(None))
        if not ctx.is_admin:
            ownership = model.user_id == ctx.user_id
            if ctx.team_ids:
                ownership = ownership | model.team_id.in_(ctx.team_ids)
            stmt = stmt.where(ownership)
        return list(self.session.scalars(stmt.order_by(model.name, model.slug)))

    def soft_delete_tracked(self, ctx: AccessContext, kind: str, entity_id: Any) -> Link | Pixel:
        """Tombstone a link or pixel. Its slug stays reserved."""
        entity = self.get_tracked(ctx, kind, entity_id, write=True)
        entity.deleted_at = now_utc()
        entity.updated_at = entity.deleted_at
        self.session.flush()
        logger.info(f"Soft-deleted {kind} {entity.entity_id}")
        return entity
