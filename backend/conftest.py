"""
Pytest configuration and fixtures shared by the test suites of every package.

Every test gets a fresh in-memory SQLite database holding the full schema.
The engine uses a single shared connection, so tests open one session at a
time: seed, write, then read.
"""

import os

# Set test environment variables before importing modules
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "DEV")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from dataclasses import dataclass
from datetime import UTC, datetime
import uuid

import pytest

from umami_common.config import AnalyticsServiceSettings, IngestServiceSettings
from umami_common.database import build_engine, create_schema, create_session_maker, session_scope
from umami_common.models import (
    ROLE_ADMIN,
    ROLE_USER,
    TEAM_ROLE_MEMBER,
    TEAM_ROLE_MANAGER,
    Team,
    TeamUser,
    User,
    Website,
)
from umami_services.ingest_service.services.ingest_writer import IngestWriter, RawHit

BASE_TIME = datetime(2024, 3, 4, 10, 0, tzinfo=UTC)
FINGERPRINT_A = "a" * 32
FINGERPRINT_B = "b" * 64
PASSWORD_HASH = "$2b$10$BUli0c.muyCW1ErNJc3jL.vFRFtFJWrT8/GcR4A.sUdCznaXiqFXa"


@dataclass(frozen=True)
class Tenants:
    """Ids of the seeded users, team and websites."""

    admin_id: uuid.UUID
    owner_id: uuid.UUID
    outsider_id: uuid.UUID
    member_id: uuid.UUID
    manager_id: uuid.UUID
    team_id: uuid.UUID
    website_id: uuid.UUID
    team_website_id: uuid.UUID
    other_website_id: uuid.UUID


@pytest.fixture
def engine():
    """Return a fresh in-memory database with every table and index."""
    engine = build_engine("sqlite://")
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_maker(engine):
    return create_session_maker(engine)


@pytest.fixture
def tenants(session_maker) -> Tenants:
    """
    Seed users, a team and websites.

    - owner owns "Blog" (blog.example.com)
    - the team owns "Shop"; member is a team member, manager a team manager
    - outsider owns "Other"
    """
    ids = Tenants(*(uuid.uuid4() for _ in range(9)))
    with session_scope(session_maker) as session:
        session.add_all(
            [
                User(user_id=ids.admin_id, username="admin", password=PASSWORD_HASH, role=ROLE_ADMIN),
                User(user_id=ids.owner_id, username="owner", password=PASSWORD_HASH, role=ROLE_USER),
                User(user_id=ids.outsider_id, username="outsider", password=PASSWORD_HASH, role=ROLE_USER),
                User(user_id=ids.member_id, username="member", password=PASSWORD_HASH, role=ROLE_USER),
                User(user_id=ids.manager_id, username="manager", password=PASSWORD_HASH, role=ROLE_USER),
                Team(team_id=ids.team_id, name="Growth", access_code="growth"),
            ]
        )
        session.flush()
        session.add_all(
            [
                TeamUser(team_id=ids.team_id, user_id=ids.member_id, role=TEAM_ROLE_MEMBER),
                TeamUser(team_id=ids.team_id, user_id=ids.manager_id, role=TEAM_ROLE_MANAGER),
                Website(
                    website_id=ids.website_id,
                    name="Blog",
                    domain="blog.example.com",
                    user_id=ids.owner_id,
                    created_at=BASE_TIME,
                ),
                Website(
                    website_id=ids.team_website_id,
                    name="Shop",
                    domain="shop.example.com",
                    team_id=ids.team_id,
                    created_at=BASE_TIME,
                ),
                Website(
                    website_id=ids.other_website_id,
                    name="Other",
                    domain="other.example.com",
                    user_id=ids.outsider_id,
                    created_at=BASE_TIME,
                ),
            ]
        )
    return ids


@pytest.fixture
def ingest_settings() -> IngestServiceSettings:
    return IngestServiceSettings(INGEST_RETRY_BACKOFF_SECONDS=0)


@pytest.fixture
def analytics_settings() -> AnalyticsServiceSettings:
    return AnalyticsServiceSettings()


@pytest.fixture
def writer(session_maker, ingest_settings) -> IngestWriter:
    return IngestWriter(session_maker, ingest_settings, sleep=lambda seconds: None)


@pytest.fixture
def make_hit(tenants):
    """Return a factory of page view hits on the owner's website."""

    def factory(**overrides) -> RawHit:
        values = {
            "website_id": tenants.website_id,
            "fingerprint": FINGERPRINT_A,
            "url": "https://blog.example.com/",
            "timestamp": BASE_TIME,
        }
        values.update(overrides)
        return RawHit(**values)

    return factory
