"""
Tests for session resolution.
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import func, select

from conftest import BASE_TIME, FINGERPRINT_A, FINGERPRINT_B
from umami_common.database import session_scope
from umami_common.exceptions import ConflictRetryable, InvalidInput, TransientFailure
from umami_common.models import Session
from umami_common.security import TenantScope
from umami_services.ingest_service.services.session_resolver import (
    ClientAttributes,
    SessionResolver,
    compute_fingerprint,
    session_id_for,
    validate_fingerprint,
    visit_id_for,
)


def _session_count(session_maker) -> int:
    with session_scope(session_maker) as session:
        return session.scalar(select(func.count()).select_from(Session))


class TestSessionWindow:
    """Tests for the rolling inactivity window."""

    def test_hits_within_window_share_a_session(self, session_maker, tenants):
        scope = TenantScope(tenants.website_id)
        with session_scope(session_maker) as session:
            resolver = SessionResolver(session, inactivity_window_seconds=1800)
            first = resolver.resolve(scope, FINGERPRINT_A, BASE_TIME)
            second = resolver.resolve(scope, FINGERPRINT_A, BASE_TIME + timedelta(minutes=20))

        assert first.created is True
        assert second.created is False
        assert second.session_id == first.session_id
        assert _session_count(session_maker) == 1

    def test_gap_longer_than_window_starts_new_session(self, session_maker, tenants):
        scope = TenantScope(tenants.website_id)
        with session_scope(session_maker) as session:
            resolver = SessionResolver(session, inactivity_window_seconds=1800)
            first = resolver.resolve(scope, FINGERPRINT_A, BASE_TIME)
            second = resolver.resolve(scope, FINGERPRINT_A, BASE_TIME + timedelta(minutes=31))

        assert second.created is True
        assert second.session_id != first.session_id
        assert _session_count(session_maker) == 2

    def test_window_is_configurable(self, session_maker, tenants):
        scope = TenantScope(tenants.website_id)
        with session_scope(session_maker) as session:
            resolver = SessionResolver(session, inactivity_window_seconds=300)
            first = resolver.resolve(scope, FINGERPRINT_A, BASE_TIME)
            second = resolver.resolve(scope, FINGERPRINT_A, BASE_TIME + timedelta(minutes=10))

        assert second.session_id != first.session_id

    def test_fingerprints_are_isolated(self, session_maker, tenants):
        scope = TenantScope(tenants.website_id)
        with session_scope(session_maker) as session:
            resolver = SessionResolver(session)
            first = resolver.resolve(scope, FINGERPRINT_A, BASE_TIME)
            second = resolver.resolve(scope, FINGERPRINT_B, BASE_TIME)

        assert first.session_id != second.session_id

    def test_tenants_are_isolated(self, session_maker, tenants):
        with session_scope(session_maker) as session:
            resolver = SessionResolver(session)
            first = resolver.resolve(TenantScope(tenants.website_id), FINGERPRINT_A, BASE_TIME)
            second = resolver.resolve(TenantScope(tenants.team_website_id), FINGERPRINT_A, BASE_TIME)

        assert first.session_id != second.session_id

    def test_late_hit_joins_session_it_precedes(self, session_maker, tenants):
        scope = TenantScope(tenants.website_id)
        with session_scope(session_maker) as session:
            resolver = SessionResolver(session)
            first = resolver.resolve(scope, FINGERPRINT_A, BASE_TIME)
            earlier = resolver.resolve(scope, FINGERPRINT_A, BASE_TIME - timedelta(minutes=10))

        assert earlier.session_id == first.session_id


class TestSessionAttributes:
    """Tests for attributes captured at session creation."""

    def test_attributes_are_fixed_at_creation(self, session_maker, tenants):
        scope = TenantScope(tenants.website_id)
        with session_scope(session_maker) as session:
            resolver = SessionResolver(session)
            first = resolver.resolve(
                scope, FINGERPRINT_A, BASE_TIME, ClientAttributes(browser="chrome", country="de")
            )
            resolver.resolve(
                scope, FINGERPRINT_A, BASE_TIME + timedelta(minutes=1), ClientAttributes(browser="firefox")
            )

        with session_scope(session_maker) as session:
            row = session.get(Session, first.session_id)
            assert row.browser == "chrome"
            assert row.country == "DE"

    def test_oversized_attributes_are_truncated(self):
        client = ClientAttributes(browser="x" * 40, city="c" * 80, screen="1920x1080x2").normalized()

        assert len(client.browser) == 20
        assert len(client.city) == 50
        assert client.screen == "1920x1080x2"

    @pytest.mark.parametrize("country", ["Germany", "d", "12"])
    def test_malformed_country_is_dropped(self, country):
        assert ClientAttributes(country=country).normalized().country is None


class TestSessionCreationRace:
    """Tests for conflict-then-reread session creation."""

    def test_concurrent_creators_end_with_one_session(self, session_maker, tenants):
        scope = TenantScope(tenants.website_id)
        with session_scope(session_maker) as session:
            winner = SessionResolver(session).resolve(scope, FINGERPRINT_A, BASE_TIME)

        with session_scope(session_maker) as session:
            resolver = SessionResolver(session)
            # The loser did not see the winner's row before inserting
            with patch.object(resolver.repository, "find_latest", return_value=None):
                loser = resolver.resolve(scope, FINGERPRINT_A, BASE_TIME + timedelta(seconds=5))

        assert loser.created is False
        assert loser.session_id == winner.session_id
        assert _session_count(session_maker) == 1

    def test_conflict_without_winner_raises_transient_failure(self, tenants):
        repository = MagicMock()
        repository.find_latest.return_value = None
        repository.insert.side_effect = ConflictRetryable("duplicate")
        repository.find_by_bucket.return_value = None
        resolver = SessionResolver(None, max_attempts=3, repository=repository)

        with pytest.raises(TransientFailure):
            resolver.resolve(TenantScope(tenants.website_id), FINGERPRINT_A, BASE_TIME)

        assert repository.insert.call_count == 3


class TestIdentifiers:
    """Tests for fingerprints and deterministic ids."""

    @pytest.mark.parametrize("fingerprint", ["", "xyz", "A" * 32, "a" * 31, "a" * 65, None])
    def test_malformed_fingerprint_is_rejected(self, fingerprint):
        with pytest.raises(InvalidInput):
            validate_fingerprint(fingerprint)

    def test_computed_fingerprint_is_valid_and_per_website(self, tenants):
        first = compute_fingerprint(tenants.website_id, "203.0.113.7", "Mozilla/5.0")
        second = compute_fingerprint(tenants.team_website_id, "203.0.113.7", "Mozilla/5.0")

        assert validate_fingerprint(first) == first
        assert first != second
        assert "203.0.113.7" not in first

    def test_session_and_visit_ids_are_deterministic(self, tenants):
        session_id = session_id_for(tenants.website_id, FINGERPRINT_A, 42)

        assert session_id == session_id_for(tenants.website_id, FINGERPRINT_A, 42)
        assert visit_id_for(session_id, BASE_TIME, 3600) == visit_id_for(
            session_id, BASE_TIME + timedelta(minutes=59), 3600
        )
        assert visit_id_for(session_id, BASE_TIME, 3600) != visit_id_for(
            session_id, BASE_TIME + timedelta(minutes=61), 3600
        )
