"""
Tests for the HTTP surface of the analytics service.
"""

from datetime import timedelta
import uuid

from fastapi.testclient import TestClient
import pytest

from conftest import BASE_TIME, FINGERPRINT_B
from umami_common.database import session_scope
from umami_services.analytics_service.api.dependencies import get_db
from umami_services.analytics_service.main import app as analytics_app

RANGE = {
    "start": BASE_TIME.isoformat(),
    "end": (BASE_TIME + timedelta(days=1)).isoformat(),
}


@pytest.fixture
def analytics_client(session_maker):
    def override_get_db():
        with session_scope(session_maker) as session:
            yield session

    analytics_app.dependency_overrides[get_db] = override_get_db
    yield TestClient(analytics_app)
    analytics_app.dependency_overrides.clear()


def as_user(user_id) -> dict[str, str]:
    return {"X-User-Id": str(user_id)}


class TestAnalyticsAccess:
    """Tests for caller identification and tenant isolation over HTTP."""

    def test_missing_user_header(self, analytics_client, tenants):
        response = analytics_client.get(f"/api/v1/websites/{tenants.website_id}/stats", params=RANGE)

        assert response.status_code == 400

    def test_other_tenant_is_forbidden(self, analytics_client, tenants):
        response = analytics_client.get(
            f"/api/v1/websites/{tenants.website_id}/stats",
            params=RANGE,
            headers=as_user(tenants.outsider_id),
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "tenant_mismatch"

    def test_list_and_create_websites(self, analytics_client, tenants):
        created = analytics_client.post(
            "/api/v1/websites",
            json={"name": "Docs", "domain": "docs.example.com"},
            headers=as_user(tenants.owner_id),
        )
        listed = analytics_client.get("/api/v1/websites", headers=as_user(tenants.owner_id))

        assert created.status_code == 201
        assert created.json()["user_id"] == str(tenants.owner_id)
        assert [w["name"] for w in listed.json()] == ["Blog", "Docs"]

    def test_delete_and_restore(self, analytics_client, tenants):
        headers = as_user(tenants.owner_id)
        path = f"/api/v1/websites/{tenants.website_id}"

        assert analytics_client.delete(path, headers=headers).json()["deleted_at"] is not None
        assert analytics_client.get(f"{path}/stats", params=RANGE, headers=headers).status_code == 404
        assert analytics_client.post(f"{path}/restore", headers=headers).status_code == 200
        assert analytics_client.get(f"{path}/stats", params=RANGE, headers=headers).status_code == 200

    def test_member_cannot_delete_team_website(self, analytics_client, tenants):
        response = analytics_client.delete(
            f"/api/v1/websites/{tenants.team_website_id}", headers=as_user(tenants.member_id)
        )

        assert response.status_code == 403


class TestLinksAndPixelsApi:
    """Tests for the link and pixel endpoints."""

    def test_link_lifecycle(self, analytics_client, tenants):
        headers = as_user(tenants.owner_id)
        created = analytics_client.post(
            "/api/v1/links",
            json={"name": "Launch", "url": "https://blog.example.com/launch", "slug": "launch"},
            headers=headers,
        )
        path = f"/api/v1/links/{created.json()['link_id']}"

        assert created.status_code == 201
        assert created.json()["user_id"] == str(tenants.owner_id)
        listed = analytics_client.get("/api/v1/links", headers=headers).json()
        assert [link["slug"] for link in listed] == ["launch"]
        assert analytics_client.get(path, headers=as_user(tenants.outsider_id)).status_code == 403
        assert analytics_client.delete(path, headers=headers).json()["deleted_at"] is not None
        assert analytics_client.get(path, headers=headers).status_code == 404

    def test_taken_slug_is_rejected(self, analytics_client, tenants):
        body = {"name": "Mail", "slug": "mail"}
        analytics_client.post("/api/v1/pixels", json=body, headers=as_user(tenants.owner_id))
        response = analytics_client.post(
            "/api/v1/pixels", json=body, headers=as_user(tenants.outsider_id)
        )

        assert response.status_code == 422
        assert response.json()["error"]["field"] == "slug"

    def test_team_pixel_requires_manager(self, analytics_client, tenants):
        body = {"name": "Mail", "slug": "mail", "team_id": str(tenants.team_id)}
        denied = analytics_client.post("/api/v1/pixels", json=body, headers=as_user(tenants.member_id))
        created = analytics_client.post("/api/v1/pixels", json=body, headers=as_user(tenants.manager_id))

        assert denied.status_code == 403
        assert created.status_code == 201
        assert created.json()["team_id"] == str(tenants.team_id)


class TestAnalyticsStatistics:
    """Tests for the statistics endpoints."""

    @pytest.fixture(autouse=True)
    def traffic(self, writer, make_hit):
        writer.ingest(
            [
                make_hit(url="/", timestamp=BASE_TIME),
                make_hit(url="/pricing", timestamp=BASE_TIME + timedelta(minutes=5)),
                make_hit(url="/", fingerprint=FINGERPRINT_B, timestamp=BASE_TIME + timedelta(minutes=7)),
                make_hit(
                    name="purchase",
                    data={"revenue": 10.005, "currency": "USD"},
                    timestamp=BASE_TIME + timedelta(minutes=8),
                ),
            ]
        )

    def test_stats(self, analytics_client, tenants):
        response = analytics_client.get(
            f"/api/v1/websites/{tenants.website_id}/stats", params=RANGE, headers=as_user(tenants.owner_id)
        )

        assert response.status_code == 200
        assert response.json() == {"pageviews": 3, "visitors": 2, "visits": 2, "bounces": 1, "totaltime": 300}

    def test_metrics_with_filter(self, analytics_client, tenants):
        response = analytics_client.get(
            f"/api/v1/websites/{tenants.website_id}/metrics",
            params={**RANGE, "dimension": "url_path", "filter": "url_path:neq:/pricing"},
            headers=as_user(tenants.owner_id),
        )

        data = response.json()
        assert data["data"] == [{"x": "/", "y": 2}]
        assert data["degraded"] is False

    def test_malformed_filter(self, analytics_client, tenants):
        response = analytics_client.get(
            f"/api/v1/websites/{tenants.website_id}/metrics",
            params={**RANGE, "dimension": "url_path", "filter": "url_path"},
            headers=as_user(tenants.owner_id),
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "invalid_input"

    def test_team_member_reads_team_website(self, analytics_client, tenants):
        response = analytics_client.get(
            f"/api/v1/websites/{tenants.team_website_id}/pageviews",
            params={**RANGE, "unit": "hour"},
            headers=as_user(tenants.member_id),
        )

        assert response.status_code == 200
        assert len(response.json()["points"]) == 24

    def test_revenue_and_event_data(self, analytics_client, tenants):
        headers = as_user(tenants.owner_id)
        revenue = analytics_client.get(
            f"/api/v1/websites/{tenants.website_id}/revenue", params=RANGE, headers=headers
        ).json()
        event_data = analytics_client.get(
            f"/api/v1/websites/{tenants.website_id}/event-data",
            params={**RANGE, "key": "currency"},
            headers=headers,
        ).json()

        assert revenue["data"][0]["currency"] == "USD"
        assert revenue["data"][0]["count"] == 1
        assert [(row["key"], row["value"]) for row in event_data["data"]] == [("currency", "USD")]

    def test_reset_hides_earlier_statistics(self, analytics_client, tenants):
        headers = as_user(tenants.owner_id)
        path = f"/api/v1/websites/{tenants.website_id}"

        reset = analytics_client.post(
            f"{path}/reset", json={"at": (BASE_TIME + timedelta(minutes=6)).isoformat()}, headers=headers
        )
        stats = analytics_client.get(f"{path}/stats", params=RANGE, headers=headers)

        assert reset.status_code == 200
        assert stats.json()["pageviews"] == 1


class TestReportsApi:
    """Tests for saved reports over HTTP."""

    @pytest.fixture(autouse=True)
    def traffic(self, writer, make_hit):
        writer.ingest([make_hit(url="/"), make_hit(url="/docs", timestamp=BASE_TIME + timedelta(minutes=1))])

    def test_create_and_run_report(self, analytics_client, tenants):
        headers = as_user(tenants.owner_id)
        base = f"/api/v1/websites/{tenants.website_id}/reports"
        created = analytics_client.post(
            base,
            json={"name": "Top pages", "parameters": {**RANGE, "type": "metrics", "dimension": "url_path"}},
            headers=headers,
        )
        report_id = created.json()["report_id"]

        scratch = analytics_client.post(f"{base}/{report_id}/run", headers=headers)
        incremental = analytics_client.post(
            f"{base}/{report_id}/run", params={"incremental": "true"}, headers=headers
        )

        assert created.status_code == 201
        assert created.json()["type"] == "metrics"
        assert scratch.json()["data"] == [{"x": "/", "y": 1}, {"x": "/docs", "y": 1}]
        assert incremental.json()["data"] == scratch.json()["data"]
        assert incremental.json()["incremental"] is True

    def test_adhoc_report(self, analytics_client, tenants):
        response = analytics_client.post(
            f"/api/v1/websites/{tenants.website_id}/reports/run",
            json={**RANGE, "type": "stats"},
            headers=as_user(tenants.owner_id),
        )

        assert response.status_code == 200
        assert response.json()["data"]["pageviews"] == 2

    def test_invalid_parameters_are_not_stored(self, analytics_client, tenants):
        headers = as_user(tenants.owner_id)
        base = f"/api/v1/websites/{tenants.website_id}/reports"

        response = analytics_client.post(
            base, json={"name": "Broken", "parameters": {**RANGE, "type": "metrics"}}, headers=headers
        )

        assert response.status_code == 422
        assert analytics_client.get(base, headers=headers).json() == []

    def test_missing_report(self, analytics_client, tenants):
        response = analytics_client.get(
            f"/api/v1/websites/{tenants.website_id}/reports/{uuid.uuid4()}",
            headers=as_user(tenants.owner_id),
        )

        assert response.status_code == 404
        assert response.json() == {"detail": "Report not found."}
