"""
Unit Tests - HTTP API
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from order_analytics.domain import utc_now
from order_analytics.exceptions import StoreError
from order_analytics.main import create_app
from order_analytics.store import MemoryKeyValueStore


class BrokenStore(MemoryKeyValueStore):
    """Memory store whose scans always fail"""

    async def scan(self, table, condition=None, cursor=None, limit=None):
        raise StoreError("store unavailable")


@pytest.fixture
def api_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def client(api_store, test_settings):
    """Test client over an in-memory store"""
    app = create_app(store=api_store, settings=test_settings)
    with TestClient(app) as client:
        yield client


class TestUploadEndpoint:
    """Tests for POST /api/v1/orders/upload"""

    def test_upload_reports_counts(self, client, sample_orders):
        """Test a fresh upload saves every order"""
        response = client.post("/api/v1/orders/upload", json={"orders": sample_orders})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert (body["saved"], body["updated"], body["duplicates"], body["stats_updated"]) == (3, 0, 0, 1)
        assert body["message"] == "3 saved, 0 updated, 0 duplicates"

    def test_reupload_reports_duplicates(self, client, sample_orders):
        """Test resubmitting an upload is idempotent"""
        client.post("/api/v1/orders/upload", json={"orders": sample_orders})

        body = client.post("/api/v1/orders/upload", json={"orders": sample_orders}).json()

        assert (body["saved"], body["duplicates"], body["stats_updated"]) == (0, 3, 0)

    @pytest.mark.parametrize("payload", [{}, {"orders": []}, {"orders": None}])
    def test_missing_orders_rejected(self, client, api_store, payload):
        """Test an upload without orders is a client error"""
        response = client.post("/api/v1/orders/upload", json=payload)

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert api_store.batch_put_calls == 0

    def test_malformed_order_rejected(self, client):
        """Test an order without its time is a client error"""
        response = client.post("/api/v1/orders/upload", json={"orders": [{"order_id": "A"}]})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_non_object_order_rejected(self, client, api_store, sample_orders):
        """Test a list entry that is not an order object is a client error"""
        response = client.post("/api/v1/orders/upload", json={"orders": [sample_orders[0], "junk"]})

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert api_store.batch_put_calls == 0


class TestAnalyticsEndpoints:
    """Tests for the analytics read endpoints"""

    def test_daily_usage_after_upload(self, client, sample_orders):
        """Test the usage series reflects uploaded orders"""
        client.post("/api/v1/orders/upload", json={"orders": sample_orders})

        response = client.get(
            "/api/v1/analytics/daily-usage",
            params={"start_date": "2024-01-09", "end_date": "2024-01-11"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["summary"]["period"] == {"start_date": "2024-01-09", "end_date": "2024-01-11"}
        assert data["summary"]["total_days"] == 2
        assert [day["active"] for day in data["daily_usage"]] == [0, 1, 1]
        assert data["daily_usage"][1] == {
            "date": "2024-01-10",
            "active": 1,
            "order_count": 3,
            "new_installs": 0,
            "new_churns": 0,
            "cumulative_installed": 0,
            "cumulative_churned": 0,
        }

    def test_daily_usage_default_range(self, client):
        """Test the default range ends today and spans thirty days back"""
        data = client.get("/api/v1/analytics/daily-usage").json()["data"]

        today = utc_now().date()
        assert data["summary"]["period"] == {
            "start_date": (today - timedelta(days=30)).isoformat(),
            "end_date": today.isoformat(),
        }
        assert len(data["daily_usage"]) == 31

    def test_default_range_follows_utc_date(self, client, monkeypatch):
        """Test the default end date is the UTC calendar date"""
        monkeypatch.setattr(
            "order_analytics.serving.api.routes.analytics.utc_now",
            lambda: datetime(2024, 1, 10, 23, 30, tzinfo=timezone.utc),
        )

        data = client.get("/api/v1/analytics/daily-usage").json()["data"]

        assert data["summary"]["period"] == {"start_date": "2023-12-11", "end_date": "2024-01-10"}

    def test_invalid_date_rejected(self, client):
        """Test malformed dates fail request validation"""
        response = client.get("/api/v1/analytics/daily-usage", params={"start_date": "not-a-date"})

        assert response.status_code == 422

    def test_store_heatmap(self, client, sample_orders):
        """Test the heatmap lists per-store daily counts"""
        client.post("/api/v1/orders/upload", json={"orders": sample_orders})

        response = client.get(
            "/api/v1/analytics/store-heatmap",
            params={"start_date": "2024-01-10", "end_date": "2024-01-11"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["dates"] == ["2024-01-10", "2024-01-11"]
        assert data["stores"] == [{"seq": "S1", "orders": {"2024-01-10": 3, "2024-01-11": 0}, "total": 3}]

    def test_store_failure_is_server_error(self, test_settings):
        """Test a failing store read surfaces as a 500"""
        app = create_app(store=BrokenStore(), settings=test_settings)
        with TestClient(app) as client:
            response = client.get("/api/v1/analytics/daily-usage")

        assert response.status_code == 500
        assert response.json()["success"] is False


class TestHealthEndpoints:
    """Tests for health endpoints"""

    def test_health(self, client):
        """Test the health check reports the store"""
        body = client.get("/api/v1/health").json()

        assert body["status"] == "healthy"
        assert body["checks"]["store"]["backend"] == "MemoryKeyValueStore"

    def test_readiness_fails_without_store(self, test_settings):
        """Test readiness reports 503 when the store is unreachable"""
        app = create_app(store=BrokenStore(), settings=test_settings)
        with TestClient(app) as client:
            response = client.get("/api/v1/health/ready")

        assert response.status_code == 503
