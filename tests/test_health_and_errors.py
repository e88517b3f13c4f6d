"""Tests for health check and global error handlers."""

from unittest.mock import patch

from eventmarket.errors import PaymentProviderError


class TestHealthCheck:
    def test_healthy(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "healthy"
        assert data["checks"]["db"] == "ok"


class TestGlobalErrorHandler:
    def test_validation_error_format(self, client):
        """Validation errors should return consistent {error, detail} format."""
        r = client.get("/api/events?limit=999")
        assert r.status_code == 422
        data = r.json()
        assert data["error"] == "Validation error"
        assert "limit" in data["detail"]

    def test_404_format(self, client):
        """404s from HTTPException should include detail."""
        r = client.get("/api/events/99999")
        assert r.status_code == 404
        assert "detail" in r.json()

    def test_service_error_format(self, client, create_user, create_event):
        user = create_user()
        event = create_event()
        with patch(
            "eventmarket.routers.purchases.start_purchase",
            side_effect=PaymentProviderError("card network down"),
        ):
            r = client.post(
                "/api/events/buy",
                json={"event_id": event["id"], "quantity": 1},
                headers={"X-User-Id": str(user["id"])},
            )
        assert r.status_code == 502
        assert r.json() == {"error": "Payment provider error", "detail": "card network down"}

    def test_unhandled_error_is_hidden(self, client, create_event):
        event = create_event()
        with patch("eventmarket.routers.events.quote_event", side_effect=RuntimeError("boom")):
            r = client.get(f"/api/events/{event['id']}")
        assert r.status_code == 500
        assert r.json()["error"] == "Internal server error"
        assert "boom" not in r.text
