"""Tests for the Stripe webhook receiver."""

import hashlib
import hmac
import json
import time

from eventmarket.config import get_settings
from eventmarket.models import Event, HoldStatus, SeatHold, Ticket


def _event(event_type, session_id):
    return {"type": event_type, "data": {"object": {"id": session_id}}}


def _signed_headers(payload: str, secret: str) -> dict:
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256
    ).hexdigest()
    return {"Stripe-Signature": f"t={timestamp},v1={signature}", "Content-Type": "application/json"}


class TestCheckoutCompleted:
    def test_issues_ticket(self, client, create_user, create_event, buy, db):
        user = create_user()
        event = create_event()
        session_id = buy(user, event["id"], quantity=2)["session_id"]

        r = client.post("/webhooks/stripe", json=_event("checkout.session.completed", session_id))
        assert r.status_code == 200
        assert r.json() == {"status": "success"}

        tickets = db.query(Ticket).filter(Ticket.checkout_session_id == session_id).all()
        assert len(tickets) == 1
        assert tickets[0].quantity == 2

    def test_redelivery_and_redirect_issue_once(self, client, create_user, create_event, buy, db):
        user = create_user()
        event = create_event()
        session_id = buy(user, event["id"])["session_id"]

        client.post("/webhooks/stripe", json=_event("checkout.session.completed", session_id))
        client.post("/webhooks/stripe", json=_event("checkout.session.completed", session_id))
        r = client.get(f"/api/events/verify-payment?session_id={session_id}")
        assert r.json()["already_processed"] is True

        assert db.query(Ticket).count() == 1

    def test_unpaid_session_not_issued(self, client, create_user, create_event, buy, db):
        user = create_user()
        event = create_event()
        session_id = buy(user, event["id"], paid=False)["session_id"]

        r = client.post("/webhooks/stripe", json=_event("checkout.session.completed", session_id))
        assert r.status_code == 200
        assert db.query(Ticket).count() == 0

    def test_deleted_event_is_acknowledged(self, client, create_user, create_event, buy, db):
        user = create_user()
        event = create_event()
        session_id = buy(user, event["id"])["session_id"]
        client.delete(f"/api/events/{event['id']}")

        r = client.post("/webhooks/stripe", json=_event("checkout.session.completed", session_id))
        assert r.status_code == 200
        assert db.query(Ticket).count() == 0


class TestCheckoutExpired:
    def test_releases_hold(self, client, create_user, create_event, buy, db):
        user = create_user()
        event = create_event()
        session_id = buy(user, event["id"], quantity=4, paid=False)["session_id"]
        assert db.get(Event, event["id"]).seats_reserved == 4

        r = client.post("/webhooks/stripe", json=_event("checkout.session.expired", session_id))
        assert r.status_code == 200

        db.expire_all()
        assert db.get(Event, event["id"]).seats_reserved == 0
        hold = db.query(SeatHold).filter(SeatHold.checkout_session_id == session_id).one()
        assert hold.status == HoldStatus.RELEASED


class TestWebhookGuards:
    def test_stripe_not_configured(self, client):
        r = client.post("/webhooks/stripe", json=_event("checkout.session.completed", "cs_x"))
        assert r.status_code == 500

    def test_unknown_event_type(self, client, fake_stripe):
        r = client.post("/webhooks/stripe", json={"type": "customer.created", "data": {"object": {}}})
        assert r.status_code == 200

    def test_invalid_json(self, client, fake_stripe):
        r = client.post("/webhooks/stripe", content=b"not json", headers={"Content-Type": "application/json"})
        assert r.status_code == 400

    def test_missing_signature(self, client, fake_stripe, monkeypatch):
        monkeypatch.setattr(get_settings(), "stripe_webhook_secret", "whsec_test")
        r = client.post("/webhooks/stripe", json=_event("checkout.session.completed", "cs_x"))
        assert r.status_code == 400
        assert r.json()["detail"] == "Missing signature"

    def test_invalid_signature(self, client, fake_stripe, monkeypatch):
        monkeypatch.setattr(get_settings(), "stripe_webhook_secret", "whsec_test")
        payload = json.dumps(_event("checkout.session.completed", "cs_x"))
        headers = _signed_headers(payload, "whsec_other")
        r = client.post("/webhooks/stripe", content=payload, headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Invalid signature"

    def test_valid_signature(self, client, create_user, create_event, buy, db, monkeypatch):
        user = create_user()
        event = create_event()
        session_id = buy(user, event["id"])["session_id"]
        monkeypatch.setattr(get_settings(), "stripe_webhook_secret", "whsec_test")

        payload = json.dumps({
            "id": "evt_1",
            "object": "event",
            "type": "checkout.session.completed",
            "data": {"object": {"id": session_id, "object": "checkout.session"}},
        })
        r = client.post("/webhooks/stripe", content=payload, headers=_signed_headers(payload, "whsec_test"))
        assert r.status_code == 200
        assert db.query(Ticket).count() == 1

    def test_signed_expired_releases_hold(self, client, create_user, create_event, buy, db, monkeypatch):
        user = create_user()
        event = create_event()
        session_id = buy(user, event["id"], quantity=2, paid=False)["session_id"]
        monkeypatch.setattr(get_settings(), "stripe_webhook_secret", "whsec_test")

        payload = json.dumps({
            "id": "evt_2",
            "object": "event",
            "type": "checkout.session.expired",
            "data": {"object": {"id": session_id, "object": "checkout.session"}},
        })
        r = client.post("/webhooks/stripe", content=payload, headers=_signed_headers(payload, "whsec_test"))
        assert r.status_code == 200

        db.expire_all()
        assert db.get(Event, event["id"]).seats_reserved == 0

    def test_signed_event_without_session_id(self, client, fake_stripe, monkeypatch):
        monkeypatch.setattr(get_settings(), "stripe_webhook_secret", "whsec_test")
        payload = json.dumps({
            "id": "evt_3",
            "object": "event",
            "type": "checkout.session.completed",
            "data": {"object": {"object": "checkout.session"}},
        })
        r = client.post("/webhooks/stripe", content=payload, headers=_signed_headers(payload, "whsec_test"))
        assert r.status_code == 200
