"""Tests for payment verification and idempotent ticket issuance."""

from unittest.mock import patch

import stripe

from eventmarket.models import Ticket, TicketCode, TicketDelivery, Notification, NotificationType, SeatHold, HoldStatus, User
from eventmarket.services.issuance import (
    ALREADY_ISSUED,
    ISSUED,
    generate_ticket_code,
    issue_ticket_for_session,
)
from eventmarket.services.checkout import session_metadata


class TestVerifyPayment:
    def test_issues_ticket(self, client, create_user, create_event, buy):
        user = create_user()
        event = create_event(price="25.00")
        session_id = buy(user, event["id"], quantity=3)["session_id"]

        r = client.get(f"/api/events/verify-payment?session_id={session_id}")
        assert r.status_code == 200
        data = r.json()
        assert data["success"] is True
        assert data["already_processed"] is False
        ticket = data["ticket"]
        assert ticket["quantity"] == 3
        assert ticket["user_id"] == user["id"]
        assert ticket["event"]["id"] == event["id"]
        assert ticket["unit_price"] == 25.0
        assert ticket["amount_paid"] == 75.0
        assert len(ticket["ticket_codes"]) == 3

    def test_verify_twice_returns_same_ticket(self, client, create_user, create_event, buy, db):
        session_id = buy(create_user(), create_event()["id"], quantity=2)["session_id"]

        first = client.get(f"/api/events/verify-payment?session_id={session_id}").json()
        second = client.get(f"/api/events/verify-payment?session_id={session_id}").json()

        assert first["ticket"]["id"] == second["ticket"]["id"]
        assert first["ticket"]["ticket_codes"] == second["ticket"]["ticket_codes"]
        assert second["already_processed"] is True
        assert db.query(Ticket).filter(Ticket.checkout_session_id == session_id).count() == 1
        assert db.query(Ticket).count() == 1

    def test_unpaid_session(self, client, create_user, create_event, buy, db):
        session_id = buy(create_user(), create_event()["id"], paid=False)["session_id"]
        r = client.get(f"/api/events/verify-payment?session_id={session_id}")
        assert r.status_code == 200
        assert r.json()["success"] is False
        assert r.json()["ticket"] is None
        assert db.query(Ticket).count() == 0

    def test_unknown_session(self, client, fake_stripe):
        r = client.get("/api/events/verify-payment?session_id=cs_nope")
        assert r.status_code == 404

    def test_missing_session_id(self, client, fake_stripe):
        r = client.get("/api/events/verify-payment")
        assert r.status_code == 422

    def test_event_deleted_before_verification(self, client, create_user, create_event, buy):
        event = create_event()
        session_id = buy(create_user(), event["id"])["session_id"]
        client.delete(f"/api/events/{event['id']}")

        r = client.get(f"/api/events/verify-payment?session_id={session_id}")
        assert r.status_code == 404
        assert r.json()["detail"] == "Event not found!"

    def test_appends_purchase_history(self, client, create_user, create_event, buy, db):
        user = create_user()
        session_id = buy(user, create_event()["id"])["session_id"]
        ticket_id = client.get(f"/api/events/verify-payment?session_id={session_id}").json()["ticket"]["id"]

        db.expire_all()
        history = db.get(User, user["id"]).purchased_tickets
        assert [t.id for t in history] == [ticket_id]

    def test_confirms_hold(self, client, create_user, create_event, buy, db):
        session_id = buy(create_user(), create_event()["id"], quantity=2)["session_id"]
        client.get(f"/api/events/verify-payment?session_id={session_id}")

        db.expire_all()
        hold = db.query(SeatHold).filter(SeatHold.checkout_session_id == session_id).one()
        assert hold.status == HoldStatus.CONFIRMED

    def test_queues_delivery_and_notifies(self, client, create_user, create_event, buy, db, no_delivery_threads):
        user = create_user()
        event = create_event(title="Rooftop Set")
        session_id = buy(user, event["id"], quantity=2)["session_id"]
        ticket_id = client.get(f"/api/events/verify-payment?session_id={session_id}").json()["ticket"]["id"]

        delivery = db.query(TicketDelivery).filter(TicketDelivery.ticket_id == ticket_id).one()
        no_delivery_threads.assert_called_once_with(delivery.id)

        notification = db.query(Notification).filter(Notification.user_id == user["id"]).one()
        assert notification.notification_type == NotificationType.PAYMENT_SUCCESS
        assert "Rooftop Set" in notification.message

    def test_delivery_failure_does_not_fail_issuance(self, client, create_user, create_event, buy, no_delivery_threads):
        no_delivery_threads.side_effect = RuntimeError("thread pool exhausted")
        session_id = buy(create_user(), create_event()["id"])["session_id"]

        r = client.get(f"/api/events/verify-payment?session_id={session_id}")
        assert r.status_code == 200
        assert r.json()["success"] is True


class TestTicketCodes:
    def test_format(self):
        code = generate_ticket_code()
        assert code.startswith("TICKET-")
        suffix = code[len("TICKET-"):]
        assert len(suffix) == 12
        assert suffix.isalnum() and suffix.upper() == suffix

    def test_codes_unique_across_tickets(self, client, create_user, create_event, buy, db):
        event = create_event()
        for quantity in (1, 4, 7):
            session_id = buy(create_user(), event["id"], quantity=quantity)["session_id"]
            client.get(f"/api/events/verify-payment?session_id={session_id}")

        for ticket in db.query(Ticket).all():
            assert len(ticket.ticket_codes) == ticket.quantity
        codes = [c.code for c in db.query(TicketCode).all()]
        assert len(codes) == 12
        assert len(set(codes)) == 12


class TestIssuanceService:
    def test_second_call_is_already_issued(self, create_user, create_event, buy, db):
        session_id = buy(create_user(), create_event()["id"])["session_id"]

        first = issue_ticket_for_session(db, session_id)
        second = issue_ticket_for_session(db, session_id)
        assert first.status == ISSUED
        assert second.status == ALREADY_ISSUED
        assert first.ticket.id == second.ticket.id


class TestStripeSessionObjects:
    def test_metadata_from_stripe_object(self):
        session = stripe.checkout.Session.construct_from(
            {"id": "cs_1", "metadata": {"event_id": "4", "quantity": "2"}}, "sk_test_fake"
        )
        assert session_metadata(session) == {"event_id": "4", "quantity": "2"}

    def test_metadata_missing(self):
        session = stripe.checkout.Session.construct_from({"id": "cs_1", "metadata": None}, "sk_test_fake")
        assert session_metadata(session) == {}

    def test_verify_with_retrieved_session(self, client, create_user, create_event, fake_stripe, db):
        user = create_user()
        event = create_event(price="40.00")
        paid = stripe.checkout.Session.construct_from({
            "id": "cs_live_like",
            "object": "checkout.session",
            "payment_status": "paid",
            "amount_total": 8000,
            "metadata": {
                "event_id": str(event["id"]),
                "user_id": str(user["id"]),
                "quantity": "2",
                "unit_price": "40.00",
                "hold_id": "",
            },
        }, "sk_test_fake")

        with patch("eventmarket.services.checkout.stripe.checkout.Session.retrieve", return_value=paid):
            r = client.get("/api/events/verify-payment?session_id=cs_live_like")
            details = client.get("/api/events/session/cs_live_like")

        assert r.status_code == 200, r.text
        ticket = r.json()["ticket"]
        assert ticket["quantity"] == 2
        assert ticket["amount_paid"] == 80.0
        assert db.query(Ticket).filter(Ticket.checkout_session_id == "cs_live_like").count() == 1

        assert details.status_code == 200, details.text
        assert details.json()["quantity"] == 2
        assert details.json()["amount_total"] == 80.0
