"""Tests for seat holds and the expired-hold sweep."""

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

from eventmarket.database import SessionLocal
from eventmarket.models import Event, SeatHold, HoldStatus
from eventmarket.services import reservations


def _seats(db, event_id):
    db.expire_all()
    return db.get(Event, event_id).seats_reserved


def _soon():
    return datetime.now(timezone.utc) + timedelta(minutes=30)


class TestReserveSeats:
    def test_reserve_and_release(self, create_venue, create_event, db):
        event = create_event(venue_id=create_venue(capacity=5)["id"])
        hold = reservations.reserve_seats(db, event["id"], 3, _soon())
        assert hold is not None
        assert hold.status == HoldStatus.HELD
        assert _seats(db, event["id"]) == 3

        assert reservations.release_hold(db, hold_id=hold.id) is True
        assert _seats(db, event["id"]) == 0

    def test_release_is_one_shot(self, create_event, db):
        event = create_event()
        hold = reservations.reserve_seats(db, event["id"], 2, _soon())
        assert reservations.release_hold(db, hold_id=hold.id) is True
        assert reservations.release_hold(db, hold_id=hold.id) is False
        assert _seats(db, event["id"]) == 0

    def test_rejects_over_capacity(self, create_venue, create_event, db):
        event = create_event(venue_id=create_venue(capacity=5)["id"])
        assert reservations.reserve_seats(db, event["id"], 4, _soon()) is not None
        assert reservations.reserve_seats(db, event["id"], 2, _soon()) is None
        assert reservations.reserve_seats(db, event["id"], 1, _soon()) is not None
        assert _seats(db, event["id"]) == 5

    def test_concurrent_reservations_never_oversell(self, create_venue, create_event, db):
        event = create_event(venue_id=create_venue(capacity=5)["id"])
        event_id = event["id"]
        attempts = 10
        barrier = threading.Barrier(attempts)

        def attempt():
            session = SessionLocal()
            try:
                barrier.wait()
                return reservations.reserve_seats(session, event_id, 1, _soon()) is not None
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=attempts) as pool:
            results = list(pool.map(lambda _: attempt(), range(attempts)))

        assert results.count(True) == 5
        assert _seats(db, event_id) == 5

    def test_confirm_after_sweep_recounts_seats(self, create_event, db):
        event = create_event()
        hold = reservations.reserve_seats(db, event["id"], 2, _soon())
        reservations.release_hold(db, hold_id=hold.id)

        reservations.confirm_hold(db, hold_id=hold.id)
        db.commit()
        assert _seats(db, event["id"]) == 2
        assert db.get(SeatHold, hold.id).status == HoldStatus.CONFIRMED


class TestExpiredHolds:
    def test_sweep_releases_only_expired(self, create_event, db):
        event = create_event()
        now = datetime.now(timezone.utc)
        stale = reservations.reserve_seats(db, event["id"], 2, now - timedelta(hours=1))
        fresh = reservations.reserve_seats(db, event["id"], 1, now + timedelta(minutes=20))

        assert reservations.release_expired_holds(db, now=now) == 1
        db.expire_all()
        assert db.get(SeatHold, stale.id).status == HoldStatus.RELEASED
        assert db.get(SeatHold, fresh.id).status == HoldStatus.HELD
        assert _seats(db, event["id"]) == 1

    def test_grace_period(self, create_event, db):
        event = create_event()
        now = datetime.now(timezone.utc)
        reservations.reserve_seats(db, event["id"], 1, now - timedelta(minutes=5))
        assert reservations.release_expired_holds(db, now=now) == 0


class TestCheckoutExpiredWebhook:
    def test_releases_hold(self, client, create_user, create_venue, create_event, buy, db):
        event = create_event(venue_id=create_venue(capacity=2)["id"])
        session_id = buy(create_user(), event["id"], quantity=2, paid=False)["session_id"]
        assert _seats(db, event["id"]) == 2

        payload = {"type": "checkout.session.expired", "data": {"object": {"id": session_id}}}
        r = client.post("/webhooks/stripe", content=json.dumps(payload))
        assert r.status_code == 200
        assert _seats(db, event["id"]) == 0

        r = client.post(
            "/api/events/buy",
            json={"event_id": event["id"], "quantity": 2},
            headers={"X-User-Id": str(create_user()["id"])},
        )
        assert r.status_code == 200
