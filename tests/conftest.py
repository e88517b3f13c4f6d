"""Shared fixtures for all tests.

Uses a SQLite file database so tests are fast and isolated.
The database is recreated for every test function.
"""

import os

# Force SQLite before any app imports
os.environ["DATABASE_URL"] = "sqlite:///./test_eventmarket.db"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = ""
os.environ["RESEND_API_KEY"] = ""
os.environ["ADMIN_API_KEY"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"

from unittest.mock import patch

import pytest
import stripe
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from eventmarket.config import get_settings
from eventmarket.database import Base, get_db
from eventmarket.main import app

TEST_DATABASE_URL = "sqlite:///./test_eventmarket.db"

engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def uploads_dir(tmp_path, monkeypatch):
    """Ticket artifacts go to a per-test directory."""
    monkeypatch.setattr(get_settings(), "uploads_dir", str(tmp_path))
    return tmp_path


@pytest.fixture(autouse=True)
def no_delivery_threads():
    """Issuance queues deliveries; tests run them explicitly when needed."""
    with patch("eventmarket.services.delivery._dispatch") as dispatch:
        yield dispatch


@pytest.fixture
def db():
    """Provide a transactional database session for test helpers."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    """TestClient that uses the test database."""

    def _override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()


# ============== Stripe ==============

class FakeCheckout:
    """In-memory stand-in for Stripe Checkout Sessions.

    Sessions are real ``stripe.checkout.Session`` objects, so code under test
    sees the same attribute and metadata behaviour as against the live API.
    """

    def __init__(self):
        self.sessions = {}
        self.requests = []

    def _session(self, session_id):
        return stripe.checkout.Session.construct_from(self.sessions[session_id], "sk_test_fake")

    def create(self, **kwargs):
        session_id = f"cs_test_{len(self.sessions) + 1}"
        line = kwargs["line_items"][0]
        self.sessions[session_id] = {
            "id": session_id,
            "object": "checkout.session",
            "url": f"https://checkout.stripe.test/pay/{session_id}",
            "payment_status": "unpaid",
            "metadata": dict(kwargs["metadata"]),
            "amount_total": line["price_data"]["unit_amount"] * line["quantity"],
        }
        self.requests.append(kwargs)
        return self._session(session_id)

    def retrieve(self, session_id):
        if session_id not in self.sessions:
            raise stripe.InvalidRequestError(f"No such checkout.session: '{session_id}'", "id")
        return self._session(session_id)

    def pay(self, session_id):
        self.sessions[session_id]["payment_status"] = "paid"


@pytest.fixture
def fake_stripe(monkeypatch):
    """Configure a Stripe key and route Checkout calls to FakeCheckout."""
    monkeypatch.setattr(get_settings(), "stripe_secret_key", "sk_test_fake")
    fake = FakeCheckout()
    with patch("eventmarket.services.checkout.stripe") as mock_stripe:
        mock_stripe.StripeError = stripe.StripeError
        mock_stripe.InvalidRequestError = stripe.InvalidRequestError
        mock_stripe.checkout.Session.create.side_effect = fake.create
        mock_stripe.checkout.Session.retrieve.side_effect = fake.retrieve
        yield fake


# ============== Factory helpers ==============

@pytest.fixture
def create_user(client):
    """Factory to create a user and return its JSON."""

    _counter = [0]

    def _create(**overrides):
        _counter[0] += 1
        data = {
            "email": f"user{_counter[0]}@example.com",
            "full_name": f"Test User {_counter[0]}",
        }
        data.update(overrides)
        r = client.post("/api/users", json=data)
        assert r.status_code == 201, r.text
        return r.json()

    return _create


@pytest.fixture
def create_venue(client):
    """Factory to create a venue and return its JSON."""

    def _create(**overrides):
        data = {"name": "Test Arena", "address": "123 Test St", "capacity": 100}
        data.update(overrides)
        r = client.post("/api/venues", json=data)
        assert r.status_code == 201, r.text
        return r.json()

    return _create


@pytest.fixture
def create_event(client, create_venue):
    """Factory to create an event (auto-creates a venue)."""

    def _create(venue_id=None, **overrides):
        if venue_id is None:
            venue_id = create_venue()["id"]
        data = {
            "title": "Test Event",
            "event_date": "2099-12-31",
            "event_time": "20:00",
            "price": "100.00",
            "venue_id": venue_id,
        }
        data.update(overrides)
        r = client.post("/api/events", json=data)
        assert r.status_code == 201, r.text
        return r.json()

    return _create


@pytest.fixture
def buy(client, fake_stripe):
    """Factory to start a purchase through the API, optionally marking it paid."""

    def _buy(user, event_id, quantity=1, promo_code=None, paid=True):
        body = {"event_id": event_id, "quantity": quantity}
        if promo_code is not None:
            body["promo_code"] = promo_code
        r = client.post("/api/events/buy", json=body, headers={"X-User-Id": str(user["id"])})
        assert r.status_code == 200, r.text
        data = r.json()
        if paid:
            fake_stripe.pay(data["session_id"])
        return data

    return _buy


@pytest.fixture
def issued_ticket(client, buy, create_user, create_event):
    """Factory: buy, pay and verify; returns (user, ticket JSON)."""

    def _issue(quantity=1, user=None, event_id=None):
        user = user or create_user()
        event_id = event_id or create_event()["id"]
        session_id = buy(user, event_id, quantity=quantity)["session_id"]
        r = client.get(f"/api/events/verify-payment?session_id={session_id}")
        assert r.status_code == 200, r.text
        return user, r.json()["ticket"]

    return _issue
