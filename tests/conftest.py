import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OPENAI_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["SENDGRID_API_KEY"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient

from backend.fridgeshare.main import app
from backend.fridgeshare.db.base import Base, SessionLocal, engine
from backend.fridgeshare.services.chat_relay import ConnectionRegistry


@pytest.fixture(autouse=True)
def reset_db():
    """Fresh schema for every test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    app.state.chat_registry = ConnectionRegistry()
    with TestClient(app) as client:
        yield client


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def signup(client):
    """Register a user and return auth headers."""
    def _signup(username, password="secret123", email=None):
        body = {"username": username, "password": password}
        if email:
            body["email"] = email
        r = client.post("/users/register", json=body)
        assert r.status_code == 200, r.text
        return {"Authorization": f"Bearer {r.json()['token']}"}
    return _signup


@pytest.fixture
def list_item(client):
    """Create a listing and return its JSON."""
    def _list_item(headers, **fields):
        body = {
            "name": "Bananas",
            "category": "Produce",
            "price": 5.0,
            "quantity": 6,
            "transfer_methods": ["Pickup"],
            "location": {"latitude": 40.7128, "longitude": -74.0060, "name": "Lobby"},
        }
        body.update(fields)
        r = client.post("/items", json=body, headers=headers)
        assert r.status_code == 201, r.text
        return r.json()
    return _list_item


@pytest.fixture
def make_offer(client):
    def _make_offer(headers, item_id, price, message=""):
        r = client.post("/api/offers", json={"item_id": item_id, "offer_price": price, "message": message},
                        headers=headers)
        assert r.status_code == 201, r.text
        return r.json()
    return _make_offer
