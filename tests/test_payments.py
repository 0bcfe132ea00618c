"""Tests for Stripe payment intents."""

import uuid
from unittest.mock import MagicMock, patch

import pytest

from backend.fridgeshare.core.config import settings
from backend.fridgeshare.models.database import Item


@pytest.fixture
def stripe_key(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")


def test_not_configured(client, signup, list_item):
    item = list_item(signup("seller"))
    r = client.post("/payments/intent", json={"item_id": item["id"]}, headers=signup("buyer"))
    assert r.status_code == 502
    assert r.json()["detail"] == "Payments are not configured"


@patch("stripe.PaymentIntent.create")
def test_create_intent(mock_create, client, signup, list_item, db, stripe_key):
    mock_create.return_value = MagicMock(id="pi_123", client_secret="pi_123_secret_abc")
    item = list_item(signup("seller"), price=5.0)

    r = client.post("/payments/intent", json={"item_id": item["id"]}, headers=signup("buyer"))
    assert r.status_code == 200
    assert r.json() == {
        "client_secret": "pi_123_secret_abc",
        "payment_intent_id": "pi_123",
        "amount_cents": 500,
        "currency": "usd",
    }
    kwargs = mock_create.call_args.kwargs
    assert kwargs["amount"] == 500
    assert kwargs["metadata"]["buyer"] == "buyer"

    stored = db.query(Item).filter(Item.id == uuid.UUID(item["id"])).one()
    assert stored.payment_intent_id == "pi_123"


@patch("stripe.PaymentIntent.create")
def test_reserved_item_uses_agreed_price(mock_create, client, signup, list_item, make_offer, stripe_key):
    mock_create.return_value = MagicMock(id="pi_9", client_secret="secret")
    seller = signup("seller")
    buyer = signup("buyer")
    item = list_item(seller, price=5.0)
    offer = make_offer(buyer, item["id"], 3.0)
    client.post(f"/api/offers/{offer['id']}/respond", json={"action": "counter", "counter_price": 4.0},
                headers=seller)
    client.post(f"/api/offers/{offer['id']}/accept-counter", headers=buyer)

    r = client.post("/payments/intent", json={"item_id": item["id"]}, headers=buyer)
    assert r.json()["amount_cents"] == 400

    r = client.post("/payments/intent", json={"item_id": item["id"]}, headers=signup("other"))
    assert r.status_code == 409


def test_cannot_pay_for_own_item(client, signup, list_item, stripe_key):
    seller = signup("seller")
    item = list_item(seller)
    r = client.post("/payments/intent", json={"item_id": item["id"]}, headers=seller)
    assert r.status_code == 400


def test_free_item(client, signup, list_item, stripe_key):
    item = list_item(signup("seller"), price=0)
    r = client.post("/payments/intent", json={"item_id": item["id"]}, headers=signup("buyer"))
    assert r.status_code == 400
