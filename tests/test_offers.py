"""Tests for offer negotiation."""

import uuid

import pytest

from backend.fridgeshare.core.errors import Conflict
from backend.fridgeshare.models.database import Item, Offer, PurchaseConfirmation, User
from backend.fridgeshare.services.offers import OfferService
from backend.fridgeshare.services.state import transition


def test_offer_counter_then_cancel(client, signup, list_item, make_offer):
    seller = signup("seller")
    buyer = signup("buyer")
    item = list_item(seller, price=5.0)

    offer = make_offer(buyer, item["id"], 3.0, "Can pick up tonight")
    assert offer["status"] == "pending"
    assert offer["offer_price"] == 3.0
    assert offer["buyer_username"] == "buyer"
    assert offer["seller_username"] == "seller"

    r = client.post(f"/api/offers/{offer['id']}/respond",
                    json={"action": "counter", "counter_price": 4.0}, headers=seller)
    assert r.status_code == 200
    assert r.json()["status"] == "countered"
    assert r.json()["counter_price"] == 4.0

    r = client.post(f"/api/offers/{offer['id']}/cancel", headers=buyer)
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"

    # Terminal: no further transitions
    r = client.post(f"/api/offers/{offer['id']}/respond", json={"action": "accept"}, headers=seller)
    assert r.status_code == 409
    r = client.post(f"/api/offers/{offer['id']}/accept-counter", headers=buyer)
    assert r.status_code == 409

    assert client.get(f"/items/{item['id']}").json()["status"] == "active"


def test_accept_reserves_item_and_declines_siblings(client, signup, list_item, make_offer):
    seller = signup("seller")
    buyer = signup("buyer")
    other = signup("other")
    item = list_item(seller)

    winning = make_offer(buyer, item["id"], 4.0)
    losing = make_offer(other, item["id"], 3.5)

    r = client.post(f"/api/offers/{winning['id']}/respond", json={"action": "accept"}, headers=seller)
    assert r.status_code == 200
    assert r.json()["status"] == "accepted"
    assert r.json()["agreed_price"] == 4.0

    assert client.get(f"/items/{item['id']}").json()["status"] == "reserved"

    r = client.get("/api/offers", headers=other)
    assert [o["status"] for o in r.json()] == ["declined"]
    assert r.json()[0]["id"] == losing["id"]

    # Reserved items take no new offers and cannot be edited
    r = client.post("/api/offers", json={"item_id": item["id"], "offer_price": 5.0}, headers=other)
    assert r.status_code == 409
    r = client.put(f"/items/{item['id']}", json={"price": 9.0}, headers=seller)
    assert r.status_code == 409

    r = client.get("/api/confirmations", headers=buyer)
    assert len(r.json()) == 1
    assert r.json()[0]["offer_id"] == winning["id"]


def test_buyer_accepts_counter(client, signup, list_item, make_offer):
    seller = signup("seller")
    buyer = signup("buyer")
    item = list_item(seller)
    offer = make_offer(buyer, item["id"], 3.0)
    client.post(f"/api/offers/{offer['id']}/respond", json={"action": "counter", "counter_price": 4.0},
                headers=seller)

    # Only the buyer may accept the counter
    r = client.post(f"/api/offers/{offer['id']}/accept-counter", headers=seller)
    assert r.status_code == 403

    r = client.post(f"/api/offers/{offer['id']}/accept-counter", headers=buyer)
    assert r.status_code == 200
    assert r.json()["status"] == "accepted"
    assert r.json()["agreed_price"] == 4.0
    assert client.get(f"/items/{item['id']}").json()["status"] == "reserved"


def test_decline(client, signup, list_item, make_offer):
    seller = signup("seller")
    buyer = signup("buyer")
    offer = make_offer(buyer, list_item(seller)["id"], 1.0)

    r = client.post(f"/api/offers/{offer['id']}/respond", json={"action": "decline"}, headers=seller)
    assert r.status_code == 200
    assert r.json()["status"] == "declined"

    r = client.post(f"/api/offers/{offer['id']}/cancel", headers=buyer)
    assert r.status_code == 409


def test_mark_ready(client, signup, list_item, make_offer):
    seller = signup("seller")
    buyer = signup("buyer")
    offer = make_offer(buyer, list_item(seller)["id"], 4.0)

    r = client.post(f"/api/offers/{offer['id']}/ready", headers=seller)
    assert r.status_code == 409

    client.post(f"/api/offers/{offer['id']}/respond", json={"action": "accept"}, headers=seller)
    r = client.post(f"/api/offers/{offer['id']}/ready", headers=seller)
    assert r.status_code == 200
    assert r.json()["status"] == "ready_for_pickup"


def test_offer_validation(client, signup, list_item):
    seller = signup("seller")
    buyer = signup("buyer")
    item = list_item(seller)

    r = client.post("/api/offers", json={"item_id": item["id"], "offer_price": -1}, headers=buyer)
    assert r.status_code == 400

    r = client.post("/api/offers", json={"item_id": item["id"], "offer_price": 2}, headers=seller)
    assert r.status_code == 400

    r = client.post("/api/offers", json={"item_id": str(uuid.uuid4()), "offer_price": 2}, headers=buyer)
    assert r.status_code == 404


def test_only_seller_responds(client, signup, list_item, make_offer):
    seller = signup("seller")
    buyer = signup("buyer")
    offer = make_offer(buyer, list_item(seller)["id"], 2.0)

    r = client.post(f"/api/offers/{offer['id']}/respond", json={"action": "accept"}, headers=buyer)
    assert r.status_code == 403

    r = client.post(f"/api/offers/{offer['id']}/respond", json={"action": "counter"}, headers=seller)
    assert r.status_code == 400


def test_no_offers_on_handed_off_item(client, signup, list_item):
    seller = signup("seller")
    signup("friend")
    buyer = signup("buyer")
    item = list_item(seller)
    client.post("/api/handoff", json={"item_id": item["id"], "handoff_to": "friend"}, headers=seller)

    r = client.post("/api/offers", json={"item_id": item["id"], "offer_price": 2}, headers=buyer)
    assert r.status_code == 409


def test_list_offers_by_role(client, signup, list_item, make_offer):
    seller = signup("seller")
    buyer = signup("buyer")
    item = list_item(seller)
    make_offer(buyer, item["id"], 2.0)

    assert len(client.get("/api/offers", params={"role": "seller"}, headers=seller).json()) == 1
    assert len(client.get("/api/offers", params={"role": "buyer"}, headers=seller).json()) == 0
    r = client.get("/api/offers", params={"role": "buyer", "item_id": item["id"]}, headers=buyer)
    assert len(r.json()) == 1


def test_accepted_offer_is_terminal_for_negotiation(client, signup, list_item, make_offer):
    seller = signup("seller")
    buyer = signup("buyer")
    offer = make_offer(buyer, list_item(seller)["id"], 4.0)
    client.post(f"/api/offers/{offer['id']}/respond", json={"action": "accept"}, headers=seller)

    r = client.post(f"/api/offers/{offer['id']}/respond", json={"action": "decline"}, headers=seller)
    assert r.status_code == 409
    r = client.post(f"/api/offers/{offer['id']}/cancel", headers=buyer)
    assert r.status_code == 409


def test_release_accepted_offer(client, signup, list_item, make_offer, db):
    seller = signup("seller")
    buyer = signup("buyer")
    outsider = signup("outsider")
    item = list_item(seller)
    offer = make_offer(buyer, item["id"], 4.0)
    client.post(f"/api/offers/{offer['id']}/respond", json={"action": "accept"}, headers=seller)

    r = client.post(f"/api/offers/{offer['id']}/release", headers=outsider)
    assert r.status_code == 403

    # An open pickup has to be cancelled first
    txn = client.post("/api/transactions/start", json={"item_id": item["id"]}, headers=buyer).json()
    r = client.post(f"/api/offers/{offer['id']}/release", headers=seller)
    assert r.status_code == 409
    client.post(f"/api/transactions/{txn['id']}/cancel", headers=buyer)
    assert client.get(f"/items/{item['id']}").json()["status"] == "active"

    offer = make_offer(buyer, item["id"], 4.5)
    client.post(f"/api/offers/{offer['id']}/respond", json={"action": "accept"}, headers=seller)
    client.post(f"/api/offers/{offer['id']}/ready", headers=seller)

    r = client.post(f"/api/offers/{offer['id']}/release", headers=seller)
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"
    assert client.get(f"/items/{item['id']}").json()["status"] == "active"
    assert db.query(PurchaseConfirmation).count() == 0

    r = client.post(f"/api/offers/{offer['id']}/release", headers=seller)
    assert r.status_code == 409
    r = client.delete(f"/items/{item['id']}", headers=seller)
    assert r.status_code == 200


def test_transition_bumps_version_and_rejects_stale_status(client, signup, list_item, make_offer, db):
    seller = signup("seller")
    buyer = signup("buyer")
    offer_id = uuid.UUID(make_offer(buyer, list_item(seller)["id"], 2.0)["id"])
    before = db.query(Offer.version).filter(Offer.id == offer_id).scalar()

    transition(db, Offer, offer_id, "pending", status="declined")
    db.commit()
    assert db.query(Offer.status, Offer.version).filter(Offer.id == offer_id).one() == ("declined", before + 1)

    with pytest.raises(Conflict):
        transition(db, Offer, offer_id, "pending", status="accepted")
    db.rollback()
    assert db.query(Offer.status, Offer.version).filter(Offer.id == offer_id).one() == ("declined", before + 1)


def test_accept_rolls_back_when_item_was_taken(client, signup, list_item, make_offer, db):
    seller = signup("seller")
    buyer = signup("buyer")
    other = signup("other")
    item = list_item(seller)
    offer = make_offer(buyer, item["id"], 4.0)
    sibling = make_offer(other, item["id"], 3.0)
    item_id = uuid.UUID(item["id"])

    # Another request handed the item off after these offers were made
    transition(db, Item, item_id, "active", status="handed_off")
    db.commit()
    item_version = db.query(Item.version).filter(Item.id == item_id).scalar()

    r = client.post(f"/api/offers/{offer['id']}/respond", json={"action": "accept"}, headers=seller)
    assert r.status_code == 409

    statuses = dict(db.query(Offer.id, Offer.status).all())
    assert statuses == {uuid.UUID(offer["id"]): "pending", uuid.UUID(sibling["id"]): "pending"}
    assert db.query(Item.status, Item.version).filter(Item.id == item_id).one() == ("handed_off", item_version)
    assert db.query(PurchaseConfirmation).count() == 0


def test_accept_counter_loses_race_with_cancel(client, signup, list_item, make_offer, db):
    seller = signup("seller")
    buyer = signup("buyer")
    item = list_item(seller)
    offer = make_offer(buyer, item["id"], 3.0)
    client.post(f"/api/offers/{offer['id']}/respond", json={"action": "counter", "counter_price": 4.0},
                headers=seller)
    offer_id = uuid.UUID(offer["id"])

    # This session still sees the offer as countered
    service = OfferService(db)
    assert service.get_offer(offer_id).status == "countered"
    buyer_user = db.query(User).filter(User.username == "buyer").one()

    r = client.post(f"/api/offers/{offer['id']}/cancel", headers=buyer)
    assert r.status_code == 200

    with pytest.raises(Conflict):
        service.accept_counter(offer_id, buyer_user)

    assert db.query(Offer.status).filter(Offer.id == offer_id).scalar() == "cancelled"
    assert client.get(f"/items/{item['id']}").json()["status"] == "active"
    assert db.query(PurchaseConfirmation).count() == 0
