"""Tests for the no-payment handoff flow."""


def test_handoff_to_front_desk(client, signup, list_item):
    lister = signup("lister")
    alice = signup("alice")
    item = list_item(lister)

    r = client.post("/api/handoff",
                    json={"item_id": item["id"], "handoff_to": "alice", "handoff_notes": "front desk"},
                    headers=lister)
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["item"]["status"] == "handed_off"
    assert body["item"]["handoff_status"] == "pending"
    assert body["item"]["handoff_to_username"] == "alice"
    assert body["item"]["handoff_notes"] == "front desk"
    assert body["item"]["handoff_date"] is not None

    r = client.post("/api/complete-handoff", json={"item_id": item["id"]}, headers=lister)
    assert r.status_code == 200
    assert r.json()["item"]["status"] == "sold"
    assert r.json()["item"]["handoff_status"] == "completed"

    # Already completed
    r = client.post("/api/complete-handoff", json={"item_id": item["id"]}, headers=lister)
    assert r.status_code == 409

    # Sold items take no offers
    r = client.post("/api/offers", json={"item_id": item["id"], "offer_price": 1.0}, headers=alice)
    assert r.status_code == 409


def test_cancel_handoff_restores_listing(client, signup, list_item):
    alice = signup("alice")
    signup("bob")
    item = list_item(alice)
    client.post("/api/handoff", json={"item_id": item["id"], "handoff_to": "bob"}, headers=alice)

    r = client.post("/api/cancel-handoff", json={"item_id": item["id"]}, headers=alice)
    assert r.status_code == 200
    restored = r.json()["item"]
    assert restored["status"] == "active"
    assert restored["handoff_status"] is None
    assert restored["handoff_to_username"] is None

    assert client.get("/api/confirmations", headers=alice).json() == []


def test_handoff_permissions(client, signup, list_item):
    alice = signup("alice")
    bob = signup("bob")
    carol = signup("carol")
    item = list_item(alice)

    r = client.post("/api/handoff", json={"item_id": item["id"], "handoff_to": "carol"}, headers=bob)
    assert r.status_code == 403

    r = client.post("/api/handoff", json={"item_id": item["id"], "handoff_to": "nobody"}, headers=alice)
    assert r.status_code == 404

    r = client.post("/api/handoff", json={"item_id": item["id"], "handoff_to": "alice"}, headers=alice)
    assert r.status_code == 400

    client.post("/api/handoff", json={"item_id": item["id"], "handoff_to": "bob"}, headers=alice)
    r = client.post("/api/complete-handoff", json={"item_id": item["id"]}, headers=carol)
    assert r.status_code == 403

    # A second handoff while one is pending
    r = client.post("/api/handoff", json={"item_id": item["id"], "handoff_to": "carol"}, headers=alice)
    assert r.status_code == 409


def test_handoff_declines_open_offers(client, signup, list_item, make_offer):
    alice = signup("alice")
    signup("bob")
    carol = signup("carol")
    item = list_item(alice)
    make_offer(carol, item["id"], 2.0)

    client.post("/api/handoff", json={"item_id": item["id"], "handoff_to": "bob"}, headers=alice)

    r = client.get("/api/offers", headers=carol)
    assert r.json()[0]["status"] == "declined"


def test_complete_without_pending_handoff(client, signup, list_item):
    alice = signup("alice")
    item = list_item(alice)
    r = client.post("/api/complete-handoff", json={"item_id": item["id"]}, headers=alice)
    assert r.status_code == 409
