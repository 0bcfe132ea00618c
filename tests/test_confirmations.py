"""Tests for mutual purchase confirmation and ratings."""


def accepted_sale(client, signup, list_item, make_offer):
    seller = signup("seller")
    buyer = signup("buyer")
    item = list_item(seller)
    offer = make_offer(buyer, item["id"], 4.0)
    client.post(f"/api/offers/{offer['id']}/respond", json={"action": "accept"}, headers=seller)
    confirmation = client.get("/api/confirmations", headers=buyer).json()[0]
    return seller, buyer, item, offer, confirmation


def test_both_sides_confirm(client, signup, list_item, make_offer):
    seller, buyer, item, offer, confirmation = accepted_sale(client, signup, list_item, make_offer)
    cid = confirmation["id"]

    r = client.post(f"/api/confirmations/{cid}/confirm", json={"rating": 5}, headers=buyer)
    assert r.status_code == 200
    assert r.json()["buyer_confirmed"] is True
    assert r.json()["completed"] is False

    # Nothing moves until both have confirmed
    assert client.get("/users/seller/stats").json()["sales_count"] == 0

    r = client.post(f"/api/confirmations/{cid}/confirm", json={"rating": 4}, headers=seller)
    assert r.status_code == 200
    assert r.json()["completed"] is True

    assert client.get(f"/items/{item['id']}").json()["status"] == "sold"
    offers = client.get("/api/offers", headers=buyer).json()
    assert offers[0]["status"] == "completed"

    seller_stats = client.get("/users/seller/stats").json()
    assert seller_stats["sales_count"] == 1
    assert seller_stats["rating"] == 5.0
    assert seller_stats["rating_count"] == 1
    buyer_stats = client.get("/users/buyer/stats").json()
    assert buyer_stats["purchase_count"] == 1
    assert buyer_stats["rating"] == 4.0


def test_confirm_twice_conflicts(client, signup, list_item, make_offer):
    seller, buyer, item, offer, confirmation = accepted_sale(client, signup, list_item, make_offer)
    client.post(f"/api/confirmations/{confirmation['id']}/confirm", json={}, headers=buyer)
    r = client.post(f"/api/confirmations/{confirmation['id']}/confirm", json={}, headers=buyer)
    assert r.status_code == 409


def test_outsider_cannot_confirm(client, signup, list_item, make_offer):
    seller, buyer, item, offer, confirmation = accepted_sale(client, signup, list_item, make_offer)
    r = client.post(f"/api/confirmations/{confirmation['id']}/confirm", json={}, headers=signup("outsider"))
    assert r.status_code == 403


def test_rating_out_of_range(client, signup, list_item, make_offer):
    seller, buyer, item, offer, confirmation = accepted_sale(client, signup, list_item, make_offer)
    r = client.post(f"/api/confirmations/{confirmation['id']}/confirm", json={"rating": 6}, headers=buyer)
    assert r.status_code == 422


def test_pending_filter(client, signup, list_item, make_offer):
    seller, buyer, item, offer, confirmation = accepted_sale(client, signup, list_item, make_offer)
    client.post(f"/api/confirmations/{confirmation['id']}/confirm", json={}, headers=buyer)
    client.post(f"/api/confirmations/{confirmation['id']}/confirm", json={}, headers=seller)

    assert client.get("/api/confirmations", params={"pending": True}, headers=buyer).json() == []
    assert len(client.get("/api/confirmations", headers=buyer).json()) == 1


def test_transaction_completion_feeds_confirmation(client, signup, list_item, make_offer):
    seller, buyer, item, offer, confirmation = accepted_sale(client, signup, list_item, make_offer)
    txn = client.post("/api/transactions/start", json={"item_id": item["id"]}, headers=buyer).json()
    r = client.post(f"/api/transactions/{txn['id']}/complete",
                    json={"verification_code": txn["verification_code"]}, headers=seller)
    assert r.status_code == 200

    # The seller side was recorded by the handover; the buyer closes it out
    r = client.post(f"/api/confirmations/{confirmation['id']}/confirm", json={"rating": 5}, headers=buyer)
    assert r.status_code == 200
    assert r.json()["completed"] is True
    assert r.json()["transaction_id"] == txn["id"]
    assert client.get("/api/offers", headers=buyer).json()[0]["status"] == "completed"
    assert client.get("/users/seller/stats").json()["sales_count"] == 1


def test_handoff_confirmation(client, signup, list_item):
    alice = signup("alice")
    bob = signup("bob")
    item = list_item(alice)
    client.post("/api/handoff", json={"item_id": item["id"], "handoff_to": "bob"}, headers=alice)

    confirmation = client.get("/api/confirmations", headers=bob).json()[0]
    assert confirmation["buyer_username"] == "bob"
    assert confirmation["offer_id"] is None

    client.post(f"/api/confirmations/{confirmation['id']}/confirm", json={}, headers=bob)
    r = client.post(f"/api/confirmations/{confirmation['id']}/confirm", json={}, headers=alice)
    assert r.json()["completed"] is True

    sold = client.get(f"/items/{item['id']}").json()
    assert sold["status"] == "sold"
    assert sold["handoff_status"] == "completed"
