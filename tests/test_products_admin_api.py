"""Listing creation, admin moderation, commission settings and freezes."""
import json
from datetime import datetime

import pytest

LISTING = {
    "title": "Road bike",
    "category": "sports",
    "condition": "like_new",
    "price": 420,
    "quantity": 2,
    "location": "Porto",
    "description": "Aluminium frame, 54cm.",
    "tags": ["bike", " cycling "],
    "attributes": [{"key": "size", "value": "54"}],
    "images": [{"url": "https://cdn.example.com/bike.jpg"}],
}


def test_create_draft_listing(client, database, seller, auth_headers):
    response = client.post("/api/products", json=LISTING, headers=auth_headers(seller))

    assert response.status_code == 201
    product = response.get_json()["product"]
    assert product["status"] == "draft"
    assert product["sellerId"] == str(seller["_id"])
    assert product["tags"] == ["bike", "cycling"]
    assert database.notifications.count_documents({}) == 0


def test_pending_listing_notifies_admins(client, database, seller, auth_headers):
    response = client.post(
        "/api/products", json={**LISTING, "status": "pending"}, headers=auth_headers(seller)
    )

    assert response.status_code == 201
    notification = database.notifications.find_one({})
    assert notification["type"] == "listing_submitted"
    assert notification["message"] == "New listing submitted: Road bike"


def test_create_listing_validation(client, seller, auth_headers):
    headers = auth_headers(seller)
    cases = [
        ({**LISTING, "title": ""}, "Title is required"),
        ({**LISTING, "condition": "broken"}, "Condition is required"),
        ({**LISTING, "price": -1}, "Price must be a non-negative number"),
        ({**LISTING, "quantity": 0}, "Quantity must be a positive whole number"),
        ({**LISTING, "images": [{"url": "bike.jpg"}]}, "Image URL must be valid"),
        ({**LISTING, "status": "approved"}, "Status must be 'draft' or 'pending'"),
    ]
    for body, message in cases:
        response = client.post("/api/products", json=body, headers=headers)
        assert response.status_code == 400, message
        assert response.get_json()["message"] == message


@pytest.mark.parametrize("price", ["Infinity", "NaN", "-Infinity"])
def test_create_listing_rejects_non_finite_price(client, database, seller, auth_headers, price):
    body = json.dumps({**LISTING, "price": 0}).replace('"price": 0', f'"price": {price}')

    response = client.post(
        "/api/products",
        data=body,
        content_type="application/json",
        headers=auth_headers(seller),
    )

    assert response.status_code == 400
    assert response.get_json()["message"] == "Price must be a non-negative number"
    assert database.products.count_documents({}) == 0


def test_my_listings_and_public_catalog(client, seller, make_product, auth_headers):
    approved = make_product(seller, title="Approved lamp")
    make_product(seller, status="pending", title="Pending lamp")

    mine = client.get("/api/products/mine", headers=auth_headers(seller)).get_json()
    assert len(mine["products"]) == 2

    public = client.get("/api/products").get_json()
    assert [product["title"] for product in public["products"]] == ["Approved lamp"]

    detail = client.get(f"/api/products/{approved['_id']}").get_json()
    assert detail["product"]["seller"]["email"] == "seller@example.com"


def test_pending_listing_is_hidden_from_public_detail(client, seller, make_product):
    pending = make_product(seller, status="pending")

    assert client.get(f"/api/products/{pending['_id']}").status_code == 404
    assert client.get("/api/products/not-an-id").status_code == 400


def test_admin_approves_and_rejects(client, seller, admin, make_product, auth_headers):
    pending = make_product(seller, status="pending")
    headers = auth_headers(admin)

    approved = client.patch(f"/api/admin/listings/{pending['_id']}/approve", headers=headers)
    assert approved.status_code == 200
    assert approved.get_json()["product"]["status"] == "approved"

    rejected = client.patch(f"/api/admin/listings/{pending['_id']}/reject", headers=headers)
    assert rejected.get_json()["product"]["status"] == "rejected"


def test_sold_out_listing_cannot_be_reapproved(
    client, database, seller, admin, make_product, auth_headers
):
    sold = make_product(seller, status="sold", quantity=0)

    response = client.patch(
        f"/api/admin/listings/{sold['_id']}/approve", headers=auth_headers(admin)
    )

    assert response.status_code == 400
    assert database.products.find_one({"_id": sold["_id"]})["status"] == "sold"


def test_moderation_requires_admin(client, seller, buyer, make_product, auth_headers):
    pending = make_product(seller, status="pending")

    response = client.patch(
        f"/api/admin/listings/{pending['_id']}/approve", headers=auth_headers(buyer)
    )

    assert response.status_code == 403


def test_admin_listing_filters(client, seller, admin, make_product, auth_headers):
    make_product(seller, status="pending")
    make_product(seller, status="approved")
    headers = auth_headers(admin)

    pending = client.get("/api/admin/listings?status=pending", headers=headers).get_json()
    assert [product["status"] for product in pending["products"]] == ["pending"]
    assert pending["products"][0]["seller"]["lastName"] == "Seller"

    everything = client.get("/api/admin/listings?status=all", headers=headers).get_json()
    assert len(everything["products"]) == 2

    assert client.get("/api/admin/listings?status=bogus", headers=headers).status_code == 400
    assert client.get("/api/admin/listings/not-an-id", headers=headers).status_code == 404


def test_admin_notifications_include_seller_name(client, seller, admin, auth_headers):
    client.post("/api/products", json={**LISTING, "status": "pending"}, headers=auth_headers(seller))

    data = client.get("/api/admin/notifications", headers=auth_headers(admin)).get_json()

    assert data["unreadCount"] == 1
    assert data["notifications"][0]["sellerName"] == "Sam Seller"


def test_admin_updates_commission_rate(
    client, database, seller, buyer, admin, make_product, auth_headers, delivery_payload
):
    headers = auth_headers(admin)

    response = client.put("/api/admin/commission", json={"rate": 10}, headers=headers)
    assert response.status_code == 200
    assert response.get_json()["commissionRate"] == 0.1

    current = client.get("/api/admin/commission", headers=headers).get_json()
    assert current["commissionRate"] == 0.1
    assert current["history"][0]["createdBy"] == str(admin["_id"])

    product = make_product(seller, price=100)
    order = client.post(
        "/api/orders",
        json={"productId": str(product["_id"]), "quantity": 1, "delivery": delivery_payload},
        headers=auth_headers(buyer),
    ).get_json()
    assert order["commissionRate"] == 0.1
    assert order["order"]["commissionAmount"] == 10.0
    assert order["order"]["totalAmount"] == 110.0


def test_admin_commission_rejects_invalid_rate(client, admin, auth_headers):
    response = client.put("/api/admin/commission", json={"rate": 150}, headers=auth_headers(admin))

    assert response.status_code == 400


def test_admin_freezes_and_unfreezes_user(client, database, buyer, admin, auth_headers):
    headers = auth_headers(admin)

    response = client.patch(
        f"/api/admin/users/{buyer['_id']}/freeze", json={"days": 7}, headers=headers
    )
    assert response.status_code == 200
    assert database.users.find_one({"_id": buyer["_id"]})["frozen_until"] > datetime.utcnow()

    response = client.patch(
        f"/api/admin/users/{buyer['_id']}/freeze", json={"days": 0}, headers=headers
    )
    assert response.get_json()["user"]["frozenUntil"] is None

    invalid = client.patch(
        f"/api/admin/users/{buyer['_id']}/freeze", json={"days": -2}, headers=headers
    )
    assert invalid.status_code == 400
