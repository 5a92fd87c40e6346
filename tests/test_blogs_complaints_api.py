"""Blog posts with comments and feedback, admin blog moderation and complaints."""
from datetime import datetime, timedelta

from bson import ObjectId

BLOG = {
    "title": "Choosing a used road bike",
    "description": "What to check before buying second hand.",
    "tags": ["bikes", " buying "],
    "images": [{"url": "https://cdn.example.com/frame.jpg"}],
}


def test_create_blog_defaults_to_pending_and_notifies_admins(
    client, database, seller, admin, auth_headers
):
    response = client.post("/api/blogs", json=BLOG, headers=auth_headers(seller))

    assert response.status_code == 201
    blog = response.get_json()["blog"]
    assert blog["status"] == "pending"
    assert blog["tags"] == ["bikes", "buying"]
    assert blog["authorId"] == str(seller["_id"])

    notification = database.notifications.find_one({"type": "blog_submitted"})
    assert notification["message"] == "New blog submitted: Choosing a used road bike"
    assert str(notification["blog_id"]) == blog["id"]

    admin_view = client.get("/api/admin/notifications", headers=auth_headers(admin)).get_json()
    assert admin_view["notifications"][0]["blogId"] == blog["id"]
    assert admin_view["notifications"][0]["sellerName"] == "Sam Seller"


def test_draft_blog_does_not_notify(client, database, seller, auth_headers):
    response = client.post(
        "/api/blogs", json={**BLOG, "status": "draft"}, headers=auth_headers(seller)
    )

    assert response.status_code == 201
    assert database.notifications.count_documents({}) == 0


def test_create_blog_validation(client, seller, auth_headers):
    headers = auth_headers(seller)
    cases = [
        ({**BLOG, "title": "  "}, "Title is required"),
        ({**BLOG, "description": ""}, "Description is required"),
        ({**BLOG, "images": [{"url": "frame.jpg"}]}, "Image URL must be valid"),
        ({**BLOG, "status": "approved"}, "Status must be 'draft' or 'pending'"),
        ({**BLOG, "author": "someone"}, "Unrecognized field: author"),
    ]
    for body, message in cases:
        response = client.post("/api/blogs", json=body, headers=headers)
        assert response.status_code == 400, message
        assert response.get_json()["message"] == message


def test_public_blog_list_shows_approved_posts_with_counts(
    client, database, seller, buyer, make_blog
):
    approved = make_blog(seller)
    make_blog(seller, status="pending", title="Not yet reviewed")
    database.blog_comments.insert_one(
        {
            "blog_id": approved["_id"],
            "user_id": buyer["_id"],
            "comment": "Useful",
            "created_at": datetime.utcnow(),
        }
    )
    database.blog_feedback.insert_one(
        {"blog_id": approved["_id"], "user_id": buyer["_id"], "helpful": True}
    )

    data = client.get("/api/blogs").get_json()

    assert data["total"] == 1
    blog = data["blogs"][0]
    assert blog["title"] == "Restoring a brass lamp"
    assert blog["author"]["name"] == "Sam Seller"
    assert blog["commentCount"] == 1
    assert blog["helpfulCount"] == 1
    assert blog["notHelpfulCount"] == 0


def test_blog_list_search_and_pagination(client, seller, make_blog):
    now = datetime.utcnow()
    for offset, title in enumerate(["Lamp wiring", "Bike tyres", "Lamp shades"]):
        make_blog(seller, title=title, created_at=now - timedelta(minutes=offset))

    first_page = client.get("/api/blogs?limit=2").get_json()
    assert first_page["total"] == 3
    assert first_page["pageSize"] == 2
    assert [blog["title"] for blog in first_page["blogs"]] == ["Lamp wiring", "Bike tyres"]

    second_page = client.get("/api/blogs?limit=2&page=2").get_json()
    assert [blog["title"] for blog in second_page["blogs"]] == ["Lamp shades"]

    search = client.get("/api/blogs?search=TYRES").get_json()
    assert [blog["title"] for blog in search["blogs"]] == ["Bike tyres"]


def test_blog_detail_and_mine(client, seller, make_blog, auth_headers):
    approved = make_blog(seller)
    pending = make_blog(seller, status="pending")

    detail = client.get(f"/api/blogs/{approved['_id']}").get_json()
    assert detail["blog"]["commentCount"] == 0
    assert client.get(f"/api/blogs/{pending['_id']}").status_code == 404
    assert client.get("/api/blogs/not-an-id").status_code == 400

    mine = client.get("/api/blogs/mine", headers=auth_headers(seller)).get_json()
    assert len(mine["blogs"]) == 2


def test_comment_on_approved_blog(client, seller, buyer, make_blog, auth_headers):
    blog = make_blog(seller)
    headers = auth_headers(buyer)

    created = client.post(
        f"/api/blogs/{blog['_id']}/comments", json={"comment": " Great tips "}, headers=headers
    )
    assert created.status_code == 201
    assert created.get_json()["comment"]["comment"] == "Great tips"

    comments = client.get(f"/api/blogs/{blog['_id']}/comments").get_json()["comments"]
    assert [comment["user"]["name"] for comment in comments] == ["Bea Buyer"]

    empty = client.post(
        f"/api/blogs/{blog['_id']}/comments", json={"comment": ""}, headers=headers
    )
    assert empty.status_code == 400
    assert empty.get_json()["message"] == "Comment is required"


def test_comment_on_pending_blog_is_rejected(client, seller, buyer, make_blog, auth_headers):
    blog = make_blog(seller, status="pending")

    response = client.post(
        f"/api/blogs/{blog['_id']}/comments",
        json={"comment": "First!"},
        headers=auth_headers(buyer),
    )

    assert response.status_code == 404


def test_feedback_vote_is_replaced_not_duplicated(
    client, database, seller, buyer, make_blog, auth_headers
):
    blog = make_blog(seller)
    headers = auth_headers(buyer)
    url = f"/api/blogs/{blog['_id']}/feedback"

    first = client.post(url, json={"helpful": True}, headers=headers).get_json()
    assert first == {"feedback": {"helpful": True}, "helpfulCount": 1, "notHelpfulCount": 0}

    second = client.post(url, json={"helpful": False}, headers=headers).get_json()
    assert second["helpfulCount"] == 0
    assert second["notHelpfulCount"] == 1
    assert database.blog_feedback.count_documents({}) == 1

    mine = client.get(f"{url}/me", headers=headers).get_json()
    assert mine == {"feedback": {"helpful": False}}

    invalid = client.post(url, json={"helpful": "yes"}, headers=headers)
    assert invalid.status_code == 400


def test_admin_moderates_blogs(client, seller, buyer, admin, make_blog, auth_headers):
    pending = make_blog(seller, status="pending")
    make_blog(seller, status="approved")
    headers = auth_headers(admin)

    listing = client.get("/api/admin/blogs?status=pending", headers=headers).get_json()
    assert listing["total"] == 1
    assert listing["blogs"][0]["author"]["name"] == "Sam Seller"

    approved = client.patch(f"/api/admin/blogs/{pending['_id']}/approve", headers=headers)
    assert approved.get_json()["blog"]["status"] == "approved"
    assert client.get(f"/api/blogs/{pending['_id']}").status_code == 200

    rejected = client.patch(f"/api/admin/blogs/{pending['_id']}/reject", headers=headers)
    assert rejected.get_json()["blog"]["status"] == "rejected"

    missing = client.patch(f"/api/admin/blogs/{ObjectId()}/approve", headers=headers)
    assert missing.status_code == 404
    assert client.get("/api/admin/blogs?status=bogus", headers=headers).status_code == 400
    assert client.patch(
        f"/api/admin/blogs/{pending['_id']}/approve", headers=auth_headers(buyer)
    ).status_code == 403


def test_create_complaint_about_product(client, seller, buyer, make_product, auth_headers):
    product = make_product(seller)

    response = client.post(
        "/api/complaints",
        json={
            "subject": "Item not as described",
            "message": "The lamp arrived without its shade.",
            "productId": str(product["_id"]),
            "imageUrl": "https://cdn.example.com/lamp.jpg",
        },
        headers=auth_headers(buyer),
    )

    assert response.status_code == 201
    complaint = response.get_json()["complaint"]
    assert complaint["status"] == "open"
    assert complaint["product"] == {"id": str(product["_id"]), "title": "Vintage lamp"}
    assert complaint["adminReply"] is None


def test_complaint_validation(client, buyer, auth_headers):
    headers = auth_headers(buyer)
    valid = {"subject": "Late delivery", "message": "Still waiting after two weeks."}
    cases = [
        ({**valid, "subject": "Hi"}, 400, "Subject is required"),
        ({**valid, "message": "Too short"}, 400, "Message is required"),
        ({**valid, "imageUrl": "photo.jpg"}, 400, "Image URL must be valid"),
        ({**valid, "productId": "nope"}, 400, "Invalid product id"),
        ({**valid, "productId": str(ObjectId())}, 404, "Product not found"),
        ({**valid, "priority": "high"}, 400, "Unrecognized field: priority"),
    ]
    for body, status, message in cases:
        response = client.post("/api/complaints", json=body, headers=headers)
        assert response.status_code == status, message
        assert response.get_json()["message"] == message


def test_admin_reply_shows_in_my_complaints(client, buyer, admin, auth_headers):
    created = client.post(
        "/api/complaints",
        json={"subject": "Refund request", "message": "The seller never answered my messages."},
        headers=auth_headers(buyer),
    ).get_json()["complaint"]

    listing = client.get(
        "/api/admin/complaints?status=open", headers=auth_headers(admin)
    ).get_json()
    assert listing["complaints"][0]["userName"] == "Bea Buyer"

    reply = client.patch(
        f"/api/admin/complaints/{created['id']}/reply",
        json={"message": "We have contacted the seller."},
        headers=auth_headers(admin),
    )
    assert reply.status_code == 200

    mine = client.get("/api/complaints/mine", headers=auth_headers(buyer)).get_json()
    complaint = mine["complaints"][0]
    assert complaint["status"] == "replied"
    assert complaint["adminReply"]["message"] == "We have contacted the seller."
    assert complaint["product"] is None
