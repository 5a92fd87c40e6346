"""
Pytest fixtures for the marketplace API tests

The app runs against a mongomock database, notifications are delivered
inline and the commission rate is pinned to 5%.
"""
from datetime import datetime

import bcrypt
import mongomock
import pytest
from flask_jwt_extended import create_access_token

from marketplace import create_app

TEST_PASSWORD = "secret123"
ADMIN_EMAIL = "admin@example.com"


@pytest.fixture
def database():
    return mongomock.MongoClient()["marketplace_test"]


@pytest.fixture
def app(database):
    return create_app(
        {
            "TESTING": True,
            "JWT_SECRET_KEY": "test-secret-key-with-enough-length-for-hs256",
            "COMMISSION_RATE": "0.05",
            "DEFAULT_ADMIN_EMAIL": ADMIN_EMAIL,
            "REDIS_URL": "",
        },
        database=database,
    )


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(database):
    counter = {"value": 0}

    def _make_user(role="user", email=None, **fields):
        counter["value"] += 1
        now = datetime.utcnow()
        document = {
            "first_name": fields.pop("first_name", "Test"),
            "last_name": fields.pop("last_name", f"User{counter['value']}"),
            "email": email or f"user{counter['value']}@example.com",
            "phone": "+15550000000",
            "gender": "other",
            "address": "1 Market Street",
            "password": bcrypt.hashpw(TEST_PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)),
            "role": role,
            "created_at": now,
            "updated_at": now,
        }
        document.update(fields)
        document["_id"] = database.users.insert_one(document).inserted_id
        return document

    return _make_user


@pytest.fixture
def make_product(database):
    def _make_product(seller, status="approved", quantity=5, price=19.99, **fields):
        now = datetime.utcnow()
        document = {
            "seller_id": seller["_id"],
            "title": fields.pop("title", "Vintage lamp"),
            "category": "home",
            "condition": "good",
            "price": price,
            "negotiable": False,
            "quantity": quantity,
            "location": "Lisbon",
            "description": "Brass lamp in working order.",
            "tags": [],
            "attributes": [],
            "images": [],
            "status": status,
            "created_at": now,
            "updated_at": now,
        }
        document.update(fields)
        document["_id"] = database.products.insert_one(document).inserted_id
        return document

    return _make_product


@pytest.fixture
def make_blog(database):
    def _make_blog(author, status="approved", **fields):
        now = datetime.utcnow()
        document = {
            "author_id": author["_id"],
            "title": fields.pop("title", "Restoring a brass lamp"),
            "description": "Steps for cleaning and rewiring an old lamp.",
            "tags": ["diy"],
            "images": [],
            "status": status,
            "created_at": now,
            "updated_at": now,
        }
        document.update(fields)
        document["_id"] = database.blogs.insert_one(document).inserted_id
        return document

    return _make_blog


@pytest.fixture
def auth_headers(app):
    def _auth_headers(user):
        with app.app_context():
            token = create_access_token(identity=str(user["_id"]))
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture
def seller(make_user):
    return make_user(first_name="Sam", last_name="Seller", email="seller@example.com")


@pytest.fixture
def buyer(make_user):
    return make_user(first_name="Bea", last_name="Buyer", email="buyer@example.com")


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", email=ADMIN_EMAIL)


@pytest.fixture
def delivery_payload():
    return {
        "name": "Bea Buyer",
        "email": "bea@example.com",
        "phone": "+351900000000",
        "address": "Rua Augusta 10",
        "city": "Lisbon",
        "postalCode": "1100-053",
    }
