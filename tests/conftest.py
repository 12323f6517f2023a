import os

os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"

import mongomock
import pytest
from bson.objectid import ObjectId

import database

# Every module does `from database import db`, so the mock has to be in place
# before any of them is imported.
database.db = mongomock.MongoClient()["storefront_test"]

from fastapi.testclient import TestClient  # noqa: E402

import main  # noqa: E402
from auth import hash_password, token_for_user  # noqa: E402
from database import create_document  # noqa: E402


def insert(db, collection, doc):
    return db[collection].find_one({"_id": ObjectId(create_document(collection, doc))})


@pytest.fixture(autouse=True)
def clean_db():
    yield
    for name in database.db.list_collection_names():
        database.db.drop_collection(name)


@pytest.fixture
def db():
    return database.db


@pytest.fixture
def client():
    return TestClient(main.app)


@pytest.fixture
def make_user(db):
    def _make(email="jane@example.com", role="user", password="secret123", name="Jane", **extra):
        doc = {
            "name": name,
            "email": email,
            "password_hash": hash_password(password),
            "contact": "",
            "address": "",
            "role": role,
        }
        doc.update(extra)
        return insert(db, "user", doc)
    return _make


@pytest.fixture
def make_product(db):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        doc = {
            "title": f"Product {counter['n']}",
            "description": "A thing",
            "category": "Phones",
            "price": 100.0,
            "original_price": 100.0,
            "discount_percentage": 0,
            "is_on_sale": False,
            "sale_end_date": None,
            "quantity": 10,
            "brand": "Acme",
            "model": "X1",
            "variant": "",
            "images": ["https://img.example.com/1.jpg"],
        }
        doc.update(overrides)
        return insert(db, "product", doc)
    return _make


@pytest.fixture
def make_order(db):
    def _make(user_id="u1", items=(), status="Pending", **extra):
        items = [dict(it) for it in items]
        doc = {
            "user_id": user_id,
            "items": items,
            "total_amount": sum(it["price"] * it["quantity"] for it in items),
            "status": status,
            "shipping_address": {"name": "", "address": "", "contact": ""},
        }
        doc.update(extra)
        return insert(db, "order", doc)
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {token_for_user(user)}"}
    return _headers


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", role="admin", name="Admin")


@pytest.fixture
def customer(make_user):
    return make_user()


@pytest.fixture
def admin_headers(admin, auth_headers):
    return auth_headers(admin)


@pytest.fixture
def user_headers(customer, auth_headers):
    return auth_headers(customer)
