from bson.objectid import ObjectId

import main
from database import ensure_indexes


def test_admin_lists_users_without_hashes(client, admin_headers, make_user):
    make_user(email="a@example.com")
    make_user(email="b@example.com")
    res = client.get("/api/users?limit=2", headers=admin_headers)
    assert res.status_code == 200
    body = res.json()
    assert body["pagination"]["total"] == 3
    assert len(body["users"]) == 2
    assert all("password_hash" not in u for u in body["users"])


def test_non_admin_cannot_list_users(client, user_headers):
    assert client.get("/api/users", headers=user_headers).status_code == 403


def test_user_updates_own_profile_but_not_role(client, customer, user_headers, db):
    res = client.put(
        f"/api/users/{customer['_id']}",
        json={"name": "Jane Doe", "address": "2 Canal Bank", "role": "admin", "password": "ignored"},
        headers=user_headers,
    )
    assert res.status_code == 200
    body = res.json()
    assert body["name"] == "Jane Doe"
    assert body["address"] == "2 Canal Bank"
    assert body["role"] == "user"
    saved = db["user"].find_one({"_id": customer["_id"]})
    assert saved["password_hash"] == customer["password_hash"]


def test_user_cannot_update_someone_else(client, make_user, user_headers):
    other = make_user(email="other@example.com")
    res = client.put(f"/api/users/{other['_id']}", json={"name": "Hacked"}, headers=user_headers)
    assert res.status_code == 403
    assert res.json() == {"error": "Access denied"}


def test_admin_can_promote_and_email_must_be_unique(client, customer, admin, admin_headers):
    res = client.put(f"/api/users/{customer['_id']}", json={"role": "admin"}, headers=admin_headers)
    assert res.json()["role"] == "admin"

    res = client.put(f"/api/users/{customer['_id']}", json={"email": admin["email"]}, headers=admin_headers)
    assert res.status_code == 400
    assert res.json() == {"error": "Email already in use"}


def test_admin_deletes_user(client, customer, admin_headers, db):
    assert client.delete(f"/api/users/{customer['_id']}", headers=admin_headers).status_code == 200
    assert db["user"].find_one({"_id": customer["_id"]}) is None
    assert client.delete(f"/api/users/{ObjectId()}", headers=admin_headers).status_code == 404


def test_site_settings_created_lazily(client, db):
    assert db["sitesettings"].count_documents({}) == 0
    res = client.get("/api/site-settings")
    assert res.status_code == 200
    assert res.json()["about_content"] == "Welcome to our amazing e-commerce store!"
    client.get("/api/site-settings")
    assert db["sitesettings"].count_documents({}) == 1


def test_site_settings_update_is_admin_only(client, user_headers, admin_headers, db):
    assert client.put("/api/site-settings", json={"business_name": "X"}, headers=user_headers).status_code == 403

    res = client.put("/api/site-settings", json={"business_name": "Hafiz Tech", "header_logo": "https://cdn/logo.png"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["business_name"] == "Hafiz Tech"
    assert res.json()["about_content"] == "Welcome to our amazing e-commerce store!"
    assert db["sitesettings"].count_documents({}) == 1


def test_email_race_lost_to_unique_index_is_400(client, customer, make_user, user_headers, db, monkeypatch):
    ensure_indexes()
    other = make_user(email="taken@example.com")
    # Another request claims the email between the check and the write
    monkeypatch.setattr(main, "email_taken", lambda email, exclude_id: False)
    res = client.put(f"/api/users/{customer['_id']}", json={"email": other["email"]}, headers=user_headers)
    assert res.status_code == 400
    assert res.json() == {"error": "Email already in use"}
    assert db["user"].find_one({"_id": customer["_id"]})["email"] == customer["email"]
