from datetime import datetime

import pytest

import analytics
from analytics import bucket_key, default_range, format_label, parse_date, resolve_range

NOW = datetime(2024, 6, 15, 12, 0)  # a Saturday
END_OF_DAY = (23, 59, 59, 999000)


def clock(dt):
    return (dt.hour, dt.minute, dt.second, dt.microsecond)


def test_default_ranges():
    start, end = default_range("day", NOW)
    assert start == datetime(2024, 6, 9)
    assert end.date() == NOW.date() and clock(end) == END_OF_DAY

    start, end = default_range("week", NOW)
    assert start == datetime(2024, 3, 25)
    assert start.weekday() == 0
    assert end.date() == datetime(2024, 6, 16).date() and clock(end) == END_OF_DAY

    start, end = default_range("month", NOW)
    assert start == datetime(2024, 1, 1)
    assert end.date() == NOW.date()

    start, end = default_range("year", NOW)
    assert start == datetime(2020, 1, 1)
    assert end.date() == datetime(2024, 12, 31).date()


def test_explicit_range_needs_both_ends():
    assert resolve_range("month", "2024-02-01", None, NOW) == default_range("month", NOW)
    start, end = resolve_range("month", "2024-02-01", "2024-02-29", NOW)
    assert start == datetime(2024, 2, 1)
    assert end.date() == datetime(2024, 2, 29).date() and clock(end) == END_OF_DAY


def test_parse_date_normalizes_to_naive_utc():
    assert parse_date("2024-03-01T05:00:00Z") == datetime(2024, 3, 1, 5)
    assert parse_date("2024-03-01T10:00:00+05:00") == datetime(2024, 3, 1, 5)
    with pytest.raises(ValueError):
        parse_date("yesterday")
    with pytest.raises(ValueError):
        resolve_range("day", "2024-03-02", "2024-03-01", NOW)


@pytest.mark.parametrize("dt, group_by, label", [
    (datetime(2024, 3, 7), "day", "2024-03-07"),
    (datetime(2024, 3, 7), "month", "2024-03"),
    (datetime(2024, 3, 7), "year", "2024"),
    (datetime(2024, 3, 7), "week", "2024-W10"),
    (datetime(2024, 12, 30), "week", "2025-W01"),
    (datetime(2021, 1, 3), "week", "2020-W53"),
])
def test_bucket_labels(dt, group_by, label):
    assert format_label(bucket_key(dt, group_by), group_by) == label


def test_unknown_grouping_falls_back_to_month():
    assert analytics.normalize_group_by("DAY") == "day"
    assert analytics.normalize_group_by("fortnight") == "month"
    assert analytics.normalize_group_by(None) == "month"


@pytest.fixture
def shop(db, make_product, make_user, make_order):
    phone = make_product(title="Phone", quantity=3, created_at=datetime(2024, 2, 10))
    laptop = make_product(title="Laptop", quantity=20, created_at=datetime(2024, 3, 5))
    cable = make_product(title="Cable", quantity=5, created_at=datetime(2024, 3, 20))
    make_user(email="buyer@example.com", created_at=datetime(2024, 2, 1))

    def line(product, quantity, price):
        return {"product_id": str(product["_id"]), "title": product["title"], "quantity": quantity, "price": price}

    make_order(items=[line(phone, 2, 100)], created_at=datetime(2024, 2, 15))
    make_order(items=[line(phone, 1, 100), line(laptop, 1, 500)], status="Delivered", created_at=datetime(2024, 3, 10))
    make_order(items=[line(laptop, 5, 500)], status="Cancelled", created_at=datetime(2024, 3, 11))
    make_order(items=[line(cable, 10, 10)], status="Delivered", created_at=datetime(2023, 12, 31))
    return {"phone": phone, "laptop": laptop, "cable": cable}


def test_collect_month_view(db, shop):
    data = analytics.collect_analytics(db, now=NOW)

    assert data["overview"] == {
        "total_users": 1,
        "total_products": 3,
        "total_orders": 4,
        "monthly_orders": 0,
        "total_revenue": 900,
        "avg_order_value": 300,
    }
    assert data["filters"]["group_by"] == "month"
    assert data["filters"]["from"] == datetime(2024, 1, 1)
    assert data["revenue_series"] == [
        {"label": "2024-02", "revenue": 200, "orders": 1},
        {"label": "2024-03", "revenue": 600, "orders": 1},
    ]
    assert data["users_series"] == [{"label": "2024-02", "users": 1}]
    assert data["products_series"] == [{"label": "2024-02", "products": 1}, {"label": "2024-03", "products": 2}]
    assert data["order_status_stats"] == [
        {"status": "Pending", "count": 1},
        {"status": "Delivered", "count": 1},
        {"status": "Cancelled", "count": 1},
    ]
    assert [p["title"] for p in data["low_stock_products"]] == ["Phone", "Cable"]


def test_series_labels_are_sorted(db, make_order):
    for dt in (datetime(2024, 6, 14), datetime(2024, 6, 9), datetime(2024, 6, 12), datetime(2024, 6, 9, 18)):
        make_order(items=[{"product_id": "p", "title": "t", "quantity": 1, "price": 1}], created_at=dt)
    series = analytics.collect_analytics(db, group_by="day", now=NOW)["revenue_series"]
    labels = [p["label"] for p in series]
    assert labels == sorted(labels) == ["2024-06-09", "2024-06-12", "2024-06-14"]
    assert series[0]["orders"] == 2


def test_top_products_ranking_and_pagination(db, shop):
    data = analytics.collect_analytics(db, now=NOW)
    top = data["top_products"]
    # Cancelled and out-of-range orders are not counted
    assert [(t["product"]["title"], t["total_sold"], t["revenue"]) for t in top] == [("Phone", 3, 300), ("Laptop", 1, 500)]
    assert data["top_products_pagination"] == {
        "page": 1, "limit": 10, "total": 2, "pages": 1, "sort": "total_sold", "order": "desc",
    }

    by_revenue = analytics.collect_analytics(db, now=NOW, top_sort="revenue")["top_products"]
    assert [t["product"]["title"] for t in by_revenue] == ["Laptop", "Phone"]

    page2 = analytics.collect_analytics(db, now=NOW, top_page=2, top_limit=1, top_order="asc")
    assert [t["product"]["title"] for t in page2["top_products"]] == ["Phone"]
    assert page2["top_products_pagination"]["pages"] == 2
    assert page2["top_products_pagination"]["order"] == "asc"


def test_top_products_keep_deleted_products(db, shop):
    db["product"].delete_one({"_id": shop["phone"]["_id"]})
    top = analytics.collect_analytics(db, now=NOW)["top_products"]
    assert top[0]["product_id"] == str(shop["phone"]["_id"])
    assert top[0]["product"] is None


def test_empty_database(db):
    data = analytics.collect_analytics(db, group_by="week", now=NOW)
    assert data["overview"]["total_revenue"] == 0
    assert data["revenue_series"] == []
    assert data["top_products"] == []
    assert data["top_products_pagination"]["pages"] == 1


def test_rejects_unknown_sort(db):
    with pytest.raises(ValueError):
        analytics.collect_analytics(db, top_sort="rating", now=NOW)


def test_endpoint_is_admin_only(client, user_headers):
    assert client.get("/api/analytics").status_code == 401
    assert client.get("/api/analytics", headers=user_headers).status_code == 403


def test_endpoint_with_explicit_range(client, admin_headers, shop):
    res = client.get(
        "/api/analytics",
        params={"group_by": "day", "from": "2024-03-01", "to": "2024-03-31", "top_sort": "revenue"},
        headers=admin_headers,
    )
    assert res.status_code == 200
    body = res.json()
    assert body["filters"]["group_by"] == "day"
    assert body["filters"]["from"].startswith("2024-03-01")
    assert body["revenue_series"] == [{"label": "2024-03-10", "revenue": 600, "orders": 1}]
    assert body["top_products"][0]["product"]["title"] == "Laptop"


def test_endpoint_bad_parameters(client, admin_headers):
    res = client.get("/api/analytics", params={"from": "2024-05-01", "to": "2024-04-01"}, headers=admin_headers)
    assert res.status_code == 400
    assert "error" in res.json()
    res = client.get("/api/analytics", params={"top_sort": "rating"}, headers=admin_headers)
    assert res.status_code == 400
    res = client.get("/api/analytics", params={"top_limit": 0}, headers=admin_headers)
    assert res.status_code == 400
