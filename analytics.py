"""
Admin dashboard analytics.

Reads the order, user and product collections and produces the payload served
by ``GET /api/analytics`` and consumed by the report renderers in
``exports.py``. All datetimes are naive UTC, matching what pymongo returns.
"""
import logging
import math
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from bson.errors import InvalidId
from bson.objectid import ObjectId

from config import LOW_STOCK_LIMIT, LOW_STOCK_THRESHOLD
from schemas import ORDER_STATUSES

logger = logging.getLogger(__name__)

GROUPINGS = ("day", "week", "month", "year")
TOP_SORT_FIELDS = ("total_sold", "revenue")
NOT_CANCELLED = {"status": {"$ne": "Cancelled"}}


def normalize_group_by(value: Optional[str]) -> str:
    value = (value or "month").lower()
    return value if value in GROUPINGS else "month"


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(dt: datetime) -> datetime:
    # Millisecond precision, the resolution BSON dates are stored at
    return dt.replace(hour=23, minute=59, second=59, microsecond=999000)


def start_of_week(dt: datetime) -> datetime:
    """Monday 00:00 of the week containing ``dt``."""
    return start_of_day(dt - timedelta(days=dt.weekday()))


def default_range(group_by: str, now: datetime) -> Tuple[datetime, datetime]:
    if group_by == "day":
        return start_of_day(now - timedelta(days=6)), end_of_day(now)
    if group_by == "week":
        monday = start_of_week(now)
        return monday - timedelta(weeks=11), end_of_day(monday + timedelta(days=6))
    if group_by == "year":
        return datetime(now.year - 4, 1, 1), end_of_day(datetime(now.year, 12, 31))
    # month: year to date
    return datetime(now.year, 1, 1), end_of_day(now)


def parse_date(value: str, end_of_period: bool = False) -> datetime:
    """Parse an ISO date or datetime into naive UTC.

    A bare ``YYYY-MM-DD`` is midnight, or the last millisecond of that day
    when ``end_of_period`` is set. Raises ValueError on malformed input.
    """
    text = value.strip()
    if len(text) == 10:
        parsed = datetime.strptime(text, "%Y-%m-%d")
        return end_of_day(parsed) if end_of_period else parsed
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def resolve_range(group_by: str, date_from: Optional[str], date_to: Optional[str], now: datetime) -> Tuple[datetime, datetime]:
    if not date_from or not date_to:
        return default_range(group_by, now)
    start = parse_date(date_from)
    end = parse_date(date_to, end_of_period=True)
    if start > end:
        raise ValueError("'from' must not be after 'to'")
    return start, end


def bucket_key(dt: datetime, group_by: str) -> tuple:
    if group_by == "day":
        return (dt.year, dt.month, dt.day)
    if group_by == "week":
        iso = dt.isocalendar()
        return (iso[0], iso[1])
    if group_by == "year":
        return (dt.year,)
    return (dt.year, dt.month)


def format_label(key: tuple, group_by: str) -> str:
    if group_by == "day":
        return f"{key[0]}-{key[1]:02d}-{key[2]:02d}"
    if group_by == "week":
        return f"{key[0]}-W{key[1]:02d}"
    if group_by == "year":
        return f"{key[0]}"
    return f"{key[0]}-{key[1]:02d}"


def revenue_series(db, date_match: dict, group_by: str) -> List[dict]:
    buckets = {}
    cursor = db["order"].find({**date_match, **NOT_CANCELLED}, {"created_at": 1, "total_amount": 1})
    for doc in cursor:
        bucket = buckets.setdefault(bucket_key(doc["created_at"], group_by), {"revenue": 0.0, "orders": 0})
        bucket["revenue"] += doc.get("total_amount", 0)
        bucket["orders"] += 1
    return [
        {"label": format_label(key, group_by), "revenue": round(b["revenue"], 2), "orders": b["orders"]}
        for key, b in sorted(buckets.items())
    ]


def count_series(db, collection: str, date_match: dict, group_by: str, field: str) -> List[dict]:
    counts = Counter(bucket_key(doc["created_at"], group_by) for doc in db[collection].find(date_match, {"created_at": 1}))
    return [{"label": format_label(key, group_by), field: n} for key, n in sorted(counts.items())]


def overview(db, now: datetime) -> dict:
    start_of_month = datetime(now.year, now.month, 1)
    revenue = list(db["order"].aggregate([
        {"$match": NOT_CANCELLED},
        {"$group": {
            "_id": None,
            "total_revenue": {"$sum": "$total_amount"},
            "avg_order_value": {"$avg": "$total_amount"},
        }},
    ]))
    stats = revenue[0] if revenue else {}
    return {
        "total_users": db["user"].count_documents({}),
        "total_products": db["product"].count_documents({}),
        "total_orders": db["order"].count_documents({}),
        "monthly_orders": db["order"].count_documents({"created_at": {"$gte": start_of_month}}),
        "total_revenue": round(stats.get("total_revenue") or 0, 2),
        "avg_order_value": round(stats.get("avg_order_value") or 0, 2),
    }


def _product_lookup(db, product_ids: List[str]) -> dict:
    oids = []
    for pid in product_ids:
        try:
            oids.append(ObjectId(pid))
        except (InvalidId, TypeError):
            continue
    found = db["product"].find({"_id": {"$in": oids}}, {"title": 1, "images": 1, "price": 1})
    return {
        str(p["_id"]): {"id": str(p["_id"]), "title": p.get("title"), "images": p.get("images", []), "price": p.get("price")}
        for p in found
    }


def top_products(db, date_match: dict, page: int, limit: int, sort: str, order: str) -> Tuple[List[dict], dict]:
    """Products ranked by units sold or revenue, one page at a time.

    Rows whose product has since been deleted keep their place in the ranking
    with ``product`` set to None.
    """
    if sort not in TOP_SORT_FIELDS:
        raise ValueError(f"top_sort must be one of {', '.join(TOP_SORT_FIELDS)}")
    direction = 1 if order == "asc" else -1
    base = [
        {"$match": {**date_match, **NOT_CANCELLED}},
        {"$unwind": "$items"},
        {"$group": {
            "_id": "$items.product_id",
            "total_sold": {"$sum": "$items.quantity"},
            "revenue": {"$sum": {"$multiply": ["$items.quantity", "$items.price"]}},
        }},
    ]
    skip = (page - 1) * limit
    rows = list(db["order"].aggregate(base + [
        {"$sort": {sort: direction, "_id": 1}},
        {"$skip": skip},
        {"$limit": limit},
    ]))
    counted = list(db["order"].aggregate(base + [{"$count": "count"}]))
    total = counted[0]["count"] if counted else 0

    products = _product_lookup(db, [r["_id"] for r in rows])
    ranked = [
        {
            "product_id": r["_id"],
            "total_sold": r["total_sold"],
            "revenue": round(r["revenue"], 2),
            "product": products.get(r["_id"]),
        }
        for r in rows
    ]
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) or 1,
        "sort": sort,
        "order": "asc" if direction == 1 else "desc",
    }
    return ranked, pagination


def order_status_stats(db, date_match: dict) -> List[dict]:
    rows = db["order"].aggregate([
        {"$match": date_match},
        {"$group": {"_id": "$status", "count": {"$sum": 1}}},
    ])
    rank = {s: i for i, s in enumerate(ORDER_STATUSES)}
    stats = [{"status": r["_id"], "count": r["count"]} for r in rows]
    return sorted(stats, key=lambda s: (rank.get(s["status"], len(rank)), str(s["status"])))


def low_stock_products(db) -> List[dict]:
    cursor = (
        db["product"]
        .find({"quantity": {"$lte": LOW_STOCK_THRESHOLD}}, {"title": 1, "quantity": 1})
        .sort("quantity", 1)
        .limit(LOW_STOCK_LIMIT)
    )
    return [{"id": str(p["_id"]), "title": p.get("title"), "quantity": p.get("quantity", 0)} for p in cursor]


def collect_analytics(
    db,
    group_by: Optional[str] = "month",
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    top_page: int = 1,
    top_limit: int = 10,
    top_sort: str = "total_sold",
    top_order: str = "desc",
    now: Optional[datetime] = None,
) -> dict:
    """Build the full dashboard payload.

    Raises ValueError for malformed dates, an inverted range or an unknown
    ``top_sort``.
    """
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    group_by = normalize_group_by(group_by)
    top_order = "asc" if (top_order or "").lower() == "asc" else "desc"
    start, end = resolve_range(group_by, date_from, date_to, now)
    date_match = {"created_at": {"$gte": start, "$lte": end}}
    logger.debug("Collecting analytics group_by=%s from=%s to=%s", group_by, start, end)

    top, top_pagination = top_products(db, date_match, top_page, top_limit, top_sort, top_order)
    return {
        "overview": overview(db, now),
        "filters": {"group_by": group_by, "from": start, "to": end},
        "revenue_series": revenue_series(db, date_match, group_by),
        "users_series": count_series(db, "user", date_match, group_by, "users"),
        "products_series": count_series(db, "product", date_match, group_by, "products"),
        "top_products": top,
        "top_products_pagination": top_pagination,
        "order_status_stats": order_status_stats(db, date_match),
        "low_stock_products": low_stock_products(db),
    }
