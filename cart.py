"""
Cart and wishlist mutations.

Each function takes the current list of line items (plain dicts as stored in
the ``cart`` / ``wishlist`` collections) and returns a new list; the caller
persists the result. Lines are keyed by ``product_id``.
"""
from typing import List


def product_snapshot(product: dict) -> dict:
    images = product.get("images") or []
    return {
        "product_id": str(product["_id"]),
        "title": product.get("title", ""),
        "price": float(product.get("price", 0)),
        "image": images[0] if images else None,
    }


def add_item(items: List[dict], product: dict, quantity: int = 1) -> List[dict]:
    snapshot = product_snapshot(product)
    if any(it["product_id"] == snapshot["product_id"] for it in items):
        return [
            {**it, "quantity": it["quantity"] + quantity} if it["product_id"] == snapshot["product_id"] else it
            for it in items
        ]
    return items + [{**snapshot, "quantity": quantity}]


def remove_item(items: List[dict], product_id: str) -> List[dict]:
    return [it for it in items if it["product_id"] != product_id]


def update_quantity(items: List[dict], product_id: str, quantity: int) -> List[dict]:
    if quantity <= 0:
        return remove_item(items, product_id)
    return [{**it, "quantity": quantity} if it["product_id"] == product_id else it for it in items]


def total_items(items: List[dict]) -> int:
    return sum(it["quantity"] for it in items)


def total_price(items: List[dict]) -> float:
    return sum(it["price"] * it["quantity"] for it in items)


def summarize(items: List[dict]) -> dict:
    return {
        "items": items,
        "total_items": total_items(items),
        "unique_items": len(items),
        "total_price": round(total_price(items), 2),
    }


# Wishlist

def add_to_wishlist(items: List[dict], product: dict) -> List[dict]:
    snapshot = product_snapshot(product)
    if in_wishlist(items, snapshot["product_id"]):
        return items
    return items + [snapshot]


def in_wishlist(items: List[dict], product_id: str) -> bool:
    return any(it["product_id"] == product_id for it in items)
