"""
Remove order lines that point at deleted products.

Orders keep a snapshot of each line, so deleting a product leaves lines behind
that analytics can no longer resolve. This drops those lines and recomputes
``total_amount`` for every order it touches.

Usage: python cleanup_orders.py
"""
import logging

from bson.errors import InvalidId
from bson.objectid import ObjectId

import database
from config import LOG_LEVEL

logger = logging.getLogger("cleanup_orders")


def existing_product_ids(db, product_ids) -> set:
    oids = []
    for pid in product_ids:
        try:
            oids.append(ObjectId(pid))
        except (InvalidId, TypeError):
            continue
    return {str(p["_id"]) for p in db["product"].find({"_id": {"$in": oids}}, {"_id": 1})}


def cleanup_orders(db=None) -> int:
    """Returns the number of orders that were rewritten."""
    db = db if db is not None else database.db
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    updated = 0
    for order in db["order"].find({}):
        items = order.get("items", [])
        alive = existing_product_ids(db, [it.get("product_id") for it in items])
        valid = [it for it in items if it.get("product_id") in alive]
        if len(valid) == len(items):
            continue
        for it in items:
            if it.get("product_id") not in alive:
                logger.info("Removing deleted product %s from order %s", it.get("product_id"), order["_id"])
        total = sum(it["price"] * it["quantity"] for it in valid)
        db["order"].update_one(
            {"_id": order["_id"]},
            {"$set": {"items": valid, "total_amount": total, "updated_at": database.utcnow()}},
        )
        logger.info("Updated order %s", order["_id"])
        updated += 1

    logger.info("Cleanup completed, %d orders updated", updated)
    return updated


if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    cleanup_orders()
