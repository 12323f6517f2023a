import logging
import math
import os
import re
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from bson.errors import InvalidId
from bson.objectid import ObjectId
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import analytics
import cart as cart_ops
import exports
from auth import (
    MAX_PASSWORD_BYTES,
    clear_auth_cookie,
    get_current_user,
    hash_password,
    password_too_long,
    public_user,
    require_admin,
    set_auth_cookie,
    token_for_user,
    verify_password,
)
from config import (
    ADMIN_EMAIL,
    ADMIN_NAME,
    ADMIN_PASSWORD,
    BUSINESS_NAME,
    CORS_ORIGINS,
    LOG_LEVEL,
    PORT,
    RELATED_PRODUCTS_LIMIT,
)
from database import create_document, db, ensure_indexes, utcnow
from schemas import (
    Order as OrderSchema,
    OrderItem,
    OrderStatus,
    Product as ProductSchema,
    ShippingAddress,
    SiteSettings as SiteSettingsSchema,
    User as UserSchema,
)

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger("storefront")


def bootstrap_admin():
    if db is None or not (ADMIN_EMAIL and ADMIN_PASSWORD):
        return
    if db["user"].count_documents({"role": "admin"}) > 0:
        return
    if password_too_long(ADMIN_PASSWORD):
        logger.error("ADMIN_PASSWORD is longer than %d bytes, bootstrap admin not created", MAX_PASSWORD_BYTES)
        return
    admin = UserSchema(name=ADMIN_NAME, email=ADMIN_EMAIL, password_hash=hash_password(ADMIN_PASSWORD), role="admin")
    create_document("user", admin)
    logger.info("Created bootstrap admin %s", ADMIN_EMAIL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes()
    bootstrap_admin()
    yield


app = FastAPI(title="Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------- Errors -----------------------
@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = f"{where}: {first.get('msg')}" if where else first.get("msg", "Invalid request")
    return JSONResponse({"error": message}, status_code=400)


@app.exception_handler(Exception)
async def server_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Server error"}, status_code=500)


# ----------------------- Utils -----------------------
def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
        elif isinstance(v, datetime):
            doc[k] = v.isoformat()
        elif isinstance(v, dict):
            doc[k] = serialize_doc(v)
        elif isinstance(v, list):
            doc[k] = [serialize_doc(i) if isinstance(i, dict) else i for i in v]
    return doc


def to_object_id(value: str, what: str = "id") -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {what}")


def paginate(page: int, limit: int, total: int) -> dict:
    return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)}


def icontains(value: str) -> dict:
    return {"$regex": re.escape(value), "$options": "i"}


# ----------------------- Models -----------------------
class RegisterBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    contact: str = ""
    address: str = ""

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        if password_too_long(v):
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return v


class LoginBody(BaseModel):
    email: EmailStr
    password: str


class ProductCreateBody(ProductSchema):
    pass


class ProductUpdateBody(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    discount_percentage: Optional[float] = Field(None, ge=0, le=100)
    is_on_sale: Optional[bool] = None
    sale_end_date: Optional[datetime] = None
    quantity: Optional[int] = Field(None, ge=0)
    brand: Optional[str] = None
    model: Optional[str] = None
    variant: Optional[str] = None
    images: Optional[List[str]] = None


class DiscountUpdate(BaseModel):
    id: Optional[str] = Field(None, validation_alias=AliasChoices("id", "_id"))
    original_price: Optional[float] = None
    discount_percentage: Optional[float] = None
    price: Optional[float] = None
    is_on_sale: bool = False
    sale_end_date: Optional[datetime] = None


class BulkDiscountBody(BaseModel):
    updates: Optional[List[DiscountUpdate]] = None


class CheckoutItem(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class CheckoutBody(BaseModel):
    items: List[CheckoutItem]
    shipping_address: ShippingAddress = ShippingAddress()


class OrderStatusBody(BaseModel):
    status: OrderStatus


class UserUpdateBody(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    contact: Optional[str] = None
    address: Optional[str] = None
    role: Optional[str] = Field(None, pattern="^(user|admin)$")


class SiteSettingsUpdateBody(BaseModel):
    business_name: Optional[str] = None
    header_logo: Optional[str] = None
    footer_logo: Optional[str] = None
    about_content: Optional[str] = None


class CartAddBody(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class CartQuantityBody(BaseModel):
    quantity: int


class WishlistAddBody(BaseModel):
    product_id: str


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "Storefront API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if db is not None:
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = db.list_collection_names()[:10]
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
@app.post("/api/auth/register", status_code=201)
def register(body: RegisterBody, response: Response):
    email = body.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User already exists")
    user = UserSchema(
        name=body.name,
        email=email,
        password_hash=hash_password(body.password),
        contact=body.contact,
        address=body.address,
    )
    try:
        user_id = create_document("user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User already exists")
    saved = db["user"].find_one({"_id": ObjectId(user_id)})
    token = token_for_user(saved)
    set_auth_cookie(response, token)
    logger.info("Registered user %s", user_id)
    return {"user": public_user(saved), "token": token}


@app.post("/api/auth/login")
def login(body: LoginBody, response: Response):
    user = db["user"].find_one({"email": body.email.lower()})
    if not user or not verify_password(body.password, user.get("password_hash", "")):
        raise HTTPException(status_code=400, detail="Invalid credentials")
    token = token_for_user(user)
    set_auth_cookie(response, token)
    return {"user": public_user(user), "token": token}


@app.post("/api/auth/logout")
def logout(response: Response):
    clear_auth_cookie(response)
    return {"message": "Logged out successfully"}


@app.get("/api/auth/me")
def me(user=Depends(get_current_user)):
    return user


# ----------------------- Products -----------------------
PRODUCT_SORTS = {
    "price-low": ("price", 1),
    "price-high": ("price", -1),
    "newest": ("created_at", -1),
    "oldest": ("created_at", 1),
}


@app.get("/api/products")
def list_products(
    search: str = "",
    category: str = "",
    brand: str = "",
    model: str = "",
    min_price: float = 0,
    max_price: Optional[float] = None,
    sort: str = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
):
    filt = {}
    if search:
        filt["$or"] = [{field: icontains(search)} for field in ("title", "description", "brand", "model")]
    if category:
        filt["category"] = icontains(category)
    if brand:
        filt["brand"] = icontains(brand)
    if model:
        filt["model"] = icontains(model)
    price = {"$gte": min_price}
    if max_price is not None:
        price["$lte"] = max_price
    filt["price"] = price

    sort_field, direction = PRODUCT_SORTS.get(sort, PRODUCT_SORTS["newest"])
    skip = (page - 1) * limit
    items = db["product"].find(filt).sort(sort_field, direction).skip(skip).limit(limit)
    total = db["product"].count_documents(filt)
    return {"products": [serialize_doc(i) for i in items], "pagination": paginate(page, limit, total)}


@app.post("/api/products", status_code=201)
def create_product(body: ProductCreateBody, user=Depends(require_admin)):
    pid = create_document("product", body)
    logger.info("Product %s created by %s", pid, user["id"])
    return serialize_doc(db["product"].find_one({"_id": ObjectId(pid)}))


@app.get("/api/products/filters")
def product_filters():
    return {
        "categories": [c for c in db["product"].distinct("category") if c],
        "brands": [b for b in db["product"].distinct("brand") if b],
        "models": [m for m in db["product"].distinct("model") if m],
    }


@app.get("/api/products/related/{product_id}")
def related_products(product_id: str):
    oid = to_object_id(product_id, "product id")
    product = db["product"].find_one({"_id": oid})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    items = (
        db["product"]
        .find({"category": icontains(product.get("category", "")), "_id": {"$ne": oid}})
        .sort("created_at", -1)
        .limit(RELATED_PRODUCTS_LIMIT)
    )
    return {"products": [serialize_doc(i) for i in items]}


@app.put("/api/products/bulk-discount")
def bulk_discount(body: BulkDiscountBody, user=Depends(require_admin)):
    updates = body.updates or []
    if not updates:
        raise HTTPException(status_code=400, detail="No updates provided")
    # Validate everything before the first write
    for update in updates:
        if not update.id:
            raise HTTPException(status_code=400, detail="Product ID is required for all updates")
        if update.discount_percentage is not None and not 0 <= update.discount_percentage <= 100:
            raise HTTPException(status_code=400, detail="Discount percentage must be between 0 and 100")
        to_object_id(update.id, "product id")

    updated = 0
    for update in updates:
        fields = {
            "original_price": update.original_price,
            "discount_percentage": update.discount_percentage or 0,
            "price": update.price,
            "is_on_sale": update.is_on_sale,
            "sale_end_date": update.sale_end_date,
            "updated_at": utcnow(),
        }
        if fields["price"] is None and update.original_price is not None:
            fields["price"] = round(update.original_price * (1 - fields["discount_percentage"] / 100), 2)
        fields = {k: v for k, v in fields.items() if v is not None or k == "sale_end_date"}
        res = db["product"].update_one({"_id": ObjectId(update.id)}, {"$set": fields})
        updated += res.matched_count

    if updated == 0:
        raise HTTPException(status_code=400, detail="No products were updated")
    logger.info("Bulk discount applied to %d/%d products by %s", updated, len(updates), user["id"])
    return {
        "message": f"Successfully updated {updated} products",
        "updated_count": updated,
        "total_requested": len(updates),
    }


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    item = db["product"].find_one({"_id": to_object_id(product_id, "product id")})
    if not item:
        raise HTTPException(status_code=404, detail="Product not found")
    return serialize_doc(item)


@app.put("/api/products/{product_id}")
def update_product(product_id: str, body: ProductUpdateBody, user=Depends(require_admin)):
    update = body.model_dump(exclude_none=True)
    update["updated_at"] = utcnow()
    item = db["product"].find_one_and_update(
        {"_id": to_object_id(product_id, "product id")},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if not item:
        raise HTTPException(status_code=404, detail="Product not found")
    return serialize_doc(item)


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, user=Depends(require_admin)):
    res = db["product"].delete_one({"_id": to_object_id(product_id, "product id")})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    logger.info("Product %s deleted by %s", product_id, user["id"])
    return {"message": "Product deleted successfully"}


# ----------------------- Orders -----------------------
def attach_user(order: dict) -> dict:
    buyer = None
    try:
        buyer = db["user"].find_one({"_id": ObjectId(order.get("user_id"))}, {"name": 1, "email": 1})
    except (InvalidId, TypeError):
        pass
    order = serialize_doc(order)
    order["user"] = {"id": order.get("user_id"), "name": buyer.get("name"), "email": buyer.get("email")} if buyer else None
    return order


def release_stock(decremented: List[tuple]):
    for oid, quantity in decremented:
        db["product"].update_one({"_id": oid}, {"$inc": {"quantity": quantity}})


@app.get("/api/orders")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user=Depends(get_current_user),
):
    filt = {} if user["role"] == "admin" else {"user_id": user["id"]}
    skip = (page - 1) * limit
    docs = db["order"].find(filt).sort("created_at", -1).skip(skip).limit(limit)
    total = db["order"].count_documents(filt)
    return {"orders": [attach_user(d) for d in docs], "pagination": paginate(page, limit, total)}


@app.post("/api/orders", status_code=201)
def create_order(body: CheckoutBody, user=Depends(get_current_user)):
    if not body.items:
        raise HTTPException(status_code=400, detail="No items provided")

    # Validate every line before touching stock
    lines = []
    for item in body.items:
        try:
            oid = ObjectId(item.product_id)
        except (InvalidId, TypeError):
            raise HTTPException(status_code=400, detail=f"Product {item.product_id} not found")
        product = db["product"].find_one({"_id": oid})
        if not product:
            raise HTTPException(status_code=400, detail=f"Product {item.product_id} not found")
        if product.get("quantity", 0) < item.quantity:
            raise HTTPException(status_code=400, detail=f"Insufficient stock for {product.get('title')}")
        lines.append((product, item.quantity))

    # Guarded decrements; undo the earlier ones if a later guard loses a race
    decremented = []
    for product, quantity in lines:
        res = db["product"].update_one(
            {"_id": product["_id"], "quantity": {"$gte": quantity}},
            {"$inc": {"quantity": -quantity}},
        )
        if res.modified_count == 0:
            release_stock(decremented)
            raise HTTPException(status_code=400, detail=f"Insufficient stock for {product.get('title')}")
        decremented.append((product["_id"], quantity))

    order_items = []
    total_amount = 0.0
    for product, quantity in lines:
        price = float(product.get("price", 0))
        images = product.get("images") or []
        total_amount += price * quantity
        order_items.append(OrderItem(
            product_id=str(product["_id"]),
            title=product.get("title", ""),
            image=images[0] if images else None,
            quantity=quantity,
            price=price,
        ))

    order = OrderSchema(
        user_id=user["id"],
        items=order_items,
        total_amount=total_amount,
        shipping_address=body.shipping_address,
    )
    try:
        order_id = create_document("order", order)
    except Exception:
        release_stock(decremented)
        raise
    db["cart"].update_one({"user_id": user["id"]}, {"$set": {"items": [], "updated_at": utcnow()}})
    logger.info("Order %s placed by %s total=%.2f", order_id, user["id"], total_amount)
    return serialize_doc(db["order"].find_one({"_id": ObjectId(order_id)}))


@app.put("/api/orders/{order_id}")
def update_order_status(order_id: str, body: OrderStatusBody, user=Depends(require_admin)):
    order = db["order"].find_one_and_update(
        {"_id": to_object_id(order_id, "order id")},
        {"$set": {"status": body.status, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    logger.info("Order %s set to %s by %s", order_id, body.status, user["id"])
    return attach_user(order)


@app.delete("/api/orders/{order_id}")
def delete_order(order_id: str, user=Depends(require_admin)):
    oid = to_object_id(order_id, "order id")
    order = db["order"].find_one({"_id": oid})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    # Stock only comes back for orders that have not reached the customer
    if order.get("status") in ("Pending", "Shipped"):
        for item in order.get("items", []):
            try:
                pid = ObjectId(item.get("product_id"))
            except (InvalidId, TypeError):
                continue
            db["product"].update_one({"_id": pid}, {"$inc": {"quantity": item.get("quantity", 0)}})
    db["order"].delete_one({"_id": oid})
    logger.info("Order %s deleted by %s", order_id, user["id"])
    return {"message": "Order deleted successfully"}


# ----------------------- Users -----------------------
@app.get("/api/users")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user=Depends(require_admin),
):
    skip = (page - 1) * limit
    docs = db["user"].find({}, {"password_hash": 0}).sort("created_at", -1).skip(skip).limit(limit)
    total = db["user"].count_documents({})
    return {"users": [serialize_doc(d) for d in docs], "pagination": paginate(page, limit, total)}


def email_taken(email: str, exclude_id: ObjectId) -> bool:
    return db["user"].find_one({"email": email, "_id": {"$ne": exclude_id}}) is not None


@app.put("/api/users/{user_id}")
def update_user(user_id: str, body: UserUpdateBody, user=Depends(get_current_user)):
    if user["role"] != "admin" and user["id"] != user_id:
        raise HTTPException(status_code=403, detail="Access denied")
    oid = to_object_id(user_id, "user id")
    update = body.model_dump(exclude_none=True)
    if user["role"] != "admin":
        update.pop("role", None)
    if "email" in update:
        update["email"] = update["email"].lower()
        if email_taken(update["email"], oid):
            raise HTTPException(status_code=400, detail="Email already in use")
    update["updated_at"] = utcnow()
    try:
        saved = db["user"].find_one_and_update({"_id": oid}, {"$set": update}, return_document=ReturnDocument.AFTER)
    except DuplicateKeyError:
        # Lost a race with another request claiming the same email
        raise HTTPException(status_code=400, detail="Email already in use")
    if not saved:
        raise HTTPException(status_code=404, detail="User not found")
    return public_user(saved)


@app.delete("/api/users/{user_id}")
def delete_user(user_id: str, user=Depends(require_admin)):
    res = db["user"].delete_one({"_id": to_object_id(user_id, "user id")})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("User %s deleted by %s", user_id, user["id"])
    return {"message": "User deleted successfully"}


# ----------------------- Site settings -----------------------
def load_site_settings() -> dict:
    settings = db["sitesettings"].find_one()
    if not settings:
        create_document("sitesettings", SiteSettingsSchema(business_name=BUSINESS_NAME))
        settings = db["sitesettings"].find_one()
    return settings


@app.get("/api/site-settings")
def get_site_settings():
    return serialize_doc(load_site_settings())


@app.put("/api/site-settings")
def update_site_settings(body: SiteSettingsUpdateBody, user=Depends(require_admin)):
    settings = load_site_settings()
    update = body.model_dump(exclude_none=True)
    update["updated_at"] = utcnow()
    saved = db["sitesettings"].find_one_and_update(
        {"_id": settings["_id"]},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(saved)


# ----------------------- Cart & wishlist -----------------------
def load_items(collection: str, user_id: str) -> list:
    doc = db[collection].find_one({"user_id": user_id})
    return doc.get("items", []) if doc else []


def save_items(collection: str, user_id: str, items: list):
    db[collection].update_one(
        {"user_id": user_id},
        {"$set": {"items": items, "updated_at": utcnow()}, "$setOnInsert": {"created_at": utcnow()}},
        upsert=True,
    )


def find_product(product_id: str) -> dict:
    product = db["product"].find_one({"_id": to_object_id(product_id, "product id")})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.get("/api/cart")
def get_cart(user=Depends(get_current_user)):
    return cart_ops.summarize(load_items("cart", user["id"]))


@app.post("/api/cart/items")
def add_to_cart(body: CartAddBody, user=Depends(get_current_user)):
    product = find_product(body.product_id)
    items = cart_ops.add_item(load_items("cart", user["id"]), product, body.quantity)
    save_items("cart", user["id"], items)
    return cart_ops.summarize(items)


@app.put("/api/cart/items/{product_id}")
def update_cart_item(product_id: str, body: CartQuantityBody, user=Depends(get_current_user)):
    items = cart_ops.update_quantity(load_items("cart", user["id"]), product_id, body.quantity)
    save_items("cart", user["id"], items)
    return cart_ops.summarize(items)


@app.delete("/api/cart/items/{product_id}")
def remove_from_cart(product_id: str, user=Depends(get_current_user)):
    items = cart_ops.remove_item(load_items("cart", user["id"]), product_id)
    save_items("cart", user["id"], items)
    return cart_ops.summarize(items)


@app.delete("/api/cart")
def clear_cart(user=Depends(get_current_user)):
    save_items("cart", user["id"], [])
    return cart_ops.summarize([])


@app.get("/api/wishlist")
def get_wishlist(user=Depends(get_current_user)):
    return {"items": load_items("wishlist", user["id"])}


@app.post("/api/wishlist/items")
def add_to_wishlist(body: WishlistAddBody, user=Depends(get_current_user)):
    product = find_product(body.product_id)
    items = cart_ops.add_to_wishlist(load_items("wishlist", user["id"]), product)
    save_items("wishlist", user["id"], items)
    return {"items": items}


@app.get("/api/wishlist/items/{product_id}")
def wishlist_contains(product_id: str, user=Depends(get_current_user)):
    return {"in_wishlist": cart_ops.in_wishlist(load_items("wishlist", user["id"]), product_id)}


@app.delete("/api/wishlist/items/{product_id}")
def remove_from_wishlist(product_id: str, user=Depends(get_current_user)):
    items = cart_ops.remove_item(load_items("wishlist", user["id"]), product_id)
    save_items("wishlist", user["id"], items)
    return {"items": items}


# ----------------------- Analytics -----------------------
class AnalyticsParams:
    def __init__(
        self,
        group_by: str = "month",
        date_from: Optional[str] = Query(None, alias="from"),
        date_to: Optional[str] = Query(None, alias="to"),
        top_page: int = Query(1, ge=1),
        top_limit: int = Query(10, ge=1, le=100),
        top_sort: str = "total_sold",
        top_order: str = "desc",
    ):
        self.group_by = group_by
        self.date_from = date_from
        self.date_to = date_to
        self.top_page = top_page
        self.top_limit = top_limit
        self.top_sort = top_sort
        self.top_order = top_order


def build_analytics(params: AnalyticsParams) -> dict:
    try:
        return analytics.collect_analytics(
            db,
            group_by=params.group_by,
            date_from=params.date_from,
            date_to=params.date_to,
            top_page=params.top_page,
            top_limit=params.top_limit,
            top_sort=params.top_sort,
            top_order=params.top_order,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/analytics")
def get_analytics(params: AnalyticsParams = Depends(), user=Depends(require_admin)):
    return build_analytics(params)


@app.get("/api/analytics/export/pdf")
def export_analytics_pdf(params: AnalyticsParams = Depends(), user=Depends(require_admin)):
    data = build_analytics(params)
    site_name = load_site_settings().get("business_name") or BUSINESS_NAME
    return Response(
        exports.render_pdf(data, site_name=site_name),
        media_type=exports.PDF_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="sales-report.pdf"'},
    )


@app.get("/api/analytics/export/xlsx")
def export_analytics_xlsx(params: AnalyticsParams = Depends(), user=Depends(require_admin)):
    data = build_analytics(params)
    return Response(
        exports.render_xlsx(data),
        media_type=exports.XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="sales-report.xlsx"'},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
