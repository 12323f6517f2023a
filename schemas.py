"""
Database Schemas for the Storefront

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

ORDER_STATUSES = ("Pending", "Shipped", "Delivered", "Cancelled")
OrderStatus = Literal["Pending", "Shipped", "Delivered", "Cancelled"]
Role = Literal["user", "admin"]


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="bcrypt hash")
    contact: str = ""
    address: str = ""
    role: Role = "user"


class Product(BaseModel):
    title: str
    description: str
    category: str
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0, description="Defaults to price")
    discount_percentage: float = Field(0, ge=0, le=100)
    is_on_sale: bool = False
    sale_end_date: Optional[datetime] = None
    quantity: int = Field(0, ge=0, description="Units in stock")
    brand: str
    model: str
    variant: str = ""
    images: List[str] = []

    @model_validator(mode="after")
    def default_original_price(self):
        if self.original_price is None:
            self.original_price = self.price
        return self


class ShippingAddress(BaseModel):
    name: str = ""
    address: str = ""
    contact: str = ""


class OrderItem(BaseModel):
    product_id: str
    title: str
    image: Optional[str] = None
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at purchase time")


class Order(BaseModel):
    user_id: str
    items: List[OrderItem]
    total_amount: float = Field(..., ge=0)
    status: OrderStatus = "Pending"
    shipping_address: ShippingAddress = ShippingAddress()


class SiteSettings(BaseModel):
    business_name: str = "My Store"
    header_logo: str = ""
    footer_logo: str = ""
    about_content: str = "Welcome to our amazing e-commerce store!"
