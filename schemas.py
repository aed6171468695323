"""
Database Schemas for Saheli Store (MongoDB)

Each top-level Pydantic model represents a collection in MongoDB. Collection
name is the lowercase of the class name by convention. Documents are stored
with camelCase keys (the aliases below); the *Create / *Update models are the
request bodies accepted by the API.
"""
import re
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

PLACEHOLDER_IMAGE = "https://via.placeholder.com/300x200.png?text=Saheli+Product"
PHONE_PATTERN = re.compile(r"^[0-9]{10,11}$")


def check_image(value: str) -> str:
    value = value.strip()
    if not (re.match(r"^https?://", value) or value.startswith("data:image/")):
        raise ValueError("Image must be a valid URL or Base64 data URI")
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
    )


# Enums
class PaymentMethod(str, Enum):
    CASH_ON_DELIVERY = "Cash on Delivery"
    CARD = "Card"
    UPI = "UPI"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    REFUNDED = "Refunded"


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    PACKED = "Packed"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


# Catalog
class Product(CamelModel):
    product_id: str
    title: str = Field(..., min_length=2)
    category: str = "uncategorized"
    description: str = Field("", max_length=2000)
    price: float = Field(..., ge=0)
    stock: int = Field(10, ge=0)
    discount: float = Field(0, ge=0, le=100)  # percentage
    rating: float = Field(0, ge=0, le=5)
    recommended: bool = False
    best_seller: bool = False
    image: str = PLACEHOLDER_IMAGE
    added_at: datetime
    is_active: bool = True
    views: int = Field(0, ge=0)
    sold_count: int = Field(0, ge=0)

    @field_validator("category")
    @classmethod
    def lower_category(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("image")
    @classmethod
    def valid_image(cls, v: str) -> str:
        return check_image(v)


class ProductCreate(CamelModel):
    title: Optional[str] = None
    price: Optional[Union[float, str]] = None
    stock: Optional[Union[float, str]] = None
    category: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    recommended: bool = False
    best_seller: bool = False
    discount: Optional[Union[float, str]] = None
    rating: Optional[Union[float, str]] = None


class ProductUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=2)
    category: Optional[str] = None
    description: Optional[str] = Field(None, max_length=2000)
    price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    discount: Optional[float] = None
    rating: Optional[float] = None
    recommended: Optional[bool] = None
    best_seller: Optional[bool] = None
    image: Optional[str] = None
    views: Optional[int] = Field(None, ge=0)
    sold_count: Optional[int] = Field(None, ge=0)

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("category")
    @classmethod
    def lower_category(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v is not None else v

    @field_validator("image")
    @classmethod
    def valid_image(cls, v: Optional[str]) -> Optional[str]:
        return check_image(v) if v is not None else v


class ToggleRequest(BaseModel):
    field: str


class ProductFilters(CamelModel):
    category: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    search: Optional[str] = None
    best_seller: Optional[bool] = None
    recommended: Optional[bool] = None


# Orders
class Address(CamelModel):
    line1: str = Field(..., min_length=1)
    city: str = ""
    state: str = ""
    pincode: str = ""


class Customer(CamelModel):
    name: str = Field(..., min_length=1)
    phone: str
    email: str = ""
    address: Address

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: str) -> str:
        v = v.strip().lstrip("0")
        if not PHONE_PATTERN.match(v):
            raise ValueError("Enter valid 10-11 digit phone number")
        return v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.strip().lower()


class CartItem(CamelModel):
    product_id: str = Field(..., min_length=1)
    title: str = ""
    name: str = ""
    price: float = Field(..., ge=0)
    qty: int = Field(1, ge=1)
    image: str = ""


class Receipt(CamelModel):
    pdf: Optional[bytes] = None
    created_at: Optional[datetime] = None


class Order(CamelModel):
    customer: Customer
    cart_items: List[CartItem] = Field(..., min_length=1)
    total_price: float = Field(..., ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY
    payment_status: PaymentStatus = PaymentStatus.PENDING
    order_status: OrderStatus = OrderStatus.PENDING
    receipt: Receipt = Field(default_factory=Receipt)
    ordered_at: datetime
    delivered_at: Optional[datetime] = None
    admin_notes: str = ""
    tracking_id: str = ""
    is_deleted: bool = False


class AddressIn(CamelModel):
    line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None


class CustomerIn(AddressIn):
    # address fields may also arrive flat on the customer block
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[AddressIn] = None

    @field_validator("phone", "pincode", mode="before")
    @classmethod
    def numbers_as_text(cls, v: Any) -> Any:
        if isinstance(v, int):
            return str(v)
        return v


class CartItemIn(CamelModel):
    product_id: Optional[str] = None
    title: Optional[str] = None
    name: Optional[str] = None
    price: Any = None
    qty: Any = None
    image: Optional[str] = None


class OrderCreate(CamelModel):
    customer: Optional[CustomerIn] = None
    cart_items: Optional[List[CartItemIn]] = None
    items: Optional[List[CartItemIn]] = None
    total_price: Optional[float] = None
    payment_method: Optional[PaymentMethod] = None


class OrderStatusUpdate(CamelModel):
    """The only order fields a client may change after checkout."""
    order_status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[PaymentMethod] = None

    @model_validator(mode="before")
    @classmethod
    def accept_status_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and "orderStatus" not in data and "status" in data:
            data = {**data, "orderStatus": data["status"]}
        return data
