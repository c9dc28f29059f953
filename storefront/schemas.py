"""
Request schemas for the storefront API.

Field names follow the stored documents (snake_case). Ids arrive as strings
and are converted to ObjectId by the routes.
"""
import re
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from .utils import naive_utc

PHONE_RE = re.compile(r"^\d{10}$")


def _strong_password(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must include an uppercase letter")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must include a lowercase letter")
    if not re.search(r"\d", value):
        raise ValueError("Password must include a number")
    if not re.search(r"[^A-Za-z0-9]", value):
        raise ValueError("Password must include a special character")
    return value


def _phone(value: str) -> str:
    value = value.strip()
    if not PHONE_RE.match(value):
        raise ValueError("Phone must be 10 digits")
    return value


# Auth & users

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str
    phone: str

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        return _strong_password(v)

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, v: str) -> str:
        return _phone(v)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    password: str

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        return _strong_password(v)


class UpdateProfileRequest(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, v: str) -> str:
        return _phone(v)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=8)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def _password(cls, v: str) -> str:
        return _strong_password(v)


class Address(BaseModel):
    full_name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=10, max_length=15)
    address_line1: str = Field(..., min_length=1)
    address_line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., min_length=4)
    country: str = Field("India", min_length=1)


class AddressIn(Address):
    is_default: bool = False
    address_type: Literal["home", "office", "other"] = "home"


class RoleUpdate(BaseModel):
    role: Literal["user", "admin"]


class BlockUpdate(BaseModel):
    is_blocked: bool


# Catalog

class ImageRef(BaseModel):
    public_id: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)


class Thumbnail(BaseModel):
    public_id: Optional[str] = None
    url: Optional[str] = None


class Dimensions(BaseModel):
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    slug: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=10)
    price: Optional[float] = Field(None, gt=0)
    discount_price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    sub_category: Optional[str] = None
    brand: Optional[str] = None
    sku: Optional[str] = Field(None, min_length=1)
    stock: Optional[int] = Field(None, ge=0)
    images: Optional[List[ImageRef]] = None
    thumbnail: Optional[Thumbnail] = None
    features: Optional[List[str]] = None
    # free-form spec sheet, e.g. {"Battery": "5000 mAh"}
    specifications: Optional[Dict[str, str]] = None
    is_featured: Optional[bool] = None
    is_new: Optional[bool] = None
    is_trending: Optional[bool] = None
    is_active: Optional[bool] = None
    tags: Optional[List[str]] = None
    weight: Optional[float] = None
    dimensions: Optional[Dimensions] = None

    @field_validator("features", mode="before")
    @classmethod
    def _features(cls, v):
        return [v] if isinstance(v, str) else v

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v):
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v

    @model_validator(mode="after")
    def _not_empty(self):
        if type(self) is ProductUpdate and not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class ProductIn(ProductUpdate):
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    description: str = Field(..., min_length=10)
    price: float = Field(..., gt=0)
    category: str = Field(..., min_length=1)
    sku: str = Field(..., min_length=1)
    stock: int = Field(0, ge=0)
    images: List[ImageRef] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)
    specifications: Dict[str, str] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)


class ReviewIn(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=10)
    images: List[Thumbnail] = Field(default_factory=list)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    description: Optional[str] = None
    image: Optional[ImageRef] = None
    parent_category: Optional[str] = None
    is_active: bool = True


# Cart & wishlist

class CartItemIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=0)


class WishlistAdd(BaseModel):
    product_id: str = Field(..., min_length=1)


# Coupons

class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1)
    cart_total: float = Field(..., ge=0)


class CouponIn(BaseModel):
    code: str = Field(..., min_length=1)
    description: Optional[str] = None
    discount_type: Literal["percent", "flat"]
    discount_value: float = Field(..., ge=0)
    min_cart_value: float = Field(0, ge=0)
    max_discount: Optional[float] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=0)
    usage_count: Optional[int] = Field(None, ge=0)
    per_user_limit: Optional[int] = Field(None, ge=0)
    start_date: datetime
    expiry_date: datetime
    is_active: Optional[bool] = None
    applicable_categories: List[str] = Field(default_factory=list)
    applicable_products: List[str] = Field(default_factory=list)

    @field_validator("code")
    @classmethod
    def _code(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("discount_type", mode="before")
    @classmethod
    def _discount_type(cls, v):
        return {"percentage": "percent", "fixed": "flat"}.get(v, v)

    @field_validator("start_date", "expiry_date")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return naive_utc(v)

    @model_validator(mode="after")
    def _window(self):
        if self.start_date > self.expiry_date:
            raise ValueError("Expiry date must be after start date")
        return self


class CouponToggle(BaseModel):
    is_active: Optional[bool] = None


# Orders & payments

class OrderItemIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)


class CreateOrderRequest(BaseModel):
    items: List[OrderItemIn] = Field(..., min_length=1)
    shipping_address: Address
    billing_address: Optional[Address] = None
    payment_method: Literal["razorpay", "cod"]
    coupon_code: Optional[str] = None
    save_address: bool = False
    order_notes: Optional[str] = None


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: Literal["pending", "processing", "shipped", "delivered", "cancelled", "returned"]
    note: Optional[str] = None


class PaymentOrderRequest(BaseModel):
    order_id: str = Field(..., min_length=1)
    currency: str = "INR"
    receipt: Optional[str] = None


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)


# Support

class ContactRequest(BaseModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    subject: str = Field(..., min_length=4)
    message: str = Field(..., min_length=20)
    order_id: Optional[str] = Field(None, min_length=6, max_length=64)
