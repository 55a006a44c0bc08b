"""
Database Schemas for Storefront

Each document model below is one MongoDB collection (plural, lower-case:
User -> "users"). The *Out models are the API response shapes built from
those documents after database.serialize().
"""
from datetime import datetime
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field

T = TypeVar("T")


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class RecordStatus(str, Enum):
    ACTIVE = "active"
    DELETED = "deleted"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    IN_PROCESS = "in_process"
    AUTHORIZED = "authorized"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    CHARGED_BACK = "charged_back"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNDISCLOSED = "undisclosed"


# Statuses that count as a completed sale in reports.
SALE_STATUSES = [OrderStatus.CONFIRMED.value, OrderStatus.SHIPPED.value, OrderStatus.DELIVERED.value]


# ---------------------- Documents ----------------------

class _Document(BaseModel):
    model_config = ConfigDict(use_enum_values=True)


class Address(_Document):
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""


class ShippingAddress(_Document):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class User(_Document):
    """
    Users collection schema
    Collection: "users"
    """
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr = Field(..., description="Login e-mail, stored lower-case")
    password: str = Field(..., description="bcrypt hash")
    role: Role = Role.USER
    is_active: bool = Field(True, description="Account enabled")
    record_status: RecordStatus = RecordStatus.ACTIVE
    deleted_at: Optional[datetime] = None
    phone: str = ""
    birth_date: Optional[datetime] = None
    gender: Gender = Gender.UNDISCLOSED
    address: Address = Field(default_factory=Address)
    avatar: Optional[str] = None
    email_verified: bool = False
    email_verification_token: Optional[str] = None
    email_verification_expires: Optional[datetime] = None
    password_reset_token: Optional[str] = None
    password_reset_expires: Optional[datetime] = None


class Category(_Document):
    """
    Categories collection schema
    Collection: "categories"
    """
    name: str = Field(..., min_length=2, max_length=50)
    name_key: str = Field(..., description="Lower-cased name, unique")
    description: str = Field("", max_length=200)
    record_status: RecordStatus = RecordStatus.ACTIVE


class Product(_Document):
    """
    Products collection schema
    Collection: "products"
    """
    name: str = Field(..., min_length=1)
    sku: Optional[str] = None
    description: str = ""
    price: float = Field(..., gt=0)
    category_id: Optional[str] = None
    stock: int = Field(0, ge=0)
    images: List[str] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    record_status: RecordStatus = RecordStatus.ACTIVE
    average_rating: float = Field(0, ge=0, le=5)
    reviews_count: int = Field(0, ge=0)
    sold_count: int = Field(0, ge=0)


class CartItem(_Document):
    product_id: str
    quantity: int = Field(..., ge=1)


class Cart(_Document):
    """
    Carts collection schema, one document per user
    Collection: "carts"
    """
    user_id: str
    items: List[CartItem] = Field(default_factory=list)


class OrderItem(_Document):
    product_id: str
    name: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at purchase time")
    subtotal: float = Field(..., ge=0)


class Order(_Document):
    """
    Orders collection schema
    Collection: "orders"
    """
    user_id: str
    items: List[OrderItem]
    total_amount: float = Field(..., ge=0)
    status: OrderStatus = OrderStatus.PENDING
    payment_id: Optional[str] = None
    checkout_session_id: Optional[str] = None
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    shipping_address: Optional[ShippingAddress] = None
    version: int = 0


class Review(_Document):
    """
    Reviews collection schema
    Collection: "reviews"
    """
    product_id: str
    user_id: str
    order_id: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=500)
    record_status: RecordStatus = RecordStatus.ACTIVE


# ---------------------- Responses ----------------------

class _Out(BaseModel):
    model_config = ConfigDict(extra="ignore")


class UserSummary(_Out):
    id: str
    name: str
    email: str


class UserOut(_Out):
    id: str
    name: str
    email: str
    role: Role
    is_active: bool
    record_status: RecordStatus = RecordStatus.ACTIVE
    deleted_at: Optional[datetime] = None
    phone: str = ""
    birth_date: Optional[datetime] = None
    gender: Gender = Gender.UNDISCLOSED
    address: Address = Field(default_factory=Address)
    avatar: Optional[str] = None
    email_verified: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AuthOut(_Out):
    token: str
    user: UserOut


class CategoryOut(_Out):
    id: str
    name: str
    description: str = ""
    record_status: RecordStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProductOut(_Out):
    id: str
    name: str
    sku: Optional[str] = None
    description: str = ""
    price: float
    category_id: Optional[str] = None
    stock: int
    images: List[str] = []
    sizes: List[str] = []
    colors: List[str] = []
    tags: List[str] = []
    record_status: RecordStatus
    average_rating: float = 0
    reviews_count: int = 0
    sold_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CartLineOut(_Out):
    product_id: str
    name: Optional[str] = None
    price: float = 0
    image: Optional[str] = None
    stock: int = 0
    available: bool = True
    quantity: int
    subtotal: float = 0


class CartOut(_Out):
    id: Optional[str] = None
    user_id: str
    items: List[CartLineOut] = []
    total_amount: float = 0
    updated_at: Optional[datetime] = None


class OrderOut(_Out):
    id: str
    user_id: str
    user: Optional[UserSummary] = None
    items: List[OrderItem]
    total_amount: float
    status: OrderStatus
    payment_id: Optional[str] = None
    checkout_session_id: Optional[str] = None
    is_paid: bool
    paid_at: Optional[datetime] = None
    payment_status: PaymentStatus
    shipping_address: Optional[ShippingAddress] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReviewOut(_Out):
    id: str
    product_id: str
    user_id: str
    order_id: Optional[str] = None
    user: Optional[UserSummary] = None
    rating: int
    comment: str
    record_status: RecordStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CheckoutOut(_Out):
    id: str
    url: Optional[str] = None
    status: str = "pending"
    order_id: Optional[str] = None


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class Page(BaseModel, Generic[T]):
    items: List[T]
    pagination: Pagination


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None
