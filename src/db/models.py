# provide dataclass models

from dataclasses import dataclass, field
from typing import Literal, Optional

Role = Literal["customer", "seller", "delivery", "admin"]
ROLES = ("customer", "seller", "delivery", "admin")

OrderStatus = Literal["pending", "paid", "processing", "shipped", "delivered", "cancelled"]
ORDER_STATUSES = ("pending", "paid", "processing", "shipped", "delivered", "cancelled")
# statuses a seller may set from the orders screen
SELLER_ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")

DeliveryStatus = Literal["pending", "assigned", "delivered"]

AssignmentStatus = Literal["assigned", "in_transit", "delivered", "failed"]
ASSIGNMENT_STATUSES = ("assigned", "in_transit", "delivered", "failed")


@dataclass(frozen=True)
class User:
    id: str
    email: str
    name: str
    role_request: Optional[str] = None
    created_at: Optional[str] = None
    last_sign_in_at: Optional[str] = None


@dataclass(frozen=True)
class Session:
    token: str
    user_id: str
    expires_at: str


@dataclass(frozen=True)
class Profile:
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    question_responses: dict = field(default_factory=dict)
    is_online: bool = False

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    slug: str


@dataclass(frozen=True)
class Product:
    id: str
    seller_id: Optional[str]
    name: str
    description: str
    category: str
    price: float
    discounted_price: Optional[float]
    stock: int
    image_url: Optional[str]

    @property
    def unit_price(self) -> float:
        return self.discounted_price or self.price


@dataclass(frozen=True)
class Order:
    id: str
    user_id: str
    status: str
    delivery_status: str
    total: float
    shipping_address: Optional[str]
    shipping_city: Optional[str]
    shipping_state: Optional[str]
    shipping_postal_code: Optional[str]
    created_at: str

    @property
    def full_address(self) -> str:
        return (
            f"{self.shipping_address}, {self.shipping_city}, "
            f"{self.shipping_state} {self.shipping_postal_code}"
        )


@dataclass(frozen=True)
class OrderItem:
    id: str
    order_id: str
    product_id: Optional[str]
    price: float  # unit price at time of order
    quantity: int
    product_name: Optional[str] = None


@dataclass(frozen=True)
class DeliveryAssignment:
    id: str
    order_id: str
    delivery_person_id: str
    status: str
    assigned_at: str
    delivered_at: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Review:
    id: str
    product_id: str
    user_id: str
    rating: int
    comment: str
    created_at: str
    author: Optional[str] = None


@dataclass(frozen=True)
class TimeSlot:
    """One row of a delivery person's weekly availability. day: 0 = Sunday."""

    id: str
    day: int
    start_time: str
    end_time: str
    available: bool


@dataclass(frozen=True)
class CartItem:
    """Client-local cart line; name/price/image are snapshots taken when added."""

    product_id: str
    quantity: int
    name: str
    price: float
    discounted_price: Optional[float] = None
    image_url: Optional[str] = None

    @property
    def unit_price(self) -> float:
        return self.discounted_price or self.price
