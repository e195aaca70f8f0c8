# provide dataclass models

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional, Tuple

ProductStatus = Literal["active", "inactive"]
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: Decimal
    sku: str
    slug: str
    stock_quantity: int = 0
    description: Optional[str] = None
    sale_price: Optional[Decimal] = None  # active discount when set
    images: Tuple[str, ...] = ()
    category_id: Optional[str] = None
    featured: bool = False
    status: ProductStatus = "active"
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    category: Optional[Category] = None

    @property
    def in_stock(self) -> bool:
        return self.stock_quantity > 0


@dataclass(frozen=True)
class Address:
    """Billing/shipping address, stored on the order as a snapshot."""

    first_name: str = ""
    last_name: str = ""
    address_line_1: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = "US"
    company: Optional[str] = None
    address_line_2: Optional[str] = None

    def one_line(self) -> str:
        parts = [
            f"{self.first_name} {self.last_name}".strip(),
            self.company,
            self.address_line_1,
            self.address_line_2,
            f"{self.city}, {self.state} {self.postal_code}".strip(", "),
            self.country,
        ]
        return ", ".join(p for p in parts if p)


@dataclass(frozen=True)
class Customer:
    id: str
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class OrderItemDraft:
    """A line to be inserted; price is the unit price as charged."""

    product_id: str
    quantity: int
    price: Decimal

    @property
    def total(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class OrderItem:
    id: str
    order_id: str
    product_id: str
    quantity: int
    price: Decimal  # unit price at time of order
    total: Decimal
    product_name: Optional[str] = None


@dataclass(frozen=True)
class Order:
    id: str
    order_number: str
    customer_id: Optional[str]
    subtotal: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    total_amount: Decimal
    billing_address: Address
    shipping_address: Address
    status: OrderStatus = "pending"
    payment_status: PaymentStatus = "pending"
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: Tuple[OrderItem, ...] = field(default=())
    customer: Optional[Customer] = None
