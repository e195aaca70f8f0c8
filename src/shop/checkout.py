"""
Order submission: validate the checkout form, resolve the customer, write the
order and its items through the catalog store, then empty the cart.

The store is any object exposing the coroutine functions used below
(`find_customer_by_email`, `create_customer`, `create_order`,
`create_order_items`); by default that is the `db.crud` module.
"""

from __future__ import annotations

import asyncio
import os
import secrets
import string
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

import db.crud
from db.models import Address, Customer, Order, OrderItem, OrderItemDraft
from shop.cart import CartEngine, CartLine
from shop.pricing import (
    DEFAULT_RULES,
    PriceBreakdown,
    PricingRules,
    calculate_totals,
    format_money,
)
from shop.validation import address_errors, customer_errors
from utils.errors import (
    CatalogError,
    CatalogWriteError,
    CustomerExistsError,
    OrderSubmissionError,
    SubmissionInProgressError,
    ValidationError,
)
from utils.logger import get_logger

_logger = get_logger(__name__)

# seconds allowed for the store writes of one submission; 0 disables
SUBMIT_TIMEOUT = float(os.getenv("STOREFRONT_SUBMIT_TIMEOUT", "15"))

PAYMENT_METHODS = {
    "credit_card": "Credit Card",
    "paypal": "PayPal",
}

_ORDER_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase
_ORDER_SUFFIX_LENGTH = 9


@dataclass(frozen=True)
class CustomerInfo:
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: Optional[str] = None


@dataclass(frozen=True)
class CheckoutForm:
    customer: CustomerInfo = field(default_factory=CustomerInfo)
    billing_address: Address = field(default_factory=Address)
    shipping_address: Optional[Address] = None
    payment_method: str = "credit_card"
    same_as_billing: bool = True

    def resolved_shipping_address(self) -> Address:
        if self.same_as_billing:
            return self.billing_address
        return self.shipping_address or Address()


@dataclass(frozen=True)
class OrderConfirmation:
    order_number: str
    order_id: str
    customer_id: str
    totals: PriceBreakdown
    items_count: int


def generate_order_number(now_ms: Optional[int] = None) -> str:
    """
    ORD-<epoch millis>-<9 random base36 chars>, e.g. ORD-1718000000000-K3Z9Q0A1B.

    The random part gives 36**9 (~1e14) values per millisecond, so numbers
    stay unique without asking the store.
    """
    millis = int(time.time() * 1000) if now_ms is None else now_ms
    suffix = "".join(
        secrets.choice(_ORDER_SUFFIX_ALPHABET) for _ in range(_ORDER_SUFFIX_LENGTH)
    )
    return f"ORD-{millis}-{suffix}"


def validate_checkout(form: CheckoutForm, cart: Optional[CartEngine] = None) -> None:
    """Raise ValidationError listing every missing or malformed field."""
    errors: Dict[str, str] = {}
    if cart is not None and cart.is_empty:
        errors["cart"] = "Cart is empty."
    errors.update(customer_errors(form.customer))
    errors.update(address_errors(form.billing_address, "billing_address"))
    if not form.same_as_billing:
        errors.update(
            address_errors(form.shipping_address or Address(), "shipping_address")
        )
    if not (form.payment_method or "").strip():
        errors["payment_method"] = "Payment method is required."
    if errors:
        raise ValidationError(errors)


def order_item_drafts(lines: Sequence[CartLine]) -> List[OrderItemDraft]:
    """Freeze each line's charged unit price into an insertable draft."""
    return [
        OrderItemDraft(
            product_id=line.product_id,
            quantity=line.quantity,
            price=line.unit_price,
        )
        for line in lines
    ]


class CheckoutPipeline:
    """
    Submits the cart it was built for. One pipeline per cart: a second
    `submit` while one is awaiting the store raises SubmissionInProgressError.
    """

    def __init__(
        self,
        cart: CartEngine,
        store=db.crud,
        rules: PricingRules = DEFAULT_RULES,
        timeout: Optional[float] = SUBMIT_TIMEOUT,
    ) -> None:
        self.cart = cart
        self._store = store
        self._rules = rules
        self._timeout = timeout if timeout and timeout > 0 else None
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def submit(self, form: CheckoutForm) -> OrderConfirmation:
        if self._in_flight:
            raise SubmissionInProgressError("An order is already being submitted.")
        self._in_flight = True
        try:
            return await self._submit(form)
        finally:
            self._in_flight = False

    async def _submit(self, form: CheckoutForm) -> OrderConfirmation:
        validate_checkout(form, self.cart)

        lines = self.cart.snapshot()
        subtotal = sum((line.line_total for line in lines), Decimal("0"))
        totals = calculate_totals(subtotal, self._rules)
        drafts = order_item_drafts(lines)
        order_number = generate_order_number()
        _logger.info(
            f"Submitting order {order_number}: {len(drafts)} line(s), "
            f"total {format_money(totals.total)}"
        )

        persist = self._persist(form, order_number, totals, drafts)
        try:
            if self._timeout is None:
                order, items = await persist
            else:
                order, items = await asyncio.wait_for(persist, self._timeout)
        except asyncio.TimeoutError as exc:
            _logger.error(f"Order {order_number} timed out after {self._timeout}s.")
            raise OrderSubmissionError(
                "The store did not respond in time. Please try again.", order_number
            ) from exc
        except CatalogError as exc:
            _logger.error(f"Order {order_number} failed: {exc}")
            raise OrderSubmissionError(
                "Failed to process order. Please try again.", order_number
            ) from exc

        self.cart.clear_cart()
        _logger.info(f"Order {order_number} placed ({len(items)} item(s)).")
        return OrderConfirmation(
            order_number=order.order_number,
            order_id=order.id,
            customer_id=order.customer_id,
            totals=totals.rounded(),
            items_count=sum(item.quantity for item in items),
        )

    async def _persist(
        self,
        form: CheckoutForm,
        order_number: str,
        totals: PriceBreakdown,
        drafts: List[OrderItemDraft],
    ) -> tuple[Order, List[OrderItem]]:
        order: Optional[Order] = None
        rounded = totals.rounded()
        try:
            customer = await self.resolve_customer(form.customer)
            order = await self._store.create_order(
                order_number=order_number,
                customer_id=customer.id,
                subtotal=rounded.subtotal,
                tax_amount=rounded.tax,
                shipping_amount=rounded.shipping,
                total_amount=rounded.total,
                billing_address=form.billing_address,
                shipping_address=form.resolved_shipping_address(),
                payment_method=form.payment_method,
            )
            items = await self._store.create_order_items(order.id, drafts)
        except asyncio.CancelledError:
            if order is not None:
                _logger.warning(
                    f"Submission cancelled after order {order_number} (id {order.id}) "
                    f"was created; it has no items."
                )
            else:
                _logger.warning(
                    f"Submission cancelled; order {order_number} may exist in the store."
                )
            raise
        except CatalogError:
            if order is not None:
                _logger.error(
                    f"Order {order_number} (id {order.id}) was written but its items "
                    f"were not; the order row is left without items."
                )
            raise
        return order, list(items)

    async def resolve_customer(self, info: CustomerInfo) -> Customer:
        """Find the customer by email or create it; never creates a duplicate."""
        email = info.email.strip()
        customer = await self._store.find_customer_by_email(email)
        if customer is not None:
            _logger.debug(f"Reusing customer {customer.id} for {email}")
            return customer
        try:
            customer = await self._store.create_customer(
                email=email,
                first_name=info.first_name.strip(),
                last_name=info.last_name.strip(),
                phone=(info.phone or "").strip() or None,
            )
            _logger.info(f"Created customer {customer.id} for {email}")
            return customer
        except CustomerExistsError:
            # created by a concurrent submission between lookup and insert
            customer = await self._store.find_customer_by_email(email)
            if customer is None:
                raise CatalogWriteError(f"Customer {email} exists but cannot be read.")
            return customer
