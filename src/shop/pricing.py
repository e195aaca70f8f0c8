"""
Price derivation for products, carts and orders.

Everything here works on Decimal and keeps full precision; rounding to cents
happens only in `to_cents` (amounts written on an order) and `format_money`
(amounts shown to the user).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Protocol

from db.models import Product

CENT = Decimal("0.01")


@dataclass(frozen=True)
class PricingRules:
    tax_rate: Decimal = Decimal("0.08")
    free_shipping_threshold: Decimal = Decimal("50")
    flat_shipping: Decimal = Decimal("9.99")


DEFAULT_RULES = PricingRules()


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    @property
    def free_shipping(self) -> bool:
        return self.shipping == 0

    def rounded(self) -> "PriceBreakdown":
        """Same breakdown with every amount rounded to cents."""
        return PriceBreakdown(
            subtotal=to_cents(self.subtotal),
            tax=to_cents(self.tax),
            shipping=to_cents(self.shipping),
            total=to_cents(self.total),
        )


class _HasTotal(Protocol):
    def cart_total(self) -> Decimal: ...


def effective_price(product: Product) -> Decimal:
    """The unit price a customer pays: sale_price when set, else price."""
    if product.sale_price is not None:
        return product.sale_price
    return product.price


def discount_percent(product: Product) -> Optional[int]:
    """
    Whole percent off for display, e.g. 25 for 199.99 -> 149.99.
    None when there is no sale price or it is not below the base price.
    """
    sale = product.sale_price
    if sale is None or product.price <= 0 or sale >= product.price:
        return None
    pct = (product.price - sale) / product.price * 100
    return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_totals(
    subtotal: Decimal, rules: PricingRules = DEFAULT_RULES
) -> PriceBreakdown:
    subtotal = Decimal(subtotal)
    tax = subtotal * rules.tax_rate
    # free shipping only strictly above the threshold
    shipping = Decimal("0") if subtotal > rules.free_shipping_threshold else rules.flat_shipping
    return PriceBreakdown(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        total=subtotal + tax + shipping,
    )


def price_cart(cart: _HasTotal, rules: PricingRules = DEFAULT_RULES) -> PriceBreakdown:
    return calculate_totals(cart.cart_total(), rules)


def amount_to_free_shipping(
    subtotal: Decimal, rules: PricingRules = DEFAULT_RULES
) -> Decimal:
    """How much more must be spent to qualify; 0 once it already does."""
    if subtotal > rules.free_shipping_threshold:
        return Decimal("0")
    return rules.free_shipping_threshold - subtotal + CENT


def to_cents(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal, symbol: str = "$") -> str:
    return f"{symbol}{to_cents(amount):,.2f}"
