from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from shop.cart import CartEngine
from shop.checkout import CheckoutPipeline, OrderConfirmation
from shop.pricing import DEFAULT_RULES, PriceBreakdown, PricingRules, price_cart


@dataclass
class SessionState:
    """
    State owned by one storefront session and shared by its screens.

    Fields:
      - cart: the session's cart; screens mutate it directly
      - rules: pricing rules used for every total shown or charged
      - pipeline: checkout pipeline bound to `cart`
      - last_order: confirmation of the most recent successful checkout
    """

    cart: CartEngine = field(default_factory=CartEngine)
    rules: PricingRules = DEFAULT_RULES
    pipeline: Optional[CheckoutPipeline] = None
    last_order: Optional[OrderConfirmation] = None

    def __post_init__(self) -> None:
        if self.pipeline is None:
            self.pipeline = CheckoutPipeline(self.cart, rules=self.rules)

    def totals(self) -> PriceBreakdown:
        return price_cart(self.cart, self.rules)

    def reset(self) -> None:
        """Forget the cart and the last confirmation (e.g. on quit)."""
        self.cart.clear_cart()
        self.last_order = None
