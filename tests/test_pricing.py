import os
import sys
import unittest
from decimal import Decimal

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db.models import Product  # noqa: E402
from shop.cart import CartEngine  # noqa: E402
from shop.pricing import (  # noqa: E402
    DEFAULT_RULES,
    PricingRules,
    amount_to_free_shipping,
    calculate_totals,
    discount_percent,
    effective_price,
    format_money,
    price_cart,
    to_cents,
)


def make_product(pid="p1", price="10.00", sale_price=None):
    return Product(
        id=pid,
        name=pid,
        price=Decimal(price),
        sale_price=Decimal(sale_price) if sale_price is not None else None,
        sku=pid.upper(),
        slug=pid,
        stock_quantity=10,
    )


class TotalsTestCase(unittest.TestCase):
    def test_totals_follow_the_formula(self):
        for raw in ["0.01", "10.00", "49.99", "50.00", "50.01", "100.00", "1234.56"]:
            subtotal = Decimal(raw)
            totals = calculate_totals(subtotal)
            self.assertEqual(totals.subtotal, subtotal)
            self.assertEqual(totals.tax, subtotal * Decimal("0.08"))
            expected_shipping = Decimal("0") if subtotal > 50 else Decimal("9.99")
            self.assertEqual(totals.shipping, expected_shipping)
            self.assertEqual(totals.total, subtotal + totals.tax + totals.shipping)

    def test_exactly_threshold_pays_shipping(self):
        totals = calculate_totals(Decimal("50.00"))
        self.assertEqual(totals.shipping, Decimal("9.99"))
        self.assertFalse(totals.free_shipping)
        self.assertEqual(totals.rounded().total, Decimal("63.99"))

    def test_over_threshold_ships_free(self):
        totals = calculate_totals(Decimal("100"))
        self.assertTrue(totals.free_shipping)
        self.assertEqual(totals.tax, Decimal("8.00"))
        self.assertEqual(totals.total, Decimal("108.00"))

    def test_rounded_to_cents_half_up(self):
        totals = calculate_totals(Decimal("149.99")).rounded()
        self.assertEqual(totals.tax, Decimal("12.00"))  # 11.9992
        self.assertEqual(totals.total, Decimal("161.99"))  # 161.9892
        self.assertEqual(to_cents(Decimal("0.005")), Decimal("0.01"))
        self.assertEqual(to_cents(Decimal("2.675")), Decimal("2.68"))

    def test_reference_examples(self):
        below = calculate_totals(Decimal("42.00")).rounded()
        self.assertEqual(below.tax, Decimal("3.36"))
        self.assertEqual(below.shipping, Decimal("9.99"))
        self.assertEqual(below.total, Decimal("55.35"))

        above = calculate_totals(Decimal("60.00")).rounded()
        self.assertEqual(above.tax, Decimal("4.80"))
        self.assertEqual(above.shipping, Decimal("0"))
        self.assertEqual(above.total, Decimal("64.80"))

    def test_custom_rules(self):
        rules = PricingRules(
            tax_rate=Decimal("0.10"),
            free_shipping_threshold=Decimal("20"),
            flat_shipping=Decimal("5"),
        )
        self.assertEqual(calculate_totals(Decimal("10"), rules).total, Decimal("16.00"))
        self.assertEqual(calculate_totals(Decimal("30"), rules).total, Decimal("33.00"))

    def test_price_cart(self):
        cart = CartEngine()
        self.assertEqual(price_cart(cart).total, DEFAULT_RULES.flat_shipping)
        cart.add_to_cart(make_product("a", "20.00"), 3)
        totals = price_cart(cart)
        self.assertEqual(totals.subtotal, Decimal("60.00"))
        self.assertTrue(totals.free_shipping)

    def test_amount_to_free_shipping(self):
        self.assertEqual(amount_to_free_shipping(Decimal("40.00")), Decimal("10.01"))
        self.assertEqual(amount_to_free_shipping(Decimal("50.00")), Decimal("0.01"))
        self.assertEqual(amount_to_free_shipping(Decimal("50.01")), Decimal("0"))


class ProductPriceTestCase(unittest.TestCase):
    def test_effective_price(self):
        self.assertEqual(effective_price(make_product(price="89.00")), Decimal("89.00"))
        self.assertEqual(
            effective_price(make_product(price="199.99", sale_price="149.99")),
            Decimal("149.99"),
        )
        # a sale price is used as-is even when it is not lower
        self.assertEqual(
            effective_price(make_product(price="10.00", sale_price="12.00")),
            Decimal("12.00"),
        )
        self.assertEqual(
            effective_price(make_product(price="10.00", sale_price="0")), Decimal("0")
        )

    def test_discount_percent(self):
        self.assertEqual(
            discount_percent(make_product(price="199.99", sale_price="149.99")), 25
        )
        self.assertEqual(
            discount_percent(make_product(price="14.99", sale_price="11.99")), 20
        )
        self.assertIsNone(discount_percent(make_product(price="10.00")))
        self.assertIsNone(
            discount_percent(make_product(price="10.00", sale_price="10.00"))
        )
        self.assertIsNone(
            discount_percent(make_product(price="10.00", sale_price="12.00"))
        )

    def test_format_money(self):
        self.assertEqual(format_money(Decimal("1234.5")), "$1,234.50")
        self.assertEqual(format_money(Decimal("0")), "$0.00")
        self.assertEqual(format_money(Decimal("9.999")), "$10.00")
        self.assertEqual(format_money(Decimal("12"), symbol="€"), "€12.00")


if __name__ == "__main__":
    unittest.main()
