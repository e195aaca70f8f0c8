import asyncio
import os
import re
import sys
import tempfile
import unittest
from decimal import Decimal

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import crud  # noqa: E402
from db import database as db_database  # noqa: E402
from db.models import Address, Customer, Order, OrderItem, Product  # noqa: E402
from shop.cart import CartEngine  # noqa: E402
from shop.checkout import (  # noqa: E402
    CheckoutForm,
    CheckoutPipeline,
    CustomerInfo,
    generate_order_number,
    validate_checkout,
)
from utils.errors import (  # noqa: E402
    CatalogWriteError,
    CustomerExistsError,
    OrderSubmissionError,
    SubmissionInProgressError,
    ValidationError,
)

ORDER_NUMBER_RE = re.compile(r"^ORD-\d+-[0-9A-Z]{9}$")


def make_address(**overrides):
    values = dict(
        first_name="Jane",
        last_name="Doe",
        address_line_1="1 Main St",
        city="Springfield",
        state="IL",
        postal_code="62701",
        country="US",
    )
    values.update(overrides)
    return Address(**values)


def _product(pid, price, sale_price=None):
    return Product(
        id=pid,
        name=pid,
        price=Decimal(price),
        sale_price=Decimal(sale_price) if sale_price is not None else None,
        sku=pid.upper(),
        slug=pid,
        stock_quantity=50,
    )


def make_form(email="jane@example.com", **overrides):
    values = dict(
        customer=CustomerInfo(first_name="Jane", last_name="Doe", email=email),
        billing_address=make_address(),
    )
    values.update(overrides)
    return CheckoutForm(**values)


class FakeStore:
    """In-memory stand-in for db.crud recording every call."""

    def __init__(self):
        self.calls = []
        self.customers = {}
        self.orders = []
        self.fail_items = False
        self.order_gate = None
        self.order_delay = 0

    async def find_customer_by_email(self, email):
        self.calls.append(("find_customer_by_email", email))
        return self.customers.get(email.lower())

    async def create_customer(self, email, first_name, last_name, phone=None):
        self.calls.append(("create_customer", email))
        customer = Customer(
            id=f"cust-{len(self.customers) + 1}",
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
        )
        self.customers[email.lower()] = customer
        return customer

    async def create_order(self, **kwargs):
        self.calls.append(("create_order", kwargs["order_number"]))
        if self.order_gate is not None:
            await self.order_gate.wait()
        if self.order_delay:
            await asyncio.sleep(self.order_delay)
        order = Order(id=f"order-{len(self.orders) + 1}", **kwargs)
        self.orders.append(order)
        return order

    async def create_order_items(self, order_id, items):
        self.calls.append(("create_order_items", order_id))
        if self.fail_items:
            raise CatalogWriteError("create_order_items failed: disk I/O error")
        return [
            OrderItem(
                id=f"item-{i}",
                order_id=order_id,
                product_id=draft.product_id,
                quantity=draft.quantity,
                price=draft.price,
                total=draft.total,
            )
            for i, draft in enumerate(items)
        ]


class CheckoutFormTestCase(unittest.TestCase):
    def test_order_number_format_and_uniqueness(self):
        numbers = {generate_order_number() for _ in range(10_000)}
        self.assertEqual(len(numbers), 10_000)
        for number in numbers:
            self.assertRegex(number, ORDER_NUMBER_RE)
        self.assertTrue(
            generate_order_number(now_ms=1718000000000).startswith("ORD-1718000000000-")
        )

    def test_valid_form_passes(self):
        validate_checkout(make_form())

    def test_missing_fields_are_all_reported(self):
        form = CheckoutForm(
            customer=CustomerInfo(first_name="Jane"),
            billing_address=Address(first_name="Jane", country=""),
            payment_method="",
        )
        with self.assertRaises(ValidationError) as ctx:
            validate_checkout(form, CartEngine())
        errors = ctx.exception.errors
        for key in [
            "cart",
            "customer.last_name",
            "customer.email",
            "billing_address.last_name",
            "billing_address.address_line_1",
            "billing_address.city",
            "billing_address.state",
            "billing_address.postal_code",
            "billing_address.country",
            "payment_method",
        ]:
            self.assertIn(key, errors)
        self.assertNotIn("customer.first_name", errors)
        self.assertNotIn("billing_address.first_name", errors)
        self.assertEqual(errors["billing_address.city"], "City is required.")

    def test_invalid_email(self):
        for email in ["jane", "jane@", "jane@example", "ja ne@example.com"]:
            with self.assertRaises(ValidationError) as ctx:
                validate_checkout(make_form(email=email))
            self.assertEqual(
                ctx.exception.errors, {"customer.email": "Email address is not valid."}
            )

    def test_shipping_address_checked_only_when_different(self):
        validate_checkout(make_form(same_as_billing=True, shipping_address=None))
        with self.assertRaises(ValidationError) as ctx:
            validate_checkout(make_form(same_as_billing=False, shipping_address=None))
        self.assertIn("shipping_address.city", ctx.exception.errors)
        self.assertFalse(any(k.startswith("billing") for k in ctx.exception.errors))

    def test_resolved_shipping_address(self):
        billing = make_address()
        other = make_address(city="Shelbyville")
        self.assertEqual(
            make_form(shipping_address=other).resolved_shipping_address(), billing
        )
        self.assertEqual(
            make_form(same_as_billing=False, shipping_address=other).resolved_shipping_address(),
            other,
        )


class PipelineFakeStoreTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.store = FakeStore()
        self.cart = CartEngine()
        self.cart.add_to_cart(_product("prod-kettle", "42.00"), 1)
        self.pipeline = CheckoutPipeline(self.cart, store=self.store, timeout=5)

    async def test_validation_failure_never_touches_store(self):
        with self.assertRaises(ValidationError):
            await self.pipeline.submit(make_form(email="not-an-email"))
        self.assertEqual(self.store.calls, [])
        self.assertEqual(self.cart.items_count(), 1)

    async def test_empty_cart_rejected(self):
        self.cart.clear_cart()
        with self.assertRaises(ValidationError) as ctx:
            await self.pipeline.submit(make_form())
        self.assertIn("cart", ctx.exception.errors)
        self.assertEqual(self.store.calls, [])

    async def test_item_failure_keeps_cart(self):
        self.store.fail_items = True
        with self.assertRaises(OrderSubmissionError) as ctx:
            await self.pipeline.submit(make_form())
        self.assertIsInstance(ctx.exception.__cause__, CatalogWriteError)
        self.assertRegex(ctx.exception.order_number, ORDER_NUMBER_RE)
        self.assertEqual(self.cart.items_count(), 1)
        self.assertEqual(len(self.store.orders), 1)
        self.assertFalse(self.pipeline.in_flight)

    async def test_timeout_keeps_cart(self):
        self.store.order_delay = 1
        pipeline = CheckoutPipeline(self.cart, store=self.store, timeout=0.05)
        with self.assertRaises(OrderSubmissionError) as ctx:
            await pipeline.submit(make_form())
        self.assertIsInstance(ctx.exception.__cause__, asyncio.TimeoutError)
        self.assertEqual(self.cart.items_count(), 1)
        self.assertFalse(pipeline.in_flight)

    async def test_second_submit_while_in_flight(self):
        self.store.order_gate = asyncio.Event()
        first = asyncio.create_task(self.pipeline.submit(make_form()))
        while not any(name == "create_order" for name, _ in self.store.calls):
            await asyncio.sleep(0)
        self.assertTrue(self.pipeline.in_flight)

        with self.assertRaises(SubmissionInProgressError):
            await self.pipeline.submit(make_form())

        self.store.order_gate.set()
        confirmation = await first
        self.assertEqual(len(self.store.orders), 1)
        self.assertEqual(confirmation.items_count, 1)
        self.assertTrue(self.cart.is_empty)
        self.assertFalse(self.pipeline.in_flight)

    async def test_customer_created_concurrently_is_refetched(self):
        existing = Customer(
            id="cust-race", email="jane@example.com", first_name="Jane", last_name="Doe"
        )
        store = self.store

        async def racing_create(email, first_name, last_name, phone=None):
            store.calls.append(("create_customer", email))
            store.customers[email.lower()] = existing
            raise CustomerExistsError(email)

        store.create_customer = racing_create
        customer = await self.pipeline.resolve_customer(
            CustomerInfo(first_name="Jane", last_name="Doe", email=" jane@example.com ")
        )
        self.assertEqual(customer.id, "cust-race")
        self.assertEqual(
            [name for name, _ in store.calls],
            ["find_customer_by_email", "create_customer", "find_customer_by_email"],
        )

    async def test_submission_log_shows_formatted_total(self):
        with self.assertLogs("shop.checkout", level="INFO") as logs:
            await self.pipeline.submit(make_form())
        submitting = [line for line in logs.output if "Submitting order" in line]
        self.assertEqual(len(submitting), 1)
        self.assertIn("total $55.35", submitting[0])

    async def test_drafts_freeze_charged_price(self):
        self.cart.add_to_cart(_product("prod-hp", "199.99", sale_price="149.99"), 2)
        confirmation = await self.pipeline.submit(make_form())
        order = self.store.orders[0]
        self.assertEqual(order.subtotal, Decimal("341.98"))
        self.assertEqual(order.shipping_amount, Decimal("0"))
        self.assertEqual(confirmation.totals.tax, Decimal("27.36"))
        self.assertEqual(confirmation.items_count, 3)


class PipelineDatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        db_database.DB_PATH = os.path.join(self.temp_dir.name, "test.sqlite")
        db_database._initialized = False
        self.cart = CartEngine()
        self.pipeline = CheckoutPipeline(self.cart)

    async def asyncSetUp(self):
        self.headphones = await crud.get_product_by_slug("wireless-headphones")
        self.kettle = await crud.get_product_by_slug("electric-kettle")

    def tearDown(self):
        self.temp_dir.cleanup()

    async def _customer_count(self):
        async with db_database.connect() as conn:
            cur = await conn.execute("SELECT COUNT(*) FROM customers;")
            (count,) = await cur.fetchone()
            await cur.close()
        return count

    async def test_submit_writes_order_and_clears_cart(self):
        self.cart.add_to_cart(self.headphones, 1)
        confirmation = await self.pipeline.submit(make_form())

        self.assertRegex(confirmation.order_number, ORDER_NUMBER_RE)
        self.assertEqual(confirmation.totals.subtotal, Decimal("149.99"))
        self.assertEqual(confirmation.totals.tax, Decimal("12.00"))
        self.assertEqual(confirmation.totals.shipping, Decimal("0.00"))
        self.assertEqual(confirmation.totals.total, Decimal("161.99"))
        self.assertTrue(self.cart.is_empty)

        order = await crud.get_order(confirmation.order_number)
        self.assertEqual(order.status, "pending")
        self.assertEqual(order.payment_status, "pending")
        self.assertEqual(order.total_amount, Decimal("161.99"))
        self.assertEqual(order.customer.email, "jane@example.com")
        self.assertEqual(order.shipping_address, order.billing_address)
        self.assertEqual(len(order.items), 1)
        self.assertEqual(order.items[0].price, Decimal("149.99"))

    async def test_separate_shipping_address_is_stored(self):
        self.cart.add_to_cart(self.kettle, 1)
        form = make_form(
            same_as_billing=False,
            shipping_address=make_address(city="Shelbyville", postal_code="62565"),
            payment_method="paypal",
        )
        confirmation = await self.pipeline.submit(form)
        order = await crud.get_order(confirmation.order_number)
        self.assertEqual(order.billing_address.city, "Springfield")
        self.assertEqual(order.shipping_address.city, "Shelbyville")
        self.assertEqual(order.payment_method, "paypal")
        self.assertEqual(order.shipping_amount, Decimal("9.99"))

    async def test_same_email_reuses_customer(self):
        self.cart.add_to_cart(self.kettle, 1)
        first = await self.pipeline.submit(make_form(email="jane@example.com"))
        self.cart.add_to_cart(self.kettle, 2)
        second = await self.pipeline.submit(make_form(email="Jane@Example.com"))

        self.assertNotEqual(first.order_number, second.order_number)
        self.assertEqual(first.customer_id, second.customer_id)
        self.assertEqual(await self._customer_count(), 1)

    async def test_order_items_keep_price_after_catalog_change(self):
        self.cart.add_to_cart(self.kettle, 2)
        confirmation = await self.pipeline.submit(make_form())
        await crud.update_product_price(self.kettle.id, price=Decimal("99.00"))

        order = await crud.get_order(confirmation.order_number)
        self.assertEqual(order.items[0].price, Decimal("42.00"))
        self.assertEqual(order.items[0].total, Decimal("84.00"))
        self.assertEqual(order.subtotal, Decimal("84.00"))


if __name__ == "__main__":
    unittest.main()
