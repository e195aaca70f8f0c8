from typing import Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, Input, MarkdownViewer

import db.crud
from db.models import Order
from shop.checkout import PAYMENT_METHODS
from shop.pricing import format_money
from utils.errors import CatalogReadError
from utils.pure import generate_markdown_table, markdown_lines
from views.base_screen import BaseScreen

PLACEHOLDER_MD = """### Look up an order

Enter the order number from your confirmation, e.g. `ORD-1718000000000-K3Z9Q0A1B`."""


class OrderLookupScreen(BaseScreen):
    """
    Find an order by its number and show status, addresses, items and totals.
    After a checkout the last order number is filled in automatically.
    """

    BINDINGS = [
        Binding("enter", "noop", "Find Order", show=True, key_display="⏎"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._shown_number: Optional[str] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            with Horizontal(id="hort-lookup"):
                yield Input(placeholder="ORD-...", id="input-order-number")
                yield Button("Find", id="btn-find", variant="primary")
            yield MarkdownViewer(
                PLACEHOLDER_MD, id="md-order-detail", show_table_of_contents=False
            )

    def on_mount(self) -> None:
        self.query_one("#input-order-number").focus()

    def action_noop(self) -> None:
        pass

    @on(ScreenResume)
    def handle_resume_last_order(self) -> None:
        last = self.app.state.last_order
        if last and last.order_number != self._shown_number:
            self.query_one("#input-order-number", Input).value = last.order_number
            self._load_order(last.order_number)

    @on(Input.Submitted, "#input-order-number")
    @on(Button.Pressed, "#btn-find")
    def handle_find(self) -> None:
        number = self.query_one("#input-order-number", Input).value.strip()
        if not number:
            self.notify("Enter an order number.", severity="warning")
            return
        self._load_order(number)

    @work(exclusive=True, group="order")
    async def _load_order(self, order_number: str) -> None:
        try:
            order = await db.crud.get_order(order_number)
        except CatalogReadError:
            self.notify("Failed to load the order. Please try again.", severity="error")
            return

        viewer = self.query_one("#md-order-detail", MarkdownViewer)
        if order is None:
            self._shown_number = None
            await viewer.document.update(
                f"### Order not found\n\nNo order with number `{order_number}`."
            )
            return
        self._shown_number = order.order_number
        await viewer.document.update(self._render_detail(order))

    @staticmethod
    def _render_detail(order: Order) -> str:
        header = f"### Order {order.order_number}\n\n"
        placed = order.created_at.strftime("%Y-%m-%d %H:%M") if order.created_at else "-"
        info = [
            ("Placed", placed),
            ("Status", order.status.title()),
            ("Payment", f"{PAYMENT_METHODS.get(order.payment_method, order.payment_method)} "
                        f"({order.payment_status})"),
        ]
        if order.customer:
            info.append(("Customer", f"{order.customer.full_name} <{order.customer.email}>"))
        info.append(("Bill To", order.billing_address.one_line()))
        info.append(("Ship To", order.shipping_address.one_line()))

        rows = [
            [
                item.product_name or item.product_id,
                item.quantity,
                format_money(item.price),
                format_money(item.total),
            ]
            for item in order.items
        ]
        items_md = generate_markdown_table(
            ["Product", "Qty", "Unit Price", "Line Total"], rows, ["l", "c", "r", "r"]
        )
        if not items_md:
            items_md = "*This order has no items.*"

        totals = markdown_lines(
            [
                ("Subtotal", format_money(order.subtotal)),
                ("Tax", format_money(order.tax_amount)),
                ("Shipping", format_money(order.shipping_amount)),
                ("Grand Total", format_money(order.total_amount)),
            ]
        )
        return header + markdown_lines(info) + "\n\n" + items_md + "\n\n" + totals
