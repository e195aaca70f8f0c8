from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label, MarkdownViewer

import db.crud
from db.models import Product
from shop.pricing import discount_percent, effective_price, format_money
from utils.errors import CatalogReadError
from utils.messages import CartChangedMessage
from utils.pure import generate_markdown_table


class ProdDetailModal(ModalScreen[bool]):
    """
    prod detail, plus adding to cart
    Will return true if cart changed, false if not
    """

    def __init__(self, product: Product) -> None:
        super().__init__()

        self._prod = product
        self._order_qty = 1

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical(id="vert-order"):
                yield Label("Order Quantity")
                with Horizontal():
                    yield Button("-", id="btn-sub-qty")
                    yield Input(value="1", id="input-order-qty", type="integer")
                    yield Button("+", id="btn-add-qty")
                yield Label("", id="label-in-cart")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button("Add to Cart", id="btn-addcart", variant="primary")

    async def on_mount(self):
        # re-read so stock and price are current; fall back to what we were given
        try:
            fresh = await db.crud.get_product(self._prod.id)
        except CatalogReadError:
            fresh = None
            self.notify("Could not refresh product details.", severity="warning")
        if fresh is not None:
            self._prod = fresh

        await self.query_one(MarkdownViewer).document.update(self._render_detail())

        in_cart = self.app.state.cart.quantity_of(self._prod.id)
        if in_cart:
            self.query_one("#label-in-cart", Label).update(f"{in_cart} already in cart")

        remaining = self._remaining()
        if remaining < 1:
            order_btn = self.query_one("#btn-addcart", Button)
            order_btn.label = "Out of Stock" if not self._prod.in_stock else "All Stock in Cart"
            order_btn.disabled = True
            order_btn.variant = "warning"
            self.query_one("#input-order-qty", Input).disabled = True

        self.query_one("#input-order-qty").validators = [
            Number(minimum=1, maximum=max(remaining, 1))
        ]
        self._set_qty(1)
        self.query_one("#input-order-qty").focus()

    def _remaining(self) -> int:
        return self.app.state.cart.remaining_stock(self._prod)

    def _render_detail(self) -> str:
        p = self._prod
        pct = discount_percent(p)
        price = format_money(effective_price(p))
        if pct is not None:
            price += f" ~~{format_money(p.price)}~~ ({pct}% OFF)"
        table_rows = [
            ["Price", price],
            ["SKU", p.sku],
            ["Category", p.category.name if p.category else "-"],
            ["Availability", f"{p.stock_quantity} in stock" if p.in_stock else "Out of stock"],
            ["Images", ", ".join(p.images) if p.images else "-"],
        ]
        md_table_str = generate_markdown_table(["Attribute", "Value"], table_rows, ["l", "l"])
        header_md = f"### {p.name}\n\n"
        if p.featured:
            header_md += "*Featured product*\n\n"
        if p.description:
            header_md += f"{p.description}\n\n"
        return header_md + md_table_str

    def _set_qty(self, qty: int) -> None:
        remaining = self._remaining()
        self._order_qty = max(1, min(qty, max(remaining, 1)))

        self.query_one("#btn-sub-qty", Button).disabled = self._order_qty <= 1
        self.query_one("#btn-add-qty", Button).disabled = self._order_qty >= remaining

        input_order_qty = self.query_one("#input-order-qty", Input)
        if input_order_qty.value != str(self._order_qty):
            input_order_qty.value = str(self._order_qty)

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Input.Changed, "#input-order-qty")
    def handle_qty_input(self, message: Input.Changed) -> None:
        if message.value and message.value.isdigit() and self.focused == message.input:
            self._set_qty(int(message.value))

    @on(Button.Pressed, "#btn-add-qty")
    def handle_add_qty(self):
        self._set_qty(self._order_qty + 1)

    @on(Button.Pressed, "#btn-sub-qty")
    def handle_sub_qty(self):
        self._set_qty(self._order_qty - 1)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)

    @on(Button.Pressed, "#btn-addcart")
    @work(exclusive=True)
    async def handle_addcart(self):
        qty = min(self._order_qty, self._remaining())
        if qty < 1:
            self.notify("No more stock available for this product.", severity="warning")
            return
        self.app.state.cart.add_to_cart(self._prod, qty)
        self.app.notify(f"Added {qty} x {self._prod.name} to cart.")
        self.app.post_message(CartChangedMessage())
        self.dismiss(True)
