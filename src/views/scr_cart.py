from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, HorizontalGroup, VerticalScroll
from textual.message import Message
from textual.widgets import Button, Label, Markdown, Rule

from shop.cart import CartLine
from shop.pricing import amount_to_free_shipping, format_money
from utils.messages import CartChangedMessage, ModeSwitchedMessage
from utils.pure import markdown_lines
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_dialog import DialogModal


class CartItemActionRemoveMessage(Message):
    bubble = True


class CartItemActionLabel(Label):
    def action_remove(self):
        self.post_message(CartItemActionRemoveMessage())


class CartItemWidget(HorizontalGroup):
    """One cart line: name, unit price, quantity stepper, line total."""

    def __init__(self, line: CartLine):
        super().__init__()
        self.line = line

    def compose(self):
        product = self.line.product
        with Container(classes="div-cart-item-group"):
            with Container(classes="div-item"):
                yield Label(product.name, classes="label-item-name")
                yield Label(format_money(self.line.unit_price), classes="label-item-price")
                yield Label(format_money(self.line.line_total), classes="label-item-total")
            with Horizontal(classes="div-actions"):
                yield Button(
                    "-", classes="btn-qty-sub", disabled=self.line.quantity <= 1
                )
                yield Label(str(self.line.quantity), classes="label-item-qty")
                # the engine accepts any quantity; stock is enforced here
                yield Button(
                    "+",
                    classes="btn-qty-add",
                    disabled=self.line.quantity >= product.stock_quantity,
                )
                yield CartItemActionLabel(
                    "[@click=remove()]Remove[/]", classes="link-item-remove"
                )

    def _set_qty(self, qty: int) -> None:
        cart = self.app.state.cart
        qty = min(qty, self.line.product.stock_quantity)
        cart.update_quantity(self.line.product_id, qty)
        self.app.post_message(CartChangedMessage())

    @on(Button.Pressed, ".btn-qty-add")
    def handle_add(self):
        self._set_qty(self.line.quantity + 1)

    @on(Button.Pressed, ".btn-qty-sub")
    def handle_sub(self):
        if self.line.quantity > 1:
            self._set_qty(self.line.quantity - 1)

    @on(CartItemActionRemoveMessage)
    @work()
    async def handle_remove_item(self):
        remove_confirmed = await self.app.push_screen_wait(
            DialogModal(
                f"Remove {self.line.product.name} from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        )

        if remove_confirmed:
            self.app.state.cart.remove_from_cart(self.line.product_id)
            self.app.post_message(CartChangedMessage())
            self.notify("Item removed from cart.", severity="information")


class CartScreen(BaseScreen):
    """
    Cart lines, totals breakdown, and the way into checkout.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield VerticalScroll(id="vertscroll-content")
        yield Markdown("", id="md-cart-totals")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Continue Shopping", id="btn-continue")
            yield Button("Checkout", id="btn-checkout", variant="primary")

    async def cart_changed(self) -> None:
        await super().cart_changed()
        self.reload_cart()

    @work(exclusive=True, group="cart")  # must exclusive, else rows get mounted twice
    async def reload_cart(self) -> None:
        state = self.app.state
        lines = state.cart.lines()

        content = self.query_one("#vertscroll-content")
        await content.remove_children()
        await content.mount_all([CartItemWidget(line) for line in lines])

        if not lines:
            content.add_class("no-items")
        else:
            content.remove_class("no-items")

        totals = state.totals()
        if totals.free_shipping:
            shipping = "Free"
        else:
            shipping = format_money(totals.shipping)
        pairs = [
            ("Items", state.cart.items_count()),
            ("Subtotal", format_money(totals.subtotal)),
            (f"Tax ({(state.rules.tax_rate * 100).normalize():f}%)", format_money(totals.tax)),
            ("Shipping", shipping),
            ("Total", format_money(totals.total)),
        ]
        md = markdown_lines(pairs)
        if lines and not totals.free_shipping:
            more = amount_to_free_shipping(totals.subtotal, state.rules)
            md += f"\n\n*Add {format_money(more)} more for free shipping.*"
        if not lines:
            md = "### Your cart is empty\n\n" + md
        await self.query_one("#md-cart-totals", Markdown).update(md)

        self.query_one("#btn-checkout", Button).disabled = not lines

    @on(Button.Pressed, "#btn-clear-cart")
    @work()
    async def handle_clear_cart(self) -> None:
        if self.app.state.cart.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return

        remove_confirmed = await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove all items from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="error",
            )
        )
        if remove_confirmed:
            self.app.state.cart.clear_cart()
            self.app.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-continue")
    def handle_continue(self) -> None:
        self.app.post_message(ModeSwitchedMessage(self.app.current_mode, "browse"))

    @on(Button.Pressed, "#btn-checkout")
    @work()
    async def handle_checkout(self) -> None:
        """
        Open up checkout modal
        """
        if self.app.state.cart.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return

        confirmation = await self.app.push_screen_wait(CheckoutModal())
        if confirmation:
            self.app.post_message(CartChangedMessage())
