from typing import Dict, List, Optional, Tuple

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.validation import Regex
from textual.widgets import Button, Checkbox, Input, Label, Markdown, RadioButton, RadioSet

from db.models import Address
from shop.checkout import (
    PAYMENT_METHODS,
    CheckoutForm,
    CustomerInfo,
    OrderConfirmation,
    validate_checkout,
)
from shop.pricing import format_money
from shop.validation import EMAIL_PATTERN
from utils.errors import (
    OrderSubmissionError,
    SubmissionInProgressError,
    ValidationError,
)
from utils.pure import generate_markdown_table, markdown_lines
from views.modal_dialog import DialogModal

CUSTOMER_FIELDS: List[Tuple[str, str]] = [
    ("first_name", "First name"),
    ("last_name", "Last name"),
    ("email", "Email"),
    ("phone", "Phone (optional)"),
]

ADDRESS_FIELDS: List[Tuple[str, str]] = [
    ("first_name", "First name"),
    ("last_name", "Last name"),
    ("company", "Company (optional)"),
    ("address_line_1", "Address"),
    ("address_line_2", "Apartment, suite, etc. (optional)"),
    ("city", "City"),
    ("state", "State"),
    ("postal_code", "ZIP code"),
    ("country", "Country"),
]

OPTIONAL_ADDRESS_FIELDS = {"company", "address_line_2"}


def _input_id(section: str, name: str) -> str:
    return f"input-{section}-{name}"


class CheckoutModal(ModalScreen[Optional[OrderConfirmation]]):
    """
    A modal screen for check out: order summary, contact details, billing and
    shipping addresses, payment method.
    Return the OrderConfirmation on success, None if the user backed out.
    """

    def __init__(self):
        super().__init__()
        self._submitting = False

    def compose(self) -> ComposeResult:
        with Vertical(id="div-checkout"):
            with VerticalScroll(id="vertscroll-checkout"):
                yield Markdown("", id="md-order-summary")

                yield Label("Contact Information", classes="label-section")
                with Container(classes="grid-form"):
                    for name, label in CUSTOMER_FIELDS:
                        validators = []
                        if name == "email":
                            validators = [
                                Regex(EMAIL_PATTERN, failure_description="Invalid email")
                            ]
                        yield Input(
                            placeholder=label,
                            id=_input_id("customer", name),
                            validators=validators,
                            valid_empty=True,
                        )

                yield Label("Billing Address", classes="label-section")
                with Container(classes="grid-form"):
                    yield from self._address_inputs("billing_address")

                yield Checkbox(
                    "Shipping address same as billing", value=True, id="chk-same-as-billing"
                )
                with Container(id="div-shipping"):
                    yield Label("Shipping Address", classes="label-section")
                    with Container(classes="grid-form"):
                        yield from self._address_inputs("shipping_address")

                yield Label("Payment Method", classes="label-section")
                with RadioSet(id="radio-payment"):
                    for key, label in PAYMENT_METHODS.items():
                        yield RadioButton(label, value=key == "credit_card", id=f"radio-{key}")

            with Horizontal(id="hort-checkout-buttons"):
                yield Button("Go Back", id="btn-quit")
                yield Button("Place Order", id="btn-submit", variant="primary")

    @staticmethod
    def _address_inputs(section: str):
        for name, label in ADDRESS_FIELDS:
            value = "US" if name == "country" else ""
            yield Input(value=value, placeholder=label, id=_input_id(section, name))

    async def on_mount(self):
        self.query_one("#div-shipping").display = False
        await self.query_one("#md-order-summary", Markdown).update(self._render_summary())
        self.query_one(f"#{_input_id('customer', 'first_name')}").focus()

    def _render_summary(self) -> str:
        state = self.app.state
        headers = ["Product", "Unit Price", "Quantity", "Total"]
        rows = [
            [
                line.product.name,
                format_money(line.unit_price),
                line.quantity,
                format_money(line.line_total),
            ]
            for line in state.cart
        ]
        totals = state.totals()
        md = "### Order Summary\n\n"
        md += generate_markdown_table(headers, rows, ["l", "r", "c", "r"])
        md += "\n\n" + markdown_lines(
            [
                ("Subtotal", format_money(totals.subtotal)),
                ("Tax", format_money(totals.tax)),
                ("Shipping", "Free" if totals.free_shipping else format_money(totals.shipping)),
                ("Total", format_money(totals.total)),
            ]
        )
        return md

    def _value(self, section: str, name: str) -> str:
        return self.query_one(f"#{_input_id(section, name)}", Input).value.strip()

    def _address(self, section: str) -> Address:
        fields: Dict[str, Optional[str]] = {}
        for name, _ in ADDRESS_FIELDS:
            value = self._value(section, name)
            fields[name] = (value or None) if name in OPTIONAL_ADDRESS_FIELDS else value
        return Address(**fields)

    def _payment_method(self) -> str:
        pressed = self.query_one("#radio-payment", RadioSet).pressed_button
        if pressed is None or not pressed.id:
            return ""
        return pressed.id.removeprefix("radio-")

    def build_form(self) -> CheckoutForm:
        same_as_billing = self.query_one("#chk-same-as-billing", Checkbox).value
        return CheckoutForm(
            customer=CustomerInfo(
                first_name=self._value("customer", "first_name"),
                last_name=self._value("customer", "last_name"),
                email=self._value("customer", "email"),
                phone=self._value("customer", "phone") or None,
            ),
            billing_address=self._address("billing_address"),
            shipping_address=None if same_as_billing else self._address("shipping_address"),
            payment_method=self._payment_method(),
            same_as_billing=same_as_billing,
        )

    def _show_errors(self, errors: Dict[str, str]) -> None:
        for inp in self.query(Input):
            inp.remove_class("-invalid")
        first: Optional[Input] = None
        for key in errors:
            section, _, name = key.partition(".")
            if not name:
                continue
            matches = self.query(f"#{_input_id(section, name)}")
            if matches:
                inp = matches.first(Input)
                inp.add_class("-invalid")
                first = first or inp
        if first is not None:
            first.focus()
        summary = list(errors.values())
        more = f" (+{len(summary) - 3} more)" if len(summary) > 3 else ""
        self.notify(" ".join(summary[:3]) + more, severity="error")

    def _set_submitting(self, submitting: bool) -> None:
        self._submitting = submitting
        btn = self.query_one("#btn-submit", Button)
        btn.disabled = submitting
        btn.label = "Placing order..." if submitting else "Place Order"
        self.query_one("#btn-quit", Button).disabled = submitting

    @on(Checkbox.Changed, "#chk-same-as-billing")
    def handle_same_as_billing(self, event: Checkbox.Changed) -> None:
        self.query_one("#div-shipping").display = not event.value

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.handle_quit()

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True, group="checkout")
    async def handle_submit(self):
        state = self.app.state
        form = self.build_form()
        try:
            validate_checkout(form, state.cart)
        except ValidationError as exc:
            self._show_errors(exc.errors)
            return

        totals = state.totals()
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Place order for {format_money(totals.total)}?",
                primary_text="Yes",
                secondary_text="No",
                tone="positive",
            )
        ):
            return

        self._set_submitting(True)
        try:
            confirmation = await state.pipeline.submit(form)
        except ValidationError as exc:
            self._set_submitting(False)
            self._show_errors(exc.errors)
            return
        except SubmissionInProgressError:
            self.notify("Your order is already being submitted.", severity="warning")
            return
        except OrderSubmissionError as exc:
            self._set_submitting(False)
            self.notify(str(exc), severity="error", timeout=8)
            return

        state.last_order = confirmation
        self._submitting = False
        self.app.notify(
            f"Order placed. Your order number is {confirmation.order_number}.",
            timeout=10,
        )
        self.dismiss(confirmation)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        # leaving mid-submit would lose track of an order the store may have created
        if self._submitting:
            self.notify("Please wait, your order is being submitted.", severity="warning")
            return
        self.dismiss(None)
