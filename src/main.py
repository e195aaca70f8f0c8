from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from utils.logger import get_logger, route_to_textual
from utils.messages import CartChangedMessage, ModeSwitchedMessage, QuitRequestedMessage
from utils.state import SessionState
from views.base_screen import BaseScreen
from views.scr_browse import BrowseScreen
from views.scr_cart import CartScreen
from views.scr_order_lookup import OrderLookupScreen

_logger = get_logger(__name__)


class StorefrontApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "browse": BrowseScreen,
        "cart": CartScreen,
        "orders": OrderLookupScreen,
    }

    MENU = {
        "browse": "Shop",
        "cart": "Cart",
        "orders": "Order Lookup",
    }

    CSS_PATH = "views/storefront.tcss"

    state: SessionState

    def __init__(self, state: SessionState | None = None):
        super().__init__()
        self.state = state or SessionState()

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        route_to_textual()
        _logger.info("Storefront started.")
        await self.switch_mode("browse")

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @on(ModeSwitchedMessage)
    async def handle_mode_switch(self, message: ModeSwitchedMessage):
        if message.new_mode in self.MODES and self.current_mode != message.new_mode:
            await self.switch_mode(message.new_mode)

    @on(CartChangedMessage)
    async def handle_cart_changed(self):
        # screens under a modal need refreshing too
        for screen in self.screen_stack:
            if isinstance(screen, BaseScreen):
                await screen.cart_changed()

    @on(QuitRequestedMessage)
    @work
    async def handle_quit(self):
        if not self.state.cart.is_empty:
            _logger.info(f"Quitting with {self.state.cart.items_count()} item(s) in cart.")
        self.state.reset()
        self.exit()


def run() -> None:
    StorefrontApp().run()


if __name__ == "__main__":
    run()
