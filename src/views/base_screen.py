from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.events import ScreenResume
from textual.screen import Screen
from textual.widgets import Footer, Header, Label, ListItem, ListView, Markdown

from shop.pricing import format_money
from utils.messages import ModeSwitchedMessage
from utils.pure import generate_markdown_table
from views.modal_dialog import QuitDialogModal


class Sidebar(Container):
    init_mode = ""

    def compose(self) -> ComposeResult:
        yield Label("Your Cart", id="label-info-1")
        yield Markdown("", id="md-cart-badge")
        yield Label("Menu", id="label-info-2")
        yield ListView(id="list-menu")

    async def on_mount(self):
        self.init_mode = self.app.current_mode

        list_menu: ListView = self.query_one("#list-menu")
        await list_menu.clear()
        await list_menu.extend(
            [
                ListItem(Label(v), id="list-menu-item-" + k)
                for k, v in self.app.MENU.items()
            ]
        )
        self.highlight_item(self.init_mode)
        await self.refresh_summary()

    async def refresh_summary(self) -> None:
        state = self.app.state
        count = state.cart.items_count()
        totals = state.totals()
        table_rows = [
            ["Items", count],
            ["Subtotal", format_money(totals.subtotal)],
        ]
        md_table_str = generate_markdown_table(None, table_rows, ["l", "r"])
        await self.query_one("#md-cart-badge", Markdown).update(md_table_str)

    async def on_list_view_selected(self, event: ListView.Selected):
        selected_mode = event.item.id.removeprefix("list-menu-item-")
        self.highlight_item(self.init_mode)
        if self.app.current_mode != selected_mode:
            self.app.post_message(
                ModeSwitchedMessage(self.app.current_mode, selected_mode)
            )

    def highlight_item(self, mode_str: str):
        list_menu = self.query_one("#list-menu")
        for item in list_menu.children:
            item.highlighted = item.id == "list-menu-item-" + mode_str


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
    ]

    def __init__(self):
        super().__init__()

        self.configure()

    def configure(
        self,
        header_sub_title: str = "Storefront",
        show_sidebar: bool = True,
    ) -> None:
        """
        configure behavior of the base screen
        """

        # auto gen titles and subtitles
        self.app.title = "ShopPro"
        self.sub_title = header_sub_title
        for k, v in self.app.MODES.items():
            if isinstance(self, v) and k in self.app.MENU:
                self.sub_title = self.app.MENU[k]

        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    async def cart_changed(self) -> None:
        """Called by the app whenever the session cart changes."""
        for sidebar in self.query(Sidebar):
            if sidebar.is_mounted:
                await sidebar.refresh_summary()

    @on(ScreenResume)
    async def handle_resume(self):
        await self.cart_changed()

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())
