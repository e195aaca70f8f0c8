from typing import Dict, List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.widgets import DataTable, Input, Label, ListItem, ListView

import db.crud
from db.models import Category, Product
from shop.pricing import discount_percent, effective_price, format_money
from utils.errors import CatalogReadError
from views.base_screen import BaseScreen
from views.modal_prod_detail import ProdDetailModal

ALL_PRODUCTS = "__all__"
FEATURED = "__featured__"


class BrowseScreen(BaseScreen):
    """
    Catalog browsing: category list on the left, search box and product
    table on the right. Enter on a row opens the product detail modal.
    """

    # bindings here are only displayed in footer
    BINDINGS = [
        Binding("enter", "noop", "View Product", show=True, key_display="⏎"),
        Binding("ctrl+f", "focus_search", "Search", show=True),
    ]

    query_str = reactive("", init=False)
    category_key = reactive(ALL_PRODUCTS, init=False)

    def __init__(self):
        super().__init__()
        self._products: Dict[str, Product] = {}
        self._categories: List[Category] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-browse"):
            yield ListView(id="list-categories")
            with Vertical(id="vert-products"):
                yield Input(
                    id="input-search", placeholder="Search products by name or description..."
                )
                yield DataTable(id="table-products")
                yield Label("", id="label-result-cnt")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Product", "Category", "Price", "Deal", "Stock")

        self.load_categories()
        self.load_products()
        self.query_one("#input-search").focus()

    def action_noop(self) -> None:
        pass

    def action_focus_search(self) -> None:
        self.query_one("#input-search").focus()

    @work(exclusive=True, group="categories")
    async def load_categories(self) -> None:
        try:
            self._categories = await db.crud.list_categories()
        except CatalogReadError:
            self.notify("Failed to load categories.", severity="error")
            return

        items = [
            ListItem(Label("All Products"), name=ALL_PRODUCTS),
            ListItem(Label("Featured"), name=FEATURED),
        ]
        items.extend(ListItem(Label(c.name), name=c.id) for c in self._categories)
        list_categories = self.query_one("#list-categories", ListView)
        await list_categories.clear()
        await list_categories.extend(items)

    @on(ListView.Selected, "#list-categories")
    def handle_category_selected(self, event: ListView.Selected) -> None:
        self.category_key = event.item.name or ALL_PRODUCTS

    @on(Input.Changed, "#input-search")
    def handle_search_changed(self, message: Input.Changed) -> None:
        self.query_str = message.value

    def watch_query_str(self) -> None:
        self.load_products()

    def watch_category_key(self) -> None:
        self.load_products()

    @work(exclusive=True, group="products")
    async def load_products(self) -> None:
        category_id: Optional[str] = None
        featured = None
        if self.category_key == FEATURED:
            featured = True
        elif self.category_key != ALL_PRODUCTS:
            category_id = self.category_key

        try:
            products = await db.crud.list_products(
                category_id=category_id,
                featured=featured,
                search=self.query_str,
            )
        except CatalogReadError:
            # keep the rows already on screen
            self.notify("Failed to load products.", severity="error")
            return

        self._products = {p.id: p for p in products}
        table = self.query_one(DataTable)
        table.clear()
        for p in products:
            table.add_row(*self._row_for(p), key=p.id)

        cnt = len(products)
        text = f"{cnt} product{'s' if cnt != 1 else ''}"
        if self.query_str.strip():
            text += f' matching "{self.query_str.strip()}"'
        self.query_one("#label-result-cnt", Label).update(text)

    @staticmethod
    def _row_for(p: Product) -> tuple:
        pct = discount_percent(p)
        if pct is not None:
            price = f"{format_money(effective_price(p))} (was {format_money(p.price)})"
            deal = f"{pct}% OFF"
        else:
            price = format_money(effective_price(p))
            deal = "Featured" if p.featured else ""
        stock = str(p.stock_quantity) if p.in_stock else "Out of stock"
        category = p.category.name if p.category else "-"
        return p.name, category, price, deal, stock

    @on(DataTable.RowSelected, "#table-products")
    @work()
    async def handle_row_selected(self, event: DataTable.RowSelected) -> None:
        product = self._products.get(event.row_key.value)
        if product is None:
            return
        await self.app.push_screen_wait(ProdDetailModal(product))
