from typing import List, Optional, Tuple
from urllib.parse import quote_plus

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.widgets import DataTable, Input, Label, Select

import db.crud as crud
from db.errors import BackendError
from db.models import Product
from utils.pure import money
from views.base_screen import BaseScreen

FEATURED_COUNT = 12


class CatalogueScreen(BaseScreen):
    """
    Product listing shared by the home page, category pages and search.

    `/` and `/home` show the newest products, `/category/:category` one
    category, `/search?q=...` keyword results.
    """

    def __init__(self, params=None, query=None, mode: str = "home"):
        super().__init__(params, query)
        self.mode = mode
        titles = {"home": "Home", "category": "Category", "search": "Search"}
        self.configure(header_sub_title=titles.get(mode, "Products"))
        self._products: List[Product] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-catalogue-filters"):
            yield Input(
                self.query_args.get("q", ""),
                id="input-search",
                placeholder="Start typing to search something...",
            )
            yield Select([], prompt="All categories", id="select-category")
        yield Label("", id="label-catalogue-title")
        yield DataTable(id="table-products")

    async def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Name", "Category", "Price", "Stock")

        categories = await crud.list_categories()
        select = self.query_one("#select-category", Select)
        select.set_options([(c.name, c.slug) for c in categories])
        if self.mode == "category" and self.params.get("category"):
            select.value = self.params["category"]

        if self.mode == "search":
            self.query_one("#input-search").focus()
        self.load_products()

    @on(Input.Submitted, "#input-search")
    def handle_search_submit(self, message: Input.Submitted):
        q = message.value.strip()
        if q:
            self.go(f"/search?q={quote_plus(q)}")

    @on(Input.Changed, "#input-search")
    def handle_search_changed(self, message: Input.Changed):
        # live results on the search page only
        if self.mode == "search":
            self.query_args["q"] = message.value
            self.load_products()

    @on(Select.Changed, "#select-category")
    def handle_category_changed(self, message: Select.Changed):
        if message.value is Select.BLANK:
            return
        if message.value != self.params.get("category"):
            self.go(f"/category/{message.value}")

    async def _fetch_products(self) -> Tuple[List[Product], str]:
        """Products for the current mode and the heading above them."""
        if self.mode == "search":
            q = (self.query_args.get("q") or "").strip()
            products = await crud.search_products(q) if q else []
            if not q:
                return products, "Type to search products."
            return products, f"{len(products)} result(s) for \"{q}\""
        if self.mode == "category":
            slug = self.params.get("category")
            products = await crud.list_products(category=slug)
            return products, f"Category: {slug} ({len(products)} products)"
        return await crud.list_products(limit=FEATURED_COUNT), "New arrivals"

    @work(exclusive=True)
    async def load_products(self) -> None:
        self.clear_load_error("#table-products")
        try:
            products, heading = await self._fetch_products()
        except BackendError as e:
            self.show_load_error("#table-products", "load products", e, self.load_products)
            return
        self.query_one("#label-catalogue-title", Label).update(heading)

        self._products = products
        table = self.query_one(DataTable)
        table.clear()
        for p in products:
            price = money(p.unit_price)
            if p.discounted_price:
                price += f" (was {money(p.price)})"
            table.add_row(
                p.name,
                p.category,
                price,
                str(p.stock) if p.stock > 0 else "Out of stock",
                key=p.id,
            )

    @on(DataTable.RowSelected, "#table-products")
    def handle_row_selected(self, message: DataTable.RowSelected):
        product_id: Optional[str] = message.row_key.value
        if product_id:
            self.go(f"/product/{product_id}")
