from typing import Dict

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Button, DataTable, Label, MarkdownViewer, Select, TabbedContent, TabPane

import db.crud as crud
from db.errors import BackendError
from db.functions.seller import TIME_RANGES
from db.models import SELLER_ORDER_STATUSES
from utils.pure import generate_markdown_table, humanize, money, render_analytics_md, short_date
from views.base_screen import BaseScreen
from views.modal_dialog import confirm
from views.modal_product_form import ProductFormModal

TABS = {"products": "tab-products", "orders": "tab-orders"}
RANGE_CHOICES = [(f"Last {k}", k) for k in TIME_RANGES]


class SellerDashboardScreen(BaseScreen):
    """
    Seller dashboard: sales figures and analytics, product management,
    and the orders that contain the seller's products.
    """

    def __init__(self, params=None, query=None) -> None:
        super().__init__(params, query)
        self.configure(header_sub_title="Seller Dashboard")
        self.initial_tab = TABS.get(self.params.get("rest", ""), "tab-overview")
        self._products: Dict[str, Dict] = {}
        self._orders: Dict[str, Dict] = {}

    @property
    def api(self):
        return self.app.seller_api

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="tabs-seller", initial=self.initial_tab):
            with TabPane("Overview", id="tab-overview"):
                with Vertical():
                    with Horizontal(id="hort-figures"):
                        yield Label("Total sales: -", id="label-total-sales")
                        yield Label("Pending orders: -", id="label-pending")
                        yield Select(
                            RANGE_CHOICES, value="week", allow_blank=False, id="select-range"
                        )
                    yield MarkdownViewer(id="md-analytics", show_table_of_contents=False)
            with TabPane("Products", id="tab-products"):
                with Vertical():
                    yield DataTable(id="table-products")
                    with Horizontal(classes="hort-buttons"):
                        yield Button("Delete", id="btn-delete-product", variant="error")
                        yield Button("Edit", id="btn-edit-product")
                        yield Button("Add product", id="btn-add-product", variant="primary")
            with TabPane("Orders", id="tab-orders"):
                with Vertical():
                    yield DataTable(id="table-orders")
                    yield MarkdownViewer(id="md-order-items", show_table_of_contents=False)
                    with Horizontal(classes="hort-buttons"):
                        yield Select(
                            [(humanize(s), s) for s in SELLER_ORDER_STATUSES],
                            prompt="New status",
                            id="select-order-status",
                        )
                        yield Button("Update status", id="btn-update-order", variant="primary")

    def on_mount(self) -> None:
        for table_id, columns in (
            ("#table-products", ("Name", "Category", "Price", "Sale price", "Stock")),
            ("#table-orders", ("Order", "Date", "Customer", "Status", "My items")),
        ):
            table = self.query_one(table_id, DataTable)
            table.cursor_type = "row"
            table.zebra_stripes = True
            table.add_columns(*columns)
        self.load_figures()
        self.load_analytics("week")
        self.load_products()
        self.load_orders()

    def _fail(self, e: BackendError, what: str) -> None:
        self.notify(f"Could not {what}: {e.message}", severity="error")

    # ---- overview ----

    @work(exclusive=True, group="figures")
    async def load_figures(self) -> None:
        self.clear_load_error("#label-total-sales")
        try:
            total = await self.api.total_sales()
            pending = await self.api.pending_order_count()
        except BackendError as e:
            self.show_load_error(
                "#label-total-sales", "load sales figures", e, self.load_figures
            )
            return
        self.query_one("#label-total-sales", Label).update(f"Total sales: {money(total)}")
        self.query_one("#label-pending", Label).update(f"Pending orders: {pending}")

    @on(Select.Changed, "#select-range")
    def handle_range_changed(self, message: Select.Changed) -> None:
        self.load_analytics(message.value)

    @work(exclusive=True, group="analytics")
    async def load_analytics(self, time_range: str) -> None:
        self.clear_load_error("#md-analytics")
        try:
            data = await self.api.analytics(time_range)
        except BackendError as e:
            self.show_load_error(
                "#md-analytics", "load analytics", e, lambda: self.load_analytics(time_range)
            )
            return
        md = render_analytics_md(f"Sales, last {time_range}", data)
        await self.query_one("#md-analytics", MarkdownViewer).document.update(md)

    # ---- products ----

    @work(exclusive=True, group="products")
    async def load_products(self) -> None:
        self.clear_load_error("#table-products")
        try:
            products = await self.api.list_products()
        except BackendError as e:
            self.show_load_error("#table-products", "load your products", e, self.load_products)
            return
        self._products = {p["id"]: p for p in products}
        table = self.query_one("#table-products", DataTable)
        table.clear()
        for p in products:
            table.add_row(
                p["name"],
                p["category"],
                money(p["price"]),
                money(p["discounted_price"]) if p["discounted_price"] else "-",
                str(p["stock"]),
                key=p["id"],
            )
        for btn_id in ("#btn-delete-product", "#btn-edit-product"):
            self.query_one(btn_id).disabled = not products

    def _selected(self, table_id: str):
        table = self.query_one(table_id, DataTable)
        if table.row_count == 0:
            return None
        return table.coordinate_to_cell_key(table.cursor_coordinate).row_key.value

    @on(Button.Pressed, "#btn-add-product")
    @work(exclusive=True, group="product-edit")
    async def handle_add_product(self) -> None:
        categories = await crud.list_categories()
        data = await self.app.push_screen_wait(ProductFormModal(categories))
        if data is None:
            return
        try:
            product = await self.api.add_product(data)
        except BackendError as e:
            self._fail(e, "add the product")
            return
        self.notify(f"{product['name']} added.")
        self.load_products()

    @on(DataTable.RowSelected, "#table-products")
    @on(Button.Pressed, "#btn-edit-product")
    @work(exclusive=True, group="product-edit")
    async def handle_edit_product(self) -> None:
        product = self._products.get(self._selected("#table-products"))
        if product is None:
            return
        categories = await crud.list_categories()
        data = await self.app.push_screen_wait(ProductFormModal(categories, product))
        if data is None:
            return
        try:
            await self.api.update_product(data)
        except BackendError as e:
            self._fail(e, "update the product")
            return
        self.notify("Product updated.")
        self.load_products()

    @on(Button.Pressed, "#btn-delete-product")
    @work(exclusive=True, group="product-edit")
    async def handle_delete_product(self) -> None:
        product = self._products.get(self._selected("#table-products"))
        if product is None:
            return
        if not await confirm(self.app, f"Delete {product['name']}?", tone="error"):
            return
        try:
            await self.api.delete_product(product["id"])
        except BackendError as e:
            self._fail(e, "delete the product")
            return
        self.notify("Product deleted.")
        self.load_products()

    # ---- orders ----

    @work(exclusive=True, group="orders")
    async def load_orders(self) -> None:
        self.clear_load_error("#table-orders")
        try:
            orders = await self.api.list_orders()
        except BackendError as e:
            self.show_load_error("#table-orders", "load orders", e, self.load_orders)
            return
        self._orders = {o["id"]: o for o in orders}
        table = self.query_one("#table-orders", DataTable)
        table.clear()
        for o in orders:
            table.add_row(
                o["id"],
                short_date(o["created_at"]),
                o["customer_email"] or "-",
                humanize(o["status"]),
                str(sum(i["quantity"] for i in o["items"])),
                key=o["id"],
            )
        self.query_one("#btn-update-order").disabled = not orders
        if not orders:
            await self.query_one("#md-order-items", MarkdownViewer).document.update(
                "No orders contain your products yet."
            )

    @on(DataTable.RowHighlighted, "#table-orders")
    async def handle_order_highlight(self, message: DataTable.RowHighlighted) -> None:
        order = self._orders.get(message.row_key.value if message.row_key else None)
        if order is None:
            return
        md = f"### Order {order['id']}\n\n" + generate_markdown_table(
            ["Product", "Qty", "Unit price", "Line total"],
            [
                [i["product_name"], i["quantity"], money(i["price"]), money(i["price"] * i["quantity"])]
                for i in order["items"]
            ],
            ["l", "r", "r", "r"],
        )
        await self.query_one("#md-order-items", MarkdownViewer).document.update(md)

    @on(Button.Pressed, "#btn-update-order")
    @work(exclusive=True, group="order-status")
    async def handle_update_order(self) -> None:
        order_id = self._selected("#table-orders")
        status = self.query_one("#select-order-status", Select).value
        if order_id is None:
            return
        if status is Select.BLANK:
            self.notify("Pick a status first.", severity="warning")
            return
        try:
            result = await self.api.update_order_status(order_id, status)
        except BackendError as e:
            self._fail(e, "update the order")
            return
        self.notify(result.get("message", "Order updated."))
        self.load_orders()
        self.load_figures()
