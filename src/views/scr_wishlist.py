from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.widgets import Button, DataTable, Label

import db.crud as crud
from db.errors import BackendError
from utils.messages import CartChangedMessage
from utils.pure import money
from views.base_screen import BaseScreen


class WishlistScreen(BaseScreen):
    def __init__(self, params=None, query=None) -> None:
        super().__init__(params, query)
        self.configure(header_sub_title="Wishlist")

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield Label("", id="label-wishlist-count")
        yield DataTable(id="table-wishlist")
        with Horizontal(id="hort-buttons"):
            yield Button("Remove", id="btn-remove", variant="error")
            yield Button("View", id="btn-view")
            yield Button("Move to Cart", id="btn-to-cart", variant="primary")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Name", "Category", "Price", "Stock")
        self.load_wishlist()

    @work(exclusive=True)
    async def load_wishlist(self):
        self.clear_load_error("#table-wishlist")
        try:
            products = await crud.list_wishlist(self.app.state.user.id)
        except BackendError as e:
            self.show_load_error("#table-wishlist", "load your wishlist", e, self.load_wishlist)
            return
        table = self.query_one(DataTable)
        table.clear()
        for p in products:
            table.add_row(
                p.name, p.category, money(p.unit_price),
                str(p.stock) if p.stock > 0 else "Out of stock",
                key=p.id,
            )
        self.query_one("#label-wishlist-count", Label).update(
            f"{len(products)} saved product(s)" if products else "Your wishlist is empty."
        )
        for btn in self.query("#hort-buttons Button"):
            btn.disabled = not products

    def _selected_id(self):
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        return table.coordinate_to_cell_key(table.cursor_coordinate).row_key.value

    @on(DataTable.RowSelected)
    @on(Button.Pressed, "#btn-view")
    def handle_view(self):
        pid = self._selected_id()
        if pid:
            self.go(f"/product/{pid}")

    @on(Button.Pressed, "#btn-remove")
    @work(group="wishlist-edit")
    async def handle_remove(self):
        pid = self._selected_id()
        if pid:
            await crud.remove_from_wishlist(self.app.state.user.id, pid)
            self.notify("Removed from wishlist.")
            self.load_wishlist()

    @on(Button.Pressed, "#btn-to-cart")
    @work(group="wishlist-edit")
    async def handle_to_cart(self):
        pid = self._selected_id()
        if not pid:
            return
        try:
            notice = await self.app.cart.add(pid, 1)
        except BackendError as e:
            self.notify(e.message, severity="error")
            return
        await crud.remove_from_wishlist(self.app.state.user.id, pid)
        self.notify(notice or "Moved to cart.", severity="warning" if notice else "information")
        self.post_message(CartChangedMessage())
        self.load_wishlist()
