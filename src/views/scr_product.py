from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.reactive import reactive
from textual.validation import Number
from textual.widgets import Button, DataTable, Input, Label, MarkdownViewer, Select

import db.crud as crud
from db.errors import BackendError
from db.models import Product
from utils.messages import CartChangedMessage
from utils.pure import generate_markdown_table, money, short_date
from views.base_screen import BaseScreen


class ProductScreen(BaseScreen):
    """
    Product detail with ordering, wishlist, reviews and related products.
    """

    order_qty = reactive(1)

    def __init__(self, params=None, query=None) -> None:
        super().__init__(params, query)
        self.configure(header_sub_title="Product")
        self._pid = self.params.get("id")
        self._prod: Product = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", id="md-product", show_table_of_contents=False)
            with VerticalScroll(id="div-prod-actions"):
                yield Label("Order Quantity")
                with Horizontal(id="hort-qty"):
                    yield Button("-", id="btn-sub-qty")
                    yield Input(value="1", id="input-order-qty", type="integer")
                    yield Button("+", id="btn-add-qty")
                yield Button("Add to Cart", id="btn-addcart", variant="primary")
                yield Button("Add to Wishlist", id="btn-wishlist")
                with Vertical(id="div-review-form"):
                    yield Label("Write a review")
                    yield Select(
                        [(f"{n} star{'s' if n > 1 else ''}", n) for n in range(5, 0, -1)],
                        value=5,
                        allow_blank=False,
                        id="select-rating",
                    )
                    yield Input(placeholder="Your thoughts (optional)", id="input-review")
                    yield Button("Submit review", id="btn-review")
                yield Label("Related products")
                yield DataTable(id="table-related")

    async def on_mount(self):
        table = self.query_one("#table-related", DataTable)
        table.cursor_type = "row"
        table.add_columns("Name", "Price")
        self.load_product()

    @work(exclusive=True)
    async def load_product(self):
        self.clear_load_error("#md-product")
        try:
            await self._show_product()
        except BackendError as e:
            self.show_load_error("#md-product", "load the product", e, self.load_product)

    async def _show_product(self):
        self._prod = await crud.get_product(self._pid)
        if self._prod is None:
            await self.query_one(MarkdownViewer).document.update(
                f"### Product not found\n\nThere is no product with id `{self._pid}`."
            )
            self.query_one("#div-prod-actions").display = False
            return

        prod = self._prod
        state = self.app.state
        avg, count = await crud.average_rating(prod.id)
        reviews = await crud.list_reviews(prod.id)

        price = money(prod.unit_price)
        if prod.discounted_price:
            price += f" ~~{money(prod.price)}~~"
        rows = [
            ["Price", price],
            ["Category", prod.category],
            ["In stock", prod.stock if prod.stock > 0 else "Out of stock"],
            ["Rating", f"{avg:.1f} / 5 ({count} reviews)" if count else "No reviews yet"],
        ]
        md = f"### {prod.name}\n\n{prod.description}\n\n"
        md += generate_markdown_table(["", ""], rows, ["l", "l"])
        md += "\n\n#### Reviews\n\n"
        if reviews:
            md += generate_markdown_table(
                ["Rating", "By", "Date", "Comment"],
                [[r.rating, r.author, short_date(r.created_at), r.comment] for r in reviews],
                ["c", "l", "c", "l"],
            )
        else:
            md += "Be the first to review this product."
        await self.query_one(MarkdownViewer).document.update(md)

        # sellers, couriers and admins browse but don't buy
        buyer = state.user_role in (None, "customer") or not state.is_authenticated
        self.query_one("#hort-qty").display = buyer
        add_btn = self.query_one("#btn-addcart", Button)
        add_btn.display = buyer
        if prod.stock < 1:
            add_btn.label = "Out of Stock"
            add_btn.disabled = True
            add_btn.variant = "warning"
        elif self.app.cart.quantity_of(prod.id):
            add_btn.label = "Add more to Cart"

        self.query_one("#input-order-qty").validators = [
            Number(minimum=1, maximum=max(prod.stock, 1))
        ]
        self.query_one("#div-review-form").display = state.is_authenticated
        wish_btn = self.query_one("#btn-wishlist", Button)
        wish_btn.display = state.is_authenticated
        if state.is_authenticated:
            self._render_wishlist(await crud.in_wishlist(state.user.id, prod.id))

        related = await crud.related_products(prod)
        table = self.query_one("#table-related", DataTable)
        table.clear()
        for p in related:
            table.add_row(p.name, money(p.unit_price), key=p.id)

    def _render_wishlist(self, wishlisted: bool):
        btn = self.query_one("#btn-wishlist", Button)
        btn.label = "Remove from Wishlist" if wishlisted else "Add to Wishlist"

    async def on_input_changed(self, message: Input.Changed) -> None:
        if (
            message.input.id == "input-order-qty"
            and message.input.is_valid
            and self.focused == message.input
        ):
            self.order_qty = int(message.value)

    def watch_order_qty(self, qty: int):
        if self._prod is None:
            return
        self.query_one("#btn-sub-qty").disabled = qty <= 1
        self.query_one("#btn-add-qty").disabled = qty >= self._prod.stock
        self.query_one("#input-order-qty", Input).value = str(qty)

    @on(Button.Pressed, "#btn-add-qty")
    def handle_add_qty(self):
        self.order_qty += 1

    @on(Button.Pressed, "#btn-sub-qty")
    def handle_sub_qty(self):
        if self.order_qty > 1:
            self.order_qty -= 1

    @on(Button.Pressed, "#btn-addcart")
    @work(exclusive=True, group="cart")
    async def handle_addcart(self):
        try:
            notice = await self.app.cart.add(self._pid, self.order_qty)
        except BackendError as e:
            self.notify(e.message, severity="error")
            return
        if notice:
            self.notify(notice, severity="warning")
        else:
            self.notify(f"{self._prod.name} added to cart.")
        self.post_message(CartChangedMessage())
        self.query_one("#btn-addcart", Button).label = "Add more to Cart"

    @on(Button.Pressed, "#btn-wishlist")
    @work(exclusive=True, group="wishlist")
    async def handle_wishlist(self):
        now_in = await crud.toggle_wishlist(self.app.state.user.id, self._pid)
        self._render_wishlist(now_in)
        self.notify("Added to wishlist." if now_in else "Removed from wishlist.")

    @on(Button.Pressed, "#btn-review")
    @work(exclusive=True, group="review")
    async def handle_review(self):
        rating = self.query_one("#select-rating", Select).value
        comment = self.query_one("#input-review", Input).value.strip()
        try:
            await crud.add_review(self.app.state.user.id, self._pid, rating, comment)
        except BackendError as e:
            self.notify(e.message, severity="error")
            return
        self.query_one("#input-review", Input).value = ""
        self.notify("Thanks for your review!")
        self.load_product()

    @on(DataTable.RowSelected, "#table-related")
    def handle_related_selected(self, message: DataTable.RowSelected):
        self.go(f"/product/{message.row_key.value}")
