from typing import Dict, List, Optional

from textual import on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label, Select

from db.models import Category


class ProductFormModal(ModalScreen[Optional[Dict]]):
    """
    Add or edit a product. Returns the product fields (with `id` when
    editing) or None when cancelled; the caller sends them to the backend.
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, categories: List[Category], product: Optional[Dict] = None):
        super().__init__()
        self.categories = categories
        self.product = product or {}

    def compose(self) -> ComposeResult:
        p = self.product
        with Vertical(id="div-product-form"):
            yield Label("Edit product" if p else "New product", id="caption")
            with VerticalScroll():
                yield Label("Name")
                yield Input(p.get("name") or "", id="input-name")
                yield Label("Description")
                yield Input(p.get("description") or "", id="input-description")
                yield Label("Category")
                yield Select(
                    [(c.name, c.slug) for c in self.categories],
                    value=self._category_value(),
                    id="select-category",
                )
                with Horizontal():
                    with Vertical():
                        yield Label("Price ($)")
                        yield Input(
                            _fmt(p.get("price")),
                            id="input-price",
                            type="number",
                            validators=[Number(minimum=0.01)],
                        )
                    with Vertical():
                        yield Label("Sale price ($)")
                        yield Input(
                            _fmt(p.get("discounted_price")),
                            placeholder="leave blank for none",
                            id="input-discounted-price",
                            type="number",
                            validators=[Number(minimum=0.01)],
                        )
                    with Vertical():
                        yield Label("Stock")
                        yield Input(
                            str(p.get("stock", 0)),
                            id="input-stock",
                            type="integer",
                            validators=[Number(minimum=0)],
                        )
                yield Label("Image URL")
                yield Input(p.get("image_url") or "", id="input-image-url")
            with Horizontal(id="dialog"):
                yield Button("Cancel", id="btn-secondary")
                yield Button("Save", id="btn-primary", variant="primary")

    def _category_value(self):
        slugs = {c.slug for c in self.categories}
        current = self.product.get("category")
        return current if current in slugs else Select.BLANK

    def on_mount(self):
        self.query_one("#input-name").focus()

    def _invalid(self, selector: str, msg: str) -> None:
        widget = self.query_one(selector)
        widget.add_class("-invalid")
        widget.focus()
        self.notify(msg, severity="error")

    @on(Button.Pressed, "#btn-primary")
    def handle_submit(self):
        for inp in self.query(Input):
            inp.remove_class("-invalid")
        name = self.query_one("#input-name", Input).value.strip()
        category = self.query_one("#select-category", Select).value
        price = self.query_one("#input-price", Input)
        sale = self.query_one("#input-discounted-price", Input)
        stock = self.query_one("#input-stock", Input)

        if not name:
            return self._invalid("#input-name", "Name is required.")
        if category is Select.BLANK:
            return self._invalid("#select-category", "Pick a category.")
        if not price.value or not price.is_valid:
            return self._invalid("#input-price", "Price must be greater than 0.")
        if sale.value and not sale.is_valid:
            return self._invalid("#input-discounted-price", "Sale price must be greater than 0.")
        if not stock.value or not stock.is_valid:
            return self._invalid("#input-stock", "Stock cannot be negative.")

        data = {
            "name": name,
            "description": self.query_one("#input-description", Input).value.strip(),
            "category": category,
            "price": float(price.value),
            "discounted_price": float(sale.value) if sale.value else None,
            "stock": int(stock.value),
            "image_url": self.query_one("#input-image-url", Input).value.strip() or None,
        }
        if self.product.get("id"):
            data["id"] = self.product["id"]
        self.dismiss(data)

    @on(Button.Pressed, "#btn-secondary")
    def action_cancel(self) -> None:
        self.dismiss(None)


def _fmt(value) -> str:
    return "" if value is None else f"{float(value):.2f}"
