from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer

import db.crud as crud
from db.errors import BackendError
from utils.pure import generate_markdown_table, money
from views.modal_dialog import confirm

SHIPPING_FIELDS = [
    ("address", "Street address", "123 Main St"),
    ("city", "City", "Anytown"),
    ("state", "State", "ST"),
    ("postal_code", "Postal code", "00000"),
]


class CheckoutModal(ModalScreen[str]):
    """
    A modal screen for check out, including a table of all items and the
    shipping address, prefilled from the profile.
    Returns the new order id on success, None when cancelled.
    """

    def compose(self) -> ComposeResult:
        with Vertical():
            yield MarkdownViewer("", show_table_of_contents=False)
            yield Label("Shipping Address")
            for key, label, placeholder in SHIPPING_FIELDS:
                with Horizontal(classes="hort-shipping-field"):
                    yield Label(label, classes="label-shipping")
                    yield Input(placeholder=placeholder, id=f"input-ship-{key}")
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Place Order", id="btn-submit", variant="primary")

    async def on_mount(self):
        cart = self.app.cart
        headers = ["Product Name", "Unit Price", "Quantity", "Total Price"]
        rows = [
            [item.name, money(item.unit_price), item.quantity, money(item.unit_price * item.quantity)]
            for item in cart.items
        ]
        md = "### Order Summary\n\n"
        md += generate_markdown_table(headers, rows, ["l", "c", "c", "c"])
        md += f"\n\n**Total:** {money(cart.total)}"
        await self.query_one(MarkdownViewer).document.update(md)

        profile = await crud.get_profile(self.app.state.user.id)
        if profile:
            for key, _, _ in SHIPPING_FIELDS:
                value = getattr(profile, key, None)
                if value:
                    self.query_one(f"#input-ship-{key}", Input).value = value
        self.query_one("#input-ship-address").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self):
        shipping = {}
        for key, label, _ in SHIPPING_FIELDS:
            inp = self.query_one(f"#input-ship-{key}", Input)
            inp.remove_class("-invalid")
            shipping[key] = inp.value.strip()
            if not shipping[key]:
                inp.focus()
                inp.add_class("-invalid")
                self.notify(f"{label} is required.", severity="error")
                return

        if not await confirm(
            self.app, "Place order? This cannot be undone.", tone="positive"
        ):
            return

        cart = self.app.cart
        try:
            order_id = await crud.checkout(self.app.state.user.id, cart.lines(), shipping)
        except BackendError as e:
            self.notify(e.message, severity="error")
            return
        cart.clear()
        self.notify(f"Order placed. Your order number is {order_id}.")
        self.dismiss(order_id)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(None)
