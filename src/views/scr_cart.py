from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, HorizontalGroup, Vertical, VerticalScroll
from textual.message import Message
from textual.widgets import Button, Label, Markdown, Rule

from db.errors import BackendError
from db.models import CartItem
from utils.messages import CartChangedMessage, NewOrderMessage
from utils.pure import money
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_dialog import confirm


class CartItemActionMessage(Message):
    bubble = True

    def __init__(self, product_id: str, action: str) -> None:
        super().__init__()
        self.product_id = product_id
        self.action = action


class CartItemActionLabel(Label):
    def __init__(self, product_id: str, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.product_id = product_id

    def action_item(self, action: str):
        self.post_message(CartItemActionMessage(self.product_id, action))


class CartItemWidget(HorizontalGroup):
    def __init__(self, item: CartItem):
        super().__init__()
        self.item = item

    def compose(self):
        with Container(classes="div-cart-item-group"):
            with Container(classes="div-item"):
                yield Label(self.item.name, classes="label-item-name")
                yield Label(f"x{self.item.quantity}", classes="label-item-qty")
                yield Label(
                    f"{money(self.item.unit_price)} = "
                    f"{money(self.item.unit_price * self.item.quantity)}",
                    classes="label-item-price",
                )
            with Container(classes="div-actions"):
                for action, text in (
                    ("dec", "-1"),
                    ("inc", "+1"),
                    ("view", "View"),
                    ("remove", "Remove"),
                ):
                    yield CartItemActionLabel(
                        self.item.product_id, f"[@click=item('{action}')]{text}[/]"
                    )


class CartScreen(BaseScreen):
    """
    The local cart: change quantities, remove lines, check out.
    Guests can fill the cart; checking out asks them to log in first.
    """

    def __init__(self, params=None, query=None) -> None:
        super().__init__(params, query)
        self.configure(header_sub_title="Cart")

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield VerticalScroll(id="vertscroll-content")
        yield Label("Total Cart Value: $0.00", id="label-cart-total")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("Continue shopping", id="btn-shop")
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Checkout", id="btn-checkout", variant="primary")

    def on_mount(self):
        self.handle_cart_change()

    @on(CartChangedMessage)
    @work(exclusive=True)  # must be exclusive, else a race can mount duplicates
    async def handle_cart_change(self):
        cart = self.app.cart
        content = self.query_one("#vertscroll-content")
        await content.remove_children()
        await content.mount_all([CartItemWidget(item) for item in cart.items])
        content.set_class(not cart.items, "no-items")
        self.query_one("#label-cart-total", Label).update(
            f"Total Cart Value: {money(cart.total)}"
        )
        self.query_one("#btn-checkout").disabled = not cart.items

    @on(CartItemActionMessage)
    @work(group="cart-item")
    async def handle_item_action(self, message: CartItemActionMessage):
        cart = self.app.cart
        pid = message.product_id
        if message.action == "view":
            self.go(f"/product/{pid}")
            return
        if message.action == "remove":
            if not await confirm(
                self.app, "Do you really want to remove this item from cart?"
            ):
                return
            cart.remove(pid)
            self.notify("Item removed from cart.")
        else:
            delta = 1 if message.action == "inc" else -1
            try:
                notice = await cart.update_quantity(pid, cart.quantity_of(pid) + delta)
            except BackendError as e:
                self.notify(e.message, severity="error")
                return
            if notice:
                self.notify(notice, severity="warning")
        self.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-shop")
    def handle_shop(self):
        self.go("/search")

    @on(Button.Pressed, "#btn-clear-cart")
    @work
    async def handle_clear_cart(self) -> None:
        if not self.app.cart.items:
            self.notify("Cart is empty.", severity="warning")
            return
        if await confirm(
            self.app, "Do you really want to remove all items from cart?", tone="error"
        ):
            self.app.cart.clear()
            self.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-checkout")
    @work
    async def handle_checkout(self) -> None:
        if not self.app.cart.items:
            self.notify("Cart is empty.", severity="warning")
            return
        if not self.app.state.is_authenticated:
            self.notify("Please log in to check out.", severity="warning")
            self.app.navigator.return_to = "/cart"
            self.go("/login")
            return

        order_id = await self.app.push_screen_wait(CheckoutModal())
        if order_id:
            self.app.post_message(NewOrderMessage(order_id))
            self.go(f"/checkout-success?order={order_id}")
        else:
            self.post_message(CartChangedMessage())


class CheckoutSuccessScreen(BaseScreen):
    def __init__(self, params=None, query=None) -> None:
        super().__init__(params, query)
        self.configure(header_sub_title="Order placed")

    def compose(self) -> ComposeResult:
        yield from super().compose()
        order_id = self.query_args.get("order", "")
        with Vertical(id="div-checkout-success"):
            yield Markdown(
                "### Thank you for your order!\n\n"
                + (f"Your order number is **{order_id}**. " if order_id else "")
                + "It is paid and waiting for a delivery person."
            )
            with Horizontal(id="hort-buttons"):
                yield Button("Continue shopping", id="btn-shop")
                yield Button("View my orders", id="btn-orders", variant="primary")

    @on(Button.Pressed, "#btn-shop")
    def handle_shop(self):
        self.go("/search")

    @on(Button.Pressed, "#btn-orders")
    def handle_orders(self):
        self.go("/account/orders")
