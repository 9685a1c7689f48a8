from typing import List

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.widgets import Button, DataTable, Input, Label, MarkdownViewer, TabbedContent, TabPane

import db.crud as crud
from db.errors import BackendError
from db.models import Order, OrderItem
from utils.messages import AccountDeleteMessage, NewOrderMessage
from utils.pure import generate_markdown_table, humanize, money, short_date
from views.base_screen import BaseScreen
from views.modal_dialog import confirm

PROFILE_FIELDS = [
    ("first_name", "First name"),
    ("last_name", "Last name"),
    ("phone", "Phone"),
    ("address", "Street address"),
    ("city", "City"),
    ("state", "State"),
    ("postal_code", "Postal code"),
]

TABS = {"profile": "tab-profile", "orders": "tab-orders", "security": "tab-security"}


def render_order_md(order: Order, items: List[OrderItem]) -> str:
    header = (
        f"### Order #{order.id}\n"
        f"Date: {short_date(order.created_at)}  \n"
        f"Status: {humanize(order.status)}, delivery {humanize(order.delivery_status).lower()}  \n"
        f"Ship To: {order.full_address}\n\n"
    )
    rows = [
        [
            i.product_name or f"Product {i.product_id}",
            i.quantity,
            money(i.price),
            money(i.price * i.quantity),
        ]
        for i in items
    ]
    table = generate_markdown_table(
        ["Product", "Qty", "Unit Price", "Line Total"], rows, ["l", "r", "r", "r"]
    )
    return header + table + f"\n\n**Grand Total:** {money(order.total)}"


class AccountScreen(BaseScreen):
    """
    Profile details, past orders and password change.
    `/account/orders` and `/account/security` open the matching tab.
    """

    def __init__(self, params=None, query=None) -> None:
        super().__init__(params, query)
        self.configure(header_sub_title="My Account")
        self.initial_tab = TABS.get(self.params.get("rest", ""), "tab-profile")

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="tabs-account", initial=self.initial_tab):
            with TabPane("Profile", id="tab-profile"):
                with VerticalScroll(id="div-profile"):
                    for key, label in PROFILE_FIELDS:
                        with Horizontal(classes="hort-form-row"):
                            yield Label(label, classes="label-form")
                            yield Input(id=f"input-profile-{key}")
                    yield Button("Save profile", id="btn-save-profile", variant="primary")
            with TabPane("Orders", id="tab-orders"):
                with Vertical():
                    yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
                    yield DataTable(id="table-orders")
                    yield Button("Refresh", id="btn-refresh-orders")
            with TabPane("Security", id="tab-security"):
                with Vertical(id="div-security"):
                    yield Label("New password")
                    yield Input(password=True, id="input-new-pwd")
                    yield Label("Confirm new password")
                    yield Input(password=True, id="input-new-pwd2")
                    yield Button("Update password", id="btn-update-pwd", variant="warning")
                    yield Label("Danger zone", classes="label-danger")
                    yield Button("Delete account", id="btn-delete-account", variant="error")

    def on_mount(self) -> None:
        table = self.query_one("#table-orders", DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Order No", "Date", "Status", "Delivery", "Total")
        self.load_profile()
        self.load_orders()

    # ---- profile ----

    @work(exclusive=True, group="profile")
    async def load_profile(self) -> None:
        self.clear_load_error("#div-profile")
        try:
            profile = await crud.get_profile(self.app.state.user.id)
        except BackendError as e:
            self.show_load_error("#div-profile", "load your profile", e, self.load_profile)
            return
        if profile is None:
            self.notify("No profile found; use Repair on the welcome page.", severity="warning")
            return
        for key, _ in PROFILE_FIELDS:
            self.query_one(f"#input-profile-{key}", Input).value = getattr(profile, key) or ""

    @on(Button.Pressed, "#btn-save-profile")
    @work(exclusive=True, group="profile")
    async def handle_save_profile(self) -> None:
        fields = {
            key: self.query_one(f"#input-profile-{key}", Input).value.strip()
            for key, _ in PROFILE_FIELDS
        }
        try:
            updated = await crud.update_profile(self.app.state.user.id, **fields)
        except BackendError as e:
            self.notify(e.message, severity="error")
            return
        if updated:
            self.notify("Profile saved.")
        else:
            self.notify("Profile not found.", severity="error")

    # ---- orders ----

    @on(Button.Pressed, "#btn-refresh-orders")
    @on(NewOrderMessage)
    def handle_refresh(self):
        self.load_orders()

    @work(exclusive=True, group="orders")
    async def load_orders(self) -> None:
        self.clear_load_error("#table-orders")
        try:
            orders = await crud.list_user_orders(self.app.state.user.id)
        except BackendError as e:
            self.show_load_error("#table-orders", "load your orders", e, self.load_orders)
            return
        table = self.query_one("#table-orders", DataTable)
        table.clear()
        for o in orders:
            table.add_row(
                o.id,
                short_date(o.created_at),
                humanize(o.status),
                humanize(o.delivery_status),
                money(o.total),
                key=o.id,
            )
        if orders:
            table.cursor_coordinate = (0, 0)
            self.load_order_detail(orders[0].id)
        else:
            await self.query_one("#md-order-detail", MarkdownViewer).document.update(
                "### You haven't placed any orders yet."
            )

    @on(DataTable.RowHighlighted, "#table-orders")
    def handle_row_highlight(self, message: DataTable.RowHighlighted) -> None:
        if message.row_key is not None and message.row_key.value:
            self.load_order_detail(message.row_key.value)

    @work(exclusive=True, group="order-detail")
    async def load_order_detail(self, order_id: str) -> None:
        self.clear_load_error("#md-order-detail")
        try:
            order, items = await crud.get_order_detail(order_id)
        except BackendError as e:
            self.show_load_error(
                "#md-order-detail", "load the order", e, lambda: self.load_order_detail(order_id)
            )
            return
        md = render_order_md(order, items) if order else "### Select an order to view its details."
        await self.query_one("#md-order-detail", MarkdownViewer).document.update(md)

    # ---- security ----

    @on(Button.Pressed, "#btn-update-pwd")
    @work(exclusive=True, group="security")
    async def handle_update_password(self) -> None:
        pwd_input = self.query_one("#input-new-pwd", Input)
        pwd2_input = self.query_one("#input-new-pwd2", Input)
        if len(pwd_input.value) < 6:
            pwd_input.add_class("-invalid")
            self.notify("Password should be at least 6 characters.", severity="error")
            return
        if pwd_input.value != pwd2_input.value:
            pwd2_input.add_class("-invalid")
            self.notify("Passwords do not match.", severity="error")
            return
        state = self.app.state
        if await state.update_password(pwd_input.value):
            pwd_input.value = pwd2_input.value = ""
            self.notify("Password updated.")
        else:
            self.notify(state.error or "Password update failed.", severity="error")

    @on(Button.Pressed, "#btn-delete-account")
    @work(exclusive=True, group="security")
    async def handle_delete_account(self) -> None:
        if not await confirm(
            self.app,
            "Delete your account? This signs you out and cannot be undone.",
            tone="error",
        ):
            return
        self.post_message(AccountDeleteMessage())
