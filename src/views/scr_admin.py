import json
from typing import Dict, List

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import (
    Button,
    DataTable,
    Input,
    Label,
    MarkdownViewer,
    Select,
    TabbedContent,
    TabPane,
)

from db.errors import BackendError
from db.functions.seller import TIME_RANGES
from db.models import ROLES
from utils.pure import (
    generate_markdown_table,
    humanize,
    money,
    render_analytics_md,
    role_label,
    short_date,
)
from views.base_screen import BaseScreen
from views.modal_dialog import confirm

TABS = {
    "users": "tab-users",
    "orders": "tab-orders",
    "products": "tab-products",
    "applications": "tab-applications",
    "analytics": "tab-analytics",
    "settings": "tab-settings",
}
AUTO_ASSIGN = "__auto__"


def parse_setting(raw: str):
    """Settings are JSON values; anything that isn't valid JSON is kept as text."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


class AdminDashboardScreen(BaseScreen):
    """
    Administration: user roles, all orders with delivery assignment,
    the product catalogue, role applications, store analytics and store settings.
    """

    def __init__(self, params=None, query=None) -> None:
        super().__init__(params, query)
        self.configure(header_sub_title="Admin Dashboard")
        self.initial_tab = TABS.get(self.params.get("rest", ""), "tab-users")
        self._users: Dict[str, Dict] = {}
        self._products: Dict[str, Dict] = {}
        self._applications: Dict[str, Dict] = {}
        self._settings: Dict = {}

    @property
    def api(self):
        return self.app.admin_api

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="tabs-admin", initial=self.initial_tab):
            with TabPane("Users", id="tab-users"):
                with Vertical():
                    yield DataTable(id="table-users")
                    with Horizontal(classes="hort-buttons"):
                        yield Select(
                            [(role_label(r), r) for r in ROLES],
                            prompt="New role",
                            id="select-role",
                        )
                        yield Button("Change role", id="btn-change-role", variant="warning")
            with TabPane("Orders", id="tab-orders"):
                with Vertical():
                    yield DataTable(id="table-orders")
                    with Horizontal(classes="hort-buttons"):
                        yield Select(
                            [("First available", AUTO_ASSIGN)],
                            value=AUTO_ASSIGN,
                            allow_blank=False,
                            id="select-courier",
                        )
                        yield Button("Assign delivery", id="btn-assign", variant="primary")
            with TabPane("Products", id="tab-products"):
                with Vertical():
                    yield DataTable(id="table-products")
                    with Horizontal(classes="hort-buttons"):
                        yield Button("Delete product", id="btn-delete-product", variant="error")
            with TabPane("Applications", id="tab-applications"):
                with Vertical():
                    yield DataTable(id="table-applications")
                    yield MarkdownViewer(id="md-application", show_table_of_contents=False)
                    with Horizontal(classes="hort-buttons"):
                        yield Button("Reject", id="btn-reject", variant="error")
                        yield Button("Approve", id="btn-approve", variant="success")
            with TabPane("Analytics", id="tab-analytics"):
                with Vertical():
                    yield Select(
                        [(f"Last {k}", k) for k in TIME_RANGES],
                        value="week",
                        allow_blank=False,
                        id="select-range",
                    )
                    yield MarkdownViewer(id="md-analytics", show_table_of_contents=False)
            with TabPane("Settings", id="tab-settings"):
                with Vertical():
                    yield DataTable(id="table-settings")
                    yield Label("", id="label-setting-key")
                    yield Input(id="input-setting-value", placeholder="Select a setting")
                    yield Button("Save setting", id="btn-save-setting", variant="primary")

    def on_mount(self) -> None:
        for table_id, columns in (
            ("#table-users", ("Name", "Email", "Role", "Status", "Joined", "Last sign in")),
            ("#table-orders", ("Order", "Date", "Customer", "Total", "Status", "Delivery", "Courier")),
            ("#table-products", ("Name", "Seller", "Category", "Price", "Stock", "Listed")),
            ("#table-applications", ("Email", "Role", "Status", "Submitted")),
            ("#table-settings", ("Key", "Value")),
        ):
            table = self.query_one(table_id, DataTable)
            table.cursor_type = "row"
            table.zebra_stripes = True
            table.add_columns(*columns)
        self.load_users()
        self.load_orders()
        self.load_products()
        self.load_applications()
        self.load_analytics("week")
        self.load_settings()

    def _fail(self, e: BackendError, what: str) -> None:
        self.notify(f"Could not {what}: {e.message}", severity="error")

    def _selected(self, table_id: str):
        table = self.query_one(table_id, DataTable)
        if table.row_count == 0:
            return None
        return table.coordinate_to_cell_key(table.cursor_coordinate).row_key.value

    # ---- users ----

    @work(exclusive=True, group="users")
    async def load_users(self) -> None:
        self.clear_load_error("#table-users")
        try:
            users = await self.api.list_users()
        except BackendError as e:
            self.show_load_error("#table-users", "load users", e, self.load_users)
            return
        self._users = {u["id"]: u for u in users}
        table = self.query_one("#table-users", DataTable)
        table.clear()
        for u in users:
            table.add_row(
                u["name"] or "-",
                u["email"],
                role_label(u["role"]),
                humanize(u["status"]),
                short_date(u["created_at"]),
                short_date(u["last_sign_in_at"]),
                key=u["id"],
            )
        self._fill_couriers(users)

    def _fill_couriers(self, users: List[Dict]) -> None:
        couriers = [(f"{u['name'] or u['email']}", u["id"]) for u in users if u["role"] == "delivery"]
        select = self.query_one("#select-courier", Select)
        select.set_options([("First available", AUTO_ASSIGN)] + couriers)
        select.value = AUTO_ASSIGN

    @on(Button.Pressed, "#btn-change-role")
    @work(exclusive=True, group="user-edit")
    async def handle_change_role(self) -> None:
        user = self._users.get(self._selected("#table-users"))
        role = self.query_one("#select-role", Select).value
        if user is None:
            return
        if role is Select.BLANK:
            self.notify("Pick a role first.", severity="warning")
            return
        if user["id"] == self.app.state.user.id and role != "admin":
            if not await confirm(
                self.app, "You are removing your own admin access. Continue?", tone="error"
            ):
                return
        try:
            await self.api.update_user_role(user["id"], role)
        except BackendError as e:
            self._fail(e, "change the role")
            return
        self.notify(f"{user['email']} is now {role_label(role)}.")
        self.load_users()
        if user["id"] == self.app.state.user.id:
            await self.app.state.retry_role()

    # ---- orders ----

    @work(exclusive=True, group="orders")
    async def load_orders(self) -> None:
        self.clear_load_error("#table-orders")
        try:
            orders = await self.api.list_orders()
        except BackendError as e:
            self.show_load_error("#table-orders", "load orders", e, self.load_orders)
            return
        table = self.query_one("#table-orders", DataTable)
        table.clear()
        for o in orders:
            table.add_row(
                o["id"],
                short_date(o["created_at"]),
                o["user_email"] or "-",
                money(o["total"]),
                humanize(o["status"]),
                humanize(o["delivery_status"]),
                o["delivery_person_id"] or "-",
                key=o["id"],
            )

    @on(Button.Pressed, "#btn-assign")
    @work(exclusive=True, group="assign")
    async def handle_assign(self) -> None:
        order_id = self._selected("#table-orders")
        if order_id is None:
            return
        courier = self.query_one("#select-courier", Select).value
        person = None if courier in (AUTO_ASSIGN, Select.BLANK) else courier
        try:
            assignment = await self.api.assign_delivery(order_id, person)
        except BackendError as e:
            self._fail(e, "assign the order")
            return
        self.notify(f"Order {order_id} assigned to {assignment['delivery_person_id']}.")
        self.load_orders()

    # ---- products ----

    @work(exclusive=True, group="products")
    async def load_products(self) -> None:
        self.clear_load_error("#table-products")
        try:
            products = await self.api.list_products()
        except BackendError as e:
            self.show_load_error("#table-products", "load products", e, self.load_products)
            return
        self._products = {p["id"]: p for p in products}
        table = self.query_one("#table-products", DataTable)
        table.clear()
        for p in products:
            table.add_row(
                p["name"],
                p["seller_email"] or "-",
                humanize(p["category"]),
                money(p["price"]),
                p["stock"],
                short_date(p["created_at"]),
                key=p["id"],
            )

    @on(Button.Pressed, "#btn-delete-product")
    @work(exclusive=True, group="product-edit")
    async def handle_delete_product(self) -> None:
        product = self._products.get(self._selected("#table-products"))
        if product is None:
            return
        if not await confirm(
            self.app,
            f"Delete {product['name']}? This cannot be undone.",
            tone="error",
        ):
            return
        try:
            await self.api.delete_product(product["id"])
        except BackendError as e:
            self._fail(e, "delete the product")
            return
        self.notify(f"{product['name']} deleted.")
        self.load_products()

    # ---- applications ----

    @work(exclusive=True, group="applications")
    async def load_applications(self) -> None:
        self.clear_load_error("#table-applications")
        try:
            applications = await self.api.list_applications()
        except BackendError as e:
            self.show_load_error(
                "#table-applications", "load applications", e, self.load_applications
            )
            return
        self._applications = {a["id"]: a for a in applications}
        table = self.query_one("#table-applications", DataTable)
        table.clear()
        for a in applications:
            table.add_row(
                a["user_email"],
                role_label(a["role"]),
                humanize(a["status"]),
                short_date(a["created_at"]),
                key=a["id"],
            )
        if not applications:
            await self.query_one("#md-application", MarkdownViewer).document.update(
                "No role applications."
            )

    @on(DataTable.RowHighlighted, "#table-applications")
    async def handle_application_highlight(self, message: DataTable.RowHighlighted) -> None:
        app_ = self._applications.get(message.row_key.value if message.row_key else None)
        if app_ is None:
            return
        md = f"### {app_['user_email']} wants to be a {role_label(app_['role'])}\n\n"
        answers = app_["question_responses"]
        if answers:
            md += generate_markdown_table(
                ["Question", "Answer"], [[k, v] for k, v in answers.items()], ["l", "l"]
            )
        else:
            md += "No answers given."
        await self.query_one("#md-application", MarkdownViewer).document.update(md)
        pending = app_["status"] == "pending"
        self.query_one("#btn-approve").disabled = not pending
        self.query_one("#btn-reject").disabled = not pending

    @on(Button.Pressed, "#btn-approve")
    @on(Button.Pressed, "#btn-reject")
    @work(exclusive=True, group="review")
    async def handle_review(self, message: Button.Pressed) -> None:
        application_id = self._selected("#table-applications")
        if application_id is None:
            return
        approve = message.button.id == "btn-approve"
        try:
            if approve:
                await self.api.approve_application(application_id)
            else:
                await self.api.reject_application(application_id)
        except BackendError as e:
            self._fail(e, "review the application")
            return
        self.notify("Application approved." if approve else "Application rejected.")
        self.load_applications()
        self.load_users()

    # ---- analytics ----

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
        md = render_analytics_md(f"Store sales, last {time_range}", data)
        await self.query_one("#md-analytics", MarkdownViewer).document.update(md)

    # ---- settings ----

    @work(exclusive=True, group="settings")
    async def load_settings(self) -> None:
        self.clear_load_error("#table-settings")
        try:
            self._settings = await self.api.get_settings()
        except BackendError as e:
            self.show_load_error("#table-settings", "load settings", e, self.load_settings)
            return
        table = self.query_one("#table-settings", DataTable)
        table.clear()
        for key, value in self._settings.items():
            table.add_row(key, json.dumps(value), key=key)

    @on(DataTable.RowHighlighted, "#table-settings")
    def handle_setting_highlight(self, message: DataTable.RowHighlighted) -> None:
        key = message.row_key.value if message.row_key else None
        if key not in self._settings:
            return
        self.query_one("#label-setting-key", Label).update(key)
        value = self._settings[key]
        self.query_one("#input-setting-value", Input).value = (
            value if isinstance(value, str) else json.dumps(value)
        )

    @on(Button.Pressed, "#btn-save-setting")
    @work(exclusive=True, group="settings-edit")
    async def handle_save_setting(self) -> None:
        key = self._selected("#table-settings")
        if key is None:
            return
        raw = self.query_one("#input-setting-value", Input).value
        try:
            await self.api.update_settings({key: parse_setting(raw)})
        except BackendError as e:
            self._fail(e, "save the setting")
            return
        self.notify(f"{key} saved.")
        self.load_settings()
