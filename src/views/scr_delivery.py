from typing import Dict, List

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import (
    Button,
    DataTable,
    Label,
    MarkdownViewer,
    Switch,
    TabbedContent,
    TabPane,
)

from db.errors import BackendError
from utils.pure import generate_markdown_table, humanize, money, short_date
from views.base_screen import BaseScreen
from views.modal_delivery_status import DeliveryStatusModal
from views.modal_dialog import confirm

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

TABS = {
    "available": "tab-available",
    "assignments": "tab-assignments",
    "schedule": "tab-schedule",
}


def address_of(order: Dict) -> str:
    return (
        f"{order.get('shipping_address')}, {order.get('shipping_city')}, "
        f"{order.get('shipping_state')} {order.get('shipping_postal_code')}"
    )


class DeliveryDashboardScreen(BaseScreen):
    """
    Delivery person dashboard: online toggle and stats, orders open for
    claiming, own assignments with status updates, and the weekly schedule.
    """

    def __init__(self, params=None, query=None) -> None:
        super().__init__(params, query)
        self.configure(header_sub_title="Delivery Dashboard")
        self.initial_tab = TABS.get(self.params.get("rest", ""), "tab-overview")
        self._assignments: Dict[str, Dict] = {}
        self._schedule: List[Dict] = []

    @property
    def api(self):
        return self.app.delivery_api

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="tabs-delivery", initial=self.initial_tab):
            with TabPane("Overview", id="tab-overview"):
                with Vertical():
                    with Horizontal(id="hort-online"):
                        yield Label("Online", id="label-online")
                        yield Switch(id="switch-online")
                    yield MarkdownViewer(id="md-stats", show_table_of_contents=False)
            with TabPane("Available Orders", id="tab-available"):
                with Vertical():
                    yield DataTable(id="table-available")
                    with Horizontal(classes="hort-buttons"):
                        yield Button("Refresh", id="btn-refresh-available")
                        yield Button("Accept order", id="btn-accept", variant="primary")
            with TabPane("My Deliveries", id="tab-assignments"):
                with Vertical():
                    yield DataTable(id="table-assignments")
                    with Horizontal(classes="hort-buttons"):
                        yield Button("Refresh", id="btn-refresh-assignments")
                        yield Button("Update status", id="btn-update-status", variant="primary")
            with TabPane("Schedule", id="tab-schedule"):
                with Vertical():
                    yield DataTable(id="table-schedule")
                    with Horizontal(classes="hort-buttons"):
                        yield Button("Toggle availability", id="btn-toggle-window")
                        yield Button("Save schedule", id="btn-save-schedule", variant="primary")
                    yield MarkdownViewer(id="md-slots", show_table_of_contents=False)

    def on_mount(self) -> None:
        for table_id, columns in (
            ("#table-available", ("Order", "Placed", "Customer", "Phone", "Address", "Total")),
            ("#table-assignments", ("Order", "Status", "Assigned", "Customer", "Address", "Notes")),
            ("#table-schedule", ("Day", "From", "To", "Available")),
        ):
            table = self.query_one(table_id, DataTable)
            table.cursor_type = "row"
            table.zebra_stripes = True
            table.add_columns(*columns)
        self.load_overview()
        self.load_available()
        self.load_assignments()
        self.load_schedule()

    def _fail(self, e: BackendError, what: str) -> None:
        self.notify(f"Could not {what}: {e.message}", severity="error")

    # ---- overview ----

    @work(exclusive=True, group="overview")
    async def load_overview(self) -> None:
        self.clear_load_error("#md-stats")
        try:
            online = await self.api.get_online_status()
            stats = await self.api.get_stats()
        except BackendError as e:
            self.show_load_error("#md-stats", "load your stats", e, self.load_overview)
            return
        switch = self.query_one("#switch-online", Switch)
        with switch.prevent(Switch.Changed):
            switch.value = online

        counts = stats["by_status"]
        md = "### Your deliveries\n\n"
        md += generate_markdown_table(
            ["Delivered", "In progress", "Failed"],
            [[stats["total_delivered"], stats["in_progress"], counts.get("failed", 0)]],
        )
        md += "\n\n#### Recently delivered\n\n"
        if stats["recent_deliveries"]:
            md += generate_markdown_table(
                ["Order", "Delivered at"],
                [[d["order_id"], short_date(d["delivered_at"])] for d in stats["recent_deliveries"]],
                ["l", "c"],
            )
        else:
            md += "Nothing delivered yet."
        await self.query_one("#md-stats", MarkdownViewer).document.update(md)

    @on(Switch.Changed, "#switch-online")
    @work(exclusive=True, group="online")
    async def handle_online_changed(self, message: Switch.Changed) -> None:
        try:
            online = await self.api.set_online_status(message.value)
        except BackendError as e:
            self._fail(e, "change your status")
            return
        self.notify("You are online." if online else "You are offline.")

    # ---- available orders ----

    @on(Button.Pressed, "#btn-refresh-available")
    @work(exclusive=True, group="available")
    async def load_available(self) -> None:
        self.clear_load_error("#table-available")
        try:
            orders = await self.api.list_available_orders()
        except BackendError as e:
            self.show_load_error(
                "#table-available", "load available orders", e, self.load_available
            )
            return
        table = self.query_one("#table-available", DataTable)
        table.clear()
        for o in orders:
            table.add_row(
                o["id"],
                short_date(o["created_at"]),
                o["customer_name"] or "-",
                o["customer_phone"] or "-",
                address_of(o),
                money(o["total"]),
                key=o["id"],
            )
        self.query_one("#btn-accept").disabled = not orders

    @on(Button.Pressed, "#btn-accept")
    @work(exclusive=True, group="accept")
    async def handle_accept(self) -> None:
        table = self.query_one("#table-available", DataTable)
        if table.row_count == 0:
            return
        order_id = table.coordinate_to_cell_key(table.cursor_coordinate).row_key.value
        if not await confirm(self.app, f"Accept order {order_id} for delivery?", tone="positive"):
            return
        try:
            await self.api.claim_order(order_id)
        except BackendError as e:
            # 409 when someone else was faster
            self.notify(e.message, severity="error")
        else:
            self.notify(f"Order {order_id} is yours.")
        self.load_available()
        self.load_assignments()
        self.load_overview()

    # ---- assignments ----

    @on(Button.Pressed, "#btn-refresh-assignments")
    @work(exclusive=True, group="assignments")
    async def load_assignments(self) -> None:
        self.clear_load_error("#table-assignments")
        try:
            assignments = await self.api.list_assignments()
        except BackendError as e:
            self.show_load_error(
                "#table-assignments", "load your deliveries", e, self.load_assignments
            )
            return
        self._assignments = {a["id"]: a for a in assignments}
        table = self.query_one("#table-assignments", DataTable)
        table.clear()
        for a in assignments:
            order = a["order"]
            table.add_row(
                a["order_id"],
                humanize(a["status"]),
                short_date(a["assigned_at"]),
                order["customer_name"] or "-",
                address_of(order),
                a["notes"] or "",
                key=a["id"],
            )
        self.query_one("#btn-update-status").disabled = not assignments

    @on(DataTable.RowSelected, "#table-assignments")
    @on(Button.Pressed, "#btn-update-status")
    @work(exclusive=True, group="update-status")
    async def handle_update_status(self) -> None:
        table = self.query_one("#table-assignments", DataTable)
        if table.row_count == 0:
            return
        assignment_id = table.coordinate_to_cell_key(table.cursor_coordinate).row_key.value
        assignment = self._assignments.get(assignment_id)
        if assignment is None:
            return
        if assignment["status"] in ("delivered", "failed"):
            self.notify("This delivery is closed.", severity="warning")
            return
        result = await self.app.push_screen_wait(DeliveryStatusModal(assignment))
        if result is None:
            return
        status, notes = result
        try:
            await self.api.update_status(assignment_id, status, notes or None)
        except BackendError as e:
            self._fail(e, "update the delivery")
            return
        self.notify(f"Delivery marked {humanize(status).lower()}.")
        self.load_assignments()
        self.load_overview()
        self.load_slots()

    # ---- schedule ----

    @work(exclusive=True, group="schedule")
    async def load_schedule(self) -> None:
        self.clear_load_error("#table-schedule")
        try:
            self._schedule = await self.api.get_schedule()
        except BackendError as e:
            self.show_load_error("#table-schedule", "load your schedule", e, self.load_schedule)
            return
        self._render_schedule()
        self.load_slots()

    def _render_schedule(self) -> None:
        table = self.query_one("#table-schedule", DataTable)
        row = table.cursor_row
        table.clear()
        for i, w in enumerate(self._schedule):
            table.add_row(
                DAY_NAMES[w["day"]],
                w["start_time"],
                w["end_time"],
                "Yes" if w["available"] else "No",
                key=str(i),
            )
        if table.row_count:
            table.move_cursor(row=min(row, table.row_count - 1))

    @on(DataTable.RowSelected, "#table-schedule")
    @on(Button.Pressed, "#btn-toggle-window")
    def handle_toggle_window(self) -> None:
        table = self.query_one("#table-schedule", DataTable)
        if table.row_count == 0:
            return
        window = self._schedule[table.cursor_row]
        window["available"] = not window["available"]
        self._render_schedule()

    @on(Button.Pressed, "#btn-save-schedule")
    @work(exclusive=True, group="schedule")
    async def handle_save_schedule(self) -> None:
        try:
            await self.api.save_schedule(self._schedule)
        except BackendError as e:
            self._fail(e, "save your schedule")
            return
        self.notify("Schedule saved.")
        self.load_slots()

    @work(exclusive=True, group="slots")
    async def load_slots(self) -> None:
        self.clear_load_error("#md-slots")
        try:
            slots = await self.api.get_slots(days=7)
        except BackendError as e:
            self.show_load_error("#md-slots", "load your delivery slots", e, self.load_slots)
            return
        md = "### Next 7 days\n\n"
        if slots:
            md += generate_markdown_table(
                ["Date", "Time", "Status", "Order"],
                [[s["date"], s["time"], humanize(s["status"]), s["order_id"]] for s in slots],
                ["l", "c", "c", "l"],
            )
        else:
            md += "No available windows. Mark some days available above."
        await self.query_one("#md-slots", MarkdownViewer).document.update(md)
