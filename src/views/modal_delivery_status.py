from typing import Dict, Optional, Tuple

from textual import on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Select

from db.functions.delivery import ALLOWED_TRANSITIONS
from utils.pure import humanize


class DeliveryStatusModal(ModalScreen[Optional[Tuple[str, str]]]):
    """
    Pick the next status of an assignment and add notes.
    Only forward moves are offered; the current status can be kept to
    just update the notes. Returns (status, notes) or None when cancelled.
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, assignment: Dict):
        super().__init__()
        self.assignment = assignment

    def compose(self) -> ComposeResult:
        current = self.assignment["status"]
        choices = [(f"Keep: {humanize(current)}", current)] + [
            (humanize(s), s) for s in ALLOWED_TRANSITIONS.get(current, ())
        ]
        with Vertical(id="div-dialog"):
            yield Label(
                f"Order {self.assignment['order_id']}: currently {humanize(current).lower()}",
                id="caption",
            )
            yield Select(choices, value=current, allow_blank=False, id="select-status")
            yield Input(
                self.assignment.get("notes") or "",
                placeholder="Notes for this delivery (optional)",
                id="input-notes",
            )
            with Horizontal(id="dialog"):
                yield Button("Cancel", id="btn-secondary")
                yield Button("Update", id="btn-primary", variant="primary")

    def on_mount(self):
        self.query_one("#select-status").focus()

    @on(Button.Pressed, "#btn-primary")
    def handle_submit(self):
        status = self.query_one("#select-status", Select).value
        notes = self.query_one("#input-notes", Input).value.strip()
        self.dismiss((status, notes))

    @on(Button.Pressed, "#btn-secondary")
    def action_cancel(self) -> None:
        self.dismiss(None)
