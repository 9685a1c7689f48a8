from textual import on, work
from textual.app import ComposeResult
from textual.containers import Center, Horizontal, Vertical
from textual.widgets import Button, Label, LoadingIndicator

from utils.messages import UserLogoutMessage
from views.base_screen import BaseScreen


class LoadingScreen(BaseScreen):
    """Placeholder while the session and role are being resolved."""

    def __init__(self, caption: str = "Checking authentication..."):
        super().__init__()
        self.configure(header_sub_title="Loading", show_sidebar=False)
        self.caption = caption

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-loading"):
            yield LoadingIndicator()
            with Center():
                yield Label(self.caption)


class AccountErrorScreen(BaseScreen):
    """
    Shown when the role could not be resolved after retrying.
    Offers a retry, a repair of the account rows, or signing out.
    """

    def __init__(self):
        super().__init__()
        self.configure(header_sub_title="Account problem", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-account-error"):
            yield Label("We couldn't load your account", id="label-title")
            yield Label(
                self.app.state.error or "Your role could not be determined.",
                id="label-error",
            )
            yield Label(
                "Retry if this was a connection problem. "
                "Repair recreates missing account records.",
                id="label-hint",
            )
            with Horizontal(id="div-buttons"):
                yield Button("Log out", id="btn-logout", variant="error")
                yield Button("Repair account", id="btn-repair", variant="warning")
                yield Button("Retry", id="btn-retry", variant="primary")

    def _busy(self, busy: bool) -> None:
        for btn in self.query(Button):
            btn.disabled = busy

    @on(Button.Pressed, "#btn-retry")
    @work(exclusive=True)
    async def handle_retry(self):
        self._busy(True)
        await self.app.state.retry_role()
        if self.is_attached:
            self._busy(False)

    @on(Button.Pressed, "#btn-repair")
    @work(exclusive=True)
    async def handle_repair(self):
        self._busy(True)
        if await self.app.state.repair_account():
            self.notify("Account repaired.")
        else:
            self.notify(self.app.state.error or "Repair failed.", severity="error")
        if self.is_attached:
            self._busy(False)

    @on(Button.Pressed, "#btn-logout")
    def handle_logout(self):
        self.post_message(UserLogoutMessage())


class NotFoundScreen(BaseScreen):
    def __init__(self, params=None, query=None):
        super().__init__(params, query)
        self.configure(header_sub_title="Not found")

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-not-found"):
            yield Label("404", id="label-title")
            yield Label(f"Page not found: {self.app.navigator.current_path}")
            yield Button("Return to Home", id="btn-home", variant="primary")

    @on(Button.Pressed, "#btn-home")
    def handle_home(self):
        self.go("/")
