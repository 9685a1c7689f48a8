from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Button, Markdown

from utils.pure import role_label
from utils.routing import dashboard_for
from views.base_screen import BaseScreen

NO_ROLE_MD = """\
### Your account has no role yet

Without a role we can't tell which dashboard is yours. This usually means
your registration didn't finish. **Repair account** recreates the missing
records from what you chose when signing up.
"""


class WelcomeScreen(BaseScreen):
    """
    Neutral landing page: where users end up when a page isn't meant for
    their role, and where users without a role can repair their account.
    """

    def __init__(self, params=None, query=None):
        super().__init__(params, query)
        self.configure(header_sub_title="Welcome")

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-welcome"):
            yield Markdown("", id="md-welcome")
            with Horizontal(id="div-buttons"):
                yield Button("Browse the store", id="btn-browse")
                yield Button("Repair account", id="btn-repair", variant="warning")
                yield Button("Go to my dashboard", id="btn-dashboard", variant="primary")

    async def on_mount(self):
        state = self.app.state
        has_role = state.user_role is not None
        self.query_one("#btn-repair").display = not has_role
        self.query_one("#btn-dashboard").display = has_role
        if has_role:
            md = (
                f"### Welcome, {state.user.name}\n\n"
                f"You are signed in as **{role_label(state.user_role)}**. "
                "The page you asked for isn't available to your role."
            )
        else:
            md = NO_ROLE_MD
        await self.query_one("#md-welcome", Markdown).update(md)

    @on(Button.Pressed, "#btn-browse")
    def handle_browse(self):
        self.go("/search")

    @on(Button.Pressed, "#btn-dashboard")
    def handle_dashboard(self):
        self.go(dashboard_for(self.app.state.user_role))

    @on(Button.Pressed, "#btn-repair")
    @work(exclusive=True)
    async def handle_repair(self):
        state = self.app.state
        if await state.repair_account():
            self.notify(f"Account repaired. Your role is {role_label(state.user_role)}.")
            self.go(dashboard_for(state.user_role))
        else:
            self.notify(state.error or "Repair failed.", severity="error")
