from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Button, Input, Label

from views.base_screen import BaseScreen


class ForgotPasswordScreen(BaseScreen):
    """Request a one-time reset code for an email address."""

    def __init__(self, params=None, query=None):
        super().__init__(params, query)
        self.configure(header_sub_title="Forgot password", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-forgot"):
            yield Label("Enter the email you registered with.")
            yield Input(placeholder="user@example.com", id="input-email")
            yield Label("", id="label-result")
            with Horizontal(id="div-btns"):
                yield Button("Back to login", id="btn-back")
                yield Button("I have a code", id="btn-have-code")
                yield Button("Send reset code", id="btn-send", variant="primary")

    def on_mount(self):
        self.query_one("#input-email").focus()

    @on(Button.Pressed, "#btn-send")
    @on(Input.Submitted, "#input-email")
    @work(exclusive=True)
    async def handle_send(self):
        email = self.query_one("#input-email", Input).value.strip()
        if "@" not in email:
            self.query_one("#input-email").add_class("-invalid")
            self.query_one("#label-result", Label).update("Enter a valid email address.")
            return
        state = self.app.state
        if not await state.send_password_reset(email):
            self.notify(state.error or "Could not send the reset code.", severity="error")
            return
        # there is no mail service; the code is shown here (and logged)
        msg = "If an account exists for that email, a reset code has been issued."
        if state.last_reset_token:
            msg += f"\nYour code: {state.last_reset_token}"
        self.query_one("#label-result", Label).update(msg)

    @on(Button.Pressed, "#btn-have-code")
    def handle_have_code(self):
        token = self.app.state.last_reset_token
        self.go(f"/reset-password?token={token}" if token else "/reset-password")

    @on(Button.Pressed, "#btn-back")
    def handle_back(self):
        self.go("/login")


class ResetPasswordScreen(BaseScreen):
    def __init__(self, params=None, query=None):
        super().__init__(params, query)
        self.configure(header_sub_title="Reset password", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-reset"):
            yield Label("Reset code")
            yield Input(self.query_args.get("token", ""), id="input-token")
            yield Label("New password")
            yield Input(password=True, id="input-pwd")
            yield Label("Confirm new password")
            yield Input(password=True, id="input-pwd2")
            yield Label("", id="label-error", classes="error")
            with Horizontal(id="div-btns"):
                yield Button("Back to login", id="btn-back")
                yield Button("Reset password", id="btn-reset", variant="primary")

    @on(Button.Pressed, "#btn-reset")
    @work(exclusive=True)
    async def handle_reset(self):
        token = self.query_one("#input-token", Input).value.strip()
        pwd = self.query_one("#input-pwd", Input).value
        pwd2 = self.query_one("#input-pwd2", Input).value
        error_label = self.query_one("#label-error", Label)
        if not token:
            error_label.update("The reset code is required.")
            return
        if len(pwd) < 6:
            error_label.update("Password should be at least 6 characters.")
            return
        if pwd != pwd2:
            error_label.update("Passwords do not match.")
            return
        if await self.app.state.reset_password(token, pwd):
            self.notify("Password updated. You can log in now.")
            self.go("/login")
        else:
            error_label.update(self.app.state.error or "Reset failed.")

    @on(Button.Pressed, "#btn-back")
    def handle_back(self):
        self.go("/login")
