from typing import Dict, List, Tuple

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import Key
from textual.widgets import Button, Input, Label, Select, TabbedContent, TabPane

from views.base_screen import BaseScreen
from views.modal_dialog import QuitDialogModal

ROLE_CHOICES = [
    ("Customer", "customer"),
    ("Seller", "seller"),
    ("Delivery Person", "delivery"),
]

# extra questions asked when applying for a role (key, label, placeholder)
ROLE_QUESTIONS: Dict[str, List[Tuple[str, str, str]]] = {
    "seller": [
        ("businessName", "Business name", "Jane's Electronics"),
        ("businessType", "Business type", "Electronics"),
        ("experience", "Selling experience", "5 years in retail"),
    ],
    "delivery": [
        ("vehicleType", "Vehicle type", "Car"),
        ("deliveryExperience", "Delivery experience", "2 years"),
        ("availability", "Availability", "Weekdays and weekends"),
    ],
}


def validate_registration(name, email, pwd, pwd2) -> Dict[str, str]:
    """Field id -> message for every invalid field; empty when the form is fine."""
    errors = {}
    if not name:
        errors["input-reg-name"] = "Name is required."
    if "@" not in email or "." not in email.rsplit("@", 1)[-1]:
        errors["input-reg-email"] = "Enter a valid email address."
    if len(pwd) < 6:
        errors["input-reg-pwd"] = "Password should be at least 6 characters."
    elif pwd != pwd2:
        errors["input-reg-pwd2"] = "Passwords do not match."
    return errors


class LoginScreen(BaseScreen):
    """
    Log in and sign up tabs. Nothing navigates on success: the router
    reacts to the settled auth state and resumes any remembered path.
    """

    def __init__(self, params=None, query=None, tab: str = "tab-login"):
        super().__init__(params, query)
        self.configure(header_sub_title="Login", show_sidebar=False)
        self.initial_tab = tab

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="super-tab-loginscr", initial=self.initial_tab):
            with TabPane("Login", id="tab-login"):
                with Vertical(id="div-login"):
                    yield Label("Email")
                    yield Input(placeholder="user@example.com", id="input-login-email")
                    yield Label("Password")
                    yield Input(
                        placeholder="*********", password=True, id="input-login-pwd"
                    )
                    yield Label("", id="label-login-error", classes="error")
                    with Horizontal(id="div-login-btns"):
                        yield Button("Quit", id="btn-quit")
                        yield Button("Forgot password?", id="btn-forgot")
                        yield Button("Browse as guest", id="btn-guest")
                        yield Button("Login", id="btn-login", variant="primary")

            with TabPane("Sign up", id="tab-signup"):
                with Vertical(id="div-reg"):
                    yield Label("Name")
                    yield Input(placeholder="Jane Doe", id="input-reg-name")
                    yield Label("Email")
                    yield Input(placeholder="user@example.com", id="input-reg-email")
                    yield Label("Password")
                    yield Input(placeholder="*********", password=True, id="input-reg-pwd")
                    yield Label("Confirm password")
                    yield Input(placeholder="*********", password=True, id="input-reg-pwd2")
                    yield Label("I want to")
                    yield Select(
                        [(f"join as {label}", value) for label, value in ROLE_CHOICES],
                        value="customer",
                        allow_blank=False,
                        id="select-reg-role",
                    )
                    for role, questions in ROLE_QUESTIONS.items():
                        with Vertical(id=f"div-questions-{role}", classes="role-questions"):
                            for key, label, placeholder in questions:
                                yield Label(label)
                                yield Input(placeholder=placeholder, id=f"input-q-{key}")
                    yield Label("", id="label-reg-error", classes="error")
                    with Horizontal(id="div-reg-btns"):
                        yield Button("Register", id="btn-reg", variant="primary")

    def on_mount(self):
        self._show_questions("customer")
        if self.initial_tab == "tab-signup":
            self.query_one("#input-reg-name").focus()
        else:
            self.query_one("#input-login-email").focus()

    def _show_questions(self, role: str) -> None:
        for r in ROLE_QUESTIONS:
            self.query_one(f"#div-questions-{r}").display = r == role

    @on(Select.Changed, "#select-reg-role")
    def handle_role_changed(self, event: Select.Changed):
        self._show_questions(event.value)

    def on_key(self, event: Key) -> None:
        if event.key == "enter" and self.focused == self.query_one("#input-login-pwd"):
            self.handle_login_submit()
        if event.key == "enter" and self.focused == self.query_one("#input-reg-pwd2"):
            self.handle_registration_submit()

    def _set_busy(self, busy: bool) -> None:
        for btn_id in ("#btn-login", "#btn-reg"):
            self.query_one(btn_id, Button).disabled = busy

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self):
        email = self.query_one("#input-login-email", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value
        error_label = self.query_one("#label-login-error", Label)

        if not email or not pwd:
            error_label.update("Email and password cannot be empty!")
            return

        self._set_busy(True)
        ok = await self.app.state.login(email, pwd)
        if ok:
            # routing moves on by itself once the auth state settles
            self.notify(f"Welcome back, {self.app.state.user.name}!")
        else:
            self._set_busy(False)
            # keep the email, clear the password
            error_label.update(self.app.state.error or "Invalid login credentials")
            input_login_pwd = self.query_one("#input-login-pwd", Input)
            input_login_pwd.value = ""
            input_login_pwd.focus()
            input_login_pwd.add_class("-invalid")

    @on(Button.Pressed, "#btn-reg")
    @work(exclusive=True)
    async def handle_registration_submit(self):
        name = self.query_one("#input-reg-name", Input).value.strip()
        email = self.query_one("#input-reg-email", Input).value.strip()
        pwd = self.query_one("#input-reg-pwd", Input).value
        pwd2 = self.query_one("#input-reg-pwd2", Input).value
        role = self.query_one("#select-reg-role", Select).value
        error_label = self.query_one("#label-reg-error", Label)

        for inp in self.query("#div-reg Input"):
            inp.remove_class("-invalid")
        errors = validate_registration(name, email, pwd, pwd2)
        if errors:
            for field_id in errors:
                self.query_one(f"#{field_id}").add_class("-invalid")
            error_label.update(" ".join(errors.values()))
            return

        responses = {
            key: self.query_one(f"#input-q-{key}", Input).value.strip()
            for key, _, _ in ROLE_QUESTIONS.get(role, [])
        }
        self._set_busy(True)
        ok = await self.app.state.register(name, email, pwd, role, responses)
        if not ok:
            self._set_busy(False)
            error_label.update(self.app.state.error or "Registration failed.")
            return
        if role != "customer":
            self.notify(f"Your application to become a {role} was submitted for review.")
        self.notify("Registration successful.")

    @on(Button.Pressed, "#btn-forgot")
    def handle_forgot(self):
        self.go("/forgot-password")

    @on(Button.Pressed, "#btn-guest")
    def handle_guest(self):
        self.go("/")

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
