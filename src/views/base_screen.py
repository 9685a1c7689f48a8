from typing import Callable, Dict, List, Tuple

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown

from db.errors import BackendError
from utils.messages import CartChangedMessage, NavigateMessage, UserLogoutMessage
from utils.pure import generate_markdown_table, role_label
from views.modal_dialog import QuitDialogModal, confirm

# (label, path) per role; None is a signed-in user without a role row
GUEST_MENU = [
    ("Home", "/"),
    ("Search", "/search"),
    ("Cart", "/cart"),
    ("Log in", "/login"),
    ("Sign up", "/register"),
]
ROLE_MENUS: Dict[str, List[Tuple[str, str]]] = {
    "customer": [
        ("Home", "/home"),
        ("Search", "/search"),
        ("Cart", "/cart"),
        ("Wishlist", "/wishlist"),
        ("My Account", "/account"),
    ],
    "seller": [
        ("Seller Dashboard", "/seller"),
        ("Browse Store", "/search"),
        ("My Account", "/account"),
    ],
    "delivery": [
        ("Delivery Dashboard", "/delivery"),
        ("My Account", "/account"),
    ],
    "admin": [
        ("Admin Dashboard", "/admin"),
        ("Browse Store", "/search"),
        ("My Account", "/account"),
    ],
    None: [
        ("Welcome", "/welcome"),
        ("My Account", "/account"),
    ],
}


def menu_for(authenticated: bool, role) -> List[Tuple[str, str]]:
    if not authenticated:
        return GUEST_MENU
    return ROLE_MENUS.get(role, ROLE_MENUS[None])


class Sidebar(Container):
    def compose(self) -> ComposeResult:
        yield Label("User Info", id="label-info-1")
        yield Markdown("", id="md-userinfo")
        yield Button("Log out", id="btn-logout", variant="error")
        yield Label("Menu", id="label-info-2")
        yield ListView(id="list-menu")

    async def on_mount(self):
        await self.refresh_info()

    async def refresh_info(self):
        state = self.app.state
        if state.is_authenticated:
            table_rows = [
                ["Name", state.user.name],
                ["Email", state.user.email],
                ["Role", role_label(state.user_role)],
            ]
        else:
            table_rows = [["Guest", "not signed in"]]
            self.query_one("#btn-logout").display = False
        if state.user_role in (None, "customer"):
            table_rows.append(["Cart", f"{self.app.cart.count} item(s)"])
        md_table_str = generate_markdown_table(["", ""], table_rows, ["l", "l"])
        await self.query_one(Markdown).update(md_table_str)

        list_menu: ListView = self.query_one("#list-menu")
        await list_menu.clear()
        await list_menu.extend(
            [
                ListItem(Label(label), name=path)
                for label, path in menu_for(state.is_authenticated, state.user_role)
            ]
        )
        self.highlight_item(self.app.navigator.current_path or "/")

    def on_list_view_selected(self, event: ListView.Selected):
        path = event.item.name
        if path and path != self.app.navigator.current_path:
            self.post_message(NavigateMessage(path))

    @on(Button.Pressed, "#btn-logout")
    @work
    async def handle_logout(self):
        if not await confirm(self.app, "Are you sure you want to log out?", tone="warning"):
            return
        self.post_message(UserLogoutMessage())

    def highlight_item(self, path: str):
        list_menu = self.query_one("#list-menu", ListView)
        for i, item in enumerate(list_menu.children):
            if item.name == path:
                list_menu.index = i
                return


class LoadError(Horizontal):
    """
    Shown in place of data that failed to load. Retry removes the notice
    and runs the loader again.
    """

    def __init__(self, message: str, retry: Callable[[], object]) -> None:
        super().__init__(classes="load-error")
        self.message = message
        self.retry = retry

    def compose(self) -> ComposeResult:
        yield Label(self.message, classes="label-load-error")
        yield Button("Retry", classes="btn-retry", variant="warning")

    @on(Button.Pressed, ".btn-retry")
    def handle_retry(self, event: Button.Pressed) -> None:
        event.stop()
        self.retry()


class BaseScreen(Screen):
    """
    Inherited by all routed screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
        Binding("ctrl+b", "back", "Back", show=True),
    ]

    def __init__(self, params=None, query=None):
        super().__init__()
        self.params = params or {}
        self.query_args = query or {}
        self._load_errors: Dict[str, LoadError] = {}
        self.configure()

    def configure(
        self,
        header_sub_title: str = "",
        show_sidebar: bool = True,
    ) -> None:
        """
        configure behavior of the base screen
        """
        self.app.title = "Market"
        self.sub_title = header_sub_title
        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    @on(CartChangedMessage)
    async def handle_cart_changed(self):
        if self._show_sidebar:
            await self.query_one(Sidebar).refresh_info()

    def go(self, path: str) -> None:
        self.post_message(NavigateMessage(path))

    def action_back(self):
        self.app.back()

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())

    # ---- load failures ----

    def show_load_error(
        self, anchor: str, what: str, error: BackendError, retry: Callable[[], object]
    ) -> None:
        """
        Put a LoadError above the widget matching `anchor` (one per anchor).
        `retry` is usually the worker that failed.
        """
        self.clear_load_error(anchor)
        message = f"Could not {what}: {error.message}"
        self.notify(message, severity="error")
        widget = LoadError(message, lambda: self._retry_load(anchor, retry))
        self._load_errors[anchor] = widget
        target = self.query_one(anchor)
        target.parent.mount(widget, before=target)

    def clear_load_error(self, anchor: str) -> None:
        widget = self._load_errors.pop(anchor, None)
        if widget is not None:
            widget.remove()

    def _retry_load(self, anchor: str, retry: Callable[[], object]) -> None:
        self.clear_load_error(anchor)
        retry()
