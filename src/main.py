from textual import on, work
from textual.app import App
from textual.binding import Binding
from textual.screen import ModalScreen

from utils.api import AdminApi, DeliveryApi, SellerApi
from utils.cart import Cart
from utils.logger import close_log_file, get_logger
from utils.messages import (
    AccountDeleteMessage,
    NavigateMessage,
    QuitRequestedMessage,
    UserLogoutMessage,
)
from utils.routing import Action, Decision, Navigator
from utils.state import AuthPhase, AuthState
from views.scr_account import AccountScreen
from views.scr_admin import AdminDashboardScreen
from views.scr_cart import CartScreen, CheckoutSuccessScreen
from views.scr_delivery import DeliveryDashboardScreen
from views.scr_home import CatalogueScreen
from views.scr_login import LoginScreen
from views.scr_password import ForgotPasswordScreen, ResetPasswordScreen
from views.scr_product import ProductScreen
from views.scr_seller import SellerDashboardScreen
from views.scr_status import AccountErrorScreen, LoadingScreen, NotFoundScreen
from views.scr_welcome import WelcomeScreen
from views.scr_wishlist import WishlistScreen

_logger = get_logger(__name__)

# route screen key -> factory(params, query)
SCREENS = {
    "home": lambda p, q: CatalogueScreen(p, q, mode="home"),
    "category": lambda p, q: CatalogueScreen(p, q, mode="category"),
    "search": lambda p, q: CatalogueScreen(p, q, mode="search"),
    "login": LoginScreen,
    "register": lambda p, q: LoginScreen(p, q, tab="tab-signup"),
    "forgot_password": ForgotPasswordScreen,
    "reset_password": ResetPasswordScreen,
    "welcome": WelcomeScreen,
    "product": ProductScreen,
    "cart": CartScreen,
    "checkout_success": CheckoutSuccessScreen,
    "wishlist": WishlistScreen,
    "account": AccountScreen,
    "admin": AdminDashboardScreen,
    "seller": SellerDashboardScreen,
    "delivery": DeliveryDashboardScreen,
    "not_found": NotFoundScreen,
}


class MarketApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    CSS_PATH = [
        "styles/index.tcss",
        "styles/login.tcss",
        "styles/catalogue.tcss",
        "styles/cart.tcss",
        "styles/dashboard.tcss",
    ]

    state: AuthState
    cart: Cart
    navigator: Navigator

    def __init__(self):
        super().__init__()
        self.state = AuthState()
        self.cart = Cart()
        self.navigator = Navigator(self.state, self.show)
        self.delivery_api = DeliveryApi(self._token)
        self.seller_api = SellerApi(self._token)
        self.admin_api = AdminApi(self._token)
        self._route_on_auth = False

    def _token(self):
        return self.state.token

    async def on_mount(self) -> None:
        await self.push_screen(LoadingScreen())
        self.state.subscribe(self.handle_auth_changed)
        self.main_flow()

    @work
    async def main_flow(self):
        await self.state.restore()
        self._route_on_auth = True
        await self.navigator.navigate("/")

    def handle_auth_changed(self, state: AuthState) -> None:
        # only settled phases re-route; intermediate ones would swap out the
        # screen whose worker is driving the login
        if not self._route_on_auth or state.phase not in (AuthPhase.READY, AuthPhase.ERROR):
            return
        self.refresh_route()

    @work(group="router")
    async def refresh_route(self):
        await self.navigator.refresh()

    async def show(self, decision: Decision) -> None:
        """Put the screen for a routing decision on top, dropping any open modal."""
        while isinstance(self.screen, ModalScreen):
            await self.pop_screen()
        if decision.action is Action.LOADING:
            screen = LoadingScreen()
        elif decision.action is Action.ACCOUNT_ERROR:
            screen = AccountErrorScreen()
        else:
            screen = SCREENS[decision.route.screen](decision.params, self.navigator.query)
        _logger.debug(f"show {decision.action.value} {decision.path}")
        await self.switch_screen(screen)

    def back(self):
        self.navigate_to_back()

    @work(group="router")
    async def navigate_to_back(self):
        await self.navigator.back()

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @on(NavigateMessage)
    @work(group="router")
    async def handle_navigate(self, message: NavigateMessage):
        await self.navigator.navigate(message.path)

    @on(UserLogoutMessage)
    @work(group="router")
    async def handle_user_logout(self):
        # logging out from a protected page must not remember it for the next login
        self._route_on_auth = False
        await self.state.logout()
        self._route_on_auth = True
        self.navigator.return_to = None
        self.notify("Logout successful.")
        await self.navigator.navigate("/")

    @on(AccountDeleteMessage)
    @work(group="router")
    async def handle_account_delete(self):
        self._route_on_auth = False
        deleted = await self.state.delete_account()
        self._route_on_auth = True
        if not deleted:
            self.notify(self.state.error or "Account deletion failed.", severity="error")
            return
        self.navigator.return_to = None
        self.cart.clear()
        self.notify("Your account has been deleted.")
        await self.navigator.navigate("/")

    @on(QuitRequestedMessage)
    def handle_quit(self):
        self.exit()


def main():
    try:
        MarketApp().run()
    finally:
        close_log_file()


if __name__ == "__main__":
    main()
