"""
Route table and redirect policy.

`decide` is a pure function of the path and the auth view; the `Navigator`
applies decisions, following redirects and coalescing requests that arrive
while a navigation is already running.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Tuple
from urllib.parse import unquote_plus

from utils.logger import get_logger

_logger = get_logger(__name__)

NEUTRAL_LANDING = "/welcome"
LOGIN_PATH = "/login"
AUTH_PAGES = ("/", "/login", "/register")

DASHBOARDS = {
    "admin": "/admin",
    "seller": "/seller",
    "delivery": "/delivery",
    "customer": "/home",
}


class AuthView(Protocol):
    loading: bool
    role_loading: bool
    failed: bool
    is_authenticated: bool
    user_role: Optional[str]


@dataclass(frozen=True)
class Route:
    """
    pattern: `/product/:id` style; a trailing `*` (or `/*`) matches the base
    path and anything below it; a bare `*` matches everything.
    allowed_roles: None = no role check; () = any authenticated user.
    """

    pattern: str
    screen: str
    require_auth: bool = False
    allowed_roles: Optional[Tuple[str, ...]] = None

    def match(self, path: str) -> Optional[Dict[str, str]]:
        if self.pattern == "*":
            return {}
        if self.pattern.endswith("*"):
            base = self.pattern.rstrip("*").rstrip("/")
            if path == base or path.startswith(base + "/") or (base == "" and path.startswith("/")):
                return {"rest": path[len(base):].lstrip("/")}
            return None

        want = self.pattern.strip("/").split("/")
        got = path.strip("/").split("/")
        if len(want) != len(got):
            return None
        params = {}
        for w, g in zip(want, got):
            if w.startswith(":"):
                if not g:
                    return None
                params[w[1:]] = g
            elif w != g:
                return None
        return params


ROUTES: List[Route] = [
    Route("/", "home"),
    Route("/login", "login"),
    Route("/register", "register"),
    Route("/forgot-password", "forgot_password"),
    Route("/reset-password", "reset_password"),
    Route("/welcome", "welcome", require_auth=True, allowed_roles=()),
    Route("/home", "home", allowed_roles=("customer",)),
    Route("/product/:id", "product"),
    Route("/category/:category", "category"),
    Route("/search", "search"),
    Route("/cart", "cart"),
    Route("/checkout-success", "checkout_success", require_auth=True, allowed_roles=()),
    Route("/wishlist", "wishlist", require_auth=True, allowed_roles=()),
    Route("/account/*", "account", require_auth=True, allowed_roles=()),
    Route("/admin*", "admin", require_auth=True, allowed_roles=("admin",)),
    Route("/seller*", "seller", require_auth=True, allowed_roles=("seller",)),
    Route("/delivery*", "delivery", require_auth=True, allowed_roles=("delivery",)),
    Route("*", "not_found"),
]


class Action(Enum):
    RENDER = "render"
    REDIRECT = "redirect"
    LOADING = "loading"
    ACCOUNT_ERROR = "account_error"


@dataclass(frozen=True)
class Decision:
    action: Action
    path: str
    route: Optional[Route] = None
    params: Dict[str, str] = field(default_factory=dict)
    target: Optional[str] = None
    remember: Optional[str] = None  # origin to return to after login


def normalize(path: str) -> str:
    path = (path or "/").split("?", 1)[0].strip()
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/")
    return path


def split_query(path: str) -> Dict[str, str]:
    """`/search?q=lamp&x=1` -> {"q": "lamp", "x": "1"}"""
    if "?" not in (path or ""):
        return {}
    query = {}
    for part in path.split("?", 1)[1].split("&"):
        key, _, value = part.partition("=")
        if key:
            query[key] = unquote_plus(value)
    return query


def resolve(path: str, routes: List[Route] = ROUTES) -> Tuple[Route, Dict[str, str]]:
    for route in routes:
        params = route.match(path)
        if params is not None:
            return route, params
    raise LookupError(f"No route for {path}")


def dashboard_for(role: Optional[str]) -> str:
    """Canonical dashboard of a role; no (or unknown) role lands on the neutral page."""
    return DASHBOARDS.get(role, NEUTRAL_LANDING)


def decide(path: str, auth: AuthView, routes: List[Route] = ROUTES) -> Decision:
    path = normalize(path)
    route, params = resolve(path, routes)

    if auth.loading or auth.role_loading:
        return Decision(Action.LOADING, path, route, params)

    if auth.failed and auth.is_authenticated:
        return Decision(Action.ACCOUNT_ERROR, path, route, params)

    if route.require_auth and not auth.is_authenticated:
        return Decision(Action.REDIRECT, path, route, params, target=LOGIN_PATH, remember=path)

    if route.allowed_roles and auth.is_authenticated and auth.user_role not in route.allowed_roles:
        # no role row counts as "not in the set" as well
        return Decision(Action.REDIRECT, path, route, params, target=NEUTRAL_LANDING)

    if path in AUTH_PAGES and auth.is_authenticated:
        return Decision(
            Action.REDIRECT, path, route, params, target=dashboard_for(auth.user_role)
        )

    return Decision(Action.RENDER, path, route, params)


class Navigator:
    """
    Applies routing decisions through `show`.

    A request that arrives while a navigation is in flight is parked and the
    latest parked request runs once the current one finishes, so a burst of
    requests caused by one state change ends in a single navigation.
    Asking for what is already shown is a no-op.
    """

    MAX_HOPS = 8

    def __init__(
        self,
        auth: AuthView,
        show: Callable[[Decision], Awaitable[None]],
        routes: List[Route] = ROUTES,
    ):
        self.auth = auth
        self._show = show
        self.routes = routes
        self.current: Optional[Decision] = None
        self.current_url: Optional[str] = None
        self.return_to: Optional[str] = None
        self.history: List[str] = []
        self._in_flight = False
        self._pending: Optional[str] = None

    @property
    def current_path(self) -> Optional[str]:
        return self.current.path if self.current else None

    @property
    def query(self) -> Dict[str, str]:
        return split_query(self.current_url or "")

    async def navigate(self, url: str) -> None:
        if self._in_flight:
            self._pending = url
            return
        self._in_flight = True
        try:
            next_url: Optional[str] = url
            while next_url is not None:
                await self._go(next_url)
                next_url, self._pending = self._pending, None
        finally:
            self._in_flight = False

    async def refresh(self) -> None:
        """Re-evaluate the current location, e.g. after the auth state changed."""
        await self.navigate(self.current_url or "/")

    async def back(self) -> None:
        if len(self.history) > 1:
            self.history.pop()
            await self.navigate(self.history.pop())

    def take_return_path(self) -> Optional[str]:
        path, self.return_to = self.return_to, None
        return path

    async def _go(self, url: str) -> None:
        hops = 0
        decision = decide(url, self.auth, self.routes)
        while decision.action is Action.REDIRECT:
            hops += 1
            if hops > self.MAX_HOPS:
                raise RuntimeError(f"Redirect loop while navigating to {url}")
            if decision.remember:
                self.return_to = decision.remember
            target = decision.target
            if decision.path in AUTH_PAGES and self.return_to:
                # just signed in: resume where the user was sent to login from
                target = self.take_return_path()
            _logger.debug(f"redirect {decision.path} -> {target}")
            url = target
            decision = decide(url, self.auth, self.routes)

        if (
            self.current is not None
            and url == self.current_url
            and decision.action is self.current.action
            and decision.route == self.current.route
        ):
            return

        self.current, self.current_url = decision, url
        if decision.action is Action.RENDER and (not self.history or self.history[-1] != url):
            self.history.append(url)
        await self._show(decision)
