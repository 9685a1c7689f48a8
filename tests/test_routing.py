import os
import sys
import unittest
from dataclasses import dataclass
from typing import Optional

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from utils.routing import (  # noqa: E402
    Action,
    Navigator,
    Route,
    dashboard_for,
    decide,
    normalize,
    split_query,
)


@dataclass
class FakeAuth:
    loading: bool = False
    role_loading: bool = False
    failed: bool = False
    is_authenticated: bool = False
    user_role: Optional[str] = None


def signed_in(role: Optional[str]) -> FakeAuth:
    return FakeAuth(is_authenticated=True, user_role=role)


class DecideTestCase(unittest.TestCase):
    def test_paths_and_queries(self):
        self.assertEqual(normalize("account/orders/"), "/account/orders")
        self.assertEqual(normalize("/search?q=lamp"), "/search")
        self.assertEqual(normalize(""), "/")
        self.assertEqual(split_query("/search?q=desk+lamp&page=2"), {"q": "desk lamp", "page": "2"})
        self.assertEqual(split_query("/search"), {})

    def test_dashboards(self):
        self.assertEqual(dashboard_for("admin"), "/admin")
        self.assertEqual(dashboard_for("customer"), "/home")
        self.assertEqual(dashboard_for(None), "/welcome")
        self.assertEqual(dashboard_for("wizard"), "/welcome")

    def test_loading_wins_over_everything(self):
        for auth in (FakeAuth(loading=True), FakeAuth(role_loading=True, is_authenticated=True)):
            self.assertIs(decide("/admin", auth).action, Action.LOADING)

    def test_account_error_only_for_signed_in_users(self):
        auth = FakeAuth(failed=True, is_authenticated=True)
        self.assertIs(decide("/product/p-1", auth).action, Action.ACCOUNT_ERROR)
        self.assertIs(decide("/product/p-1", FakeAuth(failed=True)).action, Action.RENDER)

    def test_guest_is_sent_to_login_and_origin_is_remembered(self):
        decision = decide("/account/orders", FakeAuth())
        self.assertIs(decision.action, Action.REDIRECT)
        self.assertEqual(decision.target, "/login")
        self.assertEqual(decision.remember, "/account/orders")

    def test_public_pages_render_for_guests(self):
        for path, screen in (("/", "home"), ("/cart", "cart"), ("/search", "search"), ("/login", "login")):
            decision = decide(path, FakeAuth())
            self.assertIs(decision.action, Action.RENDER, path)
            self.assertEqual(decision.route.screen, screen)

    def test_wrong_role_or_no_role_lands_on_neutral_page(self):
        self.assertEqual(decide("/admin", signed_in("seller")).target, "/welcome")
        self.assertEqual(decide("/delivery/schedule", signed_in("customer")).target, "/welcome")
        self.assertEqual(decide("/seller", signed_in(None)).target, "/welcome")
        self.assertEqual(decide("/home", signed_in("delivery")).target, "/welcome")
        self.assertIs(decide("/welcome", signed_in(None)).action, Action.RENDER)

    def test_auth_pages_redirect_signed_in_users_to_their_dashboard(self):
        for role, target in (("admin", "/admin"), ("seller", "/seller"), ("customer", "/home"), (None, "/welcome")):
            for path in ("/", "/login", "/register"):
                decision = decide(path, signed_in(role))
                self.assertIs(decision.action, Action.REDIRECT)
                self.assertEqual(decision.target, target)

    def test_route_params(self):
        decision = decide("/product/p-1001", FakeAuth())
        self.assertEqual(decision.params, {"id": "p-1001"})
        self.assertEqual(decide("/category/books", FakeAuth()).params, {"category": "books"})
        self.assertEqual(decide("/admin/settings", signed_in("admin")).params, {"rest": "settings"})
        self.assertEqual(decide("/account", signed_in("customer")).params, {"rest": ""})
        self.assertEqual(decide("/nowhere/at/all", FakeAuth()).route.screen, "not_found")
        self.assertEqual(decide("/product", FakeAuth()).route.screen, "not_found")


class NavigatorTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.auth = FakeAuth()
        self.shown = []
        self.navigator = Navigator(self.auth, self.show)

    async def show(self, decision):
        self.shown.append(decision.path)

    async def test_login_resumes_the_remembered_page(self):
        await self.navigator.navigate("/wishlist")
        self.assertEqual(self.shown, ["/login"])
        self.assertEqual(self.navigator.return_to, "/wishlist")

        self.auth.is_authenticated, self.auth.user_role = True, "customer"
        await self.navigator.refresh()
        self.assertEqual(self.shown, ["/login", "/wishlist"])
        self.assertIsNone(self.navigator.return_to)

        # the next visit to an auth page goes to the dashboard again
        await self.navigator.navigate("/")
        self.assertEqual(self.shown[-1], "/home")

    async def test_same_location_is_not_shown_twice(self):
        await self.navigator.navigate("/cart")
        await self.navigator.navigate("/cart")
        await self.navigator.refresh()
        self.assertEqual(self.shown, ["/cart"])

        await self.navigator.navigate("/search?q=mug")
        await self.navigator.navigate("/search?q=lamp")
        self.assertEqual(self.shown, ["/cart", "/search", "/search"])
        self.assertEqual(self.navigator.query, {"q": "lamp"})

    async def test_requests_during_navigation_are_coalesced(self):
        async def show(decision):
            self.shown.append(decision.path)
            if len(self.shown) == 1:
                await self.navigator.navigate("/search")
                await self.navigator.navigate("/category/home")
                await self.navigator.navigate("/cart")

        navigator = self.navigator = Navigator(self.auth, show)
        await navigator.navigate("/")
        self.assertEqual(self.shown, ["/", "/cart"])

    async def test_back(self):
        await self.navigator.navigate("/")
        await self.navigator.navigate("/product/p-1001")
        await self.navigator.back()
        self.assertEqual(self.shown, ["/", "/product/p-1001", "/"])

    async def test_redirect_loop_is_detected(self):
        routes = [Route("/welcome", "welcome", require_auth=True, allowed_roles=("admin",)), Route("*", "not_found")]
        navigator = Navigator(signed_in("customer"), self.show, routes)
        with self.assertRaises(RuntimeError):
            await navigator.navigate("/welcome")
        self.assertEqual(self.shown, [])
        # a failed navigation does not block the next one
        await navigator.navigate("/elsewhere")
        self.assertEqual(self.shown, ["/elsewhere"])
