import os
from unittest.mock import AsyncMock, patch

from store_case import StoreTestCase
from tenacity import wait_none

from db import crud
from db import database as db_database
from db.errors import AuthError, StoreError
from utils.retry import ROLE_FETCH_ATTEMPTS
from utils.state import AuthPhase, AuthState


class AuthStateTestCase(StoreTestCase):
    def make_state(self) -> AuthState:
        state = AuthState(session_path=self.session_path, retry_wait=wait_none())
        self.phases = []
        state.subscribe(self._record)
        return state

    def _record(self, state: AuthState) -> None:
        # loading and role loading are never reported together
        self.assertFalse(state.loading and state.role_loading)
        self.phases.append(state.phase)

    async def test_restore_without_session_is_a_ready_guest(self):
        state = self.make_state()
        self.assertTrue(state.loading)
        await state.restore()
        self.assertEqual(self.phases, [AuthPhase.AUTH_PENDING, AuthPhase.READY])
        self.assertFalse(state.is_authenticated)
        self.assertIsNone(state.user_role)

    async def test_login_resolves_role_and_persists_session(self):
        state = self.make_state()
        self.assertTrue(await state.login("alice@market.test", db_database.DEMO_PASSWORD))
        self.assertEqual(
            self.phases, [AuthPhase.AUTH_PENDING, AuthPhase.ROLE_PROBING, AuthPhase.READY]
        )
        self.assertEqual(state.user_role, "customer")
        self.assertTrue(os.path.exists(self.session_path))

        restored = self.make_state()
        await restored.restore()
        self.assertTrue(restored.is_authenticated)
        self.assertEqual(restored.user.email, "alice@market.test")
        self.assertEqual(restored.user_role, "customer")

        await restored.logout()
        self.assertFalse(restored.is_authenticated)
        self.assertFalse(os.path.exists(self.session_path))
        self.assertIsNone(await crud.get_session(state.token))

    async def test_stale_session_file_is_forgotten(self):
        with open(self.session_path, "w", encoding="utf-8") as f:
            f.write('{"token": "expired"}')
        state = self.make_state()
        await state.restore()
        self.assertEqual(state.phase, AuthPhase.READY)
        self.assertFalse(state.is_authenticated)
        self.assertFalse(os.path.exists(self.session_path))

    async def test_bad_credentials(self):
        state = self.make_state()
        self.assertFalse(await state.login("alice@market.test", "nope"))
        self.assertEqual(state.error, "Invalid login credentials")
        self.assertEqual(state.phase, AuthPhase.READY)
        self.assertFalse(state.is_authenticated)

    async def test_user_without_role_row_is_ready_with_no_role(self):
        state = self.make_state()
        self.assertTrue(await state.login("bob@market.test", db_database.DEMO_PASSWORD))
        self.assertEqual(state.phase, AuthPhase.READY)
        self.assertIsNone(state.user_role)

        self.assertTrue(await state.repair_account())
        self.assertEqual(state.user_role, "customer")

    async def test_role_lookup_retries_then_fails(self):
        state = self.make_state()
        lookup = AsyncMock(side_effect=StoreError("Store unavailable: disk I/O error"))
        with patch.object(crud, "get_user_role", lookup):
            self.assertTrue(await state.login("alice@market.test", db_database.DEMO_PASSWORD))
        self.assertEqual(lookup.await_count, ROLE_FETCH_ATTEMPTS)
        self.assertEqual(state.phase, AuthPhase.ERROR)
        self.assertTrue(state.failed)
        self.assertTrue(state.is_authenticated)
        self.assertIsNone(state.user_role)
        self.assertEqual(state.error, "Store unavailable: disk I/O error")

        # the error screen's retry succeeds once the store is back
        await state.retry_role()
        self.assertEqual(state.phase, AuthPhase.READY)
        self.assertEqual(state.user_role, "customer")

    async def test_fetch_user_role_returns_none_when_the_store_stays_down(self):
        state = self.make_state()
        lookup = AsyncMock(side_effect=StoreError("net down"))
        with patch.object(crud, "get_user_role", lookup):
            role = await state.fetch_user_role("u-customer")
        self.assertIsNone(role)
        self.assertEqual(lookup.await_count, ROLE_FETCH_ATTEMPTS)
        self.assertEqual(state.role_error, "net down")
        # a direct lookup does not move the phase
        self.assertEqual(self.phases, [])

        self.assertEqual(await state.fetch_user_role("u-customer"), "customer")
        self.assertIsNone(state.role_error)

    async def test_role_lookup_recovers_from_a_transient_failure(self):
        state = self.make_state()
        lookup = AsyncMock(side_effect=[StoreError("busy"), "admin"])
        with patch.object(crud, "get_user_role", lookup):
            await state.login("alice@market.test", db_database.DEMO_PASSWORD)
        self.assertEqual(lookup.await_count, 2)
        self.assertEqual(state.phase, AuthPhase.READY)
        self.assertEqual(state.user_role, "admin")

    async def test_permanent_role_errors_are_not_retried(self):
        state = self.make_state()
        lookup = AsyncMock(side_effect=AuthError("JWT expired"))
        with patch.object(crud, "get_user_role", lookup):
            await state.login("alice@market.test", db_database.DEMO_PASSWORD)
        self.assertEqual(lookup.await_count, 1)
        self.assertEqual(state.phase, AuthPhase.ERROR)

    async def test_delete_account_signs_out_and_forgets_the_session(self):
        state = self.make_state()
        self.assertFalse(await state.delete_account())
        self.assertEqual(state.error, "Not signed in")

        self.assertTrue(await state.register("Tom Temp", "tom@market.test", "secret1"))
        user_id = state.user.id
        self.phases.clear()
        self.assertTrue(await state.delete_account())
        self.assertEqual(self.phases, [AuthPhase.READY])
        self.assertFalse(state.is_authenticated)
        self.assertIsNone(state.user_role)
        self.assertFalse(os.path.exists(self.session_path))
        self.assertIsNone(await crud.get_user_by_id(user_id))
        self.assertFalse(await state.login("tom@market.test", "secret1"))

    async def test_register_customer_and_seller(self):
        state = self.make_state()
        self.assertTrue(await state.register("Carl Customer", "carl@market.test", "secret1"))
        self.assertEqual(state.user_role, "customer")

        state = self.make_state()
        answers = {"businessName": "Acme", "businessType": "retail", "experience": "5y"}
        self.assertTrue(
            await state.register("Sue Seller", "sue@market.test", "secret1", "seller", answers)
        )
        self.assertEqual(state.user_role, "seller")
        profile = await crud.get_profile(state.user.id)
        self.assertEqual(profile.question_responses, answers)
        row = await self.fetch_one(
            "SELECT role, status FROM role_applications WHERE user_id = ?;", (state.user.id,)
        )
        self.assertEqual(tuple(row), ("seller", "pending"))

    async def test_register_failures(self):
        state = self.make_state()
        self.assertFalse(await state.register("Mal", "mal@market.test", "secret1", "admin"))
        self.assertEqual(state.error, "Cannot register as admin")
        self.assertFalse(await state.register("Al", "alice@market.test", "secret1"))
        self.assertEqual(state.error, "User already registered")
        self.assertFalse(state.is_authenticated)

    async def test_password_flows(self):
        state = self.make_state()
        self.assertTrue(await state.send_password_reset("nobody@market.test"))
        self.assertIsNone(state.last_reset_token)

        self.assertTrue(await state.send_password_reset("alice@market.test"))
        self.assertFalse(await state.reset_password(state.last_reset_token, "abc"))
        self.assertTrue(await state.reset_password(state.last_reset_token, "newpass1"))
        self.assertFalse(await state.reset_password(state.last_reset_token, "newpass2"))

        self.assertFalse(await state.update_password("whatever"))
        self.assertEqual(state.error, "Not signed in")
        self.assertTrue(await state.login("alice@market.test", "newpass1"))
        self.assertTrue(await state.update_password("newpass3"))
