import os
import sys
import unittest
from unittest.mock import AsyncMock, patch

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from tenacity import wait_none  # noqa: E402

from db.errors import AccessDenied, FunctionError, StoreError, is_transient  # noqa: E402
from utils.api import DeliveryApi  # noqa: E402
from utils.retry import ASSIGNMENTS_ATTEMPTS  # noqa: E402


def server_error(status=500):
    return FunctionError("delivery_functions", status, "Unknown error occurred")


class TransientTestCase(unittest.TestCase):
    def test_is_transient(self):
        self.assertTrue(is_transient(StoreError("database is locked")))
        self.assertTrue(is_transient(server_error(503)))
        self.assertFalse(is_transient(FunctionError("delivery_functions", 409, "taken")))
        self.assertFalse(is_transient(AccessDenied("no")))
        self.assertFalse(is_transient(ValueError("boom")))

    def test_function_error_text(self):
        self.assertEqual(str(server_error()), "delivery_functions: Unknown error occurred (500)")


class AssignmentsRetryTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.api = DeliveryApi(lambda: "token", retry_wait=wait_none())

    async def test_recovers_after_a_server_error(self):
        invoke = AsyncMock(side_effect=[server_error(), {"assignments": [{"id": "da-1"}]}])
        with patch("utils.api.invoke", invoke):
            self.assertEqual(await self.api.list_assignments(), [{"id": "da-1"}])
        self.assertEqual(invoke.await_count, 2)
        invoke.assert_awaited_with(
            "delivery_functions", {"action": "get_delivery_assignments"}, "token"
        )

    async def test_gives_up_after_bounded_attempts(self):
        invoke = AsyncMock(side_effect=server_error(503))
        with patch("utils.api.invoke", invoke):
            with self.assertRaises(FunctionError) as ctx:
                await self.api.list_assignments()
        self.assertEqual(ctx.exception.status, 503)
        self.assertEqual(invoke.await_count, ASSIGNMENTS_ATTEMPTS)

    async def test_client_errors_are_not_retried(self):
        invoke = AsyncMock(side_effect=FunctionError("delivery_functions", 403, "denied"))
        with patch("utils.api.invoke", invoke):
            with self.assertRaises(FunctionError):
                await self.api.list_assignments()
        self.assertEqual(invoke.await_count, 1)

    async def test_other_queries_are_not_retried(self):
        invoke = AsyncMock(side_effect=server_error())
        with patch("utils.api.invoke", invoke):
            with self.assertRaises(FunctionError):
                await self.api.list_available_orders()
        self.assertEqual(invoke.await_count, 1)
