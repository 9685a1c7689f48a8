import asyncio
from datetime import date

from store_case import StoreTestCase

from db.errors import ConflictError, FunctionError, NotFound, ValidationError
from db.functions import delivery, handle_request, invoke
from utils import config


class GatewayTestCase(StoreTestCase):
    async def test_rejects_missing_credentials_and_wrong_roles(self):
        status, payload = await handle_request(
            "delivery_functions", {"action": "get_available_orders"}, {"apikey": config.API_KEY}
        )
        self.assertEqual(status, 401)
        self.assertEqual(payload, {"error": "No authorization header provided"})

        token = await self.token_for("rider@market.test")
        with self.assertRaises(FunctionError) as ctx:
            await invoke("delivery_functions", {"action": "get_available_orders"}, token, apikey="bad")
        self.assertEqual(ctx.exception.status, 401)

        with self.assertRaises(FunctionError) as ctx:
            await invoke("delivery_functions", {"action": "get_available_orders"}, "not-a-token")
        self.assertEqual(ctx.exception.status, 401)

        customer = await self.token_for("alice@market.test")
        with self.assertRaises(FunctionError) as ctx:
            await invoke("delivery_functions", {"action": "get_available_orders"}, customer)
        self.assertEqual(ctx.exception.status, 403)
        self.assertEqual(ctx.exception.message, delivery.DENIED_MESSAGE)

        # no role row is denied as well
        nobody = await self.token_for("bob@market.test")
        with self.assertRaises(FunctionError) as ctx:
            await invoke("delivery_functions", {"action": "get_available_orders"}, nobody)
        self.assertEqual(ctx.exception.status, 403)

    async def test_unknown_function_action_and_parameters(self):
        token = await self.token_for("rider@market.test")
        with self.assertRaises(FunctionError) as ctx:
            await invoke("nope_functions", {"action": "x"}, token)
        self.assertEqual(ctx.exception.status, 404)

        with self.assertRaises(FunctionError) as ctx:
            await invoke("delivery_functions", {"action": "fly"}, token)
        self.assertEqual(ctx.exception.status, 400)

        with self.assertRaises(FunctionError) as ctx:
            await invoke("delivery_functions", {"action": "get_schedule", "bogus": 1}, token)
        self.assertEqual(ctx.exception.status, 400)


class ClaimTestCase(StoreTestCase):
    async def test_available_orders_are_paid_and_unassigned(self):
        token = await self.token_for("rider@market.test")
        result = await invoke("delivery_functions", {"action": "get_available_orders"}, token)
        ids = [o["id"] for o in result["orders"]]
        self.assertEqual(ids, ["o-5002", "o-5001"])
        self.assertEqual(result["orders"][0]["customer_name"], "Alice Customer")

    async def test_claim_assigns_order_once(self):
        token = await self.token_for("rider@market.test")
        result = await invoke(
            "delivery_functions", {"action": "accept_delivery_order", "order_id": "o-5001"}, token
        )
        self.assertTrue(result["success"])
        self.assertEqual(result["assignment"]["delivery_person_id"], "u-delivery")
        self.assertEqual(result["assignment"]["status"], "assigned")

        row = await self.fetch_one("SELECT delivery_status FROM orders WHERE id = 'o-5001';")
        self.assertEqual(row[0], "assigned")

        other = await self.token_for("rider2@market.test")
        with self.assertRaises(FunctionError) as ctx:
            await invoke(
                "delivery_functions", {"action": "accept_delivery_order", "order_id": "o-5001"}, other
            )
        self.assertEqual(ctx.exception.status, 409)

        available = await invoke("delivery_functions", {"action": "get_available_orders"}, other)
        self.assertEqual([o["id"] for o in available["orders"]], ["o-5002"])

    async def test_claim_unavailable_or_missing_order(self):
        with self.assertRaises(NotFound):
            await delivery.claim("o-5003", "u-delivery")  # not paid yet
        with self.assertRaises(NotFound):
            await delivery.claim("o-9999", "u-delivery")
        with self.assertRaises(ConflictError):
            await delivery.claim("o-5004", "u-delivery2")
        with self.assertRaises(ValidationError):
            await delivery.claim("", "u-delivery")

    async def test_concurrent_claims_have_exactly_one_winner(self):
        results = await asyncio.gather(
            delivery.claim("o-5002", "u-delivery"),
            delivery.claim("o-5002", "u-delivery2"),
            return_exceptions=True,
        )
        wins = [r for r in results if isinstance(r, dict)]
        losses = [r for r in results if isinstance(r, Exception)]
        self.assertEqual(len(wins), 1)
        self.assertEqual(len(losses), 1)
        self.assertIsInstance(losses[0], ConflictError)
        self.assertEqual(losses[0].status, 409)

        row = await self.fetch_one(
            "SELECT COUNT(*), MAX(delivery_person_id) FROM delivery_assignments WHERE order_id = 'o-5002';"
        )
        self.assertEqual(row[0], 1)
        self.assertEqual(row[1], wins[0]["delivery_person_id"])


class StatusTestCase(StoreTestCase):
    def test_transition_rules(self):
        delivery.check_transition("assigned", "in_transit")
        delivery.check_transition("assigned", "failed")
        delivery.check_transition("in_transit", "delivered")
        delivery.check_transition("in_transit", "in_transit")
        with self.assertRaises(ValidationError):
            delivery.check_transition("assigned", "delivered")
        with self.assertRaises(ValidationError):
            delivery.check_transition("delivered", "in_transit")
        with self.assertRaises(ValidationError):
            delivery.check_transition("failed", "assigned")
        with self.assertRaises(ValidationError):
            delivery.check_transition("assigned", "lost")

    async def test_delivered_updates_order(self):
        token = await self.token_for("rider@market.test")
        result = await invoke(
            "delivery_functions",
            {"action": "update_delivery_status", "assignment_id": "da-1", "status": "delivered", "notes": "Porch"},
            token,
        )
        assignment = result["assignment"]
        self.assertEqual(assignment["status"], "delivered")
        self.assertEqual(assignment["notes"], "Porch")
        self.assertIsNotNone(assignment["delivered_at"])

        row = await self.fetch_one("SELECT status, delivery_status FROM orders WHERE id = 'o-5004';")
        self.assertEqual(tuple(row), ("delivered", "delivered"))

    async def test_backward_transition_and_foreign_assignment(self):
        token = await self.token_for("rider@market.test")
        with self.assertRaises(FunctionError) as ctx:
            await invoke(
                "delivery_functions",
                {"action": "update_delivery_status", "assignment_id": "da-2", "status": "in_transit"},
                token,
            )
        self.assertEqual(ctx.exception.status, 400)
        row = await self.fetch_one("SELECT status FROM delivery_assignments WHERE id = 'da-2';")
        self.assertEqual(row[0], "delivered")

        other = await self.token_for("rider2@market.test")
        with self.assertRaises(FunctionError) as ctx:
            await invoke(
                "delivery_functions",
                {"action": "update_delivery_status", "assignment_id": "da-1", "status": "delivered"},
                other,
            )
        self.assertEqual(ctx.exception.status, 404)

    async def test_failed_keeps_order_delivery_status(self):
        caller = await self.caller_for("u-delivery")
        await delivery.update_delivery_status(caller, "da-1", "failed", "Nobody home")
        row = await self.fetch_one("SELECT delivery_status FROM orders WHERE id = 'o-5004';")
        self.assertEqual(row[0], "assigned")

    async def test_assignments_and_stats(self):
        caller = await self.caller_for("u-delivery")
        result = await delivery.get_delivery_assignments(caller)
        self.assertEqual([a["id"] for a in result["assignments"]], ["da-1", "da-2"])
        self.assertEqual(result["assignments"][0]["order"]["shipping_city"], "Springfield")

        stats = (await delivery.get_delivery_stats(caller))["stats"]
        self.assertEqual(stats["total_delivered"], 1)
        self.assertEqual(stats["in_progress"], 1)
        self.assertEqual([d["order_id"] for d in stats["recent_deliveries"]], ["o-5005"])

    async def test_online_status(self):
        caller = await self.caller_for("u-delivery")
        self.assertEqual(await delivery.get_online_status(caller), {"online": False})
        self.assertEqual(await delivery.set_online_status(caller, True), {"online": True})
        self.assertEqual(await delivery.get_online_status(caller), {"online": True})
        with self.assertRaises(ValidationError):
            await delivery.set_online_status(caller, "yes")


class ScheduleTestCase(StoreTestCase):
    async def test_default_then_saved_schedule(self):
        caller = await self.caller_for("u-delivery")
        schedule = (await delivery.get_schedule(caller))["schedule"]
        self.assertEqual(len(schedule), len(delivery.DEFAULT_WEEKLY_SCHEDULE))

        saved = [{"day": 2, "start_time": "08:00", "end_time": "12:00", "available": True}]
        await delivery.save_schedule(caller, saved)
        schedule = (await delivery.get_schedule(caller))["schedule"]
        self.assertEqual(len(schedule), 1)
        self.assertEqual(
            (schedule[0]["day"], schedule[0]["start_time"], schedule[0]["end_time"]),
            (2, "08:00", "12:00"),
        )

    async def test_schedule_validation(self):
        caller = await self.caller_for("u-delivery")
        for bad in (
            None,
            [{"day": 7, "start_time": "08:00", "end_time": "12:00"}],
            [{"day": 1, "start_time": "12:00", "end_time": "08:00"}],
            [{"day": 1, "start_time": "25:00", "end_time": "26:00"}],
            [{"day": 1, "start_time": "noon", "end_time": "13:00"}],
        ):
            with self.assertRaises(ValidationError):
                await delivery.save_schedule(caller, bad)

        with self.assertRaises(ValidationError):
            await delivery.get_delivery_slots(caller, days=0)
        with self.assertRaises(ValidationError):
            await delivery.get_delivery_slots(caller, start="next week")

    def test_build_slots_splits_windows_and_marks_assignments(self):
        schedule = [
            {"id": "1-1", "day": 1, "start_time": "09:00", "end_time": "17:00", "available": True},
            {"id": "1-2", "day": 1, "start_time": "18:00", "end_time": "22:00", "available": False},
            {"id": "3-1", "day": 3, "start_time": "10:00", "end_time": "12:00", "available": True},
        ]
        assignments = [
            {"order_id": "o-1", "status": "delivered", "assigned_at": "2025-06-02T14:30:00+00:00"},
            {"order_id": "o-2", "status": "assigned", "assigned_at": "2025-06-04T10:15:00+00:00"},
        ]
        # 2025-06-02 is a Monday
        slots = delivery.build_slots(schedule, assignments, date(2025, 6, 2), days=7)
        self.assertEqual(
            [(s["date"], s["time"]) for s in slots],
            [
                ("2025-06-02", "09:00 - 13:00"),
                ("2025-06-02", "13:00 - 17:00"),
                ("2025-06-04", "10:00 - 11:00"),
                ("2025-06-04", "11:00 - 12:00"),
            ],
        )
        self.assertEqual([s["status"] for s in slots], ["available", "completed", "booked", "available"])
        self.assertEqual(slots[1]["order_id"], "o-1")
        self.assertEqual(slots[2]["order_id"], "o-2")
