from store_case import StoreTestCase

from db import crud
from db import database as db_database
from db.errors import AuthError, ConflictError, NotFound, ValidationError

SHIPPING = {"address": "1 Main St", "city": "Springfield", "state": "IL", "postal_code": "62701"}


class CrudTestCase(StoreTestCase):
    # ---------- Auth provider ----------

    async def test_sign_up_sign_in_and_sessions(self):
        # From the seed, alice exists; a new email should be available
        self.assertFalse(await crud.email_available("ALICE@market.test"))
        self.assertTrue(await crud.email_available("charlie@market.test"))

        user = await crud.sign_up("Charlie@Market.test", "secret1", "Charlie Brown", "customer")
        self.assertEqual(user.email, "charlie@market.test")
        profile = await crud.get_profile(user.id)
        self.assertEqual((profile.first_name, profile.last_name), ("Charlie", "Brown"))

        with self.assertRaises(ConflictError):
            await crud.sign_up("charlie@market.test", "secret1", "Again")
        with self.assertRaises(ValidationError):
            await crud.sign_up("dave@market.test", "123", "Dave")
        with self.assertRaises(ValidationError):
            await crud.sign_up("not-an-email", "secret1", "Eve")

        signed, session = await crud.sign_in("charlie@market.test", "secret1")
        self.assertEqual(signed.id, user.id)
        self.assertEqual((await crud.get_user(session.token)).id, user.id)
        with self.assertRaises(AuthError):
            await crud.sign_in("charlie@market.test", "wrong-password")

        await crud.sign_out(session.token)
        self.assertIsNone(await crud.get_session(session.token))
        with self.assertRaises(AuthError):
            await crud.get_user(session.token)

    async def test_expired_session_is_rejected(self):
        _, session = await crud.sign_in("alice@market.test", db_database.DEMO_PASSWORD)
        async with db_database.connect() as conn:
            await conn.execute(
                "UPDATE auth_sessions SET expires_at = '2000-01-01T00:00:00+00:00' WHERE token = ?;",
                (session.token,),
            )
            await conn.commit()
        self.assertIsNone(await crud.get_session(session.token))

    async def test_password_reset_and_update(self):
        self.assertIsNone(await crud.request_password_reset("nobody@market.test"))

        _, old_session = await crud.sign_in("alice@market.test", db_database.DEMO_PASSWORD)
        token = await crud.request_password_reset("alice@market.test")
        self.assertTrue(token)
        await crud.reset_password(token, "brand-new")

        # the reset signs the account out everywhere and the code is single use
        self.assertIsNone(await crud.get_session(old_session.token))
        with self.assertRaises(AuthError):
            await crud.reset_password(token, "another-one")
        with self.assertRaises(AuthError):
            await crud.sign_in("alice@market.test", db_database.DEMO_PASSWORD)

        _, session = await crud.sign_in("alice@market.test", "brand-new")
        await crud.update_user_password(session.token, "third-pass")
        await crud.sign_in("alice@market.test", "third-pass")
        with self.assertRaises(ValidationError):
            await crud.update_user_password(session.token, "x")

    async def test_delete_account_without_history_removes_the_user(self):
        user = await crud.sign_up("gone@market.test", "secret1", "Gone Soon")
        _, session = await crud.sign_in("gone@market.test", "secret1")
        await crud.add_to_wishlist(user.id, "p-1001")

        self.assertTrue(await crud.delete_account(session.token))
        self.assertIsNone(await crud.get_user_by_id(user.id))
        self.assertIsNone(await crud.get_session(session.token))
        self.assertIsNone(await crud.get_profile(user.id))
        self.assertEqual(await crud.list_wishlist(user.id), [])
        self.assertTrue(await crud.email_available("gone@market.test"))

    async def test_delete_account_with_orders_keeps_a_banned_row(self):
        _, session = await crud.sign_in("alice@market.test", db_database.DEMO_PASSWORD)
        self.assertFalse(await crud.delete_account(session.token))

        self.assertIsNone(await crud.get_session(session.token))
        self.assertIsNone(await crud.get_user_role("u-customer"))
        self.assertIsNone(await crud.get_profile("u-customer"))
        self.assertEqual(len(await crud.list_user_orders("u-customer")), 5)
        with self.assertRaises(AuthError) as ctx:
            await crud.sign_in("alice@market.test", db_database.DEMO_PASSWORD)
        self.assertEqual(ctx.exception.message, "User is banned")

        with self.assertRaises(AuthError):
            await crud.delete_account(session.token)

    # ---------- Roles & profiles ----------

    async def test_roles_and_repair(self):
        self.assertEqual(await crud.get_user_role("u-admin"), "admin")
        self.assertIsNone(await crud.get_user_role("u-norole"))
        self.assertIsNone(await crud.get_user_role("missing"))

        await crud.upsert_user_role("u-customer", "seller")
        self.assertEqual(await crud.get_user_role("u-customer"), "seller")
        with self.assertRaises(ValidationError):
            await crud.upsert_user_role("u-customer", "superuser")

        # bob never got a role row; repair falls back to customer
        self.assertTrue(await crud.repair_user_entries("u-norole"))
        self.assertEqual(await crud.get_user_role("u-norole"), "customer")
        self.assertFalse(await crud.repair_user_entries("missing"))

    async def test_repair_uses_requested_role_and_recreates_profile(self):
        user = await crud.sign_up("rider3@market.test", "secret1", "Third Rider", "delivery")
        async with db_database.connect() as conn:
            await conn.execute("DELETE FROM profiles WHERE id = ?;", (user.id,))
            await conn.commit()
        self.assertTrue(await crud.repair_user_entries(user.id))
        self.assertEqual(await crud.get_user_role(user.id), "delivery")
        self.assertIsNotNone(await crud.get_profile(user.id))

    async def test_profile_update_and_question_responses(self):
        self.assertTrue(await crud.update_profile("u-customer", phone="555-0100", city="Austin"))
        profile = await crud.get_profile("u-customer")
        self.assertEqual((profile.phone, profile.city), ("555-0100", "Austin"))
        self.assertFalse(await crud.update_profile("u-customer"))
        with self.assertRaises(ValidationError):
            await crud.update_profile("u-customer", is_admin=True)

        await crud.set_question_responses("u-customer", {"businessName": "Acme"})
        await crud.set_question_responses("u-customer", {"experience": "3 years"})
        profile = await crud.get_profile("u-customer")
        self.assertEqual(
            profile.question_responses, {"businessName": "Acme", "experience": "3 years"}
        )

    # ---------- Catalogue ----------

    async def test_catalogue_listing_and_search(self):
        categories = {c.slug for c in await crud.list_categories()}
        self.assertTrue({"electronics", "home", "books", "sports"} <= categories)

        sports = await crud.list_products(category="sports")
        self.assertEqual({p.id for p in sports}, {"p-1007", "p-1008"})
        self.assertEqual(len(await crud.list_products(limit=3)), 3)

        earbuds = await crud.get_product("p-1001")
        self.assertEqual(earbuds.unit_price, 49.99)
        self.assertIsNone(await crud.get_product("missing"))
        self.assertEqual(await crud.product_stock("p-1005"), 0)

        related = await crud.related_products(earbuds)
        self.assertEqual({p.id for p in related}, {"p-1002", "p-1003"})

    async def test_search_phrase_then_words_without_duplicates(self):
        self.assertEqual(await crud.search_products("   "), [])
        self.assertEqual([p.id for p in await crud.search_products("MUG")], ["p-1004"])

        # no product matches the phrase; each word matches one product
        ids = [p.id for p in await crud.search_products("smart lamp")]
        self.assertEqual(ids, ["p-1003", "p-1005"])

        # "watch" matches both as phrase part and as a word; listed once
        ids = [p.id for p in await crud.search_products("smart watch")]
        self.assertEqual(ids, ["p-1003"])

    # ---------- Wishlist & reviews ----------

    async def test_wishlist_toggle(self):
        self.assertEqual(await crud.list_wishlist("u-customer"), [])
        self.assertTrue(await crud.toggle_wishlist("u-customer", "p-1006"))
        self.assertTrue(await crud.in_wishlist("u-customer", "p-1006"))
        self.assertEqual([p.id for p in await crud.list_wishlist("u-customer")], ["p-1006"])
        self.assertFalse(await crud.toggle_wishlist("u-customer", "p-1006"))
        self.assertFalse(await crud.in_wishlist("u-customer", "p-1006"))

    async def test_reviews_and_average_rating(self):
        self.assertEqual(await crud.average_rating("p-1004"), (5.0, 1))
        self.assertEqual(await crud.average_rating("p-1008"), (0.0, 0))

        await crud.add_review("u-customer", "p-1004", 3, "Chipped one")
        avg, count = await crud.average_rating("p-1004")
        self.assertEqual((avg, count), (4.0, 2))
        reviews = await crud.list_reviews("p-1004")
        self.assertEqual(len(reviews), 2)
        self.assertEqual(reviews[0].author, "Alice Customer")

        with self.assertRaises(ValidationError):
            await crud.add_review("u-customer", "p-1004", 6)
        with self.assertRaises(NotFound):
            await crud.add_review("u-customer", "missing", 4)

    # ---------- Checkout & orders ----------

    async def test_checkout_creates_paid_order_and_decrements_stock(self):
        order_id = await crud.checkout("u-customer", [("p-1001", 2), ("p-1008", 1)], SHIPPING)

        order, items = await crud.get_order_detail(order_id)
        self.assertEqual(order.status, "paid")
        self.assertEqual(order.delivery_status, "pending")
        self.assertAlmostEqual(order.total, 2 * 49.99 + 12.00)
        self.assertEqual({(i.product_id, i.quantity) for i in items}, {("p-1001", 2), ("p-1008", 1)})
        self.assertEqual(await crud.product_stock("p-1001"), 23)
        self.assertEqual(await crud.product_stock("p-1008"), 2)

        orders = await crud.list_user_orders("u-customer")
        self.assertEqual(orders[0].id, order_id)
        self.assertEqual(await crud.get_order_detail("missing"), (None, []))

    async def test_checkout_aborts_whole_order_when_stock_is_short(self):
        before = len(await crud.list_user_orders("u-customer"))
        with self.assertRaises(ValidationError):
            await crud.checkout("u-customer", [("p-1001", 1), ("p-1008", 4)], SHIPPING)
        # the earlier line was not decremented
        self.assertEqual(await crud.product_stock("p-1001"), 25)
        self.assertEqual(await crud.product_stock("p-1008"), 3)
        self.assertEqual(len(await crud.list_user_orders("u-customer")), before)

    async def test_checkout_validation(self):
        with self.assertRaises(ValidationError):
            await crud.checkout("u-customer", [], SHIPPING)
        with self.assertRaises(ValidationError):
            await crud.checkout("u-customer", [("p-1001", 1)], dict(SHIPPING, city=" "))
        with self.assertRaises(NotFound):
            await crud.checkout("u-customer", [("missing", 1)], SHIPPING)
