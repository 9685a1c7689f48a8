from store_case import StoreTestCase

from db.errors import NotFound, ValidationError
from utils.cart import Cart


class CartTestCase(StoreTestCase):
    async def test_add_caps_at_stock_and_persists(self):
        cart = Cart(path=self.cart_path)
        self.assertEqual(cart.items, [])

        self.assertIsNone(await cart.add("p-1001", 2))
        self.assertIsNone(await cart.add("p-1008"))
        self.assertEqual(cart.count, 3)
        self.assertEqual(cart.total, round(2 * 49.99 + 12.00, 2))

        notice = await cart.add("p-1008", 5)
        self.assertEqual(notice, "Only 3 of Jump Rope in stock; quantity adjusted")
        self.assertEqual(cart.quantity_of("p-1008"), 3)

        reloaded = Cart(path=self.cart_path)
        self.assertEqual(reloaded.lines(), [("p-1001", 2), ("p-1008", 3)])
        self.assertEqual(reloaded.items[0].name, "Wireless Earbuds")
        self.assertEqual(reloaded.items[0].unit_price, 49.99)

    async def test_add_rejections(self):
        cart = Cart(path=self.cart_path)
        with self.assertRaises(ValidationError):
            await cart.add("p-1005")  # out of stock
        with self.assertRaises(NotFound):
            await cart.add("missing")
        with self.assertRaises(ValidationError):
            await cart.add("p-1001", 0)
        self.assertEqual(cart.items, [])

    async def test_update_remove_and_clear(self):
        cart = Cart(path=self.cart_path)
        await cart.add("p-1004", 1)
        await cart.add("p-1007", 1)

        self.assertIsNone(await cart.update_quantity("p-1004", 4))
        self.assertEqual(cart.quantity_of("p-1004"), 4)
        notice = await cart.update_quantity("p-1004", 400)
        self.assertIn("Only 40", notice)
        self.assertEqual(cart.quantity_of("p-1004"), 40)

        await cart.update_quantity("p-1007", 0)
        self.assertEqual(cart.lines(), [("p-1004", 40)])
        with self.assertRaises(NotFound):
            await cart.update_quantity("p-1007", 2)

        cart.remove("p-1004")
        cart.remove("p-1004")
        self.assertEqual(cart.count, 0)

        await cart.add("p-1006", 1)
        cart.clear()
        self.assertEqual(Cart(path=self.cart_path).items, [])

    async def test_add_remove_add_leaves_a_single_line(self):
        cart = Cart(path=self.cart_path)
        await cart.add("p-1002", 2)
        cart.remove("p-1002")
        await cart.add("p-1002", 1)
        self.assertEqual(cart.lines(), [("p-1002", 1)])
        self.assertEqual(Cart(path=self.cart_path).lines(), [("p-1002", 1)])

    async def test_unreadable_file_starts_empty(self):
        with open(self.cart_path, "w", encoding="utf-8") as f:
            f.write("{not json")
        self.assertEqual(Cart(path=self.cart_path).items, [])

        with open(self.cart_path, "w", encoding="utf-8") as f:
            f.write('[{"unexpected": 1}]')
        self.assertEqual(Cart(path=self.cart_path).items, [])

    async def test_custom_product_lookup(self):
        async def lookup(product_id):
            return None

        cart = Cart(path=self.cart_path, product_lookup=lookup)
        with self.assertRaises(NotFound):
            await cart.add("p-1001")
