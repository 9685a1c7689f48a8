import os
import sys
import unittest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db.models import Order, OrderItem  # noqa: E402
from utils.pure import (  # noqa: E402
    generate_markdown_table,
    humanize,
    money,
    role_label,
    short_date,
)
from views.scr_account import render_order_md  # noqa: E402
from views.scr_admin import parse_setting  # noqa: E402
from views.scr_login import validate_registration  # noqa: E402


class PureTestCase(unittest.TestCase):
    def test_markdown_table(self):
        md = generate_markdown_table(["A", "B"], [["x|y", None]], ["l", "r"])
        self.assertEqual(md, "| A | B |\n| :--- | ---: |\n| x\\|y | - |")
        self.assertEqual(generate_markdown_table(["A"], []), "")
        with self.assertRaises(ValueError):
            generate_markdown_table(["A", "B"], [["1", "2"]], ["l"])

    def test_formatting(self):
        self.assertEqual(money(1234.5), "$1,234.50")
        self.assertEqual(money(None), "$0.00")
        self.assertEqual(humanize("in_transit"), "In transit")
        self.assertEqual(role_label("delivery"), "Delivery Person")
        self.assertEqual(role_label(None), "No role")
        self.assertEqual(short_date("2025-05-01T08:00:00+00:00"), "2025-05-01")
        self.assertEqual(short_date(None), "-")

    def test_order_markdown(self):
        order = Order(
            id="o-1", user_id="u", status="paid", delivery_status="in_transit", total=30.0,
            shipping_address="1 Main St", shipping_city="Springfield", shipping_state="IL",
            shipping_postal_code="62701", created_at="2025-05-01T08:00:00+00:00",
        )
        items = [OrderItem(id="oi", order_id="o-1", product_id="p-9", price=15.0, quantity=2)]
        md = render_order_md(order, items)
        self.assertIn("Ship To: 1 Main St, Springfield, IL 62701", md)
        self.assertIn("delivery in transit", md)
        self.assertIn("| Product p-9 | 2 | $15.00 | $30.00 |", md)
        self.assertTrue(md.endswith("**Grand Total:** $30.00"))

    def test_settings_values(self):
        self.assertIs(parse_setting("true"), True)
        self.assertEqual(parse_setting("42"), 42)
        self.assertEqual(parse_setting('"Market"'), "Market")
        self.assertEqual(parse_setting("Plain text"), "Plain text")

    def test_registration_form(self):
        self.assertEqual(validate_registration("Al", "al@market.test", "secret", "secret"), {})
        errors = validate_registration("", "al@market", "123", "123")
        self.assertEqual(set(errors), {"input-reg-name", "input-reg-email", "input-reg-pwd"})
        errors = validate_registration("Al", "al@market.test", "secret", "secreT")
        self.assertEqual(errors, {"input-reg-pwd2": "Passwords do not match."})
