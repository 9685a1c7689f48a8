# seller_functions: sales figures, order handling and product management for sellers
from datetime import datetime, timedelta, timezone
from typing import Dict

from db import crud
from db.database import connect
from db.errors import AccessDenied, NotFound, ValidationError
from db.functions import Caller
from db.models import SELLER_ORDER_STATUSES
from utils.logger import get_logger

_logger = get_logger(__name__)

ALLOWED_ROLES = ("seller", "admin")
DENIED_MESSAGE = "Access denied: User is not a seller"

PRODUCT_FIELDS = ("name", "description", "category", "price", "discounted_price", "stock", "image_url")

TIME_RANGES = {"day": 1, "week": 7, "month": 30, "year": 365}


def _validate_product(product: Dict, partial: bool = False) -> Dict:
    """Return the whitelisted product fields, raising ValidationError on bad values."""
    if not isinstance(product, dict):
        raise ValidationError("Missing product data")
    data = {k: product[k] for k in PRODUCT_FIELDS if k in product}
    if not partial:
        for key in ("name", "price", "category"):
            if data.get(key) in (None, ""):
                raise ValidationError("Missing required product fields")
    if "name" in data and not str(data["name"]).strip():
        raise ValidationError("Product name cannot be empty")
    try:
        if "price" in data:
            data["price"] = float(data["price"])
            if data["price"] <= 0:
                raise ValidationError("Price must be greater than 0")
        if data.get("discounted_price") is not None:
            data["discounted_price"] = float(data["discounted_price"])
            if data["discounted_price"] <= 0:
                raise ValidationError("Discounted price must be greater than 0")
        if "stock" in data:
            data["stock"] = int(data["stock"])
            if data["stock"] < 0:
                raise ValidationError("Stock cannot be negative")
    except (TypeError, ValueError):
        raise ValidationError("Price and stock must be numbers") from None
    return data


def _product_dict(row) -> Dict:
    return dict(row)


async def _owned_product(conn, caller: Caller, product_id: str, verb: str):
    cur = await conn.execute("SELECT * FROM products WHERE id = ?;", (product_id,))
    row = await cur.fetchone()
    await cur.close()
    if not row:
        raise NotFound("Product not found")
    if row["seller_id"] != caller.user_id and caller.role != "admin":
        raise AccessDenied(f"You don't have permission to {verb} this product")
    return row


# ---------------------------
# Actions
# ---------------------------


async def get_seller_products(caller: Caller) -> Dict:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT * FROM products WHERE seller_id = ? ORDER BY created_at DESC;",
            (caller.user_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return {"products": [_product_dict(r) for r in rows]}


async def get_seller_sales(caller: Caller) -> Dict:
    """Total revenue from order items of the seller's products."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT COALESCE(SUM(oi.price * oi.quantity), 0)
            FROM order_items oi JOIN products p ON p.id = oi.product_id
            WHERE p.seller_id = ?;
            """,
            (caller.user_id,),
        )
        row = await cur.fetchone()
        await cur.close()
    return {"total": round(float(row[0]), 2)}


async def get_seller_pending_orders(caller: Caller) -> Dict:
    """Count of distinct orders holding the seller's products that are pending or processing."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT COUNT(DISTINCT o.id)
            FROM orders o
            JOIN order_items oi ON oi.order_id = o.id
            JOIN products p ON p.id = oi.product_id
            WHERE p.seller_id = ? AND o.status IN ('pending', 'processing');
            """,
            (caller.user_id,),
        )
        row = await cur.fetchone()
        await cur.close()
    return {"count": int(row[0])}


async def get_seller_orders(caller: Caller) -> Dict:
    """Orders containing the seller's products, newest first, with only the seller's items."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT o.id AS order_id, o.created_at, o.status, o.total, o.user_id, u.email,
                   oi.id AS item_id, oi.product_id, oi.price, oi.quantity, p.name AS product_name
            FROM order_items oi
            JOIN products p ON p.id = oi.product_id
            JOIN orders o ON o.id = oi.order_id
            LEFT JOIN users u ON u.id = o.user_id
            WHERE p.seller_id = ?
            ORDER BY o.created_at DESC, oi.id;
            """,
            (caller.user_id,),
        )
        rows = await cur.fetchall()
        await cur.close()

    orders: Dict[str, Dict] = {}
    for r in rows:
        order = orders.setdefault(
            r["order_id"],
            {
                "id": r["order_id"],
                "created_at": r["created_at"],
                "status": r["status"],
                "total": r["total"],
                "user_id": r["user_id"],
                "customer_email": r["email"],
                "items": [],
            },
        )
        order["items"].append(
            {
                "id": r["item_id"],
                "product_id": r["product_id"],
                "product_name": r["product_name"],
                "price": r["price"],
                "quantity": r["quantity"],
            }
        )
    return {"orders": list(orders.values())}


async def update_order_status(caller: Caller, order_id: str = None, status: str = None) -> Dict:
    if not order_id or not status:
        raise ValidationError("Order ID and status are required")
    if status not in SELLER_ORDER_STATUSES:
        raise ValidationError("Invalid status value")
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT COUNT(*)
            FROM order_items oi JOIN products p ON p.id = oi.product_id
            WHERE oi.order_id = ? AND p.seller_id = ?;
            """,
            (order_id, caller.user_id),
        )
        (count,) = await cur.fetchone()
        await cur.close()
        if not count and caller.role != "admin":
            raise AccessDenied("No products from this seller in the order")

        res = await conn.execute(
            "UPDATE orders SET status = ?, updated_at = ? WHERE id = ?;",
            (status, crud.now_iso(), order_id),
        )
        await conn.commit()
        if res.rowcount == 0:
            raise NotFound("Order not found")
    return {
        "success": True,
        "order": {"id": order_id, "status": status},
        "message": f"Order status updated to {status}",
    }


async def add_product(caller: Caller, product: Dict = None) -> Dict:
    data = _validate_product(product)
    now = crud.now_iso()
    data.setdefault("description", "")
    data.setdefault("stock", 0)
    data.update(id=crud.new_id("p"), seller_id=caller.user_id, created_at=now, updated_at=now)
    cols = ", ".join(data)
    marks = ", ".join("?" for _ in data)
    async with connect() as conn:
        await conn.execute(f"INSERT INTO products({cols}) VALUES ({marks});", tuple(data.values()))
        await conn.commit()
        cur = await conn.execute("SELECT * FROM products WHERE id = ?;", (data["id"],))
        row = await cur.fetchone()
        await cur.close()
    _logger.info(f"Product {data['id']} added by {caller.user_id}")
    return {"success": True, "product": _product_dict(row), "message": "Product added successfully"}


async def update_product(caller: Caller, product: Dict = None) -> Dict:
    if not isinstance(product, dict) or not product.get("id"):
        raise ValidationError("Missing product ID")
    data = _validate_product(product, partial=True)
    async with connect() as conn:
        await _owned_product(conn, caller, product["id"], "update")
        if data:
            assignments = ", ".join(f"{k} = ?" for k in data)
            await conn.execute(
                f"UPDATE products SET {assignments}, updated_at = ? WHERE id = ?;",
                (*data.values(), crud.now_iso(), product["id"]),
            )
            await conn.commit()
        cur = await conn.execute("SELECT * FROM products WHERE id = ?;", (product["id"],))
        row = await cur.fetchone()
        await cur.close()
    return {"success": True, "product": _product_dict(row), "message": "Product updated successfully"}


async def delete_product(caller: Caller, product_id: str = None) -> Dict:
    if not product_id:
        raise ValidationError("Missing product ID")
    async with connect() as conn:
        await _owned_product(conn, caller, product_id, "delete")
        await conn.execute("DELETE FROM products WHERE id = ?;", (product_id,))
        await conn.commit()
    _logger.info(f"Product {product_id} deleted by {caller.user_id}")
    return {"success": True, "message": "Product deleted successfully"}


def sales_window_start(time_range: str, now: datetime = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=TIME_RANGES.get(time_range, TIME_RANGES["week"]))


async def get_seller_analytics(caller: Caller, time_range: str = "week") -> Dict:
    """Sales by day and category, top products and headline metrics within a time window."""
    since = sales_window_start(time_range).isoformat(timespec="seconds")
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT COUNT(*) FROM products WHERE seller_id = ?;", (caller.user_id,)
        )
        (product_count,) = await cur.fetchone()
        await cur.close()
        if not product_count:
            return {"message": "No products found"}

        cur = await conn.execute(
            """
            SELECT o.id AS order_id, substr(o.created_at, 1, 10) AS day,
                   p.id AS product_id, p.name, p.category, oi.price, oi.quantity
            FROM order_items oi
            JOIN products p ON p.id = oi.product_id
            JOIN orders o ON o.id = oi.order_id
            WHERE p.seller_id = ? AND o.created_at >= ?
            ORDER BY o.created_at;
            """,
            (caller.user_id, since),
        )
        rows = await cur.fetchall()
        await cur.close()

    by_day: Dict[str, Dict] = {}
    by_category: Dict[str, float] = {}
    by_product: Dict[str, Dict] = {}
    orders = set()
    total_revenue = 0.0
    total_items = 0
    for r in rows:
        amount = r["price"] * r["quantity"]
        day = by_day.setdefault(r["day"], {"date": r["day"], "amount": 0.0, "orders": set()})
        day["amount"] += amount
        day["orders"].add(r["order_id"])
        category = r["category"] or "other"
        by_category[category] = by_category.get(category, 0.0) + amount
        prod = by_product.setdefault(
            r["product_id"], {"id": r["product_id"], "name": r["name"], "sales": 0, "revenue": 0.0}
        )
        prod["sales"] += r["quantity"]
        prod["revenue"] += amount
        orders.add(r["order_id"])
        total_revenue += amount
        total_items += r["quantity"]

    return {
        "salesData": [
            {**d, "orders": len(d["orders"])} for d in sorted(by_day.values(), key=lambda d: d["date"])
        ],
        "categorySales": sorted(
            ({"name": k, "value": v} for k, v in by_category.items()),
            key=lambda c: c["value"],
            reverse=True,
        ),
        "topProducts": sorted(by_product.values(), key=lambda p: p["sales"], reverse=True)[:5],
        "metrics": {
            "totalRevenue": round(total_revenue, 2),
            "totalOrders": len(orders),
            "totalItems": total_items,
            "totalProducts": product_count,
            "averageOrderValue": round(total_revenue / len(orders), 2) if orders else 0,
        },
    }


ACTIONS = {
    "get_seller_products": get_seller_products,
    "get_seller_sales": get_seller_sales,
    "get_seller_pending_orders": get_seller_pending_orders,
    "get_seller_orders": get_seller_orders,
    "update_order_status": update_order_status,
    "add_product": add_product,
    "update_product": update_product,
    "delete_product": delete_product,
    "get_seller_analytics": get_seller_analytics,
}
