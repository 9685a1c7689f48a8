# admin_functions: user/role administration, order oversight, applications, store settings
import json
from typing import Dict, Optional

from db import crud
from db.database import connect
from db.errors import NotFound, ValidationError
from db.functions import Caller, delivery, seller
from db.functions.seller import sales_window_start
from db.models import ROLES
from utils.logger import get_logger

_logger = get_logger(__name__)

ALLOWED_ROLES = ("admin",)
DENIED_MESSAGE = "Access denied. Admin privileges required."


def _user_status(row) -> str:
    if row["banned"]:
        return "banned"
    return "active" if row["email_confirmed_at"] else "pending"


async def get_users(caller: Caller) -> Dict:
    """All accounts with their role; users without a role row report role None."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT u.id, u.email, u.name, u.created_at, u.last_sign_in_at, u.banned,
                   u.email_confirmed_at, r.role
            FROM users u LEFT JOIN user_roles r ON r.user_id = u.id
            ORDER BY u.created_at, u.email;
            """
        )
        rows = await cur.fetchall()
        await cur.close()
    return {
        "users": [
            {
                "id": r["id"],
                "email": r["email"],
                "name": r["name"],
                "role": r["role"],
                "created_at": r["created_at"],
                "last_sign_in_at": r["last_sign_in_at"],
                "status": _user_status(r),
            }
            for r in rows
        ]
    }


async def update_user_role(caller: Caller, user_id: str = None, role: str = None) -> Dict:
    if not user_id or not role:
        raise ValidationError("Missing required parameters")
    if role not in ROLES:
        raise ValidationError(f"Invalid role: {role}")
    if await crud.get_user_by_id(user_id) is None:
        raise NotFound("User not found")
    await crud.upsert_user_role(user_id, role)
    _logger.info(f"Role of {user_id} set to {role} by {caller.user_id}")
    return {"message": "User role updated successfully", "role": {"user_id": user_id, "role": role}}


async def get_orders_with_users(caller: Caller) -> Dict:
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT o.*, u.email AS user_email, a.delivery_person_id
            FROM orders o
            LEFT JOIN users u ON u.id = o.user_id
            LEFT JOIN delivery_assignments a ON a.order_id = o.id
            ORDER BY o.created_at DESC;
            """
        )
        rows = await cur.fetchall()
        await cur.close()
    return {"orders": [dict(r) for r in rows]}


async def assign_delivery(
    caller: Caller, order_id: str = None, delivery_person_id: Optional[str] = None
) -> Dict:
    """Assign an order through the same atomic claim delivery people use."""
    if not order_id:
        raise ValidationError("Missing order_id parameter")
    if delivery_person_id:
        if await crud.get_user_role(delivery_person_id) != "delivery":
            raise ValidationError("Selected user is not a delivery person")
    else:
        async with connect() as conn:
            cur = await conn.execute(
                "SELECT user_id FROM user_roles WHERE role = 'delivery' ORDER BY user_id LIMIT 1;"
            )
            row = await cur.fetchone()
            await cur.close()
        if not row:
            raise NotFound("No available delivery personnel found")
        delivery_person_id = row[0]
    assignment = await delivery.claim(order_id, delivery_person_id)
    return {"message": "Delivery assigned successfully", "assignment": assignment}


async def get_role_applications(caller: Caller, status: Optional[str] = None) -> Dict:
    sql = """
        SELECT a.id, a.user_id, u.email AS user_email, a.role, a.status,
               a.question_responses, a.created_at, a.reviewed_at
        FROM role_applications a JOIN users u ON u.id = a.user_id
    """
    params = ()
    if status:
        sql += " WHERE a.status = ?"
        params = (status,)
    async with connect() as conn:
        cur = await conn.execute(sql + " ORDER BY a.created_at DESC;", params)
        rows = await cur.fetchall()
        await cur.close()
    applications = []
    for r in rows:
        item = dict(r)
        item["question_responses"] = json.loads(r["question_responses"] or "{}")
        applications.append(item)
    return {"applications": applications}


async def _review_application(application_id: str, decision: str) -> Dict:
    if not application_id:
        raise ValidationError("Missing application_id parameter")
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT user_id, role, status FROM role_applications WHERE id = ?;",
            (application_id,),
        )
        row = await cur.fetchone()
        await cur.close()
        if not row:
            raise NotFound("Application not found")
        if row["status"] != "pending":
            raise ValidationError(f"Application is already {row['status']}")
        await conn.execute(
            "UPDATE role_applications SET status = ?, reviewed_at = ? WHERE id = ?;",
            (decision, crud.now_iso(), application_id),
        )
        await conn.commit()
    role = row["role"] if decision == "approved" else "customer"
    await crud.upsert_user_role(row["user_id"], role)
    return {"user_id": row["user_id"], "role": role}


async def approve_application(caller: Caller, application_id: str = None) -> Dict:
    result = await _review_application(application_id, "approved")
    return {"message": "Application approved successfully", **result}


async def reject_application(caller: Caller, application_id: str = None) -> Dict:
    result = await _review_application(application_id, "rejected")
    return {"message": "Application rejected successfully", **result}


async def get_products(caller: Caller) -> Dict:
    """Every product in the store with the email of the seller who listed it."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT p.*, u.email AS seller_email
            FROM products p LEFT JOIN users u ON u.id = p.seller_id
            ORDER BY p.created_at DESC, p.id;
            """
        )
        rows = await cur.fetchall()
        await cur.close()
    return {"products": [dict(r) for r in rows]}


async def delete_product(caller: Caller, product_id: str = None) -> Dict:
    # the seller action already lets admins through its ownership check
    return await seller.delete_product(caller, product_id)


async def get_analytics(caller: Caller, time_range: str = "week") -> Dict:
    """
    Store-wide sales figures; same shape as the seller analytics. Revenue
    and order counts cover the time window, customers and products do not.
    """
    since = sales_window_start(time_range).isoformat(timespec="seconds")
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT substr(created_at, 1, 10) AS "date", SUM(total) AS amount, COUNT(*) AS orders
            FROM orders
            WHERE created_at >= ? AND status != 'cancelled'
            GROUP BY 1 ORDER BY 1;
            """,
            (since,),
        )
        sales = [dict(r) for r in await cur.fetchall()]
        await cur.close()

        cur = await conn.execute(
            """
            SELECT p.category AS name, SUM(oi.price * oi.quantity) AS value
            FROM order_items oi
            JOIN products p ON p.id = oi.product_id
            JOIN orders o ON o.id = oi.order_id
            WHERE o.created_at >= ? AND o.status != 'cancelled'
            GROUP BY p.category ORDER BY value DESC;
            """,
            (since,),
        )
        categories = [dict(r) for r in await cur.fetchall()]
        await cur.close()

        cur = await conn.execute(
            """
            SELECT p.id, p.name, SUM(oi.quantity) AS sales
            FROM order_items oi
            JOIN products p ON p.id = oi.product_id
            JOIN orders o ON o.id = oi.order_id
            WHERE o.created_at >= ? AND o.status != 'cancelled'
            GROUP BY p.id ORDER BY sales DESC LIMIT 5;
            """,
            (since,),
        )
        top = [dict(r) for r in await cur.fetchall()]
        await cur.close()

        cur = await conn.execute(
            """
            SELECT
              (SELECT COALESCE(SUM(total), 0) FROM orders
                WHERE created_at >= ? AND status != 'cancelled'),
              (SELECT COUNT(*) FROM orders WHERE created_at >= ? AND status != 'cancelled'),
              (SELECT COUNT(*) FROM user_roles WHERE role = 'customer'),
              (SELECT COUNT(*) FROM products);
            """,
            (since, since),
        )
        revenue, order_count, customers, products = await cur.fetchone()
        await cur.close()

    return {
        "salesData": sales,
        "categorySales": categories,
        "topProducts": top,
        "metrics": {
            "totalRevenue": round(float(revenue), 2),
            "totalOrders": order_count,
            "totalCustomers": customers,
            "totalProducts": products,
        },
    }


async def get_store_settings(caller: Caller) -> Dict:
    async with connect() as conn:
        cur = await conn.execute("SELECT key, value FROM store_settings ORDER BY key;")
        rows = await cur.fetchall()
        await cur.close()
    return {"settings": {r["key"]: json.loads(r["value"]) for r in rows}}


async def update_store_settings(caller: Caller, settings: Dict = None) -> Dict:
    if not isinstance(settings, dict) or not settings:
        raise ValidationError("Missing settings parameter")
    async with connect() as conn:
        await conn.executemany(
            """
            INSERT INTO store_settings(key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value;
            """,
            [(str(k), json.dumps(v)) for k, v in settings.items()],
        )
        await conn.commit()
    current = await get_store_settings(caller)
    return {"message": "Settings updated successfully", "settings": current["settings"]}


ACTIONS = {
    "get_users": get_users,
    "update_user_role": update_user_role,
    "get_orders_with_users": get_orders_with_users,
    "assign_delivery": assign_delivery,
    "get_role_applications": get_role_applications,
    "approve_application": approve_application,
    "reject_application": reject_application,
    "get_products": get_products,
    "delete_product": delete_product,
    "get_analytics": get_analytics,
    "get_store_settings": get_store_settings,
    "update_store_settings": update_store_settings,
}
