# delivery_functions: the claim workflow and the delivery person's dashboard data
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from db import crud
from db.database import connect
from db.errors import ConflictError, NotFound, ValidationError
from db.functions import Caller
from db.models import ASSIGNMENT_STATUSES
from utils.logger import get_logger

_logger = get_logger(__name__)

ALLOWED_ROLES = ("delivery", "admin")
DENIED_MESSAGE = "Access denied: User is not a delivery person"

# forward only; delivered and failed are terminal
ALLOWED_TRANSITIONS = {
    "assigned": ("in_transit", "failed"),
    "in_transit": ("delivered", "failed"),
    "delivered": (),
    "failed": (),
}

DEFAULT_WEEKLY_SCHEDULE = [
    {"id": "1-1", "day": 1, "start_time": "09:00", "end_time": "17:00", "available": True},
    {"id": "1-2", "day": 1, "start_time": "18:00", "end_time": "22:00", "available": False},
    {"id": "2-1", "day": 2, "start_time": "09:00", "end_time": "17:00", "available": True},
    {"id": "2-2", "day": 2, "start_time": "18:00", "end_time": "22:00", "available": False},
    {"id": "3-1", "day": 3, "start_time": "09:00", "end_time": "17:00", "available": True},
    {"id": "3-2", "day": 3, "start_time": "18:00", "end_time": "22:00", "available": False},
    {"id": "4-1", "day": 4, "start_time": "09:00", "end_time": "17:00", "available": True},
    {"id": "4-2", "day": 4, "start_time": "18:00", "end_time": "22:00", "available": False},
    {"id": "5-1", "day": 5, "start_time": "09:00", "end_time": "17:00", "available": True},
    {"id": "5-2", "day": 5, "start_time": "18:00", "end_time": "22:00", "available": True},
    {"id": "6-1", "day": 6, "start_time": "10:00", "end_time": "18:00", "available": True},
    {"id": "0-1", "day": 0, "start_time": "10:00", "end_time": "16:00", "available": False},
]


def check_transition(current: str, new: str) -> None:
    """Raise ValidationError unless `current -> new` is allowed."""
    if new not in ASSIGNMENT_STATUSES:
        raise ValidationError(f"Invalid status value: {new}")
    if new == current:
        return
    if new not in ALLOWED_TRANSITIONS.get(current, ()):
        raise ValidationError(f"Cannot change delivery status from {current} to {new}")


def _assignment_dict(row) -> Dict:
    return {
        "id": row["id"],
        "order_id": row["order_id"],
        "delivery_person_id": row["delivery_person_id"],
        "status": row["status"],
        "assigned_at": row["assigned_at"],
        "delivered_at": row["delivered_at"],
        "notes": row["notes"],
    }


async def claim(order_id: str, delivery_person_id: str) -> Dict:
    """
    Atomically assign an available order to a delivery person.

    The insert only fires for a paid order still pending delivery, and the
    UNIQUE(order_id) constraint turns a lost race into a no-op, so at most
    one of any number of concurrent claims succeeds.
    """
    if not order_id:
        raise ValidationError("Order ID is required")
    assignment_id = crud.new_id("da")
    now = crud.now_iso()
    async with connect() as conn:
        await conn.execute("BEGIN IMMEDIATE;")
        res = await conn.execute(
            """
            INSERT INTO delivery_assignments(id, order_id, delivery_person_id, status, assigned_at)
            SELECT ?, o.id, ?, 'assigned', ?
            FROM orders o
            WHERE o.id = ? AND o.status = 'paid' AND o.delivery_status = 'pending'
            ON CONFLICT(order_id) DO NOTHING;
            """,
            (assignment_id, delivery_person_id, now, order_id),
        )
        if res.rowcount == 0:
            cur = await conn.execute(
                "SELECT 1 FROM delivery_assignments WHERE order_id = ?;", (order_id,)
            )
            taken = await cur.fetchone()
            await cur.close()
            await conn.rollback()
            if taken:
                raise ConflictError("Order is already assigned to a delivery person")
            raise NotFound("Order not found or not available for delivery")

        await conn.execute(
            "UPDATE orders SET delivery_status = 'assigned', updated_at = ? WHERE id = ?;",
            (now, order_id),
        )
        await conn.commit()
    _logger.info(f"Order {order_id} claimed by {delivery_person_id}")
    return {
        "id": assignment_id,
        "order_id": order_id,
        "delivery_person_id": delivery_person_id,
        "status": "assigned",
        "assigned_at": now,
        "delivered_at": None,
        "notes": None,
    }


# ---------------------------
# Actions
# ---------------------------


async def get_available_orders(caller: Caller) -> Dict:
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT o.id, o.created_at, o.total, o.status, o.shipping_address, o.shipping_city,
                   o.shipping_state, o.shipping_postal_code,
                   p.first_name, p.last_name, p.phone
            FROM orders o
            LEFT JOIN profiles p ON p.id = o.user_id
            WHERE o.status = 'paid'
              AND o.delivery_status = 'pending'
              AND NOT EXISTS (SELECT 1 FROM delivery_assignments a WHERE a.order_id = o.id)
            ORDER BY o.created_at DESC;
            """
        )
        rows = await cur.fetchall()
        await cur.close()
    orders = [
        {
            "id": r["id"],
            "created_at": r["created_at"],
            "total": r["total"],
            "status": r["status"],
            "shipping_address": r["shipping_address"],
            "shipping_city": r["shipping_city"],
            "shipping_state": r["shipping_state"],
            "shipping_postal_code": r["shipping_postal_code"],
            "customer_name": " ".join(n for n in (r["first_name"], r["last_name"]) if n),
            "customer_phone": r["phone"],
        }
        for r in rows
    ]
    _logger.debug(f"Found {len(orders)} available orders")
    return {"orders": orders}


async def accept_delivery_order(caller: Caller, order_id: str = None) -> Dict:
    assignment = await claim(order_id, caller.user_id)
    return {"success": True, "assignment": assignment}


async def get_delivery_assignments(caller: Caller) -> Dict:
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT a.id, a.order_id, a.delivery_person_id, a.status, a.assigned_at,
                   a.delivered_at, a.notes,
                   o.total, o.status AS order_status, o.shipping_address, o.shipping_city,
                   o.shipping_state, o.shipping_postal_code, o.created_at AS order_created_at,
                   p.first_name, p.last_name, p.phone
            FROM delivery_assignments a
            JOIN orders o ON o.id = a.order_id
            LEFT JOIN profiles p ON p.id = o.user_id
            WHERE a.delivery_person_id = ?
            ORDER BY a.assigned_at DESC;
            """,
            (caller.user_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    assignments = []
    for r in rows:
        item = _assignment_dict(r)
        item["order"] = {
            "id": r["order_id"],
            "total": r["total"],
            "status": r["order_status"],
            "shipping_address": r["shipping_address"],
            "shipping_city": r["shipping_city"],
            "shipping_state": r["shipping_state"],
            "shipping_postal_code": r["shipping_postal_code"],
            "created_at": r["order_created_at"],
            "customer_name": " ".join(n for n in (r["first_name"], r["last_name"]) if n),
            "customer_phone": r["phone"],
        }
        assignments.append(item)
    return {"assignments": assignments}


async def update_delivery_status(
    caller: Caller, assignment_id: str = None, status: str = None, notes: Optional[str] = None
) -> Dict:
    if not assignment_id or not status:
        raise ValidationError("Assignment ID and status are required")
    now = crud.now_iso()
    async with connect() as conn:
        await conn.execute("BEGIN IMMEDIATE;")
        cur = await conn.execute(
            "SELECT * FROM delivery_assignments WHERE id = ? AND delivery_person_id = ?;",
            (assignment_id, caller.user_id),
        )
        row = await cur.fetchone()
        await cur.close()
        if not row:
            await conn.rollback()
            raise NotFound("Assignment not found or does not belong to you")
        try:
            check_transition(row["status"], status)
        except ValidationError:
            await conn.rollback()
            raise

        delivered_at = row["delivered_at"]
        if status == "delivered" and row["status"] != "delivered":
            delivered_at = now
        await conn.execute(
            """
            UPDATE delivery_assignments
            SET status = ?, delivered_at = ?, notes = COALESCE(?, notes)
            WHERE id = ?;
            """,
            (status, delivered_at, notes, assignment_id),
        )
        if status == "delivered":
            await conn.execute(
                """
                UPDATE orders SET delivery_status = 'delivered', status = 'delivered', updated_at = ?
                WHERE id = ?;
                """,
                (now, row["order_id"]),
            )
        await conn.commit()

        cur = await conn.execute("SELECT * FROM delivery_assignments WHERE id = ?;", (assignment_id,))
        updated = await cur.fetchone()
        await cur.close()
    _logger.info(f"Assignment {assignment_id}: {row['status']} -> {status}")
    return {"success": True, "assignment": _assignment_dict(updated)}


async def get_delivery_stats(caller: Caller) -> Dict:
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT status, COUNT(*) FROM delivery_assignments
            WHERE delivery_person_id = ?
            GROUP BY status;
            """,
            (caller.user_id,),
        )
        counts = {status: 0 for status in ASSIGNMENT_STATUSES}
        for status, n in await cur.fetchall():
            counts[status] = n
        await cur.close()

        cur = await conn.execute(
            """
            SELECT id, order_id, delivered_at, status FROM delivery_assignments
            WHERE delivery_person_id = ? AND status = 'delivered'
            ORDER BY delivered_at DESC
            LIMIT 5;
            """,
            (caller.user_id,),
        )
        recent = [dict(r) for r in await cur.fetchall()]
        await cur.close()
    return {
        "stats": {
            "by_status": counts,
            "total_delivered": counts["delivered"],
            "in_progress": counts["assigned"] + counts["in_transit"],
            "recent_deliveries": recent,
        }
    }


async def get_online_status(caller: Caller) -> Dict:
    profile = await crud.get_profile(caller.user_id)
    return {"online": bool(profile and profile.is_online)}


async def set_online_status(caller: Caller, online=None) -> Dict:
    if not isinstance(online, bool):
        raise ValidationError("online must be true or false")
    async with connect() as conn:
        res = await conn.execute(
            "UPDATE profiles SET is_online = ?, updated_at = ? WHERE id = ?;",
            (int(online), crud.now_iso(), caller.user_id),
        )
        await conn.commit()
        if res.rowcount == 0:
            raise NotFound("Profile not found")
    return {"online": online}


async def _load_schedule(user_id: str) -> List[Dict]:
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT id, day_of_week, start_time, end_time, available
            FROM delivery_schedules
            WHERE delivery_person_id = ?
            ORDER BY day_of_week, start_time;
            """,
            (user_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    if not rows:
        return [dict(slot) for slot in DEFAULT_WEEKLY_SCHEDULE]
    return [
        {
            "id": r["id"],
            "day": r["day_of_week"],
            "start_time": r["start_time"],
            "end_time": r["end_time"],
            "available": bool(r["available"]),
        }
        for r in rows
    ]


async def get_schedule(caller: Caller) -> Dict:
    return {"schedule": await _load_schedule(caller.user_id)}


def _parse_hhmm(value) -> int:
    try:
        hours, minutes = str(value).split(":")
        total = int(hours) * 60 + int(minutes)
    except ValueError:
        raise ValidationError(f"Invalid time: {value}") from None
    if not 0 <= total < 24 * 60:
        raise ValidationError(f"Invalid time: {value}")
    return total


async def save_schedule(caller: Caller, schedule=None) -> Dict:
    if not isinstance(schedule, list):
        raise ValidationError("Valid schedule array is required")
    rows = []
    for slot in schedule:
        day = slot.get("day") if isinstance(slot, dict) else None
        if not isinstance(day, int) or not 0 <= day <= 6:
            raise ValidationError("Each slot needs a day between 0 and 6")
        if _parse_hhmm(slot.get("start_time")) >= _parse_hhmm(slot.get("end_time")):
            raise ValidationError("Slot start time must be before its end time")
        rows.append(
            (
                crud.new_id("ds"),
                caller.user_id,
                day,
                slot["start_time"],
                slot["end_time"],
                int(bool(slot.get("available", True))),
            )
        )

    async with connect() as conn:
        await conn.execute(
            "DELETE FROM delivery_schedules WHERE delivery_person_id = ?;", (caller.user_id,)
        )
        await conn.executemany(
            """
            INSERT INTO delivery_schedules(id, delivery_person_id, day_of_week, start_time, end_time, available)
            VALUES (?, ?, ?, ?, ?, ?);
            """,
            rows,
        )
        await conn.commit()
    return {"success": True}


def _middle_time(start: str, end: str) -> str:
    middle = (_parse_hhmm(start) + _parse_hhmm(end)) // 2
    return f"{middle // 60:02d}:{middle % 60:02d}"


def build_slots(
    schedule: List[Dict], assignments: List[Dict], start: date, days: int = 14
) -> List[Dict]:
    """
    Expand a weekly schedule into dated slots, each available window split
    into a first and second half. A slot holding an assignment's assigned_at
    time becomes "booked", or "completed" once that assignment is delivered.
    """
    slots = []
    for offset in range(days):
        current = start + timedelta(days=offset)
        weekday = (current.weekday() + 1) % 7  # 0 = Sunday
        for window in schedule:
            if window["day"] != weekday or not window["available"]:
                continue
            middle = _middle_time(window["start_time"], window["end_time"])
            for half, (lo, hi) in (
                ("morning", (window["start_time"], middle)),
                ("afternoon", (middle, window["end_time"])),
            ):
                slots.append(
                    {
                        "id": f"slot-{offset}-{window['id']}-{half}",
                        "date": current.isoformat(),
                        "time": f"{lo} - {hi}",
                        "order_id": None,
                        "status": "available",
                    }
                )

    for assignment in assignments:
        if not assignment.get("assigned_at"):
            continue
        at = datetime.fromisoformat(assignment["assigned_at"])
        day, hhmm = at.date().isoformat(), at.strftime("%H:%M")
        for slot in slots:
            lo, hi = slot["time"].split(" - ")
            if slot["date"] == day and lo <= hhmm <= hi and slot["order_id"] is None:
                slot["order_id"] = assignment["order_id"]
                slot["status"] = "completed" if assignment["status"] == "delivered" else "booked"
                break
    return slots


async def get_delivery_slots(caller: Caller, start: Optional[str] = None, days: int = 14) -> Dict:
    try:
        start_date = date.fromisoformat(start) if start else date.today()
    except ValueError:
        raise ValidationError(f"Invalid start date: {start}") from None
    if not isinstance(days, int) or not 1 <= days <= 31:
        raise ValidationError("days must be between 1 and 31")
    end_date = start_date + timedelta(days=days)

    schedule = await _load_schedule(caller.user_id)
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT order_id, status, assigned_at FROM delivery_assignments
            WHERE delivery_person_id = ? AND assigned_at >= ? AND assigned_at < ?;
            """,
            (caller.user_id, start_date.isoformat(), end_date.isoformat()),
        )
        assignments = [dict(r) for r in await cur.fetchall()]
        await cur.close()
    return {"slots": build_slots(schedule, assignments, start_date, days)}


ACTIONS = {
    "get_available_orders": get_available_orders,
    "accept_delivery_order": accept_delivery_order,
    "get_delivery_assignments": get_delivery_assignments,
    "update_delivery_status": update_delivery_status,
    "get_delivery_stats": get_delivery_stats,
    "get_online_status": get_online_status,
    "set_online_status": set_online_status,
    "get_schedule": get_schedule,
    "save_schedule": save_schedule,
    "get_delivery_slots": get_delivery_slots,
}
