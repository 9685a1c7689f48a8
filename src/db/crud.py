# src/db/crud.py
from __future__ import annotations

import json
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from werkzeug.security import check_password_hash, generate_password_hash

from db import models
from db.database import connect
from db.errors import AuthError, ConflictError, NotFound, ValidationError
from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6

_PRODUCT_COLS = (
    "id, seller_id, name, description, category, price, discounted_price, stock, image_url"
)
_ORDER_COLS = (
    "id, user_id, status, delivery_status, total, shipping_address, shipping_city, "
    "shipping_state, shipping_postal_code, created_at"
)
_PROFILE_FIELDS = {
    "first_name",
    "last_name",
    "phone",
    "address",
    "city",
    "state",
    "postal_code",
}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _row_to_product(row) -> models.Product:
    return models.Product(
        id=row["id"],
        seller_id=row["seller_id"],
        name=row["name"],
        description=row["description"],
        category=row["category"],
        price=float(row["price"]),
        discounted_price=(
            float(row["discounted_price"]) if row["discounted_price"] is not None else None
        ),
        stock=int(row["stock"]),
        image_url=row["image_url"],
    )


def _row_to_order(row) -> models.Order:
    return models.Order(
        id=row["id"],
        user_id=row["user_id"],
        status=row["status"],
        delivery_status=row["delivery_status"],
        total=float(row["total"]),
        shipping_address=row["shipping_address"],
        shipping_city=row["shipping_city"],
        shipping_state=row["shipping_state"],
        shipping_postal_code=row["shipping_postal_code"],
        created_at=row["created_at"],
    )


def _row_to_user(row) -> models.User:
    return models.User(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        role_request=row["role_request"],
        created_at=row["created_at"],
        last_sign_in_at=row["last_sign_in_at"],
    )


def _validate_password(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password should be at least {MIN_PASSWORD_LENGTH} characters"
        )


# ---------------------------
# Auth provider
# ---------------------------


async def email_available(email: str) -> bool:
    """True if no account is registered with the given email."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT 1 FROM users WHERE lower(email) = lower(?) LIMIT 1;", (email,)
        )
        row = await cur.fetchone()
        await cur.close()
        return row is None


async def sign_up(
    email: str, password: str, name: str, role_request: Optional[str] = None
) -> models.User:
    """
    Create an account and its (empty) profile row. The role row is written
    separately by the registration flow, the same way the hosted provider
    leaves it to the client.
    """
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("Unable to validate email address: invalid format")
    _validate_password(password)
    if not await email_available(email):
        raise ConflictError("User already registered")

    uid = str(uuid.uuid4())
    now = now_iso()
    first, _, last = (name or "").strip().partition(" ")
    async with connect() as conn:
        await conn.execute(
            """
            INSERT INTO users(id, email, pwd_hash, name, role_request, created_at)
            VALUES (?, ?, ?, ?, ?, ?);
            """,
            (uid, email, generate_password_hash(password), name or "User", role_request, now),
        )
        await conn.execute(
            "INSERT INTO profiles(id, email, first_name, last_name, updated_at) VALUES (?, ?, ?, ?, ?);",
            (uid, email, first, last, now),
        )
        await conn.commit()
    _logger.info(f"Registered user {uid} ({email})")
    return models.User(id=uid, email=email, name=name or "User", role_request=role_request, created_at=now)


async def sign_in(email: str, password: str) -> Tuple[models.User, models.Session]:
    """Return (user, session) for valid credentials, raise AuthError otherwise."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT * FROM users WHERE lower(email) = lower(?);", ((email or "").strip(),)
        )
        row = await cur.fetchone()
        await cur.close()
        if not row or not check_password_hash(row["pwd_hash"], password or ""):
            raise AuthError("Invalid login credentials", 400)
        if row["banned"]:
            raise AuthError("User is banned", 400)

        now = datetime.now(timezone.utc)
        token = secrets.token_urlsafe(32)
        expires = (now + timedelta(seconds=config.SESSION_TTL_SECONDS)).isoformat(
            timespec="seconds"
        )
        await conn.execute(
            "INSERT INTO auth_sessions(token, user_id, created_at, expires_at) VALUES (?, ?, ?, ?);",
            (token, row["id"], now.isoformat(timespec="seconds"), expires),
        )
        await conn.execute(
            "UPDATE users SET last_sign_in_at = ? WHERE id = ?;",
            (now.isoformat(timespec="seconds"), row["id"]),
        )
        await conn.commit()
    return _row_to_user(row), models.Session(token=token, user_id=row["id"], expires_at=expires)


async def get_session(token: str) -> Optional[models.Session]:
    """Return the session for a token if it exists and has not expired."""
    if not token:
        return None
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT token, user_id, expires_at FROM auth_sessions WHERE token = ?;",
            (token,),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row or row["expires_at"] <= now_iso():
        return None
    return models.Session(token=row["token"], user_id=row["user_id"], expires_at=row["expires_at"])


async def get_user(token: str) -> models.User:
    """Resolve a bearer token to its user. Raises AuthError for bad/expired tokens."""
    session = await get_session(token)
    if session is None:
        raise AuthError("Invalid JWT token or user not found")
    async with connect() as conn:
        cur = await conn.execute("SELECT * FROM users WHERE id = ?;", (session.user_id,))
        row = await cur.fetchone()
        await cur.close()
    if not row:
        raise AuthError("Invalid JWT token or user not found")
    return _row_to_user(row)


async def get_user_by_id(user_id: str) -> Optional[models.User]:
    async with connect() as conn:
        cur = await conn.execute("SELECT * FROM users WHERE id = ?;", (user_id,))
        row = await cur.fetchone()
        await cur.close()
    return _row_to_user(row) if row else None


async def sign_out(token: str) -> None:
    async with connect() as conn:
        await conn.execute("DELETE FROM auth_sessions WHERE token = ?;", (token,))
        await conn.commit()


async def delete_account(token: str) -> bool:
    """
    Remove the signed-in user's account. Accounts that placed orders or
    handled deliveries are kept as banned rows so the order history stays
    intact; their sessions, role, profile and wishlist are removed.
    Returns True when the user row itself was deleted.
    """
    user = await get_user(token)
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT (SELECT COUNT(*) FROM orders WHERE user_id = ?)
                 + (SELECT COUNT(*) FROM delivery_assignments WHERE delivery_person_id = ?);
            """,
            (user.id, user.id),
        )
        (history,) = await cur.fetchone()
        await cur.close()
        if history:
            for table, column in (
                ("auth_sessions", "user_id"),
                ("password_resets", "user_id"),
                ("user_roles", "user_id"),
                ("profiles", "id"),
                ("wishlists", "user_id"),
                ("role_applications", "user_id"),
                ("delivery_schedules", "delivery_person_id"),
            ):
                await conn.execute(f"DELETE FROM {table} WHERE {column} = ?;", (user.id,))
            await conn.execute(
                "UPDATE users SET banned = 1, name = 'Deleted user', role_request = NULL WHERE id = ?;",
                (user.id,),
            )
        else:
            await conn.execute("DELETE FROM users WHERE id = ?;", (user.id,))
        await conn.commit()
    _logger.info(f"Account {user.id} {'deactivated' if history else 'deleted'}")
    return not history


async def update_user_password(token: str, new_password: str) -> None:
    _validate_password(new_password)
    user = await get_user(token)
    async with connect() as conn:
        await conn.execute(
            "UPDATE users SET pwd_hash = ? WHERE id = ?;",
            (generate_password_hash(new_password), user.id),
        )
        await conn.commit()


async def request_password_reset(email: str) -> Optional[str]:
    """
    Issue a one-time reset token. Unknown emails yield None (the caller shows
    the same message either way).
    """
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT id FROM users WHERE lower(email) = lower(?);", ((email or "").strip(),)
        )
        row = await cur.fetchone()
        await cur.close()
        if not row:
            return None
        token = secrets.token_urlsafe(16)
        expires = (
            datetime.now(timezone.utc) + timedelta(seconds=config.RESET_TTL_SECONDS)
        ).isoformat(timespec="seconds")
        await conn.execute(
            "INSERT INTO password_resets(token, user_id, expires_at) VALUES (?, ?, ?);",
            (token, row["id"], expires),
        )
        await conn.commit()
    return token


async def reset_password(reset_token: str, new_password: str) -> None:
    _validate_password(new_password)
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT user_id, expires_at, used FROM password_resets WHERE token = ?;",
            (reset_token,),
        )
        row = await cur.fetchone()
        await cur.close()
        if not row or row["used"] or row["expires_at"] <= now_iso():
            raise AuthError("Reset link is invalid or has expired", 400)
        await conn.execute(
            "UPDATE users SET pwd_hash = ? WHERE id = ?;",
            (generate_password_hash(new_password), row["user_id"]),
        )
        await conn.execute(
            "UPDATE password_resets SET used = 1 WHERE token = ?;", (reset_token,)
        )
        # a reset signs the account out everywhere
        await conn.execute("DELETE FROM auth_sessions WHERE user_id = ?;", (row["user_id"],))
        await conn.commit()


# ---------------------------
# Roles & profiles
# ---------------------------


async def get_user_role(user_id: str) -> Optional[str]:
    """Return the user's role, or None when there is no role row."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT role FROM user_roles WHERE user_id = ?;", (user_id,)
        )
        row = await cur.fetchone()
        await cur.close()
        return row[0] if row else None


async def upsert_user_role(user_id: str, role: str) -> None:
    if role not in models.ROLES:
        raise ValidationError(f"Invalid role: {role}")
    async with connect() as conn:
        await conn.execute(
            """
            INSERT INTO user_roles(user_id, role) VALUES (?, ?)
            ON CONFLICT(user_id) DO UPDATE SET role = excluded.role;
            """,
            (user_id, role),
        )
        await conn.commit()


async def get_profile(user_id: str) -> Optional[models.Profile]:
    async with connect() as conn:
        cur = await conn.execute("SELECT * FROM profiles WHERE id = ?;", (user_id,))
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return models.Profile(
        id=row["id"],
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        phone=row["phone"],
        address=row["address"],
        city=row["city"],
        state=row["state"],
        postal_code=row["postal_code"],
        question_responses=json.loads(row["question_responses"] or "{}"),
        is_online=bool(row["is_online"]),
    )


async def update_profile(user_id: str, **fields) -> bool:
    """Update only the provided profile fields. Return True if a row was updated."""
    unknown = set(fields) - _PROFILE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
    if not fields:
        return False
    assignments = ", ".join(f"{k} = ?" for k in fields)
    async with connect() as conn:
        res = await conn.execute(
            f"UPDATE profiles SET {assignments}, updated_at = ? WHERE id = ?;",
            (*fields.values(), now_iso(), user_id),
        )
        await conn.commit()
        return res.rowcount > 0


async def set_question_responses(user_id: str, responses: Dict) -> None:
    """Merge extra registration/settings answers into the profile."""
    profile = await get_profile(user_id)
    merged = dict(profile.question_responses if profile else {})
    merged.update(responses or {})
    async with connect() as conn:
        await conn.execute(
            "UPDATE profiles SET question_responses = ?, updated_at = ? WHERE id = ?;",
            (json.dumps(merged), now_iso(), user_id),
        )
        await conn.commit()


async def create_role_application(user_id: str, role: str, responses: Dict) -> str:
    app_id = new_id("ra")
    async with connect() as conn:
        await conn.execute(
            """
            INSERT INTO role_applications(id, user_id, role, question_responses, created_at)
            VALUES (?, ?, ?, ?, ?);
            """,
            (app_id, user_id, role, json.dumps(responses or {}), now_iso()),
        )
        await conn.commit()
    return app_id


async def repair_user_entries(user_id: str) -> bool:
    """
    Recreate a missing role row (from the role requested at sign-up, else
    customer) and a missing profile row. Return True when both exist afterwards.
    """
    user = await get_user_by_id(user_id)
    if user is None:
        return False
    role = user.role_request if user.role_request in models.ROLES else "customer"
    async with connect() as conn:
        await conn.execute(
            "INSERT INTO user_roles(user_id, role) VALUES (?, ?) ON CONFLICT(user_id) DO NOTHING;",
            (user_id, role),
        )
        await conn.execute(
            """
            INSERT INTO profiles(id, email, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(id) DO NOTHING;
            """,
            (user_id, user.email, now_iso()),
        )
        await conn.commit()
    _logger.info(f"Repaired entries for user {user_id}")
    return await get_user_role(user_id) is not None and await get_profile(user_id) is not None


# ---------------------------
# Catalogue
# ---------------------------


async def list_categories() -> List[models.Category]:
    async with connect() as conn:
        cur = await conn.execute("SELECT id, name, slug FROM categories ORDER BY name;")
        rows = await cur.fetchall()
        await cur.close()
    return [models.Category(id=r["id"], name=r["name"], slug=r["slug"]) for r in rows]


async def list_products(
    category: Optional[str] = None, limit: Optional[int] = None
) -> List[models.Product]:
    """Products newest first, optionally restricted to a category slug."""
    sql = f"SELECT {_PRODUCT_COLS} FROM products"
    params: list = []
    if category:
        sql += " WHERE category = ?"
        params.append(category)
    sql += " ORDER BY created_at DESC, id"
    if limit:
        sql += " LIMIT ?"
        params.append(limit)
    async with connect() as conn:
        cur = await conn.execute(sql + ";", tuple(params))
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(r) for r in rows]


async def search_products(keyword: str) -> List[models.Product]:
    """
    Case-insensitive search over name/description/category.
    A multi-word query matches the whole phrase first, then each word;
    phrase hits come first and nothing is listed twice.
    """
    phrase = (keyword or "").strip().lower()
    if not phrase:
        return []
    terms = [phrase]
    for w in phrase.split():
        if w not in terms:
            terms.append(w)

    results: List[models.Product] = []
    seen: set[str] = set()
    async with connect() as conn:
        for term in terms:
            like = f"%{term}%"
            cur = await conn.execute(
                f"""
                SELECT {_PRODUCT_COLS}
                FROM products
                WHERE lower(name) LIKE ? OR lower(description) LIKE ? OR lower(category) LIKE ?
                ORDER BY name;
                """,
                (like, like, like),
            )
            rows = await cur.fetchall()
            await cur.close()
            for row in rows:
                if row["id"] in seen:
                    continue
                seen.add(row["id"])
                results.append(_row_to_product(row))
    return results


async def get_product(product_id: str) -> Optional[models.Product]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_PRODUCT_COLS} FROM products WHERE id = ?;", (product_id,)
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_product(row) if row else None


async def product_stock(product_id: str) -> Optional[int]:
    async with connect() as conn:
        cur = await conn.execute("SELECT stock FROM products WHERE id = ?;", (product_id,))
        row = await cur.fetchone()
        await cur.close()
        return int(row[0]) if row else None


async def related_products(product: models.Product, limit: int = 4) -> List[models.Product]:
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT {_PRODUCT_COLS}
            FROM products
            WHERE category = ? AND id != ?
            ORDER BY created_at DESC
            LIMIT ?;
            """,
            (product.category, product.id, limit),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(r) for r in rows]


# ---------------------------
# Wishlist & reviews
# ---------------------------


async def list_wishlist(user_id: str) -> List[models.Product]:
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT p.id, p.seller_id, p.name, p.description, p.category, p.price,
                   p.discounted_price, p.stock, p.image_url
            FROM wishlists w JOIN products p ON p.id = w.product_id
            WHERE w.user_id = ?
            ORDER BY w.created_at DESC;
            """,
            (user_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(r) for r in rows]


async def in_wishlist(user_id: str, product_id: str) -> bool:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT 1 FROM wishlists WHERE user_id = ? AND product_id = ?;",
            (user_id, product_id),
        )
        row = await cur.fetchone()
        await cur.close()
        return row is not None


async def add_to_wishlist(user_id: str, product_id: str) -> None:
    async with connect() as conn:
        await conn.execute(
            """
            INSERT INTO wishlists(user_id, product_id, created_at) VALUES (?, ?, ?)
            ON CONFLICT(user_id, product_id) DO NOTHING;
            """,
            (user_id, product_id, now_iso()),
        )
        await conn.commit()


async def remove_from_wishlist(user_id: str, product_id: str) -> None:
    async with connect() as conn:
        await conn.execute(
            "DELETE FROM wishlists WHERE user_id = ? AND product_id = ?;",
            (user_id, product_id),
        )
        await conn.commit()


async def toggle_wishlist(user_id: str, product_id: str) -> bool:
    """Flip membership; return True if the product is now wishlisted."""
    if await in_wishlist(user_id, product_id):
        await remove_from_wishlist(user_id, product_id)
        return False
    await add_to_wishlist(user_id, product_id)
    return True


async def list_reviews(product_id: str) -> List[models.Review]:
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT r.id, r.product_id, r.user_id, r.rating, r.comment, r.created_at, u.name
            FROM reviews r LEFT JOIN users u ON u.id = r.user_id
            WHERE r.product_id = ?
            ORDER BY r.created_at DESC;
            """,
            (product_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.Review(
            id=r[0], product_id=r[1], user_id=r[2], rating=int(r[3]),
            comment=r[4], created_at=r[5], author=r[6],
        )
        for r in rows
    ]


async def add_review(user_id: str, product_id: str, rating: int, comment: str = "") -> str:
    if not 1 <= int(rating) <= 5:
        raise ValidationError("Rating must be between 1 and 5")
    if await get_product(product_id) is None:
        raise NotFound("Product not found")
    review_id = new_id("r")
    async with connect() as conn:
        await conn.execute(
            """
            INSERT INTO reviews(id, product_id, user_id, rating, comment, created_at)
            VALUES (?, ?, ?, ?, ?, ?);
            """,
            (review_id, product_id, user_id, int(rating), comment or "", now_iso()),
        )
        await conn.commit()
    return review_id


async def average_rating(product_id: str) -> Tuple[float, int]:
    """Return (average rating, review count); (0.0, 0) when unreviewed."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT COALESCE(AVG(rating), 0.0), COUNT(*) FROM reviews WHERE product_id = ?;",
            (product_id,),
        )
        row = await cur.fetchone()
        await cur.close()
    return float(row[0]), int(row[1])


# ---------------------------
# Checkout & orders
# ---------------------------


async def checkout(
    user_id: str, lines: Iterable[Tuple[str, int]], shipping: Dict[str, str]
) -> str:
    """
    Create a paid order from (product_id, quantity) lines and return its id.
    Stock is re-validated and decremented in the same transaction; a line that
    no longer fits the stock aborts the whole order.
    """
    lines = [(pid, int(qty)) for pid, qty in lines if int(qty) > 0]
    if not lines:
        raise ValidationError("Cart is empty")
    for key in ("address", "city", "state", "postal_code"):
        if not (shipping.get(key) or "").strip():
            raise ValidationError(f"Shipping {key.replace('_', ' ')} is required")

    order_id = new_id("o")
    now = now_iso()
    async with connect() as conn:
        total = 0.0
        priced: List[Tuple[str, int, float]] = []
        for pid, qty in lines:
            cur = await conn.execute(
                "SELECT name, price, discounted_price FROM products WHERE id = ?;", (pid,)
            )
            row = await cur.fetchone()
            await cur.close()
            if not row:
                raise NotFound(f"Product {pid} no longer exists")
            unit = float(row["discounted_price"] or row["price"])
            res = await conn.execute(
                "UPDATE products SET stock = stock - ? WHERE id = ? AND stock >= ?;",
                (qty, pid, qty),
            )
            if res.rowcount == 0:
                # nothing is committed; closing the connection rolls back
                raise ValidationError(f"Not enough stock for {row['name']}")
            priced.append((pid, qty, unit))
            total += unit * qty

        await conn.execute(
            """
            INSERT INTO orders(id, user_id, status, delivery_status, total, shipping_address,
                               shipping_city, shipping_state, shipping_postal_code,
                               created_at, updated_at)
            VALUES (?, ?, 'paid', 'pending', ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                order_id, user_id, round(total, 2), shipping["address"], shipping["city"],
                shipping["state"], shipping["postal_code"], now, now,
            ),
        )
        for pid, qty, unit in priced:
            await conn.execute(
                "INSERT INTO order_items(id, order_id, product_id, price, quantity) VALUES (?, ?, ?, ?, ?);",
                (new_id("oi"), order_id, pid, unit, qty),
            )
        await conn.commit()
    _logger.info(f"Order {order_id} placed by {user_id} (total {total:.2f})")
    return order_id


async def list_user_orders(user_id: str) -> List[models.Order]:
    """A customer's orders in reverse chronological order."""
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_ORDER_COLS} FROM orders WHERE user_id = ? ORDER BY created_at DESC;",
            (user_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_order(r) for r in rows]


async def get_order_detail(
    order_id: str,
) -> Tuple[Optional[models.Order], List[models.OrderItem]]:
    """
    Return (order, items) for a specific order; (None, []) when missing.
    """
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_ORDER_COLS} FROM orders WHERE id = ?;", (order_id,)
        )
        order_row = await cur.fetchone()
        await cur.close()
        if not order_row:
            return None, []
        cur = await conn.execute(
            """
            SELECT oi.id, oi.order_id, oi.product_id, oi.price, oi.quantity, p.name
            FROM order_items oi LEFT JOIN products p ON p.id = oi.product_id
            WHERE oi.order_id = ?
            ORDER BY oi.id;
            """,
            (order_id,),
        )
        item_rows = await cur.fetchall()
        await cur.close()
    items = [
        models.OrderItem(
            id=r[0], order_id=r[1], product_id=r[2], price=float(r[3]),
            quantity=int(r[4]), product_name=r[5],
        )
        for r in item_rows
    ]
    return _row_to_order(order_row), items
