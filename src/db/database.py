# manages connection to the store, provides helper methods internal to db package
import asyncio
import os.path
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from sqlite3 import Row

import aiosqlite
from werkzeug.security import generate_password_hash

from db.errors import StoreError
from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)

_HERE = os.path.dirname(os.path.abspath(__file__))

DB_PATH = config.STORE_URL
DB_SCHEMA_SCRIPT = os.path.join(_HERE, "schema.sql")
DB_SEED_SCRIPT = os.path.join(_HERE, "seed.sql")

# (id, email, name, role or None); every demo account uses DEMO_PASSWORD
DEMO_PASSWORD = "password123"
SEED_ACCOUNTS = [
    ("u-admin", "admin@market.test", "Ada Admin", "admin"),
    ("u-seller", "seller@market.test", "Sam Seller", "seller"),
    ("u-delivery", "rider@market.test", "Dee Rider", "delivery"),
    ("u-delivery2", "rider2@market.test", "Rae Rider", "delivery"),
    ("u-customer", "alice@market.test", "Alice Customer", "customer"),
    ("u-norole", "bob@market.test", "Bob Nolan", None),
]

_initialized = False
_init_lock = asyncio.Lock()


async def _run_script(conn: aiosqlite.Connection, script: str) -> None:
    if not os.path.exists(script) or os.path.getsize(script) == 0:
        return
    _logger.info(f"Initializing store with script {os.path.basename(script)}...")
    with open(script, "r") as f:
        await conn.executescript(f.read())


async def _seed_accounts(conn: aiosqlite.Connection) -> None:
    now = datetime.now(timezone.utc).isoformat(timespec="seconds")
    pwd_hash = generate_password_hash(DEMO_PASSWORD)
    for uid, email, name, role in SEED_ACCOUNTS:
        first, _, last = name.partition(" ")
        await conn.execute(
            """
            INSERT INTO users(id, email, pwd_hash, name, role_request, email_confirmed_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (uid, email, pwd_hash, name, role, now, now),
        )
        await conn.execute(
            "INSERT INTO profiles(id, email, first_name, last_name, updated_at) VALUES (?, ?, ?, ?, ?);",
            (uid, email, first, last, now),
        )
        if role:
            await conn.execute(
                "INSERT INTO user_roles(user_id, role) VALUES (?, ?);", (uid, role)
            )


async def _init_db(conn: aiosqlite.Connection) -> None:
    await _run_script(conn, DB_SCHEMA_SCRIPT)
    await _seed_accounts(conn)
    await _run_script(conn, DB_SEED_SCRIPT)
    await conn.commit()


async def _table_exists(conn: aiosqlite.Connection, table_name: str) -> bool:
    cur = await conn.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
          AND name = ?;
        """,
        (table_name,),
    )
    row = await cur.fetchone()
    await cur.close()
    return row is not None


@asynccontextmanager
async def connect() -> aiosqlite.Connection:
    """Async context manager yielding an aiosqlite connection with FK enabled.

    Ensures the store is initialized (tables and seed data) on first use.
    Driver errors leave as StoreError; anything uncommitted is rolled back
    when the connection closes.
    """
    global _initialized
    folder = os.path.dirname(DB_PATH)
    if folder:
        os.makedirs(folder, exist_ok=True)
    try:
        conn = await aiosqlite.connect(DB_PATH)
    except aiosqlite.Error as e:
        raise StoreError(f"Store unavailable: {e}") from e
    conn.row_factory = Row

    try:
        await conn.execute("PRAGMA foreign_keys = ON;")
        if not _initialized:
            async with _init_lock:
                if not _initialized:
                    exists = await _table_exists(conn, "users")
                    if not exists:
                        _logger.info("Initializing store...")
                        await _init_db(conn)
                    _initialized = True
        yield conn
    except aiosqlite.Error as e:
        _logger.error(f"Store error: {e}")
        raise StoreError(str(e)) from e
    finally:
        await conn.close()
