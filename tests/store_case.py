import os
import sys
import tempfile
import unittest

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import crud  # noqa: E402
from db import database as db_database  # noqa: E402
from db.functions import Caller  # noqa: E402


class StoreTestCase(unittest.IsolatedAsyncioTestCase):
    """Every test gets a fresh store file seeded with the demo data."""

    def setUp(self):
        # Point the store to a temporary file and force re-initialization
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "test.sqlite")
        self.cart_path = os.path.join(self.temp_dir.name, "cart.json")
        self.session_path = os.path.join(self.temp_dir.name, "session.json")
        db_database.DB_PATH = self.db_path
        db_database._initialized = False

    async def asyncSetUp(self):
        # Touch initialization by opening a connection
        async with db_database.connect() as conn:
            cur = await conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table';"
            )
            await cur.fetchall()
            await cur.close()

    def tearDown(self):
        self.temp_dir.cleanup()

    async def token_for(self, email: str) -> str:
        _, session = await crud.sign_in(email, db_database.DEMO_PASSWORD)
        return session.token

    async def caller_for(self, user_id: str) -> Caller:
        user = await crud.get_user_by_id(user_id)
        return Caller(user_id=user.id, email=user.email, role=await crud.get_user_role(user.id))

    async def fetch_one(self, sql: str, params=()):
        async with db_database.connect() as conn:
            cur = await conn.execute(sql, params)
            row = await cur.fetchone()
            await cur.close()
        return row
