from __future__ import annotations

import json
import os
from enum import Enum
from typing import Callable, Dict, List, Optional

import db.crud as crud
from db.errors import BackendError
from db.models import Session, User
from utils import config
from utils.logger import get_logger
from utils.retry import role_fetch_retrying

_logger = get_logger(__name__)

SELF_SERVICE_ROLES = ("customer", "seller", "delivery")


class AuthPhase(Enum):
    INIT = "init"
    AUTH_PENDING = "auth_pending"
    ROLE_PROBING = "role_probing"
    READY = "ready"
    ERROR = "error"


class AuthState:
    """
    Identity of the person using the app, shared by every screen.

    Session resolution and role resolution are two phases of one machine
    (INIT -> AUTH_PENDING -> ROLE_PROBING -> READY | ERROR), so "loading" and
    "role loading" can never be true at the same time. READY covers guests
    as well as signed-in users. Listeners are called on every phase change.

    Operations report success as a bool and leave the reason in `error`,
    the way forms expect it; nothing here raises into the UI.
    """

    def __init__(self, session_path: Optional[str] = None, retry_wait=None):
        self.session_path = session_path or config.SESSION_PATH
        self.phase = AuthPhase.INIT
        self.user: Optional[User] = None
        self.session: Optional[Session] = None
        self.user_role: Optional[str] = None
        self.error: Optional[str] = None
        self.role_error: Optional[str] = None
        self.last_reset_token: Optional[str] = None
        self._retry_wait = retry_wait
        self._listeners: List[Callable[[AuthState], None]] = []

    # ---- read-only view ----

    @property
    def loading(self) -> bool:
        return self.phase in (AuthPhase.INIT, AuthPhase.AUTH_PENDING)

    @property
    def role_loading(self) -> bool:
        return self.phase is AuthPhase.ROLE_PROBING

    @property
    def failed(self) -> bool:
        return self.phase is AuthPhase.ERROR

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.session is not None

    @property
    def token(self) -> Optional[str]:
        return self.session.token if self.session else None

    def subscribe(self, listener: Callable[[AuthState], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _set_phase(self, phase: AuthPhase) -> None:
        _logger.debug(f"auth phase {self.phase.value} -> {phase.value}")
        self.phase = phase
        for listener in list(self._listeners):
            listener(self)

    # ---- session persistence ----

    def _load_token(self) -> Optional[str]:
        if not os.path.exists(self.session_path):
            return None
        try:
            with open(self.session_path, "r", encoding="utf-8") as f:
                return json.load(f).get("token")
        except (OSError, ValueError) as e:
            _logger.warning(f"Ignoring unreadable session file: {e}")
            return None

    def _save_token(self) -> None:
        folder = os.path.dirname(self.session_path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        with open(self.session_path, "w", encoding="utf-8") as f:
            json.dump({"token": self.token}, f)

    def _forget_token(self) -> None:
        if os.path.exists(self.session_path):
            os.remove(self.session_path)

    def _clear(self) -> None:
        self.user = None
        self.session = None
        self.user_role = None

    # ---- role resolution ----

    async def fetch_user_role(self, user_id: str) -> Optional[str]:
        """
        Role of `user_id`, or None when the user has no role row.
        Transient store failures are retried; once they are exhausted the
        failure is left in `role_error` and None is returned.
        """
        self.role_error = None
        try:
            async for attempt in role_fetch_retrying(self._retry_wait):
                with attempt:
                    role = await crud.get_user_role(user_id)
        except BackendError as e:
            _logger.error(f"Role lookup for {user_id} failed: {e.message}")
            self.role_error = e.message
            role = None
        self.user_role = role
        return role

    async def _resolve_role(self) -> None:
        self._set_phase(AuthPhase.ROLE_PROBING)
        role = await self.fetch_user_role(self.user.id)
        if self.role_error:
            self.error = self.role_error
            self._set_phase(AuthPhase.ERROR)
            return
        if role is None:
            _logger.warning(f"No role row for user {self.user.id}")
        self._set_phase(AuthPhase.READY)

    # ---- operations ----

    async def restore(self) -> None:
        """Resolve a persisted session (if any), then its role."""
        self._set_phase(AuthPhase.AUTH_PENDING)
        token = self._load_token()
        try:
            session = await crud.get_session(token) if token else None
            user = await crud.get_user(token) if session else None
        except BackendError as e:
            _logger.warning(f"Could not restore session: {e.message}")
            session, user = None, None
        if session is None or user is None:
            self._clear()
            if token:
                self._forget_token()
            self._set_phase(AuthPhase.READY)
            return
        self.session, self.user = session, user
        await self._resolve_role()

    async def login(self, email: str, password: str) -> bool:
        self.error = None
        self._set_phase(AuthPhase.AUTH_PENDING)
        try:
            user, session = await crud.sign_in(email, password)
        except BackendError as e:
            self.error = e.message
            self._clear()
            self._set_phase(AuthPhase.READY)
            return False
        self.user, self.session = user, session
        self._save_token()
        _logger.info(f"Signed in {user.email}")
        await self._resolve_role()
        return True

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        role: str = "customer",
        extra_responses: Optional[Dict] = None,
    ) -> bool:
        """
        Create the account, its role row and, for seller or delivery
        requests, a pending application. Signs the new user in.
        """
        self.error = None
        if role not in SELF_SERVICE_ROLES:
            self.error = f"Cannot register as {role}"
            return False
        try:
            user = await crud.sign_up(email, password, name, role_request=role)
            await crud.upsert_user_role(user.id, role)
            if extra_responses:
                await crud.set_question_responses(user.id, extra_responses)
            if role != "customer":
                await crud.create_role_application(user.id, role, extra_responses or {})
        except BackendError as e:
            self.error = e.message
            return False
        return await self.login(email, password)

    async def logout(self) -> None:
        token = self.token
        self._clear()
        self._forget_token()
        if token:
            try:
                await crud.sign_out(token)
            except BackendError as e:
                # the local session is gone either way
                _logger.warning(f"Remote sign-out failed: {e.message}")
        self.error = None
        self._set_phase(AuthPhase.READY)

    async def send_password_reset(self, email: str) -> bool:
        """
        Issue a reset token. Unknown addresses still report success so the
        form cannot be used to probe for accounts.
        """
        self.error = None
        try:
            self.last_reset_token = await crud.request_password_reset(email)
        except BackendError as e:
            self.error = e.message
            return False
        if self.last_reset_token:
            _logger.info(f"Password reset code for {email}: {self.last_reset_token}")
        return True

    async def reset_password(self, reset_token: str, new_password: str) -> bool:
        self.error = None
        try:
            await crud.reset_password(reset_token, new_password)
        except BackendError as e:
            self.error = e.message
            return False
        return True

    async def update_password(self, new_password: str) -> bool:
        self.error = None
        if not self.is_authenticated:
            self.error = "Not signed in"
            return False
        try:
            await crud.update_user_password(self.token, new_password)
        except BackendError as e:
            self.error = e.message
            return False
        return True

    async def delete_account(self) -> bool:
        """Delete (or deactivate) the signed-in account and end the session."""
        self.error = None
        if not self.is_authenticated:
            self.error = "Not signed in"
            return False
        try:
            await crud.delete_account(self.token)
        except BackendError as e:
            self.error = e.message
            return False
        self._clear()
        self._forget_token()
        self._set_phase(AuthPhase.READY)
        return True

    async def retry_role(self) -> None:
        if self.user is not None:
            await self._resolve_role()

    async def repair_account(self) -> bool:
        """Recreate missing role/profile rows, then resolve the role again."""
        self.error = None
        if self.user is None:
            return False
        try:
            ok = await crud.repair_user_entries(self.user.id)
        except BackendError as e:
            self.error = e.message
            return False
        await self._resolve_role()
        return ok and self.user_role is not None
