# in-process stand-in for the hosted serverless functions
#
# Every function takes `{"action": ..., **params}` plus the request headers and
# answers with (status, payload). The payload is the action's result dict on
# success and `{"error": message}` otherwise.
import inspect
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from db import crud
from db.errors import AccessDenied, AuthError, BackendError, FunctionError, ValidationError
from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)


@dataclass(frozen=True)
class Caller:
    """The authenticated user a function call runs on behalf of."""

    user_id: str
    email: str
    role: Optional[str]


def _registry() -> Dict[str, object]:
    # imported lazily: the function modules import Caller from here
    from db.functions import admin, delivery, seller

    return {
        "delivery_functions": delivery,
        "seller_functions": seller,
        "admin_functions": admin,
    }


async def _authenticate(headers: Dict[str, str]) -> Caller:
    if headers.get("apikey") != config.API_KEY:
        raise AuthError("Invalid API key")
    auth = headers.get("Authorization") or ""
    if not auth:
        raise AuthError("No authorization header provided")
    token = auth.removeprefix("Bearer ").strip()
    user = await crud.get_user(token)
    role = await crud.get_user_role(user.id)
    return Caller(user_id=user.id, email=user.email, role=role)


async def handle_request(name: str, body: Dict, headers: Dict[str, str]) -> Tuple[int, Dict]:
    """
    Dispatch one function call. Never raises: every failure becomes an
    error payload with the matching HTTP status.
    """
    module = _registry().get(name)
    if module is None:
        return 404, {"error": f"Function not found: {name}"}

    params = dict(body or {})
    action = params.pop("action", None)
    try:
        caller = await _authenticate(headers)
        if caller.role not in module.ALLOWED_ROLES:
            raise AccessDenied(module.DENIED_MESSAGE)
        handler = module.ACTIONS.get(action)
        if handler is None:
            raise ValidationError(f"Unknown action: {action}")
        try:
            inspect.signature(handler).bind(caller, **params)
        except TypeError as e:
            raise ValidationError(f"Invalid parameters for {action}: {e}") from e
        _logger.info(f"{name}.{action} by {caller.user_id} ({caller.role})")
        result = await handler(caller, **params)
        return 200, result
    except BackendError as e:
        _logger.warning(f"{name}.{action} failed ({e.status}): {e.message}")
        return e.status, e.to_payload()
    except Exception as e:
        _logger.exception(f"{name}.{action} crashed")
        return 500, {"error": str(e) or "Unknown error occurred"}


async def invoke(
    name: str, body: Dict, token: Optional[str], apikey: Optional[str] = None
) -> Dict:
    """
    Client side of a function call. Returns the result payload, raises
    FunctionError carrying the status and error message otherwise.
    """
    headers = {"apikey": apikey if apikey is not None else config.API_KEY}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    status, payload = await handle_request(name, body, headers)
    if status >= 400:
        raise FunctionError(name, status, payload.get("error") or "Unknown error occurred")
    return payload
