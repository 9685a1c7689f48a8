"""
Typed wrappers around the serverless functions.

Each client reads the caller's bearer token from a provider callable at call
time, so a client built once at startup keeps working across logins.
"""
from typing import Callable, Dict, List, Optional

from db.functions import invoke
from utils.retry import assignments_retrying


class FunctionClient:
    function = ""

    def __init__(self, token_provider: Callable[[], Optional[str]], retry_wait=None):
        self._token = token_provider
        self._retry_wait = retry_wait

    async def call(self, action: str, **params) -> Dict:
        return await invoke(self.function, {"action": action, **params}, self._token())


class DeliveryApi(FunctionClient):
    function = "delivery_functions"

    async def list_available_orders(self) -> List[Dict]:
        return (await self.call("get_available_orders"))["orders"]

    async def claim_order(self, order_id: str) -> Dict:
        return (await self.call("accept_delivery_order", order_id=order_id))["assignment"]

    async def list_assignments(self) -> List[Dict]:
        """The only delivery query retried on transient failures."""
        async for attempt in assignments_retrying(self._retry_wait):
            with attempt:
                result = await self.call("get_delivery_assignments")
        return result["assignments"]

    async def update_status(
        self, assignment_id: str, status: str, notes: Optional[str] = None
    ) -> Dict:
        result = await self.call(
            "update_delivery_status", assignment_id=assignment_id, status=status, notes=notes
        )
        return result["assignment"]

    async def get_stats(self) -> Dict:
        return (await self.call("get_delivery_stats"))["stats"]

    async def get_online_status(self) -> bool:
        return (await self.call("get_online_status"))["online"]

    async def set_online_status(self, online: bool) -> bool:
        return (await self.call("set_online_status", online=online))["online"]

    async def get_schedule(self) -> List[Dict]:
        return (await self.call("get_schedule"))["schedule"]

    async def save_schedule(self, schedule: List[Dict]) -> None:
        await self.call("save_schedule", schedule=schedule)

    async def get_slots(self, start: Optional[str] = None, days: int = 14) -> List[Dict]:
        return (await self.call("get_delivery_slots", start=start, days=days))["slots"]


class SellerApi(FunctionClient):
    function = "seller_functions"

    async def total_sales(self) -> float:
        return (await self.call("get_seller_sales"))["total"]

    async def pending_order_count(self) -> int:
        return (await self.call("get_seller_pending_orders"))["count"]

    async def list_orders(self) -> List[Dict]:
        return (await self.call("get_seller_orders"))["orders"]

    async def update_order_status(self, order_id: str, status: str) -> Dict:
        return await self.call("update_order_status", order_id=order_id, status=status)

    async def list_products(self) -> List[Dict]:
        return (await self.call("get_seller_products"))["products"]

    async def add_product(self, product: Dict) -> Dict:
        return (await self.call("add_product", product=product))["product"]

    async def update_product(self, product: Dict) -> Dict:
        return (await self.call("update_product", product=product))["product"]

    async def delete_product(self, product_id: str) -> None:
        await self.call("delete_product", product_id=product_id)

    async def analytics(self, time_range: str = "week") -> Dict:
        return await self.call("get_seller_analytics", time_range=time_range)


class AdminApi(FunctionClient):
    function = "admin_functions"

    async def list_users(self) -> List[Dict]:
        return (await self.call("get_users"))["users"]

    async def update_user_role(self, user_id: str, role: str) -> None:
        await self.call("update_user_role", user_id=user_id, role=role)

    async def list_orders(self) -> List[Dict]:
        return (await self.call("get_orders_with_users"))["orders"]

    async def assign_delivery(
        self, order_id: str, delivery_person_id: Optional[str] = None
    ) -> Dict:
        result = await self.call(
            "assign_delivery", order_id=order_id, delivery_person_id=delivery_person_id
        )
        return result["assignment"]

    async def list_applications(self, status: Optional[str] = None) -> List[Dict]:
        return (await self.call("get_role_applications", status=status))["applications"]

    async def approve_application(self, application_id: str) -> Dict:
        return await self.call("approve_application", application_id=application_id)

    async def reject_application(self, application_id: str) -> Dict:
        return await self.call("reject_application", application_id=application_id)

    async def list_products(self) -> List[Dict]:
        return (await self.call("get_products"))["products"]

    async def delete_product(self, product_id: str) -> None:
        await self.call("delete_product", product_id=product_id)

    async def analytics(self, time_range: str = "week") -> Dict:
        return await self.call("get_analytics", time_range=time_range)

    async def get_settings(self) -> Dict:
        return (await self.call("get_store_settings"))["settings"]

    async def update_settings(self, settings: Dict) -> Dict:
        return (await self.call("update_store_settings", settings=settings))["settings"]
