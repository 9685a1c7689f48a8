import json
import os
from dataclasses import asdict, replace
from typing import Awaitable, Callable, List, Optional, Tuple

import db.crud as crud
from db.errors import NotFound, ValidationError
from db.models import CartItem, Product
from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)


class Cart:
    """
    Client-local cart persisted to a JSON file.

    Stock is checked against a fresh product lookup whenever a line is added
    or changed; the cart is not a reservation.
    """

    def __init__(
        self,
        path: Optional[str] = None,
        product_lookup: Callable[[str], Awaitable[Optional[Product]]] = crud.get_product,
    ):
        self.path = path or config.CART_PATH
        self._lookup = product_lookup
        self.items: List[CartItem] = self._load()

    def _load(self) -> List[CartItem]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return [CartItem(**raw) for raw in json.load(f)]
        except (OSError, ValueError, TypeError) as e:
            _logger.warning(f"Discarding unreadable cart file {self.path}: {e}")
            return []

    def _save(self) -> None:
        folder = os.path.dirname(self.path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump([asdict(item) for item in self.items], f, indent=2)

    def _index(self, product_id: str) -> Optional[int]:
        for i, item in enumerate(self.items):
            if item.product_id == product_id:
                return i
        return None

    async def _fresh_product(self, product_id: str) -> Product:
        product = await self._lookup(product_id)
        if product is None:
            raise NotFound("Product not found")
        if product.stock <= 0:
            raise ValidationError(f"{product.name} is out of stock")
        return product

    def quantity_of(self, product_id: str) -> int:
        idx = self._index(product_id)
        return self.items[idx].quantity if idx is not None else 0

    async def add(self, product_id: str, quantity: int = 1) -> Optional[str]:
        """
        Add `quantity` of a product. Returns a notice when the resulting
        quantity had to be capped at the available stock.
        """
        if quantity <= 0:
            raise ValidationError("Quantity must be at least 1")
        product = await self._fresh_product(product_id)

        wanted = self.quantity_of(product_id) + quantity
        notice = None
        if wanted > product.stock:
            wanted = product.stock
            notice = f"Only {product.stock} of {product.name} in stock; quantity adjusted"

        line = CartItem(
            product_id=product.id,
            quantity=wanted,
            name=product.name,
            price=product.price,
            discounted_price=product.discounted_price,
            image_url=product.image_url,
        )
        idx = self._index(product_id)
        if idx is None:
            self.items.append(line)
        else:
            self.items[idx] = line
        self._save()
        return notice

    def remove(self, product_id: str) -> None:
        idx = self._index(product_id)
        if idx is not None:
            del self.items[idx]
            self._save()

    async def update_quantity(self, product_id: str, quantity: int) -> Optional[str]:
        """Set a line's quantity; zero or less removes it. Capped at stock."""
        if quantity <= 0:
            self.remove(product_id)
            return None
        idx = self._index(product_id)
        if idx is None:
            raise NotFound("Product is not in the cart")
        product = await self._fresh_product(product_id)
        notice = None
        if quantity > product.stock:
            quantity = product.stock
            notice = f"Only {product.stock} of {product.name} in stock; quantity adjusted"
        self.items[idx] = replace(self.items[idx], quantity=quantity)
        self._save()
        return notice

    def clear(self) -> None:
        self.items = []
        self._save()

    @property
    def count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total(self) -> float:
        return round(sum(item.unit_price * item.quantity for item in self.items), 2)

    def lines(self) -> List[Tuple[str, int]]:
        return [(item.product_id, item.quantity) for item in self.items]
