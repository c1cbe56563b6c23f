import copy
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from cartmerge.domain.cart import Cart
from cartmerge.domain.errors import CartConcurrencyError, DuplicateCartError
from cartmerge.repos.cart_store import CartStore
from cartmerge.utils.logging import get_logger

logger = get_logger(__name__)


class MemoryCartStore(CartStore):
    """In-memory cart store for development and tests.

    Carts are deep-copied on the way in and out so callers never share state
    with the store, the same as with a real database.
    """

    def __init__(self):
        self._carts: Dict[UUID, Cart] = {}

    def _copy(self, cart: Optional[Cart]) -> Optional[Cart]:
        if cart is None:
            return None
        loaded = copy.deepcopy(cart)
        loaded.ensure_valid_ownership()
        return loaded

    def _owner_taken(self, cart: Cart) -> bool:
        for other in self._carts.values():
            if other.id == cart.id:
                continue
            if cart.session_id is not None and other.session_id == cart.session_id:
                return True
            if cart.customer_id is not None and other.customer_id == cart.customer_id:
                return True
        return False

    def load_cart(self, cart_id: UUID) -> Optional[Cart]:
        return self._copy(self._carts.get(cart_id))

    def load_cart_by_session(self, session_id: str) -> Optional[Cart]:
        for cart in self._carts.values():
            if cart.session_id == session_id:
                return self._copy(cart)
        return None

    def load_cart_by_customer(self, customer_id: UUID) -> Optional[Cart]:
        for cart in self._carts.values():
            if cart.customer_id == customer_id:
                return self._copy(cart)
        return None

    def insert_cart(self, cart: Cart) -> Cart:
        cart.ensure_valid_ownership()
        if cart.id in self._carts or self._owner_taken(cart):
            raise DuplicateCartError(f"Cart for {cart.session_id or cart.customer_id} already exists")
        self._carts[cart.id] = copy.deepcopy(cart)
        logger.info(f"Cart {cart.id} inserted in memory")
        return self._copy(cart)

    def save_cart(self, cart: Cart) -> Cart:
        cart.ensure_valid_ownership()
        stored = self._carts.get(cart.id)
        if stored is None or stored.version != cart.version:
            raise CartConcurrencyError(f"Cart {cart.id} was modified or removed by another operation")
        if self._owner_taken(cart):
            raise CartConcurrencyError(f"Owner of cart {cart.id} already has another cart")

        saved = copy.deepcopy(cart)
        saved.version = cart.version + 1
        for line in saved.lines:
            line.cart_id = saved.id
        self._carts[cart.id] = saved
        logger.info(f"Cart {cart.id} saved in memory, version {saved.version}")
        return self._copy(saved)

    def delete_cart(self, cart_id: UUID, expected_version: Optional[int] = None) -> bool:
        stored = self._carts.get(cart_id)
        if stored is None:
            return False
        if expected_version is not None and stored.version != expected_version:
            return False
        del self._carts[cart_id]
        logger.info(f"Cart {cart_id} deleted from memory")
        return True

    def find_expired_guest_carts(self, now: datetime) -> List[Cart]:
        return [
            self._copy(cart)
            for cart in self._carts.values()
            if cart.session_id is not None and cart.is_expired(now)
        ]

    def find_abandoned(self, cutoff: datetime) -> List[Cart]:
        carts = [self._copy(c) for c in self._carts.values() if c.is_abandoned(cutoff)]
        return sorted(carts, key=lambda c: c.updated_at)

    def list_carts(self) -> List[Cart]:
        return [self._copy(c) for c in self._carts.values()]
