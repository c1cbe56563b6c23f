"""Cart store port.

The lifecycle manager and merge engine only talk to this interface. Every
method works on the whole aggregate (cart + lines); there are no partial loads.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from cartmerge.domain.cart import Cart
from cartmerge.domain.errors import CartConcurrencyError


class CartStore(ABC):
    """Abstract interface for durable cart storage."""

    @abstractmethod
    def load_cart(self, cart_id: UUID) -> Optional[Cart]:
        ...

    @abstractmethod
    def load_cart_by_session(self, session_id: str) -> Optional[Cart]:
        ...

    @abstractmethod
    def load_cart_by_customer(self, customer_id: UUID) -> Optional[Cart]:
        ...

    @abstractmethod
    def insert_cart(self, cart: Cart) -> Cart:
        """Insert a new cart.

        Raises:
            DuplicateCartError: a cart with the same session or customer key exists.
        """
        ...

    @abstractmethod
    def save_cart(self, cart: Cart) -> Cart:
        """Persist the cart and its full line set.

        Succeeds only if the stored version still equals ``cart.version``.
        Returns the cart as stored, with the bumped version.

        Raises:
            CartConcurrencyError: the stored cart changed since it was loaded.
        """
        ...

    @abstractmethod
    def delete_cart(self, cart_id: UUID, expected_version: Optional[int] = None) -> bool:
        """Delete the cart and every line still attached to it.

        With ``expected_version`` the delete only happens if the stored cart is
        still at that version. Returns False when nothing was deleted.
        """
        ...

    @abstractmethod
    def find_expired_guest_carts(self, now: datetime) -> List[Cart]:
        ...

    @abstractmethod
    def find_abandoned(self, cutoff: datetime) -> List[Cart]:
        """Carts with lines whose ``updated_at < cutoff``, oldest first."""
        ...

    @abstractmethod
    def list_carts(self) -> List[Cart]:
        ...

    def commit_merge(self, survivor: Cart, consumed: Cart) -> Cart:
        """Write the surviving cart, then drop the consumed one.

        The consumed cart is only deleted if it is still at the version that
        was folded in; otherwise CartConcurrencyError is raised and the merge
        runs again. Without a transaction the survivor may already be written
        at that point, which is why it records what it absorbed (see
        ``Cart.mark_absorbed``). Stores with transactions override this to do
        both in one commit.
        """
        saved = self.save_cart(survivor)
        if not self.delete_cart(consumed.id, expected_version=consumed.version):
            raise CartConcurrencyError(
                f"Cart {consumed.id} changed before it could be merged into {survivor.id}"
            )
        return saved
