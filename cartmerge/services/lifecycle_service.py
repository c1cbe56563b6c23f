# cartmerge/services/lifecycle_service.py
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, List
from uuid import UUID

from cartmerge.domain.cart import Cart, utcnow
from cartmerge.domain.errors import (
    CartConcurrencyError,
    CartNotFoundError,
    DuplicateCartError,
    InvalidCustomerError,
)
from cartmerge.domain.schemas import CartStatisticsOut
from cartmerge.repos.cart_store import CartStore
from cartmerge.utils.settings import GUEST_CART_TTL_DAYS, DEFAULT_CURRENCY
from cartmerge.utils.logging import get_logger

logger = get_logger(__name__)


class CartLifecycleManager:
    """
    Creation, lookup and disposal of carts.

    Guest carts live for ``guest_ttl`` after creation and are removed by
    :meth:`expire_guest_carts`. Customer carts never expire on a timer.
    """

    def __init__(
        self,
        store: CartStore,
        clock: Callable[[], datetime] = utcnow,
        guest_ttl: timedelta | None = None,
        currency_code: str = DEFAULT_CURRENCY,
    ):
        self.store = store
        self.clock = clock
        self.guest_ttl = guest_ttl or timedelta(days=GUEST_CART_TTL_DAYS)
        self.currency_code = currency_code

    def get_or_create_by_session(self, session_id: str) -> Cart:
        if not session_id:
            raise ValueError("Session id is required")

        cart = self.store.load_cart_by_session(session_id)
        if cart:
            return cart

        new_cart = Cart.new_guest(session_id, self.clock(), self.guest_ttl, self.currency_code)
        return self._insert_or_reread(new_cart, lambda: self.store.load_cart_by_session(session_id))

    def get_or_create_by_customer(self, customer_id: UUID) -> Cart:
        if customer_id is None:
            raise InvalidCustomerError("Customer id is required")

        cart = self.store.load_cart_by_customer(customer_id)
        if cart:
            return cart

        new_cart = Cart.new_customer(customer_id, self.clock(), self.currency_code)
        return self._insert_or_reread(new_cart, lambda: self.store.load_cart_by_customer(customer_id))

    def _insert_or_reread(self, new_cart: Cart, reread: Callable[[], Cart | None]) -> Cart:
        try:
            created = self.store.insert_cart(new_cart)
        except DuplicateCartError:
            # lost the race, the row that was there first wins
            existing = reread()
            if existing is None:
                raise CartConcurrencyError(
                    f"Cart for {new_cart.session_id or new_cart.customer_id} vanished after a duplicate insert"
                )
            logger.info(f"Concurrent create detected, using existing cart {existing.id}")
            return existing

        logger.info(
            f"Created {'guest' if created.is_guest else 'customer'} cart {created.id}"
        )
        return created

    def expire_guest_carts(self, now: datetime | None = None) -> int:
        """Delete guest carts whose ``expires_at <= now``.

        Carts are deleted one by one; an interrupted run leaves the rest for the
        next run, and re-running is harmless. A cart written after the scan
        (promoted by a merge, given a new expiry) is left alone.
        Returns the number of carts actually deleted.
        """
        now = now or self.clock()
        expired = self.store.find_expired_guest_carts(now)
        logger.info(f"Found {len(expired)} guest carts to expire")
        return self._delete_unchanged(expired)

    def find_abandoned(self, cutoff: datetime) -> List[Cart]:
        return self.store.find_abandoned(cutoff)

    def purge_abandoned(self, cutoff: datetime) -> int:
        deleted = self._delete_unchanged(self.store.find_abandoned(cutoff))
        logger.info(f"Purged {deleted} abandoned carts older than {cutoff.isoformat()}")
        return deleted

    def _delete_unchanged(self, carts: List[Cart]) -> int:
        deleted = 0
        for cart in carts:
            if self.store.delete_cart(cart.id, expected_version=cart.version):
                deleted += 1
            else:
                logger.info(f"Cart {cart.id} changed since it was selected, skipping")
        return deleted

    def update_notes(self, cart_id: UUID, notes: str | None) -> Cart:
        cart = self._get(cart_id)
        cart.set_notes(notes, self.clock())
        return self.store.save_cart(cart)

    def set_expiration(self, cart_id: UUID, expires_at: datetime | None) -> Cart:
        """Move the expiry of a guest cart, or remove it with ``None``."""
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)

        cart = self._get(cart_id)
        cart.set_expiration(expires_at, self.clock())
        logger.info(f"Expiry of cart {cart_id} set to {expires_at.isoformat() if expires_at else 'never'}")
        return self.store.save_cart(cart)

    def _get(self, cart_id: UUID) -> Cart:
        cart = self.store.load_cart(cart_id)
        if not cart:
            raise CartNotFoundError(f"Cart {cart_id} does not exist")
        return cart

    def get_statistics(self, abandoned_cutoff: datetime, now: datetime | None = None) -> CartStatisticsOut:
        now = now or self.clock()
        carts = self.store.list_carts()
        with_items = [c for c in carts if not c.is_empty]
        abandoned = [c for c in with_items if c.is_abandoned(abandoned_cutoff)]

        return CartStatisticsOut(
            total_carts=len(carts),
            guest_carts=sum(1 for c in carts if c.is_guest),
            customer_carts=sum(1 for c in carts if c.is_customer),
            empty_carts=len(carts) - len(with_items),
            carts_with_items=len(with_items),
            abandoned_carts=len(abandoned),
            expired_carts=sum(1 for c in carts if c.is_expired(now)),
            total_items=sum(c.item_count for c in carts),
            total_value=sum((c.subtotal for c in with_items), Decimal("0.00")),
            abandoned_value=sum((c.subtotal for c in abandoned), Decimal("0.00")),
        )
