# cartmerge/services/merge_service.py
import uuid
from datetime import datetime
from typing import Callable

from cartmerge.domain.cart import Cart, line_key, utcnow
from cartmerge.domain.errors import CartConcurrencyError, InvalidCustomerError
from cartmerge.repos.cart_store import CartStore
from cartmerge.services.lifecycle_service import CartLifecycleManager
from cartmerge.services.lock_service import LockService
from cartmerge.utils.retry import conflict_retry
from cartmerge.utils.settings import MERGE_LOCK_TTL_SECONDS, MERGE_MAX_ATTEMPTS
from cartmerge.utils.logging import get_logger

logger = get_logger(__name__)


class CartMergeEngine:
    """
    Consolidates a guest cart into the customer's cart when a guest logs in.

    The customer cart survives whenever it exists. Cases, in order:

    1. no guest cart: return the customer cart, creating it if needed
    2. guest cart only: re-key it to the customer in place
    3. both: fold guest lines into the customer cart, then drop the guest cart

    Quantity merges keep the customer line's ``unit_price``; re-parented guest
    lines keep their own price and ``added_at``. The customer cart remembers
    the guest line quantities it took, so re-running a merge whose guest delete
    failed does not count them twice.
    """

    def __init__(
        self,
        store: CartStore,
        lifecycle: CartLifecycleManager | None = None,
        lock_service: LockService | None = None,
        clock: Callable[[], datetime] = utcnow,
        max_attempts: int = MERGE_MAX_ATTEMPTS,
        lock_ttl: int = MERGE_LOCK_TTL_SECONDS,
    ):
        self.store = store
        self.lifecycle = lifecycle or CartLifecycleManager(store, clock=clock)
        self.lock_service = lock_service
        self.clock = clock
        self.max_attempts = max_attempts
        self.lock_ttl = lock_ttl

    def merge_guest_cart_into_customer(self, session_id: str | None, customer_id: uuid.UUID) -> Cart:
        """Caller-facing entry point.

        Runs :meth:`merge`, re-running it from the start on a version conflict.
        Raises CartConcurrencyError once the attempts are used up and
        CartPersistenceError on a failed write; both are safe to retry.
        """
        self._check_customer(customer_id)
        return conflict_retry(self.max_attempts)(self._merge_locked)(session_id, customer_id)

    def _merge_locked(self, session_id: str | None, customer_id: uuid.UUID) -> Cart:
        if self.lock_service is None:
            return self.merge(session_id, customer_id)

        token = uuid.uuid4().hex
        if not self.lock_service.acquire_merge_lock(customer_id, token, self.lock_ttl):
            raise CartConcurrencyError(f"Another merge for customer {customer_id} is in progress")
        try:
            return self.merge(session_id, customer_id)
        finally:
            self.lock_service.release_merge_lock(customer_id, token)

    def merge(self, session_id: str | None, customer_id: uuid.UUID) -> Cart:
        self._check_customer(customer_id)

        guest = self.store.load_cart_by_session(session_id) if session_id else None
        customer = self.store.load_cart_by_customer(customer_id)

        if guest is None:
            logger.info(f"No guest cart for session, returning cart of customer {customer_id}")
            return customer or self.lifecycle.get_or_create_by_customer(customer_id)

        now = self.clock()

        if customer is None:
            logger.info(f"Promoting guest cart {guest.id} to customer {customer_id}")
            guest.promote_to_customer(customer_id, now)
            return self.store.save_cart(guest)

        logger.info(
            f"Merging guest cart {guest.id} ({len(guest.lines)} lines) "
            f"into customer cart {customer.id}"
        )
        taken = {line.id: line.quantity for line in guest.lines}
        for guest_line in guest.lines:
            # a retry after a half-written merge only folds what is still missing
            pending = guest_line.quantity - customer.absorbed_quantity(guest.id, guest_line.id)
            if pending <= 0:
                continue
            existing = customer.find_line(line_key(guest_line))
            if existing:
                existing.increase_quantity(pending)
            else:
                guest_line.set_quantity(pending)
                customer.attach_line(guest_line)

        if not customer.notes and guest.notes:
            customer.notes = guest.notes
        customer.mark_absorbed(guest.id, taken)
        customer.touch(now)
        return self.store.commit_merge(customer, guest)

    @staticmethod
    def _check_customer(customer_id) -> None:
        if not isinstance(customer_id, uuid.UUID):
            raise InvalidCustomerError(f"Invalid customer id: {customer_id!r}")
