# cartmerge/services/cart_service.py
from datetime import datetime
from decimal import Decimal
from typing import Callable
from uuid import UUID

from cartmerge.domain.cart import Cart, CartLine, utcnow
from cartmerge.domain.errors import CartNotFoundError
from cartmerge.repos.cart_store import CartStore
from cartmerge.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Line-level commands on a single cart (add, change quantity, remove, clear)
    and the matching query.

    Every command loads the aggregate, changes it, and saves it back under the
    version check of the store; a concurrent change raises CartConcurrencyError.
    """

    def __init__(self, store: CartStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    #query
    def get_cart(self, cart_id: UUID) -> Cart:
        cart = self.store.load_cart(cart_id)
        if not cart:
            raise CartNotFoundError(f"Cart {cart_id} does not exist")
        return cart

    #commands
    def add_line(
        self,
        cart_id: UUID,
        product_id: UUID,
        quantity: int,
        unit_price: Decimal,
        variant_id: UUID | None = None,
    ) -> Cart:
        if quantity <= 0:
            raise ValueError("Quantity must be greater than 0")

        cart = self.get_cart(cart_id)
        now = self.clock()

        existing = cart.find_line((product_id, variant_id))
        if existing:
            # the price captured when the line was first added stays
            logger.info(
                f"Product {product_id} already in cart {cart_id}, quantity "
                f"{existing.quantity} -> {existing.quantity + quantity}"
            )
            existing.increase_quantity(quantity)
        else:
            logger.info(f"Adding product {product_id} to cart {cart_id}")
            cart.attach_line(
                CartLine(
                    product_id=product_id,
                    variant_id=variant_id,
                    quantity=quantity,
                    unit_price=unit_price,
                    added_at=now,
                )
            )

        cart.touch(now)
        return self.store.save_cart(cart)

    def update_line_quantity(self, cart_id: UUID, line_id: UUID, quantity: int) -> Cart:
        if quantity <= 0:
            return self.remove_line(cart_id, line_id)

        cart = self.get_cart(cart_id)
        line = cart.get_line(line_id)
        if not line:
            raise CartNotFoundError(f"Line {line_id} is not in cart {cart_id}")

        line.set_quantity(quantity)
        cart.touch(self.clock())
        return self.store.save_cart(cart)

    def remove_line(self, cart_id: UUID, line_id: UUID) -> Cart:
        cart = self.get_cart(cart_id)
        if not cart.remove_line(line_id):
            raise CartNotFoundError(f"Line {line_id} is not in cart {cart_id}")

        logger.info(f"Removed line {line_id} from cart {cart_id}")
        cart.touch(self.clock())
        return self.store.save_cart(cart)

    def clear_cart(self, cart_id: UUID) -> Cart:
        cart = self.get_cart(cart_id)
        cart.lines = []
        cart.touch(self.clock())
        return self.store.save_cart(cart)
