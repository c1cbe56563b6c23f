import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from cartmerge.domain.cart import CartLine

T0 = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_line(product_id=None, variant_id=None, quantity=1, unit_price="10.00", added_at=T0):
    return CartLine(
        product_id=product_id or uuid.uuid4(),
        variant_id=variant_id,
        quantity=quantity,
        unit_price=Decimal(unit_price),
        added_at=added_at,
    )


def seed_cart(store, cart, lines=()):
    """Attach lines to a freshly created cart and persist them."""
    for line in lines:
        cart.attach_line(line)
    return store.save_cart(cart)
