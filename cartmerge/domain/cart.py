# cartmerge/domain/cart.py
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple

from cartmerge.domain.errors import InvalidCartStateError

LineKey = Tuple[uuid.UUID, Optional[uuid.UUID]]

CENTS = Decimal("0.01")
NOTES_MAX_LENGTH = 2000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def line_key(line: "CartLine") -> LineKey:
    """Merge key of a line: (product_id, variant_id).

    A missing variant is its own value, so ``(P, None)`` never equals ``(P, V)``.
    """
    return (line.product_id, line.variant_id)


@dataclass
class CartLine:
    product_id: uuid.UUID
    quantity: int
    unit_price: Decimal
    cart_id: Optional[uuid.UUID] = None
    variant_id: Optional[uuid.UUID] = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    added_at: datetime = field(default_factory=utcnow)
    line_total: Decimal = Decimal("0.00")

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError("Quantity must be greater than 0")
        # same scale as the Numeric(12, 2) price column
        self.unit_price = Decimal(str(self.unit_price)).quantize(CENTS, rounding=ROUND_HALF_UP)
        if self.unit_price < 0:
            raise ValueError("Unit price cannot be negative")
        self.recalculate()

    def recalculate(self) -> None:
        self.line_total = self.unit_price * self.quantity

    def set_quantity(self, quantity: int) -> None:
        if quantity <= 0:
            raise ValueError("Quantity must be greater than 0")
        self.quantity = quantity
        self.recalculate()

    def increase_quantity(self, by: int) -> None:
        self.set_quantity(self.quantity + by)


@dataclass
class Cart:
    """Cart aggregate root. Lines are owned by the cart and always loaded with it.

    A cart is either guest-owned (``session_id`` set) or customer-owned
    (``customer_id`` set), never both and never neither. ``version`` is the
    optimistic concurrency token the store checks on every save.
    """

    id: uuid.UUID = field(default_factory=uuid.uuid4)
    session_id: Optional[str] = None
    customer_id: Optional[uuid.UUID] = None
    currency_code: str = "USD"
    expires_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 1
    notes: Optional[str] = None
    lines: List[CartLine] = field(default_factory=list)
    # guest cart last folded into this one and the line quantities taken from it
    absorbed_from: Optional[uuid.UUID] = None
    absorbed_lines: Dict[uuid.UUID, int] = field(default_factory=dict)

    @classmethod
    def new_guest(cls, session_id: str, now: datetime, ttl: timedelta, currency_code: str = "USD") -> "Cart":
        return cls(
            session_id=session_id,
            currency_code=currency_code,
            expires_at=now + ttl,
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def new_customer(cls, customer_id: uuid.UUID, now: datetime, currency_code: str = "USD") -> "Cart":
        return cls(customer_id=customer_id, currency_code=currency_code, created_at=now, updated_at=now)

    @property
    def is_guest(self) -> bool:
        return self.session_id is not None and self.customer_id is None

    @property
    def is_customer(self) -> bool:
        return self.customer_id is not None and self.session_id is None

    def ensure_valid_ownership(self) -> None:
        if self.is_guest == self.is_customer:
            raise InvalidCartStateError(
                f"Cart {self.id} has invalid ownership "
                f"(session_id={self.session_id!r}, customer_id={self.customer_id!r})"
            )

    def promote_to_customer(self, customer_id: uuid.UUID, now: datetime) -> None:
        self.customer_id = customer_id
        self.session_id = None
        self.expires_at = None
        self.updated_at = now

    def touch(self, now: datetime) -> None:
        self.updated_at = now

    def set_notes(self, notes: Optional[str], now: datetime) -> None:
        if notes is not None and len(notes) > NOTES_MAX_LENGTH:
            raise ValueError(f"Notes cannot be longer than {NOTES_MAX_LENGTH} characters")
        self.notes = notes or None
        self.updated_at = now

    def set_expiration(self, expires_at: Optional[datetime], now: datetime) -> None:
        """Override the expiry of a guest cart; ``None`` keeps it forever."""
        if not self.is_guest:
            raise ValueError(f"Cart {self.id} belongs to a customer and does not expire")
        self.expires_at = expires_at
        self.updated_at = now

    def absorbed_quantity(self, source_id: uuid.UUID, line_id: uuid.UUID) -> int:
        """Quantity of a source line already folded into this cart by an earlier merge."""
        if self.absorbed_from != source_id:
            return 0
        return self.absorbed_lines.get(line_id, 0)

    def mark_absorbed(self, source_id: uuid.UUID, quantities: Dict[uuid.UUID, int]) -> None:
        self.absorbed_from = source_id
        self.absorbed_lines = dict(quantities)

    def find_line(self, key: LineKey) -> Optional[CartLine]:
        for line in self.lines:
            if line_key(line) == key:
                return line
        return None

    def get_line(self, line_id: uuid.UUID) -> Optional[CartLine]:
        for line in self.lines:
            if line.id == line_id:
                return line
        return None

    def attach_line(self, line: CartLine) -> None:
        line.cart_id = self.id
        self.lines.append(line)

    def remove_line(self, line_id: uuid.UUID) -> bool:
        before = len(self.lines)
        self.lines = [line for line in self.lines if line.id != line_id]
        return len(self.lines) != before

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0.00"))

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def unique_item_count(self) -> int:
        return len(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def is_abandoned(self, cutoff: datetime) -> bool:
        return self.updated_at < cutoff and not self.is_empty
