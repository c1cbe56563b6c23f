# cartmerge/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List
from decimal import Decimal
from datetime import datetime
from uuid import UUID

from cartmerge.domain.cart import Cart, NOTES_MAX_LENGTH


class MergeIn(BaseModel):
    """Guest session that just authenticated as a known customer."""

    session_id: str = Field(..., min_length=1, max_length=200)
    customer_id: UUID


class LineIn(BaseModel):
    """Schema for adding a line to a cart."""

    product_id: UUID
    variant_id: UUID | None = None
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)


class LineQuantityIn(BaseModel):
    # 0 removes the line
    quantity: int = Field(..., ge=0)


class NotesIn(BaseModel):
    notes: str | None = Field(None, max_length=NOTES_MAX_LENGTH)


class ExpirationIn(BaseModel):
    # null removes the expiry
    expires_at: datetime | None = None


class CartLineOut(BaseModel):
    id: UUID
    cart_id: UUID
    product_id: UUID
    variant_id: UUID | None = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    added_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CartOut(BaseModel):
    """Schema for a cart (response)."""

    id: UUID
    session_id: str | None = None
    customer_id: UUID | None = None
    currency_code: str
    expires_at: datetime | None = None
    updated_at: datetime
    version: int
    notes: str | None = None
    lines: List[CartLineOut]
    subtotal: Decimal
    item_count: int

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_cart(cls, cart: Cart) -> "CartOut":
        return cls.model_validate(cart)


class ExpireOut(BaseModel):
    deleted: int


class CartStatisticsOut(BaseModel):
    total_carts: int = 0
    guest_carts: int = 0
    customer_carts: int = 0
    empty_carts: int = 0
    carts_with_items: int = 0
    abandoned_carts: int = 0
    expired_carts: int = 0
    total_items: int = 0
    total_value: Decimal = Decimal("0.00")
    abandoned_value: Decimal = Decimal("0.00")
