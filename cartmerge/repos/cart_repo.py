# cartmerge/repos/cart_repo.py
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update, delete, insert, exists
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from cartmerge.data.models.cart import CartModel
from cartmerge.data.models.cart_line import CartLineModel
from cartmerge.domain.cart import Cart, CartLine
from cartmerge.domain.errors import (
    CartConcurrencyError,
    CartPersistenceError,
    DuplicateCartError,
    InvalidCartStateError,
)
from cartmerge.repos.cart_store import CartStore
from cartmerge.utils.logging import get_logger

logger = get_logger(__name__)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    #sqlite hands back naive datetimes, everything is stored as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _lines_from_json(value: Optional[Dict[str, int]]) -> Dict[UUID, int]:
    return {UUID(line_id): quantity for line_id, quantity in (value or {}).items()}


def _lines_to_json(value: Dict[UUID, int]) -> Optional[Dict[str, int]]:
    return {str(line_id): quantity for line_id, quantity in value.items()} or None


class SqlCartRepo(CartStore):
    """SQLAlchemy implementation of the cart store.

    Writes go through explicit UPDATE/INSERT/DELETE statements instead of ORM
    change tracking, so a save always persists exactly the aggregate it was given.
    """

    def __init__(self, db: Session):
        self.db = db

    # =====================================================
    # mapping
    # =====================================================
    def _to_domain(self, row: CartModel) -> Cart:
        cart = Cart(
            id=row.id,
            session_id=row.session_id,
            customer_id=row.customer_id,
            currency_code=row.currency_code,
            expires_at=_utc(row.expires_at),
            created_at=_utc(row.created_at),
            updated_at=_utc(row.updated_at),
            version=row.version,
            notes=row.notes,
            absorbed_from=row.absorbed_from,
            absorbed_lines=_lines_from_json(row.absorbed_lines),
            lines=[
                CartLine(
                    id=line.id,
                    cart_id=line.cart_id,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    line_total=line.line_total,
                    added_at=_utc(line.added_at),
                )
                for line in row.lines
            ],
        )
        try:
            cart.ensure_valid_ownership()
        except InvalidCartStateError:
            logger.error(f"Data integrity violation on stored cart {row.id}")
            raise
        return cart

    def _load_one(self, *criteria) -> Optional[Cart]:
        try:
            # populate_existing: rows cached in the session may be stale after statement writes
            row = self.db.execute(
                select(CartModel)
                .options(selectinload(CartModel.lines))
                .where(*criteria)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise CartPersistenceError(f"Failed to load cart: {e}") from e
        return self._to_domain(row) if row else None

    def _load_many(self, stmt) -> List[Cart]:
        try:
            rows = self.db.execute(
                stmt.options(selectinload(CartModel.lines)).execution_options(populate_existing=True)
            ).scalars().all()
        except SQLAlchemyError as e:
            raise CartPersistenceError(f"Failed to load carts: {e}") from e
        return [self._to_domain(row) for row in rows]

    # =====================================================
    # queries
    # =====================================================
    def load_cart(self, cart_id: UUID) -> Optional[Cart]:
        return self._load_one(CartModel.id == cart_id)

    def load_cart_by_session(self, session_id: str) -> Optional[Cart]:
        return self._load_one(CartModel.session_id == session_id)

    def load_cart_by_customer(self, customer_id: UUID) -> Optional[Cart]:
        return self._load_one(CartModel.customer_id == customer_id)

    def find_expired_guest_carts(self, now: datetime) -> List[Cart]:
        return self._load_many(
            select(CartModel).where(
                CartModel.session_id.is_not(None),
                CartModel.expires_at.is_not(None),
                CartModel.expires_at <= _utc(now),
            )
        )

    def find_abandoned(self, cutoff: datetime) -> List[Cart]:
        has_lines = exists().where(CartLineModel.cart_id == CartModel.id)
        return self._load_many(
            select(CartModel)
            .where(CartModel.updated_at < _utc(cutoff), has_lines)
            .order_by(CartModel.updated_at)
        )

    def list_carts(self) -> List[Cart]:
        return self._load_many(select(CartModel).order_by(CartModel.created_at))

    # =====================================================
    # commands
    # =====================================================
    def insert_cart(self, cart: Cart) -> Cart:
        cart.ensure_valid_ownership()
        try:
            self.db.execute(
                insert(CartModel).values(
                    id=cart.id,
                    session_id=cart.session_id,
                    customer_id=cart.customer_id,
                    currency_code=cart.currency_code,
                    version=cart.version,
                    notes=cart.notes,
                    expires_at=_utc(cart.expires_at),
                    created_at=_utc(cart.created_at),
                    updated_at=_utc(cart.updated_at),
                )
            )
            self._write_lines(cart)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateCartError(
                f"Cart for {cart.session_id or cart.customer_id} already exists"
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise CartPersistenceError(f"Failed to insert cart {cart.id}: {e}") from e

        logger.info(f"Inserted cart {cart.id}")
        return self.load_cart(cart.id)

    def save_cart(self, cart: Cart) -> Cart:
        self._commit(lambda: self._write_cart(cart), cart.id)
        return self.load_cart(cart.id)

    def delete_cart(self, cart_id: UUID, expected_version: Optional[int] = None) -> bool:
        deleted = self._commit(lambda: self._delete_cart(cart_id, expected_version), cart_id)
        if deleted:
            logger.info(f"Deleted cart {cart_id}")
        return deleted

    def commit_merge(self, survivor: Cart, consumed: Cart) -> Cart:
        # one transaction: survivor write and consumed delete land together or not at all
        def work():
            self._write_cart(survivor)
            if not self._delete_cart(consumed.id, consumed.version):
                raise CartConcurrencyError(
                    f"Cart {consumed.id} changed before it could be merged into {survivor.id}"
                )

        self._commit(work, survivor.id)
        logger.info(f"Merged cart {consumed.id} into {survivor.id}")
        return self.load_cart(survivor.id)

    def _commit(self, work, cart_id: UUID):
        try:
            result = work()
            self.db.commit()
        except CartConcurrencyError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            # unique session/customer key taken by a concurrent writer
            self.db.rollback()
            raise CartConcurrencyError(f"Cart {cart_id} conflicts with a concurrent write") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise CartPersistenceError(f"Failed to write cart {cart_id}: {e}") from e
        return result

    def _write_cart(self, cart: Cart) -> None:
        cart.ensure_valid_ownership()

        # optimistic locking: update ... where id = :id and version = :version
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart.id, CartModel.version == cart.version)
            .values(
                session_id=cart.session_id,
                customer_id=cart.customer_id,
                currency_code=cart.currency_code,
                expires_at=_utc(cart.expires_at),
                updated_at=_utc(cart.updated_at),
                notes=cart.notes,
                absorbed_from=cart.absorbed_from,
                absorbed_lines=_lines_to_json(cart.absorbed_lines),
                version=cart.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise CartConcurrencyError(
                f"Cart {cart.id} was modified by another operation (expected version {cart.version})"
            )

        self._write_lines(cart)

    def _write_lines(self, cart: Cart) -> None:
        keep = [line.id for line in cart.lines]
        self.db.execute(
            delete(CartLineModel)
            .where(CartLineModel.cart_id == cart.id, CartLineModel.id.not_in(keep))
            .execution_options(synchronize_session=False)
        )

        existing = set()
        if keep:
            existing = set(
                self.db.execute(select(CartLineModel.id).where(CartLineModel.id.in_(keep))).scalars()
            )

        for position, line in enumerate(cart.lines):
            values = dict(
                # re-parented lines move here from another cart
                cart_id=cart.id,
                product_id=line.product_id,
                variant_id=line.variant_id,
                position=position,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_total=line.line_total,
                added_at=_utc(line.added_at),
            )
            if line.id in existing:
                self.db.execute(
                    update(CartLineModel)
                    .where(CartLineModel.id == line.id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
            else:
                self.db.execute(insert(CartLineModel).values(id=line.id, **values))

    def _delete_cart(self, cart_id: UUID, expected_version: Optional[int] = None) -> bool:
        stmt = delete(CartModel).where(CartModel.id == cart_id)
        if expected_version is not None:
            stmt = stmt.where(CartModel.version == expected_version)
        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount == 0:
            return False

        # lines already moved to another cart are no longer matched here
        self.db.execute(
            delete(CartLineModel)
            .where(CartLineModel.cart_id == cart_id)
            .execution_options(synchronize_session=False)
        )
        return True
