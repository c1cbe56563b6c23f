#cartmerge/api/routers/carts.py
from datetime import timedelta
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from cartmerge.data.database import get_db
from cartmerge.domain.cart import utcnow
from cartmerge.domain.errors import (
    CartError,
    CartConcurrencyError,
    CartNotFoundError,
    CartPersistenceError,
    InvalidCartStateError,
)
from cartmerge.domain.schemas import (
    CartOut,
    CartStatisticsOut,
    ExpireOut,
    ExpirationIn,
    LineIn,
    LineQuantityIn,
    MergeIn,
    NotesIn,
)
from cartmerge.repos.cart_repo import SqlCartRepo
from cartmerge.repos.cart_store import CartStore
from cartmerge.services.cart_service import CartService
from cartmerge.services.lifecycle_service import CartLifecycleManager
from cartmerge.services.lock_service import LockService
from cartmerge.services.merge_service import CartMergeEngine
from cartmerge.utils.settings import ABANDONED_AFTER_HOURS, MERGE_LOCK_ENABLED
from cartmerge.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/carts", tags=["carts"])


def get_store(db: Session = Depends(get_db)) -> CartStore:
    return SqlCartRepo(db)


def get_lock_service() -> LockService | None:
    return LockService() if MERGE_LOCK_ENABLED else None


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, (CartConcurrencyError, CartPersistenceError)):
        return HTTPException(status_code=503, detail=f"{e}. Retry the request.")
    if isinstance(e, CartNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidCartStateError):
        logger.error(f"Cart integrity violation: {e}")
        return HTTPException(status_code=500, detail="Cart data is inconsistent")
    return HTTPException(status_code=400, detail=str(e))


@router.post("/merge", response_model=CartOut)
def merge_carts(
    payload: MergeIn,
    store: CartStore = Depends(get_store),
    lock_service: LockService | None = Depends(get_lock_service),
):
    engine = CartMergeEngine(store, lock_service=lock_service)
    try:
        cart = engine.merge_guest_cart_into_customer(payload.session_id, payload.customer_id)
    except (CartError, ValueError) as e:
        raise _http_error(e)
    return CartOut.from_cart(cart)


@router.get("/session/{session_id}", response_model=CartOut)
def get_guest_cart(session_id: str, store: CartStore = Depends(get_store)):
    try:
        return CartOut.from_cart(CartLifecycleManager(store).get_or_create_by_session(session_id))
    except (CartError, ValueError) as e:
        raise _http_error(e)


@router.get("/customer/{customer_id}", response_model=CartOut)
def get_customer_cart(customer_id: UUID, store: CartStore = Depends(get_store)):
    try:
        return CartOut.from_cart(CartLifecycleManager(store).get_or_create_by_customer(customer_id))
    except (CartError, ValueError) as e:
        raise _http_error(e)


@router.get("/abandoned", response_model=List[CartOut])
def list_abandoned(
    hours: int = Query(ABANDONED_AFTER_HOURS, gt=0),
    store: CartStore = Depends(get_store),
):
    cutoff = utcnow() - timedelta(hours=hours)
    return [CartOut.from_cart(c) for c in CartLifecycleManager(store).find_abandoned(cutoff)]


@router.get("/statistics", response_model=CartStatisticsOut)
def statistics(
    hours: int = Query(ABANDONED_AFTER_HOURS, gt=0),
    store: CartStore = Depends(get_store),
):
    cutoff = utcnow() - timedelta(hours=hours)
    return CartLifecycleManager(store).get_statistics(cutoff)


@router.post("/maintenance/expire", response_model=ExpireOut)
def expire_guest_carts(store: CartStore = Depends(get_store)):
    return ExpireOut(deleted=CartLifecycleManager(store).expire_guest_carts())


@router.get("/{cart_id}", response_model=CartOut)
def get_cart(cart_id: UUID, store: CartStore = Depends(get_store)):
    try:
        return CartOut.from_cart(CartService(store).get_cart(cart_id))
    except (CartError, ValueError) as e:
        raise _http_error(e)


@router.post("/{cart_id}/lines", response_model=CartOut)
def add_line(cart_id: UUID, payload: LineIn, store: CartStore = Depends(get_store)):
    svc = CartService(store)
    try:
        cart = svc.add_line(
            cart_id=cart_id,
            product_id=payload.product_id,
            variant_id=payload.variant_id,
            quantity=payload.quantity,
            unit_price=payload.unit_price,
        )
    except (CartError, ValueError) as e:
        raise _http_error(e)
    return CartOut.from_cart(cart)


@router.patch("/{cart_id}/lines/{line_id}", response_model=CartOut)
def update_line(
    cart_id: UUID,
    line_id: UUID,
    payload: LineQuantityIn,
    store: CartStore = Depends(get_store),
):
    try:
        cart = CartService(store).update_line_quantity(cart_id, line_id, payload.quantity)
    except (CartError, ValueError) as e:
        raise _http_error(e)
    return CartOut.from_cart(cart)


@router.delete("/{cart_id}/lines/{line_id}", response_model=CartOut)
def remove_line(cart_id: UUID, line_id: UUID, store: CartStore = Depends(get_store)):
    try:
        cart = CartService(store).remove_line(cart_id, line_id)
    except (CartError, ValueError) as e:
        raise _http_error(e)
    return CartOut.from_cart(cart)


@router.post("/{cart_id}/notes", response_model=CartOut)
def update_notes(cart_id: UUID, payload: NotesIn, store: CartStore = Depends(get_store)):
    try:
        cart = CartLifecycleManager(store).update_notes(cart_id, payload.notes)
    except (CartError, ValueError) as e:
        raise _http_error(e)
    return CartOut.from_cart(cart)


@router.post("/{cart_id}/expiration", response_model=CartOut)
def set_expiration(cart_id: UUID, payload: ExpirationIn, store: CartStore = Depends(get_store)):
    try:
        cart = CartLifecycleManager(store).set_expiration(cart_id, payload.expires_at)
    except (CartError, ValueError) as e:
        raise _http_error(e)
    return CartOut.from_cart(cart)
