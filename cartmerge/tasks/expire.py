# cartmerge/tasks/expire.py
from cartmerge.celery_worker import celery_app
from cartmerge.data.database import session_scope
from cartmerge.repos.cart_repo import SqlCartRepo
from cartmerge.services.lifecycle_service import CartLifecycleManager
from cartmerge.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="cartmerge.tasks.expire.expire_guest_carts_task")
def expire_guest_carts_task() -> int:
    logger.info("Expire guest carts task started")

    with session_scope() as db:
        deleted = CartLifecycleManager(SqlCartRepo(db)).expire_guest_carts()

    logger.info(f"Expired {deleted} guest carts")
    return deleted
