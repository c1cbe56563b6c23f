# cartmerge/celery_worker.py
from celery import Celery

from cartmerge.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "cartmerge",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

#tasks have to be imported explicitly for the worker to register them
celery_app.conf.imports = (
    "cartmerge.tasks.expire",
)

celery_app.conf.beat_schedule = {
    "expire-guest-carts-hourly": {
        "task": "cartmerge.tasks.expire.expire_guest_carts_task",
        "schedule": 3600.0,
    },
}

celery_app.conf.timezone = "UTC"
