# cartmerge/utils/retry.py
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
import redis

from cartmerge.domain.errors import CartConcurrencyError
from cartmerge.utils.settings import MERGE_MAX_ATTEMPTS


def conflict_retry(attempts: int | None = None):
    #whole operation is re-run, last error goes back to the caller
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts or MERGE_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
        retry=retry_if_exception_type(CartConcurrencyError),
    )


def redis_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(redis.RedisError),
    )
