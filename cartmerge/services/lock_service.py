import redis

from cartmerge.utils.retry import redis_retry
from cartmerge.utils.settings import REDIS_URL
from cartmerge.utils.logging import get_logger

logger = get_logger(__name__)

#compare and delete in one step, a lock is only released by its holder
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    -per-customer merge lock (SET NX EX)
    -release only by the token that took it (lua)
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(customer_id) -> str:
        return f"cart:merge:{customer_id}:lock"

    @redis_retry()
    def acquire_merge_lock(self, customer_id, token: str, ttl: int) -> bool:
        key = self._key(customer_id)
        logger.info(f"Acquire lock {key}")
        #SET cart:merge:<customer>:lock <token> NX EX <ttl>
        return bool(
            self.redis.set(
                name=key,
                value=token,
                nx=True,
                ex=ttl, #expires on its own if the holder dies mid merge
            )
        )

    @redis_retry()
    def release_merge_lock(self, customer_id, token: str) -> bool:
        key = self._key(customer_id)
        logger.info(f"Release lock {key}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)
