# app/services/lock_service.py
import uuid
from contextlib import contextmanager

import redis

from app.domain.errors import ConcurrencyConflict
from app.utils.retry import redis_retry
from app.utils.settings import REDIS_URL
from app.utils.logging import get_logger

logger = get_logger(__name__)

# compare-and-delete in one Lua call: nothing can run between GET and DEL,
# so a lock that expired and was taken by someone else is never released by us
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    Short-lived Redis locks (SET NX EX) guarding multi-cart operations.
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @redis_retry()
    def acquire(self, key: str, token: str, ttl: int) -> bool:
        logger.info(f"Acquire lock {key}")
        return bool(self.redis.set(name=key, value=token, nx=True, ex=ttl))

    @redis_retry()
    def release(self, key: str, token: str) -> bool:
        logger.info(f"Release lock {key}")
        return bool(self.redis.eval(_RELEASE_LUA, 1, key, token))

    @contextmanager
    def hold(self, key: str, ttl: int):
        token = uuid.uuid4().hex
        if not self.acquire(key, token, ttl):
            raise ConcurrencyConflict(f"Operation already in progress ({key})")
        try:
            yield
        finally:
            self.release(key, token)


def merge_lock_key(session_id: str) -> str:
    return f"cart:merge:{session_id}:lock"
