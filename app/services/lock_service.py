import redis
from app.utils.settings import REDIS_URL
from app.utils.retry import redis_retry
from app.utils.logging import get_logger

logger = get_logger(__name__)

_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

# GET + compare + DEL run as one script, so a lock that expired and was
# re-acquired by another checkout is never deleted by the old owner


class LockService:
    """
    -per-user checkout lock (one checkout at a time for a user)
    -release only by the owner token
    -TTL so a crashed worker never keeps the lock
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def checkout_key(user_id: int) -> str:
        return f"checkout:user:{user_id}:lock"

    @redis_retry()
    def acquire_checkout_lock(self, user_id: int, token: str, ttl: int) -> bool:
        key = self.checkout_key(user_id)
        logger.info(f"Acquire lock {key} for checkout {token}")
        #SET checkout:user:1:lock "<token>" NX EX 30
        return bool(
            self.redis.set(
                name=key,
                value=token,
                nx=True,  # only when nobody holds it
                ex=ttl,
            )
        )

    @redis_retry()
    def release_checkout_lock(self, user_id: int, token: str) -> bool:
        key = self.checkout_key(user_id)
        logger.info(f"Release lock {key} for checkout {token}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)
