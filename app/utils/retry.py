# app/utils/retry.py
from tenacity import retry, stop_after_attempt, stop_after_delay, wait_exponential, retry_if_exception_type
from sqlalchemy.exc import OperationalError
import requests
import redis

from app.utils.settings import RESERVE_MAX_ATTEMPTS


def http_retry(max_delay: float | None = None):
    stop = stop_after_attempt(3)
    if max_delay is not None:
        # total budget across attempts
        stop = stop | stop_after_delay(max_delay)
    return retry(
        reraise=True,
        stop=stop,
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(requests.RequestException),
    )


def redis_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(redis.RedisError),
    )


def db_retry(attempts: int = RESERVE_MAX_ATTEMPTS):
    # transient store contention (lock timeouts, serialization failures, sqlite busy)
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
        retry=retry_if_exception_type(OperationalError),
    )
