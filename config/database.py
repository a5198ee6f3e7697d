"""
Redis connection manager.

One pooled Redis client backs the shared state of the citation audit
service: per-account rate-limit windows and monthly quotas, the trial
history the abuse guard reads, cached analysis results for /report, and
per-account usage-cost totals.

Redis is optional. Callers catch ConnectionError and fall back to
process-local state or skip the write. After a failed connect no new
attempt is made for REDIS_RETRY_BACKOFF_SECONDS, so an outage costs one
connect timeout rather than one per provider call.
"""

import logging
import time
from typing import Optional

import redis
from redis import ConnectionPool

from config.settings import settings

logger = logging.getLogger(__name__)


# Singleton instances
_redis_client: Optional[redis.Redis] = None
_redis_pool: Optional[ConnectionPool] = None

# Monotonic time before which connects are not retried
_retry_not_before: float = 0.0


def get_redis_client() -> redis.Redis:
    """
    Get or create the shared Redis client.

    Returns:
        redis.Redis: Connected client (decoded responses)

    Raises:
        ConnectionError: If Redis is unreachable, or a recent attempt failed
            and the retry backoff has not elapsed
    """
    global _redis_client, _redis_pool, _retry_not_before

    if _redis_client is not None:
        return _redis_client

    now = time.monotonic()
    if now < _retry_not_before:
        raise ConnectionError(
            f"Redis unavailable; next connection attempt in {_retry_not_before - now:.0f}s"
        )

    try:
        _redis_pool = ConnectionPool(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            decode_responses=True,  # trial records and cached results are JSON text
            socket_connect_timeout=5,
            socket_timeout=5
        )
        client = redis.Redis(connection_pool=_redis_pool)
        client.ping()

    except Exception as e:
        _redis_pool = None
        _retry_not_before = time.monotonic() + settings.REDIS_RETRY_BACKOFF_SECONDS
        logger.error(
            f"❌ Redis at {settings.REDIS_HOST}:{settings.REDIS_PORT} unreachable "
            f"(retrying in {settings.REDIS_RETRY_BACKOFF_SECONDS:.0f}s): {e}"
        )
        raise ConnectionError(f"Redis connection failed: {e}")

    _redis_client = client
    _retry_not_before = 0.0
    logger.info(f"✅ Redis connected at {settings.REDIS_HOST}:{settings.REDIS_PORT} (rate limits, trials, reports)")
    return _redis_client


def test_connections() -> dict:
    """
    Check the Redis connection at startup.

    Returns:
        dict: ``{"redis": {"connected": bool, "error": str | None}}``
    """
    status = {
        "redis": {"connected": False, "error": None}
    }

    try:
        client = get_redis_client()
        client.ping()
        status["redis"]["connected"] = True
    except Exception as e:
        status["redis"]["error"] = str(e)

    return status


def close_connections():
    """
    Release the Redis client and pool. Call this on application shutdown.
    """
    global _redis_client, _redis_pool, _retry_not_before

    if _redis_client is not None:
        try:
            _redis_client.close()
            logger.info("Closed Redis client")
        except Exception as e:
            logger.error(f"Error closing Redis client: {e}")
        finally:
            _redis_client = None

    if _redis_pool is not None:
        try:
            _redis_pool.disconnect()
            logger.info("Closed Redis connection pool")
        except Exception as e:
            logger.error(f"Error closing Redis pool: {e}")
        finally:
            _redis_pool = None

    _retry_not_before = 0.0
