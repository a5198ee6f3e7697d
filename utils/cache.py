"""
Redis caching utilities for analysis results and usage-cost accounting.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from config.database import get_redis_client
from config.settings import settings
from models.schemas import AnalysisResult

logger = logging.getLogger(__name__)

USAGE_KEY_TTL = 35 * 24 * 3600  # a little over one billing month


def get_cache_key(prefix: str, *args) -> str:
    """
    Generate a cache key from prefix and arguments.

    Args:
        prefix: Key prefix (e.g., 'analysis', 'usage')
        *args: Additional arguments to include in key

    Returns:
        str: Generated cache key
    """
    key_parts = [prefix] + [str(arg) for arg in args]
    return ":".join(key_parts)


def cache_analysis_result(result: AnalysisResult, ttl: Optional[int] = None, redis_client=None) -> bool:
    """
    Cache a finished analysis result by its id.

    Returns:
        bool: True if cached successfully
    """
    try:
        redis_client = redis_client or get_redis_client()
        cache_key = get_cache_key("analysis", result.analysis_id)
        ttl = ttl or settings.RESULT_CACHE_TTL

        redis_client.setex(cache_key, ttl, result.model_dump_json())
        logger.debug(f"Cached analysis result {result.analysis_id}")
        return True

    except Exception as e:
        logger.error(f"Error caching analysis result: {e}")
        return False


def get_cached_analysis(analysis_id: str, redis_client=None) -> Optional[AnalysisResult]:
    """
    Get a cached analysis result.

    Returns:
        AnalysisResult or None if not found (or Redis is unavailable)
    """
    try:
        redis_client = redis_client or get_redis_client()
        cached = redis_client.get(get_cache_key("analysis", analysis_id))
        if cached:
            logger.debug(f"Cache HIT for analysis {analysis_id}")
            return AnalysisResult.model_validate_json(cached)

        logger.debug(f"Cache MISS for analysis {analysis_id}")
        return None

    except Exception as e:
        logger.error(f"Error getting cached analysis: {e}")
        return None


def record_usage_cost(
    account_id: Optional[str],
    provider: str,
    tokens: int,
    cost: float,
    redis_client=None
) -> bool:
    """
    Add one provider call's tokens and cost to the account's monthly totals.

    Totals are kept in a hash per account and month
    (``usage:<account>:<YYYY-MM>``) with one field pair per provider.

    Returns:
        bool: True if recorded successfully
    """
    if not account_id:
        return False

    try:
        redis_client = redis_client or get_redis_client()
        month = datetime.now(timezone.utc).strftime("%Y-%m")
        usage_key = get_cache_key("usage", account_id, month)

        redis_client.hincrby(usage_key, f"{provider}:tokens", tokens)
        redis_client.hincrbyfloat(usage_key, f"{provider}:cost", cost)
        redis_client.hincrby(usage_key, f"{provider}:calls", 1)
        redis_client.expire(usage_key, USAGE_KEY_TTL)
        return True

    except Exception as e:
        logger.error(f"Error recording usage cost: {e}")
        return False


def get_usage_totals(account_id: str, month: Optional[str] = None, redis_client=None) -> dict:
    """
    Get an account's usage totals for a month (defaults to the current month).

    Returns:
        dict: Field -> value (e.g. ``{"openai:tokens": 1200, "openai:cost": 0.0288}``)
    """
    try:
        redis_client = redis_client or get_redis_client()
        month = month or datetime.now(timezone.utc).strftime("%Y-%m")
        raw = redis_client.hgetall(get_cache_key("usage", account_id, month))

        totals = {}
        for field, value in raw.items():
            totals[field] = float(value) if field.endswith(":cost") else int(value)
        return totals

    except Exception as e:
        logger.error(f"Error getting usage totals: {e}")
        return {}
