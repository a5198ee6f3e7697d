"""
Per-account usage limits.

Two independent gates keyed by account id:

- Per-minute gate: fixed window (default 60 s, 10 requests). A new window
  starts on the first request after the previous one expired; requests over
  capacity are rejected with the seconds left in the window.
- Monthly gate: a counter per calendar month (UTC) compared against the
  plan's ceiling; usage at or above the ceiling is rejected until the first
  day of the next month. A request reserves its slot with an atomic
  increment when it is admitted and gives it back if the analysis fails,
  so concurrent requests from one account cannot overshoot the ceiling.

Administrative accounts bypass both gates. Counter state lives in an
injected store so the limiter itself holds no process-wide state.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Dict, Optional

from config.settings import settings
from models.schemas import AccountContext, RateLimitDecision
from utils.errors import RateLimitExceeded

logger = logging.getLogger(__name__)

MONTHLY_KEY_TTL_SECONDS = 35 * 24 * 3600


@dataclass
class WindowOutcome:
    allowed: bool
    count: int
    reset_at: float


class InMemoryRateLimitStore:
    """
    Process-local store with one lock per key.

    Locks only guard dictionary state; nothing here performs I/O.
    """

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._windows: Dict[str, WindowOutcome] = {}
        self._counters: Dict[str, int] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def hit_window(self, key: str, capacity: int, window_seconds: int, now: float) -> WindowOutcome:
        with self._lock_for(key):
            entry = self._windows.get(key)
            if entry is None or now > entry.reset_at:
                entry = WindowOutcome(allowed=True, count=1, reset_at=now + window_seconds)
                self._windows[key] = entry
                return WindowOutcome(True, entry.count, entry.reset_at)

            if entry.count < capacity:
                entry.count += 1
                return WindowOutcome(True, entry.count, entry.reset_at)

            return WindowOutcome(False, entry.count, entry.reset_at)

    def get_counter(self, key: str) -> int:
        with self._lock_for(key):
            return self._counters.get(key, 0)

    def increment_counter(self, key: str, ttl_seconds: int) -> int:
        with self._lock_for(key):
            self._counters[key] = self._counters.get(key, 0) + 1
            return self._counters[key]

    def decrement_counter(self, key: str) -> int:
        with self._lock_for(key):
            self._counters[key] = max(0, self._counters.get(key, 0) - 1)
            return self._counters[key]


class RedisRateLimitStore:
    """
    Redis-backed store shared across processes.

    Windows use atomic INCR with a PEXPIRE set on the first hit, so the
    window is bounded by Redis's clock rather than the caller's.
    """

    def __init__(self, redis_client=None, prefix: str = "rate_limit"):
        self._client = redis_client
        self.prefix = prefix

    @property
    def client(self):
        if self._client is None:
            from config.database import get_redis_client
            self._client = get_redis_client()
        return self._client

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def hit_window(self, key: str, capacity: int, window_seconds: int, now: float) -> WindowOutcome:
        redis_key = self._key(key)
        count = self.client.incr(redis_key)
        if count == 1:
            self.client.pexpire(redis_key, window_seconds * 1000)

        ttl_ms = self.client.pttl(redis_key)
        if ttl_ms is None or ttl_ms < 0:
            # Key lost its expiry (e.g. crash between INCR and PEXPIRE)
            self.client.pexpire(redis_key, window_seconds * 1000)
            ttl_ms = window_seconds * 1000

        return WindowOutcome(allowed=count <= capacity, count=count, reset_at=now + ttl_ms / 1000)

    def get_counter(self, key: str) -> int:
        value = self.client.get(self._key(key))
        return int(value) if value else 0

    def increment_counter(self, key: str, ttl_seconds: int) -> int:
        redis_key = self._key(key)
        count = self.client.incr(redis_key)
        if count == 1:
            self.client.expire(redis_key, ttl_seconds)
        return count

    def decrement_counter(self, key: str) -> int:
        return self.client.decr(self._key(key))


def monthly_quota_allows(used: int, ceiling: int) -> bool:
    """Usage strictly below the ceiling is allowed."""
    return used < ceiling


def next_month_start(today: date) -> date:
    if today.month == 12:
        return date(today.year + 1, 1, 1)
    return date(today.year, today.month + 1, 1)


class UsageLimiter:
    """Evaluates the per-minute and monthly gates for an account."""

    def __init__(
        self,
        store=None,
        per_minute: Optional[int] = None,
        window_seconds: Optional[int] = None,
        monthly_limits: Optional[Dict[str, int]] = None,
        admin_account_ids=None,
        clock: Callable[[], float] = time.time
    ):
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.per_minute = per_minute if per_minute is not None else settings.RATE_LIMIT_PER_MINUTE
        self.window_seconds = window_seconds if window_seconds is not None else settings.RATE_LIMIT_WINDOW_SECONDS
        self.monthly_limits = dict(monthly_limits if monthly_limits is not None else settings.MONTHLY_LIMITS)
        self.admin_account_ids = set(admin_account_ids if admin_account_ids is not None else settings.ADMIN_ACCOUNT_IDS)
        self.clock = clock

    def is_admin(self, account: AccountContext) -> bool:
        return account.is_admin or account.account_id in self.admin_account_ids

    def monthly_ceiling(self, plan: str) -> int:
        if plan in self.monthly_limits:
            return self.monthly_limits[plan]
        return self.monthly_limits.get(settings.DEFAULT_PLAN, 0)

    def _month_key(self, account_id: str, now: float) -> str:
        month = datetime.fromtimestamp(now, tz=timezone.utc).strftime("%Y-%m")
        return f"monthly:{account_id}:{month}"

    def check_minute(self, account_id: str) -> RateLimitDecision:
        """Consume one slot of the per-minute window (if available)."""
        now = self.clock()
        outcome = self.store.hit_window(f"minute:{account_id}", self.per_minute, self.window_seconds, now)

        if outcome.allowed:
            return RateLimitDecision(
                allowed=True,
                scope="minute",
                limit=self.per_minute,
                remaining=max(0, self.per_minute - outcome.count),
                reset_at=outcome.reset_at
            )

        retry_after = max(1, math.ceil(outcome.reset_at - now))
        return RateLimitDecision(
            allowed=False,
            scope="minute",
            limit=self.per_minute,
            remaining=0,
            reset_at=outcome.reset_at,
            retry_after=retry_after
        )

    def monthly_usage(self, account_id: str) -> int:
        """Analyses counted against this month's quota, reservations included."""
        return self.store.get_counter(self._month_key(account_id, self.clock()))

    def reserve_monthly(self, account_id: str, plan: str) -> RateLimitDecision:
        """
        Take one slot of this month's quota.

        The increment is atomic, so concurrent callers for one account each
        see a distinct count; a count past the ceiling is handed back at once.
        """
        now = self.clock()
        ceiling = self.monthly_ceiling(plan)
        quota_key = self._month_key(account_id, now)
        reset_date = next_month_start(datetime.fromtimestamp(now, tz=timezone.utc).date())

        used = self.store.increment_counter(quota_key, MONTHLY_KEY_TTL_SECONDS)
        if not monthly_quota_allows(used - 1, ceiling):
            self.store.decrement_counter(quota_key)
            return RateLimitDecision(
                allowed=False,
                scope="monthly",
                limit=ceiling,
                remaining=0,
                reset_date=reset_date
            )

        return RateLimitDecision(
            allowed=True,
            scope="monthly",
            limit=ceiling,
            remaining=max(0, ceiling - used),
            reset_date=reset_date,
            quota_key=quota_key
        )

    def check_request(self, account: AccountContext) -> RateLimitDecision:
        """
        Gate one analysis request, reserving a monthly slot when admitted.

        Pass the returned decision to ``release_analysis`` if the analysis
        does not complete.

        Raises:
            RateLimitExceeded: If either gate rejects the request
        """
        if self.is_admin(account):
            logger.debug(f"Admin account {account.account_id} bypasses usage limits")
            return RateLimitDecision(allowed=True, scope="admin")

        monthly = self.reserve_monthly(account.account_id, account.plan)
        if not monthly.allowed:
            logger.warning(f"Monthly limit reached for {account.account_id} ({monthly.limit} on {account.plan})")
            raise RateLimitExceeded(
                f"Monthly analysis limit reached ({monthly.limit} on the {account.plan} plan). "
                f"Resets on {monthly.reset_date.isoformat()}.",
                scope="monthly",
                reset_date=monthly.reset_date
            )

        minute = self.check_minute(account.account_id)
        if not minute.allowed:
            self.release_analysis(monthly)
            logger.warning(f"Per-minute limit reached for {account.account_id}; retry in {minute.retry_after}s")
            raise RateLimitExceeded(
                f"Too many requests. Please try again in {minute.retry_after} seconds.",
                scope="minute",
                retry_after=minute.retry_after
            )

        return monthly

    def release_analysis(self, reservation: RateLimitDecision) -> None:
        """Give back a monthly slot taken by ``check_request``."""
        if not reservation.quota_key:
            return
        self.store.decrement_counter(reservation.quota_key)
        logger.info(f"Released monthly slot on {reservation.quota_key}")
