"""
Trial history storage.

Holds the historical trial signups the abuse guard compares new requests
against. Two implementations share the same interface: an in-memory store
for development and tests, and a Redis-backed store for deployments.
"""

import logging
import threading
from datetime import datetime
from typing import List, Optional, Protocol

from models.schemas import TrialRecord, utc_now
from utils.abuse_guard import email_domain, normalize_email

logger = logging.getLogger(__name__)

MAX_REDIS_TRIAL_RECORDS = 10000


class TrialHistoryStore(Protocol):
    """Read, append and remove access to historical trial records."""

    def list_trials(self) -> List[TrialRecord]:
        ...

    def add(self, record: TrialRecord) -> None:
        ...

    def remove(self, record: TrialRecord) -> None:
        ...


class InMemoryTrialHistoryStore:
    """
    In-memory storage for trial records.

    Records are lost on restart.
    """

    def __init__(self, records: Optional[List[TrialRecord]] = None):
        self._records: List[TrialRecord] = list(records or [])
        self._lock = threading.Lock()

    def list_trials(self) -> List[TrialRecord]:
        with self._lock:
            return list(self._records)

    def add(self, record: TrialRecord) -> None:
        with self._lock:
            self._records.append(record)

    def remove(self, record: TrialRecord) -> None:
        with self._lock:
            if record in self._records:
                self._records.remove(record)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


class RedisTrialHistoryStore:
    """Trial records as JSON entries in a capped Redis list, newest first."""

    def __init__(self, redis_client=None, key: str = "trials:history"):
        self._client = redis_client
        self.key = key

    @property
    def client(self):
        if self._client is None:
            from config.database import get_redis_client
            self._client = get_redis_client()
        return self._client

    def list_trials(self) -> List[TrialRecord]:
        records = []
        for raw in self.client.lrange(self.key, 0, -1):
            try:
                records.append(TrialRecord.model_validate_json(raw))
            except ValueError as e:
                logger.error(f"Skipping unreadable trial record: {e}")
        return records

    def add(self, record: TrialRecord) -> None:
        self.client.lpush(self.key, record.model_dump_json())
        self.client.ltrim(self.key, 0, MAX_REDIS_TRIAL_RECORDS - 1)

    def remove(self, record: TrialRecord) -> None:
        self.client.lrem(self.key, 1, record.model_dump_json())


def build_trial_record(
    email: str,
    device_fingerprint: str = "",
    ip_address: str = "",
    now: Optional[datetime] = None
) -> TrialRecord:
    return TrialRecord(
        email=email.strip(),
        normalized_email=normalize_email(email),
        device_fingerprint=device_fingerprint or "",
        ip_address=ip_address or "",
        domain=email_domain(email),
        created_at=now or utc_now()
    )


def record_trial(
    store: TrialHistoryStore,
    email: str,
    device_fingerprint: str = "",
    ip_address: str = "",
    now: Optional[datetime] = None
) -> TrialRecord:
    """Append a new trial signup to the store and return it."""
    record = build_trial_record(email, device_fingerprint, ip_address, now)
    store.add(record)
    logger.info(f"Recorded trial for {record.normalized_email}")
    return record


def get_trial_history_store() -> TrialHistoryStore:
    """Redis-backed store when Redis is reachable, else a process-local store."""
    try:
        from config.database import get_redis_client
        client = get_redis_client()
        return RedisTrialHistoryStore(client)
    except ConnectionError as e:
        logger.warning(f"Redis unavailable for trial history, using in-memory store: {e}")
        return InMemoryTrialHistoryStore()


def discard_trial(store: TrialHistoryStore, record: TrialRecord) -> None:
    """Remove a trial recorded for a report that did not complete."""
    store.remove(record)
    logger.info(f"Discarded trial for {record.normalized_email}")
