"""
Tests for the shared Redis connection and its reconnect backoff.
"""

from types import SimpleNamespace

import pytest
import redis

from conftest import FakeClock
from config import database
from utils.cache import record_usage_cost


@pytest.fixture
def connector(monkeypatch):
    """Fresh connection state with a fake clock and a scriptable Redis class."""
    clock = FakeClock(start=1000.0)
    state = {"reachable": False, "attempts": 0, "clock": clock}

    class ScriptedRedis:
        def __init__(self, connection_pool=None):
            state["attempts"] += 1

        def ping(self):
            if not state["reachable"]:
                raise redis.ConnectionError("connection refused")
            return True

    monkeypatch.setattr(database, "_redis_client", None)
    monkeypatch.setattr(database, "_redis_pool", None)
    monkeypatch.setattr(database, "_retry_not_before", 0.0)
    monkeypatch.setattr(database, "ConnectionPool", lambda **kwargs: SimpleNamespace(**kwargs))
    monkeypatch.setattr(database.redis, "Redis", ScriptedRedis)
    monkeypatch.setattr(database, "time", SimpleNamespace(monotonic=clock))
    monkeypatch.setattr(database.settings, "REDIS_RETRY_BACKOFF_SECONDS", 30.0)
    return state


def test_failed_connect_is_not_retried_until_backoff_elapses(connector):
    with pytest.raises(ConnectionError):
        database.get_redis_client()

    with pytest.raises(ConnectionError) as excinfo:
        database.get_redis_client()
    assert "next connection attempt" in str(excinfo.value)
    assert connector["attempts"] == 1

    connector["clock"].advance(31)
    with pytest.raises(ConnectionError):
        database.get_redis_client()
    assert connector["attempts"] == 2


def test_usage_recording_fails_fast_during_outage(connector):
    with pytest.raises(ConnectionError):
        database.get_redis_client()

    for _ in range(5):
        assert record_usage_cost("acct_1", "openai", 100, 0.0022) is False
    assert connector["attempts"] == 1


def test_recovered_connection_is_reused(connector):
    with pytest.raises(ConnectionError):
        database.get_redis_client()

    connector["reachable"] = True
    connector["clock"].advance(31)

    client = database.get_redis_client()
    assert database.get_redis_client() is client
    assert connector["attempts"] == 2
    assert database.test_connections() == {"redis": {"connected": True, "error": None}}
