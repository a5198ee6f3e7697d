"""
Tests for the trial abuse guard and the trial history store.
"""

from datetime import datetime, timedelta, timezone

import pytest

from models.schemas import AbuseCheckInput
from storage.trial_history import (
    InMemoryTrialHistoryStore,
    RedisTrialHistoryStore,
    build_trial_record,
    discard_trial,
    record_trial,
)
from utils.abuse_guard import (
    assess_trial_risk,
    email_similarity,
    get_alternative_options,
    is_disposable_email,
    levenshtein_distance,
    normalize_email,
    requires_payment_method,
)
from utils.errors import InputValidationError

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _record(email, device="", ip="", days_ago=10, hours_ago=0):
    return build_trial_record(email, device, ip, NOW - timedelta(days=days_ago, hours=hours_ago))


def test_email_normalization():
    assert normalize_email("john.doe+test@example.com") == normalize_email("johndoe@example.com")
    assert normalize_email("  John.Doe+Test@Example.COM ") == "johndoe@example.com"


def test_levenshtein_and_similarity():
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("", "abc") == 3
    assert email_similarity("alice@example.com", "alicia@example.com") == email_similarity("alicia@example.com", "alice@example.com")
    assert email_similarity("j.doe@example.com", "jdoe+x@example.com") == 1.0
    assert email_similarity("alice@example.com", "zed@other.org") < 0.8


def test_clean_request_is_allowed():
    assessment = assess_trial_risk(
        AbuseCheckInput(email="new@greenleaf.com", device_fingerprint="dev-1", ip_address="10.0.0.1"),
        [_record("someone@else.org", "dev-9", "10.9.9.9")],
        now=NOW
    )
    assert assessment.allowed
    assert assessment.risk_score == 0
    assert all(assessment.checks.values())
    assert not assessment.requires_payment_method
    assert assessment.alternative_options == []


def test_disposable_email_alone_is_allowed_but_needs_payment_method():
    assessment = assess_trial_risk(AbuseCheckInput(email="temp@mailinator.com"), [], now=NOW)

    assert is_disposable_email("temp@mailinator.com")
    assert assessment.allowed
    assert assessment.risk_score == 35
    assert assessment.checks["disposable_email"] is False
    assert assessment.requires_payment_method


def test_disposable_email_and_device_reuse_blocks():
    history = [
        _record("alice@gmail.com", device="dev-1"),
        _record("bob@yahoo.com", device="dev-1"),
    ]

    assessment = assess_trial_risk(
        AbuseCheckInput(email="carol@mailinator.com", device_fingerprint="dev-1"),
        history,
        now=NOW
    )

    assert not assessment.allowed
    assert assessment.risk_score == 65
    assert assessment.reason.startswith("Multiple trial attempts detected from this device")
    assert assessment.alternative_options == get_alternative_options()


def test_similar_email_only_counts_within_cooldown():
    check = AbuseCheckInput(email="john.doe+trial@example.com")

    recent = assess_trial_risk(check, [_record("johndoe@example.com", days_ago=10)], now=NOW)
    assert recent.checks["email_similarity"] is False
    assert recent.risk_score == 40
    assert recent.allowed

    old = assess_trial_risk(check, [_record("johndoe@example.com", days_ago=100)], now=NOW)
    assert old.checks["email_similarity"] is True
    assert old.risk_score == 0


def test_block_reason_follows_check_order():
    history = [_record("johndoe@example.com", ip="10.0.0.1", days_ago=5)] + [
        _record(f"user{i}@other.org", ip="10.0.0.1", days_ago=5) for i in range(2)
    ]

    assessment = assess_trial_risk(
        AbuseCheckInput(email="john.doe@example.com", ip_address="10.0.0.1"),
        history,
        now=NOW
    )

    assert not assessment.allowed
    assert assessment.risk_score == 65
    assert assessment.reason == (
        "You've recently used a trial with a similar email address. "
        "Please wait 90 days between trials."
    )


def test_ip_reuse_and_rapid_signups():
    history = [_record(f"user{i}@other.org", ip="10.0.0.1", days_ago=0, hours_ago=i + 1) for i in range(3)]

    assessment = assess_trial_risk(
        AbuseCheckInput(email="fresh@greenleaf.com", ip_address="10.0.0.1"),
        history,
        now=NOW
    )

    assert assessment.checks["ip_address"] is False
    assert assessment.checks["time_pattern"] is False
    assert assessment.risk_score == 45
    assert assessment.allowed


def test_ip_reuse_alone_does_not_require_payment_method():
    history = [_record(f"user{i}@other.org", ip="10.0.0.1") for i in range(3)]
    assessment = assess_trial_risk(
        AbuseCheckInput(email="fresh@greenleaf.com", ip_address="10.0.0.1"), history, now=NOW
    )
    assert assessment.risk_score == 25
    assert not assessment.requires_payment_method
    assert requires_payment_method(26)


def test_naive_history_timestamps_are_accepted():
    record = _record("johndoe@example.com").model_copy(update={"created_at": datetime(2024, 5, 30)})
    assessment = assess_trial_risk(AbuseCheckInput(email="johndoe@example.com"), [record], now=NOW)
    assert assessment.checks["email_similarity"] is False


def test_invalid_email_rejected():
    with pytest.raises(InputValidationError):
        assess_trial_risk(AbuseCheckInput(email="not-an-email"), [], now=NOW)


def test_trial_store_records_and_lists():
    store = InMemoryTrialHistoryStore()

    record = record_trial(store, "Jane.Doe+promo@Example.com", "dev-1", "10.0.0.2", now=NOW)

    assert record.normalized_email == "janedoe@example.com"
    assert record.domain == "example.com"
    assert store.list_trials() == [record]

    store.clear()
    assert store.list_trials() == []


class FakeRedisList:
    """Just enough of the redis-py list commands for the trial store."""

    def __init__(self):
        self.lists = {}

    def lpush(self, key, value):
        self.lists.setdefault(key, []).insert(0, value)

    def ltrim(self, key, start, stop):
        self.lists[key] = self.lists.get(key, [])[start:stop + 1]

    def lrange(self, key, start, stop):
        items = self.lists.get(key, [])
        return items[start:] if stop == -1 else items[start:stop + 1]

    def lrem(self, key, count, value):
        items = self.lists.get(key, [])
        if value in items:
            items.remove(value)
            return 1
        return 0


def test_redis_trial_store_records_and_discards():
    redis_client = FakeRedisList()
    store = RedisTrialHistoryStore(redis_client)

    first = record_trial(store, "owner@greenleaf.com", "dev-1", "10.0.0.2", now=NOW)
    second = record_trial(store, "jane@example.com", "dev-2", "10.0.0.3", now=NOW)
    redis_client.lpush("trials:history", "not json")

    assert [t.email for t in store.list_trials()] == ["jane@example.com", "owner@greenleaf.com"]

    discard_trial(store, second)
    assert store.list_trials() == [first]
