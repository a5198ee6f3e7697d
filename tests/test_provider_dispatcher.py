"""
Tests for the provider clients and the concurrent query dispatcher.
"""

import threading
import time

import pytest
import requests

from conftest import make_client
from agents import provider_clients
from agents.provider_clients import calculate_cost, classify_error, query_openai, query_perplexity
from agents.provider_dispatcher import dispatch_queries
from models.schemas import PromptSpec, QueryType
from utils.cancellation import CancelToken
from utils.errors import AnalysisCancelled, ProviderQueryFailure

PROMPTS = [
    PromptSpec(id="p1", text="What does GreenLeaf do?", query_type=QueryType.WHAT_DOES),
    PromptSpec(id="p2", text="Best alternatives to GreenLeaf?"),
]


def test_results_are_ordered_prompt_major_with_tombstones():
    clients = {
        "openai": make_client({"What does GreenLeaf do?": "greenleaf.com sells eco cleaners."}),
        "perplexity": make_client({"What does GreenLeaf do?": TimeoutError("slow")}, default="Try sparkleclean.com"),
    }

    responses = dispatch_queries(PROMPTS, ["openai", "perplexity"], "https://greenleaf.com", "GreenLeaf", clients=clients)

    assert [(r.prompt_id, r.provider) for r in responses] == [
        ("p1", "openai"), ("p1", "perplexity"), ("p2", "openai"), ("p2", "perplexity"),
    ]
    assert responses[0].is_cited
    assert responses[1].error == "timeout"
    assert responses[1].is_cited is False
    assert responses[1].response_text == ""
    assert responses[3].competitors[0].domain == "sparkleclean.com"
    assert responses[2].query_type == QueryType.ALTERNATIVES


def test_error_tags():
    assert classify_error(TimeoutError()) == "timeout"
    assert classify_error(requests.Timeout()) == "timeout"
    assert classify_error(ConnectionError()) == "transport"
    assert classify_error(ProviderQueryFailure("bad key", tag="auth")) == "auth"
    assert classify_error(AnalysisCancelled()) == "cancelled"
    assert classify_error(RuntimeError("boom")) == "provider_error"


def test_unknown_client_becomes_tombstone():
    responses = dispatch_queries(PROMPTS[:1], ["anthropic"], "greenleaf.com", clients={})
    assert responses[0].error == "provider_error"


def test_usage_callback_called_per_success_and_errors_tolerated():
    charges = []

    def callback(account_id, provider, tokens, cost):
        charges.append((account_id, provider, tokens, cost))
        raise RuntimeError("billing backend down")

    clients = {
        "openai": make_client({"Best alternatives to GreenLeaf?": RuntimeError("boom")}, tokens=1000, default="ok"),
    }
    responses = dispatch_queries(
        PROMPTS, ["openai"], "greenleaf.com",
        clients=clients, account_id="acct_1", usage_callback=callback
    )

    assert charges == [("acct_1", "openai", 1000, 0.022)]
    assert responses[0].cost == 0.022
    assert responses[1].error == "provider_error"


def test_slow_usage_callback_does_not_cancel_finished_answers():
    charges = []

    def slow_callback(account_id, provider, tokens, cost):
        time.sleep(0.3)
        charges.append((account_id, provider))

    token = CancelToken(deadline_seconds=0.2)
    responses = dispatch_queries(
        PROMPTS, ["openai"], "greenleaf.com",
        clients={"openai": make_client({}, default="ok")},
        account_id="acct_1", usage_callback=slow_callback, cancel_token=token
    )

    assert not any(r.failed for r in responses)
    assert charges == [("acct_1", "openai"), ("acct_1", "openai")]


def test_cancelled_token_abandons_in_flight_pairs():
    release = threading.Event()

    def slow_client(prompt, timeout):
        release.wait(5)
        return provider_clients.ProviderReply(text="late")

    token = CancelToken()
    token.cancel()
    try:
        responses = dispatch_queries(PROMPTS, ["openai"], "greenleaf.com", clients={"openai": slow_client}, cancel_token=token)
    finally:
        release.set()

    assert [r.error for r in responses] == ["cancelled", "cancelled"]


def test_expired_deadline_records_cancelled_tombstones():
    release = threading.Event()

    def slow_client(prompt, timeout):
        release.wait(5)
        return provider_clients.ProviderReply(text="late")

    token = CancelToken(deadline_seconds=0.2)
    try:
        responses = dispatch_queries(PROMPTS[:1], ["openai"], "greenleaf.com", clients={"openai": slow_client}, cancel_token=token)
    finally:
        release.set()

    assert responses[0].error == "cancelled"


def test_calculate_cost():
    assert calculate_cost("openai", 1000) == 0.022
    assert calculate_cost("openai", 0) == 0.0
    assert calculate_cost("unknown", 1000) == 0.0


def test_missing_api_key_is_auth_failure(monkeypatch):
    monkeypatch.setattr(provider_clients.settings, "OPENAI_API_KEY", "")
    with pytest.raises(ProviderQueryFailure) as excinfo:
        query_openai("hello", 5)
    assert excinfo.value.tag == "auth"


class _FakeResponse:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


def test_perplexity_citations_become_sources(monkeypatch):
    captured = {}

    def fake_post(url, headers=None, json=None, timeout=None):
        captured["url"] = url
        captured["timeout"] = timeout
        return _FakeResponse(200, {
            "model": "sonar",
            "choices": [{"message": {"content": "Try sparkleclean.com"}}],
            "usage": {"total_tokens": 250},
            "citations": ["https://sparkleclean.com/eco", "https://ecohome.io"],
        })

    monkeypatch.setattr(provider_clients.settings, "PERPLEXITY_API_KEY", "pplx-test")
    monkeypatch.setattr(provider_clients.requests, "post", fake_post)

    reply = query_perplexity("Best eco cleaners?", 7.5)

    assert captured["url"].endswith("/chat/completions")
    assert captured["timeout"] == 7.5
    assert reply.text == "Try sparkleclean.com"
    assert reply.tokens_used == 250
    assert reply.sources == ["https://sparkleclean.com/eco", "https://ecohome.io"]


def test_perplexity_rejected_credentials(monkeypatch):
    monkeypatch.setattr(provider_clients.settings, "PERPLEXITY_API_KEY", "pplx-test")
    monkeypatch.setattr(provider_clients.requests, "post", lambda *a, **kw: _FakeResponse(401))

    with pytest.raises(ProviderQueryFailure) as excinfo:
        query_perplexity("hello", 5)
    assert excinfo.value.tag == "auth"
