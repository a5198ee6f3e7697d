"""
Pytest fixtures for the citation audit tests.

Provider clients, content fetchers, clocks and stores are replaced with
in-process fakes so no test touches the network or Redis.
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import threading

import pytest

from agents.provider_clients import ProviderReply
from models.schemas import PageSummary
from utils.errors import CrawlFailure


class FakeClock:
    """Manually advanced clock (seconds since the epoch)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_client(replies, tokens: int = 100, calls=None, default: str = ""):
    """
    Build a fake provider client.

    ``replies`` maps prompt text to reply text (or to an exception instance
    to raise); unknown prompts get ``default``.
    """
    def client(prompt: str, timeout: float) -> ProviderReply:
        if calls is not None:
            calls.append(prompt)
        reply = replies.get(prompt, default)
        if isinstance(reply, BaseException):
            raise reply
        return ProviderReply(text=reply, tokens_used=tokens, model="fake-model")
    return client


def make_fetcher(pages, default=None, gate: threading.Event = None):
    """
    Build a fake content fetcher keyed by domain (``https://`` stripped).

    Values are PageSummary instances or exceptions to raise. When ``gate`` is
    given, fetches for domains missing from ``pages`` block until it is set.
    """
    def fetcher(url: str, timeout: float) -> PageSummary:
        domain = url.split("://", 1)[-1].rstrip("/")
        if domain.startswith("www."):
            domain = domain[4:]
        summary = pages.get(domain, default)
        if summary is None and gate is not None:
            gate.wait(5)
            raise CrawlFailure("gate released", url)
        if summary is None:
            raise CrawlFailure(f"no page for {domain}", url)
        if isinstance(summary, BaseException):
            raise summary
        return summary
    return fetcher


def page(url: str, title: str = "", description: str = "", headings=None, **extra) -> PageSummary:
    return PageSummary(
        url=url,
        title=title,
        meta_description=description,
        headings=headings or [],
        **extra
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def subject_page():
    return page(
        "https://greenleaf.com",
        title="GreenLeaf | Eco-friendly cleaning products",
        description="Sustainable, non-toxic cleaning supplies for homes and offices.",
        headings=["Cleaning products that care for the planet"],
        h1_count=1,
        structured_data_count=1
    )
