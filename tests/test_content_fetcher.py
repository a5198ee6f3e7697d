"""
Tests for homepage summarization.
"""

import pytest
import requests

from agents import content_fetcher
from agents.content_fetcher import fetch_page_summary, normalize_url, parse_page_summary
from utils.errors import CrawlFailure

HOMEPAGE = """
<html>
<head>
  <title> GreenLeaf | Eco cleaning </title>
  <meta name="description" content="  Plant-based cleaning supplies delivered to your door. ">
  <script type="application/ld+json">{"@context": "https://schema.org", "@type": "Organization", "name": "GreenLeaf"}</script>
  <script type="application/ld+json">{"@graph": [{"@type": "WebSite"}, {"@type": "FAQPage"}]}</script>
  <script type="application/ld+json">{ not json </script>
</head>
<body>
  <h1>Clean homes, <em>clean planet</em></h1>
  <h2>How do refills work?</h2>
  <h3>   </h3>
  <h2>Shipping</h2>
</body>
</html>
"""


def test_parse_page_summary():
    summary = parse_page_summary(HOMEPAGE, "https://greenleaf.com")

    assert summary.title == "GreenLeaf | Eco cleaning"
    assert summary.meta_description == "Plant-based cleaning supplies delivered to your door."
    assert summary.headings == ["Clean homes, clean planet", "How do refills work?", "Shipping"]
    assert summary.h1_count == 1
    assert summary.structured_data_count == 2
    assert summary.has_faq_schema
    assert summary.has_content


def test_og_description_fallback_and_empty_page():
    summary = parse_page_summary(
        '<html><head><meta property="og:description" content="Eco refills"></head></html>',
        "https://greenleaf.com"
    )
    assert summary.meta_description == "Eco refills"
    assert not summary.has_faq_schema

    empty = parse_page_summary("", "https://greenleaf.com")
    assert not empty.has_content
    assert empty.structured_data_count == 0


def test_normalize_url():
    assert normalize_url("greenleaf.com") == "https://greenleaf.com"
    assert normalize_url(" http://greenleaf.com ") == "http://greenleaf.com"


class _FakeResponse:
    def __init__(self, text="", status_code=200):
        self.text = text
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


def test_fetch_page_summary(monkeypatch):
    seen = {}

    def fake_get(url, headers=None, timeout=None, allow_redirects=True):
        seen["url"] = url
        seen["timeout"] = timeout
        return _FakeResponse(HOMEPAGE)

    monkeypatch.setattr(content_fetcher.requests, "get", fake_get)

    summary = fetch_page_summary("greenleaf.com", timeout=3)

    assert seen == {"url": "https://greenleaf.com", "timeout": 3}
    assert summary.url == "https://greenleaf.com"
    assert summary.title.startswith("GreenLeaf")


@pytest.mark.parametrize("failure", [
    requests.Timeout("read timed out"),
    requests.ConnectionError("refused"),
])
def test_fetch_errors_become_crawl_failures(monkeypatch, failure):
    def fake_get(*args, **kwargs):
        raise failure

    monkeypatch.setattr(content_fetcher.requests, "get", fake_get)

    with pytest.raises(CrawlFailure) as excinfo:
        fetch_page_summary("https://greenleaf.com", timeout=1)
    assert excinfo.value.url == "https://greenleaf.com"


def test_http_error_status_is_crawl_failure(monkeypatch):
    monkeypatch.setattr(content_fetcher.requests, "get", lambda *a, **kw: _FakeResponse(status_code=503))

    with pytest.raises(CrawlFailure):
        fetch_page_summary("https://greenleaf.com", timeout=1)


def test_firecrawl_requires_api_key(monkeypatch):
    monkeypatch.setattr(content_fetcher.settings, "FIRECRAWL_API_KEY", "")
    assert content_fetcher.get_content_fetcher() is fetch_page_summary

    with pytest.raises(CrawlFailure):
        content_fetcher.fetch_page_summary_firecrawl("https://greenleaf.com", timeout=1)
