"""
Content Fetcher

Fetches a lightweight summary of a homepage: title, meta description,
heading text and structured-data count. Used for the subject site's
crawl-derived signals and for competitor validation.

Two fetchers are available: a direct ``requests`` + BeautifulSoup fetch, and
a Firecrawl-backed fetch used when a Firecrawl API key is configured. Both
raise CrawlFailure on any error so callers can decide on a degraded path.
"""

import json
import logging
from typing import Callable, List, Optional, Tuple

import requests
from bs4 import BeautifulSoup

from config.settings import settings
from models.schemas import PageSummary
from utils.errors import CrawlFailure

logger = logging.getLogger(__name__)

MAX_HEADINGS = 20
USER_AGENT = "Mozilla/5.0 (compatible; CitationAuditBot/1.0)"

ContentFetcher = Callable[[str, float], PageSummary]


def normalize_url(url: str) -> str:
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


def _count_json_ld(soup: BeautifulSoup) -> Tuple[int, bool]:
    """Return (number of JSON-LD objects, whether any is an FAQPage)."""
    count = 0
    has_faq = False
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except (json.JSONDecodeError, TypeError) as e:
            logger.debug(f"Failed to parse JSON-LD: {e}")
            continue

        items = data if isinstance(data, list) else [data]
        for item in items:
            if not isinstance(item, dict):
                continue
            count += 1
            graph = item.get("@graph")
            nodes = graph if isinstance(graph, list) else [item]
            for node in nodes:
                node_type = node.get("@type") if isinstance(node, dict) else None
                types = node_type if isinstance(node_type, list) else [node_type]
                if "FAQPage" in types:
                    has_faq = True
    return count, has_faq


def parse_page_summary(html: str, url: str) -> PageSummary:
    """Parse raw HTML into a PageSummary."""
    soup = BeautifulSoup(html or "", "html.parser")

    title = soup.title.get_text(strip=True) if soup.title else ""

    meta_description = ""
    meta = soup.find("meta", attrs={"name": "description"}) or soup.find("meta", attrs={"property": "og:description"})
    if meta and meta.get("content"):
        meta_description = meta["content"].strip()

    headings: List[str] = []
    for tag in soup.find_all(["h1", "h2", "h3"]):
        text = tag.get_text(" ", strip=True)
        if text:
            headings.append(text)
        if len(headings) >= MAX_HEADINGS:
            break

    structured_data_count, has_faq_schema = _count_json_ld(soup)

    return PageSummary(
        url=url,
        title=title,
        meta_description=meta_description,
        headings=headings,
        h1_count=len(soup.find_all("h1")),
        structured_data_count=structured_data_count,
        has_faq_schema=has_faq_schema
    )


def fetch_page_summary(url: str, timeout: Optional[float] = None) -> PageSummary:
    """
    Fetch and summarize a homepage with requests + BeautifulSoup.

    Args:
        url: Page URL or bare domain
        timeout: Request timeout in seconds (defaults to CONTENT_FETCH_TIMEOUT_SECONDS)

    Raises:
        CrawlFailure: On timeout, transport error or non-2xx status
    """
    url = normalize_url(url)
    timeout = timeout if timeout is not None else settings.CONTENT_FETCH_TIMEOUT_SECONDS

    try:
        response = requests.get(
            url,
            headers={"User-Agent": USER_AGENT, "Accept": "text/html"},
            timeout=timeout,
            allow_redirects=True
        )
        response.raise_for_status()
    except requests.Timeout as e:
        raise CrawlFailure(f"Timed out fetching {url}: {str(e)}", url) from e
    except requests.RequestException as e:
        raise CrawlFailure(f"Failed to fetch {url}: {str(e)}", url) from e

    summary = parse_page_summary(response.text, url)
    logger.debug(f"Fetched {url}: title='{summary.title[:60]}' headings={len(summary.headings)}")
    return summary


def fetch_page_summary_firecrawl(url: str, timeout: Optional[float] = None) -> PageSummary:
    """
    Fetch and summarize a homepage through Firecrawl.

    Firecrawl renders JavaScript-heavy pages that a plain GET cannot read.
    The returned HTML is parsed with the same parser as the direct fetcher;
    Firecrawl's own metadata fills in title and description when the HTML
    lacks them.

    Raises:
        CrawlFailure: On any Firecrawl error or an empty result
    """
    url = normalize_url(url)
    timeout = timeout if timeout is not None else settings.CONTENT_FETCH_TIMEOUT_SECONDS

    if not settings.FIRECRAWL_API_KEY:
        raise CrawlFailure("Firecrawl API key not configured", url)

    from firecrawl import Firecrawl

    try:
        firecrawl = Firecrawl(api_key=settings.FIRECRAWL_API_KEY)
        result = firecrawl.scrape(
            url=url,
            formats=["html"],
            only_main_content=False,
            timeout=int(timeout * 1000)
        )
    except Exception as e:
        raise CrawlFailure(f"Firecrawl scrape failed for {url}: {str(e)}", url) from e

    html = None
    metadata = None
    if hasattr(result, "html") and result.html:
        html = result.html
        metadata = getattr(result, "metadata", None)
    elif isinstance(result, dict):
        html = result.get("html")
        metadata = result.get("metadata")

    if not html:
        raise CrawlFailure(f"Firecrawl returned no content for {url}", url)

    summary = parse_page_summary(html, url)

    if metadata is not None and not (summary.title and summary.meta_description):
        if isinstance(metadata, dict):
            meta_title = metadata.get("title") or ""
            meta_description = metadata.get("description") or ""
        else:
            meta_title = getattr(metadata, "title", "") or ""
            meta_description = getattr(metadata, "description", "") or ""
        summary = summary.model_copy(update={
            "title": summary.title or meta_title,
            "meta_description": summary.meta_description or meta_description,
        })

    return summary


def get_content_fetcher() -> ContentFetcher:
    """Firecrawl when its API key is configured, else the direct fetcher."""
    if settings.FIRECRAWL_API_KEY:
        return fetch_page_summary_firecrawl
    return fetch_page_summary
