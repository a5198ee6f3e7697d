"""
Citation Extractor

Determines, per provider response, whether the subject site is referenced and
extracts competitor domain mentions with their surrounding context.

A subject mention that only appears inside a link to a denylisted site
(social profile, marketplace listing, directory page) is incidental and does
not count as a citation.
"""

import logging
import re
from typing import List, NamedTuple, Optional, Sequence, Tuple

from models.schemas import CompetitorMention
from utils.helpers import extract_domain_from_url, is_valid_domain

logger = logging.getLogger(__name__)

CITATION_CONTEXT_CHARS = 100
COMPETITOR_CONTEXT_CHARS = 50
MAX_COMPETITORS_PER_RESPONSE = 10
MIN_BRAND_LENGTH = 3

# Social networks, marketplaces, review sites, directories and reference sites.
# Mentions of these are never competitors.
NON_COMPETITOR_DOMAINS = frozenset({
    "facebook.com", "instagram.com", "twitter.com", "x.com", "linkedin.com",
    "youtube.com", "tiktok.com", "pinterest.com", "reddit.com", "quora.com",
    "medium.com", "substack.com", "threads.net", "discord.com", "t.me",
    "amazon.com", "ebay.com", "etsy.com", "walmart.com", "alibaba.com", "aliexpress.com",
    "shopify.com", "apps.apple.com", "play.google.com",
    "yelp.com", "g2.com", "capterra.com", "trustpilot.com", "clutch.co",
    "getapp.com", "softwareadvice.com", "producthunt.com", "glassdoor.com",
    "indeed.com", "crunchbase.com", "bbb.org", "tripadvisor.com", "angi.com",
    "thumbtack.com", "yellowpages.com",
    "wikipedia.org", "wikimedia.org", "google.com", "bing.com", "github.com",
    "forbes.com", "nytimes.com", "techcrunch.com", "example.com",
})

DENYLISTED_TLD_LABELS = ("gov", "edu")

_URL_PATTERN = re.compile(r"https?://[^\s<>\"'\)\]]+", re.IGNORECASE)
_BARE_DOMAIN_PATTERN = re.compile(
    r"(?<![\w@./-])((?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+(?:com|org|net|io|co|ai))(?![\w-])",
    re.IGNORECASE
)
_URL_TRAILING_PUNCTUATION = ".,;:!?"


class CitationMatch(NamedTuple):
    is_cited: bool
    context: Optional[str] = None


def is_non_competitor_domain(domain: str) -> bool:
    """True for denylisted sites and any .gov / .edu host (including country variants)."""
    domain = (domain or "").lower()
    labels = domain.split(".")
    if any(label in DENYLISTED_TLD_LABELS for label in labels[1:]):
        return True
    return any(domain == blocked or domain.endswith("." + blocked) for blocked in NON_COMPETITOR_DOMAINS)


def is_same_site(domain: str, subject_domain: str) -> bool:
    """True if domain is the subject domain or one of its subdomains."""
    domain = domain.lower()
    subject_domain = subject_domain.lower()
    return domain == subject_domain or domain.endswith("." + subject_domain)


def _find_urls(text: str) -> List[Tuple[int, int, str, str]]:
    """Return (start, end, url, host) for every http(s) URL in the text."""
    urls = []
    for match in _URL_PATTERN.finditer(text):
        url = match.group(0).rstrip(_URL_TRAILING_PUNCTUATION)
        host = extract_domain_from_url(url)
        urls.append((match.start(), match.start() + len(url), url, host))
    return urls


def _inside_denylisted_url(
    start: int,
    end: int,
    urls: Sequence[Tuple[int, int, str, str]],
    subject_domain: str
) -> bool:
    for url_start, url_end, _, host in urls:
        if url_start <= start and end <= url_end:
            return is_non_competitor_domain(host) and not is_same_site(host, subject_domain)
    return False


def _excerpt(text: str, start: int, end: int, radius: int) -> str:
    return text[max(0, start - radius):min(len(text), end + radius)].strip()


def _brand_variations(brand_name: str) -> List[str]:
    brand = brand_name.lower().strip()
    variations = [brand, brand.replace(" ", ""), brand.replace(" ", "-")]
    unique = []
    for variation in variations:
        if variation and variation not in unique:
            unique.append(variation)
    return unique


def check_citation(
    response: str,
    website: str,
    brand_name: Optional[str] = None
) -> CitationMatch:
    """
    Check whether a response cites the subject site or brand.

    The domain is matched on host boundaries (so "notacme.com" does not cite
    "acme.com", while "www.acme.com" and "blog.acme.com" do). The brand is
    matched as a whole word, ignoring brands shorter than three characters.
    Matches inside a link to a denylisted aggregator are ignored.

    Args:
        response: Raw provider text
        website: Subject website URL or domain
        brand_name: Optional brand name

    Returns:
        CitationMatch with is_cited and a bounded context excerpt
    """
    if not response:
        return CitationMatch(False)

    domain = extract_domain_from_url(website)
    urls = _find_urls(response)

    if domain:
        domain_pattern = re.compile(
            r"(?<![\w-])(?:[\w-]+\.)*" + re.escape(domain) + r"(?![\w-]|\.[a-z0-9])",
            re.IGNORECASE
        )
        for match in domain_pattern.finditer(response):
            if _inside_denylisted_url(match.start(), match.end(), urls, domain):
                logger.debug(f"Ignoring incidental mention of {domain} inside aggregator link")
                continue
            return CitationMatch(
                True,
                _excerpt(response, match.start(), match.end(), CITATION_CONTEXT_CHARS)
            )

    if brand_name and len(brand_name.strip()) >= MIN_BRAND_LENGTH:
        for variation in _brand_variations(brand_name):
            brand_pattern = re.compile(r"(?<!\w)" + re.escape(variation) + r"(?!\w)", re.IGNORECASE)
            for match in brand_pattern.finditer(response):
                if _inside_denylisted_url(match.start(), match.end(), urls, domain):
                    continue
                return CitationMatch(
                    True,
                    _excerpt(response, match.start(), match.end(), CITATION_CONTEXT_CHARS)
                )

    return CitationMatch(False)


def extract_competitors(
    response: str,
    subject_domain: str,
    sources: Optional[Sequence[str]] = None,
    limit: int = MAX_COMPETITORS_PER_RESPONSE
) -> List[CompetitorMention]:
    """
    Extract competitor domains mentioned in a response.

    Explicit provider sources (when the provider returns them) take
    precedence; otherwise full URLs are extracted first, then bare domains.
    The subject site, its subdomains and denylisted domains are dropped.

    Args:
        response: Raw provider text
        subject_domain: Normalized subject domain
        sources: Optional list of source URLs returned by the provider
        limit: Maximum mentions to return

    Returns:
        Deduplicated list of CompetitorMention in order of appearance
    """
    mentions: List[CompetitorMention] = []
    seen = set()

    def _add(domain: str, url: Optional[str], context: str) -> None:
        if not is_valid_domain(domain) or domain in seen:
            return
        if is_same_site(domain, subject_domain) or is_non_competitor_domain(domain):
            return
        seen.add(domain)
        mentions.append(CompetitorMention(
            domain=domain,
            url=url,
            context=context,
            position=len(mentions) + 1
        ))

    if sources:
        for index, source_url in enumerate(sources, 1):
            _add(extract_domain_from_url(source_url), source_url, f"Source {index}")
        return mentions[:limit]

    if not response:
        return mentions

    urls = _find_urls(response)
    for start, end, url, host in urls:
        _add(host, url, _excerpt(response, start, end, COMPETITOR_CONTEXT_CHARS))

    for match in _BARE_DOMAIN_PATTERN.finditer(response):
        if any(url_start <= match.start() < url_end for url_start, url_end, _, _ in urls):
            continue
        domain = extract_domain_from_url(match.group(1))
        _add(domain, None, _excerpt(response, match.start(), match.end(), COMPETITOR_CONTEXT_CHARS))

    return mentions[:limit]
