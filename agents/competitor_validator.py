"""
Competitor Validator

Separates genuine same-industry competitors from incidental name-drops.

Candidates are aggregated across all responses, ranked by citation count,
and the top N are checked concurrently against the subject site by keyword
overlap of their homepage summaries. The burden of proof is on exclusion:
a candidate is dropped only when its page was fetched and shares no keyword
with the subject. Fetch failures and candidates still pending when the
global deadline elapses are kept.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, Iterable, List, Optional, Sequence, Set

from agents.citation_extractor import is_non_competitor_domain, is_same_site
from agents.content_fetcher import ContentFetcher, get_content_fetcher
from config.settings import settings
from models.schemas import (
    CompetitorCandidate,
    PageSummary,
    ProviderResponse,
    ValidatedCompetitor,
)
from utils.cancellation import CancelToken

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "all", "any", "can", "her", "was", "one",
    "our", "out", "has", "have", "had", "his", "how", "its", "may", "new", "now", "old", "see",
    "two", "way", "who", "did", "get", "got", "let", "put", "say", "she", "too", "use", "with",
    "this", "that", "from", "they", "will", "your", "what", "when", "where", "which", "while",
    "about", "into", "than", "then", "them", "these", "those", "there", "their", "here", "more",
    "most", "some", "such", "only", "over", "also", "just", "like", "make", "made", "very",
    "best", "top", "leading", "official", "site", "website", "home", "page", "welcome",
    "company", "companies", "inc", "llc", "ltd", "corp", "group", "solutions", "services",
    "service", "online", "free", "get", "help", "learn", "contact", "today", "world", "team",
    "www", "com", "net", "org", "https", "http",
})

# (prefix, canonical keyword); first matching prefix wins
INDUSTRY_STEMS = [
    ("enviro", "environment"),
    ("tech", "technology"),
    ("health", "healthcare"),
    ("medic", "medical"),
    ("financ", "finance"),
    ("educat", "education"),
    ("marketing", "marketing"),
    ("insur", "insurance"),
    ("consult", "consulting"),
    ("softwar", "software"),
    ("account", "accounting"),
    ("analytic", "analytics"),
    ("automat", "automation"),
    ("develop", "development"),
    ("recruit", "recruiting"),
    ("clean", "cleaning"),
    ("sustainab", "sustainability"),
    ("legal", "legal"),
    ("lawyer", "legal"),
]

_WORD_PATTERN = re.compile(r"[a-z][a-z0-9]+")
MIN_KEYWORD_LENGTH = 3


def normalize_keyword(word: str) -> str:
    """Collapse simple plurals and map industry stems to a canonical keyword."""
    if len(word) > 4 and word.endswith("s") and not word.endswith("ss"):
        word = word[:-1]
    for prefix, canonical in INDUSTRY_STEMS:
        if word.startswith(prefix):
            return canonical
    return word


def extract_keywords(text: str) -> Set[str]:
    """
    Extract a normalized keyword set from free text.

    Example:
        >>> sorted(extract_keywords("Environmental consulting for the tech industry"))
        ['consulting', 'environment', 'industry', 'technology']
    """
    keywords = set()
    for word in _WORD_PATTERN.findall((text or "").lower()):
        if len(word) < MIN_KEYWORD_LENGTH or word in STOP_WORDS:
            continue
        keyword = normalize_keyword(word)
        if keyword not in STOP_WORDS:
            keywords.add(keyword)
    return keywords


def summary_keywords(summary: PageSummary) -> Set[str]:
    return extract_keywords(" ".join([summary.title, summary.meta_description] + list(summary.headings)))


def aggregate_candidates(
    responses: Iterable[ProviderResponse],
    subject_domain: str
) -> List[CompetitorCandidate]:
    """
    Aggregate competitor mentions across responses into ranked candidates.

    Each response contributes at most one citation per domain. Denylisted
    domains and the subject site are dropped. Candidates are ordered by
    citation count descending, ties kept in first-seen order.
    """
    aggregated: Dict[str, Dict] = {}

    for response in responses:
        if response.failed:
            continue
        seen_in_response = set()
        for mention in response.competitors:
            domain = mention.domain.lower()
            if domain in seen_in_response:
                continue
            if is_non_competitor_domain(domain) or is_same_site(domain, subject_domain):
                continue
            seen_in_response.add(domain)

            entry = aggregated.setdefault(domain, {"count": 0, "query_types": [], "context": ""})
            entry["count"] += 1
            if response.query_type and response.query_type.value not in entry["query_types"]:
                entry["query_types"].append(response.query_type.value)
            if not entry["context"] and mention.context:
                entry["context"] = mention.context

    candidates = [
        CompetitorCandidate(
            domain=domain,
            citation_count=entry["count"],
            query_types=entry["query_types"],
            sample_context=entry["context"]
        )
        for domain, entry in aggregated.items()
    ]
    return sorted(candidates, key=lambda c: -c.citation_count)


def _promote(
    candidate: CompetitorCandidate,
    validation: str,
    shared_keywords: Sequence[str] = ()
) -> ValidatedCompetitor:
    return ValidatedCompetitor(
        domain=candidate.domain,
        citation_count=candidate.citation_count,
        query_types=list(candidate.query_types),
        sample_context=candidate.sample_context,
        validation=validation,
        shared_keywords=sorted(shared_keywords)
    )


def validate_competitors(
    candidates: Sequence[CompetitorCandidate],
    subject_summary: Optional[PageSummary],
    fetcher: Optional[ContentFetcher] = None,
    deadline_seconds: Optional[float] = None,
    top_n: Optional[int] = None,
    max_results: Optional[int] = None,
    min_shared_keywords: Optional[int] = None,
    cancel_token: Optional[CancelToken] = None
) -> List[ValidatedCompetitor]:
    """
    Validate the top candidates against the subject site.

    Args:
        candidates: Ranked candidates from ``aggregate_candidates``
        subject_summary: Subject homepage summary, or None if its crawl failed
        fetcher: Content fetcher (defaults to ``get_content_fetcher()``)
        deadline_seconds: Global deadline for the whole validation round
        top_n: Number of candidates to validate
        max_results: Number of validated competitors to return
        min_shared_keywords: Keyword overlap needed to confirm a candidate
        cancel_token: Optional overall cancellation / deadline

    Returns:
        Up to ``max_results`` ValidatedCompetitor by citation count
    """
    fetcher = fetcher or get_content_fetcher()
    deadline_seconds = deadline_seconds if deadline_seconds is not None else settings.COMPETITOR_VALIDATION_DEADLINE_SECONDS
    top_n = top_n if top_n is not None else settings.COMPETITOR_VALIDATION_TOP_N
    max_results = max_results if max_results is not None else settings.MAX_VALIDATED_COMPETITORS
    min_shared_keywords = min_shared_keywords if min_shared_keywords is not None else settings.COMPETITOR_MIN_SHARED_KEYWORDS

    ranked = sorted(candidates, key=lambda c: -c.citation_count)[:top_n]
    if not ranked:
        return []

    subject_keywords = summary_keywords(subject_summary) if subject_summary and subject_summary.has_content else set()
    if not subject_keywords:
        logger.info("Subject site summary unavailable; including all candidates without comparison")
        return [_promote(candidate, "not_compared") for candidate in ranked][:max_results]

    if cancel_token is not None:
        deadline_seconds = cancel_token.bound(deadline_seconds)
    fetch_timeout = min(settings.CONTENT_FETCH_TIMEOUT_SECONDS, deadline_seconds)

    logger.info(f"🔍 Validating {len(ranked)} competitor candidates (deadline {deadline_seconds:.1f}s)")

    executor = ThreadPoolExecutor(max_workers=len(ranked))
    try:
        futures = [
            executor.submit(fetcher, f"https://{candidate.domain}", fetch_timeout)
            for candidate in ranked
        ]
        _, not_done = wait(futures, timeout=deadline_seconds)
    finally:
        # Stragglers keep running but their results are ignored
        executor.shutdown(wait=False, cancel_futures=True)

    validated: List[ValidatedCompetitor] = []
    for candidate, future in zip(ranked, futures):
        if future in not_done:
            logger.warning(f"⏱️ Validation of {candidate.domain} still pending at deadline; including")
            validated.append(_promote(candidate, "timed_out"))
            continue

        try:
            summary = future.result()
        except Exception as e:
            logger.warning(f"⚠️ Could not fetch {candidate.domain}: {str(e)}; including")
            validated.append(_promote(candidate, "fetch_failed"))
            continue

        if summary is None or not summary.has_content:
            logger.info(f"No readable content for {candidate.domain}; including")
            validated.append(_promote(candidate, "fetch_failed"))
            continue

        shared = subject_keywords & summary_keywords(summary)
        if len(shared) >= min_shared_keywords:
            validated.append(_promote(candidate, "confirmed", shared))
        else:
            logger.info(f"✗ Excluding {candidate.domain}: no keyword overlap with subject")

    validated.sort(key=lambda c: -c.citation_count)
    logger.info(f"✓ {len(validated)} competitors validated, returning top {min(len(validated), max_results)}")

    return validated[:max_results]
