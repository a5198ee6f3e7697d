"""
Analysis Controller

Handles business logic for prompt suggestions and citation analysis:
request building, usage limits, pipeline execution and usage accounting.
"""

import logging
from typing import Dict, Optional, Tuple

from agents.content_fetcher import ContentFetcher
from agents.industry_detector import resolve_industry
from agents.prompt_generator import brand_from_domain, generate_prompts
from agents.provider_clients import ProviderClient
from config.settings import settings
from graph_orchestrator import run_citation_audit, validate_request
from models.schemas import (
    AccountContext,
    AnalysisRequest,
    AnalysisResult,
    CitationAnalysisRequest,
    PromptSpec,
    PromptSuggestionRequest,
    PromptSuggestionResponse,
)
from utils.cache import record_usage_cost
from utils.cancellation import CancelToken
from utils.helpers import extract_domain_from_url, sanitize_brand_name
from utils.rate_limiter import InMemoryRateLimitStore, RedisRateLimitStore, UsageLimiter

logger = logging.getLogger(__name__)

# Singleton limiter instance
_usage_limiter: Optional[UsageLimiter] = None


def get_usage_limiter() -> UsageLimiter:
    """Get or create the usage limiter (Redis-backed when Redis is reachable)."""
    global _usage_limiter
    if _usage_limiter is None:
        try:
            from config.database import get_redis_client
            store = RedisRateLimitStore(get_redis_client())
            logger.info("✅ Usage limits backed by Redis")
        except ConnectionError as e:
            logger.warning(f"⚠️  Redis unavailable, usage limits are process-local: {e}")
            store = InMemoryRateLimitStore()
        _usage_limiter = UsageLimiter(store=store)
    return _usage_limiter


def suggest_prompts(
    payload: PromptSuggestionRequest,
    clients: Optional[Dict[str, ProviderClient]] = None
) -> PromptSuggestionResponse:
    """
    Generate the default prompt set for a website.

    Without a supplied industry, the discovery provider in ``clients`` is asked
    for one, falling back to keyword detection.
    """
    domain = extract_domain_from_url(str(payload.website))
    brand_name = sanitize_brand_name(payload.brand_name) or brand_from_domain(domain)
    industry = payload.industry or resolve_industry(brand_name, domain, clients)

    prompts = generate_prompts(brand_name, domain, industry, payload.description)
    logger.info(f"Generated {len(prompts)} prompts for {domain} ({industry})")

    return PromptSuggestionResponse(
        domain=domain,
        brand_name=brand_name,
        industry=industry,
        prompts=prompts
    )


def build_analysis_request(payload: CitationAnalysisRequest) -> Tuple[AnalysisRequest, AccountContext]:
    """Convert the API payload into the pipeline request and account context."""
    request = AnalysisRequest(
        website=str(payload.website),
        brand_name=payload.brand_name,
        industry=payload.industry,
        prompts=[
            PromptSpec(id=prompt.id, text=prompt.text, query_type=prompt.query_type)
            for prompt in payload.prompts
        ],
        providers=list(payload.providers),
        account_id=payload.account_id
    )
    account = AccountContext(
        account_id=payload.account_id,
        plan=payload.plan or settings.DEFAULT_PLAN,
        is_admin=payload.is_admin
    )
    return request, account


def execute_citation_analysis(
    payload: CitationAnalysisRequest,
    limiter: UsageLimiter,
    clients: Optional[Dict[str, ProviderClient]] = None,
    content_fetcher: Optional[ContentFetcher] = None,
    cancel_token: Optional[CancelToken] = None
) -> Tuple[AnalysisResult, AnalysisRequest]:
    """
    Run one rate-limited citation analysis.

    Validation happens before the usage gates so malformed requests never
    consume quota. The monthly slot is reserved up front and handed back
    if the analysis fails.

    Raises:
        InputValidationError, RateLimitExceeded, ProviderQueryFailure, AnalysisCancelled
    """
    request, account = build_analysis_request(payload)
    validate_request(request)
    reservation = limiter.check_request(account)

    cancel_token = cancel_token or CancelToken(deadline_seconds=settings.ANALYSIS_DEADLINE_SECONDS)

    try:
        result = run_citation_audit(
            request,
            clients=clients,
            content_fetcher=content_fetcher,
            usage_callback=record_usage_cost,
            cancel_token=cancel_token
        )
    except Exception:
        limiter.release_analysis(reservation)
        raise

    return result, request
