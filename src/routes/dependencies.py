"""
Route Dependencies

FastAPI dependency providers for the services routes need. Tests replace
them through ``app.dependency_overrides``.
"""

import logging
from typing import Dict, List, Optional

from fastapi import HTTPException, Request, status

from agents.content_fetcher import ContentFetcher, get_content_fetcher
from agents.provider_clients import ProviderClient, get_provider_clients
from src.controllers.analysis_controller import get_usage_limiter
from src.controllers.result_hooks import PostResultHook, get_default_hooks
from storage.trial_history import TrialHistoryStore, get_trial_history_store
from utils.errors import (
    AbuseGuardBlocked,
    AnalysisCancelled,
    CitationAuditError,
    CrawlFailure,
    InputValidationError,
    ProviderQueryFailure,
    RateLimitExceeded,
)
from utils.rate_limiter import UsageLimiter

logger = logging.getLogger(__name__)

# Singleton trial store instance
_trial_store: Optional[TrialHistoryStore] = None


def provide_usage_limiter() -> UsageLimiter:
    return get_usage_limiter()


def provide_provider_clients() -> Dict[str, ProviderClient]:
    return get_provider_clients()


def provide_content_fetcher() -> ContentFetcher:
    return get_content_fetcher()


def provide_post_result_hooks() -> List[PostResultHook]:
    return get_default_hooks()


def provide_trial_store() -> TrialHistoryStore:
    global _trial_store
    if _trial_store is None:
        _trial_store = get_trial_history_store()
    return _trial_store


def client_ip(request: Request) -> str:
    """Caller IP, preferring the first X-Forwarded-For hop."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def to_http_exception(error: CitationAuditError) -> HTTPException:
    """Map a service error to the HTTP error surfaced to the caller."""
    if isinstance(error, InputValidationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid request: {str(error)}"
        )

    if isinstance(error, RateLimitExceeded):
        headers = {"Retry-After": str(error.retry_after)} if error.retry_after else None
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "message": str(error),
                "scope": error.scope,
                "retry_after": error.retry_after,
                "reset_date": error.reset_date.isoformat() if error.reset_date else None,
            },
            headers=headers
        )

    if isinstance(error, AbuseGuardBlocked):
        assessment = error.assessment
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "message": str(error),
                "risk_score": assessment.risk_score,
                "requires_payment_method": assessment.requires_payment_method,
                "alternative_options": assessment.alternative_options,
            }
        )

    if isinstance(error, AnalysisCancelled):
        return HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail=f"Analysis did not complete in time: {str(error)}"
        )

    if isinstance(error, ProviderQueryFailure):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": str(error), "errors": error.errors}
        )

    if isinstance(error, CrawlFailure):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Could not reach {error.url}: {str(error)}"
        )

    logger.error(f"Unmapped service error: {error}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Internal server error: {str(error)}"
    )
