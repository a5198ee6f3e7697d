"""
Trial Routes

Free-report and trial-eligibility endpoints, gated by the abuse guard.
"""

import logging
from typing import Dict, List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from agents.content_fetcher import ContentFetcher
from agents.provider_clients import ProviderClient
from models.schemas import (
    FreeReportRequest,
    FreeReportResponse,
    RiskAssessment,
    TrialEligibilityRequest,
)
from src.controllers.result_hooks import PostResultHook, run_post_result_hooks
from src.controllers.trial_controller import check_trial_eligibility, execute_free_report
from src.routes.dependencies import (
    client_ip,
    provide_content_fetcher,
    provide_post_result_hooks,
    provide_provider_clients,
    provide_trial_store,
    provide_usage_limiter,
    to_http_exception,
)
from storage.trial_history import TrialHistoryStore
from utils.errors import CitationAuditError
from utils.rate_limiter import UsageLimiter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Trials"])


@router.post("/trial/eligibility", response_model=RiskAssessment)
async def trial_eligibility(
    payload: TrialEligibilityRequest,
    request: Request,
    store: TrialHistoryStore = Depends(provide_trial_store)
) -> RiskAssessment:
    """
    Score a prospective trial signup.

    Always returns 200 with the itemized assessment; ``allowed`` tells the
    caller whether to proceed.
    """
    try:
        return await run_in_threadpool(
            check_trial_eligibility,
            payload.email,
            payload.device_fingerprint,
            client_ip(request),
            store
        )
    except CitationAuditError as e:
        raise to_http_exception(e)


@router.post("/analyze/free-report", response_model=FreeReportResponse)
async def free_report(
    payload: FreeReportRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    store: TrialHistoryStore = Depends(provide_trial_store),
    limiter: UsageLimiter = Depends(provide_usage_limiter),
    clients: Dict[str, ProviderClient] = Depends(provide_provider_clients),
    content_fetcher: ContentFetcher = Depends(provide_content_fetcher),
    hooks: List[PostResultHook] = Depends(provide_post_result_hooks)
) -> FreeReportResponse:
    """
    Run a free citation report.

    Errors: 403 blocked by the abuse guard (with alternative options),
    429 too many requests from this IP, 502 all providers failed.
    """
    try:
        response, analysis_request = await run_in_threadpool(
            execute_free_report,
            payload,
            client_ip(request),
            store,
            limiter,
            clients,
            content_fetcher
        )
    except CitationAuditError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error running free report: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Internal server error: {str(e)}"
        )

    background_tasks.add_task(run_post_result_hooks, response.result, analysis_request, hooks)
    return response
