"""
Analysis Routes

Citation analysis workflow:
1. Prompt Suggestions - Deterministic prompt set for a website
2. Citation Analysis  - Rate-limited multi-provider citation audit
3. Reports            - Cached results by analysis id
"""

import logging
from typing import Dict, List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool

from agents.content_fetcher import ContentFetcher
from agents.provider_clients import ProviderClient
from models.schemas import (
    AnalysisResult,
    CitationAnalysisRequest,
    PromptSuggestionRequest,
    PromptSuggestionResponse,
)
from src.controllers.analysis_controller import execute_citation_analysis, suggest_prompts
from src.controllers.result_hooks import PostResultHook, run_post_result_hooks
from src.routes.dependencies import (
    provide_content_fetcher,
    provide_post_result_hooks,
    provide_provider_clients,
    provide_usage_limiter,
    to_http_exception,
)
from utils.cache import get_cached_analysis
from utils.errors import CitationAuditError
from utils.rate_limiter import UsageLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analyze", tags=["Analysis"])
report_router = APIRouter(prefix="/report", tags=["Reports"])


@router.post("/prompts", response_model=PromptSuggestionResponse)
async def analyze_prompts(
    request: PromptSuggestionRequest,
    clients: Dict[str, ProviderClient] = Depends(provide_provider_clients)
) -> PromptSuggestionResponse:
    """
    Generate the default prompt set for a website.

    Parameters:
    - website: Website URL (required)
    - brand_name: Optional brand name (derived from the domain when omitted)
    - industry: Optional industry (asked of the discovery provider when omitted,
      with keyword detection as the fallback)
    - description: Optional short business description

    Returns: Detected industry and 3-5 prompts tagged with query types
    """
    return await run_in_threadpool(suggest_prompts, request, clients)


@router.post("/citations", response_model=AnalysisResult)
async def analyze_citations(
    request: CitationAnalysisRequest,
    background_tasks: BackgroundTasks,
    limiter: UsageLimiter = Depends(provide_usage_limiter),
    clients: Dict[str, ProviderClient] = Depends(provide_provider_clients),
    content_fetcher: ContentFetcher = Depends(provide_content_fetcher),
    hooks: List[PostResultHook] = Depends(provide_post_result_hooks)
) -> AnalysisResult:
    """
    Run a citation analysis across the selected AI providers.

    Example:
    ```
    POST /analyze/citations
    {
        "website": "https://acme.com",
        "prompts": [{"id": "p1", "text": "What are the best alternatives to Acme?"}],
        "providers": ["openai", "perplexity"],
        "account_id": "acct_123",
        "plan": "starter"
    }
    ```

    Errors: 400 invalid request, 429 usage limit, 502 all providers failed,
    504 analysis deadline elapsed.
    """
    try:
        result, analysis_request = await run_in_threadpool(
            execute_citation_analysis,
            request,
            limiter,
            clients,
            content_fetcher
        )
    except CitationAuditError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid request: {str(e)}"
        )
    except Exception as e:
        logger.error(f"Error running citation analysis: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Internal server error: {str(e)}"
        )

    background_tasks.add_task(run_post_result_hooks, result, analysis_request, hooks)
    return result


@report_router.get("/{analysis_id}", response_model=AnalysisResult)
async def get_report(analysis_id: str) -> AnalysisResult:
    """
    Get a completed analysis by id.

    Use the analysis_id returned from POST /analyze/citations.
    """
    cached = await run_in_threadpool(get_cached_analysis, analysis_id)
    if cached is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No analysis found for analysis_id: {analysis_id}"
        )
    return cached
