"""
LangGraph Orchestrator

This module defines and executes the citation audit workflow. It uses
LangGraph's StateGraph to move a single analysis run through its stages:

1. Prepare        - Resolve domain, brand and industry
2. Crawl Subject  - Summarize the subject homepage (degrades on failure)
3. Query          - Fan every prompt out to every provider
4. Validate       - Aggregate and validate competitor candidates
5. Score          - Compute scores and assemble the AnalysisResult

Services (provider clients, content fetcher, usage callback, cancel token)
are passed to the nodes through the run config, so tests can inject fakes.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph

from agents.competitor_validator import aggregate_candidates, validate_competitors
from agents.content_fetcher import get_content_fetcher
from agents.industry_detector import detect_industry
from agents.prompt_generator import brand_from_domain
from agents.provider_clients import SUPPORTED_PROVIDERS, get_provider_clients
from agents.provider_dispatcher import UsageCallback, dispatch_queries
from agents.scorer_analyzer import build_analysis_result
from config.settings import settings
from models.schemas import AnalysisRequest, AnalysisResult, AuditState
from utils.cancellation import CancelToken
from utils.errors import AnalysisCancelled, InputValidationError, ProviderQueryFailure
from utils.helpers import extract_domain_from_url, generate_analysis_id, is_valid_domain, sanitize_brand_name

logger = logging.getLogger(__name__)

# Singleton graph instance
_graph = None


def validate_request(request: AnalysisRequest) -> None:
    """
    Reject malformed requests before any network work.

    Raises:
        InputValidationError: Empty or oversized prompt list, blank or
            duplicate prompts, no/unknown/duplicate providers, malformed URL
    """
    if not request.prompts:
        raise InputValidationError("At least one prompt is required")
    if len(request.prompts) > settings.MAX_PROMPTS_PER_REQUEST:
        raise InputValidationError(
            f"Too many prompts: {len(request.prompts)} (maximum {settings.MAX_PROMPTS_PER_REQUEST})"
        )

    prompt_ids = [prompt.id for prompt in request.prompts]
    if len(set(prompt_ids)) != len(prompt_ids):
        raise InputValidationError("Prompt ids must be unique")
    if any(not prompt.text.strip() for prompt in request.prompts):
        raise InputValidationError("Prompt text must not be empty")

    if not request.providers:
        raise InputValidationError("At least one provider must be selected")
    unknown = [p for p in request.providers if p not in SUPPORTED_PROVIDERS]
    if unknown:
        raise InputValidationError(
            f"Unknown provider(s): {', '.join(unknown)}. Supported: {', '.join(SUPPORTED_PROVIDERS)}"
        )
    if len(set(request.providers)) != len(request.providers):
        raise InputValidationError("Providers must not be repeated")

    website = (request.website or "").strip()
    if not website:
        raise InputValidationError("Website URL is required")
    if "://" in website and urlparse(website).scheme not in ("http", "https"):
        raise InputValidationError(f"Unsupported URL scheme: {website}")
    if not is_valid_domain(extract_domain_from_url(website)):
        raise InputValidationError(f"Malformed website URL: {request.website!r}")


def _services(config: Optional[RunnableConfig]) -> Dict[str, Any]:
    return (config or {}).get("configurable", {})


def prepare(state: AuditState, config: RunnableConfig) -> Dict[str, Any]:
    """Node: Resolve domain, display brand and industry."""
    request = state["request"]
    domain = extract_domain_from_url(request.website)
    brand_name = sanitize_brand_name(request.brand_name) or brand_from_domain(domain)
    industry = request.industry or detect_industry(brand_name, domain)

    logger.info(f"🚀 Starting citation audit {state['analysis_id']} for {domain} ({industry})")

    return {"domain": domain, "brand_name": brand_name, "industry": industry, "errors": []}


def crawl_subject(state: AuditState, config: RunnableConfig) -> Dict[str, Any]:
    """Node: Summarize the subject homepage, degrading to provider-only on failure."""
    services = _services(config)
    fetcher = services.get("content_fetcher") or get_content_fetcher()
    cancel_token: Optional[CancelToken] = services.get("cancel_token")
    errors = list(state.get("errors", []))

    timeout = settings.CONTENT_FETCH_TIMEOUT_SECONDS
    if cancel_token is not None:
        timeout = cancel_token.timeout_for(timeout)

    try:
        summary = fetcher(state["request"].website, timeout)
    except Exception as e:
        message = f"Subject crawl failed: {str(e)}"
        logger.warning(f"⚠️ {message}; continuing with provider-only analysis")
        errors.append(message)
        return {"subject_summary": None, "errors": errors}

    if summary is not None and not summary.has_content:
        errors.append("Subject crawl returned no readable content")
        summary = None

    if summary is not None:
        logger.info(f"✓ Subject crawled: '{summary.title[:60]}'")

    return {"subject_summary": summary, "errors": errors}


def query_providers(state: AuditState, config: RunnableConfig) -> Dict[str, Any]:
    """
    Node: Query every (prompt, provider) pair.

    Raises:
        AnalysisCancelled: If cancellation left no completed pair
        ProviderQueryFailure: If every pair failed
    """
    services = _services(config)
    request = state["request"]
    errors = list(state.get("errors", []))

    responses = dispatch_queries(
        prompts=request.prompts,
        providers=request.providers,
        website=request.website,
        brand_name=state["brand_name"],
        clients=services.get("clients") or get_provider_clients(),
        account_id=request.account_id,
        usage_callback=services.get("usage_callback"),
        cancel_token=services.get("cancel_token")
    )

    failures = [f"{r.provider}/{r.prompt_id}: {r.error}" for r in responses if r.failed]
    errors.extend(failures)

    if responses and len(failures) == len(responses):
        if all(r.error == "cancelled" for r in responses):
            raise AnalysisCancelled("Analysis was cancelled before any provider answered")
        raise ProviderQueryFailure(
            f"All {len(responses)} provider queries failed",
            errors=failures
        )

    return {"responses": responses, "errors": errors}


def validate_competitor_candidates(state: AuditState, config: RunnableConfig) -> Dict[str, Any]:
    """Node: Aggregate competitor mentions and validate the top candidates."""
    services = _services(config)
    candidates = aggregate_candidates(state.get("responses", []), state["domain"])

    competitors = validate_competitors(
        candidates,
        state.get("subject_summary"),
        fetcher=services.get("content_fetcher"),
        cancel_token=services.get("cancel_token")
    )

    return {"competitors": competitors}


def score(state: AuditState, config: RunnableConfig) -> Dict[str, Any]:
    """Node: Compute scores and assemble the final result."""
    request = state["request"]
    result = build_analysis_result(
        analysis_id=state["analysis_id"],
        website=request.website,
        domain=state["domain"],
        brand_name=state["brand_name"],
        industry=state.get("industry"),
        responses=state.get("responses", []),
        competitors=state.get("competitors", []),
        subject_summary=state.get("subject_summary"),
        errors=state.get("errors", [])
    )
    return {"result": result}


def create_workflow_graph():
    """
    Build the LangGraph StateGraph for the citation audit.

    Returns:
        Compiled StateGraph ready for execution
    """
    workflow = StateGraph(AuditState)

    workflow.add_node("prepare", prepare)
    workflow.add_node("crawl_subject", crawl_subject)
    workflow.add_node("query_providers", query_providers)
    workflow.add_node("validate_competitors", validate_competitor_candidates)
    workflow.add_node("score", score)

    workflow.add_edge(START, "prepare")
    workflow.add_edge("prepare", "crawl_subject")
    workflow.add_edge("crawl_subject", "query_providers")
    workflow.add_edge("query_providers", "validate_competitors")
    workflow.add_edge("validate_competitors", "score")
    workflow.add_edge("score", END)

    return workflow.compile()


def get_workflow_graph():
    """Get or create the citation audit graph."""
    global _graph
    if _graph is None:
        _graph = create_workflow_graph()
    return _graph


def run_citation_audit(
    request: AnalysisRequest,
    clients: Optional[Dict[str, Any]] = None,
    content_fetcher=None,
    usage_callback: Optional[UsageCallback] = None,
    cancel_token: Optional[CancelToken] = None,
    analysis_id: Optional[str] = None
) -> AnalysisResult:
    """
    Execute a complete citation audit.

    Args:
        request: Immutable analysis request
        clients: Provider name -> client callable (defaults to real clients)
        content_fetcher: Homepage summary fetcher (defaults to ``get_content_fetcher()``)
        usage_callback: Per-call cost/token accounting hook
        cancel_token: Optional cancellation / overall deadline
        analysis_id: Optional id (generated when omitted)

    Returns:
        The finished AnalysisResult

    Raises:
        InputValidationError: Before any network call, for malformed requests
        ProviderQueryFailure: When every provider query failed
        AnalysisCancelled: When the run was cancelled or its deadline elapsed
    """
    validate_request(request)

    initial_state: AuditState = {
        "analysis_id": analysis_id or generate_analysis_id(),
        "request": request,
        "errors": [],
    }
    run_config = {
        "configurable": {
            "clients": clients,
            "content_fetcher": content_fetcher or get_content_fetcher(),
            "usage_callback": usage_callback,
            "cancel_token": cancel_token,
        }
    }

    final_state = get_workflow_graph().invoke(initial_state, config=run_config)
    return final_state["result"]
