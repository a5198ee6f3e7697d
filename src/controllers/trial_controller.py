"""
Trial Controller

Handles the free-report flow: abuse screening, prompt generation, a single
analysis on the default providers, and recording the trial.

A trial is recorded as soon as it is admitted, under one lock with the
assessment, so overlapping requests see each other. It is discarded again
if the report does not complete.
"""

import logging
import threading
from typing import Dict, Optional, Tuple

from agents.content_fetcher import ContentFetcher
from agents.provider_clients import ProviderClient
from config.settings import settings
from graph_orchestrator import run_citation_audit
from models.schemas import (
    AbuseCheckInput,
    AnalysisRequest,
    FreeReportRequest,
    FreeReportResponse,
    PromptSuggestionRequest,
    RiskAssessment,
    TrialRecord,
)
from src.controllers.analysis_controller import suggest_prompts
from storage.trial_history import TrialHistoryStore, discard_trial, record_trial
from utils.abuse_guard import assess_trial_risk, normalize_email
from utils.cancellation import CancelToken
from utils.errors import AbuseGuardBlocked, RateLimitExceeded
from utils.rate_limiter import UsageLimiter

logger = logging.getLogger(__name__)

# Serializes assessment and recording of trials in this process
_admission_lock = threading.Lock()


def check_trial_eligibility(
    email: str,
    device_fingerprint: str,
    ip_address: str,
    store: TrialHistoryStore
) -> RiskAssessment:
    """Score a trial request against the stored trial history."""
    check = AbuseCheckInput(email=email, device_fingerprint=device_fingerprint, ip_address=ip_address)
    return assess_trial_risk(check, store.list_trials())


def admit_trial(
    email: str,
    device_fingerprint: str,
    ip_address: str,
    store: TrialHistoryStore
) -> Tuple[RiskAssessment, TrialRecord]:
    """
    Assess a trial request and record it in one step.

    Raises:
        AbuseGuardBlocked: When the trial risk score reaches the threshold
    """
    with _admission_lock:
        assessment = check_trial_eligibility(email, device_fingerprint, ip_address, store)
        if not assessment.allowed:
            raise AbuseGuardBlocked(assessment)
        record = record_trial(store, email, device_fingerprint, ip_address)
    return assessment, record


def execute_free_report(
    payload: FreeReportRequest,
    ip_address: str,
    store: TrialHistoryStore,
    limiter: UsageLimiter,
    clients: Optional[Dict[str, ProviderClient]] = None,
    content_fetcher: Optional[ContentFetcher] = None
) -> Tuple[FreeReportResponse, AnalysisRequest]:
    """
    Run the free report for a prospective customer.

    Raises:
        AbuseGuardBlocked: When the trial risk score reaches the threshold
        RateLimitExceeded: When the caller's IP exceeds the per-minute gate
        InputValidationError, ProviderQueryFailure, AnalysisCancelled
    """
    assessment, trial = admit_trial(payload.email, payload.device_fingerprint, ip_address, store)

    try:
        minute = limiter.check_minute(f"ip:{ip_address}")
        if not minute.allowed:
            raise RateLimitExceeded(
                f"Too many requests. Please try again in {minute.retry_after} seconds.",
                scope="minute",
                retry_after=minute.retry_after
            )

        suggestion = suggest_prompts(
            PromptSuggestionRequest(
                website=payload.website,
                brand_name=payload.brand_name,
                industry=payload.industry
            ),
            clients=clients
        )

        request = AnalysisRequest(
            website=str(payload.website),
            brand_name=suggestion.brand_name,
            industry=suggestion.industry,
            prompts=suggestion.prompts,
            providers=list(settings.DEFAULT_PROVIDERS),
            account_id=f"trial:{normalize_email(payload.email)}"
        )

        result = run_citation_audit(
            request,
            clients=clients,
            content_fetcher=content_fetcher,
            cancel_token=CancelToken(deadline_seconds=settings.ANALYSIS_DEADLINE_SECONDS)
        )
    except Exception:
        discard_trial(store, trial)
        raise

    response = FreeReportResponse(
        prompts=suggestion.prompts,
        result=result,
        requires_payment_method=assessment.requires_payment_method
    )
    return response, request
