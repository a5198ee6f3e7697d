"""
Error taxonomy for the AI Citation Audit service.

Validation and rate-limit errors are surfaced to the caller immediately;
provider and crawl errors are absorbed into partial results wherever the
pipeline has a degraded behavior, and only escalate when no usable signal
remains.
"""

from datetime import date
from typing import Any, List, Optional


class CitationAuditError(Exception):
    """Base class for all service errors."""


class InputValidationError(CitationAuditError, ValueError):
    """Empty/oversized prompt list, no providers, unknown provider or malformed URL."""


class RateLimitExceeded(CitationAuditError):
    """Per-minute or monthly cap hit."""

    def __init__(
        self,
        message: str,
        scope: str,
        retry_after: Optional[int] = None,
        reset_date: Optional[date] = None
    ):
        super().__init__(message)
        self.scope = scope
        self.retry_after = retry_after
        self.reset_date = reset_date


class ProviderQueryFailure(CitationAuditError):
    """A (prompt, provider) pair failed, or every pair of a run failed."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        prompt_id: Optional[str] = None,
        tag: str = "provider_error",
        errors: Optional[List[str]] = None
    ):
        super().__init__(message)
        self.provider = provider
        self.prompt_id = prompt_id
        self.tag = tag
        self.errors = errors or []


class CrawlFailure(CitationAuditError):
    """A homepage fetch failed or timed out."""

    def __init__(self, message: str, url: str):
        super().__init__(message)
        self.url = url


class AbuseGuardBlocked(CitationAuditError):
    """Trial risk score reached the block threshold."""

    def __init__(self, assessment: Any):
        super().__init__(assessment.reason or "Trial request blocked")
        self.assessment = assessment


class AnalysisCancelled(CitationAuditError):
    """The caller cancelled the run or its overall deadline elapsed."""
