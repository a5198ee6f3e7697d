"""
Data models and schemas for the AI Citation Audit service.

This module defines the Pydantic models used for API requests/responses,
the citation pipeline's intermediate artifacts, the guards' inputs and
outputs, and the LangGraph workflow state.
"""

from datetime import date, datetime, timezone
from enum import Enum
from pydantic import BaseModel, Field, HttpUrl
from typing import Optional, List, Dict
from typing_extensions import TypedDict


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QueryType(str, Enum):
    """Phrasing family a prompt belongs to."""
    ALTERNATIVES = "alternatives"
    COMPETITORS = "competitors"
    BEST_PROVIDERS = "bestProviders"
    RECOMMENDATION = "recommendation"
    WHAT_DOES = "whatDoes"
    COMPARISON = "comparison"


# Pipeline Input Models

class PromptSpec(BaseModel):
    """A single natural-language prompt sent to every selected provider."""
    id: str = Field(..., description="Stable prompt identifier", examples=["alternatives-1"])
    text: str = Field(..., description="Prompt text", examples=["What are the best alternatives to Acme?"])
    query_type: Optional[QueryType] = Field(
        None,
        description="Phrasing family (inferred from the text when omitted)"
    )

    class Config:
        frozen = True


class AnalysisRequest(BaseModel):
    """Immutable input to one citation analysis run."""
    website: str
    brand_name: Optional[str] = None
    industry: Optional[str] = None
    prompts: List[PromptSpec]
    providers: List[str]
    account_id: str

    class Config:
        frozen = True


class AccountContext(BaseModel):
    """Requesting account, as resolved by the (external) auth layer."""
    account_id: str
    plan: str = "free"
    is_admin: bool = False

    class Config:
        frozen = True


# Provider / Citation Models

class CompetitorMention(BaseModel):
    """A domain other than the subject's mentioned in one provider response."""
    domain: str
    url: Optional[str] = None
    context: str = ""
    position: int = 0

    class Config:
        frozen = True


class ProviderResponse(BaseModel):
    """
    One response per (prompt, provider) pair.

    Failed pairs are represented by a tombstone: ``is_cited`` is False,
    ``response_text`` is empty and ``error`` carries the failure tag.
    """
    prompt_id: str
    prompt: str
    query_type: Optional[QueryType] = None
    provider: str
    model_used: str = ""
    response_text: str = ""
    tokens_used: int = 0
    cost: float = 0.0
    competitors: List[CompetitorMention] = Field(default_factory=list)
    is_cited: bool = False
    citation_context: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)

    class Config:
        frozen = True

    @property
    def failed(self) -> bool:
        return self.error is not None


class CompetitorCandidate(BaseModel):
    """A competitor domain aggregated across all responses of a run."""
    domain: str
    citation_count: int
    query_types: List[str] = Field(default_factory=list)
    sample_context: str = ""

    class Config:
        frozen = True


class ValidatedCompetitor(BaseModel):
    """
    A candidate that was confirmed, or could not be disconfirmed, as a
    same-industry competitor.

    validation is one of: confirmed, fetch_failed, timed_out, not_compared.
    """
    domain: str
    citation_count: int
    query_types: List[str] = Field(default_factory=list)
    sample_context: str = ""
    validation: str = "confirmed"
    shared_keywords: List[str] = Field(default_factory=list)

    class Config:
        frozen = True


class PageSummary(BaseModel):
    """Lightweight content summary of a homepage."""
    url: str
    title: str = ""
    meta_description: str = ""
    headings: List[str] = Field(default_factory=list)
    h1_count: int = 0
    structured_data_count: int = 0
    has_faq_schema: bool = False

    class Config:
        frozen = True

    @property
    def has_content(self) -> bool:
        return bool(self.title or self.meta_description or self.headings)


# Scoring Output Models

class MissedTrafficEstimate(BaseModel):
    missed_query_types: int = Field(..., ge=0)
    monthly_visitors: int = Field(..., ge=0)
    yearly_visitors: int = Field(..., ge=0)

    class Config:
        frozen = True


class Recommendation(BaseModel):
    """An actionable recommendation, in plain business language."""
    id: str
    title: str
    description: str
    priority: str = Field(..., examples=["high", "medium", "low"])
    expected_impact: int = 0

    class Config:
        frozen = True


class AnalysisResult(BaseModel):
    """Terminal artifact of an analysis run. Immutable once produced."""
    analysis_id: str
    website: str
    domain: str
    brand_name: str
    industry: Optional[str] = None
    citation_rate: float = Field(..., ge=0.0, le=100.0)
    visibility_score: int = Field(..., ge=0, le=100)
    cited_count: int = 0
    competitors: List[ValidatedCompetitor] = Field(default_factory=list, max_length=5)
    recommendations: List[Recommendation] = Field(default_factory=list)
    missed_traffic: MissedTrafficEstimate
    responses: List[ProviderResponse] = Field(default_factory=list)
    total_cost: float = 0.0
    total_tokens: int = 0
    errors: List[str] = Field(default_factory=list)
    crawl_available: bool = True
    created_at: datetime = Field(default_factory=utc_now)

    class Config:
        frozen = True


# Guard Models

class RateLimitDecision(BaseModel):
    """Outcome of one rate-limit gate evaluation."""
    allowed: bool
    scope: str = Field(..., examples=["minute", "monthly", "admin"])
    limit: int = 0
    remaining: int = 0
    reset_at: Optional[float] = None
    reset_date: Optional[date] = None
    retry_after: Optional[int] = None
    quota_key: Optional[str] = Field(None, description="Monthly counter holding this request's reserved slot")


class TrialRecord(BaseModel):
    """A historical trial signup, supplied by the trial-history collaborator."""
    email: str
    normalized_email: str
    device_fingerprint: str = ""
    ip_address: str = ""
    domain: str = ""
    created_at: datetime


class AbuseCheckInput(BaseModel):
    email: str
    device_fingerprint: str = ""
    ip_address: str = ""


class RiskAssessment(BaseModel):
    """Explainable trial-eligibility decision."""
    allowed: bool
    risk_score: int
    checks: Dict[str, bool]
    reason: str = ""
    requires_payment_method: bool = False
    alternative_options: List[str] = Field(default_factory=list)


# API Request/Response Models

class PromptInput(BaseModel):
    id: str
    text: str
    query_type: Optional[QueryType] = None


class CitationAnalysisRequest(BaseModel):
    """Request model for the /analyze/citations endpoint."""
    website: HttpUrl = Field(
        ...,
        description="The website to audit",
        examples=["https://acme.com"]
    )
    brand_name: Optional[str] = Field(None, description="Brand name (derived from the domain when omitted)")
    industry: Optional[str] = Field(None, description="Known industry, if any")
    prompts: List[PromptInput] = Field(..., description="Prompts to send to every provider")
    providers: List[str] = Field(
        default_factory=lambda: ["openai"],
        description="AI providers to query",
        examples=[["openai", "anthropic", "perplexity"]]
    )
    account_id: str = Field(..., description="Requesting account id")
    plan: str = Field("free", description="Account plan tier")
    is_admin: bool = False

    class Config:
        extra = "forbid"


class PromptSuggestionRequest(BaseModel):
    """Request model for the /analyze/prompts endpoint."""
    website: HttpUrl
    brand_name: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None


class FreeReportRequest(BaseModel):
    """Request model for the /analyze/free-report endpoint."""
    website: HttpUrl
    email: str
    device_fingerprint: str = ""
    brand_name: Optional[str] = None
    industry: Optional[str] = None


class TrialEligibilityRequest(BaseModel):
    """Request model for the /trial/eligibility endpoint."""
    email: str
    device_fingerprint: str = ""


class PromptSuggestionResponse(BaseModel):
    """Response model for the /analyze/prompts endpoint."""
    domain: str
    brand_name: str
    industry: Optional[str] = None
    prompts: List[PromptSpec]


class FreeReportResponse(BaseModel):
    """Response model for the /analyze/free-report endpoint."""
    prompts: List[PromptSpec]
    result: AnalysisResult
    requires_payment_method: bool = False


class HealthResponse(BaseModel):
    """Response model for the /health endpoint."""
    status: str = Field(..., examples=["healthy", "degraded"])
    version: str = Field(..., examples=["1.0.0"])


# LangGraph Workflow State Model

class AuditState(TypedDict, total=False):
    """
    State model for the citation audit LangGraph workflow.

    Fields are marked as total=False so each node returns only the
    fields it updates.
    """
    analysis_id: str
    request: AnalysisRequest
    domain: str
    brand_name: str
    industry: Optional[str]
    subject_summary: Optional[PageSummary]
    responses: List[ProviderResponse]
    competitors: List[ValidatedCompetitor]
    result: AnalysisResult
    errors: List[str]
