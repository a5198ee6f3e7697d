"""
Scorer Analyzer

Aggregates citation outcomes and validated competitors into the citation
rate, the 0-100 visibility score, the missed-traffic estimate and a short
list of recommendations, and assembles the final AnalysisResult.

Scoring:
    citation_rate    = 100 * cited / total responses
    visibility_score = 20 + citation_rate * 0.5
                       + 15 if no validated competitors, 5 if 1-2
                       + 10 if an ``alternatives`` prompt was cited
                       + 5 if a ``bestProviders`` prompt was cited
                       clamped to [0, 100], rounded half-up
    missed types     = max(0, 5 - round(citation_rate / 20))
    monthly visitors = 100 * missed types * (1 + min(competitors * 0.1, 0.5))
"""

import logging
from typing import List, Optional, Sequence

from models.schemas import (
    AnalysisResult,
    MissedTrafficEstimate,
    PageSummary,
    ProviderResponse,
    QueryType,
    Recommendation,
    ValidatedCompetitor,
)
from utils.helpers import round_half_up

logger = logging.getLogger(__name__)

BASE_SCORE = 20
CITATION_WEIGHT = 0.5
NO_COMPETITOR_BONUS = 15
FEW_COMPETITOR_BONUS = 5
FEW_COMPETITOR_MAX = 2
ALTERNATIVES_CITED_BONUS = 10
BEST_PROVIDERS_CITED_BONUS = 5

TRACKED_QUERY_TYPES = 5
VISITORS_PER_MISSED_TYPE = 100
COMPETITOR_TRAFFIC_FACTOR = 0.1
MAX_COMPETITOR_TRAFFIC_BOOST = 0.5

MAX_RECOMMENDATIONS = 6
MIN_META_DESCRIPTION_LENGTH = 50
PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

_QUESTION_STARTS = ("how", "what", "why", "when", "can ")


def calculate_citation_rate(responses: Sequence[ProviderResponse]) -> float:
    """Percentage of responses citing the subject (0.0 for no responses)."""
    if not responses:
        return 0.0
    cited = sum(1 for response in responses if response.is_cited)
    return 100.0 * cited / len(responses)


def _query_type_cited(responses: Sequence[ProviderResponse], query_type: QueryType) -> bool:
    return any(r.is_cited and r.query_type == query_type for r in responses)


def calculate_visibility_score(
    citation_rate: float,
    competitor_count: int,
    responses: Sequence[ProviderResponse] = ()
) -> int:
    """
    Compute the 0-100 visibility score.

    Args:
        citation_rate: Unrounded citation rate in percent
        competitor_count: Number of validated competitors
        responses: Responses, used for the query-type bonuses

    Returns:
        Integer score clamped to [0, 100]
    """
    score = BASE_SCORE + citation_rate * CITATION_WEIGHT

    if competitor_count == 0:
        score += NO_COMPETITOR_BONUS
    elif competitor_count <= FEW_COMPETITOR_MAX:
        score += FEW_COMPETITOR_BONUS

    if _query_type_cited(responses, QueryType.ALTERNATIVES):
        score += ALTERNATIVES_CITED_BONUS
    if _query_type_cited(responses, QueryType.BEST_PROVIDERS):
        score += BEST_PROVIDERS_CITED_BONUS

    return round_half_up(min(100.0, max(0.0, score)))


def estimate_missed_traffic(citation_rate: float, competitor_count: int) -> MissedTrafficEstimate:
    missed_types = max(0, TRACKED_QUERY_TYPES - round_half_up(citation_rate / 20))
    boost = 1 + min(competitor_count * COMPETITOR_TRAFFIC_FACTOR, MAX_COMPETITOR_TRAFFIC_BOOST)
    monthly = round_half_up(VISITORS_PER_MISSED_TYPE * missed_types * boost)
    return MissedTrafficEstimate(
        missed_query_types=missed_types,
        monthly_visitors=monthly,
        yearly_visitors=monthly * 12
    )


def _citation_recommendation(is_cited: bool, competitors: Sequence[ValidatedCompetitor]) -> Recommendation:
    if not is_cited and competitors:
        names = ", ".join(c.domain for c in competitors[:2])
        return Recommendation(
            id="citation-competitors",
            title="Win Back the Answers Your Competitors Are Getting",
            description=(
                f"Your competitors ({names}) are being cited by AI. "
                "Add structured FAQ schema and direct answers to compete."
            ),
            priority="high",
            expected_impact=30
        )
    if not is_cited:
        return Recommendation(
            id="citation-missing",
            title="Get Cited by AI Assistants",
            description=(
                "Add structured data markup (FAQ, HowTo schema) and include direct, "
                "factual answers in your content headers."
            ),
            priority="high",
            expected_impact=25
        )
    if len(competitors) > 3:
        return Recommendation(
            id="citation-differentiate",
            title="Stand Out From a Crowded Field",
            description=(
                "You're being cited, but so are many competitors. "
                "Differentiate with unique data, case studies, and expert quotes."
            ),
            priority="medium",
            expected_impact=15
        )
    return Recommendation(
        id="citation-maintain",
        title="Keep Your Lead",
        description=(
            "Great visibility! Maintain by regularly updating content and adding "
            "fresh insights AI can reference."
        ),
        priority="low",
        expected_impact=5
    )


def _is_question(heading: str) -> bool:
    lowered = heading.lower()
    return "?" in heading or lowered.startswith(_QUESTION_STARTS)


def _crawl_recommendations(summary: PageSummary) -> List[Recommendation]:
    recommendations = []

    if summary.structured_data_count == 0:
        recommendations.append(Recommendation(
            id="schema-1",
            title="Help AI Know Who You Are",
            description=(
                "AI has no way to verify your business exists. Add Organization schema "
                "to your website so assistants can read your business name, website, and what you do."
            ),
            priority="high",
            expected_impact=25
        ))

    questions = [h for h in summary.headings if _is_question(h)]
    if len(questions) >= 2 and not summary.has_faq_schema:
        examples = ", ".join(f'"{q}"' for q in questions[:3])
        recommendations.append(Recommendation(
            id="schema-faq",
            title="Turn Your FAQs Into AI-Ready Content",
            description=(
                f"You have {len(questions)} questions on your site (like {examples}). "
                "Add FAQ schema to mark these as official Q&As so AI uses your answers."
            ),
            priority="high",
            expected_impact=20
        ))

    if len(summary.meta_description) < MIN_META_DESCRIPTION_LENGTH:
        problem = "has no meta description" if not summary.meta_description else "has a meta description that is too short"
        recommendations.append(Recommendation(
            id="meta-desc",
            title="Write a Summary AI Can Use",
            description=(
                f"Your homepage {problem}. Write a 150-160 character description that says "
                "exactly what visitors get and includes your main keyword naturally."
            ),
            priority="high",
            expected_impact=12
        ))

    if summary.h1_count == 0:
        recommendations.append(Recommendation(
            id="heading-h1",
            title="Add a Main Headline",
            description=(
                "Your page is missing a main headline (H1), so AI can't tell what the page "
                "is about. Add one H1 at the top that states it clearly."
            ),
            priority="high",
            expected_impact=15
        ))
    elif summary.h1_count > 1:
        recommendations.append(Recommendation(
            id="heading-h1-multiple",
            title="Use Only One Main Headline",
            description=(
                f"Your page has {summary.h1_count} main headlines (H1s). Keep the most "
                "important one and change the others to H2 subheadings."
            ),
            priority="high",
            expected_impact=10
        ))

    return recommendations


def generate_recommendations(
    responses: Sequence[ProviderResponse],
    competitors: Sequence[ValidatedCompetitor],
    subject_summary: Optional[PageSummary] = None
) -> List[Recommendation]:
    """
    Build recommendations in plain business language.

    One citation-level recommendation is always present. Crawl-derived ones
    are added when the subject summary is available. Sorted by priority, then
    expected impact, and capped at six.
    """
    is_cited = any(response.is_cited for response in responses)
    recommendations = [_citation_recommendation(is_cited, competitors)]

    if subject_summary is not None:
        recommendations.extend(_crawl_recommendations(subject_summary))

    recommendations.sort(key=lambda r: (PRIORITY_ORDER.get(r.priority, len(PRIORITY_ORDER)), -r.expected_impact))
    return recommendations[:MAX_RECOMMENDATIONS]


def build_analysis_result(
    analysis_id: str,
    website: str,
    domain: str,
    brand_name: str,
    industry: Optional[str],
    responses: Sequence[ProviderResponse],
    competitors: Sequence[ValidatedCompetitor],
    subject_summary: Optional[PageSummary] = None,
    errors: Sequence[str] = ()
) -> AnalysisResult:
    """Score a finished run and assemble its immutable AnalysisResult."""
    citation_rate = calculate_citation_rate(responses)
    visibility_score = calculate_visibility_score(citation_rate, len(competitors), responses)
    missed_traffic = estimate_missed_traffic(citation_rate, len(competitors))

    logger.info(
        f"📊 {domain}: citation rate {citation_rate:.2f}%, visibility {visibility_score}, "
        f"{len(competitors)} competitors"
    )

    return AnalysisResult(
        analysis_id=analysis_id,
        website=website,
        domain=domain,
        brand_name=brand_name,
        industry=industry,
        citation_rate=round(citation_rate, 2),
        visibility_score=visibility_score,
        cited_count=sum(1 for r in responses if r.is_cited),
        competitors=list(competitors),
        recommendations=generate_recommendations(responses, competitors, subject_summary),
        missed_traffic=missed_traffic,
        responses=list(responses),
        total_cost=round(sum(r.cost for r in responses), 4),
        total_tokens=sum(r.tokens_used for r in responses),
        errors=list(errors),
        crawl_available=subject_summary is not None
    )
