"""
Prompt Generator

Builds a bounded, deterministic set of natural-language prompts from a
brand name, domain, and detected industry or short description. No network
and no randomness: identical inputs always produce identical prompt lists.
"""

import re
from typing import List, Optional, Tuple

from agents.industry_detector import DEFAULT_INDUSTRY
from models.schemas import PromptSpec, QueryType
from utils.helpers import sanitize_brand_name

# (query type, template). Placeholders: {brand}, {domain}, {industry}, {description}
INDUSTRY_TEMPLATES: List[Tuple[QueryType, str]] = [
    (QueryType.ALTERNATIVES, "What are the best alternatives to {brand} for {industry}?"),
    (QueryType.COMPETITORS, "Who are the main competitors of {brand} in {industry}?"),
    (QueryType.BEST_PROVIDERS, "What are the best {industry} companies? Include specific recommendations with websites."),
    (QueryType.RECOMMENDATION, "Which {industry} provider would you recommend for a small business, and why?"),
    (QueryType.COMPARISON, "How does {brand} ({domain}) compare to other {industry} options?"),
]

DESCRIPTION_TEMPLATES: List[Tuple[QueryType, str]] = [
    (QueryType.ALTERNATIVES, "What are the best {brand} alternatives for {description}?"),
    (QueryType.BEST_PROVIDERS, "What are the best services for {description}? Include specific recommendations with websites."),
    (QueryType.WHAT_DOES, "What does {brand} ({domain}) do?"),
    (QueryType.RECOMMENDATION, "Would you recommend {brand} for {description}?"),
]

BRAND_TEMPLATES: List[Tuple[QueryType, str]] = [
    (QueryType.ALTERNATIVES, "What are the best {brand} alternatives and competitors? Include specific recommendations with websites."),
    (QueryType.WHAT_DOES, "What does {brand} ({domain}) do?"),
    (QueryType.COMPETITORS, "Who are the main competitors of {brand}?"),
]

# Checked in order; first match wins
_QUERY_TYPE_PATTERNS: List[Tuple[QueryType, re.Pattern]] = [
    (QueryType.ALTERNATIVES, re.compile(r"\balternatives?\b", re.IGNORECASE)),
    (QueryType.COMPARISON, re.compile(r"\b(vs\.?|versus|compare[sd]?|comparison)\b", re.IGNORECASE)),
    (QueryType.COMPETITORS, re.compile(r"\bcompetitors?\b", re.IGNORECASE)),
    (QueryType.BEST_PROVIDERS, re.compile(r"\b(best|top)\b", re.IGNORECASE)),
    (QueryType.RECOMMENDATION, re.compile(r"\brecommend", re.IGNORECASE)),
    (QueryType.WHAT_DOES, re.compile(r"\bwhat (does|is)\b", re.IGNORECASE)),
]


def brand_from_domain(domain: str) -> str:
    """
    Derive a display brand from a domain.

    Example:
        >>> brand_from_domain("green-leaf.io")
        'Green Leaf'
    """
    label = domain.split(".")[0] if domain else ""
    return " ".join(part.capitalize() for part in re.split(r"[-_]+", label) if part)


def _clean_phrase(value: Optional[str]) -> str:
    return sanitize_brand_name(value).rstrip(" .")


def generate_prompts(
    brand_name: str,
    domain: str,
    industry: Optional[str] = None,
    description: Optional[str] = None
) -> List[PromptSpec]:
    """
    Generate 3-5 prompts tagged with query types.

    Industry-anchored phrasings are used when an industry is known (the
    generic default label counts as unknown); otherwise description-anchored
    phrasings, otherwise brand-only phrasings.

    Args:
        brand_name: Brand name (derived from the domain when empty)
        domain: Normalized domain
        industry: Optional detected industry
        description: Optional short description of the business

    Returns:
        Ordered list of PromptSpec with stable ids (``<type>-<n>``)
    """
    brand = sanitize_brand_name(brand_name) or brand_from_domain(domain)
    industry_phrase = _clean_phrase(industry)
    description_phrase = _clean_phrase(description)

    if industry_phrase and industry_phrase != DEFAULT_INDUSTRY:
        templates = INDUSTRY_TEMPLATES
    elif description_phrase:
        templates = DESCRIPTION_TEMPLATES
    else:
        templates = BRAND_TEMPLATES

    values = {
        "brand": brand,
        "domain": domain,
        "industry": industry_phrase,
        "description": description_phrase,
    }

    return [
        PromptSpec(
            id=f"{query_type.value}-{index}",
            text=template.format(**values),
            query_type=query_type
        )
        for index, (query_type, template) in enumerate(templates, 1)
    ]


def infer_query_type(text: str) -> Optional[QueryType]:
    """Infer the query type of a user-supplied prompt from its wording."""
    for query_type, pattern in _QUERY_TYPE_PATTERNS:
        if pattern.search(text or ""):
            return query_type
    return None
