"""
Industry Detector

Industry detection for a website. When the discovery provider is available
it is asked which sector the site operates in and its free-text answer is
cleaned into a label; otherwise (or when that fails) a keyword table over
the brand name and domain decides.
"""

import logging
import re
from typing import Dict, List, Mapping, Optional

from config.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_INDUSTRY = "General Business"

INDUSTRY_KEYWORDS: Dict[str, List[str]] = {
    "E-commerce": ["shop", "store", "buy", "sell", "cart", "commerce", "retail", "market", "ecommerce"],
    "SaaS": ["app", "software", "tool", "platform", "cloud", "api", "saas", "crm", "erp"],
    "Marketing": ["marketing", "seo", "ads", "social", "content", "brand", "agency", "media", "growth"],
    "Finance": ["finance", "bank", "invest", "money", "loan", "pay", "fintech", "credit", "tax", "account"],
    "Healthcare": ["health", "medical", "doctor", "clinic", "care", "wellness", "pharma", "therapy", "dental"],
    "Education": ["learn", "course", "edu", "school", "academy", "training", "tutor", "teach"],
    "AI & Automation": ["ai", "bot", "chat", "automat", "gpt", "llm", "machine", "neural", "intellig", "convo", "voice", "assist"],
    "Technology": ["tech", "dev", "code", "cyber", "data", "ml", "crypto", "block", "web3"],
    "Travel": ["travel", "hotel", "flight", "trip", "tour", "booking", "vacation", "hospit"],
    "Real Estate": ["realty", "estate", "property", "home", "house", "rent", "mortgage"],
}

_ANSWER_PREFIXES = re.compile(
    r"^(industry:|the industry is|this is a|they operate in|based on|the company operates in)",
    re.IGNORECASE
)

INDUSTRY_DISCOVERY_PROMPT = (
    "What industry or business sector does {brand} ({url}) operate in? "
    "Answer with just the industry name in 3-5 words."
)


def detect_industry(brand_name: str, domain: str) -> str:
    """
    Detect an industry from brand name and domain by keyword matching.

    The first industry (in table order) with a keyword contained in either
    the brand or the domain wins.

    Args:
        brand_name: Brand or company name
        domain: Normalized domain (e.g. "acmeshop.com")

    Returns:
        Industry label, or DEFAULT_INDUSTRY when nothing matches
    """
    lower_brand = (brand_name or "").lower()
    lower_domain = (domain or "").lower()

    for industry, keywords in INDUSTRY_KEYWORDS.items():
        if any(kw in lower_brand or kw in lower_domain for kw in keywords):
            logger.debug(f"Detected industry '{industry}' for {domain}")
            return industry

    return DEFAULT_INDUSTRY


def parse_industry_response(response_text: str) -> Optional[str]:
    """
    Clean a provider answer into an industry label.

    Takes the first line, strips answer prefixes, markdown emphasis,
    ``[n]`` citation markers, trailing punctuation and surrounding quotes.

    Returns:
        Industry label, or None when the cleaned text is too short or too long
    """
    if not response_text:
        return None

    industry = response_text.split("\n")[0]
    industry = _ANSWER_PREFIXES.sub("", industry)
    industry = industry.replace("**", "").replace("*", "")
    industry = re.sub(r"\[\d+\]", "", industry)
    industry = industry.strip()
    industry = re.sub(r"[.,;:]+$", "", industry)
    industry = re.sub(r"^[\"']|[\"']$", "", industry)

    if 2 < len(industry) < 100:
        return industry

    return None


def detect_industry_with_provider(brand_name: str, domain: str, client, timeout: float) -> Optional[str]:
    """
    Ask a provider which industry the website operates in.

    Args:
        brand_name: Brand or company name
        domain: Normalized domain
        client: Provider client callable ``(prompt, timeout) -> ProviderReply``
        timeout: Call timeout in seconds

    Returns:
        Cleaned industry label, or None when the call fails or the answer is unusable
    """
    prompt = INDUSTRY_DISCOVERY_PROMPT.format(brand=brand_name, url=f"https://{domain}")

    try:
        reply = client(prompt, timeout)
    except Exception as e:
        logger.warning(f"⚠️ Industry discovery failed for {domain}: {str(e)}")
        return None

    industry = parse_industry_response(reply.text)
    if industry:
        logger.info(f"✓ Provider classified {domain} as '{industry}'")
    return industry


def resolve_industry(brand_name: str, domain: str, clients: Optional[Mapping] = None) -> str:
    """Provider-backed detection when the discovery client is available, keyword table otherwise."""
    provider = settings.INDUSTRY_DISCOVERY_PROVIDER
    client = (clients or {}).get(provider) if provider else None

    if client is not None:
        industry = detect_industry_with_provider(
            brand_name, domain, client, settings.INDUSTRY_DISCOVERY_TIMEOUT_SECONDS
        )
        if industry:
            return industry

    return detect_industry(brand_name, domain)
