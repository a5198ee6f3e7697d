"""
Utility functions and helpers for the AI Citation Audit service.

This module provides common utility functions used across different components
of the application, including identifier generation and URL/domain handling.
"""

import math
import uuid
from typing import Optional
from urllib.parse import urlparse


def generate_analysis_id() -> str:
    """
    Generate a unique analysis identifier.

    Creates a UUID4-based unique identifier for tracking analysis runs.

    Returns:
        str: Unique analysis ID as a string in UUID4 format

    Example:
        >>> analysis_id = generate_analysis_id()
        >>> print(analysis_id)
        '550e8400-e29b-41d4-a716-446655440000'
    """
    return str(uuid.uuid4())


def sanitize_brand_name(brand_name: Optional[str]) -> str:
    """
    Sanitize and normalize a brand name for consistent processing.

    Collapses repeated whitespace and handles None values.

    Example:
        >>> sanitize_brand_name("  Acme   Corp  ")
        'Acme Corp'
        >>> sanitize_brand_name(None)
        ''
    """
    if not brand_name:
        return ""
    return " ".join(brand_name.strip().split())


def extract_domain_from_url(url: str) -> str:
    """
    Extract the lowercase host name from a URL, without ``www.`` or port.

    Accepts bare domains as well as full URLs.

    Args:
        url: Full URL or bare domain

    Returns:
        str: Domain name without protocol, port and path

    Example:
        >>> extract_domain_from_url("https://www.Acme.com/about")
        'acme.com'
        >>> extract_domain_from_url("acme.io/pricing")
        'acme.io'
    """
    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"

    try:
        host = urlparse(candidate).hostname or ""
    except ValueError:
        host = ""

    if not host:
        # Fall back to manual splitting for malformed input
        host = candidate.split("://", 1)[-1].split("/")[0].split("?")[0].split(":")[0]

    host = host.lower().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host


def is_valid_domain(domain: str) -> bool:
    """Return True if the domain looks like a routable host name."""
    if not domain or "." not in domain or " " in domain:
        return False
    labels = domain.split(".")
    return all(labels) and len(labels[-1]) >= 2


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with .5 rounding away from zero for positives."""
    return int(math.floor(value + 0.5))
