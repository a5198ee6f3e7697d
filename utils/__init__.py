# Utilities package

from .helpers import (
    generate_analysis_id,
    sanitize_brand_name,
    extract_domain_from_url,
    is_valid_domain,
    round_half_up
)

__all__ = [
    "generate_analysis_id",
    "sanitize_brand_name",
    "extract_domain_from_url",
    "is_valid_domain",
    "round_half_up"
]
