"""
Trial abuse guard.

Scores a free-trial/free-report request against historical trial records
with five independent, additive checks:

    email similarity (within cooldown)   +40
    device fingerprint reuse (>= 2)      +30
    IP reuse (>= 3)                      +25
    disposable email domain              +35
    rapid signups in 24 h (>= 3)         +20

The request is allowed while the total stays below the block threshold.
The rejection reason comes from the first failing check in the order above.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from config.settings import settings
from models.schemas import AbuseCheckInput, RiskAssessment, TrialRecord, utc_now
from utils.errors import InputValidationError

logger = logging.getLogger(__name__)

EMAIL_SIMILARITY_THRESHOLD = 0.8
MAX_TRIALS_PER_DEVICE = 2
MAX_TRIALS_PER_IP = 3
RAPID_SIGNUP_WINDOW_HOURS = 24
RAPID_SIGNUP_COUNT = 3

EMAIL_SIMILARITY_RISK = 40
DEVICE_RISK = 30
IP_RISK = 25
DISPOSABLE_EMAIL_RISK = 35
TIME_PATTERN_RISK = 20

DISPOSABLE_EMAIL_DOMAINS = frozenset({
    "10minutemail.com",
    "tempmail.org",
    "guerrillamail.com",
    "mailinator.com",
    "throwaway.email",
    "temp-mail.org",
})

# Fixed priority order for the rejection reason
CHECK_ORDER = ("email_similarity", "device_fingerprint", "ip_address", "disposable_email", "time_pattern")

REJECTION_REASONS = {
    "email_similarity": (
        "You've recently used a trial with a similar email address. "
        "Please wait {cooldown} days between trials."
    ),
    "device_fingerprint": "Multiple trial attempts detected from this device. Please contact support if you need assistance.",
    "ip_address": "Trial limit reached for this location. Please contact support for assistance.",
    "disposable_email": "Temporary email addresses are not allowed for trials. Please use a permanent email address.",
    "time_pattern": "Too many recent trial attempts. Please wait 24 hours before trying again.",
}


def normalize_email(email: str) -> str:
    """
    Case-fold and strip dots and any ``+suffix`` from the local part.

    Example:
        >>> normalize_email("John.Doe+test@Example.com")
        'johndoe@example.com'
    """
    email = (email or "").strip().lower()
    if "@" not in email:
        return email
    local, domain = email.rsplit("@", 1)
    local = local.split("+", 1)[0].replace(".", "")
    return f"{local}@{domain}"


def email_domain(email: str) -> str:
    return (email or "").strip().lower().rsplit("@", 1)[-1] if "@" in (email or "") else ""


def levenshtein_distance(s1: str, s2: str) -> int:
    """
    Calculate Levenshtein distance between two strings.

    Returns:
        Edit distance (number of operations to transform s1 into s2)
    """
    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1)

    if len(s2) == 0:
        return len(s1)

    previous_row = range(len(s2) + 1)
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


def email_similarity(email1: str, email2: str) -> float:
    """Similarity (0-1) of two emails after normalization: 1 - distance / max length."""
    norm1 = normalize_email(email1)
    norm2 = normalize_email(email2)
    if norm1 == norm2:
        return 1.0
    max_length = max(len(norm1), len(norm2))
    return 1.0 - levenshtein_distance(norm1, norm2) / max_length


def is_disposable_email(email: str) -> bool:
    return email_domain(email) in DISPOSABLE_EMAIL_DOMAINS


def requires_payment_method(risk_score: int, threshold: Optional[int] = None) -> bool:
    threshold = threshold if threshold is not None else settings.PAYMENT_METHOD_THRESHOLD
    return risk_score > threshold


def get_alternative_options() -> List[str]:
    """Onboarding paths offered to blocked users."""
    return [
        "Start with our Free plan (1 analysis per month)",
        "Schedule a personalized demo with our team",
        "Contact sales for a custom evaluation",
        "Join our newsletter for exclusive offers",
    ]


def _as_aware(moment: datetime, reference: datetime) -> datetime:
    # Historical records may come back naive from storage; treat them as the reference's zone
    if moment.tzinfo is None and reference.tzinfo is not None:
        return moment.replace(tzinfo=reference.tzinfo)
    return moment


def assess_trial_risk(
    check: AbuseCheckInput,
    history: Sequence[TrialRecord],
    now: Optional[datetime] = None,
    cooldown_days: Optional[int] = None,
    block_threshold: Optional[int] = None
) -> RiskAssessment:
    """
    Compute an explainable risk assessment for a trial request.

    Args:
        check: Submitted email, device fingerprint and IP address
        history: Prior trial records to compare against
        now: Evaluation time (defaults to current UTC time)
        cooldown_days: Email-similarity cooldown window
        block_threshold: Score at or above which the request is blocked

    Returns:
        RiskAssessment with the itemized checks (True = passed)

    Raises:
        InputValidationError: If the email is not an address
    """
    if "@" not in (check.email or ""):
        raise InputValidationError(f"Invalid email address: {check.email!r}")

    now = now or utc_now()
    cooldown_days = cooldown_days if cooldown_days is not None else settings.TRIAL_COOLDOWN_DAYS
    block_threshold = block_threshold if block_threshold is not None else settings.RISK_BLOCK_THRESHOLD

    normalized = normalize_email(check.email)
    checks: Dict[str, bool] = {name: True for name in CHECK_ORDER}
    risk_score = 0

    similar = [
        record for record in history
        if record.normalized_email == normalized
        or email_similarity(check.email, record.email) > EMAIL_SIMILARITY_THRESHOLD
    ]
    if similar:
        most_recent = max(_as_aware(record.created_at, now) for record in similar)
        if now - most_recent < timedelta(days=cooldown_days):
            checks["email_similarity"] = False
            risk_score += EMAIL_SIMILARITY_RISK

    if check.device_fingerprint:
        same_device = [r for r in history if r.device_fingerprint == check.device_fingerprint]
        if len(same_device) >= MAX_TRIALS_PER_DEVICE:
            checks["device_fingerprint"] = False
            risk_score += DEVICE_RISK

    if check.ip_address:
        same_ip = [r for r in history if r.ip_address == check.ip_address]
        if len(same_ip) >= MAX_TRIALS_PER_IP:
            checks["ip_address"] = False
            risk_score += IP_RISK

    if is_disposable_email(check.email):
        checks["disposable_email"] = False
        risk_score += DISPOSABLE_EMAIL_RISK

    window_start = now - timedelta(hours=RAPID_SIGNUP_WINDOW_HOURS)
    recent = [
        r for r in history
        if _as_aware(r.created_at, now) > window_start
        and ((check.ip_address and r.ip_address == check.ip_address)
             or (check.device_fingerprint and r.device_fingerprint == check.device_fingerprint))
    ]
    if len(recent) >= RAPID_SIGNUP_COUNT:
        checks["time_pattern"] = False
        risk_score += TIME_PATTERN_RISK

    allowed = risk_score < block_threshold
    reason = ""
    if not allowed:
        failed = next(name for name in CHECK_ORDER if not checks[name])
        reason = REJECTION_REASONS[failed].format(cooldown=cooldown_days)
        logger.warning(f"🚫 Trial blocked for {normalized}: risk {risk_score} ({failed})")
    elif risk_score:
        logger.info(f"Trial allowed for {normalized} with elevated risk {risk_score}")

    return RiskAssessment(
        allowed=allowed,
        risk_score=risk_score,
        checks=checks,
        reason=reason,
        requires_payment_method=requires_payment_method(risk_score),
        alternative_options=[] if allowed else get_alternative_options()
    )
