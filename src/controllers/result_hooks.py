"""
Post-Result Hooks

Fire-and-forget side effects run after an analysis result is final:
caching it for the report endpoint and notifying admins. A failing hook is
logged and never affects the returned result or the other hooks.
"""

import logging
from typing import Callable, List, Optional, Sequence

from models.schemas import AnalysisRequest, AnalysisResult
from utils.cache import cache_analysis_result

logger = logging.getLogger(__name__)

PostResultHook = Callable[[AnalysisResult, AnalysisRequest], None]


def cache_result_hook(result: AnalysisResult, request: AnalysisRequest) -> None:
    """Store the result so GET /report/{analysis_id} can serve it."""
    if not cache_analysis_result(result):
        logger.warning(f"Analysis {result.analysis_id} was not cached")


def admin_notification_hook(result: AnalysisResult, request: AnalysisRequest) -> None:
    logger.info(
        f"📬 Analysis {result.analysis_id} complete for {result.domain} "
        f"(account {request.account_id}): visibility {result.visibility_score}, "
        f"citation rate {result.citation_rate}%, {len(result.competitors)} competitors, "
        f"cost ${result.total_cost:.4f}"
    )


def get_default_hooks() -> List[PostResultHook]:
    return [cache_result_hook, admin_notification_hook]


def run_post_result_hooks(
    result: AnalysisResult,
    request: AnalysisRequest,
    hooks: Optional[Sequence[PostResultHook]] = None
) -> int:
    """
    Run every hook, isolating failures.

    Returns:
        Number of hooks that failed
    """
    hooks = get_default_hooks() if hooks is None else hooks
    failures = 0
    for hook in hooks:
        try:
            hook(result, request)
        except Exception as e:
            failures += 1
            logger.error(f"Post-result hook {getattr(hook, '__name__', hook)} failed: {e}", exc_info=True)
    return failures
