"""
Provider Query Dispatcher

Issues every (prompt, provider) pair concurrently and normalizes each reply
into a ProviderResponse. A failed pair becomes a tombstone response carrying
an error tag; it never aborts the rest of the batch.
"""

import logging
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence

from agents.citation_extractor import check_citation, extract_competitors
from agents.prompt_generator import infer_query_type
from agents.provider_clients import (
    ProviderClient,
    calculate_cost,
    classify_error,
    get_provider_clients,
)
from config.settings import settings
from models.schemas import PromptSpec, ProviderResponse
from utils.cancellation import CancelToken
from utils.errors import ProviderQueryFailure
from utils.helpers import extract_domain_from_url

logger = logging.getLogger(__name__)

# (account_id, provider, tokens, cost)
UsageCallback = Callable[[Optional[str], str, int, float], None]

CANCEL_POLL_SECONDS = 0.25


def _tombstone(prompt: PromptSpec, provider: str, tag: str) -> ProviderResponse:
    return ProviderResponse(
        prompt_id=prompt.id,
        prompt=prompt.text,
        query_type=prompt.query_type or infer_query_type(prompt.text),
        provider=provider,
        is_cited=False,
        error=tag
    )


def _charge_usage(
    responses: Sequence[ProviderResponse],
    account_id: Optional[str],
    usage_callback: UsageCallback
) -> None:
    """Report each successful call once the batch has settled."""
    for response in responses:
        if response.failed:
            continue
        try:
            usage_callback(account_id, response.provider, response.tokens_used, response.cost)
        except Exception as e:
            logger.error(f"Usage callback failed for {response.provider}: {str(e)}")


def _query_pair(
    prompt: PromptSpec,
    provider: str,
    client: Optional[ProviderClient],
    website: str,
    brand_name: Optional[str],
    cancel_token: Optional[CancelToken],
    timeout: float
) -> ProviderResponse:
    """Run one pair. Never raises: failures are returned as tombstones."""
    try:
        if client is None:
            raise ProviderQueryFailure(f"No client for provider '{provider}'", provider=provider)
        call_timeout = cancel_token.timeout_for(timeout) if cancel_token else timeout
        reply = client(prompt.text, call_timeout)
    except Exception as e:
        tag = classify_error(e)
        logger.warning(f"⚠️ {provider} failed on prompt '{prompt.id}' [{tag}]: {str(e)}")
        return _tombstone(prompt, provider, tag)

    cost = calculate_cost(provider, reply.tokens_used)
    citation = check_citation(reply.text, website, brand_name)
    competitors = extract_competitors(reply.text, extract_domain_from_url(website), reply.sources)

    return ProviderResponse(
        prompt_id=prompt.id,
        prompt=prompt.text,
        query_type=prompt.query_type or infer_query_type(prompt.text),
        provider=provider,
        model_used=reply.model,
        response_text=reply.text,
        tokens_used=reply.tokens_used,
        cost=cost,
        competitors=competitors,
        is_cited=citation.is_cited,
        citation_context=citation.context
    )


def dispatch_queries(
    prompts: Sequence[PromptSpec],
    providers: Sequence[str],
    website: str,
    brand_name: Optional[str] = None,
    clients: Optional[Dict[str, ProviderClient]] = None,
    account_id: Optional[str] = None,
    usage_callback: Optional[UsageCallback] = None,
    cancel_token: Optional[CancelToken] = None,
    timeout: Optional[float] = None
) -> List[ProviderResponse]:
    """
    Query every prompt against every provider in parallel.

    Waits for all pairs to settle. If the cancel token fires first, pairs
    still in flight are abandoned and recorded as ``cancelled`` tombstones.

    Args:
        prompts: Prompts to send (already validated for count)
        providers: Provider identifiers
        website: Subject website
        brand_name: Subject brand name
        clients: Provider name -> client callable (defaults to the real clients)
        account_id: Account charged in the usage callback
        usage_callback: Called once per successful call with tokens and cost,
            after every pair has settled
        cancel_token: Optional cancellation / overall deadline
        timeout: Per-call timeout (defaults to PROVIDER_TIMEOUT_SECONDS)

    Returns:
        One ProviderResponse per pair, ordered prompt-major then by provider
    """
    clients = clients if clients is not None else get_provider_clients()
    timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS

    pairs = [(prompt, provider) for prompt in prompts for provider in providers]
    if not pairs:
        return []

    logger.info(f"🚀 Dispatching {len(prompts)} prompts x {len(providers)} providers ({len(pairs)} calls)")

    results: List[Optional[ProviderResponse]] = [None] * len(pairs)
    executor = ThreadPoolExecutor(max_workers=len(pairs))
    try:
        future_to_index = {
            executor.submit(
                _query_pair, prompt, provider, clients.get(provider), website, brand_name,
                cancel_token, timeout
            ): index
            for index, (prompt, provider) in enumerate(pairs)
        }

        pending = set(future_to_index)
        if cancel_token is None:
            wait(pending)
            pending = set()
        else:
            while pending and not cancel_token.cancelled:
                _, pending = wait(
                    pending,
                    timeout=cancel_token.bound(CANCEL_POLL_SECONDS),
                    return_when=FIRST_COMPLETED
                )

        for future, index in future_to_index.items():
            if future in pending:
                continue
            results[index] = future.result()
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    for index, (prompt, provider) in enumerate(pairs):
        if results[index] is None:
            logger.warning(f"⚠️ {provider} on prompt '{prompt.id}' abandoned after cancellation")
            results[index] = _tombstone(prompt, provider, "cancelled")

    failed = sum(1 for response in results if response.failed)
    logger.info(f"✓ Dispatch complete: {len(results) - failed} succeeded, {failed} failed")

    if usage_callback:
        _charge_usage(results, account_id, usage_callback)

    return results
