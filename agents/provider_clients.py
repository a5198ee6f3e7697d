"""
Provider Clients

One callable per AI provider. Each client takes the prompt text and a timeout
in seconds and returns a ProviderReply, or raises. Failures are classified
into a small set of tags by ``classify_error`` so the dispatcher can record
them on tombstone responses.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List

import requests

from config.settings import settings
from utils.errors import AnalysisCancelled, ProviderQueryFailure

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai", "anthropic", "perplexity")

# USD per 1K tokens
COSTS: Dict[str, Dict[str, float]] = {
    "openai": {"input": 0.01, "output": 0.03},
    "anthropic": {"input": 0.003, "output": 0.015},
    "perplexity": {"input": 0.001, "output": 0.001},
}

INPUT_TOKEN_SHARE = 0.4
OUTPUT_TOKEN_SHARE = 0.6

SYSTEM_PROMPT = (
    "You are a helpful assistant. Provide informative, factual answers. "
    "When relevant, mention specific websites, companies, or resources that could help the user."
)


@dataclass
class ProviderReply:
    """Normalized reply from a provider call."""
    text: str
    tokens_used: int = 0
    model: str = ""
    sources: List[str] = field(default_factory=list)


ProviderClient = Callable[[str, float], ProviderReply]


def calculate_cost(provider: str, tokens: int) -> float:
    """
    Estimate the cost of a call from its total token count.

    Tokens are split 40% input / 60% output and priced per 1K tokens.
    Unknown providers cost nothing.
    """
    costs = COSTS.get(provider)
    if not costs or tokens <= 0:
        return 0.0
    input_cost = (tokens * INPUT_TOKEN_SHARE / 1000) * costs["input"]
    output_cost = (tokens * OUTPUT_TOKEN_SHARE / 1000) * costs["output"]
    return round(input_cost + output_cost, 4)


def classify_error(error: BaseException) -> str:
    """Map an exception raised by a provider call to a failure tag."""
    if isinstance(error, ProviderQueryFailure):
        return error.tag
    if isinstance(error, AnalysisCancelled):
        return "cancelled"

    name = type(error).__name__.lower()
    if isinstance(error, (requests.Timeout, TimeoutError)) or "timeout" in name:
        return "timeout"
    if "auth" in name or "permission" in name:
        return "auth"
    if isinstance(error, (requests.ConnectionError, ConnectionError)) or "connection" in name:
        return "transport"
    return "provider_error"


def _message_text(content) -> str:
    # Anthropic replies may arrive as a list of content blocks
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict):
                parts.append(block.get("text", ""))
            else:
                parts.append(str(block))
        return "".join(parts)
    return content or ""


def _total_tokens(message) -> int:
    usage = getattr(message, "usage_metadata", None) or {}
    if usage.get("total_tokens"):
        return int(usage["total_tokens"])

    metadata = getattr(message, "response_metadata", None) or {}
    token_usage = metadata.get("token_usage") or metadata.get("usage") or {}
    if "total_tokens" in token_usage:
        return int(token_usage["total_tokens"])
    return int(token_usage.get("input_tokens", 0)) + int(token_usage.get("output_tokens", 0))


def query_openai(prompt: str, timeout: float) -> ProviderReply:
    """Query OpenAI via LangChain."""
    if not settings.OPENAI_API_KEY:
        raise ProviderQueryFailure("OpenAI API key not configured", provider="openai", tag="auth")

    from langchain_openai import ChatOpenAI
    from langchain_core.messages import SystemMessage, HumanMessage

    llm = ChatOpenAI(
        model=settings.OPENAI_MODEL,
        openai_api_key=settings.OPENAI_API_KEY,
        temperature=settings.PROVIDER_TEMPERATURE,
        max_tokens=settings.PROVIDER_MAX_TOKENS,
        timeout=timeout,
        max_retries=0
    )

    response = llm.invoke([
        SystemMessage(content=SYSTEM_PROMPT),
        HumanMessage(content=prompt)
    ])
    return ProviderReply(
        text=_message_text(response.content),
        tokens_used=_total_tokens(response),
        model=settings.OPENAI_MODEL
    )


def query_anthropic(prompt: str, timeout: float) -> ProviderReply:
    """Query Anthropic via LangChain."""
    if not settings.ANTHROPIC_API_KEY:
        raise ProviderQueryFailure("Anthropic API key not configured", provider="anthropic", tag="auth")

    from langchain_anthropic import ChatAnthropic
    from langchain_core.messages import SystemMessage, HumanMessage

    llm = ChatAnthropic(
        model=settings.ANTHROPIC_MODEL,
        anthropic_api_key=settings.ANTHROPIC_API_KEY,
        temperature=settings.PROVIDER_TEMPERATURE,
        max_tokens=settings.PROVIDER_MAX_TOKENS,
        timeout=timeout,
        max_retries=0
    )

    response = llm.invoke([
        SystemMessage(content=SYSTEM_PROMPT),
        HumanMessage(content=prompt)
    ])
    return ProviderReply(
        text=_message_text(response.content),
        tokens_used=_total_tokens(response),
        model=settings.ANTHROPIC_MODEL
    )


def query_perplexity(prompt: str, timeout: float) -> ProviderReply:
    """
    Query Perplexity through its OpenAI-compatible chat completions endpoint.

    Perplexity returns the URLs it grounded its answer on in ``citations``;
    these are surfaced as reply sources.
    """
    if not settings.PERPLEXITY_API_KEY:
        raise ProviderQueryFailure("Perplexity API key not configured", provider="perplexity", tag="auth")

    response = requests.post(
        f"{settings.PERPLEXITY_API_BASE.rstrip('/')}/chat/completions",
        headers={
            "Authorization": f"Bearer {settings.PERPLEXITY_API_KEY}",
            "Content-Type": "application/json",
        },
        json={
            "model": settings.PERPLEXITY_MODEL,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": settings.PROVIDER_MAX_TOKENS,
            "temperature": settings.PROVIDER_TEMPERATURE,
        },
        timeout=timeout
    )

    if response.status_code in (401, 403):
        raise ProviderQueryFailure(
            f"Perplexity rejected credentials ({response.status_code})",
            provider="perplexity",
            tag="auth"
        )
    if response.status_code >= 400:
        raise ProviderQueryFailure(
            f"Perplexity API error {response.status_code}: {response.text[:200]}",
            provider="perplexity"
        )

    data = response.json()
    choices = data.get("choices") or []
    text = choices[0].get("message", {}).get("content", "") if choices else ""
    usage = data.get("usage") or {}

    return ProviderReply(
        text=text or "",
        tokens_used=int(usage.get("total_tokens", 0)),
        model=data.get("model", settings.PERPLEXITY_MODEL),
        sources=[url for url in data.get("citations") or [] if isinstance(url, str)]
    )


def get_provider_clients() -> Dict[str, ProviderClient]:
    """Return the default client for every supported provider."""
    return {
        "openai": query_openai,
        "anthropic": query_anthropic,
        "perplexity": query_perplexity,
    }
