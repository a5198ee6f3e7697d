"""
Tests for prompt generation and industry detection.
"""

from conftest import make_client
from agents.industry_detector import (
    DEFAULT_INDUSTRY,
    INDUSTRY_DISCOVERY_PROMPT,
    detect_industry,
    parse_industry_response,
    resolve_industry,
)
from agents.prompt_generator import brand_from_domain, generate_prompts, infer_query_type
from models.schemas import QueryType


def test_prompts_are_deterministic():
    first = generate_prompts("GreenLeaf", "greenleaf.com", "Eco Cleaning")
    second = generate_prompts("GreenLeaf", "greenleaf.com", "Eco Cleaning")
    assert first == second
    assert [p.id for p in first] == [p.id for p in second]


def test_industry_anchored_prompts():
    prompts = generate_prompts("GreenLeaf", "greenleaf.com", "Eco Cleaning")

    assert 3 <= len(prompts) <= 5
    assert prompts[0].query_type == QueryType.ALTERNATIVES
    assert prompts[0].text == "What are the best alternatives to GreenLeaf for Eco Cleaning?"
    assert all("Eco Cleaning" in p.text for p in prompts)
    assert {p.query_type for p in prompts} >= {QueryType.ALTERNATIVES, QueryType.BEST_PROVIDERS}


def test_default_industry_falls_back_to_description_then_brand():
    with_description = generate_prompts("GreenLeaf", "greenleaf.com", DEFAULT_INDUSTRY, "non-toxic cleaning supplies")
    assert any("non-toxic cleaning supplies" in p.text for p in with_description)
    assert not any(DEFAULT_INDUSTRY in p.text for p in with_description)

    brand_only = generate_prompts("GreenLeaf", "greenleaf.com")
    assert 3 <= len(brand_only) <= 5
    assert all("GreenLeaf" in p.text for p in brand_only)


def test_prompt_ids_are_unique_and_typed():
    for industry, description in [("SaaS", None), (None, "payroll software"), (None, None)]:
        prompts = generate_prompts("Acme", "acme.io", industry, description)
        ids = [p.id for p in prompts]
        assert len(ids) == len(set(ids))
        assert all(p.id.startswith(p.query_type.value) for p in prompts)


def test_brand_derived_from_domain_when_missing():
    assert brand_from_domain("green-leaf.io") == "Green Leaf"
    prompts = generate_prompts("", "green-leaf.io")
    assert "Green Leaf" in prompts[0].text


def test_infer_query_type():
    assert infer_query_type("Best alternatives to Acme?") == QueryType.ALTERNATIVES
    assert infer_query_type("Acme vs Globex for payroll") == QueryType.COMPARISON
    assert infer_query_type("Who are Acme's competitors?") == QueryType.COMPETITORS
    assert infer_query_type("Top payroll tools in 2024") == QueryType.BEST_PROVIDERS
    assert infer_query_type("Can you recommend a payroll tool?") == QueryType.RECOMMENDATION
    assert infer_query_type("What does Acme do?") == QueryType.WHAT_DOES
    assert infer_query_type("Tell me a joke") is None


def test_detect_industry_from_domain_keywords():
    assert detect_industry("GreenLeaf", "greenleafshop.com") == "E-commerce"
    assert detect_industry("Northwind", "northwind.xyz") == DEFAULT_INDUSTRY


def test_parse_industry_response():
    assert parse_industry_response("Industry: **Sustainable Cleaning Products**.[1]") == "Sustainable Cleaning Products"
    assert parse_industry_response("") is None
    assert parse_industry_response("ok") is None


def test_resolve_industry_asks_discovery_provider():
    calls = []
    prompt = INDUSTRY_DISCOVERY_PROMPT.format(brand="GreenLeaf", url="https://greenleafshop.com")
    clients = {"perplexity": make_client({prompt: "Industry: **Eco Cleaning Supplies**"}, calls=calls)}

    assert resolve_industry("GreenLeaf", "greenleafshop.com", clients) == "Eco Cleaning Supplies"
    assert calls == [prompt]


def test_resolve_industry_falls_back_to_keywords():
    failing = {"perplexity": make_client({}, default=TimeoutError("slow"))}
    unusable = {"perplexity": make_client({}, default="ok")}

    assert resolve_industry("GreenLeaf", "greenleafshop.com", failing) == "E-commerce"
    assert resolve_industry("GreenLeaf", "greenleafshop.com", unusable) == "E-commerce"
    assert resolve_industry("GreenLeaf", "greenleafshop.com", {"openai": make_client({}, default="Retail")}) == "E-commerce"
    assert resolve_industry("Northwind", "northwind.xyz") == DEFAULT_INDUSTRY
