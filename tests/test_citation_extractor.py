"""
Tests for citation detection and competitor extraction.
"""

from agents.citation_extractor import (
    CITATION_CONTEXT_CHARS,
    check_citation,
    extract_competitors,
    is_non_competitor_domain,
)


def test_domain_mention_is_cited_with_bounded_context():
    text = ("x" * 300) + " You could try greenleaf.com for refills. " + ("y" * 300)
    match = check_citation(text, "https://www.greenleaf.com/", "GreenLeaf")

    assert match.is_cited
    assert "greenleaf.com" in match.context
    assert len(match.context) <= 2 * CITATION_CONTEXT_CHARS + len("greenleaf.com")


def test_subdomains_match_but_lookalikes_do_not():
    assert check_citation("See shop.greenleaf.com for details", "greenleaf.com").is_cited
    assert check_citation("See https://www.GreenLeaf.com/about", "greenleaf.com").is_cited
    assert not check_citation("See notgreenleaf.com for details", "greenleaf.com").is_cited
    assert not check_citation("See greenleaf.com.evil.net", "greenleaf.com").is_cited


def test_brand_mention_is_cited_case_insensitively():
    match = check_citation("Many people like GREENLEAF products.", "greenleaf.com", "GreenLeaf")
    assert match.is_cited

    spaced = check_citation("Green-Leaf is a popular choice.", "gl-products.com", "Green Leaf")
    assert spaced.is_cited


def test_brand_inside_other_word_is_not_cited():
    assert not check_citation("Evergreenleafy options abound.", "greenleaf.com", "GreenLeaf").is_cited


def test_short_brand_names_are_ignored():
    assert not check_citation("GL is a common abbreviation.", "gl.com", "GL").is_cited


def test_mention_inside_denylisted_url_is_not_cited():
    text = (
        "Check https://www.facebook.com/greenleaf.com and "
        "https://www.linkedin.com/company/greenleaf for updates."
    )
    match = check_citation(text, "greenleaf.com", "GreenLeaf")
    assert not match.is_cited
    assert match.context is None


def test_mention_outside_denylisted_url_still_counts():
    text = "Follow https://twitter.com/greenleaf or visit greenleaf.com directly."
    assert check_citation(text, "greenleaf.com", "GreenLeaf").is_cited


def test_empty_response_is_not_cited():
    assert not check_citation("", "greenleaf.com", "GreenLeaf").is_cited


def test_denylist_covers_aggregators_and_public_tlds():
    assert is_non_competitor_domain("facebook.com")
    assert is_non_competitor_domain("m.facebook.com")
    assert is_non_competitor_domain("en.wikipedia.org")
    assert is_non_competitor_domain("epa.gov")
    assert is_non_competitor_domain("mit.edu")
    assert is_non_competitor_domain("ox.ac.uk") is False
    assert not is_non_competitor_domain("sparkleclean.com")


def test_extract_competitors_urls_then_bare_domains():
    text = (
        "Top picks: https://www.sparkleclean.com/products, ecohome.io and "
        "https://greenleaf.com/shop. Also see blog.greenleaf.com, "
        "https://www.amazon.com/s?k=cleaner, epa.gov, and sparkleclean.com again. "
        "Email sales@rivalmail.com for a quote."
    )
    mentions = extract_competitors(text, "greenleaf.com")
    domains = [m.domain for m in mentions]

    assert domains == ["sparkleclean.com", "ecohome.io"]
    assert mentions[0].url == "https://www.sparkleclean.com/products"
    assert mentions[1].url is None
    assert [m.position for m in mentions] == [1, 2]
    assert "ecohome.io" in mentions[1].context


def test_extract_competitors_prefers_provider_sources():
    sources = ["https://www.sparkleclean.com/blog", "https://reddit.com/r/cleaning", "https://greenleaf.com"]
    mentions = extract_competitors("Also mentions ecohome.io", "greenleaf.com", sources)

    assert [m.domain for m in mentions] == ["sparkleclean.com"]
    assert mentions[0].context == "Source 1"


def test_extract_competitors_is_capped():
    text = " ".join(f"brand{i}.com" for i in range(15))
    assert len(extract_competitors(text, "greenleaf.com")) == 10
