"""
Tests for traffic source attribution.

Covers referer domain extraction and classification into
direct / search / social / referral buckets.
"""

from __future__ import annotations

import pytest

from sitepulse.components.analytics import (
    AttributionConfig,
    AttributionService,
    TrafficSource,
    classify_traffic_source,
    parse_domain,
    parse_referrer,
)

# --- Fixtures ---


@pytest.fixture
def service() -> AttributionService:
    """Attribution service with the default lookup table."""
    return AttributionService()


# --- Domain Parsing ---


class TestParseDomain:
    """Test registrable domain extraction."""

    def test_simple_domain(self) -> None:
        """Plain host has no subdomain."""
        assert parse_domain("https://example.com/page") == ("example.com", None)

    def test_subdomain(self) -> None:
        """Leading labels become the subdomain."""
        assert parse_domain("https://blog.example.com/") == ("example.com", "blog")

    def test_two_part_tld(self) -> None:
        """Country second-level domains keep three labels."""
        assert parse_domain("https://a.b.example.co.uk/x") == ("example.co.uk", "a.b")

    def test_port_ignored(self) -> None:
        """Ports are not part of the domain."""
        assert parse_domain("http://localhost:3000/about") == ("localhost", None)

    def test_empty_and_garbage(self) -> None:
        """Nothing usable yields no domain."""
        assert parse_domain("") == (None, None)
        assert parse_domain("not a url") == (None, None)


class TestParseReferrer:
    """Test search engine and social network detection."""

    def test_search_engine_detected(self) -> None:
        """Google referer flagged as search."""
        info = parse_referrer("https://www.google.com/search?q=portfolio")
        assert info.is_search_engine
        assert not info.is_social_network

    def test_lookalike_domain_not_matched(self) -> None:
        """Patterns match whole labels only."""
        info = parse_referrer("https://mygoogle.com/")
        assert not info.is_search_engine


# --- Classification ---


class TestClassifyTrafficSource:
    """Test the traffic source buckets."""

    def test_no_referer_is_direct(self) -> None:
        """Missing referer counts as direct."""
        result = classify_traffic_source(None)
        assert result.source == TrafficSource.DIRECT
        assert result.name == "Direct"

    def test_malformed_referer_is_direct(self) -> None:
        """Unparseable referer never raises."""
        assert classify_traffic_source("::::").source == TrafficSource.DIRECT

    def test_internal_referer_is_direct(self) -> None:
        """Same-site referer counts as direct."""
        assert classify_traffic_source("http://localhost:3000/").source == TrafficSource.DIRECT

    def test_custom_internal_domain(self) -> None:
        """Configured site domains cover their subdomains."""
        config = AttributionConfig(internal_domains=("example.com",))
        result = classify_traffic_source("https://blog.example.com/post", config)
        assert result.source == TrafficSource.DIRECT

    @pytest.mark.parametrize(
        ("referer", "name"),
        [
            ("https://www.google.com/search?q=x", "Google"),
            ("https://www.google.co.uk/", "Google"),
            ("https://www.bing.com/search?q=x", "Bing"),
            ("https://duckduckgo.com/", "DuckDuckGo"),
        ],
    )
    def test_search_engines(self, referer: str, name: str) -> None:
        """Search engines are named."""
        result = classify_traffic_source(referer)
        assert result.source == TrafficSource.SEARCH
        assert result.name == name

    @pytest.mark.parametrize(
        ("referer", "name"),
        [
            ("https://www.linkedin.com/feed/", "LinkedIn"),
            ("https://t.co/abc123", "Twitter"),
            ("https://old.reddit.com/r/python", "Reddit"),
        ],
    )
    def test_social_networks(self, referer: str, name: str) -> None:
        """Social networks are named."""
        result = classify_traffic_source(referer)
        assert result.source == TrafficSource.SOCIAL
        assert result.name == name

    def test_other_site_is_referral_by_domain(self) -> None:
        """Unknown sites are referrals named by domain."""
        result = classify_traffic_source("https://news.ycombinator.com/item?id=1")
        assert result.source == TrafficSource.REFERRAL
        assert result.name == "ycombinator.com"

    def test_service_uses_config(self) -> None:
        """Service classification applies its own config."""
        service = AttributionService(AttributionConfig(internal_domains=("ycombinator.com",)))
        assert service.classify("https://news.ycombinator.com/").source == TrafficSource.DIRECT

    def test_service_default(self, service: AttributionService) -> None:
        """Default service matches the module function."""
        assert service.classify("https://t.co/x") == classify_traffic_source("https://t.co/x")
