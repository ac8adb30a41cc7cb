"""
Traffic source attribution from the first-view referer of a session.

Key behaviors:
- Parse referer URLs and extract the registrable domain
- Classify into direct / search / social / referral with a fixed lookup table
- Internal (same-site) referers count as direct
- Missing or malformed referers count as direct, never raise
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlparse

# --- Enums ---


class TrafficSource(str, Enum):
    """Traffic source classification."""

    DIRECT = "direct"  # No referer
    SEARCH = "search"  # Google, Bing, etc.
    SOCIAL = "social"  # Facebook, LinkedIn, etc.
    REFERRAL = "referral"  # Other websites


class SearchEngine(str, Enum):
    """Known search engines."""

    GOOGLE = "google"
    BING = "bing"
    YAHOO = "yahoo"
    DUCKDUCKGO = "duckduckgo"
    BAIDU = "baidu"
    YANDEX = "yandex"
    ECOSIA = "ecosia"


class SocialNetwork(str, Enum):
    """Known social networks."""

    FACEBOOK = "facebook"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    INSTAGRAM = "instagram"
    PINTEREST = "pinterest"
    REDDIT = "reddit"
    YOUTUBE = "youtube"
    TIKTOK = "tiktok"


# --- Configuration ---


@dataclass(frozen=True)
class AttributionConfig:
    """Attribution lookup table."""

    # Search engine domain patterns
    search_engine_domains: tuple[tuple[str, SearchEngine], ...] = (
        ("google.", SearchEngine.GOOGLE),
        ("bing.", SearchEngine.BING),
        ("yahoo.", SearchEngine.YAHOO),
        ("duckduckgo.", SearchEngine.DUCKDUCKGO),
        ("baidu.", SearchEngine.BAIDU),
        ("yandex.", SearchEngine.YANDEX),
        ("ecosia.", SearchEngine.ECOSIA),
    )

    # Social network domain patterns
    social_network_domains: tuple[tuple[str, SocialNetwork], ...] = (
        ("facebook.", SocialNetwork.FACEBOOK),
        ("fb.", SocialNetwork.FACEBOOK),
        ("twitter.", SocialNetwork.TWITTER),
        ("x.com", SocialNetwork.TWITTER),
        ("t.co", SocialNetwork.TWITTER),
        ("linkedin.", SocialNetwork.LINKEDIN),
        ("lnkd.", SocialNetwork.LINKEDIN),
        ("instagram.", SocialNetwork.INSTAGRAM),
        ("pinterest.", SocialNetwork.PINTEREST),
        ("reddit.", SocialNetwork.REDDIT),
        ("youtube.", SocialNetwork.YOUTUBE),
        ("youtu.be", SocialNetwork.YOUTUBE),
        ("tiktok.", SocialNetwork.TIKTOK),
    )

    # Domains of the tracked site itself; referers from these are direct
    internal_domains: tuple[str, ...] = ("localhost",)


DEFAULT_CONFIG = AttributionConfig()


# --- Data Models ---


@dataclass
class ReferrerInfo:
    """Parsed referer information."""

    url: str | None = None
    domain: str | None = None
    subdomain: str | None = None
    is_search_engine: bool = False
    search_engine: SearchEngine | None = None
    is_social_network: bool = False
    social_network: SocialNetwork | None = None


@dataclass(frozen=True)
class Attribution:
    """Classified traffic source for one session."""

    source: TrafficSource
    name: str  # Human-readable bucket label


# --- Parsing Functions ---


def parse_domain(url: str) -> tuple[str | None, str | None]:
    """
    Extract domain and subdomain from URL.

    Returns (domain, subdomain) tuple.
    """
    if not url:
        return None, None

    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return None, None

    if not host:
        return None, None

    parts = host.split(".")

    if len(parts) >= 2:
        # Handle common two-part TLDs like .co.uk
        second_level = parts[-2] in ("co", "com", "org", "ac")
        if parts[-1] in ("uk", "au", "nz", "jp", "br") and second_level and len(parts) >= 3:
            domain = ".".join(parts[-3:])
            subdomain = ".".join(parts[:-3]) if len(parts) > 3 else None
        else:
            domain = ".".join(parts[-2:])
            subdomain = ".".join(parts[:-2]) if len(parts) > 2 else None
    else:
        domain = host
        subdomain = None

    return domain, subdomain


def parse_referrer(
    url: str | None,
    config: AttributionConfig = DEFAULT_CONFIG,
) -> ReferrerInfo:
    """
    Parse referer URL.

    Extracts domain, detects search engines and social networks.
    """
    if not url:
        return ReferrerInfo()

    domain, subdomain = parse_domain(url)
    info = ReferrerInfo(url=url, domain=domain, subdomain=subdomain)

    if not domain:
        return info

    host = f"{subdomain}.{domain}" if subdomain else domain

    for pattern, engine in config.search_engine_domains:
        if _matches(pattern, host):
            info.is_search_engine = True
            info.search_engine = engine
            return info

    for pattern, network in config.social_network_domains:
        if _matches(pattern, host):
            info.is_social_network = True
            info.social_network = network
            return info

    return info


def _matches(pattern: str, host: str) -> bool:
    """Match a lookup pattern against a host on label boundaries."""
    labels = host.split(".")
    if pattern.endswith("."):
        # "google." matches any label "google" followed by a TLD
        return pattern[:-1] in labels[:-1]
    return host == pattern or host.endswith("." + pattern)


def is_internal(referrer: ReferrerInfo, config: AttributionConfig = DEFAULT_CONFIG) -> bool:
    """Check whether the referer points back at the tracked site."""
    if not referrer.domain:
        return False
    host = f"{referrer.subdomain}.{referrer.domain}" if referrer.subdomain else referrer.domain
    return any(host == d or host.endswith("." + d) for d in config.internal_domains)


def classify_traffic_source(
    referer: str | None,
    config: AttributionConfig = DEFAULT_CONFIG,
) -> Attribution:
    """
    Classify a session's first-view referer.

    Priority:
    1. No referer, unparseable referer or internal referer -> direct
    2. Known search engine -> search
    3. Known social network -> social
    4. Anything else -> referral, named by domain
    """
    info = parse_referrer(referer, config)

    if not info.domain or is_internal(info, config):
        return Attribution(source=TrafficSource.DIRECT, name="Direct")

    if info.is_search_engine and info.search_engine:
        return Attribution(source=TrafficSource.SEARCH, name=_title(info.search_engine.value))

    if info.is_social_network and info.social_network:
        return Attribution(source=TrafficSource.SOCIAL, name=_title(info.social_network.value))

    return Attribution(source=TrafficSource.REFERRAL, name=info.domain)


def _title(value: str) -> str:
    special = {
        "duckduckgo": "DuckDuckGo",
        "linkedin": "LinkedIn",
        "youtube": "YouTube",
        "tiktok": "TikTok",
    }
    return special.get(value, value.title())


# --- Attribution Service ---


class AttributionService:
    """Classifies session referers into traffic source buckets."""

    def __init__(
        self,
        config: AttributionConfig | None = None,
    ) -> None:
        """Initialize service."""
        self._config = config or DEFAULT_CONFIG

    def parse_referrer(self, url: str | None) -> ReferrerInfo:
        """Parse referer URL."""
        return parse_referrer(url, self._config)

    def classify(self, referer: str | None) -> Attribution:
        """Classify a first-view referer."""
        return classify_traffic_source(referer, self._config)


# --- Factory ---


def create_attribution_service(
    config: AttributionConfig | None = None,
) -> AttributionService:
    """Create an AttributionService."""
    return AttributionService(config=config)
