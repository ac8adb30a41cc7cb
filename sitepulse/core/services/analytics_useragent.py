"""
User agent parsing for device, browser and OS breakdowns.

Key behaviors:
- Pattern tables are checked in order; first match wins
- Missing or unrecognised agents bucket as "Unknown", never dropped
- Only the derived labels leave this module, never the raw header
"""

from __future__ import annotations

from dataclasses import dataclass

UNKNOWN = "Unknown"

# --- Configuration ---


@dataclass(frozen=True)
class UserAgentConfig:
    """Ordered substring tables (matched case-insensitively)."""

    # Order matters: Edge and Opera embed "Chrome", Chrome embeds "Safari"
    browser_patterns: tuple[tuple[str, str], ...] = (
        ("edg/", "Edge"),
        ("edge/", "Edge"),
        ("opr/", "Opera"),
        ("opera", "Opera"),
        ("samsungbrowser/", "Samsung Internet"),
        ("firefox/", "Firefox"),
        ("fxios/", "Firefox"),
        ("crios/", "Chrome"),
        ("chrome/", "Chrome"),
        ("safari/", "Safari"),
        ("msie", "Internet Explorer"),
        ("trident/", "Internet Explorer"),
    )

    # iOS and Android before the desktop systems they resemble
    os_patterns: tuple[tuple[str, str], ...] = (
        ("iphone", "iOS"),
        ("ipad", "iOS"),
        ("ipod", "iOS"),
        ("android", "Android"),
        ("windows", "Windows"),
        ("mac os x", "macOS"),
        ("macintosh", "macOS"),
        ("cros ", "ChromeOS"),
        ("linux", "Linux"),
    )

    tablet_patterns: tuple[str, ...] = ("ipad", "tablet", "kindle", "silk/")
    mobile_patterns: tuple[str, ...] = ("mobile", "iphone", "ipod", "android", "windows phone")

    # A UA must contain one of these to be considered a browser at all
    browser_markers: tuple[str, ...] = ("mozilla/", "opera")


DEFAULT_CONFIG = UserAgentConfig()


@dataclass(frozen=True)
class DeviceInfo:
    """Derived labels for one user agent."""

    device: str = UNKNOWN
    browser: str = UNKNOWN
    os: str = UNKNOWN

    def summary(self) -> str | None:
        """Short label for live activity, e.g. "Chrome on Windows"."""
        if self.browser == UNKNOWN and self.os == UNKNOWN:
            return None
        return f"{self.browser} on {self.os}"


def _first_match(ua: str, table: tuple[tuple[str, str], ...]) -> str:
    for pattern, label in table:
        if pattern in ua:
            return label
    return UNKNOWN


def parse_user_agent(
    user_agent: str | None,
    config: UserAgentConfig = DEFAULT_CONFIG,
) -> DeviceInfo:
    """
    Parse a user agent string into device / browser / OS labels.

    Agents that do not look like a browser at all map every label to Unknown.
    """
    if not user_agent or not user_agent.strip():
        return DeviceInfo()

    ua = user_agent.lower()

    if not any(marker in ua for marker in config.browser_markers):
        return DeviceInfo()

    browser = _first_match(ua, config.browser_patterns)
    os_name = _first_match(ua, config.os_patterns)

    if any(p in ua for p in config.tablet_patterns):
        device = "Tablet"
    elif any(p in ua for p in config.mobile_patterns):
        # Android tablets omit "Mobile"
        if "android" in ua and "mobile" not in ua:
            device = "Tablet"
        else:
            device = "Mobile"
    elif os_name == UNKNOWN and browser == UNKNOWN:
        device = UNKNOWN
    else:
        device = "Desktop"

    return DeviceInfo(device=device, browser=browser, os=os_name)
