# account_security/services/device_fingerprint.py
"""
User agent classification for session management.

Each classification is an ordered table of (predicate, label) rules evaluated
top to bottom; the first match wins. Order encodes precedence, so more
specific tokens sit above the generic tokens they contain:

- phone markers before tablet markers (``Android ... Mobile`` is a phone,
  plain ``Android`` is a tablet), tablet markers before the generic
  ``Mobile`` token (iPad Safari sends it), desktop when nothing matches
- derived browsers before the engine they are built on (Edge and Opera ship
  a ``Chrome/`` token, Chrome ships a ``Safari/`` token)
- iOS before macOS (iOS agents say ``like Mac OS X``), Android before Linux
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

DeviceType = Literal["desktop", "mobile", "tablet", "unknown"]

UNKNOWN = "Unknown"

Predicate = Callable[[str], bool]


def _contains(*tokens: str) -> Predicate:
    return lambda ua: any(token in ua for token in tokens)


def _matches(pattern: str) -> Predicate:
    compiled = re.compile(pattern)
    return lambda ua: compiled.search(ua) is not None


def _all(*predicates: Predicate) -> Predicate:
    return lambda ua: all(predicate(ua) for predicate in predicates)


def _none_of(*tokens: str) -> Predicate:
    return lambda ua: not any(token in ua for token in tokens)


# All predicates receive the lower-cased user agent.
DEVICE_RULES: list[tuple[Predicate, DeviceType]] = [
    (_contains("iphone", "ipod", "windows phone", "blackberry"), "mobile"),
    (_matches(r"android.*mobile"), "mobile"),
    (_contains("ipad", "tablet"), "tablet"),
    (_contains("android"), "tablet"),
    (_contains("mobile"), "mobile"),
]

BROWSER_RULES: list[tuple[Predicate, str]] = [
    (_contains("edg/", "edge/", "edga/", "edgios/"), "Edge"),
    (_contains("opr/", "opera"), "Opera"),
    (_contains("samsungbrowser/"), "Samsung Internet"),
    (_contains("firefox/", "fxios/"), "Firefox"),
    (_all(_contains("chrome/", "crios/"), _none_of("chromium")), "Chrome"),
    (_all(_contains("safari/"), _none_of("chrome", "chromium", "android")), "Safari"),
    (_contains("msie", "trident/"), "Internet Explorer"),
]

OS_RULES: list[tuple[Predicate, str]] = [
    (_contains("windows phone"), "Windows Phone"),
    (_contains("windows nt 10"), "Windows 10/11"),
    (_contains("windows nt 6.3"), "Windows 8.1"),
    (_contains("windows nt 6.2"), "Windows 8"),
    (_contains("windows nt 6.1"), "Windows 7"),
    (_contains("windows"), "Windows"),
    (_contains("iphone", "ipad", "ipod"), "iOS"),
    (_contains("mac os x", "macintosh"), "macOS"),
    (_contains("android"), "Android"),
    (_contains("cros"), "Chrome OS"),
    (_contains("linux"), "Linux"),
]

DEVICE_ICONS: dict[str, str] = {
    "mobile": "smartphone",
    "tablet": "tablet",
    "desktop": "monitor",
    "unknown": "help-circle",
}


@dataclass(frozen=True)
class DeviceFingerprint:
    device_type: DeviceType
    browser: str
    os: str
    raw: str


def _first_match(rules: list[tuple[Predicate, str]], ua: str, default: str) -> str:
    for predicate, label in rules:
        if predicate(ua):
            return label
    return default


def parse_user_agent(user_agent: str | None) -> DeviceFingerprint:
    """Classify a user agent string into device type, browser and OS."""
    if not user_agent or not user_agent.strip():
        return DeviceFingerprint(device_type="unknown", browser=UNKNOWN, os=UNKNOWN, raw="")

    ua = user_agent.lower()
    return DeviceFingerprint(
        device_type=_first_match(DEVICE_RULES, ua, "desktop"),  # type: ignore[arg-type]
        browser=_first_match(BROWSER_RULES, ua, UNKNOWN),
        os=_first_match(OS_RULES, ua, UNKNOWN),
        raw=user_agent,
    )


def get_device_description(parsed: DeviceFingerprint) -> str:
    """Human readable label such as "Chrome on Android (mobile)"."""
    parts = []
    if parsed.browser != UNKNOWN:
        parts.append(parsed.browser)
    if parsed.os != UNKNOWN:
        parts.append(f"on {parsed.os}")
    if not parts:
        return "Unknown device"
    if parsed.device_type not in ("desktop", "unknown"):
        parts.append(f"({parsed.device_type})")
    return " ".join(parts)


def get_device_icon(device_type: str) -> str:
    return DEVICE_ICONS.get(device_type, DEVICE_ICONS["unknown"])
