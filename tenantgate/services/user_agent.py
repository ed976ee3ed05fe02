"""Device fingerprinting from raw user agent strings."""

import re
from typing import List, Optional, Tuple

from tenantgate.models.context import DeviceInfo

# Checked before mobile markers: Android tablets omit "Mobile"
TABLET_PATTERNS = [
    r"\biPad\b",
    r"\bTablet\b",
    r"\bKindle\b",
    r"\bSilk/",
    r"\bPlayBook\b",
    r"Android(?!.*\bMobile\b)",
]

MOBILE_PATTERNS = [
    r"\biPhone\b",
    r"\biPod\b",
    r"Android.*\bMobile\b",
    r"\bWindows Phone\b",
    r"\bIEMobile\b",
    r"\bBlackBerry\b|\bBB10\b",
    r"\bOpera Mini\b",
    r"\bMobile\b",
]

DESKTOP_PATTERNS = [
    r"\bWindows NT\b",
    r"\bMacintosh\b",
    r"\bX11\b",
    r"\bLinux\b",
    r"\bCrOS\b",
]

# (name, pattern); first match wins, so derivatives precede their engines
BROWSER_RULES: List[Tuple[str, str]] = [
    ("Edge", r"\bEdg(?:e|A|iOS)?/([\d.]+)"),
    ("Opera", r"\b(?:OPR|Opera)/([\d.]+)"),
    ("Samsung Internet", r"\bSamsungBrowser/([\d.]+)"),
    ("Firefox", r"\b(?:Firefox|FxiOS)/([\d.]+)"),
    ("Chrome", r"\b(?:Chrome|CriOS)/([\d.]+)"),
    ("Safari", r"\bVersion/([\d.]+).*\bSafari/"),
    ("IE", r"\bMSIE ([\d.]+)|\bTrident/.*\brv:([\d.]+)"),
]

PLATFORM_RULES: List[Tuple[str, str]] = [
    ("Windows Phone", r"\bWindows Phone(?: OS)? ([\d.]+)"),
    ("Windows", r"\bWindows NT ([\d.]+)"),
    ("iOS", r"\b(?:iPhone|CPU) OS ([\d_]+)"),
    ("AndroidOS", r"\bAndroid ([\d.]+)"),
    ("ChromeOS", r"\bCrOS \S+ ([\d.]+)"),
    ("OS X", r"\bMac OS X ([\d_.]+)"),
    ("Linux", r"\bLinux\b()"),
]

DEVICE_NAME_RULES: List[Tuple[str, str]] = [
    ("iPhone", r"\biPhone\b"),
    ("iPad", r"\biPad\b"),
    ("iPod", r"\biPod\b"),
    ("Macintosh", r"\bMacintosh\b"),
]


def _matches_any(patterns: List[str], user_agent: str) -> bool:
    return any(re.search(pattern, user_agent) for pattern in patterns)


def _name_and_version(rules: List[Tuple[str, str]], user_agent: str) -> Optional[str]:
    for name, pattern in rules:
        match = re.search(pattern, user_agent)
        if match:
            version = next((group for group in match.groups() if group), "")
            version = version.replace("_", ".")
            return f"{name} {version}".strip()
    return None


def classify_device(user_agent: str) -> str:
    """Classify a user agent as tablet, mobile, desktop or unknown."""
    if not user_agent:
        return "unknown"
    if _matches_any(TABLET_PATTERNS, user_agent):
        return "tablet"
    if _matches_any(MOBILE_PATTERNS, user_agent):
        return "mobile"
    if _matches_any(DESKTOP_PATTERNS, user_agent):
        return "desktop"
    return "unknown"


def _device_name(user_agent: str, device_type: str, platform: Optional[str]) -> Optional[str]:
    for name, pattern in DEVICE_NAME_RULES:
        if re.search(pattern, user_agent):
            return name
    # Android puts the model right before " Build/"
    match = re.search(r"Android [\d.]+; (?:[a-zA-Z-]+; )?([^;)]+?)(?: Build/|\))", user_agent)
    if match:
        return match.group(1).strip()
    if device_type == "mobile":
        return platform
    return None


def parse_user_agent(user_agent: Optional[str]) -> DeviceInfo:
    """
    Derive device type, device name, browser and platform from a user agent.

    Heuristic pattern matching only; anything unrecognised degrades to
    `unknown` / None instead of failing.
    """
    user_agent = (user_agent or "").strip()
    if not user_agent:
        return DeviceInfo(device_type="unknown")

    device_type = classify_device(user_agent)
    platform = _name_and_version(PLATFORM_RULES, user_agent)
    return DeviceInfo(
        device_type=device_type,
        device_name=_device_name(user_agent, device_type, platform),
        browser=_name_and_version(BROWSER_RULES, user_agent),
        platform=platform,
    )

