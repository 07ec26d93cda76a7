from __future__ import annotations

import html
import re
from typing import Dict, Mapping, Optional

from ..models import SOCIAL_PLATFORMS, SocialLinks

# Leading guard keeps 'x.com' from matching inside 'box.com' and similar.
# Only profile hosts (www, mobile, language prefixes); platform.twitter.com and friends serve scripts.
_LEAD = r"(?<![\w.-])(?:https?://)?(?:www\.|m\.|mobile\.|[a-z]{2}\.)?"

_PATTERNS: Dict[str, "re.Pattern[str]"] = {
    "facebook": re.compile(_LEAD + r"facebook\.com/[a-z0-9._-]+", re.I),
    "instagram": re.compile(_LEAD + r"instagram\.com/[a-z0-9._]+", re.I),
    "twitter": re.compile(_LEAD + r"(?:twitter|x)\.com/[a-z0-9_]+", re.I),
    "linkedin": re.compile(_LEAD + r"linkedin\.com/(?:company|in)/[a-z0-9_-]+", re.I),
    "youtube": re.compile(_LEAD + r"youtube\.com/(?:@|c/|channel/|user/)[a-z0-9_-]+", re.I),
    "tiktok": re.compile(_LEAD + r"tiktok\.com/@[a-z0-9._]+", re.I),
}

# Share buttons, tracking pixels and the like: never a profile
_NON_PROFILE_SEGMENTS: Dict[str, frozenset] = {
    "facebook": frozenset(
        {"2008", "sharer", "sharer.php", "share", "share.php", "tr", "plugins", "dialog", "login", "login.php", "policies", "help"}
    ),
    "instagram": frozenset({"p", "explore", "reel", "accounts", "about"}),
    "twitter": frozenset({"share", "intent", "widgets", "widgets.js", "home", "hashtag", "search", "i", "privacy", "tos"}),
}

_DOMAIN_PATH_RE = re.compile(r"^(?:[a-z0-9-]+\.)+[a-z]{2,}/", re.I)


def normalize_social_url(platform: str, value: Optional[str]) -> Optional[str]:
    """
    Turn a handle or URL into a canonical profile URL.

    - empty -> None
    - absolute http(s) URL -> unchanged
    - otherwise strip one leading '@' and apply the platform template
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    if value.lower().startswith(("http://", "https://")):
        return value

    handle = value[1:] if value.startswith("@") else value
    if not handle:
        return None

    if platform == "facebook":
        return f"https://www.facebook.com/{handle}"
    if platform == "instagram":
        return f"https://www.instagram.com/{handle}"
    if platform == "twitter":
        return f"https://twitter.com/{handle}"
    if platform == "linkedin":
        if handle.startswith("company/"):
            return f"https://www.linkedin.com/{handle}"
        return f"https://www.linkedin.com/in/{handle}"
    if platform == "youtube":
        if handle.startswith(("@", "c/", "user/", "channel/")):
            return f"https://www.youtube.com/{handle}"
        return f"https://www.youtube.com/@{handle}"
    if platform == "tiktok":
        return f"https://www.tiktok.com/@{handle}"
    return None


def _promote_scheme(value: str) -> str:
    """'www.facebook.com/foo' -> 'https://www.facebook.com/foo'; handles pass through."""
    v = value.strip()
    if _DOMAIN_PATH_RE.match(v):
        return "https://" + v
    return v


def _is_profile(platform: str, url: str) -> bool:
    blocked = _NON_PROFILE_SEGMENTS.get(platform)
    if not blocked:
        return True
    path = url.split("://", 1)[-1].split("/", 1)[-1]
    first = path.split("/", 1)[0].split("?", 1)[0].lower()
    return first not in blocked


def links_from_tags(tags: Optional[Mapping[str, str]]) -> SocialLinks:
    """Source-tag strategy: contact:<platform> first, then the bare <platform> tag."""
    out: SocialLinks = {}
    if not tags:
        return out
    for platform in SOCIAL_PLATFORMS:
        raw = tags.get(f"contact:{platform}") or tags.get(platform)
        if not raw:
            continue
        # OSM sometimes holds several values separated by ';'
        first = raw.split(";", 1)[0]
        url = normalize_social_url(platform, _promote_scheme(first))
        if url:
            out[platform] = url
    return out


def links_from_html(body: Optional[str]) -> SocialLinks:
    """Website strategy: first profile-looking match per platform."""
    out: SocialLinks = {}
    if not body:
        return out

    text = html.unescape(body)
    for platform, rx in _PATTERNS.items():
        for m in rx.finditer(text):
            candidate = _promote_scheme(m.group(0).rstrip("."))
            if not _is_profile(platform, candidate):
                continue
            url = normalize_social_url(platform, candidate)
            if url:
                out[platform] = url
            break
    return out
