"""Flags visits that arrived from an AI assistant."""

from typing import Optional
from urllib.parse import urlparse

AI_SOURCES = {"chatgpt", "perplexity", "claude", "copilot", "openai"}
AI_MEDIUMS = {"ai", "llm", "chatbot", "assistant"}

# referrer host → ai_source
AI_REFERRER_HOSTS = {
    "chat.openai.com": "chatgpt",
    "chatgpt.com": "chatgpt",
    "perplexity.ai": "perplexity",
    "claude.ai": "claude",
    "copilot.microsoft.com": "copilot",
}


def _referrer_host(referrer: Optional[str]) -> str:
    if not referrer:
        return ""
    if "://" not in referrer:
        referrer = "https://" + referrer
    host = (urlparse(referrer).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def detect_ai_source(referrer: Optional[str]) -> Optional[str]:
    """AI assistant name from a referrer URL, or None."""
    host = _referrer_host(referrer)
    for known, source in AI_REFERRER_HOSTS.items():
        if host == known or host.endswith("." + known):
            return source
    return None


def detect_ai_attribution(
    utm_source: Optional[str],
    utm_medium: Optional[str],
    referrer: Optional[str],
) -> tuple[bool, Optional[str]]:
    """(is_ai_attributed, ai_source) for a visit.

    ai_source is the visit's utm_source when attributed, falling back to
    the assistant detected from the referrer.
    """
    source = (utm_source or "").strip().lower()
    medium = (utm_medium or "").strip().lower()
    from_referrer = detect_ai_source(referrer)

    attributed = source in AI_SOURCES or medium in AI_MEDIUMS or from_referrer is not None
    if not attributed:
        return False, None
    return True, (source or from_referrer)
