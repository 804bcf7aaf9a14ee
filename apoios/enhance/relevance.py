"""
Relevance predicates shared by the crawlers.

All checks run against normalized text (lowercase, no diacritics), with the
keyword tables normalized once and cached.
"""

from functools import lru_cache
from typing import Iterable, Optional, Tuple

from apoios.core.keywords import (
    APPLICATION_INTENT_KEYWORDS,
    BLOCKED_DISCOVERY_MARKERS,
    BLOCKED_TITLE_PATTERNS,
    ENERGY_KEYWORDS,
    GENERIC_ENERGY_TERMS,
)
from apoios.core.utils import normalize_text


@lru_cache(maxsize=64)
def normalize_keywords(keywords: Tuple[str, ...]) -> Tuple[str, ...]:
    """Normalize and de-duplicate a keyword tuple, keeping order."""
    seen = []
    for keyword in keywords:
        normalized = normalize_text(keyword)
        if normalized and normalized not in seen:
            seen.append(normalized)
    return tuple(seen)


def contains_any(normalized_text: str, keywords: Iterable[str]) -> bool:
    """True if any (already normalized) keyword is a substring of the text."""
    return any(keyword in normalized_text for keyword in keywords)


def matches_keywords(normalized_text: str, keywords: Tuple[str, ...]) -> bool:
    """An empty keyword list accepts everything."""
    if not keywords:
        return True
    return contains_any(normalized_text, normalize_keywords(tuple(keywords)))


def has_blocked_marker(normalized_text: str) -> bool:
    return contains_any(normalized_text, normalize_keywords(BLOCKED_DISCOVERY_MARKERS))


def has_application_intent(normalized_text: str) -> bool:
    return contains_any(normalized_text, normalize_keywords(APPLICATION_INTENT_KEYWORDS))


def should_block_title(title: Optional[str]) -> bool:
    """
    Reject navigation chrome titles (privacy policy, sitemap, login, ...).

    Examples:
        >>> should_block_title("Política de Privacidade")
        True
        >>> should_block_title("Vale Eficiência 2025")
        False
    """
    if not title:
        return True
    stripped = " ".join(title.split())
    return any(pattern.search(stripped) for pattern in BLOCKED_TITLE_PATTERNS)


def is_relevant_to_energy_efficiency(text: Optional[str]) -> bool:
    """Listing-level relevance: any energy, category or generic efficiency term."""
    normalized = normalize_text(text)
    if not normalized:
        return False

    return (
        contains_any(normalized, normalize_keywords(ENERGY_KEYWORDS))
        or contains_any(normalized, normalize_keywords(GENERIC_ENERGY_TERMS))
    )
