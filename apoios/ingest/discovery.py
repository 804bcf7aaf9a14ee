"""
Generic link-discovery crawler.

Turns a listing page into candidate (title, url, description) tuples by
filtering its anchors on host, keywords, blocklists and application intent.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set

from bs4 import BeautifulSoup, Tag

from apoios.core.domain_models import DiscoveredCandidate
from apoios.core.utils import clean_text, host_matches, normalize_text, to_absolute_url
from apoios.enhance.relevance import (
    has_application_intent,
    has_blocked_marker,
    matches_keywords,
    should_block_title,
)
from apoios.ingest.fetcher import PageFetcher

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 12
MAX_CONTEXT_LENGTH = 900

CONTAINER_TAGS = {"article", "li", "tr", "section"}
CONTAINER_CLASSES = {"card", "entry", "result", "list-item", "news-item"}


@dataclass
class DiscoveryContext:
    """Geographic context attached to every candidate of a crawl."""
    municipality: Optional[str] = None
    district: Optional[str] = None


@dataclass
class DiscoveryOptions:
    allowed_hosts: Sequence[str] = field(default_factory=tuple)
    require_intent: bool = False


def candidate_key(url: str, title: str) -> str:
    return f"{url}::{normalize_text(title)}"


def _find_context_container(anchor: Tag) -> Optional[Tag]:
    """Nearest structural ancestor (article, li, row, card, ...)."""
    for parent in anchor.parents:
        if not isinstance(parent, Tag):
            continue
        if parent.name in CONTAINER_TAGS:
            return parent
        classes = parent.get("class") or []
        if any(cls in CONTAINER_CLASSES for cls in classes):
            return parent
    return None


def extract_candidates(
    html: str,
    base_url: str,
    keywords: Sequence[str] = (),
    context: Optional[DiscoveryContext] = None,
    options: Optional[DiscoveryOptions] = None,
) -> List[DiscoveredCandidate]:
    """
    Extract candidate links from a page's HTML.

    Args:
        html: Page HTML
        base_url: URL the page was fetched from (for relative hrefs)
        keywords: Relevance keywords; empty accepts every link
        context: Municipality/district to stamp on each candidate
        options: Host allowlist and application-intent requirement

    Returns:
        Candidates in document order, de-duplicated by (url, normalized title)
    """
    context = context or DiscoveryContext()
    options = options or DiscoveryOptions()
    soup = BeautifulSoup(html, "lxml")

    candidates: List[DiscoveredCandidate] = []
    seen: Set[str] = set()
    keyword_tuple = tuple(keywords)

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith("#"):
            continue

        url = to_absolute_url(href, base_url)
        if not url:
            continue

        if options.allowed_hosts and not host_matches(url, options.allowed_hosts):
            continue

        title = clean_text(anchor.get_text(" ", strip=True))
        if len(title) < MIN_TITLE_LENGTH or should_block_title(title):
            continue

        description = None
        container = _find_context_container(anchor)
        if container is not None:
            context_text = clean_text(container.get_text(" ", strip=True))[:MAX_CONTEXT_LENGTH]
            if context_text and context_text != title:
                description = context_text

        searchable = normalize_text(f"{title} {description or ''} {url}")
        if has_blocked_marker(searchable):
            continue
        if not matches_keywords(searchable, keyword_tuple):
            continue
        if options.require_intent and not has_application_intent(searchable):
            continue

        key = candidate_key(url, title)
        if key in seen:
            continue
        seen.add(key)

        candidates.append(DiscoveredCandidate(
            title=title,
            url=url,
            description=description,
            municipality=context.municipality,
            district=context.district,
        ))

    return candidates


class LinkDiscoveryCrawler:
    """Fetch a page and run candidate extraction over it."""

    def __init__(self, fetcher: PageFetcher):
        self.fetcher = fetcher

    def discover(
        self,
        url: str,
        keywords: Sequence[str] = (),
        context: Optional[DiscoveryContext] = None,
        options: Optional[DiscoveryOptions] = None,
    ) -> List[DiscoveredCandidate]:
        html = self.fetcher.fetch(url)
        if not html:
            logger.warning(f"No HTML for {url}, skipping discovery")
            return []

        candidates = extract_candidates(html, url, keywords, context, options)
        logger.info(f"Discovered {len(candidates)} candidates at {url}")
        return candidates
