"""
Fundo Ambiental worker.

Scrapes the notices listing for energy-efficiency related cards, deep-crawls
each notice page and persists the enriched result. When the listing yields
nothing (layout change, outage) the generic crawler runs over the canonical
seed URLs instead.
"""

import logging
import time
from collections import OrderedDict
from typing import List

from bs4 import BeautifulSoup

from apoios.core.domain_models import DiscoveredCandidate, RunError, WorkerRunResult, WorkerRunStats
from apoios.core.utils import clean_text, host_matches, to_absolute_url
from apoios.enhance.relevance import is_relevant_to_energy_efficiency, should_block_title
from apoios.ingest.deep_crawler import enrich_candidate
from apoios.workers.context import IngestionContext
from apoios.workers.discovery_runner import format_duration, persist_candidates, run_canonical_source

logger = logging.getLogger(__name__)

SOURCE_ID = "fundo-ambiental"

CARD_SELECTOR = "article, .aviso-item, .card, [class*=aviso]"
CARD_TITLE_SELECTOR = "h2, h3, .title, .aviso-title, a"
CARD_DATE_SELECTOR = ".date, .data, time, [class*=date]"
CARD_DESCRIPTION_SELECTOR = "p, .description, .resumo"


def _first_text(card, selector: str) -> str:
    element = card.select_one(selector)
    return clean_text(element.get_text(" ", strip=True)) if element else ""


def parse_listing(html: str, base_url: str, allowed_hosts=()) -> List[DiscoveredCandidate]:
    """
    Extract relevant notice cards from the listing page.

    Args:
        html: Listing page HTML
        base_url: Listing URL, used to resolve relative links
        allowed_hosts: Optional host allowlist for card links

    Returns:
        Candidates in page order, one per URL
    """
    soup = BeautifulSoup(html, "lxml")
    found: "OrderedDict[str, DiscoveredCandidate]" = OrderedDict()

    for card in soup.select(CARD_SELECTOR):
        title = _first_text(card, CARD_TITLE_SELECTOR)
        link = card.find("a", href=True)
        if not title or link is None:
            continue

        url = to_absolute_url(link["href"], base_url)
        if not url or url in found:
            continue
        if allowed_hosts and not host_matches(url, allowed_hosts):
            continue

        description = _first_text(card, CARD_DESCRIPTION_SELECTOR)
        if should_block_title(title):
            continue
        if not is_relevant_to_energy_efficiency(f"{title} {description}"):
            continue

        found[url] = DiscoveredCandidate(
            title=title,
            url=url,
            description=description or None,
            date_text=_first_text(card, CARD_DATE_SELECTOR) or None,
        )

    return list(found.values())


def ingest_fundo_ambiental(context: IngestionContext) -> WorkerRunResult:
    """Listing scrape + deep crawl, falling back to the generic seed crawl."""
    settings = context.settings
    source = context.sources.get(SOURCE_ID)
    started_at = time.time()

    listing_url = settings.fundo_ambiental_url
    html = context.fetcher.fetch(listing_url)
    candidates = parse_listing(html, listing_url, source.allowed_hosts) if html else []
    logger.info(f"[{SOURCE_ID}] Listing {listing_url}: {len(candidates)} relevant notices")

    if not candidates:
        logger.warning(f"[{SOURCE_ID}] Listing empty, falling back to generic discovery")
        return run_canonical_source(context, source)

    candidates = candidates[:settings.max_programs_per_source]
    stats = WorkerRunStats(found=len(candidates))
    errors: List[RunError] = []

    enriched = []
    for candidate in candidates:
        details = context.extractor.extract_details(candidate.url, delay_ms=settings.deep_crawl_delay_ms)
        enriched.append(enrich_candidate(candidate, details))

    persist_candidates(context, source, enriched, stats, errors, delay_ms=settings.persist_delay_ms)

    stats.errors = len(errors)
    stats.duration = format_duration(started_at)
    logger.info(
        f"[{SOURCE_ID}] Done: found={stats.found} new={stats.new} updated={stats.updated} "
        f"skipped={stats.skipped} errors={stats.errors} ({stats.duration}s)"
    )
    return WorkerRunResult(success=True, stats=stats, errors=errors)
