"""
Generic crawl-and-persist loop for a canonical source.
"""

import logging
import time
from collections import OrderedDict
from typing import Iterable, List, Optional, Sequence

from apoios.core.domain_models import (
    CanonicalSourceDefinition,
    DiscoveredCandidate,
    ProgramType,
    RunError,
    WorkerRunResult,
    WorkerRunStats,
)
from apoios.core.utils import sleep_ms
from apoios.ingest.discovery import DiscoveryContext, DiscoveryOptions
from apoios.workers.context import IngestionContext

logger = logging.getLogger(__name__)


def format_duration(started_at: float) -> str:
    return f"{time.time() - started_at:.2f}"


def persist_candidates(
    context: IngestionContext,
    source: CanonicalSourceDefinition,
    candidates: Iterable[DiscoveredCandidate],
    stats: WorkerRunStats,
    errors: List[RunError],
    delay_ms: int,
    override_program_type: Optional[ProgramType] = None,
    override_entity: Optional[str] = None,
) -> None:
    """
    Persist candidates one by one, recording outcomes in stats.

    A failing candidate is logged and appended to errors; the loop continues.
    """
    for candidate in candidates:
        try:
            outcome = context.persister.persist(
                source,
                candidate,
                override_program_type=override_program_type,
                override_entity=override_entity,
            )
            stats.record(outcome)
        except Exception as e:
            logger.error(f"Failed to persist '{candidate.title}' ({candidate.url}): {e}")
            errors.append(RunError(error=str(e), title=candidate.title, url=candidate.url))

        sleep_ms(delay_ms)


def collect_candidates(
    context: IngestionContext,
    urls: Sequence[str],
    keywords: Sequence[str],
    options: DiscoveryOptions,
    discovery_context: Optional[DiscoveryContext] = None,
    delay_ms: int = 0,
) -> List[DiscoveredCandidate]:
    """Crawl each URL in order and keep the first candidate seen per URL."""
    by_url: "OrderedDict[str, DiscoveredCandidate]" = OrderedDict()
    for url in urls:
        for candidate in context.crawler.discover(url, keywords, discovery_context, options):
            by_url.setdefault(candidate.url, candidate)
        sleep_ms(delay_ms)
    return list(by_url.values())


def run_canonical_source(
    context: IngestionContext,
    source: CanonicalSourceDefinition,
    seed_urls: Optional[Sequence[str]] = None,
    keywords: Optional[Sequence[str]] = None,
    rate_limit_ms: Optional[int] = None,
    override_program_type: Optional[ProgramType] = None,
    override_entity: Optional[str] = None,
    allowed_hosts: Optional[Sequence[str]] = None,
    require_application_intent: Optional[bool] = None,
) -> WorkerRunResult:
    """
    Discover candidates from a source's seed URLs and persist them.

    Args:
        context: Shared ingestion collaborators
        source: Canonical source definition
        seed_urls: Override for source.seed_urls
        keywords: Override for source.keywords
        rate_limit_ms: Delay between seed fetches (default from settings)
        override_program_type: Program type to store instead of the source's
        override_entity: Entity to store instead of the source's
        allowed_hosts: Override for source.allowed_hosts
        require_application_intent: Override for the source flag

    Returns:
        WorkerRunResult with per-candidate errors; never raises for a bad candidate
    """
    settings = context.settings
    started_at = time.time()
    stats = WorkerRunStats()
    errors: List[RunError] = []

    urls = list(seed_urls if seed_urls is not None else source.seed_urls)
    options = DiscoveryOptions(
        allowed_hosts=tuple(allowed_hosts if allowed_hosts is not None else source.allowed_hosts),
        require_intent=(
            require_application_intent
            if require_application_intent is not None
            else source.require_application_intent
        ),
    )

    logger.info(f"[{source.id}] Starting canonical worker over {len(urls)} seed URLs")

    candidates = collect_candidates(
        context,
        urls,
        keywords if keywords is not None else source.keywords,
        options,
        delay_ms=rate_limit_ms if rate_limit_ms is not None else settings.canonical_request_delay_ms,
    )
    candidates = candidates[:settings.max_programs_per_source]
    stats.found = len(candidates)

    persist_candidates(
        context, source, candidates, stats, errors,
        delay_ms=settings.persist_delay_ms,
        override_program_type=override_program_type,
        override_entity=override_entity,
    )

    stats.errors = len(errors)
    stats.duration = format_duration(started_at)
    logger.info(
        f"[{source.id}] Done: found={stats.found} new={stats.new} updated={stats.updated} "
        f"skipped={stats.skipped} errors={stats.errors} ({stats.duration}s)"
    )
    return WorkerRunResult(success=True, stats=stats, errors=errors)
