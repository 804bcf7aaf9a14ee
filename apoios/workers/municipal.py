"""
Municipal workers.

Resolve each municipality's official website, probe a fixed set of sub-paths
for program links, deep-crawl every candidate and persist it as a municipal
program of that council.
"""

import logging
import time
from collections import OrderedDict
from typing import List, Sequence

from apoios.core.domain_models import (
    DiscoveredCandidate,
    MunicipalitySite,
    ProgramType,
    RunError,
    WorkerRunResult,
    WorkerRunStats,
)
from apoios.core.sources import MUNICIPAL_INDEX_SOURCE_ID
from apoios.core.utils import sleep_ms
from apoios.ingest.deep_crawler import enrich_candidate
from apoios.ingest.discovery import DiscoveryContext, DiscoveryOptions, candidate_key
from apoios.ingest.municipal_resolver import build_probe_urls
from apoios.workers.context import IngestionContext
from apoios.workers.discovery_runner import format_duration

logger = logging.getLogger(__name__)

CASCAIS_SITE = MunicipalitySite(
    concelho_id="lisboa-cascais",
    name="Cascais",
    district="Lisboa",
    website="https://www.cascais.pt",
)


def municipal_entity(name: str) -> str:
    return f"Câmara Municipal de {name}"


def scan_municipality(context: IngestionContext, site: MunicipalitySite) -> List[DiscoveredCandidate]:
    """Probe the home page and known sub-paths of one council website."""
    source = context.sources.get(MUNICIPAL_INDEX_SOURCE_ID)
    discovery_context = DiscoveryContext(municipality=site.name, district=site.district)
    options = DiscoveryOptions(require_intent=True)

    found: "OrderedDict[str, DiscoveredCandidate]" = OrderedDict()
    for url in build_probe_urls(site.website, limit=context.settings.municipal_path_limit):
        for candidate in context.crawler.discover(url, source.keywords, discovery_context, options):
            found.setdefault(candidate_key(candidate.url, candidate.title), candidate)
    return list(found.values())


def ingest_sites(
    context: IngestionContext,
    sites: Sequence[MunicipalitySite],
    label: str,
) -> WorkerRunResult:
    """
    Scan, enrich and persist programs for each site in order.

    A site whose scan fails is recorded as one error and the loop moves on.
    """
    settings = context.settings
    source = context.sources.get(MUNICIPAL_INDEX_SOURCE_ID)
    started_at = time.time()
    stats = WorkerRunStats()
    errors: List[RunError] = []

    for site in sites:
        try:
            candidates = scan_municipality(context, site)[:settings.max_programs_per_source]
            stats.found += len(candidates)
            logger.info(f"[{label}] {site.name}: {len(candidates)} candidates on {site.website}")

            for candidate in candidates:
                try:
                    details = context.extractor.extract_details(
                        candidate.url, delay_ms=settings.municipal_request_delay_ms
                    )
                    enriched = enrich_candidate(candidate, details)
                    enriched.municipality = site.name
                    enriched.district = site.district

                    outcome = context.persister.persist(
                        source,
                        enriched,
                        override_program_type=ProgramType.MUNICIPAL,
                        override_entity=municipal_entity(site.name),
                    )
                    stats.record(outcome)
                except Exception as e:
                    logger.error(f"[{label}] Failed to persist '{candidate.title}' ({candidate.url}): {e}")
                    errors.append(RunError(error=str(e), title=candidate.title, url=candidate.url))

        except Exception as e:
            logger.error(f"[{label}] Municipal scan failed for {site.name} ({site.website}): {e}")
            errors.append(RunError(error=str(e), title=site.name, url=site.website))

        sleep_ms(settings.municipal_request_delay_ms)

    stats.errors = len(errors)
    stats.duration = format_duration(started_at)
    logger.info(
        f"[{label}] Done: found={stats.found} new={stats.new} updated={stats.updated} "
        f"skipped={stats.skipped} errors={stats.errors} ({stats.duration}s)"
    )
    return WorkerRunResult(success=True, stats=stats, errors=errors)


def ingest_municipal_discovery(context: IngestionContext) -> WorkerRunResult:
    """Discovery across every resolved municipality, up to the configured limit."""
    settings = context.settings
    sites = context.municipal_resolver().resolve_sites()
    selected = list(sites.values())[:settings.municipal_limit]

    logger.info(
        f"[municipios-portugal] Scanning {len(selected)} of {len(sites)} resolved municipalities "
        f"(path limit {settings.municipal_path_limit}, delay {settings.municipal_request_delay_ms}ms)"
    )

    result = ingest_sites(context, selected, "municipios-portugal")
    result.extra.update({
        "municipalities_covered": len(selected),
        "municipalities_discovered": len(sites),
    })
    return result


def ingest_cascais(context: IngestionContext) -> WorkerRunResult:
    """Pilot run of the municipal pipeline against Cascais only."""
    return ingest_sites(context, [CASCAIS_SITE], "cascais")
