"""
Resolve each municipality's official website.

Resolution runs an ordered list of strategies (official index scrape, open
data CSV, catalog API) and merges their partial maps with an explicit host
preference policy.
"""

import logging
import re
from collections import OrderedDict
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from apoios.core.config import Settings
from apoios.core.domain_models import CanonicalSourceDefinition, MunicipalitySite
from apoios.core.geography import Concelho, build_municipality_index
from apoios.core.keywords import MUNICIPAL_DISCOVERY_PATHS
from apoios.core.utils import normalize_text, to_absolute_url
from apoios.ingest.fetcher import CSV_ACCEPT, PageFetcher
from apoios.ingest.open_data import (
    extract_catalog_resource_urls,
    is_likely_csv_resource,
    normalize_website,
    parse_csv_table,
    resolve_header_row,
)

logger = logging.getLogger(__name__)

SiteMap = Dict[str, MunicipalitySite]

LABEL_PREFIXES = (
    re.compile(r"\bcamara municipal (de|da|do)\s+"),
    re.compile(r"\bmunicipio (de|da|do)\s+"),
    re.compile(r"\bc\.m\.\s+"),
)

LABEL_ATTRIBUTES = ("title", "aria-label", "data-original-title")


def normalize_municipality_label(label: Optional[str]) -> str:
    """
    Strip council prefixes so labels match plain concelho names.

    Examples:
        >>> normalize_municipality_label("Câmara Municipal de Óbidos")
        'obidos'
    """
    normalized = normalize_text(label)
    for pattern in LABEL_PREFIXES:
        normalized = pattern.sub("", normalized)
    return normalized.strip()


class HostPreferencePolicy:
    """
    Decide which of two website URLs to keep for the same municipality.

    Rules, in order:
      1. Anything beats nothing.
      2. A non-aggregator host beats an aggregator host (and never loses to one).
      3. If prefer_shorter is set, a strictly shorter hostname wins.
      4. Otherwise the current URL is kept.
    """

    def __init__(self, aggregator_hints: Iterable[str] = ("portalautarquico",), prefer_shorter: bool = True):
        self.aggregator_hints = tuple(h.lower() for h in aggregator_hints)
        self.prefer_shorter = prefer_shorter

    def is_aggregator(self, url: str) -> bool:
        host = (urlparse(url).hostname or "").lower()
        return any(hint in host for hint in self.aggregator_hints)

    def should_prefer(self, next_url: str, current_url: Optional[str]) -> bool:
        if not current_url:
            return True

        next_aggregator = self.is_aggregator(next_url)
        current_aggregator = self.is_aggregator(current_url)
        if current_aggregator and not next_aggregator:
            return True
        if next_aggregator and not current_aggregator:
            return False

        if self.prefer_shorter:
            next_host = urlparse(next_url).hostname or ""
            current_host = urlparse(current_url).hostname or ""
            return len(next_host) < len(current_host)
        return False

    def merge(self, target: SiteMap, incoming: Mapping[str, MunicipalitySite]) -> int:
        """Merge incoming sites into target in place; returns how many entries changed."""
        changed = 0
        for concelho_id, site in incoming.items():
            existing = target.get(concelho_id)
            if self.should_prefer(site.website, existing.website if existing else None):
                target[concelho_id] = site
                changed += 1
        return changed


def parse_sites_from_rows(
    rows: Sequence[Sequence[str]],
    index: Mapping[str, Concelho],
    policy: HostPreferencePolicy,
) -> Optional[SiteMap]:
    """
    Map CSV rows to municipality sites.

    Returns None when no header row can be identified.
    """
    if len(rows) < 2:
        return None

    header = resolve_header_row(rows)
    if header is None:
        return None

    sites: SiteMap = OrderedDict()
    for row in rows[header.row_index + 1:]:
        label = row[header.municipality_index] if header.municipality_index < len(row) else ""
        raw_website = row[header.website_index] if header.website_index < len(row) else ""

        concelho = index.get(normalize_municipality_label(label))
        if concelho is None:
            continue

        website = normalize_website(raw_website)
        if not website:
            continue

        existing = sites.get(concelho.id)
        if not policy.should_prefer(website, existing.website if existing else None):
            continue

        sites[concelho.id] = MunicipalitySite(
            concelho_id=concelho.id,
            name=concelho.name,
            district=concelho.district,
            website=website,
        )
    return sites


class ResolverStrategy:
    """One tier of the resolution chain."""

    name = "strategy"
    # Consulted only when the preceding strategy found nothing
    only_if_previous_empty = False

    def resolve(self, index: Mapping[str, Concelho]) -> SiteMap:
        raise NotImplementedError


class OfficialIndexStrategy(ResolverStrategy):
    """Scrape the official municipal index for links labelled with concelho names."""

    name = "official-index"

    def __init__(self, fetcher: PageFetcher, seed_urls: Sequence[str], policy: HostPreferencePolicy):
        self.fetcher = fetcher
        self.seed_urls = list(OrderedDict.fromkeys(normalize_index_seed_url(u) for u in seed_urls))
        self.policy = policy

    def resolve(self, index: Mapping[str, Concelho]) -> SiteMap:
        sites: SiteMap = OrderedDict()

        for seed_url in self.seed_urls:
            html = self.fetcher.fetch(seed_url)
            if not html:
                logger.warning(f"Municipal index unavailable: {seed_url}")
                continue

            soup = BeautifulSoup(html, "lxml")
            for anchor in soup.find_all("a", href=True):
                url = to_absolute_url(anchor["href"], seed_url)
                if not url:
                    continue

                labels = [anchor.get_text(" ", strip=True)] + [anchor.get(attr) for attr in LABEL_ATTRIBUTES]
                label = next((n for n in (normalize_municipality_label(raw) for raw in labels) if n), "")
                concelho = index.get(label)
                if concelho is None:
                    continue

                existing = sites.get(concelho.id)
                if not self.policy.should_prefer(url, existing.website if existing else None):
                    continue
                sites[concelho.id] = MunicipalitySite(concelho.id, concelho.name, concelho.district, url)

        return sites


class OpenDataCsvStrategy(ResolverStrategy):
    """Read municipality websites from published CSV/TSV resources."""

    name = "open-data-csv"

    def __init__(self, fetcher: PageFetcher, resource_urls: Sequence[str], policy: HostPreferencePolicy, timeout_ms: int = 45000):
        self.fetcher = fetcher
        self.resource_urls = list(resource_urls)
        self.policy = policy
        self.timeout_ms = timeout_ms

    def load_resource(self, url: str, index: Mapping[str, Concelho]) -> Optional[SiteMap]:
        page = self.fetcher.fetch_page(url, accept=CSV_ACCEPT, timeout_ms=self.timeout_ms, attempts=1)
        if not page:
            return None

        rows = parse_csv_table(page.text)
        sites = parse_sites_from_rows(rows, index, self.policy)
        if sites is None:
            header = rows[0] if rows else []
            logger.warning(f"No municipality/website columns in {url} ({len(rows)} rows, header={header})")
            return None

        logger.info(f"Loaded {len(sites)} municipal websites from {url}")
        return sites

    def resolve(self, index: Mapping[str, Concelho]) -> SiteMap:
        for url in self.resource_urls:
            sites = self.load_resource(url, index)
            if sites:
                return sites
        return OrderedDict()


class CatalogApiStrategy(OpenDataCsvStrategy):
    """Discover CSV resources through the open-data catalog API."""

    name = "catalog-api"
    only_if_previous_empty = True

    def __init__(self, fetcher: PageFetcher, catalog_url: str, policy: HostPreferencePolicy, timeout_ms: int = 45000):
        super().__init__(fetcher, [], policy, timeout_ms)
        self.catalog_url = catalog_url

    def resolve(self, index: Mapping[str, Concelho]) -> SiteMap:
        payload = self.fetcher.fetch_json(self.catalog_url, timeout_ms=self.timeout_ms)
        if payload is None:
            logger.warning(f"Catalog API unavailable: {self.catalog_url}")
            return OrderedDict()

        self.resource_urls = [u for u in extract_catalog_resource_urls(payload) if is_likely_csv_resource(u)]
        logger.info(f"Catalog listed {len(self.resource_urls)} CSV-like resources")
        return super().resolve(index)


def normalize_index_seed_url(url: str) -> str:
    return url.replace("://www.portalautarquico.", "://portalautarquico.")


class MunicipalSiteResolver:
    """Run resolver strategies in order and merge their results."""

    def __init__(
        self,
        strategies: Sequence[ResolverStrategy],
        policy: Optional[HostPreferencePolicy] = None,
        index: Optional[Mapping[str, Concelho]] = None,
    ):
        self.strategies = list(strategies)
        self.policy = policy or HostPreferencePolicy()
        self.index = index if index is not None else build_municipality_index()

    @classmethod
    def from_settings(
        cls,
        fetcher: PageFetcher,
        settings: Settings,
        index_source: CanonicalSourceDefinition,
    ) -> "MunicipalSiteResolver":
        policy = HostPreferencePolicy(settings.aggregator_host_hints, settings.prefer_shorter_hosts)
        strategies = [
            OfficialIndexStrategy(fetcher, index_source.seed_urls, policy),
            OpenDataCsvStrategy(fetcher, settings.municipal_resource_urls, policy, settings.csv_timeout_ms),
            CatalogApiStrategy(fetcher, settings.municipal_catalog_url, policy, settings.csv_timeout_ms),
        ]
        return cls(strategies, policy)

    def _has_aggregator_hosts(self, sites: SiteMap) -> bool:
        return any(self.policy.is_aggregator(site.website) for site in sites.values())

    def resolve_sites(self) -> SiteMap:
        """
        Resolve websites for every known municipality.

        Tier failures are logged and skipped; total failure yields an empty map.
        """
        sites: SiteMap = OrderedDict()
        previous_found = False

        for strategy in self.strategies:
            if len(sites) >= len(self.index) and not self._has_aggregator_hosts(sites):
                logger.info("All municipalities resolved, skipping remaining strategies")
                break
            if strategy.only_if_previous_empty and previous_found:
                logger.debug(f"Skipping {strategy.name}: previous strategy found sites")
                continue

            try:
                found = strategy.resolve(self.index)
            except Exception as e:
                logger.warning(f"Resolver strategy {strategy.name} failed: {e}")
                found = {}

            changed = self.policy.merge(sites, found)
            previous_found = bool(found)
            logger.info(f"{strategy.name}: {len(found)} sites found, {changed} merged")

        logger.info(f"Municipal index resolved: {len(sites)}/{len(self.index)} municipalities")
        return sites


def build_probe_urls(website: str, paths: Sequence[str] = MUNICIPAL_DISCOVERY_PATHS, limit: Optional[int] = None) -> List[str]:
    """
    Home page plus the first `limit` known sub-paths, without duplicates.

    Examples:
        >>> build_probe_urls("https://www.cm-obidos.pt/", limit=2)
        ['https://www.cm-obidos.pt/', 'https://www.cm-obidos.pt/habitacao', 'https://www.cm-obidos.pt/reabilitacao-urbana']
    """
    selected = paths if limit is None else paths[:limit]
    urls = [website]
    for path in selected:
        url = urljoin(website, path)
        if url not in urls:
            urls.append(url)
    return urls
