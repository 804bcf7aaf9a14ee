"""
Shared collaborators for ingestion workers.

One IngestionContext is built per run and handed to every worker, so the
fetch session, database and classifier are created once.
"""

from dataclasses import dataclass, field
from typing import Optional

from apoios.core.config import Settings
from apoios.core.sources import MUNICIPAL_INDEX_SOURCE_ID, SourceRegistry
from apoios.enhance.category_classifier import CategoryClassifier
from apoios.ingest.deep_crawler import SectionExtractor
from apoios.ingest.discovery import LinkDiscoveryCrawler
from apoios.ingest.fetcher import PageFetcher
from apoios.ingest.municipal_resolver import MunicipalSiteResolver
from apoios.storage.persistence import ProgramPersister
from apoios.storage.program_store import ProgramStore
from apoios.storage.run_log import IngestionRunLog


@dataclass
class IngestionContext:
    settings: Settings
    store: ProgramStore
    persister: ProgramPersister
    fetcher: PageFetcher
    crawler: LinkDiscoveryCrawler
    extractor: SectionExtractor
    classifier: CategoryClassifier
    sources: SourceRegistry = field(default_factory=SourceRegistry)
    resolver: Optional[MunicipalSiteResolver] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        fetcher: Optional[PageFetcher] = None,
        sources: Optional[SourceRegistry] = None,
    ) -> "IngestionContext":
        store = ProgramStore(settings.database_path)
        fetcher = fetcher or PageFetcher(settings)
        classifier = CategoryClassifier(precedence=settings.category_precedence)
        return cls(
            settings=settings,
            store=store,
            persister=ProgramPersister(store),
            fetcher=fetcher,
            crawler=LinkDiscoveryCrawler(fetcher),
            extractor=SectionExtractor(fetcher, classifier),
            classifier=classifier,
            sources=sources or SourceRegistry(),
        )

    @property
    def run_log(self) -> IngestionRunLog:
        return IngestionRunLog(self.store.db)

    def municipal_resolver(self) -> MunicipalSiteResolver:
        """Resolver built lazily; a test may inject one instead."""
        if self.resolver is None:
            index_source = self.sources.get(MUNICIPAL_INDEX_SOURCE_ID)
            self.resolver = MunicipalSiteResolver.from_settings(self.fetcher, self.settings, index_source)
        return self.resolver
