"""
Pytest configuration and fixtures for apoios tests.
"""
import json
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from apoios.core.config import Settings
from apoios.core.sources import SourceRegistry
from apoios.ingest.fetcher import FetchedPage
from apoios.storage.persistence import ProgramPersister
from apoios.storage.program_store import ProgramStore
from apoios.workers.context import IngestionContext


class FakeFetcher:
    """
    In-memory stand-in for PageFetcher.

    pages maps URL -> HTML/text; json_pages maps URL -> decoded JSON payload.
    A value may also be a FetchedPage to control the content type.
    Unknown URLs behave like a fetch that failed every attempt.
    """

    def __init__(self, pages=None, json_pages=None):
        self.pages = dict(pages or {})
        self.json_pages = dict(json_pages or {})
        self.requested = []

    def fetch_page(self, url, accept=None, params=None, timeout_ms=None, attempts=None):
        self.requested.append(url)
        if url in self.json_pages:
            return FetchedPage(url=url, text=json.dumps(self.json_pages[url]), content_type="application/json")
        value = self.pages.get(url)
        if value is None:
            return None
        if isinstance(value, FetchedPage):
            return value
        return FetchedPage(url=url, text=value, content_type="text/html; charset=utf-8")

    def fetch(self, url, **kwargs):
        page = self.fetch_page(url, **kwargs)
        return page.text if page else None

    def fetch_json(self, url, params=None, timeout_ms=None):
        self.requested.append(url)
        return self.json_pages.get(url)


@pytest.fixture
def settings(tmp_path):
    """Settings with every delay disabled and a throwaway database."""
    return Settings(
        database_path=str(tmp_path / "apoios-test.db"),
        http_backoff_ms=0,
        canonical_request_delay_ms=0,
        persist_delay_ms=0,
        deep_crawl_delay_ms=0,
        municipal_request_delay_ms=0,
        dre_request_delay_ms=0,
        dre_persist_delay_ms=0,
    )


@pytest.fixture
def store(settings):
    return ProgramStore(settings.database_path)


@pytest.fixture
def persister(store):
    return ProgramPersister(store)


@pytest.fixture
def sources():
    return SourceRegistry()


@pytest.fixture
def national_source(sources):
    return sources.get("recuperar-portugal")


@pytest.fixture
def municipal_source(sources):
    return sources.get("portal-autarquico-dgal")


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def context(settings, fake_fetcher):
    return IngestionContext.from_settings(settings, fetcher=fake_fetcher)
