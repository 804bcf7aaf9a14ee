"""
Workers for national canonical sources that need no source-specific scraping.
"""

from apoios.core.domain_models import WorkerRunResult
from apoios.workers.context import IngestionContext
from apoios.workers.discovery_runner import run_canonical_source


def ingest_national_source(context: IngestionContext, source_id: str) -> WorkerRunResult:
    """Run the generic discovery loop over one national source's seed URLs."""
    source = context.sources.get(source_id)
    return run_canonical_source(context, source)
