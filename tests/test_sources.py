"""
Tests for the canonical source registry.
"""
import pytest

from apoios.core.domain_models import ProgramType, SourceCoverage
from apoios.core.sources import (
    CANONICAL_SOURCES,
    MUNICIPAL_INDEX_SOURCE_ID,
    NATIONAL_SOURCE_IDS,
    SourceRegistry,
)
from apoios.core.utils import host_matches


class TestSourceRegistry:
    """Tests for SourceRegistry."""

    def test_all_definitions_loaded(self, sources):
        assert len(sources) == 9
        assert sources.ids() == [s.id for s in CANONICAL_SOURCES]

    def test_get(self, sources):
        source = sources.get("diario-republica")
        assert source.coverage == SourceCoverage.LEGAL_BACKSTOP
        assert "diario-republica" in sources

    def test_unknown_id(self, sources):
        with pytest.raises(ValueError):
            sources.get("nao-existe")

    def test_mapping_is_read_only(self, sources):
        with pytest.raises(TypeError):
            sources._sources["nova"] = CANONICAL_SOURCES[0]

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            SourceRegistry(CANONICAL_SOURCES + (CANONICAL_SOURCES[0],))

    def test_national_sources_in_declared_order(self, sources):
        assert [s.id for s in sources.national()] == list(NATIONAL_SOURCE_IDS)
        assert all(s.program_type == ProgramType.NATIONAL for s in sources.national())

    def test_municipal_index_source(self, sources):
        source = sources.get(MUNICIPAL_INDEX_SOURCE_ID)
        assert source.coverage == SourceCoverage.MUNICIPAL_INDEX
        assert source.program_type == ProgramType.MUNICIPAL
        assert source.discovery_path_hints

    @pytest.mark.parametrize("source", CANONICAL_SOURCES, ids=lambda s: s.id)
    def test_seeds_within_allowed_hosts(self, source):
        assert source.seed_urls
        assert source.keywords
        assert all(host_matches(url, source.allowed_hosts) for url in source.seed_urls)
