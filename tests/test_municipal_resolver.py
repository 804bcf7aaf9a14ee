"""
Tests for municipal website resolution.
"""
from collections import OrderedDict

import pytest

from apoios.core.domain_models import MunicipalitySite
from apoios.core.geography import build_municipality_index
from apoios.ingest.municipal_resolver import (
    CatalogApiStrategy,
    HostPreferencePolicy,
    MunicipalSiteResolver,
    OfficialIndexStrategy,
    OpenDataCsvStrategy,
    ResolverStrategy,
    build_probe_urls,
    normalize_municipality_label,
    parse_sites_from_rows,
)

from conftest import FakeFetcher

AGGREGATOR_URL = "https://portalautarquico.dgal.gov.pt/municipio/obidos"
OBIDOS_URL = "https://www.cm-obidos.pt"

SITES_CSV = (
    "Município;Website\n"
    "Câmara Municipal de Óbidos;www.cm-obidos.pt\n"
    "Atlântida;www.atlantida.pt\n"
    "Cascais;\n"
)


@pytest.fixture
def index():
    full = build_municipality_index()
    return {key: full[key] for key in ("obidos", "cascais")}


@pytest.fixture
def policy():
    return HostPreferencePolicy()


def _site(index, key, url):
    concelho = index[key]
    return MunicipalitySite(concelho.id, concelho.name, concelho.district, url)


class StaticStrategy(ResolverStrategy):
    def __init__(self, name, result=None, error=None, only_if_previous_empty=False):
        self.name = name
        self.result = result or {}
        self.error = error
        self.only_if_previous_empty = only_if_previous_empty
        self.calls = 0

    def resolve(self, index):
        self.calls += 1
        if self.error:
            raise self.error
        return OrderedDict(self.result)


class TestLabels:
    """Tests for normalize_municipality_label."""

    def test_council_prefix_removed(self):
        assert normalize_municipality_label("Câmara Municipal de Óbidos") == "obidos"
        assert normalize_municipality_label("Município de Cascais") == "cascais"

    def test_empty(self):
        assert normalize_municipality_label(None) == ""


class TestHostPreferencePolicy:
    """Tests for HostPreferencePolicy."""

    def test_anything_beats_nothing(self, policy):
        assert policy.should_prefer(AGGREGATOR_URL, None)

    def test_official_host_beats_aggregator(self, policy):
        assert policy.should_prefer(OBIDOS_URL, AGGREGATOR_URL)
        assert not policy.should_prefer(AGGREGATOR_URL, OBIDOS_URL)

    def test_shorter_host_wins(self, policy):
        assert policy.should_prefer("https://cm-obidos.pt", OBIDOS_URL)
        assert not policy.should_prefer(OBIDOS_URL, "https://cm-obidos.pt")

    def test_equal_length_keeps_current(self, policy):
        assert not policy.should_prefer("https://www.cm-obidas.pt", OBIDOS_URL)

    def test_shorter_preference_disabled(self):
        policy = HostPreferencePolicy(prefer_shorter=False)
        assert not policy.should_prefer("https://cm-obidos.pt", OBIDOS_URL)

    def test_custom_aggregator_hints(self):
        policy = HostPreferencePolicy(aggregator_hints=["municipios.example"])
        assert policy.is_aggregator("https://www.municipios.example/obidos")
        assert not policy.is_aggregator(AGGREGATOR_URL)


class TestParseSitesFromRows:
    """Tests for parse_sites_from_rows."""

    def test_rows_mapped_to_known_municipalities(self, index, policy):
        rows = [
            ["Município", "Website"],
            ["Câmara Municipal de Óbidos", "www.cm-obidos.pt"],
            ["Atlântida", "www.atlantida.pt"],
            ["Cascais", ""],
        ]
        sites = parse_sites_from_rows(rows, index, policy)

        assert list(sites) == [index["obidos"].id]
        site = sites[index["obidos"].id]
        assert site.website == "https://www.cm-obidos.pt"
        assert site.district == "Leiria"

    def test_without_header(self, index, policy):
        assert parse_sites_from_rows([["a", "b"], ["c", "d"]], index, policy) is None

    def test_too_few_rows(self, index, policy):
        assert parse_sites_from_rows([["Município", "Website"]], index, policy) is None


class TestStrategies:
    """Tests for the concrete resolver strategies."""

    def test_official_index_prefers_official_host(self, index, policy):
        seed = "https://portalautarquico.dgal.gov.pt/pt-PT/municipios/"
        html = f"""
        <ul>
          <li><a href="{AGGREGATOR_URL}">Óbidos</a></li>
          <li><a href="{OBIDOS_URL}">Câmara Municipal de Óbidos</a></li>
          <li><a href="https://www.cascais.pt" title="Cascais"><img src="logo.png"></a></li>
          <li><a href="/contactos">Contactos</a></li>
        </ul>
        """
        fetcher = FakeFetcher(pages={seed: html})
        strategy = OfficialIndexStrategy(fetcher, ["https://www.portalautarquico.dgal.gov.pt/pt-PT/municipios/"], policy)

        sites = strategy.resolve(index)

        assert sites[index["obidos"].id].website == OBIDOS_URL
        assert sites[index["cascais"].id].website == "https://www.cascais.pt"
        assert fetcher.requested == [seed]

    def test_open_data_uses_first_usable_resource(self, index, policy):
        fetcher = FakeFetcher(pages={"https://dados.gov.pt/b.csv": SITES_CSV})
        strategy = OpenDataCsvStrategy(fetcher, ["https://dados.gov.pt/a.csv", "https://dados.gov.pt/b.csv"], policy)

        sites = strategy.resolve(index)

        assert list(sites) == [index["obidos"].id]
        assert fetcher.requested == ["https://dados.gov.pt/a.csv", "https://dados.gov.pt/b.csv"]

    def test_catalog_discovers_csv_resources(self, index, policy):
        catalog = "https://dados.gov.pt/api/1/datasets/municipios/"
        fetcher = FakeFetcher(
            pages={"https://dados.gov.pt/s/resources/sites.csv": SITES_CSV},
            json_pages={catalog: {"resources": [
                {"url": "https://dados.gov.pt/pt/datasets/municipios/"},
                {"url": "https://dados.gov.pt/s/resources/sites.csv"},
            ]}},
        )
        strategy = CatalogApiStrategy(fetcher, catalog, policy)

        sites = strategy.resolve(index)

        assert index["obidos"].id in sites
        assert strategy.resource_urls == ["https://dados.gov.pt/s/resources/sites.csv"]

    def test_catalog_unavailable(self, index, policy):
        strategy = CatalogApiStrategy(FakeFetcher(), "https://dados.gov.pt/api/1/datasets/x/", policy)
        assert strategy.resolve(index) == {}


class TestMunicipalSiteResolver:
    """Tests for the tiered resolver chain."""

    def test_fallback_strategy_skipped_when_previous_found_sites(self, index, policy):
        first = StaticStrategy("first", {index["obidos"].id: _site(index, "obidos", OBIDOS_URL)})
        fallback = StaticStrategy("fallback", only_if_previous_empty=True)

        sites = MunicipalSiteResolver([first, fallback], policy, index).resolve_sites()

        assert list(sites) == [index["obidos"].id]
        assert fallback.calls == 0

    def test_fallback_strategy_runs_after_empty_tier(self, index, policy):
        first = StaticStrategy("first")
        fallback = StaticStrategy(
            "fallback", {index["cascais"].id: _site(index, "cascais", "https://www.cascais.pt")},
            only_if_previous_empty=True,
        )

        sites = MunicipalSiteResolver([first, fallback], policy, index).resolve_sites()

        assert fallback.calls == 1
        assert list(sites) == [index["cascais"].id]

    def test_failing_strategy_is_skipped(self, index, policy):
        broken = StaticStrategy("broken", error=RuntimeError("index offline"))
        working = StaticStrategy("working", {index["obidos"].id: _site(index, "obidos", OBIDOS_URL)})

        sites = MunicipalSiteResolver([broken, working], policy, index).resolve_sites()

        assert broken.calls == 1
        assert sites[index["obidos"].id].website == OBIDOS_URL

    def test_later_tier_replaces_aggregator_host(self, index, policy):
        first = StaticStrategy("first", {index["obidos"].id: _site(index, "obidos", AGGREGATOR_URL)})
        second = StaticStrategy("second", {index["obidos"].id: _site(index, "obidos", OBIDOS_URL)})

        sites = MunicipalSiteResolver([first, second], policy, index).resolve_sites()

        assert sites[index["obidos"].id].website == OBIDOS_URL

    def test_stops_once_everything_is_resolved(self, index, policy):
        first = StaticStrategy("first", {
            index["obidos"].id: _site(index, "obidos", OBIDOS_URL),
            index["cascais"].id: _site(index, "cascais", "https://www.cascais.pt"),
        })
        second = StaticStrategy("second")

        MunicipalSiteResolver([first, second], policy, index).resolve_sites()

        assert second.calls == 0

    def test_continues_while_aggregator_hosts_remain(self, index, policy):
        first = StaticStrategy("first", {
            index["obidos"].id: _site(index, "obidos", AGGREGATOR_URL),
            index["cascais"].id: _site(index, "cascais", "https://www.cascais.pt"),
        })
        second = StaticStrategy("second", {index["obidos"].id: _site(index, "obidos", OBIDOS_URL)})

        sites = MunicipalSiteResolver([first, second], policy, index).resolve_sites()

        assert second.calls == 1
        assert sites[index["obidos"].id].website == OBIDOS_URL
        assert sites[index["cascais"].id].website == "https://www.cascais.pt"

    def test_total_failure_yields_empty_map(self, index, policy):
        strategies = [StaticStrategy("a", error=ValueError("bad csv")), StaticStrategy("b")]
        assert MunicipalSiteResolver(strategies, policy, index).resolve_sites() == {}


class TestBuildProbeUrls:
    """Tests for build_probe_urls."""

    def test_home_first_then_paths(self):
        urls = build_probe_urls("https://www.cm-obidos.pt/", paths=("/habitacao", "/energia"))
        assert urls == [
            "https://www.cm-obidos.pt/",
            "https://www.cm-obidos.pt/habitacao",
            "https://www.cm-obidos.pt/energia",
        ]

    def test_limit_and_duplicates(self):
        urls = build_probe_urls("https://www.cm-obidos.pt/", paths=("/", "/habitacao", "/energia"), limit=2)
        assert urls == ["https://www.cm-obidos.pt/", "https://www.cm-obidos.pt/habitacao"]
