"""
Tests for the ingestion workers, run against a fake fetcher and a temp database.
"""
from collections import OrderedDict
from dataclasses import replace
from unittest.mock import MagicMock

from apoios.core.domain_models import MunicipalitySite, PersistOutcome
from apoios.workers.context import IngestionContext
from apoios.workers.fundo_ambiental import ingest_fundo_ambiental, parse_listing
from apoios.workers.municipal import CASCAIS_SITE, ingest_cascais, ingest_municipal_discovery, ingest_sites
from apoios.workers.national import ingest_national_source

from conftest import FakeFetcher

PRR_SEED = "https://recuperarportugal.gov.pt/candidaturas/"

PRR_HTML = """
<html><body><ul>
  <li><a href="/candidaturas/vale-eficiencia">Vale Eficiência para famílias</a> Candidaturas abertas ao apoio</li>
  <li><a href="/candidaturas/bairros-sustentaveis">Bairros Sustentáveis em habitação</a> Aviso de candidaturas</li>
  <li><a href="https://www.example.com/eficiencia">Apoio à eficiência energética externo</a> Candidaturas</li>
  <li><a href="/noticias/evento">Evento sobre energia em Lisboa</a></li>
</ul></body></html>
"""

FA_LISTING_HTML = """
<html><body>
  <div class="aviso-item">
    <h3>Vale Eficiência 2025</h3>
    <span class="date">10/01/2025</span>
    <p>Apoio à substituição de janelas.</p>
    <a href="/avisos/vale-eficiencia">Ler</a>
  </div>
  <div class="aviso-item">
    <h3>Relatório anual de atividades</h3>
    <p>Publicação institucional.</p>
    <a href="/avisos/relatorio">Ler</a>
  </div>
  <div class="aviso-item">
    <h3>Política de Privacidade</h3>
    <a href="/privacidade">Ler</a>
  </div>
  <article>
    <h2>Vale Eficiência 2025</h2>
    <a href="/avisos/vale-eficiencia">Ler</a>
  </article>
</body></html>
"""

FA_DETAIL_HTML = """
<html><body><main>
  <h1>Vale Eficiência 2025</h1>
  <h2>O que é</h2>
  <p>Programa de apoio à substituição de janelas ineficientes em habitações.</p>
  <h2>Como se candidatar</h2>
  <p>Candidaturas abertas: submeta o pedido no portal do programa.</p>
</main></body></html>
"""

OBIDOS = MunicipalitySite("leiria-obidos", "Óbidos", "Leiria", "https://www.cm-obidos.pt")

OBIDOS_HOME_HTML = """
<html><body><ul>
  <li><a href="/habitacao/apoio-reabilitacao">Apoio à reabilitação de habitações</a> Candidaturas abertas até 30 de junho</li>
</ul></body></html>
"""


class TestNationalWorker:
    """Tests for the generic canonical source loop."""

    def test_discovers_and_persists(self, context, fake_fetcher, store):
        fake_fetcher.pages[PRR_SEED] = PRR_HTML

        result = ingest_national_source(context, "recuperar-portugal")

        assert result.success
        assert result.stats.found == 2
        assert result.stats.new == 2
        assert result.errors == []
        program = store.get_program_by_source_url("https://recuperarportugal.gov.pt/candidaturas/vale-eficiencia")
        assert program["entity"] == "Recuperar Portugal"
        assert program["status"] == "OPEN"

    def test_second_run_skips_known_programs(self, context, fake_fetcher):
        fake_fetcher.pages[PRR_SEED] = PRR_HTML
        ingest_national_source(context, "recuperar-portugal")

        result = ingest_national_source(context, "recuperar-portugal")

        assert (result.stats.new, result.stats.skipped) == (0, 2)

    def test_candidates_capped_per_source(self, settings, fake_fetcher):
        fake_fetcher.pages[PRR_SEED] = PRR_HTML
        context = IngestionContext.from_settings(replace(settings, max_programs_per_source=1), fetcher=fake_fetcher)

        result = ingest_national_source(context, "recuperar-portugal")

        assert result.stats.found == 1

    def test_persist_failure_recorded_per_candidate(self, context, fake_fetcher):
        fake_fetcher.pages[PRR_SEED] = PRR_HTML
        context.persister = MagicMock()
        context.persister.persist.side_effect = [RuntimeError("constraint failed"), PersistOutcome.NEW]

        result = ingest_national_source(context, "recuperar-portugal")

        assert result.success
        assert result.stats.new == 1
        assert result.stats.errors == 1
        assert result.errors[0].title == "Vale Eficiência para famílias"


class TestFundoAmbiental:
    """Tests for the Fundo Ambiental worker."""

    def test_parse_listing(self):
        candidates = parse_listing(FA_LISTING_HTML, "https://www.fundoambiental.pt/avisos", ("fundoambiental.pt",))

        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.title == "Vale Eficiência 2025"
        assert candidate.url == "https://www.fundoambiental.pt/avisos/vale-eficiencia"
        assert candidate.description == "Apoio à substituição de janelas."
        assert candidate.date_text == "10/01/2025"

    def test_parse_listing_host_filter(self):
        assert parse_listing(FA_LISTING_HTML, "https://www.fundoambiental.pt/avisos", ("dre.pt",)) == []

    def test_listing_enriched_and_persisted(self, context, fake_fetcher, store):
        fake_fetcher.pages[context.settings.fundo_ambiental_url] = FA_LISTING_HTML
        fake_fetcher.pages["https://www.fundoambiental.pt/avisos/vale-eficiencia"] = FA_DETAIL_HTML

        result = ingest_fundo_ambiental(context)

        assert result.stats.found == 1
        assert result.stats.new == 1
        program = store.get_program_by_source_url("https://www.fundoambiental.pt/avisos/vale-eficiencia")
        assert program["category"] == "JANELAS"
        assert program["status"] == "OPEN"
        assert store.list_sources(program["id"])[0]["source_type"] == "FA"

    def test_empty_listing_falls_back_to_seed_crawl(self, context, fake_fetcher):
        source = context.sources.get("fundo-ambiental")

        result = ingest_fundo_ambiental(context)

        assert result.success
        assert result.stats.found == 0
        assert fake_fetcher.requested == [context.settings.fundo_ambiental_url] + list(source.seed_urls)


class TestMunicipalWorkers:
    """Tests for the municipal workers."""

    def test_discovery_over_resolved_sites(self, context, fake_fetcher, store):
        context.resolver = MagicMock()
        context.resolver.resolve_sites.return_value = OrderedDict([(OBIDOS.concelho_id, OBIDOS)])
        fake_fetcher.pages["https://www.cm-obidos.pt"] = OBIDOS_HOME_HTML

        result = ingest_municipal_discovery(context)

        assert result.stats.found == 1
        assert result.stats.new == 1
        assert result.extra == {"municipalities_covered": 1, "municipalities_discovered": 1}

        program = store.get_program_by_source_url("https://www.cm-obidos.pt/habitacao/apoio-reabilitacao")
        assert program["program_type"] == "MUNICIPAL"
        assert program["entity"] == "Câmara Municipal de Óbidos"
        geographies = store.list_geographies(program["id"])
        assert [(g["level"], g["municipality"], g["district"]) for g in geographies] == [
            ("MUNICIPALITY", "Óbidos", "Leiria")
        ]

    def test_municipal_limit(self, settings, fake_fetcher):
        context = IngestionContext.from_settings(replace(settings, municipal_limit=1), fetcher=fake_fetcher)
        other = MunicipalitySite("lisboa-cascais", "Cascais", "Lisboa", "https://www.cascais.pt")
        context.resolver = MagicMock()
        context.resolver.resolve_sites.return_value = OrderedDict([
            (OBIDOS.concelho_id, OBIDOS), (other.concelho_id, other),
        ])

        result = ingest_municipal_discovery(context)

        assert result.extra == {"municipalities_covered": 1, "municipalities_discovered": 2}
        assert not any(url.startswith("https://www.cascais.pt") for url in fake_fetcher.requested)

    def test_failing_site_does_not_stop_others(self, context, fake_fetcher):
        fake_fetcher.pages["https://www.cm-obidos.pt"] = OBIDOS_HOME_HTML
        real_discover = context.crawler.discover

        def discover(url, *args, **kwargs):
            if url.startswith("https://www.broken.pt"):
                raise RuntimeError("connection reset")
            return real_discover(url, *args, **kwargs)

        context.crawler = MagicMock()
        context.crawler.discover.side_effect = discover
        broken = MunicipalitySite("x-broken", "Quebrado", "Lisboa", "https://www.broken.pt")

        result = ingest_sites(context, [broken, OBIDOS], "test")

        assert result.success
        assert result.stats.new == 1
        assert [(e.title, e.url) for e in result.errors] == [("Quebrado", "https://www.broken.pt")]

    def test_cascais_probes_home_and_paths(self, context, fake_fetcher):
        result = ingest_cascais(context)

        assert result.success
        assert fake_fetcher.requested[0] == CASCAIS_SITE.website
        assert "https://www.cascais.pt/habitacao" in fake_fetcher.requested
