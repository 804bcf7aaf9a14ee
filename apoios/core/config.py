"""
Runtime configuration.

Settings are read from the environment (optionally a .env file) exactly once,
then passed explicitly to every component that needs them.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv

from apoios.core.domain_models import SupportCategory
from apoios.core.keywords import MUNICIPAL_DISCOVERY_PATHS
from apoios.core.utils import parse_csv_list, parse_positive_int

USER_AGENT = "Mozilla/5.0 (compatible; PortalCasaEficienteBot/1.0; +https://portalcasaeficiente.pt)"

DEFAULT_MUNICIPAL_RESOURCE_URLS = (
    "https://dados.gov.pt/pt/datasets/r/03c535e3-3c1b-47b7-8d6f-7abc9f5ef75a",
    "https://dados.gov.pt/s/resources/municipios-portugueses-websites-e-historico-de-versoes-no-arquivo-pt/"
    "20251029-144102/listagem-dos-municipios-portugueses-websites-e-historico-de-versoes-no-arquivo-pt-revisao-2025.csv",
)

DEFAULT_MUNICIPAL_CATALOG_URL = (
    "https://dados.gov.pt/api/1/datasets/"
    "municipios-portugueses-websites-e-historico-de-versoes-no-arquivo-pt/"
)

DEFAULT_CATEGORY_PRECEDENCE = (
    SupportCategory.JANELAS,
    SupportCategory.BOMBAS_CALOR,
    SupportCategory.ISOLAMENTO,
    SupportCategory.SOLAR,
    SupportCategory.AQUECIMENTO_AGUAS,
    SupportCategory.COBERTURA,
)


def _parse_category_precedence(value: Optional[str]) -> Tuple[SupportCategory, ...]:
    """
    Parse a comma separated category order.

    Unknown names are ignored; categories not listed keep their default
    relative order after the listed ones.
    """
    listed = []
    for name in parse_csv_list(value):
        try:
            category = SupportCategory(name.upper())
        except ValueError:
            continue
        if category != SupportCategory.OUTRO and category not in listed:
            listed.append(category)

    rest = [c for c in DEFAULT_CATEGORY_PRECEDENCE if c not in listed]
    return tuple(listed + rest)


@dataclass(frozen=True)
class Settings:
    database_path: str = "data/apoios.db"
    log_level: str = "INFO"

    # HTTP
    user_agent: str = USER_AGENT
    http_timeout_ms: int = 30000
    http_max_attempts: int = 3
    http_backoff_ms: int = 900
    csv_timeout_ms: int = 45000

    # Canonical discovery
    canonical_request_delay_ms: int = 800
    persist_delay_ms: int = 180
    max_programs_per_source: int = 250
    deep_crawl_delay_ms: int = 1500

    # Municipal discovery
    municipal_limit: int = 308
    municipal_request_delay_ms: int = 500
    municipal_path_limit: int = len(MUNICIPAL_DISCOVERY_PATHS)
    municipal_resource_urls: Tuple[str, ...] = DEFAULT_MUNICIPAL_RESOURCE_URLS
    municipal_catalog_url: str = DEFAULT_MUNICIPAL_CATALOG_URL
    aggregator_host_hints: Tuple[str, ...] = ("portalautarquico",)
    prefer_shorter_hosts: bool = True

    # Source specific
    fundo_ambiental_url: str = "https://www.fundoambiental.pt/avisos"
    dre_request_delay_ms: int = 900
    dre_persist_delay_ms: int = 120
    dre_max_detail_links: int = 40
    dre_debug_api: bool = False

    category_precedence: Tuple[SupportCategory, ...] = field(
        default=DEFAULT_CATEGORY_PRECEDENCE
    )

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """
        Build settings from environment variables.

        Missing or invalid values fall back to defaults, so an empty
        environment always yields a runnable configuration.
        """
        if dotenv:
            load_dotenv()

        env = os.getenv
        defaults = cls()

        return cls(
            database_path=env("APOIOS_DB_PATH", defaults.database_path),
            log_level=env("LOG_LEVEL", defaults.log_level).upper(),
            http_timeout_ms=parse_positive_int(env("HTTP_TIMEOUT_MS"), defaults.http_timeout_ms),
            http_max_attempts=parse_positive_int(env("HTTP_MAX_ATTEMPTS"), defaults.http_max_attempts),
            http_backoff_ms=parse_positive_int(env("HTTP_BACKOFF_MS"), defaults.http_backoff_ms),
            csv_timeout_ms=parse_positive_int(env("CSV_TIMEOUT_MS"), defaults.csv_timeout_ms),
            canonical_request_delay_ms=parse_positive_int(
                env("CANONICAL_REQUEST_DELAY_MS"), defaults.canonical_request_delay_ms
            ),
            persist_delay_ms=parse_positive_int(env("PERSIST_DELAY_MS"), defaults.persist_delay_ms),
            max_programs_per_source=parse_positive_int(
                env("MAX_PROGRAMS_PER_SOURCE"), defaults.max_programs_per_source
            ),
            deep_crawl_delay_ms=parse_positive_int(env("DEEP_CRAWL_DELAY_MS"), defaults.deep_crawl_delay_ms),
            municipal_limit=parse_positive_int(env("MUNICIPAL_DISCOVERY_LIMIT"), defaults.municipal_limit),
            municipal_request_delay_ms=parse_positive_int(
                env("MUNICIPAL_REQUEST_DELAY_MS"), defaults.municipal_request_delay_ms
            ),
            municipal_path_limit=parse_positive_int(
                env("MUNICIPAL_SCAN_PATH_LIMIT"), defaults.municipal_path_limit
            ),
            municipal_resource_urls=tuple(
                parse_csv_list(env("MUNICIPAL_WEBSITES_RESOURCE_URLS"))
            ) or defaults.municipal_resource_urls,
            municipal_catalog_url=env("MUNICIPAL_WEBSITES_UDATA_DATASET_URL", defaults.municipal_catalog_url),
            aggregator_host_hints=tuple(
                parse_csv_list(env("MUNICIPAL_AGGREGATOR_HOSTS"))
            ) or defaults.aggregator_host_hints,
            fundo_ambiental_url=env("FUNDO_AMBIENTAL_URL", defaults.fundo_ambiental_url),
            dre_request_delay_ms=parse_positive_int(env("DRE_REQUEST_DELAY_MS"), defaults.dre_request_delay_ms),
            dre_persist_delay_ms=parse_positive_int(env("DRE_PERSIST_DELAY_MS"), defaults.dre_persist_delay_ms),
            dre_max_detail_links=parse_positive_int(env("DRE_MAX_DETAIL_LINKS"), defaults.dre_max_detail_links),
            dre_debug_api=env("DRE_DEBUG_API") == "1",
            category_precedence=_parse_category_precedence(env("CATEGORY_PRECEDENCE")),
        )
