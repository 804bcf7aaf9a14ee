"""
Canonical source registry.

Static catalog of the government sites the pipeline trusts, with their seed
URLs, relevance keywords and host allowlists.
"""

from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping

from apoios.core.domain_models import (
    CanonicalSourceDefinition,
    ProgramType,
    SourceCoverage,
    SourceType,
)
from apoios.core.keywords import CORE_KEYWORDS, ENERGY_KEYWORDS, MUNICIPAL_DISCOVERY_PATHS

CANONICAL_SOURCES = (
    CanonicalSourceDefinition(
        id="fundo-ambiental",
        name="Fundo Ambiental",
        entity="Fundo Ambiental",
        description="Avisos e candidaturas nacionais de eficiência energética.",
        coverage=SourceCoverage.NATIONAL,
        source_type=SourceType.FA,
        program_type=ProgramType.NATIONAL,
        seed_urls=(
            "https://www.fundoambiental.pt/avisos",
            "https://www.fundoambiental.pt/candidaturas.aspx",
        ),
        keywords=ENERGY_KEYWORDS,
        allowed_hosts=("fundoambiental.pt",),
        require_application_intent=True,
    ),
    CanonicalSourceDefinition(
        id="recuperar-portugal",
        name="Recuperar Portugal (PRR)",
        entity="Recuperar Portugal",
        description="Candidaturas PRR e avisos por componente.",
        coverage=SourceCoverage.NATIONAL,
        source_type=SourceType.OTHER,
        program_type=ProgramType.NATIONAL,
        seed_urls=(
            "https://recuperarportugal.gov.pt/candidaturas/",
            "https://recuperarportugal.gov.pt/candidaturas-prr/",
        ),
        keywords=ENERGY_KEYWORDS,
        allowed_hosts=("recuperarportugal.gov.pt",),
        require_application_intent=True,
    ),
    CanonicalSourceDefinition(
        id="portugal-2030",
        name="Portugal 2030",
        entity="Portugal 2030",
        description="Avisos e plano anual de avisos dos fundos europeus.",
        coverage=SourceCoverage.EU_FUNDS,
        source_type=SourceType.OTHER,
        program_type=ProgramType.NATIONAL,
        seed_urls=(
            "https://portugal2030.pt/avisos/",
            "https://portugal2030.pt/plano-anual-de-avisos/",
        ),
        keywords=ENERGY_KEYWORDS,
        allowed_hosts=("portugal2030.pt",),
        require_application_intent=True,
    ),
    CanonicalSourceDefinition(
        id="balcao-dos-fundos",
        name="Balcão dos Fundos",
        entity="Balcão dos Fundos",
        description="Plataforma de submissão e acompanhamento de candidaturas.",
        coverage=SourceCoverage.EU_FUNDS,
        source_type=SourceType.OTHER,
        program_type=ProgramType.NATIONAL,
        seed_urls=(
            "https://balcaofundosue.pt/avisos",
            "https://balcaofundosue.pt/concursos",
        ),
        keywords=CORE_KEYWORDS,
        allowed_hosts=("balcaofundosue.pt",),
        require_application_intent=True,
    ),
    CanonicalSourceDefinition(
        id="portal-habitacao-ihru",
        name="Portal da Habitação / IHRU",
        entity="IHRU",
        description="Programas habitacionais como 1.º Direito e Arrendamento Acessível.",
        coverage=SourceCoverage.HOUSING,
        source_type=SourceType.OTHER,
        program_type=ProgramType.NATIONAL,
        seed_urls=(
            "https://www.portaldahabitacao.pt/programas-e-medidas",
            "https://www.portaldahabitacao.pt/candidaturas",
        ),
        keywords=CORE_KEYWORDS,
        allowed_hosts=("portaldahabitacao.pt", "ihru.pt"),
        require_application_intent=True,
    ),
    CanonicalSourceDefinition(
        id="dgeg-apoios-energia",
        name="DGEG Apoios Energia",
        entity="DGEG",
        description="Metaportal de apoios oficiais na área da energia.",
        coverage=SourceCoverage.ENERGY_META,
        source_type=SourceType.OTHER,
        program_type=ProgramType.NATIONAL,
        seed_urls=(
            "https://www.dgeg.gov.pt/pt/areas-setoriais/energia/apoios-na-area-da-energia/",
            "https://www.dgeg.gov.pt/pt/areas-setoriais/energia/apoios-na-area-da-energia/avisos/",
        ),
        keywords=ENERGY_KEYWORDS,
        allowed_hosts=("dgeg.gov.pt",),
        require_application_intent=True,
    ),
    CanonicalSourceDefinition(
        id="adene-casa-mais",
        name="ADENE / casA+",
        entity="ADENE",
        description="Discovery e normalização de incentivos e soluções de eficiência.",
        coverage=SourceCoverage.ENERGY_META,
        source_type=SourceType.OTHER,
        program_type=ProgramType.NATIONAL,
        seed_urls=(
            "https://www.adene.pt/",
            "https://casa-mais.pt/",
        ),
        keywords=ENERGY_KEYWORDS,
        allowed_hosts=("adene.pt", "casa-mais.pt"),
        require_application_intent=True,
    ),
    CanonicalSourceDefinition(
        id="portal-autarquico-dgal",
        name="Portal Autárquico (DGAL)",
        entity="DGAL",
        description="Índice oficial dos 308 municípios para discovery municipal.",
        coverage=SourceCoverage.MUNICIPAL_INDEX,
        source_type=SourceType.MUNICIPAL_SITE,
        program_type=ProgramType.MUNICIPAL,
        seed_urls=(
            "https://portalautarquico.dgal.gov.pt/pt-PT/municipios/",
            "https://portalautarquico.dgal.gov.pt/",
        ),
        keywords=CORE_KEYWORDS,
        allowed_hosts=("portalautarquico.dgal.gov.pt", "dgal.gov.pt"),
        require_application_intent=True,
        discovery_path_hints=MUNICIPAL_DISCOVERY_PATHS,
    ),
    CanonicalSourceDefinition(
        id="diario-republica",
        name="Diário da República",
        entity="Diário da República",
        description="Backstop legal para regulamentos e avisos oficiais.",
        coverage=SourceCoverage.LEGAL_BACKSTOP,
        source_type=SourceType.DR,
        program_type=ProgramType.NATIONAL,
        seed_urls=(
            "https://dre.pt/web/guest/pesquisa",
            "https://dre.pt/",
        ),
        keywords=CORE_KEYWORDS,
        allowed_hosts=("dre.pt", "diariodarepublica.pt", "files.diariodarepublica.pt"),
        require_application_intent=True,
    ),
)

NATIONAL_SOURCE_IDS = (
    "fundo-ambiental",
    "recuperar-portugal",
    "portugal-2030",
    "balcao-dos-fundos",
    "portal-habitacao-ihru",
    "dgeg-apoios-energia",
    "adene-casa-mais",
)

MUNICIPAL_INDEX_SOURCE_ID = "portal-autarquico-dgal"


class SourceRegistry:
    """
    Read-only lookup over canonical source definitions.

    Built once at startup and shared by reference; the underlying mapping is
    a MappingProxyType so it cannot be mutated after construction.
    """

    def __init__(self, definitions: Iterable[CanonicalSourceDefinition] = CANONICAL_SOURCES):
        by_id: Dict[str, CanonicalSourceDefinition] = {}
        for definition in definitions:
            if definition.id in by_id:
                raise ValueError(f"Duplicate canonical source id: {definition.id}")
            by_id[definition.id] = definition
        self._sources: Mapping[str, CanonicalSourceDefinition] = MappingProxyType(by_id)

    def get(self, source_id: str) -> CanonicalSourceDefinition:
        try:
            return self._sources[source_id]
        except KeyError:
            raise ValueError(f"Unknown canonical source: {source_id}") from None

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._sources

    def __iter__(self):
        return iter(self._sources.values())

    def __len__(self) -> int:
        return len(self._sources)

    def ids(self) -> List[str]:
        return list(self._sources.keys())

    def national(self) -> List[CanonicalSourceDefinition]:
        return [self._sources[source_id] for source_id in NATIONAL_SOURCE_IDS if source_id in self._sources]
