"""
Canonical domain models for the program discovery pipeline.

These models describe the sources we crawl, the candidates a crawl pass
produces, and the per-run result shapes returned to callers.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple


class ProgramType(str, Enum):
    NATIONAL = "NATIONAL"
    MUNICIPAL = "MUNICIPAL"


class ProgramStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    PLANNED = "PLANNED"
    UNKNOWN = "UNKNOWN"


class SupportCategory(str, Enum):
    JANELAS = "JANELAS"
    BOMBAS_CALOR = "BOMBAS_CALOR"
    ISOLAMENTO = "ISOLAMENTO"
    SOLAR = "SOLAR"
    AQUECIMENTO_AGUAS = "AQUECIMENTO_AGUAS"
    COBERTURA = "COBERTURA"
    OUTRO = "OUTRO"


class SourceType(str, Enum):
    """How a source record was obtained (mirrors the program source table)."""
    FA = "FA"
    DR = "DR"
    MUNICIPAL_SITE = "MUNICIPAL_SITE"
    OTHER = "OTHER"


class SourceCoverage(str, Enum):
    NATIONAL = "NATIONAL"
    EU_FUNDS = "EU_FUNDS"
    HOUSING = "HOUSING"
    ENERGY_META = "ENERGY_META"
    MUNICIPAL_INDEX = "MUNICIPAL_INDEX"
    LEGAL_BACKSTOP = "LEGAL_BACKSTOP"


class GeographyLevel(str, Enum):
    NATIONAL = "NATIONAL"
    MUNICIPALITY = "MUNICIPALITY"


class PersistOutcome(str, Enum):
    NEW = "new"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class CanonicalSourceDefinition:
    """
    Static description of a trusted origin.

    Built once at startup; tuples keep instances hashable and immutable.
    """
    id: str
    name: str
    entity: str
    description: str
    coverage: SourceCoverage
    source_type: SourceType
    program_type: ProgramType
    seed_urls: Tuple[str, ...]
    keywords: Tuple[str, ...]
    allowed_hosts: Tuple[str, ...] = ()
    require_application_intent: bool = False
    discovery_path_hints: Tuple[str, ...] = ()


@dataclass
class DiscoveredCandidate:
    """
    A (title, url) pair found during one crawl pass, optionally enriched.

    Lives only for the duration of a crawl pass; discarded after persistence.
    """
    title: str
    url: str
    description: Optional[str] = None

    # Geographic context (municipal crawls)
    municipality: Optional[str] = None
    district: Optional[str] = None

    # Listing metadata
    date_text: Optional[str] = None

    # Enrichment (deep crawl)
    category: Optional[SupportCategory] = None
    status: Optional[ProgramStatus] = None
    how_to_apply: Optional[str] = None
    application_url: Optional[str] = None
    required_documents: Optional[List[str]] = None
    beneficiaries: Optional[str] = None
    support_amount: Optional[str] = None
    deadline: Optional[str] = None
    legislation: Optional[str] = None
    faq: Optional[str] = None
    raw_sections: Optional[Dict[str, str]] = None

    # Anything else a worker wants to keep for audit (e.g. API item)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        """Serializable snapshot of every non-empty field."""
        payload = {}
        for key, value in asdict(self).items():
            if value is None or value == {} or value == []:
                continue
            if isinstance(value, Enum):
                value = value.value
            payload[key] = value
        return payload


@dataclass
class ProgramDetails:
    """Structured result of extracting a single program page."""
    url: str
    status: ProgramStatus = ProgramStatus.UNKNOWN
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[SupportCategory] = None
    how_to_apply: Optional[str] = None
    application_url: Optional[str] = None
    required_documents: Optional[List[str]] = None
    beneficiaries: Optional[str] = None
    support_amount: Optional[str] = None
    deadline: Optional[str] = None
    legislation: Optional[str] = None
    faq: Optional[str] = None
    raw_sections: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MunicipalitySite:
    concelho_id: str
    name: str
    district: str
    website: str


@dataclass
class RunError:
    error: str
    title: Optional[str] = None
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        data = {}
        if self.title is not None:
            data["title"] = self.title
        if self.url is not None:
            data["url"] = self.url
        data["error"] = self.error
        return data


@dataclass
class WorkerRunStats:
    found: int = 0
    new: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    duration: str = "0.00"

    def record(self, outcome: PersistOutcome) -> None:
        if outcome == PersistOutcome.NEW:
            self.new += 1
        elif outcome == PersistOutcome.UPDATED:
            self.updated += 1
        elif outcome == PersistOutcome.SKIPPED:
            self.skipped += 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class WorkerRunResult:
    success: bool
    stats: WorkerRunStats
    errors: List[RunError] = field(default_factory=list)
    error: Optional[str] = None

    # Worker specific counters (e.g. municipalities covered)
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NormalizedResult:
    """Stable per-source result contract returned by the orchestrator."""
    source: str
    success: bool
    stats: WorkerRunStats
    errors: Optional[List[Dict[str, Any]]] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "source": self.source,
            "success": self.success,
            "stats": self.stats.to_dict(),
        }
        if self.errors is not None:
            data["errors"] = self.errors
        if self.error:
            data["error"] = self.error
        return data
