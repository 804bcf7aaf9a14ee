"""
Worker registry and orchestrator.

Maps direct source ids to worker functions and groups ("core-national",
"municipal", "all") to ordered lists of direct ids. Every worker result is
normalized into the same NormalizedResult shape, and a worker that raises is
reported as a failed entry instead of aborting the batch.
"""

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional

from apoios.core.domain_models import NormalizedResult, WorkerRunResult, WorkerRunStats
from apoios.workers.context import IngestionContext
from apoios.workers.diario_republica import ingest_diario_republica
from apoios.workers.fundo_ambiental import ingest_fundo_ambiental
from apoios.workers.municipal import ingest_cascais, ingest_municipal_discovery
from apoios.workers.national import ingest_national_source

logger = logging.getLogger(__name__)

WorkerFn = Callable[[IngestionContext], Any]


@dataclass(frozen=True)
class SourceDescriptor:
    id: str
    name: str
    type: str
    description: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "type": self.type, "description": self.description}


DIRECT_SOURCE_DESCRIPTORS = (
    SourceDescriptor("fundo-ambiental", "Fundo Ambiental", "NATIONAL",
                     "Avisos e candidaturas do Fundo Ambiental."),
    SourceDescriptor("recuperar-portugal", "Recuperar Portugal (PRR)", "NATIONAL",
                     "Candidaturas PRR e avisos associados."),
    SourceDescriptor("portugal-2030", "Portugal 2030", "NATIONAL",
                     "Avisos e plano anual de avisos."),
    SourceDescriptor("balcao-dos-fundos", "Balcão dos Fundos", "NATIONAL",
                     "Discovery de avisos e entradas para submissão."),
    SourceDescriptor("portal-habitacao-ihru", "Portal da Habitação / IHRU", "NATIONAL",
                     "Programas habitacionais nacionais."),
    SourceDescriptor("dgeg-apoios-energia", "DGEG Apoios Energia", "NATIONAL",
                     "Metaportal de apoios na energia."),
    SourceDescriptor("adene-casa-mais", "ADENE / casA+", "NATIONAL",
                     "Incentivos e soluções de eficiência divulgados pela ADENE."),
    SourceDescriptor("diario-republica", "Diário da República", "LEGAL_BACKSTOP",
                     "Backstop legal para regulamentos e avisos."),
    SourceDescriptor("municipios-portugal", "Cobertura Municipal (308)", "MUNICIPAL",
                     "Discovery municipal por índice oficial + secções alvo."),
    SourceDescriptor("cascais", "Cascais (Piloto)", "MUNICIPAL",
                     "Programas do município de Cascais (piloto)."),
)

NATIONAL_DIRECT_IDS = (
    "fundo-ambiental",
    "recuperar-portugal",
    "portugal-2030",
    "balcao-dos-fundos",
    "portal-habitacao-ihru",
    "dgeg-apoios-energia",
    "adene-casa-mais",
    "diario-republica",
)

MUNICIPAL_DIRECT_IDS = ("municipios-portugal", "cascais")

SOURCE_GROUPS = OrderedDict([
    ("core-national", NATIONAL_DIRECT_IDS),
    ("municipal", MUNICIPAL_DIRECT_IDS),
    ("all", NATIONAL_DIRECT_IDS + MUNICIPAL_DIRECT_IDS),
])

GROUP_ALIASES = {"core-nacional": "core-national"}

GROUP_DESCRIPTORS = (
    SourceDescriptor("core-national", "Core nacional", "GROUP",
                     "Executa todos os workers nacionais e o backstop legal."),
    SourceDescriptor("municipal", "Cobertura municipal", "GROUP",
                     "Executa workers municipais (308)."),
    SourceDescriptor("all", "Todas as fontes", "GROUP",
                     "Executa todos os workers disponíveis."),
)

_DIRECT_IDS = tuple(d.id for d in DIRECT_SOURCE_DESCRIPTORS)


def default_workers() -> Dict[str, WorkerFn]:
    workers: Dict[str, WorkerFn] = {
        "fundo-ambiental": ingest_fundo_ambiental,
        "diario-republica": ingest_diario_republica,
        "municipios-portugal": ingest_municipal_discovery,
        "cascais": ingest_cascais,
    }
    for source_id in ("recuperar-portugal", "portugal-2030", "balcao-dos-fundos",
                      "portal-habitacao-ihru", "dgeg-apoios-energia", "adene-casa-mais"):
        workers[source_id] = partial(ingest_national_source, source_id=source_id)
    return workers


def get_available_sources() -> List[Dict[str, str]]:
    """Direct sources followed by groups, as plain dicts."""
    return [d.to_dict() for d in DIRECT_SOURCE_DESCRIPTORS + GROUP_DESCRIPTORS]


def is_valid_source(source: str) -> bool:
    return source in _DIRECT_IDS or GROUP_ALIASES.get(source, source) in SOURCE_GROUPS


def expand_source(source: str) -> List[str]:
    """
    Direct ids a source id or group name stands for.

    Raises:
        ValueError: unknown id or group
    """
    group = GROUP_ALIASES.get(source, source)
    if group in SOURCE_GROUPS:
        return list(SOURCE_GROUPS[group])
    if source in _DIRECT_IDS:
        return [source]
    raise ValueError(f"Unknown ingestion source: {source}")


def to_number(value: Any) -> int:
    """
    Coerce a stat value to a finite integer (truncated), 0 otherwise.

    Examples:
        >>> to_number("12")
        12
        >>> to_number(None)
        0
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip()) if value.strip() else 0
        except ValueError:
            return 0
    else:
        return 0

    if not math.isfinite(number):
        return 0
    return int(number)


def normalize_stats(stats: Any) -> WorkerRunStats:
    if isinstance(stats, WorkerRunStats):
        raw = stats.to_dict()
    elif isinstance(stats, Mapping):
        raw = stats
    else:
        raw = {}

    duration = raw.get("duration")
    if isinstance(duration, str):
        duration_text = duration
    elif isinstance(duration, (int, float)) and not isinstance(duration, bool):
        duration_text = f"{duration:.2f}"
    else:
        duration_text = "0.00"

    return WorkerRunStats(
        found=to_number(raw.get("found")),
        new=to_number(raw.get("new")),
        updated=to_number(raw.get("updated")),
        skipped=to_number(raw.get("skipped")),
        errors=to_number(raw.get("errors")),
        duration=duration_text,
    )


def normalize_worker_result(source: str, output: Any) -> NormalizedResult:
    """Coerce whatever a worker returned into a NormalizedResult."""
    if isinstance(output, WorkerRunResult):
        return NormalizedResult(
            source=source,
            success=output.success,
            stats=normalize_stats(output.stats),
            errors=[e.to_dict() for e in output.errors],
            error=output.error,
        )

    raw = output if isinstance(output, Mapping) else {}
    success = raw.get("success")
    return NormalizedResult(
        source=source,
        success=True if success is None else bool(success),
        stats=normalize_stats(raw.get("stats")),
        errors=raw.get("errors"),
        error=raw.get("error") or None,
    )


def failed_result(source: str, message: str) -> NormalizedResult:
    return NormalizedResult(source=source, success=False, stats=WorkerRunStats(errors=1), error=message)


class IngestionRegistry:
    """
    Run ingestion workers by source id or group.

    Usage:
        registry = IngestionRegistry(IngestionContext.from_settings(Settings.from_env()))
        results = registry.run("core-national")
    """

    def __init__(
        self,
        context: IngestionContext,
        workers: Optional[Mapping[str, WorkerFn]] = None,
        record_runs: bool = True,
    ):
        self.context = context
        self.workers = dict(workers) if workers is not None else default_workers()
        self.record_runs = record_runs

    def run_worker(self, source_id: str) -> NormalizedResult:
        """Run one direct source; never raises."""
        worker = self.workers.get(source_id)
        if worker is None:
            logger.error(f"No worker registered for source '{source_id}'")
            return failed_result(source_id, f"No worker registered for source '{source_id}'")

        run_id = self._start_run(source_id)
        try:
            logger.info(f"Running worker '{source_id}'")
            result = normalize_worker_result(source_id, worker(self.context))
        except Exception as e:
            logger.exception(f"Worker '{source_id}' failed: {e}")
            result = failed_result(source_id, str(e) or type(e).__name__)

        self._complete_run(run_id, result)
        return result

    def run(self, source: str) -> List[NormalizedResult]:
        """
        Run a direct source or every member of a group, in declared order.

        Raises:
            ValueError: unknown source id or group
        """
        return [self.run_worker(target) for target in expand_source(source)]

    def _start_run(self, source_id: str) -> Optional[str]:
        if not self.record_runs:
            return None
        try:
            return self.context.run_log.start(source_id)
        except Exception as e:
            logger.warning(f"Could not record ingestion run start for {source_id}: {e}")
            return None

    def _complete_run(self, run_id: Optional[str], result: NormalizedResult) -> None:
        if run_id is None:
            return
        try:
            self.context.run_log.complete(run_id, result.success, result.stats, result.errors, result.error)
        except Exception as e:
            logger.warning(f"Could not record ingestion run result for {result.source}: {e}")


def summarize(results: List[NormalizedResult]) -> WorkerRunStats:
    """Sum counters over several results; duration is the sum of durations."""
    total = WorkerRunStats()
    seconds = 0.0
    for result in results:
        total.found += result.stats.found
        total.new += result.stats.new
        total.updated += result.stats.updated
        total.skipped += result.stats.skipped
        total.errors += result.stats.errors
        seconds += to_number(result.stats.duration)
    total.duration = f"{seconds:.2f}"
    return total
