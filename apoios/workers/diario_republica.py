"""
Diário da República worker (legal backstop).

Searches the official journal for regulations and notices on a fixed set of
topics. Three discovery paths are combined per search term:
  - the JSON search API (when it answers JSON at all)
  - the generic link crawler over the HTML search result pages
  - detail links matched by regex in the raw search HTML

Documents that name a municipal council are stored as municipal programs.
"""

import json
import logging
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote, urljoin, urlparse

from bs4 import BeautifulSoup

from apoios.core.domain_models import (
    DiscoveredCandidate,
    ProgramType,
    RunError,
    WorkerRunResult,
    WorkerRunStats,
)
from apoios.core.geography import Concelho, build_municipality_index
from apoios.core.utils import clean_text, normalize_text, sleep_ms
from apoios.ingest.discovery import DiscoveryOptions, candidate_key, extract_candidates
from apoios.ingest.fetcher import JSON_ACCEPT
from apoios.workers.context import IngestionContext
from apoios.workers.discovery_runner import format_duration

logger = logging.getLogger(__name__)

SOURCE_ID = "diario-republica"

SEARCH_TERMS = (
    "eficiência energética habitação",
    "pobreza energética",
    "regulamento municipal eficiência",
    "fundo eficiência energética",
    "isolamento térmico habitação",
    "reabilitação urbana energia",
)

SEARCH_URL_PATTERNS = (
    "https://dre.pt/web/guest/pesquisa/-/search?q={q}&perPage=50&sort=whenSearchable",
    "https://dre.pt/web/guest/pesquisa/-/search?q={q}&fqs={q}&filterAction=TRUE&perPage=100&sort=whenSearchable&sortOrder=DESC",
    "https://dre.pt/pesquisa/-/search?q={q}&perPage=50&sort=whenSearchable",
    "https://dre.pt/pesquisa/-/search?query={q}&fqs={q}&filterAction=TRUE&perPage=100&sort=whenSearchable&sortOrder=DESC",
    "https://diariodarepublica.pt/pesquisa/-/search?q={q}&perPage=50&sort=whenSearchable",
)

API_ENDPOINTS = (
    "https://data.dre.pt/api/v1/act/search",
    "https://dre.pt/api/v1/act/search",
)

LEGAL_KEYWORDS = ("decreto-lei", "portaria", "regulamento", "aviso", "deliberação", "despacho")

ACTION_KEYWORDS = (
    "candidatura", "candidaturas", "candidatar", "apoio", "apoios", "incentivo",
    "incentivos", "programa", "programas", "aviso", "avisos", "concurso",
    "beneficiario", "beneficiarios", "submissao", "submeter", "formulario",
)

TOPIC_KEYWORDS = (
    "eficiencia", "energetica", "habitacao", "reabilitacao", "isolamento",
    "vale eficiencia", "fundo ambiental", "energia",
)

BLOCKED_TITLE_MARKERS = (
    "mapa do site", "politica de privacidade", "acessibilidade", "cookies", "contactos", "rss",
)

MUNICIPAL_PATTERNS = tuple(re.compile(p) for p in (
    r"\bcamara municipal (?:de|da|do)\s+([a-z0-9\s\-]{3,80})",
    r"\bmunicipio (?:de|da|do)\s+([a-z0-9\s\-]{3,80})",
    r"\bassembleia municipal (?:de|da|do)\s+([a-z0-9\s\-]{3,80})",
))

DETAIL_URL_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"https?://(?:www\.)?(?:dre|diariodarepublica)\.pt/[^\s\"'<>)]*/search/\d+/details/(?:normal|maximized)[^\s\"'<>)]*",
    r"/[^\s\"'<>)]*/search/\d+/details/(?:normal|maximized)[^\s\"'<>)]*",
))

API_ARRAY_KEYS = ("items", "results", "content", "data", "docs", "list")
MIN_DOCUMENT_TITLE_LENGTH = 12
MIN_DETAIL_TITLE_LENGTH = 8

ANTI_BOT_ERROR = (
    "DRE API endpoints returned HTML instead of JSON; "
    "programmatic access is probably being blocked"
)


def build_search_urls(terms: Sequence[str]) -> List[str]:
    """Every search URL pattern filled with every term, without duplicates."""
    urls = []
    for term in terms:
        encoded = quote(term, safe="")
        for pattern in SEARCH_URL_PATTERNS:
            url = pattern.replace("{q}", encoded)
            if url not in urls:
                urls.append(url)
    return urls


def is_official_dre_host(url: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return any(host == domain or host.endswith(f".{domain}") for domain in ("dre.pt", "diariodarepublica.pt"))


def _normalized_keywords() -> List[str]:
    keywords = []
    for keyword in SEARCH_TERMS + LEGAL_KEYWORDS:
        normalized = normalize_text(keyword)
        if normalized not in keywords:
            keywords.append(normalized)
    return keywords


def is_likely_document_candidate(candidate: DiscoveredCandidate, extra_keywords: Sequence[str] = ()) -> bool:
    """
    Keep official documents that read like a support program.

    Requires an official host, a non-trivial title, an action keyword, and
    one of: topic keyword, detail/PDF link, search keyword.
    """
    if not is_official_dre_host(candidate.url):
        return False

    title = normalize_text(candidate.title)
    if len(title) < MIN_DOCUMENT_TITLE_LENGTH:
        return False
    if any(marker in title for marker in BLOCKED_TITLE_MARKERS):
        return False

    text = normalize_text(f"{candidate.title} {candidate.description or ''} {candidate.url}")
    path = urlparse(candidate.url).path.lower()
    is_detail_link = bool(re.search(r"/search/\d+/details/", path)) or path.endswith(".pdf")

    if not any(keyword in text for keyword in ACTION_KEYWORDS):
        return False

    keywords = _normalized_keywords() + [normalize_text(k) for k in extra_keywords]
    return (
        any(keyword in text for keyword in TOPIC_KEYWORDS)
        or is_detail_link
        or any(keyword in text for keyword in keywords)
    )


def clean_municipality_label(raw: str) -> str:
    label = normalize_text(raw)
    label = re.sub(r"\b(concelho|distrito|freguesia)\b.*$", "", label)
    label = re.sub(r"[.,;:()]", " ", label)
    return re.sub(r"\s+", " ", label).strip()


def resolve_municipality_from_text(text: str, known: Mapping[str, Concelho]) -> Optional[Concelho]:
    """
    Find the council named in a document title/summary.

    Examples:
        >>> index = build_municipality_index()
        >>> resolve_municipality_from_text("Regulamento da Câmara Municipal de Óbidos", index).name
        'Óbidos'
    """
    normalized = normalize_text(text)
    for pattern in MUNICIPAL_PATTERNS:
        match = pattern.search(normalized)
        if not match:
            continue

        cleaned = clean_municipality_label(match.group(1))
        if not cleaned:
            continue

        if cleaned in known:
            return known[cleaned]

        # Captured label usually runs on past the name ("obidos aprova ...")
        for name, concelho in known.items():
            if cleaned.startswith(f"{name} ") or name.startswith(f"{cleaned} "):
                return concelho
    return None


def extract_detail_urls(html: str, base_url: str) -> List[str]:
    urls = []
    for pattern in DETAIL_URL_PATTERNS:
        for match in pattern.findall(html):
            url = urljoin(base_url, match)
            if is_official_dre_host(url) and url not in urls:
                urls.append(url)
    return urls


def parse_detail_page(html: str, url: str) -> Optional[DiscoveredCandidate]:
    soup = BeautifulSoup(html, "lxml")

    title = ""
    for selector in ("h1", "h2"):
        element = soup.find(selector)
        if element and element.get_text(strip=True):
            title = clean_text(element.get_text(" ", strip=True))
            break
    if not title:
        og_title = soup.find("meta", attrs={"property": "og:title"})
        if og_title and og_title.get("content"):
            title = clean_text(og_title["content"])
    if not title and soup.title:
        title = clean_text(soup.title.get_text(" ", strip=True))

    if len(title) < MIN_DETAIL_TITLE_LENGTH:
        return None

    description = None
    meta = soup.find("meta", attrs={"name": "description"})
    if meta and meta.get("content", "").strip():
        description = clean_text(meta["content"])
    else:
        paragraph = soup.select_one("main p") or soup.select_one("article p")
        if paragraph and paragraph.get_text(strip=True):
            description = clean_text(paragraph.get_text(" ", strip=True))

    return DiscoveredCandidate(title=title, url=url, description=description)


# ---- JSON API helpers ----

def parse_json_from_string(raw: str) -> Any:
    """
    Decode JSON, tolerating text before or after the document.

    Examples:
        >>> parse_json_from_string('callback([{"id": 1}]);')
        [{'id': 1}]
    """
    trimmed = (raw or "").strip()
    if not trimmed:
        return None

    if (trimmed[0], trimmed[-1]) in (("{", "}"), ("[", "]")):
        try:
            return json.loads(trimmed)
        except ValueError:
            return None

    starts = [i for i in (trimmed.find("{"), trimmed.find("[")) if i >= 0]
    if not starts:
        return None
    first = min(starts)
    last = max(trimmed.rfind("}"), trimmed.rfind("]"))
    if last <= first:
        return None

    try:
        return json.loads(trimmed[first:last + 1])
    except ValueError:
        return None


def extract_api_items(payload: Any) -> List[Dict[str, Any]]:
    """
    Locate the list of result objects in an API payload.

    Tries the usual top-level keys first, then falls back to the largest
    array of objects found anywhere in the document.
    """
    if not payload:
        return []
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict) and item]
    if not isinstance(payload, dict):
        return []

    for key in API_ARRAY_KEYS:
        value = payload.get(key)
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict) and item]

    arrays: List[List[Dict[str, Any]]] = []

    def visit(value: Any) -> None:
        if isinstance(value, list):
            objects = [item for item in value if isinstance(item, dict) and item]
            if objects:
                arrays.append(objects)
        elif isinstance(value, dict):
            for nested in value.values():
                visit(nested)

    visit(payload)
    if not arrays:
        return []
    return max(arrays, key=len)


def nested_string_values(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [s for item in value for s in nested_string_values(item)]
    if isinstance(value, dict):
        return [s for item in value.values() for s in nested_string_values(item)]
    return []


def find_string_by_hint(record: Mapping[str, Any], hints: Sequence[str]) -> Optional[str]:
    """First non-empty string whose key contains a hint; nested dicts searched after."""
    normalized_hints = [normalize_text(h) for h in hints]
    for key, value in record.items():
        if not isinstance(value, str):
            continue
        if any(hint in normalize_text(str(key)) for hint in normalized_hints) and value.strip():
            return value.strip()

    for value in record.values():
        if isinstance(value, dict):
            nested = find_string_by_hint(value, hints)
            if nested:
                return nested
    return None


def normalize_potential_url(value: Optional[str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    absolute = urljoin("https://dre.pt", value.strip())
    return absolute if is_official_dre_host(absolute) else None


def api_item_to_candidate(item: Mapping[str, Any]) -> Optional[DiscoveredCandidate]:
    strings = nested_string_values(item)

    title = find_string_by_hint(item, ("title", "titulo", "epigrafe", "epigraph"))
    if not title:
        title = next((s for s in strings if len(s) > 16), None)

    raw_url = find_string_by_hint(item, ("url", "link", "href", "pdf", "portal"))
    if not raw_url:
        raw_url = next((s for s in strings if re.match(r"^https?://", s, re.IGNORECASE)), None)

    fallback_id = find_string_by_hint(item, ("id", "actid", "documentid", "diplomaid"))
    if not fallback_id:
        fallback_id = next((s for s in strings if re.match(r"^\d{6,}$", s)), None)

    url = normalize_potential_url(raw_url)
    if not url and fallback_id:
        url = normalize_potential_url(
            f"https://dre.pt/web/guest/pesquisa/-/search/{fallback_id}/details/maximized"
        )

    if not title or not url:
        return None

    description = find_string_by_hint(item, ("summary", "resumo", "description", "descricao"))
    return DiscoveredCandidate(title=clean_text(title), url=url, description=description, metadata=dict(item))


@dataclass
class ApiProbe:
    """Counters used to detect an API that only answers with HTML."""
    queried: int = 0
    returned_html: int = 0
    with_items: int = 0

    def add(self, other: "ApiProbe") -> None:
        self.queried += other.queried
        self.returned_html += other.returned_html
        self.with_items += other.with_items

    @property
    def looks_blocked(self) -> bool:
        return self.queried > 0 and self.returned_html == self.queried and self.with_items == 0


class DiarioRepublicaSearch:
    """Run one search term across API, result pages and detail links."""

    def __init__(self, context: IngestionContext):
        self.context = context
        self.settings = context.settings
        self.source = context.sources.get(SOURCE_ID)
        self.keywords = tuple(self.source.keywords) + SEARCH_TERMS + LEGAL_KEYWORDS

    def _add(self, found: "OrderedDict[str, DiscoveredCandidate]", candidate: Optional[DiscoveredCandidate]) -> None:
        if candidate is None or not is_likely_document_candidate(candidate, self.source.keywords):
            return
        found.setdefault(candidate_key(candidate.url, candidate.title), candidate)

    def _follow_detail_links(self, html: str, base_url: str, found) -> None:
        for detail_url in extract_detail_urls(html, base_url)[:self.settings.dre_max_detail_links]:
            detail_html = self.context.fetcher.fetch(detail_url)
            if detail_html:
                self._add(found, parse_detail_page(detail_html, detail_url))

    def search_api(self, term: str):
        found: "OrderedDict[str, DiscoveredCandidate]" = OrderedDict()
        probe = ApiProbe()

        for endpoint in API_ENDPOINTS:
            probe.queried += 1
            page = self.context.fetcher.fetch_page(
                endpoint,
                accept=JSON_ACCEPT,
                params={"query": term, "itemsPerPage": 50, "page": 1, "sort": "publicationDate,desc"},
            )
            if page is None:
                logger.warning(f"DRE API unavailable: {endpoint} ({term})")
                continue

            if page.is_html:
                probe.returned_html += 1

            items = extract_api_items(parse_json_from_string(page.text))
            if items:
                probe.with_items += 1

            if self.settings.dre_debug_api:
                sample_keys = list(items[0].keys())[:20] if items else []
                preview = re.sub(r"\s+", " ", page.text[:220]).strip()
                logger.info(
                    f"DRE API debug: endpoint={endpoint} term={term!r} content_type={page.content_type} "
                    f"items={len(items)} sample_keys={sample_keys} preview={preview!r}"
                )

            for item in items:
                self._add(found, api_item_to_candidate(item))

            if not items:
                self._follow_detail_links(page.text, endpoint, found)

        return list(found.values()), probe

    def search(self, term: str):
        """
        Search one term.

        Returns:
            (candidates, ApiProbe)
        """
        logger.info(f"DRE search: {term!r}")
        found: "OrderedDict[str, DiscoveredCandidate]" = OrderedDict()

        api_candidates, probe = self.search_api(term)
        for candidate in api_candidates:
            found.setdefault(candidate_key(candidate.url, candidate.title), candidate)

        options = DiscoveryOptions(allowed_hosts=self.source.allowed_hosts, require_intent=False)
        for url in build_search_urls([term]):
            html = self.context.fetcher.fetch(url)
            if html:
                for candidate in extract_candidates(html, url, self.keywords, options=options):
                    self._add(found, candidate)
                self._follow_detail_links(html, url, found)
            sleep_ms(self.settings.dre_request_delay_ms)

        logger.info(
            f"DRE search {term!r}: {len(found)} candidates "
            f"(api queried={probe.queried} html={probe.returned_html} with_items={probe.with_items})"
        )
        return list(found.values()), probe


def ingest_diario_republica(context: IngestionContext) -> WorkerRunResult:
    settings = context.settings
    source = context.sources.get(SOURCE_ID)
    started_at = time.time()
    stats = WorkerRunStats()
    errors: List[RunError] = []
    known = build_municipality_index()
    searcher = DiarioRepublicaSearch(context)
    probe = ApiProbe()

    logger.info(f"[{SOURCE_ID}] Starting with {len(SEARCH_TERMS)} search terms")

    found: "OrderedDict[str, DiscoveredCandidate]" = OrderedDict()
    for term in SEARCH_TERMS:
        try:
            candidates, term_probe = searcher.search(term)
        except Exception as e:
            logger.warning(f"[{SOURCE_ID}] Search failed for {term!r}: {e}")
            errors.append(RunError(error=str(e), title=term))
            continue

        probe.add(term_probe)
        for candidate in candidates:
            found.setdefault(candidate_key(candidate.url, candidate.title), candidate)

    candidates = list(found.values())[:settings.max_programs_per_source]
    stats.found = len(candidates)

    for candidate in candidates:
        try:
            concelho = resolve_municipality_from_text(f"{candidate.title} {candidate.description or ''}", known)
            if concelho:
                candidate.municipality = concelho.name
                candidate.district = concelho.district
                outcome = context.persister.persist(
                    source, candidate,
                    override_program_type=ProgramType.MUNICIPAL,
                    override_entity=f"Câmara Municipal de {concelho.name}",
                )
            else:
                outcome = context.persister.persist(source, candidate, override_program_type=ProgramType.NATIONAL)
            stats.record(outcome)
        except Exception as e:
            logger.error(f"[{SOURCE_ID}] Failed to persist '{candidate.title}' ({candidate.url}): {e}")
            errors.append(RunError(error=str(e), title=candidate.title, url=candidate.url))

        sleep_ms(settings.dre_persist_delay_ms)

    if stats.found == 0 and probe.looks_blocked:
        logger.warning(
            f"[{SOURCE_ID}] No results and every API response was HTML "
            f"({probe.returned_html}/{probe.queried})"
        )
        errors.append(RunError(error=ANTI_BOT_ERROR, title="DRE API"))

    stats.errors = len(errors)
    stats.duration = format_duration(started_at)
    logger.info(
        f"[{SOURCE_ID}] Done: found={stats.found} new={stats.new} updated={stats.updated} "
        f"skipped={stats.skipped} errors={stats.errors} ({stats.duration}s)"
    )
    return WorkerRunResult(success=True, stats=stats, errors=errors)
