"""
Deep section extractor for individual program pages.

Segments a page by headings and tab panels, classifies each segment against
SECTION_PATTERNS, and maps the result onto ProgramDetails fields.
"""

import dataclasses
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from apoios.core.domain_models import DiscoveredCandidate, ProgramDetails, ProgramStatus
from apoios.core.keywords import APPLICATION_LINK_PATTERNS, SECTION_PATTERNS
from apoios.core.status import infer_status
from apoios.core.utils import clean_text, sleep_ms, to_absolute_url
from apoios.enhance.category_classifier import CategoryClassifier
from apoios.ingest.fetcher import PageFetcher

logger = logging.getLogger(__name__)

HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")
HEADING_SELECTOR = "h1, h2, h3, h4, h5, h6, .title, [class*=title], [class*=heading]"
TAB_SELECTOR = ".nav-tabs a, .tab-link, [role=tab]"
MAIN_SELECTOR = "main, .content, article, [role=main]"

MAX_SECTION_LENGTH = 5000
MIN_SECTION_LENGTH = 20
MIN_HEADING_LENGTH = 3
DOCUMENT_ITEM_RANGE = (5, 200)

DESCRIPTION_SECTION_TITLES = ("O que é", "What is")

# section type -> ProgramDetails attribute
SECTION_FIELDS = {
    "how_to_apply": "how_to_apply",
    "beneficiaries": "beneficiaries",
    "legislation": "legislation",
    "amount": "support_amount",
    "deadline": "deadline",
    "what_is": "description",
    "faq": "faq",
}


@dataclass
class ExtractedSection:
    title: str
    content: str
    section_type: Optional[str] = None
    raw_text: str = ""
    list_items: List[str] = field(default_factory=list)


def classify_section(title: str) -> Optional[str]:
    """
    Match a heading against the section pattern groups.

    Examples:
        >>> classify_section("Como se candidatar?")
        'how_to_apply'
        >>> classify_section("Notícias")
        None
    """
    for section_type, patterns in SECTION_PATTERNS.items():
        if any(pattern.search(title) for pattern in patterns):
            return section_type
    return None


def _node_text(node) -> str:
    if isinstance(node, Tag):
        return node.get_text(" ", strip=True)
    return str(node).strip()


def _list_items(nodes: List) -> List[str]:
    items = []
    low, high = DOCUMENT_ITEM_RANGE
    for node in nodes:
        if not isinstance(node, Tag):
            continue
        lis = [node] if node.name == "li" else node.find_all("li")
        for li in lis:
            text = clean_text(li.get_text(" ", strip=True))
            if low <= len(text) <= high:
                items.append(text)
    return items


def _collect_following(heading: Tag) -> List:
    """Siblings after a heading, up to the next h1-h6."""
    nodes = []
    for sibling in heading.next_siblings:
        if isinstance(sibling, Tag):
            if sibling.name in HEADING_TAGS:
                break
            nodes.append(sibling)
        elif isinstance(sibling, NavigableString) and not isinstance(sibling, Comment) and str(sibling).strip():
            nodes.append(sibling)
    return nodes


def _section_from_nodes(title: str, nodes: List) -> Optional[ExtractedSection]:
    raw_text = "\n".join(t for t in (_node_text(n) for n in nodes) if t)
    content = clean_text(raw_text)[:MAX_SECTION_LENGTH]
    if len(content) <= MIN_SECTION_LENGTH:
        return None
    return ExtractedSection(
        title=title,
        content=content,
        section_type=classify_section(title),
        raw_text=raw_text[:MAX_SECTION_LENGTH],
        list_items=_list_items(nodes),
    )


def extract_heading_sections(soup: BeautifulSoup) -> List[ExtractedSection]:
    sections = []
    for heading in soup.select(HEADING_SELECTOR):
        title = clean_text(heading.get_text(" ", strip=True))
        if len(title) < MIN_HEADING_LENGTH:
            continue

        nodes = _collect_following(heading)
        if not nodes and heading.parent is not None:
            # Heading wrapped alone: fall back to the parent's non-heading content
            nodes = [
                child for child in heading.parent.children
                if child is not heading
                and not (isinstance(child, Tag) and child.name in HEADING_TAGS)
            ]

        section = _section_from_nodes(title, nodes)
        if section:
            sections.append(section)
    return sections


def extract_tab_sections(soup: BeautifulSoup) -> List[ExtractedSection]:
    sections = []
    seen_ids = set()
    for tab in soup.select(TAB_SELECTOR):
        title = clean_text(tab.get_text(" ", strip=True))
        if len(title) < MIN_HEADING_LENGTH:
            continue

        href = (tab.get("href") or "").strip()
        target = href[1:] if href.startswith("#") else (tab.get("data-target") or "").lstrip("#")
        if not target or target in seen_ids:
            continue
        seen_ids.add(target)

        panel = soup.find(id=target)
        if panel is None:
            continue

        section = _section_from_nodes(title, [panel])
        if section:
            sections.append(section)
    return sections


def split_document_list(section: ExtractedSection) -> List[str]:
    """Explicit <li> items first, otherwise split the body on ; • - or newlines."""
    if section.list_items:
        return section.list_items

    low, high = DOCUMENT_ITEM_RANGE
    parts = re.split(r"[;•\-\n]", section.raw_text or section.content)
    return [clean_text(p) for p in parts if low < len(clean_text(p)) < high]


def find_application_url(soup: BeautifulSoup, base_url: str) -> Optional[str]:
    for anchor in soup.find_all("a", href=True):
        text = anchor.get_text(" ", strip=True)
        href = anchor["href"]
        if any(p.search(text) or p.search(href) for p in APPLICATION_LINK_PATTERNS):
            absolute = to_absolute_url(href, base_url)
            if absolute:
                return absolute
    return None


def _page_title(soup: BeautifulSoup) -> Optional[str]:
    h1 = soup.find("h1")
    if h1 and h1.get_text(strip=True):
        return clean_text(h1.get_text(" ", strip=True))
    if soup.title and soup.title.get_text(strip=True):
        return clean_text(soup.title.get_text(" ", strip=True))
    return None


def _main_text(soup: BeautifulSoup) -> str:
    main = soup.select_one(MAIN_SELECTOR) or soup.body or soup
    return clean_text(main.get_text(" ", strip=True))


def extract_details_from_html(
    html: str,
    url: str,
    classifier: Optional[CategoryClassifier] = None,
) -> ProgramDetails:
    """
    Build ProgramDetails from a page's HTML.

    Args:
        html: Page HTML
        url: Page URL, used to resolve the application link
        classifier: Category classifier (default keyword tables)

    Returns:
        ProgramDetails; fields without a matching section stay None
    """
    classifier = classifier or CategoryClassifier()
    soup = BeautifulSoup(html, "lxml")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    details = ProgramDetails(url=url, title=_page_title(soup))
    sections = extract_heading_sections(soup) + extract_tab_sections(soup)

    for section in sections:
        details.raw_sections[section.title] = section.content

        if section.section_type == "documents":
            if details.required_documents is None:
                documents = split_document_list(section)
                details.required_documents = documents or None
            continue

        attr = SECTION_FIELDS.get(section.section_type)
        # First section of each type wins
        if attr and getattr(details, attr) is None:
            setattr(details, attr, section.content)

    if details.description is None:
        for key in DESCRIPTION_SECTION_TITLES:
            if key in details.raw_sections:
                details.description = details.raw_sections[key]
                break

    details.application_url = find_application_url(soup, url)

    full_text = f"{details.title or ''} {_main_text(soup)}"
    details.category = classifier.classify(full_text)
    details.status = infer_status(full_text)
    return details


class SectionExtractor:
    """Fetch program pages and extract their structured sections."""

    def __init__(self, fetcher: PageFetcher, classifier: Optional[CategoryClassifier] = None):
        self.fetcher = fetcher
        self.classifier = classifier or CategoryClassifier()

    def extract_details(self, url: str, delay_ms: int = 0) -> ProgramDetails:
        """
        Extract details for one page. Never raises.

        Any fetch or parse failure yields ProgramDetails(url, status=UNKNOWN).
        The optional delay is applied before returning, success or not.
        """
        try:
            html = self.fetcher.fetch(url)
            if not html:
                return ProgramDetails(url=url, status=ProgramStatus.UNKNOWN)

            details = extract_details_from_html(html, url, self.classifier)
            logger.info(
                f"Extracted {len(details.raw_sections)} sections from {url} "
                f"(category={details.category.value}, status={details.status.value})"
            )
            return details

        except Exception as e:
            logger.error(f"Section extraction failed for {url}: {e}")
            return ProgramDetails(url=url, status=ProgramStatus.UNKNOWN)

        finally:
            sleep_ms(delay_ms)


ENRICHMENT_FIELDS: Tuple[str, ...] = (
    "category", "status", "how_to_apply", "application_url", "required_documents",
    "beneficiaries", "support_amount", "deadline", "legislation", "faq",
)


def enrich_candidate(candidate: DiscoveredCandidate, details: ProgramDetails) -> DiscoveredCandidate:
    """Merge extracted details into a candidate without discarding what it already has."""
    updates: Dict[str, object] = {}
    for name in ENRICHMENT_FIELDS:
        value = getattr(details, name)
        if value is not None and value != []:
            updates[name] = value

    if details.raw_sections:
        updates["raw_sections"] = dict(details.raw_sections)
    if not candidate.description and details.description:
        updates["description"] = details.description

    return dataclasses.replace(candidate, **updates)
