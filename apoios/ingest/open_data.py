"""
Helpers for the municipal websites open-data resources.

The published CSV files change shape between revisions (delimiter, header
row position, column names), so everything here detects rather than assumes.
"""

import csv
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence
from urllib.parse import urlparse

from apoios.core.utils import normalize_text

DELIMITER_CANDIDATES = (";", "\t", ",")
DELIMITER_SAMPLE_LINES = 5

MUNICIPALITY_HEADER_HINTS = ("municipio", "concelho", "autarquia")
WEBSITE_HEADER_HINTS = ("website", "site", "url", "endereco", "internet", "sitio web")
CATALOG_URL_KEY_HINTS = ("url", "download", "latest", "resource")


@dataclass
class HeaderInfo:
    row_index: int
    municipality_index: int
    website_index: int


def detect_delimiter(lines: Sequence[str]) -> str:
    """
    Pick the delimiter with the most splits over the first sample lines.

    Ties resolve in DELIMITER_CANDIDATES order (; before tab before ,).

    Examples:
        >>> detect_delimiter(["a;b;c", "1;2;3"])
        ';'
        >>> detect_delimiter(["a,b", "1,2"])
        ','
    """
    sample = list(lines[:DELIMITER_SAMPLE_LINES])
    best, best_score = DELIMITER_CANDIDATES[0], -1
    for candidate in DELIMITER_CANDIDATES:
        score = sum(max(0, len(line.split(candidate)) - 1) for line in sample)
        if score > best_score:
            best, best_score = candidate, score
    return best


def parse_csv_table(text: str) -> List[List[str]]:
    """
    Parse delimited text into rows of stripped cells.

    Strips a UTF-8 BOM, drops blank lines and honours double-quoted cells
    with "" escapes.
    """
    text = text.lstrip("\ufeff")
    lines = [line.strip() for line in re.split(r"\r\n|\n|\r", text)]
    lines = [line for line in lines if line]
    if not lines:
        return []

    delimiter = detect_delimiter(lines)
    return [[cell.strip() for cell in row] for row in csv.reader(lines, delimiter=delimiter)]


def is_municipality_header(cell: str) -> bool:
    normalized = normalize_text(cell)
    return any(hint in normalized for hint in MUNICIPALITY_HEADER_HINTS)


def is_website_header(cell: str) -> bool:
    normalized = normalize_text(cell)
    return any(hint in normalized for hint in WEBSITE_HEADER_HINTS)


def resolve_header_row(rows: Sequence[Sequence[str]]) -> Optional[HeaderInfo]:
    """First row holding both a municipality-like and a website-like label."""
    for row_index, row in enumerate(rows):
        municipality_index = next((i for i, cell in enumerate(row) if is_municipality_header(cell)), -1)
        website_index = next((i for i, cell in enumerate(row) if is_website_header(cell)), -1)
        if municipality_index >= 0 and website_index >= 0:
            return HeaderInfo(row_index, municipality_index, website_index)
    return None


def normalize_website(raw: Optional[str]) -> Optional[str]:
    """
    Turn a website cell into an absolute http(s) URL.

    Examples:
        >>> normalize_website("www.cm-obidos.pt")
        'https://www.cm-obidos.pt'
        >>> normalize_website("ftp://example.pt") is None
        True
    """
    if not raw or not raw.strip():
        return None
    value = raw.strip()
    if not re.match(r"^[a-z][a-z0-9+.-]*://", value, re.IGNORECASE):
        value = f"https://{value.lstrip('/')}"

    parsed = urlparse(value)
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        return None
    if " " in parsed.netloc:
        return None
    return value


def is_likely_csv_resource(url: str, resource_format: Optional[str] = None) -> bool:
    lowered = url.lower()
    if lowered.endswith(".csv") or lowered.endswith(".tsv") or "/r/" in lowered:
        return True
    fmt = normalize_text(resource_format)
    return "csv" in fmt or "tsv" in fmt or "text" in fmt


def extract_catalog_resource_urls(payload: Any) -> List[str]:
    """
    Recursively collect http(s) strings stored under URL-ish keys.

    Returns URLs in discovery order without duplicates.
    """
    urls: List[str] = []

    def visit(value: Any) -> None:
        if isinstance(value, list):
            for item in value:
                visit(item)
        elif isinstance(value, dict):
            for key, nested in value.items():
                if isinstance(nested, str) and re.match(r"^https?://", nested, re.IGNORECASE):
                    normalized_key = normalize_text(str(key))
                    if any(hint in normalized_key for hint in CATALOG_URL_KEY_HINTS):
                        if nested not in urls:
                            urls.append(nested)
                visit(nested)

    visit(payload)
    return urls
