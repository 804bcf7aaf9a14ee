"""
Shared utility functions for text normalization, hashing, URLs and date parsing.
"""

import hashlib
import re
import time
import unicodedata
from datetime import datetime
from typing import Iterable, Optional
from urllib.parse import urljoin, urlparse

from dateutil import parser as dateparser

PT_MONTHS = {
    "janeiro": 1, "fevereiro": 2, "marco": 3, "abril": 4,
    "maio": 5, "junho": 6, "julho": 7, "agosto": 8,
    "setembro": 9, "outubro": 10, "novembro": 11, "dezembro": 12,
}

_PT_LONG_DATE = re.compile(r"(\d{1,2})\s+de\s+([a-z]+)\s+de\s+(\d{4})")
_NUMERIC_DATE = re.compile(r"\d{1,2}/\d{1,2}/\d{4}|\d{4}-\d{2}-\d{2}")


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: Optional[str]) -> str:
    """
    Normalize text for comparisons.

    Lowercases, strips diacritics and collapses whitespace.

    Examples:
        >>> normalize_text("  Eficiência   Energética ")
        'eficiencia energetica'
    """
    if not text:
        return ""
    return " ".join(strip_accents(text.lower()).split())


def clean_text(text: Optional[str]) -> str:
    """Collapse runs of whitespace, keeping case and accents."""
    if not text:
        return ""
    return " ".join(text.split())


def slugify(text: str) -> str:
    """
    ASCII-fold text into a hyphenated slug.

    Examples:
        >>> slugify("Câmara Municipal de Óbidos")
        'camara-municipal-de-obidos'
    """
    folded = strip_accents(text.lower())
    return re.sub(r"[^a-z0-9]+", "-", folded).strip("-")


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def stable_id_from_text(text: str, prefix: str = "") -> str:
    """
    Generate a stable, short identifier from text (slug, URL, ...).

    Uses SHA1 hash truncated to 16 characters.

    Args:
        text: Text to hash
        prefix: Optional prefix (e.g., "prg_", "src_")

    Returns:
        Stable ID like "prg_a1b2c3d4e5f6g7h8"
    """
    h = hashlib.sha1(text.encode("utf-8")).hexdigest()[:16]
    return f"{prefix}{h}" if prefix else h


def compute_content_hash(
    title: str,
    description: Optional[str],
    source_id: str,
    municipality: Optional[str] = None,
) -> str:
    """
    Digest over the normalized textual fields of a candidate.

    The source URL is the primary dedup key and is deliberately left out, so
    identical content published under two URLs produces the same digest.

    Args:
        title: Candidate title
        description: Candidate description (may be None)
        source_id: Canonical source identifier
        municipality: Municipality name for municipal candidates

    Returns:
        64-character SHA256 hex digest
    """
    raw = f"{title} {description or ''} {source_id} {municipality or ''}"
    return sha256_text(normalize_text(raw))


def normalize_host(url_or_host: str) -> str:
    """Lowercased hostname with a leading ``www.`` removed."""
    value = url_or_host.strip().lower()
    if "://" in value:
        value = urlparse(value).hostname or ""
    return value[4:] if value.startswith("www.") else value


def host_matches(url: str, allowed_hosts: Iterable[str]) -> bool:
    """
    Check whether a URL's host equals, or is a subdomain of, an allowed host.

    Examples:
        >>> host_matches("https://www.fundoambiental.pt/x", ["fundoambiental.pt"])
        True
        >>> host_matches("https://evil-fundoambiental.pt/", ["fundoambiental.pt"])
        False
    """
    host = normalize_host(url)
    if not host:
        return False
    for allowed in allowed_hosts:
        allowed = normalize_host(allowed)
        if host == allowed or host.endswith(f".{allowed}"):
            return True
    return False


def to_absolute_url(href: Optional[str], base_url: str) -> Optional[str]:
    """Resolve href against base_url; None unless the result is http(s)."""
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith("#"):
        return None
    try:
        absolute = urljoin(base_url, href)
    except ValueError:
        return None
    parsed = urlparse(absolute)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return absolute


def parse_positive_int(value: Optional[str], default: int) -> int:
    """Parse an env value as a positive int, falling back to default."""
    if value is None:
        return default
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def parse_csv_list(value: Optional[str]) -> list:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_date_maybe(text: Optional[str]) -> Optional[datetime]:
    """
    Attempt to find and parse a date inside free text, returning None on failure.

    Understands "DD de <mês> de YYYY" and numeric DD/MM/YYYY or YYYY-MM-DD
    fragments. Numeric fragments go through dateutil with dayfirst=True.

    Examples:
        >>> parse_date_maybe("Candidaturas até 31 de março de 2025")
        datetime.datetime(2025, 3, 31, 0, 0)
        >>> parse_date_maybe("sem data")
        None
    """
    if not text:
        return None

    normalized = normalize_text(text)
    match = _PT_LONG_DATE.search(normalized)
    if match:
        month = PT_MONTHS.get(match.group(2))
        if month:
            try:
                return datetime(int(match.group(3)), month, int(match.group(1)))
            except ValueError:
                return None

    match = _NUMERIC_DATE.search(normalized)
    if not match:
        return None

    fragment = match.group(0)
    try:
        return dateparser.parse(fragment, dayfirst="/" in fragment)
    except (ValueError, TypeError, OverflowError):
        return None


def sleep_ms(ms: int) -> None:
    if ms and ms > 0:
        time.sleep(ms / 1000.0)


def utc_now_iso() -> str:
    return datetime.utcnow().isoformat()
