"""
Dedup and persistence of discovered candidates.

Outcome order for each candidate:
  1. Source URL known, same content hash      -> skipped
  2. Source URL known, different content hash -> updated (+ new version)
  3. Content hash known under another URL     -> skipped
  4. Otherwise                                -> new program, source, geography, version
"""

import logging
import time
from typing import Any, Dict, Optional

from apoios.core.domain_models import (
    CanonicalSourceDefinition,
    DiscoveredCandidate,
    GeographyLevel,
    PersistOutcome,
    ProgramStatus,
    ProgramType,
)
from apoios.core.status import infer_status
from apoios.core.utils import compute_content_hash, parse_date_maybe, slugify
from .program_store import ProgramRecord, ProgramStore


logger = logging.getLogger(__name__)

MAX_SUMMARY_LENGTH = 3000
MAX_SLUG_LENGTH = 120


def build_base_slug(source_id: str, title: str, municipality: Optional[str] = None) -> str:
    """
    Slug from source id, municipality and title.

    Examples:
        >>> build_base_slug("fundo-ambiental", "Vale Eficiência")
        'fundo-ambiental-vale-eficiencia'
    """
    parts = [source_id, municipality or "", title]
    slug = slugify(" ".join(p for p in parts if p))[:MAX_SLUG_LENGTH].rstrip("-")
    if not slug:
        slug = f"programa-{int(time.time() * 1000)}"
    return slug


def resolve_status(candidate: DiscoveredCandidate) -> ProgramStatus:
    if candidate.status and candidate.status != ProgramStatus.UNKNOWN:
        return candidate.status
    return infer_status(f"{candidate.title} {candidate.description or ''}")


class ProgramPersister:
    """
    Persist candidates for a canonical source with URL and content-hash dedup.

    Every candidate is written inside one transaction, so a failure leaves no
    partial program behind.
    """

    def __init__(self, store: ProgramStore):
        self.store = store

    def persist(
        self,
        source: CanonicalSourceDefinition,
        candidate: DiscoveredCandidate,
        override_program_type: Optional[ProgramType] = None,
        override_entity: Optional[str] = None,
    ) -> PersistOutcome:
        """
        Create, update or skip the program behind a candidate.

        Args:
            source: Canonical source the candidate was discovered from
            candidate: Discovered (optionally enriched) candidate
            override_program_type: Program type to store instead of the source's
            override_entity: Entity to store instead of the source's

        Returns:
            PersistOutcome.NEW, UPDATED or SKIPPED
        """
        program_type = override_program_type or source.program_type
        entity = override_entity or source.entity

        content_hash = compute_content_hash(
            candidate.title, candidate.description, source.id, candidate.municipality
        )
        payload = self._build_payload(source, candidate, program_type, entity)
        record = self._build_record(candidate, program_type, entity)
        rules = {"source": source.id, "programType": program_type.value}

        with self.store.transaction() as conn:
            existing = self.store.find_source_by_url(conn, candidate.url)

            if existing:
                if existing["content_hash"] == content_hash:
                    return PersistOutcome.SKIPPED

                program_id = existing["program_id"]
                self.store.update_program(conn, program_id, record)
                self.store.update_source(conn, existing["id"], source.source_type.value, content_hash, payload)
                self.store.append_version(conn, program_id, payload, rules)
                if program_type == ProgramType.MUNICIPAL and candidate.municipality:
                    self.store.ensure_geography(
                        conn, program_id, GeographyLevel.MUNICIPALITY.value,
                        candidate.municipality, candidate.district,
                    )
                logger.info(f"Updated program {program_id} from {candidate.url}")
                return PersistOutcome.UPDATED

            if self.store.find_source_by_hash(conn, content_hash):
                logger.debug(f"Content already known under another URL: {candidate.url}")
                return PersistOutcome.SKIPPED

            base_slug = build_base_slug(source.id, candidate.title, candidate.municipality)
            record.slug = self.store.unique_slug(conn, base_slug)
            program_id = self.store.insert_program(conn, record)

            if program_type == ProgramType.MUNICIPAL:
                self.store.ensure_geography(
                    conn, program_id, GeographyLevel.MUNICIPALITY.value,
                    candidate.municipality, candidate.district,
                )
            else:
                self.store.ensure_geography(conn, program_id, GeographyLevel.NATIONAL.value)

            self.store.insert_source(conn, program_id, source.source_type.value, candidate.url, content_hash, payload)
            self.store.append_version(conn, program_id, payload, rules)

        logger.info(f"Created program {record.slug} from {candidate.url}")
        return PersistOutcome.NEW

    def _build_record(
        self,
        candidate: DiscoveredCandidate,
        program_type: ProgramType,
        entity: str,
    ) -> ProgramRecord:
        deadline = parse_date_maybe(candidate.deadline)
        return ProgramRecord(
            slug="",
            title=candidate.title,
            summary=candidate.description[:MAX_SUMMARY_LENGTH] if candidate.description else None,
            entity=entity,
            program_type=program_type.value,
            status=resolve_status(candidate).value,
            category=candidate.category.value if candidate.category else None,
            official_url=candidate.url,
            deadline_at=deadline.date().isoformat() if deadline else None,
        )

    @staticmethod
    def _build_payload(
        source: CanonicalSourceDefinition,
        candidate: DiscoveredCandidate,
        program_type: ProgramType,
        entity: str,
    ) -> Dict[str, Any]:
        payload = candidate.to_payload()
        payload.update({
            "source_id": source.id,
            "source_name": source.name,
            "program_type": program_type.value,
            "entity": entity,
        })
        return payload
