"""
Storage layer for programs and their sources, versions and geographies.

Write methods take an open connection so a caller can group several writes
into one transaction (see ProgramPersister). Read methods open their own.
"""

import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from apoios.core.utils import stable_id_from_text, utc_now_iso
from .db import Database


logger = logging.getLogger(__name__)


@dataclass
class ProgramRecord:
    slug: str
    title: str
    program_type: str
    status: str
    summary: Optional[str] = None
    entity: Optional[str] = None
    category: Optional[str] = None
    official_url: Optional[str] = None
    deadline_at: Optional[str] = None
    id: Optional[str] = None


def _row_to_dict(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    return dict(row) if row is not None else None


class ProgramStore:
    """
    Persistent storage for ingested programs.

    Usage:
        store = ProgramStore("data/apoios.db")
        with store.transaction() as conn:
            store.insert_program(conn, record)
        program = store.get_program_by_slug("fundo-ambiental-vale-eficiencia")
    """

    def __init__(self, db_path: str = "data/apoios.db"):
        self.db = Database(db_path)

    def transaction(self):
        return self.db.get_connection()

    # ---- lookups used while persisting ----

    def find_source_by_url(self, conn: sqlite3.Connection, source_url: str) -> Optional[Dict[str, Any]]:
        row = conn.execute(
            "SELECT * FROM program_sources WHERE source_url = :url",
            {"url": source_url},
        ).fetchone()
        return _row_to_dict(row)

    def find_source_by_hash(self, conn: sqlite3.Connection, content_hash: str) -> Optional[Dict[str, Any]]:
        row = conn.execute(
            "SELECT * FROM program_sources WHERE content_hash = :hash ORDER BY fetched_at LIMIT 1",
            {"hash": content_hash},
        ).fetchone()
        return _row_to_dict(row)

    def slug_exists(self, conn: sqlite3.Connection, slug: str) -> bool:
        row = conn.execute("SELECT 1 FROM programs WHERE slug = :slug", {"slug": slug}).fetchone()
        return row is not None

    def unique_slug(self, conn: sqlite3.Connection, base: str) -> str:
        """
        First free slug among base, base-2, base-3, ...
        """
        if not self.slug_exists(conn, base):
            return base
        suffix = 2
        while self.slug_exists(conn, f"{base}-{suffix}"):
            suffix += 1
        return f"{base}-{suffix}"

    # ---- writes ----

    def insert_program(self, conn: sqlite3.Connection, record: ProgramRecord) -> str:
        record.id = record.id or stable_id_from_text(record.slug, "prg_")
        now = utc_now_iso()
        conn.execute(
            """
            INSERT INTO programs (
                id, slug, title, summary, entity, program_type, status,
                category, official_url, deadline_at, created_at, updated_at
            )
            VALUES (
                :id, :slug, :title, :summary, :entity, :program_type, :status,
                :category, :official_url, :deadline_at, :now, :now
            )
            """,
            {**record.__dict__, "now": now},
        )
        return record.id

    def update_program(self, conn: sqlite3.Connection, program_id: str, record: ProgramRecord) -> None:
        """Overwrite mutable fields; slug and created_at never change."""
        conn.execute(
            """
            UPDATE programs SET
                title = :title,
                summary = :summary,
                entity = :entity,
                program_type = :program_type,
                status = :status,
                category = COALESCE(:category, category),
                official_url = :official_url,
                deadline_at = COALESCE(:deadline_at, deadline_at),
                updated_at = :now
            WHERE id = :program_id
            """,
            {**record.__dict__, "program_id": program_id, "now": utc_now_iso()},
        )

    def insert_source(
        self,
        conn: sqlite3.Connection,
        program_id: str,
        source_type: str,
        source_url: str,
        content_hash: str,
        payload: Dict[str, Any],
    ) -> str:
        source_id = stable_id_from_text(source_url, "src_")
        conn.execute(
            """
            INSERT INTO program_sources (
                id, program_id, source_type, source_url, fetched_at, content_hash, raw_payload
            )
            VALUES (:id, :program_id, :source_type, :source_url, :fetched_at, :content_hash, :raw_payload)
            """,
            {
                "id": source_id,
                "program_id": program_id,
                "source_type": source_type,
                "source_url": source_url,
                "fetched_at": utc_now_iso(),
                "content_hash": content_hash,
                "raw_payload": json.dumps(payload, ensure_ascii=False, default=str),
            },
        )
        return source_id

    def update_source(
        self,
        conn: sqlite3.Connection,
        source_id: str,
        source_type: str,
        content_hash: str,
        payload: Dict[str, Any],
    ) -> None:
        conn.execute(
            """
            UPDATE program_sources SET
                source_type = :source_type,
                fetched_at = :fetched_at,
                content_hash = :content_hash,
                raw_payload = :raw_payload
            WHERE id = :id
            """,
            {
                "id": source_id,
                "source_type": source_type,
                "fetched_at": utc_now_iso(),
                "content_hash": content_hash,
                "raw_payload": json.dumps(payload, ensure_ascii=False, default=str),
            },
        )

    def append_version(
        self,
        conn: sqlite3.Connection,
        program_id: str,
        payload: Dict[str, Any],
        rules: Dict[str, Any],
    ) -> str:
        version_id = f"ver_{uuid.uuid4().hex}"
        now = utc_now_iso()
        conn.execute(
            """
            INSERT INTO program_versions (id, program_id, version_date, raw_text, rules_json, created_at)
            VALUES (:id, :program_id, :version_date, :raw_text, :rules_json, :created_at)
            """,
            {
                "id": version_id,
                "program_id": program_id,
                "version_date": now,
                "raw_text": json.dumps(payload, ensure_ascii=False, default=str),
                "rules_json": json.dumps(rules, ensure_ascii=False),
                "created_at": now,
            },
        )
        return version_id

    def ensure_geography(
        self,
        conn: sqlite3.Connection,
        program_id: str,
        level: str,
        municipality: Optional[str] = None,
        district: Optional[str] = None,
    ) -> bool:
        """
        Create the geography row unless an identical one exists.

        Returns True if a row was created.
        """
        # IS compares NULLs as equal, unlike =
        existing = conn.execute(
            """
            SELECT 1 FROM program_geographies
            WHERE program_id = :program_id AND level = :level
              AND municipality IS :municipality AND district IS :district
            """,
            {"program_id": program_id, "level": level, "municipality": municipality, "district": district},
        ).fetchone()
        if existing:
            return False

        conn.execute(
            """
            INSERT INTO program_geographies (id, program_id, level, municipality, district)
            VALUES (:id, :program_id, :level, :municipality, :district)
            """,
            {
                "id": f"geo_{uuid.uuid4().hex}",
                "program_id": program_id,
                "level": level,
                "municipality": municipality,
                "district": district,
            },
        )
        return True

    # ---- reads ----

    def get_program(self, program_id: str) -> Optional[Dict[str, Any]]:
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT * FROM programs WHERE id = :id", {"id": program_id}).fetchone()
            return _row_to_dict(row)

    def get_program_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT * FROM programs WHERE slug = :slug", {"slug": slug}).fetchone()
            return _row_to_dict(row)

    def get_program_by_source_url(self, source_url: str) -> Optional[Dict[str, Any]]:
        with self.db.get_connection() as conn:
            row = conn.execute(
                """
                SELECT p.* FROM programs p
                JOIN program_sources s ON s.program_id = p.id
                WHERE s.source_url = :url
                """,
                {"url": source_url},
            ).fetchone()
            return _row_to_dict(row)

    def list_programs(self, program_type: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        with self.db.get_connection() as conn:
            if program_type:
                rows = conn.execute(
                    """
                    SELECT * FROM programs WHERE program_type = :program_type
                    ORDER BY created_at LIMIT :limit OFFSET :offset
                    """,
                    {"program_type": program_type, "limit": limit, "offset": offset},
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM programs ORDER BY created_at LIMIT :limit OFFSET :offset",
                    {"limit": limit, "offset": offset},
                ).fetchall()
            return [dict(row) for row in rows]

    def count_programs(self) -> int:
        with self.db.get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM programs").fetchone()[0]

    def list_sources(self, program_id: str) -> List[Dict[str, Any]]:
        with self.db.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM program_sources WHERE program_id = :id ORDER BY fetched_at",
                {"id": program_id},
            ).fetchall()
            return [dict(row) for row in rows]

    def list_versions(self, program_id: str) -> List[Dict[str, Any]]:
        with self.db.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM program_versions WHERE program_id = :id ORDER BY created_at, rowid",
                {"id": program_id},
            ).fetchall()
            return [dict(row) for row in rows]

    def list_geographies(self, program_id: str) -> List[Dict[str, Any]]:
        with self.db.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM program_geographies WHERE program_id = :id ORDER BY rowid",
                {"id": program_id},
            ).fetchall()
            return [dict(row) for row in rows]
