"""
Audit log of ingestion runs, one row per source per run.
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from apoios.core.domain_models import WorkerRunStats
from .db import Database


logger = logging.getLogger(__name__)


class IngestionRunLog:
    """Record start and completion of each source run in ingestion_runs."""

    def __init__(self, db: Database):
        self.db = db

    def start(self, source: str) -> str:
        run_id = f"run_{uuid.uuid4().hex}"
        with self.db.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO ingestion_runs (id, source, status, started_at)
                VALUES (:id, :source, 'RUNNING', :started_at)
                """,
                {"id": run_id, "source": source, "started_at": datetime.utcnow().isoformat()},
            )
        return run_id

    def complete(
        self,
        run_id: str,
        success: bool,
        stats: WorkerRunStats,
        errors: Optional[List[Dict[str, Any]]] = None,
        error: Optional[str] = None,
    ) -> None:
        all_errors = list(errors or [])
        if error:
            all_errors.append({"error": error})

        with self.db.get_connection() as conn:
            started = conn.execute(
                "SELECT started_at FROM ingestion_runs WHERE id = :id", {"id": run_id}
            ).fetchone()
            finished_at = datetime.utcnow()
            duration_ms = None
            if started:
                duration_ms = int((finished_at - datetime.fromisoformat(started["started_at"])).total_seconds() * 1000)

            conn.execute(
                """
                UPDATE ingestion_runs SET
                    status = :status,
                    finished_at = :finished_at,
                    duration_ms = :duration_ms,
                    items_found = :found,
                    items_inserted = :new,
                    items_updated = :updated,
                    items_skipped = :skipped,
                    errors_json = :errors_json
                WHERE id = :id
                """,
                {
                    "id": run_id,
                    "status": "SUCCESS" if success else "FAILED",
                    "finished_at": finished_at.isoformat(),
                    "duration_ms": duration_ms,
                    "found": stats.found,
                    "new": stats.new,
                    "updated": stats.updated,
                    "skipped": stats.skipped,
                    "errors_json": json.dumps(all_errors, ensure_ascii=False) if all_errors else None,
                },
            )
        logger.debug(f"Ingestion run {run_id} finished ({'ok' if success else 'failed'})")

    def recent(self, source: Optional[str] = None, limit: int = 20) -> List[Dict[str, Any]]:
        with self.db.get_connection() as conn:
            if source:
                rows = conn.execute(
                    "SELECT * FROM ingestion_runs WHERE source = :source ORDER BY started_at DESC LIMIT :limit",
                    {"source": source, "limit": limit},
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM ingestion_runs ORDER BY started_at DESC LIMIT :limit",
                    {"limit": limit},
                ).fetchall()
            return [dict(row) for row in rows]
