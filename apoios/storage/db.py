"""
Lightweight SQLite database wrapper.

Handles:
- Database initialization
- Schema creation (programs, sources, versions, geographies, ingestion runs)
- Connection management
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator
import logging


logger = logging.getLogger(__name__)


class Database:
    """
    SQLite database wrapper for ingested programs.

    Usage:
        db = Database("data/apoios.db")
        with db.get_connection() as conn:
            conn.execute("SELECT * FROM programs")
    """

    def __init__(self, path: str = "data/apoios.db"):
        """
        Initialize database.

        Args:
            path: Path to SQLite database file
        """
        self.path = path

        # Ensure parent directory exists
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        self._init_db()

        logger.info(f"Database initialized: {self.path}")

    def _init_db(self):
        """Create database schema if it doesn't exist."""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS programs (
                    id TEXT PRIMARY KEY,
                    slug TEXT NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    summary TEXT,
                    entity TEXT,
                    program_type TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'UNKNOWN',
                    category TEXT,
                    official_url TEXT,
                    deadline_at TEXT,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                );
                """
            )

            # One row per fetched URL; source_url is the primary dedup key
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS program_sources (
                    id TEXT PRIMARY KEY,
                    program_id TEXT NOT NULL,
                    source_type TEXT NOT NULL,
                    source_url TEXT NOT NULL UNIQUE,
                    fetched_at TEXT NOT NULL,
                    content_hash TEXT NOT NULL,
                    raw_payload TEXT,
                    FOREIGN KEY (program_id) REFERENCES programs(id) ON DELETE CASCADE
                );
                """
            )

            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_program_sources_hash
                ON program_sources(content_hash);
                """
            )

            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_program_sources_program_id
                ON program_sources(program_id);
                """
            )

            # Append-only snapshots
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS program_versions (
                    id TEXT PRIMARY KEY,
                    program_id TEXT NOT NULL,
                    version_date TEXT NOT NULL,
                    raw_text TEXT NOT NULL,
                    rules_json TEXT,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (program_id) REFERENCES programs(id) ON DELETE CASCADE
                );
                """
            )

            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_program_versions_program_id
                ON program_versions(program_id);
                """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS program_geographies (
                    id TEXT PRIMARY KEY,
                    program_id TEXT NOT NULL,
                    level TEXT NOT NULL,
                    municipality TEXT,
                    district TEXT,
                    FOREIGN KEY (program_id) REFERENCES programs(id) ON DELETE CASCADE
                );
                """
            )

            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_program_geographies_program_id
                ON program_geographies(program_id);
                """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS ingestion_runs (
                    id TEXT PRIMARY KEY,
                    source TEXT NOT NULL,
                    status TEXT NOT NULL,
                    started_at TEXT NOT NULL,
                    finished_at TEXT,
                    duration_ms INTEGER,
                    items_found INTEGER DEFAULT 0,
                    items_inserted INTEGER DEFAULT 0,
                    items_updated INTEGER DEFAULT 0,
                    items_skipped INTEGER DEFAULT 0,
                    errors_json TEXT
                );
                """
            )

            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_ingestion_runs_source
                ON ingestion_runs(source);
                """
            )

            logger.debug("Database schema created/verified")

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """
        Get a database connection context manager.

        Commits on success, rolls back and re-raises on error, always closes.

        Yields:
            sqlite3.Connection
        """
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row  # Enable column access by name
        conn.execute("PRAGMA foreign_keys = ON")

        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            conn.close()
