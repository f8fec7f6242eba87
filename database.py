"""
database.py — SQLite-backed catalog store.
Each job is one JSON document keyed by its reference number; the sync path
and the on-demand contact path both write through this module.
"""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from models import ContactInfo, JobDetailRecord, RunLog
from monitoring import get_logger

logger = get_logger("database")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CatalogStore:
    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def get_connection(self) -> sqlite3.Connection:
        """Get a database connection, creating the DB file if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def init_db(self):
        """Create all tables if they don't exist."""
        conn = self.get_connection()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS jobs (
                refnr TEXT PRIMARY KEY,
                document TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS sync_runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_date TEXT,
                trigger TEXT,
                state TEXT,
                fetched INTEGER DEFAULT 0,
                processed INTEGER DEFAULT 0,
                saved INTEGER DEFAULT 0,
                errors INTEGER DEFAULT 0,
                degraded INTEGER DEFAULT 0,
                stopped_early INTEGER DEFAULT 0,
                error_messages TEXT,
                duration_seconds REAL
            );

            CREATE INDEX IF NOT EXISTS idx_jobs_updated ON jobs(updated_at);
        """)
        conn.close()

    # --- Jobs ---

    def get_entry(self, refnr: str) -> Optional[dict]:
        """Return the stored document for a reference number, or None."""
        conn = self.get_connection()
        row = conn.execute("SELECT document FROM jobs WHERE refnr = ?", (refnr,)).fetchone()
        conn.close()
        return json.loads(row["document"]) if row else None

    def count_entries(self) -> int:
        conn = self.get_connection()
        row = conn.execute("SELECT COUNT(*) AS n FROM jobs").fetchone()
        conn.close()
        return row["n"]

    def upsert_job(self, record: JobDetailRecord, now: Optional[str] = None) -> dict:
        """
        Create or update the entry for record.refnr and return the stored document.

        Fields absent from the record keep their stored values, including keys
        missing from a nested map such as `arbeitsort`. createdAt is set
        on first insert and carried forward afterwards. The sync path never
        overwrites an existing `kontakt`; a new entry starts with kontakt=None
        ("never looked up").
        """
        now = now or utc_now()
        incoming = record.to_document()

        conn = self.get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute("SELECT document FROM jobs WHERE refnr = ?", (record.refnr,)).fetchone()
            if row:
                document = json.loads(row["document"])
                if record.title is None and document.get("titel"):
                    incoming.pop("titel", None)
                for key, value in incoming.items():
                    # Nested maps such as arbeitsort merge key by key
                    if isinstance(value, dict) and isinstance(document.get(key), dict):
                        document[key] = {**document[key], **value}
                    else:
                        document[key] = value
                document["createdAt"] = document.get("createdAt") or now
            else:
                document = dict(incoming)
                document["kontakt"] = None
                document["createdAt"] = now
            document["id"] = record.refnr
            document["updatedAt"] = now
            document["lastSyncedAt"] = now

            conn.execute(
                """INSERT INTO jobs (refnr, document, created_at, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(refnr) DO UPDATE SET
                       document = excluded.document,
                       updated_at = excluded.updated_at""",
                (record.refnr, json.dumps(document, ensure_ascii=False), document["createdAt"], now)
            )
            conn.execute("COMMIT")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

        return document

    def patch_contact(self, refnr: str, contact: ContactInfo, now: Optional[str] = None) -> bool:
        """
        Store the result of a contact lookup on an existing entry.
        Returns False, without writing, when the entry does not exist.
        """
        now = now or utc_now()
        conn = self.get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute("SELECT document FROM jobs WHERE refnr = ?", (refnr,)).fetchone()
            if not row:
                conn.execute("ROLLBACK")
                return False
            document = json.loads(row["document"])
            document["kontakt"] = contact.to_dict()
            document["lastContactFetch"] = now
            document["updatedAt"] = now
            conn.execute(
                "UPDATE jobs SET document = ?, updated_at = ? WHERE refnr = ?",
                (json.dumps(document, ensure_ascii=False), now, refnr)
            )
            conn.execute("COMMIT")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()
        return True

    # --- Run Log ---

    def log_run(self, run_log: RunLog):
        """Store a sync run log entry."""
        conn = self.get_connection()
        conn.execute(
            """INSERT INTO sync_runs
               (run_date, trigger, state, fetched, processed, saved, errors,
                degraded, stopped_early, error_messages, duration_seconds)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                run_log.run_date, run_log.trigger, run_log.state, run_log.fetched,
                run_log.processed, run_log.saved, run_log.errors, run_log.degraded,
                int(run_log.stopped_early), json.dumps(run_log.error_messages),
                run_log.duration_seconds
            )
        )
        conn.close()

    def get_last_run(self) -> Optional[dict]:
        """Get the most recent sync run entry."""
        conn = self.get_connection()
        row = conn.execute("SELECT * FROM sync_runs ORDER BY id DESC LIMIT 1").fetchone()
        conn.close()
        if not row:
            return None
        run = dict(row)
        run["error_messages"] = json.loads(run["error_messages"]) if run["error_messages"] else []
        run["stopped_early"] = bool(run["stopped_early"])
        return run
