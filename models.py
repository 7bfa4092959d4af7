"""
SQLite persistence for SiteCheck report snapshots and analytics events.

Append-only, raw sqlite3, one connection per call.  A snapshot stores the
submitted payload verbatim; scores are recomputed from it on every read,
so the stored overall_score/rating columns are for listing only.
"""

import hashlib
import json
import logging
import os
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DB_PATH = os.environ.get("SITECHECK_DB_PATH", "sitecheck.db")


def _get_db():
    """Get a sqlite3 connection with WAL mode for concurrent reads."""
    conn = sqlite3.connect(DB_PATH, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


def init_db():
    """Create tables if they don't exist. Safe to call on every startup."""
    conn = _get_db()
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS reports (
            report_id       TEXT PRIMARY KEY,
            project_name    TEXT NOT NULL,
            created_at      TEXT NOT NULL,
            overall_score   REAL,
            rating          TEXT,
            payload_hash    TEXT NOT NULL,
            report_json     TEXT NOT NULL,
            view_count      INTEGER NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS events (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            event_type  TEXT NOT NULL,
            report_id   TEXT,
            metadata    TEXT,
            created_at  TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_reports_created ON reports(created_at);
        CREATE INDEX IF NOT EXISTS idx_reports_hash ON reports(payload_hash);
        CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type);
        CREATE INDEX IF NOT EXISTS idx_events_report ON events(report_id);
    """)
    conn.commit()
    conn.close()


def generate_report_id():
    """Short, URL-safe report ID (8 chars)."""
    return uuid.uuid4().hex[:8]


def payload_hash(payload: Dict[str, Any]) -> str:
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def save_report(project_name: str, payload: Dict[str, Any], overall_score: float, rating: str) -> str:
    """Persist a submitted report payload. Returns the report_id."""
    report_id = generate_report_id()
    now = datetime.now(timezone.utc).isoformat()

    conn = _get_db()
    conn.execute(
        """INSERT INTO reports
           (report_id, project_name, created_at, overall_score, rating,
            payload_hash, report_json)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (
            report_id,
            project_name,
            now,
            overall_score,
            rating,
            payload_hash(payload),
            json.dumps(payload, default=str),
        ),
    )
    conn.commit()
    conn.close()
    logger.info("Saved report %s (%s)", report_id, project_name)
    return report_id


def find_report_by_hash(digest: str) -> Optional[str]:
    """report_id of the newest snapshot with this payload hash, if any."""
    conn = _get_db()
    row = conn.execute(
        "SELECT report_id FROM reports WHERE payload_hash = ? ORDER BY created_at DESC LIMIT 1",
        (digest,),
    ).fetchone()
    conn.close()
    return row["report_id"] if row else None


def get_report(report_id: str) -> Optional[Dict[str, Any]]:
    """
    Load a report by ID. Returns the row as a dict with the payload parsed
    under "payload", or None if not found or unreadable.
    """
    conn = _get_db()
    row = conn.execute(
        "SELECT * FROM reports WHERE report_id = ?", (report_id,)
    ).fetchone()
    conn.close()

    if not row:
        return None

    data = dict(row)
    try:
        data["payload"] = json.loads(data.pop("report_json"))
    except (json.JSONDecodeError, TypeError) as e:
        logger.error("Corrupted report_json for report %s: %s", report_id, e)
        return None
    return data


def increment_view_count(report_id: str):
    conn = _get_db()
    conn.execute(
        "UPDATE reports SET view_count = view_count + 1 WHERE report_id = ?",
        (report_id,),
    )
    conn.commit()
    conn.close()


def get_recent_reports(limit: int = 20) -> List[Dict[str, Any]]:
    conn = _get_db()
    rows = conn.execute(
        """SELECT report_id, project_name, created_at, overall_score, rating, view_count
           FROM reports ORDER BY created_at DESC LIMIT ?""",
        (limit,),
    ).fetchall()
    conn.close()
    return [dict(row) for row in rows]


# ---------------------------------------------------------------------------
# Analytics events
# ---------------------------------------------------------------------------

def log_event(event_type: str, report_id: Optional[str] = None, metadata: Optional[dict] = None):
    """
    Append an analytics event.

    event_type: one of report_created, report_viewed, pdf_exported,
                csv_exported, appraisal_requested, appraisal_failed,
                report_rejected
    """
    now = datetime.now(timezone.utc).isoformat()
    conn = _get_db()
    conn.execute(
        """INSERT INTO events (event_type, report_id, metadata, created_at)
           VALUES (?, ?, ?, ?)""",
        (
            event_type,
            report_id,
            json.dumps(metadata) if metadata else None,
            now,
        ),
    )
    conn.commit()
    conn.close()


def get_event_counts() -> Dict[str, int]:
    """Event counts by type, e.g. {"report_created": 12, "pdf_exported": 3}."""
    conn = _get_db()
    rows = conn.execute(
        "SELECT event_type, COUNT(*) as cnt FROM events GROUP BY event_type"
    ).fetchall()
    conn.close()
    return {row["event_type"]: row["cnt"] for row in rows}
