"""SQLite connection and schema initialization."""

import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path

from flight_claims.config.settings import get_store_timeout

# Tracks which database paths have had schema applied (avoid running on every connection)
_schema_initialized: set[str] = set()
_schema_lock = threading.Lock()

SCHEMA_SQL = """
-- Claims table (main record); record_id is internal, claim_id is the business id
CREATE TABLE IF NOT EXISTS claims (
    record_id INTEGER PRIMARY KEY AUTOINCREMENT,
    claim_id TEXT NOT NULL UNIQUE,
    first_name TEXT,
    last_name TEXT,
    email TEXT,
    flight_number TEXT,
    airline TEXT,
    departure_date TEXT,
    departure_airport TEXT,
    arrival_airport TEXT,
    delay_duration TEXT,
    distance_km REAL,
    payment_reference TEXT,
    submitted_at TEXT,
    status TEXT NOT NULL DEFAULT 'draft',
    boarding_pass_uploaded INTEGER NOT NULL DEFAULT 0,
    delay_proof_uploaded INTEGER NOT NULL DEFAULT 0,
    airline_reference TEXT,
    filed_by TEXT,
    filing_method TEXT,
    validated_at TEXT,
    filed_at TEXT,
    resolved_at TEXT,
    rejected_at TEXT,
    follow_up_date TEXT,
    follow_up_type TEXT,
    follow_up_notes TEXT,
    manual_filing_required INTEGER NOT NULL DEFAULT 0,
    manual_filing_reason TEXT,
    manual_refund_requested INTEGER NOT NULL DEFAULT 0,
    refund_requested_at TEXT,
    refund_status TEXT,
    refund_amount TEXT,
    refund_id TEXT UNIQUE,
    stripe_refund_id TEXT,
    refund_trigger TEXT,
    refund_processed_at TEXT,
    refund_processed_by TEXT,
    created_at TEXT,
    updated_at TEXT
);

-- Audit log (state changes, filings, refunds)
CREATE TABLE IF NOT EXISTS claim_audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    claim_id TEXT NOT NULL,
    action TEXT NOT NULL,
    old_status TEXT,
    new_status TEXT,
    details TEXT,
    created_at TEXT,
    FOREIGN KEY (claim_id) REFERENCES claims(claim_id)
);
CREATE INDEX IF NOT EXISTS idx_claims_status ON claims(status);
CREATE INDEX IF NOT EXISTS idx_claims_airline ON claims(airline);
CREATE INDEX IF NOT EXISTS idx_claims_flight ON claims(flight_number, departure_date);
"""


def get_db_path() -> str:
    """Return path to SQLite database from CLAIMS_DB_PATH env or default data/claims.db."""
    path = os.environ.get("CLAIMS_DB_PATH", "data/claims.db")
    return path


def init_db(path: str | None = None) -> None:
    """Create tables if they do not exist."""
    db_path = path or get_db_path()
    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.executescript(SCHEMA_SQL)
    with _schema_lock:
        _schema_initialized.add(db_path)


def _ensure_schema(db_path: str) -> None:
    """Run schema once per path. Thread-safe."""
    with _schema_lock:
        if db_path in _schema_initialized:
            return
    # Run init outside lock to avoid holding it during I/O
    init_db(db_path)


@contextmanager
def get_connection(path: str | None = None, timeout: float | None = None):
    """Context manager yielding a database connection. Ensures schema exists once per path.

    `timeout` is how long to wait on a locked database (CLAIMS_STORE_TIMEOUT_SECONDS by default).
    """
    db_path = path or get_db_path()
    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    _ensure_schema(db_path)
    conn = sqlite3.connect(
        db_path, timeout=timeout if timeout is not None else get_store_timeout()
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()
