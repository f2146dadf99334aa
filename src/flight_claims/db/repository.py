"""Claim repository: reads, conditional updates, audit logging, and search."""

import logging
import sqlite3
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable

from flight_claims.db.constants import AUDIT_CREATED, UPDATABLE_COLUMNS
from flight_claims.db.database import get_connection
from flight_claims.exceptions import DependencyError
from flight_claims.models.claim import Claim, ClaimInput, ClaimStatus
from flight_claims.utils.retry import with_store_retry

logger = logging.getLogger(__name__)

ClaimPredicate = Callable[[Claim], bool]


def _generate_claim_id(prefix: str = "CLM") -> str:
    """Generate a unique claim ID."""
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_db(value: Any) -> Any:
    """Convert a model value to its SQLite representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class ClaimRepository:
    """SQLite-backed record store for claims.

    Every update is a single transaction: the field changes and the audit row
    commit together or not at all. `expected` turns an update into a
    compare-and-set, which is how concurrent filings and refunds of the same
    claim are serialized.
    """

    def __init__(self, db_path: str | None = None, timeout: float | None = None):
        self._db_path = db_path
        self._timeout = timeout

    def _connect(self):
        return get_connection(self._db_path, timeout=self._timeout)

    def create_claim(self, claim_input: ClaimInput, claim_id: str | None = None) -> str:
        """Insert new claim in draft status, log 'created' audit entry. Returns claim_id."""
        claim_id = claim_id or _generate_claim_id()
        now = _now_iso()
        values = {
            "claim_id": claim_id,
            **{k: _to_db(v) for k, v in claim_input.model_dump().items()},
            "status": ClaimStatus.DRAFT.value,
            "created_at": now,
            "updated_at": now,
        }
        if values.get("submitted_at") is None:
            values["submitted_at"] = now
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        try:
            with self._connect() as conn:
                conn.execute(
                    f"INSERT INTO claims ({columns}) VALUES ({placeholders})",
                    tuple(values.values()),
                )
                conn.execute(
                    """
                    INSERT INTO claim_audit_log (claim_id, action, new_status, details, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (claim_id, AUDIT_CREATED, ClaimStatus.DRAFT.value, "Claim record created", now),
                )
        except sqlite3.Error as e:
            raise DependencyError(f"Failed to create claim: {e}", claim_id=claim_id) from e
        return claim_id

    @with_store_retry()
    def _fetch_one(self, claim_id: str) -> sqlite3.Row | None:
        with self._connect() as conn:
            return conn.execute(
                "SELECT * FROM claims WHERE claim_id = ?", (claim_id,)
            ).fetchone()

    def get_claim(self, claim_id: str) -> Claim | None:
        """Fetch claim by its business id. Returns None if unknown."""
        try:
            row = self._fetch_one(claim_id)
        except sqlite3.Error as e:
            raise DependencyError(f"Failed to read claim: {e}", claim_id=claim_id) from e
        if row is None:
            return None
        return Claim.model_validate(dict(row))

    @with_store_retry()
    def _fetch_many(self, where: list[str], params: list[Any]) -> list[sqlite3.Row]:
        sql = "SELECT * FROM claims"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY record_id ASC"
        with self._connect() as conn:
            return conn.execute(sql, params).fetchall()

    def find_claims(
        self,
        predicate: ClaimPredicate | None = None,
        *,
        statuses: Iterable[ClaimStatus] | None = None,
        airline: str | None = None,
        flight_number: str | None = None,
        departure_date: str | None = None,
    ) -> list[Claim]:
        """Return claims matching the column filters and, if given, the predicate.

        Column filters run in SQL; the predicate runs on the parsed snapshots.
        Results are ordered by insertion.
        """
        where: list[str] = []
        params: list[Any] = []
        if statuses is not None:
            status_values = [ClaimStatus(s).value for s in statuses]
            if not status_values:
                return []
            where.append(f"status IN ({', '.join('?' for _ in status_values)})")
            params.extend(status_values)
        if airline is not None:
            where.append("airline = ?")
            params.append(airline)
        if flight_number is not None:
            where.append("flight_number = ?")
            params.append(flight_number)
        if departure_date is not None:
            where.append("departure_date = ?")
            params.append(departure_date)
        try:
            rows = self._fetch_many(where, params)
        except sqlite3.Error as e:
            raise DependencyError(f"Failed to query claims: {e}") from e
        claims = [Claim.model_validate(dict(r)) for r in rows]
        if predicate is not None:
            claims = [c for c in claims if predicate(c)]
        return claims

    def update_claim(
        self,
        claim_id: str,
        fields: dict[str, Any],
        expected: dict[str, Any] | None = None,
        audit_action: str | None = None,
        audit_details: str | None = None,
    ) -> bool:
        """Update fields of one claim; optionally conditional and audited.

        Args:
            claim_id: Business id of the claim.
            fields: Column -> new value. Keys must be writable claim columns.
            expected: Column -> value the record must still hold (None matches NULL).
                The update is skipped when any differs.
            audit_action: If set, an audit row is written in the same transaction.
            audit_details: Free-text details for the audit row.

        Returns:
            True if the record was updated, False if it does not exist or an
            expected value no longer matched.
        """
        unknown = set(fields) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Not writable claim columns: {sorted(unknown)}")
        expected = expected or {}
        unknown = set(expected) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Not comparable claim columns: {sorted(unknown)}")
        if not fields:
            return self.get_claim(claim_id) is not None

        now = _now_iso()
        assignments = [f"{col} = ?" for col in fields] + ["updated_at = ?"]
        params: list[Any] = [_to_db(v) for v in fields.values()] + [now]
        conditions = ["claim_id = ?"] + [f"{col} IS ?" for col in expected]
        params += [claim_id] + [_to_db(v) for v in expected.values()]

        try:
            with self._connect() as conn:
                # Take the write lock before reading the old status
                conn.execute("BEGIN IMMEDIATE")
                row = conn.execute(
                    "SELECT status FROM claims WHERE claim_id = ?", (claim_id,)
                ).fetchone()
                if row is None:
                    return False
                old_status = row["status"]
                cur = conn.execute(
                    f"UPDATE claims SET {', '.join(assignments)} WHERE {' AND '.join(conditions)}",
                    params,
                )
                if cur.rowcount != 1:
                    return False
                if audit_action:
                    new_status = _to_db(fields.get("status", old_status))
                    conn.execute(
                        """
                        INSERT INTO claim_audit_log
                            (claim_id, action, old_status, new_status, details, created_at)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (claim_id, audit_action, old_status, new_status, audit_details or "", now),
                    )
        except sqlite3.Error as e:
            raise DependencyError(f"Failed to update claim: {e}", claim_id=claim_id) from e
        return True

    def get_claim_history(self, claim_id: str) -> list[dict[str, Any]]:
        """Get audit log entries for a claim, oldest first."""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT id, claim_id, action, old_status, new_status, details, created_at
                    FROM claim_audit_log
                    WHERE claim_id = ?
                    ORDER BY id ASC
                    """,
                    (claim_id,),
                ).fetchall()
        except sqlite3.Error as e:
            raise DependencyError(f"Failed to read claim history: {e}", claim_id=claim_id) from e
        return [dict(r) for r in rows]
