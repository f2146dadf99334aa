"""SQLite database module for claim persistence and audit logging."""

from flight_claims.db.database import get_connection, get_db_path, init_db
from flight_claims.db.repository import ClaimRepository

__all__ = [
    "ClaimRepository",
    "get_connection",
    "get_db_path",
    "init_db",
]
