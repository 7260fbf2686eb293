"""SQLite connection handling shared by the tally stores."""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional


def to_utc_iso(moment: datetime) -> str:
    """ISO-8601 text in UTC; stored timestamps are compared as strings."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


class SqliteDatabase:
    """
    Hands out SQLite connections for one database file.

    In-memory databases keep a single persistent connection so that all
    stores sharing this object see the same data. File databases open a new
    connection per unit of work.
    """

    def __init__(self, db_path: str = "usage_tally.db"):
        """
        Initialize the database handle.

        Args:
            db_path: Path to the SQLite database file, or ":memory:"
        """
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        if self.db_path == ":memory:":
            if self._connection is None:
                self._connection = sqlite3.connect(self.db_path)
            return self._connection
        return sqlite3.connect(self.db_path)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection; commit on success, roll back on error."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            if self.db_path != ":memory:":
                conn.close()

    def close(self) -> None:
        """Close any open database connections."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
