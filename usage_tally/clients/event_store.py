# Copyright (c) 2025-2026 OptimNow. All Rights Reserved.
# Licensed under the Apache License, Version 2.0.
# See LICENSE file in the project root for full license information.

"""Event store for raw usage events."""

import logging
from datetime import datetime
from typing import Iterable

from ..models.event import Event
from .database import SqliteDatabase, to_utc_iso

logger = logging.getLogger(__name__)


class EventStore:
    """Stores usage events and answers time-range queries over them."""

    def __init__(self, database: SqliteDatabase):
        self._db = database
        self._init_database()

    def _init_database(self) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    account_id TEXT NOT NULL,
                    service_type TEXT NOT NULL,
                    instance_id TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    data TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_events_account_type_ts
                ON events(account_id, service_type, timestamp)
                """
            )

    async def save_events(self, events: Iterable[Event]) -> int:
        """
        Store events.

        Args:
            events: Events to store

        Returns:
            Number of events stored
        """
        rows = [
            (
                e.account_id,
                e.service_type,
                e.instance_id,
                to_utc_iso(e.timestamp),
                e.model_dump_json(),
            )
            for e in events
        ]
        with self._db.transaction() as conn:
            conn.executemany(
                """
                INSERT INTO events (account_id, service_type, instance_id, timestamp, data)
                VALUES (?, ?, ?, ?, ?)
                """,
                rows,
            )
        logger.debug(f"Stored {len(rows)} events")
        return len(rows)

    async def has_events_in_time_range(
        self, account_id: str, service_type: str, start: datetime, end: datetime
    ) -> bool:
        """True if any event exists for the account and service type in ``[start, end)``."""
        with self._db.transaction() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM events
                WHERE account_id = ? AND service_type = ? AND timestamp >= ? AND timestamp < ?
                LIMIT 1
                """,
                (account_id, service_type, to_utc_iso(start), to_utc_iso(end)),
            ).fetchone()
        return row is not None

    async def fetch_events_in_time_range(
        self, account_id: str, service_type: str, start: datetime, end: datetime
    ) -> list[Event]:
        """Events for the account and service type in ``[start, end)``, oldest first."""
        with self._db.transaction() as conn:
            rows = conn.execute(
                """
                SELECT data FROM events
                WHERE account_id = ? AND service_type = ? AND timestamp >= ? AND timestamp < ?
                ORDER BY timestamp ASC, id ASC
                """,
                (account_id, service_type, to_utc_iso(start), to_utc_iso(end)),
            ).fetchall()
        return [Event.model_validate_json(row[0]) for row in rows]
