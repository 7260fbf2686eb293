# Copyright (c) 2025-2026 OptimNow. All Rights Reserved.
# Licensed under the Apache License, Version 2.0.
# See LICENSE file in the project root for full license information.

"""Repository for tally snapshots.

Rows are not unique per (account, key, granularity, period); duplicates
written by concurrent rollups are collapsed by the snapshot roller.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from ..models.enums import Granularity
from ..models.snapshot import TallySnapshot
from ..models.usage import UsageCalculationKey
from .database import SqliteDatabase, to_utc_iso

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, account_id, product_id, sla, usage, billing_provider, billing_account_id, "
    "granularity, snapshot_date, period_end, measurements, has_unlimited_usage, last_updated"
)


class TallySnapshotRepository:
    """Stores and queries tally snapshots."""

    def __init__(self, database: SqliteDatabase):
        self._db = database
        self._init_database()

    def _init_database(self) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tally_snapshots (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    account_id TEXT NOT NULL,
                    product_id TEXT NOT NULL,
                    sla TEXT NOT NULL,
                    usage TEXT NOT NULL,
                    billing_provider TEXT NOT NULL,
                    billing_account_id TEXT,
                    granularity TEXT NOT NULL,
                    snapshot_date TEXT NOT NULL,
                    period_end TEXT NOT NULL,
                    measurements TEXT NOT NULL,
                    has_unlimited_usage INTEGER NOT NULL DEFAULT 0,
                    last_updated TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_snapshots_account_granularity_date
                ON tally_snapshots(account_id, granularity, snapshot_date)
                """
            )

    async def save(self, snapshot: TallySnapshot) -> TallySnapshot:
        """
        Insert a new snapshot or update an existing one.

        Args:
            snapshot: Snapshot to persist. Snapshots without an id are inserted.

        Returns:
            The persisted snapshot with its id and a fresh ``last_updated``
        """
        saved = snapshot.model_copy(update={"last_updated": datetime.now(timezone.utc)})
        measurements = json.dumps(
            {mtype.value: values for mtype, values in saved.measurements.items()}
        )
        params = (
            saved.account_id,
            saved.product_id,
            saved.sla.value,
            saved.usage.value,
            saved.billing_provider.value,
            saved.billing_account_id,
            saved.granularity.value,
            to_utc_iso(saved.snapshot_date),
            to_utc_iso(saved.period_end),
            measurements,
            int(saved.has_unlimited_usage),
            to_utc_iso(saved.last_updated),
        )

        with self._db.transaction() as conn:
            if saved.id is None:
                cursor = conn.execute(
                    """
                    INSERT INTO tally_snapshots
                    (account_id, product_id, sla, usage, billing_provider, billing_account_id,
                     granularity, snapshot_date, period_end, measurements, has_unlimited_usage,
                     last_updated)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    params,
                )
                saved = saved.model_copy(update={"id": cursor.lastrowid})
            else:
                conn.execute(
                    """
                    UPDATE tally_snapshots SET
                        account_id = ?, product_id = ?, sla = ?, usage = ?, billing_provider = ?,
                        billing_account_id = ?, granularity = ?, snapshot_date = ?, period_end = ?,
                        measurements = ?, has_unlimited_usage = ?, last_updated = ?
                    WHERE id = ?
                    """,
                    params + (saved.id,),
                )
        return saved

    async def find_snapshots(
        self,
        account_id: str,
        granularity: Granularity,
        start: datetime,
        end: datetime,
        key: Optional[UsageCalculationKey] = None,
    ) -> list[TallySnapshot]:
        """
        Snapshots whose period starts within ``[start, end)``.

        Args:
            account_id: Account to query
            granularity: Snapshot granularity
            start: Inclusive lower bound for the period start
            end: Exclusive upper bound for the period start
            key: Restrict to a single billing dimension

        Returns:
            Matching snapshots ordered by period start then id
        """
        query = (
            f"SELECT {_COLUMNS} FROM tally_snapshots "
            "WHERE account_id = ? AND granularity = ? AND snapshot_date >= ? AND snapshot_date < ?"
        )
        params: list = [account_id, granularity.value, to_utc_iso(start), to_utc_iso(end)]

        if key is not None:
            query += " AND product_id = ? AND sla = ? AND usage = ? AND billing_provider = ?"
            params.extend(
                [key.product_id, key.sla.value, key.usage.value, key.billing_provider.value]
            )
            if key.billing_account_id is None:
                query += " AND billing_account_id IS NULL"
            else:
                query += " AND billing_account_id = ?"
                params.append(key.billing_account_id)

        query += " ORDER BY snapshot_date ASC, id ASC"

        with self._db.transaction() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_snapshot(row) for row in rows]

    async def delete(self, snapshot_ids: Iterable[int]) -> int:
        ids = list(snapshot_ids)
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        with self._db.transaction() as conn:
            cursor = conn.execute(f"DELETE FROM tally_snapshots WHERE id IN ({placeholders})", ids)
        return cursor.rowcount

    @staticmethod
    def _row_to_snapshot(row: tuple) -> TallySnapshot:
        (
            snapshot_id,
            account_id,
            product_id,
            sla,
            usage,
            billing_provider,
            billing_account_id,
            granularity,
            snapshot_date,
            period_end,
            measurements,
            has_unlimited_usage,
            last_updated,
        ) = row
        return TallySnapshot(
            id=snapshot_id,
            account_id=account_id,
            product_id=product_id,
            sla=sla,
            usage=usage,
            billing_provider=billing_provider,
            billing_account_id=billing_account_id,
            granularity=granularity,
            snapshot_date=datetime.fromisoformat(snapshot_date),
            period_end=datetime.fromisoformat(period_end),
            measurements=json.loads(measurements),
            has_unlimited_usage=bool(has_unlimited_usage),
            last_updated=datetime.fromisoformat(last_updated),
        )
