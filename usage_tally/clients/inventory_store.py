"""Repository for account service inventories (per-instance state)."""

import logging
from datetime import datetime, timezone
from typing import Optional

from ..models.inventory import AccountServiceInventory
from .database import SqliteDatabase

logger = logging.getLogger(__name__)


class AccountServiceInventoryRepository:
    """Loads and saves one inventory document per account and service type."""

    def __init__(self, database: SqliteDatabase):
        self._db = database
        self._init_database()

    def _init_database(self) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS account_service_inventory (
                    account_id TEXT NOT NULL,
                    service_type TEXT NOT NULL,
                    data TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (account_id, service_type)
                )
                """
            )

    async def find_by_id(
        self, account_id: str, service_type: str
    ) -> Optional[AccountServiceInventory]:
        with self._db.transaction() as conn:
            row = conn.execute(
                "SELECT data FROM account_service_inventory WHERE account_id = ? AND service_type = ?",
                (account_id, service_type),
            ).fetchone()
        if row is None:
            return None
        return AccountServiceInventory.model_validate_json(row[0])

    async def save(self, inventory: AccountServiceInventory) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO account_service_inventory (account_id, service_type, data, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(account_id, service_type)
                DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at
                """,
                (
                    inventory.account_id,
                    inventory.service_type,
                    inventory.model_dump_json(),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
        logger.debug(
            f"Saved inventory for account {inventory.account_id} / {inventory.service_type} "
            f"({len(inventory.service_instances)} instances)"
        )
