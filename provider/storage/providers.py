import logging
import time
import uuid
from typing import Optional

import aiosqlite

from provider.identity import normalize_address

logger = logging.getLogger("storage")

_COLUMNS = (
    "id, identity_address, display_name, available_capacity_gb, price_per_gb, "
    "active, health_status, uptime_percentage, last_heartbeat_at, created_at, updated_at"
)


def _row_to_provider(row) -> dict:
    return {
        "id": row[0],
        "identity_address": row[1],
        "display_name": row[2],
        "available_capacity_gb": row[3],
        "price_per_gb": row[4],
        "active": bool(row[5]),
        "health_status": row[6],
        "uptime_percentage": row[7],
        "last_heartbeat_at": row[8],
        "created_at": row[9],
        "updated_at": row[10],
    }


class ProviderRepo:
    """CRUD operations for the providers table."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def get_or_create(
        self,
        identity_address: str,
        display_name: str = "",
        capacity_gb: float = 0.0,
        price_per_gb: float = 1.0,
    ) -> dict:
        """Insert the provider row, or reactivate it if the identity exists.

        The UNIQUE identity column makes concurrent registrations converge on
        a single row.
        """
        now = time.time()
        identity = normalize_address(identity_address)
        await self._db.execute(
            "INSERT INTO providers (id, identity_address, display_name, available_capacity_gb, "
            "price_per_gb, active, health_status, last_heartbeat_at, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, 1, 'online', ?, ?, ?) "
            "ON CONFLICT(identity_address) DO UPDATE SET "
            "active=1, health_status='online', last_heartbeat_at=excluded.last_heartbeat_at, "
            "updated_at=excluded.updated_at",
            (uuid.uuid4().hex, identity, display_name, capacity_gb, price_per_gb, now, now, now),
        )
        await self._db.commit()
        return await self.get_by_identity(identity)

    async def get(self, provider_id: str) -> Optional[dict]:
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM providers WHERE id = ?", (provider_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_provider(row) if row else None

    async def get_by_identity(self, identity_address: str) -> Optional[dict]:
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM providers WHERE identity_address = ?",
            (normalize_address(identity_address),),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_provider(row) if row else None

    async def set_status(self, provider_id: str, active: bool, health_status: str) -> int:
        now = time.time()
        cursor = await self._db.execute(
            "UPDATE providers SET active = ?, health_status = ?, updated_at = ? WHERE id = ?",
            (1 if active else 0, health_status, now, provider_id),
        )
        await self._db.commit()
        return cursor.rowcount

    async def touch_heartbeat(self, provider_id: str) -> Optional[float]:
        now = time.time()
        cursor = await self._db.execute(
            "UPDATE providers SET last_heartbeat_at = ?, updated_at = ? WHERE id = ?",
            (now, now, provider_id),
        )
        await self._db.commit()
        return now if cursor.rowcount else None

    async def count(self) -> int:
        async with self._db.execute("SELECT COUNT(*) FROM providers") as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0
