import time
import uuid
from typing import List, Optional

import aiosqlite

from provider.identity import normalize_address

_COLUMNS = (
    "id, provider_id, user_address, allocated_gb, used_gb, paid_amount, "
    "payment_tx_ref, created_at, expires_at"
)


def _row_to_allocation(row) -> dict:
    return {
        "id": row[0],
        "provider_id": row[1],
        "user_address": row[2],
        "allocated_gb": row[3],
        "used_gb": row[4],
        "paid_amount": row[5],
        "payment_tx_ref": row[6],
        "created_at": row[7],
        "expires_at": row[8],
    }


class AllocationRepo:
    """CRUD operations for the allocations table."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def create(
        self,
        provider_id: str,
        user_address: str,
        allocated_gb: float,
        duration_sec: float = 30 * 86400,
        paid_amount: float = 0.0,
        payment_tx_ref: str = "",
        expires_at: Optional[float] = None,
    ) -> dict:
        """Record a paid allocation, as the purchase flow does after settlement."""
        now = time.time()
        allocation_id = uuid.uuid4().hex
        if expires_at is None:
            expires_at = now + duration_sec
        await self._db.execute(
            "INSERT INTO allocations (id, provider_id, user_address, allocated_gb, used_gb, "
            "paid_amount, payment_tx_ref, created_at, expires_at) VALUES (?, ?, ?, ?, 0.0, ?, ?, ?, ?)",
            (allocation_id, provider_id, normalize_address(user_address), allocated_gb,
             paid_amount, payment_tx_ref, now, expires_at),
        )
        await self._db.commit()
        return await self.get(allocation_id)

    async def get(self, allocation_id: str) -> Optional[dict]:
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM allocations WHERE id = ?", (allocation_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_allocation(row) if row else None

    async def list_active(self, provider_id: str, now: Optional[float] = None) -> List[dict]:
        now = time.time() if now is None else now
        results = []
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM allocations WHERE provider_id = ? AND expires_at >= ? "
            "ORDER BY created_at DESC",
            (provider_id, now),
        ) as cursor:
            async for row in cursor:
                results.append(_row_to_allocation(row))
        return results

    async def update_used(self, allocation_id: str, used_gb: float) -> int:
        cursor = await self._db.execute(
            "UPDATE allocations SET used_gb = ? WHERE id = ?",
            (used_gb, allocation_id),
        )
        await self._db.commit()
        return cursor.rowcount
