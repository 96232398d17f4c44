import time
import uuid
from typing import Iterable, List, Optional

import aiosqlite

from provider.identity import normalize_address

_COLUMNS = (
    "id, user_address, file_name, file_size, mime_type, upload_status, "
    "original_content_ref, created_at"
)


def _row_to_file(row) -> dict:
    return {
        "id": row[0],
        "user_address": row[1],
        "file_name": row[2],
        "file_size": row[3],
        "mime_type": row[4],
        "upload_status": row[5],
        "original_content_ref": row[6],
        "created_at": row[7],
    }


class StoredFileRepo:
    """CRUD operations for the stored_files table."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def create(
        self,
        user_address: str,
        file_name: str,
        file_size: int,
        mime_type: str = "",
        upload_status: str = "pending",
        original_content_ref: str = "",
    ) -> dict:
        now = time.time()
        file_id = uuid.uuid4().hex
        await self._db.execute(
            "INSERT INTO stored_files (id, user_address, file_name, file_size, mime_type, "
            "upload_status, original_content_ref, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (file_id, normalize_address(user_address), file_name, file_size, mime_type or "",
             upload_status, original_content_ref, now),
        )
        await self._db.commit()
        return await self.get(file_id)

    async def mark_complete(self, file_id: str):
        await self._db.execute(
            "UPDATE stored_files SET upload_status = 'complete' WHERE id = ?",
            (file_id,),
        )
        await self._db.commit()

    async def get(self, file_id: str) -> Optional[dict]:
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM stored_files WHERE id = ?", (file_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_file(row) if row else None

    async def list_complete_for_users(self, user_addresses: Iterable[str]) -> List[dict]:
        addresses = sorted({normalize_address(a) for a in user_addresses if a})
        if not addresses:
            return []
        placeholders = ", ".join("?" for _ in addresses)
        results = []
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM stored_files "
            f"WHERE upload_status = 'complete' AND user_address IN ({placeholders}) "
            "ORDER BY created_at",
            tuple(addresses),
        ) as cursor:
            async for row in cursor:
                results.append(_row_to_file(row))
        return results

    async def sum_complete_size_for_user(self, user_address: str) -> int:
        async with self._db.execute(
            "SELECT COALESCE(SUM(file_size), 0) FROM stored_files "
            "WHERE upload_status = 'complete' AND user_address = ?",
            (normalize_address(user_address),),
        ) as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0
