import time
import uuid
from typing import List, Optional

import aiosqlite

_COLUMNS = (
    "id, provider_id, allocation_id, original_file_id, artifact_name, file_size, "
    "local_path, encryption_key, received_at"
)


def _row_to_artifact(row) -> dict:
    return {
        "id": row[0],
        "provider_id": row[1],
        "allocation_id": row[2],
        "original_file_id": row[3],
        "artifact_name": row[4],
        "file_size": row[5],
        "local_path": row[6],
        "encryption_key": row[7],
        "received_at": row[8],
    }


class ArtifactRepo:
    """CRUD operations for the provider_artifacts table."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def create(
        self,
        provider_id: str,
        allocation_id: str,
        original_file_id: str,
        artifact_name: str,
        file_size: int,
        local_path: str,
        encryption_key: str,
    ) -> Optional[dict]:
        """Insert a claim row; None if (provider_id, original_file_id) is already claimed.

        The implicit transaction is always closed before returning so a
        failed or skipped insert never holds the database write lock.
        """
        artifact_id = uuid.uuid4().hex
        try:
            cursor = await self._db.execute(
                "INSERT INTO provider_artifacts (id, provider_id, allocation_id, original_file_id, "
                "artifact_name, file_size, local_path, encryption_key, received_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(provider_id, original_file_id) DO NOTHING",
                (artifact_id, provider_id, allocation_id, original_file_id, artifact_name,
                 file_size, local_path, encryption_key, time.time()),
            )
        finally:
            await self._db.commit()
        if cursor.rowcount == 0:
            return None
        return await self.get(artifact_id)

    async def get(self, artifact_id: str) -> Optional[dict]:
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM provider_artifacts WHERE id = ?", (artifact_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_artifact(row) if row else None

    async def get_for_file(self, provider_id: str, original_file_id: str) -> Optional[dict]:
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM provider_artifacts "
            "WHERE provider_id = ? AND original_file_id = ?",
            (provider_id, original_file_id),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_artifact(row) if row else None

    async def list_file_ids(self, provider_id: str) -> List[str]:
        async with self._db.execute(
            "SELECT original_file_id FROM provider_artifacts WHERE provider_id = ?",
            (provider_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [r[0] for r in rows]

    async def list_for_provider(self, provider_id: str, limit: int = 100, offset: int = 0) -> List[dict]:
        results = []
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM provider_artifacts WHERE provider_id = ? "
            "ORDER BY received_at DESC LIMIT ? OFFSET ?",
            (provider_id, limit, offset),
        ) as cursor:
            async for row in cursor:
                results.append(_row_to_artifact(row))
        return results

    async def count(self, provider_id: Optional[str] = None, original_file_id: Optional[str] = None) -> int:
        query = "SELECT COUNT(*) FROM provider_artifacts WHERE 1 = 1"
        params: tuple = ()
        if provider_id:
            query += " AND provider_id = ?"
            params += (provider_id,)
        if original_file_id:
            query += " AND original_file_id = ?"
            params += (original_file_id,)
        async with self._db.execute(query, params) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0
