"""
backend.py - Backend client.

Typed facade over the shared data store. No business logic lives here:
each method is one read or write, and low-level database failures are
translated into the daemon's error taxonomy.
"""

import functools
import logging
import time
from typing import Iterable, List, Optional

import aiosqlite

from provider.errors import BackendUnavailableError, ClaimConflictError
from provider.storage import StorageManager

logger = logging.getLogger("backend")


def _backend_call(fn):
    @functools.wraps(fn)
    async def wrapper(self, *args, **kwargs):
        if self._storage.providers is None:
            raise BackendUnavailableError("storage is not initialized")
        try:
            return await fn(self, *args, **kwargs)
        except aiosqlite.Error as e:
            raise BackendUnavailableError(f"{fn.__name__} failed: {e}") from e
    return wrapper


class BackendClient:
    """Shared-store operations the provider daemon depends on."""

    def __init__(self, storage: StorageManager):
        self._storage = storage

    @property
    def storage(self) -> StorageManager:
        return self._storage

    @_backend_call
    async def ping(self) -> bool:
        await self._storage.providers.count()
        return True

    # -------------------------------------------------------------------
    # Providers
    # -------------------------------------------------------------------

    @_backend_call
    async def get_or_create_provider(
        self,
        identity: str,
        display_name: str = "",
        capacity_gb: float = 0.0,
        price_per_gb: float = 1.0,
    ) -> dict:
        return await self._storage.providers.get_or_create(
            identity, display_name=display_name,
            capacity_gb=capacity_gb, price_per_gb=price_per_gb,
        )

    @_backend_call
    async def get_provider(self, provider_id: str) -> Optional[dict]:
        return await self._storage.providers.get(provider_id)

    @_backend_call
    async def set_provider_status(self, provider_id: str, active: bool, health_status: str):
        updated = await self._storage.providers.set_status(provider_id, active, health_status)
        if not updated:
            logger.warning("Status update matched no provider row (id=%s)", provider_id)

    @_backend_call
    async def touch_heartbeat(self, provider_id: str) -> Optional[float]:
        return await self._storage.providers.touch_heartbeat(provider_id)

    # -------------------------------------------------------------------
    # Allocations
    # -------------------------------------------------------------------

    @_backend_call
    async def list_active_allocations(self, provider_id: str, now: Optional[float] = None) -> List[dict]:
        return await self._storage.allocations.list_active(
            provider_id, time.time() if now is None else now,
        )

    @_backend_call
    async def update_allocation_usage(self, allocation_id: str, used_gb: float):
        await self._storage.allocations.update_used(allocation_id, used_gb)

    # -------------------------------------------------------------------
    # Files and claims
    # -------------------------------------------------------------------

    @_backend_call
    async def list_claimed_file_ids(self, provider_id: str) -> List[str]:
        return await self._storage.artifacts.list_file_ids(provider_id)

    @_backend_call
    async def list_complete_files_for_users(self, user_addresses: Iterable[str]) -> List[dict]:
        return await self._storage.files.list_complete_for_users(user_addresses)

    @_backend_call
    async def sum_completed_file_size_for_user(self, user_address: str) -> int:
        return await self._storage.files.sum_complete_size_for_user(user_address)

    @_backend_call
    async def insert_artifact_claim(self, record: dict) -> dict:
        """Insert a claim row, raising ClaimConflictError if one already exists."""
        row = await self._storage.artifacts.create(
            provider_id=record["provider_id"],
            allocation_id=record["allocation_id"],
            original_file_id=record["original_file_id"],
            artifact_name=record["artifact_name"],
            file_size=record["file_size"],
            local_path=record["local_path"],
            encryption_key=record["encryption_key"],
        )
        if row is None:
            raise ClaimConflictError(record["provider_id"], record["original_file_id"])
        return row

    @_backend_call
    async def list_artifacts(self, provider_id: str, limit: int = 100, offset: int = 0) -> List[dict]:
        return await self._storage.artifacts.list_for_provider(provider_id, limit=limit, offset=offset)

    @_backend_call
    async def count_artifacts(self, provider_id: str) -> int:
        return await self._storage.artifacts.count(provider_id=provider_id)
