"""
usage.py - Usage reconciler.

``used_gb`` on an allocation is a cache: it is always recomputed from the
user's completed uploads and written to every live allocation the user
holds with this provider.
"""

import logging
import time
from typing import TYPE_CHECKING, Optional

from provider.allocations import allocations_by_user
from provider.errors import BackendUnavailableError, ReconciliationError
from provider.identity import normalize_address

if TYPE_CHECKING:
    from provider.backend import BackendClient

logger = logging.getLogger("usage")

BYTES_PER_GB = 1024 ** 3


def bytes_to_gb(size: int) -> float:
    return size / BYTES_PER_GB


class UsageReconciler:
    def __init__(self, backend: "BackendClient"):
        self._backend = backend

    async def reconcile_user(
        self,
        provider_id: str,
        user_address: str,
        allocations: Optional[list] = None,
    ) -> float:
        """Recompute ``used_gb`` for one (provider, user) pair and write it back.

        ``allocations`` may be passed in when the caller already holds the
        user's live allocations; otherwise they are read fresh.
        Raises ReconciliationError.
        """
        user = normalize_address(user_address)
        try:
            if allocations is None:
                live = await self._backend.list_active_allocations(provider_id, time.time())
                allocations = allocations_by_user(live).get(user, [])
            total = await self._backend.sum_completed_file_size_for_user(user)
            used_gb = bytes_to_gb(total)
            for allocation in allocations:
                await self._backend.update_allocation_usage(allocation["id"], used_gb)
                allocation["used_gb"] = used_gb
        except BackendUnavailableError as e:
            raise ReconciliationError(user, str(e)) from e
        logger.debug("Usage for %s: %.4f GB across %d allocation(s)", user, used_gb, len(allocations))
        return used_gb

    async def reconcile_all(self, provider_id: str) -> dict:
        """Reconcile every user with a live allocation; one failure never stops the pass."""
        allocations = await self._backend.list_active_allocations(provider_id, time.time())
        grouped = allocations_by_user(allocations)
        failed = []
        for user, user_allocations in grouped.items():
            try:
                await self.reconcile_user(provider_id, user, allocations=user_allocations)
            except ReconciliationError as e:
                logger.error("%s", e)
                failed.append(user)

        total_allocated = sum(float(a["allocated_gb"]) for a in allocations)
        total_used = sum(float(a["used_gb"]) for a in allocations)
        if allocations:
            logger.info("Storage allocation: %.2f GB", total_allocated)
            logger.info("Used: %.2f GB", total_used)
        return {
            "users": len(grouped),
            "total_allocated_gb": total_allocated,
            "total_used_gb": total_used,
            "failed": failed,
        }
