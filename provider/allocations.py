"""
allocations.py - Allocation reader.

Reads this provider's live (unexpired) allocations fresh on every cycle;
allocations are bought and expire between cycles, so nothing is cached.
"""

import logging
import time
from typing import TYPE_CHECKING, Dict, List, Optional

from provider.identity import normalize_address

if TYPE_CHECKING:
    from provider.backend import BackendClient

logger = logging.getLogger("allocations")


class AllocationReader:
    def __init__(self, backend: "BackendClient"):
        self._backend = backend

    async def active_allocations(self, provider_id: str, now: Optional[float] = None) -> List[dict]:
        now = time.time() if now is None else now
        allocations = await self._backend.list_active_allocations(provider_id, now)
        logger.debug("Provider %s has %d live allocation(s)", provider_id, len(allocations))
        return allocations


def covered_users(allocations: List[dict]) -> List[str]:
    """Distinct normalized user addresses covered by ``allocations``."""
    seen = []
    for a in allocations:
        addr = normalize_address(a["user_address"])
        if addr and addr not in seen:
            seen.append(addr)
    return seen


def match_allocation(allocations: List[dict], user_address: str) -> Optional[dict]:
    """First allocation whose owner equals ``user_address``, ignoring case."""
    target = normalize_address(user_address)
    for a in allocations:
        if normalize_address(a["user_address"]) == target:
            return a
    return None


def allocations_by_user(allocations: List[dict]) -> Dict[str, List[dict]]:
    grouped: Dict[str, List[dict]] = {}
    for a in allocations:
        grouped.setdefault(normalize_address(a["user_address"]), []).append(a)
    return grouped
