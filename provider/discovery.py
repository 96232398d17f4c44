"""
discovery.py - File discovery.

Finds completed uploads owned by users this provider currently serves that
the provider has not claimed yet. The claimed-id exclusion set is read
fresh each time so claims written by an earlier (possibly crashed) run are
respected; it is only an optimization, the claim table's uniqueness
constraint is what actually prevents double processing.
"""

import logging
from typing import TYPE_CHECKING, Iterable, List

from provider.identity import normalize_address

if TYPE_CHECKING:
    from provider.backend import BackendClient

logger = logging.getLogger("discovery")


class FileDiscovery:
    def __init__(self, backend: "BackendClient"):
        self._backend = backend

    async def unclaimed_files(self, provider_id: str, user_addresses: Iterable[str]) -> List[dict]:
        users = {normalize_address(u) for u in user_addresses if u}
        if not users:
            return []
        claimed = set(await self._backend.list_claimed_file_ids(provider_id))
        files = await self._backend.list_complete_files_for_users(sorted(users))
        fresh = [
            f for f in files
            if f["id"] not in claimed and normalize_address(f["user_address"]) in users
        ]
        logger.debug(
            "Discovery: %d complete file(s) for %d user(s), %d already claimed, %d new",
            len(files), len(users), len(files) - len(fresh), len(fresh),
        )
        return fresh
