"""
claims.py - Claim recorder.

Writes the (provider, allocation, original file) -> artifact row. The
insert is the de-duplication boundary: a uniqueness conflict means another
cycle or process got there first, which counts as done.
"""

import enum
import logging
import time
from typing import TYPE_CHECKING

from provider.allocations import match_allocation
from provider.encryption import EncryptedArtifact
from provider.errors import ClaimConflictError

if TYPE_CHECKING:
    from provider.backend import BackendClient

logger = logging.getLogger("claims")


class ClaimOutcome(str, enum.Enum):
    RECORDED = "recorded"
    DUPLICATE = "duplicate"
    NO_ALLOCATION = "no_allocation"


class ClaimRecorder:
    def __init__(self, backend: "BackendClient"):
        self._backend = backend

    async def record(self, provider_id: str, file: dict, artifact: EncryptedArtifact) -> ClaimOutcome:
        # Allocations are re-read here: one may have expired since discovery.
        allocations = await self._backend.list_active_allocations(provider_id, time.time())
        allocation = match_allocation(allocations, file["user_address"])
        if allocation is None:
            logger.warning(
                "No valid allocation for user %s at claim time, skipping file %s",
                file["user_address"], file["id"],
            )
            return ClaimOutcome.NO_ALLOCATION

        record = {
            "provider_id": provider_id,
            "allocation_id": allocation["id"],
            "original_file_id": file["id"],
            "artifact_name": artifact.artifact_name,
            "file_size": file["file_size"],
            "local_path": artifact.local_path,
            "encryption_key": artifact.encryption_key,
        }
        try:
            await self._backend.insert_artifact_claim(record)
        except ClaimConflictError:
            logger.info("File %s already claimed by provider %s", file["id"], provider_id)
            return ClaimOutcome.DUPLICATE

        logger.info(
            "Claimed file %s (%s) under allocation %s",
            file["id"], file.get("file_name", ""), allocation["id"],
        )
        return ClaimOutcome.RECORDED
