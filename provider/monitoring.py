"""
monitoring.py - Reader-side provider health and storage summary.

The daemon never clears its own online flag asynchronously; a reader must
treat a provider whose last heartbeat is older than OFFLINE_THRESHOLD as
offline regardless of the stored health_status.
"""

import logging
import time
from typing import TYPE_CHECKING, Optional

from provider.config import HEARTBEAT_INTERVAL_SEC

if TYPE_CHECKING:
    from provider.backend import BackendClient

logger = logging.getLogger("monitoring")

OFFLINE_THRESHOLD = HEARTBEAT_INTERVAL_SEC * 3  # seconds without heartbeat


def provider_online(provider: dict, now: Optional[float] = None, threshold: float = OFFLINE_THRESHOLD) -> bool:
    now = time.time() if now is None else now
    if provider.get("health_status") != "online" or not provider.get("active"):
        return False
    last = provider.get("last_heartbeat_at") or provider.get("updated_at")
    if last is None:
        return False
    return (now - last) < threshold


class MonitoringService:
    def __init__(self, backend: "BackendClient", offline_threshold: float = OFFLINE_THRESHOLD):
        self._backend = backend
        self._threshold = offline_threshold

    async def get_provider_status(self, provider_id: str) -> Optional[dict]:
        provider = await self._backend.get_provider(provider_id)
        if provider is None:
            return None
        now = time.time()
        last = provider.get("last_heartbeat_at")
        return {
            **provider,
            "online": provider_online(provider, now, self._threshold),
            "heartbeat_age_sec": round(now - last, 1) if last is not None else None,
        }

    async def get_storage_summary(self, provider_id: str) -> dict:
        allocations = await self._backend.list_active_allocations(provider_id, time.time())
        artifacts = await self._backend.count_artifacts(provider_id)
        return {
            "active_allocations": len(allocations),
            "users": len({a["user_address"].lower() for a in allocations}),
            "total_allocated_gb": round(sum(float(a["allocated_gb"]) for a in allocations), 4),
            "total_used_gb": round(sum(float(a["used_gb"]) for a in allocations), 4),
            "artifacts": artifacts,
        }
