"""
heartbeat.py - Liveness and lifecycle state.

    STARTING -> ONLINE -> SHUTTING_DOWN -> OFFLINE (terminal)

While ONLINE each beat refreshes the provider's heartbeat timestamps.
Going offline is a single best-effort write; readers fall back to
heartbeat staleness when it never lands.
"""

import enum
import logging
from typing import TYPE_CHECKING, Optional

from provider.errors import BackendUnavailableError

if TYPE_CHECKING:
    from provider.backend import BackendClient

logger = logging.getLogger("heartbeat")


class LifecycleState(str, enum.Enum):
    STARTING = "starting"
    ONLINE = "online"
    SHUTTING_DOWN = "shutting_down"
    OFFLINE = "offline"


class HeartbeatManager:
    def __init__(self, backend: "BackendClient"):
        self._backend = backend
        self.provider_id: Optional[str] = None
        self.state = LifecycleState.STARTING
        self.beats = 0
        self.last_beat_at: Optional[float] = None

    def mark_online(self, provider_id: str) -> bool:
        """Record the provider and go ONLINE; False if shutdown already began."""
        if self.state == LifecycleState.SHUTTING_DOWN:
            self.provider_id = provider_id
            return False
        if self.state != LifecycleState.STARTING:
            raise RuntimeError(f"cannot go online from {self.state.value}")
        self.provider_id = provider_id
        self.state = LifecycleState.ONLINE
        logger.info("Provider %s online", provider_id)
        return True

    async def beat(self) -> Optional[float]:
        if self.state != LifecycleState.ONLINE:
            return None
        try:
            stamp = await self._backend.touch_heartbeat(self.provider_id)
        except BackendUnavailableError as e:
            logger.warning("Heartbeat failed: %s", e)
            return None
        if stamp is None:
            logger.warning("Heartbeat matched no provider row (id=%s)", self.provider_id)
            return None
        self.beats += 1
        self.last_beat_at = stamp
        return stamp

    def begin_shutdown(self) -> bool:
        """Enter SHUTTING_DOWN; False if shutdown already started."""
        if self.state in (LifecycleState.SHUTTING_DOWN, LifecycleState.OFFLINE):
            return False
        self.state = LifecycleState.SHUTTING_DOWN
        return True

    async def go_offline(self) -> bool:
        """Write active=false/offline once. The state ends OFFLINE either way."""
        if self.state == LifecycleState.OFFLINE:
            return False
        written = False
        try:
            if self.provider_id is not None:
                await self._backend.set_provider_status(self.provider_id, False, "offline")
                written = True
                logger.info("Provider %s marked offline", self.provider_id)
        except BackendUnavailableError as e:
            logger.error("Final offline write failed: %s", e)
        finally:
            self.state = LifecycleState.OFFLINE
        return written
