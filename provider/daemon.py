"""
daemon.py - Provider reconciliation daemon entry point.

Single-process daemon combining:
 - identity resolution and provider registration (once, at startup)
 - discovery cycle: allocations -> unclaimed files -> artifacts -> claims
 - usage reconciliation pass on its own slower interval
 - heartbeat on a short interval
 - optional read-only status API (FastAPI on uvicorn)

All three timers are owned by ProviderDaemon and torn down exactly once
on shutdown, before the final offline write.

Usage:
    PROVIDER_PRIVATE_KEY=0x... python -m provider.daemon --capacity-gb 50 \
        [--db-path data/marketplace.db] [--storage-dir ~/.provider-storage] [--api-port 8090]
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Set

import uvicorn
from fastapi import FastAPI

from provider import __version__
from provider.allocations import AllocationReader, covered_users, match_allocation
from provider.backend import BackendClient
from provider.claims import ClaimOutcome, ClaimRecorder
from provider.config import ProviderConfig
from provider.discovery import FileDiscovery
from provider.encryption import EncryptionPipeline, discard_artifact
from provider.errors import (
    ArtifactProcessingError,
    BackendUnavailableError,
    ConfigError,
    IdentityError,
    ReconciliationError,
)
from provider.heartbeat import HeartbeatManager, LifecycleState
from provider.identity import IdentityResolver, derive_identity
from provider.monitoring import MonitoringService
from provider.routers import register_all_routers
from provider.storage import StorageManager
from provider.usage import UsageReconciler

logger = logging.getLogger("daemon")


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the daemon."""

    def install_signal_handlers(self):
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


def _new_summary() -> dict:
    return {
        "allocations": 0,
        "discovered": 0,
        "claimed": 0,
        "duplicates": 0,
        "skipped": 0,
        "failed": 0,
        "aborted": False,
    }


class ProviderDaemon:
    """Owns the provider's components, timers, and lifecycle."""

    def __init__(
        self,
        config: ProviderConfig,
        storage: Optional[StorageManager] = None,
        backend: Optional[BackendClient] = None,
    ):
        self.config = config
        if storage is None and backend is not None:
            storage = backend.storage
        self.storage = storage or StorageManager(config.db_path)
        self._owns_storage = storage is None

        self.backend = backend or BackendClient(self.storage)
        self.identity = IdentityResolver(self.backend, config.capacity_gb, config.price_per_gb)
        self.allocations = AllocationReader(self.backend)
        self.discovery = FileDiscovery(self.backend)
        self.pipeline = EncryptionPipeline(config.storage_dir)
        self.claims = ClaimRecorder(self.backend)
        self.usage = UsageReconciler(self.backend)
        self.heartbeat = HeartbeatManager(self.backend)
        self.monitoring = MonitoringService(self.backend, config.offline_threshold_sec)

        self.provider: Optional[dict] = None
        self.identity_address: Optional[str] = None

        self._timers: Dict[str, asyncio.Task] = {}
        self._inflight: Set[asyncio.Task] = set()
        self._startup: Optional[asyncio.Future] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._stopped: Optional[asyncio.Event] = None

        self.app = FastAPI(title="Storage Provider Node", version=__version__)
        self.app.state.daemon = self
        register_all_routers(self.app)
        self._api_server: Optional[_EmbeddedServer] = None
        self._api_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> LifecycleState:
        return self.heartbeat.state

    @property
    def provider_id(self) -> Optional[str]:
        return self.provider["id"] if self.provider else None

    # -------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------

    async def start(self):
        """Register the provider, run the initial cycles, and arm the timers.

        Raises IdentityError (including ConfigError) or
        BackendUnavailableError; both are fatal at startup. Returns early,
        with nothing armed, once shutdown has begun.
        """
        if self._stopped is None:
            self._stopped = asyncio.Event()
        self.config.validate()
        self.identity_address = derive_identity(self.config.private_key)

        try:
            self.pipeline.ensure_storage_dir()
        except OSError as e:
            raise ConfigError(f"cannot create storage directory {self.config.storage_dir}: {e}") from e

        if self._owns_storage:
            db_dir = Path(self.config.db_path).parent
            if str(db_dir) not in ("", "."):
                db_dir.mkdir(parents=True, exist_ok=True)
            try:
                await self.storage.initialize()
            except Exception as e:
                raise BackendUnavailableError(f"cannot open backend {self.config.db_path}: {e}") from e

        await self.backend.ping()
        logger.info("Backend connection successful")

        if self.state != LifecycleState.STARTING:
            logger.info("Shutdown requested during startup, skipping registration")
            return
        self.provider = await self.identity.resolve(self.config.private_key)
        if not self.heartbeat.mark_online(self.provider["id"]):
            logger.info("Shutdown requested during startup, not arming timers")
            return

        logger.info("Provider configuration complete:")
        logger.info("  Storage directory: %s", self.pipeline.storage_dir)
        logger.info("  Wallet address:    %s", self.identity_address)

        await self.run_discovery_cycle()
        await self.run_usage_pass()
        if self.state != LifecycleState.ONLINE:
            logger.info("Shutdown requested during startup, not arming timers")
            return

        self._timers = {
            "discovery": asyncio.create_task(
                self._every("discovery", self.config.discovery_interval_sec, self.run_discovery_cycle)
            ),
            "usage": asyncio.create_task(
                self._every("usage", self.config.usage_interval_sec, self.run_usage_pass)
            ),
            "heartbeat": asyncio.create_task(
                self._every("heartbeat", self.config.heartbeat_interval_sec, self.heartbeat.beat)
            ),
        }

        if self.config.api_port:
            await self._start_api()

    async def _every(self, name: str, interval: float, job: Callable[[], Awaitable]):
        """Fire ``job`` every ``interval`` seconds without waiting for the previous run.

        Runs may overlap; correctness never relies on mutual exclusion between
        them. Each run is tracked so shutdown can let it finish.
        """
        while True:
            await asyncio.sleep(interval)
            task = asyncio.create_task(self._guarded(name, job))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _guarded(self, name: str, job: Callable[[], Awaitable]):
        try:
            await job()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Error in %s job", name)

    # -------------------------------------------------------------------
    # Discovery cycle
    # -------------------------------------------------------------------

    async def run_discovery_cycle(self) -> dict:
        summary = _new_summary()
        if self.state != LifecycleState.ONLINE:
            return summary
        provider_id = self.provider_id

        try:
            allocations = await self.allocations.active_allocations(provider_id)
            summary["allocations"] = len(allocations)
            if not allocations:
                return summary
            files = await self.discovery.unclaimed_files(provider_id, covered_users(allocations))
        except BackendUnavailableError as e:
            logger.warning("Discovery cycle aborted: %s", e)
            summary["aborted"] = True
            return summary

        summary["discovered"] = len(files)
        if files:
            logger.info("Processing %d new file(s)...", len(files))

        for index, file in enumerate(files):
            if self.state != LifecycleState.ONLINE:
                logger.info("Shutdown requested, leaving %d file(s) for the next run", len(files) - index)
                break
            await self._process_file(provider_id, file, allocations, summary)

        if files:
            logger.info(
                "Discovery cycle done: claimed=%d duplicates=%d skipped=%d failed=%d",
                summary["claimed"], summary["duplicates"], summary["skipped"], summary["failed"],
            )
        return summary

    async def _process_file(self, provider_id: str, file: dict, allocations: list, summary: dict):
        if match_allocation(allocations, file["user_address"]) is None:
            logger.warning("No valid allocation found for user %s", file["user_address"])
            summary["skipped"] += 1
            return

        try:
            artifact = await self.pipeline.process(file)
        except ArtifactProcessingError as e:
            logger.error("Failed to process file: %s", e)
            summary["failed"] += 1
            return

        try:
            outcome = await self.claims.record(provider_id, file, artifact)
        except BackendUnavailableError as e:
            # The row may or may not exist; keep the artifact and let the next cycle decide.
            logger.error("Failed to record claim for file %s: %s", file["id"], e)
            summary["failed"] += 1
            return

        if outcome is ClaimOutcome.DUPLICATE:
            discard_artifact(artifact.local_path)
            summary["duplicates"] += 1
            return
        if outcome is ClaimOutcome.NO_ALLOCATION:
            discard_artifact(artifact.local_path)
            summary["skipped"] += 1
            return

        summary["claimed"] += 1
        logger.info("File received and encrypted: %s", file.get("file_name", file["id"]))
        try:
            await self.usage.reconcile_user(provider_id, file["user_address"])
        except ReconciliationError as e:
            logger.error("%s", e)

    # -------------------------------------------------------------------
    # Usage pass
    # -------------------------------------------------------------------

    async def run_usage_pass(self) -> Optional[dict]:
        if self.state != LifecycleState.ONLINE:
            return None
        try:
            return await self.usage.reconcile_all(self.provider_id)
        except BackendUnavailableError as e:
            logger.warning("Usage pass aborted: %s", e)
            return None

    # -------------------------------------------------------------------
    # Status API
    # -------------------------------------------------------------------

    async def _start_api(self):
        config = uvicorn.Config(
            self.app,
            host="127.0.0.1",
            port=self.config.api_port,
            log_level="warning",
        )
        self._api_server = _EmbeddedServer(config)
        self._api_task = asyncio.create_task(self._api_server.serve())
        logger.info("Status API listening on http://127.0.0.1:%d", self.config.api_port)

    async def _stop_api(self):
        if self._api_server is None:
            return
        self._api_server.should_exit = True
        try:
            await asyncio.wait_for(self._api_task, timeout=5)
        except asyncio.TimeoutError:
            self._api_task.cancel()
        self._api_server = None
        self._api_task = None

    # -------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------

    def request_shutdown(self):
        """Signal-handler entry point; safe to call repeatedly."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.get_running_loop().create_task(self.shutdown())

    async def shutdown(self) -> bool:
        """Cancel timers, let in-flight runs finish, then write offline exactly once.

        Runs already in flight are never aborted; ``shutdown_grace_sec`` only
        controls when a still-busy run gets reported.
        """
        if not self.heartbeat.begin_shutdown():
            return False
        logger.info("Provider shutting down...")

        if self._startup is not None and not self._startup.done():
            await asyncio.wait([self._startup])

        timers = list(self._timers.values())
        for t in timers:
            t.cancel()
        await asyncio.gather(*timers, return_exceptions=True)
        self._timers.clear()

        inflight = set(self._inflight)
        if inflight:
            _, pending = await asyncio.wait(inflight, timeout=self.config.shutdown_grace_sec)
            if pending:
                logger.warning("%d run(s) still busy after %.1fs grace, waiting for them to finish",
                               len(pending), self.config.shutdown_grace_sec)
                await asyncio.wait(pending)

        await self._stop_api()
        await self.heartbeat.go_offline()

        if self._owns_storage:
            await self.storage.close()
        if self._stopped is not None:
            self._stopped.set()
        return True

    async def wait_stopped(self):
        await self._stopped.wait()

    async def run(self) -> int:
        """Run until a termination signal; returns the process exit code."""
        started_at = time.time()
        self._stopped = asyncio.Event()

        # Signals during startup also go through shutdown().
        loop = asyncio.get_running_loop()
        signals = (signal.SIGINT, signal.SIGTERM)
        for sig in signals:
            loop.add_signal_handler(sig, self.request_shutdown)
        try:
            self._startup = asyncio.ensure_future(self.start())
            try:
                await self._startup
            except (IdentityError, BackendUnavailableError) as e:
                logger.error("Startup failed: %s", e)
                if self._shutdown_task is not None:
                    await self._shutdown_task
                else:
                    await self._abort_startup()
                return 1
            await self.wait_stopped()
        finally:
            for sig in signals:
                loop.remove_signal_handler(sig)
        logger.info("Provider stopped after %.0fs", time.time() - started_at)
        return 0

    async def _abort_startup(self):
        if self.heartbeat.begin_shutdown():
            await self.heartbeat.go_offline()
        if self._owns_storage:
            await self.storage.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Storage provider reconciliation daemon")
    parser.add_argument("--db-path", default=None, help="Shared backend database (default: data/marketplace.db)")
    parser.add_argument("--storage-dir", default=None, help="Directory for encrypted artifacts")
    parser.add_argument("--capacity-gb", type=float, default=None, help="Storage capacity offered, in GB")
    parser.add_argument("--price-per-gb", type=float, default=None, help="Price per GB (default: 1.00)")
    parser.add_argument("--discovery-interval", type=float, default=None, dest="discovery_interval_sec",
                        help="Seconds between discovery cycles (default: 30)")
    parser.add_argument("--usage-interval", type=float, default=None, dest="usage_interval_sec",
                        help="Seconds between usage passes (default: 3600)")
    parser.add_argument("--heartbeat-interval", type=float, default=None, dest="heartbeat_interval_sec",
                        help="Seconds between heartbeats (default: 15)")
    parser.add_argument("--api-port", type=int, default=None, help="Serve the status API on this port (0 = off)")
    return parser


def main(argv=None) -> int:
    """CLI entry point for the provider daemon."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)-10s] %(levelname)-5s %(message)s",
        datefmt="%H:%M:%S",
    )
    args = build_parser().parse_args(argv)
    try:
        config = ProviderConfig.from_env(
            db_path=args.db_path,
            storage_dir=args.storage_dir,
            capacity_gb=args.capacity_gb,
            price_per_gb=args.price_per_gb,
            discovery_interval_sec=args.discovery_interval_sec,
            usage_interval_sec=args.usage_interval_sec,
            heartbeat_interval_sec=args.heartbeat_interval_sec,
            api_port=args.api_port,
        )
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    logger.info("=" * 60)
    logger.info("  Storage Provider Node v%s", __version__)
    logger.info("  Backend:     %s", config.db_path)
    logger.info("  Storage dir: %s", config.storage_dir)
    logger.info("  Capacity:    %.2f GB", config.capacity_gb)
    logger.info("  Intervals:   discovery=%.0fs usage=%.0fs heartbeat=%.0fs",
                config.discovery_interval_sec, config.usage_interval_sec, config.heartbeat_interval_sec)
    logger.info("=" * 60)

    daemon = ProviderDaemon(config)
    return asyncio.run(daemon.run())


if __name__ == "__main__":
    sys.exit(main())
