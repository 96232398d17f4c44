"""
Shared fixtures for provider daemon integration tests.

Provides:
 - An in-memory shared backend standing in for the marketplace database
 - Seeding helpers for providers, allocations and uploaded files
 - A daemon factory with long default timers and a per-test artifact directory
"""

import time

import pytest
import pytest_asyncio

from provider.config import ProviderConfig
from provider.daemon import ProviderDaemon
from provider.heartbeat import LifecycleState
from provider.storage import StorageManager

from daemon_support import OPERATOR_ADDRESS, OPERATOR_KEY


@pytest_asyncio.fixture
async def storage():
    sm = StorageManager(":memory:")
    await sm.initialize()
    yield sm
    await sm.close()


@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides):
        values = dict(
            private_key=OPERATOR_KEY,
            capacity_gb=50.0,
            storage_dir=str(tmp_path / "artifacts"),
            discovery_interval_sec=3600.0,
            usage_interval_sec=3600.0,
            heartbeat_interval_sec=3600.0,
            shutdown_grace_sec=2.0,
        )
        values.update(overrides)
        return ProviderConfig(**values)
    return _make


@pytest_asyncio.fixture
async def make_daemon(storage):
    """Build daemons on the shared in-memory backend; stops any left running."""
    created = []

    def _make(config, backend=None):
        daemon = ProviderDaemon(config, storage=storage, backend=backend)
        created.append(daemon)
        return daemon

    yield _make

    for daemon in created:
        if daemon.state == LifecycleState.ONLINE:
            await daemon.shutdown()


@pytest.fixture
def seed(storage):
    """Seeding helpers: pre-register a provider, buy allocations, upload files."""

    class _Seed:
        async def provider(self, address=OPERATOR_ADDRESS):
            row = await storage.providers.get_or_create(address, f"Provider {address[:6]}", 50.0)
            await storage.providers.set_status(row["id"], False, "offline")
            return row

        async def allocation(self, provider_id, user, allocated_gb=10.0, expires_in=3600.0):
            return await storage.allocations.create(
                provider_id, user, allocated_gb, expires_at=time.time() + expires_in,
            )

        async def file(self, user, file_size=2048, mime_type="application/pdf",
                       name="report.pdf", complete=True):
            rec = await storage.files.create(user, name, file_size, mime_type)
            if complete:
                await storage.files.mark_complete(rec["id"])
                rec = await storage.files.get(rec["id"])
            return rec

    return _Seed()
