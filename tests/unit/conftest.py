"""Shared fixtures for provider unit tests."""

import time

import pytest
import pytest_asyncio

from provider.backend import BackendClient
from provider.storage import StorageManager

from sample_keys import ADDRESS_ONE


# ── Fixtures ────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def storage():
    sm = StorageManager(":memory:")
    await sm.initialize()
    yield sm
    await sm.close()


@pytest_asyncio.fixture
async def backend(storage):
    return BackendClient(storage)


@pytest_asyncio.fixture
async def provider(storage):
    return await storage.providers.get_or_create(ADDRESS_ONE, "Provider 0x7e5f", capacity_gb=50.0)


@pytest.fixture
def make_allocation(storage):
    async def _make(provider_id, user_address, allocated_gb=10.0, expires_in=3600.0):
        return await storage.allocations.create(
            provider_id=provider_id,
            user_address=user_address,
            allocated_gb=allocated_gb,
            expires_at=time.time() + expires_in,
        )
    return _make


@pytest.fixture
def make_file(storage):
    async def _make(user_address, file_size=1024, mime_type="application/pdf",
                    name="doc.pdf", complete=True):
        rec = await storage.files.create(user_address, name, file_size, mime_type)
        if complete:
            await storage.files.mark_complete(rec["id"])
            rec = await storage.files.get(rec["id"])
        return rec
    return _make
