"""
test_storage_repos.py - Repo behaviour against in-memory SQLite.
"""

import time

import aiosqlite
import pytest

from provider.storage import SCHEMA_VERSION, StorageManager

from sample_keys import ADDRESS_ONE, ADDRESS_TWO, USER_A, USER_B

pytestmark = pytest.mark.asyncio


class TestProviderRepo:

    async def test_get_or_create_is_idempotent(self, storage):
        a = await storage.providers.get_or_create(ADDRESS_ONE, "one", capacity_gb=5.0)
        b = await storage.providers.get_or_create(ADDRESS_ONE.upper().replace("0X", "0x"), "one")
        assert a["id"] == b["id"]
        assert await storage.providers.count() == 1

    async def test_reregistration_keeps_capacity(self, storage):
        await storage.providers.get_or_create(ADDRESS_ONE, "one", capacity_gb=5.0)
        again = await storage.providers.get_or_create(ADDRESS_ONE, "one", capacity_gb=99.0)
        assert again["available_capacity_gb"] == 5.0

    async def test_touch_heartbeat(self, storage, provider):
        stamp = await storage.providers.touch_heartbeat(provider["id"])
        row = await storage.providers.get(provider["id"])
        assert row["last_heartbeat_at"] == stamp
        assert row["updated_at"] == stamp

    async def test_touch_unknown_provider(self, storage):
        assert await storage.providers.touch_heartbeat("missing") is None

    async def test_set_status(self, storage, provider):
        await storage.providers.set_status(provider["id"], False, "offline")
        row = await storage.providers.get(provider["id"])
        assert row["active"] is False
        assert row["health_status"] == "offline"

    async def test_health_status_checked(self, storage, provider):
        with pytest.raises(aiosqlite.IntegrityError):
            await storage.providers.set_status(provider["id"], True, "sleeping")


class TestAllocationRepo:

    async def test_list_active_excludes_expired(self, storage, provider, make_allocation):
        live = await make_allocation(provider["id"], USER_A)
        await make_allocation(provider["id"], USER_B, expires_in=-10)
        active = await storage.allocations.list_active(provider["id"])
        assert [a["id"] for a in active] == [live["id"]]

    async def test_user_address_stored_normalized(self, storage, provider, make_allocation):
        alloc = await make_allocation(provider["id"], USER_A)
        assert alloc["user_address"] == USER_A.lower()

    async def test_update_used(self, storage, provider, make_allocation):
        alloc = await make_allocation(provider["id"], USER_A)
        await storage.allocations.update_used(alloc["id"], 1.5)
        assert (await storage.allocations.get(alloc["id"]))["used_gb"] == 1.5


class TestStoredFileRepo:

    async def test_list_complete_only(self, storage, make_file):
        done = await make_file(USER_A)
        await make_file(USER_A, complete=False)
        files = await storage.files.list_complete_for_users([USER_A])
        assert [f["id"] for f in files] == [done["id"]]

    async def test_list_for_no_users(self, storage):
        assert await storage.files.list_complete_for_users([]) == []

    async def test_mixed_case_rows_match(self, storage):
        # Rows written by another client without normalization
        await storage.files._db.execute(
            "INSERT INTO stored_files (id, user_address, file_name, file_size, mime_type, "
            "upload_status, original_content_ref, created_at) VALUES (?, ?, ?, ?, ?, 'complete', '', ?)",
            ("f-raw", USER_A, "raw.bin", 10, "", time.time()),
        )
        await storage.files._db.commit()
        files = await storage.files.list_complete_for_users([USER_A.lower()])
        assert [f["id"] for f in files] == ["f-raw"]
        assert await storage.files.sum_complete_size_for_user(USER_A.lower()) == 10

    async def test_sum_complete_size(self, storage, make_file):
        await make_file(USER_A, file_size=100)
        await make_file(USER_A, file_size=250)
        await make_file(USER_A, file_size=999, complete=False)
        await make_file(USER_B, file_size=5000)
        assert await storage.files.sum_complete_size_for_user(USER_A) == 350

    async def test_sum_without_files(self, storage):
        assert await storage.files.sum_complete_size_for_user(USER_A) == 0


class TestArtifactRepo:

    async def _claim(self, storage, provider_id, allocation_id, file_id):
        return await storage.artifacts.create(
            provider_id=provider_id,
            allocation_id=allocation_id,
            original_file_id=file_id,
            artifact_name="file_1.pdf.enc",
            file_size=10,
            local_path="/tmp/file_1.pdf.enc",
            encryption_key="k",
        )

    async def test_unique_per_provider_and_file(self, storage, provider, make_allocation, make_file):
        alloc = await make_allocation(provider["id"], USER_A)
        f = await make_file(USER_A)
        assert await self._claim(storage, provider["id"], alloc["id"], f["id"]) is not None
        assert await self._claim(storage, provider["id"], alloc["id"], f["id"]) is None
        assert await storage.artifacts.count(provider_id=provider["id"]) == 1

    async def test_skipped_insert_leaves_no_open_transaction(self, storage, provider, make_allocation, make_file):
        alloc = await make_allocation(provider["id"], USER_A)
        f1 = await make_file(USER_A)
        f2 = await make_file(USER_A)
        await self._claim(storage, provider["id"], alloc["id"], f1["id"])
        assert await self._claim(storage, provider["id"], alloc["id"], f1["id"]) is None
        assert not storage.artifacts._db.in_transaction
        await self._claim(storage, provider["id"], alloc["id"], f2["id"])
        assert sorted(await storage.artifacts.list_file_ids(provider["id"])) == sorted([f1["id"], f2["id"]])

    async def test_same_file_two_providers(self, storage, provider, make_allocation, make_file):
        other = await storage.providers.get_or_create(ADDRESS_TWO, "two")
        a1 = await make_allocation(provider["id"], USER_A)
        a2 = await make_allocation(other["id"], USER_A)
        f = await make_file(USER_A)
        await self._claim(storage, provider["id"], a1["id"], f["id"])
        await self._claim(storage, other["id"], a2["id"], f["id"])
        assert await storage.artifacts.count(original_file_id=f["id"]) == 2


class TestMigrations:

    async def test_reopen_does_not_reapply_schema(self, tmp_path):
        db_path = str(tmp_path / "market.db")
        for _ in range(2):
            sm = StorageManager(db_path)
            await sm.initialize()
            await sm.close()

        sm = StorageManager(db_path)
        await sm.initialize()
        try:
            async with sm._db.execute("SELECT version FROM schema_version") as cursor:
                rows = await cursor.fetchall()
        finally:
            await sm.close()
        assert [r[0] for r in rows] == [SCHEMA_VERSION]
