"""
test_discovery.py - Allocation reading and unclaimed file discovery.
"""

import pytest

from provider.allocations import AllocationReader, covered_users, match_allocation
from provider.discovery import FileDiscovery

from sample_keys import ADDRESS_TWO, USER_A, USER_B

pytestmark = pytest.mark.asyncio


async def _claim(storage, provider_id, allocation_id, file_id):
    await storage.artifacts.create(
        provider_id=provider_id, allocation_id=allocation_id, original_file_id=file_id,
        artifact_name="x.enc", file_size=1, local_path="/tmp/x.enc", encryption_key="k",
    )


class TestAllocationReader:

    async def test_only_live_allocations(self, backend, provider, make_allocation):
        live = await make_allocation(provider["id"], USER_A)
        await make_allocation(provider["id"], USER_B, expires_in=-1)
        result = await AllocationReader(backend).active_allocations(provider["id"])
        assert [a["id"] for a in result] == [live["id"]]

    async def test_no_allocations(self, backend, provider):
        assert await AllocationReader(backend).active_allocations(provider["id"]) == []

    async def test_covered_users_deduplicated(self):
        allocations = [
            {"user_address": USER_A},
            {"user_address": USER_A.lower()},
            {"user_address": USER_B},
        ]
        assert covered_users(allocations) == [USER_A.lower(), USER_B.lower()]

    async def test_match_allocation_ignores_case(self):
        allocations = [{"id": "a1", "user_address": USER_A.lower()}]
        assert match_allocation(allocations, USER_A)["id"] == "a1"
        assert match_allocation(allocations, USER_B) is None


class TestFileDiscovery:

    async def test_finds_complete_files_for_covered_users(self, backend, provider, make_file):
        f = await make_file(USER_A)
        await make_file(USER_A, complete=False)
        await make_file(USER_B)
        found = await FileDiscovery(backend).unclaimed_files(provider["id"], [USER_A])
        assert [x["id"] for x in found] == [f["id"]]

    async def test_excludes_claimed(self, backend, storage, provider, make_allocation, make_file):
        alloc = await make_allocation(provider["id"], USER_A)
        claimed = await make_file(USER_A)
        fresh = await make_file(USER_A)
        await _claim(storage, provider["id"], alloc["id"], claimed["id"])
        found = await FileDiscovery(backend).unclaimed_files(provider["id"], [USER_A])
        assert [x["id"] for x in found] == [fresh["id"]]

    async def test_other_providers_claims_do_not_exclude(self, backend, storage, provider,
                                                          make_allocation, make_file):
        other = await storage.providers.get_or_create(ADDRESS_TWO, "two")
        alloc = await make_allocation(other["id"], USER_A)
        f = await make_file(USER_A)
        await _claim(storage, other["id"], alloc["id"], f["id"])
        found = await FileDiscovery(backend).unclaimed_files(provider["id"], [USER_A])
        assert [x["id"] for x in found] == [f["id"]]

    async def test_mixed_case_user_addresses(self, backend, provider, make_file):
        f = await make_file(USER_A)
        found = await FileDiscovery(backend).unclaimed_files(
            provider["id"], [USER_A.upper().replace("0X", "0x")],
        )
        assert [x["id"] for x in found] == [f["id"]]

    async def test_no_users(self, backend, provider, make_file):
        await make_file(USER_A)
        assert await FileDiscovery(backend).unclaimed_files(provider["id"], []) == []
