"""
test_claims.py - Claim recording and its de-duplication boundary.
"""

import time

import pytest

from provider.claims import ClaimOutcome, ClaimRecorder
from provider.encryption import EncryptedArtifact

from sample_keys import USER_A, USER_B

pytestmark = pytest.mark.asyncio


def _artifact(name="file_1.pdf.enc"):
    return EncryptedArtifact(
        local_path=f"/tmp/{name}",
        artifact_name=name,
        encryption_key="a2V5",
        artifact_size=120,
        plaintext_size=10,
        filler="random",
    )


async def test_records_claim(backend, storage, provider, make_allocation, make_file):
    alloc = await make_allocation(provider["id"], USER_A)
    f = await make_file(USER_A, file_size=10)
    outcome = await ClaimRecorder(backend).record(provider["id"], f, _artifact())
    assert outcome is ClaimOutcome.RECORDED

    row = await storage.artifacts.get_for_file(provider["id"], f["id"])
    assert row["allocation_id"] == alloc["id"]
    assert row["file_size"] == 10
    assert row["artifact_name"] == "file_1.pdf.enc"
    assert row["encryption_key"] == "a2V5"


async def test_second_claim_is_duplicate(backend, storage, provider, make_allocation, make_file):
    await make_allocation(provider["id"], USER_A)
    f = await make_file(USER_A)
    recorder = ClaimRecorder(backend)
    assert await recorder.record(provider["id"], f, _artifact("a.enc")) is ClaimOutcome.RECORDED
    assert await recorder.record(provider["id"], f, _artifact("b.enc")) is ClaimOutcome.DUPLICATE
    assert await storage.artifacts.count(provider_id=provider["id"]) == 1
    row = await storage.artifacts.get_for_file(provider["id"], f["id"])
    assert row["artifact_name"] == "a.enc"


async def test_owner_without_allocation_is_skipped(backend, storage, provider, make_allocation, make_file):
    await make_allocation(provider["id"], USER_B)
    f = await make_file(USER_A)
    outcome = await ClaimRecorder(backend).record(provider["id"], f, _artifact())
    assert outcome is ClaimOutcome.NO_ALLOCATION
    assert await storage.artifacts.count(provider_id=provider["id"]) == 0


async def test_allocation_expired_before_insert(backend, storage, provider, make_allocation, make_file):
    alloc = await make_allocation(provider["id"], USER_A)
    f = await make_file(USER_A)
    await storage.allocations._db.execute(
        "UPDATE allocations SET expires_at = ? WHERE id = ?", (time.time() - 1, alloc["id"]),
    )
    await storage.allocations._db.commit()

    outcome = await ClaimRecorder(backend).record(provider["id"], f, _artifact())
    assert outcome is ClaimOutcome.NO_ALLOCATION
    assert await storage.artifacts.get_for_file(provider["id"], f["id"]) is None


async def test_mixed_case_owner_matches(backend, storage, provider, make_allocation):
    await make_allocation(provider["id"], USER_A)
    f = await storage.files.create(USER_A, "x.bin", 5)
    f["user_address"] = USER_A.upper().replace("0X", "0x")
    outcome = await ClaimRecorder(backend).record(provider["id"], f, _artifact())
    assert outcome is ClaimOutcome.RECORDED
