#!/usr/bin/env python3
"""Seed a backend with allocations and completed uploads for a provider.

Stands in for the purchase and upload flows so the daemon has something
to claim during local runs.
"""

import argparse
import asyncio
import random
import uuid

FILE_PROFILES = [
    ("notes.txt", "text/plain", 4 * 1024),
    ("report.pdf", "application/pdf", 2 * 1024 * 1024),
    ("photo.png", "image/png", 800 * 1024),
    ("archive.zip", "application/zip", 5 * 1024 * 1024),
    ("page.html", "text/html", 32 * 1024),
    ("blob.dat", "application/octet-stream", 256 * 1024),
]


async def seed_allocations(storage, provider_id: str, addresses: list, days: int):
    print(f"Creating {len(addresses)} allocations...")
    for addr in addresses:
        gb = random.choice([1, 5, 10, 50])
        await storage.allocations.create(
            provider_id=provider_id,
            user_address=addr,
            allocated_gb=gb,
            duration_sec=days * 86400,
            paid_amount=gb * 1.0,
            payment_tx_ref="0x" + uuid.uuid4().hex * 2,
        )


async def seed_files(storage, addresses: list, count: int):
    print(f"Creating {count} completed uploads...")
    for i in range(count):
        name, mime, size = random.choice(FILE_PROFILES)
        rec = await storage.files.create(
            # Mixed case on purpose: addresses arrive that way from wallets
            user_address=random.choice(addresses).upper().replace("0X", "0x"),
            file_name=f"{i:04d}-{name}",
            file_size=int(size * random.uniform(0.5, 1.5)),
            mime_type=mime,
            original_content_ref=f"bafy{uuid.uuid4().hex}",
        )
        await storage.files.mark_complete(rec["id"])


async def main():
    parser = argparse.ArgumentParser(description="Seed allocations and files for a provider")
    parser.add_argument("--db", type=str, default="data/marketplace.db", help="Database path")
    parser.add_argument("--provider-address", type=str, required=True, help="Provider identity address")
    parser.add_argument("--users", type=int, default=3, help="Users with allocations")
    parser.add_argument("--files", type=int, default=10, help="Completed uploads to create")
    parser.add_argument("--days", type=int, default=30, help="Allocation lifetime in days")
    args = parser.parse_args()

    from provider.identity import default_display_name, normalize_address
    from provider.storage import StorageManager

    print(f"Connecting to database: {args.db}")
    storage = StorageManager(args.db)
    await storage.initialize()
    try:
        identity = normalize_address(args.provider_address)
        provider = await storage.providers.get_by_identity(identity)
        if provider is None:
            provider = await storage.providers.get_or_create(
                identity, display_name=default_display_name(identity), capacity_gb=100.0,
            )
            await storage.providers.set_status(provider["id"], False, "offline")
        addresses = [f"0x{uuid.uuid4().hex}{uuid.uuid4().hex[:8]}" for _ in range(args.users)]
        await seed_allocations(storage, provider["id"], addresses, args.days)
        await seed_files(storage, addresses, args.files)

        print("\n=== Summary ===")
        print(f"Provider:    {provider['identity_address']} ({provider['id']})")
        print(f"Allocations: {len(await storage.allocations.list_active(provider['id']))}")
        print(f"Files:       {len(await storage.files.list_complete_for_users(addresses))}")
    finally:
        await storage.close()


if __name__ == "__main__":
    asyncio.run(main())
