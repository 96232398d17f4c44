import logging
from typing import Optional

import aiosqlite

from ._schema import SCHEMA_VERSION
from ._migrate import run_migrations
from .providers import ProviderRepo
from .allocations import AllocationRepo
from .files import StoredFileRepo
from .artifacts import ArtifactRepo

logger = logging.getLogger("storage")


class StorageManager:
    """Top-level manager: opens the database, runs migrations, exposes repos."""

    def __init__(self, db_path: str = "data/marketplace.db"):
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None
        self.providers: Optional[ProviderRepo] = None
        self.allocations: Optional[AllocationRepo] = None
        self.files: Optional[StoredFileRepo] = None
        self.artifacts: Optional[ArtifactRepo] = None

    async def initialize(self):
        self._db = await aiosqlite.connect(self.db_path)
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA foreign_keys=ON")
        await self._db.execute("PRAGMA busy_timeout=5000")
        await run_migrations(self._db, logger)

        self.providers = ProviderRepo(self._db)
        self.allocations = AllocationRepo(self._db)
        self.files = StoredFileRepo(self._db)
        self.artifacts = ArtifactRepo(self._db)

        logger.info("Storage initialized: %s (schema v%d)", self.db_path, SCHEMA_VERSION)

    async def close(self):
        if self._db:
            await self._db.close()
            self._db = None
            self.providers = None
            self.allocations = None
            self.files = None
            self.artifacts = None
            logger.info("Storage closed")
