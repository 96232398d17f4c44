from ._schema import SCHEMA_VERSION, SCHEMA_SQL
from .providers import ProviderRepo
from .allocations import AllocationRepo
from .files import StoredFileRepo
from .artifacts import ArtifactRepo
from .manager import StorageManager

__all__ = [
    "SCHEMA_VERSION",
    "SCHEMA_SQL",
    "ProviderRepo",
    "AllocationRepo",
    "StoredFileRepo",
    "ArtifactRepo",
    "StorageManager",
]
