"""Storage layer: asyncpg pool wrapper and schema bootstrap.

``create_schema`` lives in ``src.storage.schema`` and is imported from
there directly, since it depends on every repository module.
"""

from src.storage.database import Database, StorageError

__all__ = ["Database", "StorageError"]
