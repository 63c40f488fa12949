"""
SQLite blob store using aiosqlite.

Ranged reads use substr() so a single node segment can be fetched without
loading the whole hierarchy bundle.
"""

from pathlib import Path

import aiosqlite

from boltgraph.core.storage.base import BlobStore
from boltgraph.utils.exceptions import StorageError
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)


class SQLiteBlobStore(BlobStore):
    """
    SQLite-based blob store.

    Features:
    - Single file, WAL journal
    - Ranged reads via substr()
    """

    def __init__(self, db_path: str = "data/boltgraph.db"):
        """
        Initialize SQLite blob store.

        Args:
            db_path: Path to SQLite database file (":memory:" for a private in-memory DB)
        """
        self.db_path = db_path
        self.connection: aiosqlite.Connection | None = None

        # Ensure directory exists
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def connect(self) -> None:
        """Establish connection to SQLite."""
        if self.connection is None:
            try:
                self.connection = await aiosqlite.connect(self.db_path)
                await self.connection.execute("PRAGMA journal_mode = WAL")
                await self.connection.commit()
            except Exception as e:
                logger.error(
                    "Failed to open SQLite blob store",
                    extra={"db_path": self.db_path, "error": str(e)},
                )
                raise StorageError(f"Failed to open SQLite blob store: {e}") from e

    async def initialize(self) -> None:
        """Initialize database schema."""
        await self.connect()
        await self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS blobs (
                key TEXT PRIMARY KEY,
                data BLOB NOT NULL,
                size INTEGER NOT NULL
            )
            """
        )
        await self.connection.commit()

    async def store(self, key: str, data: bytes) -> None:
        await self.connect()
        try:
            await self.connection.execute(
                "INSERT OR REPLACE INTO blobs (key, data, size) VALUES (?, ?, ?)",
                (key, bytes(data), len(data)),
            )
            await self.connection.commit()
        except Exception as e:
            logger.error("Failed to store blob", extra={"key": key, "error": str(e)})
            raise StorageError(f"Failed to store blob {key}: {e}", context={"key": key}) from e

    async def retrieve(self, key: str) -> bytes | None:
        await self.connect()
        cursor = await self.connection.execute("SELECT data FROM blobs WHERE key = ?", (key,))
        row = await cursor.fetchone()
        return bytes(row[0]) if row else None

    async def exists(self, key: str) -> bool:
        await self.connect()
        cursor = await self.connection.execute("SELECT 1 FROM blobs WHERE key = ?", (key,))
        return await cursor.fetchone() is not None

    async def delete(self, key: str) -> None:
        await self.connect()
        await self.connection.execute("DELETE FROM blobs WHERE key = ?", (key,))
        await self.connection.commit()

    async def list_keys(self, prefix: str = "") -> list[str]:
        await self.connect()
        cursor = await self.connection.execute(
            "SELECT key FROM blobs WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        )
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    def supports_partial_retrieval(self) -> bool:
        return True

    async def retrieve_partial(self, key: str, offset: int, length: int) -> bytes | None:
        await self.connect()
        # substr() is 1-based
        cursor = await self.connection.execute(
            "SELECT substr(data, ?, ?) FROM blobs WHERE key = ?", (offset + 1, length, key)
        )
        row = await cursor.fetchone()
        return bytes(row[0]) if row else None

    async def close(self) -> None:
        """Close the database connection."""
        if self.connection is not None:
            await self.connection.close()
            self.connection = None
