"""SQLite audit log of every processed stream event."""
import asyncio
import sqlite3
from pathlib import Path
from typing import Optional

import aiosqlite
import structlog

from dbc_alert.errors import StorageUnavailable, WriteFailure
from dbc_alert.models import EventRecord

logger = structlog.get_logger()

DB_PATH = "./tokens.db"


class Database:
    """Async SQLite event store.

    `append` is the only write path. Rows are never updated or deleted.
    """

    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    @classmethod
    async def open(cls, db_path: str = DB_PATH) -> "Database":
        """Create a store and connect it, raising StorageUnavailable on failure."""
        db = cls(db_path)
        await db.connect()
        return db

    async def connect(self):
        """Connect to database and create tables."""
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(self.db_path)
            self._conn.row_factory = aiosqlite.Row
            await self._create_tables()
        except (OSError, sqlite3.Error) as e:
            if self._conn is not None:
                await self._conn.close()
                self._conn = None
            raise StorageUnavailable(f"Cannot open event store at {self.db_path}: {e}") from e
        logger.info("database_connected", path=self.db_path)

    async def close(self):
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("database_closed")

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    async def _create_tables(self):
        """Create the events table if it doesn't exist."""
        await self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                mint TEXT,
                pool TEXT,
                signature TEXT,
                found_by TEXT,
                matched_team TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );
        """)
        await self._conn.commit()

    async def append(self, record: EventRecord) -> int:
        """Insert one event row and return its id."""
        # insert + commit + lastrowid must not interleave between callers
        async with self._write_lock:
            try:
                cursor = await self.conn.execute("""
                    INSERT INTO events (mint, pool, signature, found_by, matched_team)
                    VALUES (?, ?, ?, ?, ?)
                """, (
                    record.mint,
                    record.pool,
                    record.signature,
                    record.found_by,
                    record.matched_team,
                ))
                row_id = cursor.lastrowid
                await cursor.close()
                await self.conn.commit()
            # ValueError / RuntimeError: connection closed or never opened
            except (sqlite3.Error, ValueError, RuntimeError) as e:
                raise WriteFailure(f"Failed to insert event {record.signature!r}: {e}") from e
        return row_id

    async def count(self) -> int:
        """Return the number of stored events."""
        async with self.conn.execute("SELECT COUNT(*) FROM events") as cursor:
            row = await cursor.fetchone()
        return row[0]

    async def recent(self, limit: int = 10) -> list[EventRecord]:
        """Return the most recent events, newest first."""
        async with self.conn.execute(
            "SELECT * FROM events ORDER BY id DESC LIMIT ?",
            (limit,)
        ) as cursor:
            rows = await cursor.fetchall()
        return [
            EventRecord(
                id=row["id"],
                mint=row["mint"],
                pool=row["pool"],
                signature=row["signature"],
                found_by=row["found_by"],
                matched_team=row["matched_team"],
                created_at=row["created_at"],
            )
            for row in rows
        ]
