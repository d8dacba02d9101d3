"""
SQLite database access for ThreadACL.

This module owns the relational store that is the system of record for:
- Users and groups
- Group memberships (polymorphic member: user or group)
- Content items with their parent links and tags
- Explicit permission grants

Invariants:
    - All multi-statement writes run inside one transaction
    - A failed transaction is rolled back in full and the error re-raised
    - Statements run in the default executor so the event loop never blocks
    - Operational failures surface as StoreUnavailableError, never as "not found"

How to change safely:
    - Schema changes must be additive (CREATE ... IF NOT EXISTS)
    - Keep indices aligned with the visibility query and the closure lookups

Table schema:
    users:              id, name, created_at
    groups:             id, name (UNIQUE), created_at
    group_memberships:  id, member_id, member_kind, group_id -> groups ON DELETE CASCADE
    contents:           id, created_at, author_id -> users, body, parent_id -> contents,
                        category, location, inherit_view, inherit_edit
    content_tags:       content_id -> contents ON DELETE CASCADE, tag
    permissions:        id, permitted_id, permitted_kind, content_id -> contents
                        ON DELETE CASCADE, permission_type, created_at
"""

from __future__ import annotations

import asyncio
import functools
import logging
import sqlite3
import time
from collections.abc import AsyncIterator, Callable, Iterable, Sequence
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, TypeVar

from ..errors import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA = """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        created_at INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS groups (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        created_at INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS group_memberships (
        id TEXT PRIMARY KEY,
        member_id TEXT NOT NULL,
        member_kind TEXT NOT NULL CHECK (member_kind IN ('user', 'group')),
        group_id TEXT NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
        created_at INTEGER NOT NULL,
        UNIQUE (member_id, member_kind, group_id)
    );

    CREATE INDEX IF NOT EXISTS idx_memberships_member
        ON group_memberships(member_id, group_id);
    CREATE INDEX IF NOT EXISTS idx_memberships_group
        ON group_memberships(group_id);

    CREATE TABLE IF NOT EXISTS contents (
        id TEXT PRIMARY KEY,
        created_at INTEGER NOT NULL,
        author_id TEXT NOT NULL REFERENCES users(id),
        body TEXT NOT NULL,
        parent_id TEXT REFERENCES contents(id),
        category TEXT,
        location TEXT,
        inherit_view INTEGER NOT NULL DEFAULT 1,
        inherit_edit INTEGER NOT NULL DEFAULT 1
    );

    CREATE INDEX IF NOT EXISTS idx_contents_inheritance
        ON contents(parent_id, inherit_view, inherit_edit);
    CREATE INDEX IF NOT EXISTS idx_contents_created
        ON contents(created_at DESC);
    CREATE INDEX IF NOT EXISTS idx_contents_author
        ON contents(author_id);

    CREATE TABLE IF NOT EXISTS content_tags (
        content_id TEXT NOT NULL REFERENCES contents(id) ON DELETE CASCADE,
        tag TEXT NOT NULL,
        PRIMARY KEY (content_id, tag)
    );

    CREATE INDEX IF NOT EXISTS idx_content_tags_tag ON content_tags(tag, content_id);

    CREATE TABLE IF NOT EXISTS permissions (
        id TEXT PRIMARY KEY,
        permitted_id TEXT NOT NULL,
        permitted_kind TEXT NOT NULL CHECK (permitted_kind IN ('user', 'group')),
        content_id TEXT NOT NULL REFERENCES contents(id) ON DELETE CASCADE,
        permission_type TEXT NOT NULL CHECK (permission_type IN ('view', 'edit')),
        created_at INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_permissions_lookup
        ON permissions(permitted_id, permission_type, content_id, created_at);
    CREATE INDEX IF NOT EXISTS idx_permissions_content
        ON permissions(content_id, permission_type);

    INSERT OR IGNORE INTO schema_version (version, applied_at)
    VALUES (1, strftime('%s', 'now') * 1000);
"""


def now_ms() -> int:
    """Current time as Unix milliseconds."""
    return int(time.time() * 1000)


def placeholders(count: int) -> str:
    """Return ``?, ?, ...`` for ``count`` parameters."""
    return ", ".join("?" for _ in range(count))


class Transaction:
    """Statements bound to one open SQLite transaction.

    Obtained from ``Database.transaction()``; never constructed directly.
    """

    def __init__(self, db: Database, conn: sqlite3.Connection) -> None:
        self._db = db
        self._conn = conn

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute one statement and return the affected row count."""
        return await self._db._run(lambda: self._conn.execute(sql, params).rowcount)

    async def execute_many(self, sql: str, rows: Iterable[Sequence[Any]]) -> None:
        """Execute one statement for every parameter row (bulk insert)."""
        rows = list(rows)
        if not rows:
            return
        await self._db._run(lambda: self._conn.executemany(sql, rows))

    async def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        return await self._db._run(lambda: self._conn.execute(sql, params).fetchone())

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        return await self._db._run(lambda: self._conn.execute(sql, params).fetchall())


class Database:
    """SQLite store with async helpers and explicit transactions.

    A new connection is opened per operation (or per transaction) so
    concurrent requests never share cursor state. SQLite serializes writers;
    WAL mode lets readers proceed during a write.

    Example:
        >>> db = Database("/var/lib/threadacl/threadacl.db")
        >>> await db.initialize()
        >>> async with db.transaction() as tx:
        ...     await tx.execute("INSERT INTO users ...", (...))
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the database handle.

        Args:
            path: SQLite database file path
            wal_mode: Enable SQLite WAL journal mode
            busy_timeout_ms: How long a writer waits on a locked database
        """
        self.path = Path(path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms

    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
        if self.wal_mode:
            conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    async def _run(self, fn: Callable[[], T]) -> T:
        """Run a blocking SQLite call in the default executor."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn)
        except sqlite3.OperationalError as e:
            logger.error(f"Store operation failed: {e}", extra={"db_path": str(self.path)})
            raise StoreUnavailableError(f"Store operation failed: {e}") from e

    async def _open(self) -> sqlite3.Connection:
        return await self._run(self._connect)

    async def initialize(self) -> None:
        """Create the schema if it does not exist yet."""
        conn = await self._open()
        try:
            await self._run(functools.partial(conn.executescript, SCHEMA))
        finally:
            conn.close()
        logger.info(f"Initialized database: {self.path}")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """Open a write transaction.

        Commits when the block exits normally. Any exception rolls the whole
        transaction back and propagates unchanged.
        """
        conn = await self._open()
        try:
            await self._run(lambda: conn.execute("BEGIN IMMEDIATE"))
            try:
                yield Transaction(self, conn)
            except BaseException:
                await self._run(lambda: conn.execute("ROLLBACK"))
                logger.debug("Transaction rolled back", extra={"db_path": str(self.path)})
                raise
            await self._run(lambda: conn.execute("COMMIT"))
        finally:
            conn.close()

    async def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        """Run a read-only query and return the first row."""

        def query() -> sqlite3.Row | None:
            conn = self._connect()
            try:
                return conn.execute(sql, params).fetchone()
            finally:
                conn.close()

        return await self._run(query)

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        """Run a read-only (possibly recursive) query and return all rows."""

        def query() -> list[sqlite3.Row]:
            conn = self._connect()
            try:
                return conn.execute(sql, params).fetchall()
            finally:
                conn.close()

        return await self._run(query)

    async def count_existing(self, table: str, ids: Iterable[str]) -> int:
        """Count how many of ``ids`` exist as primary keys of ``table``."""
        unique_ids = sorted(set(ids))
        if not unique_ids:
            return 0
        row = await self.fetch_one(
            f"SELECT COUNT(*) FROM {table} WHERE id IN ({placeholders(len(unique_ids))})",
            unique_ids,
        )
        return int(row[0]) if row else 0

    async def find_missing(self, table: str, ids: Iterable[str]) -> list[str]:
        """Return the ids among ``ids`` that have no row in ``table``, sorted."""
        unique_ids = sorted(set(ids))
        if not unique_ids:
            return []
        rows = await self.fetch_all(
            f"SELECT id FROM {table} WHERE id IN ({placeholders(len(unique_ids))})",
            unique_ids,
        )
        found = {row["id"] for row in rows}
        return [i for i in unique_ids if i not in found]
