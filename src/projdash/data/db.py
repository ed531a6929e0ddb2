"""Local project store schema and the aiosqlite connection that owns it."""

from __future__ import annotations

import logging
from pathlib import Path
from types import TracebackType
from typing import Any

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS profiles (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    full_name TEXT,
    avatar_url TEXT,
    role TEXT NOT NULL DEFAULT 'Member' CHECK (role IN ('Admin', 'Manager', 'Member')),
    password_hash TEXT,
    password_salt TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS project_info (
    id TEXT PRIMARY KEY,
    seq INTEGER NOT NULL UNIQUE,
    project_no TEXT NOT NULL UNIQUE,
    project_title TEXT NOT NULL,
    project_summary TEXT NOT NULL DEFAULT '',
    project_url TEXT,
    status TEXT NOT NULL DEFAULT 'Pending' CHECK (
        status IN ('In Progress', 'Completed', 'Upcoming', 'Pending')
    ),
    creator_id TEXT REFERENCES profiles(id) ON DELETE SET NULL,
    files_count INTEGER NOT NULL DEFAULT 0,
    total_budget REAL NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS project_direct_info (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL UNIQUE REFERENCES project_info(id) ON DELETE CASCADE,
    project_no TEXT NOT NULL,
    strategy_fit TEXT NOT NULL,
    demand_urgency TEXT NOT NULL DEFAULT '',
    bottleneck TEXT,
    product_and_edge TEXT NOT NULL DEFAULT '',
    trl TEXT,
    resources TEXT,
    supporting_materials_present TEXT,
    information_completeness_note TEXT,
    ai_directional_signal TEXT NOT NULL DEFAULT 'NEED_MORE_INFO',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS project_files (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES project_info(id) ON DELETE CASCADE,
    project_no TEXT NOT NULL,
    file_name TEXT NOT NULL,
    file_path TEXT NOT NULL UNIQUE,
    file_url TEXT NOT NULL,
    file_size INTEGER NOT NULL DEFAULT 0,
    file_type TEXT NOT NULL DEFAULT 'unknown',
    document_category TEXT NOT NULL DEFAULT 'Other Related Documents',
    uploaded_by TEXT REFERENCES profiles(id) ON DELETE SET NULL,
    mime_type TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS project_milestones (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES project_info(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    description TEXT,
    milestone_date TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'Upcoming'
);

CREATE TABLE IF NOT EXISTS project_transactions (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES project_info(id) ON DELETE CASCADE,
    transaction_date TEXT NOT NULL,
    description TEXT,
    category TEXT NOT NULL DEFAULT 'Other',
    amount REAL NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'Pending' CHECK (status IN ('Paid', 'Pending'))
);

CREATE TRIGGER IF NOT EXISTS project_files_ai AFTER INSERT ON project_files BEGIN
    UPDATE project_info SET files_count = files_count + 1 WHERE id = new.project_id;
END;

CREATE TRIGGER IF NOT EXISTS project_files_ad AFTER DELETE ON project_files BEGIN
    UPDATE project_info SET files_count = MAX(files_count - 1, 0) WHERE id = old.project_id;
END;

CREATE VIEW IF NOT EXISTS projects_with_creator AS
    SELECT p.*,
           COALESCE(NULLIF(pr.full_name, ''), pr.email) AS creator_name,
           pr.email AS creator_email,
           pr.avatar_url AS creator_avatar
    FROM project_info p
    LEFT JOIN profiles pr ON pr.id = p.creator_id;

CREATE INDEX IF NOT EXISTS idx_project_info_created ON project_info(created_at);
CREATE INDEX IF NOT EXISTS idx_project_info_status ON project_info(status);
CREATE INDEX IF NOT EXISTS idx_project_files_project ON project_files(project_id);
CREATE INDEX IF NOT EXISTS idx_project_milestones_project ON project_milestones(project_id);
CREATE INDEX IF NOT EXISTS idx_project_transactions_project ON project_transactions(project_id);
"""


class Database:
    """Single aiosqlite connection; rebuilds the schema when its version changes."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self.schema_rebuilt = False

    async def __aenter__(self) -> Database:
        await self.connect()
        return self

    async def connect(self) -> Database:
        """Connect to SQLite and ensure schema."""
        if str(self._db_path) != ":memory:":
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(str(self._db_path))
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA synchronous=NORMAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")
        await self._ensure_schema()
        await self._conn.commit()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the SQLite connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            msg = "Database not connected. Use 'async with Database(path) as db:'"
            raise RuntimeError(msg)
        return self._conn

    async def execute(self, sql: str, params: tuple[Any, ...] = ()) -> aiosqlite.Cursor:
        """Execute a SQL statement."""
        return await self.conn.execute(sql, params)

    async def fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[aiosqlite.Row]:
        """Fetch all rows from a query."""
        cursor = await self.conn.execute(sql, params)
        return await cursor.fetchall()  # type: ignore[return-value]

    async def fetch_one(self, sql: str, params: tuple[Any, ...] = ()) -> aiosqlite.Row | None:
        """Fetch a single row from a query."""
        cursor = await self.conn.execute(sql, params)
        return await cursor.fetchone()  # type: ignore[return-value]

    async def commit(self) -> None:
        """Commit the current transaction."""
        await self.conn.commit()

    async def rollback(self) -> None:
        """Roll back the current transaction."""
        await self.conn.rollback()

    async def _ensure_schema(self) -> None:
        """Rebuild schema when version changes; otherwise ensure all objects exist."""
        self.schema_rebuilt = False
        await self.conn.execute("""
            CREATE TABLE IF NOT EXISTS app_meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        row = await self.fetch_one("SELECT value FROM app_meta WHERE key = 'schema_version'")
        current_version = int(row["value"]) if row and str(row["value"]).isdigit() else 0
        if current_version == SCHEMA_VERSION:
            await self.conn.executescript(SCHEMA_SQL)
            return

        self.schema_rebuilt = True
        logger.info("Rebuilding DB schema from version %s to %s", current_version, SCHEMA_VERSION)
        await self.conn.execute("PRAGMA foreign_keys=OFF")
        await self.conn.executescript("""
            DROP VIEW IF EXISTS projects_with_creator;
            DROP TRIGGER IF EXISTS project_files_ai;
            DROP TRIGGER IF EXISTS project_files_ad;
            DROP TABLE IF EXISTS project_transactions;
            DROP TABLE IF EXISTS project_milestones;
            DROP TABLE IF EXISTS project_files;
            DROP TABLE IF EXISTS project_direct_info;
            DROP TABLE IF EXISTS project_info;
            DROP TABLE IF EXISTS profiles;
        """)
        await self.conn.execute("PRAGMA foreign_keys=ON")
        await self.conn.executescript(SCHEMA_SQL)
        await self.conn.execute(
            "INSERT OR REPLACE INTO app_meta (key, value) VALUES ('schema_version', ?)",
            (str(SCHEMA_VERSION),),
        )
