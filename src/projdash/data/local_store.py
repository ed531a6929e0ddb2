"""SQLite-backed project store with an in-process change feed."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite

from projdash.data.changes import ChangeFeed, Subscription
from projdash.data.protocols import FILES_TABLE, PROJECTS_TABLE
from projdash.data.rows import (
    parse_milestone,
    parse_project_file,
    parse_project_rows,
    parse_project_summary,
    parse_strategy,
    parse_transaction,
    strategy_columns,
)
from projdash.errors import (
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    TransientNetworkError,
    ValidationError,
)
from projdash.models.auth import UserProfile, UserRole
from projdash.models.budget import BudgetTransaction, Milestone, TransactionStatus
from projdash.models.changes import ChangeEvent, ChangeKind
from projdash.models.files import DocumentCategory, ProjectFile
from projdash.models.projects import (
    ProjectDraft,
    ProjectFilters,
    ProjectPage,
    ProjectSummary,
    ProjectUpdate,
)

if TYPE_CHECKING:
    from projdash.data.db import Database
    from projdash.models.strategy import StrategyInfo

logger = logging.getLogger(__name__)

PROJECT_NO_BASE = 1000


def utc_now() -> str:
    """ISO timestamp with microseconds so creation order is stable."""
    return datetime.now(tz=UTC).isoformat(timespec="microseconds")


def like_pattern(text: str) -> str:
    """Substring LIKE pattern with ``%``/``_`` escaped (use ``ESCAPE '\\'``)."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def storage_file_name(file_name: str) -> str:
    """Unique blob name that keeps the original extension."""
    ext = Path(file_name).suffix.lstrip(".").lower() or "bin"
    return f"{int(time.time() * 1000)}_{secrets.token_hex(4)}.{ext}"


class LocalProjectStore:
    """Project store on the local SQLite database.

    Blobs live under ``storage_dir``. When an ``actor`` is set, members may
    only modify projects they created; managers and admins may modify any.
    Without an actor the store runs in single-user mode.
    """

    def __init__(self, db: Database, storage_dir: Path) -> None:
        self._db = db
        self._storage_dir = storage_dir
        self._feed = ChangeFeed()
        self.actor: UserProfile | None = None

    # ── Queries ──

    async def list_projects(
        self, filters: ProjectFilters, page: int, per_page: int
    ) -> ProjectPage:
        if page < 1 or per_page < 1:
            msg = f"Invalid page window page={page} per_page={per_page}"
            raise ValidationError(msg)
        conditions: list[str] = []
        params: list[Any] = []
        filters = filters.normalized()
        if filters.project_no:
            conditions.append("project_no LIKE ? ESCAPE '\\'")
            params.append(like_pattern(filters.project_no))
        if filters.keyword:
            conditions.append(
                "(project_title LIKE ? ESCAPE '\\' OR project_summary LIKE ? ESCAPE '\\')"
            )
            pattern = like_pattern(filters.keyword)
            params.extend([pattern, pattern])
        if filters.status is not None:
            conditions.append("status = ?")
            params.append(filters.status.value)

        where = ""
        if conditions:
            where = "WHERE " + " AND ".join(conditions)

        async with self._translate_errors():
            count_row = await self._db.fetch_one(
                f"SELECT COUNT(*) AS cnt FROM projects_with_creator {where}", tuple(params)
            )
            total = int(count_row["cnt"]) if count_row else 0
            offset = (page - 1) * per_page
            rows = await self._db.fetch_all(
                f"""SELECT * FROM projects_with_creator
                    {where}
                    ORDER BY created_at DESC, seq DESC
                    LIMIT ? OFFSET ?""",
                (*params, per_page, offset),
            )
        return ProjectPage(
            items=parse_project_rows(list(rows)), total=total, page=page, per_page=per_page
        )

    async def get_project(self, project_id: str) -> ProjectSummary:
        async with self._translate_errors():
            row = await self._db.fetch_one(
                "SELECT * FROM projects_with_creator WHERE id = ?", (project_id,)
            )
        if row is None:
            msg = f"Project {project_id} not found"
            raise NotFoundError(msg)
        return parse_project_summary(row)

    async def get_strategy(self, project_id: str) -> StrategyInfo | None:
        async with self._translate_errors():
            row = await self._db.fetch_one(
                "SELECT * FROM project_direct_info WHERE project_id = ?", (project_id,)
            )
        return parse_strategy(row) if row is not None else None

    async def list_files(self, project_id: str) -> list[ProjectFile]:
        async with self._translate_errors():
            rows = await self._db.fetch_all(
                """SELECT f.*, COALESCE(NULLIF(p.full_name, ''), p.email) AS uploaded_by_name
                   FROM project_files f
                   LEFT JOIN profiles p ON p.id = f.uploaded_by
                   WHERE f.project_id = ?
                   ORDER BY f.created_at DESC""",
                (project_id,),
            )
        return [parse_project_file(row) for row in rows]

    async def list_milestones(self, project_id: str) -> list[Milestone]:
        async with self._translate_errors():
            rows = await self._db.fetch_all(
                """SELECT * FROM project_milestones
                   WHERE project_id = ? ORDER BY milestone_date ASC""",
                (project_id,),
            )
        return [parse_milestone(row) for row in rows]

    async def list_transactions(self, project_id: str) -> list[BudgetTransaction]:
        async with self._translate_errors():
            rows = await self._db.fetch_all(
                """SELECT * FROM project_transactions
                   WHERE project_id = ? ORDER BY transaction_date DESC""",
                (project_id,),
            )
        return [parse_transaction(row) for row in rows]

    async def get_total_budget(self, project_id: str) -> float:
        async with self._translate_errors():
            row = await self._db.fetch_one(
                "SELECT total_budget FROM project_info WHERE id = ?", (project_id,)
            )
        if row is None:
            msg = f"Project {project_id} not found"
            raise NotFoundError(msg)
        return float(row["total_budget"] or 0.0)

    # ── Mutations ──

    async def create_project(
        self, draft: ProjectDraft, creator_id: str | None = None
    ) -> ProjectSummary:
        if not draft.title.strip():
            msg = "Project title is required"
            raise ValidationError(msg)
        if creator_id is None and self.actor is not None:
            creator_id = self.actor.id
        project_id = str(uuid.uuid4())
        now = utc_now()
        async with self._translate_errors():
            row = await self._db.fetch_one("SELECT COALESCE(MAX(seq), 0) AS seq FROM project_info")
            seq = int(row["seq"]) + 1 if row else 1
            await self._db.execute(
                """INSERT INTO project_info (
                       id, seq, project_no, project_title, project_summary, project_url,
                       status, creator_id, created_at, updated_at
                   ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    project_id,
                    seq,
                    f"PJ-{PROJECT_NO_BASE + seq}",
                    draft.title.strip(),
                    draft.summary,
                    draft.project_url or None,
                    draft.status.value,
                    creator_id,
                    now,
                    now,
                ),
            )
            await self._db.commit()
        self._publish(PROJECTS_TABLE, ChangeKind.INSERT, project_id)
        return await self.get_project(project_id)

    async def update_project(self, project_id: str, changes: ProjectUpdate) -> ProjectSummary:
        await self._check_write_access(project_id)
        columns = changes.changed_fields()
        if "project_title" in columns and not columns["project_title"].strip():
            msg = "Project title is required"
            raise ValidationError(msg)
        if columns:
            assignments = ", ".join(f"{column} = ?" for column in columns)
            async with self._translate_errors():
                await self._db.execute(
                    f"UPDATE project_info SET {assignments}, updated_at = ? WHERE id = ?",
                    (*columns.values(), utc_now(), project_id),
                )
                await self._db.commit()
            self._publish(PROJECTS_TABLE, ChangeKind.UPDATE, project_id)
        return await self.get_project(project_id)

    async def delete_project(self, project_id: str) -> None:
        await self._check_write_access(project_id)
        async with self._translate_errors():
            rows = await self._db.fetch_all(
                "SELECT file_path FROM project_files WHERE project_id = ?", (project_id,)
            )
        async with self._translate_errors():
            cursor = await self._db.execute("DELETE FROM project_info WHERE id = ?", (project_id,))
            await self._db.commit()
        if cursor.rowcount == 0:
            msg = f"Project {project_id} not found"
            raise NotFoundError(msg)
        for row in rows:
            await self._remove_blob(str(row["file_path"]))
        self._publish(PROJECTS_TABLE, ChangeKind.DELETE, project_id)

    async def upsert_strategy(
        self, project_id: str, project_no: str, info: StrategyInfo
    ) -> StrategyInfo:
        await self._check_write_access(project_id)
        columns = strategy_columns(info)
        now = utc_now()
        names = ", ".join(columns)
        placeholders = ", ".join("?" for _ in columns)
        updates = ", ".join(f"{name} = excluded.{name}" for name in columns)
        async with self._translate_errors():
            await self._db.execute(
                f"""INSERT INTO project_direct_info (
                        id, project_id, project_no, {names}, created_at, updated_at
                    ) VALUES (?, ?, ?, {placeholders}, ?, ?)
                    ON CONFLICT(project_id) DO UPDATE SET {updates},
                        updated_at = excluded.updated_at""",
                (str(uuid.uuid4()), project_id, project_no, *columns.values(), now, now),
            )
            await self._db.commit()
        self._publish("project_direct_info", ChangeKind.UPDATE, project_id)
        stored = await self.get_strategy(project_id)
        return stored if stored is not None else info

    async def upload_file(
        self,
        project_id: str,
        project_no: str,
        file_name: str,
        content: bytes,
        *,
        category: DocumentCategory = DocumentCategory.OTHER,
        mime_type: str = "",
        uploaded_by: str | None = None,
    ) -> ProjectFile:
        await self.get_project(project_id)
        if uploaded_by is None and self.actor is not None:
            uploaded_by = self.actor.id
        storage_path = f"{project_no}/{storage_file_name(file_name)}"
        blob = self._storage_dir / storage_path
        try:
            await asyncio.to_thread(_write_blob, blob, content)
        except OSError as exc:
            msg = f"Failed to upload file: {exc}"
            raise StoreError(msg) from exc

        file_id = str(uuid.uuid4())
        try:
            async with self._translate_errors():
                await self._db.execute(
                    """INSERT INTO project_files (
                           id, project_id, project_no, file_name, file_path, file_url,
                           file_size, file_type, document_category, uploaded_by, mime_type,
                           created_at
                       ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        file_id,
                        project_id,
                        project_no,
                        file_name,
                        storage_path,
                        blob.resolve().as_uri(),
                        len(content),
                        Path(file_name).suffix.lstrip(".").lower() or "unknown",
                        category.value,
                        uploaded_by,
                        mime_type or None,
                        utc_now(),
                    ),
                )
                await self._db.commit()
        except (StoreError, ValidationError):
            await self._remove_blob(storage_path)
            raise
        self._publish(FILES_TABLE, ChangeKind.INSERT, file_id)
        self._publish(PROJECTS_TABLE, ChangeKind.UPDATE, project_id)
        return await self._get_file(file_id)

    async def delete_file(self, file_id: str) -> None:
        project_file = await self._get_file(file_id)
        await self._check_write_access(project_file.project_id)
        await self._remove_blob(project_file.file_path)
        async with self._translate_errors():
            await self._db.execute("DELETE FROM project_files WHERE id = ?", (file_id,))
            await self._db.commit()
        self._publish(FILES_TABLE, ChangeKind.DELETE, file_id)
        self._publish(PROJECTS_TABLE, ChangeKind.UPDATE, project_file.project_id)

    async def download_file(self, file_id: str) -> tuple[ProjectFile, bytes]:
        project_file = await self._get_file(file_id)
        blob = self._storage_dir / project_file.file_path
        try:
            content = await asyncio.to_thread(blob.read_bytes)
        except FileNotFoundError:
            msg = f"Stored content for {project_file.file_name} is missing"
            raise NotFoundError(msg) from None
        except OSError as exc:
            msg = f"Failed to download file: {exc}"
            raise StoreError(msg) from exc
        return project_file, content

    # ── Timeline / budget writes (seeding and editor) ──

    async def add_milestone(
        self,
        project_id: str,
        title: str,
        date: str,
        description: str = "",
        status: str = "Upcoming",
    ) -> Milestone:
        milestone_id = str(uuid.uuid4())
        async with self._translate_errors():
            await self._db.execute(
                """INSERT INTO project_milestones (
                       id, project_id, title, description, milestone_date, status
                   ) VALUES (?, ?, ?, ?, ?, ?)""",
                (milestone_id, project_id, title, description, date, status),
            )
            await self._db.commit()
        return Milestone(
            id=milestone_id, title=title, description=description, date=date, status=status
        )

    async def add_transaction(
        self,
        project_id: str,
        date: str,
        amount: float,
        *,
        description: str = "",
        category: str = "Other",
        status: TransactionStatus = TransactionStatus.PENDING,
    ) -> BudgetTransaction:
        transaction_id = str(uuid.uuid4())
        async with self._translate_errors():
            await self._db.execute(
                """INSERT INTO project_transactions (
                       id, project_id, transaction_date, description, category, amount, status
                   ) VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (transaction_id, project_id, date, description, category, amount, status.value),
            )
            await self._db.commit()
        return BudgetTransaction(
            id=transaction_id,
            date=date,
            description=description,
            category=category,
            amount=amount,
            status=status,
        )

    async def set_total_budget(self, project_id: str, amount: float) -> None:
        async with self._translate_errors():
            cursor = await self._db.execute(
                "UPDATE project_info SET total_budget = ?, updated_at = ? WHERE id = ?",
                (amount, utc_now(), project_id),
            )
            await self._db.commit()
        if cursor.rowcount == 0:
            msg = f"Project {project_id} not found"
            raise NotFoundError(msg)

    # ── Realtime ──

    async def subscribe_to_changes(self, table: str) -> Subscription:
        return self._feed.subscribe(table)

    async def close(self) -> None:
        self._feed.close()

    # ── Helpers ──

    def _publish(self, table: str, kind: ChangeKind, record_id: str) -> None:
        self._feed.publish(ChangeEvent(table=table, kind=kind, record_id=record_id))

    async def _get_file(self, file_id: str) -> ProjectFile:
        async with self._translate_errors():
            row = await self._db.fetch_one(
                """SELECT f.*, COALESCE(NULLIF(p.full_name, ''), p.email) AS uploaded_by_name
                   FROM project_files f
                   LEFT JOIN profiles p ON p.id = f.uploaded_by
                   WHERE f.id = ?""",
                (file_id,),
            )
        if row is None:
            msg = f"File {file_id} not found"
            raise NotFoundError(msg)
        return parse_project_file(row)

    async def _check_write_access(self, project_id: str) -> None:
        async with self._translate_errors():
            row = await self._db.fetch_one(
                "SELECT creator_id FROM project_info WHERE id = ?", (project_id,)
            )
        if row is None:
            msg = f"Project {project_id} not found"
            raise NotFoundError(msg)
        actor = self.actor
        if actor is None or actor.role in (UserRole.ADMIN, UserRole.MANAGER):
            return
        creator_id = row["creator_id"]
        if creator_id is not None and creator_id != actor.id:
            msg = "Only the project's creator or a manager can change it"
            raise PermissionDeniedError(msg)

    async def _remove_blob(self, storage_path: str) -> None:
        blob = self._storage_dir / storage_path
        try:
            await asyncio.to_thread(blob.unlink, missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to delete stored file %s: %s", storage_path, exc)

    @asynccontextmanager
    async def _translate_errors(self) -> AsyncIterator[None]:
        try:
            yield
        except aiosqlite.IntegrityError as exc:
            await self._db.rollback()
            msg = f"Constraint violation: {exc}"
            raise ValidationError(msg) from exc
        except aiosqlite.OperationalError as exc:
            msg = f"Database unavailable: {exc}"
            raise TransientNetworkError(msg) from exc
        except aiosqlite.Error as exc:
            msg = f"Database error: {exc}"
            raise StoreError(msg) from exc


def _write_blob(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
