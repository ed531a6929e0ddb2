"""Project store on a hosted Supabase backend (PostgREST + Storage)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from projdash.data.changes import PollingChangeFeed, Subscription
from projdash.data.local_store import storage_file_name
from projdash.data.protocols import PROJECTS_TABLE
from projdash.data.rest_client import json_body, parse_content_range
from projdash.data.rows import (
    as_dict,
    parse_milestone,
    parse_project_file,
    parse_project_rows,
    parse_project_summary,
    parse_strategy,
    parse_transaction,
    row_float,
    strategy_columns,
)
from projdash.errors import (
    DashboardError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    ValidationError,
)
from projdash.models.files import DocumentCategory, ProjectFile
from projdash.models.projects import (
    ProjectDraft,
    ProjectFilters,
    ProjectPage,
    ProjectSummary,
    ProjectUpdate,
)

if TYPE_CHECKING:
    from projdash.data.rest_client import RestClient
    from projdash.models.budget import BudgetTransaction, Milestone
    from projdash.models.strategy import StrategyInfo

logger = logging.getLogger(__name__)

REST = "rest/v1"
STORAGE = "storage/v1"
RANGE_NOT_SATISFIABLE = 416

_PROBE_COLUMNS = {PROJECTS_TABLE: "updated_at"}


def quote_filter_value(value: str) -> str:
    """Double-quote a PostgREST value so commas and parentheses stay literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_list_params(filters: ProjectFilters) -> list[tuple[str, str]]:
    """PostgREST query parameters for the project list."""
    filters = filters.normalized()
    params: list[tuple[str, str]] = [("select", "*")]
    if filters.project_no:
        params.append(("project_no", f"ilike.{quote_filter_value(f'*{filters.project_no}*')}"))
    if filters.keyword:
        pattern = quote_filter_value(f"*{filters.keyword}*")
        params.append(
            ("or", f"(project_title.ilike.{pattern},project_summary.ilike.{pattern})")
        )
    if filters.status is not None:
        params.append(("status", f"eq.{filters.status.value}"))
    params.append(("order", "created_at.desc"))
    return params


def page_range(page: int, per_page: int) -> tuple[int, int]:
    """Inclusive zero-based row range for a one-based page."""
    start = (page - 1) * per_page
    return start, start + per_page - 1


class RemoteProjectStore:
    """``ProjectStoreProtocol`` over Supabase.

    Row-level security decides who may change what; a mutation that matches
    zero rows on an existing project is reported as ``PermissionDeniedError``.
    Change notifications come from a ``PollingChangeFeed``.
    """

    def __init__(
        self,
        client: RestClient,
        *,
        bucket: str = "project-documents",
        poll_interval: float = 5.0,
    ) -> None:
        self._client = client
        self._bucket = bucket
        self._feed = PollingChangeFeed(self._probe, interval=poll_interval)

    # ── Queries ──

    async def list_projects(
        self, filters: ProjectFilters, page: int, per_page: int
    ) -> ProjectPage:
        if page < 1 or per_page < 1:
            msg = f"Invalid page window page={page} per_page={per_page}"
            raise ValidationError(msg)
        start, end = page_range(page, per_page)
        response = await self._client.request(
            "GET",
            f"{REST}/projects_with_creator",
            params=build_list_params(filters),
            headers={"Range-Unit": "items", "Range": f"{start}-{end}", "Prefer": "count=exact"},
            allow_status=(RANGE_NOT_SATISFIABLE,),
        )
        total = parse_content_range(response.headers.get("Content-Range"))
        if response.status_code == RANGE_NOT_SATISFIABLE:
            return ProjectPage(items=[], total=total or 0, page=page, per_page=per_page)
        rows = self._json_list(json_body(response))
        items = parse_project_rows(rows)
        return ProjectPage(
            items=items,
            total=total if total is not None else start + len(items),
            page=page,
            per_page=per_page,
        )

    async def get_project(self, project_id: str) -> ProjectSummary:
        response = await self._client.request(
            "GET",
            f"{REST}/projects_with_creator",
            params=[("select", "*"), ("id", f"eq.{project_id}")],
        )
        rows = self._json_list(json_body(response))
        if not rows:
            msg = f"Project {project_id} not found"
            raise NotFoundError(msg)
        return parse_project_summary(rows[0])

    async def get_strategy(self, project_id: str) -> StrategyInfo | None:
        response = await self._client.request(
            "GET",
            f"{REST}/project_direct_info",
            params=[("select", "*"), ("project_id", f"eq.{project_id}")],
        )
        rows = self._json_list(json_body(response))
        return parse_strategy(rows[0]) if rows else None

    async def list_files(self, project_id: str) -> list[ProjectFile]:
        response = await self._client.request(
            "GET",
            f"{REST}/project_files",
            params=[
                ("select", "*,profiles:uploaded_by(full_name,email)"),
                ("project_id", f"eq.{project_id}"),
                ("order", "created_at.desc"),
            ],
        )
        files: list[ProjectFile] = []
        for raw in self._json_list(json_body(response)):
            row = as_dict(raw)
            profile = row.pop("profiles", None)
            if isinstance(profile, dict) and not row.get("uploaded_by_name"):
                row["uploaded_by_name"] = profile.get("full_name") or profile.get("email") or ""
            files.append(parse_project_file(row))
        return files

    async def list_milestones(self, project_id: str) -> list[Milestone]:
        response = await self._client.request(
            "GET",
            f"{REST}/project_milestones",
            params=[
                ("select", "*"),
                ("project_id", f"eq.{project_id}"),
                ("order", "milestone_date.asc"),
            ],
        )
        return [parse_milestone(row) for row in self._json_list(json_body(response))]

    async def list_transactions(self, project_id: str) -> list[BudgetTransaction]:
        response = await self._client.request(
            "GET",
            f"{REST}/project_transactions",
            params=[
                ("select", "*"),
                ("project_id", f"eq.{project_id}"),
                ("order", "transaction_date.desc"),
            ],
        )
        return [parse_transaction(row) for row in self._json_list(json_body(response))]

    async def get_total_budget(self, project_id: str) -> float:
        response = await self._client.request(
            "GET",
            f"{REST}/project_info",
            params=[("select", "total_budget"), ("id", f"eq.{project_id}")],
        )
        rows = self._json_list(json_body(response))
        if not rows:
            msg = f"Project {project_id} not found"
            raise NotFoundError(msg)
        return row_float(as_dict(rows[0]), "total_budget")

    # ── Mutations ──

    async def create_project(
        self, draft: ProjectDraft, creator_id: str | None = None
    ) -> ProjectSummary:
        payload: dict[str, Any] = {
            "project_title": draft.title.strip(),
            "project_summary": draft.summary,
            "status": draft.status.value,
        }
        if draft.project_url:
            payload["project_url"] = draft.project_url
        if creator_id:
            payload["creator_id"] = creator_id
        response = await self._client.request(
            "POST",
            f"{REST}/project_info",
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        rows = self._json_list(json_body(response))
        if not rows:
            msg = "Failed to create project: no row was returned"
            raise StoreError(msg)
        return await self.get_project(str(as_dict(rows[0]).get("id", "")))

    async def update_project(self, project_id: str, changes: ProjectUpdate) -> ProjectSummary:
        columns = changes.changed_fields()
        if not columns:
            return await self.get_project(project_id)
        response = await self._client.request(
            "PATCH",
            f"{REST}/project_info",
            params=[("id", f"eq.{project_id}")],
            json=columns,
            headers={"Prefer": "return=representation"},
        )
        if not self._json_list(json_body(response)):
            await self.get_project(project_id)
            msg = "Failed to update project: no rows were updated. Please check permissions."
            raise PermissionDeniedError(msg)
        return await self.get_project(project_id)

    async def delete_project(self, project_id: str) -> None:
        await self.get_project(project_id)
        response = await self._client.request(
            "GET",
            f"{REST}/project_files",
            params=[("select", "file_path"), ("project_id", f"eq.{project_id}")],
        )
        paths = [
            str(as_dict(row).get("file_path"))
            for row in self._json_list(json_body(response))
            if as_dict(row).get("file_path")
        ]
        response = await self._client.request(
            "DELETE",
            f"{REST}/project_info",
            params=[("id", f"eq.{project_id}"), ("select", "id")],
            headers={"Prefer": "return=representation"},
        )
        if not self._json_list(json_body(response)):
            msg = "Delete failed: no rows were removed. Please check permissions."
            raise PermissionDeniedError(msg)
        if paths:
            await self._remove_objects(paths)

    async def upsert_strategy(
        self, project_id: str, project_no: str, info: StrategyInfo
    ) -> StrategyInfo:
        payload = {**strategy_columns(info), "project_id": project_id, "project_no": project_no}
        response = await self._client.request(
            "POST",
            f"{REST}/project_direct_info",
            params=[("on_conflict", "project_no")],
            json=payload,
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        rows = self._json_list(json_body(response))
        return parse_strategy(rows[0]) if rows else info

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
        storage_path = f"{project_no}/{storage_file_name(file_name)}"
        await self._client.request(
            "POST",
            f"{STORAGE}/object/{self._bucket}/{quote(storage_path)}",
            data=content,
            headers={
                "Content-Type": mime_type or "application/octet-stream",
                "Cache-Control": "3600",
                "x-upsert": "true",
            },
        )
        payload: dict[str, Any] = {
            "project_id": project_id,
            "project_no": project_no,
            "file_name": file_name,
            "file_path": storage_path,
            "file_url": self.public_url(storage_path),
            "file_size": len(content),
            "file_type": Path(file_name).suffix.lstrip(".").lower() or "unknown",
            "document_category": category.value,
            "mime_type": mime_type or None,
        }
        if uploaded_by:
            payload["uploaded_by"] = uploaded_by
        try:
            response = await self._client.request(
                "POST",
                f"{REST}/project_files",
                json=payload,
                headers={"Prefer": "return=representation"},
            )
            rows = self._json_list(json_body(response))
            if not rows:
                msg = "Failed to save file record: no row was returned"
                raise StoreError(msg)
        except DashboardError:
            await self._remove_objects([storage_path])
            raise
        return parse_project_file(rows[0])

    async def delete_file(self, file_id: str) -> None:
        project_file = await self._get_file(file_id)
        await self._remove_objects([project_file.file_path])
        await self._client.request(
            "DELETE", f"{REST}/project_files", params=[("id", f"eq.{file_id}")]
        )

    async def download_file(self, file_id: str) -> tuple[ProjectFile, bytes]:
        project_file = await self._get_file(file_id)
        response = await self._client.request(
            "GET",
            f"{STORAGE}/object/authenticated/{self._bucket}/{quote(project_file.file_path)}",
        )
        return project_file, response.content

    def public_url(self, storage_path: str) -> str:
        return self._client.url(f"{STORAGE}/object/public/{self._bucket}/{quote(storage_path)}")

    # ── Realtime ──

    async def subscribe_to_changes(self, table: str) -> Subscription:
        return self._feed.subscribe(table)

    async def close(self) -> None:
        await self._feed.aclose()
        self._client.close()

    # ── Helpers ──

    async def _probe(self, table: str) -> tuple[int, str]:
        """Cheap change fingerprint: row count plus the newest timestamp."""
        column = _PROBE_COLUMNS.get(table, "created_at")
        response = await self._client.request(
            "GET",
            f"{REST}/{table}",
            params=[("select", column), ("order", f"{column}.desc.nullslast")],
            headers={"Range-Unit": "items", "Range": "0-0", "Prefer": "count=exact"},
            allow_status=(RANGE_NOT_SATISFIABLE,),
        )
        total = parse_content_range(response.headers.get("Content-Range")) or 0
        if response.status_code == RANGE_NOT_SATISFIABLE:
            return total, ""
        rows = self._json_list(json_body(response))
        latest = str(as_dict(rows[0]).get(column) or "") if rows else ""
        return total, latest

    async def _get_file(self, file_id: str) -> ProjectFile:
        response = await self._client.request(
            "GET", f"{REST}/project_files", params=[("select", "*"), ("id", f"eq.{file_id}")]
        )
        rows = self._json_list(json_body(response))
        if not rows:
            msg = f"File {file_id} not found"
            raise NotFoundError(msg)
        return parse_project_file(rows[0])

    async def _remove_objects(self, paths: list[str]) -> None:
        try:
            await self._client.request(
                "DELETE", f"{STORAGE}/object/{self._bucket}", json={"prefixes": paths}
            )
        except DashboardError as exc:
            logger.warning("Failed to delete %d stored file(s): %s", len(paths), exc)

    @staticmethod
    def _json_list(body: object) -> list[Any]:
        if isinstance(body, list):
            return body
        if isinstance(body, dict):
            return [body]
        msg = f"Unexpected response body of type {type(body).__name__}"
        raise ValidationError(msg)
