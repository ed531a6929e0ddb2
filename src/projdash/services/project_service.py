"""Project service: Result-returning facade over the project store."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TYPE_CHECKING

from result import Err, Ok, Result

from projdash.errors import DashboardError
from projdash.models.budget import BudgetSummary, summarize_budget
from projdash.models.files import DocumentCategory, ProjectFile
from projdash.models.projects import (
    ProjectDetails,
    ProjectDraft,
    ProjectFilters,
    ProjectPage,
    ProjectStatus,
    ProjectSummary,
    ProjectUpdate,
)

if TYPE_CHECKING:
    from projdash.data.changes import Subscription
    from projdash.data.protocols import ProjectStoreProtocol
    from projdash.models.budget import Milestone
    from projdash.models.strategy import StrategyInfo


async def _wrap[T](awaitable: Awaitable[T]) -> Result[T, DashboardError]:
    try:
        return Ok(await awaitable)
    except DashboardError as exc:
        return Err(exc)


class ProjectService:
    """Service for project queries and mutations."""

    def __init__(self, store: ProjectStoreProtocol) -> None:
        self._store = store

    async def list_projects(
        self, filters: ProjectFilters, page: int, per_page: int
    ) -> Result[ProjectPage, DashboardError]:
        """One page of projects matching ``filters``, newest first."""
        return await _wrap(self._store.list_projects(filters, page, per_page))

    async def get_project(self, project_id: str) -> Result[ProjectSummary, DashboardError]:
        return await _wrap(self._store.get_project(project_id))

    async def create_project(
        self, draft: ProjectDraft, creator_id: str | None = None
    ) -> Result[ProjectSummary, DashboardError]:
        return await _wrap(self._store.create_project(draft, creator_id))

    async def create_project_with_strategy(
        self,
        draft: ProjectDraft,
        strategy: StrategyInfo,
        creator_id: str | None = None,
    ) -> Result[tuple[ProjectSummary, StrategyInfo], DashboardError]:
        """Create a project, then store its initial strategy information."""
        created = await self.create_project(draft, creator_id)
        if isinstance(created, Err):
            return created
        project = created.ok_value
        saved = await self.save_strategy(project, strategy)
        if isinstance(saved, Err):
            return saved
        return Ok((project, saved.ok_value))

    async def update_project(
        self, project_id: str, changes: ProjectUpdate
    ) -> Result[ProjectSummary, DashboardError]:
        return await _wrap(self._store.update_project(project_id, changes))

    async def update_status(
        self, project_id: str, status: ProjectStatus
    ) -> Result[ProjectSummary, DashboardError]:
        return await self.update_project(project_id, ProjectUpdate(status=status))

    async def delete_project(self, project_id: str) -> Result[None, DashboardError]:
        """Delete a project with its stored documents."""
        return await _wrap(self._store.delete_project(project_id))

    async def get_strategy(self, project_id: str) -> Result[StrategyInfo | None, DashboardError]:
        return await _wrap(self._store.get_strategy(project_id))

    async def save_strategy(
        self, project: ProjectSummary, info: StrategyInfo
    ) -> Result[StrategyInfo, DashboardError]:
        return await _wrap(self._store.upsert_strategy(project.id, project.project_no, info))

    async def list_files(self, project_id: str) -> Result[list[ProjectFile], DashboardError]:
        return await _wrap(self._store.list_files(project_id))

    async def upload_file(
        self,
        project: ProjectSummary,
        file_name: str,
        content: bytes,
        *,
        category: DocumentCategory = DocumentCategory.OTHER,
        mime_type: str = "",
        uploaded_by: str | None = None,
    ) -> Result[ProjectFile, DashboardError]:
        return await _wrap(
            self._store.upload_file(
                project.id,
                project.project_no,
                file_name,
                content,
                category=category,
                mime_type=mime_type,
                uploaded_by=uploaded_by,
            )
        )

    async def delete_file(self, file_id: str) -> Result[None, DashboardError]:
        return await _wrap(self._store.delete_file(file_id))

    async def download_file(
        self, file_id: str
    ) -> Result[tuple[ProjectFile, bytes], DashboardError]:
        return await _wrap(self._store.download_file(file_id))

    async def list_milestones(self, project_id: str) -> Result[list[Milestone], DashboardError]:
        return await _wrap(self._store.list_milestones(project_id))

    async def get_budget(self, project_id: str) -> Result[BudgetSummary, DashboardError]:
        """Budget figures for the Budget tab."""

        async def _load() -> BudgetSummary:
            total, transactions = await asyncio.gather(
                self._store.get_total_budget(project_id),
                self._store.list_transactions(project_id),
            )
            return summarize_budget(total, transactions)

        return await _wrap(_load())

    async def get_complete_project(
        self, project_id: str
    ) -> Result[ProjectDetails, DashboardError]:
        """Summary, strategy, files, timeline and budget fetched concurrently."""

        async def _load() -> ProjectDetails:
            project, strategy, files, milestones, total, transactions = await asyncio.gather(
                self._store.get_project(project_id),
                self._store.get_strategy(project_id),
                self._store.list_files(project_id),
                self._store.list_milestones(project_id),
                self._store.get_total_budget(project_id),
                self._store.list_transactions(project_id),
            )
            return ProjectDetails(
                project=project,
                strategy=strategy,
                files=files,
                milestones=milestones,
                budget=summarize_budget(total, transactions),
            )

        return await _wrap(_load())

    async def subscribe_to_changes(self, table: str) -> Result[Subscription, DashboardError]:
        return await _wrap(self._store.subscribe_to_changes(table))
