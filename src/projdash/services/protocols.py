"""Protocol definitions for services."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from result import Result

from projdash.errors import DashboardError
from projdash.models.projects import ProjectFilters, ProjectPage, ProjectSummary

if TYPE_CHECKING:
    from projdash.data.changes import Subscription


class ProjectServiceProtocol(Protocol):
    """What the list controller needs from the project service."""

    async def list_projects(
        self, filters: ProjectFilters, page: int, per_page: int
    ) -> Result[ProjectPage, DashboardError]: ...

    async def get_project(self, project_id: str) -> Result[ProjectSummary, DashboardError]: ...

    async def delete_project(self, project_id: str) -> Result[None, DashboardError]: ...

    async def subscribe_to_changes(
        self, table: str
    ) -> Result[Subscription, DashboardError]: ...


class WebhookNotifierProtocol(Protocol):
    """Best-effort outbound notifications. Failures raise ``WebhookError``."""

    async def project_deleted(self, project_id: str, project_no: str) -> int | None: ...

    async def files_uploaded(
        self, project_id: str, project_no: str, file_names: list[str]
    ) -> int | None: ...
