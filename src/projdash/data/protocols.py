"""Protocol definitions for data access."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from projdash.data.changes import Subscription
    from projdash.models.auth import AuthSession, UserProfile
    from projdash.models.budget import BudgetTransaction, Milestone
    from projdash.models.files import DocumentCategory, ProjectFile
    from projdash.models.projects import (
        ProjectDraft,
        ProjectFilters,
        ProjectPage,
        ProjectSummary,
        ProjectUpdate,
    )
    from projdash.models.strategy import StrategyInfo

PROJECTS_TABLE = "project_info"
FILES_TABLE = "project_files"


class DatabaseProtocol(Protocol):
    """Async database interface."""

    async def execute(self, sql: str, params: tuple[Any, ...] = ()) -> Any: ...

    async def fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[Any]: ...

    async def fetch_one(self, sql: str, params: tuple[Any, ...] = ()) -> Any | None: ...

    async def commit(self) -> None: ...


class ProjectStoreProtocol(Protocol):
    """Backing store for projects, their documents and budget data.

    Implementations raise ``projdash.errors`` exceptions: ``NotFoundError``,
    ``PermissionDeniedError``, ``TransientNetworkError`` or ``ValidationError``.
    """

    async def list_projects(
        self, filters: ProjectFilters, page: int, per_page: int
    ) -> ProjectPage: ...

    async def get_project(self, project_id: str) -> ProjectSummary: ...

    async def create_project(
        self, draft: ProjectDraft, creator_id: str | None = None
    ) -> ProjectSummary: ...

    async def update_project(self, project_id: str, changes: ProjectUpdate) -> ProjectSummary: ...

    async def delete_project(self, project_id: str) -> None: ...

    async def get_strategy(self, project_id: str) -> StrategyInfo | None: ...

    async def upsert_strategy(
        self, project_id: str, project_no: str, info: StrategyInfo
    ) -> StrategyInfo: ...

    async def list_files(self, project_id: str) -> list[ProjectFile]: ...

    async def upload_file(
        self,
        project_id: str,
        project_no: str,
        file_name: str,
        content: bytes,
        *,
        category: DocumentCategory,
        mime_type: str = "",
        uploaded_by: str | None = None,
    ) -> ProjectFile: ...

    async def delete_file(self, file_id: str) -> None: ...

    async def download_file(self, file_id: str) -> tuple[ProjectFile, bytes]: ...

    async def list_milestones(self, project_id: str) -> list[Milestone]: ...

    async def list_transactions(self, project_id: str) -> list[BudgetTransaction]: ...

    async def get_total_budget(self, project_id: str) -> float: ...

    async def subscribe_to_changes(self, table: str) -> Subscription: ...

    async def close(self) -> None: ...


class AuthProviderProtocol(Protocol):
    """Authentication backend."""

    async def get_session(self) -> AuthSession | None: ...

    async def sign_in(self, email: str, password: str) -> AuthSession: ...

    async def sign_up(self, email: str, password: str, full_name: str = "") -> AuthSession: ...

    async def sign_out(self) -> None: ...

    async def get_profile(self, user_id: str) -> UserProfile: ...
