"""Editor state for a single project (overview, strategy, documents)."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from collections.abc import Coroutine, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from result import Err, Ok, Result

from projdash.errors import DashboardError, ValidationError, WebhookError
from projdash.models.files import DocumentCategory, ProjectFile
from projdash.models.projects import ProjectDetails, ProjectStatus, ProjectSummary, ProjectUpdate

if TYPE_CHECKING:
    from projdash.models.strategy import StrategyInfo
    from projdash.services.project_service import ProjectService
    from projdash.services.protocols import WebhookNotifierProtocol

logger = logging.getLogger(__name__)


class ProjectEditor:
    """Loads one project and applies edits to it through the project service."""

    def __init__(
        self,
        service: ProjectService,
        project_id: str,
        *,
        notifier: WebhookNotifierProtocol | None = None,
        user_id: str | None = None,
    ) -> None:
        self._service = service
        self._project_id = project_id
        self._notifier = notifier
        self._user_id = user_id
        self._details: ProjectDetails | None = None
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def project_id(self) -> str:
        return self._project_id

    @property
    def details(self) -> ProjectDetails | None:
        return self._details

    async def load(self) -> Result[ProjectDetails, DashboardError]:
        result = await self._service.get_complete_project(self._project_id)
        if isinstance(result, Ok):
            self._details = result.ok_value
        return result

    async def save_overview(self, changes: ProjectUpdate) -> Result[ProjectSummary, DashboardError]:
        if changes.title is not None and not changes.title.strip():
            return Err(ValidationError("Project title cannot be empty."))
        result = await self._service.update_project(self._project_id, changes)
        if isinstance(result, Ok):
            self._replace_project(result.ok_value)
        return result

    async def update_status(self, status: ProjectStatus) -> Result[ProjectSummary, DashboardError]:
        return await self.save_overview(ProjectUpdate(status=status))

    async def save_strategy(self, info: StrategyInfo) -> Result[StrategyInfo, DashboardError]:
        project = await self._require_project()
        if isinstance(project, Err):
            return project
        result = await self._service.save_strategy(project.ok_value, info)
        if isinstance(result, Ok) and self._details is not None:
            self._details = self._details.model_copy(update={"strategy": result.ok_value})
        return result

    async def upload_files(
        self,
        paths: Sequence[Path],
        category: DocumentCategory = DocumentCategory.OTHER,
    ) -> Result[list[ProjectFile], DashboardError]:
        """Upload ``paths`` concurrently.

        Files that made it are kept even when another upload fails; the first
        failure is returned. The upload webhook fires for the successful ones.
        """
        if not paths:
            return Ok([])
        project = await self._require_project()
        if isinstance(project, Err):
            return project
        summary = project.ok_value

        results = await asyncio.gather(
            *(self._upload_one(summary, Path(path), category) for path in paths)
        )
        uploaded = [r.ok_value for r in results if isinstance(r, Ok)]
        failures = [r.err_value for r in results if isinstance(r, Err)]

        if uploaded:
            await self._reload_files()
            if self._notifier is not None:
                names = [f.file_name for f in uploaded]
                self._spawn(self._notify_uploaded(summary, names))
        if failures:
            return Err(failures[0])
        return Ok(uploaded)

    async def delete_file(self, file_id: str) -> Result[None, DashboardError]:
        result = await self._service.delete_file(file_id)
        if isinstance(result, Ok):
            await self._reload_files()
        return result

    async def download_file(self, file_id: str, destination: Path) -> Result[Path, DashboardError]:
        """Save a document to ``destination`` (a directory or a file path)."""
        result = await self._service.download_file(file_id)
        if isinstance(result, Err):
            return result
        record, content = result.ok_value
        target = destination / record.file_name if destination.is_dir() else destination
        try:
            await asyncio.to_thread(target.write_bytes, content)
        except OSError as exc:
            return Err(ValidationError(f"Cannot write {target}: {exc.strerror or exc}"))
        logger.info("Downloaded %s to %s", record.file_name, target)
        return Ok(target)

    async def wait_idle(self) -> None:
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _upload_one(
        self, project: ProjectSummary, path: Path, category: DocumentCategory
    ) -> Result[ProjectFile, DashboardError]:
        try:
            content = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            return Err(ValidationError(f"Cannot read {path.name}: {exc.strerror or exc}"))
        mime_type, _ = mimetypes.guess_type(path.name)
        return await self._service.upload_file(
            project,
            path.name,
            content,
            category=category,
            mime_type=mime_type or "application/octet-stream",
            uploaded_by=self._user_id,
        )

    async def _require_project(self) -> Result[ProjectSummary, DashboardError]:
        if self._details is not None:
            return Ok(self._details.project)
        return await self._service.get_project(self._project_id)

    async def _reload_files(self) -> None:
        files = await self._service.list_files(self._project_id)
        project = await self._service.get_project(self._project_id)
        if self._details is None:
            return
        update: dict[str, Any] = {}
        if isinstance(files, Ok):
            update["files"] = files.ok_value
        if isinstance(project, Ok):
            update["project"] = project.ok_value
        self._details = self._details.model_copy(update=update)

    def _replace_project(self, project: ProjectSummary) -> None:
        if self._details is not None:
            self._details = self._details.model_copy(update={"project": project})

    async def _notify_uploaded(self, project: ProjectSummary, names: list[str]) -> None:
        assert self._notifier is not None
        try:
            await self._notifier.files_uploaded(project.id, project.project_no, names)
        except WebhookError as exc:
            logger.warning("Upload webhook for %s failed: %s", project.project_no, exc)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
