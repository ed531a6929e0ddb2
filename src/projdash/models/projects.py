"""Project-level models."""

from __future__ import annotations

import math
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from projdash.models.budget import BudgetSummary, Milestone
from projdash.models.files import ProjectFile
from projdash.models.strategy import StrategyInfo


class ProjectStatus(StrEnum):
    """Lifecycle state shown in the Status column."""

    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    UPCOMING = "Upcoming"
    PENDING = "Pending"


class ProjectSummary(BaseModel):
    """Row of the project list (``projects_with_creator``)."""

    model_config = ConfigDict(frozen=True)

    id: str
    project_no: str
    title: str = ""
    description: str = ""
    creator_name: str = ""
    files_count: int = Field(default=0, ge=0)
    status: ProjectStatus = ProjectStatus.IN_PROGRESS
    created_at: str = ""
    updated_at: str = ""
    project_url: str = ""


class ProjectFilters(BaseModel):
    """Filters applied to the project list. Empty fields are ignored."""

    model_config = ConfigDict(frozen=True)

    project_no: str = ""
    keyword: str = ""
    status: ProjectStatus | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.project_no.strip() or self.keyword.strip() or self.status)

    def normalized(self) -> ProjectFilters:
        """Strip surrounding whitespace from the text filters."""
        return ProjectFilters(
            project_no=self.project_no.strip(),
            keyword=self.keyword.strip(),
            status=self.status,
        )

    def matches(self, project: ProjectSummary) -> bool:
        """Evaluate the filters the way the store does."""
        project_no = self.project_no.strip().lower()
        if project_no and project_no not in project.project_no.lower():
            return False
        keyword = self.keyword.strip().lower()
        if keyword and not (
            keyword in project.title.lower() or keyword in project.description.lower()
        ):
            return False
        return self.status is None or project.status == self.status


def last_page(total: int, per_page: int) -> int:
    """Highest valid 1-indexed page; 1 when nothing matches."""
    if per_page <= 0:
        msg = f"per_page must be positive, got {per_page}"
        raise ValueError(msg)
    return max(1, math.ceil(max(total, 0) / per_page))


class QueryState(BaseModel):
    """Applied query of the project list. Replaced, never mutated."""

    model_config = ConfigDict(frozen=True)

    filters: ProjectFilters = Field(default_factory=ProjectFilters)
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=10, gt=0)
    total: int = Field(default=0, ge=0)

    @property
    def last_page(self) -> int:
        return last_page(self.total, self.per_page)

    def clamp_page(self, page: int) -> int:
        return min(max(page, 1), self.last_page)


class ProjectPage(BaseModel):
    """One page of projects as answered by the store."""

    items: list[ProjectSummary] = Field(default_factory=list)
    total: int = Field(default=0, ge=0)
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=10, gt=0)


class ProjectDraft(BaseModel):
    """Fields supplied when creating a project."""

    title: str = Field(min_length=1)
    summary: str = ""
    project_url: str = ""
    status: ProjectStatus = ProjectStatus.PENDING


class ProjectUpdate(BaseModel):
    """Partial overview update. ``None`` leaves a field untouched."""

    title: str | None = None
    summary: str | None = None
    project_url: str | None = None
    status: ProjectStatus | None = None

    def changed_fields(self) -> dict[str, str]:
        """Wire column names mapped to their new values."""
        columns = {
            "title": "project_title",
            "summary": "project_summary",
            "project_url": "project_url",
            "status": "status",
        }
        changes: dict[str, str] = {}
        for attr, column in columns.items():
            value = getattr(self, attr)
            if value is not None:
                changes[column] = str(value)
        return changes


class ProjectDetails(BaseModel):
    """Everything the editor shows for one project."""

    project: ProjectSummary
    strategy: StrategyInfo | None = None
    files: list[ProjectFile] = Field(default_factory=list)
    milestones: list[Milestone] = Field(default_factory=list)
    budget: BudgetSummary = Field(default_factory=BudgetSummary)
