"""Pydantic models for projdash."""

from projdash.models.auth import AuthSession, UserProfile, UserRole
from projdash.models.budget import (
    BudgetSummary,
    BudgetTransaction,
    Milestone,
    TransactionStatus,
    summarize_budget,
)
from projdash.models.changes import ChangeEvent, ChangeKind
from projdash.models.files import DocumentCategory, ProjectFile
from projdash.models.projects import (
    ProjectDetails,
    ProjectDraft,
    ProjectFilters,
    ProjectPage,
    ProjectStatus,
    ProjectSummary,
    ProjectUpdate,
    QueryState,
    last_page,
)
from projdash.models.strategy import AIDirectionalSignal, StrategyFit, StrategyInfo

__all__ = [
    "AIDirectionalSignal",
    "AuthSession",
    "BudgetSummary",
    "BudgetTransaction",
    "ChangeEvent",
    "ChangeKind",
    "DocumentCategory",
    "Milestone",
    "ProjectDetails",
    "ProjectDraft",
    "ProjectFile",
    "ProjectFilters",
    "ProjectPage",
    "ProjectStatus",
    "ProjectSummary",
    "ProjectUpdate",
    "QueryState",
    "StrategyFit",
    "StrategyInfo",
    "TransactionStatus",
    "UserProfile",
    "UserRole",
    "last_page",
    "summarize_budget",
]
