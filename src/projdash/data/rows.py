"""Row-to-model conversion: the validation boundary for store rows.

Rows arrive as loosely typed mappings (``aiosqlite.Row`` or decoded JSON).
Values are coerced where the intent is unambiguous; rows that cannot be
trusted raise ``ValidationError`` before they reach the list controller.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from projdash.errors import ValidationError
from projdash.models.auth import UserProfile, UserRole
from projdash.models.budget import BudgetTransaction, Milestone, TransactionStatus
from projdash.models.files import DocumentCategory, ProjectFile
from projdash.models.projects import ProjectStatus, ProjectSummary
from projdash.models.strategy import AIDirectionalSignal, StrategyFit, StrategyInfo


def as_dict(row: object) -> dict[str, Any]:
    """Turn a DB row or JSON object into a plain dict."""
    if isinstance(row, Mapping):
        return dict(row)
    try:
        return dict(row)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        msg = f"Expected a row mapping, got {type(row).__name__}"
        raise ValidationError(msg) from None


def row_str(row: Mapping[str, Any], key: str, default: str = "") -> str:
    """Extract a string value from a row dict."""
    v = row.get(key, default)
    return str(v) if v else default


def row_int(row: Mapping[str, Any], key: str) -> int:
    """Extract an integer value from a row dict."""
    v = row.get(key, 0)
    if isinstance(v, bool):
        return int(v)
    if isinstance(v, int):
        return v
    if isinstance(v, float):
        return int(v)
    if isinstance(v, str):
        try:
            return int(float(v))
        except ValueError:
            return 0
    return 0


def row_float(row: Mapping[str, Any], key: str) -> float:
    """Extract a float value from a row dict."""
    v = row.get(key, 0.0)
    if isinstance(v, bool):
        return float(v)
    if isinstance(v, int | float):
        return float(v)
    if isinstance(v, str):
        try:
            return float(v)
        except ValueError:
            return 0.0
    return 0.0


def parse_status(value: object) -> ProjectStatus:
    """Map wire status text to ``ProjectStatus``, tolerating case and separators."""
    text = str(value or "").strip()
    if not text:
        return ProjectStatus.PENDING
    folded = text.replace("_", " ").replace("-", " ").lower()
    for status in ProjectStatus:
        if status.value.lower() == folded:
            return status
    msg = f"Unknown project status {text!r}"
    raise ValidationError(msg)


def parse_project_summary(raw: object) -> ProjectSummary:
    """Validate one ``projects_with_creator`` row."""
    r = as_dict(raw)
    project_id = row_str(r, "id")
    project_no = row_str(r, "project_no")
    if not project_id or not project_no:
        msg = "Project row is missing id or project_no"
        raise ValidationError(msg)
    try:
        return ProjectSummary(
            id=project_id,
            project_no=project_no,
            title=row_str(r, "project_title"),
            description=row_str(r, "project_summary"),
            creator_name=row_str(r, "creator_name") or row_str(r, "creator_email"),
            files_count=max(0, row_int(r, "files_count")),
            status=parse_status(r.get("status")),
            created_at=row_str(r, "created_at"),
            updated_at=row_str(r, "updated_at"),
            project_url=row_str(r, "project_url"),
        )
    except PydanticValidationError as exc:
        msg = f"Malformed project row {project_id}: {exc.error_count()} invalid field(s)"
        raise ValidationError(msg) from exc


def parse_project_rows(rows: list[Any]) -> list[ProjectSummary]:
    return [parse_project_summary(row) for row in rows]


def parse_strategy(raw: object) -> StrategyInfo:
    r = as_dict(raw)
    try:
        return StrategyInfo(
            strategy_fit=StrategyFit(row_str(r, "strategy_fit", StrategyFit.GROUP.value)),
            demand_urgency=row_str(r, "demand_urgency"),
            bottleneck=row_str(r, "bottleneck"),
            product_and_edge=row_str(r, "product_and_edge"),
            trl=row_str(r, "trl"),
            resources=row_str(r, "resources"),
            supporting_materials_present=row_str(r, "supporting_materials_present"),
            information_completeness_note=row_str(r, "information_completeness_note"),
            ai_directional_signal=AIDirectionalSignal(
                row_str(r, "ai_directional_signal", AIDirectionalSignal.NEED_MORE_INFO.value)
            ),
        )
    except ValueError as exc:
        msg = f"Malformed strategy row: {exc}"
        raise ValidationError(msg) from exc


def strategy_columns(info: StrategyInfo) -> dict[str, str]:
    """Wire columns for a strategy upsert."""
    return {key: str(value) for key, value in info.model_dump(mode="json").items()}


def parse_project_file(raw: object) -> ProjectFile:
    r = as_dict(raw)
    category = row_str(r, "document_category", DocumentCategory.OTHER.value)
    try:
        document_category = DocumentCategory(category)
    except ValueError:
        document_category = DocumentCategory.OTHER
    file_id = row_str(r, "id")
    file_name = row_str(r, "file_name")
    if not file_id or not file_name:
        msg = "File row is missing id or file_name"
        raise ValidationError(msg)
    return ProjectFile(
        id=file_id,
        project_id=row_str(r, "project_id"),
        project_no=row_str(r, "project_no"),
        file_name=file_name,
        file_path=row_str(r, "file_path"),
        file_url=row_str(r, "file_url"),
        file_size=max(0, row_int(r, "file_size")),
        file_type=row_str(r, "file_type"),
        document_category=document_category,
        uploaded_by=row_str(r, "uploaded_by"),
        uploaded_by_name=row_str(r, "uploaded_by_name"),
        mime_type=row_str(r, "mime_type"),
        created_at=row_str(r, "created_at"),
    )


def parse_milestone(raw: object) -> Milestone:
    r = as_dict(raw)
    return Milestone(
        id=row_str(r, "id"),
        title=row_str(r, "title"),
        description=row_str(r, "description"),
        date=row_str(r, "milestone_date") or row_str(r, "date"),
        status=row_str(r, "status", "Upcoming"),
    )


def parse_transaction(raw: object) -> BudgetTransaction:
    r = as_dict(raw)
    status_text = row_str(r, "status", TransactionStatus.PENDING.value)
    status = (
        TransactionStatus.PAID
        if status_text.lower() == TransactionStatus.PAID.value.lower()
        else TransactionStatus.PENDING
    )
    return BudgetTransaction(
        id=row_str(r, "id"),
        date=row_str(r, "transaction_date") or row_str(r, "date"),
        description=row_str(r, "description"),
        category=row_str(r, "category", "Other"),
        amount=row_float(r, "amount"),
        status=status,
    )


def parse_profile(raw: object) -> UserProfile:
    r = as_dict(raw)
    role_text = row_str(r, "role", UserRole.MEMBER.value)
    try:
        role = UserRole(role_text)
    except ValueError:
        role = UserRole.MEMBER
    return UserProfile(
        id=row_str(r, "id"),
        email=row_str(r, "email"),
        full_name=row_str(r, "full_name"),
        avatar_url=row_str(r, "avatar_url"),
        role=role,
    )
