"""Project file models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class DocumentCategory(StrEnum):
    PROJECT_APPLICATION = "Project Application"
    PROGRESS_REPORT = "Progress Report"
    FINANCIAL_STATEMENT = "Financial Statement"
    TECHNICAL_SPECIFICATION = "Technical Specification"
    OTHER = "Other Related Documents"


class ProjectFile(BaseModel):
    """Metadata of a document attached to a project."""

    id: str
    project_id: str = ""
    project_no: str = ""
    file_name: str
    file_path: str = ""
    file_url: str = ""
    file_size: int = Field(default=0, ge=0)
    file_type: str = ""
    document_category: DocumentCategory = DocumentCategory.OTHER
    uploaded_by: str = ""
    uploaded_by_name: str = ""
    mime_type: str = ""
    created_at: str = ""
