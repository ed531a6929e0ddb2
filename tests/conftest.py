"""Shared fixtures for projdash tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from projdash.data.db import Database
from projdash.data.local_store import LocalProjectStore
from projdash.models.projects import ProjectStatus, ProjectSummary


def make_project(n: int, **overrides: object) -> ProjectSummary:
    """A project summary numbered like the local store numbers them."""
    values: dict[str, object] = {
        "id": f"p{n}",
        "project_no": f"PJ-{1000 + n}",
        "title": f"Project {n}",
        "description": f"Summary {n}",
        "creator_name": "Alex Morgan",
        "status": ProjectStatus.IN_PROGRESS,
        "created_at": f"2023-10-{n % 28 + 1:02d}T09:00:00+00:00",
    }
    values.update(overrides)
    return ProjectSummary(**values)  # type: ignore[arg-type]


@pytest.fixture
async def in_memory_db() -> AsyncGenerator[Database]:
    """SQLite in-memory database for fast unit/integration tests."""
    db = Database(Path(":memory:"))
    await db.__aenter__()
    yield db  # type: ignore[misc]
    await db.__aexit__(None, None, None)


@pytest.fixture
async def local_store(in_memory_db: Database, tmp_path: Path) -> AsyncGenerator[LocalProjectStore]:
    """Local store with blobs under a temporary directory."""
    store = LocalProjectStore(in_memory_db, tmp_path / "storage")
    yield store  # type: ignore[misc]
    await store.close()
