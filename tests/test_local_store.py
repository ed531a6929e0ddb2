from __future__ import annotations

from pathlib import Path

import pytest

from projdash.data.changes import Subscription
from projdash.data.db import Database
from projdash.data.local_auth import LocalAuthProvider
from projdash.data.local_store import LocalProjectStore, like_pattern, storage_file_name
from projdash.data.protocols import PROJECTS_TABLE
from projdash.errors import NotFoundError, PermissionDeniedError, ValidationError
from projdash.models.budget import TransactionStatus
from projdash.models.changes import ChangeKind
from projdash.models.files import DocumentCategory
from projdash.models.projects import ProjectDraft, ProjectFilters, ProjectStatus, ProjectUpdate
from projdash.models.strategy import StrategyFit, StrategyInfo


async def _seed(store: LocalProjectStore, *titles: str) -> list[str]:
    ids = []
    for title in titles:
        project = await store.create_project(ProjectDraft(title=title, summary=f"{title} summary"))
        ids.append(project.id)
    return ids


def _drain_events(subscription: Subscription) -> list[tuple[ChangeKind, str]]:
    events = []
    while not subscription._queue.empty():
        event = subscription._queue.get_nowait()
        if event is not None:
            events.append((event.kind, event.record_id))
    return events


def test_like_pattern_escapes_wildcards() -> None:
    assert like_pattern("50%_off") == "%50\\%\\_off%"


def test_storage_file_name_keeps_extension() -> None:
    assert storage_file_name("Report.PDF").endswith(".pdf")
    assert storage_file_name("README").endswith(".bin")


@pytest.mark.asyncio
async def test_create_assigns_sequential_project_numbers(local_store: LocalProjectStore) -> None:
    await _seed(local_store, "Alpha", "Beta", "Gamma")

    page = await local_store.list_projects(ProjectFilters(), 1, 10)

    assert page.total == 3
    assert [p.project_no for p in page.items] == ["PJ-1003", "PJ-1002", "PJ-1001"]
    assert [p.title for p in page.items] == ["Gamma", "Beta", "Alpha"]
    assert all(p.status is ProjectStatus.PENDING for p in page.items)


@pytest.mark.asyncio
async def test_list_projects_filters_and_pages(local_store: LocalProjectStore) -> None:
    await _seed(local_store, *(f"Project {n}" for n in range(1, 13)))
    await _seed(local_store, "Website Redesign")

    second = await local_store.list_projects(ProjectFilters(), 2, 5)
    assert second.total == 13
    assert len(second.items) == 5

    by_no = await local_store.list_projects(ProjectFilters(project_no="PJ-101"), 1, 10)
    assert sorted(p.project_no for p in by_no.items) == ["PJ-1010", "PJ-1011", "PJ-1012", "PJ-1013"]

    by_keyword = await local_store.list_projects(ProjectFilters(keyword="redesign summary"), 1, 10)
    assert [p.title for p in by_keyword.items] == ["Website Redesign"]

    beyond = await local_store.list_projects(ProjectFilters(), 9, 10)
    assert beyond.items == []
    assert beyond.total == 13


@pytest.mark.asyncio
async def test_list_projects_treats_wildcards_literally(local_store: LocalProjectStore) -> None:
    await _seed(local_store, "100% complete", "Plain")

    page = await local_store.list_projects(ProjectFilters(keyword="%"), 1, 10)

    assert [p.title for p in page.items] == ["100% complete"]


@pytest.mark.asyncio
async def test_list_projects_filters_by_status(local_store: LocalProjectStore) -> None:
    [first, _second] = await _seed(local_store, "One", "Two")
    await local_store.update_project(first, ProjectUpdate(status=ProjectStatus.COMPLETED))

    page = await local_store.list_projects(ProjectFilters(status=ProjectStatus.COMPLETED), 1, 10)

    assert [p.id for p in page.items] == [first]


@pytest.mark.asyncio
async def test_list_projects_rejects_bad_window(local_store: LocalProjectStore) -> None:
    with pytest.raises(ValidationError):
        await local_store.list_projects(ProjectFilters(), 0, 10)


@pytest.mark.asyncio
async def test_update_project_validates_title(local_store: LocalProjectStore) -> None:
    [project_id] = await _seed(local_store, "Alpha")

    updated = await local_store.update_project(project_id, ProjectUpdate(summary="Changed"))
    assert updated.description == "Changed"
    assert updated.title == "Alpha"

    with pytest.raises(ValidationError, match="title"):
        await local_store.update_project(project_id, ProjectUpdate(title="  "))


@pytest.mark.asyncio
async def test_delete_project_publishes_and_missing_raises(local_store: LocalProjectStore) -> None:
    [project_id] = await _seed(local_store, "Alpha")
    subscription = await local_store.subscribe_to_changes(PROJECTS_TABLE)

    await local_store.delete_project(project_id)

    assert _drain_events(subscription) == [(ChangeKind.DELETE, project_id)]
    with pytest.raises(NotFoundError):
        await local_store.get_project(project_id)
    with pytest.raises(NotFoundError):
        await local_store.delete_project(project_id)


@pytest.mark.asyncio
async def test_mutations_publish_change_events(local_store: LocalProjectStore) -> None:
    subscription = await local_store.subscribe_to_changes(PROJECTS_TABLE)
    [project_id] = await _seed(local_store, "Alpha")
    await local_store.update_project(project_id, ProjectUpdate(title="Beta"))

    assert _drain_events(subscription) == [
        (ChangeKind.INSERT, project_id),
        (ChangeKind.UPDATE, project_id),
    ]
    await local_store.close()
    assert subscription.closed


@pytest.mark.asyncio
async def test_strategy_upsert_replaces_existing(local_store: LocalProjectStore) -> None:
    [project_id] = await _seed(local_store, "Alpha")
    assert await local_store.get_strategy(project_id) is None

    await local_store.upsert_strategy(
        project_id, "PJ-1001", StrategyInfo(strategy_fit=StrategyFit.NATIONAL, trl="4")
    )
    stored = await local_store.upsert_strategy(
        project_id, "PJ-1001", StrategyInfo(strategy_fit=StrategyFit.SUBSIDIARY, trl="6")
    )

    assert stored.strategy_fit is StrategyFit.SUBSIDIARY
    assert stored.trl == "6"
    assert await local_store.get_strategy(project_id) == stored


@pytest.mark.asyncio
async def test_file_upload_download_and_delete(
    local_store: LocalProjectStore, tmp_path: Path
) -> None:
    [project_id] = await _seed(local_store, "Alpha")

    uploaded = await local_store.upload_file(
        project_id,
        "PJ-1001",
        "Plan.PDF",
        b"%PDF-1.4",
        category=DocumentCategory.PROJECT_APPLICATION,
        mime_type="application/pdf",
    )
    assert uploaded.file_type == "pdf"
    assert uploaded.file_size == 8
    assert uploaded.file_path.startswith("PJ-1001/")
    assert (tmp_path / "storage" / uploaded.file_path).read_bytes() == b"%PDF-1.4"
    assert (await local_store.get_project(project_id)).files_count == 1

    meta, content = await local_store.download_file(uploaded.id)
    assert meta.file_name == "Plan.PDF"
    assert content == b"%PDF-1.4"

    await local_store.delete_file(uploaded.id)
    assert await local_store.list_files(project_id) == []
    assert not (tmp_path / "storage" / uploaded.file_path).exists()
    assert (await local_store.get_project(project_id)).files_count == 0


@pytest.mark.asyncio
async def test_download_of_missing_blob_raises_not_found(local_store: LocalProjectStore) -> None:
    [project_id] = await _seed(local_store, "Alpha")
    uploaded = await local_store.upload_file(project_id, "PJ-1001", "a.txt", b"x")
    await local_store._remove_blob(uploaded.file_path)

    with pytest.raises(NotFoundError, match="missing"):
        await local_store.download_file(uploaded.id)


@pytest.mark.asyncio
async def test_delete_project_removes_blobs(local_store: LocalProjectStore, tmp_path: Path) -> None:
    [project_id] = await _seed(local_store, "Alpha")
    uploaded = await local_store.upload_file(project_id, "PJ-1001", "a.txt", b"x")

    await local_store.delete_project(project_id)

    assert not (tmp_path / "storage" / uploaded.file_path).exists()


@pytest.mark.asyncio
async def test_timeline_and_budget_rows(local_store: LocalProjectStore) -> None:
    [project_id] = await _seed(local_store, "Alpha")
    await local_store.set_total_budget(project_id, 124_500)
    await local_store.add_milestone(project_id, "Launch", "2023-12-01")
    await local_store.add_milestone(project_id, "Kickoff", "2023-09-01", status="Completed")
    await local_store.add_transaction(
        project_id, "2023-10-02", 1150.5, category="Software", status=TransactionStatus.PAID
    )

    assert await local_store.get_total_budget(project_id) == 124_500
    assert [m.title for m in await local_store.list_milestones(project_id)] == ["Kickoff", "Launch"]
    [transaction] = await local_store.list_transactions(project_id)
    assert transaction.status is TransactionStatus.PAID
    assert transaction.amount == pytest.approx(1150.5)

    with pytest.raises(NotFoundError):
        await local_store.set_total_budget("nope", 1)


@pytest.mark.asyncio
async def test_members_cannot_modify_other_projects(
    in_memory_db: Database, local_store: LocalProjectStore
) -> None:
    auth = LocalAuthProvider(in_memory_db)
    owner = (await auth.sign_up("owner@example.com", "secret1", "Owner")).user
    member = (await auth.sign_up("member@example.com", "secret2", "Member")).user

    local_store.actor = owner
    project = await local_store.create_project(ProjectDraft(title="Owned"))
    assert project.creator_name == "Owner"

    local_store.actor = member
    with pytest.raises(PermissionDeniedError):
        await local_store.delete_project(project.id)
    with pytest.raises(PermissionDeniedError):
        await local_store.update_project(project.id, ProjectUpdate(title="Mine now"))

    local_store.actor = owner
    await local_store.delete_project(project.id)
