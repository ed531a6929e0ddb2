from __future__ import annotations

import asyncio
from dataclasses import dataclass
from unittest.mock import AsyncMock

import pytest
from conftest import make_project
from result import Err, Ok, Result

from projdash.data.changes import ChangeFeed, Subscription
from projdash.data.protocols import PROJECTS_TABLE
from projdash.errors import (
    DashboardError,
    NotFoundError,
    PermissionDeniedError,
    TransientNetworkError,
    WebhookError,
)
from projdash.models.changes import ChangeEvent, ChangeKind
from projdash.models.projects import (
    ProjectFilters,
    ProjectPage,
    ProjectStatus,
    ProjectSummary,
)
from projdash.services.list_sync import ListSyncController


@dataclass
class _HeldCall:
    filters: ProjectFilters
    page: int
    per_page: int
    future: asyncio.Future[Result[ProjectPage, DashboardError]]


class FakeProjectService:
    """In-memory project service whose list responses can be held back."""

    def __init__(self, projects: list[ProjectSummary]) -> None:
        self.projects = list(projects)
        self.list_calls: list[tuple[ProjectFilters, int, int]] = []
        self.deleted: list[str] = []
        self.delete_error: DashboardError | None = None
        self.subscribe_error: DashboardError | None = None
        self.hold = False
        self.held: list[_HeldCall] = []
        self.feed = ChangeFeed()

    def page_for(self, filters: ProjectFilters, page: int, per_page: int) -> ProjectPage:
        matched = [p for p in self.projects if filters.matches(p)]
        start = (page - 1) * per_page
        return ProjectPage(
            items=matched[start : start + per_page],
            total=len(matched),
            page=page,
            per_page=per_page,
        )

    async def list_projects(
        self, filters: ProjectFilters, page: int, per_page: int
    ) -> Result[ProjectPage, DashboardError]:
        self.list_calls.append((filters, page, per_page))
        if self.hold:
            future: asyncio.Future[Result[ProjectPage, DashboardError]] = (
                asyncio.get_running_loop().create_future()
            )
            self.held.append(_HeldCall(filters, page, per_page, future))
            return await future
        return Ok(self.page_for(filters, page, per_page))

    def resolve(self, index: int) -> None:
        call = self.held[index]
        call.future.set_result(Ok(self.page_for(call.filters, call.page, call.per_page)))

    def fail(self, index: int, error: DashboardError) -> None:
        self.held[index].future.set_result(Err(error))

    async def get_project(self, project_id: str) -> Result[ProjectSummary, DashboardError]:
        for project in self.projects:
            if project.id == project_id:
                return Ok(project)
        return Err(NotFoundError(f"Project {project_id} not found"))

    async def delete_project(self, project_id: str) -> Result[None, DashboardError]:
        if self.delete_error is not None:
            return Err(self.delete_error)
        self.deleted.append(project_id)
        self.projects = [p for p in self.projects if p.id != project_id]
        return Ok(None)

    async def subscribe_to_changes(self, table: str) -> Result[Subscription, DashboardError]:
        if self.subscribe_error is not None:
            return Err(self.subscribe_error)
        return Ok(self.feed.subscribe(table))


class FakeNotifier:
    def __init__(self, error: DashboardError | None = None, *, hang: bool = False) -> None:
        self.error = error
        self.hang = hang
        self.calls: list[tuple[str, str]] = []

    async def project_deleted(self, project_id: str, project_no: str) -> int | None:
        self.calls.append((project_id, project_no))
        if self.hang:
            await asyncio.Event().wait()
        if self.error is not None:
            raise self.error
        return 200

    async def files_uploaded(
        self, project_id: str, project_no: str, file_names: list[str]
    ) -> int | None:
        return 200


async def settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


def _projects(count: int) -> list[ProjectSummary]:
    return [make_project(n) for n in range(1, count + 1)]


def _controller(
    service: FakeProjectService, **kwargs: object
) -> tuple[ListSyncController, list[DashboardError]]:
    kwargs.setdefault("realtime_debounce", 0.0)
    controller = ListSyncController(service, **kwargs)  # type: ignore[arg-type]
    errors: list[DashboardError] = []
    controller.add_error_listener(errors.append)
    return controller, errors


@pytest.mark.asyncio
async def test_apply_same_filters_twice_is_idempotent() -> None:
    service = FakeProjectService(_projects(15))
    controller, errors = _controller(service)
    filters = ProjectFilters(keyword="Project 1")

    await controller.apply_filters(filters)
    first = (controller.projects, controller.total, controller.page)
    await controller.apply_filters(filters)

    assert (controller.projects, controller.total, controller.page) == first
    assert controller.total == 7  # Project 1, 10..15
    assert errors == []


@pytest.mark.asyncio
async def test_draft_filters_never_fetch() -> None:
    service = FakeProjectService(_projects(3))
    controller, _ = _controller(service)
    seen: list[ProjectFilters] = []
    controller.add_listener(lambda c: seen.append(c.draft_filters))

    controller.set_draft_filters(ProjectFilters(project_no="PJ-100"))

    assert service.list_calls == []
    assert seen == [ProjectFilters(project_no="PJ-100")]
    assert controller.filters == ProjectFilters()


@pytest.mark.asyncio
async def test_apply_filters_uses_draft_and_resets_to_first_page() -> None:
    service = FakeProjectService(_projects(30))
    controller, _ = _controller(service)
    await controller.refetch()
    await controller.set_page(3)

    controller.set_draft_filters(ProjectFilters(project_no="  PJ-101 "))
    await controller.apply_filters()

    assert controller.page == 1
    assert controller.filters.project_no == "PJ-101"
    assert service.list_calls[-1] == (ProjectFilters(project_no="PJ-101"), 1, 10)
    assert [p.project_no for p in controller.projects] == [f"PJ-101{n}" for n in range(10)]


@pytest.mark.asyncio
async def test_reset_filters_clears_applied_and_draft() -> None:
    service = FakeProjectService(_projects(5))
    controller, _ = _controller(service)
    await controller.apply_filters(ProjectFilters(status=ProjectStatus.COMPLETED))
    assert controller.total == 0

    await controller.reset_filters()

    assert controller.filters.is_empty
    assert controller.draft_filters.is_empty
    assert controller.total == 5


@pytest.mark.asyncio
async def test_set_page_beyond_last_page_clamps_and_fetches_last_page() -> None:
    service = FakeProjectService(_projects(48))
    controller, _ = _controller(service)
    await controller.refetch()

    await controller.set_page(99)

    assert controller.page == 5
    assert service.list_calls[-1][1] == 5
    assert len(controller.projects) == 8


@pytest.mark.asyncio
async def test_set_page_below_one_clamps_to_first_page() -> None:
    service = FakeProjectService(_projects(12))
    controller, _ = _controller(service)
    await controller.refetch()

    await controller.set_page(0)

    assert controller.page == 1
    assert service.list_calls[-1][1] == 1


@pytest.mark.asyncio
async def test_project_no_filter_scenario_clamps_second_page() -> None:
    projects = [make_project(n, project_no=f"PJ-{1000 + n}") for n in range(20, 25)]
    projects.append(make_project(99, project_no="AB-0099"))
    service = FakeProjectService(projects)
    controller, _ = _controller(service)

    await controller.apply_filters(ProjectFilters(project_no="PJ-1"))
    assert len(controller.projects) == 5
    assert controller.total == 5
    assert [p.project_no for p in controller.projects] == [f"PJ-10{n}" for n in range(20, 25)]

    await controller.set_page(2)
    assert controller.page == 1
    assert service.list_calls[-1] == (ProjectFilters(project_no="PJ-1"), 1, 10)


@pytest.mark.asyncio
async def test_set_per_page_resets_page_and_rejects_non_positive() -> None:
    service = FakeProjectService(_projects(30))
    controller, _ = _controller(service)
    await controller.refetch()
    await controller.set_page(2)

    await controller.set_per_page(20)
    assert controller.page == 1
    assert controller.per_page == 20
    assert len(controller.projects) == 20

    with pytest.raises(ValueError, match="per_page"):
        await controller.set_per_page(0)


def test_constructor_rejects_non_positive_per_page() -> None:
    with pytest.raises(ValueError, match="per_page"):
        ListSyncController(FakeProjectService([]), per_page=0)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_confirmed_delete_removes_only_that_row() -> None:
    a, b, c = make_project(1), make_project(2), make_project(3)
    service = FakeProjectService([a, b, c])
    notifier = FakeNotifier()
    controller, errors = _controller(service, notifier=notifier)
    await controller.refetch()

    assert controller.request_delete(b.id) == b
    assert controller.pending_delete == b
    assert controller.projects == (a, b, c)

    assert await controller.confirm_delete(b.id) is True
    assert controller.projects == (a, c)
    assert controller.total == 2
    assert controller.pending_delete is None

    await controller.wait_idle()
    assert controller.projects == (a, c)
    assert controller.total == 2
    assert service.deleted == [b.id]
    assert notifier.calls == [(b.id, b.project_no)]
    assert errors == []


@pytest.mark.asyncio
async def test_cancel_delete_keeps_row_and_skips_service() -> None:
    service = FakeProjectService(_projects(2))
    controller, _ = _controller(service)
    await controller.refetch()

    controller.request_delete("p1")
    controller.cancel_delete()

    assert controller.pending_delete is None
    assert len(controller.projects) == 2
    assert service.deleted == []


@pytest.mark.asyncio
async def test_failed_delete_leaves_list_untouched_and_raises_one_error() -> None:
    service = FakeProjectService(_projects(3))
    controller, errors = _controller(service)
    await controller.refetch()
    before = controller.projects
    calls_before = len(service.list_calls)
    service.delete_error = PermissionDeniedError("not yours")

    assert await controller.confirm_delete("p2") is False
    await controller.wait_idle()

    assert controller.projects == before
    assert controller.total == 3
    assert len(errors) == 1
    assert isinstance(errors[0], PermissionDeniedError)
    assert controller.error is errors[0]
    assert len(service.list_calls) == calls_before


@pytest.mark.asyncio
async def test_delete_last_row_on_page_moves_back_a_page() -> None:
    service = FakeProjectService(_projects(11))
    controller, _ = _controller(service)
    await controller.refetch()
    await controller.set_page(2)
    assert [p.id for p in controller.projects] == ["p11"]

    await controller.confirm_delete("p11")
    await controller.wait_idle()

    assert controller.page == 1
    assert controller.total == 10
    assert len(controller.projects) == 10


@pytest.mark.asyncio
async def test_webhook_failure_is_not_user_visible() -> None:
    service = FakeProjectService(_projects(3))
    notifier = FakeNotifier(WebhookError("HTTP 500"))
    controller, errors = _controller(service, notifier=notifier)
    await controller.refetch()

    assert await controller.confirm_delete("p1") is True
    await controller.wait_idle()

    assert [p.id for p in controller.projects] == ["p2", "p3"]
    assert errors == []
    assert controller.error is None
    assert notifier.calls == [("p1", "PJ-1001")]


@pytest.mark.asyncio
async def test_hanging_webhook_does_not_block_delete() -> None:
    service = FakeProjectService(_projects(3))
    notifier = FakeNotifier(hang=True)
    controller, errors = _controller(service, notifier=notifier)
    await controller.refetch()

    assert await asyncio.wait_for(controller.confirm_delete("p1"), timeout=1.0) is True
    await settle()
    assert notifier.calls == [("p1", "PJ-1001")]
    assert [p.id for p in controller.projects] == ["p2", "p3"]

    await controller.stop()
    assert errors == []


@pytest.mark.asyncio
async def test_older_response_arriving_last_is_discarded() -> None:
    service = FakeProjectService(_projects(48))
    controller, errors = _controller(service, fetch_timeout=None)
    await controller.refetch()

    service.hold = True
    first = asyncio.create_task(controller.set_page(2))
    second = asyncio.create_task(controller.set_page(3))
    await settle()
    assert [c.page for c in service.held] == [2, 3]
    assert controller.loading

    service.resolve(1)
    assert await second is True
    service.resolve(0)
    assert await first is False

    assert controller.page == 3
    assert [p.id for p in controller.projects] == [f"p{n}" for n in range(21, 31)]
    assert controller.applied_sequence == controller.issued_sequence
    assert not controller.loading
    assert errors == []


@pytest.mark.asyncio
async def test_stale_failure_is_discarded_without_error() -> None:
    service = FakeProjectService(_projects(20))
    controller, errors = _controller(service, fetch_timeout=None)
    await controller.refetch()

    service.hold = True
    first = asyncio.create_task(controller.refetch())
    second = asyncio.create_task(controller.set_page(2))
    await settle()
    service.resolve(1)
    await second
    service.fail(0, TransientNetworkError())
    await first

    assert errors == []
    assert controller.error is None
    assert not controller.stale
    assert controller.page == 2


@pytest.mark.asyncio
async def test_fetch_failure_keeps_last_good_rows() -> None:
    service = FakeProjectService(_projects(4))
    controller, errors = _controller(service, fetch_timeout=None)
    await controller.refetch()
    before = controller.projects

    service.hold = True
    task = asyncio.create_task(controller.refetch())
    await settle()
    service.fail(0, TransientNetworkError("offline"))
    assert await task is False

    assert controller.projects == before
    assert controller.total == 4
    assert controller.stale
    assert [str(e) for e in errors] == ["offline"]

    service.hold = False
    await controller.refetch()
    assert not controller.stale
    assert controller.error is not None
    controller.dismiss_error()
    assert controller.error is None


@pytest.mark.asyncio
async def test_fetch_timeout_surfaces_transient_error() -> None:
    service = FakeProjectService(_projects(2))
    controller, errors = _controller(service, fetch_timeout=0.05)
    service.hold = True

    assert await controller.refetch() is False

    assert not controller.loading
    assert len(errors) == 1
    assert isinstance(errors[0], TransientNetworkError)
    assert "timed out" in str(errors[0])


@pytest.mark.asyncio
async def test_change_events_are_collapsed_into_one_refetch() -> None:
    service = FakeProjectService(_projects(3))
    controller, _ = _controller(service, realtime_debounce=0.05)
    await controller.start()
    assert controller.started
    assert len(service.list_calls) == 1

    for _ in range(3):
        service.feed.publish(ChangeEvent(table=PROJECTS_TABLE, kind=ChangeKind.UPDATE))
    await asyncio.sleep(0.2)

    assert len(service.list_calls) == 2
    await controller.stop()


@pytest.mark.asyncio
async def test_change_event_refetches_current_query() -> None:
    service = FakeProjectService(_projects(3))
    controller, _ = _controller(service)
    await controller.start()

    service.projects.append(make_project(4))
    service.feed.publish(ChangeEvent(table=PROJECTS_TABLE, kind=ChangeKind.INSERT, record_id="p4"))
    await settle()

    assert controller.total == 4
    await controller.stop()


@pytest.mark.asyncio
async def test_start_subscribes_once_and_stop_releases_subscription() -> None:
    service = FakeProjectService(_projects(1))
    controller, _ = _controller(service)

    async with controller:
        await controller.start()
        assert service.feed.subscriber_count(PROJECTS_TABLE) == 1

    assert service.feed.subscriber_count(PROJECTS_TABLE) == 0
    assert not controller.started

    service.feed.publish(ChangeEvent(table=PROJECTS_TABLE))
    await settle()
    assert len(service.list_calls) == 2


@pytest.mark.asyncio
async def test_subscribe_failure_still_loads_list() -> None:
    service = FakeProjectService(_projects(2))
    service.subscribe_error = TransientNetworkError("realtime down")
    controller, errors = _controller(service)

    assert await controller.start() is True

    assert len(controller.projects) == 2
    assert [str(e) for e in errors] == ["realtime down"]
    assert not controller.started


@pytest.mark.asyncio
async def test_refresh_row_replaces_in_place() -> None:
    service = FakeProjectService(_projects(3))
    controller, _ = _controller(service)
    await controller.refetch()
    calls = len(service.list_calls)

    renamed = service.projects[1].model_copy(update={"title": "Renamed"})
    service.projects[1] = renamed
    assert await controller.refresh_row("p2") is True

    assert controller.projects[1].title == "Renamed"
    assert len(service.list_calls) == calls


@pytest.mark.asyncio
async def test_refresh_row_refetches_when_row_leaves_filter() -> None:
    service = FakeProjectService(_projects(3))
    controller, _ = _controller(service)
    await controller.apply_filters(ProjectFilters(status=ProjectStatus.IN_PROGRESS))

    service.projects[0] = service.projects[0].model_copy(
        update={"status": ProjectStatus.COMPLETED}
    )
    await controller.refresh_row("p1")

    assert [p.id for p in controller.projects] == ["p2", "p3"]
    assert controller.total == 2


@pytest.mark.asyncio
async def test_refresh_row_for_deleted_project_refetches() -> None:
    service = FakeProjectService(_projects(3))
    controller, errors = _controller(service)
    await controller.refetch()
    service.projects.pop(0)

    await controller.refresh_row("p1")

    assert [p.id for p in controller.projects] == ["p2", "p3"]
    assert errors == []


@pytest.mark.asyncio
async def test_listener_failure_does_not_break_controller() -> None:
    service = FakeProjectService(_projects(2))
    controller, _ = _controller(service)

    def _boom(_controller: ListSyncController) -> None:
        raise RuntimeError("listener bug")

    unsubscribe = controller.add_listener(_boom)
    assert await controller.refetch() is True
    unsubscribe()
    assert len(controller.projects) == 2


@pytest.mark.asyncio
async def test_delete_webhook_receives_project_number() -> None:
    service = FakeProjectService(_projects(2))
    notifier = AsyncMock()
    notifier.project_deleted.side_effect = WebhookError("HTTP 500")
    controller, errors = _controller(service, notifier=notifier)
    await controller.refetch()

    await controller.confirm_delete("p2")
    await controller.wait_idle()

    notifier.project_deleted.assert_awaited_once_with("p2", "PJ-1002")
    assert errors == []


@pytest.mark.asyncio
async def test_refetch_for_old_query_does_not_move_newly_applied_filters() -> None:
    service = FakeProjectService(_projects(21))
    controller, errors = _controller(service, fetch_timeout=None)
    await controller.refetch()
    await controller.set_page(3)
    assert [p.id for p in controller.projects] == ["p21"]

    service.hold = True
    realtime = asyncio.create_task(controller.refetch())
    applied = asyncio.create_task(controller.apply_filters(ProjectFilters(project_no="PJ-10")))
    await settle()
    service.projects = service.projects[:-1]

    service.resolve(0)
    assert await realtime is False
    assert controller.page == 1
    service.resolve(1)
    assert await applied is True

    assert controller.page == 1
    assert controller.filters.project_no == "PJ-10"
    assert controller.total == 20
    assert [p.id for p in controller.projects] == [f"p{n}" for n in range(1, 11)]
    assert [(f.project_no, page) for f, page, _ in service.list_calls[2:]] == [
        ("", 3),
        ("PJ-10", 1),
    ]
    assert errors == []


@pytest.mark.asyncio
async def test_newest_completed_fetch_wins_over_older_ones_arriving_later() -> None:
    service = FakeProjectService(_projects(5))
    controller, errors = _controller(service, fetch_timeout=None)
    await controller.refetch()

    service.hold = True
    tasks = [asyncio.create_task(controller.refetch()) for _ in range(3)]
    await settle()
    assert len(service.held) == 3

    service.resolve(2)
    assert await tasks[2] is True
    newest = controller.projects
    service.projects = service.projects[:2]

    service.resolve(0)
    service.resolve(1)
    assert await tasks[0] is False
    assert await tasks[1] is False

    assert controller.projects == newest
    assert controller.total == 5
    assert controller.applied_sequence == controller.issued_sequence
    assert errors == []


@pytest.mark.asyncio
@pytest.mark.parametrize("realtime_first", [True, False])
async def test_realtime_refetch_racing_delete_reconcile(realtime_first: bool) -> None:
    service = FakeProjectService(_projects(3))
    controller, errors = _controller(service, fetch_timeout=None)
    await controller.start()
    before_delete = service.page_for(ProjectFilters(), 1, 10)

    service.hold = True
    service.feed.publish(ChangeEvent(table=PROJECTS_TABLE, kind=ChangeKind.UPDATE))
    await settle()
    assert len(service.held) == 1

    assert await controller.confirm_delete("p2") is True
    await settle()
    assert len(service.held) == 2

    if realtime_first:
        service.held[0].future.set_result(Ok(before_delete))
        await settle()
        service.resolve(1)
    else:
        service.resolve(1)
        await settle()
        service.held[0].future.set_result(Ok(before_delete))
    await settle()
    await controller.wait_idle()

    assert [p.id for p in controller.projects] == ["p1", "p3"]
    assert controller.total == 2
    assert errors == []
    await controller.stop()


class ExplodingProjectService(FakeProjectService):
    def __init__(self, projects: list[ProjectSummary]) -> None:
        super().__init__(projects)
        self.explode = 0

    async def list_projects(
        self, filters: ProjectFilters, page: int, per_page: int
    ) -> Result[ProjectPage, DashboardError]:
        if self.explode:
            self.explode -= 1
            self.list_calls.append((filters, page, per_page))
            raise ValueError("bad JSON body")
        return await super().list_projects(filters, page, per_page)


@pytest.mark.asyncio
async def test_unexpected_refetch_error_keeps_realtime_loop_alive(
    caplog: pytest.LogCaptureFixture,
) -> None:
    service = ExplodingProjectService(_projects(2))
    controller, _ = _controller(service, fetch_timeout=None)
    await controller.start()
    assert len(service.list_calls) == 1

    service.explode = 1
    with caplog.at_level("ERROR", logger="projdash.services.list_sync"):
        service.feed.publish(ChangeEvent(table=PROJECTS_TABLE, kind=ChangeKind.UPDATE))
        await asyncio.sleep(0.05)
    assert "Realtime refetch failed" in caplog.text
    assert not controller.loading

    service.projects = service.projects[:1]
    service.feed.publish(ChangeEvent(table=PROJECTS_TABLE, kind=ChangeKind.DELETE))
    await asyncio.sleep(0.05)

    assert len(service.list_calls) == 3
    assert [p.id for p in controller.projects] == ["p1"]
    assert controller.started
    await controller.stop()
