"""Project list controller: filters, pagination, deletes and realtime refetch.

The controller owns the visible page of projects. Every fetch gets a sequence
number when it is issued; a response older than the newest response already
applied is dropped, whether it succeeded or failed, and so is a response for a
query (filters, page, page size) that has changed since it was issued. Realtime
change events never patch rows, they schedule a full refetch of the current query.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any

from result import Err, Ok, Result

from projdash.data.protocols import PROJECTS_TABLE
from projdash.errors import DashboardError, NotFoundError, TransientNetworkError, WebhookError
from projdash.models.projects import ProjectFilters, ProjectPage, ProjectSummary, QueryState

if TYPE_CHECKING:
    from types import TracebackType

    from projdash.data.changes import Subscription
    from projdash.services.protocols import ProjectServiceProtocol, WebhookNotifierProtocol

logger = logging.getLogger(__name__)

StateListener = Callable[["ListSyncController"], None]
ErrorListener = Callable[[DashboardError], None]


class ListSyncController:
    """Single source of truth for the currently visible page of projects."""

    def __init__(
        self,
        service: ProjectServiceProtocol,
        *,
        notifier: WebhookNotifierProtocol | None = None,
        per_page: int = 10,
        fetch_timeout: float | None = 10.0,
        realtime_debounce: float = 0.3,
        table: str = PROJECTS_TABLE,
    ) -> None:
        if per_page <= 0:
            msg = f"per_page must be positive, got {per_page}"
            raise ValueError(msg)
        self._service = service
        self._notifier = notifier
        self._fetch_timeout = fetch_timeout
        self._debounce = realtime_debounce
        self._table = table

        self._query = QueryState(per_page=per_page)
        self._draft = ProjectFilters()
        self._projects: tuple[ProjectSummary, ...] = ()
        self._error: DashboardError | None = None
        self._stale = False
        self._pending_delete: ProjectSummary | None = None

        self._issued_seq = 0
        self._applied_seq = 0
        self._in_flight = 0

        self._subscription: Subscription | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._listeners: list[StateListener] = []
        self._error_listeners: list[ErrorListener] = []

    @property
    def projects(self) -> tuple[ProjectSummary, ...]:
        return self._projects

    @property
    def query(self) -> QueryState:
        return self._query

    @property
    def filters(self) -> ProjectFilters:
        return self._query.filters

    @property
    def draft_filters(self) -> ProjectFilters:
        return self._draft

    @property
    def page(self) -> int:
        return self._query.page

    @property
    def per_page(self) -> int:
        return self._query.per_page

    @property
    def total(self) -> int:
        return self._query.total

    @property
    def last_page(self) -> int:
        return self._query.last_page

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    @property
    def error(self) -> DashboardError | None:
        return self._error

    @property
    def stale(self) -> bool:
        """True while the newest applied fetch failed and older rows are shown."""
        return self._stale

    @property
    def pending_delete(self) -> ProjectSummary | None:
        return self._pending_delete

    @property
    def started(self) -> bool:
        return self._consumer is not None

    @property
    def issued_sequence(self) -> int:
        return self._issued_seq

    @property
    def applied_sequence(self) -> int:
        return self._applied_seq

    def add_listener(self, callback: StateListener) -> Callable[[], None]:
        """Call ``callback(controller)`` after every state change."""
        self._listeners.append(callback)
        return lambda: self._discard(self._listeners, callback)

    def add_error_listener(self, callback: ErrorListener) -> Callable[[], None]:
        """Call ``callback(error)`` once per user-visible error."""
        self._error_listeners.append(callback)
        return lambda: self._discard(self._error_listeners, callback)

    @staticmethod
    def _discard(listeners: list[Any], callback: Any) -> None:
        if callback in listeners:
            listeners.remove(callback)

    def set_draft_filters(self, filters: ProjectFilters) -> None:
        """Store what the filter inputs currently hold. Never fetches."""
        self._draft = filters
        self._notify()

    async def apply_filters(self, filters: ProjectFilters | None = None) -> bool:
        """Apply ``filters`` (or the draft), go back to page 1 and fetch."""
        applied = (filters if filters is not None else self._draft).normalized()
        self._draft = applied
        self._query = self._query.model_copy(update={"filters": applied, "page": 1})
        return await self._fetch()

    async def reset_filters(self) -> bool:
        self._draft = ProjectFilters()
        self._query = self._query.model_copy(update={"filters": ProjectFilters(), "page": 1})
        return await self._fetch()

    async def set_page(self, page: int) -> bool:
        """Go to ``page``, clamped into the valid page range."""
        clamped = self._query.clamp_page(page)
        if clamped != page:
            logger.debug("Clamped page %d to %d", page, clamped)
        self._query = self._query.model_copy(update={"page": clamped})
        return await self._fetch()

    async def set_per_page(self, per_page: int) -> bool:
        if per_page <= 0:
            msg = f"per_page must be positive, got {per_page}"
            raise ValueError(msg)
        self._query = self._query.model_copy(update={"per_page": per_page, "page": 1})
        return await self._fetch()

    async def refetch(self) -> bool:
        """Re-issue the fetch for the current query."""
        return await self._fetch()

    def request_delete(self, project_id: str) -> ProjectSummary | None:
        """Open the confirmation flow for ``project_id``. The row stays visible."""
        row = self._find(project_id)
        self._pending_delete = row
        self._notify()
        return row

    def cancel_delete(self) -> None:
        self._pending_delete = None
        self._notify()

    async def confirm_delete(self, project_id: str) -> bool:
        """Delete a project after explicit confirmation.

        On success the row disappears at once, ``total`` drops by one, and a
        reconcile refetch plus the webhook run in the background. On failure
        the list stays as it was and one error is raised.
        """
        row = self._find(project_id)
        if self._pending_delete is not None and self._pending_delete.id == project_id:
            self._pending_delete = None

        result = await self._service.delete_project(project_id)
        if isinstance(result, Err):
            logger.warning("Delete of %s failed: %s", project_id, result.err_value)
            self._raise_error(result.err_value)
            self._notify()
            return False

        if row is not None:
            self._projects = tuple(p for p in self._projects if p.id != project_id)
            self._query = self._query.model_copy(update={"total": max(self._query.total - 1, 0)})
        logger.info("Deleted project %s", row.project_no if row is not None else project_id)
        self._notify()

        self._spawn(self._fetch())
        if self._notifier is not None:
            project_no = row.project_no if row is not None else ""
            self._spawn(self._notify_deleted(self._notifier, project_id, project_no))
        return True

    @staticmethod
    async def _notify_deleted(
        notifier: WebhookNotifierProtocol, project_id: str, project_no: str
    ) -> None:
        try:
            await notifier.project_deleted(project_id, project_no)
        except WebhookError as exc:
            logger.warning("Delete webhook for %s failed: %s", project_no or project_id, exc)

    async def refresh_row(self, project_id: str) -> bool:
        """Replace one row in place after an edit; fall back to a full refetch."""
        result = await self._service.get_project(project_id)
        if isinstance(result, Err):
            if isinstance(result.err_value, NotFoundError):
                return await self._fetch()
            self._raise_error(result.err_value)
            self._notify()
            return False
        updated = result.ok_value
        if self._find(project_id) is None or not self._query.filters.matches(updated):
            return await self._fetch()
        self._projects = tuple(updated if p.id == project_id else p for p in self._projects)
        self._notify()
        return True

    def dismiss_error(self) -> None:
        self._error = None
        self._notify()

    async def start(self) -> bool:
        """Subscribe to project changes once and load the first page."""
        if self._consumer is None:
            subscribed = await self._service.subscribe_to_changes(self._table)
            if isinstance(subscribed, Ok):
                self._subscription = subscribed.ok_value
                self._consumer = asyncio.create_task(
                    self._consume_changes(self._subscription),
                    name=f"list-sync-{self._table}",
                )
            else:
                logger.warning("Realtime updates unavailable: %s", subscribed.err_value)
                self._raise_error(subscribed.err_value)
        return await self._fetch()

    async def stop(self) -> None:
        """Release the subscription and cancel background work."""
        consumer, self._consumer = self._consumer, None
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if consumer is not None:
            consumer.cancel()
            await asyncio.gather(consumer, return_exceptions=True)
        pending = list(self._background)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def wait_idle(self) -> None:
        """Wait until reconcile refetches and webhook calls have finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def __aenter__(self) -> ListSyncController:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def _consume_changes(self, subscription: Subscription) -> None:
        async for event in subscription:
            logger.debug("Change on %s: %s %s", event.table, event.kind, event.record_id)
            if self._debounce > 0:
                await asyncio.sleep(self._debounce)
            collapsed = subscription.drain()
            if collapsed:
                logger.debug("Collapsed %d further change events", collapsed)
            try:
                await self._fetch()
            except Exception:
                logger.exception("Realtime refetch failed; waiting for the next change")

    async def _fetch(self) -> bool:
        self._issued_seq += 1
        seq = self._issued_seq
        query = self._query
        self._in_flight += 1
        self._notify()
        try:
            result = await self._run_fetch(query)
        finally:
            self._in_flight -= 1

        if seq < self._applied_seq:
            logger.debug("Discarding stale fetch #%d (applied #%d)", seq, self._applied_seq)
            self._notify()
            return False
        if not _same_request(query, self._query):
            logger.debug("Discarding fetch #%d for a query that has since changed", seq)
            self._notify()
            return False
        self._applied_seq = seq

        if isinstance(result, Err):
            logger.warning("Fetch #%d failed: %s", seq, result.err_value)
            self._stale = True
            self._raise_error(result.err_value)
            self._notify()
            return False

        page = result.ok_value
        self._stale = False
        self._projects = tuple(page.items[: query.per_page])
        self._query = query.model_copy(update={"total": page.total})

        if not page.items and page.total > 0 and query.page > self._query.last_page:
            self._query = self._query.model_copy(update={"page": self._query.last_page})
            logger.debug("Page %d is past the end, moving to %d", query.page, self._query.page)
            self._notify()
            return await self._fetch()

        self._notify()
        return True

    async def _run_fetch(self, query: QueryState) -> Result[ProjectPage, DashboardError]:
        request = self._service.list_projects(query.filters, query.page, query.per_page)
        if self._fetch_timeout is None:
            return await request
        try:
            return await asyncio.wait_for(request, timeout=self._fetch_timeout)
        except TimeoutError:
            return Err(
                TransientNetworkError(f"Loading projects timed out after {self._fetch_timeout:g}s")
            )

    def _find(self, project_id: str) -> ProjectSummary | None:
        return next((p for p in self._projects if p.id == project_id), None)

    def _raise_error(self, error: DashboardError) -> None:
        self._error = error
        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("Error listener failed")

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("State listener failed")

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task failed", exc_info=exc)


def _same_request(a: QueryState, b: QueryState) -> bool:
    return a.filters == b.filters and a.page == b.page and a.per_page == b.per_page
