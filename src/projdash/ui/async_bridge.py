"""qasync glue: run coroutines from Qt slots on the shared asyncio loop."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from PySide6.QtWidgets import QApplication
from qasync import QEventLoop

logger = logging.getLogger(__name__)
_PENDING: set[asyncio.Task[Any]] = set()


def create_event_loop(app: QApplication) -> QEventLoop:
    """Install a qasync loop so Qt events and asyncio tasks share one thread."""
    loop = QEventLoop(app)
    asyncio.set_event_loop(loop)
    return loop


def schedule[T](coro: Coroutine[Any, Any, T]) -> asyncio.Task[T]:
    """Start ``coro`` as a tracked task; failures are logged, not raised."""
    task: asyncio.Task[T] = asyncio.create_task(coro)
    _PENDING.add(task)
    task.add_done_callback(_finished)
    return task


def async_slot[**P, T](
    func: Callable[P, Coroutine[Any, Any, T]],
) -> Callable[P, None]:
    """Let an ``async def`` method be connected to a Qt signal.

    Each emission schedules a new task::

        self._query_button.clicked.connect(self._on_query)

        @async_slot
        async def _on_query(self) -> None:
            await self._controller.apply_filters()
    """

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> None:
        schedule(func(*args, **kwargs))

    return wrapper


def pending_tasks() -> int:
    return len(_PENDING)


def cancel_all_tasks() -> None:
    """Cancel every tracked task except the caller's own."""
    current = asyncio.current_task()
    for task in list(_PENDING):
        if task is not current:
            task.cancel()


def _finished(task: asyncio.Task[Any]) -> None:
    _PENDING.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Unhandled exception in UI task", exc_info=exc)
