"""
Supervisor for the single long-running background task.

Each mode has one task doing daemon I/O in the background: the
reconciliation loop while monitoring, the log tail while viewing logs, the
exec reader while a shell is open. Switching mode replaces the task; the
switch only completes once the previous task has fully exited, so two
background tasks never race on the application state.
"""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Optional, Tuple

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Coroutine[Any, Any, None]]
TaskResolver = Callable[[], Optional[Tuple[str, TaskFactory]]]


class TaskSupervisor:
    def __init__(self):
        self._task: Optional[asyncio.Task] = None
        self._name: Optional[str] = None
        self._switch_lock = asyncio.Lock()

    @property
    def current_name(self) -> Optional[str]:
        return self._name

    def is_running(self, name: Optional[str] = None) -> bool:
        if self._task is None or self._task.done():
            return False
        return name is None or name == self._name

    async def switch_to(self, name: str, factory: TaskFactory) -> None:
        async with self._switch_lock:
            await self._cancel_current()
            self._start(name, factory)

    async def ensure(self, resolve: TaskResolver) -> bool:
        """
        Start the task named by resolve() unless it is already running.

        resolve is evaluated once the switch lock is held, so it always sees
        the outcome of any switch that was queued before it.
        """
        async with self._switch_lock:
            wanted = resolve()
            if wanted is None:
                return False
            name, factory = wanted
            if self.is_running(name):
                return False
            await self._cancel_current()
            self._start(name, factory)
            return True

    async def stop(self) -> None:
        async with self._switch_lock:
            await self._cancel_current()

    def _start(self, name: str, factory: TaskFactory) -> None:
        self._name = name
        self._task = asyncio.create_task(factory(), name=f"bctop-{name}")
        self._task.add_done_callback(self._on_done)
        logger.debug(f"Started background task {name}")

    async def _cancel_current(self) -> None:
        task, name = self._task, self._name
        self._task = None
        self._name = None
        if task is None:
            return
        if not task.done():
            task.cancel()
        # wait() leaves our own cancellation separate from the child's
        await asyncio.wait({task})
        logger.debug(f"Stopped background task {name}")

    @staticmethod
    def _on_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task {task.get_name()} failed", exc_info=exc)
