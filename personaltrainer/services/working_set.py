"""Screen-owned entity lists with refresh-after-write semantics.

A working set never patches itself: after every successful mutation the
whole collection is fetched again and the list is swapped in one
assignment. Late results simply overwrite earlier ones.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterator

from personaltrainer.config import Settings
from personaltrainer.services.client import OperationResult

logger = logging.getLogger(__name__)


class WorkingSet:
    """The in-memory entities one screen is showing."""

    def __init__(self, fetch: Callable[[], Awaitable[list[Any]]]):
        self.fetch = fetch
        self.items: list[Any] = []
        self.loading = False
        self.refreshed_at: datetime | None = None
        self._listeners: list[Callable[[], None]] = []

    def __iter__(self) -> Iterator[Any]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def on_refresh(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    async def refresh(self) -> list[Any]:
        self.loading = True
        try:
            items = await self.fetch()
        finally:
            self.loading = False
        self.items = list(items)
        self.refreshed_at = datetime.now(timezone.utc)
        for listener in self._listeners:
            listener()
        return self.items

    async def apply(self, mutation: Awaitable[OperationResult]) -> OperationResult:
        """Await a create/update/delete and refetch the collection if it succeeded."""
        result = await mutation
        if result.ok:
            await self.refresh()
        return result


class PeriodicRefresher:
    """Refresh a working set on a fixed interval until stopped."""

    def __init__(self, working_set: WorkingSet, interval_seconds: float):
        self.working_set = working_set
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def _run(self) -> None:
        while True:
            await self.working_set.refresh()
            logger.debug("Working set refreshed: %d items", len(self.working_set))
            await asyncio.sleep(self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None


def refresher_for(working_set: WorkingSet, settings: Settings) -> PeriodicRefresher:
    """A refresher polling at the configured interval (one minute by default)."""
    return PeriodicRefresher(working_set, settings.refresh_interval_seconds)
