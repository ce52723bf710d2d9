from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from collections.abc import Callable

from shieldcore.utils import asyncio_utils

logger = logging.getLogger(__name__)

SCHEDULE_INTERVAL = 30 * 60


class Scheduler:
    """
    Runs a set of jobs every `interval` seconds, starting right away.

    Every job runs as its own task: a slow or failing job neither delays nor
    breaks the others, and a cycle never waits for the previous one.
    """

    def __init__(self, interval: float = SCHEDULE_INTERVAL) -> None:
        self.interval = interval
        self.jobs: list[tuple[str, Callable[[], Awaitable[object]]]] = []
        self._task: asyncio.Task | None = None

    def add(self, name: str, job: Callable[[], Awaitable[object]]) -> None:
        self.jobs.append((name, job))

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> list[asyncio.Task]:
        tasks = []
        for name, job in self.jobs:
            tasks.append(asyncio_utils.spawn(job(), name=f"scheduled {name}"))
        return tasks

    def start(self) -> None:
        if self.running:
            return
        self.tick()
        self._task = asyncio_utils.create_task(
            self._loop(), name="scheduler", keep_ref=True
        )

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.tick()

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
