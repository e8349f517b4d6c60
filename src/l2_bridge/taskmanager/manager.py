"""Task manager — periodic background jobs on asyncio tasks.

Each ``CronJob`` has a ``period`` (seconds) and a handler coroutine. A job
that raises is logged and runs again on its next tick; one failing run
never stops the loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from l2_bridge.metrics.collector import BridgeMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CronJob:
    """A recurring background job."""

    handler: Callable[[], Awaitable[None]]
    period: float  # seconds
    name: str = ""


class TaskManager:
    """Runs registered cron jobs until stopped.

    Usage::

        tm = TaskManager(metrics=bridge_metrics)
        tm.register("refresh", CronJob(handler=..., period=60))
        await tm.start()
        ...
        await tm.stop()
    """

    def __init__(self, *, metrics: BridgeMetrics | None = None) -> None:
        self._jobs: dict[str, CronJob] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._running = False
        self._metrics = metrics

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def jobs(self) -> dict[str, CronJob]:
        """Registered jobs (name → CronJob)."""
        return dict(self._jobs)

    def register(self, name: str, job: CronJob) -> None:
        """Register a job. Starts it immediately if the manager is running."""
        if job.period <= 0:
            msg = f"period for job {name!r} must be positive"
            raise ValueError(msg)
        resolved = replace(job, name=name)
        self._jobs[name] = resolved
        if self._running:
            self._spawn(resolved)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for job in self._jobs.values():
            self._spawn(job)
        logger.info("TaskManager started with %d jobs", len(self._jobs))

    async def stop(self) -> None:
        """Cancel all running jobs and wait for them to finish."""
        if not self._running:
            return
        self._running = False
        for task in self._tasks.values():
            task.cancel()
        results = await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        for r in results:
            if isinstance(r, Exception):
                logger.error("Task error during shutdown: %s", r)
        self._tasks.clear()
        logger.info("TaskManager stopped")

    async def run_now(self, name: str) -> None:
        """Run one job immediately, outside its schedule.

        Raises:
            KeyError: No job registered under *name*.
        """
        await self._execute(self._jobs[name])

    def _spawn(self, job: CronJob) -> None:
        previous = self._tasks.get(job.name)
        if previous is not None:
            previous.cancel()
        self._tasks[job.name] = asyncio.create_task(self._run_loop(job), name=f"cron:{job.name}")

    async def _execute(self, job: CronJob) -> None:
        if self._metrics is not None:
            with self._metrics.track_cron(job.name):
                await job.handler()
        else:
            await job.handler()

    async def _run_loop(self, job: CronJob) -> None:
        while self._running:
            try:
                await asyncio.sleep(job.period)
                if not self._running:
                    break
                await self._execute(job)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Cron job %r failed", job.name)
