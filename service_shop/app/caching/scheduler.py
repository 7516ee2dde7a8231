"""
Bounded worker pool for background cache rebuilds.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector

RebuildJob = Callable[[], Awaitable[None]]
FailureHandler = Callable[[str, BaseException], None]


@dataclass
class _QueuedJob:
    name: str
    job: RebuildJob


class RebuildScheduler:
    """Runs rebuild jobs on a fixed set of asyncio workers.

    ``submit`` is fire-and-forget. The queue is bounded; when it is full the
    submitter waits for a free slot instead of dropping the rebuild. A failing
    job is logged, counted and handed to ``on_failure``; it never stops its
    worker.
    """

    def __init__(
        self,
        pool_size: int = 10,
        queue_size: int = 100,
        metrics: Optional[MetricsCollector] = None,
        on_failure: Optional[FailureHandler] = None,
    ):
        if pool_size < 1:
            raise ValueError("pool_size must be at least 1")
        self.pool_size = pool_size
        self.queue_size = queue_size
        self.metrics = metrics
        self.on_failure = on_failure
        self.logger = get_logger("shop.cache.scheduler")

        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self.running = False
        self.stats = {"submitted": 0, "completed": 0, "failed": 0}

    async def start(self):
        """Start the worker tasks."""
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"cache-rebuild-{i}")
            for i in range(self.pool_size)
        ]
        self.running = True
        self.logger.info("Rebuild scheduler started", pool_size=self.pool_size, queue_size=self.queue_size)

    async def stop(self):
        """Finish queued jobs, then stop the workers."""
        if not self.running:
            return
        await self.join()
        self.running = False
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self.logger.info("Rebuild scheduler stopped", **self.stats)

    async def submit(self, job: RebuildJob, name: str = "rebuild") -> None:
        """Queue a job. Waits only while the queue is full."""
        if not self.running:
            await self.start()
        await self._queue.put(_QueuedJob(name=name, job=job))
        self.stats["submitted"] += 1
        self._record("submitted")

    async def join(self) -> None:
        """Wait until every submitted job has finished."""
        if self._queue is not None:
            await self._queue.join()

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def _worker(self, index: int):
        while True:
            queued = await self._queue.get()
            try:
                await queued.job()
                self.stats["completed"] += 1
                self._record("completed")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.stats["failed"] += 1
                self._record("failed")
                self.logger.error(
                    "Rebuild job failed",
                    job=queued.name,
                    worker=index,
                    error=str(e),
                    exc_info=True
                )
                if self.on_failure:
                    self.on_failure(queued.name, e)
            finally:
                self._queue.task_done()

    def _record(self, status: str):
        if self.metrics:
            self.metrics.increment_counter("cache_rebuild_jobs_total", status=status)
