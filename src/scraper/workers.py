"""Worker-thread isolation for cascade runs.

A hung browser page must not stall the orchestrator's event loop, so cascade
runs can be handed to a fixed pool of worker threads. Each worker owns an
event loop and a cascade built by ``cascade_factory`` inside the thread; the
factory shares one proxy rotator across workers and gives each a slice of the
browser context cap. A worker whose cascade cannot be built answers its tasks
with failures. Tasks travel over a ``queue.Queue``; results come back through
futures as ``WorkerResult``.
"""

import asyncio
import concurrent.futures
import logging
import queue
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from .base.models import ALL_TIERS, RetailerOutcome, SearchQuery, StrategyName

logger = logging.getLogger(__name__)

JOIN_TIMEOUT_SEC = 30


class CascadeRunner(Protocol):
    async def run(
        self, retailer_key: str, query: SearchQuery, tiers: Sequence[StrategyName] = ...
    ) -> RetailerOutcome: ...

    async def close(self) -> None: ...


@dataclass
class WorkerResult:
    """Message sent back from a worker for one task."""

    success: bool
    retailer_key: str
    outcome: RetailerOutcome | None = None
    error: str | None = None


@dataclass
class WorkerTask:
    retailer_key: str
    query: SearchQuery
    tiers: tuple[StrategyName, ...] = ALL_TIERS
    future: concurrent.futures.Future = field(default_factory=concurrent.futures.Future)


_STOP = object()


class WorkerPool:
    """Fixed-size pool of isolated cascade workers.

    Args:
    ----
        size: Number of worker threads
        cascade_factory: Builds one cascade per worker, called inside the
            worker thread so its resources bind to that thread's loop

    """

    def __init__(self, size: int, cascade_factory: Callable[[], CascadeRunner]):
        if size < 1:
            raise ValueError("WorkerPool size must be at least 1")
        self.size = size
        self._cascade_factory = cascade_factory
        self._tasks: queue.Queue = queue.Queue()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def started(self) -> bool:
        return bool(self._threads)

    def start(self) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("WorkerPool is closed")
            if self._threads:
                return
            for index in range(self.size):
                thread = threading.Thread(
                    target=self._worker_main,
                    args=(index,),
                    daemon=True,
                    name=f"CascadeWorker-{index}",
                )
                thread.start()
                self._threads.append(thread)
        logger.info(f"Started {self.size} cascade workers")

    def _worker_main(self, index: int) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._serve(index))
        finally:
            loop.close()
            logger.debug(f"Cascade worker {index} stopped")

    async def _next_task(self) -> WorkerTask | None:
        """Block for the next runnable task; None once the stop marker arrives."""
        while True:
            task = await asyncio.to_thread(self._tasks.get)
            if task is _STOP:
                return None
            if task.future.set_running_or_notify_cancel():
                return task

    async def _serve(self, index: int) -> None:
        try:
            cascade = self._cascade_factory()
        except Exception as e:
            logger.error(f"Worker {index} could not build its cascade: {e}", exc_info=True)
            await self._reject_tasks(f"Worker cascade unavailable: {e}")
            return
        try:
            while True:
                task = await self._next_task()
                if task is None:
                    break
                task.future.set_result(await self._execute(cascade, task, index))
        finally:
            await cascade.close()

    async def _reject_tasks(self, error: str) -> None:
        """Answer every task with a failure until told to stop."""
        while True:
            task = await self._next_task()
            if task is None:
                return
            task.future.set_result(
                WorkerResult(success=False, retailer_key=task.retailer_key, error=error)
            )

    async def _execute(
        self, cascade: CascadeRunner, task: WorkerTask, index: int
    ) -> WorkerResult:
        try:
            outcome = await cascade.run(task.retailer_key, task.query, task.tiers)
        except Exception as e:
            logger.error(
                f"Worker {index} failed on {task.retailer_key}: {e}", exc_info=True
            )
            return WorkerResult(success=False, retailer_key=task.retailer_key, error=str(e))
        return WorkerResult(success=True, retailer_key=task.retailer_key, outcome=outcome)

    def submit(
        self,
        retailer_key: str,
        query: SearchQuery,
        tiers: Sequence[StrategyName] = ALL_TIERS,
    ) -> concurrent.futures.Future:
        """Queue one cascade run and return a future for its ``WorkerResult``."""
        self.start()
        task = WorkerTask(retailer_key=retailer_key, query=query, tiers=tuple(tiers))
        self._tasks.put(task)
        return task.future

    async def run(
        self,
        retailer_key: str,
        query: SearchQuery,
        tiers: Sequence[StrategyName] = ALL_TIERS,
    ) -> RetailerOutcome:
        """Run a cascade on a worker; worker errors become failed outcomes."""
        result: WorkerResult = await asyncio.wrap_future(
            self.submit(retailer_key, query, tiers)
        )
        if result.success and result.outcome is not None:
            return result.outcome
        return RetailerOutcome.failed(
            retailer_key, result.error or "Worker returned no outcome"
        )

    async def close(self) -> None:
        """Stop every worker after its current task and close its cascade."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            threads, self._threads = self._threads, []

        for _ in threads:
            self._tasks.put(_STOP)
        for thread in threads:
            await asyncio.to_thread(thread.join, JOIN_TIMEOUT_SEC)
            if thread.is_alive():
                logger.warning(f"{thread.name} did not stop within {JOIN_TIMEOUT_SEC}s")

        # Tasks still queued behind the stop markers never ran
        while True:
            try:
                task = self._tasks.get_nowait()
            except queue.Empty:
                break
            if task is not _STOP:
                task.future.cancel()
        logger.debug("Worker pool closed")
