"""In-process asynchronous job queue with per-job retry policies.

Usage::

    from trip_common.jobs import JobQueue

    queue = JobQueue(concurrency=4)

    # In create_app():
    app.on_startup.append(queue.start)
    app.on_cleanup.append(queue.stop)

    # Anywhere in a request handler (never blocks):
    queue.enqueue(SomeJob(...))

A job is any object exposing ``name``, ``retry_policy``, ``handle()`` and
``failed(error)``. ``handle`` is attempted ``retry_policy.tries`` times with
``retry_policy.backoff_seconds`` between attempts; once attempts are
exhausted ``failed`` is awaited exactly once. Delivery is at-least-once:
a job that raised may already have had side effects.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from trip_common.retry import RetryPolicy, SleepFn, call_with_retry

logger = structlog.get_logger(__name__)


class Job(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def retry_policy(self) -> RetryPolicy: ...

    async def handle(self) -> Any: ...

    async def failed(self, error: BaseException) -> None: ...


@dataclass(frozen=True)
class JobResult:
    job: str
    succeeded: bool
    attempts: int
    error: str | None = None


async def run_job(job: Job, *, sleep: SleepFn = asyncio.sleep) -> JobResult:
    """Execute ``job`` under its retry policy and report how it ended."""
    attempts = 0

    async def attempt() -> Any:
        nonlocal attempts
        attempts += 1
        return await job.handle()

    def log_retry(attempt_no: int, error: BaseException | None) -> None:
        logger.warning(
            "job attempt failed, retrying",
            job=job.name,
            attempt=attempt_no,
            tries=job.retry_policy.tries,
            backoff_seconds=job.retry_policy.backoff_seconds,
            error=str(error),
        )

    try:
        await call_with_retry(attempt, job.retry_policy, on_retry=log_retry, sleep=sleep)
    except Exception as exc:
        logger.error("job attempts exhausted", job=job.name, attempts=attempts, error=str(exc))
        try:
            await job.failed(exc)
        except Exception:
            logger.exception("job failure hook raised", job=job.name)
        return JobResult(job=job.name, succeeded=False, attempts=attempts, error=str(exc))
    return JobResult(job=job.name, succeeded=True, attempts=attempts)


@dataclass
class JobQueue:
    """Worker pool pulling jobs from an in-memory queue.

    Lifecycle methods are compatible with ``app.on_startup`` /
    ``app.on_cleanup``.
    """

    concurrency: int = 4
    sleep: SleepFn = asyncio.sleep
    _queue: asyncio.Queue | None = field(default=None, init=False, repr=False)
    _workers: list[asyncio.Task] = field(default_factory=list, init=False, repr=False)

    def _jobs(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    def enqueue(self, job: Job) -> None:
        """Schedule ``job``; returns immediately."""
        self._jobs().put_nowait(job)
        logger.info("job enqueued", job=job.name, pending=self._jobs().qsize())

    @property
    def pending(self) -> int:
        return self._jobs().qsize()

    async def start(self, _app: Any = None) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker_loop(index)) for index in range(max(self.concurrency, 1))
        ]
        logger.info("job_queue started", concurrency=len(self._workers))

    async def stop(self, _app: Any = None) -> None:
        for task in self._workers:
            task.cancel()
        for task in self._workers:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._workers:
            logger.info("job_queue stopped", unprocessed=self.pending)
        self._workers = []

    async def join(self) -> None:
        """Wait until every enqueued job has finished (successfully or not)."""
        await self._jobs().join()

    async def _worker_loop(self, index: int) -> None:
        queue = self._jobs()
        while True:
            job = await queue.get()
            try:
                result = await run_job(job, sleep=self.sleep)
                logger.info(
                    "job finished",
                    worker=index,
                    job=result.job,
                    succeeded=result.succeeded,
                    attempts=result.attempts,
                )
            except Exception:
                logger.exception("job runner crashed", worker=index, job=job.name)
            finally:
                queue.task_done()
