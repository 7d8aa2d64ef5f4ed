"""In-process job scheduler.

Jobs are registered by name and run as asyncio tasks after an optional delay.
Scheduling is fire-and-forget: callers learn only whether the job was
accepted, and an accepted job cannot be cancelled individually.
"""

import asyncio
from typing import Any, Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

JobHandler = Callable[[dict[str, Any]], Awaitable[None]]


class JobSchedulingError(Exception):
    """Raised when a job cannot be accepted for execution."""

    pass


class AsyncioJobScheduler:
    """Run registered jobs as background asyncio tasks."""

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    def register(self, job_name: str, handler: JobHandler) -> None:
        self._handlers[job_name] = handler

    @property
    def pending_jobs(self) -> int:
        return len(self._tasks)

    async def run_after(self, delay_ms: int, job_name: str, payload: dict[str, Any]) -> None:
        """Schedule `job_name` to run with `payload` after `delay_ms` milliseconds.

        Raises:
            JobSchedulingError: Unknown job name, or the scheduler has shut down
        """
        if self._closed:
            raise JobSchedulingError("Scheduler is shut down")
        handler = self._handlers.get(job_name)
        if handler is None:
            raise JobSchedulingError(f"Unknown job: {job_name}")

        task = asyncio.create_task(self._run(delay_ms, job_name, handler, dict(payload)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("job.scheduled", job=job_name, delay_ms=delay_ms)

    async def _run(
        self, delay_ms: int, job_name: str, handler: JobHandler, payload: dict[str, Any]
    ) -> None:
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)
        try:
            await handler(payload)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "job.failed",
                job=job_name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    async def wait_idle(self) -> None:
        """Wait for every currently scheduled job to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop accepting jobs and cancel the ones still running."""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("scheduler.shutdown", cancelled_jobs=len(tasks))
