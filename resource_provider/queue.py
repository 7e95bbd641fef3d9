"""
Deferred execution of propagation jobs.

:class:`JobQueue` is the submission side the propagation engine talks to.
:class:`InMemoryJobQueue` keeps job records in process and
:class:`Dispatcher` drains them, owning the retry schedule: failed attempts
are rescheduled after 1 s, 5 s and 30 s by default and marked ``failed``
once the attempts are used up.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from resource_provider.models import RESOURCE_QUEUE, PropagationJob

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------
# Delivery constants
# -----------------------------------------------------------------------

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAYS = (1.0, 5.0, 30.0)
DEFAULT_POLL_INTERVAL = 1.0

JOB_STATUSES = frozenset({"pending", "running", "completed", "failed"})

JobHandler = Callable[[PropagationJob], Awaitable[Any]]


class JobQueue(ABC):
    """Where the propagation engine hands off work."""

    @abstractmethod
    async def submit(self, job: PropagationJob) -> str:
        """Enqueue *job* on ``job.queue`` and return its record ID."""


# -----------------------------------------------------------------------
# InMemoryJobQueue
# -----------------------------------------------------------------------


class InMemoryJobQueue(JobQueue):
    """Thread-safe in-process store of job records.

    Each record keeps the serialized job, its status, the attempt count,
    the last error and the earliest time it may run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, Dict[str, Any]] = {}

    async def submit(self, job: PropagationJob) -> str:
        now = time.time()
        record = {
            "id": job.id,
            "queue": job.queue,
            "job": job.model_dump(mode="json"),
            "status": "pending",
            "attempts": 0,
            "last_error": None,
            "run_at": now,
            "created_at": now,
            "completed_at": None,
        }
        with self._lock:
            self._records[job.id] = record
        logger.debug(f"Queued {job.kind.value} job {job.id} on '{job.queue}'")
        return job.id

    def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get(job_id)
            return dict(record) if record else None

    def update(self, job_id: str, **fields: Any) -> None:
        status = fields.get("status")
        if status is not None and status not in JOB_STATUSES:
            raise ValueError(f"Invalid job status: {status}")
        with self._lock:
            record = self._records.get(job_id)
            if record is not None:
                record.update(fields)

    def list_jobs(
        self, status: Optional[str] = None, queue: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Return job records in submission order, optionally filtered."""
        with self._lock:
            records = [dict(r) for r in self._records.values()]
        if status is not None:
            records = [r for r in records if r["status"] == status]
        if queue is not None:
            records = [r for r in records if r["queue"] == queue]
        return sorted(records, key=lambda r: r["created_at"])

    def jobs(self, status: Optional[str] = None, queue: Optional[str] = None) -> List[PropagationJob]:
        """Return the deserialized jobs matching the filters."""
        return [
            PropagationJob.model_validate(r["job"])
            for r in self.list_jobs(status=status, queue=queue)
        ]

    def claim_due(self, queue: str, now: float) -> List[Dict[str, Any]]:
        """Mark every due pending record of *queue* as running and return them."""
        with self._lock:
            due = [
                r for r in self._records.values()
                if r["queue"] == queue and r["status"] == "pending" and r["run_at"] <= now
            ]
            for record in due:
                record["status"] = "running"
                record["attempts"] += 1
            return [dict(r) for r in sorted(due, key=lambda r: r["created_at"])]

    def count(self, status: Optional[str] = None) -> int:
        return len(self.list_jobs(status=status))

    def reset(self) -> None:
        with self._lock:
            self._records.clear()


# -----------------------------------------------------------------------
# Dispatcher
# -----------------------------------------------------------------------


class Dispatcher:
    """Runs queued jobs outside the request path and retries failures.

    Parameters
    ----------
    queue:
        The job store to drain.
    handler:
        Coroutine function executing one job; any exception counts as a
        failed attempt.
    """

    def __init__(
        self,
        queue: InMemoryJobQueue,
        handler: JobHandler,
        queue_name: str = RESOURCE_QUEUE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delays: Sequence[float] = DEFAULT_RETRY_DELAYS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._queue = queue
        self._handler = handler
        self._queue_name = queue_name
        self._max_attempts = max_attempts
        self._retry_delays = tuple(retry_delays) or (0.0,)
        self._poll_interval = poll_interval
        self._task: Optional[asyncio.Task] = None

    def _delay_for(self, attempt: int) -> float:
        index = min(attempt - 1, len(self._retry_delays) - 1)
        return self._retry_delays[index]

    async def run_pending(self, now: Optional[float] = None) -> int:
        """Attempt every due job once. Returns the number that completed."""
        now = time.time() if now is None else now
        completed = 0
        claimed = self._queue.claim_due(self._queue_name, now)
        for index, record in enumerate(claimed):
            try:
                succeeded = await self._attempt(record, now)
            except asyncio.CancelledError:
                self._release(claimed[index:])
                raise
            if succeeded:
                completed += 1
        return completed

    def _release(self, records: List[Dict[str, Any]]) -> None:
        """Hand interrupted claims back to the queue as if never attempted."""
        for record in records:
            self._queue.update(record["id"], status="pending", attempts=record["attempts"] - 1)
        logger.info(f"Released {len(records)} unfinished job(s) on '{self._queue_name}'")

    async def _attempt(self, record: Dict[str, Any], now: float) -> bool:
        job = PropagationJob.model_validate(record["job"])
        attempt = record["attempts"]
        try:
            await self._handler(job)
        except Exception as exc:
            if attempt >= self._max_attempts:
                logger.error(
                    f"Job {job.id} ({job.kind.value} {job.resource_type}/{job.resource_uuid} "
                    f"-> {job.service_uuid}) failed after {attempt} attempts: {exc}"
                )
                self._queue.update(job.id, status="failed", last_error=str(exc))
            else:
                delay = self._delay_for(attempt)
                logger.warning(
                    f"Job {job.id} attempt {attempt} failed, retrying in {delay}s: {exc}"
                )
                self._queue.update(
                    job.id, status="pending", last_error=str(exc), run_at=now + delay
                )
            return False

        self._queue.update(job.id, status="completed", completed_at=time.time())
        return True

    # -- Background loop ----------------------------------------------------

    async def _run_forever(self) -> None:
        while True:
            await self.run_pending()
            await asyncio.sleep(self._poll_interval)

    def start(self) -> None:
        """Start polling the queue in a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run_forever())
            logger.info(f"Dispatcher started on queue '{self._queue_name}'")

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Dispatcher stopped on queue '{self._queue_name}'")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
