"""Sequential bulk analysis with pollable job records."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set

from .errors import BatchItemFailure, EngineError, NotFoundFailure, TimeoutFailure, ValidationFailure
from .models import BatchJob, ErrorInfo, TextAnalysisResult
from .normalization import preview

LOGGER = logging.getLogger(__name__)

AnalyzeFn = Callable[[str], Awaitable[TextAnalysisResult]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchProcessor:
    """Runs submitted texts one at a time, recording progress on a :class:`BatchJob`.

    Each job is written only by its own task; :meth:`poll` hands out deep copies
    so callers never observe a record mid-update.
    """

    def __init__(
        self,
        analyze: AnalyzeFn,
        *,
        max_items: int = 50,
        retention_seconds: float = 300.0,
    ) -> None:
        self.analyze = analyze
        self.max_items = max_items
        self.retention_seconds = retention_seconds
        self._jobs: Dict[str, BatchJob] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._observed: Set[str] = set()

    def __len__(self) -> int:
        return len(self._jobs)

    async def submit(self, texts: Sequence[str]) -> str:
        """Create a ``pending`` job and schedule its processing; return the job id."""
        if isinstance(texts, str):
            raise ValidationFailure("Batch input must be a sequence of texts", operation="batch")
        items = [text for text in texts or [] if isinstance(text, str) and text.strip()]
        if not items:
            raise ValidationFailure("Batch contains no non-blank texts", operation="batch")
        if len(items) > self.max_items:
            raise ValidationFailure(
                f"Batch has {len(items)} texts; the limit is {self.max_items}",
                operation="batch",
            )

        self.prune()
        job_id = uuid.uuid4().hex
        self._jobs[job_id] = BatchJob(job_id=job_id, total=len(items))
        task = asyncio.create_task(self._run(job_id, items), name=f"batch-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))
        LOGGER.info("Submitted batch %s with %d text(s)", job_id, len(items))
        return job_id

    def poll(self, job_id: str) -> BatchJob:
        """Return a snapshot of the job; terminal snapshots mark the job as observed."""
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundFailure(f"Unknown batch job '{job_id}'", operation="poll")
        if job.is_terminal:
            self._observed.add(job_id)
        return job.model_copy(deep=True)

    def prune(self, now: Optional[datetime] = None) -> int:
        """Discard terminal jobs already observed or older than the retention window."""
        now = now or _utcnow()
        cutoff = now - timedelta(seconds=self.retention_seconds)
        expired: List[str] = []
        for job_id, job in self._jobs.items():
            if not job.is_terminal:
                continue
            finished = job.finished_at or job.updated_at
            if job_id in self._observed or finished <= cutoff:
                expired.append(job_id)
        for job_id in expired:
            self._jobs.pop(job_id, None)
            self._observed.discard(job_id)
        if expired:
            LOGGER.debug("Pruned %d finished batch job(s)", len(expired))
        return len(expired)

    async def _run(self, job_id: str, items: List[str]) -> None:
        job = self._jobs[job_id]
        start = time.perf_counter()
        job.status = "processing"
        job.current_item = items[0]
        job.updated_at = _utcnow()

        for index, text in enumerate(items):
            try:
                result = await self.analyze(text)
            except Exception as exc:
                detail = exc.message if isinstance(exc, EngineError) else str(exc) or type(exc).__name__
                failure = BatchItemFailure(
                    f"Item {index} of batch failed: {detail}", index=index, operation="batch"
                )
                LOGGER.error(
                    "Batch %s stopped at item %d/%d after %.3fs (%r): %s",
                    job_id,
                    index + 1,
                    len(items),
                    time.perf_counter() - start,
                    preview(text),
                    detail,
                )
                job.status = "error"
                job.error = ErrorInfo.from_exception(failure)
                job.current_item = None
                job.updated_at = job.finished_at = _utcnow()
                return

            job.results.append(result)
            job.processed += 1
            job.current_item = items[index + 1] if index + 1 < len(items) else None
            job.updated_at = _utcnow()

        job.status = "completed"
        job.updated_at = job.finished_at = _utcnow()
        LOGGER.info(
            "Batch %s completed %d item(s) in %.3fs",
            job_id,
            job.processed,
            time.perf_counter() - start,
        )


async def wait_for_job(
    poll: Callable[[str], Any],
    job_id: str,
    *,
    poll_interval: float = 2.0,
    timeout: Optional[float] = None,
) -> BatchJob:
    """Poll ``job_id`` until it reaches a terminal status.

    ``poll`` may be a plain or async callable. Raises :class:`TimeoutFailure`
    when ``timeout`` seconds pass without a terminal snapshot; the job itself
    keeps running.
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    while True:
        snapshot = poll(job_id)
        if inspect.isawaitable(snapshot):
            snapshot = await snapshot
        if snapshot.is_terminal:
            return snapshot
        if deadline is not None and time.monotonic() >= deadline:
            raise TimeoutFailure(
                f"Batch {job_id} still {snapshot.status} after {timeout:.1f}s "
                f"({snapshot.processed}/{snapshot.total} processed)",
                operation="batch",
            )
        delay = poll_interval
        if deadline is not None:
            delay = max(0.0, min(delay, deadline - time.monotonic()))
        await asyncio.sleep(delay)


__all__ = ["AnalyzeFn", "BatchProcessor", "wait_for_job"]
