"""
In-memory job registry
======================
Process-local table of in-flight generation jobs. Nothing here is
persisted: a restart drops every job and pollers will see "not found".

Status changes are compare-and-set under a lock. Once a job reaches
``completed`` or ``failed`` no further transition is applied, so the
timeout callback and the polling task can race safely.
"""

import asyncio
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..logging_config import get_logger

logger = get_logger("jobs")


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Job:
    id: str
    kind: str
    status: JobStatus = JobStatus.PROCESSING
    progress: int = 0
    provider_handle: Optional[str] = None
    result_locator: Optional[str] = None
    result_media_kind: Optional[str] = None
    failure_reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    # Cancellation handles owned by the orchestrator
    timeout_handle: Optional[asyncio.TimerHandle] = field(default=None, repr=False)
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status != JobStatus.PROCESSING

    def cancel_timers(self) -> None:
        if self.timeout_handle is not None:
            self.timeout_handle.cancel()
            self.timeout_handle = None

    def to_status_dict(self) -> Dict[str, Any]:
        """Client view of the job"""
        data = {
            "jobId": self.id,
            "status": self.status.value,
            "progress": self.progress,
        }
        if self.status == JobStatus.COMPLETED:
            data["mediaUrl"] = self.result_locator
            data["mediaType"] = self.result_media_kind
        if self.status == JobStatus.FAILED:
            data["error"] = self.failure_reason
        return data


class JobRegistry:
    """Maps job ids to Job records."""

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._jobs)

    def create(self, kind: str) -> Job:
        job = Job(id=str(uuid.uuid4()), kind=kind)
        with self._lock:
            self._jobs[job.id] = job
        logger.info("job_created", job_id=job.id, kind=kind)
        return job

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def update(self, job_id: str, mutation: Callable[[Job], None]) -> bool:
        """Apply mutation while the job is still processing.

        Returns False (and leaves the job untouched) when the job is unknown
        or already terminal.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.is_terminal:
                return False
            mutation(job)
            return True

    def set_provider_handle(self, job_id: str, handle: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.is_terminal:
                return False
            if job.provider_handle is not None and job.provider_handle != handle:
                raise RuntimeError(f"Job {job_id} already has a provider handle")
            job.provider_handle = handle
        logger.info("job_provider_handle", job_id=job_id, provider_handle=handle)
        return True

    def advance_progress(self, job_id: str, progress: int) -> bool:
        """Raise progress, never lowering it."""
        def mutation(job: Job) -> None:
            job.progress = max(job.progress, min(int(progress), 100))

        return self.update(job_id, mutation)

    def complete(
        self,
        job_id: str,
        result_locator: str,
        media_kind: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        def mutation(job: Job) -> None:
            job.status = JobStatus.COMPLETED
            job.progress = 100
            job.result_locator = result_locator
            job.result_media_kind = media_kind
            if metadata:
                job.metadata.update(metadata)
            job.cancel_timers()

        applied = self.update(job_id, mutation)
        if applied:
            logger.info("job_completed", job_id=job_id, media_url=result_locator)
        return applied

    def fail(self, job_id: str, reason: str) -> bool:
        def mutation(job: Job) -> None:
            job.status = JobStatus.FAILED
            job.failure_reason = reason
            job.cancel_timers()

        applied = self.update(job_id, mutation)
        if applied:
            logger.warning("job_failed", job_id=job_id, reason=reason)
        return applied

    def sweep(self, max_age_seconds: float) -> int:
        """Remove jobs older than max_age_seconds. Returns the count removed."""
        cutoff = time.time() - max_age_seconds
        with self._lock:
            expired: List[Job] = [job for job in self._jobs.values() if job.created_at < cutoff]
            for job in expired:
                del self._jobs[job.id]

        for job in expired:
            job.cancel_timers()
            if job.task is not None and not job.task.done():
                job.task.cancel()

        if expired:
            logger.info("jobs_swept", count=len(expired), max_age_seconds=max_age_seconds)
        return len(expired)

    def active(self) -> List[Job]:
        return [job for job in list(self._jobs.values()) if not job.is_terminal]
