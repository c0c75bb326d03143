"""
Per-job progress channel: the orchestrator publishes stage transitions here; the channel mirrors
them into the job store (pulled by /status) and fans them out to live subscribers (pushed by /events).
"""
import asyncio
import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from hopper.jobs.store import COMPLETED, FAILED, PROCESSING, Job, JobResult, JobStore

logger = logging.getLogger(__name__)


@dataclass
class ProgressEvent:
    job_id: str
    status: str
    progress: int
    message: str
    error: Optional[str] = None

    @classmethod
    def from_job(cls, job: Job) -> "ProgressEvent":
        return cls(job_id=job.job_id, status=job.status, progress=job.progress, message=job.message, error=job.error)

    @property
    def is_terminal(self) -> bool:
        return self.status in (COMPLETED, FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def stage_progress(base: int, weight: int, done: int, total: int) -> int:
    """base + weight * done/total, clamped to [base, base + weight]. total <= 0 counts as finished."""
    if total <= 0:
        return base + weight
    value = base + weight * (done / total)
    return int(max(base, min(base + weight, value)))


class ProgressChannel:
    def __init__(self, store: JobStore):
        self.store = store
        self._subscribers: Dict[str, List[asyncio.Queue]] = defaultdict(list)

    def subscribe(self, job_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers[job_id].append(queue)
        return queue

    def unsubscribe(self, job_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(job_id)
        if not queues:
            return
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(job_id, None)

    def _fan_out(self, event: ProgressEvent) -> None:
        for queue in list(self._subscribers.get(event.job_id, [])):
            queue.put_nowait(event)

    def publish(self, job_id: str, progress: int, message: str) -> Optional[ProgressEvent]:
        job = self.store.update_progress(job_id, progress, message)
        if job is None:
            return None
        event = ProgressEvent(job_id=job_id, status=PROCESSING, progress=job.progress, message=job.message)
        self._fan_out(event)
        return event

    def complete(self, job_id: str, result: JobResult) -> Optional[ProgressEvent]:
        job = self.store.complete(job_id, result)
        return self._finish(job)

    def fail(self, job_id: str, error: str) -> Optional[ProgressEvent]:
        job = self.store.fail(job_id, error)
        return self._finish(job)

    def _finish(self, job: Optional[Job]) -> Optional[ProgressEvent]:
        if job is None:
            return None
        event = ProgressEvent.from_job(job)
        self._fan_out(event)
        self._subscribers.pop(job.job_id, None)
        logger.info("job %s %s", job.job_id, job.status)
        return event
