"""In-memory job store for async RAG requests: track status (processing / completed / failed), progress and results."""
import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"
TERMINAL = (COMPLETED, FAILED)


@dataclass
class JobResult:
    answer: str
    citations: List[Dict[str, Any]]
    themes: str
    processing_time_ms: int
    model: Optional[str] = None
    source: str = "RAG_SYSTEM"
    context_length: int = 0
    original_context_length: int = 0


@dataclass
class Job:
    """A single RAG request: question and corpus, status (processing | completed | failed), progress, message, and result or error.
    Why available: Lets /ask return immediately while clients poll /status until the job completes or fails."""

    job_id: str
    question: str
    context: str
    weak_concepts: List[str] = field(default_factory=list)
    status: str = PROCESSING
    progress: int = 0
    message: str = "Queued"
    created_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    result: Optional[JobResult] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL


class JobStore(ABC):
    """create / get / update / evict; callers never touch the backing map."""

    @abstractmethod
    def create(self, question: str, context: str, weak_concepts: Optional[List[str]] = None) -> Job:
        ...

    @abstractmethod
    def get(self, job_id: str) -> Optional[Job]:
        ...

    @abstractmethod
    def update_progress(self, job_id: str, progress: int, message: str) -> Optional[Job]:
        ...

    @abstractmethod
    def complete(self, job_id: str, result: JobResult) -> Optional[Job]:
        ...

    @abstractmethod
    def fail(self, job_id: str, error: str) -> Optional[Job]:
        ...

    @abstractmethod
    def evict_expired(self, retention_seconds: float, max_age_seconds: float, now: Optional[float] = None) -> int:
        ...


class InMemoryJobStore(JobStore):
    """Dict-backed store. One lock guards the map: sync endpoints read from the threadpool while the event loop writes."""

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def create(self, question: str, context: str, weak_concepts: Optional[List[str]] = None) -> Job:
        job = Job(
            job_id=str(uuid.uuid4()),
            question=question,
            context=context,
            weak_concepts=list(weak_concepts or []),
        )
        with self._lock:
            self._jobs[job.job_id] = job
        return job

    def get(self, job_id: str) -> Optional[Job]:
        """A copy of the job taken under the lock; readers never see a half-applied transition."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            return replace(job, weak_concepts=list(job.weak_concepts))

    def _writable(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        if job is None:
            logger.warning("write to unknown job %s ignored", job_id)
            return None
        if job.is_terminal:
            logger.warning("write to %s job %s ignored", job.status, job_id)
            return None
        return job

    def update_progress(self, job_id: str, progress: int, message: str) -> Optional[Job]:
        """Move progress forward (never backwards, capped at 99 until completion) and set the stage message."""
        with self._lock:
            job = self._writable(job_id)
            if job is None:
                return None
            job.progress = max(job.progress, min(int(progress), 99))
            job.message = message
            return job

    def complete(self, job_id: str, result: JobResult) -> Optional[Job]:
        with self._lock:
            job = self._writable(job_id)
            if job is None:
                return None
            job.result = result
            job.error = None
            job.progress = 100
            job.message = "Processing complete"
            job.status = COMPLETED
            job.finished_at = time.time()
            return job

    def fail(self, job_id: str, error: str) -> Optional[Job]:
        with self._lock:
            job = self._writable(job_id)
            if job is None:
                return None
            job.result = None
            job.error = error or "Processing failed"
            job.status = FAILED
            job.message = "Processing failed"
            job.finished_at = time.time()
            return job

    def evict_expired(self, retention_seconds: float, max_age_seconds: float, now: Optional[float] = None) -> int:
        """Drop terminal jobs finished more than retention_seconds ago, and any job created more than max_age_seconds ago."""
        now = time.time() if now is None else now
        with self._lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if (job.finished_at is not None and now - job.finished_at >= retention_seconds)
                or now - job.created_at >= max_age_seconds
            ]
            for job_id in expired:
                del self._jobs[job_id]
        return len(expired)
