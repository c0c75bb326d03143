import asyncio
import contextlib
import json
import logging
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from hopper.core.config import settings
from hopper.core.exceptions import NotFound, ValidationError
from hopper.guardrails.errors import install_error_handlers
from hopper.guardrails.rate_limit import SimpleRateLimiter
from hopper.jobs.progress import ProgressChannel, ProgressEvent
from hopper.jobs.store import COMPLETED, InMemoryJobStore, Job
from hopper.jobs.sweeper import run_sweeper
from hopper.models.schemas import (
    AskRequest,
    AskResponse,
    JobStatusResponse,
    ResultPendingResponse,
    ResultResponse,
    ServiceStatusResponse,
)
from hopper.observability.middleware import RequestTimingMiddleware, get_request_id
from hopper.rag.answerer import LanguageModel
from hopper.rag.embeddings import EmbeddingEngine
from hopper.rag.orchestrator import RagOrchestrator

logger = logging.getLogger(__name__)


# -------------------------
# Services
# -------------------------

store = InMemoryJobStore()
channel = ProgressChannel(store)
embeddings = EmbeddingEngine()
llm = LanguageModel()
orchestrator = RagOrchestrator(store=store, embeddings=embeddings, llm=llm, channel=channel)

rate_limiter = SimpleRateLimiter(
    max_requests=settings.rate_limit_requests,
    window_seconds=settings.rate_limit_window_seconds,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and run the job eviction sweep for the lifetime of the app."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sweeper = asyncio.create_task(
        run_sweeper(
            store,
            interval_seconds=settings.job_sweep_interval_seconds,
            retention_seconds=settings.job_retention_seconds,
            job_timeout_seconds=settings.job_timeout_seconds,
        )
    )
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper


# -------------------------
# App setup
# -------------------------

app = FastAPI(title="TheHopper RAG", lifespan=lifespan)
app.add_middleware(RequestTimingMiddleware)
install_error_handlers(app)


def _get_job(request_id: str) -> Job:
    job = store.get(request_id)
    if job is None:
        raise NotFound("Request not found")
    return job


# -------------------------
# Root
# -------------------------

@app.get("/")
def root():
    """Returns a minimal welcome payload with app name and docs URL."""
    return {"app": "TheHopper RAG", "docs": "/docs"}


@app.get("/health")
def health():
    """Returns 200 OK with status. Used by load balancers and probes to check if the API is up."""
    return {"status": "ok"}


# -------------------------
# Ask (async RAG job)
# -------------------------

@app.post("/ask", response_model=AskResponse)
def ask(req: AskRequest, request: Request, background_tasks: BackgroundTasks):
    """Creates a RAG job for the question and corpus and returns its requestId immediately; the pipeline runs in the background.
    Why available: Pipelines take seconds to minutes, so clients poll /status/{requestId} instead of holding the request open."""
    rate_limiter.check(request)

    if not req.question.strip() or not req.context.strip():
        raise ValidationError("Question and context are required")

    job = orchestrator.submit(req.question, req.context, req.weak_concepts)
    logger.info("request %s submitted job %s", get_request_id(request), job.job_id)
    background_tasks.add_task(orchestrator.run_job, job.job_id)

    return AskResponse(request_id=job.job_id)


# -------------------------
# Job status / result
# -------------------------

@app.get("/status/{request_id}", response_model=JobStatusResponse, response_model_exclude_none=True)
def job_status(request_id: str):
    """Returns the job's status (processing / completed / failed), progress 0-100 and the current stage message.
    Why available: Polling endpoint for clients after POST /ask."""
    job = _get_job(request_id)
    return JobStatusResponse(
        status=job.status,
        progress=job.progress,
        message=job.message,
        error=job.error,
    )


@app.get("/result/{request_id}", response_model=ResultResponse)
def job_result(request_id: str):
    """Returns answer, citations, themes and processing time once the job completed; 202 with the status otherwise."""
    job = _get_job(request_id)

    if job.status != COMPLETED or job.result is None:
        pending = ResultPendingResponse(status=job.status)
        if job.error:
            pending.error = job.error
        return JSONResponse(status_code=202, content=pending.model_dump())

    r = job.result
    return ResultResponse(
        answer=r.answer,
        citations=r.citations,
        themes=r.themes,
        processing_time=r.processing_time_ms,
        model=r.model,
        source=r.source,
    )


def _sse(event: ProgressEvent) -> str:
    return f"data: {json.dumps(event.to_dict())}\n\n"


@app.get("/events/{request_id}")
async def job_events(request_id: str):
    """Streams the job's progress events as Server-Sent Events until it completes or fails.
    Why available: Push alternative to polling /status; both read the same stage transitions."""
    _get_job(request_id)

    async def event_stream():
        queue = channel.subscribe(request_id)
        try:
            # read after subscribing so a transition in between is not lost
            job = store.get(request_id)
            if job is None:
                return
            yield _sse(ProgressEvent.from_job(job))
            if job.is_terminal:
                return
            while True:
                event = await queue.get()
                yield _sse(event)
                if event.is_terminal:
                    return
        finally:
            channel.unsubscribe(request_id, queue)

    return StreamingResponse(event_stream(), media_type="text/event-stream")


# -------------------------
# Diagnostics
# -------------------------

@app.get("/test")
async def test_pipeline():
    """Runs a fixed question/context pair through the full pipeline and reports success or the error."""
    return await orchestrator.test_pipeline()


@app.get("/status", response_model=ServiceStatusResponse)
async def service_status():
    """Reports which components are initialized and whether the language model is reachable."""
    return ServiceStatusResponse(status=await orchestrator.get_status())
