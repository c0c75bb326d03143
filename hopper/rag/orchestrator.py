"""
RAG orchestrator: the one place that sequences context processing -> relevant-context extraction ->
prompt -> language model -> response parsing, and drives each job's state machine.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from hopper.core.config import settings
from hopper.corpus.learning_stats import StatsExtractor, Stats, process_context
from hopper.jobs.progress import ProgressChannel, stage_progress
from hopper.jobs.store import Job, JobResult, JobStore
from hopper.rag.answerer import LanguageModel, parse_response
from hopper.rag.embeddings import EmbeddingEngine
from hopper.rag.prompts import build_prompt, system_prompt
from hopper.rag.retriever import get_relevant_context

logger = logging.getLogger(__name__)

CONTEXT_STAGE = 10
RETRIEVAL_STAGE = 30
RETRIEVAL_WEIGHT = 30
GENERATION_STAGE = RETRIEVAL_STAGE + RETRIEVAL_WEIGHT

TEST_QUESTION = "What is machine learning?"
TEST_CONTEXT = (
    "Machine learning is a subset of artificial intelligence that enables computers "
    "to learn and make decisions from data without being explicitly programmed."
)
TEST_WEAK_CONCEPTS = ["algorithms", "data processing"]
TEST_STATS = Stats(
    ["Understanding algorithms", "Data preprocessing"],
    ["Completed basic ML course", "70% accuracy on practice tests"],
)


class RagOrchestrator:
    def __init__(
        self,
        store: JobStore,
        embeddings: EmbeddingEngine,
        llm: LanguageModel,
        channel: Optional[ProgressChannel] = None,
        extractor: Optional[StatsExtractor] = None,
        top_k: Optional[int] = None,
        job_timeout_seconds: Optional[float] = None,
        section_limit: Optional[int] = None,
    ):
        self.store = store
        self.embeddings = embeddings
        self.llm = llm
        self.channel = channel or ProgressChannel(store)
        self.extractor = extractor
        self.top_k = top_k or settings.retrieve_top_k
        self.job_timeout_seconds = job_timeout_seconds or settings.job_timeout_seconds
        self.section_limit = settings.context_section_limit if section_limit is None else section_limit

    def submit(self, question: str, context: str, weak_concepts: Optional[List[str]] = None) -> Job:
        job = self.store.create(question, context, weak_concepts)
        logger.info("job %s created (question=%r, context=%d chars)", job.job_id, question[:80], len(context))
        return job

    async def generate_response(
        self,
        question: str,
        context: str,
        weak_concepts: List[str],
        stats: Stats,
        job_id: Optional[str] = None,
        started_at: Optional[float] = None,
    ) -> JobResult:
        """Relevant-context extraction, prompt, completion and parsing. Publishes progress when job_id is given."""
        started_at = time.time() if started_at is None else started_at

        def on_embedding_progress(done: int, total: int) -> None:
            if job_id is not None:
                self.channel.publish(
                    job_id,
                    stage_progress(RETRIEVAL_STAGE, RETRIEVAL_WEIGHT, done, total),
                    f"Embedding context ({done}/{total})...",
                )

        relevant = await get_relevant_context(
            self.embeddings, context, question, k=self.top_k, on_progress=on_embedding_progress
        )

        if job_id is not None:
            self.channel.publish(job_id, GENERATION_STAGE, "Generating response...")
        prompt = build_prompt(question, relevant, stats, weak_concepts)
        logger.debug("prompt for job %s:\n%s", job_id, prompt)
        completion = await self.llm.complete(system_prompt(), prompt)
        parsed = parse_response(completion, relevant)

        result = JobResult(
            answer=parsed.answer,
            citations=parsed.citations,
            themes=parsed.themes,
            processing_time_ms=int((time.time() - started_at) * 1000),
            model=self.llm.model,
            context_length=len(relevant),
            original_context_length=len(context),
        )
        logger.info(
            "pipeline done in %dms (context %d -> %d chars)",
            result.processing_time_ms, result.original_context_length, result.context_length,
        )
        return result

    async def _pipeline(self, job: Job) -> JobResult:
        self.channel.publish(job.job_id, CONTEXT_STAGE, "Processing context...")
        processed = process_context(job.context, job.weak_concepts, self.extractor, self.section_limit)

        self.channel.publish(job.job_id, RETRIEVAL_STAGE, "Finding relevant context...")
        return await self.generate_response(
            job.question,
            processed.context,
            processed.weak_concepts,
            processed.stats,
            job_id=job.job_id,
            started_at=job.created_at,
        )

    async def run_job(self, job_id: str) -> None:
        """Drive one job from processing to completed or failed. Never raises."""
        job = self.store.get(job_id)
        if job is None:
            logger.warning("job %s vanished before it started", job_id)
            return
        try:
            result = await asyncio.wait_for(self._pipeline(job), timeout=self.job_timeout_seconds)
        except asyncio.TimeoutError:
            logger.error("job %s timed out after %ss", job_id, self.job_timeout_seconds)
            self.channel.fail(job_id, f"Request timed out after {self.job_timeout_seconds:g} seconds")
        except Exception as e:
            logger.exception("job %s failed", job_id)
            self.channel.fail(job_id, str(e) or e.__class__.__name__)
        else:
            self.channel.complete(job_id, result)

    async def test_pipeline(self) -> Dict[str, Any]:
        """Run the built-in question/context pair through the pipeline (no job record)."""
        payload = {
            "question": TEST_QUESTION,
            "context": TEST_CONTEXT,
            "weakConcepts": TEST_WEAK_CONCEPTS,
            "Stats": [TEST_STATS.areas_of_difficulty, TEST_STATS.learning_progress_summary],
        }
        try:
            result = await self.generate_response(TEST_QUESTION, TEST_CONTEXT, TEST_WEAK_CONCEPTS, TEST_STATS)
        except Exception as e:
            logger.error("pipeline test failed: %s", e)
            return {"success": False, "error": str(e)}
        return {
            "success": True,
            "message": "RAG pipeline test successful",
            "result": {
                "answer": result.answer,
                "citations": result.citations,
                "themes": result.themes,
                "processingTime": result.processing_time_ms,
                "model": result.model,
            },
            "testPayload": payload,
        }

    async def get_status(self) -> Dict[str, Any]:
        """Component initialization state and upstream connectivity."""
        connection = await self.llm.test_connection()
        status = {
            "rag_service": True,
            "embedding_service": self.embeddings.is_initialized,
            "embedding_model": self.embeddings.model,
            "llm_service": self.llm.is_initialized,
            "llm_connection": connection["success"],
            "llm_model": self.llm.model,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if not connection["success"]:
            status["error"] = connection.get("error")
        return status
