import asyncio

from hopper.corpus.learning_stats import Stats
from hopper.jobs.progress import ProgressChannel
from hopper.jobs.store import COMPLETED, FAILED, InMemoryJobStore
from hopper.rag.answerer import LanguageModel
from hopper.rag.embeddings import EmbeddingEngine
from hopper.rag.orchestrator import GENERATION_STAGE, RETRIEVAL_STAGE, TEST_QUESTION, RagOrchestrator


def _orchestrator(fake_openai, **kwargs) -> RagOrchestrator:
    store = InMemoryJobStore()
    return RagOrchestrator(
        store=store,
        embeddings=EmbeddingEngine(model="fake-embed", client=fake_openai, retries=0),
        llm=LanguageModel(model="fake-chat", client=fake_openai, retries=0),
        **kwargs,
    )


def test_run_job_completes_with_parsed_result(fake_openai, ml_corpus):
    orch = _orchestrator(fake_openai, top_k=2)
    job = orch.submit("What is overfitting?", ml_corpus, ["regularization"])

    asyncio.run(orch.run_job(job.job_id))

    assert job.status == COMPLETED
    assert job.progress == 100
    assert job.error is None
    r = job.result
    assert r.answer == fake_openai.completions.reply
    assert len(r.citations) <= 3
    assert r.model == "fake-chat"
    assert r.source == "RAG_SYSTEM"
    assert r.original_context_length == len(ml_corpus)
    assert r.context_length < len(ml_corpus)

    prompt = fake_openai.completions.calls[-1]["messages"][1]["content"]
    assert "What is overfitting?" in prompt
    assert "regularization" in prompt
    assert "Gradient descent intuition" in prompt


def test_progress_events_follow_the_stages(fake_openai, ml_corpus):
    orch = _orchestrator(fake_openai, channel=None, top_k=2)
    job = orch.submit("What is overfitting?", ml_corpus)

    async def run():
        queue = orch.channel.subscribe(job.job_id)
        await orch.run_job(job.job_id)
        events = []
        while not queue.empty():
            events.append(queue.get_nowait())
        return events

    events = asyncio.run(run())
    progress = [e.progress for e in events]

    assert progress == sorted(progress)
    assert progress[0] == 10
    assert RETRIEVAL_STAGE in progress
    assert GENERATION_STAGE in progress
    assert progress[-1] == 100
    assert any(e.message.startswith("Embedding context") for e in events)


def test_embedding_failure_fails_the_job(fake_openai, ml_corpus):
    orch = _orchestrator(fake_openai, top_k=2)
    fake_openai.embeddings.error = RuntimeError("embedding backend down")
    job = orch.submit("What is overfitting?", ml_corpus)

    asyncio.run(orch.run_job(job.job_id))

    assert job.status == FAILED
    assert "embedding backend down" in job.error
    assert job.result is None


def test_language_model_failure_fails_the_job(fake_openai):
    orch = _orchestrator(fake_openai)
    fake_openai.completions.error = RuntimeError("model overloaded")
    job = orch.submit("Q?", "Short corpus about cells.")

    asyncio.run(orch.run_job(job.job_id))

    assert job.status == FAILED
    assert job.error == "Language model error: model overloaded"


def test_hung_job_times_out(fake_openai):
    orch = _orchestrator(fake_openai, job_timeout_seconds=0.05)

    async def hang(*args, **kwargs):
        await asyncio.sleep(10)

    orch.llm.complete = hang
    job = orch.submit("Q?", "Short corpus about cells.")

    asyncio.run(orch.run_job(job.job_id))

    assert job.status == FAILED
    assert job.error == "Request timed out after 0.05 seconds"


def test_run_job_for_unknown_id_is_a_no_op(fake_openai):
    orch = _orchestrator(fake_openai)
    asyncio.run(orch.run_job("missing"))


def test_generate_response_without_a_job(fake_openai):
    orch = _orchestrator(fake_openai)
    result = asyncio.run(
        orch.generate_response("What is ML?", "ML learns from data.", [], Stats([], []))
    )
    assert result.answer
    assert result.context_length == len("ML learns from data.")


def test_section_limit_cuts_corpus_before_retrieval(fake_openai):
    orch = _orchestrator(fake_openai, section_limit=1)
    job = orch.submit("Q?", "## First\nkeep me please\n## Second\ndrop this section\n")

    asyncio.run(orch.run_job(job.job_id))

    prompt = fake_openai.completions.calls[-1]["messages"][1]["content"]
    assert "keep me please" in prompt
    assert "drop this section" not in prompt


def test_pipeline_self_test(fake_openai):
    orch = _orchestrator(fake_openai)
    out = asyncio.run(orch.test_pipeline())

    assert out["success"] is True
    assert out["result"]["answer"]
    assert out["testPayload"]["question"] == TEST_QUESTION

    fake_openai.completions.error = RuntimeError("down")
    failed = asyncio.run(orch.test_pipeline())
    assert failed["success"] is False
    assert "down" in failed["error"]


def test_service_status_reports_components(fake_openai):
    orch = _orchestrator(fake_openai)
    status = asyncio.run(orch.get_status())

    assert status["rag_service"] is True
    assert status["embedding_service"] is False
    assert status["llm_service"] is True
    assert status["llm_connection"] is True
    assert status["llm_model"] == "fake-chat"
    assert "error" not in status

    fake_openai.completions.error = RuntimeError("unreachable")
    status = asyncio.run(orch.get_status())
    assert status["llm_connection"] is False
    assert status["error"] == "unreachable"
