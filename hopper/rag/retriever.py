import logging
import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from hopper.core.exceptions import EmbeddingUnavailable
from hopper.corpus.chunker import Chunk, split_text
from hopper.rag.embeddings import EmbeddingEngine

logger = logging.getLogger(__name__)

# Chunking policy for relevant-context extraction.
CHUNK_SIZE = 1000
CHUNK_OVERLAP = 200

ProgressCallback = Callable[[int, int], None]


@dataclass
class ScoredChunk:
    chunk: Chunk
    score: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between a and b; 0.0 when either vector has zero norm."""
    if len(a) != len(b):
        raise ValueError("Vectors must have the same length")
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


async def find_similar(
    engine: EmbeddingEngine,
    query: str,
    chunks: List[Chunk],
    k: int,
    on_progress: Optional[ProgressCallback] = None,
) -> List[ScoredChunk]:
    """Score chunks against the query embedding and return the top k, best first; ties keep chunk order.
    Chunk embeddings are cached on the chunk so ranking the same chunks again does not re-embed them.
    on_progress(done, total) is called after each chunk embedding is available."""
    k = max(0, min(k, len(chunks)))
    query_vec = await engine.embed(query)

    total = len(chunks)
    for done, chunk in enumerate(chunks, start=1):
        if chunk.embedding is None:
            chunk.embedding = await engine.embed(chunk.text)
        if on_progress is not None:
            on_progress(done, total)

    scored = [ScoredChunk(chunk=c, score=cosine_similarity(query_vec, c.embedding)) for c in chunks]
    # sorted() is stable, so equal scores stay in chunk order
    scored = sorted(scored, key=lambda s: s.score, reverse=True)
    top = scored[:k]
    logger.debug("top %d chunk scores: %s", k, [round(s.score, 3) for s in top])
    return top


async def get_relevant_context(
    engine: EmbeddingEngine,
    corpus: str,
    query: str,
    k: int = 4,
    on_progress: Optional[ProgressCallback] = None,
) -> str:
    """Reduce the corpus to its k chunks most similar to the query, joined by blank lines in ranked order.
    A corpus of at most k chunks is returned unchanged. Other failures fall back to the full corpus;
    EmbeddingUnavailable propagates so the caller can fail the job.
    Why available: Keeps the LLM prompt bounded no matter how large the learner's corpus is."""
    try:
        chunks = split_text(corpus, CHUNK_SIZE, CHUNK_OVERLAP)
        if len(chunks) <= k:
            return corpus
        ranked = await find_similar(engine, query, chunks, k, on_progress=on_progress)
        relevant = "\n\n".join(r.chunk.text for r in ranked)
        logger.info(
            "selected %d of %d chunks (%d -> %d chars)", len(ranked), len(chunks), len(corpus), len(relevant)
        )
        return relevant
    except EmbeddingUnavailable:
        raise
    except Exception:
        logger.warning("relevant-context extraction failed, using full corpus", exc_info=True)
        return corpus
