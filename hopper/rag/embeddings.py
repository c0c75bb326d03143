"""Embedding engine: text -> unit-length dense vector through an OpenAI-compatible embeddings API."""
import asyncio
import logging
import math
from typing import Any, List, Optional

from hopper.core.config import settings
from hopper.core.exceptions import EmbeddingUnavailable
from hopper.core.openai_client import get_openai_client
from hopper.utils.retry import with_retry

logger = logging.getLogger(__name__)

PROBE_TEXT = "embedding readiness probe"


def normalize(vector: List[float]) -> List[float]:
    """Scale a vector to unit L2 norm. A zero vector stays zero."""
    norm = math.sqrt(sum(x * x for x in vector))
    if norm == 0:
        return [0.0 for _ in vector]
    return [x / norm for x in vector]


class EmbeddingEngine:
    """Owns the embedding model handle for the process.

    Initialization is lazy and single-flight: the first caller of ensure_ready() probes the
    model under a lock, concurrent callers wait on the same lock and find it done. After a
    failed initialization the next caller retries it.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        client: Any = None,
        retries: int = 2,
        backoff_seconds: float = 0.5,
    ):
        self.model = model or settings.embedding_model
        self._client = client
        self._retries = retries
        self._backoff_seconds = backoff_seconds
        self._lock = asyncio.Lock()
        self._dimension: Optional[int] = None
        self.init_count = 0

    @property
    def is_initialized(self) -> bool:
        return self._dimension is not None

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    async def ensure_ready(self) -> None:
        """Initialize once: resolve the client and learn the model's dimensionality from a probe embedding."""
        if self._dimension is not None:
            return
        async with self._lock:
            if self._dimension is not None:
                return
            self.init_count += 1
            logger.info("initializing embedding model %s", self.model)
            try:
                if self._client is None:
                    self._client = get_openai_client()
                vector = await self._raw_embed(PROBE_TEXT)
            except EmbeddingUnavailable:
                raise
            except Exception as e:
                logger.error("embedding model initialization failed: %s", e)
                raise EmbeddingUnavailable(f"Failed to initialize embedding model: {e}") from e
            self._dimension = len(vector)
            logger.info("embedding model ready (dimension=%d)", self._dimension)

    async def _raw_embed(self, text: str) -> List[float]:
        resp = await with_retry(
            lambda: self._client.embeddings.create(model=self.model, input=[text]),
            retries=self._retries,
            backoff_seconds=self._backoff_seconds,
        )
        data = getattr(resp, "data", None) or []
        if not data or not data[0].embedding:
            raise EmbeddingUnavailable("Embedding provider returned no vector")
        return [float(x) for x in data[0].embedding]

    async def embed(self, text: str) -> List[float]:
        """Embed one text into a normalized vector of the model's fixed dimension. Raises EmbeddingUnavailable on any failure."""
        await self.ensure_ready()
        try:
            vector = await self._raw_embed(text)
        except EmbeddingUnavailable:
            raise
        except Exception as e:
            logger.error("embedding inference failed: %s", e)
            raise EmbeddingUnavailable(f"Failed to generate embedding: {e}") from e
        if len(vector) != self._dimension:
            raise EmbeddingUnavailable(
                f"Embedding dimension changed: expected {self._dimension}, got {len(vector)}"
            )
        return normalize(vector)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed texts one by one, preserving order."""
        out: List[List[float]] = []
        for text in texts:
            out.append(await self.embed(text))
        return out
