"""Async OpenAI-compatible client for chat and embeddings (api_key and base_url from config)."""
from typing import Any

from hopper.core.config import settings
from openai import AsyncOpenAI

_openai_client: Any = None


def get_openai_client() -> AsyncOpenAI:
    """Return a singleton AsyncOpenAI client configured from settings. Used for chat completions and embeddings across the app.
    Why available: Single place to get the client so the embedding engine and the language model share one connection pool and config."""
    global _openai_client
    if _openai_client is None:
        _openai_client = AsyncOpenAI(
            api_key=settings.openai_api_key or "missing",
            base_url=settings.openai_base_url,
        )
    return _openai_client


def set_openai_client(client: Any) -> None:
    """Replace the shared client (tests install an offline fake here)."""
    global _openai_client
    _openai_client = client
