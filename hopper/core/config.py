import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

load_dotenv()


class Settings(BaseModel):
    """Application settings loaded from environment: OpenAI-compatible endpoint and model names, retrieval and job lifecycle limits, rate limit, prompt version and log level.
    Why available: Single source of configuration so the pipeline, job store and API share the same limits."""
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    openai_base_url: Optional[str] = os.getenv("OPENAI_BASE_URL") or None
    embedding_model: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    chat_model: str = os.getenv("CHAT_MODEL", "gpt-4o-mini")
    llm_temperature: float = float(os.getenv("LLM_TEMPERATURE", "0.1"))
    llm_max_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "2048"))
    retrieve_top_k: int = int(os.getenv("RETRIEVE_TOP_K", "4"))
    context_section_limit: int = int(os.getenv("CONTEXT_SECTION_LIMIT", "0"))  # 0 = keep every section
    job_retention_seconds: int = int(os.getenv("JOB_RETENTION_SECONDS", "3600"))
    job_timeout_seconds: int = int(os.getenv("JOB_TIMEOUT_SECONDS", "300"))
    job_sweep_interval_seconds: int = int(os.getenv("JOB_SWEEP_INTERVAL_SECONDS", "60"))
    rate_limit_requests: int = int(os.getenv("RATE_LIMIT_REQUESTS", "20"))
    rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    prompt_version: str = os.getenv("PROMPT_VERSION", "v1")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @field_validator(
        "llm_max_tokens",
        "retrieve_top_k",
        "job_retention_seconds",
        "job_timeout_seconds",
        "job_sweep_interval_seconds",
        "rate_limit_requests",
        "rate_limit_window_seconds",
    )
    @classmethod
    def must_be_positive(cls, v):
        """Ensure counts and durations are positive integers. Prevents invalid config from env."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("context_section_limit")
    @classmethod
    def must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v


settings = Settings()
