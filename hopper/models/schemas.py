from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional, Dict, Any


class AskRequest(BaseModel):
    """Request body for /ask. Why available: Carries the question, the learner's corpus and optional weak concepts."""

    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(..., min_length=1, description="The learner's question")
    context: str = Field(..., min_length=1, description="Free-text knowledge corpus (markdown)")
    weak_concepts: Optional[List[str]] = Field(default_factory=list, alias="weakConcepts")

    @field_validator("weak_concepts", mode="before")
    @classmethod
    def null_means_none_given(cls, v):
        return [] if v is None else v


class AskResponse(BaseModel):
    """Response for /ask: the job identifier to poll. Why available: Submission returns before the pipeline runs."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    request_id: str = Field(..., alias="requestId")
    message: str = "Question submitted for processing"


class JobStatusResponse(BaseModel):
    """Response for GET /status/{requestId}: job state, progress and stage message."""

    success: bool = True
    status: str
    progress: int = Field(..., ge=0, le=100)
    message: str = ""
    error: Optional[str] = None


class Citation(BaseModel):
    """A preview of one context section. Why available: Lets the UI show which study notes the answer drew on."""

    title: str
    content: str
    section: int = Field(..., ge=1)


class ResultResponse(BaseModel):
    """Response for GET /result/{requestId} once completed."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    answer: str
    citations: List[Citation] = Field(default_factory=list)
    themes: str = ""
    processing_time: int = Field(..., alias="processingTime", description="End-to-end time in ms")
    model: Optional[str] = None
    source: str = "RAG_SYSTEM"


class ResultPendingResponse(BaseModel):
    """Response for GET /result/{requestId} before completion (HTTP 202)."""

    success: bool = False
    status: str
    error: str = "Request not completed yet"


class ServiceStatusResponse(BaseModel):
    success: bool = True
    status: Dict[str, Any]


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
