"""Pydantic request/response models for the API."""

from pydantic import BaseModel, Field

from config import WikiConfig


class JobCreateRequest(WikiConfig):
    """Request body for POST /v1/jobs; same fields and validation as WikiConfig."""


class JobCreateResponse(BaseModel):
    """Response for POST /v1/jobs (201)."""

    job_id: str
    status: str = "queued"


class ChapterSummary(BaseModel):
    num: int
    name: str
    filename: str


class JobResult(BaseModel):
    final_output_dir: str | None = Field(default=None, description="Path to generated wiki directory")
    summary: str | None = Field(default=None, description="Project summary from the relationship stage")
    chapters: list[ChapterSummary] = Field(default_factory=list)


class JobResponse(BaseModel):
    """Response for GET /v1/jobs/{job_id}."""

    job_id: str
    status: str  # queued | running | completed | failed | cancelled
    created_at: float
    updated_at: float
    result: JobResult | None = None
    error: str | None = None


class ProviderListResponse(BaseModel):
    providers: list[str]


class ModelPricingResponse(BaseModel):
    prompt: str
    completion: str


class ModelResponse(BaseModel):
    id: str
    display_name: str
    context_length: int
    pricing: ModelPricingResponse | None = None


class ModelListResponse(BaseModel):
    provider: str
    models: list[ModelResponse]
