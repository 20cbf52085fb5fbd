from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any


class BatchFile(BaseModel):
    """One screenshot in a batch. Fields are optional here so missing values reach the coordinator's validation and come back as per-file details."""

    filename: Optional[str] = Field(None, description="Unique name of the screenshot; also its storage fingerprint")
    image_base64: Optional[str] = Field(None, description="Base64-encoded JPEG/PNG screenshot")


class BatchRequest(BaseModel):
    """Request body for POST /batch. Why available: Carries the screenshots and the force-regenerate flag."""

    files: List[BatchFile] = Field(default_factory=list)
    force: bool = Field(False, description="Ignore cached records and regenerate every item")


class BatchSubmitResponse(BaseModel):
    """Response for POST /batch: job id and cost estimate. Why available: Clients poll GET /batch/{batch_id} with it."""

    message: str = "Batch processing started"
    batch_id: str
    status: str
    total_files: int = Field(..., ge=1)
    estimated_cost: float = Field(..., ge=0)


class ItemStatus(BaseModel):
    filename: str
    status: str
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    processing_cost: float = 0.0


class JobStatusResponse(BaseModel):
    """Response for GET /batch/{batch_id}: job state, counters and per-file status. Why available: Lets clients follow a batch until it completes or fails."""

    id: str
    status: str
    created_at: float
    completed_at: Optional[float] = None
    total_files: int
    processed_files: int
    successful_files: int
    failed_files: int
    estimated_cost: float
    actual_cost: float
    error: Optional[str] = None
    files: List[ItemStatus] = Field(default_factory=list)


class ProcessRequest(BaseModel):
    """Request body for POST /process (single screenshot, processed synchronously)."""

    filename: Optional[str] = None
    image_base64: Optional[str] = None
    force: bool = False


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    limit: int = Field(50, ge=1, le=200)


class SearchResult(BaseModel):
    fingerprint: str
    title: str
    channel: str
    url: Optional[str] = None
    content_type: str
    summary: str
    insights: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    people_mentioned: List[str] = Field(default_factory=list)
    frameworks: List[str] = Field(default_factory=list)
    date: float
    confidence: Optional[float] = None
    quality_flags: List[str] = Field(default_factory=list)


class SearchStats(BaseModel):
    total_results: int = 0
    total_knowledge: int = 0
    youtube_videos: int = 0
    other_content: int = 0


class SearchResponse(BaseModel):
    """Response for POST /search. Why available: Results plus knowledge-base counts for the search UI."""

    query: str
    results: List[SearchResult] = Field(default_factory=list)
    stats: SearchStats = Field(default_factory=SearchStats)


class LimitsResponse(BaseModel):
    """Response for GET /limits: batch and resolver limits. Why available: Lets clients size batches before uploading."""

    max_batch_size: int = Field(..., description="Max screenshots per batch")
    concurrency_limit: int = Field(..., description="Screenshots processed concurrently per wave")
    unit_cost: float = Field(..., description="Estimated cost per screenshot")
    job_retention_seconds: int = Field(..., description="How long finished jobs stay queryable")
    max_payload_mb: float = Field(..., description="Max decoded screenshot size for /process")
