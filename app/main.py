import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from app.analysis.provider import OpenAIAnalysisProvider
from app.analysis.transcripts import TranscriptClient
from app.core.config import Settings, settings
from app.core.errors import BatchValidationError, JobNotFoundError
from app.guardrails.errors import as_http_400, as_http_500
from app.ingest.coordinator import BatchCoordinator, CoordinatorConfig
from app.ingest.jobs import ProcessingJob
from app.ingest.processor import ProcessorConfig, ScreenshotProcessor
from app.models.schemas import (
    BatchRequest,
    BatchSubmitResponse,
    ItemStatus,
    JobStatusResponse,
    LimitsResponse,
    ProcessRequest,
    SearchRequest,
    SearchResponse,
)
from app.observability.middleware import RequestTimingMiddleware, get_request_id
from app.resolve.resolver import ContentIdentityResolver, ResolverConfig
from app.resolve.youtube_search import YouTubeSearchClient
from app.search.knowledge import knowledge_stats, search_knowledge
from app.storage.content_store import ContentStore, InMemoryContentStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

APP_NAME = "Visual Intelligence Pipeline"


# -------------------------
# Component wiring
# -------------------------

def build_store(cfg: Settings) -> ContentStore:
    """Returns the content store selected by STORE_BACKEND (in-memory for local runs, Qdrant otherwise).
    Why available: Keeps backend choice in one place; the Qdrant client is only imported when it is used."""
    if cfg.store_backend == "qdrant":
        from app.storage.qdrant_store import QdrantContentStore

        return QdrantContentStore.from_settings(cfg)
    return InMemoryContentStore()


def build_components(cfg: Settings) -> Dict[str, Any]:
    """Builds store, processor and coordinator from settings.
    Why available: Used by the lifespan at startup; tests build their own with fakes and put them on app.state."""
    store = build_store(cfg)
    resolver = ContentIdentityResolver(YouTubeSearchClient.from_settings(cfg), ResolverConfig.from_settings(cfg))
    processor = ScreenshotProcessor(
        store=store,
        provider=OpenAIAnalysisProvider(cfg),
        resolver=resolver,
        transcripts=TranscriptClient.from_settings(cfg),
        config=ProcessorConfig.from_settings(cfg),
    )
    coordinator = BatchCoordinator(processor, CoordinatorConfig.from_settings(cfg))
    return {"store": store, "processor": processor, "coordinator": coordinator}


@asynccontextmanager
async def lifespan(app: FastAPI):
    for name, component in build_components(settings).items():
        setattr(app.state, name, component)
    logger.info("app_started", extra={"store_backend": settings.store_backend})
    yield
    await app.state.coordinator.shutdown()


# -------------------------
# App setup
# -------------------------

app = FastAPI(title=APP_NAME, lifespan=lifespan)
app.add_middleware(RequestTimingMiddleware)


def _job_response(job: ProcessingJob) -> JobStatusResponse:
    return JobStatusResponse(
        id=job.id,
        status=job.status,
        created_at=job.created_at,
        completed_at=job.completed_at,
        total_files=job.total_items,
        processed_files=job.processed_count,
        successful_files=job.success_count,
        failed_files=job.failure_count,
        estimated_cost=job.estimated_cost,
        actual_cost=job.actual_cost,
        error=job.error,
        files=[
            ItemStatus(
                filename=it.filename,
                status=it.status,
                result=it.result,
                error=it.error,
                processing_cost=it.cost,
            )
            for it in job.items
        ],
    )


@app.get("/")
def root():
    """Returns a minimal welcome payload with app name and docs URL.
    Why available: Gives clients and load balancers a simple root endpoint to confirm the API is running."""
    return {"app": APP_NAME, "docs": "/docs"}


@app.get("/health")
def health():
    """Returns 200 OK with status. Used by load balancers and probes to check if the API is up.
    Why available: Standard endpoint for uptime checks and orchestration."""
    return {"status": "ok"}


# -------------------------
# Limits (for UI / clients)
# -------------------------

@app.get("/limits", response_model=LimitsResponse)
def limits():
    """Returns current batch limits (max batch size, concurrency, unit cost, job retention, payload size).
    Why available: Lets the UI and clients size batches and estimate cost before uploading."""
    return LimitsResponse(
        max_batch_size=settings.max_batch_size,
        concurrency_limit=settings.concurrency_limit,
        unit_cost=settings.unit_cost,
        job_retention_seconds=settings.job_retention_seconds,
        max_payload_mb=settings.max_payload_mb,
    )


# -------------------------
# Batch processing
# -------------------------

@app.post("/batch", response_model=BatchSubmitResponse, status_code=202)
async def submit_batch(req: BatchRequest, request: Request):
    """Validates a batch of screenshots, creates a job and starts processing it in the background. Returns the job id and cost estimate immediately.
    Why available: Main entry point; screenshots are processed in concurrency-bounded waves and polled via GET /batch/{batch_id}."""
    items = [{"filename": f.filename, "payload": f.image_base64} for f in req.files]
    coordinator: BatchCoordinator = request.app.state.coordinator
    try:
        job = await coordinator.submit_and_start(items, force=req.force)
    except BatchValidationError as e:
        logger.info("batch_rejected", extra={"request_id": get_request_id(request), "reason": e.message})
        raise as_http_400(e)
    except Exception as e:
        raise as_http_500(e)

    logger.info("batch_accepted", extra={"request_id": get_request_id(request), "job_id": job.id})
    return BatchSubmitResponse(
        batch_id=job.id,
        status=job.status,
        total_files=job.total_items,
        estimated_cost=job.estimated_cost,
    )


@app.get("/batch/{batch_id}", response_model=JobStatusResponse)
def batch_status(batch_id: str, request: Request):
    """Returns job status (processing / completed / failed), counters, costs and per-file status and results.
    Why available: Lets clients poll after POST /batch; jobs disappear once the retention window after completion has passed."""
    try:
        job = request.app.state.coordinator.get_job(batch_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Batch job not found")
    return _job_response(job)


@app.post("/process")
async def process_one(req: ProcessRequest, request: Request):
    """Processes a single screenshot synchronously and returns the result (cached, success or no_match).
    Why available: Quick path for one-off captures without creating a batch job."""
    if not (req.filename or "").strip() or not (req.image_base64 or "").strip():
        raise HTTPException(status_code=400, detail="Missing filename or image_base64")
    approx_bytes = len(req.image_base64) * 3 // 4
    if approx_bytes > settings.max_payload_mb * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"Image exceeds {settings.max_payload_mb:g} MB limit")

    processor: ScreenshotProcessor = request.app.state.processor
    try:
        result = await processor.process(req.filename, req.image_base64, force=req.force)
    except Exception as e:
        raise as_http_500(e)
    return JSONResponse(result.to_dict())


# -------------------------
# Knowledge base
# -------------------------

@app.post("/search", response_model=SearchResponse)
async def search(req: SearchRequest, request: Request):
    """Searches processed content by title, channel, summary, topics, people or raw text.
    Why available: The knowledge base is only useful if stored analyses can be found again."""
    try:
        return await search_knowledge(request.app.state.store, req.query.strip(), limit=req.limit)
    except Exception as e:
        raise as_http_500(e)


@app.get("/stats")
async def stats(request: Request):
    """Returns knowledge-base dashboard numbers (totals, weekly count, confidence, cost, content mix, distribution).
    Why available: Gives the dashboard one call for all aggregate numbers."""
    try:
        records = await request.app.state.store.list_records()
    except Exception as e:
        raise as_http_500(e)
    return knowledge_stats(records)
