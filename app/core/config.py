import json
import os
from typing import Dict, List

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

load_dotenv()


def _env_json(name: str, default: str):
    """Parse a JSON-valued environment variable (anchor tables, query lists). Falls back to the default literal when unset."""
    return json.loads(os.getenv(name, default))


DEFAULT_JUNK_TITLE_PHRASES = [
    "the only way",
    "watch later",
    "add to queue",
    "up next",
    "subscribe",
    "shorts",
    "live",
    "youtube",
]


class Settings(BaseModel):
    """Application settings loaded from environment: API keys and model names, Qdrant URL and collection, batch/concurrency limits, resolver thresholds and cache-quality thresholds.
    Why available: Single source of configuration so the coordinator, resolver and cache gate are tuned from env rather than hard-coded."""
    model_config = ConfigDict(validate_default=True)

    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    vision_model: str = os.getenv("VISION_MODEL", "gpt-4o-mini")
    analysis_model: str = os.getenv("ANALYSIS_MODEL", "gpt-4o-mini")
    embedding_model: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    prompt_version: str = os.getenv("PROMPT_VERSION", "v1")

    youtube_api_key: str = os.getenv("YOUTUBE_API_KEY", "")
    youtube_search_url: str = os.getenv("YOUTUBE_SEARCH_URL", "https://www.googleapis.com/youtube/v3/search")
    transcript_url: str = os.getenv("TRANSCRIPT_URL", "https://youtube-transcript-api.herokuapp.com/transcript")

    store_backend: str = os.getenv("STORE_BACKEND", "memory")  # memory | qdrant
    qdrant_url: str = os.getenv("QDRANT_URL", "http://localhost:6333")
    qdrant_collection: str = os.getenv("QDRANT_COLLECTION", "processed_content")

    # Batch coordinator
    concurrency_limit: int = int(os.getenv("CONCURRENCY_LIMIT", "3"))
    max_batch_size: int = int(os.getenv("MAX_BATCH_SIZE", "50"))
    job_retention_seconds: int = int(os.getenv("JOB_RETENTION_SECONDS", "3600"))
    unit_cost: float = float(os.getenv("UNIT_COST", "0.08"))
    external_timeout_seconds: float = float(os.getenv("EXTERNAL_TIMEOUT_SECONDS", "30"))
    max_payload_mb: float = float(os.getenv("MAX_PAYLOAD_MB", "4.5"))
    min_detection_confidence: float = float(os.getenv("MIN_DETECTION_CONFIDENCE", "0.5"))

    # Content identity resolver
    high_confidence_threshold: float = float(os.getenv("HIGH_CONFIDENCE_THRESHOLD", "0.6"))
    min_accept_threshold: float = float(os.getenv("MIN_ACCEPT_THRESHOLD", "0.4"))
    title_weight: float = float(os.getenv("W_TITLE", "0.6"))
    channel_weight: float = float(os.getenv("W_CHANNEL", "0.2"))
    search_max_results: int = int(os.getenv("SEARCH_MAX_RESULTS", "10"))
    min_title_length: int = int(os.getenv("MIN_TITLE_LENGTH", "6"))
    anchor_bonuses: Dict[str, float] = _env_json("ANCHOR_BONUSES", "{}")
    fallback_queries: List[str] = _env_json("FALLBACK_QUERIES", "[]")
    junk_title_phrases: List[str] = _env_json("JUNK_TITLE_PHRASES", json.dumps(DEFAULT_JUNK_TITLE_PHRASES))

    # Cache gate
    min_analysis_length: int = int(os.getenv("MIN_ANALYSIS_LENGTH", "100"))
    min_raw_material_length: int = int(os.getenv("MIN_RAW_MATERIAL_LENGTH", "500"))
    raw_material_types: List[str] = _env_json("RAW_MATERIAL_TYPES", '["youtube"]')
    extra_error_sentinels: List[str] = _env_json("EXTRA_ERROR_SENTINELS", "[]")

    @field_validator(
        "concurrency_limit",
        "max_batch_size",
        "job_retention_seconds",
        "search_max_results",
        "external_timeout_seconds",
        "max_payload_mb",
    )
    @classmethod
    def must_be_positive(cls, v):
        """Ensure limits and timeouts are positive. Prevents invalid config from env."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator(
        "high_confidence_threshold",
        "min_accept_threshold",
        "title_weight",
        "channel_weight",
        "min_detection_confidence",
    )
    @classmethod
    def must_be_unit_interval(cls, v):
        """Scores and weights live in [0, 1]."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("must be within [0, 1]")
        return v

    @field_validator("channel_weight")
    @classmethod
    def title_outweighs_channel(cls, v, info):
        """The title guess is the stronger signal; W_TITLE must stay above W_CHANNEL."""
        title_weight = info.data.get("title_weight")
        if title_weight is not None and v >= title_weight:
            raise ValueError("W_CHANNEL must be lower than W_TITLE")
        return v

    @field_validator("store_backend")
    @classmethod
    def known_backend(cls, v):
        if v not in ("memory", "qdrant"):
            raise ValueError("STORE_BACKEND must be 'memory' or 'qdrant'")
        return v


settings = Settings()
