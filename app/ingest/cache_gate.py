"""
Cache gate: decide whether a previously persisted record may be served as a cache hit or must be regenerated.
Pure function of (record, force flag, config); no I/O.
"""
from dataclasses import dataclass, field
from typing import Any, FrozenSet, List, Optional, Tuple

from app.core.config import Settings
from app.storage.content_store import ContentRecord

# Fallback payloads written by the analysis provider when the model output could not be used.
ANALYSIS_UNAVAILABLE = "Analysis unavailable for this item right now."
DEFAULT_ERROR_SENTINELS: Tuple[str, ...] = (
    ANALYSIS_UNAVAILABLE,
    "Failed to generate enhanced analysis",
    "Could not process image content",
    "Transcript not available for video",
)
# Quality flags the pipeline sets when a step fell back to a placeholder payload.
DEFAULT_DEGRADED_FLAGS: FrozenSet[str] = frozenset({"fallback_analysis", "fallback_extraction"})


@dataclass(frozen=True)
class CacheGateConfig:
    min_analysis_length: int = 100
    min_raw_material_length: int = 500
    error_sentinels: Tuple[str, ...] = DEFAULT_ERROR_SENTINELS
    raw_material_types: FrozenSet[str] = field(default_factory=lambda: frozenset({"youtube"}))
    degraded_flags: FrozenSet[str] = DEFAULT_DEGRADED_FLAGS

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheGateConfig":
        return cls(
            min_analysis_length=settings.min_analysis_length,
            min_raw_material_length=settings.min_raw_material_length,
            error_sentinels=DEFAULT_ERROR_SENTINELS + tuple(settings.extra_error_sentinels),
            raw_material_types=frozenset(settings.raw_material_types),
        )


@dataclass(frozen=True)
class CacheDecision:
    servable: bool
    reason: str


def _collect_text(value: Any, out: List[str]) -> None:
    if value is None or isinstance(value, bool):
        return
    if isinstance(value, str):
        if value.strip():
            out.append(value.strip())
    elif isinstance(value, dict):
        for v in value.values():
            _collect_text(v, out)
    elif isinstance(value, (list, tuple)):
        for v in value:
            _collect_text(v, out)
    else:
        out.append(str(value))


def analysis_text(analysis: Any) -> str:
    """Flatten the structured analysis blob to its content for length and sentinel checks: strings pass through, dicts and lists contribute their values (summary, list items, nested text) joined by newlines.
    Why available: Key names and empty lists are envelope, not analysis; measuring them would let a one-word summary pass the length check."""
    out: List[str] = []
    _collect_text(analysis, out)
    return "\n".join(out)


def evaluate(
    existing: Optional[ContentRecord],
    force: bool = False,
    config: Optional[CacheGateConfig] = None,
) -> CacheDecision:
    """Returns servable=True only when force is off, a record exists, it carries no fallback quality flag, its analysis is non-empty, sentinel-free and long enough, and (for content types that need it) its raw material is long enough.
    Why available: Earlier degraded runs (failed analysis or extraction, missing transcript) must not be served as cache hits; the caller deletes and regenerates when servable is False."""
    config = config or CacheGateConfig()

    if force:
        return CacheDecision(False, "forced")
    if existing is None:
        return CacheDecision(False, "missing")
    if config.degraded_flags.intersection(existing.quality_flags or ()):
        return CacheDecision(False, "degraded")

    text = analysis_text(existing.structured_analysis)
    if not text:
        return CacheDecision(False, "empty_analysis")
    if any(s and s in text for s in config.error_sentinels):
        return CacheDecision(False, "error_sentinel")
    if len(text) <= config.min_analysis_length:
        return CacheDecision(False, "short_analysis")

    if existing.content_type in config.raw_material_types:
        raw = (existing.raw_material or "").strip()
        if len(raw) <= config.min_raw_material_length:
            return CacheDecision(False, "short_raw_material")
        if any(s and s in raw for s in config.error_sentinels):
            return CacheDecision(False, "error_sentinel")

    return CacheDecision(True, "servable")
