"""
Per-item screenshot pipeline: cache gate -> content detection -> identity resolution (YouTube) or text extraction (everything else)
-> analysis -> persist. Runs inside one coordinator wave; raises on any failure so the coordinator can mark the item failed.
"""
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Dict, Optional, TypeVar

from app.analysis.provider import AnalysisProvider, Detection
from app.analysis.transcripts import TranscriptSource
from app.core.config import Settings
from app.core.errors import ItemProcessingError
from app.ingest.cache_gate import CacheGateConfig, evaluate
from app.resolve.resolver import CandidateMatch, ContentIdentityResolver
from app.storage.content_store import ContentRecord, ContentStore
from app.utils.retry import with_timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

RESULT_SUCCESS = "success"
RESULT_CACHED = "cached"
RESULT_NO_MATCH = "no_match"


@dataclass
class ProcessorConfig:
    unit_cost: float = 0.08
    min_detection_confidence: float = 0.5
    timeout_seconds: float = 30.0
    cache: CacheGateConfig = field(default_factory=CacheGateConfig)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProcessorConfig":
        return cls(
            unit_cost=settings.unit_cost,
            min_detection_confidence=settings.min_detection_confidence,
            timeout_seconds=settings.external_timeout_seconds,
            cache=CacheGateConfig.from_settings(settings),
        )


@dataclass
class ProcessingResult:
    """Outcome of one screenshot. status is success, cached (served from the store) or no_match (YouTube capture with no acceptable search match; nothing stored)."""

    status: str
    filename: str
    content_type: str
    confidence: float
    cost: float
    record: Optional[ContentRecord] = None
    match: Optional[CandidateMatch] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "status": self.status,
            "filename": self.filename,
            "content_type": self.content_type,
            "confidence": self.confidence,
            "processing_cost": self.cost,
        }
        if self.record is not None:
            out.update(
                {
                    "title": self.record.title,
                    "channel": self.record.channel,
                    "url": self.record.source_url,
                    "quality_flags": list(self.record.quality_flags),
                    "analysis": self.record.structured_analysis,
                }
            )
        if self.match is not None:
            out["video"] = self.match.to_dict()
        if self.metadata:
            out["metadata"] = self.metadata
        return out


class FingerprintLocks:
    """One asyncio.Lock per fingerprint, dropped when the last holder leaves.
    Why available: Two overlapping jobs carrying the same filename would otherwise race on delete/insert."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, fingerprint: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(fingerprint, asyncio.Lock())
        self._holders[fingerprint] = self._holders.get(fingerprint, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[fingerprint] -= 1
            if self._holders[fingerprint] == 0:
                del self._holders[fingerprint]
                del self._locks[fingerprint]

    def __len__(self) -> int:
        return len(self._locks)


class ScreenshotProcessor:
    """Turns one screenshot into a stored ContentRecord (or a cache hit / no-match outcome).
    Why available: The per-item body the batch coordinator schedules; also used directly by the single-screenshot endpoint."""

    def __init__(
        self,
        store: ContentStore,
        provider: AnalysisProvider,
        resolver: ContentIdentityResolver,
        transcripts: TranscriptSource,
        config: Optional[ProcessorConfig] = None,
        locks: Optional[FingerprintLocks] = None,
    ):
        self.store = store
        self.provider = provider
        self.resolver = resolver
        self.transcripts = transcripts
        self.config = config or ProcessorConfig()
        self.locks = locks or FingerprintLocks()

    async def _call(self, awaitable: Awaitable[T], what: str) -> T:
        return await with_timeout(awaitable, self.config.timeout_seconds, what)

    async def process(self, filename: str, payload: str, force: bool = False) -> ProcessingResult:
        if not payload:
            raise ItemProcessingError(f"No screenshot payload for {filename}")
        async with self.locks.hold(filename):
            existing = await self._call(self.store.get(filename), "store read")
            decision = evaluate(existing, force, self.config.cache)
            if decision.servable:
                logger.info("cache_hit", extra={"fingerprint": filename})
                return ProcessingResult(
                    status=RESULT_CACHED,
                    filename=filename,
                    content_type=existing.content_type,
                    confidence=existing.confidence,
                    cost=0.0,
                    record=existing,
                )
            if existing is not None:
                logger.info("cache_invalidated", extra={"fingerprint": filename, "reason": decision.reason})
                await self._call(self.store.delete(filename), "store delete")

            detection = await self._call(self.provider.detect(payload), "content detection")
            if detection.content_type == "youtube" and detection.confidence > self.config.min_detection_confidence:
                return await self._process_youtube(filename, detection)
            return await self._process_visual(filename, payload, detection)

    async def _process_youtube(self, filename: str, detection: Detection) -> ProcessingResult:
        match = await self.resolver.resolve(detection.title or "", detection.channel)
        if match is None:
            return ProcessingResult(
                status=RESULT_NO_MATCH,
                filename=filename,
                content_type="youtube",
                confidence=detection.confidence,
                cost=self.config.unit_cost,
                metadata={"title": detection.title, "channel": detection.channel},
            )

        flags = []
        transcript = await self._call(self.transcripts.fetch(match.external_id), "transcript fetch")
        if not transcript:
            flags.append("missing_transcript")
        elif len(transcript) <= self.config.cache.min_raw_material_length:
            flags.append("short_raw_material")

        analysis = await self._call(
            self.provider.analyze(
                transcript or detection.description,
                "youtube",
                {"title": match.title, "channel": match.channel},
            ),
            "analysis",
        )
        if analysis.get("fallback"):
            flags.append("fallback_analysis")

        record = ContentRecord(
            fingerprint=filename,
            content_type="youtube",
            title=match.title,
            channel=match.channel,
            source_url=match.url,
            raw_material=transcript,
            structured_analysis=analysis,
            confidence=match.combined_score,
            cost=self.config.unit_cost,
            quality_flags=flags,
            metadata={"detection": detection.raw, "match": match.to_dict()},
        )
        await self._call(self.store.insert(filename, record), "store write")
        return ProcessingResult(
            status=RESULT_SUCCESS,
            filename=filename,
            content_type="youtube",
            confidence=match.combined_score,
            cost=self.config.unit_cost,
            record=record,
            match=match,
        )

    async def _process_visual(self, filename: str, payload: str, detection: Detection) -> ProcessingResult:
        flags = []
        ocr = await self._call(self.provider.extract_text(payload), "text extraction")
        if ocr.get("fallback"):
            flags.append("fallback_extraction")

        analysis = await self._call(
            self.provider.analyze(json.dumps(ocr, ensure_ascii=False), "ocr", {"title": ocr.get("title")}),
            "analysis",
        )
        if analysis.get("fallback"):
            flags.append("fallback_analysis")

        record = ContentRecord(
            fingerprint=filename,
            content_type="ocr",
            title=ocr.get("title") or filename,
            raw_material=ocr.get("extracted_text") or None,
            structured_analysis=analysis,
            confidence=detection.confidence,
            cost=self.config.unit_cost,
            quality_flags=flags,
            metadata={"detection": detection.raw, "ocr": ocr},
        )
        await self._call(self.store.insert(filename, record), "store write")
        return ProcessingResult(
            status=RESULT_SUCCESS,
            filename=filename,
            content_type="ocr",
            confidence=detection.confidence,
            cost=self.config.unit_cost,
            record=record,
        )
