"""Knowledge base search results and aggregate stats over stored content records."""
import time
from collections import Counter
from typing import Any, Dict, List, Optional

from app.storage.content_store import ContentRecord, ContentStore

WEEK_SECONDS = 7 * 24 * 3600
HIGH_CONFIDENCE = 0.8
CONFIDENCE_BUCKETS = (
    (0.9, "Very High (90%+)"),
    (0.8, "High (80-89%)"),
    (0.7, "Good (70-79%)"),
    (0.6, "Fair (60-69%)"),
)
LOW_BUCKET = "Low (<60%)"


def format_result(record: ContentRecord) -> Dict[str, Any]:
    """Flatten a record into the search result shape (summary and list fields pulled out of the analysis blob)."""
    def as_list(key: str) -> List[str]:
        val = record.analysis_field(key)
        return [str(v) for v in val] if isinstance(val, list) else []

    summary = record.analysis_field("summary")
    if summary is None and isinstance(record.structured_analysis, str):
        summary = record.structured_analysis
    return {
        "fingerprint": record.fingerprint,
        "title": record.title or "Untitled Content",
        "channel": record.channel or "Unknown",
        "url": record.source_url,
        "content_type": record.content_type,
        "summary": summary or "No summary available",
        "insights": as_list("key_insights"),
        "topics": as_list("topics"),
        "people_mentioned": as_list("people_mentioned"),
        "frameworks": as_list("frameworks"),
        "date": record.processed_at,
        "confidence": record.confidence,
        "quality_flags": list(record.quality_flags),
    }


def _type_counts(records: List[ContentRecord]) -> Dict[str, int]:
    counts = Counter(r.content_type for r in records)
    return {
        "youtube_videos": counts.get("youtube", 0),
        "other_content": sum(n for t, n in counts.items() if t != "youtube"),
    }


async def search_knowledge(store: ContentStore, query: str, limit: int = 50) -> Dict[str, Any]:
    """Search stored records and return formatted results with knowledge-base counts.
    Why available: Backs POST /search so processed screenshots are findable by title, topic, person or transcript text."""
    hits = await store.search(query, limit=limit)
    everything = await store.list_records()
    return {
        "query": query,
        "results": [format_result(r) for r in hits],
        "stats": {
            "total_results": len(hits),
            "total_knowledge": len(everything),
            **_type_counts(everything),
        },
    }


def confidence_bucket(confidence: float) -> str:
    for floor, label in CONFIDENCE_BUCKETS:
        if confidence >= floor:
            return label
    return LOW_BUCKET


def knowledge_stats(records: List[ContentRecord], now: Optional[float] = None) -> Dict[str, Any]:
    """Aggregate dashboard numbers: totals, last-7-days count, average confidence, total cost, content mix, high-confidence rate, recent activity and confidence distribution.
    Why available: Backs GET /stats."""
    now = time.time() if now is None else now
    total = len(records)
    confidences = [r.confidence for r in records if r.confidence is not None]
    avg_conf = sum(confidences) / len(confidences) if confidences else 0.0
    high_rate = (
        100.0 * sum(1 for c in confidences if c >= HIGH_CONFIDENCE) / len(confidences)
        if confidences
        else 0.0
    )

    distribution = Counter(confidence_bucket(c) for c in confidences)
    ordered_labels = [label for _, label in CONFIDENCE_BUCKETS] + [LOW_BUCKET]

    recent = sorted(records, key=lambda r: r.processed_at, reverse=True)[:10]
    return {
        "overview": {
            "total_knowledge": total,
            "this_week": sum(1 for r in records if now - r.processed_at <= WEEK_SECONDS),
            "avg_confidence": round(avg_conf * 100),
            "total_cost": round(sum(r.cost or 0.0 for r in records), 4),
        },
        "content_types": _type_counts(records),
        "performance": {"high_confidence_rate": round(high_rate)},
        "recent_activity": [
            {
                "type": r.content_type,
                "title": r.title,
                "date": r.processed_at,
                "confidence": round((r.confidence or 0.0) * 100),
            }
            for r in recent
        ],
        "confidence_distribution": [
            {"level": label, "count": distribution[label]} for label in ordered_labels if distribution.get(label)
        ],
    }
