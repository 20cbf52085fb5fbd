"""
Persistent knowledge records keyed by fingerprint (the screenshot filename).
A record is never patched in place: successive analysis versions change its shape, so replacement is delete-then-insert.
"""
import json
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from app.core.errors import DuplicateFingerprintError


@dataclass
class ContentRecord:
    """One processed screenshot: what it was (content_type, title, channel, source_url), the raw material it was analysed from, and the structured analysis blob."""

    fingerprint: str
    content_type: str  # youtube | ocr
    title: str
    structured_analysis: Any
    channel: Optional[str] = None
    source_url: Optional[str] = None
    raw_material: Optional[str] = None
    confidence: float = 0.0
    cost: float = 0.0
    quality_flags: List[str] = field(default_factory=list)
    processed_at: float = field(default_factory=time.time)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ContentRecord":
        known = {k: payload.get(k) for k in cls.__dataclass_fields__ if k in payload}
        if known.get("quality_flags") is None:
            known["quality_flags"] = []
        if known.get("metadata") is None:
            known["metadata"] = {}
        return cls(**known)

    def analysis_field(self, key: str, default: Any = None) -> Any:
        if isinstance(self.structured_analysis, dict):
            return self.structured_analysis.get(key, default)
        return default

    def searchable_text(self) -> str:
        """Concatenate everything a knowledge search should match: title, channel, summary, insights, topics, people and the raw material."""
        parts = [self.title or "", self.channel or ""]
        analysis = self.structured_analysis
        if isinstance(analysis, dict):
            parts.append(str(analysis.get("summary") or ""))
            for key in ("key_insights", "topics", "people_mentioned", "frameworks", "action_items"):
                val = analysis.get(key)
                if isinstance(val, list):
                    parts.extend(str(v) for v in val)
        elif analysis:
            parts.append(analysis if isinstance(analysis, str) else json.dumps(analysis))
        parts.append(self.raw_material or "")
        return "\n".join(p for p in parts if p)


class ContentStore(ABC):
    @abstractmethod
    async def get(self, fingerprint: str) -> Optional[ContentRecord]:
        pass

    @abstractmethod
    async def delete(self, fingerprint: str) -> None:
        pass

    @abstractmethod
    async def insert(self, fingerprint: str, record: ContentRecord) -> None:
        """Store a new record. Raises DuplicateFingerprintError if the fingerprint is already present."""
        pass

    @abstractmethod
    async def list_records(self) -> List[ContentRecord]:
        pass

    @abstractmethod
    async def search(self, query: str, limit: int = 50) -> List[ContentRecord]:
        pass


class InMemoryContentStore(ContentStore):
    """Dict-backed store for local runs and tests. Search is a case-insensitive substring match over the searchable text, newest first."""

    def __init__(self):
        self._records: Dict[str, ContentRecord] = {}

    async def get(self, fingerprint: str) -> Optional[ContentRecord]:
        return self._records.get(fingerprint)

    async def delete(self, fingerprint: str) -> None:
        self._records.pop(fingerprint, None)

    async def insert(self, fingerprint: str, record: ContentRecord) -> None:
        if fingerprint in self._records:
            raise DuplicateFingerprintError(fingerprint)
        record.fingerprint = fingerprint
        self._records[fingerprint] = record

    async def list_records(self) -> List[ContentRecord]:
        return list(self._records.values())

    async def search(self, query: str, limit: int = 50) -> List[ContentRecord]:
        q = (query or "").strip().lower()
        if not q:
            return []
        hits = [r for r in self._records.values() if q in r.searchable_text().lower()]
        hits.sort(key=lambda r: r.processed_at, reverse=True)
        return hits[:limit]

    def __len__(self) -> int:
        return len(self._records)
