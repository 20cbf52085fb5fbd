"""
Content identity resolver: turn a noisy (title, channel) guess read off a screenshot into the best-matching video in the external search index.

Queries run from most to least specific; each candidate is scored with weighted edit similarity plus anchor-keyword bonuses,
and the search stops as soon as one candidate is confidently good.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from app.core.config import Settings
from app.resolve.similarity import edit_similarity, normalize_text
from app.resolve.youtube_search import SearchHit, SearchService
from app.utils.retry import with_timeout

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={}"


@dataclass
class ResolverConfig:
    """Scoring weights, thresholds and anchor tables for the resolver. Built from Settings in production, constructed directly in tests."""

    title_weight: float = 0.6
    channel_weight: float = 0.2
    high_confidence_threshold: float = 0.6
    min_accept_threshold: float = 0.4
    max_results: int = 10
    min_title_length: int = 6
    anchor_bonuses: Dict[str, float] = field(default_factory=dict)
    fallback_queries: List[str] = field(default_factory=list)
    junk_title_phrases: List[str] = field(default_factory=list)
    timeout_seconds: Optional[float] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResolverConfig":
        return cls(
            title_weight=settings.title_weight,
            channel_weight=settings.channel_weight,
            high_confidence_threshold=settings.high_confidence_threshold,
            min_accept_threshold=settings.min_accept_threshold,
            max_results=settings.search_max_results,
            min_title_length=settings.min_title_length,
            anchor_bonuses=dict(settings.anchor_bonuses),
            fallback_queries=list(settings.fallback_queries),
            junk_title_phrases=list(settings.junk_title_phrases),
            timeout_seconds=settings.external_timeout_seconds,
        )


@dataclass
class CandidateMatch:
    """A scored search candidate. combined_score is clamped to [0, 1]."""

    external_id: str
    title: str
    channel: str
    title_score: float
    channel_score: float
    bonus: float
    combined_score: float
    query: str = ""

    @property
    def url(self) -> str:
        return WATCH_URL.format(self.external_id)

    def to_dict(self) -> dict:
        return {
            "external_id": self.external_id,
            "url": self.url,
            "title": self.title,
            "channel": self.channel,
            "title_score": round(self.title_score, 4),
            "channel_score": round(self.channel_score, 4),
            "bonus": round(self.bonus, 4),
            "combined_score": round(self.combined_score, 4),
            "query": self.query,
        }


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class ContentIdentityResolver:
    """Resolves screenshot metadata to a canonical video via the search service.
    Why available: The screenshot pipeline needs a real video id (for transcript and URL) before it can analyse YouTube captures."""

    def __init__(self, search: SearchService, config: Optional[ResolverConfig] = None):
        self.search = search
        self.config = config or ResolverConfig()

    def looks_like_ui_noise(self, title: str) -> bool:
        """Returns True when the cleaned title is too short or is (or contains) a known generic interface phrase such as 'Up next' or 'Subscribe'.
        Why available: Gates the fallback anchor queries so they only run for titles that are probably chrome, not content."""
        clean = normalize_text(title).casefold()
        if len(clean) < self.config.min_title_length:
            return True
        for phrase in self.config.junk_title_phrases:
            p = normalize_text(phrase).casefold()
            if not p:
                continue
            if clean == p or f" {p} " in f" {clean} ":
                return True
        return False

    def build_query_variants(self, title: str, channel: Optional[str] = None) -> List[str]:
        """Ordered, de-duplicated queries from most to least specific: quoted title+channel, plain title+channel, quoted title, plain title, quoted channel, then fallback anchor queries when the title looks like UI noise."""
        clean_title = normalize_text(title)
        clean_channel = normalize_text(channel)

        variants: List[str] = []
        if clean_title and clean_channel:
            variants.append(f'"{clean_title}" "{clean_channel}"')
            variants.append(f"{clean_title} {clean_channel}")
        if clean_title:
            variants.append(f'"{clean_title}"')
            variants.append(clean_title)
        if clean_channel:
            variants.append(f'"{clean_channel}"')
        if self.looks_like_ui_noise(title):
            variants.extend(q.strip() for q in self.config.fallback_queries if q and q.strip())

        seen = set()
        out: List[str] = []
        for v in variants:
            key = v.casefold()
            if key not in seen:
                seen.add(key)
                out.append(v)
        return out

    def anchor_bonus(self, hit: SearchHit) -> float:
        """Sum of configured boosts for every anchor keyword found in the candidate's title or channel."""
        haystack = f"{hit.title} {hit.channel}".casefold()
        return sum(
            boost
            for keyword, boost in self.config.anchor_bonuses.items()
            if keyword and keyword.casefold() in haystack
        )

    def score(self, hit: SearchHit, clean_title: str, clean_channel: str, query: str = "") -> CandidateMatch:
        title_score = edit_similarity(clean_title, normalize_text(hit.title))
        channel_score = edit_similarity(clean_channel, normalize_text(hit.channel)) if clean_channel else 0.0
        bonus = self.anchor_bonus(hit)
        combined = _clamp(
            self.config.title_weight * title_score
            + self.config.channel_weight * channel_score
            + bonus
        )
        return CandidateMatch(
            external_id=hit.external_id,
            title=hit.title,
            channel=hit.channel,
            title_score=title_score,
            channel_score=channel_score,
            bonus=bonus,
            combined_score=combined,
            query=query,
        )

    async def resolve(self, title: str, channel: Optional[str] = None) -> Optional[CandidateMatch]:
        """Search each query variant in order and return the best candidate above the accept threshold, or None when nothing is good enough.
        A failing variant is logged and skipped; once the running best exceeds the high-confidence threshold no further variants are queried."""
        clean_title = normalize_text(title)
        clean_channel = normalize_text(channel)
        variants = self.build_query_variants(title, channel)
        best: Optional[CandidateMatch] = None

        for query in variants:
            try:
                call = self.search.search(query, self.config.max_results)
                if self.config.timeout_seconds:
                    hits: Sequence[SearchHit] = await with_timeout(call, self.config.timeout_seconds, "search")
                else:
                    hits = await call
            except Exception:
                logger.warning("resolver_variant_failed", exc_info=True, extra={"query": query})
                continue

            for hit in list(hits)[: self.config.max_results]:
                candidate = self.score(hit, clean_title, clean_channel, query=query)
                if best is None or candidate.combined_score > best.combined_score:
                    best = candidate

            if best is not None and best.combined_score > self.config.high_confidence_threshold:
                logger.info(
                    "resolver_high_confidence",
                    extra={"query": query, "external_id": best.external_id, "score": best.combined_score},
                )
                break

        if best is not None and best.combined_score > self.config.min_accept_threshold:
            return best
        logger.info(
            "resolver_no_match",
            extra={"title": clean_title[:80], "best_score": best.combined_score if best else None},
        )
        return None
