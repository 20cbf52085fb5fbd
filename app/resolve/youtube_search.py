"""External search service: YouTube Data API v3 `search.list` over httpx."""
import html
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

import httpx

from app.core.config import Settings
from app.core.errors import SearchServiceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchHit:
    """One search result: display title, channel name and the index's id for the content."""

    title: str
    channel: str
    external_id: str


class SearchService(Protocol):
    async def search(self, query: str, max_results: int) -> List[SearchHit]:
        ...


class YouTubeSearchClient:
    """Queries YouTube for videos matching a free-text query.
    Why available: The resolver's only window onto the external content index; swap in a fake for tests."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://www.googleapis.com/youtube/v3/search",
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "YouTubeSearchClient":
        return cls(
            api_key=settings.youtube_api_key,
            base_url=settings.youtube_search_url,
            timeout_seconds=settings.external_timeout_seconds,
            client=client,
        )

    async def search(self, query: str, max_results: int) -> List[SearchHit]:
        """Run one search and return up to max_results video hits. Raises SearchServiceError on HTTP or payload errors; the resolver treats that as a skipped variant."""
        if not self.api_key:
            logger.warning("youtube_api_key_missing")
        params = {
            "part": "snippet",
            "q": query,
            "type": "video",
            "maxResults": max_results,
            "key": self.api_key,
        }
        try:
            if self._client is not None:
                resp = await self._client.get(self.base_url, params=params, timeout=self.timeout_seconds)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    resp = await client.get(self.base_url, params=params)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise SearchServiceError(f"search failed for {query!r}: {e}") from e

        return parse_search_items(data)[:max_results]


def parse_search_items(data: dict) -> List[SearchHit]:
    """Turn a search.list response body into SearchHits, skipping items that are not videos. Titles arrive HTML-escaped (&amp;, &#39;)."""
    hits: List[SearchHit] = []
    for item in (data or {}).get("items") or []:
        video_id = (item.get("id") or {}).get("videoId")
        snippet = item.get("snippet") or {}
        if not video_id:
            continue
        hits.append(
            SearchHit(
                title=html.unescape(snippet.get("title") or ""),
                channel=html.unescape(snippet.get("channelTitle") or ""),
                external_id=video_id,
            )
        )
    return hits
