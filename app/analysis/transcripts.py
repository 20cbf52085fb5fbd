"""Transcript source: fetch the spoken text of a resolved video from an HTTP transcript service."""
import logging
from typing import Optional, Protocol

import httpx

from app.core.config import Settings

logger = logging.getLogger(__name__)


class TranscriptSource(Protocol):
    async def fetch(self, video_id: str) -> Optional[str]:
        ...


class TranscriptClient:
    """GETs `<url>?video_id=<id>` and joins the returned segments' text. Errors are logged and yield None; the pipeline flags the record instead of failing."""

    def __init__(self, url: str, timeout_seconds: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "TranscriptClient":
        return cls(url=settings.transcript_url, timeout_seconds=settings.external_timeout_seconds, client=client)

    async def fetch(self, video_id: str) -> Optional[str]:
        params = {"video_id": video_id}
        try:
            if self._client is not None:
                resp = await self._client.get(self.url, params=params, timeout=self.timeout_seconds)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    resp = await client.get(self.url, params=params)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError):
            logger.warning("transcript_fetch_failed", exc_info=True, extra={"video_id": video_id})
            return None

        if isinstance(data, dict):
            if data.get("error"):
                logger.info("transcript_unavailable", extra={"video_id": video_id})
                return None
            data = data.get("segments") or data.get("transcript") or []
        if not isinstance(data, list):
            return None
        text = " ".join(str(seg.get("text", "")).strip() for seg in data if isinstance(seg, dict))
        return text.strip() or None
