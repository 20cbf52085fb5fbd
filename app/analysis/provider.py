"""
Analysis provider: OpenAI vision/chat calls that classify a screenshot, transcribe its text, and turn transcripts or extracted text into structured findings.
Model output is parsed tolerantly; unusable output becomes a fallback payload carrying the ANALYSIS_UNAVAILABLE sentinel so the cache gate regenerates it later.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from app.core.config import Settings, settings as default_settings
from app.core.openai_client import get_openai_client
from app.ingest.cache_gate import ANALYSIS_UNAVAILABLE
from app.prompts.loader import get_system_prompt, get_user_prompt, render
from app.utils.retry import with_retry

logger = logging.getLogger(__name__)

YOUTUBE_CONTENT_LIMIT = 8000
VISUAL_CONTENT_LIMIT = 4000
FORBIDDEN_HEADINGS = (
    "Executive Summary",
    "Key Insights",
    "Frameworks & Systems",
    "Timelines & Predictions",
)
_FENCE_RE = re.compile(r"^```[a-zA-Z]*\n?|```$")


@dataclass
class Detection:
    """What the screenshot shows. title/channel are only set for YouTube captures and are noisy by nature."""

    content_type: str
    confidence: float
    description: str = ""
    title: Optional[str] = None
    channel: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


class AnalysisProvider(Protocol):
    async def detect(self, payload: str) -> Detection:
        ...

    async def extract_text(self, payload: str) -> Dict[str, Any]:
        ...

    async def analyze(self, content: str, content_type: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        ...


def parse_json_payload(raw: str) -> Optional[Dict[str, Any]]:
    """Parse model output as a JSON object. Strips code fences and falls back to the outermost {...} block. Returns None when nothing parses.
    Why available: Vision models wrap JSON in prose or fences often enough that a strict json.loads loses good answers."""
    text = _FENCE_RE.sub("", (raw or "").strip()).strip()
    if not text:
        return None
    try:
        data = json.loads(text)
        return data if isinstance(data, dict) else None
    except ValueError:
        pass
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        try:
            data = json.loads(text[start : end + 1])
            return data if isinstance(data, dict) else None
        except ValueError:
            return None
    return None


def strip_forbidden_headings(summary: str) -> str:
    lines = [ln for ln in summary.split("\n") if not any(ln.strip().lstrip("#").strip().startswith(h) for h in FORBIDDEN_HEADINGS)]
    return "\n".join(lines)


def detection_from_payload(data: Optional[Dict[str, Any]]) -> Detection:
    """Build a Detection from the parsed classifier payload; unparseable output becomes type 'other' with zero confidence."""
    if not data:
        return Detection(content_type="other", confidence=0.0, description="Unknown content", raw={"error": "Failed to parse content type"})
    try:
        confidence = float(data.get("confidence") or 0.0)
    except (TypeError, ValueError):
        confidence = 0.0
    meta = data.get("youtube_metadata") or {}
    if not isinstance(meta, dict):
        meta = {}
    return Detection(
        content_type=str(data.get("type") or "other").lower(),
        confidence=max(0.0, min(1.0, confidence)),
        description=str(data.get("description") or ""),
        title=(meta.get("title") or None),
        channel=(meta.get("channel") or None),
        raw=data,
    )


def fallback_extraction() -> Dict[str, Any]:
    return {
        "extracted_text": "",
        "title": "Text extraction failed",
        "content_type": "other",
        "key_insights": [],
        "topics": [],
        "people_mentioned": [],
        "summary": "Could not process image content",
        "fallback": True,
    }


def fallback_analysis() -> Dict[str, Any]:
    return {
        "summary": ANALYSIS_UNAVAILABLE,
        "key_insights": [],
        "topics": [],
        "people_mentioned": [],
        "frameworks": [],
        "action_items": [],
        "fallback": True,
    }


def normalize_analysis(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Coerce the analysis payload to the stored shape: summary string without forbidden headings, list fields always lists."""
    if not data or not isinstance(data.get("summary"), str) or not data["summary"].strip():
        return fallback_analysis()
    out = dict(data)
    out["summary"] = strip_forbidden_headings(out["summary"]).strip()
    for key in ("key_insights", "topics", "people_mentioned", "frameworks", "action_items"):
        val = out.get(key)
        out[key] = [str(v) for v in val if v] if isinstance(val, list) else []
    return out


def _image_message(prompt: str, payload: str) -> List[Dict[str, Any]]:
    return [
        {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{payload}"}},
        {"type": "text", "text": prompt},
    ]


class OpenAIAnalysisProvider:
    """AnalysisProvider backed by OpenAI chat completions with image input.
    Why available: The black-box 'what is in this screenshot' step of the pipeline; tests substitute a fake with the same three methods."""

    def __init__(self, settings: Settings = default_settings, client: Any = None):
        self.settings = settings
        self._client = client

    @property
    def client(self):
        return self._client or get_openai_client()

    async def _complete(self, model: str, messages: List[Dict[str, Any]], max_tokens: int, temperature: float = 0.2) -> str:
        resp = await with_retry(
            lambda: self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        )
        return resp.choices[0].message.content or ""

    async def detect(self, payload: str) -> Detection:
        raw = await self._complete(
            self.settings.vision_model,
            [
                {"role": "system", "content": get_system_prompt("detect_content")},
                {"role": "user", "content": _image_message(get_user_prompt("detect_content"), payload)},
            ],
            max_tokens=1000,
        )
        detection = detection_from_payload(parse_json_payload(raw))
        if detection.confidence == 0.0 and "error" in detection.raw:
            logger.warning("content_detection_unparsed", extra={"raw_preview": raw[:120]})
        return detection

    async def extract_text(self, payload: str) -> Dict[str, Any]:
        raw = await self._complete(
            self.settings.vision_model,
            [
                {"role": "system", "content": get_system_prompt("extract_text")},
                {"role": "user", "content": _image_message(get_user_prompt("extract_text"), payload)},
            ],
            max_tokens=3000,
        )
        data = parse_json_payload(raw)
        if data is None:
            logger.warning("text_extraction_unparsed", extra={"raw_preview": raw[:120]})
            return fallback_extraction()
        return data

    async def analyze(self, content: str, content_type: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        if content_type == "youtube":
            component, limit = "analyze_youtube", YOUTUBE_CONTENT_LIMIT
        else:
            component, limit = "analyze_visual", VISUAL_CONTENT_LIMIT
        user_msg = render(
            get_user_prompt(component),
            title=metadata.get("title") or "",
            channel=metadata.get("channel") or "",
            content=(content or "")[:limit],
        )
        raw = await self._complete(
            self.settings.analysis_model,
            [
                {"role": "system", "content": get_system_prompt(component)},
                {"role": "user", "content": user_msg},
            ],
            max_tokens=2000,
        )
        analysis = normalize_analysis(parse_json_payload(raw))
        if analysis.get("fallback"):
            logger.warning("analysis_fallback", extra={"content_type": content_type, "raw_preview": raw[:120]})
        return analysis
