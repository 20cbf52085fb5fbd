"""Async OpenAI client for vision analysis and embeddings (api_key from config)."""
from typing import Any

from app.core.config import settings
from openai import AsyncOpenAI

_openai_client: Any = None


def get_openai_client() -> AsyncOpenAI:
    """Return a shared AsyncOpenAI client configured with api_key from settings. Used for vision chat completions and embeddings.
    Why available: Single place to get the OpenAI client so the analysis provider and the Qdrant store use the same config."""
    global _openai_client
    if _openai_client is None:
        _openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
    return _openai_client
