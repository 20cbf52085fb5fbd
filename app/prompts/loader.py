"""
Versioned prompt loader: reads prompts from app/prompts/{version}/{component}.yaml.
Use PROMPT_VERSION (default v1) to select version.
"""
from functools import lru_cache
from pathlib import Path

import yaml

# Base path: app/prompts/ (next to this file)
_PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=64)
def load_prompts(
    component: str,
    version: str | None = None,
) -> dict[str, str]:
    """Load prompt templates for a component. Returns dict with keys "system" and/or "user"; values may contain placeholders like <<CONTENT>>, <<TITLE>>, <<CHANNEL>>.
    Why available: Centralizes versioned prompts so content detection, OCR extraction and analysis can be tuned without code changes."""
    if version is None:
        from app.core.config import settings

        version = settings.prompt_version

    path = _PROMPTS_DIR / version / f"{component}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"Prompt file not found: {path}")

    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    out: dict[str, str] = {}
    for key in ("system", "user"):
        val = data.get(key)
        if val is not None:
            out[key] = val.strip() if isinstance(val, str) else str(val).strip()
    return out


def get_system_prompt(component: str, version: str | None = None) -> str:
    """Load the 'system' prompt template for a component. Raises ValueError if the component has none in the specified version."""
    prompts = load_prompts(component, version=version)
    if "system" not in prompts:
        raise ValueError(f"Component {component} has no 'system' prompt in version {version}")
    return prompts["system"]


def get_user_prompt(component: str, version: str | None = None) -> str:
    """Load the 'user' prompt template for a component. Raises ValueError if the component has none in the specified version."""
    prompts = load_prompts(component, version=version)
    if "user" not in prompts:
        raise ValueError(f"Component {component} has no 'user' prompt in version {version}")
    return prompts["user"]


def render(template: str, **values: object) -> str:
    """Fill <<KEY>> placeholders (KEY is the upper-cased keyword) with the given values."""
    out = template
    for key, val in values.items():
        out = out.replace(f"<<{key.upper()}>>", "" if val is None else str(val))
    return out
