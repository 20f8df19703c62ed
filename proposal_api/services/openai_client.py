from __future__ import annotations

from typing import Optional

import openai

from ..config import Settings


def build_async_openai(settings: Settings) -> Optional[openai.AsyncOpenAI]:
    """Return a configured client, or None when no API key is set."""
    if not settings.openai_api_key:
        return None
    return openai.AsyncOpenAI(
        api_key=settings.openai_api_key,
        timeout=settings.external_call_timeout_seconds,
        max_retries=0,  # retries are handled by retry_with_backoff
    )
