from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Optional

import instructor
from pydantic import BaseModel, Field

from ..config import Settings
from .openai_client import build_async_openai
from .retry import retry_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"
SAMPLE_CHARS = 1000

_LANGUAGE_CODE = re.compile(r"^[a-z]{2,3}$")
_POLISH_CHARS = re.compile(r"[ąćęłńśźż]")
_SPANISH_CHARS = re.compile(r"[áéíóúñü]")
_SPANISH_WORDS = re.compile(r"\b(el|la|los|las|un|una|de|del|para|por|con|sin|que|como|más|muy)\b")

LANGUAGE_NAMES = {
    "en": "English",
    "es": "Spanish",
    "pl": "Polish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "ar": "Arabic",
}

SYSTEM = (
    "You are a language detection expert. Identify the language of the provided text and "
    "answer with its ISO 639-1 code in lowercase (en, es, pl, fr, de, it, pt, ...). "
    "If you cannot determine the language with confidence, answer en."
)


class LanguageLLMOut(BaseModel):
    language: str = Field(description="ISO 639-1 language code, lowercase")


def normalize_language_code(raw: str | None) -> str:
    code = (raw or "").strip().lower()
    return code if _LANGUAGE_CODE.match(code) else DEFAULT_LANGUAGE


def detect_language_simple(text: str) -> str:
    """Character and stop-word heuristic used when no model is configured."""
    sample = text.lower()[:500]
    if _POLISH_CHARS.search(sample):
        return "pl"
    if _SPANISH_CHARS.search(sample) or _SPANISH_WORDS.search(sample):
        return "es"
    return DEFAULT_LANGUAGE


def get_language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, "Unknown")


class LanguageDetector:
    def __init__(
        self,
        client: Any = None,
        *,
        model: str = "gpt-4o-mini",
        timeout: float = 30.0,
        max_retries: int = 5,
        retry_initial_delay: float = 5.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self.model = model
        self.timeout = timeout
        self._ask = retry_with_backoff(
            max_retries=max_retries,
            initial_delay=retry_initial_delay,
            sleep=sleep,
        )(self._ask_model)

    @classmethod
    def from_settings(cls, settings: Settings) -> "LanguageDetector":
        openai_client = build_async_openai(settings)
        return cls(
            instructor.from_openai(openai_client) if openai_client is not None else None,
            model=settings.openai_chat_model,
            timeout=settings.external_call_timeout_seconds,
            max_retries=settings.llm_max_retries,
            retry_initial_delay=settings.llm_retry_initial_delay_seconds,
        )

    async def _ask_model(self, sample: str) -> str:
        response = await asyncio.wait_for(
            self._client.chat.completions.create(
                model=self.model,
                response_model=LanguageLLMOut,
                messages=[
                    {"role": "system", "content": SYSTEM},
                    {"role": "user", "content": sample},
                ],
                temperature=0.1,
                max_tokens=20,
            ),
            timeout=self.timeout,
        )
        return response.language

    async def detect(self, text: str) -> str:
        sample = (text or "")[:SAMPLE_CHARS]
        if not sample.strip():
            return DEFAULT_LANGUAGE
        if self._client is None:
            return detect_language_simple(sample)
        try:
            raw = await self._ask(sample)
        except Exception as exc:
            logger.warning("Language detection failed; defaulting to %s: %r", DEFAULT_LANGUAGE, exc)
            return DEFAULT_LANGUAGE
        return normalize_language_code(raw)
