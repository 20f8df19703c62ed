from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Sequence

from ..config import Settings
from .metrics import record_embedding_failure
from .openai_client import build_async_openai
from .retry import retry_with_backoff

logger = logging.getLogger(__name__)

MAX_EMBEDDING_CHARS = 8000


class EmbeddingService:
    def __init__(
        self,
        client: Any = None,
        *,
        model: str = "text-embedding-3-small",
        timeout: float = 30.0,
        max_retries: int = 5,
        retry_initial_delay: float = 5.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self.model = model
        self.timeout = timeout
        self._request = retry_with_backoff(
            max_retries=max_retries,
            initial_delay=retry_initial_delay,
            sleep=sleep,
        )(self._request_embedding)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmbeddingService":
        return cls(
            build_async_openai(settings),
            model=settings.openai_embedding_model,
            timeout=settings.external_call_timeout_seconds,
            max_retries=settings.llm_max_retries,
            retry_initial_delay=settings.llm_retry_initial_delay_seconds,
        )

    async def _request_embedding(self, text: str) -> List[float]:
        response = await asyncio.wait_for(
            self._client.embeddings.create(model=self.model, input=text[:MAX_EMBEDDING_CHARS]),
            timeout=self.timeout,
        )
        return list(response.data[0].embedding)

    async def embed(self, text: str) -> List[float]:
        """Embed one chunk; an empty vector means the embedding is unavailable."""
        if self._client is None or not text.strip():
            return []
        try:
            return await self._request(text)
        except Exception as exc:
            logger.warning("Embedding request failed; storing empty vector: %r", exc)
            record_embedding_failure()
            return []

    async def embed_many(self, texts: Sequence[str], concurrency: int = 4) -> List[List[float]]:
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def _bounded(text: str) -> List[float]:
            async with semaphore:
                return await self.embed(text)

        return list(await asyncio.gather(*(_bounded(text) for text in texts)))
