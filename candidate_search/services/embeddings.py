"""
Embedding client: text -> fixed-length vector via OpenAI or a local Ollama server.
"""
import asyncio
from typing import Iterable, List, Optional

import requests
from openai import AsyncOpenAI, OpenAIError

from candidate_search.models.settings import EmbeddingSettings, Provider
from candidate_search.utils.exceptions import (
    ConfigurationError,
    EmbeddingServiceError,
    InvalidQueryError,
)
from candidate_search.utils.logging_config import get_logger
from candidate_search.utils.utils import ollama_embed

logger = get_logger(__name__)


class EmbeddingClient:
    """Wraps the external embedding service.

    A missing OpenAI key does not prevent construction; it is reported as a
    ConfigurationError on every call to `embed`.
    """

    def __init__(self, settings: EmbeddingSettings, client: Optional[AsyncOpenAI] = None):
        self.settings = settings
        self._client = client

        if settings.provider == Provider.OPENAI and not settings.api_key and client is None:
            logger.warning("OPENAI_API_KEY is not set - every search will fail until it is configured")

    @property
    def provider(self) -> str:
        return self.settings.provider.value

    def _openai(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.settings.api_key:
                raise ConfigurationError(
                    "OpenAI API key is not configured",
                    config_key="OPENAI_API_KEY",
                )
            self._client = AsyncOpenAI(api_key=self.settings.api_key, timeout=self.settings.timeout)
        return self._client

    async def embed(self, text: str) -> List[float]:
        if not isinstance(text, str) or not text.strip():
            raise InvalidQueryError("Text to embed must be a non-empty string", value=text)

        if self.settings.provider == Provider.OLLAMA:
            return await self._embed_ollama(text)
        return await self._embed_openai(text)

    async def embed_many(self, texts: Iterable[str]) -> List[List[float]]:
        return [await self.embed(t) for t in texts]

    async def _embed_openai(self, text: str) -> List[float]:
        client = self._openai()
        try:
            response = await client.embeddings.create(model=self.settings.model_name, input=text)
        except OpenAIError as e:
            logger.error(f"OpenAI embedding request failed: {e}")
            raise EmbeddingServiceError(
                f"Embedding request failed: {e}",
                provider=self.provider,
                model_name=self.settings.model_name,
                cause=e,
            ) from e

        if not response.data or not response.data[0].embedding:
            raise EmbeddingServiceError(
                "Embedding service returned no vector",
                provider=self.provider,
                model_name=self.settings.model_name,
            )
        vector = list(response.data[0].embedding)
        logger.debug(f"Embedded {len(text)} chars into {len(vector)} dimensions")
        return vector

    async def _embed_ollama(self, text: str) -> List[float]:
        try:
            vector = await asyncio.to_thread(
                ollama_embed,
                text,
                self.settings.model_name,
                self.settings.base_url,
                self.settings.timeout,
            )
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            logger.error(f"Ollama embedding request failed: {e}")
            raise EmbeddingServiceError(
                f"Embedding request failed: {e}",
                provider=self.provider,
                model_name=self.settings.model_name,
                cause=e,
            ) from e
        logger.debug(f"Embedded {len(text)} chars into {len(vector)} dimensions")
        return vector
