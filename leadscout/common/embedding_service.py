"""
Embedding Service

Vectorizes composed search queries. Two backends:
- "openai": OpenAI embeddings API (matches corpora embedded the same way)
- "femb": fastembed, on-device
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

import numpy as np

from .config import EmbeddingConfig, RetryConfig
from .retry import retry_async

logger = logging.getLogger("leadscout.common.embedding_service")


class EmbeddingService:
    """
    Async embedding collaborator.

    Calls are retried with backoff; a failure after retries raises
    UpstreamServiceError.
    """

    def __init__(
        self,
        mode: str = "openai",
        model: str = "text-embedding-3-small",
        openai_api_key: Optional[str] = None,
        retry: Optional[RetryConfig] = None,
    ):
        self._mode = mode
        self._model = model
        self._retry = retry or RetryConfig()
        self._backend = None
        self._init_backend(openai_api_key)

    def _init_backend(self, openai_api_key: Optional[str]) -> None:
        if self._mode == "openai":
            if not openai_api_key:
                logger.info("OpenAI API key not provided, embedding service unavailable")
                return
            try:
                from openai import AsyncOpenAI

                self._backend = AsyncOpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            return

        if self._mode == "femb":
            try:
                from fastembed import TextEmbedding

                self._backend = TextEmbedding(model_name=self._model)
                logger.info("Initialized fastembed with model=%s", self._model)
            except ImportError:
                logger.warning("fastembed package not installed")
            except Exception as e:
                logger.warning("Failed to initialize fastembed: %s", e)
            return

        logger.warning("Unsupported embedding mode: %s", self._mode)

    @classmethod
    def from_config(
        cls, config: EmbeddingConfig, retry: Optional[RetryConfig] = None
    ) -> "EmbeddingService":
        return cls(
            mode=config.mode,
            model=config.model,
            openai_api_key=config.openai_api_key or None,
            retry=retry,
        )

    @property
    def is_available(self) -> bool:
        """Check if embedding service is available"""
        return self._backend is not None

    async def _embed_once(self, texts: List[str]) -> List[List[float]]:
        if self._mode == "openai":
            response = await self._backend.embeddings.create(model=self._model, input=texts)
            return [item.embedding for item in response.data]

        # fastembed is synchronous and CPU bound
        embeddings = await asyncio.to_thread(lambda: list(self._backend.embed(texts)))
        return [np.asarray(e, dtype=np.float64).tolist() for e in embeddings]

    async def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors, one per text
        """
        if not self.is_available:
            raise RuntimeError("Embedding service is not available")
        if not texts:
            return []

        return await retry_async(
            lambda: self._embed_once(texts),
            name=f"{self._mode} embedding",
            max_attempts=self._retry.max_attempts,
            base_delay=self._retry.base_delay_seconds,
            max_delay=self._retry.max_delay_seconds,
            jitter_ratio=self._retry.jitter_ratio,
        )

    async def embed_single(self, text: str) -> List[float]:
        if not text:
            raise ValueError("Cannot embed empty text")
        embeddings = await self.embed([text])
        return embeddings[0]
