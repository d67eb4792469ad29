"""Embedding provider for vector search using the OpenAI API."""

from __future__ import annotations

import os

from meow.utils.logging import log_debug, log_info
from meow.utils.retry import retry_with_backoff

from .models import MemoryConfig

_KNOWN_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


def dimensions_for_model(model: str) -> int:
    """Vector length produced by an OpenAI embedding model."""
    if model in _KNOWN_DIMENSIONS:
        return _KNOWN_DIMENSIONS[model]
    return 1536 if "3-small" in model else 3072


class EmbeddingProvider:
    """Embedding provider using the OpenAI client.

    Reads OPENAI_API_KEY (and OPENAI_BASE_URL, if set) from the environment.

    Args:
        model: The model name for embeddings.
        api_key: Explicit API key; falls back to OPENAI_API_KEY.
    """

    def __init__(self, model: str = "text-embedding-3-small", api_key: str | None = None) -> None:
        from openai import OpenAI

        self._model = model
        self._dimensions = dimensions_for_model(model)
        self._client = OpenAI(api_key=api_key) if api_key else OpenAI()
        log_info(f"embedding_provider_initialized model={model} dimensions={self._dimensions}")

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @retry_with_backoff(retries=2)
    def embed(self, text: str) -> list[float]:
        """Get embedding for a single text."""
        log_debug(f"embed_single model={self._model} chars={len(text)}")
        resp = self._client.embeddings.create(
            model=self._model,
            input=text,
        )
        return resp.data[0].embedding


def create_embedding_provider(config: MemoryConfig) -> EmbeddingProvider | None:
    """Build the configured embedding provider.

    Returns None when embeddings are disabled or no credential is present,
    in which case search runs keyword-only.
    """
    if config.embedding_provider == "none":
        return None

    if config.embedding_provider == "openai":
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            log_info("embedding_provider_skipped reason=missing_openai_api_key")
            return None
        return EmbeddingProvider(model=config.embedding_model, api_key=api_key)

    return None
