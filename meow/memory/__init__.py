"""Layered persistent memory: long-term file, daily logs and hybrid search."""

from .embeddings import EmbeddingProvider, create_embedding_provider
from .indexer import MemoryIndexer
from .logging import configure_logging
from .models import ChunkRecord, GetResponse, MemoryConfig, SearchHit, SearchResponse
from .store import MemoryStore

__all__ = [
    "ChunkRecord",
    "EmbeddingProvider",
    "GetResponse",
    "MemoryConfig",
    "MemoryIndexer",
    "MemoryStore",
    "SearchHit",
    "SearchResponse",
    "configure_logging",
    "create_embedding_provider",
]
