"""Pydantic models for the memory layer."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

MemorySource = Literal["memory", "daily", "knowledge"]
KnowledgeType = Literal["note", "link", "concept", "quote"]

KNOWLEDGE_TYPES = ("note", "link", "concept", "quote")


def source_for_path(path: str) -> MemorySource:
    """Derive the memory layer from a corpus-relative path."""
    return "daily" if "daily/" in path else "memory"


class MemoryConfig(BaseModel):
    """Immutable tuning parameters for a memory store and its indexer.

    When no vector index is active the keyword weight is treated as 1.0,
    so the weights do not need to sum to one.
    """

    model_config = ConfigDict(frozen=True)

    memory_max_bytes: int = 4096
    daily_tail_count: int = 10
    vector_weight: float = 0.7
    keyword_weight: float = 0.3
    min_score: float = 0.35
    max_results: int = 10
    chunk_size: int = 1200
    chunk_overlap: int = 200
    embedding_provider: Literal["openai", "none"] = "none"
    embedding_model: str = "text-embedding-3-small"
    embedding_concurrency: int = 1


class ChunkRecord(BaseModel):
    """A contiguous line range of a memory file, stored in the database."""

    model_config = ConfigDict(frozen=True)

    id: str
    path: str
    start_line: int
    end_line: int
    text: str
    hash: str


class SearchHit(BaseModel):
    """A single search result from hybrid vector+FTS search."""

    path: str
    startLine: int
    endLine: int
    score: float
    snippet: str
    source: MemorySource


class SearchResponse(BaseModel):
    """Response from memory_search."""

    query: str
    found: int
    results: list[SearchHit]


class GetResponse(BaseModel):
    """Response from memory_get; from_line is serialized as "from"."""

    model_config = ConfigDict(populate_by_name=True)

    path: str
    from_line: int = Field(alias="from")
    lines: int
    text: str


class KnowledgeEntry(BaseModel):
    """A saved note, link, concept or quote in the knowledge store."""

    id: str
    title: str
    content: str
    summary: str = ""
    source_url: str | None = None
    source_type: KnowledgeType = "note"
    created_at: str
    updated_at: str
    tags: list[str] = Field(default_factory=list)


class KnowledgeHit(BaseModel):
    entry: KnowledgeEntry
    score: float


class TagCount(BaseModel):
    name: str
    count: int
