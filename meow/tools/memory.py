"""Memory tools: file search and reads, plus the tagged knowledge store."""

from typing import Any, Dict, List, Optional

from meow.memory.indexer import normalize_tags
from meow.memory.models import KNOWLEDGE_TYPES, GetResponse, SearchResponse
from meow.memory.store import MemoryStore
from meow.tools.registry import Tool

DEFAULT_SEARCH_RESULTS = 6
DEFAULT_GET_LINES = 15
DEFAULT_RECALL_RESULTS = 8
MAX_LISTED_TAGS = 30


def split_tags(tags: str) -> List[str]:
    """Comma-separated tag string to normalized names."""
    return normalize_tags(tags.split(",")) if tags else []


def create_memory_tools(memory: MemoryStore) -> List[Tool]:

    def memory_search(query: str, max_results: int = DEFAULT_SEARCH_RESULTS) -> Dict[str, Any]:
        results = memory.search(query)
        hits = [r.model_copy(update={"score": round(r.score, 2)}) for r in results[:max_results]]
        return SearchResponse(query=query, found=len(results), results=hits).model_dump()

    def memory_get(path: str, lines: int = DEFAULT_GET_LINES, **params: Any) -> Dict[str, Any]:
        # "from" is a keyword, so it arrives through **params
        from_line = int(params.get("from", 1))
        text = memory.get_lines(path, from_line, lines)
        return GetResponse(path=path, from_line=from_line, lines=lines, text=text).model_dump(by_alias=True)

    def memory_save(
        title: str,
        content: str,
        summary: str = "",
        tags: str = "",
        source_url: Optional[str] = None,
        source_type: str = "note",
    ) -> Dict[str, Any]:
        entry = memory.save_knowledge(
            title, content, summary=summary, tags=split_tags(tags), source_url=source_url, source_type=source_type
        )
        return {
            "success": True,
            "id": entry.id,
            "title": entry.title,
            "tags": entry.tags,
            "source_type": entry.source_type,
        }

    def memory_recall(query: str, tags: str = "", max_results: int = DEFAULT_RECALL_RESULTS) -> Dict[str, Any]:
        hits = memory.search_knowledge(query, split_tags(tags) or None, max_results)
        results = [
            {
                "id": hit.entry.id,
                "title": hit.entry.title,
                "summary": hit.entry.summary,
                "tags": hit.entry.tags,
                "score": round(hit.score, 2),
                "source_type": hit.entry.source_type,
                "source_url": hit.entry.source_url,
                "created_at": hit.entry.created_at,
            }
            for hit in hits
        ]
        available = [tag.name for tag in memory.list_tags()[:MAX_LISTED_TAGS]]
        return {"query": query, "found": len(results), "results": results, "available_tags": available}

    def memory_tag(knowledge_id: str, add_tags: str = "", remove_tags: str = "") -> Dict[str, Any]:
        added = split_tags(add_tags)
        removed = split_tags(remove_tags)
        if not memory.tag_knowledge(knowledge_id, add=added, remove=removed):
            return {"success": False, "error": f"Knowledge entry {knowledge_id} not found"}
        return {"success": True, "knowledge_id": knowledge_id, "added": added, "removed": removed}

    return [
        Tool(
            name="memory_search",
            description=(
                "Search persistent memory. Use BEFORE answering questions about "
                "prior work, decisions, dates, people, preferences, or todos."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Semantic search query"},
                    "max_results": {
                        "type": "integer",
                        "description": "Max results",
                        "default": DEFAULT_SEARCH_RESULTS,
                    },
                },
                "required": ["query"],
            },
            execute=memory_search,
        ),
        Tool(
            name="memory_get",
            description=(
                "Read specific lines from a memory file after memory_search. "
                "Use this to get full context around a search result."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Relative path from memory_search result"},
                    "from": {"type": "integer", "description": "Starting line number"},
                    "lines": {
                        "type": "integer",
                        "description": "Number of lines to read",
                        "default": DEFAULT_GET_LINES,
                    },
                },
                "required": ["path", "from"],
            },
            execute=memory_get,
        ),
        Tool(
            name="memory_save",
            description=(
                "Save a note, link, concept or quote to the knowledge store. "
                "Use when the user asks to remember or bookmark something worth recalling later."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "Short title"},
                    "content": {"type": "string", "description": "Full content to remember"},
                    "summary": {"type": "string", "description": "One-line summary"},
                    "tags": {"type": "string", "description": "Comma-separated tags, e.g. 'rust,async'"},
                    "source_url": {"type": "string", "description": "Source URL, if any"},
                    "source_type": {
                        "type": "string",
                        "enum": list(KNOWLEDGE_TYPES),
                        "description": "Kind of entry",
                        "default": "note",
                    },
                },
                "required": ["title", "content"],
            },
            execute=memory_save,
        ),
        Tool(
            name="memory_recall",
            description=(
                "Search the knowledge store for saved notes, links, concepts and quotes, "
                "optionally restricted to entries carrying any of the given tags."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search query"},
                    "tags": {"type": "string", "description": "Comma-separated tags to filter by"},
                    "max_results": {
                        "type": "integer",
                        "description": "Max results",
                        "default": DEFAULT_RECALL_RESULTS,
                    },
                },
                "required": ["query"],
            },
            execute=memory_recall,
        ),
        Tool(
            name="memory_tag",
            description="Add or remove tags on a saved knowledge entry.",
            parameters={
                "type": "object",
                "properties": {
                    "knowledge_id": {"type": "string", "description": "Entry id from memory_save or memory_recall"},
                    "add_tags": {"type": "string", "description": "Comma-separated tags to add"},
                    "remove_tags": {"type": "string", "description": "Comma-separated tags to remove"},
                },
                "required": ["knowledge_id"],
            },
            execute=memory_tag,
        ),
    ]
