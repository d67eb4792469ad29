"""Per-user memory store: long-term file, daily logs and their search index."""

from __future__ import annotations

import re
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

from meow.utils.logging import log_debug, log_info, log_warning

from .embeddings import EmbeddingProvider, create_embedding_provider
from .indexer import KNOWLEDGE_PREFIX, MemoryIndexer
from .models import (
    KNOWLEDGE_TYPES,
    KnowledgeEntry,
    KnowledgeHit,
    MemoryConfig,
    SearchHit,
    TagCount,
)

LONG_TERM_FILE = "MEMORY.md"
DAILY_DIR = "daily"
INDEX_FILE = "index.sqlite"
YESTERDAY_TAIL_COUNT = 5

_ENTRY_SPLIT_RE = re.compile(r"^## ", re.MULTILINE)


def trim_to_bytes(text: str, max_bytes: int) -> str:
    """Keep the longest suffix of whole lines that fits in max_bytes (UTF-8)."""
    if len(text.encode("utf-8")) <= max_bytes:
        return text

    kept: list[str] = []
    size = 0
    for line in reversed(text.split("\n")):
        line_bytes = len((line + "\n").encode("utf-8"))
        if size + line_bytes > max_bytes:
            break
        kept.append(line)
        size += line_bytes
    kept.reverse()
    return "\n".join(kept)


def tail_entries(content: str, count: int) -> str:
    """Last count "## " entries of a daily log; the "# date" header is dropped."""
    pieces = _ENTRY_SPLIT_RE.split(content)
    entries = [piece for piece in pieces[1:] if piece.strip()]
    if not entries:
        return content.strip()
    tail = entries[-count:] if count > 0 else []
    return "\n\n".join(f"## {entry.rstrip()}" for entry in tail)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryStore:
    """Two-layer memory for one user identity.

    Layout under {data_dir}/memory/{user_id}/:
        MEMORY.md              curated long-term facts, section-merged on write
        daily/YYYY-MM-DD.md    append-only daily log (UTC date, local entry time)
        index.sqlite           chunk, full-text and vector indexes, plus saved knowledge

    The store does not watch the filesystem: anything that writes memory
    files out of band must call on_file_changed afterwards.

    Args:
        data_dir: Root data directory.
        user_id: Memory identity.
        config: Memory tuning parameters.
        embedding_provider: Explicit provider; defaults to the one built from config.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        data_dir: str | Path,
        user_id: str = "default",
        config: MemoryConfig | None = None,
        embedding_provider: EmbeddingProvider | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or MemoryConfig()
        self._root = (Path(data_dir) / "memory" / user_id).resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._embedding_provider = embedding_provider
        self._clock = clock or _utc_now
        self._write_lock = threading.Lock()
        self._indexer = MemoryIndexer(self._root / INDEX_FILE, self._config)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def config(self) -> MemoryConfig:
        return self._config

    @property
    def indexer(self) -> MemoryIndexer:
        return self._indexer

    def close(self) -> None:
        self._indexer.close()

    def init(self) -> None:
        """Create the daily directory, wire embeddings and reindex every file."""
        (self._root / DAILY_DIR).mkdir(parents=True, exist_ok=True)

        provider = self._embedding_provider or create_embedding_provider(self._config)
        if provider is not None:
            self._embedding_provider = provider
            self._indexer.set_embed_function(provider.embed, provider.dimensions)

        self.reindex_all()
        log_info(
            f"memory_store_initialized root={self._root} vectors={self._indexer.has_vectors}"
        )

    def reindex_all(self) -> None:
        """Reindex MEMORY.md, every daily log and any other indexed file still on disk.

        Indexed files that no longer exist are removed from the index.
        """
        paths = []
        if (self._root / LONG_TERM_FILE).is_file():
            paths.append(LONG_TERM_FILE)
        daily_dir = self._root / DAILY_DIR
        if daily_dir.is_dir():
            paths.extend(f"{DAILY_DIR}/{f.name}" for f in sorted(daily_dir.glob("*.md")))
        for rel_path in self._indexer.indexed_paths():
            if rel_path in paths:
                continue
            if (self._root / rel_path).is_file():
                paths.append(rel_path)
            else:
                self._indexer.remove_file(rel_path)
        log_debug(f"reindex_all file_count={len(paths)}")
        for rel_path in paths:
            self._indexer.index_file(rel_path, self._safe_read(self._root / rel_path))

    # ------------------------------------------------------------------
    # Prompt context
    # ------------------------------------------------------------------

    def build_prompt_context(self) -> str:
        """Memory block injected verbatim into the system prompt.

        Long-term memory (tail kept within the byte budget), then today's
        log tail, then yesterday's (at most five entries). Missing or empty
        sources are omitted.
        """
        parts: list[str] = []

        memory = self._safe_read(self._root / LONG_TERM_FILE)
        if memory.strip():
            trimmed = trim_to_bytes(memory, self._config.memory_max_bytes)
            if trimmed.strip():
                parts.append(f"## Long-term Memory\n{trimmed}")

        today = self.today()
        daily = self._safe_read(self._daily_path(today))
        if daily.strip():
            tail = tail_entries(daily, self._config.daily_tail_count)
            parts.append(f"## Today's Notes ({today})\n{tail}")

        yesterday = self.yesterday()
        y_daily = self._safe_read(self._daily_path(yesterday))
        if y_daily.strip():
            tail = tail_entries(y_daily, YESTERDAY_TAIL_COUNT)
            parts.append(f"## Yesterday's Notes ({yesterday})\n{tail}")

        return "\n\n".join(parts)

    # ------------------------------------------------------------------
    # Search and read
    # ------------------------------------------------------------------

    def search(self, query: str) -> list[SearchHit]:
        """Hybrid keyword + vector search over the corpus."""
        return self._indexer.search(query)

    def recent(self, limit: int = 10) -> list[SearchHit]:
        return self._indexer.recent_chunks(limit)

    def get_lines(self, path: str, from_line: int, count: int) -> str:
        """Literal line slice of a corpus file or a knowledge entry (from_line is 1-based)."""
        if path.startswith(KNOWLEDGE_PREFIX):
            entry = self._indexer.get_knowledge(path[len(KNOWLEDGE_PREFIX):])
            content = entry.content if entry else ""
        else:
            full = self._resolve(path)
            if full is None:
                return ""
            content = self._safe_read(full)
        if not content:
            return ""
        start = max(0, from_line - 1)
        return "\n".join(content.split("\n")[start:start + max(0, count)])

    # ------------------------------------------------------------------
    # Knowledge
    # ------------------------------------------------------------------

    def save_knowledge(
        self,
        title: str,
        content: str,
        summary: str = "",
        tags: list[str] | None = None,
        source_url: str | None = None,
        source_type: str = "note",
    ) -> KnowledgeEntry:
        """Save a note, link, concept or quote; unknown source types become "note"."""
        if not title.strip():
            raise ValueError("Knowledge title must not be empty")
        now = self._clock().isoformat()
        entry = KnowledgeEntry(
            id=uuid.uuid4().hex[:12],
            title=title.strip(),
            content=content,
            summary=summary,
            source_url=source_url or None,
            source_type=source_type if source_type in KNOWLEDGE_TYPES else "note",
            created_at=now,
            updated_at=now,
            tags=tags or [],
        )
        return self._indexer.save_knowledge(entry)

    def get_knowledge(self, knowledge_id: str) -> KnowledgeEntry | None:
        return self._indexer.get_knowledge(knowledge_id)

    def search_knowledge(
        self,
        query: str,
        tags: list[str] | None = None,
        limit: int = 10,
    ) -> list[KnowledgeHit]:
        return self._indexer.search_knowledge(query, tags, limit)

    def recent_knowledge(self, limit: int = 10) -> list[KnowledgeHit]:
        return self._indexer.recent_knowledge(limit)

    def list_tags(self) -> list[TagCount]:
        return self._indexer.list_tags()

    def tag_knowledge(
        self,
        knowledge_id: str,
        add: list[str] | None = None,
        remove: list[str] | None = None,
    ) -> bool:
        """Add then remove tags on an entry. Returns False when the entry does not exist."""
        if self._indexer.get_knowledge(knowledge_id) is None:
            return False
        if add:
            self._indexer.add_tags(knowledge_id, add)
        if remove:
            self._indexer.remove_tags(knowledge_id, remove)
        self._indexer.touch_knowledge(knowledge_id, self._clock().isoformat())
        return True

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append_to_daily(self, text: str) -> None:
        """Append a timestamped entry to today's log and reindex it."""
        with self._write_lock:
            date = self.today()
            rel_path = f"{DAILY_DIR}/{date}.md"
            full = self._root / rel_path
            existing = self._safe_read(full)
            time = self._clock().astimezone().strftime("%H:%M:%S")
            entry = f"## {time}\n{text}"

            full.parent.mkdir(parents=True, exist_ok=True)
            if existing:
                addition = f"\n\n{entry}"
                updated = existing + addition
            else:
                addition = f"# {date}\n\n{entry}"
                updated = addition
            with open(full, "a", encoding="utf-8") as f:
                f.write(addition)
            log_debug(f"daily_append file={full} chars={len(text)}")

            self._indexer.index_file(rel_path, updated)

    def on_file_changed(self, path: str) -> None:
        """Reindex a corpus file after an out-of-band write (or drop it if deleted)."""
        full = self._resolve(path)
        if full is None:
            log_warning(f"memory_file_outside_root path={path}")
            return
        rel_path = full.relative_to(self._root).as_posix()
        if not full.exists():
            self._indexer.remove_file(rel_path)
            return
        self._indexer.index_file(rel_path, self._safe_read(full))

    def relative_path(self, path: Path) -> str | None:
        """Corpus-relative form of an absolute path, or None if outside the root."""
        try:
            return path.resolve().relative_to(self._root).as_posix()
        except ValueError:
            return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def today(self) -> str:
        return self._clock().date().isoformat()

    def yesterday(self) -> str:
        return (self._clock().date() - timedelta(days=1)).isoformat()

    def _daily_path(self, date: str) -> Path:
        return self._root / DAILY_DIR / f"{date}.md"

    def _resolve(self, path: str) -> Path | None:
        full = (self._root / path).resolve()
        if full != self._root and self._root not in full.parents:
            return None
        return full

    @staticmethod
    def _safe_read(path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except OSError as e:
            log_warning(f"memory_read_failed path={path} error={e}")
            return ""
