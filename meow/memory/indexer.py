"""SQLite index for the memory corpus: chunks, FTS5 full-text and sqlite-vec vectors."""

from __future__ import annotations

import hashlib
import math
import sqlite3
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import sqlite_vec

from .logging import get_logger
from .models import (
    ChunkRecord,
    KnowledgeEntry,
    KnowledgeHit,
    MemoryConfig,
    SearchHit,
    TagCount,
    source_for_path,
)

logger = get_logger(__name__)

EmbedFn = Callable[[str], list[float]]

# Approximation used to turn a character budget into a line count.
CHARS_PER_LINE = 80
SNIPPET_CHARS = 500
KNOWLEDGE_PREFIX = "knowledge/"


def _load_extensions(conn: sqlite3.Connection) -> None:
    """Load sqlite-vec extension."""
    conn.enable_load_extension(True)
    sqlite_vec.load(conn)
    conn.enable_load_extension(False)


_SCHEMA = """
CREATE TABLE IF NOT EXISTS chunks (
    id TEXT PRIMARY KEY,
    path TEXT NOT NULL,
    start_line INTEGER NOT NULL,
    end_line INTEGER NOT NULL,
    text TEXT NOT NULL,
    hash TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_chunks_path ON chunks(path);
CREATE INDEX IF NOT EXISTS idx_chunks_hash ON chunks(hash);

CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(
    text,
    content=chunks
);

CREATE TABLE IF NOT EXISTS index_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS knowledge (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    summary TEXT NOT NULL DEFAULT '',
    source_url TEXT,
    source_type TEXT NOT NULL DEFAULT 'note',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE VIRTUAL TABLE IF NOT EXISTS knowledge_fts USING fts5(
    title,
    content,
    summary,
    content=knowledge,
    content_rowid=rowid
);

CREATE TABLE IF NOT EXISTS tags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS knowledge_tags (
    knowledge_id TEXT NOT NULL,
    tag_id INTEGER NOT NULL,
    PRIMARY KEY (knowledge_id, tag_id)
);

CREATE INDEX IF NOT EXISTS idx_kt_tag ON knowledge_tags(tag_id);
"""


def chunk_lines(
    path: str,
    content: str,
    chunk_size: int,
    chunk_overlap: int,
) -> list[ChunkRecord]:
    """Split content into overlapping line-based chunks.

    chunk_size and chunk_overlap are character budgets, converted to line
    counts at CHARS_PER_LINE characters per line.
    """
    lines = content.split("\n")
    lines_per_chunk = max(1, math.ceil(chunk_size / CHARS_PER_LINE))
    overlap_lines = math.ceil(chunk_overlap / CHARS_PER_LINE)
    step = max(1, lines_per_chunk - overlap_lines)

    chunks: list[ChunkRecord] = []
    start = 0
    while start < len(lines):
        end = min(start + lines_per_chunk, len(lines))
        text = "\n".join(lines[start:end])
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]
        chunks.append(
            ChunkRecord(
                id=f"{path}:{start}:{digest}",
                path=path,
                start_line=start + 1,
                end_line=end,
                text=text,
                hash=digest,
            )
        )
        if end >= len(lines):
            break
        start += step
    return chunks


def normalize_tags(tags: list[str]) -> list[str]:
    """Lowercase and strip tag names, dropping blanks and duplicates."""
    names: list[str] = []
    for tag in tags:
        name = tag.strip().lower()
        if name and name not in names:
            names.append(name)
    return names


class MemoryIndexer:
    """Hybrid keyword + vector index over one user's memory corpus.

    Index mutations are serialized through a single lock: a reindex
    deletes and inserts across three tables and is not atomic as a unit.

    Args:
        db_path: Location of the SQLite database file.
        config: Chunking and ranking parameters.
    """

    def __init__(self, db_path: Path, config: MemoryConfig) -> None:
        self._db_path = db_path
        self._config = config
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._embed_fn: EmbedFn | None = None
        self._dimensions = 0
        self._conn = self._connect()
        logger.info(f"database_opened path={db_path}")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        _load_extensions(conn)
        conn.executescript(_SCHEMA)
        conn.commit()
        return conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @property
    def has_vectors(self) -> bool:
        """Whether vector search is active for this indexer."""
        return self._embed_fn is not None and self._dimensions > 0

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def set_embed_function(self, embed_fn: EmbedFn, dimensions: int) -> None:
        """Enable vector indexing with the given embedding function."""
        with self._lock:
            self._embed_fn = embed_fn
            self._dimensions = dimensions
            self._ensure_vector_table()

    def _ensure_vector_table(self) -> None:
        """Create the vector table, rebuilding it if the dimensionality changed."""
        if not self._dimensions:
            return
        row = self._conn.execute(
            "SELECT value FROM index_meta WHERE key = 'vector_dimensions'"
        ).fetchone()
        stored = int(row[0]) if row else None
        try:
            if stored is not None and stored != self._dimensions:
                logger.warning(
                    f"vector_dimensions_changed old={stored} new={self._dimensions} action=rebuild"
                )
                self._conn.execute("DROP TABLE IF EXISTS chunks_vec")
            self._conn.execute(
                "CREATE VIRTUAL TABLE IF NOT EXISTS chunks_vec USING vec0("
                f"id TEXT PRIMARY KEY, embedding FLOAT[{self._dimensions}] distance_metric=cosine)"
            )
            self._conn.execute(
                "INSERT OR REPLACE INTO index_meta (key, value) VALUES ('vector_dimensions', ?)",
                (str(self._dimensions),),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            logger.warning(f"vector_table_unavailable dimensions={self._dimensions} error={e}")
            self._embed_fn = None
            self._dimensions = 0

    def _vector_table_exists(self) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'chunks_vec'"
        ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def index_file(self, path: str, content: str) -> int:
        """Replace every chunk of path with chunks of content.

        Vector rows whose chunk id survives the edit are kept and reused;
        the rest are deleted. Returns the number of chunks indexed.
        """
        chunks: list[ChunkRecord] = []
        if content.strip():
            chunks = chunk_lines(
                path, content, self._config.chunk_size, self._config.chunk_overlap
            )
        logger.debug(f"index_file_start path={path} num_chunks={len(chunks)}")

        with self._lock:
            old_ids = self._chunk_ids(path)
            with self._conn:
                self._delete_chunks(path)
                for chunk in chunks:
                    cur = self._conn.execute(
                        "INSERT INTO chunks (id, path, start_line, end_line, text, hash)"
                        " VALUES (?, ?, ?, ?, ?, ?)",
                        (chunk.id, chunk.path, chunk.start_line, chunk.end_line, chunk.text, chunk.hash),
                    )
                    self._conn.execute(
                        "INSERT INTO chunks_fts (rowid, text) VALUES (?, ?)",
                        (cur.lastrowid, chunk.text),
                    )
                new_ids = {chunk.id for chunk in chunks}
                orphaned = [cid for cid in old_ids if cid not in new_ids]
                self._delete_vectors(orphaned)

            if self.has_vectors and chunks:
                self._index_vectors(path, chunks)

        logger.info(f"file_indexed path={path} chunks_inserted={len(chunks)}")
        return len(chunks)

    def remove_file(self, path: str) -> None:
        """Delete every row for path from the chunk, full-text and vector indexes."""
        with self._lock:
            ids = self._chunk_ids(path)
            with self._conn:
                self._delete_chunks(path)
                self._delete_vectors(ids)
        logger.info(f"file_removed path={path} chunks_removed={len(ids)}")

    def indexed_paths(self) -> list[str]:
        """Every path that currently has chunks in the index."""
        with self._lock:
            rows = self._conn.execute("SELECT DISTINCT path FROM chunks ORDER BY path").fetchall()
        return [row[0] for row in rows]

    def _chunk_ids(self, path: str) -> list[str]:
        return [
            row[0]
            for row in self._conn.execute(
                "SELECT id FROM chunks WHERE path = ?", (path,)
            ).fetchall()
        ]

    def _delete_chunks(self, path: str) -> None:
        rows = self._conn.execute(
            "SELECT rowid, text FROM chunks WHERE path = ?", (path,)
        ).fetchall()
        # FTS5 external content: delete via special command
        for row in rows:
            self._conn.execute(
                "INSERT INTO chunks_fts (chunks_fts, rowid, text) VALUES ('delete', ?, ?)",
                (row[0], row[1]),
            )
        self._conn.execute("DELETE FROM chunks WHERE path = ?", (path,))

    def _delete_vectors(self, chunk_ids: list[str]) -> None:
        if not chunk_ids or not self._vector_table_exists():
            return
        logger.debug(f"removing_vectors count={len(chunk_ids)}")
        for cid in chunk_ids:
            self._conn.execute("DELETE FROM chunks_vec WHERE id = ?", (cid,))

    def _has_vector(self, chunk_id: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM chunks_vec WHERE id = ?", (chunk_id,)
        ).fetchone()
        return row is not None

    def _index_vectors(self, path: str, chunks: list[ChunkRecord]) -> None:
        """Embed and store chunks that have no vector yet (cache by chunk id)."""
        pending = [chunk for chunk in chunks if not self._has_vector(chunk.id)]
        logger.debug(f"vector_cache path={path} cached={len(chunks) - len(pending)} pending={len(pending)}")
        if not pending:
            return

        texts = [chunk.text for chunk in pending]
        try:
            if self._config.embedding_concurrency > 1:
                with ThreadPoolExecutor(max_workers=self._config.embedding_concurrency) as pool:
                    embeddings = list(pool.map(self._embed_fn, texts))
            else:
                embeddings = [self._embed_fn(text) for text in texts]
        except Exception as e:
            logger.warning(f"embedding_failed path={path} chunks={len(pending)} error={e}")
            return

        try:
            with self._conn:
                for chunk, embedding in zip(pending, embeddings):
                    self._conn.execute(
                        "INSERT INTO chunks_vec (id, embedding) VALUES (?, ?)",
                        (chunk.id, sqlite_vec.serialize_float32(embedding)),
                    )
        except sqlite3.Error as e:
            logger.warning(f"vector_insert_failed path={path} error={e}")
            return
        logger.debug(f"vectors_indexed path={path} count={len(pending)}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def search(self, query: str) -> list[SearchHit]:
        """Run keyword and vector search independently, merge, then add knowledge matches.

        Knowledge hits are normalized by their own maximum and pass the same
        min_score filter before the combined list is ranked and truncated.
        """
        keyword = self._search_keyword(query)
        vector = self._search_vector(query) if self.has_vectors else []
        hits = self.merge_results(keyword, vector)
        knowledge = [
            hit for hit in self._knowledge_results(query) if hit.score >= self._config.min_score
        ]
        if knowledge:
            hits = sorted(hits + knowledge, key=lambda h: h.score, reverse=True)
            hits = hits[: self._config.max_results]
        logger.info(
            f"hybrid_search_done query={query[:80]} results={len(hits)} kw_hits={len(keyword)}"
            f" vec_hits={len(vector)} knowledge_hits={len(knowledge)}"
        )
        return hits

    def _search_keyword(self, query: str) -> list[SearchHit]:
        """Full-text phrase match ranked by bm25; raw score is |bm25|."""
        if not query.strip():
            return []
        phrase = '"' + query.replace('"', '""') + '"'
        try:
            with self._lock:
                rows = self._conn.execute(
                    """
                    SELECT c.path, c.start_line, c.end_line, c.text,
                           bm25(chunks_fts) AS rank
                    FROM chunks_fts
                    JOIN chunks c ON c.rowid = chunks_fts.rowid
                    WHERE chunks_fts MATCH ?
                    ORDER BY rank
                    LIMIT ?
                    """,
                    (phrase, self._config.max_results * 2),
                ).fetchall()
        except sqlite3.Error as e:
            logger.warning(f"keyword_search_failed query={query[:80]} error={e}")
            return []
        return [self._hit(row, abs(float(row["rank"]))) for row in rows]

    def _search_vector(self, query: str) -> list[SearchHit]:
        """Nearest-neighbour scan; raw score is 1 - distance."""
        if not query.strip() or self._embed_fn is None:
            return []
        try:
            embedding = self._embed_fn(query)
        except Exception as e:
            logger.warning(f"query_embedding_failed query={query[:80]} error={e}")
            return []
        try:
            with self._lock:
                rows = self._conn.execute(
                    """
                    SELECT c.path, c.start_line, c.end_line, c.text, v.distance
                    FROM (
                        SELECT id, distance
                        FROM chunks_vec
                        WHERE embedding MATCH ? AND k = ?
                    ) v
                    JOIN chunks c ON c.id = v.id
                    ORDER BY v.distance
                    """,
                    (sqlite_vec.serialize_float32(embedding), self._config.max_results * 2),
                ).fetchall()
        except sqlite3.Error as e:
            logger.warning(f"vector_search_failed query={query[:80]} error={e}")
            return []
        return [self._hit(row, 1.0 - float(row["distance"])) for row in rows]

    def merge_results(
        self,
        keyword: list[SearchHit],
        vector: list[SearchHit],
    ) -> list[SearchHit]:
        """Merge raw keyword and vector hits into one ranked list.

        Each set is normalized by its own maximum raw score. Keyword scores
        are weighted by keyword_weight, or 1.0 when the vector set is empty.
        Hits sharing path:startLine have their weighted scores summed.
        """
        kw_weight = self._config.keyword_weight if vector else 1.0
        vec_weight = self._config.vector_weight
        max_kw = _max_score(keyword)
        max_vec = _max_score(vector)

        merged: dict[str, SearchHit] = {}
        for hit in keyword:
            key = f"{hit.path}:{hit.startLine}"
            score = (hit.score / max_kw) * kw_weight
            merged[key] = hit.model_copy(update={"score": score})

        for hit in vector:
            key = f"{hit.path}:{hit.startLine}"
            score = (hit.score / max_vec) * vec_weight
            existing = merged.get(key)
            if existing is not None:
                merged[key] = existing.model_copy(update={"score": existing.score + score})
            else:
                merged[key] = hit.model_copy(update={"score": score})

        for key, hit in merged.items():
            logger.debug(f"hybrid_combine key={key} score={round(hit.score, 4)}")

        ranked = [hit for hit in merged.values() if hit.score >= self._config.min_score]
        ranked.sort(key=lambda h: h.score, reverse=True)
        return ranked[: self._config.max_results]

    def recent_chunks(self, limit: int) -> list[SearchHit]:
        """Most recently indexed chunks, by path then start line descending.

        Daily files are named by ISO date, so path order approximates recency.
        """
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT path, start_line, end_line, text
                FROM chunks
                ORDER BY path DESC, start_line DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [self._hit(row, 1.0) for row in rows]

    def count_chunks(self, path: str | None = None) -> int:
        """Number of indexed chunks, optionally for one path."""
        with self._lock:
            if path is None:
                row = self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()
            else:
                row = self._conn.execute(
                    "SELECT COUNT(*) FROM chunks WHERE path = ?", (path,)
                ).fetchone()
        return int(row[0])

    def count_vectors(self) -> int:
        """Number of rows in the vector index (0 when it does not exist)."""
        with self._lock:
            if not self._vector_table_exists():
                return 0
            row = self._conn.execute("SELECT COUNT(*) FROM chunks_vec").fetchone()
        return int(row[0])

    # ------------------------------------------------------------------
    # Knowledge
    # ------------------------------------------------------------------

    def save_knowledge(self, entry: KnowledgeEntry) -> KnowledgeEntry:
        """Insert a knowledge entry, its full-text row and its tags."""
        tags = normalize_tags(entry.tags)
        with self._lock:
            with self._conn:
                cur = self._conn.execute(
                    "INSERT INTO knowledge"
                    " (id, title, content, summary, source_url, source_type, created_at, updated_at)"
                    " VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        entry.id, entry.title, entry.content, entry.summary, entry.source_url,
                        entry.source_type, entry.created_at, entry.updated_at,
                    ),
                )
                self._conn.execute(
                    "INSERT INTO knowledge_fts (rowid, title, content, summary) VALUES (?, ?, ?, ?)",
                    (cur.lastrowid, entry.title, entry.content, entry.summary),
                )
                self._insert_tags(entry.id, tags)
        logger.info(f"knowledge_saved id={entry.id} tags={len(tags)}")
        return entry.model_copy(update={"tags": sorted(tags)})

    def get_knowledge(self, knowledge_id: str) -> KnowledgeEntry | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM knowledge WHERE id = ?", (knowledge_id,)
            ).fetchone()
            if row is None:
                return None
            return self._entry(row)

    def search_knowledge(
        self,
        query: str,
        tags: list[str] | None = None,
        limit: int = 10,
    ) -> list[KnowledgeHit]:
        """Full-text phrase match over title, content and summary.

        Raw score is |bm25|. With tags, only entries carrying at least one
        of them are kept.
        """
        if not query.strip():
            return []
        phrase = '"' + query.replace('"', '""') + '"'
        try:
            with self._lock:
                rows = self._conn.execute(
                    """
                    SELECT k.*, bm25(knowledge_fts) AS rank
                    FROM knowledge_fts
                    JOIN knowledge k ON k.rowid = knowledge_fts.rowid
                    WHERE knowledge_fts MATCH ?
                    ORDER BY rank
                    LIMIT ?
                    """,
                    (phrase, limit * 2),
                ).fetchall()
                hits = [KnowledgeHit(entry=self._entry(row), score=abs(float(row["rank"]))) for row in rows]
        except sqlite3.Error as e:
            logger.warning(f"knowledge_search_failed query={query[:80]} error={e}")
            return []

        wanted = set(normalize_tags(tags or []))
        if wanted:
            hits = [hit for hit in hits if wanted.intersection(hit.entry.tags)]
        return hits[:limit]

    def add_tags(self, knowledge_id: str, tags: list[str]) -> list[str]:
        """Attach tags to an entry; returns the normalized names."""
        names = normalize_tags(tags)
        with self._lock:
            with self._conn:
                self._insert_tags(knowledge_id, names)
        return names

    def remove_tags(self, knowledge_id: str, tags: list[str]) -> list[str]:
        """Detach tags from an entry; returns the normalized names."""
        names = normalize_tags(tags)
        with self._lock:
            with self._conn:
                for name in names:
                    self._conn.execute(
                        "DELETE FROM knowledge_tags WHERE knowledge_id = ?"
                        " AND tag_id = (SELECT id FROM tags WHERE name = ?)",
                        (knowledge_id, name),
                    )
        return names

    def list_tags(self) -> list[TagCount]:
        """Tags in use, most used first."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT t.name, COUNT(kt.knowledge_id) AS count
                FROM tags t
                JOIN knowledge_tags kt ON kt.tag_id = t.id
                GROUP BY t.id
                ORDER BY count DESC, t.name
                """
            ).fetchall()
        return [TagCount(name=row["name"], count=row["count"]) for row in rows]

    def recent_knowledge(self, limit: int = 10) -> list[KnowledgeHit]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM knowledge ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (limit,),
            ).fetchall()
            return [KnowledgeHit(entry=self._entry(row), score=1.0) for row in rows]

    def count_knowledge(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) FROM knowledge").fetchone()
        return int(row[0])

    def _insert_tags(self, knowledge_id: str, names: list[str]) -> None:
        for name in names:
            self._conn.execute("INSERT OR IGNORE INTO tags (name) VALUES (?)", (name,))
            self._conn.execute(
                "INSERT OR IGNORE INTO knowledge_tags (knowledge_id, tag_id)"
                " SELECT ?, id FROM tags WHERE name = ?",
                (knowledge_id, name),
            )

    def touch_knowledge(self, knowledge_id: str, updated_at: str) -> None:
        with self._lock:
            with self._conn:
                self._conn.execute(
                    "UPDATE knowledge SET updated_at = ? WHERE id = ?",
                    (updated_at, knowledge_id),
                )

    def _entry_tags(self, knowledge_id: str) -> list[str]:
        rows = self._conn.execute(
            """
            SELECT t.name FROM tags t
            JOIN knowledge_tags kt ON kt.tag_id = t.id
            WHERE kt.knowledge_id = ?
            ORDER BY t.name
            """,
            (knowledge_id,),
        ).fetchall()
        return [row[0] for row in rows]

    def _entry(self, row: sqlite3.Row) -> KnowledgeEntry:
        return KnowledgeEntry(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            summary=row["summary"],
            source_url=row["source_url"],
            source_type=row["source_type"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            tags=self._entry_tags(row["id"]),
        )

    def _knowledge_results(self, query: str) -> list[SearchHit]:
        """Knowledge matches as search hits, normalized by their own maximum."""
        hits = self.search_knowledge(query, limit=self._config.max_results)
        top = max((hit.score for hit in hits), default=1.0) or 1.0
        results = []
        for hit in hits:
            entry = hit.entry
            snippet = f"**{entry.title}** [{', '.join(entry.tags)}]: {entry.summary or entry.content}"
            results.append(
                SearchHit(
                    path=f"{KNOWLEDGE_PREFIX}{entry.id}",
                    startLine=0,
                    endLine=0,
                    score=hit.score / top,
                    snippet=snippet[:SNIPPET_CHARS],
                    source="knowledge",
                )
            )
        return results

    @staticmethod
    def _hit(row: sqlite3.Row, score: float) -> SearchHit:
        path = row["path"]
        return SearchHit(
            path=path,
            startLine=row["start_line"],
            endLine=row["end_line"],
            score=score,
            snippet=row["text"][:SNIPPET_CHARS],
            source=source_for_path(path),
        )


def _max_score(hits: list[SearchHit]) -> float:
    if not hits:
        return 1.0
    top = max(hit.score for hit in hits)
    return top if top > 0 else 1.0
